import os

from logging_setup import setup_logger
from src.app_factory import create_app


if __name__ == "__main__":
    """
    Dedicated entrypoint for the clinic dashboard.
    """
    setup_logger()
    app = create_app()
    app.run(host="0.0.0.0", port=int(os.getenv("PORT", 5001)), debug=app.config.get("DEBUG", False))
