import logging
import json
from logging.handlers import TimedRotatingFileHandler
import os
from datetime import datetime, timezone

LOG_DIR = os.getenv("LOG_DIR", "logs")

class JsonFormatter(logging.Formatter):
    def format(self, record):
        log_entry = {
            "timestamp": datetime.now(timezone.utc).isoformat(),
            "level": record.levelname,
            "logger": record.name,
            "message": record.getMessage(),
        }

        if record.exc_info:
            log_entry["exception"] = self.formatException(record.exc_info)

        return json.dumps(log_entry, ensure_ascii=False)


def setup_logger(level=logging.INFO, to_file: bool = True):
    logger = logging.getLogger()
    logger.setLevel(level)

    # Calling twice (app factory + entrypoint) must not duplicate lines
    if getattr(logger, "_clinicare_configured", False):
        return logger

    if to_file:
        os.makedirs(LOG_DIR, exist_ok=True)
        # Log file rotates daily, keeps 14 days
        handler = TimedRotatingFileHandler(
            filename=f"{LOG_DIR}/clinic_dashboard.log",
            when="midnight",
            backupCount=14,
            encoding="utf-8"
        )
        handler.setFormatter(JsonFormatter())
        logger.addHandler(handler)

    # Also log to console for debugging
    console = logging.StreamHandler()
    console.setFormatter(JsonFormatter())
    logger.addHandler(console)

    logger._clinicare_configured = True
    return logger
