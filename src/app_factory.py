import os
from flask import Flask, g

from extensions import db, migrate
from config import DevConfig, ProdConfig


def create_app(config_object=None) -> Flask:
    """Initialize Flask app with DB, auth registry and the dashboard blueprints."""
    app = Flask(__name__)

    if config_object is not None:
        app.config.from_object(config_object)
    elif os.getenv("FLASK_ENV") == "production":
        app.config.from_object(ProdConfig)
    else:
        app.config.from_object(DevConfig)

    db.init_app(app)
    migrate.init_app(app, db)

    from src.services.db_context import bind_app
    from src.services.auth_context import init_auth
    from src.routes.guards import menu_for

    # Import models so SQLAlchemy registers tables.
    with app.app_context():
        import src.models  # noqa: F401
        # Ensure tables exist (useful for SQLite/dev). For production, prefer migrations.
        db.create_all()

        # Register HTTP blueprints
        from src.routes.auth import auth_bp
        from src.routes.dashboard import dashboard_bp
        from src.routes.patients import patients_bp
        from src.routes.appointments import appointments_bp
        from src.routes.consultations import consultations_bp
        from src.routes.billing import billing_bp
        from src.routes.staff import staff_bp
        from src.routes.inventory import inventory_bp
        from src.routes.workflow import workflow_bp

        app.register_blueprint(auth_bp)
        app.register_blueprint(dashboard_bp)
        app.register_blueprint(patients_bp)
        app.register_blueprint(appointments_bp)
        app.register_blueprint(consultations_bp)
        app.register_blueprint(billing_bp)
        app.register_blueprint(staff_bp)
        app.register_blueprint(inventory_bp)
        app.register_blueprint(workflow_bp)

    bind_app(app)
    init_auth(app)

    @app.context_processor
    def inject_user():
        auth = g.get("auth")
        user = auth.user if auth is not None and auth.is_authenticated else None
        return {
            "current_user": user,
            "menu_items": menu_for(user.role if user else None),
            "clinic_name": app.config["CLINIC_NAME"],
        }

    return app
