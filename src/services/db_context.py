from contextlib import contextmanager

from flask import Flask, has_app_context

# App bound by create_app(); background timers run outside any request.
flask_app: Flask | None = None


def bind_app(app: Flask) -> None:
    global flask_app
    flask_app = app


@contextmanager
def db_context():
    """Provide an application context for DB work, reusing the current one if any."""
    if has_app_context():
        yield
        return

    global flask_app
    if flask_app is None:
        from src.app_factory import create_app
        flask_app = create_app()

    with flask_app.app_context():
        yield


def rollback():
    """Roll back a failed write if an app context is still active.

    Outside a request, leaving ``db_context`` already removed the session.
    """
    if has_app_context():
        from extensions import db
        db.session.rollback()
