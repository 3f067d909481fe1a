# backend/openstock/__init__.py
import logging

from flask import Flask
from sqlalchemy import event

from .config import Config
from .extensions import db, migrate


def _enable_sqlite_foreign_keys(app: Flask) -> None:
    """Ledger rows cascade with their product; SQLite only honors that with the pragma on."""
    if not app.config["SQLALCHEMY_DATABASE_URI"].startswith("sqlite"):
        return

    with app.app_context():
        @event.listens_for(db.engine, "connect")
        def _set_sqlite_pragma(dbapi_connection, connection_record):
            cursor = dbapi_connection.cursor()
            cursor.execute("PRAGMA foreign_keys=ON")
            cursor.close()


def create_app(config_overrides: dict | None = None) -> Flask:
    app = Flask(__name__, instance_relative_config=True)
    app.config.from_object(Config)
    if config_overrides:
        app.config.update(config_overrides)

    app.logger.setLevel(getattr(logging, str(app.config.get("LOG_LEVEL", "INFO")).upper(), logging.INFO))

    # Initialize extensions
    db.init_app(app)
    migrate.init_app(app, db)

    # Import models so Alembic can discover metadata reliably
    from . import models  # noqa: F401

    _enable_sqlite_foreign_keys(app)

    # Register CLI commands
    from .cli import register_commands
    register_commands(app)

    return app
