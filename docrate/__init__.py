"""
Docrate application package.

``create_app`` builds a Flask application wired to the database, the schema
migration CLI and the importer CLI.
"""

import logging
import os

from flask import Flask
from sqlalchemy import event

from config import DevelopmentConfig, ProductionConfig, TestingConfig
from config.secrets import load_secrets

from .database import init_schema
from .importer import init_importer
from .models import db
from .utils.logging_config import setup_logging

DOCRATE_EXTENSION_KEY = "docrate"

logger = logging.getLogger(__name__)


def _config_for_env(flask_env):
    if flask_env == "production":
        return ProductionConfig
    if flask_env == "testing":
        return TestingConfig
    return DevelopmentConfig


def _configure_sqlite_connection_factory(*, enable_foreign_keys):
    """Return a connection hook applying concurrency-friendly pragmas."""

    def _configure_sqlite_connection(dbapi_connection, connection_record):  # pragma: no cover - instrumentation
        # Hand transaction control to SQLAlchemy so SAVEPOINTs behave.
        dbapi_connection.isolation_level = None
        try:
            cursor = dbapi_connection.cursor()
            cursor.execute("PRAGMA journal_mode=WAL")
            cursor.execute("PRAGMA synchronous=NORMAL")
            cursor.execute("PRAGMA busy_timeout=5000")
            if enable_foreign_keys:
                cursor.execute("PRAGMA foreign_keys=ON")
            cursor.close()
        except Exception as exc:
            logger.warning("Failed to apply SQLite PRAGMAs: %s", exc)

    return _configure_sqlite_connection


def _emit_sqlite_begin(conn):
    conn.exec_driver_sql("BEGIN")


def _configure_engine(app):
    engine = db.engine
    if not engine.url.drivername.startswith("sqlite"):
        return
    if getattr(engine, "_sqlite_pragmas_configured", False):
        return
    pragma_hook = _configure_sqlite_connection_factory(enable_foreign_keys=not app.config.get("TESTING", False))
    event.listen(engine, "connect", pragma_hook)
    event.listen(engine, "begin", _emit_sqlite_begin)
    engine._sqlite_pragmas_configured = True  # type: ignore[attr-defined]


def create_app(config_object=None, config_overrides=None):
    """
    Build the application.

    ``config_object`` defaults to the class matching ``FLASK_ENV``;
    ``config_overrides`` is applied on top, which is how tests point the app
    at an isolated database.
    """
    app = Flask(__name__, instance_relative_config=True)
    app.config.from_object(config_object or _config_for_env(os.environ.get("FLASK_ENV", "development")))
    if config_overrides:
        app.config.update(config_overrides)

    if not app.config.get("SQLALCHEMY_DATABASE_URI"):
        raise RuntimeError("DATABASE_URL must be set to a SQLAlchemy database URL.")
    if app.config["SQLALCHEMY_DATABASE_URI"].startswith("sqlite:///") and not app.config.get("TESTING"):
        os.makedirs(app.instance_path, exist_ok=True)

    setup_logging(app)

    # Loaded once; configuration errors stop startup.
    secrets = load_secrets(app.config.get("DOCRATE_SECRETS_FILE"), env={})
    app.extensions[DOCRATE_EXTENSION_KEY] = {"secrets": secrets}
    if secrets.source:
        app.logger.info("Loaded secrets for %s environment from %s", secrets.environment, secrets.source)

    db.init_app(app)
    with app.app_context():
        _configure_engine(app)

    init_schema(app)
    init_importer(app)
    return app


def get_secrets(app):
    """Return the immutable secrets loaded for ``app``."""
    return app.extensions[DOCRATE_EXTENSION_KEY]["secrets"]
