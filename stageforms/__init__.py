"""
Stage & Form Definition Engine
Flask Application Factory.

Usage:
    from stageforms import create_app
    app = create_app()           # defaults to "development"
    app = create_app("testing")  # explicit config
"""

import logging
import os

from flask import Flask
from flask_migrate import Migrate

from stageforms.config import config
from stageforms.models import db
from stageforms.middleware.logging_config import configure_logging

logger = logging.getLogger(__name__)

migrate = Migrate()


def _ensure_sqlite_dir(uri):
    """Create the parent directory of a file-backed SQLite database."""
    if not uri or not uri.startswith("sqlite:///") or ":memory:" in uri:
        return
    path = uri[len("sqlite:///"):]
    directory = os.path.dirname(path)
    if directory:
        os.makedirs(directory, exist_ok=True)


def create_app(config_name=None):
    """
    Create and configure the Flask application.

    Args:
        config_name: Configuration environment name.
                     One of: "development", "testing", "production".
                     Defaults to APP_ENV env var, or "development" if unset.

    Returns:
        Configured Flask application instance.
    """
    if config_name is None:
        config_name = os.getenv("APP_ENV", "development")

    app = Flask(__name__, instance_relative_config=True)
    config_cls = config[config_name]
    if config_name == "production":
        config_cls()  # validates required env vars
    app.config.from_object(config_cls)

    # ── Structured logging (must be first) ───────────────────────────────
    configure_logging(app)

    # ── Extensions ───────────────────────────────────────────────────────
    _ensure_sqlite_dir(app.config.get("SQLALCHEMY_DATABASE_URI"))
    db.init_app(app)
    migrate.init_app(app, db)

    # ── Import all models so Alembic can detect them ─────────────────────
    from stageforms.models import kv_store as _kv_store_models  # noqa: F401

    # ── Auto-create tables (CREATE IF NOT EXISTS) ────────────────────────
    with app.app_context():
        try:
            db.create_all()
            app.logger.info("db.create_all() completed successfully")
        except Exception as e:
            app.logger.warning("db.create_all() failed: %s", e)

    # ── CLI commands ─────────────────────────────────────────────────────
    from stageforms.cli import register_cli
    register_cli(app)

    logger.debug("App created: env=%s backend=%s",
                 config_name, app.config.get("FORM_STORE_BACKEND"))
    return app
