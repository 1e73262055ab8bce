"""
Todo Sync Flask Application Factory.

Provides the ``create_app`` factory that assembles the REST API and owns
the realtime ``ChannelRegistry``.  The factory is the composition root: it
creates (or accepts) the registry, stores it on the application, and every
request handler and the Socket.IO namespace reach it from there rather than
through module-level state.  Several applications, each with its own
registry, can coexist in one process.
"""

from __future__ import annotations

import logging
import os
from pathlib import Path

from flask import Flask
from flask_sqlalchemy import SQLAlchemy

from config import get_config, load_public_key

db = SQLAlchemy()

logging.basicConfig(
    level=logging.INFO,
    format="%(asctime)s - %(name)s - %(levelname)s - %(message)s",
)
logger = logging.getLogger(__name__)


def _ensure_sqlite_db_parent_exists(database_uri: str) -> None:
    """Create parent directories for file-based SQLite URIs when missing."""
    sqlite_prefix = "sqlite:///"
    if not database_uri.startswith(sqlite_prefix):
        return

    sqlite_path = database_uri[len(sqlite_prefix) :].split("?", 1)[0]
    if sqlite_path == ":memory:":
        return

    Path(sqlite_path).parent.mkdir(parents=True, exist_ok=True)


def create_app(config_name: str | None = None, registry=None) -> Flask:
    """
    Create and configure the application.

    Args:
        config_name: Optional configuration environment name
            (``"development"``, ``"testing"``, ``"production"``).  When
            ``None``, read from ``FLASK_ENV``.
        registry: Optional ``ChannelRegistry`` to use; a fresh one is
            created when omitted.

    Returns:
        A configured Flask application.  The registry is available as
        ``app.extensions["channel_registry"]``.
    """
    from .realtime import REGISTRY_EXTENSION, ChannelRegistry

    app = Flask(__name__, instance_relative_config=True)
    config_class = get_config(config_name)
    app.config.from_object(config_class)
    app.config["JWT_PUBLIC_KEY"] = load_public_key(testing=bool(app.config.get("TESTING")))

    logger.info("Creating todo app with config: %s", config_class.__name__)

    os.makedirs(app.instance_path, exist_ok=True)
    _ensure_sqlite_db_parent_exists(app.config.get("SQLALCHEMY_DATABASE_URI", ""))

    db.init_app(app)
    app.extensions[REGISTRY_EXTENSION] = registry if registry is not None else ChannelRegistry()

    from .routes import register_error_handlers
    from .routes.api import api_bp, health_check

    app.register_blueprint(api_bp, url_prefix="/api")
    app.add_url_rule("/health", "health", health_check, methods=["GET"])
    register_error_handlers(app)

    with app.app_context():
        db.create_all()
        logger.info("Database tables created")

    return app
