"""
Taskflow
Flask Application Factory.

Usage:
    from taskflow import create_app
    app = create_app()           # defaults to APP_ENV or "development"
    app = create_app("testing")  # explicit config
"""

import logging
import os

from flask import Flask, abort, request
from flask_cors import CORS
from flask_limiter import Limiter
from flask_limiter.util import get_remote_address
from flask_migrate import Migrate
from sqlalchemy import engine as _sa_engine
from sqlalchemy import event as _sa_event

from taskflow.config import config
from taskflow.middleware.jwt_auth import init_jwt_middleware
from taskflow.middleware.logging_config import configure_logging
from taskflow.middleware.rate_limiter import init_rate_limits
from taskflow.middleware.timing import init_request_timing
from taskflow.models import db
from taskflow.utils.errors import register_error_handlers

logger = logging.getLogger(__name__)


@_sa_event.listens_for(_sa_engine.Engine, "connect")
def _enable_sqlite_fk(dbapi_conn, connection_record):
    """Enable foreign key enforcement for SQLite connections."""
    if "sqlite" in type(dbapi_conn).__module__:
        cursor = dbapi_conn.cursor()
        cursor.execute("PRAGMA foreign_keys=ON")
        cursor.close()


migrate = Migrate()
limiter = Limiter(
    key_func=get_remote_address,
    default_limits=[],  # per-blueprint limits only, see middleware/rate_limiter.py
)


def create_app(config_name=None):
    """
    Create and configure the Flask application.

    Args:
        config_name: One of "development", "testing", "production".
                     Defaults to the APP_ENV env var, or "development".

    Returns:
        Configured Flask application instance.
    """
    if config_name is None:
        config_name = os.getenv("APP_ENV", "development")

    app = Flask(__name__, instance_relative_config=True)
    app.config.from_object(config[config_name]())

    # ── Structured logging (must be first) ───────────────────────────────
    configure_logging(app)

    # ── Extensions ───────────────────────────────────────────────────────
    db.init_app(app)
    migrate.init_app(app, db)
    limiter.init_app(app)
    cors_origins = app.config.get("CORS_ORIGINS", "*")
    if cors_origins and cors_origins != "*":
        CORS(app, origins=[o.strip() for o in cors_origins.split(",") if o.strip()])
    else:
        CORS(app)

    # ── Request timing, then JWT auth ────────────────────────────────────
    init_request_timing(app)
    init_jwt_middleware(app)

    @app.before_request
    def _guard_request():
        if request.method in ("POST", "PUT", "PATCH") and request.path.startswith("/api/"):
            ct = request.content_type or ""
            if request.data and "json" not in ct:
                abort(415, description="Content-Type must be application/json")

    # ── Error handlers ───────────────────────────────────────────────────
    register_error_handlers(app)

    # ── Models (imported so create_all and Alembic see every table) ──────
    from taskflow.models import activity as _activity_models          # noqa: F401
    from taskflow.models import notification as _notification_models  # noqa: F401
    from taskflow.models import task as _task_models                  # noqa: F401
    from taskflow.models import user as _user_models                  # noqa: F401
    from taskflow.models import workflow as _workflow_models          # noqa: F401

    if config_name != "testing":
        with app.app_context():
            uri = app.config["SQLALCHEMY_DATABASE_URI"]
            if uri.startswith("sqlite:///") and ":memory:" not in uri:
                os.makedirs(os.path.dirname(uri[len("sqlite:///"):]), exist_ok=True)
            db.create_all()
            app.logger.info("db.create_all() completed successfully")

    # ── Blueprints ───────────────────────────────────────────────────────
    from taskflow.blueprints.auth_bp import auth_bp
    from taskflow.blueprints.health_bp import health_bp
    from taskflow.blueprints.notification_bp import notification_bp
    from taskflow.blueprints.task_bp import task_bp
    from taskflow.blueprints.workflow_bp import workflow_bp

    app.register_blueprint(auth_bp)
    app.register_blueprint(workflow_bp)
    app.register_blueprint(task_bp)
    app.register_blueprint(notification_bp)
    app.register_blueprint(health_bp)

    # ── Rate limiting (after blueprints registered) ──────────────────────
    init_rate_limits(app, limiter)

    return app
