"""
Compliance Orchestration Engine

    from app import create_app
    app = create_app("testing")

The factory wires persistence, middleware and the HTTP surface around the
orchestration services. Config is picked by name, falling back to APP_ENV.
"""

import logging
import os

from flask import Flask, abort, request
from flask_cors import CORS
from flask_limiter import Limiter
from flask_limiter.util import get_remote_address
from flask_migrate import Migrate
from sqlalchemy import event
from sqlalchemy.engine import Engine

from app.config import config
from app.middleware.logging_config import configure_logging
from app.middleware.rate_limiter import init_rate_limits
from app.middleware.timing import init_request_timing
from app.models import db
from app.utils.errors import E, api_error

logger = logging.getLogger(__name__)

JSON_METHODS = ("POST", "PUT", "PATCH")

migrate = Migrate()
# Limits are attached per blueprint in init_rate_limits.
limiter = Limiter(
    key_func=get_remote_address,
    default_limits=[],
    storage_uri=os.getenv("REDIS_URL", "memory://"),
)


@event.listens_for(Engine, "connect")
def _sqlite_foreign_keys(dbapi_conn, connection_record):
    # Dependency and milestone FKs rely on ON DELETE behaviour; SQLite ships with it off.
    if "sqlite" not in type(dbapi_conn).__module__:
        return
    cursor = dbapi_conn.cursor()
    cursor.execute("PRAGMA foreign_keys=ON")
    cursor.close()


def create_app(config_name=None):
    """Build the application for ``development``, ``testing`` or ``production``."""
    app = Flask(__name__, instance_relative_config=True)
    app.config.from_object(config[config_name or os.getenv("APP_ENV", "development")]())
    app.config.setdefault("MAX_CONTENT_LENGTH", 2 * 1024 * 1024)

    configure_logging(app)
    _init_extensions(app)
    init_request_timing(app)
    app.before_request(_require_json_body)

    from app.models import directory, orchestration  # noqa: F401  register tables

    if app.config.get("DEBUG") or app.config.get("TESTING"):
        with app.app_context():
            db.create_all()

    from app.blueprints.health_bp import health_bp
    from app.blueprints.orchestration_bp import orchestration_bp

    for blueprint in (health_bp, orchestration_bp):
        app.register_blueprint(blueprint)

    _register_error_handlers(app)
    init_rate_limits(app, limiter)
    logger.debug("Application created (env=%s)", config_name or os.getenv("APP_ENV", "development"))
    return app


def _init_extensions(app):
    db.init_app(app)
    migrate.init_app(app, db)
    limiter.init_app(app)

    origins = [o.strip() for o in (app.config.get("CORS_ORIGINS") or "").split(",") if o.strip()]
    if not origins or origins == ["*"]:
        CORS(app)
    else:
        CORS(app, origins=origins)


def _require_json_body():
    """Refuse non-JSON write bodies on the API with 415."""
    if request.method not in JSON_METHODS or not request.path.startswith("/api/"):
        return None
    if request.data and "json" not in (request.content_type or ""):
        abort(415, description="Content-Type must be application/json")
    return None


def _register_error_handlers(app):
    """App-level fallbacks; the orchestration blueprint maps its own domain errors."""

    @app.errorhandler(404)
    def not_found(e):
        return api_error(E.NOT_FOUND, "Not found", details={"path": request.path})

    @app.errorhandler(405)
    def method_not_allowed(e):
        return api_error(E.VALIDATION_INVALID, "Method not allowed", status=405)

    @app.errorhandler(413)
    def too_large(e):
        return api_error(E.VALIDATION_INVALID, "Request body too large", status=413)

    @app.errorhandler(415)
    def unsupported_media(e):
        return api_error(E.VALIDATION_INVALID, e.description, status=415)

    @app.errorhandler(429)
    def rate_limited(e):
        return api_error(E.VALIDATION_INVALID, "Too many requests", status=429,
                         details={"retry_after": e.description})

    @app.errorhandler(500)
    def server_error(e):
        logger.error("Unhandled server error: %s", e, exc_info=True)
        return api_error(E.INTERNAL, "Internal server error")
