"""
DutySync: duty roster swap approval service.
Flask Application Factory.

Usage:
    from dutysync import create_app
    app = create_app()           # defaults to APP_ENV, then "development"
    app = create_app("testing")  # explicit config
"""

import logging
import os

from flask import Flask, request
from flask_cors import CORS
from flask_limiter import Limiter
from flask_limiter.util import get_remote_address
from flask_migrate import Migrate
from sqlalchemy import engine as _sa_engine
from sqlalchemy import event as _sa_event

from dutysync.config import config
from dutysync.middleware.acting_user import init_acting_user
from dutysync.middleware.logging_config import configure_logging
from dutysync.middleware.rate_limiter import init_rate_limits
from dutysync.middleware.timing import init_request_timing
from dutysync.models import db
from dutysync.utils.errors import E, api_error

logger = logging.getLogger(__name__)


# ── SQLite FK enforcement (global engine event) ─────────────────────────
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
    default_limits=[],                     # per-blueprint limits only
    storage_uri=os.getenv("REDIS_URL", "memory://"),  # Redis in production, memory for dev
)


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
    if hasattr(config_cls, "validate"):
        config_cls.validate()
    app.config.from_object(config_cls)
    os.makedirs(app.instance_path, exist_ok=True)

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

    # ── Request middleware ───────────────────────────────────────────────
    init_request_timing(app)
    init_acting_user(app)

    app.config.setdefault("MAX_CONTENT_LENGTH", 1024 * 1024)  # 1 MB

    @app.before_request
    def _guard_request():
        from flask import abort
        if request.method in ("POST", "PUT", "PATCH") and request.path.startswith("/api/"):
            ct = request.content_type or ""
            if request.data and "json" not in ct:
                abort(415, description="Content-Type must be application/json")

    from dutysync.models import auth as _auth_models      # noqa: F401
    from dutysync.models import org as _org_models        # noqa: F401
    from dutysync.models import roster as _roster_models  # noqa: F401
    from dutysync.models import swap as _swap_models      # noqa: F401

    if app.config.get("TESTING") or app.config.get("DEBUG"):
        # Production schema is owned by Alembic (flask db upgrade).
        with app.app_context():
            db.create_all()

    from dutysync.blueprints.health_bp import health_bp
    from dutysync.blueprints.swap_bp import swap_bp

    app.register_blueprint(health_bp)
    app.register_blueprint(swap_bp)

    @app.cli.command("seed-demo")
    def seed_demo_cmd():
        """Seed a demo organization, roster and manager users."""
        from dutysync.services.seed import seed_demo
        ids = seed_demo()
        db.session.commit()
        if ids is None:
            logger.info("Database already has units; nothing seeded.")
        else:
            logger.info("Seeded demo users: %s", ", ".join(
                f"{key}={uid}" for key, uid in sorted(ids["users"].items())))

    @app.errorhandler(404)
    def not_found(e):
        return api_error(E.NOT_FOUND, f"No route for {request.path}")

    @app.errorhandler(405)
    def method_not_allowed(e):
        return api_error(E.VALIDATION_INVALID, f"{request.method} is not allowed on {request.path}",
                         status=405)

    @app.errorhandler(415)
    def unsupported_media_type(e):
        return api_error(E.VALIDATION_INVALID, e.description, status=415)

    @app.errorhandler(429)
    def rate_limited(e):
        return api_error(E.RATE_LIMITED, f"Too many requests: {e.description}")

    @app.errorhandler(500)
    def server_error(e):
        logger.error("Unhandled error on %s %s: %s", request.method, request.path, e, exc_info=True)
        return api_error(E.INTERNAL, "Internal server error")

    init_rate_limits(app, limiter)

    return app
