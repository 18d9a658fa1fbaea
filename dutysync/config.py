"""
DutySync configuration classes, selected by APP_ENV.

Usage:
    app.config.from_object(config[os.getenv("APP_ENV", "development")])

Environment variables:
    DATABASE_URL               PostgreSQL in production; SQLite file in development
    TEST_DATABASE_URL          override the in-memory test database
    SECRET_KEY                 required in production
    CORS_ORIGINS               comma separated; "*" outside production
    REDIS_URL                  rate limiter storage (memory:// fallback)
    LOG_LEVEL, SLOW_REQUEST_MS logging
    ACTING_USER_HEADER         header the gateway puts the user id in
    SWAP_MAX_CONFLICT_RETRIES  re-runs after an optimistic version conflict
    SWAP_WRITE_LIMIT / SWAP_READ_LIMIT   per-user rate limits
"""

import os
import secrets

basedir = os.path.abspath(os.path.dirname(os.path.dirname(__file__)))

_SQLITE_DEV = f"sqlite:///{os.path.join(basedir, 'instance', 'dutysync_dev.db')}"
_SQLITE_TEST = "sqlite:///:memory:"


def _database_url(default=None):
    # SQLAlchemy 2.0 only accepts the postgresql:// scheme
    raw = os.getenv("DATABASE_URL", "")
    return raw.replace("postgres://", "postgresql://", 1) if raw else default


_POOLED = {
    "pool_pre_ping": True,
    "pool_size": 5,
    "max_overflow": 10,
    "pool_recycle": 300,
    "pool_timeout": 20,
}


class Config:
    SECRET_KEY = os.getenv("SECRET_KEY") or secrets.token_hex(32)
    DEBUG = False
    TESTING = False

    SQLALCHEMY_TRACK_MODIFICATIONS = False
    SQLALCHEMY_ENGINE_OPTIONS = dict(_POOLED)

    REDIS_URL = os.getenv("REDIS_URL", "memory://")
    CORS_ORIGINS = os.getenv("CORS_ORIGINS", "*")

    LOG_LEVEL = os.getenv("LOG_LEVEL")
    SLOW_REQUEST_MS = int(os.getenv("SLOW_REQUEST_MS", "1000"))

    ACTING_USER_HEADER = os.getenv("ACTING_USER_HEADER", "X-User-Id")

    SWAP_MAX_CONFLICT_RETRIES = int(os.getenv("SWAP_MAX_CONFLICT_RETRIES", "3"))
    SWAP_WRITE_LIMIT = os.getenv("SWAP_WRITE_LIMIT", "60/minute")
    SWAP_READ_LIMIT = os.getenv("SWAP_READ_LIMIT", "200/minute")


class DevelopmentConfig(Config):
    DEBUG = True
    SQLALCHEMY_DATABASE_URI = _database_url(_SQLITE_DEV)
    SQLALCHEMY_ENGINE_OPTIONS = {"pool_pre_ping": True}


class TestingConfig(Config):
    TESTING = True
    SQLALCHEMY_DATABASE_URI = os.getenv("TEST_DATABASE_URL", _SQLITE_TEST)
    # In-memory SQLite runs on a StaticPool, which takes no pool sizing options.
    SQLALCHEMY_ENGINE_OPTIONS = {}
    RATELIMIT_ENABLED = False
    LOG_LEVEL = "WARNING"


class ProductionConfig(Config):
    SQLALCHEMY_DATABASE_URI = _database_url()
    CORS_ORIGINS = os.getenv("CORS_ORIGINS", "")
    SQLALCHEMY_ENGINE_OPTIONS = {
        **_POOLED,
        "connect_args": {"options": "-c statement_timeout=30000"},
    }

    @classmethod
    def validate(cls):
        """Fail fast at startup when a required production setting is missing."""
        if not cls.SQLALCHEMY_DATABASE_URI:
            raise RuntimeError("DATABASE_URL environment variable is required in production")
        if not os.getenv("SECRET_KEY"):
            raise RuntimeError("SECRET_KEY environment variable must be set in production")


config = {
    "development": DevelopmentConfig,
    "testing": TestingConfig,
    "production": ProductionConfig,
    "default": DevelopmentConfig,
}
