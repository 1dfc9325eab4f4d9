"""
Compliance Orchestration Engine
Environment configuration.

``config[name]`` is instantiated by the factory; every orchestration
tunable can be overridden through an environment variable of the same name.
"""

import os
import secrets

basedir = os.path.abspath(os.path.dirname(os.path.dirname(__file__)))

_SQLITE_DEV = f"sqlite:///{os.path.join(basedir, 'instance', 'orchestration_dev.db')}"
_SQLITE_TEST = "sqlite:///:memory:"


def _env_float(name, default):
    return float(os.getenv(name, str(default)))


def _env_int(name, default):
    return int(os.getenv(name, str(default)))


def _database_url(fallback=None):
    """DATABASE_URL with the legacy ``postgres://`` scheme normalised for SQLAlchemy 2."""
    raw = os.getenv("DATABASE_URL", "")
    if not raw:
        return fallback
    return raw.replace("postgres://", "postgresql://", 1)


class Config:
    """Settings shared by every environment."""

    SECRET_KEY = os.getenv("SECRET_KEY") or secrets.token_hex(32)
    DEBUG = False
    TESTING = False

    SQLALCHEMY_TRACK_MODIFICATIONS = False
    SQLALCHEMY_ENGINE_OPTIONS = {"pool_pre_ping": True, "pool_recycle": 300}

    RATELIMIT_STORAGE_URI = os.getenv("REDIS_URL", "memory://")
    CORS_ORIGINS = os.getenv("CORS_ORIGINS", "*")

    # Assignment scorer
    ASSIGNMENT_BASE_SCORE = _env_float("ASSIGNMENT_BASE_SCORE", 50)
    ASSIGNMENT_WORKLOAD_WEIGHT = _env_float("ASSIGNMENT_WORKLOAD_WEIGHT", 0.3)
    ASSIGNMENT_AVAILABILITY_BONUS = _env_float("ASSIGNMENT_AVAILABILITY_BONUS", 20)
    ASSIGNMENT_WEEKLY_CAPACITY_HOURS = _env_float("ASSIGNMENT_WEEKLY_CAPACITY_HOURS", 40)
    ASSIGNMENT_DEFAULT_TASK_HOURS = _env_float("ASSIGNMENT_DEFAULT_TASK_HOURS", 8)
    ASSIGNMENT_MAX_SUGGESTIONS = _env_int("ASSIGNMENT_MAX_SUGGESTIONS", 5)
    ASSIGNMENT_MAX_CANDIDATES = _env_int("ASSIGNMENT_MAX_CANDIDATES", 20)

    # Timeline health
    HEALTH_DELAYED_MILESTONE_PENALTY = _env_float("HEALTH_DELAYED_MILESTONE_PENALTY", 15)
    HEALTH_BLOCKED_CRITICAL_PENALTY = _env_float("HEALTH_BLOCKED_CRITICAL_PENALTY", 20)
    HEALTH_SCHEDULE_VARIANCE_WEIGHT = _env_float("HEALTH_SCHEDULE_VARIANCE_WEIGHT", 0.5)

    # Gantt projector
    GANTT_MIN_BAR_WIDTH_PCT = _env_float("GANTT_MIN_BAR_WIDTH_PCT", 2.0)
    GANTT_MILESTONE_WIDTH_PCT = _env_float("GANTT_MILESTONE_WIDTH_PCT", 0.5)


class DevelopmentConfig(Config):
    DEBUG = True
    SQLALCHEMY_DATABASE_URI = _database_url(_SQLITE_DEV)


class TestingConfig(Config):
    TESTING = True
    SQLALCHEMY_DATABASE_URI = os.getenv("TEST_DATABASE_URL", _SQLITE_TEST)
    SQLALCHEMY_ENGINE_OPTIONS = {}
    RATELIMIT_ENABLED = False


class ProductionConfig(Config):
    """Postgres-backed deployment; refuses to start half-configured."""

    SQLALCHEMY_DATABASE_URI = _database_url()
    CORS_ORIGINS = os.getenv("CORS_ORIGINS", "")
    SQLALCHEMY_ENGINE_OPTIONS = {
        "pool_pre_ping": True,
        "pool_size": 5,
        "max_overflow": 10,
        "pool_recycle": 300,
        "pool_timeout": 20,
        "connect_args": {"options": "-c statement_timeout=30000"},
    }

    def __init__(self):
        missing = [
            name for name, value in (
                ("DATABASE_URL", self.SQLALCHEMY_DATABASE_URI),
                ("SECRET_KEY", os.getenv("SECRET_KEY")),
            ) if not value
        ]
        if missing:
            raise RuntimeError(f"Production requires environment variables: {', '.join(missing)}")


config = {
    "development": DevelopmentConfig,
    "testing": TestingConfig,
    "production": ProductionConfig,
    "default": DevelopmentConfig,
}
