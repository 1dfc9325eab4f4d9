"""
Per-blueprint rate limits (Flask-Limiter).

The shared Limiter is created in the factory without default limits;
``init_rate_limits`` attaches the orchestration write/read budgets once the
blueprints are registered and exempts the health endpoints.
"""

import logging

logger = logging.getLogger(__name__)

WRITE_LIMIT = "60/minute"
# Gantt and analytics views are polled, so reads get a larger budget.
READ_LIMIT = "200/minute"

_WRITE_METHODS = ["POST", "PUT", "PATCH", "DELETE"]


def init_rate_limits(app, limiter):
    """Apply limits keyed on remote address; no-op under TESTING."""
    if app.config.get("TESTING"):
        logger.debug("Rate limits skipped for testing")
        return

    orchestration = app.blueprints.get("orchestration")
    if orchestration is not None:
        limiter.limit(WRITE_LIMIT, methods=_WRITE_METHODS)(orchestration)
        limiter.limit(READ_LIMIT, methods=["GET"])(orchestration)

    health = app.blueprints.get("health_bp")
    if health is not None:
        limiter.exempt(health)

    logger.info("Rate limits applied: write=%s read=%s", WRITE_LIMIT, READ_LIMIT)
