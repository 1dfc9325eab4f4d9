"""
Health check blueprint.

Endpoints:
    GET /api/v1/health        — service banner
    GET /api/v1/health/ready  — simple 200 for load balancers
    GET /api/v1/health/live   — database check plus orchestration table counts
"""

import logging
import time

from flask import Blueprint, current_app, jsonify
from sqlalchemy.exc import SQLAlchemyError

from app.models import db

logger = logging.getLogger(__name__)

health_bp = Blueprint("health_bp", __name__, url_prefix="/api/v1/health")

_ORCHESTRATION_TABLES = (
    "orchestration_tasks",
    "orchestration_timelines",
    "orchestration_milestones",
    "directory_users",
)


@health_bp.route("", methods=["GET"])
def health():
    return jsonify({"status": "ok", "app": "Compliance Orchestration Engine"}), 200


@health_bp.route("/ready", methods=["GET"])
def ready():
    """Answers 200 as soon as the app can serve requests."""
    return jsonify({"status": "ok"}), 200


def _check_database() -> dict:
    started = time.perf_counter()
    try:
        db.session.execute(db.text("SELECT 1"))
    except SQLAlchemyError as exc:
        logger.error("Health check: database unreachable: %s", exc)
        return {"status": "error", "detail": str(exc)}
    return {"status": "ok", "latency_ms": round((time.perf_counter() - started) * 1000, 1)}


def _count_rows(table: str) -> dict:
    try:
        count = db.session.execute(db.text(f"SELECT COUNT(*) FROM {table}")).scalar()
    except SQLAlchemyError as exc:
        logger.error("Health check: table %s unreadable: %s", table, exc)
        return {"status": "error", "detail": str(exc)}
    return {"status": "ok", "count": count}


@health_bp.route("/live", methods=["GET"])
def live():
    """Database round-trip plus row counts of the orchestration tables; 503 when degraded."""
    checks = {"database": _check_database()}
    if checks["database"]["status"] == "ok":
        checks["tables"] = {table: _count_rows(table) for table in _ORCHESTRATION_TABLES}
    healthy = checks["database"]["status"] == "ok" and all(
        entry["status"] == "ok" for entry in checks.get("tables", {}).values()
    )
    checks["app"] = {
        "name": "Compliance Orchestration Engine",
        "debug": current_app.debug,
        "testing": current_app.testing,
    }
    return jsonify({
        "status": "healthy" if healthy else "degraded",
        "checks": checks,
    }), 200 if healthy else 503
