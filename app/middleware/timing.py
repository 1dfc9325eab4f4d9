"""
Request timing middleware.

Stamps every response with X-Request-ID (echoed when the caller sends one)
and X-Request-Duration-Ms, and logs API requests with their orchestration
scope so a slow Gantt or bulk call can be traced to its timeline or task.
"""

import logging
import time
import uuid

from flask import Flask, g, request

logger = logging.getLogger(__name__)

# Health endpoints polled by load balancers
_SKIP_LOG = frozenset({"/api/v1/health", "/api/v1/health/ready", "/api/v1/health/live"})

SLOW_THRESHOLD_MS = 1000


def _level_for(status_code: int, duration_ms: float) -> int:
    """Server errors log at ERROR, slow requests at WARNING, the rest at DEBUG."""
    if status_code >= 500:
        return logging.ERROR
    if duration_ms > SLOW_THRESHOLD_MS:
        return logging.WARNING
    return logging.DEBUG


def _organization_scope() -> int | None:
    oid = request.args.get("organization_id", type=int)
    if oid is not None:
        return oid
    payload = request.get_json(silent=True)
    if isinstance(payload, dict):
        try:
            return int(payload["organization_id"]) if payload.get("organization_id") is not None else None
        except (TypeError, ValueError):
            return None
    return None


def init_request_timing(app: Flask):
    """Register before/after hooks for request timing."""

    @app.before_request
    def _start_timer():
        g.request_start = time.perf_counter()
        g.request_id = request.headers.get("X-Request-ID", uuid.uuid4().hex[:12])

    @app.after_request
    def _log_request(response):
        start = getattr(g, "request_start", None)
        if start is None:
            return response

        duration_ms = (time.perf_counter() - start) * 1000
        response.headers["X-Request-Duration-Ms"] = f"{duration_ms:.1f}"
        response.headers["X-Request-ID"] = getattr(g, "request_id", "")

        if request.path in _SKIP_LOG:
            return response

        view_args = request.view_args or {}
        extra = {
            "method": request.method,
            "path": request.path,
            "status": response.status_code,
            "duration_ms": duration_ms,
            "remote_addr": request.remote_addr,
            "request_id": getattr(g, "request_id", ""),
            "organization_id": _organization_scope(),
            "timeline_id": view_args.get("timeline_id"),
            "task_id": view_args.get("task_id"),
        }
        logger.log(_level_for(response.status_code, duration_ms),
                   "%s %s -> %d (%.0fms)", request.method, request.path,
                   response.status_code, duration_ms, extra=extra)
        return response
