"""JSON error envelopes for the orchestration API.

Every error body has the same shape::

    {"error": "<message>", "code": "ERR_...", "details": {...}}

``api_error`` builds one from an error code; ``domain_error`` builds one
from an exception raised by the services so blueprints register a single
translation instead of repeating status logic per route.
"""

from __future__ import annotations

from flask import jsonify

from app.core.exceptions import ConfigurationError, ConflictError, NotFoundError, ValidationError


class E:
    """Error codes returned in the ``code`` field."""

    # 400: request body or query string is malformed
    VALIDATION_REQUIRED = "ERR_VALIDATION_REQUIRED"
    VALIDATION_INVALID = "ERR_VALIDATION_INVALID"

    # 422: well-formed request rejected by a service rule
    VALIDATION_RULE = "ERR_VALIDATION_RULE"
    CONFIGURATION = "ERR_CONFIGURATION"

    NOT_FOUND = "ERR_NOT_FOUND"

    # 409: dependency cycle, duplicate edge, constraint violation on commit
    CONFLICT_DUPLICATE = "ERR_CONFLICT_DUPLICATE"
    CONFLICT_STATE = "ERR_CONFLICT_STATE"

    DATABASE = "ERR_DATABASE"
    INTERNAL = "ERR_INTERNAL"


STATUS_BY_CODE: dict[str, int] = {
    E.VALIDATION_REQUIRED: 400,
    E.VALIDATION_INVALID: 400,
    E.VALIDATION_RULE: 422,
    E.CONFIGURATION: 422,
    E.NOT_FOUND: 404,
    E.CONFLICT_DUPLICATE: 409,
    E.CONFLICT_STATE: 409,
    E.DATABASE: 500,
    E.INTERNAL: 500,
}


def api_error(code: str, message: str, *, status: int | None = None, details: dict | None = None):
    """Return ``(response, status)`` for a Flask view.

    The status comes from ``STATUS_BY_CODE`` unless ``status`` is given;
    unknown codes answer 400. Empty ``details`` are left out of the body.
    """
    body: dict = {"error": message, "code": code}
    if details:
        body["details"] = details
    return jsonify(body), status or STATUS_BY_CODE.get(code, 400)


def domain_error(exc: Exception):
    """Translate a service exception into an error envelope.

    ConfigurationError is checked before its ValidationError parent.
    Anything unrecognised is reported as an internal error without
    leaking its message.
    """
    if isinstance(exc, NotFoundError):
        return api_error(E.NOT_FOUND, str(exc))
    if isinstance(exc, ConfigurationError):
        return api_error(E.CONFIGURATION, str(exc), details=exc.details)
    if isinstance(exc, ValidationError):
        return api_error(E.VALIDATION_RULE, str(exc), details=exc.details)
    if isinstance(exc, ConflictError):
        return api_error(E.CONFLICT_STATE, str(exc), details={"field": exc.field, "value": exc.value})
    return api_error(E.INTERNAL, "Internal server error")
