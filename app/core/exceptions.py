"""
Orchestration exception hierarchy.

Services raise these types; the HTTP blueprint registers one handler per
type and maps them to status codes. Engine modules never raise for
expected steady states (no candidates, no milestones, zero capacity);
those degrade to identity values and are logged instead.

Usage:
    from app.core.exceptions import NotFoundError, ValidationError

    raise NotFoundError(resource="Timeline", resource_id=42)
    raise ValidationError("progress must be within 0..100", details={"progress": "..."})
"""


class NotFoundError(Exception):
    """Raised when a referenced task, timeline, milestone or candidate does not exist.

    Args:
        resource: Human-readable entity name (e.g. "Task", "Timeline").
        resource_id: The key that was looked up. Included in logs and message.
        organization_id: Optional scope that was enforced. For debug logging only.
    """

    def __init__(
        self,
        resource: str,
        resource_id: int | str | None = None,
        organization_id: int | None = None,
    ) -> None:
        self.resource = resource
        self.resource_id = resource_id
        self.organization_id = organization_id
        msg = f"{resource}"
        if resource_id is not None:
            msg += f" id={resource_id}"
        msg += " not found"
        if organization_id is not None:
            msg += f" (organization={organization_id})"
        super().__init__(msg)


class ValidationError(Exception):
    """Raised when input violates a business rule.

    Aborts only the offending unit of work: bulk generation reports
    per-gap problems in its ``rejected`` list instead of raising this.

    Maps to HTTP 422 in the blueprint error handler.

    Args:
        message: Human-readable explanation of what failed.
        details: Optional field-level breakdown for structured API responses.
    """

    def __init__(self, message: str, details: dict | None = None) -> None:
        self.details = details or {}
        super().__init__(message)


class ConfigurationError(ValidationError):
    """Raised when an entity is configured so that a projection cannot be computed.

    Example: a timeline whose target completion is not after its start
    cannot be laid out on a Gantt axis.
    """


class ConflictError(Exception):
    """Raised when an operation would duplicate an edge or form a dependency cycle.

    Maps to HTTP 409.

    Args:
        resource: Entity name.
        field: The field whose value conflicts.
        value: The conflicting value.
    """

    def __init__(self, resource: str, field: str, value: str | None = None, message: str | None = None) -> None:
        self.resource = resource
        self.field = field
        self.value = value
        msg = message or f"{resource} with {field}={value!r} already exists"
        super().__init__(msg)
