"""
Bulk Task Generator — compliance gaps → draft remediation tasks.

A request carries a task template (framework, default priority, due-date
offset, auto-assign flag) and an ordered list of gaps. Each valid gap
yields one draft Task; a gap missing a required field is rejected on its
own and reported, the rest of the batch still generates.

The generator builds transient ``Task`` objects and never touches the
session; persisting them (and resolving assignees) is the caller's job.
"""

from __future__ import annotations

import logging
import uuid
from dataclasses import dataclass, field
from datetime import datetime, timedelta, timezone
from typing import Callable

from app.core.exceptions import ValidationError
from app.models.orchestration import TASK_PRIORITIES, Task, is_choice

logger = logging.getLogger(__name__)

EFFORT_HOURS = {
    "minimal": 2,
    "low": 4,
    "medium": 8,
    "high": 16,
    "significant": 32,
}
DEFAULT_EFFORT = "medium"

# process / training have no dedicated task type yet
REMEDIATION_TASK_TYPES = {
    "technical": "remediation",
    "documentation": "evidence",
    "process": "remediation",
    "training": "remediation",
}
REMEDIATION_TYPES = tuple(REMEDIATION_TASK_TYPES)

BULK_SOURCES = ("assessment", "gap_analysis", "manual")
DEFAULT_DUE_OFFSET_DAYS = 30
REQUIRED_GAP_FIELDS = ("control_id", "gap_description", "remediation_type")


def _pick(data: dict, *keys, default=None):
    """First present key; payloads arrive camelCase from the UI, snake_case from scripts."""
    for key in keys:
        if key in data and data[key] is not None:
            return data[key]
    return default


def effort_to_hours(effort) -> int:
    """Hours for an effort bucket; unknown values count as ``medium``."""
    return EFFORT_HOURS.get(str(effort or "").strip().lower(), EFFORT_HOURS[DEFAULT_EFFORT])


def task_type_for(remediation_type) -> str:
    return REMEDIATION_TASK_TYPES.get(str(remediation_type or "").strip().lower(), "remediation")


@dataclass
class TaskTemplate:
    framework: str | None = None
    default_priority: str = "medium"
    due_date_offset_days: int = DEFAULT_DUE_OFFSET_DAYS
    auto_assign: bool = False
    business_unit: str | None = None

    @classmethod
    def from_dict(cls, data: dict | None) -> "TaskTemplate":
        data = data or {}
        priority = _pick(data, "defaultPriority", "default_priority", default="medium")
        if not is_choice(priority, TASK_PRIORITIES):
            raise ValidationError(
                f"Invalid default priority: {priority}",
                details={"default_priority": f"Must be one of {list(TASK_PRIORITIES)}"},
            )
        raw_offset = _pick(data, "dueDateOffsetDays", "due_date_offset_days", default=DEFAULT_DUE_OFFSET_DAYS)
        try:
            offset = int(raw_offset)
        except (TypeError, ValueError):
            raise ValidationError(
                "dueDateOffsetDays must be an integer",
                details={"due_date_offset_days": raw_offset},
            )
        if offset < 0:
            raise ValidationError(
                "dueDateOffsetDays cannot be negative",
                details={"due_date_offset_days": offset},
            )
        return cls(
            framework=_pick(data, "framework"),
            default_priority=priority,
            due_date_offset_days=offset,
            auto_assign=bool(_pick(data, "autoAssign", "auto_assign", default=False)),
            business_unit=_pick(data, "businessUnit", "business_unit"),
        )


@dataclass
class ComplianceGap:
    control_id: str | None
    gap_description: str | None
    remediation_type: str | None
    estimated_effort: str | None = None
    priority: str | None = None

    @classmethod
    def from_dict(cls, data: dict) -> "ComplianceGap":
        return cls(
            control_id=_pick(data, "controlId", "control_id"),
            gap_description=_pick(data, "gapDescription", "gap_description"),
            remediation_type=_pick(data, "remediationType", "remediation_type"),
            estimated_effort=_pick(data, "estimatedEffort", "estimated_effort"),
            priority=_pick(data, "priority"),
        )

    def errors(self) -> dict:
        errs = {}
        for name in REQUIRED_GAP_FIELDS:
            value = getattr(self, name)
            if value is None or not str(value).strip():
                errs[name] = f"{name} is required"
            elif isinstance(value, (list, dict)):
                errs[name] = f"{name} must be a string"
        return errs


@dataclass
class BulkTaskRequest:
    template: TaskTemplate
    gaps: list
    source: str = "manual"
    source_id: str | None = None

    @classmethod
    def from_dict(cls, data: dict) -> "BulkTaskRequest":
        if not isinstance(data, dict):
            raise ValidationError("Bulk request body must be an object")
        raw_gaps = data.get("gaps")
        if not isinstance(raw_gaps, list):
            raise ValidationError("gaps must be a list", details={"gaps": "required list"})
        source = _pick(data, "source", default="manual")
        if source not in BULK_SOURCES:
            raise ValidationError(
                f"Invalid source: {source}",
                details={"source": f"Must be one of {list(BULK_SOURCES)}"},
            )
        gaps = [ComplianceGap.from_dict(g) if isinstance(g, dict) else g for g in raw_gaps]
        return cls(
            template=TaskTemplate.from_dict(_pick(data, "taskTemplate", "task_template")),
            gaps=gaps,
            source=source,
            source_id=_pick(data, "sourceId", "source_id"),
        )


@dataclass
class BulkSummary:
    total_estimated_hours: float = 0
    auto_assigned: int = 0
    requires_manual_assignment: int = 0
    high_priority: int = 0
    medium_priority: int = 0
    low_priority: int = 0

    def add(self, task) -> None:
        self.total_estimated_hours += task.estimated_hours or 0
        if task.assigned_to is not None:
            self.auto_assigned += 1
        else:
            self.requires_manual_assignment += 1
        if task.priority in ("critical", "high"):
            self.high_priority += 1
        elif task.priority == "medium":
            self.medium_priority += 1
        else:
            self.low_priority += 1

    def to_dict(self):
        return {
            "total_estimated_hours": self.total_estimated_hours,
            "auto_assigned": self.auto_assigned,
            "requires_manual_assignment": self.requires_manual_assignment,
            "high_priority": self.high_priority,
            "medium_priority": self.medium_priority,
            "low_priority": self.low_priority,
        }


@dataclass
class BulkGenerationResult:
    bulk_operation_id: str
    tasks: list = field(default_factory=list)
    summary: BulkSummary = field(default_factory=BulkSummary)
    rejected: list = field(default_factory=list)

    @property
    def tasks_created(self) -> int:
        return len(self.tasks)

    def to_dict(self):
        return {
            "bulk_operation_id": self.bulk_operation_id,
            "tasks_created": self.tasks_created,
            "tasks": [t.to_dict(include_dependencies=False) for t in self.tasks],
            "summary": self.summary.to_dict(),
            "rejected": list(self.rejected),
        }


def new_bulk_operation_id() -> str:
    return f"bulk-{uuid.uuid4().hex[:12]}"


def generate(
    request: BulkTaskRequest,
    organization_id=None,
    now: datetime | None = None,
    assignee_resolver: Callable | None = None,
    bulk_operation_id: str | None = None,
) -> BulkGenerationResult:
    """Expand a bulk request into draft tasks plus summary counts.

    Args:
        request: Parsed bulk request.
        organization_id: Stamped on every generated task.
        now: Reference instant for due dates (defaults to utcnow).
        assignee_resolver: Called with each generated task when the
            template asks for auto-assignment; returns a user id or None.
        bulk_operation_id: Correlation id; generated when omitted.

    Returns:
        BulkGenerationResult. Rejected gaps are listed as
        ``{"index", "control_id", "errors"}`` and never abort the batch.
    """
    now = now or datetime.now(timezone.utc)
    template = request.template
    op_id = bulk_operation_id or new_bulk_operation_id()
    due = now + timedelta(days=template.due_date_offset_days)
    result = BulkGenerationResult(bulk_operation_id=op_id)

    for index, gap in enumerate(request.gaps):
        if not isinstance(gap, ComplianceGap):
            result.rejected.append({"index": index, "control_id": None, "errors": {"gap": "must be an object"}})
            continue
        errs = gap.errors()
        if errs:
            result.rejected.append({"index": index, "control_id": gap.control_id, "errors": errs})
            continue

        priority = gap.priority or template.default_priority
        if not is_choice(priority, TASK_PRIORITIES):
            logger.warning(
                "Gap %s has unknown priority %r, using template default %s",
                gap.control_id, priority, template.default_priority,
            )
            priority = template.default_priority

        remediation_type = str(gap.remediation_type).strip().lower()
        task = Task(
            organization_id=organization_id,
            title=f"Remediate: {gap.control_id}",
            description=gap.gap_description,
            task_type=task_type_for(remediation_type),
            framework=template.framework,
            control_id=gap.control_id,
            priority=priority,
            estimated_hours=effort_to_hours(gap.estimated_effort),
            due_date=due,
            status="draft",
            progress=0,
            tags=[remediation_type],
            bulk_operation_id=op_id,
            created_at=now,
        )

        if template.auto_assign and assignee_resolver is not None:
            user_id = assignee_resolver(task)
            if user_id is not None:
                task.assigned_to = user_id
                task.assigned_by = "auto-assign"

        result.tasks.append(task)
        result.summary.add(task)

    if result.rejected:
        logger.warning(
            "Bulk operation %s rejected %d of %d gaps",
            op_id, len(result.rejected), len(request.gaps),
            extra={"bulk_operation_id": op_id},
        )
    return result
