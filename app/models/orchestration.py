"""
Compliance Orchestration Engine
Task & timeline domain models.

Models:
    - Task:            unit of remediation / evidence / review work
    - TaskDependency:  directed edge owned by the dependent task
    - TaskActivity:    append-only activity log (assignment, status, progress)
    - Timeline:        bounded compliance program with derived progress/health
    - Milestone:       dated checkpoint within a timeline

Architecture:
    Timeline ──1:N──▶ Milestone
    Timeline ◀──framework──▶ Task   (tasks belong to a timeline via framework)
    Task ──1:N──▶ TaskDependency ──N:1──▶ Task  (dependent → target)
    Task ──1:N──▶ TaskActivity

Lifecycle states:
    Task:       draft → assigned → in_progress → review → completed
                (any open state ↔ blocked)
    Timeline:   draft → active → paused → completed | cancelled
    Milestone:  pending → in_progress → completed
                (open states → delayed once target_date passes; cancelled terminal)

Derived fields (current_progress, health_score, critical_path, analytics)
are written only by app.services.timeline_engine.
"""

from datetime import date, datetime, timedelta, timezone

from app.models import db
from app.models.directory import DirectoryUser  # noqa: F401  (Task.assignee target)


# ── Constants ────────────────────────────────────────────────────────────────

TASK_TYPES = {"evidence", "remediation", "review"}

TASK_PRIORITIES = {"critical", "high", "medium", "low"}

TASK_STATUSES = {
    "draft", "assigned", "in_progress",
    "review", "completed", "blocked",
}

# Statuses that count against a person's capacity
ACTIVE_TASK_STATUSES = ("assigned", "in_progress")

DEPENDENCY_TYPES = {"blocks", "triggers", "informs"}

DEPENDENCY_STATUSES = {"active", "resolved"}

TASK_ACTIVITY_TYPES = {"created", "assignment", "status_change", "progress", "dependency"}

TIMELINE_STATUSES = {"draft", "active", "paused", "completed", "cancelled"}

MILESTONE_TYPES = {"framework", "business", "risk"}

MILESTONE_STATUSES = {
    "pending", "in_progress", "completed", "delayed", "cancelled",
}

DEFAULT_FRAMEWORK = "NIST CSF"
DEFAULT_TIMELINE_DAYS = 90


def is_choice(value, choices) -> bool:
    """Membership test that treats non-string payload values (lists, dicts) as unknown."""
    return isinstance(value, str) and value in choices


# ── Lifecycle Transition Guards ──────────────────────────────────────────────

TASK_TRANSITIONS = {
    "draft":       ["assigned", "in_progress", "blocked"],
    "assigned":    ["in_progress", "blocked", "draft"],
    "in_progress": ["review", "completed", "blocked"],
    "review":      ["completed", "in_progress"],
    "blocked":     ["assigned", "in_progress"],
    "completed":   [],
}

MILESTONE_TRANSITIONS = {
    "pending":     ["in_progress", "cancelled"],
    "in_progress": ["completed", "cancelled"],
    "delayed":     ["in_progress", "completed", "cancelled"],
    "completed":   [],
    "cancelled":   [],
}


def validate_task_transition(old_status, new_status):
    """Return True if Task status transition is valid."""
    return new_status in TASK_TRANSITIONS.get(old_status, [])


def validate_milestone_transition(old_status, new_status):
    """Return True if Milestone status transition is valid."""
    return new_status in MILESTONE_TRANSITIONS.get(old_status, [])


# ── Cycle Detection ──────────────────────────────────────────────────────────


def validate_no_cycle(session, task_id, new_target_id):
    """
    Check that adding ``task_id`` blocked-by ``new_target_id`` does not create a cycle.

    Uses iterative DFS from new_target_id, walking through the active
    ``blocks`` edges it already waits on. Resolved edges no longer gate
    anything and cannot reactivate (their target is completed, a terminal
    status), so they are not followed. Returns True if safe, False if a
    cycle would be formed.
    """
    if task_id == new_target_id:
        return False

    visited = set()
    stack = [new_target_id]

    while stack:
        current = stack.pop()
        if current == task_id:
            return False
        if current in visited:
            continue
        visited.add(current)

        deps = (
            session.query(TaskDependency.task_id)
            .filter(
                TaskDependency.dependent_task_id == current,
                TaskDependency.dependency_type == "blocks",
                TaskDependency.status == "active",
            )
            .all()
        )
        for (target_id,) in deps:
            stack.append(target_id)

    return True


def _iso(value):
    return value.isoformat() if value else None


# ═════════════════════════════════════════════════════════════════════════════
# 1. Task
# ═════════════════════════════════════════════════════════════════════════════


class Task(db.Model):
    """
    A unit of remediation, evidence collection or review work.

    Invariant: status == completed ⇒ progress == 100 (enforced by the
    orchestration service on every transition / progress update).
    """

    __tablename__ = "orchestration_tasks"

    id = db.Column(db.Integer, primary_key=True)
    organization_id = db.Column(db.Integer, nullable=True, index=True)

    title = db.Column(db.String(300), nullable=False)
    description = db.Column(db.Text, default="")
    task_type = db.Column(
        db.String(20), nullable=False, default="remediation",
        comment="evidence | remediation | review",
    )
    framework = db.Column(db.String(100), nullable=True, index=True)
    control_id = db.Column(db.String(50), nullable=True)
    priority = db.Column(
        db.String(20), nullable=False, default="medium",
        comment="critical | high | medium | low",
    )
    estimated_hours = db.Column(db.Float, nullable=True)

    # Assignment
    assigned_to = db.Column(
        db.Integer, db.ForeignKey("directory_users.id", ondelete="SET NULL"),
        nullable=True, index=True, comment="FK → directory_users",
    )
    assigned_by = db.Column(db.String(100), nullable=True)

    status = db.Column(
        db.String(20), nullable=False, default="draft",
        comment="draft | assigned | in_progress | review | completed | blocked",
    )
    due_date = db.Column(db.DateTime(timezone=True), nullable=True)
    completed_at = db.Column(db.DateTime(timezone=True), nullable=True)
    progress = db.Column(db.Integer, nullable=False, default=0)
    tags = db.Column(db.JSON, default=list)

    # Upstream scheduler flag; always part of the critical path when set
    is_critical = db.Column(db.Boolean, nullable=False, default=False)
    bulk_operation_id = db.Column(
        db.String(40), nullable=True, index=True,
        comment="Set when the task was produced by a bulk generation run",
    )

    created_at = db.Column(
        db.DateTime(timezone=True),
        default=lambda: datetime.now(timezone.utc),
    )
    updated_at = db.Column(
        db.DateTime(timezone=True),
        default=lambda: datetime.now(timezone.utc),
        onupdate=lambda: datetime.now(timezone.utc),
    )

    # ── Constraints ──────────────────────────────────────────────────────
    __table_args__ = (
        db.CheckConstraint(
            "status IN ('draft','assigned','in_progress','review','completed','blocked')",
            name="ck_orch_task_status",
        ),
        db.CheckConstraint(
            "priority IN ('critical','high','medium','low')",
            name="ck_orch_task_priority",
        ),
        db.CheckConstraint(
            "task_type IN ('evidence','remediation','review')",
            name="ck_orch_task_type",
        ),
        db.CheckConstraint(
            "progress >= 0 AND progress <= 100",
            name="ck_orch_task_progress",
        ),
    )

    # ── Relationships ────────────────────────────────────────────────────
    dependencies = db.relationship(
        "TaskDependency",
        foreign_keys="TaskDependency.dependent_task_id",
        back_populates="dependent_task",
        cascade="all, delete-orphan",
        order_by="TaskDependency.id",
    )
    activities = db.relationship(
        "TaskActivity", backref="task", lazy="dynamic",
        cascade="all, delete-orphan", order_by="TaskActivity.id",
    )
    assignee = db.relationship("DirectoryUser", foreign_keys=[assigned_to])

    def __init__(self, **kwargs):
        # Column defaults only apply at flush; engine code reads transient tasks too.
        kwargs.setdefault("status", "draft")
        kwargs.setdefault("progress", 0)
        kwargs.setdefault("task_type", "remediation")
        kwargs.setdefault("priority", "medium")
        kwargs.setdefault("tags", [])
        kwargs.setdefault("is_critical", False)
        super().__init__(**kwargs)

    def blocking_dependencies(self):
        """Return active ``blocks`` edges held by this task."""
        return [
            d for d in self.dependencies
            if d.dependency_type == "blocks" and (d.status or "active") == "active"
        ]

    def to_dict(self, include_dependencies=True):
        result = {
            "id": self.id,
            "organization_id": self.organization_id,
            "title": self.title,
            "description": self.description,
            "task_type": self.task_type,
            "framework": self.framework,
            "control_id": self.control_id,
            "priority": self.priority,
            "estimated_hours": self.estimated_hours,
            "assigned_to": self.assigned_to,
            "assigned_by": self.assigned_by,
            "status": self.status,
            "due_date": _iso(self.due_date),
            "completed_at": _iso(self.completed_at),
            "progress": self.progress,
            "tags": list(self.tags or []),
            "is_critical": self.is_critical,
            "bulk_operation_id": self.bulk_operation_id,
            "created_at": _iso(self.created_at),
            "updated_at": _iso(self.updated_at),
        }
        if include_dependencies:
            result["dependencies"] = [d.to_dict() for d in self.dependencies]
        return result

    def __repr__(self):
        return f"<Task {self.id}: {(self.title or '')[:40]} [{self.status}]>"


# ═════════════════════════════════════════════════════════════════════════════
# 2. TaskDependency
# ═════════════════════════════════════════════════════════════════════════════


class TaskDependency(db.Model):
    """
    Directed edge ``dependent_task → task`` owned by the dependent task.

    type:    blocks | triggers | informs
    status:  active | resolved; a resolved edge no longer gates the dependent.
    """

    __tablename__ = "orchestration_task_dependencies"

    id = db.Column(db.Integer, primary_key=True)
    dependent_task_id = db.Column(
        db.Integer, db.ForeignKey("orchestration_tasks.id", ondelete="CASCADE"),
        nullable=False, index=True,
    )
    task_id = db.Column(
        db.Integer, db.ForeignKey("orchestration_tasks.id", ondelete="CASCADE"),
        nullable=False, index=True, comment="The task being depended on",
    )
    dependency_type = db.Column(
        db.String(20), nullable=False, default="blocks",
        comment="blocks | triggers | informs",
    )
    status = db.Column(
        db.String(20), nullable=False, default="active",
        comment="active | resolved",
    )

    created_at = db.Column(
        db.DateTime(timezone=True),
        default=lambda: datetime.now(timezone.utc),
    )

    # ── Constraints ──────────────────────────────────────────────────────
    __table_args__ = (
        db.UniqueConstraint(
            "dependent_task_id", "task_id",
            name="uq_orch_task_dep",
        ),
        db.CheckConstraint(
            "dependent_task_id != task_id",
            name="ck_orch_dep_no_self_loop",
        ),
        db.CheckConstraint(
            "dependency_type IN ('blocks','triggers','informs')",
            name="ck_orch_dep_type",
        ),
    )

    dependent_task = db.relationship(
        "Task", foreign_keys=[dependent_task_id], back_populates="dependencies",
    )

    def __init__(self, **kwargs):
        kwargs.setdefault("dependency_type", "blocks")
        kwargs.setdefault("status", "active")
        super().__init__(**kwargs)

    def to_dict(self):
        return {
            "id": self.id,
            "dependent_task_id": self.dependent_task_id,
            "task_id": self.task_id,
            "type": self.dependency_type,
            "status": self.status,
        }

    def __repr__(self):
        return f"<TaskDependency {self.dependent_task_id} → {self.task_id} ({self.dependency_type})>"


# ═════════════════════════════════════════════════════════════════════════════
# 3. TaskActivity
# ═════════════════════════════════════════════════════════════════════════════


class TaskActivity(db.Model):
    """Append-only record of assignment, status and progress changes on a task."""

    __tablename__ = "orchestration_task_activities"

    id = db.Column(db.Integer, primary_key=True)
    task_id = db.Column(
        db.Integer, db.ForeignKey("orchestration_tasks.id", ondelete="CASCADE"),
        nullable=False, index=True,
    )
    actor = db.Column(db.String(100), nullable=True)
    update_type = db.Column(
        db.String(30), nullable=False,
        comment="created | assignment | status_change | progress | dependency",
    )
    old_value = db.Column(db.String(200), nullable=True)
    new_value = db.Column(db.String(200), nullable=True)
    content = db.Column(db.Text, nullable=True)
    created_at = db.Column(
        db.DateTime(timezone=True),
        default=lambda: datetime.now(timezone.utc),
    )

    def to_dict(self):
        return {
            "id": self.id,
            "task_id": self.task_id,
            "actor": self.actor,
            "update_type": self.update_type,
            "old_value": self.old_value,
            "new_value": self.new_value,
            "content": self.content,
            "created_at": _iso(self.created_at),
        }

    def __repr__(self):
        return f"<TaskActivity {self.id}: task={self.task_id} {self.update_type}>"


# ═════════════════════════════════════════════════════════════════════════════
# 4. Timeline
# ═════════════════════════════════════════════════════════════════════════════


class Timeline(db.Model):
    """
    A bounded compliance program of work.

    Invariant: start_date < target_completion (checked in the service and
    by a table constraint).
    """

    __tablename__ = "orchestration_timelines"

    id = db.Column(db.Integer, primary_key=True)
    organization_id = db.Column(db.Integer, nullable=True, index=True)

    name = db.Column(db.String(200), nullable=False)
    description = db.Column(db.Text, default="")
    framework = db.Column(db.String(100), nullable=False, default=DEFAULT_FRAMEWORK)
    start_date = db.Column(db.Date, nullable=False)
    target_completion = db.Column(db.Date, nullable=False)
    status = db.Column(
        db.String(20), nullable=False, default="draft",
        comment="draft | active | paused | completed | cancelled",
    )

    # Derived, written by timeline_engine only
    current_progress = db.Column(db.Float, nullable=False, default=0.0)
    health_score = db.Column(db.Float, nullable=False, default=100.0)
    critical_path = db.Column(db.JSON, default=list, comment="Task ids")
    analytics = db.Column(db.JSON, default=dict)

    resource_allocation = db.Column(
        db.JSON, default=dict,
        comment="fte_security_engineers | fte_compliance_officers | budget_allocated | budget_spent",
    )

    created_at = db.Column(
        db.DateTime(timezone=True),
        default=lambda: datetime.now(timezone.utc),
    )
    updated_at = db.Column(
        db.DateTime(timezone=True),
        default=lambda: datetime.now(timezone.utc),
        onupdate=lambda: datetime.now(timezone.utc),
    )

    # ── Constraints ──────────────────────────────────────────────────────
    __table_args__ = (
        db.CheckConstraint(
            "status IN ('draft','active','paused','completed','cancelled')",
            name="ck_orch_timeline_status",
        ),
        db.CheckConstraint(
            "start_date < target_completion",
            name="ck_orch_timeline_range",
        ),
    )

    # ── Relationships ────────────────────────────────────────────────────
    milestones = db.relationship(
        "Milestone", backref="timeline",
        cascade="all, delete-orphan",
        order_by="Milestone.target_date",
    )

    def __init__(self, **kwargs):
        kwargs.setdefault("framework", DEFAULT_FRAMEWORK)
        kwargs.setdefault("status", "draft")
        kwargs.setdefault("current_progress", 0.0)
        kwargs.setdefault("health_score", 100.0)
        kwargs.setdefault("critical_path", [])
        kwargs.setdefault("analytics", {})
        kwargs.setdefault("resource_allocation", {})
        if "start_date" not in kwargs:
            kwargs["start_date"] = date.today()
        if "target_completion" not in kwargs:
            kwargs["target_completion"] = kwargs["start_date"] + timedelta(days=DEFAULT_TIMELINE_DAYS)
        super().__init__(**kwargs)

    def to_dict(self, include_milestones=True):
        result = {
            "id": self.id,
            "organization_id": self.organization_id,
            "name": self.name,
            "description": self.description,
            "framework": self.framework,
            "start_date": _iso(self.start_date),
            "target_completion": _iso(self.target_completion),
            "status": self.status,
            "current_progress": self.current_progress,
            "health_score": self.health_score,
            "critical_path": list(self.critical_path or []),
            "resource_allocation": dict(self.resource_allocation or {}),
            "analytics": dict(self.analytics or {}),
            "created_at": _iso(self.created_at),
            "updated_at": _iso(self.updated_at),
        }
        if include_milestones:
            result["milestones"] = [m.to_dict() for m in self.milestones]
        return result

    def __repr__(self):
        return f"<Timeline {self.id}: {self.name} [{self.status}]>"


# ═════════════════════════════════════════════════════════════════════════════
# 5. Milestone
# ═════════════════════════════════════════════════════════════════════════════


class Milestone(db.Model):
    """
    Dated checkpoint within a timeline.

    Invariant: status == delayed ⇔ status not in (completed, cancelled)
    and target_date < today. Kept true by timeline_engine.refresh_milestone_statuses.
    """

    __tablename__ = "orchestration_milestones"

    id = db.Column(db.Integer, primary_key=True)
    timeline_id = db.Column(
        db.Integer, db.ForeignKey("orchestration_timelines.id", ondelete="CASCADE"),
        nullable=False, index=True,
    )

    name = db.Column(db.String(200), nullable=False)
    milestone_type = db.Column(
        db.String(20), nullable=False, default="framework",
        comment="framework | business | risk",
    )
    target_date = db.Column(db.Date, nullable=False)
    status = db.Column(
        db.String(20), nullable=False, default="pending",
        comment="pending | in_progress | completed | delayed | cancelled",
    )
    progress = db.Column(db.Integer, nullable=False, default=0)

    depends_on_task_ids = db.Column(db.JSON, default=list)
    depends_on_milestone_ids = db.Column(db.JSON, default=list)

    success_criteria = db.Column(db.Text, nullable=True)
    attendees = db.Column(db.JSON, nullable=True)

    completed_at = db.Column(db.DateTime(timezone=True), nullable=True)
    created_at = db.Column(
        db.DateTime(timezone=True),
        default=lambda: datetime.now(timezone.utc),
    )
    updated_at = db.Column(
        db.DateTime(timezone=True),
        default=lambda: datetime.now(timezone.utc),
        onupdate=lambda: datetime.now(timezone.utc),
    )

    __table_args__ = (
        db.CheckConstraint(
            "status IN ('pending','in_progress','completed','delayed','cancelled')",
            name="ck_orch_milestone_status",
        ),
        db.CheckConstraint(
            "milestone_type IN ('framework','business','risk')",
            name="ck_orch_milestone_type",
        ),
    )

    def __init__(self, **kwargs):
        kwargs.setdefault("milestone_type", "framework")
        kwargs.setdefault("status", "pending")
        kwargs.setdefault("progress", 0)
        kwargs.setdefault("depends_on_task_ids", [])
        kwargs.setdefault("depends_on_milestone_ids", [])
        super().__init__(**kwargs)

    def to_dict(self):
        return {
            "id": self.id,
            "timeline_id": self.timeline_id,
            "name": self.name,
            "type": self.milestone_type,
            "target_date": _iso(self.target_date),
            "status": self.status,
            "progress": self.progress,
            "dependencies": {
                "tasks": list(self.depends_on_task_ids or []),
                "milestones": list(self.depends_on_milestone_ids or []),
            },
            "success_criteria": self.success_criteria,
            "attendees": self.attendees,
            "completed_at": _iso(self.completed_at),
        }

    def __repr__(self):
        return f"<Milestone {self.id}: {self.name} [{self.status}]>"
