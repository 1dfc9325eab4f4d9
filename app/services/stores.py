"""
Repository interfaces for the orchestration engine and their SQLAlchemy implementations.

The engine modules only see the protocols below; ``OrchestrationService``
receives concrete stores at construction, so tests can pass doubles.

SQL stores follow the platform transaction policy: they ``flush()`` so new
rows get ids, but never ``commit()``. The blueprint owns the commit via
``db_commit_or_error()``. Database errors propagate unchanged.

Lookups are scoped the same way as ``get_scoped``: when an
``organization_id`` is supplied it is part of the WHERE clause, and an
out-of-scope row is indistinguishable from a missing one (NotFoundError).
"""

from __future__ import annotations

import logging
from dataclasses import dataclass
from typing import Protocol

from sqlalchemy import func, select

from app.core.exceptions import NotFoundError
from app.models import db
from app.models.directory import DirectoryUser
from app.models.orchestration import (
    ACTIVE_TASK_STATUSES,
    Milestone,
    Task,
    TaskDependency,
    Timeline,
    validate_no_cycle,
)
from app.services.assignment_scorer import CandidateProfile, PerformanceSignal

logger = logging.getLogger(__name__)

DEFAULT_MAX_CANDIDATES = 20


@dataclass
class TaskFilter:
    organization_id: int | None = None
    framework: str | None = None
    status: str | None = None
    priority: str | None = None
    assigned_to: int | None = None
    bulk_operation_id: str | None = None
    ids: list | None = None


# ═════════════════════════════════════════════════════════════════════════════
# Protocols
# ═════════════════════════════════════════════════════════════════════════════


class TaskStore(Protocol):
    def find(self, flt: TaskFilter) -> list: ...
    def get(self, task_id: int, organization_id: int | None = None): ...
    def save(self, task): ...
    def upsert_dependency(self, dependency): ...
    def dependents_of(self, task_id: int) -> list: ...
    def would_create_cycle(self, task_id: int, target_id: int) -> bool: ...


class TimelineStore(Protocol):
    def get(self, timeline_id: int, organization_id: int | None = None): ...
    def save(self, timeline): ...
    def list_all(self, organization_id: int | None = None, status: str | None = None) -> list: ...
    def list_by_framework(self, framework: str, organization_id: int | None = None) -> list: ...


class MilestoneStore(Protocol):
    def list_by_timeline(self, timeline_id: int) -> list: ...
    def get(self, milestone_id: int): ...
    def save(self, milestone): ...


class DirectoryProvider(Protocol):
    def list_candidates(self, organization_id: int | None) -> list: ...
    def get_user(self, user_id: int, organization_id: int | None = None): ...


# ═════════════════════════════════════════════════════════════════════════════
# SQLAlchemy implementations
# ═════════════════════════════════════════════════════════════════════════════


def _get_one(model, pk, organization_id=None):
    stmt = select(model).where(model.id == pk)
    if organization_id is not None and hasattr(model, "organization_id"):
        stmt = stmt.where(model.organization_id == organization_id)
    row = db.session.execute(stmt).scalar_one_or_none()
    if row is None:
        raise NotFoundError(resource=model.__name__, resource_id=pk, organization_id=organization_id)
    return row


class SqlTaskStore:
    """Task persistence on the shared Flask-SQLAlchemy session."""

    def find(self, flt: TaskFilter | None = None) -> list:
        flt = flt or TaskFilter()
        stmt = select(Task)
        if flt.organization_id is not None:
            stmt = stmt.where(Task.organization_id == flt.organization_id)
        if flt.framework:
            stmt = stmt.where(func.lower(Task.framework) == flt.framework.strip().lower())
        if flt.status:
            stmt = stmt.where(Task.status == flt.status)
        if flt.priority:
            stmt = stmt.where(Task.priority == flt.priority)
        if flt.assigned_to is not None:
            stmt = stmt.where(Task.assigned_to == flt.assigned_to)
        if flt.bulk_operation_id:
            stmt = stmt.where(Task.bulk_operation_id == flt.bulk_operation_id)
        if flt.ids is not None:
            if not flt.ids:
                return []
            stmt = stmt.where(Task.id.in_(flt.ids))
        return list(db.session.execute(stmt.order_by(Task.id)).scalars())

    def get(self, task_id, organization_id=None):
        return _get_one(Task, task_id, organization_id)

    def save(self, task):
        db.session.add(task)
        db.session.flush()
        return task

    def upsert_dependency(self, dependency):
        """Insert the edge, or update type/status of the existing one."""
        existing = db.session.execute(
            select(TaskDependency).where(
                TaskDependency.dependent_task_id == dependency.dependent_task_id,
                TaskDependency.task_id == dependency.task_id,
            )
        ).scalar_one_or_none()
        if existing is not None:
            existing.dependency_type = dependency.dependency_type
            existing.status = dependency.status
            db.session.flush()
            return existing
        # Go through the owner's collection so already-loaded tasks see the edge
        owner = db.session.get(Task, dependency.dependent_task_id)
        if owner is not None:
            owner.dependencies.append(dependency)
        else:
            db.session.add(dependency)
        db.session.flush()
        return dependency

    def dependents_of(self, task_id) -> list:
        """Edges other tasks hold on ``task_id``."""
        return list(
            db.session.execute(
                select(TaskDependency).where(TaskDependency.task_id == task_id)
            ).scalars()
        )

    def would_create_cycle(self, task_id, target_id) -> bool:
        return not validate_no_cycle(db.session, task_id, target_id)


class SqlTimelineStore:
    def get(self, timeline_id, organization_id=None):
        return _get_one(Timeline, timeline_id, organization_id)

    def save(self, timeline):
        db.session.add(timeline)
        db.session.flush()
        return timeline

    def list_all(self, organization_id=None, status=None) -> list:
        stmt = select(Timeline)
        if status:
            stmt = stmt.where(Timeline.status == status)
        if organization_id is not None:
            stmt = stmt.where(Timeline.organization_id == organization_id)
        return list(db.session.execute(stmt.order_by(Timeline.id)).scalars())

    def list_by_framework(self, framework, organization_id=None) -> list:
        if not framework:
            return []
        stmt = select(Timeline).where(func.lower(Timeline.framework) == framework.strip().lower())
        if organization_id is not None:
            stmt = stmt.where(Timeline.organization_id == organization_id)
        return list(db.session.execute(stmt.order_by(Timeline.id)).scalars())


class SqlMilestoneStore:
    def list_by_timeline(self, timeline_id) -> list:
        stmt = (
            select(Milestone)
            .where(Milestone.timeline_id == timeline_id)
            .order_by(Milestone.target_date, Milestone.id)
        )
        return list(db.session.execute(stmt).scalars())

    def get(self, milestone_id):
        return _get_one(Milestone, milestone_id)

    def save(self, milestone):
        db.session.add(milestone)
        db.session.flush()
        return milestone


class SqlDirectoryProvider:
    """Candidate profiles from ``directory_users`` plus live task workload."""

    def __init__(self, max_candidates: int = DEFAULT_MAX_CANDIDATES):
        self.max_candidates = max_candidates

    def get_user(self, user_id, organization_id=None):
        return _get_one(DirectoryUser, user_id, organization_id)

    def _workload(self, user_ids) -> dict:
        if not user_ids:
            return {}
        rows = db.session.execute(
            select(
                Task.assigned_to,
                func.count(Task.id),
                func.coalesce(func.sum(Task.estimated_hours), 0.0),
            )
            .where(
                Task.assigned_to.in_(user_ids),
                Task.status.in_(ACTIVE_TASK_STATUSES),
            )
            .group_by(Task.assigned_to)
        ).all()
        return {uid: (int(count), float(hours or 0.0)) for uid, count, hours in rows}

    def list_candidates(self, organization_id) -> list:
        stmt = select(DirectoryUser).where(DirectoryUser.is_active.is_(True))
        if organization_id is not None:
            stmt = stmt.where(DirectoryUser.organization_id == organization_id)
        users = list(
            db.session.execute(stmt.order_by(DirectoryUser.id).limit(self.max_candidates)).scalars()
        )
        workload = self._workload([u.id for u in users])

        profiles = []
        for u in users:
            active, hours = workload.get(u.id, (0, 0.0))
            defaults = PerformanceSignal()
            profiles.append(CandidateProfile(
                user_id=u.id,
                email=u.email,
                display_name=u.display_name,
                active_tasks=active,
                estimated_hours=hours,
                weekly_capacity_hours=u.weekly_capacity_hours,
                skill_tags=list(u.skill_tags or []),
                performance=PerformanceSignal(
                    completion_rate=u.completion_rate if u.completion_rate is not None else defaults.completion_rate,
                    quality_score=u.quality_score if u.quality_score is not None else defaults.quality_score,
                    on_time_rate=u.on_time_rate if u.on_time_rate is not None else defaults.on_time_rate,
                ),
                availability=u.availability if u.availability is not None else 90.0,
            ))
        logger.debug("Loaded %d candidates for organization=%s", len(profiles), organization_id)
        return profiles
