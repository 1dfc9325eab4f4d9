"""
Orchestration Service — task lifecycle, assignment, bulk generation and timelines.

One instance is built per request (``OrchestrationService.from_config``)
with its stores injected; tests construct it directly with the SQL stores
or doubles. Business rules live here and in the engine modules; the
blueprint only parses request shape and commits.

Every task mutation re-runs ``recompute_timeline`` for the organisation's
timelines on the task's framework and for any timeline whose milestones
reference the task or whose critical path holds it. Derived fields
(progress, health, critical path, analytics) therefore never go stale.

Transaction policy: stores flush, the caller commits.
"""

from __future__ import annotations

import logging
from datetime import datetime, timedelta, timezone
from typing import Any, Callable, Mapping

from app.core.exceptions import ConflictError, NotFoundError, ValidationError
from app.models.orchestration import (
    DEFAULT_FRAMEWORK,
    DEFAULT_TIMELINE_DAYS,
    DEPENDENCY_TYPES,
    MILESTONE_TYPES,
    TASK_PRIORITIES,
    TASK_TYPES,
    TIMELINE_STATUSES,
    Milestone,
    TaskActivity,
    Task,
    TaskDependency,
    Timeline,
    is_choice,
    validate_task_transition,
)
from app.services import (
    assignment_scorer,
    bulk_task_generator,
    gantt_projector,
    orchestration_metrics,
    timeline_engine,
)
from app.services.stores import (
    DEFAULT_MAX_CANDIDATES,
    SqlDirectoryProvider,
    SqlMilestoneStore,
    SqlTaskStore,
    SqlTimelineStore,
    TaskFilter,
)
from app.utils.helpers import parse_date, parse_datetime

logger = logging.getLogger(__name__)

RESOURCE_ALLOCATION_KEYS = (
    "fte_security_engineers",
    "fte_compliance_officers",
    "budget_allocated",
    "budget_spent",
)


def _require_int(value, field: str, low: int = 0, high: int = 100) -> int:
    try:
        number = int(value)
    except (TypeError, ValueError):
        raise ValidationError(f"{field} must be an integer", details={field: value})
    if number < low or number > high:
        raise ValidationError(
            f"{field} must be within {low}..{high}",
            details={field: number},
        )
    return number


def _parse_when(value, field: str):
    try:
        return parse_datetime(value)
    except (TypeError, ValueError):
        raise ValidationError(f"Invalid datetime for {field}", details={field: value})


def _parse_day(value, field: str):
    if value in (None, ""):
        return None
    parsed = parse_date(value)
    if parsed is None:
        raise ValidationError(f"Invalid date for {field}", details={field: value})
    return parsed


def _id_list(values, field: str) -> list:
    if values is None:
        return []
    if not isinstance(values, (list, tuple)):
        raise ValidationError(f"{field} must be a list", details={field: values})
    try:
        return [int(v) for v in values]
    except (TypeError, ValueError):
        raise ValidationError(f"{field} must contain ids", details={field: values})


class OrchestrationService:
    """Entry point for every orchestration operation.

    Args:
        tasks: TaskStore.
        timelines: TimelineStore.
        milestones: MilestoneStore.
        directory: DirectoryProvider.
        config: Mapping with the ASSIGNMENT_* / HEALTH_* / GANTT_* tunables.
        clock: Zero-argument callable returning a tz-aware ``now``.
    """

    def __init__(
        self,
        tasks,
        timelines,
        milestones,
        directory,
        config: Mapping[str, Any] | None = None,
        clock: Callable[[], datetime] | None = None,
    ):
        self.tasks = tasks
        self.timelines = timelines
        self.milestones = milestones
        self.directory = directory
        self.config = config or {}
        self.scoring = assignment_scorer.ScoringWeights.from_config(self.config)
        self.health = timeline_engine.HealthWeights.from_config(self.config)
        self._clock = clock or (lambda: datetime.now(timezone.utc))

    @classmethod
    def from_config(cls, config: Mapping[str, Any], clock=None) -> "OrchestrationService":
        """Service wired to the SQLAlchemy stores."""
        return cls(
            tasks=SqlTaskStore(),
            timelines=SqlTimelineStore(),
            milestones=SqlMilestoneStore(),
            directory=SqlDirectoryProvider(
                max_candidates=int(config.get("ASSIGNMENT_MAX_CANDIDATES", DEFAULT_MAX_CANDIDATES)),
            ),
            config=config,
            clock=clock,
        )

    def now(self) -> datetime:
        return self._clock()

    # ═════════════════════════════════════════════════════════════════════
    # Tasks
    # ═════════════════════════════════════════════════════════════════════

    def _log_activity(self, task, update_type, actor=None, old=None, new=None, content=None):
        task.activities.append(TaskActivity(
            actor=actor,
            update_type=update_type,
            old_value=None if old is None else str(old),
            new_value=None if new is None else str(new),
            content=content,
        ))

    def get_task(self, task_id, organization_id=None):
        return self.tasks.get(task_id, organization_id)

    def find_tasks(self, flt: TaskFilter | None = None) -> list:
        return self.tasks.find(flt or TaskFilter())

    def create_task(self, data: dict, actor: str | None = None) -> Task:
        """Validate and persist a new draft task.

        Raises:
            ValidationError: missing title, unknown type/priority, negative
                hours, progress outside 0..100, unparseable due date.
            NotFoundError: ``assigned_to`` is not in the directory.
        """
        errors = {}
        title = (data.get("title") or "").strip()
        if not title:
            errors["title"] = "title is required"
        task_type = data.get("task_type") or "remediation"
        if not is_choice(task_type, TASK_TYPES):
            errors["task_type"] = f"Must be one of {sorted(TASK_TYPES)}"
        priority = data.get("priority") or "medium"
        if not is_choice(priority, TASK_PRIORITIES):
            errors["priority"] = f"Must be one of {sorted(TASK_PRIORITIES)}"

        hours = data.get("estimated_hours")
        if hours is not None:
            try:
                hours = float(hours)
            except (TypeError, ValueError):
                errors["estimated_hours"] = "must be a number"
            else:
                if hours < 0:
                    errors["estimated_hours"] = "cannot be negative"
        tags = data.get("tags") or []
        if not isinstance(tags, list):
            errors["tags"] = "must be a list"
        if errors:
            raise ValidationError("Task validation failed", details=errors)

        progress = _require_int(data.get("progress", 0), "progress")
        organization_id = data.get("organization_id")

        task = Task(
            organization_id=organization_id,
            title=title,
            description=data.get("description") or "",
            task_type=task_type,
            framework=data.get("framework"),
            control_id=data.get("control_id"),
            priority=priority,
            estimated_hours=hours,
            due_date=_parse_when(data.get("due_date"), "due_date"),
            progress=progress,
            tags=[str(t) for t in tags],
            is_critical=bool(data.get("is_critical", False)),
            created_at=self.now(),
        )

        assigned_to = data.get("assigned_to")
        if assigned_to is not None:
            user = self.directory.get_user(assigned_to, organization_id)
            task.assigned_to = user.id
            task.assigned_by = actor
            task.status = "assigned"

        self.tasks.save(task)
        self._log_activity(task, "created", actor, new=task.status)
        self.tasks.save(task)
        logger.info(
            "Task created id=%s type=%s priority=%s framework=%s",
            task.id, task.task_type, task.priority, task.framework,
            extra={"task_id": task.id, "organization_id": organization_id},
        )
        self._refresh_framework_timelines(task.framework, organization_id)
        return task

    def _unfinished_blockers(self, task) -> list:
        blocking = []
        for dep in task.blocking_dependencies():
            try:
                target = self.tasks.get(dep.task_id)
            except NotFoundError:
                continue
            if target.status != "completed":
                blocking.append(target.id)
        return blocking

    def transition_task(self, task_id, new_status: str, actor=None, note=None, organization_id=None) -> Task:
        """Move a task through its lifecycle.

        Raises:
            ValidationError: transition not allowed, or starting work while
                an active ``blocks`` dependency targets an unfinished task.
        """
        task = self.tasks.get(task_id, organization_id)
        old = task.status
        if not validate_task_transition(old, new_status):
            raise ValidationError(f"Invalid transition: {old} → {new_status}")

        if new_status == "in_progress":
            blocking = self._unfinished_blockers(task)
            if blocking:
                raise ValidationError(
                    "Task is blocked by unfinished dependencies",
                    details={"blocking_task_ids": blocking},
                )

        task.status = new_status
        if new_status == "completed":
            task.progress = 100
            task.completed_at = self.now()
            for dep in self.tasks.dependents_of(task.id):
                if dep.status == "active":
                    dep.status = "resolved"

        self._log_activity(task, "status_change", actor, old, new_status, note)
        self.tasks.save(task)
        logger.info(
            "Task transitioned id=%s %s → %s", task.id, old, new_status,
            extra={"task_id": task.id, "organization_id": task.organization_id},
        )
        self._refresh_task_timelines(task)
        return task

    def update_progress(self, task_id, progress, actor=None, note=None, organization_id=None) -> Task:
        task = self.tasks.get(task_id, organization_id)
        value = _require_int(progress, "progress")
        if task.status == "completed" and value < 100:
            raise ValidationError(
                "Progress of a completed task cannot drop below 100",
                details={"progress": value},
            )
        old = task.progress
        task.progress = value
        self._log_activity(task, "progress", actor, old, value, note)
        self.tasks.save(task)
        logger.info(
            "Task progress id=%s %s → %s", task.id, old, value,
            extra={"task_id": task.id},
        )
        self._refresh_task_timelines(task)
        return task

    def add_dependency(self, task_id, target_id, dependency_type="blocks", actor=None, organization_id=None):
        """Upsert a dependency edge ``task → target``.

        Raises:
            ValidationError: unknown dependency type.
            NotFoundError: either task is missing.
            ConflictError: self-dependency or a ``blocks`` cycle.
        """
        if not is_choice(dependency_type, DEPENDENCY_TYPES):
            raise ValidationError(
                f"Invalid dependency type: {dependency_type}",
                details={"type": f"Must be one of {sorted(DEPENDENCY_TYPES)}"},
            )
        task = self.tasks.get(task_id, organization_id)
        if task.id == target_id:
            raise ConflictError(
                "TaskDependency", "task_id", str(target_id),
                message="A task cannot depend on itself",
            )
        target = self.tasks.get(target_id, organization_id)
        if dependency_type == "blocks" and self.tasks.would_create_cycle(task.id, target.id):
            raise ConflictError(
                "TaskDependency", "task_id", str(target.id),
                message=f"Dependency {task.id} → {target.id} would create a cycle",
            )

        dep = self.tasks.upsert_dependency(TaskDependency(
            dependent_task_id=task.id,
            task_id=target.id,
            dependency_type=dependency_type,
            status="resolved" if target.status == "completed" else "active",
        ))
        self._log_activity(task, "dependency", actor, new=f"{dependency_type}:{target.id}")
        self.tasks.save(task)
        logger.info(
            "Dependency upserted %s → %s (%s)", task.id, target.id, dependency_type,
            extra={"task_id": task.id},
        )
        self._refresh_task_timelines(task)
        return dep

    # ═════════════════════════════════════════════════════════════════════
    # Assignment
    # ═════════════════════════════════════════════════════════════════════

    def suggest_assignees(self, task_id, organization_id=None, options=None):
        """Rank the organisation's candidates for a task (never persisted)."""
        task = self.tasks.get(task_id, organization_id)
        scope = organization_id if organization_id is not None else task.organization_id
        candidates = self.directory.list_candidates(scope)
        return assignment_scorer.suggest(task, candidates, options, self.scoring, self.now())

    def assign_task(
        self,
        task_id,
        assigned_to,
        assigned_by=None,
        note=None,
        priority_override=None,
        due_date_adjustment=None,
        organization_id=None,
    ) -> Task:
        """Assign a task to a directory user.

        Draft and blocked tasks move to ``assigned``; tasks already under
        way keep their status and only change hands.
        """
        task = self.tasks.get(task_id, organization_id)
        if task.status == "completed":
            raise ValidationError("Completed tasks cannot be reassigned")
        scope = organization_id if organization_id is not None else task.organization_id
        user = self.directory.get_user(assigned_to, scope)

        if priority_override is not None:
            if not is_choice(priority_override, TASK_PRIORITIES):
                raise ValidationError(
                    f"Invalid priority: {priority_override}",
                    details={"priority_override": f"Must be one of {sorted(TASK_PRIORITIES)}"},
                )
            task.priority = priority_override
        if due_date_adjustment is not None:
            task.due_date = _parse_when(due_date_adjustment, "due_date_adjustment")

        previous = task.assigned_to
        task.assigned_to = user.id
        task.assigned_by = assigned_by
        if task.status in ("draft", "blocked"):
            task.status = "assigned"

        self._log_activity(task, "assignment", assigned_by, previous, user.id, note)
        self.tasks.save(task)
        logger.info(
            "Task assigned id=%s user=%s by=%s", task.id, user.id, assigned_by,
            extra={"task_id": task.id, "organization_id": task.organization_id},
        )
        self._refresh_task_timelines(task)
        return task

    def _batch_resolver(self, organization_id):
        """Assignee resolver for bulk runs that charges each pick to the candidate's snapshot."""
        candidates = self.directory.list_candidates(organization_id)
        if not candidates:
            logger.warning(
                "Auto-assign requested but organization=%s has no candidates", organization_id,
            )
        by_id = {c.user_id: c for c in candidates}
        options = assignment_scorer.ScoringOptions(max_suggestions=1)

        def resolve(task):
            result = assignment_scorer.suggest(task, candidates, options, self.scoring, self.now())
            user_id = result.recommendation.recommended_user_id
            if user_id is None:
                return None
            picked = by_id[user_id]
            picked.active_tasks += 1
            picked.estimated_hours += task.estimated_hours or self.scoring.default_task_hours
            return user_id

        return resolve

    # ═════════════════════════════════════════════════════════════════════
    # Bulk generation
    # ═════════════════════════════════════════════════════════════════════

    def create_bulk_tasks(self, payload: dict, organization_id=None, actor=None):
        """Generate and persist draft tasks for a list of compliance gaps."""
        request = bulk_task_generator.BulkTaskRequest.from_dict(payload)
        resolver = None
        if request.template.auto_assign:
            resolver = self._batch_resolver(organization_id)

        result = bulk_task_generator.generate(
            request,
            organization_id=organization_id,
            now=self.now(),
            assignee_resolver=resolver,
        )
        for task in result.tasks:
            self.tasks.save(task)
            self._log_activity(
                task, "created", actor, new=task.status,
                content=f"{request.source}:{request.source_id}" if request.source_id else request.source,
            )
            if task.assigned_to is not None:
                self._log_activity(task, "assignment", "auto-assign", new=task.assigned_to)
            self.tasks.save(task)

        logger.info(
            "Bulk operation %s source=%s created=%d rejected=%d hours=%s",
            result.bulk_operation_id, request.source, result.tasks_created,
            len(result.rejected), result.summary.total_estimated_hours,
            extra={"bulk_operation_id": result.bulk_operation_id, "organization_id": organization_id},
        )
        if result.tasks:
            self._refresh_framework_timelines(request.template.framework, organization_id)
        return result

    # ═════════════════════════════════════════════════════════════════════
    # Timelines & milestones
    # ═════════════════════════════════════════════════════════════════════

    def get_timeline(self, timeline_id, organization_id=None):
        return self.timelines.get(timeline_id, organization_id)

    def list_timelines(self, organization_id=None, status=None) -> list:
        """Timelines newest first, optionally narrowed by status."""
        return sorted(self.timelines.list_all(organization_id, status), key=lambda tl: tl.id, reverse=True)

    def create_timeline(self, data: dict) -> Timeline:
        """Create a timeline; framework, start and target have defaults.

        Raises:
            ValidationError: missing name, bad status, or start not before target.
        """
        name = (data.get("name") or "").strip()
        if not name:
            raise ValidationError("Timeline validation failed", details={"name": "name is required"})
        status = data.get("status") or "draft"
        if not is_choice(status, TIMELINE_STATUSES):
            raise ValidationError(
                f"Invalid status: {status}",
                details={"status": f"Must be one of {sorted(TIMELINE_STATUSES)}"},
            )

        start = _parse_day(data.get("start_date"), "start_date") or self.now().date()
        target = (
            _parse_day(data.get("target_completion"), "target_completion")
            or start + timedelta(days=DEFAULT_TIMELINE_DAYS)
        )
        if start >= target:
            raise ValidationError(
                "start_date must be before target_completion",
                details={"start_date": start.isoformat(), "target_completion": target.isoformat()},
            )

        raw_alloc = data.get("resource_allocation") or {}
        allocation = {}
        for key in RESOURCE_ALLOCATION_KEYS:
            try:
                value = float(raw_alloc.get(key) or 0)
            except (TypeError, ValueError):
                raise ValidationError(f"{key} must be a number", details={key: raw_alloc.get(key)})
            if value < 0:
                raise ValidationError(f"{key} cannot be negative", details={key: value})
            allocation[key] = value

        timeline = Timeline(
            organization_id=data.get("organization_id"),
            name=name,
            description=data.get("description") or "",
            framework=(data.get("framework") or DEFAULT_FRAMEWORK).strip(),
            start_date=start,
            target_completion=target,
            status=status,
            resource_allocation=allocation,
            created_at=self.now(),
        )
        self.timelines.save(timeline)
        logger.info(
            "Timeline created id=%s framework=%s %s..%s",
            timeline.id, timeline.framework, start, target,
            extra={"timeline_id": timeline.id, "organization_id": timeline.organization_id},
        )
        return self._recompute(timeline)

    def create_milestone(self, timeline_id, data: dict, organization_id=None) -> Milestone:
        timeline = self.timelines.get(timeline_id, organization_id)
        errors = {}
        name = (data.get("name") or "").strip()
        if not name:
            errors["name"] = "name is required"
        milestone_type = data.get("type") or data.get("milestone_type") or "framework"
        if not is_choice(milestone_type, MILESTONE_TYPES):
            errors["type"] = f"Must be one of {sorted(MILESTONE_TYPES)}"
        if not data.get("target_date"):
            errors["target_date"] = "target_date is required"
        if errors:
            raise ValidationError("Milestone validation failed", details=errors)

        target_date = _parse_day(data.get("target_date"), "target_date")
        progress = _require_int(data.get("progress", 0), "progress")
        deps = data.get("dependencies") or {}
        task_ids = _id_list(data.get("depends_on_task_ids", deps.get("tasks")), "depends_on_task_ids")
        milestone_ids = _id_list(
            data.get("depends_on_milestone_ids", deps.get("milestones")), "depends_on_milestone_ids",
        )

        if task_ids:
            found = {t.id for t in self.tasks.find(TaskFilter(
                organization_id=timeline.organization_id, ids=task_ids,
            ))}
            missing = [tid for tid in task_ids if tid not in found]
            if missing:
                raise NotFoundError(resource="Task", resource_id=missing[0])
        if milestone_ids:
            siblings = {m.id for m in self.milestones.list_by_timeline(timeline.id)}
            missing = [mid for mid in milestone_ids if mid not in siblings]
            if missing:
                raise NotFoundError(resource="Milestone", resource_id=missing[0])

        attendees = data.get("attendees")
        if attendees is not None and not isinstance(attendees, list):
            raise ValidationError("attendees must be a list", details={"attendees": attendees})

        milestone = Milestone(
            name=name,
            milestone_type=milestone_type,
            target_date=target_date,
            progress=progress,
            depends_on_task_ids=task_ids,
            depends_on_milestone_ids=milestone_ids,
            success_criteria=data.get("success_criteria"),
            attendees=attendees,
        )
        timeline.milestones.append(milestone)
        self.milestones.save(milestone)
        logger.info(
            "Milestone created id=%s timeline=%s target=%s",
            milestone.id, timeline.id, target_date,
            extra={"timeline_id": timeline.id},
        )
        self._recompute(timeline)
        return milestone

    def transition_milestone(self, milestone_id, new_status: str, organization_id=None) -> Milestone:
        milestone = self.milestones.get(milestone_id)
        timeline = self.timelines.get(milestone.timeline_id, organization_id)
        old = milestone.status
        timeline_engine.mark_milestone_status(milestone, new_status, self.now())
        self.milestones.save(milestone)
        logger.info(
            "Milestone transitioned id=%s %s → %s", milestone.id, old, milestone.status,
            extra={"timeline_id": timeline.id},
        )
        self._recompute(timeline)
        return milestone

    def _timeline_tasks(self, timeline, milestones) -> list:
        """Snapshot for a timeline: its framework tasks, the tasks its milestones
        reference, and every task those wait on through active ``blocks`` edges.

        Predecessors are pulled in whatever their framework, so a blocker filed
        under another framework (or none) still reaches the critical path.
        Progress and analytics filter by framework themselves.
        """
        tasks = self.tasks.find(TaskFilter(
            organization_id=timeline.organization_id, framework=timeline.framework,
        ))
        known = {t.id for t in tasks}
        frontier = {tid for m in milestones for tid in (m.depends_on_task_ids or [])}
        frontier |= {d.task_id for t in tasks for d in t.blocking_dependencies()}
        frontier -= known
        while frontier:
            loaded = self.tasks.find(TaskFilter(
                organization_id=timeline.organization_id, ids=sorted(frontier),
            ))
            known |= frontier
            tasks.extend(loaded)
            frontier = {d.task_id for t in loaded for d in t.blocking_dependencies()} - known
        return tasks

    def _recompute(self, timeline) -> Timeline:
        milestones = self.milestones.list_by_timeline(timeline.id)
        tasks = self._timeline_tasks(timeline, milestones)
        timeline_engine.recompute_timeline(timeline, tasks, milestones, self.now(), self.health)
        for m in milestones:
            self.milestones.save(m)
        self.timelines.save(timeline)
        return timeline

    def _refresh_framework_timelines(self, framework, organization_id) -> None:
        for timeline in self.timelines.list_by_framework(framework, organization_id):
            self._recompute(timeline)

    def _refresh_task_timelines(self, task) -> None:
        """Recompute every timeline the task can influence.

        That is the timelines on its framework, plus any timeline whose
        milestones reference it or whose critical path holds it. The
        critical path covers blockers outside the framework.
        """
        refreshed = set()
        for timeline in self.timelines.list_by_framework(task.framework, task.organization_id):
            self._recompute(timeline)
            refreshed.add(timeline.id)
        for timeline in self.timelines.list_all(task.organization_id):
            if timeline.id in refreshed:
                continue
            referenced = any(
                task.id in (m.depends_on_task_ids or [])
                for m in self.milestones.list_by_timeline(timeline.id)
            )
            if referenced or timeline_engine.is_on_critical_path(timeline, task.id):
                self._recompute(timeline)

    def recompute_timeline(self, timeline_id, organization_id=None) -> Timeline:
        return self._recompute(self.timelines.get(timeline_id, organization_id))

    def get_gantt(self, timeline_id, granularity="week", organization_id=None):
        """Gantt layout for a timeline.

        Raises:
            ConfigurationError: unknown granularity or an empty date range.
        """
        timeline = self.timelines.get(timeline_id, organization_id)
        milestones = self.milestones.list_by_timeline(timeline.id)
        tasks = self._timeline_tasks(timeline, milestones)
        return gantt_projector.project(
            timeline,
            tasks,
            granularity=granularity,
            now=self.now(),
            min_width=float(self.config.get("GANTT_MIN_BAR_WIDTH_PCT", gantt_projector.MIN_BAR_WIDTH_PCT)),
            milestone_width=float(
                self.config.get("GANTT_MILESTONE_WIDTH_PCT", gantt_projector.MILESTONE_WIDTH_PCT)
            ),
            milestones=milestones,
        )

    def timeline_analytics(self, timeline_id, organization_id=None) -> dict:
        timeline = self.recompute_timeline(timeline_id, organization_id)
        return {
            "timeline_id": timeline.id,
            "current_progress": timeline.current_progress,
            "health_score": timeline.health_score,
            "critical_path": list(timeline.critical_path or []),
            "analytics": dict(timeline.analytics or {}),
        }

    # ═════════════════════════════════════════════════════════════════════
    # Organisation analytics
    # ═════════════════════════════════════════════════════════════════════

    def orchestration_analytics(self, organization_id=None, period=None) -> dict:
        """KPIs over tasks and timelines created inside the reporting period.

        Workload is a current snapshot and is not windowed.
        """
        period = period or orchestration_metrics.DEFAULT_ANALYTICS_PERIOD
        start, now = orchestration_metrics.period_window(period, self.now())
        tasks = orchestration_metrics.created_since(
            self.tasks.find(TaskFilter(organization_id=organization_id)), start,
        )
        timelines = orchestration_metrics.created_since(self.timelines.list_all(organization_id), start)
        candidates = self.directory.list_candidates(organization_id)
        return {
            "organization_id": organization_id,
            "generated_at": now.isoformat(),
            "analytics_period": {
                "start_date": start.isoformat(),
                "end_date": now.isoformat(),
                "period_type": period,
            },
            "task_metrics": orchestration_metrics.compute_task_metrics(tasks, now),
            "timeline_metrics": orchestration_metrics.compute_timeline_metrics(timelines, tasks, now),
            "workload_distribution": orchestration_metrics.compute_workload_distribution(
                candidates, self.scoring,
            ),
        }
