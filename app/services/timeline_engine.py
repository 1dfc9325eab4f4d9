"""
Timeline Engine — derived state of a compliance timeline.

Every derived field on Timeline/Milestone is written here and only here:

    refresh_milestone_statuses   delayed ⇔ open and target_date < today
    recompute_progress           weighted task progress, milestone fallback
    recompute_critical_path      blocks-DAG closure behind the tightest milestone
    recompute_health_score       delayed milestones, schedule variance, blocked critical tasks
    recompute_analytics          projection / risk / buffer block
    recompute_timeline           all of the above, in dependency order

The functions take the timeline plus explicit task/milestone snapshots and an
optional ``now`` so they can run against transient objects in tests. None of
them raise on empty inputs: progress falls back to 0 and health to 100.
"""

from __future__ import annotations

import logging
from dataclasses import dataclass
from datetime import date, datetime, timedelta, timezone
from typing import Any, Iterable, Mapping

from app.core.exceptions import ValidationError
from app.models.orchestration import validate_milestone_transition

logger = logging.getLogger(__name__)


# ═════════════════════════════════════════════════════════════════════════════
# Constants
# ═════════════════════════════════════════════════════════════════════════════

OPEN_MILESTONE_STATUSES = ("pending", "in_progress", "delayed")
TERMINAL_MILESTONE_STATUSES = ("completed", "cancelled")

DELAYED_MILESTONE_PENALTY = 15.0
BLOCKED_CRITICAL_PENALTY = 20.0
SCHEDULE_VARIANCE_WEIGHT = 0.5

# health_score → analytics.risk_score
RISK_BANDS = (
    (80.0, "low"),
    (60.0, "medium"),
    (40.0, "high"),
)


@dataclass(frozen=True)
class HealthWeights:
    delayed_milestone_penalty: float = DELAYED_MILESTONE_PENALTY
    blocked_critical_penalty: float = BLOCKED_CRITICAL_PENALTY
    schedule_variance_weight: float = SCHEDULE_VARIANCE_WEIGHT

    @classmethod
    def from_config(cls, cfg: Mapping[str, Any]) -> "HealthWeights":
        return cls(
            delayed_milestone_penalty=float(
                cfg.get("HEALTH_DELAYED_MILESTONE_PENALTY", DELAYED_MILESTONE_PENALTY)
            ),
            blocked_critical_penalty=float(
                cfg.get("HEALTH_BLOCKED_CRITICAL_PENALTY", BLOCKED_CRITICAL_PENALTY)
            ),
            schedule_variance_weight=float(
                cfg.get("HEALTH_SCHEDULE_VARIANCE_WEIGHT", SCHEDULE_VARIANCE_WEIGHT)
            ),
        )


# ── Small helpers ────────────────────────────────────────────────────────────


def _clamp(value: float, low: float = 0.0, high: float = 100.0) -> float:
    return max(low, min(high, value))


def _as_date(value) -> date | None:
    if value is None:
        return None
    if isinstance(value, datetime):
        return value.date()
    return value


def _today(now) -> date:
    if now is None:
        return datetime.now(timezone.utc).date()
    return _as_date(now)


def _milestones_of(timeline, milestones):
    if milestones is None:
        return list(timeline.milestones or [])
    return list(milestones)


def _active_blockers(task) -> list[int]:
    """Ids of tasks this task waits on through active ``blocks`` edges."""
    return [
        d.task_id
        for d in (task.dependencies or [])
        if d.dependency_type == "blocks" and (d.status or "active") == "active"
    ]


def _task_progress(task) -> float:
    if task.status == "completed":
        return 100.0
    return _clamp(float(task.progress or 0))


def timeline_tasks(timeline, tasks: Iterable) -> list:
    """Tasks associated with the timeline through its framework."""
    framework = (timeline.framework or "").strip().lower()
    if not framework:
        return []
    return [t for t in tasks if (t.framework or "").strip().lower() == framework]


# ═════════════════════════════════════════════════════════════════════════════
# Milestone status
# ═════════════════════════════════════════════════════════════════════════════


def is_overdue(milestone, now=None) -> bool:
    """True when the milestone is still open and its target date has passed."""
    if milestone.status in TERMINAL_MILESTONE_STATUSES:
        return False
    target = _as_date(milestone.target_date)
    return target is not None and target < _today(now)


def refresh_milestone_statuses(milestones: Iterable, now=None) -> list:
    """Bring stored statuses in line with the delayed rule.

    Open milestones past their target become ``delayed``; a delayed
    milestone whose target moved back into the future returns to
    ``in_progress`` (or ``pending`` when no progress was made).

    Returns the milestones whose status changed.
    """
    changed = []
    for m in milestones:
        if m.status in TERMINAL_MILESTONE_STATUSES:
            continue
        overdue = is_overdue(m, now)
        if overdue and m.status != "delayed":
            m.status = "delayed"
            changed.append(m)
        elif not overdue and m.status == "delayed":
            m.status = "in_progress" if (m.progress or 0) > 0 else "pending"
            changed.append(m)
    return changed


def mark_milestone_status(milestone, new_status: str, now=None):
    """Apply a requested status transition to a milestone.

    ``pending → in_progress → completed``; ``delayed`` may move to
    ``in_progress`` or ``completed``; ``cancelled`` is reachable from any
    open state and is terminal. ``delayed`` itself can only be requested
    once the target date has passed, and an open milestone that is already
    overdue lands in ``delayed`` rather than the requested open state.

    Raises:
        ValidationError: invalid transition.
    """
    old = milestone.status
    overdue = is_overdue(milestone, now)

    if new_status == "delayed":
        if old in TERMINAL_MILESTONE_STATUSES:
            raise ValidationError(f"Invalid transition: {old} → delayed")
        if not overdue:
            raise ValidationError(
                "Milestone cannot be delayed before its target date",
                details={"target_date": str(milestone.target_date)},
            )
        milestone.status = "delayed"
        return milestone

    if not validate_milestone_transition(old, new_status):
        raise ValidationError(f"Invalid transition: {old} → {new_status}")

    milestone.status = new_status
    if new_status == "completed":
        milestone.progress = 100
        stamp = now if isinstance(now, datetime) else datetime.now(timezone.utc)
        milestone.completed_at = stamp
    elif new_status in ("pending", "in_progress") and overdue:
        milestone.status = "delayed"
    return milestone


# ═════════════════════════════════════════════════════════════════════════════
# Progress
# ═════════════════════════════════════════════════════════════════════════════


def recompute_progress(timeline, tasks: Iterable = (), milestones: Iterable | None = None) -> float:
    """Recompute ``timeline.current_progress`` (0..100, idempotent).

    Tasks on the timeline's framework are averaged, weighted by estimated
    hours (tasks without an estimate weigh 1). Without such tasks the plain
    average of non-cancelled milestone progress is used; without either the
    result is 0.
    """
    own_tasks = timeline_tasks(timeline, tasks)
    if own_tasks:
        total_weight = 0.0
        weighted = 0.0
        for t in own_tasks:
            weight = float(t.estimated_hours) if t.estimated_hours and t.estimated_hours > 0 else 1.0
            weighted += _task_progress(t) * weight
            total_weight += weight
        value = weighted / total_weight if total_weight else 0.0
    else:
        counted = [m for m in _milestones_of(timeline, milestones) if m.status != "cancelled"]
        if counted:
            value = sum(
                100.0 if m.status == "completed" else _clamp(float(m.progress or 0))
                for m in counted
            ) / len(counted)
        else:
            value = 0.0

    value = round(_clamp(value), 1)
    timeline.current_progress = value
    return value


# ═════════════════════════════════════════════════════════════════════════════
# Critical path
# ═════════════════════════════════════════════════════════════════════════════


def _milestone_task_refs(milestone, milestones_by_id: dict) -> set:
    """Task ids a milestone depends on, following milestone → milestone references."""
    refs = set()
    seen = set()
    stack = [milestone]
    while stack:
        m = stack.pop()
        if m.id is not None:
            if m.id in seen:
                continue
            seen.add(m.id)
        refs.update(m.depends_on_task_ids or [])
        for mid in m.depends_on_milestone_ids or []:
            child = milestones_by_id.get(mid)
            if child is not None:
                stack.append(child)
    return refs


def _transitive_blockers(anchors: set, preds: dict) -> set:
    closure = set()
    stack = list(anchors)
    while stack:
        tid = stack.pop()
        if tid in closure:
            continue
        closure.add(tid)
        stack.extend(preds.get(tid, []))
    return closure


def _longest_open_chain(tasks_by_id: dict, preds: dict) -> list:
    """Heaviest chain (by estimated hours) through unfinished tasks of the blocks DAG."""
    open_ids = sorted(tid for tid, t in tasks_by_id.items() if t.status != "completed")
    if not open_ids:
        return []
    open_set = set(open_ids)
    best: dict = {}
    on_stack: set = set()

    def weight(tid):
        hours = tasks_by_id[tid].estimated_hours
        return float(hours) if hours and hours > 0 else 1.0

    def visit(tid):
        if tid in best:
            return best[tid][0]
        on_stack.add(tid)
        top_len, top_pred = 0.0, None
        for pid in sorted(preds.get(tid, [])):
            if pid not in open_set or pid in on_stack:
                continue
            length = visit(pid)
            if length > top_len:
                top_len, top_pred = length, pid
        on_stack.discard(tid)
        best[tid] = (top_len + weight(tid), top_pred)
        return best[tid][0]

    for tid in open_ids:
        visit(tid)

    end = max(open_ids, key=lambda tid: (best[tid][0], -tid))
    chain = []
    while end is not None:
        chain.append(end)
        end = best[end][1]
    return list(reversed(chain))


def compute_critical_path(timeline, tasks: Iterable, milestones: Iterable | None = None, now=None) -> list:
    """Return the sorted task ids on the timeline's critical path.

    Membership:
      * tasks flagged ``is_critical`` by an upstream scheduler;
      * unfinished tasks transitively required (through active ``blocks``
        edges) by the open milestone(s) with the tightest slack (the
        earliest target date, overdue milestones included);
      * when no open milestone references a known task, the heaviest chain
        of unfinished tasks through the blocks DAG.
    """
    tasks_by_id = {t.id: t for t in tasks if t.id is not None}
    preds = {
        tid: [pid for pid in _active_blockers(t) if pid in tasks_by_id]
        for tid, t in tasks_by_id.items()
    }
    critical = {tid for tid, t in tasks_by_id.items() if t.is_critical}

    all_milestones = _milestones_of(timeline, milestones)
    open_milestones = [m for m in all_milestones if m.status in OPEN_MILESTONE_STATUSES]
    anchors = set()
    if open_milestones:
        by_id = {m.id: m for m in all_milestones if m.id is not None}
        tightest = min(_as_date(m.target_date) for m in open_milestones)
        for m in open_milestones:
            if _as_date(m.target_date) == tightest:
                anchors |= _milestone_task_refs(m, by_id)
        anchors &= set(tasks_by_id)

    if anchors:
        path = _transitive_blockers(anchors, preds)
        critical |= {tid for tid in path if tasks_by_id[tid].status != "completed"}
    else:
        critical |= set(_longest_open_chain(tasks_by_id, preds))

    return sorted(critical)


def recompute_critical_path(timeline, tasks: Iterable, milestones: Iterable | None = None, now=None) -> list:
    """Store the computed critical path on the timeline and return it."""
    path = compute_critical_path(timeline, tasks, milestones, now)
    timeline.critical_path = path
    return path


def is_on_critical_path(timeline, task_id) -> bool:
    """Membership test against the precomputed ``timeline.critical_path``."""
    return task_id in set(timeline.critical_path or [])


# ═════════════════════════════════════════════════════════════════════════════
# Schedule variance & health
# ═════════════════════════════════════════════════════════════════════════════


def planned_progress(timeline, now=None) -> float:
    """Share of the planned duration already elapsed (0..100)."""
    start = _as_date(timeline.start_date)
    target = _as_date(timeline.target_completion)
    if start is None or target is None:
        return 0.0
    total = (target - start).days
    if total <= 0:
        return 100.0
    elapsed = (_today(now) - start).days
    return round(_clamp(elapsed / total * 100.0), 1)


def schedule_variance(timeline, now=None) -> float:
    """Planned-elapsed percentage minus actual progress; positive means behind."""
    return round(planned_progress(timeline, now) - float(timeline.current_progress or 0.0), 1)


def blocked_critical_tasks(timeline, tasks: Iterable) -> list:
    critical = set(timeline.critical_path or [])
    return [t for t in tasks if t.id in critical and t.status == "blocked"]


def compute_health_score(
    timeline,
    tasks: Iterable = (),
    milestones: Iterable | None = None,
    now=None,
    weights: HealthWeights | None = None,
) -> float:
    """Health in 0..100 from delayed milestones, schedule variance and blocked critical tasks.

    Each overdue milestone and each blocked critical-path task costs a
    fixed penalty. Schedule variance (behind-plan percentage points) is
    charged only while the timeline is already at risk, so a timeline with
    neither delayed milestones nor blocked critical tasks reads 100.
    """
    weights = weights or HealthWeights()
    delayed = sum(1 for m in _milestones_of(timeline, milestones) if is_overdue(m, now))
    blocked = len(blocked_critical_tasks(timeline, tasks))

    score = 100.0
    score -= delayed * weights.delayed_milestone_penalty
    score -= blocked * weights.blocked_critical_penalty
    if delayed or blocked:
        behind = max(0.0, schedule_variance(timeline, now))
        score -= behind * weights.schedule_variance_weight
    return round(_clamp(score), 1)


def recompute_health_score(timeline, tasks: Iterable = (), milestones=None, now=None, weights=None) -> float:
    value = compute_health_score(timeline, tasks, milestones, now, weights)
    timeline.health_score = value
    return value


def risk_band(health_score: float) -> str:
    for floor, label in RISK_BANDS:
        if health_score >= floor:
            return label
    return "critical"


# ═════════════════════════════════════════════════════════════════════════════
# Analytics
# ═════════════════════════════════════════════════════════════════════════════


def compute_analytics(timeline, tasks: Iterable = (), milestones=None, now=None) -> dict:
    """Projection block stored on ``timeline.analytics``.

    projected_completion extrapolates the current velocity
    (elapsed days / progress); with no progress yet the target date stands.
    """
    today = _today(now)
    start = _as_date(timeline.start_date)
    target = _as_date(timeline.target_completion)
    progress = float(timeline.current_progress or 0.0)
    own_tasks = timeline_tasks(timeline, tasks)
    all_milestones = _milestones_of(timeline, milestones)

    days_elapsed = max(0, (today - start).days)
    days_remaining = max(0, (target - today).days)

    if progress >= 100.0:
        projected = min(today, target) if days_elapsed else start
    elif progress > 0 and days_elapsed > 0:
        projected = start + timedelta(days=round(days_elapsed * 100.0 / progress))
    else:
        projected = target

    allocation = timeline.resource_allocation or {}
    allocated = float(allocation.get("budget_allocated") or 0)
    spent = float(allocation.get("budget_spent") or 0)
    resource_utilization = round(min(100.0, spent / allocated * 100.0), 1) if allocated > 0 else 0.0

    tasks_completed = sum(1 for t in own_tasks if t.status == "completed")
    weeks_elapsed = max(1.0, days_elapsed / 7.0)

    return {
        "projected_completion": projected.isoformat(),
        "risk_score": risk_band(float(timeline.health_score if timeline.health_score is not None else 100.0)),
        "buffer_days": (target - projected).days,
        "schedule_variance": schedule_variance(timeline, now),
        "resource_utilization": resource_utilization,
        "current_status": {
            "overall_progress": progress,
            "milestones_completed": sum(1 for m in all_milestones if m.status == "completed"),
            "milestones_total": len(all_milestones),
            "tasks_completed": tasks_completed,
            "tasks_total": len(own_tasks),
            "days_elapsed": days_elapsed,
            "days_remaining": days_remaining,
        },
        "velocity": {
            "tasks_per_week": round(tasks_completed / weeks_elapsed, 2) if own_tasks else 0.0,
            "on_schedule": projected <= target,
        },
    }


def recompute_analytics(timeline, tasks: Iterable = (), milestones=None, now=None) -> dict:
    analytics = compute_analytics(timeline, tasks, milestones, now)
    timeline.analytics = analytics
    return analytics


def recompute_timeline(timeline, tasks: Iterable = (), milestones=None, now=None, weights=None):
    """Refresh every derived field of a timeline in dependency order.

    Order matters: milestone statuses feed critical-path anchors, progress
    feeds schedule variance, the critical path feeds health, and health
    feeds the analytics risk band.
    """
    tasks = list(tasks)
    milestones = _milestones_of(timeline, milestones)

    refresh_milestone_statuses(milestones, now)
    recompute_progress(timeline, tasks, milestones)
    recompute_critical_path(timeline, tasks, milestones, now)
    recompute_health_score(timeline, tasks, milestones, now, weights)
    recompute_analytics(timeline, tasks, milestones, now)

    logger.info(
        "Timeline recomputed id=%s progress=%s health=%s critical=%d",
        timeline.id, timeline.current_progress, timeline.health_score,
        len(timeline.critical_path or []),
        extra={"timeline_id": timeline.id},
    )
    return timeline
