"""
Orchestration Metrics — organisation-wide KPIs over task/timeline snapshots.

Usage:
    from app.services.orchestration_metrics import compute_task_metrics
    metrics = compute_task_metrics(tasks, now=now)

All functions are pure: callers load the snapshots through the stores.
"""

from __future__ import annotations

from datetime import datetime, timedelta, timezone
from statistics import pvariance

from app.core.exceptions import ValidationError
from app.services.assignment_scorer import ScoringWeights, capacity_utilization
from app.services.timeline_engine import blocked_critical_tasks, is_overdue, schedule_variance
from app.utils.helpers import as_utc_datetime

# Population variance of utilization (percentage points²) under which the
# team counts as balanced; 400 ≈ a 20-point standard deviation.
WORKLOAD_BALANCE_VARIANCE_MAX = 400.0
OVERLOADED_UTILIZATION = 100.0

ANALYTICS_PERIODS = {"last_7_days": 7, "last_30_days": 30, "last_90_days": 90}
DEFAULT_ANALYTICS_PERIOD = "last_30_days"


def _safe_pct(numerator: int, denominator: int) -> float:
    """Zero-safe percentage."""
    return round((numerator / denominator) * 100, 1) if denominator else 0.0


def _now(now):
    return as_utc_datetime(now) if now is not None else datetime.now(timezone.utc)


def _mean(values, default=0.0) -> float:
    return round(sum(values) / len(values), 1) if values else default


# ═════════════════════════════════════════════════════════════════════════════
# Reporting window
# ═════════════════════════════════════════════════════════════════════════════


def period_window(period: str | None = None, now=None) -> tuple[datetime, datetime]:
    """Return ``(start, end)`` for a named period ending at ``now``.

    Raises:
        ValidationError: period is not one of ANALYTICS_PERIODS.
    """
    period = period or DEFAULT_ANALYTICS_PERIOD
    if not isinstance(period, str) or period not in ANALYTICS_PERIODS:
        raise ValidationError(
            f"Unknown analytics period: {period}",
            details={"period": period, "allowed": sorted(ANALYTICS_PERIODS)},
        )
    end = _now(now)
    return end - timedelta(days=ANALYTICS_PERIODS[period]), end


def created_since(items, start: datetime) -> list:
    """Items whose ``created_at`` falls on or after ``start``; undated items are skipped."""
    selected = []
    for item in items:
        created = as_utc_datetime(item.created_at)
        if created is not None and created >= start:
            selected.append(item)
    return selected


# ═════════════════════════════════════════════════════════════════════════════
# Tasks
# ═════════════════════════════════════════════════════════════════════════════


def compute_task_metrics(tasks, now=None) -> dict:
    """Totals, overdue count, completion and on-time delivery rates.

    overdue  = due date passed and not completed
    on_time  = completed tasks finished on or before their due date
               (tasks without a due date count as on time)
    average_completion_time_hours = mean created-to-completed duration over
               completed tasks carrying both timestamps
    """
    now = _now(now)
    tasks = list(tasks)
    total = len(tasks)
    completed = [t for t in tasks if t.status == "completed"]
    in_progress = sum(1 for t in tasks if t.status == "in_progress")
    blocked = sum(1 for t in tasks if t.status == "blocked")
    overdue = sum(
        1 for t in tasks
        if t.status != "completed" and t.due_date is not None and as_utc_datetime(t.due_date) < now
    )

    on_time = 0
    durations = []
    for t in completed:
        due = as_utc_datetime(t.due_date)
        done = as_utc_datetime(t.completed_at)
        if due is None or done is None or done <= due:
            on_time += 1
        created = as_utc_datetime(t.created_at)
        if created is not None and done is not None:
            durations.append((done - created).total_seconds() / 3600.0)

    by_priority = {}
    for t in tasks:
        by_priority[t.priority] = by_priority.get(t.priority, 0) + 1

    return {
        "total_tasks": total,
        "completed_tasks": len(completed),
        "in_progress_tasks": in_progress,
        "blocked_tasks": blocked,
        "overdue_tasks": overdue,
        "completion_rate": _safe_pct(len(completed), total),
        "on_time_delivery_rate": _safe_pct(on_time, len(completed)),
        "average_completion_time_hours": _mean(durations),
        "by_priority": by_priority,
    }


# ═════════════════════════════════════════════════════════════════════════════
# Timelines
# ═════════════════════════════════════════════════════════════════════════════


def compute_timeline_metrics(timelines, tasks, now=None) -> dict:
    """Milestones hit/missed and blocked critical-path tasks across timelines.

    A milestone is *hit* when completed on or before its target date and
    *missed* when completed late or still open past its target.
    ``average_schedule_variance`` is the mean planned-minus-actual progress,
    positive when timelines run behind.
    """
    tasks = list(tasks)
    timelines = list(timelines)
    hit = missed = critical_delays = 0
    health = []
    variances = [schedule_variance(tl, now) for tl in timelines]

    for tl in timelines:
        health.append(float(tl.health_score if tl.health_score is not None else 100.0))
        critical_delays += len(blocked_critical_tasks(tl, tasks))
        for m in tl.milestones or []:
            if m.status == "completed":
                done = as_utc_datetime(m.completed_at)
                if done is None or done.date() <= m.target_date:
                    hit += 1
                else:
                    missed += 1
            elif is_overdue(m, now):
                missed += 1

    return {
        "active_timelines": sum(1 for tl in timelines if tl.status == "active"),
        "total_timelines": len(timelines),
        "milestones_hit": hit,
        "milestones_missed": missed,
        "critical_path_delays": critical_delays,
        "average_health_score": round(sum(health) / len(health), 1) if health else 100.0,
        "average_schedule_variance": _mean(variances),
    }


# ═════════════════════════════════════════════════════════════════════════════
# Workload
# ═════════════════════════════════════════════════════════════════════════════


def compute_workload_distribution(candidates, weights: ScoringWeights | None = None) -> dict:
    """Per-user capacity utilization and a balance verdict."""
    weights = weights or ScoringWeights()
    users = []
    for c in candidates:
        capacity = c.weekly_capacity_hours
        if capacity is None:
            capacity = weights.weekly_capacity_hours
        users.append({
            "user_id": c.user_id,
            "name": c.display_name or c.email,
            "active_tasks": c.active_tasks,
            "estimated_hours": c.estimated_hours,
            "utilization": capacity_utilization(c.estimated_hours, capacity),
        })

    utilizations = [u["utilization"] for u in users]
    variance = round(pvariance(utilizations), 1) if len(utilizations) > 1 else 0.0
    return {
        "users": users,
        "overloaded_users": [u["user_id"] for u in users if u["utilization"] >= OVERLOADED_UTILIZATION],
        "average_utilization": round(sum(utilizations) / len(utilizations), 1) if utilizations else 0.0,
        "utilization_variance": variance,
        "balanced": variance < WORKLOAD_BALANCE_VARIANCE_MAX,
    }
