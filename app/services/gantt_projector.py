"""
Gantt Projector — normalised horizontal layout for a timeline.

Maps task and milestone date ranges onto a [0, 100] axis spanning
``timeline.start_date .. timeline.target_completion``. Bar math is always
done against the full range; the requested granularity only decides the
header ticks. Output ordering is deterministic: tasks by (start, id), then
milestones by (target date, id).
"""

from __future__ import annotations

import logging
from dataclasses import asdict, dataclass, field
from datetime import date, datetime, timedelta, timezone

from app.core.exceptions import ConfigurationError
from app.utils.helpers import as_utc_datetime

logger = logging.getLogger(__name__)

GRANULARITIES = ("day", "week", "month")
MIN_BAR_WIDTH_PCT = 2.0
MILESTONE_WIDTH_PCT = 0.5
# Tasks without a due date are drawn one week long
DEFAULT_TASK_SPAN_DAYS = 7


@dataclass
class GanttBar:
    id: int | None
    name: str
    kind: str
    left_percent: float
    width_percent: float
    is_milestone: bool
    is_critical: bool
    progress: float
    status: str | None
    start: str
    end: str
    dependencies: list = field(default_factory=list)

    def to_dict(self):
        return asdict(self)


@dataclass
class GanttTick:
    label: str
    date: str
    left_percent: float

    def to_dict(self):
        return asdict(self)


@dataclass
class GanttLayout:
    timeline_id: int | None
    granularity: str
    start: str
    end: str
    bars: list
    ticks: list
    today_percent: float | None = None

    def to_dict(self):
        return {
            "timeline_id": self.timeline_id,
            "granularity": self.granularity,
            "start": self.start,
            "end": self.end,
            "bars": [b.to_dict() for b in self.bars],
            "ticks": [t.to_dict() for t in self.ticks],
            "today_percent": self.today_percent,
        }


def _round(value: float) -> float:
    return round(value, 2)


def _clamp_pct(value: float) -> float:
    return max(0.0, min(100.0, value))


class _Axis:
    """Converts datetimes to percentages of the timeline range."""

    def __init__(self, start: datetime, end: datetime):
        self.start = start
        self.end = end
        self.total = (end - start).total_seconds()

    def left(self, moment: datetime) -> float:
        return _round(_clamp_pct((moment - self.start).total_seconds() / self.total * 100.0))

    def width(self, begin: datetime, finish: datetime, floor: float) -> float:
        raw = (finish - begin).total_seconds() / self.total * 100.0
        return _round(min(100.0, max(floor, raw)))


def _task_span(task, timeline_start: datetime):
    start = as_utc_datetime(task.created_at) or timeline_start
    end = as_utc_datetime(task.due_date)
    if end is None:
        end = start + timedelta(days=DEFAULT_TASK_SPAN_DAYS)
    return start, end


def _add_month(value: date) -> date:
    if value.month == 12:
        return date(value.year + 1, 1, 1)
    return date(value.year, value.month + 1, 1)


def build_ticks(axis: _Axis, granularity: str) -> list:
    """Header ticks at day, ISO-week or calendar-month boundaries."""
    first = axis.start.date()
    last = axis.end.date()
    ticks = []

    if granularity == "day":
        current = first
        while current < last:
            ticks.append((current, current.strftime("%b %d")))
            current += timedelta(days=1)
    elif granularity == "week":
        current = first
        while current < last:
            ticks.append((current, f"W{current.isocalendar()[1]:02d}"))
            current += timedelta(days=7)
    else:
        current = first
        while current < last:
            ticks.append((current, current.strftime("%b %Y")))
            current = _add_month(current)

    return [
        GanttTick(label=label, date=day.isoformat(), left_percent=axis.left(as_utc_datetime(day)))
        for day, label in ticks
    ]


def project(
    timeline,
    tasks,
    granularity: str = "week",
    now=None,
    min_width: float = MIN_BAR_WIDTH_PCT,
    milestone_width: float = MILESTONE_WIDTH_PCT,
    milestones=None,
) -> GanttLayout:
    """Project a timeline's tasks and milestones onto the [0, 100] axis.

    Args:
        timeline: Timeline providing the date range, milestones and the
            precomputed critical path.
        tasks: Tasks to draw.
        granularity: ``day`` | ``week`` | ``month`` (ticks only).
        now: Reference instant for the today marker.
        min_width: Floor applied to task bar widths.
        milestone_width: Fixed width of milestone markers.
        milestones: Optional explicit milestone list (defaults to the
            timeline's own).

    Raises:
        ConfigurationError: unknown granularity, or the timeline ends on or
            before its start.
    """
    if granularity not in GRANULARITIES:
        raise ConfigurationError(
            f"Unknown granularity: {granularity}",
            details={"granularity": granularity, "allowed": list(GRANULARITIES)},
        )

    start = as_utc_datetime(timeline.start_date)
    end = as_utc_datetime(timeline.target_completion)
    if start is None or end is None or end <= start:
        raise ConfigurationError(
            "Timeline end must be after its start",
            details={
                "start_date": str(timeline.start_date),
                "target_completion": str(timeline.target_completion),
            },
        )

    axis = _Axis(start, end)
    critical = set(timeline.critical_path or [])
    milestones = list(timeline.milestones or []) if milestones is None else list(milestones)

    task_rows = []
    for t in tasks:
        t_start, t_end = _task_span(t, start)
        task_rows.append((t_start, t.id if t.id is not None else 0, t, t_end))
    task_rows.sort(key=lambda row: (row[0], row[1]))

    bars = []
    for t_start, _, t, t_end in task_rows:
        bars.append(GanttBar(
            id=t.id,
            name=t.title,
            kind="task",
            left_percent=axis.left(t_start),
            width_percent=axis.width(t_start, t_end, min_width),
            is_milestone=False,
            is_critical=t.id in critical,
            progress=float(100 if t.status == "completed" else (t.progress or 0)),
            status=t.status,
            start=t_start.isoformat(),
            end=t_end.isoformat(),
            dependencies=[d.task_id for d in (t.dependencies or [])],
        ))

    ms_rows = sorted(
        milestones,
        key=lambda m: (as_utc_datetime(m.target_date), m.id if m.id is not None else 0),
    )
    for m in ms_rows:
        at = as_utc_datetime(m.target_date)
        depends_on = list(m.depends_on_task_ids or [])
        bars.append(GanttBar(
            id=m.id,
            name=m.name,
            kind="milestone",
            left_percent=axis.left(at),
            width_percent=_round(milestone_width),
            is_milestone=True,
            is_critical=any(tid in critical for tid in depends_on),
            progress=float(m.progress or 0),
            status=m.status,
            start=at.isoformat(),
            end=at.isoformat(),
            dependencies=depends_on,
        ))

    current = as_utc_datetime(now) if now is not None else datetime.now(timezone.utc)
    today_percent = axis.left(current) if start <= current <= end else None

    logger.debug(
        "Gantt projected timeline=%s bars=%d granularity=%s",
        timeline.id, len(bars), granularity,
    )
    return GanttLayout(
        timeline_id=timeline.id,
        granularity=granularity,
        start=start.isoformat(),
        end=end.isoformat(),
        bars=bars,
        ticks=build_ticks(axis, granularity),
        today_percent=today_percent,
    )
