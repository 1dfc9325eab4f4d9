"""
Assignment Scorer — ranks candidate assignees for an orchestration task.

Score shape (all terms additive and independent, result clamped to 0..100):

    score  = base_score                                   (50)
           + (100 - capacity_utilization) * workload_weight   if consider_workload   (0.3)
           + availability_bonus                          if consider_availability
                                                         and the candidate is available (20)

    capacity_utilization = min(100, estimated_hours / weekly_capacity * 100)

Ranking is a stable descending sort on score, so equal scores keep the
candidate input order (the DirectoryProvider lists candidates by user id).

Pure module: no database or Flask access. The only impure input is the wall
clock used for ``expected_completion``; callers may pass ``now``.
"""

from __future__ import annotations

import logging
from dataclasses import dataclass, field
from datetime import datetime, timedelta, timezone
from typing import Any, Iterable, Mapping

logger = logging.getLogger(__name__)


# ═════════════════════════════════════════════════════════════════════════════
# Tunables
# ═════════════════════════════════════════════════════════════════════════════

BASE_SCORE = 50.0
WORKLOAD_WEIGHT = 0.3
AVAILABILITY_BONUS = 20.0
DEFAULT_WEEKLY_CAPACITY_HOURS = 40.0
DEFAULT_TASK_HOURS = 8.0
DEFAULT_MAX_SUGGESTIONS = 5

# Candidate counts as "available" at or above this share of free time
AVAILABILITY_THRESHOLD = 50.0

# Reported when there is nothing to compare a candidate's skills against
NEUTRAL_SKILL_MATCH = 75.0

CONFIDENCE_HIGH_MIN = 80.0
CONFIDENCE_MEDIUM_MIN = 60.0


def _clamp(value: float, low: float = 0.0, high: float = 100.0) -> float:
    return max(low, min(high, value))


@dataclass(frozen=True)
class ScoringWeights:
    """Heuristic constants of the scoring formula, overridable from app config."""

    base_score: float = BASE_SCORE
    workload_weight: float = WORKLOAD_WEIGHT
    availability_bonus: float = AVAILABILITY_BONUS
    weekly_capacity_hours: float = DEFAULT_WEEKLY_CAPACITY_HOURS
    default_task_hours: float = DEFAULT_TASK_HOURS
    max_suggestions: int = DEFAULT_MAX_SUGGESTIONS

    @classmethod
    def from_config(cls, cfg: Mapping[str, Any]) -> "ScoringWeights":
        return cls(
            base_score=float(cfg.get("ASSIGNMENT_BASE_SCORE", BASE_SCORE)),
            workload_weight=float(cfg.get("ASSIGNMENT_WORKLOAD_WEIGHT", WORKLOAD_WEIGHT)),
            availability_bonus=float(cfg.get("ASSIGNMENT_AVAILABILITY_BONUS", AVAILABILITY_BONUS)),
            weekly_capacity_hours=float(
                cfg.get("ASSIGNMENT_WEEKLY_CAPACITY_HOURS", DEFAULT_WEEKLY_CAPACITY_HOURS)
            ),
            default_task_hours=float(cfg.get("ASSIGNMENT_DEFAULT_TASK_HOURS", DEFAULT_TASK_HOURS)),
            max_suggestions=int(cfg.get("ASSIGNMENT_MAX_SUGGESTIONS", DEFAULT_MAX_SUGGESTIONS)),
        )


# ═════════════════════════════════════════════════════════════════════════════
# Inputs
# ═════════════════════════════════════════════════════════════════════════════


@dataclass(frozen=True)
class PerformanceSignal:
    """Recent delivery record. Rates are percentages; quality is on a 0–5 scale."""

    completion_rate: float = 85.0
    quality_score: float = 4.2
    on_time_rate: float = 80.0

    def as_score(self) -> float:
        quality_pct = _clamp(self.quality_score / 5.0 * 100.0)
        parts = (_clamp(self.completion_rate), quality_pct, _clamp(self.on_time_rate))
        return round(sum(parts) / len(parts), 2)

    def to_dict(self) -> dict:
        return {
            "completion_rate": self.completion_rate,
            "avg_quality_score": self.quality_score,
            "on_time_delivery": self.on_time_rate,
        }


@dataclass
class CandidateProfile:
    """Snapshot of one candidate as supplied by the DirectoryProvider."""

    user_id: int
    email: str = ""
    display_name: str = ""
    active_tasks: int = 0
    estimated_hours: float = 0.0
    weekly_capacity_hours: float | None = None
    skill_tags: list[str] = field(default_factory=list)
    skill_match: float | None = None
    performance: PerformanceSignal = field(default_factory=PerformanceSignal)
    availability: float = 90.0

    @property
    def is_available(self) -> bool:
        return self.availability >= AVAILABILITY_THRESHOLD


@dataclass(frozen=True)
class ScoringOptions:
    consider_workload: bool = True
    consider_skills: bool = True
    consider_availability: bool = True
    max_suggestions: int | None = None


# ═════════════════════════════════════════════════════════════════════════════
# Outputs
# ═════════════════════════════════════════════════════════════════════════════


@dataclass
class AssignmentSuggestion:
    """Computed, never-stored ranking entry for one candidate."""

    user_id: int
    name: str
    email: str
    score: float
    reasoning: dict
    current_workload: dict
    relevant_skills: list[str] = field(default_factory=list)
    recent_performance: dict = field(default_factory=dict)

    def to_dict(self) -> dict:
        return {
            "user_id": self.user_id,
            "name": self.name,
            "email": self.email,
            "score": self.score,
            "reasoning": dict(self.reasoning),
            "current_workload": dict(self.current_workload),
            "relevant_skills": list(self.relevant_skills),
            "recent_performance": dict(self.recent_performance),
        }


@dataclass
class AssignmentRecommendation:
    recommended_user_id: int | None
    confidence: str
    expected_completion: datetime

    def to_dict(self) -> dict:
        return {
            "recommended_user": self.recommended_user_id,
            "confidence": self.confidence,
            "expected_completion": self.expected_completion.isoformat(),
        }


@dataclass
class SuggestionResult:
    suggestions: list[AssignmentSuggestion]
    recommendation: AssignmentRecommendation

    def to_dict(self) -> dict:
        return {
            "suggestions": [s.to_dict() for s in self.suggestions],
            "assignment_recommendation": self.recommendation.to_dict(),
        }


# ═════════════════════════════════════════════════════════════════════════════
# Scoring terms
# ═════════════════════════════════════════════════════════════════════════════


def capacity_utilization(estimated_hours: float, weekly_capacity: float | None) -> float:
    """Committed hours as a percentage of weekly capacity, capped at 100.

    A non-positive capacity means the person has no room at all and reads
    as fully utilised instead of dividing by zero.
    """
    hours = max(0.0, float(estimated_hours or 0.0))
    if not weekly_capacity or weekly_capacity <= 0:
        logger.warning("Non-positive weekly capacity, treating candidate as fully utilised")
        return 100.0
    return round(min(100.0, hours / weekly_capacity * 100.0), 2)


def workload_contribution(utilization: float, weights: ScoringWeights | None = None) -> float:
    """Score points earned for spare capacity; never increases with utilization."""
    weights = weights or ScoringWeights()
    return (100.0 - _clamp(utilization)) * weights.workload_weight


def task_skill_keys(task) -> set[str]:
    """Lower-cased keys a candidate's skill tags are matched against.

    ``framework="NIST 800-171", control_id="AC-3.13"`` yields
    ``{"nist 800-171", "ac-3.13", "ac"}``: the framework, the control and
    its control family.
    """
    keys = set()
    framework = (getattr(task, "framework", None) or "").strip().lower()
    control_id = (getattr(task, "control_id", None) or "").strip().lower()
    if framework:
        keys.add(framework)
    if control_id:
        keys.add(control_id)
        family = control_id.replace(".", "-").split("-")[0]
        if family:
            keys.add(family)
    return keys


def relevant_skills(candidate: CandidateProfile, task) -> list[str]:
    keys = task_skill_keys(task)
    return [tag for tag in candidate.skill_tags if tag and tag.strip().lower() in keys]


def skill_match(candidate: CandidateProfile, task) -> float:
    """Share of the task's skill keys covered by the candidate's tags (0..100)."""
    if candidate.skill_match is not None:
        return round(_clamp(float(candidate.skill_match)), 2)
    keys = task_skill_keys(task)
    if not keys:
        return NEUTRAL_SKILL_MATCH
    covered = {tag.strip().lower() for tag in candidate.skill_tags if tag} & keys
    return round(len(covered) / len(keys) * 100.0, 2)


def confidence_for(score: float | None) -> str:
    if score is None:
        return "low"
    if score >= CONFIDENCE_HIGH_MIN:
        return "high"
    if score >= CONFIDENCE_MEDIUM_MIN:
        return "medium"
    return "low"


def score_candidate(
    task,
    candidate: CandidateProfile,
    options: ScoringOptions | None = None,
    weights: ScoringWeights | None = None,
) -> AssignmentSuggestion:
    """Compute the 0..100 match score and its reasoning for one candidate."""
    options = options or ScoringOptions()
    weights = weights or ScoringWeights()

    capacity = candidate.weekly_capacity_hours
    if capacity is None:
        capacity = weights.weekly_capacity_hours
    utilization = capacity_utilization(candidate.estimated_hours, capacity)

    score = weights.base_score
    if options.consider_workload:
        score += workload_contribution(utilization, weights)
    if options.consider_availability and candidate.is_available:
        score += weights.availability_bonus
    score = round(_clamp(score), 2)

    if options.consider_skills:
        skills = relevant_skills(candidate, task)
        skill_pct = skill_match(candidate, task)
    else:
        skills = []
        skill_pct = NEUTRAL_SKILL_MATCH

    return AssignmentSuggestion(
        user_id=candidate.user_id,
        name=candidate.display_name or candidate.email,
        email=candidate.email,
        score=score,
        reasoning={
            "skill_match": skill_pct,
            "workload_capacity": round(100.0 - utilization, 2),
            "previous_performance": _clamp(candidate.performance.as_score()),
            "availability": round(_clamp(candidate.availability), 2),
        },
        current_workload={
            "active_tasks": candidate.active_tasks,
            "estimated_hours": candidate.estimated_hours,
            "capacity_utilization": utilization,
        },
        relevant_skills=skills,
        recent_performance=candidate.performance.to_dict(),
    )


def expected_completion(task, weights: ScoringWeights | None = None, now: datetime | None = None) -> datetime:
    """Wall-clock estimate: now + the task's estimated hours (default 8h)."""
    weights = weights or ScoringWeights()
    now = now or datetime.now(timezone.utc)
    hours = getattr(task, "estimated_hours", None)
    if hours is None or hours <= 0:
        hours = weights.default_task_hours
    return now + timedelta(hours=hours)


# ═════════════════════════════════════════════════════════════════════════════
# Entry point
# ═════════════════════════════════════════════════════════════════════════════


def suggest(
    task,
    candidates: Iterable[CandidateProfile],
    options: ScoringOptions | None = None,
    weights: ScoringWeights | None = None,
    now: datetime | None = None,
) -> SuggestionResult:
    """Rank ``candidates`` for ``task`` and produce an assignment recommendation.

    Args:
        task: Any object exposing ``framework``, ``control_id`` and
            ``estimated_hours`` (normally an orchestration Task).
        candidates: Candidate snapshots in directory order.
        options: Which signals participate in the score and how many
            suggestions to keep (default from ``weights.max_suggestions``).
        weights: Scoring constants; module defaults when omitted.
        now: Clock reading for ``expected_completion``.

    Returns:
        SuggestionResult; empty suggestions and a ``low`` confidence
        recommendation with no user when there are no candidates.
    """
    options = options or ScoringOptions()
    weights = weights or ScoringWeights()
    candidates = list(candidates)
    completion = expected_completion(task, weights, now)

    if not candidates:
        logger.warning(
            "No assignment candidates for task=%s, returning empty suggestions",
            getattr(task, "id", None),
        )
        return SuggestionResult(
            suggestions=[],
            recommendation=AssignmentRecommendation(
                recommended_user_id=None,
                confidence="low",
                expected_completion=completion,
            ),
        )

    scored = [score_candidate(task, c, options, weights) for c in candidates]
    # sorted() is stable: equal scores keep candidate input order
    ranked = sorted(scored, key=lambda s: -s.score)

    limit = options.max_suggestions
    if limit is None:
        limit = weights.max_suggestions
    top = ranked[: max(0, limit)]

    best = top[0] if top else None
    recommendation = AssignmentRecommendation(
        recommended_user_id=best.user_id if best else None,
        confidence=confidence_for(best.score if best else None),
        expected_completion=completion,
    )
    logger.debug(
        "Scored %d candidates for task=%s top=%s confidence=%s",
        len(scored), getattr(task, "id", None),
        recommendation.recommended_user_id, recommendation.confidence,
    )
    return SuggestionResult(suggestions=top, recommendation=recommendation)
