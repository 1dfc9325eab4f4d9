"""
tests/test_assignment_scorer.py — Assignment Scorer unit tests.

Covers:
    1.  Lower workload outranks higher workload (equal skill / availability)
    2.  Determinism of the ranked output
    3.  Score and reasoning bounds under extreme inputs
    4.  Workload contribution never increases with utilization
    5.  Stable ordering of equal scores (candidate input order)
    6.  Truncation to max_suggestions
    7.  Confidence bands
    8.  Empty candidate list degrades to a low-confidence empty result
    9.  Skill matching against framework / control / control family
    10. Option toggles (availability, skills)

Pure unit tests: transient Task objects, no database.
"""

from datetime import datetime, timedelta, timezone

import pytest

from app.models.orchestration import Task
from app.services.assignment_scorer import (
    CandidateProfile,
    PerformanceSignal,
    ScoringOptions,
    ScoringWeights,
    capacity_utilization,
    score_candidate,
    skill_match,
    suggest,
    task_skill_keys,
    workload_contribution,
)

NOW = datetime(2024, 3, 1, 9, 0, tzinfo=timezone.utc)


# ═════════════════════════════════════════════════════════════════════════════
# Helpers
# ═════════════════════════════════════════════════════════════════════════════


def _task(**kw):
    defaults = {"id": 1, "title": "Enable MFA", "framework": "NIST 800-171",
                "control_id": "AC-3.13", "estimated_hours": 8}
    defaults.update(kw)
    return Task(**defaults)


def _candidate(user_id, **kw):
    defaults = {"email": f"user{user_id}@example.com", "display_name": f"User {user_id}"}
    defaults.update(kw)
    return CandidateProfile(user_id=user_id, **defaults)


# ═════════════════════════════════════════════════════════════════════════════
# 1. Workload ranking
# ═════════════════════════════════════════════════════════════════════════════


class TestWorkloadRanking:

    def test_idle_candidate_outranks_fully_loaded_candidate(self):
        a = _candidate(1, active_tasks=0, estimated_hours=0)
        b = _candidate(2, active_tasks=5, estimated_hours=40)

        result = suggest(_task(), [b, a], ScoringOptions(consider_workload=True), now=NOW)

        scores = {s.user_id: s.score for s in result.suggestions}
        assert scores[1] > scores[2]
        assert result.suggestions[0].user_id == 1
        assert result.recommendation.recommended_user_id == 1

    def test_scores_follow_formula(self):
        a = score_candidate(_task(), _candidate(1, estimated_hours=0))
        b = score_candidate(_task(), _candidate(2, estimated_hours=40))
        # 50 + (100 - 0) * 0.3 + 20
        assert a.score == 100
        # 50 + (100 - 100) * 0.3 + 20
        assert b.score == 70
        assert b.current_workload["capacity_utilization"] == 100

    def test_utilization_capped_at_100(self):
        assert capacity_utilization(80, 40) == 100
        assert capacity_utilization(10, 40) == 25

    def test_zero_capacity_reads_as_fully_utilised(self):
        assert capacity_utilization(5, 0) == 100
        assert capacity_utilization(5, None) == 100


# ═════════════════════════════════════════════════════════════════════════════
# 2–5. Determinism, bounds, monotonicity, stable ties
# ═════════════════════════════════════════════════════════════════════════════


class TestProperties:

    def test_repeated_calls_return_identical_output(self):
        candidates = [_candidate(i, estimated_hours=i * 7.5, availability=30 + i * 10) for i in range(1, 8)]
        first = suggest(_task(), candidates, now=NOW).to_dict()
        second = suggest(_task(), candidates, now=NOW).to_dict()
        assert first == second

    def test_scores_and_reasoning_stay_in_bounds(self):
        candidates = [
            _candidate(1, estimated_hours=-5),
            _candidate(2, estimated_hours=1000),
            _candidate(3, weekly_capacity_hours=0),
            _candidate(4, availability=0),
            _candidate(5, availability=250),
            _candidate(6, skill_match=140),
            _candidate(7, performance=PerformanceSignal(completion_rate=150, quality_score=9, on_time_rate=-20)),
        ]
        for c in candidates:
            s = score_candidate(_task(), c)
            assert 0 <= s.score <= 100
            for key in ("skill_match", "workload_capacity", "previous_performance", "availability"):
                assert 0 <= s.reasoning[key] <= 100, key
            assert 0 <= s.current_workload["capacity_utilization"] <= 100

    def test_more_hours_never_raise_the_score(self):
        previous = None
        for hours in range(0, 90, 5):
            s = score_candidate(_task(), _candidate(1, estimated_hours=hours))
            if previous is not None:
                assert s.score <= previous
            previous = s.score

    def test_workload_contribution_is_non_increasing(self):
        values = [workload_contribution(u) for u in range(0, 101, 10)]
        assert values == sorted(values, reverse=True)
        assert values[0] == pytest.approx(30.0)
        assert values[-1] == 0

    def test_equal_scores_keep_input_order(self):
        candidates = [_candidate(3), _candidate(1), _candidate(2)]
        result = suggest(_task(), candidates, now=NOW)
        assert [s.user_id for s in result.suggestions] == [3, 1, 2]


# ═════════════════════════════════════════════════════════════════════════════
# 6–8. Truncation, confidence, empty input
# ═════════════════════════════════════════════════════════════════════════════


class TestSuggestionResult:

    def test_default_truncation_is_five(self):
        candidates = [_candidate(i) for i in range(1, 8)]
        assert len(suggest(_task(), candidates, now=NOW).suggestions) == 5

    def test_max_suggestions_option(self):
        candidates = [_candidate(i) for i in range(1, 8)]
        result = suggest(_task(), candidates, ScoringOptions(max_suggestions=2), now=NOW)
        assert len(result.suggestions) == 2

    def test_weights_control_default_truncation(self):
        candidates = [_candidate(i) for i in range(1, 8)]
        result = suggest(_task(), candidates, weights=ScoringWeights(max_suggestions=3), now=NOW)
        assert len(result.suggestions) == 3

    def test_confidence_high(self):
        result = suggest(_task(), [_candidate(1)], now=NOW)
        assert result.recommendation.confidence == "high"

    def test_confidence_medium(self):
        options = ScoringOptions(consider_workload=False)
        result = suggest(_task(), [_candidate(1)], options, now=NOW)
        assert result.suggestions[0].score == 70
        assert result.recommendation.confidence == "medium"

    def test_confidence_low(self):
        options = ScoringOptions(consider_workload=False, consider_availability=False)
        result = suggest(_task(), [_candidate(1)], options, now=NOW)
        assert result.suggestions[0].score == 50
        assert result.recommendation.confidence == "low"

    def test_empty_candidates_never_raise(self):
        result = suggest(_task(estimated_hours=None), [], now=NOW)
        assert result.suggestions == []
        assert result.recommendation.recommended_user_id is None
        assert result.recommendation.confidence == "low"
        assert result.recommendation.expected_completion == NOW + timedelta(hours=8)

    def test_expected_completion_uses_estimated_hours(self):
        result = suggest(_task(estimated_hours=16), [_candidate(1)], now=NOW)
        assert result.recommendation.expected_completion == NOW + timedelta(hours=16)

    def test_to_dict_shape(self):
        body = suggest(_task(), [_candidate(1)], now=NOW).to_dict()
        assert set(body) == {"suggestions", "assignment_recommendation"}
        assert body["assignment_recommendation"]["recommended_user"] == 1
        entry = body["suggestions"][0]
        assert set(entry["reasoning"]) == {
            "skill_match", "workload_capacity", "previous_performance", "availability",
        }
        assert set(entry["current_workload"]) == {
            "active_tasks", "estimated_hours", "capacity_utilization",
        }


# ═════════════════════════════════════════════════════════════════════════════
# 9–10. Skills and option toggles
# ═════════════════════════════════════════════════════════════════════════════


class TestSkillsAndOptions:

    def test_task_skill_keys_include_control_family(self):
        assert task_skill_keys(_task()) == {"nist 800-171", "ac-3.13", "ac"}

    def test_skill_match_share_of_keys(self):
        c = _candidate(1, skill_tags=["NIST 800-171", "AC"])
        assert skill_match(c, _task()) == pytest.approx(66.67)
        s = score_candidate(_task(), c)
        assert s.relevant_skills == ["NIST 800-171", "AC"]

    def test_skill_match_neutral_without_task_keys(self):
        task = _task(framework=None, control_id=None)
        assert skill_match(_candidate(1, skill_tags=["ISO"]), task) == 75

    def test_skills_do_not_change_score(self):
        skilled = score_candidate(_task(), _candidate(1, skill_tags=["AC"]))
        unskilled = score_candidate(_task(), _candidate(2))
        assert skilled.score == unskilled.score

    def test_consider_skills_off_hides_skill_detail(self):
        c = _candidate(1, skill_tags=["AC"])
        s = score_candidate(_task(), c, ScoringOptions(consider_skills=False))
        assert s.relevant_skills == []
        assert s.reasoning["skill_match"] == 75

    def test_unavailable_candidate_gets_no_bonus(self):
        s = score_candidate(_task(), _candidate(1, availability=30))
        assert s.score == 80

    def test_weights_from_config(self):
        weights = ScoringWeights.from_config({"ASSIGNMENT_BASE_SCORE": 40, "ASSIGNMENT_AVAILABILITY_BONUS": 0})
        s = score_candidate(_task(), _candidate(1), weights=weights)
        assert s.score == 70

    def test_performance_score_on_percent_scale(self):
        perf = PerformanceSignal(completion_rate=90, quality_score=4.5, on_time_rate=90)
        assert perf.as_score() == 90
