"""Tests for the contractor reliability scoring model."""

from __future__ import annotations

from escrow_marketplace.domain.policy_config import ReliabilityWeights
from escrow_marketplace.domain.reliability import (
    NEUTRAL_SCORE,
    ReliabilityCounters,
    ReliabilityDelta,
    ReliabilityMetrics,
    compute_reliability_eligibility,
    compute_reliability_metrics,
    compute_reliability_score,
    merge_delta,
)

WEIGHTS = ReliabilityWeights()


class TestMetrics:
    def test_new_contractor_is_neutral(self) -> None:
        metrics = compute_reliability_metrics(ReliabilityCounters())
        assert metrics.show_up_rate == NEUTRAL_SCORE
        assert metrics.proof_completeness == NEUTRAL_SCORE
        assert metrics.on_time_rate == NEUTRAL_SCORE
        assert metrics.dispute_score == 100
        # default median of 120 minutes
        assert metrics.response_time_score == 80

    def test_ratios_round_half_up(self) -> None:
        counters = ReliabilityCounters(appointments_total=8, appointments_attended=1)
        assert compute_reliability_metrics(counters).show_up_rate == 13

    def test_dispute_penalty(self) -> None:
        counters = ReliabilityCounters(completions_total=10, disputes_total=3)
        assert compute_reliability_metrics(counters).dispute_score == 70

    def test_dispute_score_floors_at_zero(self) -> None:
        counters = ReliabilityCounters(completions_total=2, disputes_total=5)
        assert compute_reliability_metrics(counters).dispute_score == 0

    def test_response_time_clamped(self) -> None:
        slow = ReliabilityCounters(response_median_minutes=900)
        fast = ReliabilityCounters(response_median_minutes=30)
        assert compute_reliability_metrics(slow).response_time_score == 0
        assert compute_reliability_metrics(fast).response_time_score == 95


class TestScore:
    def test_neutral_composite(self) -> None:
        metrics = compute_reliability_metrics(ReliabilityCounters())
        assert compute_reliability_score(metrics, WEIGHTS) == 66

    def test_perfect_contractor(self) -> None:
        counters = ReliabilityCounters(
            appointments_total=10,
            appointments_attended=10,
            completions_total=10,
            completions_on_time=10,
            proof_submissions_total=10,
            proof_submissions_complete=10,
            response_median_minutes=0,
        )
        metrics = compute_reliability_metrics(counters)
        assert compute_reliability_score(metrics, WEIGHTS) == 100

    def test_weights_need_not_sum_to_one(self) -> None:
        metrics = ReliabilityMetrics(100, 0, 0, 0, 0)
        weights = ReliabilityWeights(
            show_up=2, response_time=2, dispute=0, proof_completeness=0, on_time=0
        )
        assert compute_reliability_score(metrics, weights) == 50

    def test_zero_weights_do_not_divide_by_zero(self) -> None:
        weights = ReliabilityWeights(
            show_up=0, response_time=0, dispute=0, proof_completeness=0, on_time=0
        )
        assert compute_reliability_score(ReliabilityMetrics(), weights) == 0


class TestEligibility:
    def test_thresholds_are_inclusive(self) -> None:
        eligibility = compute_reliability_eligibility(80, WEIGHTS)
        assert eligibility.auto_release
        assert eligibility.large_jobs
        assert not eligibility.high_ticket

    def test_low_score(self) -> None:
        eligibility = compute_reliability_eligibility(40, WEIGHTS)
        assert eligibility.to_dict() == {
            "auto_release": False,
            "large_jobs": False,
            "high_ticket": False,
        }


class TestMergeDelta:
    def test_counters_are_added(self) -> None:
        counters = ReliabilityCounters(appointments_total=2, appointments_attended=1)
        merged = merge_delta(
            counters, ReliabilityDelta(appointments_total=1, appointments_attended=1)
        )
        assert merged.appointments_total == 3
        assert merged.appointments_attended == 2

    def test_median_replaced_only_when_given(self) -> None:
        counters = ReliabilityCounters(response_median_minutes=45)
        assert merge_delta(counters, ReliabilityDelta()).response_median_minutes == 45
        replaced = merge_delta(counters, ReliabilityDelta(response_median_minutes=10))
        assert replaced.response_median_minutes == 10

    def test_empty_delta(self) -> None:
        assert ReliabilityDelta().is_empty()
        assert ReliabilityDelta().to_dict() == {}
        assert ReliabilityDelta(disputes_total=1).to_dict() == {"disputes_total": 1}


class TestReferenceProfiles:
    def test_dependable_contractor(self) -> None:
        counters = ReliabilityCounters(
            appointments_total=10,
            appointments_attended=9,
            completions_total=10,
            completions_on_time=9,
            disputes_total=1,
            proof_submissions_total=10,
            proof_submissions_complete=10,
            response_median_minutes=25,
        )
        score = compute_reliability_score(compute_reliability_metrics(counters), WEIGHTS)
        eligibility = compute_reliability_eligibility(score, WEIGHTS)

        assert score == 93
        assert eligibility.auto_release
        assert eligibility.large_jobs

    def test_degraded_contractor(self) -> None:
        counters = ReliabilityCounters(
            appointments_total=10,
            appointments_attended=4,
            completions_total=10,
            completions_on_time=9,
            disputes_total=4,
            proof_submissions_total=10,
            proof_submissions_complete=10,
            response_median_minutes=900,
        )
        score = compute_reliability_score(compute_reliability_metrics(counters), WEIGHTS)
        eligibility = compute_reliability_eligibility(score, WEIGHTS)

        assert score < WEIGHTS.large_jobs_threshold
        assert not eligibility.auto_release
        assert not eligibility.high_ticket
