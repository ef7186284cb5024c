"""Contractor reliability scoring model.

Raw lifetime counters are turned into five 0-100 sub-scores, a single
weight-normalised composite, and three independent eligibility gates.

Sub-scores:
    show_up             attended / appointments
    response_time       100 - median_minutes / 6, clamped to [0, 100]
    dispute             100 - disputes / completions * 100, floor 0
    proof_completeness  complete proofs / proofs submitted
    on_time             on-time completions / completions

A ratio with a zero denominator scores a neutral 50. Rounding is half-up.
"""

from __future__ import annotations

import math
from dataclasses import asdict, dataclass, replace
from typing import TYPE_CHECKING

if TYPE_CHECKING:
    from escrow_marketplace.domain.policy_config import ReliabilityWeights

NEUTRAL_SCORE = 50
DEFAULT_RESPONSE_MEDIAN_MINUTES = 120


def _round_half_up(value: float) -> int:
    return math.floor(value + 0.5)


def _clamp(value: int, low: int = 0, high: int = 100) -> int:
    return max(low, min(high, value))


def _ratio_score(numerator: int, denominator: int) -> int:
    if denominator <= 0:
        return NEUTRAL_SCORE
    return _clamp(_round_half_up(numerator / denominator * 100))


@dataclass(frozen=True)
class ReliabilityCounters:
    appointments_total: int = 0
    appointments_attended: int = 0
    disputes_total: int = 0
    completions_total: int = 0
    completions_on_time: int = 0
    proof_submissions_total: int = 0
    proof_submissions_complete: int = 0
    response_samples: int = 0
    response_median_minutes: float = DEFAULT_RESPONSE_MEDIAN_MINUTES

    def to_dict(self) -> dict:
        return asdict(self)


@dataclass(frozen=True)
class ReliabilityDelta:
    """Incremental change merged into stored counters.

    Counter fields are added; ``response_median_minutes`` replaces the stored
    median when given.
    """

    appointments_total: int = 0
    appointments_attended: int = 0
    disputes_total: int = 0
    completions_total: int = 0
    completions_on_time: int = 0
    proof_submissions_total: int = 0
    proof_submissions_complete: int = 0
    response_samples: int = 0
    response_median_minutes: float | None = None

    def is_empty(self) -> bool:
        return self == ReliabilityDelta()

    def to_dict(self) -> dict:
        return {k: v for k, v in asdict(self).items() if v}


@dataclass(frozen=True)
class ReliabilityMetrics:
    show_up_rate: int = NEUTRAL_SCORE
    response_time_score: int = NEUTRAL_SCORE
    dispute_score: int = NEUTRAL_SCORE
    proof_completeness: int = NEUTRAL_SCORE
    on_time_rate: int = NEUTRAL_SCORE

    def to_dict(self) -> dict:
        return asdict(self)


@dataclass(frozen=True)
class ReliabilityEligibility:
    auto_release: bool = False
    large_jobs: bool = False
    high_ticket: bool = False

    def to_dict(self) -> dict:
        return asdict(self)


def merge_delta(counters: ReliabilityCounters, delta: ReliabilityDelta) -> ReliabilityCounters:
    """Add ``delta`` to ``counters`` without touching fields the delta leaves at zero."""
    median = counters.response_median_minutes
    if delta.response_median_minutes is not None:
        median = delta.response_median_minutes
    return replace(
        counters,
        appointments_total=counters.appointments_total + delta.appointments_total,
        appointments_attended=counters.appointments_attended + delta.appointments_attended,
        disputes_total=counters.disputes_total + delta.disputes_total,
        completions_total=counters.completions_total + delta.completions_total,
        completions_on_time=counters.completions_on_time + delta.completions_on_time,
        proof_submissions_total=counters.proof_submissions_total + delta.proof_submissions_total,
        proof_submissions_complete=(
            counters.proof_submissions_complete + delta.proof_submissions_complete
        ),
        response_samples=counters.response_samples + delta.response_samples,
        response_median_minutes=median,
    )


def compute_reliability_metrics(counters: ReliabilityCounters) -> ReliabilityMetrics:
    response = _clamp(_round_half_up(100 - counters.response_median_minutes / 6))

    if counters.completions_total <= 0:
        dispute_penalty = 0
    else:
        dispute_penalty = _round_half_up(
            counters.disputes_total / counters.completions_total * 100
        )

    return ReliabilityMetrics(
        show_up_rate=_ratio_score(counters.appointments_attended, counters.appointments_total),
        response_time_score=response,
        dispute_score=_clamp(100 - dispute_penalty),
        proof_completeness=_ratio_score(
            counters.proof_submissions_complete, counters.proof_submissions_total
        ),
        on_time_rate=_ratio_score(counters.completions_on_time, counters.completions_total),
    )


def compute_reliability_score(metrics: ReliabilityMetrics, weights: ReliabilityWeights) -> int:
    """Weight-normalised composite; weights need not sum to 1."""
    pairs = (
        (metrics.show_up_rate, weights.show_up),
        (metrics.response_time_score, weights.response_time),
        (metrics.dispute_score, weights.dispute),
        (metrics.proof_completeness, weights.proof_completeness),
        (metrics.on_time_rate, weights.on_time),
    )
    total_weight = sum(w for _, w in pairs)
    if total_weight <= 0:
        total_weight = 1
    return _round_half_up(sum(m * w for m, w in pairs) / total_weight)


def compute_reliability_eligibility(
    score: int, weights: ReliabilityWeights
) -> ReliabilityEligibility:
    return ReliabilityEligibility(
        auto_release=score >= weights.auto_release_threshold,
        large_jobs=score >= weights.large_jobs_threshold,
        high_ticket=score >= weights.high_ticket_threshold,
    )
