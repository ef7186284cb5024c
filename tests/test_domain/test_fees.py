"""Tests for platform fee calculation."""

from __future__ import annotations

import pytest

from escrow_marketplace.domain.exceptions import FailedPreconditionError, InvalidArgumentError
from escrow_marketplace.domain.fees import (
    TieredFeeSummary,
    calculate_fee,
    calculate_platform_fee,
    calculate_tiered_fee,
    resolve_tier,
)
from escrow_marketplace.domain.policy_config import FeeConfig, FeeTier, PlanFeeOverride

TIERS = [
    FeeTier(id="small", min_amount_cents=0, max_amount_cents=99_999, percent_bps=800),
    FeeTier(
        id="medium",
        min_amount_cents=100_000,
        max_amount_cents=499_999,
        percent_bps=600,
        fixed_fee_cents=100,
        plan_overrides={"pro": PlanFeeOverride(percent_bps=300)},
    ),
    FeeTier(id="large", min_amount_cents=500_000, percent_bps=400),
]


class TestFlatFee:
    def test_default_rate(self) -> None:
        fee = calculate_fee(85000, 500, 0)
        assert fee.fee_cents == 4250
        assert fee.net_payout_cents == 80750
        assert fee.gross_amount_cents == 85000

    def test_percent_is_floored_before_fixed_component(self) -> None:
        # 999 * 5% = 49.95 -> 49, plus 30 fixed
        fee = calculate_fee(999, 500, 30)
        assert fee.fee_cents == 79

    def test_net_payout_clamped_at_zero(self) -> None:
        fee = calculate_fee(100, 0, 500)
        assert fee.fee_cents == 500
        assert fee.net_payout_cents == 0

    @pytest.mark.parametrize("amount", [0, -1])
    def test_non_positive_amount_rejected(self, amount: int) -> None:
        with pytest.raises(InvalidArgumentError):
            calculate_fee(amount, 500, 0)

    def test_negative_rate_rejected(self) -> None:
        with pytest.raises(InvalidArgumentError):
            calculate_fee(1000, -1, 0)


class TestTieredFee:
    def test_tier_selected_by_amount(self) -> None:
        fee = calculate_tiered_fee(85000, TIERS)
        assert isinstance(fee, TieredFeeSummary)
        assert fee.tier_id == "small"
        assert fee.fee_cents == 6800

    def test_boundaries_are_inclusive(self) -> None:
        assert resolve_tier(99_999, TIERS).id == "small"
        assert resolve_tier(100_000, TIERS).id == "medium"
        assert resolve_tier(10_000_000, TIERS).id == "large"

    def test_plan_override_replaces_percent_only(self) -> None:
        fee = calculate_tiered_fee(200_000, TIERS, plan_id="pro")
        assert fee.applied_percent_bps == 300
        assert fee.applied_fixed_fee_cents == 100
        assert fee.fee_cents == 6100

    def test_unknown_plan_uses_tier_rates(self) -> None:
        fee = calculate_tiered_fee(200_000, TIERS, plan_id="basic")
        assert fee.applied_percent_bps == 600

    def test_gap_in_schedule_is_a_precondition_failure(self) -> None:
        tiers = [FeeTier(id="big", min_amount_cents=1000, percent_bps=100)]
        with pytest.raises(FailedPreconditionError):
            calculate_tiered_fee(500, tiers)

    def test_empty_schedule_rejected(self) -> None:
        with pytest.raises(FailedPreconditionError):
            calculate_tiered_fee(500, [])

    def test_overlapping_tiers_prefer_lowest_lower_bound(self) -> None:
        tiers = [
            FeeTier(id="b", min_amount_cents=500, percent_bps=100),
            FeeTier(id="a", min_amount_cents=0, max_amount_cents=1000, percent_bps=200),
        ]
        assert resolve_tier(700, tiers).id == "a"


class TestPlatformFee:
    def test_flat_when_no_tiers(self) -> None:
        fee = calculate_platform_fee(10_000, FeeConfig(percent_bps=1000, fixed_fee_cents=25))
        assert fee.fee_cents == 1025

    def test_tiered_when_configured(self) -> None:
        fee = calculate_platform_fee(10_000, FeeConfig(tiers=TIERS))
        assert fee.fee_cents == 800


class TestWorkedExamples:
    def test_flat_fee(self) -> None:
        summary = calculate_fee(100_000, 500, 300)
        assert (summary.gross_amount_cents, summary.fee_cents, summary.net_payout_cents) == (
            100_000,
            5_300,
            94_700,
        )

    def test_fee_larger_than_amount_pays_out_nothing(self) -> None:
        assert calculate_fee(1_000, 9_000, 1_000).net_payout_cents == 0

    def test_plan_override_on_standard_tier(self) -> None:
        tiers = [
            FeeTier(id="starter", min_amount_cents=0, max_amount_cents=99_999, percent_bps=900),
            FeeTier(
                id="standard",
                min_amount_cents=100_000,
                max_amount_cents=500_000,
                percent_bps=700,
                plan_overrides={"contractor_pro": PlanFeeOverride(percent_bps=500)},
            ),
        ]

        summary = calculate_tiered_fee(200_000, tiers, "contractor_pro")

        assert summary.tier_id == "standard"
        assert summary.applied_percent_bps == 500
        assert summary.fee_cents == 10_000
        assert summary.net_payout_cents == 190_000
