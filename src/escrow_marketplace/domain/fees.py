"""Platform fee calculation.

All amounts are integer cents and all rates are basis points (1 bps = 0.01%).
The fee is floored, then the fixed component is added; the net payout is
clamped at zero so a large fixed fee can consume the whole amount but never
produce a negative payout.
"""

from __future__ import annotations

from dataclasses import dataclass
from typing import TYPE_CHECKING

from escrow_marketplace.domain.exceptions import (
    FailedPreconditionError,
    InvalidArgumentError,
)

if TYPE_CHECKING:
    from collections.abc import Sequence

    from escrow_marketplace.domain.policy_config import FeeConfig, FeeTier

BPS_DENOMINATOR = 10_000


@dataclass(frozen=True)
class FeeSummary:
    gross_amount_cents: int
    fee_cents: int
    net_payout_cents: int

    def to_dict(self) -> dict:
        return {
            "gross_amount_cents": self.gross_amount_cents,
            "fee_cents": self.fee_cents,
            "net_payout_cents": self.net_payout_cents,
        }


@dataclass(frozen=True)
class TieredFeeSummary(FeeSummary):
    tier_id: str = ""
    applied_percent_bps: int = 0
    applied_fixed_fee_cents: int = 0

    def to_dict(self) -> dict:
        return {
            **super().to_dict(),
            "tier_id": self.tier_id,
            "applied_percent_bps": self.applied_percent_bps,
            "applied_fixed_fee_cents": self.applied_fixed_fee_cents,
        }


def calculate_fee(amount_cents: int, percent_bps: int, fixed_fee_cents: int) -> FeeSummary:
    """Compute the flat platform fee on ``amount_cents``.

    Raises:
        InvalidArgumentError: amount is not positive or a rate is negative.
    """
    if amount_cents <= 0:
        raise InvalidArgumentError("amount_cents must be positive")
    if percent_bps < 0 or fixed_fee_cents < 0:
        raise InvalidArgumentError("Fee rates cannot be negative")

    fee = (amount_cents * percent_bps) // BPS_DENOMINATOR + fixed_fee_cents
    return FeeSummary(
        gross_amount_cents=amount_cents,
        fee_cents=fee,
        net_payout_cents=max(0, amount_cents - fee),
    )


def resolve_tier(amount_cents: int, tiers: Sequence[FeeTier]) -> FeeTier | None:
    """Pick the tier containing ``amount_cents``, preferring the lowest lower bound."""
    for tier in sorted(tiers, key=lambda t: t.min_amount_cents):
        if tier.contains(amount_cents):
            return tier
    return None


def calculate_tiered_fee(
    amount_cents: int,
    tiers: Sequence[FeeTier],
    plan_id: str | None = None,
) -> TieredFeeSummary:
    """Compute the fee from a tier schedule, honouring subscription-plan overrides.

    Raises:
        FailedPreconditionError: no tiers are configured, or none matches.
        InvalidArgumentError: amount is not positive.
    """
    if not tiers:
        raise FailedPreconditionError("No fee tiers are configured")
    if amount_cents <= 0:
        raise InvalidArgumentError("amount_cents must be positive")

    tier = resolve_tier(amount_cents, tiers)
    if tier is None:
        raise FailedPreconditionError(f"No fee tier matches amount {amount_cents}")

    percent_bps = tier.percent_bps
    fixed_fee_cents = tier.fixed_fee_cents
    override = tier.plan_overrides.get(plan_id) if plan_id else None
    if override is not None:
        if override.percent_bps is not None:
            percent_bps = override.percent_bps
        if override.fixed_fee_cents is not None:
            fixed_fee_cents = override.fixed_fee_cents

    flat = calculate_fee(amount_cents, percent_bps, fixed_fee_cents)
    return TieredFeeSummary(
        gross_amount_cents=flat.gross_amount_cents,
        fee_cents=flat.fee_cents,
        net_payout_cents=flat.net_payout_cents,
        tier_id=tier.id,
        applied_percent_bps=percent_bps,
        applied_fixed_fee_cents=fixed_fee_cents,
    )


def calculate_platform_fee(
    amount_cents: int,
    fees: FeeConfig,
    plan_id: str | None = None,
) -> FeeSummary:
    """Fee used at disbursement time: tiered when tiers exist, flat otherwise."""
    if fees.tiers:
        return calculate_tiered_fee(amount_cents, fees.tiers, plan_id)
    return calculate_fee(amount_cents, fees.percent_bps, fees.fixed_fee_cents)
