"""Platform configuration snapshot.

Operators tune fees, hold windows, feature flags and scoring weights at
runtime; those documents are persisted in the ``platform_config`` table and
read into one immutable ``PlatformConfig`` at the start of every operation.
Pure calculators receive the relevant section explicitly.

Every model ships with the production defaults so a missing document still
yields a usable snapshot.
"""

from __future__ import annotations

from pydantic import BaseModel, ConfigDict, Field

from escrow_marketplace.domain.enums import (
    HighTicketFeeMode,
    ProjectCategory,
    SubscriptionAudience,
)


class _Frozen(BaseModel):
    model_config = ConfigDict(frozen=True, extra="ignore")


class PlanFeeOverride(_Frozen):
    """Per-subscription-plan replacement for a tier's percent and/or fixed fee."""

    percent_bps: int | None = Field(default=None, ge=0)
    fixed_fee_cents: int | None = Field(default=None, ge=0)


class FeeTier(_Frozen):
    """One band of the tiered fee schedule. ``max_amount_cents=None`` is open-ended."""

    id: str
    min_amount_cents: int = Field(ge=0)
    max_amount_cents: int | None = Field(default=None, ge=0)
    percent_bps: int = Field(ge=0)
    fixed_fee_cents: int = Field(default=0, ge=0)
    plan_overrides: dict[str, PlanFeeOverride] = Field(default_factory=dict)

    def contains(self, amount_cents: int) -> bool:
        if amount_cents < self.min_amount_cents:
            return False
        return self.max_amount_cents is None or amount_cents <= self.max_amount_cents


class FeeConfig(_Frozen):
    percent_bps: int = Field(default=500, ge=0)
    fixed_fee_cents: int = Field(default=0, ge=0)
    tiers: list[FeeTier] = Field(default_factory=list)


class HoldPolicy(_Frozen):
    approval_window_days: int = 7
    admin_attention_days: int = 30
    auto_release_enabled: bool = True


class FeatureFlags(_Frozen):
    stripe_connect_enabled: bool = False
    estimate_deposits_enabled: bool = False
    milestone_payments_enabled: bool = False
    change_orders_enabled: bool = False
    reliability_scoring_enabled: bool = False
    subscriptions_enabled: bool = False
    high_ticket_concierge_enabled: bool = False


_DEFAULT_DEPOSITS: dict[ProjectCategory, int] = {
    ProjectCategory.PLUMBING: 2900,
    ProjectCategory.ELECTRICAL: 3900,
    ProjectCategory.PAINTING: 2900,
    ProjectCategory.ROOFING: 7900,
    ProjectCategory.CARPENTRY: 3900,
    ProjectCategory.HVAC: 5900,
    ProjectCategory.LANDSCAPING: 2900,
    ProjectCategory.CLEANING: 2900,
    ProjectCategory.GENERAL: 3900,
}


class DepositPolicy(_Frozen):
    """Estimate-deposit amount (cents) charged per project category."""

    amounts_cents: dict[str, int] = Field(
        default_factory=lambda: {str(k): v for k, v in _DEFAULT_DEPOSITS.items()}
    )

    def amount_for(self, category: str) -> int | None:
        return self.amounts_cents.get(category)


class ReliabilityWeights(_Frozen):
    """Relative weights of the five sub-scores plus the eligibility thresholds."""

    show_up: float = 0.30
    response_time: float = 0.20
    dispute: float = 0.20
    proof_completeness: float = 0.15
    on_time: float = 0.15
    auto_release_threshold: int = 80
    large_jobs_threshold: int = 75
    high_ticket_threshold: int = 85


class SubscriptionPlan(_Frozen):
    id: str
    audience: SubscriptionAudience
    name: str
    monthly_price_cents: int = Field(ge=0)
    provider_price_ref: str = ""
    active: bool = True


class SubscriptionCatalog(_Frozen):
    plans: list[SubscriptionPlan] = Field(default_factory=list)


class HighTicketPolicy(_Frozen):
    threshold_cents: int = 500000
    fee_mode: HighTicketFeeMode = HighTicketFeeMode.INTAKE_SUCCESS
    intake_fee_cents: int = 9900
    success_fee_bps: int = 300
    referral_fee_bps: int = 600


class PlatformConfig(_Frozen):
    """Everything an operation needs to know about current platform policy."""

    fees: FeeConfig = Field(default_factory=FeeConfig)
    hold_policy: HoldPolicy = Field(default_factory=HoldPolicy)
    feature_flags: FeatureFlags = Field(default_factory=FeatureFlags)
    deposit_policy: DepositPolicy = Field(default_factory=DepositPolicy)
    reliability: ReliabilityWeights = Field(default_factory=ReliabilityWeights)
    subscription_plans: SubscriptionCatalog = Field(default_factory=SubscriptionCatalog)
    high_ticket: HighTicketPolicy = Field(default_factory=HighTicketPolicy)

    def plan(self, plan_id: str) -> SubscriptionPlan | None:
        return next((p for p in self.subscription_plans.plans if p.id == plan_id), None)


# Document names stored in platform_config, one per PlatformConfig section.
CONFIG_SECTIONS: dict[str, type[BaseModel]] = {
    "fees": FeeConfig,
    "hold_policy": HoldPolicy,
    "feature_flags": FeatureFlags,
    "deposit_policy": DepositPolicy,
    "reliability": ReliabilityWeights,
    "subscription_plans": SubscriptionCatalog,
    "high_ticket": HighTicketPolicy,
}
