"""Pydantic schemas for deposits, billing, concierge and administration."""

from __future__ import annotations

import uuid
from datetime import datetime

from pydantic import BaseModel, ConfigDict, Field

from escrow_marketplace.domain.enums import AttendanceOutcome, SubscriptionAudience

# ---------------------------------------------------------------------------
# Estimate deposits
# ---------------------------------------------------------------------------


class CreateDepositRequest(BaseModel):
    category: str | None = Field(
        default=None, description="Overrides the project's category for the deposit amount"
    )
    appointment_at: datetime | None = None


class MarkAttendanceRequest(BaseModel):
    attendance: AttendanceOutcome
    note: str | None = Field(default=None, max_length=2000)


class RefundDepositRequest(BaseModel):
    reason: str = Field(default="", max_length=2000)


class DepositResponse(BaseModel):
    model_config = ConfigDict(from_attributes=True)

    id: uuid.UUID
    project_id: uuid.UUID
    customer_id: str
    contractor_id: str
    category: str
    amount_cents: int
    status: str
    provider_hold_id: str | None
    appointment_at: datetime | None
    attendance_outcome: str | None
    captured_at: datetime | None
    refunded_at: datetime | None
    credited_at: datetime | None
    created_at: datetime


# ---------------------------------------------------------------------------
# Billing
# ---------------------------------------------------------------------------


class CreateConnectedAccountRequest(BaseModel):
    email: str | None = Field(default=None, max_length=320)
    country: str = Field(default="US", min_length=2, max_length=2)


class OnboardingLinkRequest(BaseModel):
    account_user_id: str | None = Field(
        default=None, description="Admins may fetch a link for another user"
    )
    return_url: str | None = None
    refresh_url: str | None = None


class PaymentAccountResponse(BaseModel):
    model_config = ConfigDict(from_attributes=True)

    id: uuid.UUID
    user_id: str
    provider: str
    account_ref: str
    onboarding_complete: bool


class OnboardingLinkResponse(BaseModel):
    model_config = ConfigDict(from_attributes=True)

    url: str
    expires_at: datetime | None = None


class CreateSubscriptionRequest(BaseModel):
    plan_id: str = Field(..., min_length=1, examples=["contractor_pro"])
    audience: SubscriptionAudience
    quantity: int = Field(default=1, gt=0)


class UpdateSubscriptionRequest(BaseModel):
    plan_id: str | None = None
    quantity: int | None = Field(default=None, gt=0)


class CancelSubscriptionRequest(BaseModel):
    cancel_at_period_end: bool = Field(
        default=True, description="Lapse at the end of the period instead of cancelling now"
    )


class SubscriptionResponse(BaseModel):
    model_config = ConfigDict(from_attributes=True)

    id: uuid.UUID
    account_id: str
    audience: str
    plan_id: str
    provider: str
    subscription_ref: str
    status: str
    quantity: int
    cancel_at_period_end: bool
    current_period_start: datetime
    current_period_end: datetime


class InvoiceResponse(BaseModel):
    model_config = ConfigDict(from_attributes=True)

    id: uuid.UUID
    subscription_id: uuid.UUID
    account_id: str
    invoice_ref: str
    amount_cents: int
    status: str
    hosted_url: str | None
    created_at: datetime


class SubscriptionCreatedResponse(BaseModel):
    subscription: SubscriptionResponse
    invoice: InvoiceResponse


# ---------------------------------------------------------------------------
# Concierge
# ---------------------------------------------------------------------------


class CreateHighTicketCaseRequest(BaseModel):
    intake_notes: str = Field(default="", max_length=5000)


class AssignManagerRequest(BaseModel):
    manager_id: str = Field(..., min_length=1)


class HighTicketCaseResponse(BaseModel):
    model_config = ConfigDict(from_attributes=True)

    id: uuid.UUID
    project_id: uuid.UUID
    customer_id: str
    amount_cents: int
    fee_mode: str
    intake_fee_cents: int
    completion_fee_bps: int
    status: str
    manager_id: str | None
    created_at: datetime


# ---------------------------------------------------------------------------
# Reliability and administration
# ---------------------------------------------------------------------------


class ReliabilityAdjustRequest(BaseModel):
    """Counter increments; omitted counters are left unchanged."""

    appointments_total: int = 0
    appointments_attended: int = 0
    disputes_total: int = 0
    completions_total: int = 0
    completions_on_time: int = 0
    proof_submissions_total: int = 0
    proof_submissions_complete: int = 0
    response_samples: int = 0
    response_median_minutes: float | None = Field(
        default=None, ge=0, description="Replaces the stored median when given"
    )


class ReliabilityResponse(BaseModel):
    contractor_id: str
    score: int
    counters: dict
    metrics: dict
    eligibility: dict
    updated_by: str | None = None
    updated_at: datetime | None = None


class PlatformConfigRequest(BaseModel):
    document: dict = Field(..., description="Full document for the named config section")


class PlatformConfigResponse(BaseModel):
    name: str
    document: dict


class CurrentConfigResponse(BaseModel):
    """Fee schedule, hold policy and feature flags in force right now."""

    fees: dict
    hold_policy: dict
    feature_flags: dict


class SweepResponse(BaseModel):
    job: str
    processed: int
    released: int = 0
    escalated: int = 0
    recomputed: int = 0
    failed: int = 0
    skipped_items: int = 0
    skipped: bool = False


class HealthResponse(BaseModel):
    """Health check response."""

    status: str = "ok"
    version: str = "0.1.0"
    database: str = "unknown"
    payment_provider: str = "unknown"
