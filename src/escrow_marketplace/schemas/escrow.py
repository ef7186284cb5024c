"""Pydantic schemas for the project lifecycle API.

These schemas define the request/response shapes for the REST API. They are
separate from the ORM models to keep a clean boundary between the API and
database layers. All money amounts are integer cents.
"""

from __future__ import annotations

import uuid
from datetime import datetime

from pydantic import BaseModel, ConfigDict, Field

from escrow_marketplace.domain.enums import ProjectCategory

# ---------------------------------------------------------------------------
# Request Schemas
# ---------------------------------------------------------------------------


class CreateProjectRequest(BaseModel):
    """Request body for posting a new project."""

    title: str = Field(
        ...,
        min_length=3,
        max_length=200,
        description="Short title shown to contractors",
        examples=["Replace kitchen faucet"],
    )
    category: ProjectCategory = Field(
        ...,
        description="Trade category; also selects the estimate deposit amount",
        examples=["plumbing"],
    )
    description: str = Field(default="", max_length=5000)
    municipality: str | None = Field(default=None, max_length=120)
    budget_cents: int | None = Field(
        default=None,
        gt=0,
        description="Customer's budget in cents",
        examples=[90000],
    )
    publish: bool = Field(
        default=True,
        description="Open the project for quotes immediately; otherwise keep it as a draft",
    )


class CancelProjectRequest(BaseModel):
    reason: str = Field(default="", max_length=2000)


class SubmitQuoteRequest(BaseModel):
    """Request body for a contractor's quote."""

    price_cents: int = Field(..., gt=0, examples=[85000])
    timeline_days: int = Field(..., gt=0, examples=[14])
    scope_notes: str = Field(default="", max_length=5000)


class SelectContractorRequest(BaseModel):
    quote_id: uuid.UUID = Field(..., description="The quote the customer accepts")


class RequestCompletionRequest(BaseModel):
    """Request body for a contractor marking the job complete."""

    proof_urls: list[str] = Field(
        default_factory=list,
        max_length=50,
        description="Links to photos or documents proving the work",
    )
    note: str = Field(default="", max_length=5000)


class MilestoneItem(BaseModel):
    title: str = Field(..., min_length=1, max_length=200)
    amount_cents: int = Field(..., gt=0)


class CreateMilestonesRequest(BaseModel):
    milestones: list[MilestoneItem] = Field(..., min_length=1)


class ProposeChangeOrderRequest(BaseModel):
    description: str = Field(..., min_length=1, max_length=5000)
    amount_delta_cents: int = Field(
        default=0, description="Signed change to the agreed price, in cents"
    )
    timeline_delta_days: int = Field(default=0, description="Signed change to the timeline")


class RespondChangeOrderRequest(BaseModel):
    accept: bool


# ---------------------------------------------------------------------------
# Response Schemas
# ---------------------------------------------------------------------------


class ProjectResponse(BaseModel):
    """Response schema for a project."""

    model_config = ConfigDict(from_attributes=True)

    id: uuid.UUID
    customer_id: str
    contractor_id: str | None
    title: str
    category: str
    description: str
    municipality: str | None
    budget_cents: int | None
    state: str
    selected_quote_id: uuid.UUID | None
    held_amount_cents: int
    estimate_deposit_credit_cents: int
    completion_requested_at: datetime | None
    completion_note: str | None
    proof_urls: list[str]
    issue_raised_at: datetime | None
    funded_at: datetime | None
    closed_at: datetime | None
    created_at: datetime
    updated_at: datetime


class QuoteResponse(BaseModel):
    model_config = ConfigDict(from_attributes=True)

    id: uuid.UUID
    project_id: uuid.UUID
    contractor_id: str
    price_cents: int
    timeline_days: int
    scope_notes: str
    status: str
    created_at: datetime


class AgreementResponse(BaseModel):
    """Snapshot of the terms both parties accept before funding."""

    model_config = ConfigDict(from_attributes=True)

    project_id: uuid.UUID
    quote_id: uuid.UUID
    customer_id: str
    contractor_id: str
    scope_summary: str
    price_cents: int
    timeline_days: int
    policy_summary: str
    fee_disclosure: str
    terms_version: int
    customer_accepted_at: datetime | None
    contractor_accepted_at: datetime | None


class AgreementAcceptanceResponse(BaseModel):
    agreement: AgreementResponse
    state: str
    ready_to_fund: bool


class FeeResponse(BaseModel):
    """Platform fee breakdown; tier fields are set for tiered pricing only."""

    model_config = ConfigDict(from_attributes=True)

    gross_amount_cents: int
    fee_cents: int
    net_payout_cents: int
    tier_id: str | None = None
    applied_percent_bps: int | None = None
    applied_fixed_fee_cents: int | None = None


class FundingResponse(BaseModel):
    project: ProjectResponse
    provider_hold_id: str
    amount_cents: int
    fee_preview: FeeResponse | None = Field(
        default=None, description="Fee the contractor will pay when the full hold is released"
    )


class OutcomeResponse(BaseModel):
    """Result of a fund disposition (release and/or refund)."""

    model_config = ConfigDict(from_attributes=True)

    project_id: str
    release_cents: int
    refund_cents: int
    fee_cents: int
    net_payout_cents: int
    classification: str
    resulting_state: str
    held_remaining_cents: int
    fee: FeeResponse | None = None


class ProjectStatusResponse(BaseModel):
    """Lightweight status check response."""

    project_id: str
    state: str
    held_amount_cents: int
    next_states: list[str] = Field(description="States the project can legally move to next")
    approval_deadline: str | None = None
    admin_attention_date: str | None = None


class LedgerEventResponse(BaseModel):
    """Response schema for a ledger entry."""

    model_config = ConfigDict(from_attributes=True)

    id: uuid.UUID
    stream_id: str
    sequence: int
    event_type: str
    amount_cents: int
    fee_cents: int
    currency: str
    actor_id: str
    actor_role: str
    metadata: dict | None = Field(default=None, validation_alias="metadata_json")
    created_at: datetime


class LedgerBalanceResponse(BaseModel):
    held_cents: int
    released_cents: int
    refunded_cents: int
    fees_cents: int
    deposits_held_cents: int
    deposits_credited_cents: int
    held_column_cents: int
    consistent: bool = Field(
        description="Whether the folded ledger agrees with the stored held amount"
    )


class MilestoneResponse(BaseModel):
    model_config = ConfigDict(from_attributes=True)

    id: uuid.UUID
    project_id: uuid.UUID
    title: str
    amount_cents: int
    sort_order: int
    status: str
    released_at: datetime | None


class MilestoneReleaseResponse(BaseModel):
    milestone: MilestoneResponse
    outcome: OutcomeResponse


class ChangeOrderResponse(BaseModel):
    model_config = ConfigDict(from_attributes=True)

    id: uuid.UUID
    project_id: uuid.UUID
    proposed_by: str
    description: str
    amount_delta_cents: int
    timeline_delta_days: int
    status: str
    responded_by: str | None
    responded_at: datetime | None
