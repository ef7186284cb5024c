"""Pydantic schemas for the dispute workflow API."""

from __future__ import annotations

import uuid
from datetime import datetime

from pydantic import BaseModel, ConfigDict, Field

from escrow_marketplace.domain.enums import OutcomeType, ResolutionType
from escrow_marketplace.schemas.escrow import OutcomeResponse

# ---------------------------------------------------------------------------
# Request Schemas
# ---------------------------------------------------------------------------


class RaiseIssueRequest(BaseModel):
    """Request body for a customer putting the held funds on hold."""

    reason: str = Field(
        ...,
        min_length=1,
        max_length=2000,
        description="What is wrong with the work",
        examples=["Leak under the sink persists after the repair"],
    )


class ProposeJointReleaseRequest(BaseModel):
    """A proposed split of the held funds; the two amounts must add up to the hold."""

    release_to_contractor_cents: int = Field(..., ge=0, examples=[65000])
    refund_to_customer_cents: int = Field(..., ge=0, examples=[20000])


class SignJointReleaseRequest(BaseModel):
    proposal_id: uuid.UUID


class UploadResolutionRequest(BaseModel):
    """An external decision (court order, mediator, signed settlement)."""

    document_url: str = Field(..., min_length=1, max_length=2000)
    resolution_type: ResolutionType
    summary: str = Field(default="", max_length=5000)


class AdminExecuteOutcomeRequest(BaseModel):
    """Admin-executed disposition backed by a resolution document."""

    outcome_type: OutcomeType
    release_cents: int | None = Field(
        default=None, ge=0, description="Required for release_partial and refund_partial"
    )
    refund_cents: int | None = Field(
        default=None, ge=0, description="Required for release_partial and refund_partial"
    )
    doc_reference: str | None = Field(
        default=None,
        description="Document reference, required when no resolution document was uploaded",
    )
    notes: str = Field(default="", max_length=5000)


# ---------------------------------------------------------------------------
# Response Schemas
# ---------------------------------------------------------------------------


class JointReleaseProposalResponse(BaseModel):
    model_config = ConfigDict(from_attributes=True)

    id: uuid.UUID
    case_id: uuid.UUID
    project_id: uuid.UUID
    proposed_by: str
    release_to_contractor_cents: int
    refund_to_customer_cents: int
    status: str
    customer_signed_at: datetime | None
    contractor_signed_at: datetime | None
    executed_at: datetime | None
    created_at: datetime


class CaseResponse(BaseModel):
    """Response schema for a dispute case."""

    model_config = ConfigDict(from_attributes=True)

    id: uuid.UUID
    project_id: uuid.UUID
    case_type: str
    status: str
    opened_by: str
    reason: str
    resolution_document_url: str | None
    resolution_summary: str | None
    resolution_type: str | None
    resolution_submitted_by: str | None
    resolution_submitted_at: datetime | None
    admin_attention_at: datetime | None
    outcome: dict | None
    closed_at: datetime | None
    created_at: datetime


class CaseDetailResponse(BaseModel):
    case: CaseResponse
    proposals: list[JointReleaseProposalResponse]


class SignatureResponse(BaseModel):
    proposal: JointReleaseProposalResponse
    fully_signed: bool
    outcome: OutcomeResponse | None = Field(
        default=None, description="Set when this signature completed and executed the proposal"
    )
