"""Pydantic API schemas."""

from escrow_marketplace.schemas.accounts import HealthResponse, SweepResponse
from escrow_marketplace.schemas.disputes import CaseDetailResponse, SignatureResponse
from escrow_marketplace.schemas.escrow import (
    CreateProjectRequest,
    LedgerEventResponse,
    OutcomeResponse,
    ProjectResponse,
    ProjectStatusResponse,
)

__all__ = [
    "CaseDetailResponse",
    "CreateProjectRequest",
    "HealthResponse",
    "LedgerEventResponse",
    "OutcomeResponse",
    "ProjectResponse",
    "ProjectStatusResponse",
    "SignatureResponse",
    "SweepResponse",
]
