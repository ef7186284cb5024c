"""Administration, reliability and concierge REST API routes.

Routes:
    GET    /api/v1/contractors/{id}/reliability                — Reliability score
    POST   /api/v1/projects/{id}/high-ticket                   — Open concierge intake
    GET    /api/v1/config                                      — Current fees, hold policy, flags
    PUT    /api/v1/admin/config/{name}                         — Replace a config section
    POST   /api/v1/admin/reliability/{contractor_id}/adjust    — Manual reliability delta
    POST   /api/v1/admin/high-ticket/{case_id}/manager         — Assign a concierge manager
    POST   /api/v1/admin/sweeps/{job}                          — Run a sweep now
"""

from __future__ import annotations

import uuid

from fastapi import APIRouter, Depends
from sqlalchemy.ext.asyncio import AsyncSession

from escrow_marketplace.api.deps import get_actor, get_app_settings, get_db_session
from escrow_marketplace.config import Settings
from escrow_marketplace.domain.authorization import Actor
from escrow_marketplace.domain.reliability import ReliabilityDelta
from escrow_marketplace.schemas.accounts import (
    AssignManagerRequest,
    CreateHighTicketCaseRequest,
    CurrentConfigResponse,
    HighTicketCaseResponse,
    PlatformConfigRequest,
    PlatformConfigResponse,
    ReliabilityAdjustRequest,
    ReliabilityResponse,
    SweepResponse,
)
from escrow_marketplace.services.concierge_service import ConciergeService
from escrow_marketplace.services.config_service import ConfigService
from escrow_marketplace.services.reliability_service import ReliabilityService, ReliabilitySnapshot
from escrow_marketplace.services.sweeps import SweepService

router = APIRouter(prefix="/api/v1", tags=["Administration"])


def _reliability_response(snapshot: ReliabilitySnapshot) -> ReliabilityResponse:
    return ReliabilityResponse(
        contractor_id=snapshot.contractor_id,
        score=snapshot.score,
        counters=snapshot.counters.to_dict(),
        metrics=snapshot.metrics.to_dict(),
        eligibility=snapshot.eligibility.to_dict(),
        updated_by=snapshot.updated_by,
        updated_at=snapshot.updated_at,
    )


# ---------------------------------------------------------------------------
# Reliability
# ---------------------------------------------------------------------------


@router.get(
    "/contractors/{contractor_id}/reliability",
    response_model=ReliabilityResponse,
    summary="Get a contractor's reliability score",
)
async def get_reliability_score(
    contractor_id: str,
    actor: Actor | None = Depends(get_actor),
    session: AsyncSession = Depends(get_db_session),
) -> ReliabilityResponse:
    snapshot = await ReliabilityService(session).get_score(actor, contractor_id)
    return _reliability_response(snapshot)


@router.post(
    "/admin/reliability/{contractor_id}/adjust",
    response_model=ReliabilityResponse,
    summary="Apply a manual reliability delta (admin)",
)
async def adjust_reliability(
    contractor_id: str,
    request: ReliabilityAdjustRequest,
    actor: Actor | None = Depends(get_actor),
    session: AsyncSession = Depends(get_db_session),
) -> ReliabilityResponse:
    delta = ReliabilityDelta(**request.model_dump())
    snapshot = await ReliabilityService(session).adjust(actor, contractor_id, delta)
    return _reliability_response(snapshot)


# ---------------------------------------------------------------------------
# Concierge
# ---------------------------------------------------------------------------


@router.post(
    "/projects/{project_id}/high-ticket",
    response_model=HighTicketCaseResponse,
    status_code=201,
    summary="Open high-ticket concierge intake",
)
async def create_high_ticket_case(
    project_id: uuid.UUID,
    request: CreateHighTicketCaseRequest,
    actor: Actor | None = Depends(get_actor),
    session: AsyncSession = Depends(get_db_session),
    settings: Settings = Depends(get_app_settings),
) -> HighTicketCaseResponse:
    case = await ConciergeService(session, settings).create_high_ticket_case(
        actor, project_id, intake_notes=request.intake_notes
    )
    return HighTicketCaseResponse.model_validate(case)


@router.post(
    "/admin/high-ticket/{case_id}/manager",
    response_model=HighTicketCaseResponse,
    summary="Assign a concierge manager (admin)",
)
async def assign_concierge_manager(
    case_id: uuid.UUID,
    request: AssignManagerRequest,
    actor: Actor | None = Depends(get_actor),
    session: AsyncSession = Depends(get_db_session),
    settings: Settings = Depends(get_app_settings),
) -> HighTicketCaseResponse:
    case = await ConciergeService(session, settings).assign_concierge_manager(
        actor, case_id, request.manager_id
    )
    return HighTicketCaseResponse.model_validate(case)


# ---------------------------------------------------------------------------
# Platform configuration and sweeps
# ---------------------------------------------------------------------------


@router.get(
    "/config",
    response_model=CurrentConfigResponse,
    summary="Read the current fee schedule, hold policy and feature flags",
)
async def get_current_config(
    actor: Actor | None = Depends(get_actor),
    session: AsyncSession = Depends(get_db_session),
) -> CurrentConfigResponse:
    config = await ConfigService(session).get_current_config(actor)
    return CurrentConfigResponse(
        fees=config.fees.model_dump(mode="json"),
        hold_policy=config.hold_policy.model_dump(mode="json"),
        feature_flags=config.feature_flags.model_dump(mode="json"),
    )


@router.put(
    "/admin/config/{name}",
    response_model=PlatformConfigResponse,
    summary="Replace a platform config section (admin)",
)
async def set_platform_config(
    name: str,
    request: PlatformConfigRequest,
    actor: Actor | None = Depends(get_actor),
    session: AsyncSession = Depends(get_db_session),
) -> PlatformConfigResponse:
    """Validated against the section's schema; takes effect on the next operation."""
    parsed = await ConfigService(session).set_platform_config(actor, name, request.document)
    return PlatformConfigResponse(name=name, document=parsed.model_dump(mode="json"))


@router.post(
    "/admin/sweeps/{job}",
    response_model=SweepResponse,
    summary="Run a sweep now (admin)",
)
async def run_sweep(
    job: str,
    actor: Actor | None = Depends(get_actor),
    session: AsyncSession = Depends(get_db_session),
    settings: Settings = Depends(get_app_settings),
) -> SweepResponse:
    report = await SweepService(session, settings).run(actor, job)
    return SweepResponse(**report.to_dict())
