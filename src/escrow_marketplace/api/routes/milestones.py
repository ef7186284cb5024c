"""Milestone and change-order REST API routes.

Routes:
    GET    /api/v1/projects/{id}/milestones                       — List milestones
    POST   /api/v1/projects/{id}/milestones                       — Define milestones
    POST   /api/v1/projects/{id}/milestones/{mid}/approve         — Release one milestone
    POST   /api/v1/projects/{id}/change-orders                    — Propose a change order
    POST   /api/v1/projects/{id}/change-orders/{cid}/respond      — Accept or reject
"""

from __future__ import annotations

import uuid

from fastapi import APIRouter, Depends
from sqlalchemy.ext.asyncio import AsyncSession

from escrow_marketplace.api.deps import get_actor, get_app_settings, get_db_session
from escrow_marketplace.config import Settings
from escrow_marketplace.domain.authorization import Actor
from escrow_marketplace.schemas.escrow import (
    ChangeOrderResponse,
    CreateMilestonesRequest,
    MilestoneReleaseResponse,
    MilestoneResponse,
    OutcomeResponse,
    ProposeChangeOrderRequest,
    RespondChangeOrderRequest,
)
from escrow_marketplace.services.milestone_service import MilestoneService, MilestoneSpec

router = APIRouter(prefix="/api/v1/projects", tags=["Milestones"])


def get_milestone_service(
    session: AsyncSession = Depends(get_db_session),
    settings: Settings = Depends(get_app_settings),
) -> MilestoneService:
    return MilestoneService(session, settings)


@router.get(
    "/{project_id}/milestones",
    response_model=list[MilestoneResponse],
    summary="List milestones",
)
async def list_milestones(
    project_id: uuid.UUID,
    actor: Actor | None = Depends(get_actor),
    svc: MilestoneService = Depends(get_milestone_service),
) -> list[MilestoneResponse]:
    milestones = await svc.list_milestones(actor, project_id)
    return [MilestoneResponse.model_validate(m) for m in milestones]


@router.post(
    "/{project_id}/milestones",
    response_model=list[MilestoneResponse],
    status_code=201,
    summary="Define milestones",
)
async def create_milestones(
    project_id: uuid.UUID,
    request: CreateMilestonesRequest,
    actor: Actor | None = Depends(get_actor),
    svc: MilestoneService = Depends(get_milestone_service),
) -> list[MilestoneResponse]:
    specs = [MilestoneSpec(title=m.title, amount_cents=m.amount_cents) for m in request.milestones]
    milestones = await svc.create_milestones(actor, project_id, specs)
    return [MilestoneResponse.model_validate(m) for m in milestones]


@router.post(
    "/{project_id}/milestones/{milestone_id}/approve",
    response_model=MilestoneReleaseResponse,
    summary="Approve and release a milestone",
)
async def approve_milestone(
    project_id: uuid.UUID,
    milestone_id: uuid.UUID,
    actor: Actor | None = Depends(get_actor),
    svc: MilestoneService = Depends(get_milestone_service),
) -> MilestoneReleaseResponse:
    result = await svc.approve_milestone(actor, project_id, milestone_id)
    return MilestoneReleaseResponse(
        milestone=MilestoneResponse.model_validate(result.milestone),
        outcome=OutcomeResponse.model_validate(result.outcome),
    )


@router.post(
    "/{project_id}/change-orders",
    response_model=ChangeOrderResponse,
    status_code=201,
    summary="Propose a change order",
)
async def propose_change_order(
    project_id: uuid.UUID,
    request: ProposeChangeOrderRequest,
    actor: Actor | None = Depends(get_actor),
    svc: MilestoneService = Depends(get_milestone_service),
) -> ChangeOrderResponse:
    change_order = await svc.propose_change_order(
        actor,
        project_id,
        description=request.description,
        amount_delta_cents=request.amount_delta_cents,
        timeline_delta_days=request.timeline_delta_days,
    )
    return ChangeOrderResponse.model_validate(change_order)


@router.post(
    "/{project_id}/change-orders/{change_order_id}/respond",
    response_model=ChangeOrderResponse,
    summary="Respond to a change order",
)
async def respond_change_order(
    project_id: uuid.UUID,
    change_order_id: uuid.UUID,
    request: RespondChangeOrderRequest,
    actor: Actor | None = Depends(get_actor),
    svc: MilestoneService = Depends(get_milestone_service),
) -> ChangeOrderResponse:
    """Accepting amends the agreement's price and timeline."""
    change_order = await svc.respond_change_order(
        actor, project_id, change_order_id, accept=request.accept
    )
    return ChangeOrderResponse.model_validate(change_order)
