"""Estimate deposit REST API routes.

Routes:
    GET    /api/v1/projects/{id}/deposits                  — List deposits
    POST   /api/v1/projects/{id}/deposits                  — Create a deposit
    POST   /api/v1/projects/{id}/deposits/{did}/apply      — Credit a deposit to the job
    POST   /api/v1/deposits/{did}/capture                  — Capture (hold) the deposit
    POST   /api/v1/deposits/{did}/attendance               — Record who showed up
    POST   /api/v1/deposits/{did}/refund                   — Refund the deposit
"""

from __future__ import annotations

import uuid

from fastapi import APIRouter, Depends
from sqlalchemy.ext.asyncio import AsyncSession

from escrow_marketplace.api.deps import get_actor, get_app_settings, get_db_session
from escrow_marketplace.config import Settings
from escrow_marketplace.domain.authorization import Actor
from escrow_marketplace.schemas.accounts import (
    CreateDepositRequest,
    DepositResponse,
    MarkAttendanceRequest,
    RefundDepositRequest,
)
from escrow_marketplace.services.deposit_service import DepositService

router = APIRouter(prefix="/api/v1", tags=["Deposits"])


def get_deposit_service(
    session: AsyncSession = Depends(get_db_session),
    settings: Settings = Depends(get_app_settings),
) -> DepositService:
    return DepositService(session, settings)


@router.get(
    "/projects/{project_id}/deposits",
    response_model=list[DepositResponse],
    summary="List estimate deposits",
)
async def list_deposits(
    project_id: uuid.UUID,
    actor: Actor | None = Depends(get_actor),
    svc: DepositService = Depends(get_deposit_service),
) -> list[DepositResponse]:
    deposits = await svc.list_deposits(actor, project_id)
    return [DepositResponse.model_validate(d) for d in deposits]


@router.post(
    "/projects/{project_id}/deposits",
    response_model=DepositResponse,
    status_code=201,
    summary="Create an estimate deposit",
)
async def create_estimate_deposit(
    project_id: uuid.UUID,
    request: CreateDepositRequest,
    actor: Actor | None = Depends(get_actor),
    svc: DepositService = Depends(get_deposit_service),
) -> DepositResponse:
    deposit = await svc.create_estimate_deposit(
        actor, project_id, category=request.category, appointment_at=request.appointment_at
    )
    return DepositResponse.model_validate(deposit)


@router.post(
    "/projects/{project_id}/deposits/{deposit_id}/apply",
    response_model=DepositResponse,
    summary="Credit a deposit against the job",
)
async def apply_deposit_to_job(
    project_id: uuid.UUID,
    deposit_id: uuid.UUID,
    actor: Actor | None = Depends(get_actor),
    svc: DepositService = Depends(get_deposit_service),
) -> DepositResponse:
    deposit = await svc.apply_deposit_to_job(actor, project_id, deposit_id)
    return DepositResponse.model_validate(deposit)


@router.post(
    "/deposits/{deposit_id}/capture",
    response_model=DepositResponse,
    summary="Capture an estimate deposit",
)
async def capture_estimate_deposit(
    deposit_id: uuid.UUID,
    actor: Actor | None = Depends(get_actor),
    svc: DepositService = Depends(get_deposit_service),
) -> DepositResponse:
    return DepositResponse.model_validate(await svc.capture_estimate_deposit(actor, deposit_id))


@router.post(
    "/deposits/{deposit_id}/attendance",
    response_model=DepositResponse,
    summary="Mark estimate attendance",
)
async def mark_estimate_attendance(
    deposit_id: uuid.UUID,
    request: MarkAttendanceRequest,
    actor: Actor | None = Depends(get_actor),
    svc: DepositService = Depends(get_deposit_service),
) -> DepositResponse:
    """A contractor no-show refunds the deposit automatically."""
    deposit = await svc.mark_estimate_attendance(
        actor, deposit_id, attendance=request.attendance, note=request.note
    )
    return DepositResponse.model_validate(deposit)


@router.post(
    "/deposits/{deposit_id}/refund",
    response_model=DepositResponse,
    summary="Refund an estimate deposit",
)
async def refund_estimate_deposit(
    deposit_id: uuid.UUID,
    request: RefundDepositRequest,
    actor: Actor | None = Depends(get_actor),
    svc: DepositService = Depends(get_deposit_service),
) -> DepositResponse:
    deposit = await svc.refund_estimate_deposit(actor, deposit_id, reason=request.reason)
    return DepositResponse.model_validate(deposit)
