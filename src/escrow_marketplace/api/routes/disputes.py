"""Dispute workflow REST API routes.

Routes:
    GET    /api/v1/projects/{id}/case                         — Case with proposals
    POST   /api/v1/projects/{id}/issue                        — Customer raises an issue hold
    POST   /api/v1/projects/{id}/external-resolution          — Move to external resolution
    POST   /api/v1/projects/{id}/joint-release                — Propose a split
    POST   /api/v1/projects/{id}/joint-release/sign           — Sign a proposal
    POST   /api/v1/projects/{id}/resolution-document          — Upload an external decision
    POST   /api/v1/projects/{id}/admin-outcome                — Admin executes an outcome
"""

from __future__ import annotations

import uuid

from fastapi import APIRouter, Depends
from sqlalchemy.ext.asyncio import AsyncSession

from escrow_marketplace.api.deps import get_actor, get_app_settings, get_db_session
from escrow_marketplace.config import Settings
from escrow_marketplace.domain.authorization import Actor
from escrow_marketplace.schemas.disputes import (
    AdminExecuteOutcomeRequest,
    CaseDetailResponse,
    CaseResponse,
    JointReleaseProposalResponse,
    ProposeJointReleaseRequest,
    RaiseIssueRequest,
    SignatureResponse,
    SignJointReleaseRequest,
    UploadResolutionRequest,
)
from escrow_marketplace.schemas.escrow import OutcomeResponse
from escrow_marketplace.services.dispute_service import DisputeService

router = APIRouter(prefix="/api/v1/projects", tags=["Disputes"])


def get_dispute_service(
    session: AsyncSession = Depends(get_db_session),
    settings: Settings = Depends(get_app_settings),
) -> DisputeService:
    return DisputeService(session, settings)


@router.get("/{project_id}/case", response_model=CaseDetailResponse, summary="Get the case")
async def get_case(
    project_id: uuid.UUID,
    actor: Actor | None = Depends(get_actor),
    svc: DisputeService = Depends(get_dispute_service),
) -> CaseDetailResponse:
    view = await svc.get_case(actor, project_id)
    return CaseDetailResponse(
        case=CaseResponse.model_validate(view.case),
        proposals=[JointReleaseProposalResponse.model_validate(p) for p in view.proposals],
    )


@router.post(
    "/{project_id}/issue",
    response_model=CaseResponse,
    status_code=201,
    summary="Raise an issue hold",
)
async def raise_issue_hold(
    project_id: uuid.UUID,
    request: RaiseIssueRequest,
    actor: Actor | None = Depends(get_actor),
    svc: DisputeService = Depends(get_dispute_service),
) -> CaseResponse:
    """Freeze the held funds and open a case. Stops the approval window."""
    case = await svc.raise_issue_hold(actor, project_id, request.reason)
    return CaseResponse.model_validate(case)


@router.post(
    "/{project_id}/external-resolution",
    response_model=CaseResponse,
    summary="Request external resolution",
)
async def request_external_resolution(
    project_id: uuid.UUID,
    actor: Actor | None = Depends(get_actor),
    svc: DisputeService = Depends(get_dispute_service),
) -> CaseResponse:
    return CaseResponse.model_validate(await svc.request_external_resolution(actor, project_id))


@router.post(
    "/{project_id}/joint-release",
    response_model=JointReleaseProposalResponse,
    status_code=201,
    summary="Propose a joint release",
)
async def propose_joint_release(
    project_id: uuid.UUID,
    request: ProposeJointReleaseRequest,
    actor: Actor | None = Depends(get_actor),
    svc: DisputeService = Depends(get_dispute_service),
) -> JointReleaseProposalResponse:
    proposal = await svc.propose_joint_release(
        actor,
        project_id,
        release_to_contractor_cents=request.release_to_contractor_cents,
        refund_to_customer_cents=request.refund_to_customer_cents,
    )
    return JointReleaseProposalResponse.model_validate(proposal)


@router.post(
    "/{project_id}/joint-release/sign",
    response_model=SignatureResponse,
    summary="Sign a joint release proposal",
)
async def sign_joint_release(
    project_id: uuid.UUID,
    request: SignJointReleaseRequest,
    actor: Actor | None = Depends(get_actor),
    svc: DisputeService = Depends(get_dispute_service),
) -> SignatureResponse:
    """The second party's signature executes the split."""
    result = await svc.sign_joint_release(actor, project_id, request.proposal_id)
    return SignatureResponse(
        proposal=JointReleaseProposalResponse.model_validate(result.proposal),
        fully_signed=result.fully_signed,
        outcome=OutcomeResponse.model_validate(result.outcome) if result.outcome else None,
    )


@router.post(
    "/{project_id}/resolution-document",
    response_model=CaseResponse,
    summary="Upload a resolution document",
)
async def upload_resolution_document(
    project_id: uuid.UUID,
    request: UploadResolutionRequest,
    actor: Actor | None = Depends(get_actor),
    svc: DisputeService = Depends(get_dispute_service),
) -> CaseResponse:
    case = await svc.upload_resolution_document(
        actor,
        project_id,
        document_url=request.document_url,
        resolution_type=request.resolution_type,
        summary=request.summary,
    )
    return CaseResponse.model_validate(case)


@router.post(
    "/{project_id}/admin-outcome",
    response_model=OutcomeResponse,
    summary="Execute an outcome (admin)",
)
async def admin_execute_outcome(
    project_id: uuid.UUID,
    request: AdminExecuteOutcomeRequest,
    actor: Actor | None = Depends(get_actor),
    svc: DisputeService = Depends(get_dispute_service),
) -> OutcomeResponse:
    result = await svc.admin_execute_outcome(
        actor,
        project_id,
        outcome_type=request.outcome_type,
        release_cents=request.release_cents,
        refund_cents=request.refund_cents,
        doc_reference=request.doc_reference,
        notes=request.notes,
    )
    return OutcomeResponse.model_validate(result)
