"""Project lifecycle REST API routes.

Routes:
    POST   /api/v1/projects                          — Post a project
    GET    /api/v1/projects                          — List visible projects
    GET    /api/v1/projects/{id}                     — Project details
    GET    /api/v1/projects/{id}/status              — State, next states, deadlines
    POST   /api/v1/projects/{id}/publish             — Open a draft for quotes
    POST   /api/v1/projects/{id}/cancel              — Cancel before funding
    GET    /api/v1/projects/{id}/quotes              — List quotes
    POST   /api/v1/projects/{id}/quotes              — Contractor submits a quote
    POST   /api/v1/projects/{id}/select              — Customer selects a quote
    GET    /api/v1/projects/{id}/agreement           — Agreement snapshot
    POST   /api/v1/projects/{id}/agreement/accept    — Party accepts the agreement
    POST   /api/v1/projects/{id}/fund                — Place the hold
    POST   /api/v1/projects/{id}/start               — Contractor starts work
    POST   /api/v1/projects/{id}/completion          — Contractor requests completion
    POST   /api/v1/projects/{id}/approve             — Customer approves, funds released
    POST   /api/v1/projects/{id}/close               — Admin closes a settled project
    GET    /api/v1/projects/{id}/ledger              — Ledger events
    GET    /api/v1/projects/{id}/ledger/balance      — Folded ledger balance
"""

from __future__ import annotations

import uuid

from fastapi import APIRouter, Depends, Query
from sqlalchemy.ext.asyncio import AsyncSession

from escrow_marketplace.api.deps import get_actor, get_app_settings, get_db_session
from escrow_marketplace.config import Settings
from escrow_marketplace.domain.authorization import Actor
from escrow_marketplace.logging_config import get_logger
from escrow_marketplace.schemas.escrow import (
    AgreementAcceptanceResponse,
    AgreementResponse,
    CancelProjectRequest,
    CreateProjectRequest,
    FeeResponse,
    FundingResponse,
    LedgerBalanceResponse,
    LedgerEventResponse,
    OutcomeResponse,
    ProjectResponse,
    ProjectStatusResponse,
    QuoteResponse,
    RequestCompletionRequest,
    SelectContractorRequest,
    SubmitQuoteRequest,
)
from escrow_marketplace.services.escrow_service import EscrowService

router = APIRouter(prefix="/api/v1/projects", tags=["Projects"])
logger = get_logger(__name__)


def get_escrow_service(
    session: AsyncSession = Depends(get_db_session),
    settings: Settings = Depends(get_app_settings),
) -> EscrowService:
    return EscrowService(session, settings)


# ---------------------------------------------------------------------------
# Posting and quoting
# ---------------------------------------------------------------------------


@router.post(
    "",
    response_model=ProjectResponse,
    status_code=201,
    summary="Post a new project",
)
async def create_project(
    request: CreateProjectRequest,
    actor: Actor | None = Depends(get_actor),
    svc: EscrowService = Depends(get_escrow_service),
) -> ProjectResponse:
    """Create a project in OPEN_FOR_QUOTES, or DRAFT when ``publish`` is false."""
    project = await svc.create_project(
        actor,
        title=request.title,
        category=request.category,
        description=request.description,
        municipality=request.municipality,
        budget_cents=request.budget_cents,
        publish=request.publish,
    )
    return ProjectResponse.model_validate(project)


@router.get("", response_model=list[ProjectResponse], summary="List visible projects")
async def list_projects(
    limit: int = Query(25, description="Page size, 1 to 100"),
    category: str | None = Query(None),
    municipality: str | None = Query(None),
    actor: Actor | None = Depends(get_actor),
    svc: EscrowService = Depends(get_escrow_service),
) -> list[ProjectResponse]:
    """Customers see their own; contractors also see every project open for quotes."""
    projects = await svc.list_projects(
        actor, limit=limit, category=category, municipality=municipality
    )
    return [ProjectResponse.model_validate(p) for p in projects]


@router.get("/{project_id}", response_model=ProjectResponse, summary="Get project details")
async def get_project(
    project_id: uuid.UUID,
    actor: Actor | None = Depends(get_actor),
    svc: EscrowService = Depends(get_escrow_service),
) -> ProjectResponse:
    return ProjectResponse.model_validate(await svc.get_project(actor, project_id))


@router.get(
    "/{project_id}/status",
    response_model=ProjectStatusResponse,
    summary="Get lightweight status check",
)
async def get_status(
    project_id: uuid.UUID,
    actor: Actor | None = Depends(get_actor),
    svc: EscrowService = Depends(get_escrow_service),
) -> ProjectStatusResponse:
    return ProjectStatusResponse(**await svc.get_status(actor, project_id))


@router.post("/{project_id}/publish", response_model=ProjectResponse, summary="Publish a draft")
async def publish_project(
    project_id: uuid.UUID,
    actor: Actor | None = Depends(get_actor),
    svc: EscrowService = Depends(get_escrow_service),
) -> ProjectResponse:
    return ProjectResponse.model_validate(await svc.publish_project(actor, project_id))


@router.post("/{project_id}/cancel", response_model=ProjectResponse, summary="Cancel a project")
async def cancel_project(
    project_id: uuid.UUID,
    request: CancelProjectRequest,
    actor: Actor | None = Depends(get_actor),
    svc: EscrowService = Depends(get_escrow_service),
) -> ProjectResponse:
    project = await svc.cancel_project(actor, project_id, reason=request.reason)
    return ProjectResponse.model_validate(project)


@router.get(
    "/{project_id}/quotes",
    response_model=list[QuoteResponse],
    summary="List quotes",
)
async def list_quotes(
    project_id: uuid.UUID,
    actor: Actor | None = Depends(get_actor),
    svc: EscrowService = Depends(get_escrow_service),
) -> list[QuoteResponse]:
    quotes = await svc.list_quotes(actor, project_id)
    return [QuoteResponse.model_validate(q) for q in quotes]


@router.post(
    "/{project_id}/quotes",
    response_model=QuoteResponse,
    status_code=201,
    summary="Submit a quote",
)
async def submit_quote(
    project_id: uuid.UUID,
    request: SubmitQuoteRequest,
    actor: Actor | None = Depends(get_actor),
    svc: EscrowService = Depends(get_escrow_service),
) -> QuoteResponse:
    quote = await svc.submit_quote(
        actor,
        project_id,
        price_cents=request.price_cents,
        timeline_days=request.timeline_days,
        scope_notes=request.scope_notes,
    )
    return QuoteResponse.model_validate(quote)


@router.post(
    "/{project_id}/select",
    response_model=AgreementResponse,
    summary="Select a contractor's quote",
)
async def select_contractor(
    project_id: uuid.UUID,
    request: SelectContractorRequest,
    actor: Actor | None = Depends(get_actor),
    svc: EscrowService = Depends(get_escrow_service),
) -> AgreementResponse:
    """Select the quote and snapshot its terms into the agreement."""
    agreement = await svc.select_contractor(actor, project_id, request.quote_id)
    return AgreementResponse.model_validate(agreement)


# ---------------------------------------------------------------------------
# Agreement and funding
# ---------------------------------------------------------------------------


@router.get(
    "/{project_id}/agreement",
    response_model=AgreementResponse,
    summary="Get the agreement",
)
async def get_agreement(
    project_id: uuid.UUID,
    actor: Actor | None = Depends(get_actor),
    svc: EscrowService = Depends(get_escrow_service),
) -> AgreementResponse:
    return AgreementResponse.model_validate(await svc.get_agreement(actor, project_id))


@router.post(
    "/{project_id}/agreement/accept",
    response_model=AgreementAcceptanceResponse,
    summary="Accept the agreement",
)
async def accept_agreement(
    project_id: uuid.UUID,
    actor: Actor | None = Depends(get_actor),
    svc: EscrowService = Depends(get_escrow_service),
) -> AgreementAcceptanceResponse:
    result = await svc.accept_agreement(actor, project_id)
    return AgreementAcceptanceResponse(
        agreement=AgreementResponse.model_validate(result.agreement),
        state=result.state,
        ready_to_fund=result.ready_to_fund,
    )


@router.post("/{project_id}/fund", response_model=FundingResponse, summary="Fund the hold")
async def fund_hold(
    project_id: uuid.UUID,
    actor: Actor | None = Depends(get_actor),
    svc: EscrowService = Depends(get_escrow_service),
) -> FundingResponse:
    """Place a hold for the agreed price. Transitions AGREEMENT_ACCEPTED -> FUNDED_HELD."""
    result = await svc.fund_hold(actor, project_id)
    return FundingResponse(
        project=ProjectResponse.model_validate(result.project),
        provider_hold_id=result.hold.provider_hold_id,
        amount_cents=result.hold.amount_cents,
        fee_preview=FeeResponse.model_validate(result.fee_preview),
    )


# ---------------------------------------------------------------------------
# Work and completion
# ---------------------------------------------------------------------------


@router.post("/{project_id}/start", response_model=ProjectResponse, summary="Start work")
async def start_work(
    project_id: uuid.UUID,
    actor: Actor | None = Depends(get_actor),
    svc: EscrowService = Depends(get_escrow_service),
) -> ProjectResponse:
    return ProjectResponse.model_validate(await svc.start_work(actor, project_id))


@router.post(
    "/{project_id}/completion",
    response_model=ProjectResponse,
    summary="Request completion approval",
)
async def request_completion(
    project_id: uuid.UUID,
    request: RequestCompletionRequest,
    actor: Actor | None = Depends(get_actor),
    svc: EscrowService = Depends(get_escrow_service),
) -> ProjectResponse:
    """Starts the approval window; the hold auto-releases when it lapses."""
    project = await svc.request_completion(
        actor, project_id, proof_urls=request.proof_urls, note=request.note
    )
    return ProjectResponse.model_validate(project)


@router.post(
    "/{project_id}/approve",
    response_model=OutcomeResponse,
    summary="Approve and release funds",
)
async def approve_release(
    project_id: uuid.UUID,
    actor: Actor | None = Depends(get_actor),
    svc: EscrowService = Depends(get_escrow_service),
) -> OutcomeResponse:
    return OutcomeResponse.model_validate(await svc.approve_release(actor, project_id))


@router.post("/{project_id}/close", response_model=ProjectResponse, summary="Close a project")
async def close_project(
    project_id: uuid.UUID,
    actor: Actor | None = Depends(get_actor),
    svc: EscrowService = Depends(get_escrow_service),
) -> ProjectResponse:
    return ProjectResponse.model_validate(await svc.close_project(actor, project_id))


# ---------------------------------------------------------------------------
# Ledger
# ---------------------------------------------------------------------------


@router.get(
    "/{project_id}/ledger",
    response_model=list[LedgerEventResponse],
    summary="Get the ledger",
)
async def get_ledger(
    project_id: uuid.UUID,
    actor: Actor | None = Depends(get_actor),
    svc: EscrowService = Depends(get_escrow_service),
) -> list[LedgerEventResponse]:
    events = await svc.get_ledger(actor, project_id)
    return [LedgerEventResponse.model_validate(e) for e in events]


@router.get(
    "/{project_id}/ledger/balance",
    response_model=LedgerBalanceResponse,
    summary="Get the folded ledger balance",
)
async def get_ledger_balance(
    project_id: uuid.UUID,
    actor: Actor | None = Depends(get_actor),
    svc: EscrowService = Depends(get_escrow_service),
) -> LedgerBalanceResponse:
    summary = await svc.get_ledger_balance(actor, project_id)
    return LedgerBalanceResponse(
        **summary.balance.to_dict(),
        held_column_cents=summary.held_column_cents,
        consistent=summary.consistent,
    )
