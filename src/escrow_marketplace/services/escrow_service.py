"""Escrow Service — core business logic for the project lifecycle.

This is the application layer that coordinates between:
    - Operation policy table (roles, states, feature flags)
    - Domain state machine (transition guard)
    - Payment provider (hold creation)
    - Repositories (data access) and the ledger / audit trail

REST routes, the jobs entry point and the simulation script all call into
this service, so the business rules live in one place.
"""

from __future__ import annotations

from dataclasses import dataclass, field
from datetime import UTC, datetime
from typing import TYPE_CHECKING

from escrow_marketplace.domain.authorization import authorize, ensure_project_party
from escrow_marketplace.domain.enums import (
    EscrowState,
    LedgerEventType,
    OutcomeFlow,
    ProjectCategory,
    QuoteStatus,
    Role,
)
from escrow_marketplace.domain.exceptions import (
    FailedPreconditionError,
    InvalidArgumentError,
    NotFoundError,
    PermissionDeniedError,
)
from escrow_marketplace.domain.fees import calculate_platform_fee
from escrow_marketplace.domain.hold_policy import (
    compute_admin_attention_date,
    compute_approval_deadline,
)
from escrow_marketplace.domain.ledger import LedgerBalance, fold_ledger
from escrow_marketplace.domain.reliability import ReliabilityDelta
from escrow_marketplace.domain.state_machine import next_states
from escrow_marketplace.infrastructure.database.orm_models import Agreement, Project, Quote
from escrow_marketplace.infrastructure.database.repositories import (
    AgreementRepository,
    BillingRepository,
    QuoteRepository,
)
from escrow_marketplace.logging_config import get_logger, project_context
from escrow_marketplace.services.base import ServiceBase, fire_transition
from escrow_marketplace.services.outcome_executor import OutcomeExecutor, OutcomeResult
from escrow_marketplace.services.reliability_service import (
    ReliabilityService,
    completed_on_time,
)

if TYPE_CHECKING:
    import uuid

    from sqlalchemy.ext.asyncio import AsyncSession

    from escrow_marketplace.config import Settings
    from escrow_marketplace.domain.authorization import Actor
    from escrow_marketplace.domain.fees import FeeSummary
    from escrow_marketplace.domain.policy_config import PlatformConfig
    from escrow_marketplace.infrastructure.database.orm_models import LedgerEvent
    from escrow_marketplace.providers.base import HoldResult, PaymentProvider

logger = get_logger(__name__)

DEFAULT_PROJECT_PAGE = 25
MAX_PROJECT_PAGE = 100


@dataclass(frozen=True)
class AgreementAcceptance:
    agreement: Agreement
    state: EscrowState
    ready_to_fund: bool


@dataclass(frozen=True)
class FundingResult:
    project: Project
    hold: HoldResult
    fee_preview: FeeSummary


@dataclass(frozen=True)
class LedgerSummary:
    """Balances folded from the ledger, next to the project's own held column."""

    balance: LedgerBalance
    held_column_cents: int
    events: list[LedgerEvent] = field(default_factory=list)

    @property
    def consistent(self) -> bool:
        return self.balance.held_cents == self.held_column_cents


def _policy_summary(config: PlatformConfig) -> str:
    return (
        f"Customer has {config.hold_policy.approval_window_days} days after completion "
        "request to approve or report an issue."
    )


def _fee_disclosure(config: PlatformConfig) -> str:
    fees = config.fees
    if fees.tiers:
        return "Platform fee is tiered by job amount and applied at release time."
    return (
        f"Platform fee {fees.percent_bps / 100:g}% + {fees.fixed_fee_cents / 100:.2f} USD "
        "applied at release time."
    )


class EscrowService(ServiceBase):
    """Manages the project lifecycle from posting to close."""

    def __init__(
        self,
        session: AsyncSession,
        settings: Settings | None = None,
        provider: PaymentProvider | None = None,
    ) -> None:
        super().__init__(session, settings, provider)
        self._quote_repo = QuoteRepository(self._session)
        self._agreement_repo = AgreementRepository(self._session)
        self._billing_repo = BillingRepository(self._session)
        self._reliability = ReliabilityService(self._session)

    # ------------------------------------------------------------------
    # Posting
    # ------------------------------------------------------------------

    async def create_project(
        self,
        actor: Actor | None,
        title: str,
        category: str,
        description: str = "",
        municipality: str | None = None,
        budget_cents: int | None = None,
        publish: bool = True,
    ) -> Project:
        """Create a project, open for quotes unless ``publish`` is False (DRAFT)."""
        actor, _ = await self._prepare(actor, "create_project")
        if not title or not title.strip():
            raise InvalidArgumentError("title is required")
        try:
            category = ProjectCategory(category).value
        except ValueError:
            raise InvalidArgumentError(f"Unknown project category '{category}'") from None
        if budget_cents is not None and budget_cents <= 0:
            raise InvalidArgumentError("budget_cents must be positive")

        project = Project(
            customer_id=actor.uid,
            title=title.strip(),
            category=category,
            description=description,
            municipality=municipality,
            budget_cents=budget_cents,
            state=(EscrowState.OPEN_FOR_QUOTES if publish else EscrowState.DRAFT).value,
            held_amount_cents=0,
            estimate_deposit_credit_cents=0,
            proof_urls=[],
        )
        project = await self._project_repo.add(project)
        logger.info(
            "escrow.project_created",
            project_id=str(project.id),
            customer_id=actor.uid,
            state=project.state,
        )
        return project

    async def publish_project(self, actor: Actor | None, project_id: uuid.UUID) -> Project:
        actor, _ = await self._prepare(actor, "publish_project")
        project = await self._guarded_project(actor, "publish_project", project_id)
        fire_transition(project, EscrowState.OPEN_FOR_QUOTES)
        await self._project_repo.save(project)
        logger.info("escrow.project_published", project_id=str(project.id))
        return project

    async def cancel_project(
        self, actor: Actor | None, project_id: uuid.UUID, reason: str = ""
    ) -> Project:
        actor, _ = await self._prepare(actor, "cancel_project")
        project = await self._guarded_project(actor, "cancel_project", project_id)
        if actor.role is Role.CUSTOMER and actor.uid != project.customer_id:
            raise PermissionDeniedError("Only the project owner can cancel it")
        fire_transition(project, EscrowState.CANCELLED)
        project.closed_at = datetime.now(UTC)
        await self._project_repo.save(project)
        await self._audit_repo.record(
            actor, "cancel_project", "project", project.id, {"reason": reason}
        )
        logger.info("escrow.project_cancelled", project_id=str(project.id), by=actor.uid)
        return project

    # ------------------------------------------------------------------
    # Quoting and selection
    # ------------------------------------------------------------------

    async def submit_quote(
        self,
        actor: Actor | None,
        project_id: uuid.UUID,
        price_cents: int,
        timeline_days: int,
        scope_notes: str = "",
    ) -> Quote:
        actor, _ = await self._prepare(actor, "submit_quote")
        project = await self._guarded_project(actor, "submit_quote", project_id, party_check=False)
        if actor.uid == project.customer_id:
            raise PermissionDeniedError("A customer cannot quote their own project")
        if price_cents <= 0:
            raise InvalidArgumentError("price_cents must be positive")
        if timeline_days <= 0:
            raise InvalidArgumentError("timeline_days must be positive")

        quote = Quote(
            project_id=project.id,
            contractor_id=actor.uid,
            price_cents=price_cents,
            timeline_days=timeline_days,
            scope_notes=scope_notes,
            status=QuoteStatus.SUBMITTED.value,
        )
        quote = await self._quote_repo.add(quote)
        logger.info(
            "escrow.quote_submitted",
            project_id=str(project.id),
            quote_id=str(quote.id),
            price_cents=price_cents,
        )
        return quote

    async def select_contractor(
        self, actor: Actor | None, project_id: uuid.UUID, quote_id: uuid.UUID
    ) -> Agreement:
        """Choose a quote, decline its siblings and snapshot the agreement terms."""
        actor, config = await self._prepare(actor, "select_contractor")
        project = await self._guarded_project(actor, "select_contractor", project_id)
        quote = await self._quote_repo.get_by_id(quote_id)
        if quote is None or quote.project_id != project.id:
            raise NotFoundError("Quote", str(quote_id))

        await self._quote_repo.mark_selection(project.id, quote.id)
        fire_transition(project, EscrowState.CONTRACTOR_SELECTED)
        project.contractor_id = quote.contractor_id
        project.selected_quote_id = quote.id
        await self._project_repo.save(project)

        agreement = Agreement(
            project_id=project.id,
            quote_id=quote.id,
            customer_id=project.customer_id,
            contractor_id=quote.contractor_id,
            scope_summary=f"{project.title}: {quote.scope_notes}",
            price_cents=quote.price_cents,
            timeline_days=quote.timeline_days,
            policy_summary=_policy_summary(config),
            fee_disclosure=_fee_disclosure(config),
            terms_version=1,
        )
        agreement = await self._agreement_repo.add(agreement)
        logger.info(
            "escrow.contractor_selected",
            project_id=str(project.id),
            contractor_id=quote.contractor_id,
            price_cents=quote.price_cents,
        )
        return agreement

    async def accept_agreement(
        self, actor: Actor | None, project_id: uuid.UUID
    ) -> AgreementAcceptance:
        """Record the caller's acceptance; idempotent per party."""
        actor, _ = await self._prepare(actor, "accept_agreement")
        project = await self._guarded_project(actor, "accept_agreement", project_id)
        agreement = await self._agreement_repo.get_for_project(project.id)
        if agreement is None:
            raise NotFoundError("Agreement", str(project.id))

        now = datetime.now(UTC)
        if actor.uid == agreement.customer_id and agreement.customer_accepted_at is None:
            agreement.customer_accepted_at = now
        elif actor.uid == agreement.contractor_id and agreement.contractor_accepted_at is None:
            agreement.contractor_accepted_at = now
        await self._agreement_repo.save(agreement)

        if agreement.fully_accepted and project.state == EscrowState.CONTRACTOR_SELECTED:
            fire_transition(project, EscrowState.AGREEMENT_ACCEPTED)
            await self._project_repo.save(project)
            logger.info("escrow.agreement_accepted", project_id=str(project.id))

        return AgreementAcceptance(
            agreement=agreement,
            state=EscrowState(project.state),
            ready_to_fund=agreement.fully_accepted,
        )

    # ------------------------------------------------------------------
    # Funding and work
    # ------------------------------------------------------------------

    async def fund_hold(self, actor: Actor | None, project_id: uuid.UUID) -> FundingResult:
        """Place the escrow hold for the agreed price, less any credited deposit."""
        actor, config = await self._prepare(actor, "fund_hold")
        project = await self._guarded_project(actor, "fund_hold", project_id)
        agreement = await self._agreement_repo.get_for_project(project.id)
        if agreement is None or not agreement.fully_accepted:
            raise FailedPreconditionError("Both parties must accept the agreement before funding")

        amount = agreement.price_cents - project.estimate_deposit_credit_cents
        if amount <= 0:
            raise FailedPreconditionError("Nothing left to fund after deposit credit")

        plan_id = None
        if project.contractor_id:
            subscription = await self._billing_repo.get_active_subscription(project.contractor_id)
            plan_id = subscription.plan_id if subscription else None
        fee_preview = calculate_platform_fee(amount, config.fees, plan_id)

        with project_context(project.id):
            provider = self._provider(config)
            hold = await provider.create_hold(
                str(project.id),
                amount,
                project.customer_id,
                description=project.title,
                idempotency_key=f"hold:{project.id}:{project.version}",
            )

            fire_transition(project, EscrowState.FUNDED_HELD)
            project.provider_hold_id = hold.provider_hold_id
            project.held_amount_cents = amount
            project.funded_at = datetime.now(UTC)
            await self._project_repo.save(project)

            await self._ledger_repo.append(
                stream_id=str(project.id),
                event_type=LedgerEventType.HOLD_CREATED,
                actor=actor,
                amount_cents=amount,
                project_id=project.id,
                metadata={
                    "provider": provider.provider_name,
                    "provider_hold_id": hold.provider_hold_id,
                    "estimate_deposit_credit_cents": project.estimate_deposit_credit_cents,
                },
            )
            await self._audit_repo.record(
                actor,
                "fund_hold",
                "project",
                project.id,
                {"amount_cents": amount, "provider": provider.provider_name},
            )
            logger.info("escrow.funded", amount_cents=amount, provider=provider.provider_name)

        return FundingResult(project=project, hold=hold, fee_preview=fee_preview)

    async def start_work(self, actor: Actor | None, project_id: uuid.UUID) -> Project:
        actor, _ = await self._prepare(actor, "start_work")
        project = await self._guarded_project(actor, "start_work", project_id)
        fire_transition(project, EscrowState.IN_PROGRESS)
        await self._project_repo.save(project)
        logger.info("escrow.work_started", project_id=str(project.id))
        return project

    async def request_completion(
        self,
        actor: Actor | None,
        project_id: uuid.UUID,
        proof_urls: list[str] | None = None,
        note: str = "",
    ) -> Project:
        """Contractor marks the job done; the approval window starts now."""
        actor, config = await self._prepare(actor, "request_completion")
        project = await self._guarded_project(actor, "request_completion", project_id)
        proofs = [url for url in (proof_urls or []) if url]

        fire_transition(project, EscrowState.COMPLETION_REQUESTED)
        project.completion_requested_at = datetime.now(UTC)
        project.completion_note = note
        project.proof_urls = proofs
        await self._project_repo.save(project)

        await self._reliability.record_project_event(
            project,
            ReliabilityDelta(
                proof_submissions_total=1,
                proof_submissions_complete=1 if proofs else 0,
            ),
            config,
            actor,
            source="request_completion",
        )
        logger.info(
            "escrow.completion_requested", project_id=str(project.id), proof_count=len(proofs)
        )
        return project

    async def approve_release(self, actor: Actor | None, project_id: uuid.UUID) -> OutcomeResult:
        """Customer approves the work; the full held amount goes to the contractor."""
        actor, config = await self._prepare(actor, "approve_release")
        project = await self._guarded_project(actor, "approve_release", project_id)
        if project.held_amount_cents <= 0:
            raise FailedPreconditionError("Project has no held funds")

        with project_context(project.id):
            result = await OutcomeExecutor(self._session, self._provider(config)).execute(
                project,
                project.held_amount_cents,
                0,
                reason="customer_approval",
                actor=actor,
                flow=OutcomeFlow.APPROVAL,
                config=config,
            )
            await self._audit_repo.record(
                actor,
                "approve_release",
                "project",
                project.id,
                {"release_cents": result.release_cents, "fee_cents": result.fee_cents},
            )
            await self.record_completion(project, config, actor, source="approve_release")
        return result

    async def record_completion(
        self, project: Project, config: PlatformConfig, actor: Actor, source: str
    ) -> None:
        """Reliability hook for a completed job (approval or auto-release)."""
        agreement = await self._agreement_repo.get_for_project(project.id)
        on_time = completed_on_time(project, agreement)
        await self._reliability.record_project_event(
            project,
            ReliabilityDelta(completions_total=1, completions_on_time=1 if on_time else 0),
            config,
            actor,
            source=source,
        )

    async def close_project(self, actor: Actor | None, project_id: uuid.UUID) -> Project:
        actor, _ = await self._prepare(actor, "close_project")
        project = await self._guarded_project(actor, "close_project", project_id)
        fire_transition(project, EscrowState.CLOSED)
        project.closed_at = datetime.now(UTC)
        await self._project_repo.save(project)
        await self._audit_repo.record(
            actor,
            "close_project",
            "project",
            project.id,
            {"held_amount_cents": project.held_amount_cents},
        )
        logger.info("escrow.project_closed", project_id=str(project.id))
        return project

    # ------------------------------------------------------------------
    # Read helpers
    # ------------------------------------------------------------------

    async def get_project(self, actor: Actor | None, project_id: uuid.UUID) -> Project:
        actor = authorize(actor, "view_project")
        project = await self._get_project_or_raise(project_id)
        ensure_project_party(actor, project)
        return project

    async def list_projects(
        self,
        actor: Actor | None,
        limit: int = DEFAULT_PROJECT_PAGE,
        category: str | None = None,
        municipality: str | None = None,
    ) -> list[Project]:
        """Customers see their own projects, contractors the open ones plus their own.

        Admins see every project.
        """
        actor = authorize(actor, "list_projects")
        if not 1 <= limit <= MAX_PROJECT_PAGE:
            raise InvalidArgumentError(f"limit must be between 1 and {MAX_PROJECT_PAGE}")
        open_state = EscrowState.OPEN_FOR_QUOTES if actor.role is Role.CONTRACTOR else None
        return await self._project_repo.list_visible(
            actor, limit, open_state=open_state, category=category, municipality=municipality
        )

    async def get_agreement(self, actor: Actor | None, project_id: uuid.UUID) -> Agreement:
        project = await self.get_project(actor, project_id)
        agreement = await self._agreement_repo.get_for_project(project.id)
        if agreement is None:
            raise NotFoundError("Agreement", str(project.id))
        return agreement

    async def list_quotes(self, actor: Actor | None, project_id: uuid.UUID) -> list[Quote]:
        """Owner and admins see every quote; a contractor sees only their own."""
        actor = authorize(actor, "view_project")
        project = await self._get_project_or_raise(project_id)
        quotes = await self._quote_repo.list_for_project(project.id)
        if actor.is_admin or actor.uid == project.customer_id:
            return quotes
        if actor.role is Role.CONTRACTOR:
            return [q for q in quotes if q.contractor_id == actor.uid]
        raise PermissionDeniedError("Actor is not a party to this project")

    async def get_status(self, actor: Actor | None, project_id: uuid.UUID) -> dict:
        """Project state with the legal next states and any running deadlines."""
        project = await self.get_project(actor, project_id)
        config = await self._config_service.load()
        status: dict = {
            "project_id": str(project.id),
            "state": project.state,
            "held_amount_cents": project.held_amount_cents,
            "next_states": [s.value for s in next_states(project.state)],
            "approval_deadline": None,
            "admin_attention_date": None,
        }
        if project.completion_requested_at is not None:
            status["approval_deadline"] = compute_approval_deadline(
                project.completion_requested_at, config.hold_policy.approval_window_days
            )
        if project.issue_raised_at is not None:
            status["admin_attention_date"] = compute_admin_attention_date(
                project.issue_raised_at, config.hold_policy.admin_attention_days
            )
        return status

    async def get_ledger(self, actor: Actor | None, project_id: uuid.UUID) -> list[LedgerEvent]:
        project = await self.get_project(actor, project_id)
        return await self._ledger_repo.list_for_stream(str(project.id))

    async def get_ledger_balance(self, actor: Actor | None, project_id: uuid.UUID) -> LedgerSummary:
        project = await self.get_project(actor, project_id)
        events = await self._ledger_repo.list_for_stream(str(project.id))
        return LedgerSummary(
            balance=fold_ledger(events),
            held_column_cents=project.held_amount_cents,
            events=events,
        )
