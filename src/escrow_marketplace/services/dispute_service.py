"""Dispute Service — issue holds and the three ways out of them.

Once the customer raises an issue hold the funds are frozen and one Case is
opened for the project. Funds leave only through:
    - a joint release proposal signed by both parties,
    - an admin outcome backed by an external resolution document,
    - (never) the auto-release sweep, which only sees COMPLETION_REQUESTED.

Both money paths go through the OutcomeExecutor.
"""

from __future__ import annotations

from dataclasses import dataclass, field
from datetime import UTC, datetime
from typing import TYPE_CHECKING

from escrow_marketplace.domain.authorization import authorize, ensure_project_party
from escrow_marketplace.domain.enums import (
    CaseStatus,
    CaseType,
    EscrowState,
    LedgerEventType,
    OutcomeFlow,
    OutcomeType,
    ProposalStatus,
    ResolutionType,
)
from escrow_marketplace.domain.exceptions import (
    FailedPreconditionError,
    InvalidArgumentError,
    NotFoundError,
)
from escrow_marketplace.domain.outcomes import admin_outcome_amounts
from escrow_marketplace.domain.reliability import ReliabilityDelta
from escrow_marketplace.infrastructure.database.orm_models import Case, JointReleaseProposal
from escrow_marketplace.infrastructure.database.repositories import (
    CaseRepository,
    ProposalRepository,
)
from escrow_marketplace.logging_config import get_logger, project_context
from escrow_marketplace.services.base import ServiceBase, fire_transition
from escrow_marketplace.services.outcome_executor import OutcomeExecutor, OutcomeResult
from escrow_marketplace.services.reliability_service import ReliabilityService

if TYPE_CHECKING:
    import uuid

    from sqlalchemy.ext.asyncio import AsyncSession

    from escrow_marketplace.config import Settings
    from escrow_marketplace.domain.authorization import Actor
    from escrow_marketplace.infrastructure.database.orm_models import Project
    from escrow_marketplace.providers.base import PaymentProvider

logger = get_logger(__name__)


@dataclass(frozen=True)
class SignatureResult:
    proposal: JointReleaseProposal
    fully_signed: bool
    outcome: OutcomeResult | None = None


@dataclass(frozen=True)
class CaseView:
    case: Case
    proposals: list[JointReleaseProposal] = field(default_factory=list)


class DisputeService(ServiceBase):
    """Issue holds, joint releases, external resolutions and admin outcomes."""

    def __init__(
        self,
        session: AsyncSession,
        settings: Settings | None = None,
        provider: PaymentProvider | None = None,
    ) -> None:
        super().__init__(session, settings, provider)
        self._case_repo = CaseRepository(session)
        self._proposal_repo = ProposalRepository(session)
        self._reliability = ReliabilityService(session)

    # ------------------------------------------------------------------
    # Opening
    # ------------------------------------------------------------------

    async def raise_issue_hold(
        self, actor: Actor | None, project_id: uuid.UUID, reason: str
    ) -> Case:
        """Freeze the held funds and open the project's dispute case."""
        actor, config = await self._prepare(actor, "raise_issue_hold")
        project = await self._guarded_project(actor, "raise_issue_hold", project_id)
        if not reason or not reason.strip():
            raise InvalidArgumentError("reason is required")
        if await self._case_repo.get_for_project(project.id) is not None:
            raise FailedPreconditionError("A dispute case already exists for this project")

        now = datetime.now(UTC)
        fire_transition(project, EscrowState.ISSUE_RAISED_HOLD)
        project.issue_raised_at = now
        project.issue_reason = reason
        await self._project_repo.save(project)

        case = await self._case_repo.add(
            Case(
                project_id=project.id,
                case_type=CaseType.ISSUE_HOLD.value,
                status=CaseStatus.WAITING_JOINT_RELEASE.value,
                opened_by=actor.uid,
                reason=reason,
            )
        )
        await self._audit_repo.record(
            actor, "raise_issue_hold", "project", project.id, {"reason": reason}
        )
        await self._reliability.record_project_event(
            project, ReliabilityDelta(disputes_total=1), config, actor, source="raise_issue_hold"
        )
        logger.info("dispute.issue_raised", project_id=str(project.id), case_id=str(case.id))
        return case

    async def request_external_resolution(
        self, actor: Actor | None, project_id: uuid.UUID
    ) -> Case:
        actor, _ = await self._prepare(actor, "request_external_resolution")
        project = await self._guarded_project(actor, "request_external_resolution", project_id)
        case = await self._case_or_raise(project)

        fire_transition(project, EscrowState.RESOLUTION_PENDING_EXTERNAL)
        await self._project_repo.save(project)
        case.status = CaseStatus.WAITING_EXTERNAL_RESOLUTION.value
        await self._case_repo.save(case)
        await self._audit_repo.record(actor, "request_external_resolution", "case", case.id)
        logger.info("dispute.external_resolution_requested", project_id=str(project.id))
        return case

    # ------------------------------------------------------------------
    # Joint release
    # ------------------------------------------------------------------

    async def propose_joint_release(
        self,
        actor: Actor | None,
        project_id: uuid.UUID,
        release_to_contractor_cents: int,
        refund_to_customer_cents: int,
    ) -> JointReleaseProposal:
        """Propose a split of the whole held amount; both parties must then sign."""
        actor, _ = await self._prepare(actor, "propose_joint_release")
        project = await self._guarded_project(actor, "propose_joint_release", project_id)
        case = await self._case_or_raise(project)

        if release_to_contractor_cents < 0 or refund_to_customer_cents < 0:
            raise InvalidArgumentError("Split amounts cannot be negative")
        held = project.held_amount_cents
        if release_to_contractor_cents + refund_to_customer_cents != held:
            raise InvalidArgumentError(
                f"Joint release split must equal the held amount ({held})"
            )

        proposal = await self._proposal_repo.add(
            JointReleaseProposal(
                case_id=case.id,
                project_id=project.id,
                proposed_by=actor.uid,
                release_to_contractor_cents=release_to_contractor_cents,
                refund_to_customer_cents=refund_to_customer_cents,
                status=ProposalStatus.PENDING_SIGNATURES.value,
            )
        )
        await self._ledger_repo.append(
            stream_id=str(project.id),
            event_type=LedgerEventType.JOINT_RELEASE_PROPOSED,
            actor=actor,
            amount_cents=held,
            project_id=project.id,
            metadata={
                "proposal_id": str(proposal.id),
                "release_to_contractor_cents": release_to_contractor_cents,
                "refund_to_customer_cents": refund_to_customer_cents,
            },
        )
        logger.info(
            "dispute.joint_release_proposed",
            project_id=str(project.id),
            proposal_id=str(proposal.id),
        )
        return proposal

    async def sign_joint_release(
        self, actor: Actor | None, project_id: uuid.UUID, proposal_id: uuid.UUID
    ) -> SignatureResult:
        """Record the caller's signature; the second signature executes the split.

        Signing twice is a no-op. A proposal executes at most once, and its split
        is checked against the held amount again at execution time.
        """
        actor, config = await self._prepare(actor, "sign_joint_release")
        project = await self._guarded_project(actor, "sign_joint_release", project_id)
        proposal = await self._proposal_repo.get_by_id(proposal_id)
        if proposal is None or proposal.project_id != project.id:
            raise NotFoundError("JointReleaseProposal", str(proposal_id))
        if proposal.status != ProposalStatus.PENDING_SIGNATURES:
            raise FailedPreconditionError(
                f"Proposal is {proposal.status}; it can no longer be signed"
            )

        now = datetime.now(UTC)
        if actor.uid == project.customer_id and proposal.customer_signed_at is None:
            proposal.customer_signed_at = now
        if actor.uid == project.contractor_id and proposal.contractor_signed_at is None:
            proposal.contractor_signed_at = now
        fully_signed = proposal.fully_signed
        if fully_signed:
            proposal.status = ProposalStatus.FULLY_SIGNED.value
        await self._proposal_repo.save(proposal)

        await self._ledger_repo.append(
            stream_id=str(project.id),
            event_type=LedgerEventType.JOINT_RELEASE_SIGNED,
            actor=actor,
            project_id=project.id,
            metadata={"proposal_id": str(proposal.id), "fully_signed": fully_signed},
        )
        if not fully_signed:
            logger.info("dispute.joint_release_signed", proposal_id=str(proposal.id))
            return SignatureResult(proposal=proposal, fully_signed=False)

        release = proposal.release_to_contractor_cents
        refund = proposal.refund_to_customer_cents
        if release + refund != project.held_amount_cents:
            raise FailedPreconditionError(
                "Held amount changed since the proposal was made; propose a new split"
            )

        with project_context(project.id):
            outcome = await OutcomeExecutor(self._session, self._provider(config)).execute(
                project,
                release,
                refund,
                reason="joint_release",
                actor=actor,
                flow=OutcomeFlow.JOINT_RELEASE,
                config=config,
            )
            proposal.status = ProposalStatus.EXECUTED.value
            proposal.executed_at = datetime.now(UTC)
            await self._proposal_repo.save(proposal)
            await self._expire_other_proposals(proposal)

            case = await self._case_or_raise(project)
            await self._close_case(case, outcome)
            logger.info(
                "dispute.joint_release_executed",
                proposal_id=str(proposal.id),
                state=outcome.resulting_state,
            )
        return SignatureResult(proposal=proposal, fully_signed=True, outcome=outcome)

    # ------------------------------------------------------------------
    # External resolution
    # ------------------------------------------------------------------

    async def upload_resolution_document(
        self,
        actor: Actor | None,
        project_id: uuid.UUID,
        document_url: str,
        resolution_type: str,
        summary: str = "",
    ) -> Case:
        actor, _ = await self._prepare(actor, "upload_resolution_document")
        project = await self._guarded_project(actor, "upload_resolution_document", project_id)
        if not document_url:
            raise InvalidArgumentError("document_url is required")
        try:
            resolution = ResolutionType(resolution_type)
        except ValueError:
            raise InvalidArgumentError(f"Unknown resolution type '{resolution_type}'") from None
        case = await self._case_or_raise(project)

        case.status = CaseStatus.RESOLUTION_SUBMITTED.value
        case.resolution_document_url = document_url
        case.resolution_summary = summary
        case.resolution_type = resolution.value
        case.resolution_submitted_by = actor.uid
        case.resolution_submitted_at = datetime.now(UTC)
        await self._case_repo.save(case)

        if project.state != EscrowState.RESOLUTION_SUBMITTED:
            fire_transition(project, EscrowState.RESOLUTION_SUBMITTED)
            await self._project_repo.save(project)

        await self._ledger_repo.append(
            stream_id=str(project.id),
            event_type=LedgerEventType.EXTERNAL_RESOLUTION_SUBMITTED,
            actor=actor,
            project_id=project.id,
            metadata={
                "resolution_type": resolution.value,
                "summary": summary,
                "doc_references": [document_url],
            },
        )
        logger.info(
            "dispute.resolution_uploaded", project_id=str(project.id), resolution_type=resolution
        )
        return case

    async def admin_execute_outcome(
        self,
        actor: Actor | None,
        project_id: uuid.UUID,
        outcome_type: str,
        release_cents: int | None = None,
        refund_cents: int | None = None,
        doc_reference: str | None = None,
        notes: str = "",
    ) -> OutcomeResult:
        """Execute a documented outcome on a disputed project and close its case."""
        actor, config = await self._prepare(actor, "admin_execute_outcome")
        project = await self._guarded_project(actor, "admin_execute_outcome", project_id)
        case = await self._case_or_raise(project)
        if case.status == CaseStatus.CLOSED:
            raise FailedPreconditionError("Case is already closed")
        if not case.resolution_document_url and not doc_reference:
            raise FailedPreconditionError("A resolution document reference is required")
        try:
            kind = OutcomeType(outcome_type)
        except ValueError:
            raise InvalidArgumentError(f"Unknown outcome type '{outcome_type}'") from None

        release, refund = admin_outcome_amounts(
            kind, project.held_amount_cents, release_cents, refund_cents
        )
        doc_refs = [ref for ref in (case.resolution_document_url, doc_reference) if ref]

        with project_context(project.id):
            outcome = await OutcomeExecutor(self._session, self._provider(config)).execute(
                project,
                release,
                refund,
                reason=f"admin_execute_{kind.value}",
                actor=actor,
                flow=OutcomeFlow.ADMIN,
                config=config,
                doc_references=doc_refs,
            )
            await self._close_case(case, outcome)
            await self._audit_repo.record(
                actor,
                "admin_execute_outcome",
                "case",
                case.id,
                {
                    "outcome_type": kind.value,
                    "release_cents": release,
                    "refund_cents": refund,
                    "doc_references": doc_refs,
                    "notes": notes,
                },
            )
            logger.info(
                "dispute.admin_outcome_executed",
                outcome_type=kind,
                state=outcome.resulting_state,
            )
        return outcome

    # ------------------------------------------------------------------
    # Reads
    # ------------------------------------------------------------------

    async def get_case(self, actor: Actor | None, project_id: uuid.UUID) -> CaseView:
        actor = authorize(actor, "view_project")
        project = await self._get_project_or_raise(project_id)
        ensure_project_party(actor, project)
        case = await self._case_or_raise(project)
        return CaseView(case=case, proposals=await self._proposal_repo.list_for_case(case.id))

    # ------------------------------------------------------------------
    # Private helpers
    # ------------------------------------------------------------------

    async def _case_or_raise(self, project: Project) -> Case:
        case = await self._case_repo.get_for_project(project.id)
        if case is None:
            raise NotFoundError("Case", str(project.id))
        return case

    async def _close_case(self, case: Case, outcome: OutcomeResult) -> None:
        case.status = CaseStatus.CLOSED.value
        case.closed_at = datetime.now(UTC)
        case.outcome = {
            "classification": outcome.classification.value,
            "release_cents": outcome.release_cents,
            "refund_cents": outcome.refund_cents,
            "fee_cents": outcome.fee_cents,
        }
        await self._case_repo.save(case)

    async def _expire_other_proposals(self, executed: JointReleaseProposal) -> None:
        for other in await self._proposal_repo.list_for_case(executed.case_id):
            if other.id != executed.id and other.status == ProposalStatus.PENDING_SIGNATURES:
                other.status = ProposalStatus.EXPIRED.value
        await self._proposal_repo.save(executed)
