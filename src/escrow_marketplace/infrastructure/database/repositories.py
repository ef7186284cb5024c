"""Repository classes for database access.

Repositories encapsulate all SQL queries and provide a clean interface
to the service layer. They accept an AsyncSession and never manage
their own transactions (that's the caller's responsibility).

Writes flush immediately so version conflicts and constraint violations
surface inside the operation that caused them, as domain errors.
"""

from __future__ import annotations

from typing import TYPE_CHECKING

from sqlalchemy import func, or_, select
from sqlalchemy.exc import IntegrityError
from sqlalchemy.orm.exc import StaleDataError

from escrow_marketplace.domain.enums import (
    CaseStatus,
    EscrowState,
    QuoteStatus,
    Role,
    SubscriptionStatus,
)
from escrow_marketplace.domain.exceptions import ConcurrentModificationError
from escrow_marketplace.infrastructure.database.orm_models import (
    Agreement,
    AuditAction,
    BillingInvoice,
    Case,
    ChangeOrder,
    EstimateDeposit,
    HighTicketCase,
    JointReleaseProposal,
    LedgerEvent,
    Milestone,
    PaymentAccount,
    PlatformConfigDocument,
    Project,
    Quote,
    ReliabilityScoreHistory,
    ReliabilityScoreRecord,
    Subscription,
)

if TYPE_CHECKING:
    import uuid
    from collections.abc import Sequence
    from datetime import datetime

    from sqlalchemy.ext.asyncio import AsyncSession

    from escrow_marketplace.domain.authorization import Actor
    from escrow_marketplace.domain.enums import LedgerEventType


class _Repository:
    entity = "record"

    def __init__(self, session: AsyncSession) -> None:
        self._session = session

    async def _flush(self) -> None:
        try:
            await self._session.flush()
        except StaleDataError as err:
            raise ConcurrentModificationError(self.entity) from err

    async def add(self, obj):  # noqa: ANN001, ANN201
        """Insert a new row."""
        self._session.add(obj)
        await self._flush()
        return obj

    async def save(self, obj):  # noqa: ANN001, ANN201
        """Flush pending changes on ``obj``; stale versions raise ConcurrentModificationError."""
        await self._flush()
        return obj


class ProjectRepository(_Repository):
    """Data access for projects."""

    entity = "Project"

    async def get_by_id(self, project_id: uuid.UUID) -> Project | None:
        result = await self._session.execute(select(Project).where(Project.id == project_id))
        return result.scalar_one_or_none()

    async def list_due_for_auto_release(
        self, requested_before: datetime, limit: int
    ) -> list[Project]:
        """Completions requested strictly before the cutoff, oldest first.

        Projects whose last auto-release attempt failed sort behind every
        untried one, least recently failed first, so they cannot hold the
        head of the batch.
        """
        result = await self._session.execute(
            select(Project)
            .where(
                Project.state == EscrowState.COMPLETION_REQUESTED.value,
                Project.completion_requested_at.is_not(None),
                Project.completion_requested_at < requested_before,
            )
            .order_by(
                Project.auto_release_failed_at.is_not(None),
                Project.auto_release_failed_at.asc(),
                Project.completion_requested_at.asc(),
            )
            .limit(limit)
        )
        return list(result.scalars().all())

    async def list_visible(
        self,
        actor: Actor,
        limit: int,
        open_state: EscrowState | None = None,
        category: str | None = None,
        municipality: str | None = None,
    ) -> list[Project]:
        """Newest first. Admins see everything; others see projects they are party to.

        When ``open_state`` is given, projects in that state are visible too.
        """
        query = select(Project)
        if actor.role != Role.ADMIN:
            column = Project.customer_id if actor.role == Role.CUSTOMER else Project.contractor_id
            visible = column == actor.uid
            if open_state is not None:
                visible = or_(visible, Project.state == open_state.value)
            query = query.where(visible)
        if category:
            query = query.where(Project.category == category)
        if municipality:
            query = query.where(Project.municipality == municipality)
        result = await self._session.execute(
            query.order_by(Project.created_at.desc()).limit(limit)
        )
        return list(result.scalars().all())

    async def list_by_ids(self, project_ids: Sequence[uuid.UUID]) -> dict[uuid.UUID, Project]:
        if not project_ids:
            return {}
        result = await self._session.execute(select(Project).where(Project.id.in_(project_ids)))
        return {p.id: p for p in result.scalars().all()}

    async def list_contractor_ids(self, limit: int) -> list[str]:
        """Distinct contractors across projects that have one selected."""
        result = await self._session.execute(
            select(Project.contractor_id)
            .where(Project.contractor_id.is_not(None))
            .distinct()
            .limit(limit)
        )
        return [row for row in result.scalars().all() if row]


class QuoteRepository(_Repository):
    entity = "Quote"

    async def get_by_id(self, quote_id: uuid.UUID) -> Quote | None:
        result = await self._session.execute(select(Quote).where(Quote.id == quote_id))
        return result.scalar_one_or_none()

    async def list_for_project(self, project_id: uuid.UUID) -> list[Quote]:
        result = await self._session.execute(
            select(Quote).where(Quote.project_id == project_id).order_by(Quote.created_at.asc())
        )
        return list(result.scalars().all())

    async def mark_selection(self, project_id: uuid.UUID, selected_id: uuid.UUID) -> None:
        """Mark the chosen quote SELECTED and every sibling DECLINED."""
        for quote in await self.list_for_project(project_id):
            quote.status = (
                QuoteStatus.SELECTED.value
                if quote.id == selected_id
                else QuoteStatus.DECLINED.value
            )
        await self._flush()


class AgreementRepository(_Repository):
    entity = "Agreement"

    async def get_for_project(self, project_id: uuid.UUID) -> Agreement | None:
        result = await self._session.execute(
            select(Agreement).where(Agreement.project_id == project_id)
        )
        return result.scalar_one_or_none()


class MilestoneRepository(_Repository):
    entity = "Milestone"

    async def add_all(self, milestones: Sequence[Milestone]) -> list[Milestone]:
        self._session.add_all(milestones)
        await self._flush()
        return list(milestones)

    async def get_by_id(self, milestone_id: uuid.UUID) -> Milestone | None:
        result = await self._session.execute(select(Milestone).where(Milestone.id == milestone_id))
        return result.scalar_one_or_none()

    async def list_for_project(self, project_id: uuid.UUID) -> list[Milestone]:
        result = await self._session.execute(
            select(Milestone)
            .where(Milestone.project_id == project_id)
            .order_by(Milestone.sort_order.asc())
        )
        return list(result.scalars().all())


class ChangeOrderRepository(_Repository):
    entity = "ChangeOrder"

    async def get_by_id(self, change_order_id: uuid.UUID) -> ChangeOrder | None:
        result = await self._session.execute(
            select(ChangeOrder).where(ChangeOrder.id == change_order_id)
        )
        return result.scalar_one_or_none()

    async def list_for_project(self, project_id: uuid.UUID) -> list[ChangeOrder]:
        result = await self._session.execute(
            select(ChangeOrder)
            .where(ChangeOrder.project_id == project_id)
            .order_by(ChangeOrder.created_at.asc())
        )
        return list(result.scalars().all())


class LedgerRepository(_Repository):
    """Data access for the append-only money ledger."""

    entity = "Ledger stream"

    async def next_sequence(self, stream_id: str) -> int:
        result = await self._session.execute(
            select(func.max(LedgerEvent.sequence)).where(LedgerEvent.stream_id == stream_id)
        )
        current = result.scalar_one_or_none()
        return (current or 0) + 1

    async def append(
        self,
        stream_id: str,
        event_type: LedgerEventType,
        actor: Actor,
        amount_cents: int = 0,
        fee_cents: int = 0,
        project_id: uuid.UUID | None = None,
        metadata: dict | None = None,
        currency: str = "usd",
    ) -> LedgerEvent:
        """Append one event at the stream's next sequence. This is the ONLY write allowed.

        Two writers racing for the same sequence collide on the unique
        (stream_id, sequence) constraint; the loser gets ConcurrentModificationError.
        """
        evt = LedgerEvent(
            stream_id=stream_id,
            project_id=project_id,
            sequence=await self.next_sequence(stream_id),
            event_type=event_type.value,
            amount_cents=amount_cents,
            fee_cents=fee_cents,
            currency=currency,
            actor_id=actor.uid,
            actor_role=actor.role.value,
            metadata_json=metadata,
        )
        self._session.add(evt)
        try:
            await self._session.flush()
        except IntegrityError as err:
            raise ConcurrentModificationError(self.entity) from err
        return evt

    async def list_for_stream(self, stream_id: str) -> list[LedgerEvent]:
        """All events of one stream in sequence order."""
        result = await self._session.execute(
            select(LedgerEvent)
            .where(LedgerEvent.stream_id == stream_id)
            .order_by(LedgerEvent.sequence.asc())
        )
        return list(result.scalars().all())


class AuditRepository(_Repository):
    entity = "AuditAction"

    async def record(
        self,
        actor: Actor,
        action: str,
        target_type: str,
        target_id: object,
        details: dict | None = None,
    ) -> AuditAction:
        entry = AuditAction(
            actor_id=actor.uid,
            actor_role=actor.role.value,
            action=action,
            target_type=target_type,
            target_id=str(target_id),
            details=details or {},
        )
        return await self.add(entry)

    async def list_for_target(self, target_type: str, target_id: object) -> list[AuditAction]:
        result = await self._session.execute(
            select(AuditAction)
            .where(AuditAction.target_type == target_type, AuditAction.target_id == str(target_id))
            .order_by(AuditAction.created_at.asc())
        )
        return list(result.scalars().all())


class CaseRepository(_Repository):
    entity = "Case"

    async def get_by_id(self, case_id: uuid.UUID) -> Case | None:
        result = await self._session.execute(select(Case).where(Case.id == case_id))
        return result.scalar_one_or_none()

    async def get_for_project(self, project_id: uuid.UUID) -> Case | None:
        result = await self._session.execute(select(Case).where(Case.project_id == project_id))
        return result.scalar_one_or_none()

    async def list_awaiting_attention(self, raised_before: datetime, limit: int) -> list[Case]:
        """Open, not yet escalated cases whose issue was raised at or before the cutoff."""
        result = await self._session.execute(
            select(Case)
            .join(Project, Project.id == Case.project_id)
            .where(
                Case.status.not_in(
                    [CaseStatus.CLOSED.value, CaseStatus.ADMIN_ATTENTION_REQUIRED.value]
                ),
                Project.issue_raised_at.is_not(None),
                Project.issue_raised_at <= raised_before,
            )
            .order_by(Project.issue_raised_at.asc())
            .limit(limit)
        )
        return list(result.scalars().all())


class ProposalRepository(_Repository):
    entity = "JointReleaseProposal"

    async def get_by_id(self, proposal_id: uuid.UUID) -> JointReleaseProposal | None:
        result = await self._session.execute(
            select(JointReleaseProposal).where(JointReleaseProposal.id == proposal_id)
        )
        return result.scalar_one_or_none()

    async def list_for_case(self, case_id: uuid.UUID) -> list[JointReleaseProposal]:
        result = await self._session.execute(
            select(JointReleaseProposal)
            .where(JointReleaseProposal.case_id == case_id)
            .order_by(JointReleaseProposal.created_at.asc())
        )
        return list(result.scalars().all())


class DepositRepository(_Repository):
    entity = "EstimateDeposit"

    async def get_by_id(self, deposit_id: uuid.UUID) -> EstimateDeposit | None:
        result = await self._session.execute(
            select(EstimateDeposit).where(EstimateDeposit.id == deposit_id)
        )
        return result.scalar_one_or_none()

    async def list_for_project(self, project_id: uuid.UUID) -> list[EstimateDeposit]:
        result = await self._session.execute(
            select(EstimateDeposit)
            .where(EstimateDeposit.project_id == project_id)
            .order_by(EstimateDeposit.created_at.asc())
        )
        return list(result.scalars().all())


class ReliabilityRepository(_Repository):
    entity = "ReliabilityScore"

    async def get(self, contractor_id: str) -> ReliabilityScoreRecord | None:
        result = await self._session.execute(
            select(ReliabilityScoreRecord).where(
                ReliabilityScoreRecord.contractor_id == contractor_id
            )
        )
        return result.scalar_one_or_none()

    async def list_history(self, contractor_id: str) -> list[ReliabilityScoreHistory]:
        result = await self._session.execute(
            select(ReliabilityScoreHistory)
            .where(ReliabilityScoreHistory.contractor_id == contractor_id)
            .order_by(ReliabilityScoreHistory.created_at.asc())
        )
        return list(result.scalars().all())


class BillingRepository(_Repository):
    """Payment accounts, subscriptions and their invoices."""

    entity = "Subscription"

    async def get_account(self, user_id: str) -> PaymentAccount | None:
        result = await self._session.execute(
            select(PaymentAccount).where(PaymentAccount.user_id == user_id)
        )
        return result.scalar_one_or_none()

    async def get_subscription(self, subscription_id: uuid.UUID) -> Subscription | None:
        result = await self._session.execute(
            select(Subscription).where(Subscription.id == subscription_id)
        )
        return result.scalar_one_or_none()

    async def get_active_subscription(self, account_id: str) -> Subscription | None:
        """Most recent active subscription for ``account_id``, if any."""
        result = await self._session.execute(
            select(Subscription)
            .where(
                Subscription.account_id == account_id,
                Subscription.status == SubscriptionStatus.ACTIVE.value,
            )
            .order_by(Subscription.created_at.desc())
            .limit(1)
        )
        return result.scalar_one_or_none()

    async def list_invoices(self, account_id: str) -> list[BillingInvoice]:
        result = await self._session.execute(
            select(BillingInvoice)
            .where(BillingInvoice.account_id == account_id)
            .order_by(BillingInvoice.created_at.desc())
        )
        return list(result.scalars().all())


class ConciergeRepository(_Repository):
    entity = "HighTicketCase"

    async def get_by_id(self, case_id: uuid.UUID) -> HighTicketCase | None:
        result = await self._session.execute(
            select(HighTicketCase).where(HighTicketCase.id == case_id)
        )
        return result.scalar_one_or_none()

    async def get_for_project(self, project_id: uuid.UUID) -> HighTicketCase | None:
        result = await self._session.execute(
            select(HighTicketCase).where(HighTicketCase.project_id == project_id)
        )
        return result.scalar_one_or_none()


class ConfigRepository(_Repository):
    entity = "PlatformConfig"

    async def get_all(self) -> dict[str, dict]:
        result = await self._session.execute(select(PlatformConfigDocument))
        return {doc.name: doc.document for doc in result.scalars().all()}

    async def upsert(self, name: str, document: dict, updated_by: str) -> PlatformConfigDocument:
        row = await self._session.get(PlatformConfigDocument, name)
        if row is None:
            row = PlatformConfigDocument(name=name, document=document, updated_by=updated_by)
            self._session.add(row)
        else:
            row.document = document
            row.updated_by = updated_by
        await self._flush()
        return row
