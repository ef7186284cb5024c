"""Milestone Service — staged payouts and change orders against an agreement."""

from __future__ import annotations

from dataclasses import dataclass
from datetime import UTC, datetime
from typing import TYPE_CHECKING

from escrow_marketplace.domain.enums import (
    ChangeOrderStatus,
    LedgerEventType,
    MilestoneStatus,
    OutcomeFlow,
)
from escrow_marketplace.domain.exceptions import (
    FailedPreconditionError,
    InvalidArgumentError,
    NotFoundError,
    PermissionDeniedError,
)
from escrow_marketplace.infrastructure.database.orm_models import ChangeOrder, Milestone
from escrow_marketplace.infrastructure.database.repositories import (
    AgreementRepository,
    ChangeOrderRepository,
    MilestoneRepository,
)
from escrow_marketplace.logging_config import get_logger, project_context
from escrow_marketplace.services.base import ServiceBase
from escrow_marketplace.services.outcome_executor import OutcomeExecutor, OutcomeResult

if TYPE_CHECKING:
    import uuid

    from sqlalchemy.ext.asyncio import AsyncSession

    from escrow_marketplace.config import Settings
    from escrow_marketplace.domain.authorization import Actor
    from escrow_marketplace.infrastructure.database.orm_models import Project
    from escrow_marketplace.providers.base import PaymentProvider

logger = get_logger(__name__)


@dataclass(frozen=True)
class MilestoneSpec:
    title: str
    amount_cents: int


@dataclass(frozen=True)
class MilestoneRelease:
    milestone: Milestone
    outcome: OutcomeResult


class MilestoneService(ServiceBase):
    def __init__(
        self,
        session: AsyncSession,
        settings: Settings | None = None,
        provider: PaymentProvider | None = None,
    ) -> None:
        super().__init__(session, settings, provider)
        self._milestone_repo = MilestoneRepository(session)
        self._change_order_repo = ChangeOrderRepository(session)
        self._agreement_repo = AgreementRepository(session)

    # ------------------------------------------------------------------
    # Milestones
    # ------------------------------------------------------------------

    async def create_milestones(
        self, actor: Actor | None, project_id: uuid.UUID, milestones: list[MilestoneSpec]
    ) -> list[Milestone]:
        actor, _ = await self._prepare(actor, "create_milestones")
        project = await self._guarded_project(actor, "create_milestones", project_id)
        self._require_contractor(project)
        if not milestones:
            raise InvalidArgumentError("At least one milestone is required")
        for item in milestones:
            if not item.title or item.amount_cents <= 0:
                raise InvalidArgumentError("Each milestone needs a title and a positive amount")

        existing = await self._milestone_repo.list_for_project(project.id)
        offset = len(existing)
        rows = await self._milestone_repo.add_all(
            [
                Milestone(
                    project_id=project.id,
                    title=item.title,
                    amount_cents=item.amount_cents,
                    sort_order=offset + index,
                    status=MilestoneStatus.PENDING.value,
                )
                for index, item in enumerate(milestones)
            ]
        )
        total = sum(m.amount_cents for m in rows)
        await self._ledger_repo.append(
            stream_id=str(project.id),
            event_type=LedgerEventType.MILESTONE_DEFINED,
            actor=actor,
            amount_cents=total,
            project_id=project.id,
            metadata={"milestone_ids": [str(m.id) for m in rows]},
        )
        await self._audit_repo.record(
            actor,
            "create_milestones",
            "project",
            project.id,
            {"count": len(rows), "total_cents": total},
        )
        logger.info("milestone.created", project_id=str(project.id), count=len(rows))
        return rows

    async def approve_milestone(
        self, actor: Actor | None, project_id: uuid.UUID, milestone_id: uuid.UUID
    ) -> MilestoneRelease:
        """Release one milestone's amount, capped at what is still held."""
        actor, config = await self._prepare(actor, "approve_milestone")
        project = await self._guarded_project(actor, "approve_milestone", project_id)
        milestone = await self._milestone_repo.get_by_id(milestone_id)
        if milestone is None or milestone.project_id != project.id:
            raise NotFoundError("Milestone", str(milestone_id))
        if milestone.status == MilestoneStatus.RELEASED:
            raise FailedPreconditionError("Milestone has already been released")

        amount = min(milestone.amount_cents, project.held_amount_cents)
        with project_context(project.id):
            outcome = await OutcomeExecutor(self._session, self._provider(config)).execute(
                project,
                amount,
                0,
                reason=f"milestone:{milestone.id}",
                actor=actor,
                flow=OutcomeFlow.MILESTONE,
                config=config,
            )
            milestone.status = MilestoneStatus.RELEASED.value
            milestone.released_at = datetime.now(UTC)
            await self._milestone_repo.save(milestone)
            logger.info(
                "milestone.released",
                milestone_id=str(milestone.id),
                amount_cents=amount,
                held_remaining_cents=outcome.held_remaining_cents,
            )
        return MilestoneRelease(milestone=milestone, outcome=outcome)

    async def list_milestones(self, actor: Actor | None, project_id: uuid.UUID) -> list[Milestone]:
        actor, _ = await self._prepare(actor, "view_project")
        project = await self._guarded_project(actor, "view_project", project_id)
        return await self._milestone_repo.list_for_project(project.id)

    # ------------------------------------------------------------------
    # Change orders
    # ------------------------------------------------------------------

    async def propose_change_order(
        self,
        actor: Actor | None,
        project_id: uuid.UUID,
        description: str,
        amount_delta_cents: int = 0,
        timeline_delta_days: int = 0,
    ) -> ChangeOrder:
        actor, _ = await self._prepare(actor, "propose_change_order")
        project = await self._guarded_project(actor, "propose_change_order", project_id)
        self._require_contractor(project)
        if not description:
            raise InvalidArgumentError("description is required")

        change_order = await self._change_order_repo.add(
            ChangeOrder(
                project_id=project.id,
                proposed_by=actor.uid,
                description=description,
                amount_delta_cents=amount_delta_cents,
                timeline_delta_days=timeline_delta_days,
                status=ChangeOrderStatus.PENDING.value,
            )
        )
        logger.info(
            "change_order.proposed",
            project_id=str(project.id),
            change_order_id=str(change_order.id),
            amount_delta_cents=amount_delta_cents,
        )
        return change_order

    async def respond_change_order(
        self,
        actor: Actor | None,
        project_id: uuid.UUID,
        change_order_id: uuid.UUID,
        accept: bool,
    ) -> ChangeOrder:
        """The counterparty accepts or rejects; acceptance amends the agreement."""
        actor, _ = await self._prepare(actor, "respond_change_order")
        project = await self._guarded_project(actor, "respond_change_order", project_id)
        change_order = await self._change_order_repo.get_by_id(change_order_id)
        if change_order is None or change_order.project_id != project.id:
            raise NotFoundError("ChangeOrder", str(change_order_id))
        if change_order.status != ChangeOrderStatus.PENDING:
            raise FailedPreconditionError(f"Change order is already {change_order.status}")
        if change_order.proposed_by == actor.uid:
            raise PermissionDeniedError("The proposer cannot respond to their own change order")

        status = ChangeOrderStatus.ACCEPTED if accept else ChangeOrderStatus.REJECTED
        change_order.status = status.value
        change_order.responded_by = actor.uid
        change_order.responded_at = datetime.now(UTC)
        await self._change_order_repo.save(change_order)

        details: dict = {"change_order_id": str(change_order.id), "accepted": accept}
        if accept:
            agreement = await self._agreement_repo.get_for_project(project.id)
            if agreement is None:
                raise NotFoundError("Agreement", str(project.id))
            new_price = agreement.price_cents + change_order.amount_delta_cents
            new_timeline = agreement.timeline_days + change_order.timeline_delta_days
            if new_price <= 0 or new_timeline <= 0:
                raise FailedPreconditionError(
                    "Change order would leave a non-positive price or timeline"
                )
            agreement.price_cents = new_price
            agreement.timeline_days = new_timeline
            agreement.terms_version += 1
            await self._agreement_repo.save(agreement)
            details.update(
                price_cents=new_price,
                timeline_days=new_timeline,
                terms_version=agreement.terms_version,
            )

        await self._audit_repo.record(actor, "respond_change_order", "project", project.id, details)
        logger.info(
            "change_order.responded", change_order_id=str(change_order.id), accepted=accept
        )
        return change_order

    @staticmethod
    def _require_contractor(project: Project) -> None:
        if not project.contractor_id:
            raise FailedPreconditionError("A contractor must be selected first")
