"""Concierge Service — managed intake for high-ticket projects."""

from __future__ import annotations

from typing import TYPE_CHECKING

from escrow_marketplace.domain.enums import HighTicketFeeMode, HighTicketStatus, LedgerEventType
from escrow_marketplace.domain.exceptions import (
    FailedPreconditionError,
    InvalidArgumentError,
    NotFoundError,
)
from escrow_marketplace.infrastructure.database.orm_models import HighTicketCase
from escrow_marketplace.infrastructure.database.repositories import (
    ConciergeRepository,
    QuoteRepository,
)
from escrow_marketplace.logging_config import get_logger
from escrow_marketplace.services.base import ServiceBase

if TYPE_CHECKING:
    import uuid

    from sqlalchemy.ext.asyncio import AsyncSession

    from escrow_marketplace.config import Settings
    from escrow_marketplace.domain.authorization import Actor
    from escrow_marketplace.infrastructure.database.orm_models import Project
    from escrow_marketplace.providers.base import PaymentProvider

logger = get_logger(__name__)


class ConciergeService(ServiceBase):
    def __init__(
        self,
        session: AsyncSession,
        settings: Settings | None = None,
        provider: PaymentProvider | None = None,
    ) -> None:
        super().__init__(session, settings, provider)
        self._concierge_repo = ConciergeRepository(session)
        self._quote_repo = QuoteRepository(session)

    async def create_high_ticket_case(
        self, actor: Actor | None, project_id: uuid.UUID, intake_notes: str = ""
    ) -> HighTicketCase:
        """Open concierge intake for a project at or above the high-ticket threshold."""
        actor, config = await self._prepare(actor, "create_high_ticket_case")
        project = await self._guarded_project(actor, "create_high_ticket_case", project_id)
        if await self._concierge_repo.get_for_project(project.id) is not None:
            raise FailedPreconditionError("A high-ticket case already exists for this project")

        policy = config.high_ticket
        amount = await self._job_amount(project)
        if amount < policy.threshold_cents:
            raise FailedPreconditionError("Project does not meet the high-ticket threshold")

        if policy.fee_mode is HighTicketFeeMode.INTAKE_SUCCESS:
            intake_fee, completion_fee_bps = policy.intake_fee_cents, policy.success_fee_bps
        else:
            intake_fee, completion_fee_bps = 0, policy.referral_fee_bps
        case = await self._concierge_repo.add(
            HighTicketCase(
                project_id=project.id,
                customer_id=actor.uid,
                amount_cents=amount,
                fee_mode=policy.fee_mode.value,
                intake_fee_cents=intake_fee,
                completion_fee_bps=completion_fee_bps,
                status=HighTicketStatus.INTAKE.value,
            )
        )
        if intake_fee > 0:
            await self._ledger_repo.append(
                stream_id=str(project.id),
                event_type=LedgerEventType.CONCIERGE_INTAKE_FEE_CHARGED,
                actor=actor,
                amount_cents=intake_fee,
                project_id=project.id,
                metadata={"high_ticket_case_id": str(case.id)},
            )
        await self._audit_repo.record(
            actor,
            "create_high_ticket_case",
            "high_ticket_case",
            case.id,
            {"project_id": str(project.id), "amount_cents": amount, "intake_notes": intake_notes},
        )
        logger.info(
            "concierge.case_created",
            case_id=str(case.id),
            amount_cents=amount,
            fee_mode=policy.fee_mode,
        )
        return case

    async def assign_concierge_manager(
        self, actor: Actor | None, case_id: uuid.UUID, manager_id: str
    ) -> HighTicketCase:
        actor, _ = await self._prepare(actor, "assign_concierge_manager")
        if not manager_id:
            raise InvalidArgumentError("manager_id is required")
        case = await self._concierge_repo.get_by_id(case_id)
        if case is None:
            raise NotFoundError("HighTicketCase", str(case_id))
        if case.status == HighTicketStatus.CLOSED:
            raise FailedPreconditionError("High-ticket case is closed")

        case.manager_id = manager_id
        case.status = HighTicketStatus.MANAGER_ASSIGNED.value
        await self._concierge_repo.save(case)
        await self._audit_repo.record(
            actor,
            "assign_concierge_manager",
            "high_ticket_case",
            case.id,
            {"manager_id": manager_id},
        )
        logger.info("concierge.manager_assigned", case_id=str(case.id), manager_id=manager_id)
        return case

    async def _job_amount(self, project: Project) -> int:
        """Larger of the selected quote's price and the posted budget."""
        quoted = 0
        if project.selected_quote_id is not None:
            quote = await self._quote_repo.get_by_id(project.selected_quote_id)
            quoted = quote.price_cents if quote else 0
        return max(quoted, project.budget_cents or 0)
