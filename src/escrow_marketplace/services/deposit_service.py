"""Deposit Service — estimate deposits held before the job is agreed.

A deposit is a small hold taken when a contractor visits to estimate. It is
refunded if the contractor does not show, and can otherwise be credited
against the job, reducing the amount later held by ``fund_hold``.

Status flow:
    CREATED -> CAPTURED -> {CUSTOMER,CONTRACTOR}_{ATTENDED,NO_SHOW}
    CAPTURED / *_ATTENDED -> CREDITED_TO_JOB
    any held status -> REFUNDED
"""

from __future__ import annotations

from datetime import UTC, datetime
from typing import TYPE_CHECKING

from escrow_marketplace.domain.authorization import ensure_project_party
from escrow_marketplace.domain.enums import (
    AttendanceOutcome,
    DepositStatus,
    LedgerEventType,
    Role,
)
from escrow_marketplace.domain.exceptions import (
    FailedPreconditionError,
    InvalidArgumentError,
    NotFoundError,
    PermissionDeniedError,
)
from escrow_marketplace.domain.hold_policy import parse_timestamp
from escrow_marketplace.domain.reliability import ReliabilityDelta
from escrow_marketplace.infrastructure.database.orm_models import EstimateDeposit
from escrow_marketplace.infrastructure.database.repositories import DepositRepository
from escrow_marketplace.logging_config import get_logger
from escrow_marketplace.services.base import ServiceBase
from escrow_marketplace.services.reliability_service import ReliabilityService

if TYPE_CHECKING:
    import uuid

    from sqlalchemy.ext.asyncio import AsyncSession

    from escrow_marketplace.config import Settings
    from escrow_marketplace.domain.authorization import Actor
    from escrow_marketplace.domain.policy_config import PlatformConfig
    from escrow_marketplace.providers.base import PaymentProvider

logger = get_logger(__name__)

_ATTENDANCE_STATUS: dict[AttendanceOutcome, DepositStatus] = {
    AttendanceOutcome.CUSTOMER_PRESENT: DepositStatus.CUSTOMER_ATTENDED,
    AttendanceOutcome.CONTRACTOR_PRESENT: DepositStatus.CONTRACTOR_ATTENDED,
    AttendanceOutcome.CUSTOMER_NO_SHOW: DepositStatus.CUSTOMER_NO_SHOW,
    AttendanceOutcome.CONTRACTOR_NO_SHOW: DepositStatus.CONTRACTOR_NO_SHOW,
}

_CREDITABLE = frozenset(
    {
        DepositStatus.CAPTURED,
        DepositStatus.CONTRACTOR_ATTENDED,
        DepositStatus.CUSTOMER_ATTENDED,
    }
)

_SETTLED = frozenset({DepositStatus.REFUNDED, DepositStatus.CREDITED_TO_JOB})


class DepositService(ServiceBase):
    def __init__(
        self,
        session: AsyncSession,
        settings: Settings | None = None,
        provider: PaymentProvider | None = None,
    ) -> None:
        super().__init__(session, settings, provider)
        self._deposit_repo = DepositRepository(session)
        self._reliability = ReliabilityService(session)

    async def create_estimate_deposit(
        self,
        actor: Actor | None,
        project_id: uuid.UUID,
        category: str | None = None,
        appointment_at: datetime | str | None = None,
    ) -> EstimateDeposit:
        actor, config = await self._prepare(actor, "create_estimate_deposit")
        project = await self._guarded_project(actor, "create_estimate_deposit", project_id)
        if not project.contractor_id:
            raise FailedPreconditionError("A contractor must be selected for an estimate deposit")

        category = category or project.category
        amount = config.deposit_policy.amount_for(category)
        if amount is None:
            raise FailedPreconditionError(f"No estimate deposit amount configured for '{category}'")

        deposit = await self._deposit_repo.add(
            EstimateDeposit(
                project_id=project.id,
                customer_id=project.customer_id,
                contractor_id=project.contractor_id,
                category=category,
                amount_cents=amount,
                status=DepositStatus.CREATED.value,
                appointment_at=parse_timestamp(appointment_at) if appointment_at else None,
            )
        )
        await self._ledger_repo.append(
            stream_id=str(project.id),
            event_type=LedgerEventType.ESTIMATE_DEPOSIT_CREATED,
            actor=actor,
            amount_cents=amount,
            project_id=project.id,
            metadata={"deposit_id": str(deposit.id), "category": category},
        )
        await self._audit_repo.record(
            actor,
            "create_estimate_deposit",
            "estimate_deposit",
            deposit.id,
            {"project_id": str(project.id), "amount_cents": amount},
        )
        logger.info("deposit.created", deposit_id=str(deposit.id), amount_cents=amount)
        return deposit

    async def capture_estimate_deposit(
        self, actor: Actor | None, deposit_id: uuid.UUID
    ) -> EstimateDeposit:
        actor, config = await self._prepare(actor, "capture_estimate_deposit")
        deposit = await self._deposit_or_raise(deposit_id)
        if deposit.customer_id != actor.uid:
            raise PermissionDeniedError("Only the project customer can capture the deposit")
        if deposit.status != DepositStatus.CREATED:
            raise FailedPreconditionError("Estimate deposit has already been processed")

        hold = await self._provider(config).create_hold(
            str(deposit.project_id),
            deposit.amount_cents,
            deposit.customer_id,
            description=f"Estimate deposit {deposit.id}",
            idempotency_key=f"deposit-hold:{deposit.id}",
        )
        deposit.provider_hold_id = hold.provider_hold_id
        deposit.status = DepositStatus.CAPTURED.value
        deposit.captured_at = datetime.now(UTC)
        await self._deposit_repo.save(deposit)

        await self._ledger_repo.append(
            stream_id=str(deposit.project_id),
            event_type=LedgerEventType.ESTIMATE_DEPOSIT_CAPTURED,
            actor=actor,
            amount_cents=deposit.amount_cents,
            project_id=deposit.project_id,
            metadata={"deposit_id": str(deposit.id), "provider_hold_id": hold.provider_hold_id},
        )
        logger.info("deposit.captured", deposit_id=str(deposit.id))
        return deposit

    async def mark_estimate_attendance(
        self,
        actor: Actor | None,
        deposit_id: uuid.UUID,
        attendance: str,
        note: str | None = None,
    ) -> EstimateDeposit:
        """Record who showed up; a contractor no-show refunds the customer."""
        actor, config = await self._prepare(actor, "mark_estimate_attendance")
        try:
            outcome = AttendanceOutcome(attendance)
        except ValueError:
            raise InvalidArgumentError(f"Unknown attendance outcome '{attendance}'") from None
        deposit = await self._deposit_or_raise(deposit_id)
        project = await self._get_project_or_raise(deposit.project_id)
        ensure_project_party(actor, project)
        if deposit.status in _SETTLED:
            raise FailedPreconditionError(f"Estimate deposit is already {deposit.status}")

        deposit.status = _ATTENDANCE_STATUS[outcome].value
        deposit.attendance_outcome = outcome.value
        await self._deposit_repo.save(deposit)

        if outcome is AttendanceOutcome.CONTRACTOR_NO_SHOW:
            await self._refund(actor, deposit, config, reason="contractor_no_show")

        if outcome in (AttendanceOutcome.CONTRACTOR_PRESENT, AttendanceOutcome.CONTRACTOR_NO_SHOW):
            present = outcome is AttendanceOutcome.CONTRACTOR_PRESENT
            await self._reliability.record_project_event(
                project,
                ReliabilityDelta(appointments_total=1, appointments_attended=1 if present else 0),
                config,
                actor,
                source="estimate_attendance",
            )

        await self._audit_repo.record(
            actor,
            "mark_estimate_attendance",
            "estimate_deposit",
            deposit.id,
            {"attendance": outcome.value, "note": note},
        )
        logger.info("deposit.attendance_marked", deposit_id=str(deposit.id), attendance=outcome)
        return deposit

    async def refund_estimate_deposit(
        self, actor: Actor | None, deposit_id: uuid.UUID, reason: str = ""
    ) -> EstimateDeposit:
        actor, config = await self._prepare(actor, "refund_estimate_deposit")
        deposit = await self._deposit_or_raise(deposit_id)
        if actor.role is not Role.ADMIN and deposit.customer_id != actor.uid:
            raise PermissionDeniedError(
                "Only the project customer or an admin can refund the deposit"
            )

        await self._refund(actor, deposit, config, reason=reason or "requested")
        await self._audit_repo.record(
            actor, "refund_estimate_deposit", "estimate_deposit", deposit.id, {"reason": reason}
        )
        return deposit

    async def apply_deposit_to_job(
        self, actor: Actor | None, project_id: uuid.UUID, deposit_id: uuid.UUID
    ) -> EstimateDeposit:
        """Credit a captured deposit against the job; each deposit credits once."""
        actor, _ = await self._prepare(actor, "apply_deposit_to_job")
        project = await self._guarded_project(actor, "apply_deposit_to_job", project_id)
        deposit = await self._deposit_or_raise(deposit_id)
        if deposit.project_id != project.id:
            raise InvalidArgumentError("Deposit does not belong to this project")
        if deposit.status not in _CREDITABLE:
            raise FailedPreconditionError("Deposit must be captured before it can be credited")

        deposit.status = DepositStatus.CREDITED_TO_JOB.value
        deposit.credited_at = datetime.now(UTC)
        await self._deposit_repo.save(deposit)
        project.estimate_deposit_credit_cents += deposit.amount_cents
        await self._project_repo.save(project)

        await self._ledger_repo.append(
            stream_id=str(project.id),
            event_type=LedgerEventType.ESTIMATE_DEPOSIT_CREDITED,
            actor=actor,
            amount_cents=deposit.amount_cents,
            project_id=project.id,
            metadata={"deposit_id": str(deposit.id)},
        )
        await self._audit_repo.record(
            actor,
            "apply_deposit_to_job",
            "estimate_deposit",
            deposit.id,
            {"project_id": str(project.id), "amount_cents": deposit.amount_cents},
        )
        logger.info(
            "deposit.credited",
            deposit_id=str(deposit.id),
            credit_cents=project.estimate_deposit_credit_cents,
        )
        return deposit

    async def list_deposits(
        self, actor: Actor | None, project_id: uuid.UUID
    ) -> list[EstimateDeposit]:
        actor, _ = await self._prepare(actor, "view_project")
        project = await self._guarded_project(actor, "view_project", project_id)
        return await self._deposit_repo.list_for_project(project.id)

    # ------------------------------------------------------------------
    # Private helpers
    # ------------------------------------------------------------------

    async def _deposit_or_raise(self, deposit_id: uuid.UUID) -> EstimateDeposit:
        deposit = await self._deposit_repo.get_by_id(deposit_id)
        if deposit is None:
            raise NotFoundError("EstimateDeposit", str(deposit_id))
        return deposit

    async def _refund(
        self, actor: Actor, deposit: EstimateDeposit, config: PlatformConfig, reason: str
    ) -> None:
        """Return the deposit to the customer unless there is nothing to return."""
        if not deposit.provider_hold_id or deposit.status in _SETTLED:
            logger.info("deposit.refund_skipped", deposit_id=str(deposit.id), status=deposit.status)
            return

        await self._provider(config).refund(
            deposit.provider_hold_id,
            deposit.amount_cents,
            project_id=str(deposit.project_id),
            idempotency_key=f"deposit-refund:{deposit.id}",
        )
        deposit.status = DepositStatus.REFUNDED.value
        deposit.refunded_at = datetime.now(UTC)
        await self._deposit_repo.save(deposit)

        await self._ledger_repo.append(
            stream_id=str(deposit.project_id),
            event_type=LedgerEventType.ESTIMATE_DEPOSIT_REFUNDED,
            actor=actor,
            amount_cents=deposit.amount_cents,
            project_id=deposit.project_id,
            metadata={"deposit_id": str(deposit.id), "reason": reason},
        )
        logger.info("deposit.refunded", deposit_id=str(deposit.id), reason=reason)
