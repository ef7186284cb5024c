"""Outcome Executor — the single path by which held funds leave escrow.

Customer approval, milestone approval, joint release, admin outcomes and
the auto-release sweep all dispose of funds through ``OutcomeExecutor.execute``.

Order of work inside one call:
    1. Validate the split against the held amount.
    2. Compute the platform fee on the release leg.
    3. Resolve and validate the resulting project state.
    4. Call the payment provider (release net payout, refund).
    5. Mutate the project and append ledger events.

Provider calls run before any ORM mutation, so a provider failure leaves the
project exactly as it was and the session is rolled back by the caller.
"""

from __future__ import annotations

from dataclasses import dataclass
from typing import TYPE_CHECKING

from escrow_marketplace.domain.enums import EscrowState, LedgerEventType, OutcomeFlow
from escrow_marketplace.domain.exceptions import FailedPreconditionError
from escrow_marketplace.domain.fees import calculate_platform_fee
from escrow_marketplace.domain.outcomes import classify_outcome, validate_disposition
from escrow_marketplace.domain.state_machine import assert_transition
from escrow_marketplace.infrastructure.database.repositories import (
    BillingRepository,
    LedgerRepository,
    ProjectRepository,
)
from escrow_marketplace.logging_config import get_logger
from escrow_marketplace.services.base import fire_transition

if TYPE_CHECKING:
    from sqlalchemy.ext.asyncio import AsyncSession

    from escrow_marketplace.domain.authorization import Actor
    from escrow_marketplace.domain.fees import FeeSummary
    from escrow_marketplace.domain.policy_config import PlatformConfig
    from escrow_marketplace.infrastructure.database.orm_models import Project
    from escrow_marketplace.providers.base import PaymentProvider

logger = get_logger(__name__)

_MILESTONE_KEEP_STATES = frozenset({EscrowState.COMPLETION_REQUESTED, EscrowState.IN_PROGRESS})


@dataclass(frozen=True)
class OutcomeResult:
    project_id: str
    release_cents: int
    refund_cents: int
    fee: FeeSummary | None
    classification: EscrowState
    resulting_state: EscrowState
    held_remaining_cents: int
    release_ref: str | None = None
    refund_ref: str | None = None

    @property
    def fee_cents(self) -> int:
        return self.fee.fee_cents if self.fee else 0

    @property
    def net_payout_cents(self) -> int:
        return self.fee.net_payout_cents if self.fee else 0


def resulting_state(
    flow: OutcomeFlow,
    current: EscrowState,
    classification: EscrowState,
    remaining_cents: int,
) -> EscrowState:
    """State the project lands in after a disposition driven by ``flow``."""
    if flow is OutcomeFlow.APPROVAL:
        return EscrowState.RELEASED_PAID
    if flow is OutcomeFlow.MILESTONE:
        if remaining_cents == 0:
            return EscrowState.RELEASED_PAID
        return current if current in _MILESTONE_KEEP_STATES else EscrowState.IN_PROGRESS
    return classification


class OutcomeExecutor:
    def __init__(self, session: AsyncSession, provider: PaymentProvider) -> None:
        self._provider = provider
        self._project_repo = ProjectRepository(session)
        self._ledger_repo = LedgerRepository(session)
        self._billing_repo = BillingRepository(session)

    async def execute(
        self,
        project: Project,
        release_cents: int,
        refund_cents: int,
        *,
        reason: str,
        actor: Actor,
        flow: OutcomeFlow,
        config: PlatformConfig,
        doc_references: list[str] | None = None,
    ) -> OutcomeResult:
        held = project.held_amount_cents
        validate_disposition(held, release_cents, refund_cents)

        fee: FeeSummary | None = None
        destination_ref: str | None = None
        if release_cents > 0:
            plan_id = None
            if project.contractor_id:
                subscription = await self._billing_repo.get_active_subscription(
                    project.contractor_id
                )
                plan_id = subscription.plan_id if subscription else None
                account = await self._billing_repo.get_account(project.contractor_id)
                destination_ref = account.account_ref if account else None
            fee = calculate_platform_fee(release_cents, config.fees, plan_id)

        if not project.provider_hold_id:
            raise FailedPreconditionError("Project has no provider hold to disburse from")

        current = EscrowState(project.state)
        remaining = held - release_cents - refund_cents
        classification = classify_outcome(release_cents, refund_cents, held)
        target = resulting_state(flow, current, classification, remaining)
        if target is not current:
            assert_transition(current, target)

        # Keys stay stable until the project row changes.
        key = f"{project.id}:{project.version}"
        release_ref = refund_ref = None
        if fee is not None:
            transfer = await self._provider.release(
                project.provider_hold_id,
                fee.net_payout_cents,
                destination_ref=destination_ref,
                project_id=str(project.id),
                idempotency_key=f"release:{key}",
            )
            release_ref = transfer.provider_ref
        if refund_cents > 0:
            transfer = await self._provider.refund(
                project.provider_hold_id,
                refund_cents,
                project_id=str(project.id),
                idempotency_key=f"refund:{key}",
            )
            refund_ref = transfer.provider_ref

        project.held_amount_cents = remaining
        if target is not current:
            fire_transition(project, target)
        await self._project_repo.save(project)

        stream_id = str(project.id)
        if fee is not None:
            await self._ledger_repo.append(
                stream_id=stream_id,
                event_type=(
                    LedgerEventType.RELEASE_FULL
                    if release_cents == held
                    else LedgerEventType.RELEASE_PARTIAL
                ),
                actor=actor,
                amount_cents=release_cents,
                fee_cents=fee.fee_cents,
                project_id=project.id,
                metadata={
                    "provider_ref": release_ref,
                    "net_payout_cents": fee.net_payout_cents,
                    "reason": reason,
                },
            )
        if refund_cents > 0:
            await self._ledger_repo.append(
                stream_id=stream_id,
                event_type=(
                    LedgerEventType.REFUND_FULL
                    if refund_cents == held
                    else LedgerEventType.REFUND_PARTIAL
                ),
                actor=actor,
                amount_cents=refund_cents,
                project_id=project.id,
                metadata={"provider_ref": refund_ref, "reason": reason},
            )
        await self._ledger_repo.append(
            stream_id=stream_id,
            event_type=LedgerEventType.OUTCOME_EXECUTED,
            actor=actor,
            amount_cents=release_cents + refund_cents,
            fee_cents=fee.fee_cents if fee else 0,
            project_id=project.id,
            metadata={
                "flow": flow.value,
                "reason": reason,
                "classification": classification.value,
                "resulting_state": target.value,
                "release_cents": release_cents,
                "refund_cents": refund_cents,
                "doc_references": doc_references or [],
            },
        )
        if fee is not None and fee.fee_cents > 0:
            await self._ledger_repo.append(
                stream_id=stream_id,
                event_type=LedgerEventType.PLATFORM_FEE_CHARGED,
                actor=actor,
                amount_cents=fee.fee_cents,
                project_id=project.id,
                metadata=fee.to_dict(),
            )

        logger.info(
            "escrow.outcome_executed",
            project_id=stream_id,
            flow=flow,
            classification=classification,
            state=target,
            release_cents=release_cents,
            refund_cents=refund_cents,
            fee_cents=fee.fee_cents if fee else 0,
        )
        return OutcomeResult(
            project_id=stream_id,
            release_cents=release_cents,
            refund_cents=refund_cents,
            fee=fee,
            classification=classification,
            resulting_state=target,
            held_remaining_cents=remaining,
            release_ref=release_ref,
            refund_ref=refund_ref,
        )
