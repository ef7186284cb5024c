"""Sweeps — the bounded batch jobs an external scheduler runs periodically.

* auto-release: pays out completions the customer let lapse past the
  approval window.
* admin-attention: flags disputes that have stayed open too long.
* reliability-recompute: re-derives scores after a weight change.

Each sweep works through at most one batch. A failing item is logged and
counted and never blocks the rest; its failure time moves it behind
untried projects in later batches. Payment provider calls precede every
ORM mutation, so a failed item leaves nothing staged in the session.
"""

from __future__ import annotations

from dataclasses import asdict, dataclass
from datetime import UTC, datetime, timedelta
from typing import TYPE_CHECKING

from escrow_marketplace.domain.authorization import Actor, authorize
from escrow_marketplace.domain.enums import (
    CaseStatus,
    EscrowState,
    LedgerEventType,
    OutcomeFlow,
    Role,
)
from escrow_marketplace.domain.exceptions import (
    ConcurrentModificationError,
    InvalidArgumentError,
    MarketplaceError,
)
from escrow_marketplace.domain.hold_policy import (
    is_admin_attention_required,
    is_approval_deadline_passed,
    parse_timestamp,
)
from escrow_marketplace.domain.reliability import ReliabilityDelta
from escrow_marketplace.infrastructure.database.repositories import CaseRepository
from escrow_marketplace.logging_config import get_logger, project_context
from escrow_marketplace.services.base import ServiceBase
from escrow_marketplace.services.escrow_service import EscrowService
from escrow_marketplace.services.outcome_executor import OutcomeExecutor
from escrow_marketplace.services.reliability_service import ReliabilityService

if TYPE_CHECKING:
    from sqlalchemy.ext.asyncio import AsyncSession

    from escrow_marketplace.config import Settings
    from escrow_marketplace.domain.policy_config import PlatformConfig
    from escrow_marketplace.infrastructure.database.orm_models import Project
    from escrow_marketplace.providers.base import PaymentProvider

logger = get_logger(__name__)

AUTO_RELEASE = "auto-release"
ADMIN_ATTENTION = "admin-attention"
RELIABILITY_RECOMPUTE = "reliability-recompute"

JOBS = (AUTO_RELEASE, ADMIN_ATTENTION, RELIABILITY_RECOMPUTE)


@dataclass
class SweepReport:
    job: str
    processed: int = 0
    released: int = 0
    escalated: int = 0
    recomputed: int = 0
    failed: int = 0
    skipped_items: int = 0
    skipped: bool = False

    def to_dict(self) -> dict:
        return asdict(self)


class SweepService(ServiceBase):
    def __init__(
        self,
        session: AsyncSession,
        settings: Settings | None = None,
        provider: PaymentProvider | None = None,
    ) -> None:
        super().__init__(session, settings, provider)
        self._case_repo = CaseRepository(session)
        self._escrow = EscrowService(session, settings, provider)
        self._reliability = ReliabilityService(session)

    async def run(self, actor: Actor | None, job: str, now: datetime | None = None) -> SweepReport:
        """Admin-triggered entry point; the scheduler calls the sweeps directly."""
        authorize(actor, "run_sweep")
        if job == AUTO_RELEASE:
            return await self.run_auto_release(now)
        if job == ADMIN_ATTENTION:
            return await self.run_admin_attention(now)
        if job == RELIABILITY_RECOMPUTE:
            return await self.run_reliability_recompute()
        raise InvalidArgumentError(f"Unknown sweep '{job}'")

    # ------------------------------------------------------------------
    # Auto-release
    # ------------------------------------------------------------------

    async def run_auto_release(self, now: datetime | None = None) -> SweepReport:
        report = SweepReport(job=AUTO_RELEASE)
        config = await self._config_service.load()
        if not config.hold_policy.auto_release_enabled:
            report.skipped = True
            logger.info("sweep.auto_release_disabled")
            return report

        now = parse_timestamp(now or datetime.now(UTC))
        window = config.hold_policy.approval_window_days
        actor = Actor(self._settings.auto_release_actor_id, Role.ADMIN, admin_verified=True)
        projects = await self._project_repo.list_due_for_auto_release(
            now - timedelta(days=window), self._settings.sweep_batch_size
        )

        for project in projects:
            report.processed += 1
            if not is_approval_deadline_passed(now, project.completion_requested_at, window):
                continue
            if project.held_amount_cents <= 0:
                report.skipped_items += 1
                continue
            try:
                await self._auto_release(project, actor, config)
            except MarketplaceError as exc:
                report.failed += 1
                logger.error(
                    "sweep.auto_release_failed",
                    project_id=str(project.id),
                    error=exc.message,
                    code=exc.code,
                )
                if not isinstance(exc, ConcurrentModificationError):
                    project.auto_release_failed_at = now
                    await self._project_repo.save(project)
                continue
            report.released += 1

        logger.info("sweep.auto_release_completed", **report.to_dict())
        return report

    async def _auto_release(self, project: Project, actor: Actor, config: PlatformConfig) -> None:
        with project_context(project.id):
            result = await OutcomeExecutor(self._session, self._provider(config)).execute(
                project,
                project.held_amount_cents,
                0,
                reason="auto_release_deadline",
                actor=actor,
                flow=OutcomeFlow.AUTO_RELEASE,
                config=config,
            )
            await self._ledger_repo.append(
                stream_id=str(project.id),
                event_type=LedgerEventType.AUTO_RELEASE_EXECUTED,
                actor=actor,
                amount_cents=result.release_cents,
                fee_cents=result.fee_cents,
                project_id=project.id,
                metadata={"completion_requested_at": str(project.completion_requested_at)},
            )
            await self._audit_repo.record(
                actor,
                "auto_release",
                "project",
                project.id,
                {"release_cents": result.release_cents, "fee_cents": result.fee_cents},
            )
            await self._escrow.record_completion(project, config, actor, source="auto_release")
            logger.info(
                "sweep.auto_released",
                release_cents=result.release_cents,
                state=result.resulting_state,
            )

    # ------------------------------------------------------------------
    # Admin attention
    # ------------------------------------------------------------------

    async def run_admin_attention(self, now: datetime | None = None) -> SweepReport:
        """Escalate open cases whose project has been on hold past the attention date."""
        report = SweepReport(job=ADMIN_ATTENTION)
        config = await self._config_service.load()
        now = parse_timestamp(now or datetime.now(UTC))
        days = config.hold_policy.admin_attention_days

        cases = await self._case_repo.list_awaiting_attention(
            now - timedelta(days=days), self._settings.sweep_batch_size
        )
        projects = await self._project_repo.list_by_ids([c.project_id for c in cases])
        for case in cases:
            report.processed += 1
            project = projects.get(case.project_id)
            if project is None or project.issue_raised_at is None:
                continue
            if not is_admin_attention_required(now, project.issue_raised_at, days):
                continue
            case.status = CaseStatus.ADMIN_ATTENTION_REQUIRED.value
            case.admin_attention_at = now
            await self._case_repo.save(case)
            report.escalated += 1
            logger.warning(
                "sweep.admin_attention_required",
                case_id=str(case.id),
                project_id=str(case.project_id),
            )

        logger.info("sweep.admin_attention_completed", **report.to_dict())
        return report

    # ------------------------------------------------------------------
    # Reliability recompute
    # ------------------------------------------------------------------

    async def run_reliability_recompute(self) -> SweepReport:
        """Apply an empty delta to each contractor so scores follow the current weights."""
        report = SweepReport(job=RELIABILITY_RECOMPUTE)
        config = await self._config_service.load()
        if not config.feature_flags.reliability_scoring_enabled:
            report.skipped = True
            logger.info("sweep.reliability_recompute_disabled")
            return report

        contractor_ids = await self._project_repo.list_contractor_ids(
            self._settings.reliability_recompute_batch_size
        )
        for contractor_id in contractor_ids:
            report.processed += 1
            await self._reliability.apply_delta(
                contractor_id,
                ReliabilityDelta(),
                config.reliability,
                updated_by=self._settings.reliability_recompute_actor_id,
            )
            report.recomputed += 1

        logger.info("sweep.reliability_recompute_completed", **report.to_dict())
        return report
