"""Reliability Service — stores and updates contractor reliability scores.

Lifecycle operations feed counter deltas in through ``record_project_event``
when reliability scoring is enabled; admins can apply manual deltas; the
recompute sweep re-derives metrics from unchanged counters after a weight
change. Every update appends a history row.
"""

from __future__ import annotations

from dataclasses import dataclass, field
from datetime import timedelta
from typing import TYPE_CHECKING

from escrow_marketplace.domain.authorization import authorize
from escrow_marketplace.domain.enums import LedgerEventType
from escrow_marketplace.domain.exceptions import InvalidArgumentError
from escrow_marketplace.domain.hold_policy import parse_timestamp
from escrow_marketplace.domain.reliability import (
    NEUTRAL_SCORE,
    ReliabilityCounters,
    ReliabilityDelta,
    ReliabilityEligibility,
    ReliabilityMetrics,
    compute_reliability_eligibility,
    compute_reliability_metrics,
    compute_reliability_score,
    merge_delta,
)
from escrow_marketplace.infrastructure.database.orm_models import (
    ReliabilityScoreHistory,
    ReliabilityScoreRecord,
)
from escrow_marketplace.infrastructure.database.repositories import (
    AuditRepository,
    LedgerRepository,
    ReliabilityRepository,
)
from escrow_marketplace.logging_config import get_logger
from escrow_marketplace.services.config_service import ConfigService

if TYPE_CHECKING:
    from datetime import datetime

    from sqlalchemy.ext.asyncio import AsyncSession

    from escrow_marketplace.domain.authorization import Actor
    from escrow_marketplace.domain.policy_config import PlatformConfig, ReliabilityWeights
    from escrow_marketplace.infrastructure.database.orm_models import Agreement, Project

logger = get_logger(__name__)


@dataclass(frozen=True)
class ReliabilitySnapshot:
    contractor_id: str
    score: int = NEUTRAL_SCORE
    counters: ReliabilityCounters = field(default_factory=ReliabilityCounters)
    metrics: ReliabilityMetrics = field(default_factory=ReliabilityMetrics)
    eligibility: ReliabilityEligibility = field(default_factory=ReliabilityEligibility)
    updated_by: str | None = None
    updated_at: datetime | None = None

    @classmethod
    def from_record(cls, record: ReliabilityScoreRecord) -> ReliabilitySnapshot:
        return cls(
            contractor_id=record.contractor_id,
            score=record.score,
            counters=ReliabilityCounters(**record.counters),
            metrics=ReliabilityMetrics(**record.metrics),
            eligibility=ReliabilityEligibility(
                auto_release=record.auto_release_eligible,
                large_jobs=record.large_jobs_eligible,
                high_ticket=record.high_ticket_eligible,
            ),
            updated_by=record.updated_by,
            updated_at=record.updated_at,
        )


def completed_on_time(project: Project, agreement: Agreement | None) -> bool:
    """Completion was requested within the agreed timeline, counted from funding."""
    if agreement is None or project.funded_at is None or project.completion_requested_at is None:
        return False
    elapsed = parse_timestamp(project.completion_requested_at) - parse_timestamp(project.funded_at)
    return elapsed <= timedelta(days=agreement.timeline_days)


class ReliabilityService:
    """Reads and updates contractor reliability records."""

    def __init__(self, session: AsyncSession) -> None:
        self._reliability_repo = ReliabilityRepository(session)
        self._ledger_repo = LedgerRepository(session)
        self._audit_repo = AuditRepository(session)
        self._config_service = ConfigService(session)

    async def get_score(self, actor: Actor | None, contractor_id: str) -> ReliabilitySnapshot:
        """Stored record, or the neutral default for a contractor never scored."""
        authorize(actor, "get_reliability_score")
        record = await self._reliability_repo.get(contractor_id)
        if record is None:
            return ReliabilitySnapshot(contractor_id=contractor_id)
        return ReliabilitySnapshot.from_record(record)

    async def apply_delta(
        self,
        contractor_id: str,
        delta: ReliabilityDelta,
        weights: ReliabilityWeights,
        updated_by: str,
    ) -> ReliabilitySnapshot:
        """Merge ``delta`` into the stored counters and recompute everything derived."""
        record = await self._reliability_repo.get(contractor_id)
        current = ReliabilityCounters(**record.counters) if record else ReliabilityCounters()

        counters = merge_delta(current, delta)
        metrics = compute_reliability_metrics(counters)
        score = compute_reliability_score(metrics, weights)
        eligibility = compute_reliability_eligibility(score, weights)

        is_new = record is None
        if is_new:
            record = ReliabilityScoreRecord(contractor_id=contractor_id)
        record.counters = counters.to_dict()
        record.metrics = metrics.to_dict()
        record.score = score
        record.auto_release_eligible = eligibility.auto_release
        record.large_jobs_eligible = eligibility.large_jobs
        record.high_ticket_eligible = eligibility.high_ticket
        record.updated_by = updated_by
        if is_new:
            await self._reliability_repo.add(record)
        else:
            await self._reliability_repo.save(record)

        await self._reliability_repo.add(
            ReliabilityScoreHistory(
                contractor_id=contractor_id,
                score=score,
                counters=counters.to_dict(),
                metrics=metrics.to_dict(),
                delta=delta.to_dict(),
                updated_by=updated_by,
            )
        )

        logger.info(
            "reliability.updated",
            contractor_id=contractor_id,
            score=score,
            updated_by=updated_by,
        )
        return ReliabilitySnapshot.from_record(record)

    async def record_project_event(
        self,
        project: Project,
        delta: ReliabilityDelta,
        config: PlatformConfig,
        actor: Actor,
        source: str,
    ) -> ReliabilitySnapshot | None:
        """Apply a lifecycle delta to the project's contractor when scoring is on."""
        if not config.feature_flags.reliability_scoring_enabled or not project.contractor_id:
            return None
        snapshot = await self.apply_delta(
            project.contractor_id, delta, config.reliability, updated_by=actor.uid
        )
        await self._ledger_repo.append(
            stream_id=str(project.id),
            event_type=LedgerEventType.RELIABILITY_UPDATED,
            actor=actor,
            project_id=project.id,
            metadata={
                "contractor_id": project.contractor_id,
                "source": source,
                "score": snapshot.score,
                "delta": delta.to_dict(),
            },
        )
        return snapshot

    async def adjust(
        self, actor: Actor | None, contractor_id: str, delta: ReliabilityDelta
    ) -> ReliabilitySnapshot:
        """Admin-applied manual delta."""
        actor = authorize(actor, "adjust_reliability")
        if not contractor_id:
            raise InvalidArgumentError("contractor_id is required")
        config = await self._config_service.load()
        snapshot = await self.apply_delta(contractor_id, delta, config.reliability, actor.uid)
        await self._audit_repo.record(
            actor, "adjust_reliability", "contractor", contractor_id, {"delta": delta.to_dict()}
        )
        return snapshot
