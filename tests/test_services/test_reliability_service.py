"""Tests for contractor reliability scoring wired into the project lifecycle."""

from __future__ import annotations

import pytest
from conftest import completion_requested_project, enable_flags, funded_project

from escrow_marketplace.domain.enums import LedgerEventType
from escrow_marketplace.domain.exceptions import (
    ImmutableRecordError,
    InvalidArgumentError,
    PermissionDeniedError,
)
from escrow_marketplace.domain.reliability import NEUTRAL_SCORE, ReliabilityDelta
from escrow_marketplace.infrastructure.database.repositories import ReliabilityRepository
from escrow_marketplace.services.dispute_service import DisputeService
from escrow_marketplace.services.escrow_service import EscrowService
from escrow_marketplace.services.reliability_service import ReliabilityService


class TestScores:
    @pytest.mark.asyncio
    async def test_unknown_contractor_is_neutral(self, session, customer) -> None:
        snapshot = await ReliabilityService(session).get_score(customer, "pro-404")
        assert snapshot.score == NEUTRAL_SCORE
        assert snapshot.updated_at is None
        assert not snapshot.eligibility.auto_release

    @pytest.mark.asyncio
    async def test_lifecycle_untouched_when_disabled(
        self, session, settings, customer, contractor
    ) -> None:
        project = await completion_requested_project(session, settings, customer, contractor)
        await EscrowService(session, settings).approve_release(customer, project.id)
        assert await ReliabilityRepository(session).get("pro-1") is None

    @pytest.mark.asyncio
    async def test_completion_feeds_score(self, session, settings, customer, contractor) -> None:
        await enable_flags(session, reliability_scoring_enabled=True)
        project = await completion_requested_project(session, settings, customer, contractor)
        escrow = EscrowService(session, settings)
        await escrow.approve_release(customer, project.id)

        snapshot = await ReliabilityService(session).get_score(customer, "pro-1")
        assert snapshot.counters.proof_submissions_total == 1
        assert snapshot.counters.proof_submissions_complete == 1
        assert snapshot.counters.completions_total == 1
        assert snapshot.counters.completions_on_time == 1
        # No appointments yet and the default response time: 50 show-up, 80 response.
        assert snapshot.score == 81
        assert snapshot.eligibility.auto_release
        assert not snapshot.eligibility.high_ticket

        events = await escrow.get_ledger(customer, project.id)
        updates = [e for e in events if e.event_type == LedgerEventType.RELIABILITY_UPDATED]
        assert [e.metadata_json["source"] for e in updates] == [
            "request_completion",
            "approve_release",
        ]

    @pytest.mark.asyncio
    async def test_dispute_counts_against_contractor(
        self, session, settings, customer, contractor
    ) -> None:
        await enable_flags(session, reliability_scoring_enabled=True)
        project = await funded_project(session, settings, customer, contractor)
        await EscrowService(session, settings).start_work(contractor, project.id)
        await DisputeService(session, settings).raise_issue_hold(customer, project.id, "No-show")

        snapshot = await ReliabilityService(session).get_score(contractor, "pro-1")
        assert snapshot.counters.disputes_total == 1


class TestAdjust:
    @pytest.mark.asyncio
    async def test_admin_adjust_writes_history(self, session, admin) -> None:
        service = ReliabilityService(session)
        await service.adjust(admin, "pro-9", ReliabilityDelta(appointments_total=2))
        snapshot = await service.adjust(
            admin, "pro-9", ReliabilityDelta(appointments_total=2, appointments_attended=4)
        )

        assert snapshot.counters.appointments_total == 4
        assert snapshot.metrics.show_up_rate == 100
        assert snapshot.updated_by == "admin-1"

        history = await ReliabilityRepository(session).list_history("pro-9")
        assert len(history) == 2
        assert {"appointments_total": 2} in [h.delta for h in history]

    @pytest.mark.asyncio
    async def test_only_admin_adjusts(self, session, contractor) -> None:
        with pytest.raises(PermissionDeniedError):
            await ReliabilityService(session).adjust(
                contractor, "pro-1", ReliabilityDelta(appointments_attended=10)
            )

    @pytest.mark.asyncio
    async def test_contractor_id_required(self, session, admin) -> None:
        with pytest.raises(InvalidArgumentError):
            await ReliabilityService(session).adjust(admin, "", ReliabilityDelta())

    @pytest.mark.asyncio
    async def test_history_is_append_only(self, session, admin) -> None:
        await ReliabilityService(session).adjust(admin, "pro-9", ReliabilityDelta())
        (row,) = await ReliabilityRepository(session).list_history("pro-9")
        row.score = 100
        with pytest.raises(ImmutableRecordError):
            await session.flush()
