"""Tests for optimistic versioning and the append-only tables."""

from __future__ import annotations

import pytest
from conftest import funded_project
from sqlalchemy import update

from escrow_marketplace.domain.authorization import Actor
from escrow_marketplace.domain.enums import LedgerEventType, Role
from escrow_marketplace.domain.exceptions import (
    ConcurrentModificationError,
    ImmutableRecordError,
)
from escrow_marketplace.infrastructure.database.orm_models import Project
from escrow_marketplace.infrastructure.database.repositories import (
    AuditRepository,
    LedgerRepository,
    ProjectRepository,
)

SYSTEM = Actor("system", Role.ADMIN, admin_verified=True)


class TestOptimisticVersioning:
    @pytest.mark.asyncio
    async def test_stale_project_write_rejected(
        self, session, settings, customer, contractor
    ) -> None:
        project = await funded_project(session, settings, customer, contractor)
        await session.execute(
            update(Project)
            .where(Project.id == project.id)
            .values(version=Project.version + 1)
            .execution_options(synchronize_session=False)
        )

        project.title = "Edited elsewhere"
        with pytest.raises(ConcurrentModificationError):
            await ProjectRepository(session).save(project)

    @pytest.mark.asyncio
    async def test_version_increments(self, session, settings, customer, contractor) -> None:
        project = await funded_project(session, settings, customer, contractor)
        before = project.version
        project.title = "Renamed"
        await ProjectRepository(session).save(project)
        assert project.version == before + 1


class TestLedger:
    @pytest.mark.asyncio
    async def test_sequences_are_per_stream(self, session) -> None:
        ledger = LedgerRepository(session)
        a1 = await ledger.append("stream-a", LedgerEventType.HOLD_CREATED, SYSTEM, 100)
        b1 = await ledger.append("stream-b", LedgerEventType.HOLD_CREATED, SYSTEM, 100)
        a2 = await ledger.append("stream-a", LedgerEventType.RELEASE_FULL, SYSTEM, 100)
        assert (a1.sequence, b1.sequence, a2.sequence) == (1, 1, 2)

    @pytest.mark.asyncio
    async def test_sequence_collision_is_a_conflict(self, session, monkeypatch) -> None:
        ledger = LedgerRepository(session)
        await ledger.append("stream-a", LedgerEventType.HOLD_CREATED, SYSTEM, 100)

        async def stale_sequence(stream_id: str) -> int:
            return 1

        monkeypatch.setattr(ledger, "next_sequence", stale_sequence)
        with pytest.raises(ConcurrentModificationError):
            await ledger.append("stream-a", LedgerEventType.RELEASE_FULL, SYSTEM, 100)

    @pytest.mark.asyncio
    async def test_events_cannot_be_updated(self, session) -> None:
        evt = await LedgerRepository(session).append(
            "stream-a", LedgerEventType.HOLD_CREATED, SYSTEM, 100
        )
        evt.amount_cents = 1
        with pytest.raises(ImmutableRecordError):
            await session.flush()

    @pytest.mark.asyncio
    async def test_events_cannot_be_deleted(self, session) -> None:
        evt = await LedgerRepository(session).append(
            "stream-a", LedgerEventType.HOLD_CREATED, SYSTEM, 100
        )
        await session.delete(evt)
        with pytest.raises(ImmutableRecordError):
            await session.flush()


class TestAudit:
    @pytest.mark.asyncio
    async def test_audit_rows_are_immutable(self, session) -> None:
        entry = await AuditRepository(session).record(SYSTEM, "close_project", "project", "p-1")
        entry.action = "tampered"
        with pytest.raises(ImmutableRecordError):
            await session.flush()
