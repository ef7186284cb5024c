"""Tests for milestone payouts and change orders."""

from __future__ import annotations

import pytest
from conftest import agreed_project, enable_flags, funded_project

from escrow_marketplace.domain.enums import ChangeOrderStatus, EscrowState, MilestoneStatus
from escrow_marketplace.domain.exceptions import (
    FailedPreconditionError,
    InvalidArgumentError,
    PermissionDeniedError,
)
from escrow_marketplace.services.escrow_service import EscrowService
from escrow_marketplace.services.milestone_service import MilestoneService, MilestoneSpec


class TestMilestones:
    @pytest.mark.asyncio
    async def test_feature_flag_required(self, session, settings, customer, contractor) -> None:
        project = await funded_project(session, settings, customer, contractor)
        with pytest.raises(FailedPreconditionError) as exc_info:
            await MilestoneService(session, settings).create_milestones(
                customer, project.id, [MilestoneSpec("Demo", 10000)]
            )
        assert exc_info.value.code == "FEATURE_DISABLED"

    @pytest.mark.asyncio
    async def test_staged_release(self, session, settings, customer, contractor) -> None:
        await enable_flags(session, milestone_payments_enabled=True)
        project = await funded_project(session, settings, customer, contractor)
        milestones = MilestoneService(session, settings)
        first, second = await milestones.create_milestones(
            customer,
            project.id,
            [MilestoneSpec("Demolition", 30000), MilestoneSpec("Install", 55000)],
        )
        assert [m.sort_order for m in (first, second)] == [0, 1]

        release = await milestones.approve_milestone(customer, project.id, first.id)
        assert release.milestone.status == MilestoneStatus.RELEASED
        assert release.outcome.release_cents == 30000
        assert release.outcome.fee_cents == 1500
        assert release.outcome.held_remaining_cents == 55000
        assert project.state == EscrowState.IN_PROGRESS

        final = await milestones.approve_milestone(customer, project.id, second.id)
        assert final.outcome.held_remaining_cents == 0
        assert project.state == EscrowState.RELEASED_PAID

        summary = await EscrowService(session, settings).get_ledger_balance(customer, project.id)
        assert summary.consistent
        assert summary.balance.released_cents == 85000
        assert summary.balance.fees_cents == 4250

    @pytest.mark.asyncio
    async def test_release_is_capped_at_held(self, session, settings, customer, contractor) -> None:
        await enable_flags(session, milestone_payments_enabled=True)
        project = await funded_project(session, settings, customer, contractor)
        milestones = MilestoneService(session, settings)
        first, second = await milestones.create_milestones(
            customer, project.id, [MilestoneSpec("A", 60000), MilestoneSpec("B", 60000)]
        )
        await milestones.approve_milestone(customer, project.id, first.id)
        result = await milestones.approve_milestone(customer, project.id, second.id)
        assert result.outcome.release_cents == 25000
        assert project.state == EscrowState.RELEASED_PAID

    @pytest.mark.asyncio
    async def test_milestone_keeps_completion_requested(
        self, session, settings, customer, contractor
    ) -> None:
        await enable_flags(session, milestone_payments_enabled=True)
        project = await funded_project(session, settings, customer, contractor)
        milestones = MilestoneService(session, settings)
        (first,) = await milestones.create_milestones(
            customer, project.id, [MilestoneSpec("Rough-in", 20000)]
        )
        await EscrowService(session, settings).request_completion(contractor, project.id)
        await milestones.approve_milestone(customer, project.id, first.id)
        assert project.state == EscrowState.COMPLETION_REQUESTED
        assert project.held_amount_cents == 65000

    @pytest.mark.asyncio
    async def test_released_milestone_cannot_repeat(
        self, session, settings, customer, contractor
    ) -> None:
        await enable_flags(session, milestone_payments_enabled=True)
        project = await funded_project(session, settings, customer, contractor)
        milestones = MilestoneService(session, settings)
        (first, _) = await milestones.create_milestones(
            customer, project.id, [MilestoneSpec("A", 10000), MilestoneSpec("B", 10000)]
        )
        await milestones.approve_milestone(customer, project.id, first.id)
        with pytest.raises(FailedPreconditionError):
            await milestones.approve_milestone(customer, project.id, first.id)

    @pytest.mark.asyncio
    async def test_invalid_specs_rejected(self, session, settings, customer, contractor) -> None:
        await enable_flags(session, milestone_payments_enabled=True)
        project = await funded_project(session, settings, customer, contractor)
        milestones = MilestoneService(session, settings)
        with pytest.raises(InvalidArgumentError):
            await milestones.create_milestones(customer, project.id, [])
        with pytest.raises(InvalidArgumentError):
            await milestones.create_milestones(customer, project.id, [MilestoneSpec("A", 0)])

    @pytest.mark.asyncio
    async def test_list_milestones(self, session, settings, customer, contractor) -> None:
        await enable_flags(session, milestone_payments_enabled=True)
        project = await funded_project(session, settings, customer, contractor)
        milestones = MilestoneService(session, settings)
        await milestones.create_milestones(customer, project.id, [MilestoneSpec("A", 10000)])
        await milestones.create_milestones(customer, project.id, [MilestoneSpec("B", 20000)])
        listed = await milestones.list_milestones(contractor, project.id)
        assert [(m.title, m.sort_order) for m in listed] == [("A", 0), ("B", 1)]


class TestChangeOrders:
    @pytest.mark.asyncio
    async def test_accepted_change_amends_agreement(
        self, session, settings, customer, contractor
    ) -> None:
        await enable_flags(session, change_orders_enabled=True)
        project = await agreed_project(session, settings, customer, contractor)
        milestones = MilestoneService(session, settings)
        change = await milestones.propose_change_order(
            contractor, project.id, "Replace shutoff valve too", 5000, 2
        )
        assert change.status == ChangeOrderStatus.PENDING

        change = await milestones.respond_change_order(customer, project.id, change.id, True)
        assert change.status == ChangeOrderStatus.ACCEPTED
        assert change.responded_by == "cust-1"

        escrow = EscrowService(session, settings)
        agreement = await escrow.get_agreement(customer, project.id)
        assert agreement.price_cents == 90000
        assert agreement.timeline_days == 16
        assert agreement.terms_version == 2

        funded = await escrow.fund_hold(customer, project.id)
        assert funded.project.held_amount_cents == 90000

    @pytest.mark.asyncio
    async def test_rejected_change_leaves_agreement(
        self, session, settings, customer, contractor
    ) -> None:
        await enable_flags(session, change_orders_enabled=True)
        project = await agreed_project(session, settings, customer, contractor)
        milestones = MilestoneService(session, settings)
        change = await milestones.propose_change_order(customer, project.id, "Drop tiling", -10000)
        await milestones.respond_change_order(contractor, project.id, change.id, False)

        agreement = await EscrowService(session, settings).get_agreement(customer, project.id)
        assert agreement.price_cents == 85000
        assert agreement.terms_version == 1

    @pytest.mark.asyncio
    async def test_proposer_cannot_respond(self, session, settings, customer, contractor) -> None:
        await enable_flags(session, change_orders_enabled=True)
        project = await agreed_project(session, settings, customer, contractor)
        milestones = MilestoneService(session, settings)
        change = await milestones.propose_change_order(contractor, project.id, "Extra fixture", 100)
        with pytest.raises(PermissionDeniedError):
            await milestones.respond_change_order(contractor, project.id, change.id, True)

    @pytest.mark.asyncio
    async def test_change_cannot_zero_the_price(
        self, session, settings, customer, contractor
    ) -> None:
        await enable_flags(session, change_orders_enabled=True)
        project = await agreed_project(session, settings, customer, contractor)
        milestones = MilestoneService(session, settings)
        change = await milestones.propose_change_order(customer, project.id, "Cancel all", -85000)
        with pytest.raises(FailedPreconditionError):
            await milestones.respond_change_order(contractor, project.id, change.id, True)

    @pytest.mark.asyncio
    async def test_responding_twice_rejected(self, session, settings, customer, contractor) -> None:
        await enable_flags(session, change_orders_enabled=True)
        project = await agreed_project(session, settings, customer, contractor)
        milestones = MilestoneService(session, settings)
        change = await milestones.propose_change_order(contractor, project.id, "Extra", 100)
        await milestones.respond_change_order(customer, project.id, change.id, False)
        with pytest.raises(FailedPreconditionError):
            await milestones.respond_change_order(customer, project.id, change.id, True)
