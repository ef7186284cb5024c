"""Tests for high-ticket concierge intake."""

from __future__ import annotations

import uuid

import pytest
from conftest import agreed_project, enable_flags, set_config

from escrow_marketplace.domain.enums import HighTicketStatus, LedgerEventType
from escrow_marketplace.domain.exceptions import (
    FailedPreconditionError,
    NotFoundError,
    PermissionDeniedError,
)
from escrow_marketplace.services.concierge_service import ConciergeService
from escrow_marketplace.services.escrow_service import EscrowService


@pytest.fixture
def concierge_on(session):  # noqa: ANN001, ANN201
    async def _enable() -> None:
        await enable_flags(session, high_ticket_concierge_enabled=True)

    return _enable


class TestIntake:
    @pytest.mark.asyncio
    async def test_budget_over_threshold(
        self, session, settings, customer, concierge_on
    ) -> None:
        await concierge_on()
        project = await EscrowService(session, settings).create_project(
            customer, "Full roof replacement", "roofing", budget_cents=600000
        )

        case = await ConciergeService(session, settings).create_high_ticket_case(
            customer, project.id, intake_notes="Two-storey house"
        )

        assert case.status == HighTicketStatus.INTAKE
        assert case.amount_cents == 600000
        assert case.intake_fee_cents == 9900
        assert case.completion_fee_bps == 300
        events = await EscrowService(session, settings).get_ledger(customer, project.id)
        assert [e.event_type for e in events] == [LedgerEventType.CONCIERGE_INTAKE_FEE_CHARGED]

    @pytest.mark.asyncio
    async def test_quote_price_counts(
        self, session, settings, customer, contractor, concierge_on
    ) -> None:
        await concierge_on()
        project = await agreed_project(
            session, settings, customer, contractor, price_cents=520000, budget_cents=100000
        )
        case = await ConciergeService(session, settings).create_high_ticket_case(
            customer, project.id
        )
        assert case.amount_cents == 520000

    @pytest.mark.asyncio
    async def test_below_threshold(self, session, settings, customer, concierge_on) -> None:
        await concierge_on()
        project = await EscrowService(session, settings).create_project(
            customer, "Repaint door", "painting", budget_cents=499999
        )
        with pytest.raises(FailedPreconditionError):
            await ConciergeService(session, settings).create_high_ticket_case(customer, project.id)

    @pytest.mark.asyncio
    async def test_one_case_per_project(self, session, settings, customer, concierge_on) -> None:
        await concierge_on()
        project = await EscrowService(session, settings).create_project(
            customer, "New HVAC", "hvac", budget_cents=500000
        )
        concierge = ConciergeService(session, settings)
        await concierge.create_high_ticket_case(customer, project.id)
        with pytest.raises(FailedPreconditionError):
            await concierge.create_high_ticket_case(customer, project.id)

    @pytest.mark.asyncio
    async def test_referral_mode_charges_no_intake(
        self, session, settings, customer, concierge_on
    ) -> None:
        await concierge_on()
        await set_config(session, "high_ticket", {"fee_mode": "referral"})
        project = await EscrowService(session, settings).create_project(
            customer, "Addition", "carpentry", budget_cents=900000
        )
        case = await ConciergeService(session, settings).create_high_ticket_case(
            customer, project.id
        )
        assert case.fee_mode == "referral"
        assert case.intake_fee_cents == 0
        assert case.completion_fee_bps == 600
        assert await EscrowService(session, settings).get_ledger(customer, project.id) == []

    @pytest.mark.asyncio
    async def test_other_customer_rejected(
        self, session, settings, customer, other_customer, concierge_on
    ) -> None:
        await concierge_on()
        project = await EscrowService(session, settings).create_project(
            customer, "Pool deck", "carpentry", budget_cents=700000
        )
        with pytest.raises(PermissionDeniedError):
            await ConciergeService(session, settings).create_high_ticket_case(
                other_customer, project.id
            )


class TestManagerAssignment:
    @pytest.mark.asyncio
    async def test_admin_assigns_manager(
        self, session, settings, customer, admin, concierge_on
    ) -> None:
        await concierge_on()
        project = await EscrowService(session, settings).create_project(
            customer, "Kitchen remodel", "general", budget_cents=800000
        )
        concierge = ConciergeService(session, settings)
        case = await concierge.create_high_ticket_case(customer, project.id)

        case = await concierge.assign_concierge_manager(admin, case.id, "mgr-7")

        assert case.manager_id == "mgr-7"
        assert case.status == HighTicketStatus.MANAGER_ASSIGNED

    @pytest.mark.asyncio
    async def test_customer_cannot_assign(
        self, session, settings, customer, concierge_on
    ) -> None:
        await concierge_on()
        with pytest.raises(PermissionDeniedError):
            await ConciergeService(session, settings).assign_concierge_manager(
                customer, uuid.uuid4(), "mgr-7"
            )

    @pytest.mark.asyncio
    async def test_unknown_case(self, session, settings, admin, concierge_on) -> None:
        await concierge_on()
        with pytest.raises(NotFoundError):
            await ConciergeService(session, settings).assign_concierge_manager(
                admin, uuid.uuid4(), "mgr-7"
            )
