"""Tests for estimate deposits and their credit against the job."""

from __future__ import annotations

import pytest
from conftest import JOB_PRICE_CENTS, agreed_project, enable_flags, funded_project

from escrow_marketplace.domain.enums import DepositStatus, LedgerEventType
from escrow_marketplace.domain.exceptions import (
    FailedPreconditionError,
    InvalidArgumentError,
    PermissionDeniedError,
)
from escrow_marketplace.services.deposit_service import DepositService
from escrow_marketplace.services.escrow_service import EscrowService


@pytest.fixture
def deposits_on(session):  # noqa: ANN001, ANN201
    async def _enable() -> None:
        await enable_flags(session, estimate_deposits_enabled=True)

    return _enable


class TestCreateAndCapture:
    @pytest.mark.asyncio
    async def test_flag_required(self, session, settings, customer, contractor) -> None:
        project = await agreed_project(session, settings, customer, contractor)
        with pytest.raises(FailedPreconditionError):
            await DepositService(session, settings).create_estimate_deposit(customer, project.id)

    @pytest.mark.asyncio
    async def test_amount_follows_category(
        self, session, settings, customer, contractor, deposits_on
    ) -> None:
        await deposits_on()
        project = await agreed_project(session, settings, customer, contractor)
        service = DepositService(session, settings)

        plumbing = await service.create_estimate_deposit(customer, project.id)
        roofing = await service.create_estimate_deposit(customer, project.id, category="roofing")

        assert plumbing.amount_cents == 2900
        assert roofing.amount_cents == 7900
        assert plumbing.status == DepositStatus.CREATED
        assert plumbing.contractor_id == "pro-1"

    @pytest.mark.asyncio
    async def test_unconfigured_category(
        self, session, settings, customer, contractor, deposits_on
    ) -> None:
        await deposits_on()
        project = await agreed_project(session, settings, customer, contractor)
        with pytest.raises(FailedPreconditionError):
            await DepositService(session, settings).create_estimate_deposit(
                customer, project.id, category="pools"
            )

    @pytest.mark.asyncio
    async def test_contractor_must_be_selected(
        self, session, settings, customer, deposits_on
    ) -> None:
        await deposits_on()
        project = await EscrowService(session, settings).create_project(
            customer, "Leaky pipe", "plumbing"
        )
        with pytest.raises(FailedPreconditionError):
            await DepositService(session, settings).create_estimate_deposit(customer, project.id)

    @pytest.mark.asyncio
    async def test_capture_places_hold(
        self, session, settings, customer, contractor, deposits_on
    ) -> None:
        await deposits_on()
        project = await agreed_project(session, settings, customer, contractor)
        service = DepositService(session, settings)
        deposit = await service.create_estimate_deposit(
            customer, project.id, appointment_at="2026-11-02T09:00:00Z"
        )

        deposit = await service.capture_estimate_deposit(customer, deposit.id)

        assert deposit.status == DepositStatus.CAPTURED
        assert deposit.provider_hold_id.startswith("mock_hold_")
        assert deposit.appointment_at.day == 2
        with pytest.raises(FailedPreconditionError):
            await service.capture_estimate_deposit(customer, deposit.id)

    @pytest.mark.asyncio
    async def test_only_customer_captures(
        self, session, settings, customer, contractor, deposits_on
    ) -> None:
        await deposits_on()
        project = await agreed_project(session, settings, customer, contractor)
        service = DepositService(session, settings)
        deposit = await service.create_estimate_deposit(customer, project.id)
        with pytest.raises(PermissionDeniedError):
            await service.capture_estimate_deposit(contractor, deposit.id)


class TestAttendance:
    @pytest.mark.asyncio
    async def test_contractor_no_show_refunds(
        self, session, settings, customer, contractor, deposits_on
    ) -> None:
        await deposits_on()
        project = await agreed_project(session, settings, customer, contractor)
        service = DepositService(session, settings)
        deposit = await service.create_estimate_deposit(customer, project.id)
        await service.capture_estimate_deposit(customer, deposit.id)

        deposit = await service.mark_estimate_attendance(
            customer, deposit.id, "contractor_no_show", note="Waited an hour"
        )

        assert deposit.status == DepositStatus.REFUNDED
        assert deposit.attendance_outcome == "contractor_no_show"
        summary = await EscrowService(session, settings).get_ledger_balance(customer, project.id)
        assert summary.balance.deposits_held_cents == 0
        types = [e.event_type for e in summary.events]
        assert LedgerEventType.ESTIMATE_DEPOSIT_REFUNDED in types

    @pytest.mark.asyncio
    async def test_contractor_present_keeps_deposit(
        self, session, settings, customer, contractor, deposits_on
    ) -> None:
        await deposits_on()
        project = await agreed_project(session, settings, customer, contractor)
        service = DepositService(session, settings)
        deposit = await service.create_estimate_deposit(customer, project.id)
        await service.capture_estimate_deposit(customer, deposit.id)

        deposit = await service.mark_estimate_attendance(
            contractor, deposit.id, "contractor_present"
        )
        assert deposit.status == DepositStatus.CONTRACTOR_ATTENDED

    @pytest.mark.asyncio
    async def test_unknown_outcome(
        self, session, settings, customer, contractor, deposits_on
    ) -> None:
        await deposits_on()
        project = await agreed_project(session, settings, customer, contractor)
        service = DepositService(session, settings)
        deposit = await service.create_estimate_deposit(customer, project.id)
        with pytest.raises(InvalidArgumentError):
            await service.mark_estimate_attendance(customer, deposit.id, "late")

    @pytest.mark.asyncio
    async def test_stranger_cannot_mark(
        self, session, settings, customer, contractor, other_contractor, deposits_on
    ) -> None:
        await deposits_on()
        project = await agreed_project(session, settings, customer, contractor)
        service = DepositService(session, settings)
        deposit = await service.create_estimate_deposit(customer, project.id)
        with pytest.raises(PermissionDeniedError):
            await service.mark_estimate_attendance(
                other_contractor, deposit.id, "contractor_present"
            )


class TestRefundAndCredit:
    @pytest.mark.asyncio
    async def test_credit_reduces_hold(
        self, session, settings, customer, contractor, deposits_on
    ) -> None:
        await deposits_on()
        project = await agreed_project(session, settings, customer, contractor)
        service = DepositService(session, settings)
        deposit = await service.create_estimate_deposit(customer, project.id)
        await service.capture_estimate_deposit(customer, deposit.id)

        deposit = await service.apply_deposit_to_job(customer, project.id, deposit.id)
        assert deposit.status == DepositStatus.CREDITED_TO_JOB
        assert project.estimate_deposit_credit_cents == 2900

        escrow = EscrowService(session, settings)
        funded = await escrow.fund_hold(customer, project.id)
        assert funded.project.held_amount_cents == JOB_PRICE_CENTS - 2900

        summary = await escrow.get_ledger_balance(customer, project.id)
        assert summary.consistent
        assert summary.balance.deposits_credited_cents == 2900

    @pytest.mark.asyncio
    async def test_credits_accumulate(
        self, session, settings, customer, contractor, deposits_on
    ) -> None:
        await deposits_on()
        project = await agreed_project(session, settings, customer, contractor)
        service = DepositService(session, settings)
        for category in ("plumbing", "roofing"):
            deposit = await service.create_estimate_deposit(customer, project.id, category)
            await service.capture_estimate_deposit(customer, deposit.id)
            await service.apply_deposit_to_job(customer, project.id, deposit.id)
        assert project.estimate_deposit_credit_cents == 2900 + 7900

        listed = await service.list_deposits(contractor, project.id)
        assert {d.status for d in listed} == {DepositStatus.CREDITED_TO_JOB}

    @pytest.mark.asyncio
    async def test_uncaptured_deposit_not_creditable(
        self, session, settings, customer, contractor, deposits_on
    ) -> None:
        await deposits_on()
        project = await agreed_project(session, settings, customer, contractor)
        service = DepositService(session, settings)
        deposit = await service.create_estimate_deposit(customer, project.id)
        with pytest.raises(FailedPreconditionError):
            await service.apply_deposit_to_job(customer, project.id, deposit.id)

    @pytest.mark.asyncio
    async def test_credit_after_funding_rejected(
        self, session, settings, customer, contractor, deposits_on
    ) -> None:
        await deposits_on()
        project = await funded_project(session, settings, customer, contractor)
        service = DepositService(session, settings)
        deposit = await service.create_estimate_deposit(customer, project.id)
        await service.capture_estimate_deposit(customer, deposit.id)
        with pytest.raises(FailedPreconditionError):
            await service.apply_deposit_to_job(customer, project.id, deposit.id)

    @pytest.mark.asyncio
    async def test_refund_is_idempotent(
        self, session, settings, customer, contractor, admin, deposits_on
    ) -> None:
        await deposits_on()
        project = await agreed_project(session, settings, customer, contractor)
        service = DepositService(session, settings)
        deposit = await service.create_estimate_deposit(customer, project.id)
        await service.capture_estimate_deposit(customer, deposit.id)

        await service.refund_estimate_deposit(admin, deposit.id, reason="goodwill")
        deposit = await service.refund_estimate_deposit(customer, deposit.id)

        assert deposit.status == DepositStatus.REFUNDED
        events = await EscrowService(session, settings).get_ledger(customer, project.id)
        refunds = [e for e in events if e.event_type == LedgerEventType.ESTIMATE_DEPOSIT_REFUNDED]
        assert len(refunds) == 1

    @pytest.mark.asyncio
    async def test_contractor_cannot_refund(
        self, session, settings, customer, contractor, deposits_on
    ) -> None:
        await deposits_on()
        project = await agreed_project(session, settings, customer, contractor)
        service = DepositService(session, settings)
        deposit = await service.create_estimate_deposit(customer, project.id)
        with pytest.raises(PermissionDeniedError):
            await service.refund_estimate_deposit(contractor, deposit.id)
