"""Tests for issue holds, joint releases and admin outcomes."""

from __future__ import annotations

import pytest
from conftest import JOB_PRICE_CENTS, completion_requested_project, funded_project

from escrow_marketplace.domain.enums import (
    CaseStatus,
    EscrowState,
    LedgerEventType,
    ProposalStatus,
)
from escrow_marketplace.domain.exceptions import (
    FailedPreconditionError,
    InvalidArgumentError,
    PermissionDeniedError,
)
from escrow_marketplace.services.dispute_service import DisputeService
from escrow_marketplace.services.escrow_service import EscrowService


@pytest.fixture
def disputed(session, settings, customer, contractor):  # noqa: ANN001, ANN201
    async def _make():  # noqa: ANN202
        project = await completion_requested_project(session, settings, customer, contractor)
        await DisputeService(session, settings).raise_issue_hold(
            customer, project.id, "Leak is still there"
        )
        return project

    return _make


class TestIssueHold:
    @pytest.mark.asyncio
    async def test_raise_opens_case(self, session, settings, customer, contractor) -> None:
        project = await completion_requested_project(session, settings, customer, contractor)
        disputes = DisputeService(session, settings)

        case = await disputes.raise_issue_hold(customer, project.id, "Leak is still there")

        assert project.state == EscrowState.ISSUE_RAISED_HOLD
        assert project.issue_raised_at is not None
        assert project.held_amount_cents == JOB_PRICE_CENTS
        assert case.status == CaseStatus.WAITING_JOINT_RELEASE
        assert case.opened_by == "cust-1"

    @pytest.mark.asyncio
    async def test_raise_during_work(self, session, settings, customer, contractor) -> None:
        project = await funded_project(session, settings, customer, contractor)
        await EscrowService(session, settings).start_work(contractor, project.id)
        await DisputeService(session, settings).raise_issue_hold(customer, project.id, "No-show")
        assert project.state == EscrowState.ISSUE_RAISED_HOLD

    @pytest.mark.asyncio
    async def test_contractor_cannot_raise(self, session, settings, customer, contractor) -> None:
        project = await completion_requested_project(session, settings, customer, contractor)
        with pytest.raises(PermissionDeniedError):
            await DisputeService(session, settings).raise_issue_hold(
                contractor, project.id, "Customer is unreachable"
            )

    @pytest.mark.asyncio
    async def test_reason_required(self, session, settings, customer, contractor) -> None:
        project = await completion_requested_project(session, settings, customer, contractor)
        with pytest.raises(InvalidArgumentError):
            await DisputeService(session, settings).raise_issue_hold(customer, project.id, "  ")

    @pytest.mark.asyncio
    async def test_second_issue_rejected(self, session, settings, customer, disputed) -> None:
        project = await disputed()
        with pytest.raises(FailedPreconditionError):
            await DisputeService(session, settings).raise_issue_hold(
                customer, project.id, "Still leaking"
            )

    @pytest.mark.asyncio
    async def test_frozen_funds_cannot_be_approved(
        self, session, settings, customer, disputed
    ) -> None:
        project = await disputed()
        with pytest.raises(FailedPreconditionError):
            await EscrowService(session, settings).approve_release(customer, project.id)


class TestJointRelease:
    @pytest.mark.asyncio
    async def test_split_executes_on_second_signature(
        self, session, settings, customer, contractor, disputed
    ) -> None:
        project = await disputed()
        disputes = DisputeService(session, settings)
        proposal = await disputes.propose_joint_release(customer, project.id, 65000, 20000)
        assert proposal.status == ProposalStatus.PENDING_SIGNATURES

        first = await disputes.sign_joint_release(customer, project.id, proposal.id)
        assert not first.fully_signed
        assert first.outcome is None
        assert project.state == EscrowState.ISSUE_RAISED_HOLD

        second = await disputes.sign_joint_release(contractor, project.id, proposal.id)
        assert second.fully_signed
        assert second.outcome.release_cents == 65000
        assert second.outcome.refund_cents == 20000
        assert second.outcome.fee_cents == 3250
        assert project.state == EscrowState.EXECUTED_RELEASE_PARTIAL
        assert project.held_amount_cents == 0
        assert proposal.status == ProposalStatus.EXECUTED

        view = await disputes.get_case(customer, project.id)
        assert view.case.status == CaseStatus.CLOSED
        assert view.case.outcome["classification"] == EscrowState.EXECUTED_RELEASE_PARTIAL

        summary = await EscrowService(session, settings).get_ledger_balance(customer, project.id)
        assert summary.consistent
        assert summary.balance.released_cents == 65000
        assert summary.balance.refunded_cents == 20000

    @pytest.mark.asyncio
    async def test_full_refund_split(
        self, session, settings, customer, contractor, disputed
    ) -> None:
        project = await disputed()
        disputes = DisputeService(session, settings)
        proposal = await disputes.propose_joint_release(contractor, project.id, 0, JOB_PRICE_CENTS)
        await disputes.sign_joint_release(contractor, project.id, proposal.id)
        result = await disputes.sign_joint_release(customer, project.id, proposal.id)

        assert project.state == EscrowState.EXECUTED_REFUND_FULL
        assert result.outcome.fee_cents == 0
        events = await EscrowService(session, settings).get_ledger(customer, project.id)
        types = [e.event_type for e in events]
        assert LedgerEventType.REFUND_FULL in types
        assert LedgerEventType.PLATFORM_FEE_CHARGED not in types

    @pytest.mark.asyncio
    async def test_split_must_equal_held(self, session, settings, customer, disputed) -> None:
        project = await disputed()
        with pytest.raises(InvalidArgumentError):
            await DisputeService(session, settings).propose_joint_release(
                customer, project.id, 50000, 20000
            )

    @pytest.mark.asyncio
    async def test_signing_twice_is_a_no_op(self, session, settings, customer, disputed) -> None:
        project = await disputed()
        disputes = DisputeService(session, settings)
        proposal = await disputes.propose_joint_release(customer, project.id, 40000, 45000)
        await disputes.sign_joint_release(customer, project.id, proposal.id)
        again = await disputes.sign_joint_release(customer, project.id, proposal.id)
        assert not again.fully_signed
        assert project.held_amount_cents == JOB_PRICE_CENTS

    @pytest.mark.asyncio
    async def test_executed_proposal_cannot_be_signed(
        self, session, settings, customer, contractor, disputed
    ) -> None:
        project = await disputed()
        disputes = DisputeService(session, settings)
        proposal = await disputes.propose_joint_release(customer, project.id, 40000, 45000)
        stale = await disputes.propose_joint_release(contractor, project.id, 45000, 40000)
        await disputes.sign_joint_release(customer, project.id, proposal.id)
        await disputes.sign_joint_release(contractor, project.id, proposal.id)

        assert stale.status == ProposalStatus.EXPIRED
        with pytest.raises(FailedPreconditionError):
            await disputes.sign_joint_release(customer, project.id, proposal.id)


class TestExternalResolution:
    @pytest.mark.asyncio
    async def test_upload_moves_to_submitted(
        self, session, settings, customer, contractor, disputed
    ) -> None:
        project = await disputed()
        disputes = DisputeService(session, settings)
        await disputes.request_external_resolution(contractor, project.id)
        assert project.state == EscrowState.RESOLUTION_PENDING_EXTERNAL

        case = await disputes.upload_resolution_document(
            customer,
            project.id,
            "https://docs.example.com/mediation.pdf",
            "mediator_decision",
            summary="Split 50/50",
        )
        assert project.state == EscrowState.RESOLUTION_SUBMITTED
        assert case.status == CaseStatus.RESOLUTION_SUBMITTED
        assert case.resolution_submitted_by == "cust-1"

    @pytest.mark.asyncio
    async def test_unknown_resolution_type(self, session, settings, customer, disputed) -> None:
        project = await disputed()
        with pytest.raises(InvalidArgumentError):
            await DisputeService(session, settings).upload_resolution_document(
                customer, project.id, "https://docs.example.com/x.pdf", "coin_flip"
            )

    @pytest.mark.asyncio
    async def test_admin_executes_documented_refund(
        self, session, settings, customer, contractor, admin, disputed
    ) -> None:
        project = await disputed()
        disputes = DisputeService(session, settings)
        await disputes.upload_resolution_document(
            contractor, project.id, "https://docs.example.com/order.pdf", "court_order"
        )

        result = await disputes.admin_execute_outcome(admin, project.id, "refund_full")

        assert result.resulting_state == EscrowState.EXECUTED_REFUND_FULL
        assert project.held_amount_cents == 0
        view = await disputes.get_case(admin, project.id)
        assert view.case.status == CaseStatus.CLOSED

    @pytest.mark.asyncio
    async def test_admin_outcome_with_doc_reference_only(
        self, session, settings, customer, admin, disputed
    ) -> None:
        project = await disputed()
        result = await DisputeService(session, settings).admin_execute_outcome(
            admin,
            project.id,
            "release_partial",
            release_cents=30000,
            doc_reference="settlement-2026-118",
        )
        assert result.resulting_state == EscrowState.EXECUTED_RELEASE_PARTIAL
        assert result.held_remaining_cents == 55000
        assert project.held_amount_cents == 55000

    @pytest.mark.asyncio
    async def test_admin_outcome_requires_document(
        self, session, settings, admin, disputed
    ) -> None:
        project = await disputed()
        with pytest.raises(FailedPreconditionError):
            await DisputeService(session, settings).admin_execute_outcome(
                admin, project.id, "release_full"
            )
        assert project.state == EscrowState.ISSUE_RAISED_HOLD

    @pytest.mark.asyncio
    async def test_admin_outcome_cannot_overdraw(self, session, settings, admin, disputed) -> None:
        project = await disputed()
        with pytest.raises(InvalidArgumentError):
            await DisputeService(session, settings).admin_execute_outcome(
                admin,
                project.id,
                "refund_partial",
                release_cents=50000,
                refund_cents=50000,
                doc_reference="doc-1",
            )

    @pytest.mark.asyncio
    async def test_customer_cannot_execute(self, session, settings, customer, disputed) -> None:
        project = await disputed()
        with pytest.raises(PermissionDeniedError):
            await DisputeService(session, settings).admin_execute_outcome(
                customer, project.id, "refund_full", doc_reference="doc-1"
            )
