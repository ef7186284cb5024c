"""Tests for ledger folding."""

from __future__ import annotations

from dataclasses import dataclass

from escrow_marketplace.domain.enums import LedgerEventType
from escrow_marketplace.domain.ledger import LedgerBalance, fold_ledger


@dataclass
class FakeEvent:
    event_type: str
    amount_cents: int
    sequence: int


class TestFoldLedger:
    def test_empty(self) -> None:
        assert fold_ledger([]) == LedgerBalance()

    def test_hold_then_partial_split(self) -> None:
        events = [
            FakeEvent(LedgerEventType.HOLD_CREATED, 85000, 1),
            FakeEvent(LedgerEventType.RELEASE_PARTIAL, 65000, 2),
            FakeEvent(LedgerEventType.REFUND_PARTIAL, 20000, 3),
            FakeEvent(LedgerEventType.OUTCOME_EXECUTED, 85000, 4),
            FakeEvent(LedgerEventType.PLATFORM_FEE_CHARGED, 3250, 5),
        ]
        balance = fold_ledger(events)
        assert balance.held_cents == 0
        assert balance.released_cents == 65000
        assert balance.refunded_cents == 20000
        assert balance.fees_cents == 3250

    def test_order_follows_sequence_not_input(self) -> None:
        events = [
            FakeEvent(LedgerEventType.RELEASE_FULL, 500, 2),
            FakeEvent(LedgerEventType.HOLD_CREATED, 500, 1),
        ]
        assert fold_ledger(events).held_cents == 0

    def test_deposits(self) -> None:
        events = [
            FakeEvent(LedgerEventType.ESTIMATE_DEPOSIT_CAPTURED, 2900, 1),
            FakeEvent(LedgerEventType.ESTIMATE_DEPOSIT_CREDITED, 2900, 2),
            FakeEvent(LedgerEventType.ESTIMATE_DEPOSIT_CAPTURED, 3900, 3),
            FakeEvent(LedgerEventType.ESTIMATE_DEPOSIT_REFUNDED, 3900, 4),
        ]
        balance = fold_ledger(events)
        assert balance.deposits_held_cents == 0
        assert balance.deposits_credited_cents == 2900

    def test_informational_events_do_not_move_money(self) -> None:
        events = [
            FakeEvent(LedgerEventType.HOLD_CREATED, 1000, 1),
            FakeEvent(LedgerEventType.JOINT_RELEASE_PROPOSED, 1000, 2),
            FakeEvent(LedgerEventType.MILESTONE_DEFINED, 1000, 3),
        ]
        assert fold_ledger(events).held_cents == 1000
