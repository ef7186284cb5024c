"""Ledger folding.

The ledger_events stream is the authoritative money history; the balance
columns on a project are a read-time convenience. ``fold_ledger`` rebuilds
the balances from events in sequence order.
"""

from __future__ import annotations

from dataclasses import asdict, dataclass
from typing import TYPE_CHECKING, Protocol

from escrow_marketplace.domain.enums import LedgerEventType

if TYPE_CHECKING:
    from collections.abc import Iterable


class LedgerEntry(Protocol):
    event_type: str
    amount_cents: int
    sequence: int


@dataclass(frozen=True)
class LedgerBalance:
    held_cents: int = 0
    released_cents: int = 0
    refunded_cents: int = 0
    fees_cents: int = 0
    deposits_held_cents: int = 0
    deposits_credited_cents: int = 0

    def to_dict(self) -> dict:
        return asdict(self)


_HOLD_DELTAS: dict[str, int] = {
    LedgerEventType.HOLD_CREATED: 1,
    LedgerEventType.RELEASE_FULL: -1,
    LedgerEventType.RELEASE_PARTIAL: -1,
    LedgerEventType.REFUND_FULL: -1,
    LedgerEventType.REFUND_PARTIAL: -1,
}


def fold_ledger(events: Iterable[LedgerEntry]) -> LedgerBalance:
    held = released = refunded = fees = deposits = credited = 0
    for evt in sorted(events, key=lambda e: e.sequence):
        amount = evt.amount_cents
        held += _HOLD_DELTAS.get(evt.event_type, 0) * amount

        kind = evt.event_type
        if kind in (LedgerEventType.RELEASE_FULL, LedgerEventType.RELEASE_PARTIAL):
            released += amount
        elif kind in (LedgerEventType.REFUND_FULL, LedgerEventType.REFUND_PARTIAL):
            refunded += amount
        elif kind == LedgerEventType.PLATFORM_FEE_CHARGED:
            fees += amount
        elif kind == LedgerEventType.ESTIMATE_DEPOSIT_CAPTURED:
            deposits += amount
        elif kind == LedgerEventType.ESTIMATE_DEPOSIT_REFUNDED:
            deposits -= amount
        elif kind == LedgerEventType.ESTIMATE_DEPOSIT_CREDITED:
            deposits -= amount
            credited += amount

    return LedgerBalance(
        held_cents=held,
        released_cents=released,
        refunded_cents=refunded,
        fees_cents=fees,
        deposits_held_cents=deposits,
        deposits_credited_cents=credited,
    )
