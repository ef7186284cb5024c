"""Outcome classification for fund dispositions.

The precedence below is significant when exactly one side is zero and the
other is partial; keep the checks in this order:

    1. release == held               -> EXECUTED_RELEASE_FULL
    2. refund == held                -> EXECUTED_REFUND_FULL
    3. release > 0 and refund > 0    -> EXECUTED_RELEASE_PARTIAL
    4. refund > 0                    -> EXECUTED_REFUND_PARTIAL
    5. otherwise                     -> EXECUTED_RELEASE_PARTIAL
"""

from __future__ import annotations

from escrow_marketplace.domain.enums import EscrowState, OutcomeType
from escrow_marketplace.domain.exceptions import (
    FailedPreconditionError,
    InvalidArgumentError,
)


def validate_disposition(held_amount_cents: int, release_cents: int, refund_cents: int) -> None:
    """Reject dispositions that would overdraw or are otherwise meaningless."""
    if held_amount_cents <= 0:
        raise FailedPreconditionError("Project has no held funds")
    if release_cents < 0 or refund_cents < 0:
        raise InvalidArgumentError("Release and refund amounts cannot be negative")
    if release_cents + refund_cents > held_amount_cents:
        raise InvalidArgumentError(
            f"Release + refund ({release_cents + refund_cents}) exceeds held amount "
            f"({held_amount_cents})"
        )
    if release_cents + refund_cents == 0:
        raise InvalidArgumentError("Release + refund must dispose of a positive amount")


def classify_outcome(release_cents: int, refund_cents: int, held_amount_cents: int) -> EscrowState:
    if release_cents == held_amount_cents:
        return EscrowState.EXECUTED_RELEASE_FULL
    if refund_cents == held_amount_cents:
        return EscrowState.EXECUTED_REFUND_FULL
    if release_cents > 0 and refund_cents > 0:
        return EscrowState.EXECUTED_RELEASE_PARTIAL
    if refund_cents > 0:
        return EscrowState.EXECUTED_REFUND_PARTIAL
    return EscrowState.EXECUTED_RELEASE_PARTIAL


def admin_outcome_amounts(
    outcome_type: OutcomeType,
    held_amount_cents: int,
    release_cents: int | None,
    refund_cents: int | None,
) -> tuple[int, int]:
    """Resolve the (release, refund) pair an admin outcome type stands for.

    Full outcomes dispose of the entire hold (explicit amounts, when supplied,
    must agree); partial outcomes use the supplied amounts, defaulting a
    missing side to zero.
    """
    full = {
        OutcomeType.RELEASE_FULL: (held_amount_cents, 0),
        OutcomeType.REFUND_FULL: (0, held_amount_cents),
    }
    if outcome_type in full:
        expected = full[outcome_type]
        supplied = (
            expected[0] if release_cents is None else release_cents,
            expected[1] if refund_cents is None else refund_cents,
        )
        if supplied != expected:
            raise InvalidArgumentError(
                f"{outcome_type} must dispose of the full held amount {held_amount_cents}"
            )
        return expected

    release = release_cents or 0
    refund = refund_cents or 0
    if outcome_type is OutcomeType.RELEASE_PARTIAL and release <= 0:
        raise InvalidArgumentError("release_partial requires a positive release amount")
    if outcome_type is OutcomeType.REFUND_PARTIAL and refund <= 0:
        raise InvalidArgumentError("refund_partial requires a positive refund amount")
    return release, refund
