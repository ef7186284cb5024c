"""Tests for disposition validation and outcome classification."""

from __future__ import annotations

import pytest

from escrow_marketplace.domain.enums import EscrowState, OutcomeType
from escrow_marketplace.domain.exceptions import FailedPreconditionError, InvalidArgumentError
from escrow_marketplace.domain.outcomes import (
    admin_outcome_amounts,
    classify_outcome,
    validate_disposition,
)

HELD = 85000


class TestClassifyOutcome:
    @pytest.mark.parametrize(
        ("release", "refund", "expected"),
        [
            (HELD, 0, EscrowState.EXECUTED_RELEASE_FULL),
            (0, HELD, EscrowState.EXECUTED_REFUND_FULL),
            (65000, 20000, EscrowState.EXECUTED_RELEASE_PARTIAL),
            (0, 20000, EscrowState.EXECUTED_REFUND_PARTIAL),
            (30000, 0, EscrowState.EXECUTED_RELEASE_PARTIAL),
        ],
    )
    def test_precedence(self, release: int, refund: int, expected: EscrowState) -> None:
        assert classify_outcome(release, refund, HELD) is expected


class TestValidateDisposition:
    def test_accepts_partial(self) -> None:
        validate_disposition(HELD, 1000, 2000)

    def test_rejects_overdraw(self) -> None:
        with pytest.raises(InvalidArgumentError, match="exceeds held amount"):
            validate_disposition(HELD, HELD, 1)

    def test_rejects_negative(self) -> None:
        with pytest.raises(InvalidArgumentError):
            validate_disposition(HELD, -1, 0)

    def test_rejects_empty(self) -> None:
        with pytest.raises(InvalidArgumentError):
            validate_disposition(HELD, 0, 0)

    def test_nothing_held(self) -> None:
        with pytest.raises(FailedPreconditionError):
            validate_disposition(0, 100, 0)


class TestAdminOutcomeAmounts:
    def test_full_release_defaults_to_whole_hold(self) -> None:
        assert admin_outcome_amounts(OutcomeType.RELEASE_FULL, HELD, None, None) == (HELD, 0)

    def test_full_refund_defaults_to_whole_hold(self) -> None:
        assert admin_outcome_amounts(OutcomeType.REFUND_FULL, HELD, None, None) == (0, HELD)

    def test_full_outcome_with_disagreeing_amounts_rejected(self) -> None:
        with pytest.raises(InvalidArgumentError):
            admin_outcome_amounts(OutcomeType.RELEASE_FULL, HELD, 1000, None)

    def test_partial_release_requires_release(self) -> None:
        with pytest.raises(InvalidArgumentError):
            admin_outcome_amounts(OutcomeType.RELEASE_PARTIAL, HELD, None, 5000)

    def test_partial_refund_uses_supplied_amounts(self) -> None:
        assert admin_outcome_amounts(OutcomeType.REFUND_PARTIAL, HELD, 10000, 5000) == (
            10000,
            5000,
        )
