"""Tests for domain enumerations."""

from __future__ import annotations

from escrow_marketplace.domain.enums import (
    EXECUTED_STATES,
    ISSUE_STATES,
    EscrowState,
    LedgerEventType,
    Role,
)


class TestEscrowState:
    def test_all_states_exist(self) -> None:
        assert len(EscrowState) == 18

    def test_values_match_names(self) -> None:
        for state in EscrowState:
            assert state.value == state.name

    def test_string_comparison(self) -> None:
        assert EscrowState.FUNDED_HELD == "FUNDED_HELD"

    def test_groups_are_disjoint(self) -> None:
        assert not ISSUE_STATES & EXECUTED_STATES
        assert EscrowState.ISSUE_RAISED_HOLD in ISSUE_STATES


class TestRole:
    def test_roles_are_lowercase(self) -> None:
        assert {r.value for r in Role} == {"customer", "contractor", "admin"}


class TestLedgerEventType:
    def test_money_events_present(self) -> None:
        for name in ("HOLD_CREATED", "RELEASE_FULL", "REFUND_PARTIAL", "PLATFORM_FEE_CHARGED"):
            assert LedgerEventType(name).value == name
