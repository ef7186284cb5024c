"""Escrow State Machine Guard.

The ``TRANSITIONS`` adjacency table below is the single source of truth for
legal project state changes. Two views are derived from it:

    * ``can_transition`` / ``assert_transition`` / ``next_states`` are pure
      lookups against the table.
    * ``EscrowStateMachine`` is a python-statemachine class generated from the
      same table, with one event per target state (``to_funded_held`` etc.).
      Services fire these events so an illegal edge raises
      ``TransitionNotAllowed`` no matter which code path attempts it.

Transition table:
    DRAFT                       -> OPEN_FOR_QUOTES, CANCELLED
    OPEN_FOR_QUOTES             -> CONTRACTOR_SELECTED, CANCELLED
    CONTRACTOR_SELECTED         -> AGREEMENT_ACCEPTED, CANCELLED
    AGREEMENT_ACCEPTED          -> FUNDED_HELD, CANCELLED
    FUNDED_HELD                 -> IN_PROGRESS, COMPLETION_REQUESTED,
                                   ISSUE_RAISED_HOLD, RELEASED_PAID
    IN_PROGRESS                 -> COMPLETION_REQUESTED, ISSUE_RAISED_HOLD,
                                   RELEASED_PAID
    COMPLETION_REQUESTED        -> APPROVED_FOR_RELEASE, RELEASED_PAID,
                                   ISSUE_RAISED_HOLD, EXECUTED_RELEASE_FULL
    APPROVED_FOR_RELEASE        -> RELEASED_PAID
    ISSUE_RAISED_HOLD           -> RESOLUTION_PENDING_EXTERNAL,
                                   RESOLUTION_SUBMITTED, EXECUTED_*
    RESOLUTION_PENDING_EXTERNAL -> RESOLUTION_SUBMITTED, EXECUTED_*
    RESOLUTION_SUBMITTED        -> EXECUTED_*
    RELEASED_PAID, EXECUTED_*   -> CLOSED
    CLOSED, CANCELLED           -> (terminal)
"""

from __future__ import annotations

import functools
import operator
from typing import Any

from statemachine import State, StateMachine

from escrow_marketplace.domain.enums import EXECUTED_STATES, EscrowState
from escrow_marketplace.domain.exceptions import InvalidTransitionError

S = EscrowState

TERMINAL_STATES: frozenset[EscrowState] = frozenset({S.CLOSED, S.CANCELLED})

TRANSITIONS: dict[EscrowState, frozenset[EscrowState]] = {
    S.DRAFT: frozenset({S.OPEN_FOR_QUOTES, S.CANCELLED}),
    S.OPEN_FOR_QUOTES: frozenset({S.CONTRACTOR_SELECTED, S.CANCELLED}),
    S.CONTRACTOR_SELECTED: frozenset({S.AGREEMENT_ACCEPTED, S.CANCELLED}),
    S.AGREEMENT_ACCEPTED: frozenset({S.FUNDED_HELD, S.CANCELLED}),
    S.FUNDED_HELD: frozenset(
        {S.IN_PROGRESS, S.COMPLETION_REQUESTED, S.ISSUE_RAISED_HOLD, S.RELEASED_PAID}
    ),
    S.IN_PROGRESS: frozenset({S.COMPLETION_REQUESTED, S.ISSUE_RAISED_HOLD, S.RELEASED_PAID}),
    S.COMPLETION_REQUESTED: frozenset(
        {
            S.APPROVED_FOR_RELEASE,
            S.RELEASED_PAID,
            S.ISSUE_RAISED_HOLD,
            S.EXECUTED_RELEASE_FULL,
        }
    ),
    S.APPROVED_FOR_RELEASE: frozenset({S.RELEASED_PAID}),
    S.RELEASED_PAID: frozenset({S.CLOSED}),
    S.ISSUE_RAISED_HOLD: frozenset(
        {S.RESOLUTION_PENDING_EXTERNAL, S.RESOLUTION_SUBMITTED} | EXECUTED_STATES
    ),
    S.RESOLUTION_PENDING_EXTERNAL: frozenset({S.RESOLUTION_SUBMITTED} | EXECUTED_STATES),
    S.RESOLUTION_SUBMITTED: EXECUTED_STATES,
    S.EXECUTED_RELEASE_FULL: frozenset({S.CLOSED}),
    S.EXECUTED_RELEASE_PARTIAL: frozenset({S.CLOSED}),
    S.EXECUTED_REFUND_PARTIAL: frozenset({S.CLOSED}),
    S.EXECUTED_REFUND_FULL: frozenset({S.CLOSED}),
    S.CLOSED: frozenset(),
    S.CANCELLED: frozenset(),
}


def can_transition(current: EscrowState | str, target: EscrowState | str) -> bool:
    """Return True when ``current -> target`` is an edge in the table."""
    try:
        return EscrowState(target) in TRANSITIONS[EscrowState(current)]
    except ValueError:
        return False


def assert_transition(current: EscrowState | str, target: EscrowState | str) -> None:
    """Raise InvalidTransitionError unless ``current -> target`` is legal."""
    if not can_transition(current, target):
        raise InvalidTransitionError(str(current), str(target))


def next_states(current: EscrowState | str) -> list[EscrowState]:
    """List every legal successor of ``current`` (empty for terminal states)."""
    return sorted(TRANSITIONS[EscrowState(current)])


def event_name(target: EscrowState | str) -> str:
    """Name of the state machine event that moves a project into ``target``."""
    return f"to_{EscrowState(target).value.lower()}"


# ---------------------------------------------------------------------------
# python-statemachine guard generated from TRANSITIONS
# ---------------------------------------------------------------------------


class _EscrowMachineHelpers:
    """Behaviour shared by the generated EscrowStateMachine class.

    Usage:
        sm = EscrowStateMachine(current_status="AGREEMENT_ACCEPTED")
        sm.to_funded_held()   # transitions to FUNDED_HELD
        sm.status             # "FUNDED_HELD"
    """

    def __init__(self, current_status: str = EscrowState.DRAFT.value) -> None:
        valid_values = {s.value for s in self.states}
        if current_status not in valid_values:
            valid = ", ".join(sorted(valid_values))
            raise ValueError(f"Unknown status '{current_status}'. Valid states: {valid}")
        # start_value expects the string value, not the State object
        super().__init__(start_value=current_status)

    @property
    def status(self) -> str:
        """Return the current state value as a string (matches EscrowState)."""
        return str(self.current_state.value)

    def get_allowed_events(self) -> list[str]:
        """Return the event names that can fire from the current state."""
        return [event_name(target) for target in next_states(self.status)]


def _machine_attributes() -> dict[str, Any]:
    states = {
        s.value: State(
            s.value,
            initial=s is EscrowState.DRAFT,
            final=s in TERMINAL_STATES,
        )
        for s in EscrowState
    }
    attrs: dict[str, Any] = {"__module__": __name__, **states}
    for target in EscrowState:
        edges = [
            states[source.value].to(states[target.value])
            for source in EscrowState
            if target in TRANSITIONS[source]
        ]
        if edges:
            attrs[event_name(target)] = functools.reduce(operator.or_, edges)
    return attrs


EscrowStateMachine = type(StateMachine)(
    "EscrowStateMachine",
    (_EscrowMachineHelpers, StateMachine),
    _machine_attributes(),
)
