"""Domain layer — pure business rules with zero framework dependencies."""

from escrow_marketplace.domain.enums import (
    CaseStatus,
    EscrowState,
    LedgerEventType,
    OutcomeFlow,
    Role,
)
from escrow_marketplace.domain.exceptions import (
    FailedPreconditionError,
    InvalidArgumentError,
    InvalidTransitionError,
    MarketplaceError,
    NotFoundError,
    PermissionDeniedError,
)
from escrow_marketplace.domain.state_machine import (
    EscrowStateMachine,
    assert_transition,
    can_transition,
    next_states,
)

__all__ = [
    "CaseStatus",
    "EscrowState",
    "LedgerEventType",
    "OutcomeFlow",
    "Role",
    "FailedPreconditionError",
    "InvalidArgumentError",
    "InvalidTransitionError",
    "MarketplaceError",
    "NotFoundError",
    "PermissionDeniedError",
    "EscrowStateMachine",
    "assert_transition",
    "can_transition",
    "next_states",
]
