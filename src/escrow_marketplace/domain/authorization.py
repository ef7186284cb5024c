"""Actor identity and the operation capability table.

Each externally invoked operation is described by one ``OperationPolicy``:
the roles allowed to call it, the project states it may run in, and the
feature flag that must be on. Services consult the table before doing any
work, so preconditions live here as data instead of inline conditionals.
"""

from __future__ import annotations

from dataclasses import dataclass
from typing import TYPE_CHECKING, Protocol

from escrow_marketplace.domain.enums import (
    EXECUTED_STATES,
    ISSUE_STATES,
    EscrowState,
    Role,
)
from escrow_marketplace.domain.exceptions import (
    FailedPreconditionError,
    PermissionDeniedError,
    UnauthenticatedError,
)

if TYPE_CHECKING:
    from escrow_marketplace.domain.policy_config import FeatureFlags


@dataclass(frozen=True)
class Actor:
    """The authenticated caller of an operation."""

    uid: str
    role: Role
    admin_verified: bool = False

    @property
    def is_admin(self) -> bool:
        return self.role is Role.ADMIN


class ProjectParties(Protocol):
    customer_id: str
    contractor_id: str | None


@dataclass(frozen=True)
class OperationPolicy:
    roles: frozenset[Role]
    states: frozenset[EscrowState] | None = None
    feature_flag: str | None = None


_C = Role.CUSTOMER
_K = Role.CONTRACTOR
_A = Role.ADMIN
_PARTIES = frozenset({_C, _K})
_ANYONE = frozenset({_C, _K, _A})

_PRE_FUNDING = frozenset(
    {
        EscrowState.DRAFT,
        EscrowState.OPEN_FOR_QUOTES,
        EscrowState.CONTRACTOR_SELECTED,
        EscrowState.AGREEMENT_ACCEPTED,
    }
)
_AGREED_WORK = frozenset(
    {
        EscrowState.CONTRACTOR_SELECTED,
        EscrowState.AGREEMENT_ACCEPTED,
        EscrowState.FUNDED_HELD,
        EscrowState.IN_PROGRESS,
    }
)

OPERATION_POLICIES: dict[str, OperationPolicy] = {
    # Project lifecycle
    "create_project": OperationPolicy(frozenset({_C})),
    "publish_project": OperationPolicy(frozenset({_C}), frozenset({EscrowState.DRAFT})),
    "cancel_project": OperationPolicy(frozenset({_C, _A}), _PRE_FUNDING),
    "submit_quote": OperationPolicy(frozenset({_K}), frozenset({EscrowState.OPEN_FOR_QUOTES})),
    "select_contractor": OperationPolicy(
        frozenset({_C}), frozenset({EscrowState.OPEN_FOR_QUOTES})
    ),
    "accept_agreement": OperationPolicy(
        _PARTIES,
        frozenset({EscrowState.CONTRACTOR_SELECTED, EscrowState.AGREEMENT_ACCEPTED}),
    ),
    "fund_hold": OperationPolicy(frozenset({_C}), frozenset({EscrowState.AGREEMENT_ACCEPTED})),
    "start_work": OperationPolicy(frozenset({_K}), frozenset({EscrowState.FUNDED_HELD})),
    "request_completion": OperationPolicy(
        frozenset({_K}), frozenset({EscrowState.FUNDED_HELD, EscrowState.IN_PROGRESS})
    ),
    "approve_release": OperationPolicy(
        frozenset({_C}), frozenset({EscrowState.COMPLETION_REQUESTED})
    ),
    "close_project": OperationPolicy(
        frozenset({_A}), frozenset({EscrowState.RELEASED_PAID}) | EXECUTED_STATES
    ),
    "view_project": OperationPolicy(_ANYONE),
    "list_projects": OperationPolicy(_ANYONE),
    "view_platform_config": OperationPolicy(_ANYONE),
    # Disputes
    "raise_issue_hold": OperationPolicy(
        frozenset({_C}),
        frozenset({EscrowState.COMPLETION_REQUESTED, EscrowState.IN_PROGRESS}),
    ),
    "request_external_resolution": OperationPolicy(
        _PARTIES, frozenset({EscrowState.ISSUE_RAISED_HOLD})
    ),
    "propose_joint_release": OperationPolicy(_PARTIES, ISSUE_STATES),
    "sign_joint_release": OperationPolicy(_PARTIES, ISSUE_STATES),
    "upload_resolution_document": OperationPolicy(_PARTIES, ISSUE_STATES),
    "admin_execute_outcome": OperationPolicy(frozenset({_A}), ISSUE_STATES),
    # Milestones and change orders
    "create_milestones": OperationPolicy(
        frozenset({_C}), _AGREED_WORK, "milestone_payments_enabled"
    ),
    "approve_milestone": OperationPolicy(
        frozenset({_C}),
        frozenset(
            {
                EscrowState.FUNDED_HELD,
                EscrowState.IN_PROGRESS,
                EscrowState.COMPLETION_REQUESTED,
            }
        ),
        "milestone_payments_enabled",
    ),
    "propose_change_order": OperationPolicy(_PARTIES, _AGREED_WORK, "change_orders_enabled"),
    "respond_change_order": OperationPolicy(_PARTIES, _AGREED_WORK, "change_orders_enabled"),
    # Estimate deposits
    "create_estimate_deposit": OperationPolicy(
        frozenset({_C}), None, "estimate_deposits_enabled"
    ),
    "capture_estimate_deposit": OperationPolicy(
        frozenset({_C}), None, "estimate_deposits_enabled"
    ),
    "mark_estimate_attendance": OperationPolicy(_ANYONE, None, "estimate_deposits_enabled"),
    "refund_estimate_deposit": OperationPolicy(
        frozenset({_C, _A}), None, "estimate_deposits_enabled"
    ),
    "apply_deposit_to_job": OperationPolicy(
        frozenset({_C, _A}), _PRE_FUNDING, "estimate_deposits_enabled"
    ),
    # Billing
    "create_connected_account": OperationPolicy(
        frozenset({_K, _A}), None, "stripe_connect_enabled"
    ),
    "get_onboarding_link": OperationPolicy(frozenset({_K, _A}), None, "stripe_connect_enabled"),
    "create_subscription": OperationPolicy(_PARTIES, None, "subscriptions_enabled"),
    "update_subscription": OperationPolicy(_ANYONE, None, "subscriptions_enabled"),
    "cancel_subscription": OperationPolicy(_ANYONE, None, "subscriptions_enabled"),
    "list_invoices": OperationPolicy(_ANYONE, None, "subscriptions_enabled"),
    # Concierge
    "create_high_ticket_case": OperationPolicy(
        frozenset({_C}), None, "high_ticket_concierge_enabled"
    ),
    "assign_concierge_manager": OperationPolicy(
        frozenset({_A}), None, "high_ticket_concierge_enabled"
    ),
    # Reliability and administration
    "get_reliability_score": OperationPolicy(_ANYONE),
    "adjust_reliability": OperationPolicy(frozenset({_A})),
    "set_platform_config": OperationPolicy(frozenset({_A})),
    "run_sweep": OperationPolicy(frozenset({_A})),
}


def require_role(actor: Actor | None, allowed: frozenset[Role]) -> Actor:
    """Check the actor is authenticated and holds one of ``allowed``.

    Admins must additionally be verified.
    """
    if actor is None or not actor.uid:
        raise UnauthenticatedError()
    if actor.role not in allowed:
        raise PermissionDeniedError(f"Role '{actor.role}' may not perform this operation")
    if actor.is_admin and not actor.admin_verified:
        raise PermissionDeniedError("Admin account is not verified")
    return actor


def ensure_project_party(actor: Actor, project: ProjectParties) -> None:
    """Admins pass; everyone else must be the project's customer or contractor."""
    if actor.is_admin:
        return
    if actor.uid not in (project.customer_id, project.contractor_id):
        raise PermissionDeniedError("Actor is not a party to this project")


def policy_for(operation: str) -> OperationPolicy:
    try:
        return OPERATION_POLICIES[operation]
    except KeyError:
        raise ValueError(f"Unknown operation '{operation}'") from None


def authorize(actor: Actor | None, operation: str) -> Actor:
    return require_role(actor, policy_for(operation).roles)


def check_feature(operation: str, flags: FeatureFlags) -> None:
    flag = policy_for(operation).feature_flag
    if flag is not None and not getattr(flags, flag):
        raise FailedPreconditionError(f"Feature '{flag}' is disabled", code="FEATURE_DISABLED")


def check_state(operation: str, current: EscrowState | str) -> None:
    states = policy_for(operation).states
    if states is not None and EscrowState(current) not in states:
        raise FailedPreconditionError(
            f"Operation '{operation}' is not allowed in state {current}"
        )
