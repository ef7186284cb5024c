"""Domain enumerations for the escrow marketplace.

These enums define the canonical states and types used throughout the system.
They are framework-agnostic (no SQLAlchemy, no FastAPI imports).
"""

import enum


class EscrowState(enum.StrEnum):
    """Lifecycle states of a project's escrow.

    State transitions are enforced by the table in domain/state_machine.py.
    """

    DRAFT = "DRAFT"
    OPEN_FOR_QUOTES = "OPEN_FOR_QUOTES"
    CONTRACTOR_SELECTED = "CONTRACTOR_SELECTED"
    AGREEMENT_ACCEPTED = "AGREEMENT_ACCEPTED"
    FUNDED_HELD = "FUNDED_HELD"
    IN_PROGRESS = "IN_PROGRESS"
    COMPLETION_REQUESTED = "COMPLETION_REQUESTED"
    APPROVED_FOR_RELEASE = "APPROVED_FOR_RELEASE"
    RELEASED_PAID = "RELEASED_PAID"
    ISSUE_RAISED_HOLD = "ISSUE_RAISED_HOLD"
    RESOLUTION_PENDING_EXTERNAL = "RESOLUTION_PENDING_EXTERNAL"
    RESOLUTION_SUBMITTED = "RESOLUTION_SUBMITTED"
    EXECUTED_RELEASE_FULL = "EXECUTED_RELEASE_FULL"
    EXECUTED_RELEASE_PARTIAL = "EXECUTED_RELEASE_PARTIAL"
    EXECUTED_REFUND_PARTIAL = "EXECUTED_REFUND_PARTIAL"
    EXECUTED_REFUND_FULL = "EXECUTED_REFUND_FULL"
    CLOSED = "CLOSED"
    CANCELLED = "CANCELLED"


# States in which a dispute case is open and the hold is frozen.
ISSUE_STATES: frozenset[EscrowState] = frozenset(
    {
        EscrowState.ISSUE_RAISED_HOLD,
        EscrowState.RESOLUTION_PENDING_EXTERNAL,
        EscrowState.RESOLUTION_SUBMITTED,
    }
)

EXECUTED_STATES: frozenset[EscrowState] = frozenset(
    {
        EscrowState.EXECUTED_RELEASE_FULL,
        EscrowState.EXECUTED_RELEASE_PARTIAL,
        EscrowState.EXECUTED_REFUND_PARTIAL,
        EscrowState.EXECUTED_REFUND_FULL,
    }
)


class Role(enum.StrEnum):
    """Roles an authenticated actor can hold."""

    CUSTOMER = "customer"
    CONTRACTOR = "contractor"
    ADMIN = "admin"


class ProjectCategory(enum.StrEnum):
    PLUMBING = "plumbing"
    ELECTRICAL = "electrical"
    PAINTING = "painting"
    ROOFING = "roofing"
    CARPENTRY = "carpentry"
    HVAC = "hvac"
    LANDSCAPING = "landscaping"
    CLEANING = "cleaning"
    GENERAL = "general"


class QuoteStatus(enum.StrEnum):
    SUBMITTED = "SUBMITTED"
    SELECTED = "SELECTED"
    DECLINED = "DECLINED"


class MilestoneStatus(enum.StrEnum):
    PENDING = "PENDING"
    RELEASED = "RELEASED"


class ChangeOrderStatus(enum.StrEnum):
    PENDING = "PENDING"
    ACCEPTED = "ACCEPTED"
    REJECTED = "REJECTED"


class CaseType(enum.StrEnum):
    ISSUE_HOLD = "ISSUE_HOLD"


class CaseStatus(enum.StrEnum):
    """Status of a dispute case opened by an issue hold."""

    OPEN = "OPEN"
    WAITING_JOINT_RELEASE = "WAITING_JOINT_RELEASE"
    WAITING_EXTERNAL_RESOLUTION = "WAITING_EXTERNAL_RESOLUTION"
    RESOLUTION_SUBMITTED = "RESOLUTION_SUBMITTED"
    ADMIN_ATTENTION_REQUIRED = "ADMIN_ATTENTION_REQUIRED"
    CLOSED = "CLOSED"


class ProposalStatus(enum.StrEnum):
    PENDING_SIGNATURES = "PENDING_SIGNATURES"
    FULLY_SIGNED = "FULLY_SIGNED"
    EXECUTED = "EXECUTED"
    EXPIRED = "EXPIRED"


class ResolutionType(enum.StrEnum):
    """Kinds of out-of-band binding decisions accepted as resolution documents."""

    COURT_ORDER = "court_order"
    MEDIATOR_DECISION = "mediator_decision"
    SIGNED_SETTLEMENT = "signed_settlement"


class OutcomeType(enum.StrEnum):
    """Outcome kinds an admin can execute on a disputed project."""

    RELEASE_FULL = "release_full"
    RELEASE_PARTIAL = "release_partial"
    REFUND_PARTIAL = "refund_partial"
    REFUND_FULL = "refund_full"


class OutcomeFlow(enum.StrEnum):
    """Which caller path drove a fund disposition through the outcome executor."""

    APPROVAL = "approval"
    MILESTONE = "milestone"
    JOINT_RELEASE = "joint_release"
    ADMIN = "admin"
    AUTO_RELEASE = "auto_release"


class DepositStatus(enum.StrEnum):
    CREATED = "CREATED"
    CAPTURED = "CAPTURED"
    CONTRACTOR_ATTENDED = "CONTRACTOR_ATTENDED"
    CUSTOMER_ATTENDED = "CUSTOMER_ATTENDED"
    CONTRACTOR_NO_SHOW = "CONTRACTOR_NO_SHOW"
    CUSTOMER_NO_SHOW = "CUSTOMER_NO_SHOW"
    REFUNDED = "REFUNDED"
    CREDITED_TO_JOB = "CREDITED_TO_JOB"


class AttendanceOutcome(enum.StrEnum):
    CUSTOMER_PRESENT = "customer_present"
    CONTRACTOR_PRESENT = "contractor_present"
    CUSTOMER_NO_SHOW = "customer_no_show"
    CONTRACTOR_NO_SHOW = "contractor_no_show"


class SubscriptionAudience(enum.StrEnum):
    CUSTOMER = "customer"
    CONTRACTOR = "contractor"


class SubscriptionStatus(enum.StrEnum):
    ACTIVE = "active"
    PAST_DUE = "past_due"
    CANCELED = "canceled"
    INCOMPLETE = "incomplete"


class HighTicketFeeMode(enum.StrEnum):
    INTAKE_SUCCESS = "intake_success"
    REFERRAL = "referral"


class HighTicketStatus(enum.StrEnum):
    INTAKE = "INTAKE"
    MANAGER_ASSIGNED = "MANAGER_ASSIGNED"
    CLOSED = "CLOSED"


class LedgerEventType(enum.StrEnum):
    """Types of rows recorded in the append-only ledger_events table.

    Every money movement and every material status change writes at least
    one of these. Balances are derived by folding them in sequence order.
    """

    # Holds
    HOLD_CREATED = "HOLD_CREATED"

    # Estimate deposits
    ESTIMATE_DEPOSIT_CREATED = "ESTIMATE_DEPOSIT_CREATED"
    ESTIMATE_DEPOSIT_CAPTURED = "ESTIMATE_DEPOSIT_CAPTURED"
    ESTIMATE_DEPOSIT_REFUNDED = "ESTIMATE_DEPOSIT_REFUNDED"
    ESTIMATE_DEPOSIT_CREDITED = "ESTIMATE_DEPOSIT_CREDITED"

    # Disbursements
    RELEASE_FULL = "RELEASE_FULL"
    RELEASE_PARTIAL = "RELEASE_PARTIAL"
    REFUND_FULL = "REFUND_FULL"
    REFUND_PARTIAL = "REFUND_PARTIAL"
    PLATFORM_FEE_CHARGED = "PLATFORM_FEE_CHARGED"
    OUTCOME_EXECUTED = "OUTCOME_EXECUTED"
    AUTO_RELEASE_EXECUTED = "AUTO_RELEASE_EXECUTED"

    # Agreement
    MILESTONE_DEFINED = "MILESTONE_DEFINED"

    # Disputes
    JOINT_RELEASE_PROPOSED = "JOINT_RELEASE_PROPOSED"
    JOINT_RELEASE_SIGNED = "JOINT_RELEASE_SIGNED"
    EXTERNAL_RESOLUTION_SUBMITTED = "EXTERNAL_RESOLUTION_SUBMITTED"

    # Reliability
    RELIABILITY_UPDATED = "RELIABILITY_UPDATED"

    # Billing / concierge
    SUBSCRIPTION_INVOICE_POSTED = "SUBSCRIPTION_INVOICE_POSTED"
    CONCIERGE_INTAKE_FEE_CHARGED = "CONCIERGE_INTAKE_FEE_CHARGED"
