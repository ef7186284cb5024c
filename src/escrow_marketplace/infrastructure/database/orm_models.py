"""SQLAlchemy 2.0 ORM models for the escrow marketplace.

Tables:
    projects, quotes, agreements, milestones, change_orders   -- the job and its terms
    ledger_events, audit_actions                              -- append-only history
    cases, joint_release_proposals                            -- disputes
    estimate_deposits                                         -- pre-engagement holds
    reliability_scores, reliability_score_history             -- contractor scoring
    payment_accounts, subscriptions, billing_invoices         -- billing
    high_ticket_cases                                         -- concierge intake
    platform_config                                           -- runtime policy documents

Design decisions:
    - UUID primary keys; actor ids are opaque strings from the identity provider.
    - Integer minor-currency units (cents) for every amount.
    - Rows written by several requests (projects, cases, proposals, deposits)
      carry a ``version`` column used for optimistic concurrency.
    - ledger_events, audit_actions and reliability_score_history are
      append-only: ORM listeners reject UPDATE and DELETE.
"""

from __future__ import annotations

import uuid
from datetime import UTC, datetime

from sqlalchemy import (
    JSON,
    Boolean,
    CheckConstraint,
    DateTime,
    ForeignKey,
    Index,
    Integer,
    String,
    Text,
    UniqueConstraint,
    Uuid,
    event,
)
from sqlalchemy.dialects.postgresql import JSONB
from sqlalchemy.orm import DeclarativeBase, Mapped, mapped_column

from escrow_marketplace.domain.enums import EscrowState
from escrow_marketplace.domain.exceptions import ImmutableRecordError

# JSONB on PostgreSQL, plain JSON elsewhere (SQLite in tests and simulation).
JSONType = JSON().with_variant(JSONB(), "postgresql")

_STATE_VALUES = ", ".join(f"'{s.value}'" for s in EscrowState)


def _now() -> datetime:
    return datetime.now(UTC)


class Base(DeclarativeBase):
    """Base class for all ORM models."""

    pass


# ---------------------------------------------------------------------------
# Helper: auto-set updated_at on flush
# ---------------------------------------------------------------------------
def _set_updated_at(mapper, connection, target):  # noqa: ANN001
    """SQLAlchemy event listener that updates `updated_at` before flush."""
    if hasattr(target, "updated_at"):
        target.updated_at = _now()


def _reject_mutation(operation: str):  # noqa: ANN202
    def _listener(mapper, connection, target):  # noqa: ANN001
        raise ImmutableRecordError(target.__tablename__, operation)

    return _listener


# ---------------------------------------------------------------------------
# 1. projects
# ---------------------------------------------------------------------------
class Project(Base):
    """A posted job and the escrow that funds it."""

    __tablename__ = "projects"

    id: Mapped[uuid.UUID] = mapped_column(Uuid, primary_key=True, default=uuid.uuid4)

    # --- Parties ---
    customer_id: Mapped[str] = mapped_column(String(128), nullable=False)
    contractor_id: Mapped[str | None] = mapped_column(
        String(128),
        nullable=True,
        default=None,
        comment="Set once, when a quote is selected",
    )

    # --- Job ---
    title: Mapped[str] = mapped_column(String(200), nullable=False)
    category: Mapped[str] = mapped_column(String(32), nullable=False)
    description: Mapped[str] = mapped_column(Text, nullable=False, default="")
    municipality: Mapped[str | None] = mapped_column(String(120), nullable=True)
    budget_cents: Mapped[int | None] = mapped_column(Integer, nullable=True)

    # --- Escrow ---
    state: Mapped[str] = mapped_column(
        String(40),
        nullable=False,
        default=EscrowState.OPEN_FOR_QUOTES.value,
        comment="Current lifecycle state (guarded by the escrow transition table)",
    )
    selected_quote_id: Mapped[uuid.UUID | None] = mapped_column(Uuid, nullable=True)
    held_amount_cents: Mapped[int] = mapped_column(
        Integer,
        nullable=False,
        default=0,
        comment="Funds currently held; never increases once disbursement starts",
    )
    provider_hold_id: Mapped[str | None] = mapped_column(String(255), nullable=True)
    estimate_deposit_credit_cents: Mapped[int] = mapped_column(Integer, nullable=False, default=0)

    # --- Completion / issue ---
    completion_requested_at: Mapped[datetime | None] = mapped_column(
        DateTime(timezone=True), nullable=True
    )
    completion_note: Mapped[str | None] = mapped_column(Text, nullable=True)
    proof_urls: Mapped[list] = mapped_column(JSONType, nullable=False, default=list)
    issue_raised_at: Mapped[datetime | None] = mapped_column(DateTime(timezone=True), nullable=True)
    issue_reason: Mapped[str | None] = mapped_column(Text, nullable=True)
    auto_release_failed_at: Mapped[datetime | None] = mapped_column(
        DateTime(timezone=True),
        nullable=True,
        comment="Last failed auto-release attempt; retries sort behind untried projects",
    )

    # --- Timestamps ---
    funded_at: Mapped[datetime | None] = mapped_column(DateTime(timezone=True), nullable=True)
    closed_at: Mapped[datetime | None] = mapped_column(DateTime(timezone=True), nullable=True)
    created_at: Mapped[datetime] = mapped_column(
        DateTime(timezone=True), nullable=False, default=_now
    )
    updated_at: Mapped[datetime] = mapped_column(
        DateTime(timezone=True), nullable=False, default=_now
    )

    version: Mapped[int] = mapped_column(Integer, nullable=False)

    __mapper_args__ = {"version_id_col": version}

    __table_args__ = (
        CheckConstraint(f"state IN ({_STATE_VALUES})", name="ck_project_valid_state"),
        CheckConstraint("held_amount_cents >= 0", name="ck_project_held_non_negative"),
        Index("idx_project_state", "state"),
        Index("idx_project_customer", "customer_id"),
        Index("idx_project_contractor", "contractor_id"),
    )

    def __repr__(self) -> str:
        return f"<Project id={self.id} state={self.state} held={self.held_amount_cents}>"


# ---------------------------------------------------------------------------
# 2. quotes
# ---------------------------------------------------------------------------
class Quote(Base):
    """A contractor's bid against one project."""

    __tablename__ = "quotes"

    id: Mapped[uuid.UUID] = mapped_column(Uuid, primary_key=True, default=uuid.uuid4)
    project_id: Mapped[uuid.UUID] = mapped_column(
        Uuid, ForeignKey("projects.id", ondelete="CASCADE"), nullable=False
    )
    contractor_id: Mapped[str] = mapped_column(String(128), nullable=False)
    price_cents: Mapped[int] = mapped_column(Integer, nullable=False)
    timeline_days: Mapped[int] = mapped_column(Integer, nullable=False)
    scope_notes: Mapped[str] = mapped_column(Text, nullable=False, default="")
    status: Mapped[str] = mapped_column(String(20), nullable=False, default="SUBMITTED")
    created_at: Mapped[datetime] = mapped_column(
        DateTime(timezone=True), nullable=False, default=_now
    )
    updated_at: Mapped[datetime] = mapped_column(
        DateTime(timezone=True), nullable=False, default=_now
    )

    __table_args__ = (
        CheckConstraint("price_cents > 0", name="ck_quote_positive_price"),
        CheckConstraint(
            "status IN ('SUBMITTED', 'SELECTED', 'DECLINED')", name="ck_quote_valid_status"
        ),
        Index("idx_quote_project", "project_id"),
    )

    def __repr__(self) -> str:
        return f"<Quote id={self.id} project={self.project_id} status={self.status}>"


# ---------------------------------------------------------------------------
# 3. agreements, milestones, change_orders
# ---------------------------------------------------------------------------
class Agreement(Base):
    """Snapshot of contract terms, keyed by project, binding once both parties accept."""

    __tablename__ = "agreements"

    project_id: Mapped[uuid.UUID] = mapped_column(
        Uuid, ForeignKey("projects.id", ondelete="CASCADE"), primary_key=True
    )
    quote_id: Mapped[uuid.UUID] = mapped_column(Uuid, nullable=False)
    customer_id: Mapped[str] = mapped_column(String(128), nullable=False)
    contractor_id: Mapped[str] = mapped_column(String(128), nullable=False)
    scope_summary: Mapped[str] = mapped_column(Text, nullable=False)
    price_cents: Mapped[int] = mapped_column(Integer, nullable=False)
    timeline_days: Mapped[int] = mapped_column(Integer, nullable=False)
    policy_summary: Mapped[str] = mapped_column(Text, nullable=False, default="")
    fee_disclosure: Mapped[str] = mapped_column(Text, nullable=False, default="")
    terms_version: Mapped[int] = mapped_column(
        Integer,
        nullable=False,
        default=1,
        comment="Bumped by every accepted change order",
    )
    customer_accepted_at: Mapped[datetime | None] = mapped_column(
        DateTime(timezone=True), nullable=True
    )
    contractor_accepted_at: Mapped[datetime | None] = mapped_column(
        DateTime(timezone=True), nullable=True
    )
    created_at: Mapped[datetime] = mapped_column(
        DateTime(timezone=True), nullable=False, default=_now
    )
    updated_at: Mapped[datetime] = mapped_column(
        DateTime(timezone=True), nullable=False, default=_now
    )

    @property
    def fully_accepted(self) -> bool:
        return self.customer_accepted_at is not None and self.contractor_accepted_at is not None


class Milestone(Base):
    __tablename__ = "milestones"

    id: Mapped[uuid.UUID] = mapped_column(Uuid, primary_key=True, default=uuid.uuid4)
    project_id: Mapped[uuid.UUID] = mapped_column(
        Uuid, ForeignKey("projects.id", ondelete="CASCADE"), nullable=False
    )
    title: Mapped[str] = mapped_column(String(200), nullable=False)
    amount_cents: Mapped[int] = mapped_column(Integer, nullable=False)
    sort_order: Mapped[int] = mapped_column(Integer, nullable=False, default=0)
    status: Mapped[str] = mapped_column(String(20), nullable=False, default="PENDING")
    released_at: Mapped[datetime | None] = mapped_column(DateTime(timezone=True), nullable=True)
    created_at: Mapped[datetime] = mapped_column(
        DateTime(timezone=True), nullable=False, default=_now
    )

    __table_args__ = (
        CheckConstraint("amount_cents > 0", name="ck_milestone_positive_amount"),
        Index("idx_milestone_project", "project_id"),
    )


class ChangeOrder(Base):
    __tablename__ = "change_orders"

    id: Mapped[uuid.UUID] = mapped_column(Uuid, primary_key=True, default=uuid.uuid4)
    project_id: Mapped[uuid.UUID] = mapped_column(
        Uuid, ForeignKey("projects.id", ondelete="CASCADE"), nullable=False
    )
    proposed_by: Mapped[str] = mapped_column(String(128), nullable=False)
    description: Mapped[str] = mapped_column(Text, nullable=False)
    amount_delta_cents: Mapped[int] = mapped_column(Integer, nullable=False, default=0)
    timeline_delta_days: Mapped[int] = mapped_column(Integer, nullable=False, default=0)
    status: Mapped[str] = mapped_column(String(20), nullable=False, default="PENDING")
    responded_by: Mapped[str | None] = mapped_column(String(128), nullable=True)
    responded_at: Mapped[datetime | None] = mapped_column(DateTime(timezone=True), nullable=True)
    created_at: Mapped[datetime] = mapped_column(
        DateTime(timezone=True), nullable=False, default=_now
    )

    __table_args__ = (Index("idx_change_order_project", "project_id"),)


# ---------------------------------------------------------------------------
# 4. ledger_events (Append-Only)
# ---------------------------------------------------------------------------
class LedgerEvent(Base):
    """Immutable record of one money-relevant or status-relevant occurrence.

    This table is APPEND-ONLY. Rows are ordered per stream by ``sequence``;
    the stream id is the project id, or ``subscription:<id>`` for billing.
    """

    __tablename__ = "ledger_events"

    id: Mapped[uuid.UUID] = mapped_column(Uuid, primary_key=True, default=uuid.uuid4)
    stream_id: Mapped[str] = mapped_column(String(80), nullable=False)
    project_id: Mapped[uuid.UUID | None] = mapped_column(Uuid, nullable=True)
    sequence: Mapped[int] = mapped_column(Integer, nullable=False)
    event_type: Mapped[str] = mapped_column(String(48), nullable=False)
    amount_cents: Mapped[int] = mapped_column(Integer, nullable=False, default=0)
    fee_cents: Mapped[int] = mapped_column(Integer, nullable=False, default=0)
    currency: Mapped[str] = mapped_column(String(3), nullable=False, default="usd")
    actor_id: Mapped[str] = mapped_column(String(128), nullable=False)
    actor_role: Mapped[str] = mapped_column(String(20), nullable=False)
    metadata_json: Mapped[dict | None] = mapped_column(
        "metadata",
        JSONType,
        nullable=True,
        default=None,
        comment="Free-form context: provider refs, split, classification, reason",
    )
    created_at: Mapped[datetime] = mapped_column(
        DateTime(timezone=True), nullable=False, default=_now
    )

    __table_args__ = (
        UniqueConstraint("stream_id", "sequence", name="uq_ledger_stream_sequence"),
        CheckConstraint("amount_cents >= 0", name="ck_ledger_amount_non_negative"),
        Index("idx_ledger_project", "project_id"),
        Index("idx_ledger_type", "event_type"),
    )

    def __repr__(self) -> str:
        return (
            f"<LedgerEvent stream={self.stream_id} seq={self.sequence} "
            f"type={self.event_type} amount={self.amount_cents}>"
        )


# ---------------------------------------------------------------------------
# 5. audit_actions (Append-Only)
# ---------------------------------------------------------------------------
class AuditAction(Base):
    """Immutable record of an admin-initiated or policy-sensitive action."""

    __tablename__ = "audit_actions"

    id: Mapped[uuid.UUID] = mapped_column(Uuid, primary_key=True, default=uuid.uuid4)
    actor_id: Mapped[str] = mapped_column(String(128), nullable=False)
    actor_role: Mapped[str] = mapped_column(String(20), nullable=False)
    action: Mapped[str] = mapped_column(String(64), nullable=False)
    target_type: Mapped[str] = mapped_column(String(40), nullable=False)
    target_id: Mapped[str] = mapped_column(String(80), nullable=False)
    details: Mapped[dict] = mapped_column(JSONType, nullable=False, default=dict)
    created_at: Mapped[datetime] = mapped_column(
        DateTime(timezone=True), nullable=False, default=_now
    )

    __table_args__ = (
        Index("idx_audit_target", "target_type", "target_id"),
        Index("idx_audit_action", "action"),
    )


# ---------------------------------------------------------------------------
# 6. cases, joint_release_proposals
# ---------------------------------------------------------------------------
class Case(Base):
    """Dispute container opened when a customer raises an issue hold."""

    __tablename__ = "cases"

    id: Mapped[uuid.UUID] = mapped_column(Uuid, primary_key=True, default=uuid.uuid4)
    project_id: Mapped[uuid.UUID] = mapped_column(
        Uuid, ForeignKey("projects.id", ondelete="CASCADE"), nullable=False, unique=True
    )
    case_type: Mapped[str] = mapped_column(String(20), nullable=False, default="ISSUE_HOLD")
    status: Mapped[str] = mapped_column(String(40), nullable=False)
    opened_by: Mapped[str] = mapped_column(String(128), nullable=False)
    reason: Mapped[str] = mapped_column(Text, nullable=False, default="")

    resolution_document_url: Mapped[str | None] = mapped_column(Text, nullable=True)
    resolution_summary: Mapped[str | None] = mapped_column(Text, nullable=True)
    resolution_type: Mapped[str | None] = mapped_column(String(32), nullable=True)
    resolution_submitted_by: Mapped[str | None] = mapped_column(String(128), nullable=True)
    resolution_submitted_at: Mapped[datetime | None] = mapped_column(
        DateTime(timezone=True), nullable=True
    )

    admin_attention_at: Mapped[datetime | None] = mapped_column(
        DateTime(timezone=True), nullable=True
    )
    outcome: Mapped[dict | None] = mapped_column(JSONType, nullable=True)
    closed_at: Mapped[datetime | None] = mapped_column(DateTime(timezone=True), nullable=True)
    created_at: Mapped[datetime] = mapped_column(
        DateTime(timezone=True), nullable=False, default=_now
    )
    updated_at: Mapped[datetime] = mapped_column(
        DateTime(timezone=True), nullable=False, default=_now
    )

    version: Mapped[int] = mapped_column(Integer, nullable=False)

    __mapper_args__ = {"version_id_col": version}

    __table_args__ = (Index("idx_case_status", "status"),)

    def __repr__(self) -> str:
        return f"<Case id={self.id} project={self.project_id} status={self.status}>"


class JointReleaseProposal(Base):
    """A release/refund split awaiting both parties' signatures."""

    __tablename__ = "joint_release_proposals"

    id: Mapped[uuid.UUID] = mapped_column(Uuid, primary_key=True, default=uuid.uuid4)
    case_id: Mapped[uuid.UUID] = mapped_column(
        Uuid, ForeignKey("cases.id", ondelete="CASCADE"), nullable=False
    )
    project_id: Mapped[uuid.UUID] = mapped_column(Uuid, nullable=False)
    proposed_by: Mapped[str] = mapped_column(String(128), nullable=False)
    release_to_contractor_cents: Mapped[int] = mapped_column(Integer, nullable=False)
    refund_to_customer_cents: Mapped[int] = mapped_column(Integer, nullable=False)
    status: Mapped[str] = mapped_column(String(24), nullable=False, default="PENDING_SIGNATURES")
    customer_signed_at: Mapped[datetime | None] = mapped_column(
        DateTime(timezone=True), nullable=True
    )
    contractor_signed_at: Mapped[datetime | None] = mapped_column(
        DateTime(timezone=True), nullable=True
    )
    executed_at: Mapped[datetime | None] = mapped_column(DateTime(timezone=True), nullable=True)
    created_at: Mapped[datetime] = mapped_column(
        DateTime(timezone=True), nullable=False, default=_now
    )

    version: Mapped[int] = mapped_column(Integer, nullable=False)

    __mapper_args__ = {"version_id_col": version}

    __table_args__ = (
        CheckConstraint(
            "release_to_contractor_cents >= 0 AND refund_to_customer_cents >= 0",
            name="ck_proposal_non_negative_split",
        ),
        Index("idx_proposal_case", "case_id"),
    )

    @property
    def fully_signed(self) -> bool:
        return self.customer_signed_at is not None and self.contractor_signed_at is not None


# ---------------------------------------------------------------------------
# 7. estimate_deposits
# ---------------------------------------------------------------------------
class EstimateDeposit(Base):
    """Pre-engagement hold tied to an estimate appointment."""

    __tablename__ = "estimate_deposits"

    id: Mapped[uuid.UUID] = mapped_column(Uuid, primary_key=True, default=uuid.uuid4)
    project_id: Mapped[uuid.UUID] = mapped_column(
        Uuid, ForeignKey("projects.id", ondelete="CASCADE"), nullable=False
    )
    customer_id: Mapped[str] = mapped_column(String(128), nullable=False)
    contractor_id: Mapped[str] = mapped_column(String(128), nullable=False)
    category: Mapped[str] = mapped_column(String(32), nullable=False)
    amount_cents: Mapped[int] = mapped_column(Integer, nullable=False)
    status: Mapped[str] = mapped_column(String(24), nullable=False, default="CREATED")
    provider_hold_id: Mapped[str | None] = mapped_column(String(255), nullable=True)
    appointment_at: Mapped[datetime | None] = mapped_column(DateTime(timezone=True), nullable=True)
    attendance_outcome: Mapped[str | None] = mapped_column(String(24), nullable=True)
    captured_at: Mapped[datetime | None] = mapped_column(DateTime(timezone=True), nullable=True)
    refunded_at: Mapped[datetime | None] = mapped_column(DateTime(timezone=True), nullable=True)
    credited_at: Mapped[datetime | None] = mapped_column(DateTime(timezone=True), nullable=True)
    created_at: Mapped[datetime] = mapped_column(
        DateTime(timezone=True), nullable=False, default=_now
    )
    updated_at: Mapped[datetime] = mapped_column(
        DateTime(timezone=True), nullable=False, default=_now
    )

    version: Mapped[int] = mapped_column(Integer, nullable=False)

    __mapper_args__ = {"version_id_col": version}

    __table_args__ = (
        CheckConstraint("amount_cents > 0", name="ck_deposit_positive_amount"),
        Index("idx_deposit_project", "project_id"),
    )


# ---------------------------------------------------------------------------
# 8. reliability_scores, reliability_score_history
# ---------------------------------------------------------------------------
class ReliabilityScoreRecord(Base):
    """Current reliability counters, metrics and eligibility for one contractor."""

    __tablename__ = "reliability_scores"

    contractor_id: Mapped[str] = mapped_column(String(128), primary_key=True)
    counters: Mapped[dict] = mapped_column(JSONType, nullable=False)
    metrics: Mapped[dict] = mapped_column(JSONType, nullable=False)
    score: Mapped[int] = mapped_column(Integer, nullable=False, default=50)
    auto_release_eligible: Mapped[bool] = mapped_column(Boolean, nullable=False, default=False)
    large_jobs_eligible: Mapped[bool] = mapped_column(Boolean, nullable=False, default=False)
    high_ticket_eligible: Mapped[bool] = mapped_column(Boolean, nullable=False, default=False)
    updated_by: Mapped[str] = mapped_column(String(128), nullable=False)
    created_at: Mapped[datetime] = mapped_column(
        DateTime(timezone=True), nullable=False, default=_now
    )
    updated_at: Mapped[datetime] = mapped_column(
        DateTime(timezone=True), nullable=False, default=_now
    )

    __table_args__ = (
        CheckConstraint("score >= 0 AND score <= 100", name="ck_reliability_score_range"),
    )


class ReliabilityScoreHistory(Base):
    """Append-only snapshot written on every reliability update."""

    __tablename__ = "reliability_score_history"

    id: Mapped[uuid.UUID] = mapped_column(Uuid, primary_key=True, default=uuid.uuid4)
    contractor_id: Mapped[str] = mapped_column(String(128), nullable=False)
    score: Mapped[int] = mapped_column(Integer, nullable=False)
    counters: Mapped[dict] = mapped_column(JSONType, nullable=False)
    metrics: Mapped[dict] = mapped_column(JSONType, nullable=False)
    delta: Mapped[dict] = mapped_column(JSONType, nullable=False, default=dict)
    updated_by: Mapped[str] = mapped_column(String(128), nullable=False)
    created_at: Mapped[datetime] = mapped_column(
        DateTime(timezone=True), nullable=False, default=_now
    )

    __table_args__ = (Index("idx_reliability_history_contractor", "contractor_id"),)


# ---------------------------------------------------------------------------
# 9. payment_accounts, subscriptions, billing_invoices
# ---------------------------------------------------------------------------
class PaymentAccount(Base):
    """A user's payout account at the payment provider."""

    __tablename__ = "payment_accounts"

    id: Mapped[uuid.UUID] = mapped_column(Uuid, primary_key=True, default=uuid.uuid4)
    user_id: Mapped[str] = mapped_column(String(128), nullable=False, unique=True)
    provider: Mapped[str] = mapped_column(String(32), nullable=False)
    account_ref: Mapped[str] = mapped_column(String(255), nullable=False)
    onboarding_complete: Mapped[bool] = mapped_column(Boolean, nullable=False, default=False)
    created_at: Mapped[datetime] = mapped_column(
        DateTime(timezone=True), nullable=False, default=_now
    )
    updated_at: Mapped[datetime] = mapped_column(
        DateTime(timezone=True), nullable=False, default=_now
    )


class Subscription(Base):
    __tablename__ = "subscriptions"

    id: Mapped[uuid.UUID] = mapped_column(Uuid, primary_key=True, default=uuid.uuid4)
    account_id: Mapped[str] = mapped_column(String(128), nullable=False)
    audience: Mapped[str] = mapped_column(String(20), nullable=False)
    plan_id: Mapped[str] = mapped_column(String(64), nullable=False)
    provider: Mapped[str] = mapped_column(String(32), nullable=False)
    subscription_ref: Mapped[str] = mapped_column(String(255), nullable=False)
    status: Mapped[str] = mapped_column(String(20), nullable=False)
    quantity: Mapped[int] = mapped_column(Integer, nullable=False, default=1)
    cancel_at_period_end: Mapped[bool] = mapped_column(Boolean, nullable=False, default=False)
    current_period_start: Mapped[datetime] = mapped_column(DateTime(timezone=True), nullable=False)
    current_period_end: Mapped[datetime] = mapped_column(DateTime(timezone=True), nullable=False)
    created_at: Mapped[datetime] = mapped_column(
        DateTime(timezone=True), nullable=False, default=_now
    )
    updated_at: Mapped[datetime] = mapped_column(
        DateTime(timezone=True), nullable=False, default=_now
    )

    __table_args__ = (Index("idx_subscription_account", "account_id"),)


class BillingInvoice(Base):
    __tablename__ = "billing_invoices"

    id: Mapped[uuid.UUID] = mapped_column(Uuid, primary_key=True, default=uuid.uuid4)
    subscription_id: Mapped[uuid.UUID] = mapped_column(
        Uuid, ForeignKey("subscriptions.id", ondelete="CASCADE"), nullable=False
    )
    account_id: Mapped[str] = mapped_column(String(128), nullable=False)
    invoice_ref: Mapped[str] = mapped_column(String(255), nullable=False)
    amount_cents: Mapped[int] = mapped_column(Integer, nullable=False)
    status: Mapped[str] = mapped_column(String(20), nullable=False)
    hosted_url: Mapped[str | None] = mapped_column(Text, nullable=True)
    created_at: Mapped[datetime] = mapped_column(
        DateTime(timezone=True), nullable=False, default=_now
    )

    __table_args__ = (Index("idx_invoice_account", "account_id"),)


# ---------------------------------------------------------------------------
# 10. high_ticket_cases
# ---------------------------------------------------------------------------
class HighTicketCase(Base):
    __tablename__ = "high_ticket_cases"

    id: Mapped[uuid.UUID] = mapped_column(Uuid, primary_key=True, default=uuid.uuid4)
    project_id: Mapped[uuid.UUID] = mapped_column(
        Uuid, ForeignKey("projects.id", ondelete="CASCADE"), nullable=False, unique=True
    )
    customer_id: Mapped[str] = mapped_column(String(128), nullable=False)
    amount_cents: Mapped[int] = mapped_column(Integer, nullable=False)
    fee_mode: Mapped[str] = mapped_column(String(20), nullable=False)
    intake_fee_cents: Mapped[int] = mapped_column(Integer, nullable=False, default=0)
    completion_fee_bps: Mapped[int] = mapped_column(Integer, nullable=False, default=0)
    status: Mapped[str] = mapped_column(String(20), nullable=False, default="INTAKE")
    manager_id: Mapped[str | None] = mapped_column(String(128), nullable=True)
    created_at: Mapped[datetime] = mapped_column(
        DateTime(timezone=True), nullable=False, default=_now
    )
    updated_at: Mapped[datetime] = mapped_column(
        DateTime(timezone=True), nullable=False, default=_now
    )


# ---------------------------------------------------------------------------
# 11. platform_config
# ---------------------------------------------------------------------------
class PlatformConfigDocument(Base):
    """One named policy document (fees, hold_policy, feature_flags, ...)."""

    __tablename__ = "platform_config"

    name: Mapped[str] = mapped_column(String(64), primary_key=True)
    document: Mapped[dict] = mapped_column(JSONType, nullable=False)
    updated_by: Mapped[str] = mapped_column(String(128), nullable=False)
    updated_at: Mapped[datetime] = mapped_column(
        DateTime(timezone=True), nullable=False, default=_now
    )


# ---------------------------------------------------------------------------
# Register listeners
# ---------------------------------------------------------------------------
for _model in (
    Project,
    Quote,
    Agreement,
    Case,
    EstimateDeposit,
    ReliabilityScoreRecord,
    PaymentAccount,
    Subscription,
    HighTicketCase,
    PlatformConfigDocument,
):
    event.listen(_model, "before_update", _set_updated_at)

for _model in (LedgerEvent, AuditAction, ReliabilityScoreHistory):
    event.listen(_model, "before_update", _reject_mutation("UPDATE"))
    event.listen(_model, "before_delete", _reject_mutation("DELETE"))
