"""Hold and deadline policy.

Deadlines are plain UTC calendar-day offsets (no business-day logic).

The two predicates deliberately compare differently:
    is_approval_deadline_passed  -> now >  deadline   (strictly after)
    is_admin_attention_required  -> now >= attention  (at or after)
"""

from __future__ import annotations

from datetime import UTC, datetime, timedelta

from escrow_marketplace.domain.exceptions import InvalidArgumentError


def parse_timestamp(value: datetime | str) -> datetime:
    """Coerce an ISO-8601 string or datetime into an aware UTC datetime.

    Naive datetimes are treated as UTC (SQLite hands them back without tzinfo).
    """
    if isinstance(value, str):
        try:
            value = datetime.fromisoformat(value)
        except ValueError as err:
            raise InvalidArgumentError(f"Invalid timestamp: {value!r}") from err
    if value.tzinfo is None:
        return value.replace(tzinfo=UTC)
    return value.astimezone(UTC)


def format_timestamp(value: datetime) -> str:
    """Render a datetime as ``YYYY-MM-DDTHH:MM:SS[.mmm]Z``."""
    value = parse_timestamp(value)
    timespec = "milliseconds" if value.microsecond else "seconds"
    return value.replace(tzinfo=None).isoformat(timespec=timespec) + "Z"


def _require_positive(days: int, name: str) -> None:
    if days <= 0:
        raise InvalidArgumentError(f"{name} must be positive")


def approval_deadline_at(
    completion_requested_at: datetime | str, approval_window_days: int
) -> datetime:
    _require_positive(approval_window_days, "approval_window_days")
    return parse_timestamp(completion_requested_at) + timedelta(days=approval_window_days)


def compute_approval_deadline(
    completion_requested_at: datetime | str, approval_window_days: int
) -> str:
    """Return the ISO timestamp after which an unapproved completion auto-releases."""
    return format_timestamp(approval_deadline_at(completion_requested_at, approval_window_days))


def is_approval_deadline_passed(
    now: datetime | str,
    completion_requested_at: datetime | str,
    approval_window_days: int,
) -> bool:
    deadline = approval_deadline_at(completion_requested_at, approval_window_days)
    return parse_timestamp(now) > deadline


def admin_attention_at(issue_raised_at: datetime | str, admin_attention_days: int) -> datetime:
    _require_positive(admin_attention_days, "admin_attention_days")
    return parse_timestamp(issue_raised_at) + timedelta(days=admin_attention_days)


def compute_admin_attention_date(issue_raised_at: datetime | str, admin_attention_days: int) -> str:
    """Return the ISO timestamp at which an open dispute needs mandatory admin review."""
    return format_timestamp(admin_attention_at(issue_raised_at, admin_attention_days))


def is_admin_attention_required(
    now: datetime | str,
    issue_raised_at: datetime | str,
    admin_attention_days: int,
) -> bool:
    attention = admin_attention_at(issue_raised_at, admin_attention_days)
    return parse_timestamp(now) >= attention
