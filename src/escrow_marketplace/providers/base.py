"""Payment Provider Protocol.

Defines the capability set every payment provider must implement. This is a
Protocol (structural subtyping) so concrete providers don't need to inherit
from a base class; they just need to match the shape.

Concrete implementations:
    - providers/mock.py            (in-process fake ids, default)
    - providers/stripe_connect.py  (Stripe Connect, manual-capture holds)
    - providers/unavailable.py     (provider registered but not yet enabled)
"""

from __future__ import annotations

from dataclasses import dataclass
from typing import TYPE_CHECKING, Protocol, runtime_checkable

if TYPE_CHECKING:
    from datetime import datetime


@dataclass(frozen=True)
class HoldResult:
    """Funds authorised against a project but not yet disbursed."""

    provider_hold_id: str
    amount_cents: int
    status: str = "requires_capture"


@dataclass(frozen=True)
class TransferResult:
    """Outcome of a release (to contractor) or refund (to customer)."""

    provider_ref: str
    amount_cents: int
    status: str = "succeeded"


@dataclass(frozen=True)
class ConnectedAccountResult:
    account_ref: str
    onboarding_complete: bool = False


@dataclass(frozen=True)
class OnboardingLink:
    url: str
    expires_at: datetime | None = None


@dataclass(frozen=True)
class SubscriptionResult:
    subscription_ref: str
    status: str
    current_period_start: datetime
    current_period_end: datetime
    cancel_at_period_end: bool = False


@dataclass(frozen=True)
class InvoiceResult:
    invoice_ref: str
    amount_cents: int
    status: str
    hosted_url: str | None = None


@runtime_checkable
class PaymentProvider(Protocol):
    """Capability interface over a payment processor.

    A provider may fail any method with UnimplementedError; that is a
    legitimate "not yet enabled" state, not a bug.
    """

    provider_name: str

    async def create_hold(
        self,
        project_id: str,
        amount_cents: int,
        customer_id: str,
        description: str = "",
        idempotency_key: str | None = None,
    ) -> HoldResult: ...

    async def release(
        self,
        provider_hold_id: str,
        amount_cents: int,
        destination_ref: str | None = None,
        project_id: str | None = None,
        idempotency_key: str | None = None,
    ) -> TransferResult: ...

    async def refund(
        self,
        provider_hold_id: str,
        amount_cents: int,
        project_id: str | None = None,
        idempotency_key: str | None = None,
    ) -> TransferResult: ...

    async def create_connected_account(
        self, user_id: str, email: str | None = None, country: str = "US"
    ) -> ConnectedAccountResult: ...

    async def get_onboarding_link(
        self, account_ref: str, return_url: str, refresh_url: str
    ) -> OnboardingLink: ...

    async def create_subscription(
        self, customer_ref: str, price_ref: str, quantity: int = 1
    ) -> SubscriptionResult: ...

    async def update_subscription(
        self,
        subscription_ref: str,
        price_ref: str | None = None,
        quantity: int | None = None,
        cancel_at_period_end: bool | None = None,
    ) -> SubscriptionResult: ...

    async def cancel_subscription(self, subscription_ref: str) -> SubscriptionResult: ...

    async def create_invoice(
        self,
        customer_ref: str,
        amount_cents: int,
        description: str,
        subscription_ref: str | None = None,
    ) -> InvoiceResult: ...
