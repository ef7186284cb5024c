"""Mock payment provider.

Generates fake provider references instead of moving real money. This is the
default provider in development and whenever Stripe Connect is switched off.
"""

from __future__ import annotations

import uuid
from datetime import UTC, datetime, timedelta

from escrow_marketplace.logging_config import get_logger
from escrow_marketplace.providers.base import (
    ConnectedAccountResult,
    HoldResult,
    InvoiceResult,
    OnboardingLink,
    SubscriptionResult,
    TransferResult,
)

logger = get_logger(__name__)

SUBSCRIPTION_PERIOD = timedelta(days=30)


def _ref(kind: str) -> str:
    return f"mock_{kind}_{uuid.uuid4().hex[:16]}"


class MockPaymentProvider:
    """In-process provider that always succeeds."""

    provider_name = "mock"

    async def create_hold(
        self,
        project_id: str,
        amount_cents: int,
        customer_id: str,
        description: str = "",
        idempotency_key: str | None = None,
    ) -> HoldResult:
        hold_id = _ref("hold")
        logger.info(
            "payment.hold_created",
            provider=self.provider_name,
            project_id=project_id,
            hold_id=hold_id,
            amount_cents=amount_cents,
        )
        return HoldResult(provider_hold_id=hold_id, amount_cents=amount_cents)

    async def release(
        self,
        provider_hold_id: str,
        amount_cents: int,
        destination_ref: str | None = None,
        project_id: str | None = None,
        idempotency_key: str | None = None,
    ) -> TransferResult:
        ref = _ref("release")
        logger.info(
            "payment.released",
            provider=self.provider_name,
            hold_id=provider_hold_id,
            amount_cents=amount_cents,
            destination=destination_ref,
        )
        return TransferResult(provider_ref=ref, amount_cents=amount_cents)

    async def refund(
        self,
        provider_hold_id: str,
        amount_cents: int,
        project_id: str | None = None,
        idempotency_key: str | None = None,
    ) -> TransferResult:
        ref = _ref("refund")
        logger.info(
            "payment.refunded",
            provider=self.provider_name,
            hold_id=provider_hold_id,
            amount_cents=amount_cents,
        )
        return TransferResult(provider_ref=ref, amount_cents=amount_cents)

    async def create_connected_account(
        self, user_id: str, email: str | None = None, country: str = "US"
    ) -> ConnectedAccountResult:
        return ConnectedAccountResult(account_ref=_ref("acct"))

    async def get_onboarding_link(
        self, account_ref: str, return_url: str, refresh_url: str
    ) -> OnboardingLink:
        return OnboardingLink(
            url=f"{return_url}?mock_account={account_ref}",
            expires_at=datetime.now(UTC) + timedelta(minutes=30),
        )

    async def create_subscription(
        self, customer_ref: str, price_ref: str, quantity: int = 1
    ) -> SubscriptionResult:
        now = datetime.now(UTC)
        return SubscriptionResult(
            subscription_ref=_ref("sub"),
            status="active",
            current_period_start=now,
            current_period_end=now + SUBSCRIPTION_PERIOD,
        )

    async def update_subscription(
        self,
        subscription_ref: str,
        price_ref: str | None = None,
        quantity: int | None = None,
        cancel_at_period_end: bool | None = None,
    ) -> SubscriptionResult:
        now = datetime.now(UTC)
        return SubscriptionResult(
            subscription_ref=subscription_ref,
            status="active",
            current_period_start=now,
            current_period_end=now + SUBSCRIPTION_PERIOD,
            cancel_at_period_end=bool(cancel_at_period_end),
        )

    async def cancel_subscription(self, subscription_ref: str) -> SubscriptionResult:
        now = datetime.now(UTC)
        return SubscriptionResult(
            subscription_ref=subscription_ref,
            status="canceled",
            current_period_start=now,
            current_period_end=now,
        )

    async def create_invoice(
        self,
        customer_ref: str,
        amount_cents: int,
        description: str,
        subscription_ref: str | None = None,
    ) -> InvoiceResult:
        return InvoiceResult(invoice_ref=_ref("inv"), amount_cents=amount_cents, status="paid")
