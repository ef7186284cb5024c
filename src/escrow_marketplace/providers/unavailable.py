"""Provider that is registered but not yet enabled.

Every capability fails with UnimplementedError. Selecting it is an explicit
configuration choice (e.g. ``PAYMENT_PROVIDER=ath_movil``) rather than an
accidental gap, so callers get a clean, typed error instead of a crash.
"""

from __future__ import annotations

from typing import TYPE_CHECKING, NoReturn

from escrow_marketplace.domain.exceptions import UnimplementedError

if TYPE_CHECKING:
    from escrow_marketplace.providers.base import (
        ConnectedAccountResult,
        HoldResult,
        InvoiceResult,
        OnboardingLink,
        SubscriptionResult,
        TransferResult,
    )


class UnavailablePaymentProvider:
    def __init__(self, provider_name: str) -> None:
        self.provider_name = provider_name

    def _unavailable(self, capability: str) -> NoReturn:
        raise UnimplementedError(
            f"Payment provider '{self.provider_name}' is not enabled ({capability})"
        )

    async def create_hold(
        self,
        project_id: str,
        amount_cents: int,
        customer_id: str,
        description: str = "",
        idempotency_key: str | None = None,
    ) -> HoldResult:
        self._unavailable("create_hold")

    async def release(
        self,
        provider_hold_id: str,
        amount_cents: int,
        destination_ref: str | None = None,
        project_id: str | None = None,
        idempotency_key: str | None = None,
    ) -> TransferResult:
        self._unavailable("release")

    async def refund(
        self,
        provider_hold_id: str,
        amount_cents: int,
        project_id: str | None = None,
        idempotency_key: str | None = None,
    ) -> TransferResult:
        self._unavailable("refund")

    async def create_connected_account(
        self, user_id: str, email: str | None = None, country: str = "US"
    ) -> ConnectedAccountResult:
        self._unavailable("create_connected_account")

    async def get_onboarding_link(
        self, account_ref: str, return_url: str, refresh_url: str
    ) -> OnboardingLink:
        self._unavailable("get_onboarding_link")

    async def create_subscription(
        self, customer_ref: str, price_ref: str, quantity: int = 1
    ) -> SubscriptionResult:
        self._unavailable("create_subscription")

    async def update_subscription(
        self,
        subscription_ref: str,
        price_ref: str | None = None,
        quantity: int | None = None,
        cancel_at_period_end: bool | None = None,
    ) -> SubscriptionResult:
        self._unavailable("update_subscription")

    async def cancel_subscription(self, subscription_ref: str) -> SubscriptionResult:
        self._unavailable("cancel_subscription")

    async def create_invoice(
        self,
        customer_ref: str,
        amount_cents: int,
        description: str,
        subscription_ref: str | None = None,
    ) -> InvoiceResult:
        self._unavailable("create_invoice")
