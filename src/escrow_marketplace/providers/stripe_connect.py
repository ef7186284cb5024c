"""Stripe Connect payment provider.

Holds are manual-capture PaymentIntents; a release captures part or all of
the intent, a refund refunds against it. Payout accounts are Express
connected accounts onboarded through account links.

The ``stripe`` SDK is an optional dependency imported lazily, the same way
the simulated path needs no SDK at all. With ``stripe_simulate`` on, every
method returns fake references so the flag can be exercised end-to-end in
development.
"""

from __future__ import annotations

import asyncio
import uuid
from datetime import UTC, datetime, timedelta
from typing import TYPE_CHECKING, Any

from tenacity import retry, retry_if_exception, stop_after_attempt, wait_exponential

from escrow_marketplace.domain.exceptions import PaymentProviderError
from escrow_marketplace.logging_config import get_logger
from escrow_marketplace.providers.base import (
    ConnectedAccountResult,
    HoldResult,
    InvoiceResult,
    OnboardingLink,
    SubscriptionResult,
    TransferResult,
)

if TYPE_CHECKING:
    from collections.abc import Callable

    from escrow_marketplace.config import Settings

logger = get_logger(__name__)

_DEFAULT_PERIOD = timedelta(days=30)


def _fake_ref(prefix: str) -> str:
    return f"{prefix}_mock_{uuid.uuid4().hex[:16]}"


def _from_epoch(value: Any, fallback: datetime) -> datetime:
    if isinstance(value, int | float):
        return datetime.fromtimestamp(value, tz=UTC)
    return fallback


def _request_options(idempotency_key: str | None) -> dict[str, Any]:
    return {"idempotency_key": idempotency_key} if idempotency_key else {}


def _is_rate_limited(exc: BaseException) -> bool:
    # A 429 means Stripe did not process the request, so it is safe to send again.
    import stripe

    return isinstance(exc, stripe.RateLimitError)


class StripeConnectProvider:
    """Payment provider backed by Stripe Connect."""

    provider_name = "stripe_connect"

    def __init__(self, settings: Settings) -> None:
        self._secret_key = settings.stripe_secret_key
        self._simulate = settings.stripe_simulate
        self._currency = settings.stripe_currency

    # ------------------------------------------------------------------
    # Plumbing
    # ------------------------------------------------------------------

    def _client(self) -> Any:
        if not self._secret_key:
            raise PaymentProviderError(
                "STRIPE_SECRET_KEY is required when Stripe Connect is enabled",
                provider=self.provider_name,
            )
        import stripe

        return stripe.StripeClient(self._secret_key)

    async def _call(self, operation: str, fn: Callable[[Any], Any]) -> Any:
        """Run one synchronous SDK call off the event loop, wrapping SDK errors."""
        client = self._client()
        try:
            return await self._run(fn, client)
        except Exception as exc:
            logger.error("payment.stripe_call_failed", operation=operation, error=str(exc))
            raise PaymentProviderError(
                f"Stripe {operation} failed: {exc}", provider=self.provider_name
            ) from exc

    @retry(
        retry=retry_if_exception(_is_rate_limited),
        stop=stop_after_attempt(3),
        wait=wait_exponential(multiplier=1, min=1, max=8),
        reraise=True,
    )
    async def _run(self, fn: Callable[[Any], Any], client: Any) -> Any:
        return await asyncio.to_thread(fn, client)

    # ------------------------------------------------------------------
    # Holds and disbursement
    # ------------------------------------------------------------------

    async def create_hold(
        self,
        project_id: str,
        amount_cents: int,
        customer_id: str,
        description: str = "",
        idempotency_key: str | None = None,
    ) -> HoldResult:
        if self._simulate:
            hold_id = _fake_ref("pi")
            logger.info("payment.hold_created", hold_id=hold_id, simulated=True)
            return HoldResult(provider_hold_id=hold_id, amount_cents=amount_cents)

        intent = await self._call(
            "create_hold",
            lambda c: c.payment_intents.create(
                params={
                    "amount": amount_cents,
                    "currency": self._currency,
                    "capture_method": "manual",
                    "description": description or f"Project {project_id}",
                    "metadata": {
                        "project_id": project_id,
                        "customer_id": customer_id,
                        "flow": "hold",
                    },
                },
                options=_request_options(idempotency_key),
            ),
        )
        logger.info("payment.hold_created", hold_id=intent.id, simulated=False)
        return HoldResult(
            provider_hold_id=intent.id, amount_cents=amount_cents, status=intent.status
        )

    async def release(
        self,
        provider_hold_id: str,
        amount_cents: int,
        destination_ref: str | None = None,
        project_id: str | None = None,
        idempotency_key: str | None = None,
    ) -> TransferResult:
        if self._simulate:
            return TransferResult(provider_ref=_fake_ref("tr"), amount_cents=amount_cents)
        if amount_cents <= 0:
            # Stripe rejects a zero capture; the fee took the whole release.
            logger.info("payment.release_skipped", hold_id=provider_hold_id, amount_cents=0)
            return TransferResult(provider_ref=provider_hold_id, amount_cents=0, status="skipped")

        intent = await self._call(
            "release",
            lambda c: c.payment_intents.capture(
                provider_hold_id,
                params={
                    "amount_to_capture": amount_cents,
                    "metadata": {
                        "flow": "release",
                        "destination_ref": destination_ref or "",
                        "project_id": project_id or "",
                    },
                },
                options=_request_options(idempotency_key),
            ),
        )
        ref = getattr(intent, "latest_charge", None) or intent.id
        return TransferResult(provider_ref=str(ref), amount_cents=amount_cents)

    async def refund(
        self,
        provider_hold_id: str,
        amount_cents: int,
        project_id: str | None = None,
        idempotency_key: str | None = None,
    ) -> TransferResult:
        if self._simulate:
            return TransferResult(provider_ref=_fake_ref("re"), amount_cents=amount_cents)

        refund = await self._call(
            "refund",
            lambda c: c.refunds.create(
                params={
                    "payment_intent": provider_hold_id,
                    "amount": amount_cents,
                    "metadata": {"flow": "refund", "project_id": project_id or ""},
                },
                options=_request_options(idempotency_key),
            ),
        )
        return TransferResult(
            provider_ref=refund.id, amount_cents=amount_cents, status=refund.status
        )

    # ------------------------------------------------------------------
    # Payout accounts
    # ------------------------------------------------------------------

    async def create_connected_account(
        self, user_id: str, email: str | None = None, country: str = "US"
    ) -> ConnectedAccountResult:
        if self._simulate:
            return ConnectedAccountResult(account_ref=_fake_ref("acct"), onboarding_complete=True)

        params: dict[str, Any] = {
            "type": "express",
            "country": country,
            "metadata": {"user_id": user_id},
        }
        if email:
            params["email"] = email
        account = await self._call(
            "create_connected_account", lambda c: c.accounts.create(params=params)
        )
        return ConnectedAccountResult(
            account_ref=account.id,
            onboarding_complete=bool(account.charges_enabled and account.payouts_enabled),
        )

    async def get_onboarding_link(
        self, account_ref: str, return_url: str, refresh_url: str
    ) -> OnboardingLink:
        if self._simulate:
            return OnboardingLink(url=f"{return_url}?simulated_account={account_ref}")

        link = await self._call(
            "get_onboarding_link",
            lambda c: c.account_links.create(
                params={
                    "account": account_ref,
                    "refresh_url": refresh_url,
                    "return_url": return_url,
                    "type": "account_onboarding",
                }
            ),
        )
        return OnboardingLink(url=link.url, expires_at=_from_epoch(link.expires_at, None))

    # ------------------------------------------------------------------
    # Subscriptions and invoices
    # ------------------------------------------------------------------

    def _simulated_subscription(
        self, subscription_ref: str, status: str = "active", cancel_at_period_end: bool = False
    ) -> SubscriptionResult:
        now = datetime.now(UTC)
        return SubscriptionResult(
            subscription_ref=subscription_ref,
            status=status,
            current_period_start=now,
            current_period_end=now + _DEFAULT_PERIOD,
            cancel_at_period_end=cancel_at_period_end,
        )

    def _to_subscription_result(self, sub: Any) -> SubscriptionResult:
        now = datetime.now(UTC)
        return SubscriptionResult(
            subscription_ref=sub.id,
            status=sub.status,
            current_period_start=_from_epoch(getattr(sub, "current_period_start", None), now),
            current_period_end=_from_epoch(
                getattr(sub, "current_period_end", None), now + _DEFAULT_PERIOD
            ),
            cancel_at_period_end=bool(getattr(sub, "cancel_at_period_end", False)),
        )

    async def create_subscription(
        self, customer_ref: str, price_ref: str, quantity: int = 1
    ) -> SubscriptionResult:
        if self._simulate:
            return self._simulated_subscription(_fake_ref("sub"))

        def _create(c: Any) -> Any:
            customer = c.customers.create(params={"metadata": {"account_ref": customer_ref}})
            return c.subscriptions.create(
                params={
                    "customer": customer.id,
                    "items": [{"price": price_ref, "quantity": quantity}],
                    "collection_method": "charge_automatically",
                }
            )

        return self._to_subscription_result(await self._call("create_subscription", _create))

    async def update_subscription(
        self,
        subscription_ref: str,
        price_ref: str | None = None,
        quantity: int | None = None,
        cancel_at_period_end: bool | None = None,
    ) -> SubscriptionResult:
        if self._simulate:
            return self._simulated_subscription(
                subscription_ref, cancel_at_period_end=bool(cancel_at_period_end)
            )

        def _update(c: Any) -> Any:
            current = c.subscriptions.retrieve(subscription_ref)
            params: dict[str, Any] = {}
            if cancel_at_period_end is not None:
                params["cancel_at_period_end"] = cancel_at_period_end
            items = current["items"]["data"]
            if items and (price_ref or quantity):
                first = items[0]
                params["items"] = [
                    {
                        "id": first["id"],
                        "price": price_ref or first["price"]["id"],
                        "quantity": quantity or first["quantity"],
                    }
                ]
            return c.subscriptions.update(subscription_ref, params=params)

        return self._to_subscription_result(await self._call("update_subscription", _update))

    async def cancel_subscription(self, subscription_ref: str) -> SubscriptionResult:
        if self._simulate:
            return self._simulated_subscription(subscription_ref, status="canceled")

        sub = await self._call(
            "cancel_subscription", lambda c: c.subscriptions.cancel(subscription_ref)
        )
        return self._to_subscription_result(sub)

    async def create_invoice(
        self,
        customer_ref: str,
        amount_cents: int,
        description: str,
        subscription_ref: str | None = None,
    ) -> InvoiceResult:
        if self._simulate:
            return InvoiceResult(
                invoice_ref=_fake_ref("in"), amount_cents=amount_cents, status="paid"
            )

        def _create(c: Any) -> Any:
            item = c.invoice_items.create(
                params={
                    "customer": customer_ref,
                    "amount": amount_cents,
                    "currency": self._currency,
                    "description": description,
                }
            )
            return c.invoices.create(
                params={
                    "customer": customer_ref,
                    "auto_advance": True,
                    "metadata": {
                        "subscription_ref": subscription_ref or "",
                        "invoice_item": item.id,
                    },
                }
            )

        invoice = await self._call("create_invoice", _create)
        return InvoiceResult(
            invoice_ref=invoice.id,
            amount_cents=amount_cents,
            status="paid" if invoice.status == "paid" else "open",
            hosted_url=getattr(invoice, "hosted_invoice_url", None),
        )
