"""Billing Service — payout accounts and subscription plans.

Subscription invoices are money events that belong to no project; they are
written to their own ledger stream, ``subscription:<id>``.
"""

from __future__ import annotations

from dataclasses import dataclass
from typing import TYPE_CHECKING

from escrow_marketplace.domain.enums import (
    LedgerEventType,
    Role,
    SubscriptionAudience,
    SubscriptionStatus,
)
from escrow_marketplace.domain.exceptions import (
    FailedPreconditionError,
    InvalidArgumentError,
    NotFoundError,
    PermissionDeniedError,
)
from escrow_marketplace.infrastructure.database.orm_models import (
    BillingInvoice,
    PaymentAccount,
    Subscription,
)
from escrow_marketplace.infrastructure.database.repositories import BillingRepository
from escrow_marketplace.logging_config import get_logger
from escrow_marketplace.services.base import ServiceBase

if TYPE_CHECKING:
    import uuid

    from sqlalchemy.ext.asyncio import AsyncSession

    from escrow_marketplace.config import Settings
    from escrow_marketplace.domain.authorization import Actor
    from escrow_marketplace.domain.policy_config import PlatformConfig, SubscriptionPlan
    from escrow_marketplace.providers.base import OnboardingLink, PaymentProvider

logger = get_logger(__name__)


def subscription_stream(subscription_id: uuid.UUID) -> str:
    return f"subscription:{subscription_id}"


@dataclass(frozen=True)
class SubscriptionCreated:
    subscription: Subscription
    invoice: BillingInvoice


class BillingService(ServiceBase):
    def __init__(
        self,
        session: AsyncSession,
        settings: Settings | None = None,
        provider: PaymentProvider | None = None,
    ) -> None:
        super().__init__(session, settings, provider)
        self._billing_repo = BillingRepository(session)

    # ------------------------------------------------------------------
    # Payout accounts
    # ------------------------------------------------------------------

    async def create_connected_account(
        self, actor: Actor | None, email: str | None = None, country: str = "US"
    ) -> PaymentAccount:
        actor, config = await self._prepare(actor, "create_connected_account")
        provider = self._provider(config)
        result = await provider.create_connected_account(actor.uid, email=email, country=country)

        account = await self._billing_repo.get_account(actor.uid)
        if account is None:
            account = PaymentAccount(
                user_id=actor.uid,
                provider=provider.provider_name,
                account_ref=result.account_ref,
                onboarding_complete=result.onboarding_complete,
            )
            await self._billing_repo.add(account)
        else:
            account.provider = provider.provider_name
            account.account_ref = result.account_ref
            account.onboarding_complete = result.onboarding_complete
            await self._billing_repo.save(account)

        await self._audit_repo.record(
            actor,
            "create_connected_account",
            "payment_account",
            actor.uid,
            {"account_ref": result.account_ref},
        )
        logger.info("billing.account_created", user_id=actor.uid, provider=provider.provider_name)
        return account

    async def get_onboarding_link(
        self,
        actor: Actor | None,
        account_user_id: str | None = None,
        return_url: str | None = None,
        refresh_url: str | None = None,
    ) -> OnboardingLink:
        actor, config = await self._prepare(actor, "get_onboarding_link")
        user_id = account_user_id or actor.uid
        if not actor.is_admin and user_id != actor.uid:
            raise PermissionDeniedError("Cannot access payment onboarding for another user")
        account = await self._billing_repo.get_account(user_id)
        if account is None:
            raise NotFoundError("PaymentAccount", user_id)

        return await self._provider(config).get_onboarding_link(
            account.account_ref,
            return_url=return_url or self._settings.onboarding_return_url,
            refresh_url=refresh_url or self._settings.onboarding_refresh_url,
        )

    # ------------------------------------------------------------------
    # Subscriptions
    # ------------------------------------------------------------------

    async def create_subscription(
        self, actor: Actor | None, plan_id: str, audience: str, quantity: int = 1
    ) -> SubscriptionCreated:
        """Subscribe the caller to a plan and post its first invoice."""
        actor, config = await self._prepare(actor, "create_subscription")
        try:
            audience_value = SubscriptionAudience(audience)
        except ValueError:
            raise InvalidArgumentError(f"Unknown subscription audience '{audience}'") from None
        if actor.role.value != audience_value.value:
            raise PermissionDeniedError(f"A {actor.role} cannot buy a {audience_value} plan")
        if quantity <= 0:
            raise InvalidArgumentError("quantity must be positive")
        plan = self._available_plan(config, plan_id, audience_value)

        provider = self._provider(config)
        created = await provider.create_subscription(
            actor.uid, plan.provider_price_ref or plan.id, quantity=quantity
        )
        amount = plan.monthly_price_cents * quantity
        invoice_result = await provider.create_invoice(
            actor.uid,
            amount,
            f"{plan.name} monthly",
            subscription_ref=created.subscription_ref,
        )

        subscription = await self._billing_repo.add(
            Subscription(
                account_id=actor.uid,
                audience=audience_value.value,
                plan_id=plan.id,
                provider=provider.provider_name,
                subscription_ref=created.subscription_ref,
                status=created.status,
                quantity=quantity,
                cancel_at_period_end=False,
                current_period_start=created.current_period_start,
                current_period_end=created.current_period_end,
            )
        )
        invoice = await self._billing_repo.add(
            BillingInvoice(
                subscription_id=subscription.id,
                account_id=actor.uid,
                invoice_ref=invoice_result.invoice_ref,
                amount_cents=invoice_result.amount_cents,
                status=invoice_result.status,
                hosted_url=invoice_result.hosted_url,
            )
        )
        await self._ledger_repo.append(
            stream_id=subscription_stream(subscription.id),
            event_type=LedgerEventType.SUBSCRIPTION_INVOICE_POSTED,
            actor=actor,
            amount_cents=invoice.amount_cents,
            metadata={
                "subscription_id": str(subscription.id),
                "invoice_id": str(invoice.id),
                "plan_id": plan.id,
            },
        )
        logger.info(
            "billing.subscription_created",
            subscription_id=str(subscription.id),
            plan_id=plan.id,
            amount_cents=amount,
        )
        return SubscriptionCreated(subscription=subscription, invoice=invoice)

    async def update_subscription(
        self,
        actor: Actor | None,
        subscription_id: uuid.UUID,
        plan_id: str | None = None,
        quantity: int | None = None,
    ) -> Subscription:
        actor, config = await self._prepare(actor, "update_subscription")
        subscription = await self._owned_subscription(actor, subscription_id)
        if subscription.status == SubscriptionStatus.CANCELED:
            raise FailedPreconditionError("Subscription is canceled")
        if quantity is not None and quantity <= 0:
            raise InvalidArgumentError("quantity must be positive")

        price_ref = None
        if plan_id is not None:
            plan = self._available_plan(
                config, plan_id, SubscriptionAudience(subscription.audience)
            )
            price_ref = plan.provider_price_ref or plan.id

        await self._provider(config).update_subscription(
            subscription.subscription_ref, price_ref=price_ref, quantity=quantity
        )
        if plan_id is not None:
            subscription.plan_id = plan_id
        if quantity is not None:
            subscription.quantity = quantity
        await self._billing_repo.save(subscription)
        logger.info("billing.subscription_updated", subscription_id=str(subscription.id))
        return subscription

    async def cancel_subscription(
        self, actor: Actor | None, subscription_id: uuid.UUID, cancel_at_period_end: bool = True
    ) -> Subscription:
        """Cancel now, or flag the subscription to lapse at the end of the period."""
        actor, config = await self._prepare(actor, "cancel_subscription")
        subscription = await self._owned_subscription(actor, subscription_id)
        provider = self._provider(config)

        if cancel_at_period_end:
            await provider.update_subscription(
                subscription.subscription_ref, cancel_at_period_end=True
            )
        else:
            await provider.cancel_subscription(subscription.subscription_ref)
            subscription.status = SubscriptionStatus.CANCELED.value
        subscription.cancel_at_period_end = cancel_at_period_end
        await self._billing_repo.save(subscription)
        logger.info(
            "billing.subscription_cancelled",
            subscription_id=str(subscription.id),
            at_period_end=cancel_at_period_end,
        )
        return subscription

    async def list_invoices(
        self, actor: Actor | None, account_id: str | None = None
    ) -> list[BillingInvoice]:
        actor, _ = await self._prepare(actor, "list_invoices")
        target = account_id or actor.uid
        if not actor.is_admin and target != actor.uid:
            raise PermissionDeniedError("Cannot list another account's invoices")
        return await self._billing_repo.list_invoices(target)

    # ------------------------------------------------------------------
    # Private helpers
    # ------------------------------------------------------------------

    @staticmethod
    def _available_plan(
        config: PlatformConfig, plan_id: str, audience: SubscriptionAudience
    ) -> SubscriptionPlan:
        plan = config.plan(plan_id)
        if plan is None or not plan.active or plan.audience is not audience:
            raise FailedPreconditionError(f"Subscription plan '{plan_id}' is not available")
        return plan

    async def _owned_subscription(self, actor: Actor, subscription_id: uuid.UUID) -> Subscription:
        subscription = await self._billing_repo.get_subscription(subscription_id)
        if subscription is None:
            raise NotFoundError("Subscription", str(subscription_id))
        if actor.role is not Role.ADMIN and subscription.account_id != actor.uid:
            raise PermissionDeniedError("Cannot modify another account's subscription")
        return subscription
