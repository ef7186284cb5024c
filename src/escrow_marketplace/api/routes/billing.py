"""Billing REST API routes: payout accounts and subscriptions.

Routes:
    POST   /api/v1/billing/accounts                         — Create a connected payout account
    POST   /api/v1/billing/accounts/onboarding-link         — Get an onboarding link
    POST   /api/v1/billing/subscriptions                    — Subscribe to a plan
    PATCH  /api/v1/billing/subscriptions/{id}               — Change plan or quantity
    POST   /api/v1/billing/subscriptions/{id}/cancel        — Cancel
    GET    /api/v1/billing/invoices                         — List invoices
"""

from __future__ import annotations

import uuid

from fastapi import APIRouter, Depends, Query
from sqlalchemy.ext.asyncio import AsyncSession

from escrow_marketplace.api.deps import get_actor, get_app_settings, get_db_session
from escrow_marketplace.config import Settings
from escrow_marketplace.domain.authorization import Actor
from escrow_marketplace.schemas.accounts import (
    CancelSubscriptionRequest,
    CreateConnectedAccountRequest,
    CreateSubscriptionRequest,
    InvoiceResponse,
    OnboardingLinkRequest,
    OnboardingLinkResponse,
    PaymentAccountResponse,
    SubscriptionCreatedResponse,
    SubscriptionResponse,
    UpdateSubscriptionRequest,
)
from escrow_marketplace.services.billing_service import BillingService

router = APIRouter(prefix="/api/v1/billing", tags=["Billing"])


def get_billing_service(
    session: AsyncSession = Depends(get_db_session),
    settings: Settings = Depends(get_app_settings),
) -> BillingService:
    return BillingService(session, settings)


@router.post(
    "/accounts",
    response_model=PaymentAccountResponse,
    status_code=201,
    summary="Create a connected payout account",
)
async def create_connected_account(
    request: CreateConnectedAccountRequest,
    actor: Actor | None = Depends(get_actor),
    svc: BillingService = Depends(get_billing_service),
) -> PaymentAccountResponse:
    account = await svc.create_connected_account(
        actor, email=request.email, country=request.country
    )
    return PaymentAccountResponse.model_validate(account)


@router.post(
    "/accounts/onboarding-link",
    response_model=OnboardingLinkResponse,
    summary="Get a payout onboarding link",
)
async def get_onboarding_link(
    request: OnboardingLinkRequest,
    actor: Actor | None = Depends(get_actor),
    svc: BillingService = Depends(get_billing_service),
) -> OnboardingLinkResponse:
    link = await svc.get_onboarding_link(
        actor,
        account_user_id=request.account_user_id,
        return_url=request.return_url,
        refresh_url=request.refresh_url,
    )
    return OnboardingLinkResponse.model_validate(link)


@router.post(
    "/subscriptions",
    response_model=SubscriptionCreatedResponse,
    status_code=201,
    summary="Subscribe to a plan",
)
async def create_subscription(
    request: CreateSubscriptionRequest,
    actor: Actor | None = Depends(get_actor),
    svc: BillingService = Depends(get_billing_service),
) -> SubscriptionCreatedResponse:
    """Creates the subscription and posts its first invoice."""
    created = await svc.create_subscription(
        actor, plan_id=request.plan_id, audience=request.audience, quantity=request.quantity
    )
    return SubscriptionCreatedResponse(
        subscription=SubscriptionResponse.model_validate(created.subscription),
        invoice=InvoiceResponse.model_validate(created.invoice),
    )


@router.patch(
    "/subscriptions/{subscription_id}",
    response_model=SubscriptionResponse,
    summary="Change a subscription",
)
async def update_subscription(
    subscription_id: uuid.UUID,
    request: UpdateSubscriptionRequest,
    actor: Actor | None = Depends(get_actor),
    svc: BillingService = Depends(get_billing_service),
) -> SubscriptionResponse:
    subscription = await svc.update_subscription(
        actor, subscription_id, plan_id=request.plan_id, quantity=request.quantity
    )
    return SubscriptionResponse.model_validate(subscription)


@router.post(
    "/subscriptions/{subscription_id}/cancel",
    response_model=SubscriptionResponse,
    summary="Cancel a subscription",
)
async def cancel_subscription(
    subscription_id: uuid.UUID,
    request: CancelSubscriptionRequest,
    actor: Actor | None = Depends(get_actor),
    svc: BillingService = Depends(get_billing_service),
) -> SubscriptionResponse:
    subscription = await svc.cancel_subscription(
        actor, subscription_id, cancel_at_period_end=request.cancel_at_period_end
    )
    return SubscriptionResponse.model_validate(subscription)


@router.get("/invoices", response_model=list[InvoiceResponse], summary="List invoices")
async def list_invoices(
    account_id: str | None = Query(default=None, description="Admins may list any account"),
    actor: Actor | None = Depends(get_actor),
    svc: BillingService = Depends(get_billing_service),
) -> list[InvoiceResponse]:
    invoices = await svc.list_invoices(actor, account_id=account_id)
    return [InvoiceResponse.model_validate(i) for i in invoices]
