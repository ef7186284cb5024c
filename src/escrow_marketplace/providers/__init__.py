"""Payment providers.

Usage:
    from escrow_marketplace.providers import get_payment_provider
    provider = get_payment_provider(config.feature_flags, settings)
    hold = await provider.create_hold(project_id, 85000, customer_id)
"""

from escrow_marketplace.providers.base import (
    ConnectedAccountResult,
    HoldResult,
    InvoiceResult,
    OnboardingLink,
    PaymentProvider,
    SubscriptionResult,
    TransferResult,
)
from escrow_marketplace.providers.factory import PaymentProviderFactory, get_payment_provider
from escrow_marketplace.providers.mock import MockPaymentProvider
from escrow_marketplace.providers.stripe_connect import StripeConnectProvider
from escrow_marketplace.providers.unavailable import UnavailablePaymentProvider

__all__ = [
    "ConnectedAccountResult",
    "HoldResult",
    "InvoiceResult",
    "MockPaymentProvider",
    "OnboardingLink",
    "PaymentProvider",
    "PaymentProviderFactory",
    "StripeConnectProvider",
    "SubscriptionResult",
    "TransferResult",
    "UnavailablePaymentProvider",
    "get_payment_provider",
]
