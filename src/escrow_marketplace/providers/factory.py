"""Payment provider factory.

Selection is a pure function of the feature flags and process settings for
the current operation. Callers resolve a provider per operation and never
keep one around, so a configuration change takes effect on the next call.
"""

from __future__ import annotations

from typing import TYPE_CHECKING, ClassVar

from escrow_marketplace.logging_config import get_logger
from escrow_marketplace.providers.mock import MockPaymentProvider
from escrow_marketplace.providers.stripe_connect import StripeConnectProvider
from escrow_marketplace.providers.unavailable import UnavailablePaymentProvider

if TYPE_CHECKING:
    from collections.abc import Callable

    from escrow_marketplace.config import Settings
    from escrow_marketplace.domain.policy_config import FeatureFlags
    from escrow_marketplace.providers.base import PaymentProvider

logger = get_logger(__name__)


class PaymentProviderFactory:
    """Maps configured provider names to provider constructors."""

    _registry: ClassVar[dict[str, Callable[[Settings], PaymentProvider]]] = {
        "mock": lambda settings: MockPaymentProvider(),
        "stripe": StripeConnectProvider,
        "ath_movil": lambda settings: UnavailablePaymentProvider("ath_movil"),
    }

    @classmethod
    def create(cls, flags: FeatureFlags, settings: Settings) -> PaymentProvider:
        """Build the provider for the current configuration.

        The Stripe Connect flag wins; otherwise ``settings.payment_provider``
        picks the provider.
        """
        name = "stripe" if flags.stripe_connect_enabled else settings.payment_provider
        builder = cls._registry.get(name)
        if builder is None:
            supported = ", ".join(sorted(cls._registry))
            raise ValueError(f"Unknown payment provider '{name}'. Supported: {supported}")
        provider = builder(settings)
        logger.debug("payment.provider_selected", provider=provider.provider_name)
        return provider

    @classmethod
    def get_supported_providers(cls) -> list[str]:
        return sorted(cls._registry)


def get_payment_provider(flags: FeatureFlags, settings: Settings) -> PaymentProvider:
    return PaymentProviderFactory.create(flags, settings)
