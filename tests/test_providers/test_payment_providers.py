"""Tests for payment provider selection and the built-in providers."""

from __future__ import annotations

from types import SimpleNamespace

import pytest

from escrow_marketplace.config import Settings
from escrow_marketplace.domain.exceptions import PaymentProviderError, UnimplementedError
from escrow_marketplace.domain.policy_config import FeatureFlags
from escrow_marketplace.providers import (
    MockPaymentProvider,
    PaymentProvider,
    PaymentProviderFactory,
    StripeConnectProvider,
    UnavailablePaymentProvider,
    get_payment_provider,
)


@pytest.fixture
def settings() -> Settings:
    return Settings(
        database_url="sqlite+aiosqlite://",
        payment_provider="mock",
        stripe_secret_key="",
        stripe_simulate=False,
    )


class TestFactory:
    def test_default_is_mock(self, settings) -> None:
        provider = get_payment_provider(FeatureFlags(), settings)
        assert isinstance(provider, MockPaymentProvider)
        assert isinstance(provider, PaymentProvider)

    def test_stripe_flag_wins(self, settings) -> None:
        provider = get_payment_provider(FeatureFlags(stripe_connect_enabled=True), settings)
        assert isinstance(provider, StripeConnectProvider)

    def test_stripe_by_setting(self, settings) -> None:
        configured = settings.model_copy(update={"payment_provider": "stripe"})
        provider = PaymentProviderFactory.create(FeatureFlags(), configured)
        assert provider.provider_name == "stripe_connect"

    def test_ath_movil_is_registered_but_unavailable(self, settings) -> None:
        configured = settings.model_copy(update={"payment_provider": "ath_movil"})
        provider = PaymentProviderFactory.create(FeatureFlags(), configured)
        assert isinstance(provider, UnavailablePaymentProvider)
        assert provider.provider_name == "ath_movil"

    def test_unknown_provider(self, settings) -> None:
        configured = settings.model_copy(update={"payment_provider": "paypal"})
        with pytest.raises(ValueError, match="Unknown payment provider"):
            PaymentProviderFactory.create(FeatureFlags(), configured)

    def test_supported_providers(self) -> None:
        assert PaymentProviderFactory.get_supported_providers() == ["ath_movil", "mock", "stripe"]


class TestMockProvider:
    @pytest.mark.asyncio
    async def test_hold_release_refund(self) -> None:
        provider = MockPaymentProvider()
        hold = await provider.create_hold("p-1", 85000, "cust-1")
        assert hold.provider_hold_id.startswith("mock_hold_")
        assert hold.amount_cents == 85000

        release = await provider.release(hold.provider_hold_id, 80750)
        refund = await provider.refund(hold.provider_hold_id, 100)
        assert release.provider_ref.startswith("mock_release_")
        assert refund.provider_ref.startswith("mock_refund_")
        assert release.provider_ref != refund.provider_ref

    @pytest.mark.asyncio
    async def test_subscription_lifecycle(self) -> None:
        provider = MockPaymentProvider()
        created = await provider.create_subscription("cust-1", "price_home")
        assert created.status == "active"
        assert created.current_period_end > created.current_period_start

        lapsing = await provider.update_subscription(
            created.subscription_ref, cancel_at_period_end=True
        )
        assert lapsing.cancel_at_period_end

        cancelled = await provider.cancel_subscription(created.subscription_ref)
        assert cancelled.status == "canceled"


class TestUnavailableProvider:
    @pytest.mark.asyncio
    async def test_every_capability_is_unimplemented(self) -> None:
        provider = UnavailablePaymentProvider("ath_movil")
        with pytest.raises(UnimplementedError, match="ath_movil"):
            await provider.create_hold("p-1", 100, "cust-1")
        with pytest.raises(UnimplementedError):
            await provider.refund("hold-1", 100)
        with pytest.raises(UnimplementedError):
            await provider.create_invoice("cust-1", 100, "Plan")


class TestStripeConnectProvider:
    @pytest.mark.asyncio
    async def test_simulated_calls_need_no_sdk(self, settings) -> None:
        provider = StripeConnectProvider(settings.model_copy(update={"stripe_simulate": True}))
        hold = await provider.create_hold("p-1", 85000, "cust-1")
        assert hold.provider_hold_id.startswith("pi_mock_")

        release = await provider.release(hold.provider_hold_id, 80750, destination_ref="acct_1")
        assert release.provider_ref.startswith("tr_mock_")

        account = await provider.create_connected_account("pro-1")
        assert account.onboarding_complete

    @pytest.mark.asyncio
    async def test_missing_secret_key(self, settings) -> None:
        provider = StripeConnectProvider(settings)
        with pytest.raises(PaymentProviderError, match="STRIPE_SECRET_KEY"):
            await provider.create_hold("p-1", 85000, "cust-1")


class _RecordingIntents:
    def __init__(self) -> None:
        self.calls: list[tuple[str, dict, dict]] = []

    def create(self, params: dict, options: dict) -> SimpleNamespace:
        self.calls.append(("create", params, options))
        return SimpleNamespace(id="pi_123", status="requires_capture")

    def capture(self, intent_id: str, params: dict, options: dict) -> SimpleNamespace:
        self.calls.append(("capture", params, options))
        return SimpleNamespace(id=intent_id, latest_charge="ch_123")


class TestStripeConnectRequests:
    @pytest.fixture
    def intents(self) -> _RecordingIntents:
        return _RecordingIntents()

    @pytest.fixture
    def provider(self, settings, intents, monkeypatch) -> StripeConnectProvider:
        provider = StripeConnectProvider(settings.model_copy(update={"stripe_secret_key": "sk"}))
        client = SimpleNamespace(payment_intents=intents)
        monkeypatch.setattr(provider, "_client", lambda: client)
        return provider

    @pytest.mark.asyncio
    async def test_idempotency_key_is_forwarded(self, provider, intents) -> None:
        await provider.create_hold("p-1", 85000, "cust-1", idempotency_key="hold:p-1:1")
        await provider.release("pi_123", 80750, idempotency_key="release:p-1:2")

        assert [options for _, _, options in intents.calls] == [
            {"idempotency_key": "hold:p-1:1"},
            {"idempotency_key": "release:p-1:2"},
        ]

    @pytest.mark.asyncio
    async def test_no_key_sends_no_options(self, provider, intents) -> None:
        await provider.create_hold("p-1", 85000, "cust-1")
        assert intents.calls[0][2] == {}

    @pytest.mark.asyncio
    async def test_zero_payout_skips_capture(self, provider, intents) -> None:
        transfer = await provider.release("pi_123", 0, idempotency_key="release:p-1:2")

        assert intents.calls == []
        assert transfer.amount_cents == 0
        assert transfer.status == "skipped"
