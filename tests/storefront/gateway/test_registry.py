import pytest
from protean.exceptions import ValidationError

from storefront.config import CryptoSettings, PayPalSettings, Settings, set_settings
from storefront.gateway import get_gateway, get_rate_cache, reset_gateways, set_gateway
from storefront.gateway.bitcoin_adapter import BitcoinGateway
from storefront.gateway.errors import GatewayUnavailable
from storefront.gateway.fake_adapter import FakeGateway
from storefront.gateway.monero_adapter import MoneroGateway
from storefront.gateway.paypal_adapter import PayPalGateway
from storefront.gateway.port import PaymentMethod


def test_unconfigured_gateway_falls_back_to_fake():
    set_settings(Settings())
    gateway = get_gateway("bitcoin")
    assert isinstance(gateway, FakeGateway)
    assert gateway.provider == "bitcoin"


def test_gateway_is_built_once():
    set_settings(Settings())
    assert get_gateway(PaymentMethod.PAYPAL) is get_gateway("paypal")


def test_production_refuses_fake_gateway():
    set_settings(Settings(environment="production"))
    with pytest.raises(GatewayUnavailable):
        get_gateway("monero")


def test_configured_gateways_use_real_adapters():
    set_settings(
        Settings(
            paypal=PayPalSettings(client_id="id", client_secret="secret"),
            bitcoin=CryptoSettings(api_key="key", base_url="https://www.blockonomics.test", rate_ttl_minutes=10),
            monero=CryptoSettings(api_key="key", base_url="https://api.globee.test"),
        )
    )

    assert isinstance(get_gateway("paypal"), PayPalGateway)
    assert isinstance(get_gateway("bitcoin"), BitcoinGateway)
    assert isinstance(get_gateway("monero"), MoneroGateway)
    assert get_gateway("bitcoin").rates is get_rate_cache()
    assert get_rate_cache().ttl_for("BTC").total_seconds() == 600


def test_cash_on_delivery_has_no_gateway():
    with pytest.raises(ValidationError):
        get_gateway("cash_on_delivery")


def test_override_and_reset():
    set_settings(Settings())
    fake = FakeGateway(provider="paypal")
    set_gateway("paypal", fake)
    assert get_gateway("paypal") is fake

    reset_gateways()

    assert get_gateway("paypal") is not fake
