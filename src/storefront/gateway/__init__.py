"""Payment gateway registry.

Provides get_gateway() / set_gateway() to swap implementations per payment
method:
- PayPalGateway, BitcoinGateway, MoneroGateway when credentials are configured
- FakeGateway for development and testing when they are not

Production refuses to fall back to the fake gateway.
"""

from datetime import timedelta

from protean.exceptions import ValidationError

from storefront.config import get_settings
from storefront.gateway.bitcoin_adapter import BitcoinGateway
from storefront.gateway.errors import GatewayUnavailable
from storefront.gateway.fake_adapter import FakeGateway
from storefront.gateway.http import GatewayHttpClient
from storefront.gateway.monero_adapter import MoneroGateway
from storefront.gateway.paypal_adapter import PayPalGateway
from storefront.gateway.port import GATEWAY_METHODS, PaymentGateway, PaymentMethod
from storefront.gateway.rates import CoinGeckoRateProvider, ExchangeRateCache

_current_gateways: dict[str, PaymentGateway] = {}
_current_rate_cache: ExchangeRateCache | None = None


def _method_value(method: str | PaymentMethod) -> str:
    value = method.value if isinstance(method, PaymentMethod) else str(method)
    if value not in {m.value for m in GATEWAY_METHODS}:
        raise ValidationError({"payment_method": [f"No payment gateway for {value}"]})
    return value


def get_rate_cache() -> ExchangeRateCache:
    """Return the shared exchange-rate cache used by the crypto gateways."""
    global _current_rate_cache
    if _current_rate_cache is None:
        settings = get_settings()
        http = GatewayHttpClient(settings.rates_base_url, settings.http_timeout, settings.retry_attempts)
        _current_rate_cache = ExchangeRateCache(CoinGeckoRateProvider(http))
    return _current_rate_cache


def set_rate_cache(cache: ExchangeRateCache) -> None:
    global _current_rate_cache
    _current_rate_cache = cache


def _build_gateway(method: str) -> PaymentGateway:
    settings = get_settings()
    provider_settings = getattr(settings, method)

    if not provider_settings.configured:
        if settings.is_production:
            raise GatewayUnavailable(f"{method} gateway is not configured")
        return FakeGateway(provider=method, max_amount=provider_settings.max_amount)

    http = GatewayHttpClient(provider_settings.base_url, settings.http_timeout, settings.retry_attempts)
    if method == PaymentMethod.PAYPAL.value:
        return PayPalGateway(provider_settings, http)

    rates = get_rate_cache()
    rates.ttls["BTC" if method == PaymentMethod.BITCOIN.value else "XMR"] = timedelta(
        minutes=provider_settings.rate_ttl_minutes
    )
    adapter = BitcoinGateway if method == PaymentMethod.BITCOIN.value else MoneroGateway
    return adapter(provider_settings, http, rates)


def get_gateway(method: str | PaymentMethod) -> PaymentGateway:
    """Return the gateway for a payment method, building it on first use."""
    value = _method_value(method)
    if value not in _current_gateways:
        _current_gateways[value] = _build_gateway(value)
    return _current_gateways[value]


def set_gateway(method: str | PaymentMethod, gateway: PaymentGateway) -> None:
    """Override the gateway for a payment method (useful for tests)."""
    _current_gateways[_method_value(method)] = gateway


def reset_gateways() -> None:
    """Reset to default gateways and drop the shared rate cache."""
    global _current_rate_cache
    _current_gateways.clear()
    _current_rate_cache = None
