"""Environment-driven settings for gateways, rate lookups and the webhook ledger.

Settings are read once from ``os.environ`` and cached. Tests override them
with ``set_settings()`` and restore defaults with ``reset_settings()``.
"""

import os
from collections.abc import Mapping
from dataclasses import dataclass, field

PAYPAL_SANDBOX_URL = "https://api-m.sandbox.paypal.com"
PAYPAL_LIVE_URL = "https://api-m.paypal.com"
BLOCKONOMICS_URL = "https://www.blockonomics.co"
GLOBEE_URL = "https://api.globee.com"
COINGECKO_URL = "https://api.coingecko.com"


@dataclass(frozen=True)
class PayPalSettings:
    client_id: str = ""
    client_secret: str = ""
    mode: str = "sandbox"
    webhook_id: str = ""
    brand_name: str = "Storefront"
    return_url: str = ""
    cancel_url: str = ""
    max_amount: float = 10000.0
    session_minutes: int = 180

    @property
    def base_url(self) -> str:
        return PAYPAL_LIVE_URL if self.mode == "live" else PAYPAL_SANDBOX_URL

    @property
    def configured(self) -> bool:
        return bool(self.client_id and self.client_secret)


@dataclass(frozen=True)
class CryptoSettings:
    api_key: str = ""
    webhook_secret: str = ""
    base_url: str = ""
    payment_window_minutes: int = 30
    max_amount: float = 10000.0
    rate_ttl_minutes: int = 15
    callback_url: str = ""

    @property
    def configured(self) -> bool:
        return bool(self.api_key)


@dataclass(frozen=True)
class Settings:
    environment: str = "development"
    paypal: PayPalSettings = field(default_factory=PayPalSettings)
    bitcoin: CryptoSettings = field(default_factory=lambda: CryptoSettings(base_url=BLOCKONOMICS_URL))
    monero: CryptoSettings = field(
        default_factory=lambda: CryptoSettings(base_url=GLOBEE_URL, rate_ttl_minutes=5)
    )
    rates_base_url: str = COINGECKO_URL
    fiat_currency: str = "GBP"
    http_timeout: float = 10.0
    retry_attempts: int = 3
    ledger_database_url: str = ""
    ledger_retention_days: int = 90
    ledger_processing_timeout_seconds: int = 300

    @classmethod
    def from_env(cls, environ: Mapping[str, str] | None = None) -> "Settings":
        env = os.environ if environ is None else environ
        return cls(
            environment=env.get("PROTEAN_ENV", "development"),
            paypal=PayPalSettings(
                client_id=env.get("PAYPAL_CLIENT_ID", ""),
                client_secret=env.get("PAYPAL_CLIENT_SECRET", ""),
                mode=env.get("PAYPAL_MODE", "sandbox"),
                webhook_id=env.get("PAYPAL_WEBHOOK_ID", ""),
                brand_name=env.get("PAYPAL_BRAND_NAME", "Storefront"),
                return_url=env.get("PAYPAL_RETURN_URL", ""),
                cancel_url=env.get("PAYPAL_CANCEL_URL", ""),
                max_amount=float(env.get("PAYPAL_MAX_AMOUNT", "10000")),
                session_minutes=int(env.get("PAYPAL_SESSION_MINUTES", "180")),
            ),
            bitcoin=CryptoSettings(
                api_key=env.get("BLOCKONOMICS_API_KEY", ""),
                webhook_secret=env.get("BLOCKONOMICS_WEBHOOK_SECRET", ""),
                base_url=env.get("BLOCKONOMICS_API_URL", BLOCKONOMICS_URL),
                payment_window_minutes=int(env.get("BITCOIN_PAYMENT_WINDOW_MINUTES", "30")),
                max_amount=float(env.get("BITCOIN_MAX_AMOUNT", "10000")),
                rate_ttl_minutes=int(env.get("BITCOIN_RATE_TTL_MINUTES", "15")),
            ),
            monero=CryptoSettings(
                api_key=env.get("GLOBEE_API_KEY", ""),
                webhook_secret=env.get("GLOBEE_WEBHOOK_SECRET", ""),
                base_url=env.get("GLOBEE_API_URL", GLOBEE_URL),
                payment_window_minutes=int(env.get("MONERO_PAYMENT_WINDOW_MINUTES", "30")),
                max_amount=float(env.get("MONERO_MAX_AMOUNT", "10000")),
                rate_ttl_minutes=int(env.get("MONERO_RATE_TTL_MINUTES", "5")),
                callback_url=env.get("GLOBEE_IPN_URL", ""),
            ),
            rates_base_url=env.get("COINGECKO_API_URL", COINGECKO_URL),
            fiat_currency=env.get("STORE_CURRENCY", "GBP"),
            http_timeout=float(env.get("GATEWAY_HTTP_TIMEOUT", "10")),
            retry_attempts=int(env.get("GATEWAY_RETRY_ATTEMPTS", "3")),
            ledger_database_url=env.get("WEBHOOK_LEDGER_DATABASE_URL", ""),
            ledger_retention_days=int(env.get("WEBHOOK_LEDGER_RETENTION_DAYS", "90")),
            ledger_processing_timeout_seconds=int(env.get("WEBHOOK_LEDGER_PROCESSING_TIMEOUT_SECONDS", "300")),
        )

    @property
    def is_production(self) -> bool:
        return self.environment == "production"


_current_settings: Settings | None = None


def get_settings() -> Settings:
    """Return the active settings, loading them from the environment on first use."""
    global _current_settings
    if _current_settings is None:
        _current_settings = Settings.from_env()
    return _current_settings


def set_settings(settings: Settings) -> None:
    global _current_settings
    _current_settings = settings


def reset_settings() -> None:
    global _current_settings
    _current_settings = None
