"""Shared behaviour for blockchain-settled gateways.

Crypto providers sign webhook bodies with an HMAC-SHA256 shared secret, price
orders through the exchange-rate cache and cannot push refunds back to the
payer, so refunds always need manual settlement.
"""

import hashlib
import hmac
from collections.abc import Callable, Mapping
from datetime import datetime, timedelta

import structlog

from storefront.config import CryptoSettings
from storefront.gateway.http import GatewayHttpClient
from storefront.gateway.port import PaymentGateway, RefundResult, header_value
from storefront.gateway.rates import ExchangeRate, ExchangeRateCache
from storefront.utils.clock import utc_now

logger = structlog.get_logger(__name__)

MANUAL_SETTLEMENT = "manual settlement required"


def hmac_sha256_hex(secret: str, raw_body: bytes) -> str:
    return hmac.new(secret.encode(), raw_body, hashlib.sha256).hexdigest()


class CryptoGateway(PaymentGateway):
    signature_header: str = ""
    crypto_currency: str = ""
    decimal_places: int = 8

    def __init__(
        self,
        settings: CryptoSettings,
        http: GatewayHttpClient,
        rates: ExchangeRateCache,
        clock: Callable[[], datetime] = utc_now,
    ) -> None:
        self.settings = settings
        self.http = http
        self.rates = rates
        self.max_amount = settings.max_amount
        self._clock = clock

    @property
    def webhook_secret(self) -> str:
        return self.settings.webhook_secret

    def _auth_headers(self) -> dict:
        return {"Authorization": f"Bearer {self.settings.api_key}", "Accept": "application/json"}

    def _quote(self, amount: float, currency: str) -> tuple[ExchangeRate, float]:
        rate = self.rates.get_rate(self.crypto_currency, currency)
        return rate, rate.to_crypto(amount, self.decimal_places)

    def _expiry(self) -> datetime:
        return self._clock() + timedelta(minutes=self.settings.payment_window_minutes)

    def _strip_signature(self, signature: str) -> str:
        return signature.strip()

    def verify_webhook(self, headers: Mapping[str, str], raw_body: bytes, secret: str) -> bool:
        if not secret:
            logger.error("Webhook secret is not configured", provider=self.provider)
            return False

        signature = header_value(headers, self.signature_header)
        if not signature:
            return False

        expected = hmac_sha256_hex(secret, raw_body)
        return hmac.compare_digest(expected, self._strip_signature(signature).lower())

    def refund(self, payment_reference: str, amount: float, currency: str, idempotency_key: str) -> RefundResult:
        logger.warning(
            "Crypto refund needs manual settlement",
            provider=self.provider,
            payment_reference=payment_reference,
            amount=amount,
            currency=currency,
        )
        return RefundResult(success=False, gateway_status="manual", failure_reason=MANUAL_SETTLEMENT)
