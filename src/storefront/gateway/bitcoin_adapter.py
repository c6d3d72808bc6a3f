"""Bitcoin adapter backed by Blockonomics.

Each payment session gets a fresh receiving address; the order total is
converted from fiat at the cached BTC rate (8 decimal places). Blockonomics
then calls back once per confirmation count for every transaction paying the
address, so the event id is ``txid:confirmations``.
"""

import json

import structlog

from storefront.gateway.crypto import CryptoGateway
from storefront.gateway.errors import GatewayUnavailable, MalformedWebhook
from storefront.gateway.http import json_body
from storefront.gateway.port import NotificationKind, PaymentNotification, PaymentSession
from storefront.payment.policy import BITCOIN_REQUIRED_CONFIRMATIONS

logger = structlog.get_logger(__name__)

SATOSHIS_PER_BTC = 100_000_000


def satoshis_to_btc(value) -> float:
    return round(int(value) / SATOSHIS_PER_BTC, 8)


class BitcoinGateway(CryptoGateway):
    provider = "bitcoin"
    confirmations_required = BITCOIN_REQUIRED_CONFIRMATIONS
    signature_header = "X-Blockonomics-Signature"
    crypto_currency = "BTC"
    decimal_places = 8

    def create_payment(self, order_reference: str, amount: float, currency: str) -> PaymentSession:
        self.check_amount(amount)
        rate, btc_amount = self._quote(amount, currency)

        # A retried request at worst skips an unused address.
        response = self.http.request("POST", "/api/new_address", headers=self._auth_headers(), idempotent=True)
        if response.status_code != 200:
            raise GatewayUnavailable("Blockonomics address request failed", status_code=response.status_code)

        address = json_body(response).get("address")
        if not address:
            raise GatewayUnavailable("Blockonomics returned no address")

        logger.info(
            "Bitcoin address issued",
            order_reference=order_reference,
            address=address,
            btc_amount=btc_amount,
            rate=rate.rate,
        )
        return PaymentSession(
            provider=self.provider,
            reference=address,
            amount_due=btc_amount,
            currency=self.crypto_currency,
            expires_at=self._expiry(),
            confirmations_required=self.confirmations_required,
            address=address,
            fiat_amount=amount,
            fiat_currency=currency,
            exchange_rate=rate.rate,
        )

    def check_status(self, reference: str, transaction_hash: str | None = None) -> PaymentNotification:
        if transaction_hash:
            return self._transaction_status(reference, transaction_hash)

        response = self.http.request(
            "POST",
            "/api/balance",
            json={"addr": reference},
            headers=self._auth_headers(),
            idempotent=True,
        )
        if response.status_code != 200:
            raise GatewayUnavailable("Blockonomics balance lookup failed", status_code=response.status_code)

        rows = json_body(response).get("response") or [{}]
        confirmed = int(rows[0].get("confirmed", 0) or 0)
        unconfirmed = int(rows[0].get("unconfirmed", 0) or 0)
        if confirmed + unconfirmed == 0:
            return PaymentNotification(provider=self.provider, reference=reference, kind=NotificationKind.PENDING)

        return PaymentNotification(
            provider=self.provider,
            reference=reference,
            kind=NotificationKind.PAYMENT,
            confirmations=1 if confirmed else 0,
            amount_received=satoshis_to_btc(confirmed + unconfirmed),
        )

    def _transaction_status(self, address: str, txid: str) -> PaymentNotification:
        response = self.http.request(
            "GET",
            "/api/tx_detail",
            params={"txid": txid},
            headers=self._auth_headers(),
            idempotent=True,
        )
        if response.status_code != 200:
            raise GatewayUnavailable("Blockonomics transaction lookup failed", status_code=response.status_code)

        payload = json_body(response)
        outputs = payload.get("vout") or payload.get("out") or []
        paid = sum(
            int(output.get("value", 0) or 0)
            for output in outputs
            if (output.get("address") or output.get("addr")) == address
        )
        return PaymentNotification(
            provider=self.provider,
            reference=address,
            kind=NotificationKind.PAYMENT,
            confirmations=int(payload.get("confirmations", 0) or 0),
            amount_received=satoshis_to_btc(paid),
            transaction_hash=txid,
        )

    def parse_webhook(self, raw_body: bytes) -> PaymentNotification:
        try:
            payload = json.loads(raw_body)
        except ValueError as exc:
            raise MalformedWebhook("Blockonomics callback is not valid JSON") from exc
        if not isinstance(payload, dict):
            raise MalformedWebhook("Blockonomics callback must be a JSON object")

        missing = [name for name in ("addr", "txid", "value") if payload.get(name) in (None, "")]
        if missing:
            raise MalformedWebhook(f"Blockonomics callback is missing {', '.join(missing)}")

        try:
            satoshis = int(payload["value"])
            confirmations = int(payload.get("confirmations", payload.get("status", 0)) or 0)
        except (TypeError, ValueError) as exc:
            raise MalformedWebhook("Blockonomics callback has non-numeric value or confirmations") from exc
        if satoshis < 0 or confirmations < 0:
            raise MalformedWebhook("Blockonomics callback has negative value or confirmations")

        return PaymentNotification(
            provider=self.provider,
            reference=str(payload["addr"]),
            kind=NotificationKind.PAYMENT,
            event_id=f"{payload['txid']}:{confirmations}",
            confirmations=confirmations,
            amount_received=satoshis_to_btc(satoshis),
            transaction_hash=str(payload["txid"]),
        )
