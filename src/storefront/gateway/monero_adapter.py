"""Monero adapter backed by GloBee payment requests.

GloBee issues a payment address per request and reports progress through
IPN callbacks. A callback is sent for every status or confirmation change,
so the event id combines all three: ``id:status:confirmations``.
"""

import json
from dataclasses import replace
from datetime import datetime

import structlog

from storefront.gateway.crypto import CryptoGateway
from storefront.gateway.errors import GatewayError, GatewayUnavailable, MalformedWebhook
from storefront.gateway.http import json_body
from storefront.gateway.port import NotificationKind, PaymentNotification, PaymentSession
from storefront.payment.policy import MONERO_REQUIRED_CONFIRMATIONS
from storefront.utils.clock import as_utc

logger = structlog.get_logger(__name__)

_PAID_STATUSES = {"paid", "confirmed", "completed", "underpaid"}
_FAILED_STATUSES = {"cancelled", "canceled", "invalid"}
_EXPIRED_STATUSES = {"expired"}


class MoneroGateway(CryptoGateway):
    provider = "monero"
    confirmations_required = MONERO_REQUIRED_CONFIRMATIONS
    signature_header = "X-GloBee-Signature"
    crypto_currency = "XMR"
    decimal_places = 12

    def _strip_signature(self, signature: str) -> str:
        signature = signature.strip()
        if signature.lower().startswith("sha256="):
            return signature[len("sha256=") :]
        return signature

    def create_payment(self, order_reference: str, amount: float, currency: str) -> PaymentSession:
        self.check_amount(amount)
        rate, xmr_amount = self._quote(amount, currency)

        body = {
            "total": xmr_amount,
            "currency": self.crypto_currency,
            "order_id": order_reference,
            "confirmation_speed": "high",
        }
        if self.settings.callback_url:
            body["ipn_url"] = self.settings.callback_url

        # Payment requests are not deduplicated by GloBee, so this is sent once.
        response = self.http.request("POST", "/v1/payment-request", json=body, headers=self._auth_headers())
        if response.status_code not in (200, 201):
            raise GatewayError(f"GloBee rejected the payment request ({response.status_code})")

        payload = json_body(response)
        data = payload.get("data", payload)
        request_id = data.get("id")
        address = data.get("payment_address") or data.get("address")
        if not request_id or not address:
            raise GatewayUnavailable("GloBee response carried no payment id or address")

        logger.info(
            "Monero payment request created",
            order_reference=order_reference,
            payment_request_id=request_id,
            xmr_amount=xmr_amount,
            rate=rate.rate,
        )
        return PaymentSession(
            provider=self.provider,
            reference=str(request_id),
            amount_due=xmr_amount,
            currency=self.crypto_currency,
            expires_at=self._provider_expiry(data.get("expiration_time")),
            confirmations_required=self.confirmations_required,
            address=address,
            redirect_url=data.get("payment_url"),
            fiat_amount=amount,
            fiat_currency=currency,
            exchange_rate=rate.rate,
        )

    def _provider_expiry(self, value) -> datetime:
        """Use the earlier of GloBee's expiration time and the local payment window."""
        local = self._expiry()
        if not value:
            return local
        try:
            remote = as_utc(datetime.fromisoformat(str(value).replace("Z", "+00:00")))
        except ValueError:
            return local
        return min(local, remote)

    def check_status(self, reference: str, transaction_hash: str | None = None) -> PaymentNotification:
        response = self.http.request(
            "GET",
            f"/v1/payment-request/{reference}",
            headers=self._auth_headers(),
            idempotent=True,
        )
        if response.status_code == 404:
            return PaymentNotification(
                provider=self.provider,
                reference=reference,
                kind=NotificationKind.FAILED,
                failure_reason="GloBee payment request not found",
            )
        if response.status_code != 200:
            raise GatewayUnavailable("GloBee status lookup failed", status_code=response.status_code)

        payload = json_body(response)
        return self._notification(payload.get("data", payload), reference=reference)

    def parse_webhook(self, raw_body: bytes) -> PaymentNotification:
        try:
            payload = json.loads(raw_body)
        except ValueError as exc:
            raise MalformedWebhook("GloBee callback is not valid JSON") from exc
        if not isinstance(payload, dict) or not payload.get("id") or not payload.get("status"):
            raise MalformedWebhook("GloBee callback is missing id or status")

        notification = self._notification(payload)
        return replace(notification, event_id=f"{payload['id']}:{payload['status']}:{notification.confirmations}")

    def _notification(self, data: dict, reference: str | None = None) -> PaymentNotification:
        status = str(data.get("status", "")).lower()
        try:
            confirmations = int(data.get("confirmations", 0) or 0)
            paid = float(data.get("paid_amount", 0) or 0)
        except (TypeError, ValueError) as exc:
            raise MalformedWebhook("GloBee payload has non-numeric confirmations or amount") from exc

        reference = reference or str(data["id"])
        common = {
            "provider": self.provider,
            "reference": reference,
            "confirmations": max(confirmations, 0),
            "transaction_hash": data.get("transaction_hash"),
            "provider_status": status,
        }

        if status in _PAID_STATUSES:
            return PaymentNotification(kind=NotificationKind.PAYMENT, amount_received=paid, **common)
        if status in _EXPIRED_STATUSES:
            return PaymentNotification(kind=NotificationKind.EXPIRED, amount_received=paid, **common)
        if status in _FAILED_STATUSES:
            return PaymentNotification(
                kind=NotificationKind.FAILED,
                failure_reason=f"GloBee payment {status}",
                **common,
            )
        return PaymentNotification(kind=NotificationKind.PENDING, amount_received=paid, **common)
