"""PayPal REST (v2 Orders) adapter.

Synchronous gateway: the customer approves a PayPal order on PayPal's site
and the storefront captures it explicitly, which settles the payment on the
spot. Webhooks (``PAYMENT.CAPTURE.*``) are a second, asynchronous source of
the same facts and go through the idempotency ledger like every other
provider.

Only calls that are safe to repeat are retried: token acquisition, order
creation and refunds carry a ``PayPal-Request-Id`` so PayPal deduplicates
them; capture is sent exactly once.
"""

import json
from collections.abc import Callable, Mapping
from datetime import datetime, timedelta
from uuid import uuid4

import structlog

from storefront.config import PayPalSettings
from storefront.gateway.errors import GatewayError, GatewayUnavailable, MalformedWebhook
from storefront.gateway.http import GatewayHttpClient, json_body
from storefront.gateway.port import (
    NotificationKind,
    PaymentGateway,
    PaymentNotification,
    PaymentSession,
    RefundResult,
    header_value,
)
from storefront.gateway.token_cache import AccessTokenCache
from storefront.payment.policy import PAYPAL_REQUIRED_CONFIRMATIONS
from storefront.utils.clock import utc_now

logger = structlog.get_logger(__name__)

_TRANSMISSION_HEADERS = {
    "transmission_id": "PAYPAL-TRANSMISSION-ID",
    "transmission_time": "PAYPAL-TRANSMISSION-TIME",
    "transmission_sig": "PAYPAL-TRANSMISSION-SIG",
    "cert_url": "PAYPAL-CERT-URL",
    "auth_algo": "PAYPAL-AUTH-ALGO",
}

_PENDING_ORDER_STATUSES = {"CREATED", "SAVED", "APPROVED", "PAYER_ACTION_REQUIRED"}


class PayPalGateway(PaymentGateway):
    provider = "paypal"
    confirmations_required = PAYPAL_REQUIRED_CONFIRMATIONS

    def __init__(
        self,
        settings: PayPalSettings,
        http: GatewayHttpClient,
        token_cache: AccessTokenCache | None = None,
        clock: Callable[[], datetime] = utc_now,
    ) -> None:
        self.settings = settings
        self.http = http
        self.token_cache = token_cache or AccessTokenCache(clock=clock)
        self.max_amount = settings.max_amount
        self._clock = clock

    @property
    def webhook_secret(self) -> str:
        return self.settings.webhook_id

    # -------------------------------------------------------------------
    # Authentication
    # -------------------------------------------------------------------
    def access_token(self) -> str:
        token = self.token_cache.get()
        if token is not None:
            return token

        response = self.http.request(
            "POST",
            "/v1/oauth2/token",
            auth=(self.settings.client_id, self.settings.client_secret),
            data={"grant_type": "client_credentials"},
            headers={"Accept": "application/json"},
            idempotent=True,
        )
        if response.status_code != 200:
            raise GatewayUnavailable("PayPal token request was rejected", status_code=response.status_code)

        payload = json_body(response)
        token = payload.get("access_token")
        if not token:
            raise GatewayUnavailable("PayPal token response carried no access_token")

        self.token_cache.store(token, int(payload.get("expires_in", 0)))
        logger.info("PayPal access token refreshed", expires_at=str(self.token_cache.expires_at))
        return token

    def _call(self, method: str, path: str, *, idempotent: bool = False, headers: dict | None = None, **kwargs):
        request_headers = {
            "Authorization": f"Bearer {self.access_token()}",
            "Content-Type": "application/json",
            **(headers or {}),
        }
        try:
            return self.http.request(method, path, headers=request_headers, idempotent=idempotent, **kwargs)
        except GatewayUnavailable as exc:
            if exc.status_code == 401:
                self.token_cache.invalidate()
            raise

    # -------------------------------------------------------------------
    # Payments
    # -------------------------------------------------------------------
    def create_payment(self, order_reference: str, amount: float, currency: str) -> PaymentSession:
        self.check_amount(amount)

        body = {
            "intent": "CAPTURE",
            "purchase_units": [
                {
                    "reference_id": order_reference,
                    "amount": {"currency_code": currency, "value": f"{amount:.2f}"},
                }
            ],
            "application_context": {
                "brand_name": self.settings.brand_name,
                "user_action": "PAY_NOW",
                "return_url": self.settings.return_url,
                "cancel_url": self.settings.cancel_url,
            },
        }
        response = self._call(
            "POST",
            "/v2/checkout/orders",
            json=body,
            headers={"PayPal-Request-Id": f"create-{order_reference}-{uuid4().hex}"},
            idempotent=True,
        )
        if response.status_code not in (200, 201):
            raise GatewayError(f"PayPal rejected order creation ({response.status_code})")

        payload = json_body(response)
        paypal_order_id = payload.get("id")
        if not paypal_order_id:
            raise GatewayUnavailable("PayPal order response carried no id")

        approve_url = next(
            (link.get("href") for link in payload.get("links", []) if link.get("rel") in ("approve", "payer-action")),
            None,
        )
        logger.info("PayPal order created", order_reference=order_reference, paypal_order_id=paypal_order_id)

        return PaymentSession(
            provider=self.provider,
            reference=paypal_order_id,
            amount_due=round(amount, 2),
            currency=currency,
            expires_at=self._clock() + timedelta(minutes=self.settings.session_minutes),
            confirmations_required=self.confirmations_required,
            redirect_url=approve_url,
            fiat_amount=round(amount, 2),
            fiat_currency=currency,
        )

    def capture(self, reference: str) -> PaymentNotification:
        response = self._call(
            "POST",
            f"/v2/checkout/orders/{reference}/capture",
            json={},
            headers={"Prefer": "return=representation"},
        )

        if response.status_code == 422:
            issue = _first_issue(response)
            if issue == "ORDER_ALREADY_CAPTURED":
                logger.info("PayPal order already captured, reading status", paypal_order_id=reference)
                return self.check_status(reference)
            logger.info("PayPal capture declined", paypal_order_id=reference, issue=issue)
            return self._declined(reference, issue or "Payment declined")

        if response.status_code not in (200, 201):
            return self._declined(reference, f"Capture failed with status {response.status_code}")

        return self._from_order(reference, json_body(response))

    def check_status(self, reference: str, transaction_hash: str | None = None) -> PaymentNotification:
        response = self._call("GET", f"/v2/checkout/orders/{reference}", idempotent=True)
        if response.status_code == 404:
            return self._declined(reference, "PayPal order not found")
        if response.status_code != 200:
            raise GatewayError(f"PayPal order lookup failed ({response.status_code})")
        return self._from_order(reference, json_body(response))

    def _from_order(self, reference: str, payload: dict) -> PaymentNotification:
        status = payload.get("status", "")
        if status == "COMPLETED":
            capture = _first_capture(payload)
            if capture and capture.get("status") in ("DECLINED", "FAILED"):
                return self._declined(reference, f"Capture {capture.get('status', '').lower()}")
            if capture and capture.get("status") == "PENDING":
                # Funds held for review; PAYMENT.CAPTURE.COMPLETED follows by webhook.
                return PaymentNotification(
                    provider=self.provider,
                    reference=reference,
                    kind=NotificationKind.PENDING,
                    capture_id=capture.get("id"),
                    provider_status="PENDING",
                )
            return PaymentNotification(
                provider=self.provider,
                reference=reference,
                kind=NotificationKind.PAYMENT,
                amount_received=_amount(capture.get("amount") if capture else None),
                capture_id=capture.get("id") if capture else None,
                provider_status=status,
            )
        if status in _PENDING_ORDER_STATUSES:
            return PaymentNotification(
                provider=self.provider,
                reference=reference,
                kind=NotificationKind.PENDING,
                provider_status=status,
            )
        return self._declined(reference, f"PayPal order is {status.lower() or 'unknown'}", status)

    def _declined(self, reference: str, reason: str, status: str | None = None) -> PaymentNotification:
        return PaymentNotification(
            provider=self.provider,
            reference=reference,
            kind=NotificationKind.FAILED,
            provider_status=status or "DECLINED",
            failure_reason=reason,
        )

    # -------------------------------------------------------------------
    # Webhooks
    # -------------------------------------------------------------------
    def verify_webhook(self, headers: Mapping[str, str], raw_body: bytes, secret: str) -> bool:
        if not secret:
            logger.error("PayPal webhook id is not configured")
            return False

        transmission = {key: header_value(headers, name) for key, name in _TRANSMISSION_HEADERS.items()}
        if not all(transmission.values()):
            return False

        try:
            event = json.loads(raw_body)
        except ValueError:
            return False

        response = self._call(
            "POST",
            "/v1/notifications/verify-webhook-signature",
            json={**transmission, "webhook_id": secret, "webhook_event": event},
            idempotent=True,
        )
        if response.status_code != 200:
            return False
        return json_body(response).get("verification_status") == "SUCCESS"

    def parse_webhook(self, raw_body: bytes) -> PaymentNotification:
        try:
            event = json.loads(raw_body)
        except ValueError as exc:
            raise MalformedWebhook("PayPal webhook body is not valid JSON") from exc
        if not isinstance(event, dict) or not event.get("id") or not isinstance(event.get("resource"), dict):
            raise MalformedWebhook("PayPal webhook is missing id or resource")

        event_type = event.get("event_type", "")
        resource = event["resource"]

        if event_type.startswith("PAYMENT.CAPTURE."):
            reference = resource.get("supplementary_data", {}).get("related_ids", {}).get("order_id")
            if not reference:
                raise MalformedWebhook("PayPal capture event carries no order id")
            if event_type == "PAYMENT.CAPTURE.COMPLETED":
                kind = NotificationKind.PAYMENT
            elif event_type in ("PAYMENT.CAPTURE.DENIED", "PAYMENT.CAPTURE.DECLINED"):
                kind = NotificationKind.FAILED
            else:
                kind = NotificationKind.PENDING
            return PaymentNotification(
                provider=self.provider,
                reference=reference,
                kind=kind,
                event_id=event["id"],
                amount_received=_amount(resource.get("amount")) if kind == NotificationKind.PAYMENT else 0.0,
                capture_id=resource.get("id"),
                provider_status=event_type,
                failure_reason="Capture denied by PayPal" if kind == NotificationKind.FAILED else None,
            )

        reference = resource.get("id")
        if not reference:
            raise MalformedWebhook("PayPal order event carries no order id")
        return PaymentNotification(
            provider=self.provider,
            reference=reference,
            kind=NotificationKind.PENDING,
            event_id=event["id"],
            provider_status=event_type,
        )

    # -------------------------------------------------------------------
    # Refunds
    # -------------------------------------------------------------------
    def refund(self, payment_reference: str, amount: float, currency: str, idempotency_key: str) -> RefundResult:
        response = self._call(
            "POST",
            f"/v2/payments/captures/{payment_reference}/refund",
            json={"amount": {"value": f"{amount:.2f}", "currency_code": currency}},
            headers={"PayPal-Request-Id": idempotency_key},
            idempotent=True,
        )
        if response.status_code not in (200, 201):
            issue = _first_issue(response)
            logger.warning("PayPal refund rejected", capture_id=payment_reference, issue=issue)
            return RefundResult(success=False, failure_reason=issue or f"Refund failed ({response.status_code})")

        payload = json_body(response)
        status = payload.get("status", "")
        if status not in ("COMPLETED", "PENDING"):
            return RefundResult(success=False, gateway_status=status, failure_reason=f"Refund {status.lower()}")
        return RefundResult(success=True, gateway_refund_id=payload.get("id"), gateway_status=status)


def _first_capture(payload: dict) -> dict | None:
    units = payload.get("purchase_units") or []
    if not units:
        return None
    captures = (units[0].get("payments") or {}).get("captures") or []
    return captures[0] if captures else None


def _first_issue(response) -> str | None:
    try:
        details = response.json().get("details") or []
    except (ValueError, AttributeError):
        return None
    return details[0].get("issue") if details else None


def _amount(amount: dict | None) -> float:
    if not amount:
        return 0.0
    try:
        return float(amount.get("value", 0))
    except (TypeError, ValueError):
        return 0.0
