"""Configurable fake payment gateway for development and testing.

Simulates any of the three providers without external calls. It can be
configured at runtime to succeed or fail, making it useful for:
- Manual API testing via /admin/gateways/{method}/configure
- Automated tests with predictable outcomes
- Development without real gateway credentials

Webhooks are plain JSON signed with the literal ``test-signature``::

    {"reference": "...", "event_id": "...", "kind": "payment",
     "confirmations": 2, "amount_received": 0.01}
"""

import json
from collections.abc import Callable, Mapping
from datetime import datetime, timedelta
from uuid import uuid4

from storefront.gateway.errors import MalformedWebhook
from storefront.gateway.port import (
    NotificationKind,
    PaymentGateway,
    PaymentNotification,
    PaymentSession,
    RefundResult,
    header_value,
)
from storefront.payment.policy import required_confirmations
from storefront.utils.clock import utc_now

FAKE_SIGNATURE_HEADER = "X-Webhook-Signature"
FAKE_SIGNATURE = "test-signature"

_CRYPTO = {
    "bitcoin": ("BTC", 8, 45000.0),
    "monero": ("XMR", 12, 150.0),
}


class FakeGateway(PaymentGateway):
    """Configurable fake gateway standing in for one provider."""

    def __init__(
        self,
        provider: str = "paypal",
        max_amount: float | None = 10000.0,
        session_minutes: int | None = None,
        clock: Callable[[], datetime] = utc_now,
    ) -> None:
        self.provider = provider
        self.confirmations_required = required_confirmations(provider)
        self.max_amount = max_amount
        self.session_minutes = session_minutes or (180 if provider == "paypal" else 30)
        self.should_succeed: bool = True
        self.refund_should_succeed: bool = True
        self.failure_reason: str = "Payment declined"
        self.exchange_rate: float | None = _CRYPTO[provider][2] if provider in _CRYPTO else None
        self.statuses: dict[str, PaymentNotification] = {}
        self.sessions: dict[str, PaymentSession] = {}
        self.calls: list[dict] = []
        self._clock = clock

    @property
    def synchronous(self) -> bool:
        return self.provider not in _CRYPTO

    @property
    def webhook_secret(self) -> str:
        return FAKE_SIGNATURE

    def configure(
        self,
        should_succeed: bool,
        failure_reason: str = "Payment declined",
        exchange_rate: float | None = None,
        refund_should_succeed: bool | None = None,
    ) -> None:
        """Configure gateway behavior at runtime."""
        self.should_succeed = should_succeed
        self.failure_reason = failure_reason
        if exchange_rate is not None:
            self.exchange_rate = exchange_rate
        self.refund_should_succeed = should_succeed if refund_should_succeed is None else refund_should_succeed

    def set_status(self, reference: str, notification: PaymentNotification) -> None:
        """Snapshot returned by ``check_status`` for ``reference``."""
        self.statuses[reference] = notification

    def create_payment(self, order_reference: str, amount: float, currency: str) -> PaymentSession:
        self.calls.append(
            {"method": "create_payment", "order_reference": order_reference, "amount": amount, "currency": currency}
        )
        self.check_amount(amount)

        expires_at = self._clock() + timedelta(minutes=self.session_minutes)
        if self.synchronous:
            reference = f"FAKE-{self.provider.upper()}-{uuid4().hex[:12].upper()}"
            session = PaymentSession(
                provider=self.provider,
                reference=reference,
                amount_due=round(amount, 2),
                currency=currency,
                expires_at=expires_at,
                confirmations_required=self.confirmations_required,
                redirect_url=f"https://fake-gateway.test/approve/{reference}",
                fiat_amount=round(amount, 2),
                fiat_currency=currency,
            )
        else:
            symbol, places, _ = _CRYPTO[self.provider]
            reference = f"fake_{symbol.lower()}_{uuid4().hex[:16]}"
            session = PaymentSession(
                provider=self.provider,
                reference=reference,
                amount_due=round(amount / self.exchange_rate, places),
                currency=symbol,
                expires_at=expires_at,
                confirmations_required=self.confirmations_required,
                address=reference,
                fiat_amount=amount,
                fiat_currency=currency,
                exchange_rate=self.exchange_rate,
            )
        self.sessions[reference] = session
        return session

    def capture(self, reference: str) -> PaymentNotification:
        if not self.synchronous:
            return super().capture(reference)

        self.calls.append({"method": "capture", "reference": reference})
        if not self.should_succeed:
            return PaymentNotification(
                provider=self.provider,
                reference=reference,
                kind=NotificationKind.FAILED,
                provider_status="DECLINED",
                failure_reason=self.failure_reason,
            )

        session = self.sessions.get(reference)
        return PaymentNotification(
            provider=self.provider,
            reference=reference,
            kind=NotificationKind.PAYMENT,
            amount_received=session.amount_due if session else 0.0,
            capture_id=f"fake_cap_{uuid4().hex[:12]}",
            provider_status="COMPLETED",
        )

    def check_status(self, reference: str, transaction_hash: str | None = None) -> PaymentNotification:
        self.calls.append({"method": "check_status", "reference": reference, "transaction_hash": transaction_hash})
        if reference in self.statuses:
            return self.statuses[reference]
        return PaymentNotification(provider=self.provider, reference=reference, kind=NotificationKind.PENDING)

    def verify_webhook(self, headers: Mapping[str, str], raw_body: bytes, secret: str) -> bool:  # noqa: ARG002
        return header_value(headers, FAKE_SIGNATURE_HEADER) == secret

    def parse_webhook(self, raw_body: bytes) -> PaymentNotification:
        try:
            payload = json.loads(raw_body)
        except ValueError as exc:
            raise MalformedWebhook("Webhook body is not valid JSON") from exc
        if not isinstance(payload, dict) or not payload.get("reference") or not payload.get("event_id"):
            raise MalformedWebhook("Webhook is missing reference or event_id")

        try:
            kind = NotificationKind(payload.get("kind", NotificationKind.PAYMENT.value))
            confirmations = int(payload.get("confirmations", 0))
            amount_received = float(payload.get("amount_received", 0))
        except (TypeError, ValueError) as exc:
            raise MalformedWebhook("Webhook has an invalid kind, confirmations or amount") from exc

        return PaymentNotification(
            provider=self.provider,
            reference=str(payload["reference"]),
            kind=kind,
            event_id=str(payload["event_id"]),
            confirmations=confirmations,
            amount_received=amount_received,
            transaction_hash=payload.get("transaction_hash"),
            capture_id=payload.get("capture_id"),
            failure_reason=payload.get("failure_reason"),
        )

    def refund(self, payment_reference: str, amount: float, currency: str, idempotency_key: str) -> RefundResult:
        self.calls.append(
            {
                "method": "refund",
                "payment_reference": payment_reference,
                "amount": amount,
                "currency": currency,
                "idempotency_key": idempotency_key,
            }
        )
        if self.refund_should_succeed:
            return RefundResult(
                success=True,
                gateway_refund_id=f"fake_ref_{uuid4().hex[:12]}",
                gateway_status="succeeded",
            )
        return RefundResult(success=False, gateway_status="failed", failure_reason=self.failure_reason)
