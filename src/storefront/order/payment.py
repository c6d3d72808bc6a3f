"""Payment sessions and provider notifications for an order.

Gateway calls never run inside a command handler: handlers are re-run on
version conflicts and a retried capture could charge twice. The service
functions here talk to the gateway first and then hand the provider's
answer to a command, whose handler only touches the aggregate.
"""

from datetime import datetime

import structlog
from protean import handle
from protean.exceptions import ValidationError
from protean.fields import DateTime, Float, Identifier, Integer, String
from protean.utils.globals import current_domain

from storefront.domain import storefront
from storefront.gateway import get_gateway
from storefront.gateway.port import NotificationKind, PaymentNotification, PaymentSession
from storefront.order.order import Order, PaymentAttempt, PaymentOutcome
from storefront.utils.clock import utc_now

logger = structlog.get_logger(__name__)


# ---------------------------------------------------------------------------
# Commands
# ---------------------------------------------------------------------------
@storefront.command(part_of="Order")
class RecordPaymentSession:
    """Attach a freshly created gateway session to the order."""

    order_id = Identifier(required=True)
    provider = String(required=True, max_length=50)
    reference = String(required=True, max_length=255)
    amount_due = Float(required=True)
    currency = String(required=True, max_length=10)
    expires_at = DateTime(required=True)
    confirmations_required = Integer(default=0)
    address = String(max_length=255)
    redirect_url = String(max_length=1000)
    fiat_amount = Float()
    fiat_currency = String(max_length=3)
    exchange_rate = Float()
    started_at = DateTime()


@storefront.command(part_of="Order")
class ApplyPaymentNotification:
    """Apply a provider notification (webhook, capture or poll) to the order."""

    order_id = Identifier(required=True)
    reference = String(required=True, max_length=255)
    kind = String(required=True, max_length=20)
    confirmations = Integer(default=0)
    amount_received = Float(default=0.0)
    transaction_hash = String(max_length=255)
    capture_id = String(max_length=255)
    failure_reason = String(max_length=500)
    received_at = DateTime()


@storefront.command(part_of="Order")
class ExpirePayment:
    """Expire the order's open payment attempt if its window has passed."""

    order_id = Identifier(required=True)
    as_of = DateTime()


@storefront.command_handler(part_of=Order)
class PaymentCommandHandler:
    @handle(RecordPaymentSession)
    def record_payment_session(self, command):
        repo = current_domain.repository_for(Order)
        order = repo.get(command.order_id)
        attempt = order.start_payment_session(
            PaymentSession(
                provider=command.provider,
                reference=command.reference,
                amount_due=command.amount_due,
                currency=command.currency,
                expires_at=command.expires_at,
                confirmations_required=command.confirmations_required or 0,
                address=command.address,
                redirect_url=command.redirect_url,
                fiat_amount=command.fiat_amount,
                fiat_currency=command.fiat_currency,
                exchange_rate=command.exchange_rate,
            ),
            now=command.started_at,
        )
        repo.add(order)
        return str(attempt.id)

    @handle(ApplyPaymentNotification)
    def apply_payment_notification(self, command):
        repo = current_domain.repository_for(Order)
        order = repo.get(command.order_id)
        outcome = order.apply_payment_update(
            reference=command.reference,
            kind=command.kind,
            confirmations=command.confirmations or 0,
            amount_received=command.amount_received or 0.0,
            now=command.received_at,
            transaction_hash=command.transaction_hash,
            capture_id=command.capture_id,
            failure_reason=command.failure_reason,
        )
        repo.add(order)
        logger.info(
            "Payment notification applied",
            order_id=str(order.id),
            reference=command.reference,
            kind=command.kind,
            outcome=outcome.value,
            payment_status=order.payment_status,
        )
        return outcome.value

    @handle(ExpirePayment)
    def expire_payment(self, command):
        repo = current_domain.repository_for(Order)
        order = repo.get(command.order_id)
        if not order.expire_if_stale(command.as_of):
            return False
        repo.add(order)
        logger.info("Payment attempt expired", order_id=str(order.id), order_number=order.order_number)
        return True


# ---------------------------------------------------------------------------
# Services
# ---------------------------------------------------------------------------
def session_view(order: Order, attempt: PaymentAttempt, reused: bool = False) -> dict:
    """What the checkout page needs to collect a payment."""
    return {
        "order_id": str(order.id),
        "order_number": order.order_number,
        "provider": attempt.provider,
        "reference": attempt.reference,
        "address": attempt.address,
        "redirect_url": attempt.redirect_url,
        "amount_due": attempt.amount_expected,
        "currency": attempt.currency,
        "fiat_amount": attempt.fiat_amount if attempt.fiat_amount is not None else order.total,
        "fiat_currency": attempt.fiat_currency or order.currency,
        "exchange_rate": attempt.exchange_rate,
        "confirmations_required": attempt.confirmations_required,
        "expires_at": attempt.expires_at,
        "reused": reused,
    }


def create_payment_session(order_id: str, method: str, now: datetime | None = None) -> dict:
    """Open (or reuse) a gateway session for the order."""
    now = now or utc_now()
    repo = current_domain.repository_for(Order)
    order = repo.get(order_id)

    existing = order.reusable_attempt(method, now)
    if existing is not None:
        logger.info("Reusing open payment session", order_id=order_id, reference=existing.reference)
        return session_view(order, existing, reused=True)

    current = order.current_attempt
    if current is not None and current.is_open and current.is_past_expiry(now):
        current_domain.process(ExpirePayment(order_id=order_id, as_of=now), asynchronous=False)
        order = repo.get(order_id)

    order.assert_can_start_payment(method)

    gateway = get_gateway(method)
    session = gateway.create_payment(order.order_number, order.total, order.currency)
    logger.info(
        "Payment session created",
        order_id=order_id,
        provider=session.provider,
        reference=session.reference,
        amount_due=session.amount_due,
        currency=session.currency,
    )

    current_domain.process(
        RecordPaymentSession(
            order_id=order_id,
            provider=session.provider,
            reference=session.reference,
            amount_due=session.amount_due,
            currency=session.currency,
            expires_at=session.expires_at,
            confirmations_required=session.confirmations_required,
            address=session.address,
            redirect_url=session.redirect_url,
            fiat_amount=session.fiat_amount,
            fiat_currency=session.fiat_currency,
            exchange_rate=session.exchange_rate,
            started_at=now,
        ),
        asynchronous=False,
    )
    order = repo.get(order_id)
    return session_view(order, order.attempt_for(session.reference))


def apply_notification(order_id: str, notification: PaymentNotification, received_at: datetime | None = None) -> str:
    """Route a provider-neutral notification through the order command."""
    return current_domain.process(
        ApplyPaymentNotification(
            order_id=order_id,
            reference=notification.reference,
            kind=notification.kind.value,
            confirmations=notification.confirmations,
            amount_received=notification.amount_received,
            transaction_hash=notification.transaction_hash,
            capture_id=notification.capture_id,
            failure_reason=notification.failure_reason,
            received_at=received_at or utc_now(),
        ),
        asynchronous=False,
    )


def capture_payment(order_id: str, now: datetime | None = None) -> str:
    """Capture the customer-approved PayPal order. Never retried."""
    now = now or utc_now()
    order = current_domain.repository_for(Order).get(order_id)
    attempt = order.current_attempt
    if attempt is None:
        raise ValidationError({"payment": ["No payment session has been started for this order"]})
    if not attempt.is_open:
        logger.info("Capture requested for a settled attempt", order_id=order_id, status=attempt.status)
        return (PaymentOutcome.ALREADY_ACCEPTED if attempt.accepted else PaymentOutcome.ATTEMPT_CLOSED).value

    # A lapsed approval is never captured.
    if attempt.is_past_expiry(now):
        current_domain.process(ExpirePayment(order_id=order_id, as_of=now), asynchronous=False)
        return PaymentOutcome.EXPIRED.value

    notification = get_gateway(attempt.provider).capture(attempt.reference)
    if notification.kind == NotificationKind.FAILED:
        logger.warning(
            "Payment capture declined",
            order_id=order_id,
            reference=attempt.reference,
            reason=notification.failure_reason,
        )
    return apply_notification(order_id, notification, received_at=now)


def refresh_payment_status(order_id: str, now: datetime | None = None) -> str | None:
    """Poll the gateway and apply its snapshot. Safe to call on any schedule."""
    now = now or utc_now()
    order = current_domain.repository_for(Order).get(order_id)
    attempt = order.current_attempt
    if attempt is None or not attempt.is_open:
        return None

    if attempt.is_past_expiry(now):
        current_domain.process(ExpirePayment(order_id=order_id, as_of=now), asynchronous=False)
        return PaymentOutcome.EXPIRED.value

    notification = get_gateway(attempt.provider).check_status(attempt.reference, attempt.transaction_hash)
    return apply_notification(order_id, notification, received_at=now)
