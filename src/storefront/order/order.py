"""Order aggregate (CQRS): the authoritative order and payment status model.

The Order is stored as current state (not event sourced). Every save is
version-checked, so two webhook deliveries racing on the same order cannot
both win: the loser's handler is re-run against the fresh state.

Payment attempts are child entities. Exactly one attempt is current
(``payment_details.reference``); the rest are closed. Once an attempt is
accepted, expired, failed, superseded or cancelled it is never reopened.

Fulfillment and payment state machines live in ``state_machine``; this
module applies them, appends status history and raises the events that
drive side effects.
"""

import json
import random
import time
from datetime import datetime
from enum import Enum

import structlog
from protean.exceptions import ValidationError
from protean.fields import (
    Boolean,
    DateTime,
    Float,
    HasMany,
    Identifier,
    Integer,
    String,
    Text,
    ValueObject,
)

from storefront.domain import storefront
from storefront.gateway.port import GATEWAY_METHODS, PaymentMethod, PaymentSession
from storefront.order.events import (
    InventoryReleased,
    InventoryReserved,
    OrderCancelled,
    OrderCreated,
    OrderStatusChanged,
    PaymentConfirmationsUpdated,
    PaymentConfirmed,
    PaymentExpired,
    PaymentFailed,
    PaymentSessionStarted,
    PaymentUnderpaid,
    RefundIssued,
    RefundPending,
)
from storefront.order.state_machine import (
    InvalidTransition,
    OrderEvent,
    OrderStatus,
    PaymentStatus,
    admin_event_for,
    assert_payment_transition,
    next_status,
)
from storefront.payment.policy import PolicyDecision, evaluate
from storefront.utils.clock import as_utc, utc_now

logger = structlog.get_logger(__name__)

REFUND_EPSILON = 0.005


# ---------------------------------------------------------------------------
# Enums
# ---------------------------------------------------------------------------
class AttemptStatus(Enum):
    PENDING = "pending"
    UNDERPAID = "underpaid"
    ACCEPTED = "accepted"
    EXPIRED = "expired"
    FAILED = "failed"
    SUPERSEDED = "superseded"
    CANCELLED = "cancelled"


_OPEN_ATTEMPT_STATUSES = {AttemptStatus.PENDING.value, AttemptStatus.UNDERPAID.value}


class HistoryKind(Enum):
    FULFILLMENT = "fulfillment"
    PAYMENT = "payment"


class RefundStatus(Enum):
    NONE = "none"
    PARTIALLY_REFUNDED = "partially_refunded"
    FULLY_REFUNDED = "fully_refunded"
    PENDING_REFUND = "pending_refund"


class PaymentOutcome(Enum):
    """What applying a provider notification did to the order."""

    ACCEPTED = "accepted"
    PENDING_CONFIRMATION = "pending_confirmation"
    UNDERPAID = "underpaid"
    EXPIRED = "expired"
    FAILED = "failed"
    INFORMATIONAL = "informational"
    ALREADY_ACCEPTED = "already_accepted"
    ATTEMPT_CLOSED = "attempt_closed"


def generate_order_number() -> str:
    millis = str(int(time.time() * 1000))[-8:]
    return f"ORD-{millis}-{random.randint(0, 999):03d}"


# ---------------------------------------------------------------------------
# Value Objects
# ---------------------------------------------------------------------------
@storefront.value_object(part_of="Order")
class ShippingAddress:
    """Delivery address captured at checkout; later address-book edits never touch it."""

    full_name = String(required=True, max_length=200)
    street = String(required=True, max_length=255)
    city = String(required=True, max_length=100)
    postal_code = String(required=True, max_length=20)
    country = String(required=True, max_length=100)
    phone = String(max_length=50)


@storefront.value_object(part_of="Order")
class PaymentDetails:
    """Snapshot of the current payment attempt.

    Always carries provider, reference, amounts and status; the remaining
    fields are filled in by whichever provider needs them.
    """

    provider = String(required=True, max_length=50)
    reference = String(required=True, max_length=255)
    amount_expected = Float(required=True)
    amount_received = Float(default=0.0)
    currency = String(max_length=10)
    status = String(required=True, max_length=50)
    confirmations = Integer(default=0)
    confirmations_required = Integer(default=0)
    address = String(max_length=255)
    redirect_url = String(max_length=1000)
    transaction_hash = String(max_length=255)
    capture_id = String(max_length=255)
    exchange_rate = Float()
    fiat_amount = Float()
    expires_at = DateTime()


# ---------------------------------------------------------------------------
# Entities
# ---------------------------------------------------------------------------
@storefront.entity(part_of="Order")
class OrderItem:
    """A line item with its price copied from the catalogue at order time."""

    product_id = Identifier(required=True)
    product_name = String(required=True, max_length=255)
    quantity = Integer(required=True, min_value=1)
    unit_price = Float(required=True, min_value=0.0)

    @property
    def line_total(self) -> float:
        return round(self.quantity * self.unit_price, 2)


@storefront.entity(part_of="Order")
class PaymentAttempt:
    """One gateway session for the order."""

    provider = String(required=True, max_length=50)
    reference = String(required=True, max_length=255)
    amount_expected = Float(required=True)
    currency = String(required=True, max_length=10)
    fiat_amount = Float()
    fiat_currency = String(max_length=3)
    exchange_rate = Float()
    address = String(max_length=255)
    redirect_url = String(max_length=1000)
    confirmations = Integer(default=0)
    confirmations_required = Integer(default=0)
    amount_received = Float(default=0.0)
    accepted = Boolean(default=False)
    status = String(choices=AttemptStatus, default=AttemptStatus.PENDING.value)
    transaction_hash = String(max_length=255)
    capture_id = String(max_length=255)
    failure_reason = String(max_length=500)
    created_at = DateTime(required=True)
    expires_at = DateTime(required=True)
    resolved_at = DateTime()

    @property
    def is_open(self) -> bool:
        return self.status in _OPEN_ATTEMPT_STATUSES

    def is_past_expiry(self, now: datetime) -> bool:
        return self.expires_at is not None and as_utc(now) > as_utc(self.expires_at)


@storefront.entity(part_of="Order")
class StatusHistoryEntry:
    """Append-only log entry; entries are never edited once written."""

    sequence = Integer(required=True)
    kind = String(choices=HistoryKind, required=True)
    status = String(required=True, max_length=50)
    note = String(max_length=1000)
    actor = String(max_length=100, default="system")
    changed_at = DateTime(required=True)


@storefront.entity(part_of="Order")
class RefundRecord:
    refund_id = String(required=True, max_length=255)
    amount = Float(required=True, min_value=0.0)
    reason = String(max_length=500)
    admin_id = String(max_length=100)
    gateway_refund_id = String(max_length=255)
    manual_reference = String(max_length=255)
    refunded_at = DateTime(required=True)


# ---------------------------------------------------------------------------
# Aggregate Root (CQRS)
# ---------------------------------------------------------------------------
@storefront.aggregate
class Order:
    order_number = String(required=True, max_length=30)
    customer_id = Identifier(required=True)
    customer_email = String(max_length=255)
    items = HasMany(OrderItem)
    shipping_address = ValueObject(ShippingAddress)
    subtotal = Float(default=0.0)
    tax = Float(default=0.0)
    shipping_cost = Float(default=0.0)
    total = Float(default=0.0)
    currency = String(max_length=3, default="GBP")
    status = String(choices=OrderStatus, default=OrderStatus.PENDING.value)
    payment_status = String(choices=PaymentStatus, default=PaymentStatus.AWAITING_PAYMENT.value)
    payment_method = String(required=True, choices=PaymentMethod)
    payment_details = ValueObject(PaymentDetails)
    payment_attempts = HasMany(PaymentAttempt)
    status_history = HasMany(StatusHistoryEntry)
    tracking_number = String(max_length=255)
    carrier = String(max_length=100)
    inventory_reserved = Boolean(default=False)
    refund_status = String(choices=RefundStatus, default=RefundStatus.NONE.value)
    total_refunded = Float(default=0.0)
    refunds = HasMany(RefundRecord)
    cancellation_reason = String(max_length=500)
    notes = Text()
    created_at = DateTime()
    updated_at = DateTime()
    paid_at = DateTime()
    shipped_at = DateTime()
    delivered_at = DateTime()
    cancelled_at = DateTime()

    # -------------------------------------------------------------------
    # Factory method
    # -------------------------------------------------------------------
    @classmethod
    def create(
        cls,
        customer_id: str,
        items_data: list[dict],
        shipping_address: dict,
        payment_method: str,
        customer_email: str | None = None,
        tax: float = 0.0,
        shipping_cost: float = 0.0,
        currency: str = "GBP",
        now: datetime | None = None,
    ):
        """Place an order. Stock and address have already been validated upstream."""
        if not items_data:
            raise ValidationError({"items": ["An order needs at least one item"]})
        if tax < 0 or shipping_cost < 0:
            raise ValidationError({"total": ["Tax and shipping cannot be negative"]})

        now = now or utc_now()
        order = cls(
            order_number=generate_order_number(),
            customer_id=customer_id,
            customer_email=customer_email,
            shipping_address=ShippingAddress(**shipping_address),
            payment_method=payment_method,
            currency=currency,
            tax=round(tax, 2),
            shipping_cost=round(shipping_cost, 2),
            created_at=now,
            updated_at=now,
        )
        for item_data in items_data:
            order.add_items(
                OrderItem(
                    product_id=item_data["product_id"],
                    product_name=item_data["product_name"],
                    quantity=item_data["quantity"],
                    unit_price=item_data["unit_price"],
                )
            )
        order.subtotal = round(sum(item.line_total for item in order.items), 2)
        order.total = round(order.subtotal + order.tax + order.shipping_cost, 2)
        if order.total <= 0:
            raise ValidationError({"total": ["Order total must be greater than zero"]})

        if order.payment_method == PaymentMethod.CASH_ON_DELIVERY.value:
            order.payment_details = PaymentDetails(
                provider=PaymentMethod.CASH_ON_DELIVERY.value,
                reference=order.order_number,
                amount_expected=order.total,
                currency=order.currency,
                status=PaymentStatus.AWAITING_PAYMENT.value,
            )

        order._append_history(HistoryKind.FULFILLMENT, OrderStatus.PENDING.value, "Order placed", "customer", now)
        order._append_history(
            HistoryKind.PAYMENT, PaymentStatus.AWAITING_PAYMENT.value, "Awaiting payment", "system", now
        )

        snapshots = [
            {
                "product_id": str(item.product_id),
                "product_name": item.product_name,
                "quantity": item.quantity,
                "unit_price": item.unit_price,
            }
            for item in order.items
        ]
        order.raise_(
            OrderCreated(
                order_id=str(order.id),
                order_number=order.order_number,
                customer_id=str(customer_id),
                customer_email=customer_email,
                items=json.dumps(snapshots),
                payment_method=order.payment_method,
                total=order.total,
                currency=order.currency,
                created_at=now,
            )
        )
        order._reserve_inventory(now)
        return order

    # -------------------------------------------------------------------
    # Helpers
    # -------------------------------------------------------------------
    def _append_history(self, kind: HistoryKind, status: str, note: str | None, actor: str, now: datetime) -> None:
        self.add_status_history(
            StatusHistoryEntry(
                sequence=len(self.status_history or []) + 1,
                kind=kind.value,
                status=status,
                note=note,
                actor=actor,
                changed_at=now,
            )
        )

    def history(self, kind: HistoryKind | None = None) -> list:
        entries = sorted(self.status_history or [], key=lambda entry: entry.sequence)
        if kind is None:
            return entries
        return [entry for entry in entries if entry.kind == kind.value]

    def _apply_event(
        self,
        event: OrderEvent,
        note: str | None,
        actor: str,
        now: datetime,
        tracking_number: str | None = None,
        carrier: str | None = None,
    ) -> None:
        previous = self.status
        self.status = next_status(previous, event).value
        self.updated_at = now
        self._append_history(HistoryKind.FULFILLMENT, self.status, note, actor, now)
        self.raise_(
            OrderStatusChanged(
                order_id=str(self.id),
                order_number=self.order_number,
                customer_email=self.customer_email,
                previous_status=previous,
                new_status=self.status,
                actor=actor,
                note=note,
                tracking_number=tracking_number,
                carrier=carrier,
                changed_at=now,
            )
        )

    def _set_payment_status(self, target: PaymentStatus, note: str, now: datetime, actor: str = "system") -> None:
        assert_payment_transition(self.payment_status, target)
        self.payment_status = target.value
        self.updated_at = now
        self._append_history(HistoryKind.PAYMENT, target.value, note, actor, now)

    def _reserve_inventory(self, now: datetime) -> None:
        if self.inventory_reserved:
            return
        self.inventory_reserved = True
        self.raise_(
            InventoryReserved(
                order_id=str(self.id),
                items=json.dumps(
                    [{"product_id": str(item.product_id), "quantity": item.quantity} for item in self.items]
                ),
                reserved_at=now,
            )
        )

    def _release_inventory(self, reason: str, now: datetime) -> None:
        if not self.inventory_reserved:
            return
        self.inventory_reserved = False
        self.raise_(InventoryReleased(order_id=str(self.id), reason=reason, released_at=now))

    def _sync_details(self, attempt: PaymentAttempt) -> None:
        self.payment_details = PaymentDetails(
            provider=attempt.provider,
            reference=attempt.reference,
            amount_expected=attempt.amount_expected,
            amount_received=attempt.amount_received or 0.0,
            currency=attempt.currency,
            status=attempt.status,
            confirmations=attempt.confirmations or 0,
            confirmations_required=attempt.confirmations_required or 0,
            address=attempt.address,
            redirect_url=attempt.redirect_url,
            transaction_hash=attempt.transaction_hash,
            capture_id=attempt.capture_id,
            exchange_rate=attempt.exchange_rate,
            fiat_amount=attempt.fiat_amount,
            expires_at=attempt.expires_at,
        )

    def attempt_for(self, reference: str) -> PaymentAttempt | None:
        return next((a for a in (self.payment_attempts or []) if a.reference == reference), None)

    @property
    def current_attempt(self) -> PaymentAttempt | None:
        if self.payment_details is None:
            return None
        return self.attempt_for(self.payment_details.reference)

    @property
    def refundable_amount(self) -> float:
        return round(self.total - (self.total_refunded or 0.0), 2)

    @property
    def refund_reference(self) -> str | None:
        """Provider reference a refund is issued against (the capture for PayPal)."""
        details = self.payment_details
        if details is None:
            return None
        return details.capture_id or details.reference

    def _close_open_attempt(self, status: AttemptStatus, now: datetime) -> PaymentAttempt | None:
        attempt = self.current_attempt
        if attempt is None or not attempt.is_open:
            return None
        attempt.status = status.value
        attempt.resolved_at = now
        self._sync_details(attempt)
        return attempt

    # -------------------------------------------------------------------
    # Payment sessions
    # -------------------------------------------------------------------
    def reusable_attempt(self, method: str, now: datetime) -> PaymentAttempt | None:
        """An unexpired open attempt with the same method, which a new session request returns as-is."""
        attempt = self.current_attempt
        if attempt is None or not attempt.is_open or attempt.provider != method:
            return None
        if attempt.is_past_expiry(now):
            return None
        return attempt

    def assert_can_start_payment(self, method: str) -> None:
        if method not in {m.value for m in GATEWAY_METHODS}:
            raise ValidationError({"payment_method": [f"{method} does not use a payment gateway"]})
        if self.status != OrderStatus.PENDING.value:
            raise InvalidTransition({"status": [f"Cannot start a payment for an order that is {self.status}"]})
        if self.payment_status not in (PaymentStatus.AWAITING_PAYMENT.value, PaymentStatus.FAILED.value, PaymentStatus.UNDERPAID.value):
            raise InvalidTransition(
                {"payment_status": [f"Cannot start a payment while payment is {self.payment_status}"]}
            )
        attempt = self.current_attempt
        if (
            self.payment_status == PaymentStatus.UNDERPAID.value
            and attempt is not None
            and attempt.provider != method
        ):
            raise ValidationError(
                {"payment_method": ["Funds were already received for this order; please contact support"]}
            )

    def start_payment_session(self, session: PaymentSession, now: datetime | None = None) -> PaymentAttempt:
        """Record a gateway session as the order's current payment attempt."""
        now = now or utc_now()
        self.assert_can_start_payment(session.provider)

        if self.attempt_for(session.reference) is not None:
            raise ValidationError({"reference": [f"Payment reference {session.reference} is already recorded"]})

        superseded = self._close_open_attempt(AttemptStatus.SUPERSEDED, now)
        if superseded is not None:
            if superseded.amount_received:
                raise ValidationError(
                    {"payment_method": ["Funds were already received for this order; please contact support"]}
                )
            logger.info(
                "Payment attempt superseded",
                order_id=str(self.id),
                reference=superseded.reference,
                provider=superseded.provider,
            )

        attempt = PaymentAttempt(
            provider=session.provider,
            reference=session.reference,
            amount_expected=session.amount_due,
            currency=session.currency,
            fiat_amount=session.fiat_amount,
            fiat_currency=session.fiat_currency,
            exchange_rate=session.exchange_rate,
            address=session.address,
            redirect_url=session.redirect_url,
            confirmations_required=session.confirmations_required,
            created_at=now,
            expires_at=session.expires_at,
        )
        self.add_payment_attempts(attempt)
        self.payment_method = session.provider
        self._sync_details(attempt)

        if self.payment_status == PaymentStatus.FAILED.value:
            self._set_payment_status(
                PaymentStatus.AWAITING_PAYMENT, f"New {session.provider} payment session started", now
            )
        self._reserve_inventory(now)
        self.updated_at = now

        self.raise_(
            PaymentSessionStarted(
                order_id=str(self.id),
                order_number=self.order_number,
                attempt_id=str(attempt.id),
                provider=session.provider,
                reference=session.reference,
                amount_expected=session.amount_due,
                currency=session.currency,
                confirmations_required=session.confirmations_required,
                expires_at=session.expires_at,
                superseded_reference=superseded.reference if superseded else None,
                started_at=now,
            )
        )
        return attempt

    # -------------------------------------------------------------------
    # Payment notifications (webhooks, captures, status polls)
    # -------------------------------------------------------------------
    def apply_payment_update(
        self,
        reference: str,
        kind: str,
        confirmations: int = 0,
        amount_received: float = 0.0,
        now: datetime | None = None,
        transaction_hash: str | None = None,
        capture_id: str | None = None,
        failure_reason: str | None = None,
    ) -> PaymentOutcome:
        """Apply a provider-neutral notification to the matching attempt.

        Safe to repeat: re-applying the same facts changes nothing and raises
        no events.
        """
        now = now or utc_now()
        attempt = self.attempt_for(reference)
        if attempt is None:
            raise ValidationError({"reference": [f"Order {self.order_number} has no payment attempt {reference}"]})

        if attempt.accepted:
            self._record_progress(attempt, confirmations, amount_received, transaction_hash, capture_id)
            return PaymentOutcome.ALREADY_ACCEPTED

        if not attempt.is_open:
            logger.warning(
                "Notification for closed payment attempt",
                order_id=str(self.id),
                reference=reference,
                attempt_status=attempt.status,
                kind=kind,
                amount_received=amount_received,
            )
            return PaymentOutcome.ATTEMPT_CLOSED

        if kind == "failed":
            self._fail_attempt(attempt, failure_reason or "Payment declined", now)
            return PaymentOutcome.FAILED

        if kind == "expired":
            self._expire_attempt(attempt, now, "Provider reported the payment as expired")
            return PaymentOutcome.EXPIRED

        if kind == "pending":
            if attempt.is_past_expiry(now):
                self._expire_attempt(attempt, now, "Payment window expired")
                return PaymentOutcome.EXPIRED
            return PaymentOutcome.INFORMATIONAL

        changed = self._record_progress(attempt, confirmations, amount_received, transaction_hash, capture_id)
        decision = evaluate(
            confirmations_observed=attempt.confirmations,
            confirmations_required=attempt.confirmations_required,
            amount_received=attempt.amount_received,
            amount_expected=attempt.amount_expected,
            attempt_expiry=attempt.expires_at,
            now=now,
            accepted=attempt.accepted,
        )

        if decision == PolicyDecision.EXPIRED:
            self._expire_attempt(attempt, now, "Payment window expired before the payment was accepted")
            return PaymentOutcome.EXPIRED

        if decision == PolicyDecision.UNDERPAID:
            self._mark_underpaid(attempt, now)
            return PaymentOutcome.UNDERPAID

        if decision == PolicyDecision.PENDING_CONFIRMATION:
            if changed:
                self.updated_at = now
                self.raise_(
                    PaymentConfirmationsUpdated(
                        order_id=str(self.id),
                        reference=reference,
                        confirmations=attempt.confirmations,
                        confirmations_required=attempt.confirmations_required,
                        amount_received=attempt.amount_received,
                        updated_at=now,
                    )
                )
            return PaymentOutcome.PENDING_CONFIRMATION

        self._accept_attempt(attempt, now)
        return PaymentOutcome.ACCEPTED

    def _record_progress(
        self,
        attempt: PaymentAttempt,
        confirmations: int,
        amount_received: float,
        transaction_hash: str | None,
        capture_id: str | None,
    ) -> bool:
        """Store confirmations and amount, never letting either go backwards."""
        changed = False
        confirmations = confirmations or 0
        if confirmations < (attempt.confirmations or 0):
            logger.warning(
                "Confirmation count regressed; keeping stored value",
                order_id=str(self.id),
                reference=attempt.reference,
                stored=attempt.confirmations,
                reported=confirmations,
            )
        elif confirmations > (attempt.confirmations or 0):
            attempt.confirmations = confirmations
            changed = True

        if (amount_received or 0.0) > (attempt.amount_received or 0.0):
            attempt.amount_received = amount_received
            changed = True

        if transaction_hash and attempt.transaction_hash != transaction_hash:
            attempt.transaction_hash = transaction_hash
            changed = True
        if capture_id and attempt.capture_id != capture_id:
            attempt.capture_id = capture_id
            changed = True

        if changed and attempt.reference == getattr(self.payment_details, "reference", None):
            self._sync_details(attempt)
        return changed

    def _accept_attempt(self, attempt: PaymentAttempt, now: datetime) -> None:
        attempt.accepted = True
        attempt.status = AttemptStatus.ACCEPTED.value
        attempt.resolved_at = now
        self._sync_details(attempt)
        self._set_payment_status(
            PaymentStatus.CONFIRMED,
            f"{attempt.provider} payment accepted at {attempt.confirmations} confirmation(s)",
            now,
        )
        self.paid_at = now
        logger.info(
            "Payment accepted",
            order_id=str(self.id),
            provider=attempt.provider,
            reference=attempt.reference,
            confirmations=attempt.confirmations,
            amount_expected=attempt.amount_expected,
            amount_received=attempt.amount_received,
        )
        self.raise_(
            PaymentConfirmed(
                order_id=str(self.id),
                order_number=self.order_number,
                customer_email=self.customer_email,
                provider=attempt.provider,
                reference=attempt.reference,
                amount_received=attempt.amount_received,
                confirmations=attempt.confirmations,
                confirmed_at=now,
            )
        )
        if self.status == OrderStatus.PENDING.value:
            self._apply_event(OrderEvent.PAYMENT_CONFIRMED, "Payment confirmed", "system", now)
        else:
            logger.warning(
                "Payment accepted for an order that already left pending",
                order_id=str(self.id),
                status=self.status,
                reference=attempt.reference,
            )

    def _mark_underpaid(self, attempt: PaymentAttempt, now: datetime) -> None:
        attempt.status = AttemptStatus.UNDERPAID.value
        self._sync_details(attempt)
        if self.payment_status == PaymentStatus.UNDERPAID.value:
            return
        self._set_payment_status(
            PaymentStatus.UNDERPAID,
            f"Received {attempt.amount_received} of {attempt.amount_expected} {attempt.currency}",
            now,
        )
        self.raise_(
            PaymentUnderpaid(
                order_id=str(self.id),
                order_number=self.order_number,
                customer_email=self.customer_email,
                provider=attempt.provider,
                reference=attempt.reference,
                amount_expected=attempt.amount_expected,
                amount_received=attempt.amount_received,
                currency=attempt.currency,
                detected_at=now,
            )
        )

    def _fail_attempt(self, attempt: PaymentAttempt, reason: str, now: datetime) -> None:
        attempt.status = AttemptStatus.FAILED.value
        attempt.failure_reason = reason
        attempt.resolved_at = now
        self._sync_details(attempt)
        self._set_payment_status(PaymentStatus.FAILED, f"{attempt.provider} payment failed", now)
        self._release_inventory("payment_failed", now)
        self.raise_(
            PaymentFailed(
                order_id=str(self.id),
                order_number=self.order_number,
                customer_email=self.customer_email,
                provider=attempt.provider,
                reference=attempt.reference,
                reason=reason,
                failed_at=now,
            )
        )

    def _expire_attempt(self, attempt: PaymentAttempt, now: datetime, note: str) -> None:
        attempt.status = AttemptStatus.EXPIRED.value
        attempt.resolved_at = now
        self._sync_details(attempt)
        self._set_payment_status(PaymentStatus.EXPIRED, note, now)
        self._release_inventory("payment_expired", now)
        if attempt.amount_received:
            logger.warning(
                "Payment expired with partial funds received; manual refund needed",
                order_id=str(self.id),
                reference=attempt.reference,
                amount_received=attempt.amount_received,
            )
        self.raise_(
            PaymentExpired(
                order_id=str(self.id),
                order_number=self.order_number,
                customer_email=self.customer_email,
                provider=attempt.provider,
                reference=attempt.reference,
                amount_received=attempt.amount_received,
                expired_at=now,
            )
        )
        if self.status == OrderStatus.PENDING.value:
            self._cancel("Payment window expired", "system", now)

    def expire_if_stale(self, now: datetime | None = None) -> bool:
        """Expire the current attempt if its window has passed. Repeatable."""
        now = now or utc_now()
        attempt = self.current_attempt
        if attempt is None or not attempt.is_open or not attempt.is_past_expiry(now):
            return False
        self._expire_attempt(attempt, now, "Payment window expired")
        return True

    # -------------------------------------------------------------------
    # Fulfillment
    # -------------------------------------------------------------------
    def update_status(
        self,
        target: str,
        actor: str,
        note: str | None = None,
        tracking_number: str | None = None,
        carrier: str | None = None,
        now: datetime | None = None,
    ) -> None:
        """Admin override: bypasses payment checks but not the state machine."""
        now = now or utc_now()
        target_status = OrderStatus(target)
        event = admin_event_for(self.status, target_status)

        if event == OrderEvent.CANCEL:
            self.cancel(note or "Cancelled by admin", actor=actor, now=now)
            return

        if target_status == OrderStatus.SHIPPED:
            missing = {}
            if not tracking_number:
                missing["tracking_number"] = ["Tracking number is required to mark an order shipped"]
            if not carrier:
                missing["carrier"] = ["Carrier is required to mark an order shipped"]
            if missing:
                raise ValidationError(missing)
            self.tracking_number = tracking_number
            self.carrier = carrier
            self.shipped_at = now

        if target_status == OrderStatus.DELIVERED:
            self.delivered_at = now

        self._apply_event(event, note, actor, now, tracking_number=tracking_number, carrier=carrier)

        if (
            target_status == OrderStatus.DELIVERED
            and self.payment_method == PaymentMethod.CASH_ON_DELIVERY.value
            and self.payment_status == PaymentStatus.AWAITING_PAYMENT.value
        ):
            self._collect_on_delivery(now, actor)

    def _collect_on_delivery(self, now: datetime, actor: str) -> None:
        self.payment_details = PaymentDetails(
            provider=PaymentMethod.CASH_ON_DELIVERY.value,
            reference=self.order_number,
            amount_expected=self.total,
            amount_received=self.total,
            currency=self.currency,
            status=AttemptStatus.ACCEPTED.value,
        )
        self._set_payment_status(PaymentStatus.CONFIRMED, "Collected on delivery", now, actor=actor)
        self.paid_at = now
        self.raise_(
            PaymentConfirmed(
                order_id=str(self.id),
                order_number=self.order_number,
                customer_email=self.customer_email,
                provider=PaymentMethod.CASH_ON_DELIVERY.value,
                reference=self.order_number,
                amount_received=self.total,
                confirmations=0,
                confirmed_at=now,
            )
        )

    # -------------------------------------------------------------------
    # Cancellation
    # -------------------------------------------------------------------
    def cancel(self, reason: str, actor: str = "customer", now: datetime | None = None) -> None:
        """Cancel from pending or processing; anything else is an invalid transition."""
        now = now or utc_now()
        next_status(self.status, OrderEvent.CANCEL)
        self._close_open_attempt(AttemptStatus.CANCELLED, now)
        self._release_inventory("order_cancelled", now)
        self._cancel(reason, actor, now)

    def _cancel(self, reason: str, actor: str, now: datetime) -> None:
        self.cancellation_reason = reason
        self.cancelled_at = now
        self._apply_event(OrderEvent.CANCEL, reason, actor, now)

        refund_required = self.payment_status == PaymentStatus.CONFIRMED.value and self.refundable_amount > 0
        self.raise_(
            OrderCancelled(
                order_id=str(self.id),
                order_number=self.order_number,
                customer_email=self.customer_email,
                reason=reason,
                actor=actor,
                refund_required=refund_required,
                refund_amount=self.refundable_amount if refund_required else 0.0,
                currency=self.currency,
                payment_method=self.payment_method,
                refund_reference=self.refund_reference if refund_required else None,
                cancelled_at=now,
            )
        )

    # -------------------------------------------------------------------
    # Refunds
    # -------------------------------------------------------------------
    def assert_can_refund(self, amount: float) -> None:
        if self.payment_status != PaymentStatus.CONFIRMED.value:
            raise ValidationError({"payment_status": ["Refunds are only possible for confirmed payments"]})
        if amount is None or amount <= 0:
            raise ValidationError({"amount": ["Refund amount must be greater than zero"]})
        if amount > self.refundable_amount + REFUND_EPSILON:
            raise ValidationError(
                {"amount": [f"Refund amount exceeds the refundable balance of {self.refundable_amount:.2f}"]}
            )

    def record_refund(
        self,
        refund_id: str,
        amount: float,
        reason: str | None = None,
        admin_id: str | None = None,
        gateway_refund_id: str | None = None,
        manual_reference: str | None = None,
        now: datetime | None = None,
    ) -> bool:
        """Record a refund the provider (or an admin, manually) has settled.

        Returns False when ``refund_id`` was already recorded.
        """
        now = now or utc_now()
        if any(record.refund_id == refund_id for record in (self.refunds or [])):
            return False
        self.assert_can_refund(amount)

        amount = round(min(amount, self.refundable_amount), 2)
        self.add_refunds(
            RefundRecord(
                refund_id=refund_id,
                amount=amount,
                reason=reason,
                admin_id=admin_id,
                gateway_refund_id=gateway_refund_id,
                manual_reference=manual_reference,
                refunded_at=now,
            )
        )
        self.total_refunded = round((self.total_refunded or 0.0) + amount, 2)
        self.updated_at = now

        if self.refundable_amount <= REFUND_EPSILON:
            self.refund_status = RefundStatus.FULLY_REFUNDED.value
            self._set_payment_status(PaymentStatus.REFUNDED, reason or "Payment fully refunded", now, actor=admin_id or "system")
        else:
            self.refund_status = RefundStatus.PARTIALLY_REFUNDED.value
            self._append_history(
                HistoryKind.PAYMENT,
                self.payment_status,
                f"Partial refund of {amount:.2f} {self.currency}",
                admin_id or "system",
                now,
            )

        self.raise_(
            RefundIssued(
                order_id=str(self.id),
                order_number=self.order_number,
                customer_email=self.customer_email,
                refund_id=refund_id,
                amount=amount,
                currency=self.currency,
                total_refunded=self.total_refunded,
                refund_status=self.refund_status,
                gateway_refund_id=gateway_refund_id,
                manual_reference=manual_reference,
                reason=reason,
                refunded_at=now,
            )
        )
        return True

    def mark_refund_pending(self, amount: float, reason: str, now: datetime | None = None) -> None:
        """The gateway could not refund; leave it for an admin to settle."""
        now = now or utc_now()
        if self.refund_status == RefundStatus.PENDING_REFUND.value:
            return
        self.refund_status = RefundStatus.PENDING_REFUND.value
        self.updated_at = now
        self._append_history(HistoryKind.PAYMENT, self.payment_status, f"Refund pending: {reason}", "system", now)
        self.raise_(RefundPending(order_id=str(self.id), amount=amount, reason=reason, recorded_at=now))

    # -------------------------------------------------------------------
    # Returns
    # -------------------------------------------------------------------
    def mark_returned(self, note: str, actor: str = "admin", now: datetime | None = None) -> None:
        now = now or utc_now()
        self._apply_event(OrderEvent.RETURN, note, actor, now)
