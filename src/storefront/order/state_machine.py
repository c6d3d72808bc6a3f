"""Order and payment state machines as pure transition functions.

Fulfillment:
    PENDING → PROCESSING → SHIPPED → OUT_FOR_DELIVERY → DELIVERED → RETURNED
    SHIPPED → DELIVERED (admin skip)
    {PENDING, PROCESSING} → CANCELLED

Payment (tracked independently):
    AWAITING_PAYMENT → CONFIRMED | UNDERPAID | EXPIRED | FAILED
    UNDERPAID → CONFIRMED | EXPIRED | FAILED
    FAILED → AWAITING_PAYMENT (new session)
    CONFIRMED → REFUNDED

``next_status`` is total: every (state, event) pair yields a new state or
raises ``InvalidTransition``. Nothing is silently ignored.
"""

from enum import Enum

from protean.exceptions import ValidationError


class OrderStatus(Enum):
    PENDING = "pending"
    PROCESSING = "processing"
    SHIPPED = "shipped"
    OUT_FOR_DELIVERY = "out_for_delivery"
    DELIVERED = "delivered"
    CANCELLED = "cancelled"
    RETURNED = "returned"


class PaymentStatus(Enum):
    AWAITING_PAYMENT = "awaiting_payment"
    CONFIRMED = "confirmed"
    UNDERPAID = "underpaid"
    EXPIRED = "expired"
    FAILED = "failed"
    REFUNDED = "refunded"


class OrderEvent(Enum):
    PAYMENT_CONFIRMED = "payment_confirmed"
    START_PROCESSING = "start_processing"  # Admin override, no payment check
    SHIP = "ship"
    DISPATCH_FOR_DELIVERY = "dispatch_for_delivery"
    DELIVER = "deliver"
    CANCEL = "cancel"
    RETURN = "return"


class InvalidTransition(ValidationError):
    """A transition that the state machine does not allow."""


_TRANSITIONS = {
    (OrderStatus.PENDING, OrderEvent.PAYMENT_CONFIRMED): OrderStatus.PROCESSING,
    (OrderStatus.PENDING, OrderEvent.START_PROCESSING): OrderStatus.PROCESSING,
    (OrderStatus.PENDING, OrderEvent.CANCEL): OrderStatus.CANCELLED,
    (OrderStatus.PROCESSING, OrderEvent.SHIP): OrderStatus.SHIPPED,
    (OrderStatus.PROCESSING, OrderEvent.CANCEL): OrderStatus.CANCELLED,
    (OrderStatus.SHIPPED, OrderEvent.DISPATCH_FOR_DELIVERY): OrderStatus.OUT_FOR_DELIVERY,
    (OrderStatus.SHIPPED, OrderEvent.DELIVER): OrderStatus.DELIVERED,
    (OrderStatus.OUT_FOR_DELIVERY, OrderEvent.DELIVER): OrderStatus.DELIVERED,
    (OrderStatus.DELIVERED, OrderEvent.RETURN): OrderStatus.RETURNED,
}

# Admin overrides name a target state; RETURNED is reachable only through the
# return workflow and PENDING is never a valid target.
ADMIN_EVENTS = {
    OrderStatus.PROCESSING: OrderEvent.START_PROCESSING,
    OrderStatus.SHIPPED: OrderEvent.SHIP,
    OrderStatus.OUT_FOR_DELIVERY: OrderEvent.DISPATCH_FOR_DELIVERY,
    OrderStatus.DELIVERED: OrderEvent.DELIVER,
    OrderStatus.CANCELLED: OrderEvent.CANCEL,
}

_PAYMENT_TRANSITIONS = {
    PaymentStatus.AWAITING_PAYMENT: {
        PaymentStatus.CONFIRMED,
        PaymentStatus.UNDERPAID,
        PaymentStatus.EXPIRED,
        PaymentStatus.FAILED,
    },
    PaymentStatus.UNDERPAID: {PaymentStatus.CONFIRMED, PaymentStatus.EXPIRED, PaymentStatus.FAILED},
    PaymentStatus.FAILED: {PaymentStatus.AWAITING_PAYMENT},
    PaymentStatus.CONFIRMED: {PaymentStatus.REFUNDED},
    PaymentStatus.EXPIRED: set(),  # terminal
    PaymentStatus.REFUNDED: set(),  # terminal
}


def next_status(current: OrderStatus | str, event: OrderEvent | str) -> OrderStatus:
    """Return the state reached by applying ``event`` in ``current``."""
    current = OrderStatus(current)
    event = OrderEvent(event)
    target = _TRANSITIONS.get((current, event))
    if target is None:
        raise InvalidTransition({"status": [f"Cannot {event.value.replace('_', ' ')} an order that is {current.value}"]})
    return target


def admin_event_for(current: OrderStatus | str, target: OrderStatus | str) -> OrderEvent:
    """Map an admin's requested target state onto a state machine event."""
    current = OrderStatus(current)
    target = OrderStatus(target)
    event = ADMIN_EVENTS.get(target)
    if event is None or (current, event) not in _TRANSITIONS:
        raise InvalidTransition({"status": [f"Cannot change order status from {current.value} to {target.value}"]})
    return event


def can_transition_payment(current: PaymentStatus | str, target: PaymentStatus | str) -> bool:
    return PaymentStatus(target) in _PAYMENT_TRANSITIONS[PaymentStatus(current)]


def assert_payment_transition(current: PaymentStatus | str, target: PaymentStatus | str) -> None:
    if not can_transition_payment(current, target):
        raise InvalidTransition(
            {"payment_status": [f"Cannot change payment status from {PaymentStatus(current).value} to {PaymentStatus(target).value}"]}
        )
