"""Order domain events: immutable facts about order and payment state changes.

All events are past tense and versioned. Side effects (stock, email, refunds
on cancellation) hang off these events, so each one is raised only by the
transition that actually changed state.
"""

from protean.fields import Boolean, DateTime, Float, Identifier, Integer, String, Text

from storefront.domain import storefront


@storefront.event(part_of="Order")
class OrderCreated:
    """A new order was placed."""

    __version__ = 1

    order_id = Identifier(required=True)
    order_number = String(required=True)
    customer_id = Identifier(required=True)
    customer_email = String()
    items = Text(required=True)  # JSON list of item snapshots
    payment_method = String(required=True)
    total = Float(required=True)
    currency = String(required=True)
    created_at = DateTime(required=True)


@storefront.event(part_of="Order")
class InventoryReserved:
    """Stock was booked for the order's line items."""

    __version__ = 1

    order_id = Identifier(required=True)
    items = Text(required=True)  # JSON list of {product_id, quantity}
    reserved_at = DateTime(required=True)


@storefront.event(part_of="Order")
class InventoryReleased:
    """The order's stock reservation was given back."""

    __version__ = 1

    order_id = Identifier(required=True)
    reason = String(required=True)
    released_at = DateTime(required=True)


@storefront.event(part_of="Order")
class PaymentSessionStarted:
    """A gateway session (payment attempt) was opened for the order."""

    __version__ = 1

    order_id = Identifier(required=True)
    order_number = String(required=True)
    attempt_id = Identifier(required=True)
    provider = String(required=True)
    reference = String(required=True)
    amount_expected = Float(required=True)
    currency = String(required=True)
    confirmations_required = Integer(required=True)
    expires_at = DateTime(required=True)
    superseded_reference = String()
    started_at = DateTime(required=True)


@storefront.event(part_of="Order")
class PaymentConfirmationsUpdated:
    """A provider reported progress on an attempt that is not yet accepted."""

    __version__ = 1

    order_id = Identifier(required=True)
    reference = String(required=True)
    confirmations = Integer(required=True)
    confirmations_required = Integer(required=True)
    amount_received = Float(required=True)
    updated_at = DateTime(required=True)


@storefront.event(part_of="Order")
class PaymentUnderpaid:
    """Funds were received but fall short of the tolerance band."""

    __version__ = 1

    order_id = Identifier(required=True)
    order_number = String(required=True)
    customer_email = String()
    provider = String(required=True)
    reference = String(required=True)
    amount_expected = Float(required=True)
    amount_received = Float(required=True)
    currency = String(required=True)
    detected_at = DateTime(required=True)


@storefront.event(part_of="Order")
class PaymentConfirmed:
    """The confirmation policy accepted a payment attempt."""

    __version__ = 1

    order_id = Identifier(required=True)
    order_number = String(required=True)
    customer_email = String()
    provider = String(required=True)
    reference = String(required=True)
    amount_received = Float(required=True)
    confirmations = Integer(required=True)
    confirmed_at = DateTime(required=True)


@storefront.event(part_of="Order")
class PaymentFailed:
    """The provider declined or cancelled a payment attempt."""

    __version__ = 1

    order_id = Identifier(required=True)
    order_number = String(required=True)
    customer_email = String()
    provider = String(required=True)
    reference = String(required=True)
    reason = String(required=True)
    failed_at = DateTime(required=True)


@storefront.event(part_of="Order")
class PaymentExpired:
    """A payment attempt's window closed before it was accepted."""

    __version__ = 1

    order_id = Identifier(required=True)
    order_number = String(required=True)
    customer_email = String()
    provider = String(required=True)
    reference = String(required=True)
    amount_received = Float()
    expired_at = DateTime(required=True)


@storefront.event(part_of="Order")
class OrderStatusChanged:
    """The fulfillment status moved along the state machine."""

    __version__ = 1

    order_id = Identifier(required=True)
    order_number = String(required=True)
    customer_email = String()
    previous_status = String(required=True)
    new_status = String(required=True)
    actor = String(required=True)
    note = String()
    tracking_number = String()
    carrier = String()
    changed_at = DateTime(required=True)


@storefront.event(part_of="Order")
class OrderCancelled:
    """The order was cancelled by the customer, an admin or payment expiry."""

    __version__ = 1

    order_id = Identifier(required=True)
    order_number = String(required=True)
    customer_email = String()
    reason = String(required=True)
    actor = String(required=True)
    refund_required = Boolean(default=False)
    refund_amount = Float()
    currency = String()
    payment_method = String()
    refund_reference = String()
    cancelled_at = DateTime(required=True)


@storefront.event(part_of="Order")
class RefundIssued:
    """Money was returned to the customer, through the gateway or manually."""

    __version__ = 1

    order_id = Identifier(required=True)
    order_number = String(required=True)
    customer_email = String()
    refund_id = String(required=True)
    amount = Float(required=True)
    currency = String(required=True)
    total_refunded = Float(required=True)
    refund_status = String(required=True)
    gateway_refund_id = String()
    manual_reference = String()
    reason = String()
    refunded_at = DateTime(required=True)


@storefront.event(part_of="Order")
class RefundPending:
    """A refund could not be issued automatically and awaits an admin."""

    __version__ = 1

    order_id = Identifier(required=True)
    amount = Float(required=True)
    reason = String(required=True)
    recorded_at = DateTime(required=True)
