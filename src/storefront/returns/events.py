"""Return request domain events."""

from protean.fields import DateTime, Float, Identifier, String, Text

from storefront.domain import storefront


@storefront.event(part_of="ReturnRequest")
class ReturnRequested:
    __version__ = 1

    return_id = Identifier(required=True)
    return_number = String(required=True)
    order_id = Identifier(required=True)
    order_number = String(required=True)
    customer_email = String()
    items = Text(required=True)  # JSON list of returned item snapshots
    total_refund = Float(required=True)
    requested_at = DateTime(required=True)


@storefront.event(part_of="ReturnRequest")
class ReturnApproved:
    __version__ = 1

    return_id = Identifier(required=True)
    return_number = String(required=True)
    order_number = String(required=True)
    customer_email = String()
    admin_id = String(required=True)
    approved_at = DateTime(required=True)


@storefront.event(part_of="ReturnRequest")
class ReturnRejected:
    __version__ = 1

    return_id = Identifier(required=True)
    return_number = String(required=True)
    order_number = String(required=True)
    customer_email = String()
    reason = String(required=True)
    admin_id = String(required=True)
    rejected_at = DateTime(required=True)


@storefront.event(part_of="ReturnRequest")
class ReturnItemReceived:
    __version__ = 1

    return_id = Identifier(required=True)
    return_number = String(required=True)
    admin_id = String(required=True)
    received_at = DateTime(required=True)


@storefront.event(part_of="ReturnRequest")
class ReturnRefundFailed:
    """The provider would not refund; the request waits in processing_refund."""

    __version__ = 1

    return_id = Identifier(required=True)
    return_number = String(required=True)
    order_id = Identifier(required=True)
    reason = String(required=True)
    failed_at = DateTime(required=True)


@storefront.event(part_of="ReturnRequest")
class ReturnRefunded:
    """The refund for a return was accepted by the provider or settled manually."""

    __version__ = 1

    return_id = Identifier(required=True)
    return_number = String(required=True)
    order_id = Identifier(required=True)
    order_number = String(required=True)
    customer_email = String()
    amount = Float(required=True)
    currency = String(required=True)
    gateway_refund_id = String()
    manual_reference = String()
    admin_id = String()
    refunded_at = DateTime(required=True)


@storefront.event(part_of="ReturnRequest")
class ReturnClosed:
    __version__ = 1

    return_id = Identifier(required=True)
    return_number = String(required=True)
    previous_status = String(required=True)
    admin_id = String(required=True)
    closed_at = DateTime(required=True)
