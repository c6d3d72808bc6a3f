"""Read-side helpers for order status and tracking surfaces.

Nothing here mutates an order. Expiry is reported as it would be computed
now; the sweep or the next notification makes it stick.
"""

from datetime import datetime

from protean.utils.globals import current_domain

from storefront.order.order import HistoryKind, Order
from storefront.order.state_machine import OrderStatus, PaymentStatus
from storefront.utils.clock import utc_now

_CUSTOMER_MESSAGES = {
    PaymentStatus.AWAITING_PAYMENT.value: "Payment pending",
    PaymentStatus.CONFIRMED.value: "Payment confirmed",
    PaymentStatus.UNDERPAID.value: "Underpaid, please contact support",
    PaymentStatus.EXPIRED.value: "Payment window expired",
    PaymentStatus.FAILED.value: "Payment unsuccessful, please try again",
    PaymentStatus.REFUNDED.value: "Payment refunded",
}


def customer_message(payment_status: str) -> str:
    return _CUSTOMER_MESSAGES.get(payment_status, "Payment pending")


def _iso(value: datetime | None) -> str | None:
    return value.isoformat() if value else None


def get_order(order_id: str) -> Order:
    return current_domain.repository_for(Order).get(order_id)


def order_view(order: Order) -> dict:
    details = order.payment_details
    return {
        "id": str(order.id),
        "order_number": order.order_number,
        "customer_id": str(order.customer_id),
        "customer_email": order.customer_email,
        "status": order.status,
        "payment_status": order.payment_status,
        "payment_method": order.payment_method,
        "items": [
            {
                "product_id": str(item.product_id),
                "product_name": item.product_name,
                "quantity": item.quantity,
                "unit_price": item.unit_price,
                "line_total": item.line_total,
            }
            for item in order.items
        ],
        "subtotal": order.subtotal,
        "tax": order.tax,
        "shipping_cost": order.shipping_cost,
        "total": order.total,
        "currency": order.currency,
        "payment_details": details.to_dict() if details else None,
        "tracking_number": order.tracking_number,
        "carrier": order.carrier,
        "refund_status": order.refund_status,
        "total_refunded": order.total_refunded,
        "status_history": [
            {
                "sequence": entry.sequence,
                "kind": entry.kind,
                "status": entry.status,
                "note": entry.note,
                "actor": entry.actor,
                "changed_at": _iso(entry.changed_at),
            }
            for entry in order.history()
        ],
        "created_at": _iso(order.created_at),
        "updated_at": _iso(order.updated_at),
    }


def get_payment_status(order_id: str, now: datetime | None = None) -> dict:
    """What the checkout page polls while waiting on an async payment."""
    now = now or utc_now()
    order = get_order(order_id)
    attempt = order.current_attempt

    payment_status = order.payment_status
    if attempt is not None and attempt.is_open and attempt.is_past_expiry(now):
        payment_status = PaymentStatus.EXPIRED.value

    return {
        "order_id": str(order.id),
        "order_status": (
            OrderStatus.CANCELLED.value if payment_status == PaymentStatus.EXPIRED.value and order.status == OrderStatus.PENDING.value else order.status
        ),
        "payment_status": payment_status,
        "provider": attempt.provider if attempt else order.payment_method,
        "confirmations": attempt.confirmations if attempt else 0,
        "confirmations_required": attempt.confirmations_required if attempt else 0,
        "amount_due": attempt.amount_expected if attempt else order.total,
        "amount_received": attempt.amount_received if attempt else 0.0,
        "expires_at": _iso(attempt.expires_at) if attempt else None,
        "message": customer_message(payment_status),
        "history": [entry.status for entry in order.history(HistoryKind.PAYMENT)],
    }
