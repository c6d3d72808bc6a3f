"""Order side effects: stock bookings, customer emails and cancellation refunds.

Every handler here runs after the order change it reacts to has been
committed, so nothing here may undo it. Failures are logged and swallowed;
a refund the gateway will not issue leaves the order in ``pending_refund``
for an admin to settle.
"""

import json

import structlog
from protean.utils.globals import current_domain
from protean.utils.mixins import handle

from storefront.domain import storefront
from storefront.gateway import get_gateway
from storefront.inventory import get_inventory
from storefront.inventory.port import StockLine
from storefront.notifications.notifier import notify
from storefront.notifications.templates import EmailType
from storefront.order.events import (
    InventoryReleased,
    InventoryReserved,
    OrderCancelled,
    OrderCreated,
    OrderStatusChanged,
    PaymentConfirmed,
    PaymentExpired,
    PaymentFailed,
    PaymentUnderpaid,
    RefundIssued,
)
from storefront.order.order import Order
from storefront.order.refund import MarkRefundPending, RecordRefund
from storefront.order.state_machine import OrderStatus

logger = structlog.get_logger(__name__)


@storefront.event_handler(part_of=Order)
class InventoryBookingHandler:
    """Mirrors the order's ``inventory_reserved`` flag into the inventory ledger."""

    @handle(InventoryReserved)
    def on_inventory_reserved(self, event: InventoryReserved) -> None:
        lines = [StockLine(product_id=line["product_id"], quantity=line["quantity"]) for line in json.loads(event.items)]
        try:
            reserved = get_inventory().reserve(str(event.order_id), lines)
        except Exception as exc:
            logger.warning("Inventory reservation failed", order_id=str(event.order_id), error=str(exc))
            return
        if not reserved:
            logger.info("Inventory already reserved", order_id=str(event.order_id))

    @handle(InventoryReleased)
    def on_inventory_released(self, event: InventoryReleased) -> None:
        try:
            released = get_inventory().release(str(event.order_id))
        except Exception as exc:
            logger.warning("Inventory release failed", order_id=str(event.order_id), error=str(exc))
            return
        logger.info("Inventory released", order_id=str(event.order_id), reason=event.reason, released=released)


@storefront.event_handler(part_of=Order)
class OrderEmailHandler:
    """Best-effort customer emails for order and payment milestones."""

    @handle(OrderCreated)
    def on_order_created(self, event: OrderCreated) -> None:
        notify(
            EmailType.ORDER_CONFIRMATION,
            event.customer_email,
            {"order_number": event.order_number, "total": event.total, "currency": event.currency},
        )

    @handle(PaymentConfirmed)
    def on_payment_confirmed(self, event: PaymentConfirmed) -> None:
        notify(
            EmailType.PAYMENT_CONFIRMED,
            event.customer_email,
            {"order_number": event.order_number, "provider": event.provider},
        )

    @handle(PaymentUnderpaid)
    def on_payment_underpaid(self, event: PaymentUnderpaid) -> None:
        notify(
            EmailType.PAYMENT_UNDERPAID,
            event.customer_email,
            {
                "order_number": event.order_number,
                "amount_received": event.amount_received,
                "amount_expected": event.amount_expected,
                "currency": event.currency,
            },
        )

    @handle(PaymentFailed)
    def on_payment_failed(self, event: PaymentFailed) -> None:
        # Provider text stays out of customer email
        notify(EmailType.PAYMENT_FAILED, event.customer_email, {"order_number": event.order_number})

    @handle(PaymentExpired)
    def on_payment_expired(self, event: PaymentExpired) -> None:
        notify(EmailType.PAYMENT_EXPIRED, event.customer_email, {"order_number": event.order_number})

    @handle(OrderStatusChanged)
    def on_order_status_changed(self, event: OrderStatusChanged) -> None:
        if event.new_status == OrderStatus.SHIPPED.value:
            notify(
                EmailType.ORDER_SHIPPED,
                event.customer_email,
                {
                    "order_number": event.order_number,
                    "tracking_number": event.tracking_number,
                    "carrier": event.carrier,
                },
            )
        elif event.new_status == OrderStatus.DELIVERED.value:
            notify(EmailType.ORDER_DELIVERED, event.customer_email, {"order_number": event.order_number})

    @handle(OrderCancelled)
    def on_order_cancelled(self, event: OrderCancelled) -> None:
        # Expiry cancellations already got the expiry email
        if event.actor == "system":
            return
        notify(
            EmailType.ORDER_CANCELLED,
            event.customer_email,
            {"order_number": event.order_number, "reason": event.reason},
        )

    @handle(RefundIssued)
    def on_refund_issued(self, event: RefundIssued) -> None:
        notify(
            EmailType.REFUND_ISSUED,
            event.customer_email,
            {"order_number": event.order_number, "amount": event.amount, "currency": event.currency},
        )


@storefront.event_handler(part_of=Order)
class CancellationRefundHandler:
    """Refunds a confirmed payment when its order is cancelled."""

    @handle(OrderCancelled)
    def on_order_cancelled(self, event: OrderCancelled) -> None:
        if not event.refund_required:
            return

        refund_id = f"{event.order_number}-CANCEL"
        try:
            result = get_gateway(event.payment_method).refund(
                event.refund_reference, event.refund_amount, event.currency, idempotency_key=refund_id
            )
        except Exception as exc:
            logger.warning(
                "Cancellation refund raised; marking refund pending",
                order_id=str(event.order_id),
                error=str(exc),
            )
            self._mark_pending(event, "Gateway unavailable")
            return

        if not result.success:
            logger.warning(
                "Refund needs manual settlement",
                order_id=str(event.order_id),
                amount=event.refund_amount,
                reason=result.failure_reason,
            )
            self._mark_pending(event, result.failure_reason or "Refund declined")
            return

        try:
            current_domain.process(
                RecordRefund(
                    order_id=str(event.order_id),
                    refund_id=refund_id,
                    amount=event.refund_amount,
                    reason=f"Order cancelled: {event.reason}",
                    admin_id=event.actor,
                    gateway_refund_id=result.gateway_refund_id,
                    refunded_at=event.cancelled_at,
                ),
                asynchronous=False,
            )
        except Exception as exc:
            logger.error(
                "Refund issued but not recorded",
                order_id=str(event.order_id),
                refund_id=refund_id,
                gateway_refund_id=result.gateway_refund_id,
                error=str(exc),
            )

    @staticmethod
    def _mark_pending(event: OrderCancelled, reason: str) -> None:
        try:
            current_domain.process(
                MarkRefundPending(order_id=str(event.order_id), amount=event.refund_amount, reason=reason),
                asynchronous=False,
            )
        except Exception as exc:
            logger.error("Failed to mark refund pending", order_id=str(event.order_id), error=str(exc))
