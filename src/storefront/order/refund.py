"""Order refunds: admin-issued refunds and their bookkeeping commands.

The gateway is asked first; the order only records a refund once the
provider (or an admin, out of band) has settled it. Refund ids double as
the provider idempotency key so a retried request never refunds twice.
"""

from datetime import datetime

import structlog
from protean import handle
from protean.exceptions import ValidationError
from protean.fields import DateTime, Float, Identifier, String
from protean.utils.globals import current_domain

from storefront.domain import storefront
from storefront.gateway import get_gateway
from storefront.gateway.errors import RefundDeclined
from storefront.gateway.port import PaymentMethod
from storefront.order.order import Order
from storefront.order.state_machine import OrderStatus
from storefront.utils.clock import utc_now

logger = structlog.get_logger(__name__)


@storefront.command(part_of="Order")
class RecordRefund:
    """Record a settled refund against the order."""

    order_id = Identifier(required=True)
    refund_id = String(required=True, max_length=255)
    amount = Float(required=True)
    reason = String(max_length=500)
    admin_id = String(max_length=100)
    gateway_refund_id = String(max_length=255)
    manual_reference = String(max_length=255)
    refunded_at = DateTime()


@storefront.command(part_of="Order")
class MarkRefundPending:
    """Flag a refund the gateway could not issue for admin follow-up."""

    order_id = Identifier(required=True)
    amount = Float(required=True)
    reason = String(required=True, max_length=500)


@storefront.command(part_of="Order")
class RecordReturnRefund:
    """Record a return's settled refund and mark the order returned."""

    order_id = Identifier(required=True)
    return_number = String(required=True, max_length=30)
    amount = Float(required=True)
    admin_id = String(max_length=100)
    gateway_refund_id = String(max_length=255)
    manual_reference = String(max_length=255)
    refunded_at = DateTime()


@storefront.command_handler(part_of=Order)
class RefundCommandHandler:
    @handle(RecordRefund)
    def record_refund(self, command):
        repo = current_domain.repository_for(Order)
        order = repo.get(command.order_id)
        recorded = order.record_refund(
            refund_id=command.refund_id,
            amount=command.amount,
            reason=command.reason,
            admin_id=command.admin_id,
            gateway_refund_id=command.gateway_refund_id,
            manual_reference=command.manual_reference,
            now=command.refunded_at,
        )
        if not recorded:
            logger.info("Refund already recorded", order_id=str(order.id), refund_id=command.refund_id)
            return False
        repo.add(order)
        return True

    @handle(MarkRefundPending)
    def mark_refund_pending(self, command):
        repo = current_domain.repository_for(Order)
        order = repo.get(command.order_id)
        order.mark_refund_pending(command.amount, command.reason)
        repo.add(order)

    @handle(RecordReturnRefund)
    def record_return_refund(self, command):
        repo = current_domain.repository_for(Order)
        order = repo.get(command.order_id)
        order.record_refund(
            refund_id=command.return_number,
            amount=command.amount,
            reason=f"Return {command.return_number}",
            admin_id=command.admin_id,
            gateway_refund_id=command.gateway_refund_id,
            manual_reference=command.manual_reference,
            now=command.refunded_at,
        )
        if order.status == OrderStatus.DELIVERED.value:
            order.mark_returned(
                f"Return {command.return_number} refunded",
                actor=command.admin_id or "admin",
                now=command.refunded_at,
            )
        repo.add(order)


def next_refund_id(order: Order) -> str:
    return f"{order.order_number}-R{len(order.refunds or []) + 1}"


def issue_refund(
    order_id: str,
    amount: float,
    reason: str,
    admin_id: str,
    manual_reference: str | None = None,
    now: datetime | None = None,
) -> dict:
    """Refund part or all of a confirmed payment.

    With ``manual_reference`` the refund was settled outside the gateway
    (crypto refunds always are) and is only recorded.
    """
    now = now or utc_now()
    order = current_domain.repository_for(Order).get(order_id)
    order.assert_can_refund(amount)
    refund_id = next_refund_id(order)

    gateway_refund_id = None
    if not manual_reference:
        if order.payment_method == PaymentMethod.CASH_ON_DELIVERY.value:
            raise ValidationError(
                {"manual_reference": ["Cash on delivery refunds must be settled manually and need a reference"]}
            )
        result = get_gateway(order.payment_method).refund(
            order.refund_reference, amount, order.currency, idempotency_key=refund_id
        )
        if not result.success:
            logger.warning(
                "Refund needs manual settlement",
                order_id=order_id,
                refund_id=refund_id,
                amount=amount,
                reason=result.failure_reason,
            )
            raise RefundDeclined(result.failure_reason or "Refund was declined by the provider")
        gateway_refund_id = result.gateway_refund_id

    current_domain.process(
        RecordRefund(
            order_id=order_id,
            refund_id=refund_id,
            amount=amount,
            reason=reason,
            admin_id=admin_id,
            gateway_refund_id=gateway_refund_id,
            manual_reference=manual_reference,
            refunded_at=now,
        ),
        asynchronous=False,
    )
    logger.info("Refund issued", order_id=order_id, refund_id=refund_id, amount=amount, admin_id=admin_id)
    return {
        "refund_id": refund_id,
        "amount": amount,
        "gateway_refund_id": gateway_refund_id,
        "manual_reference": manual_reference,
    }
