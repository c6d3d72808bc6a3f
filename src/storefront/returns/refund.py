"""Return refunds.

The request enters ``processing_refund`` before the gateway is called and
only reaches ``refunded`` once the provider accepts. A decline or outage
leaves it in ``processing_refund`` with ``refund_status = failed`` so an
admin can retry or record a manual settlement.
"""

from datetime import datetime

import structlog
from protean import handle
from protean.exceptions import ValidationError
from protean.fields import DateTime, Identifier, String
from protean.utils.globals import current_domain

from storefront.domain import storefront
from storefront.gateway import get_gateway
from storefront.gateway.errors import GatewayError, RefundDeclined
from storefront.gateway.port import PaymentMethod
from storefront.order.order import Order
from storefront.returns.return_request import ReturnRequest
from storefront.utils.clock import utc_now

logger = structlog.get_logger(__name__)


@storefront.command(part_of="ReturnRequest")
class StartReturnRefund:
    return_id = Identifier(required=True)
    started_at = DateTime()


@storefront.command(part_of="ReturnRequest")
class CompleteReturnRefund:
    return_id = Identifier(required=True)
    gateway_refund_id = String(max_length=255)
    manual_reference = String(max_length=255)
    admin_id = String(max_length=100)
    completed_at = DateTime()


@storefront.command(part_of="ReturnRequest")
class FailReturnRefund:
    return_id = Identifier(required=True)
    reason = String(required=True, max_length=500)
    failed_at = DateTime()


@storefront.command_handler(part_of=ReturnRequest)
class ReturnRefundHandler:
    @handle(StartReturnRefund)
    def start_return_refund(self, command):
        repo = current_domain.repository_for(ReturnRequest)
        request = repo.get(command.return_id)
        request.start_refund(command.started_at)
        repo.add(request)

    @handle(CompleteReturnRefund)
    def complete_return_refund(self, command):
        repo = current_domain.repository_for(ReturnRequest)
        request = repo.get(command.return_id)
        request.complete_refund(
            gateway_refund_id=command.gateway_refund_id,
            manual_reference=command.manual_reference,
            admin_id=command.admin_id,
            now=command.completed_at,
        )
        repo.add(request)

    @handle(FailReturnRefund)
    def fail_return_refund(self, command):
        repo = current_domain.repository_for(ReturnRequest)
        request = repo.get(command.return_id)
        request.fail_refund(command.reason, command.failed_at)
        repo.add(request)


def refund_return(
    return_id: str,
    admin_id: str,
    manual_reference: str | None = None,
    now: datetime | None = None,
) -> ReturnRequest:
    """Refund a received return through the original payment's gateway."""
    now = now or utc_now()
    request = current_domain.repository_for(ReturnRequest).get(return_id)
    order = current_domain.repository_for(Order).get(request.order_id)
    order.assert_can_refund(request.total_refund)
    if not manual_reference and order.payment_method == PaymentMethod.CASH_ON_DELIVERY.value:
        raise ValidationError(
            {"manual_reference": ["Cash on delivery refunds must be settled manually and need a reference"]}
        )

    current_domain.process(StartReturnRefund(return_id=return_id, started_at=now), asynchronous=False)

    if manual_reference:
        logger.info("Return refund settled manually", return_id=return_id, manual_reference=manual_reference)
        current_domain.process(
            CompleteReturnRefund(
                return_id=return_id, manual_reference=manual_reference, admin_id=admin_id, completed_at=now
            ),
            asynchronous=False,
        )
        return current_domain.repository_for(ReturnRequest).get(return_id)

    try:
        result = get_gateway(order.payment_method).refund(
            order.refund_reference, request.total_refund, order.currency, idempotency_key=request.return_number
        )
    except GatewayError as exc:
        _record_failure(return_id, str(exc), now)
        raise

    if not result.success:
        reason = result.failure_reason or "Refund was declined by the provider"
        logger.warning(
            "Refund needs manual settlement",
            return_id=return_id,
            order_id=str(order.id),
            amount=request.total_refund,
            reason=reason,
        )
        _record_failure(return_id, reason, now)
        raise RefundDeclined(reason)

    current_domain.process(
        CompleteReturnRefund(
            return_id=return_id,
            gateway_refund_id=result.gateway_refund_id,
            admin_id=admin_id,
            completed_at=now,
        ),
        asynchronous=False,
    )
    logger.info("Return refunded", return_id=return_id, gateway_refund_id=result.gateway_refund_id)
    return current_domain.repository_for(ReturnRequest).get(return_id)


def _record_failure(return_id: str, reason: str, now: datetime) -> None:
    current_domain.process(FailReturnRefund(return_id=return_id, reason=reason, failed_at=now), asynchronous=False)
