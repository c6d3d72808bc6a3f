"""Return side effects: customer emails and settling the refund on the order."""

import structlog
from protean.utils.globals import current_domain
from protean.utils.mixins import handle

from storefront.domain import storefront
from storefront.notifications.notifier import notify
from storefront.notifications.templates import EmailType
from storefront.order.refund import RecordReturnRefund
from storefront.returns.events import ReturnApproved, ReturnRefunded, ReturnRejected, ReturnRequested
from storefront.returns.return_request import ReturnRequest

logger = structlog.get_logger(__name__)


@storefront.event_handler(part_of=ReturnRequest)
class ReturnEmailHandler:
    @handle(ReturnRequested)
    def on_return_requested(self, event: ReturnRequested) -> None:
        notify(
            EmailType.RETURN_RECEIVED,
            event.customer_email,
            {"return_number": event.return_number, "order_number": event.order_number},
        )

    @handle(ReturnApproved)
    def on_return_approved(self, event: ReturnApproved) -> None:
        notify(EmailType.RETURN_APPROVED, event.customer_email, {"return_number": event.return_number})

    @handle(ReturnRejected)
    def on_return_rejected(self, event: ReturnRejected) -> None:
        notify(
            EmailType.RETURN_REJECTED,
            event.customer_email,
            {"return_number": event.return_number, "reason": event.reason},
        )

    @handle(ReturnRefunded)
    def on_return_refunded(self, event: ReturnRefunded) -> None:
        notify(
            EmailType.RETURN_REFUNDED,
            event.customer_email,
            {"return_number": event.return_number, "amount": event.amount, "currency": event.currency},
        )


@storefront.event_handler(part_of=ReturnRequest)
class ReturnSettlementHandler:
    """Books a settled return refund on its order."""

    @handle(ReturnRefunded)
    def on_return_refunded(self, event: ReturnRefunded) -> None:
        try:
            current_domain.process(
                RecordReturnRefund(
                    order_id=str(event.order_id),
                    return_number=event.return_number,
                    amount=event.amount,
                    admin_id=event.admin_id,
                    gateway_refund_id=event.gateway_refund_id,
                    manual_reference=event.manual_reference,
                    refunded_at=event.refunded_at,
                ),
                asynchronous=False,
            )
        except Exception as exc:
            logger.error(
                "Return refund not recorded on order",
                order_id=str(event.order_id),
                return_number=event.return_number,
                error=str(exc),
            )
