"""Email templates for order and return notifications.

Each template renders a subject and plain-text body from a context dict.
Customer-facing copy never includes raw provider error text.
"""

from enum import Enum


class EmailType(Enum):
    ORDER_CONFIRMATION = "order_confirmation"
    PAYMENT_CONFIRMED = "payment_confirmed"
    PAYMENT_UNDERPAID = "payment_underpaid"
    PAYMENT_FAILED = "payment_failed"
    PAYMENT_EXPIRED = "payment_expired"
    ORDER_SHIPPED = "order_shipped"
    ORDER_DELIVERED = "order_delivered"
    ORDER_CANCELLED = "order_cancelled"
    REFUND_ISSUED = "refund_issued"
    RETURN_RECEIVED = "return_received"
    RETURN_APPROVED = "return_approved"
    RETURN_REJECTED = "return_rejected"
    RETURN_REFUNDED = "return_refunded"


_SIGN_OFF = "\n\nThank you for shopping with us!\nThe Storefront Team"


class OrderConfirmationTemplate:
    email_type = EmailType.ORDER_CONFIRMATION.value

    @staticmethod
    def render(context: dict) -> dict:
        return {
            "subject": f"Order {context.get('order_number', '')} received",
            "body": (
                f"We've received your order {context.get('order_number', '')} "
                f"for {context.get('currency', '')} {context.get('total', 0):.2f}.\n\n"
                "We'll let you know as soon as your payment is confirmed." + _SIGN_OFF
            ),
        }


class PaymentConfirmedTemplate:
    email_type = EmailType.PAYMENT_CONFIRMED.value

    @staticmethod
    def render(context: dict) -> dict:
        return {
            "subject": f"Payment confirmed for order {context.get('order_number', '')}",
            "body": (
                f"Your {context.get('provider', '')} payment for order {context.get('order_number', '')} "
                "has been confirmed and we're preparing your items." + _SIGN_OFF
            ),
        }


class PaymentUnderpaidTemplate:
    email_type = EmailType.PAYMENT_UNDERPAID.value

    @staticmethod
    def render(context: dict) -> dict:
        return {
            "subject": f"Action needed: payment for order {context.get('order_number', '')}",
            "body": (
                f"We received {context.get('amount_received', 0)} {context.get('currency', '')} for order "
                f"{context.get('order_number', '')}, which is less than the "
                f"{context.get('amount_expected', 0)} {context.get('currency', '')} due.\n\n"
                "Please contact support to complete your payment." + _SIGN_OFF
            ),
        }


class PaymentFailedTemplate:
    email_type = EmailType.PAYMENT_FAILED.value

    @staticmethod
    def render(context: dict) -> dict:
        return {
            "subject": f"Payment unsuccessful for order {context.get('order_number', '')}",
            "body": (
                f"We couldn't complete the payment for order {context.get('order_number', '')}.\n\n"
                "Your order is still open, so you can try again with another payment method." + _SIGN_OFF
            ),
        }


class PaymentExpiredTemplate:
    email_type = EmailType.PAYMENT_EXPIRED.value

    @staticmethod
    def render(context: dict) -> dict:
        return {
            "subject": f"Order {context.get('order_number', '')} cancelled: payment window expired",
            "body": (
                f"The payment window for order {context.get('order_number', '')} closed before "
                "we received a confirmed payment, so the order has been cancelled." + _SIGN_OFF
            ),
        }


class OrderShippedTemplate:
    email_type = EmailType.ORDER_SHIPPED.value

    @staticmethod
    def render(context: dict) -> dict:
        return {
            "subject": f"Order {context.get('order_number', '')} has shipped",
            "body": (
                f"Your order {context.get('order_number', '')} is on its way with "
                f"{context.get('carrier', 'our carrier')}.\n"
                f"Tracking number: {context.get('tracking_number', 'N/A')}" + _SIGN_OFF
            ),
        }


class OrderDeliveredTemplate:
    email_type = EmailType.ORDER_DELIVERED.value

    @staticmethod
    def render(context: dict) -> dict:
        return {
            "subject": f"Order {context.get('order_number', '')} delivered",
            "body": (
                f"Your order {context.get('order_number', '')} has been delivered.\n\n"
                "If anything isn't right you can request a return within 30 days." + _SIGN_OFF
            ),
        }


class OrderCancelledTemplate:
    email_type = EmailType.ORDER_CANCELLED.value

    @staticmethod
    def render(context: dict) -> dict:
        return {
            "subject": f"Order {context.get('order_number', '')} cancelled",
            "body": (
                f"Your order {context.get('order_number', '')} has been cancelled.\n"
                f"Reason: {context.get('reason', 'Not specified')}" + _SIGN_OFF
            ),
        }


class RefundIssuedTemplate:
    email_type = EmailType.REFUND_ISSUED.value

    @staticmethod
    def render(context: dict) -> dict:
        return {
            "subject": f"Refund for order {context.get('order_number', '')}",
            "body": (
                f"We've refunded {context.get('currency', '')} {context.get('amount', 0):.2f} "
                f"for order {context.get('order_number', '')}." + _SIGN_OFF
            ),
        }


class ReturnReceivedTemplate:
    email_type = EmailType.RETURN_RECEIVED.value

    @staticmethod
    def render(context: dict) -> dict:
        return {
            "subject": f"Return request {context.get('return_number', '')} received",
            "body": (
                f"We've received your return request {context.get('return_number', '')} for order "
                f"{context.get('order_number', '')}. Our team will review it shortly." + _SIGN_OFF
            ),
        }


class ReturnApprovedTemplate:
    email_type = EmailType.RETURN_APPROVED.value

    @staticmethod
    def render(context: dict) -> dict:
        return {
            "subject": f"Return request {context.get('return_number', '')} approved",
            "body": (
                f"Your return request {context.get('return_number', '')} has been approved.\n\n"
                "Please send the items back; we'll refund you once they arrive." + _SIGN_OFF
            ),
        }


class ReturnRejectedTemplate:
    email_type = EmailType.RETURN_REJECTED.value

    @staticmethod
    def render(context: dict) -> dict:
        return {
            "subject": f"Return request {context.get('return_number', '')} declined",
            "body": (
                f"Unfortunately we can't accept return request {context.get('return_number', '')}.\n"
                f"Reason: {context.get('reason', 'Not specified')}" + _SIGN_OFF
            ),
        }


class ReturnRefundedTemplate:
    email_type = EmailType.RETURN_REFUNDED.value

    @staticmethod
    def render(context: dict) -> dict:
        return {
            "subject": f"Refund processed for return {context.get('return_number', '')}",
            "body": (
                f"We've processed a refund of {context.get('currency', '')} {context.get('amount', 0):.2f} "
                f"for return {context.get('return_number', '')}." + _SIGN_OFF
            ),
        }


TEMPLATE_REGISTRY: dict[str, type] = {
    template.email_type: template
    for template in (
        OrderConfirmationTemplate,
        PaymentConfirmedTemplate,
        PaymentUnderpaidTemplate,
        PaymentFailedTemplate,
        PaymentExpiredTemplate,
        OrderShippedTemplate,
        OrderDeliveredTemplate,
        OrderCancelledTemplate,
        RefundIssuedTemplate,
        ReturnReceivedTemplate,
        ReturnApprovedTemplate,
        ReturnRejectedTemplate,
        ReturnRefundedTemplate,
    )
}


def get_template(email_type: str):
    """Look up a template class by email type string."""
    template_cls = TEMPLATE_REGISTRY.get(email_type)
    if template_cls is None:
        raise ValueError(f"No template registered for email type: {email_type}")
    return template_cls
