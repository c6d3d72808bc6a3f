"""ReturnRequest aggregate: customer returns on delivered orders.

State machine:
    PENDING_REVIEW → APPROVED → ITEM_RECEIVED → PROCESSING_REFUND → REFUNDED
    PENDING_REVIEW → REJECTED (requires a reason)
    any non-terminal state → CLOSED (admin override)

Approval issues no refund. The refund is a separate admin action and the
request only reaches REFUNDED once the provider has accepted it.
"""

import json
import random
from datetime import datetime
from enum import Enum

from protean.exceptions import ValidationError
from protean.fields import DateTime, Float, HasMany, Identifier, Integer, String, Text

from storefront.domain import storefront
from storefront.returns.events import (
    ReturnApproved,
    ReturnClosed,
    ReturnItemReceived,
    ReturnRefunded,
    ReturnRefundFailed,
    ReturnRejected,
    ReturnRequested,
)
from storefront.utils.clock import utc_now

RETURN_WINDOW_DAYS = 30


class ReturnStatus(Enum):
    PENDING_REVIEW = "pending_review"
    APPROVED = "approved"
    REJECTED = "rejected"
    ITEM_RECEIVED = "item_received"
    PROCESSING_REFUND = "processing_refund"
    REFUNDED = "refunded"
    CLOSED = "closed"


class ReturnReason(Enum):
    DAMAGED_RECEIVED = "damaged_received"
    WRONG_ITEM_SENT = "wrong_item_sent"
    NOT_AS_DESCRIBED = "not_as_described"
    CHANGED_MIND = "changed_mind"
    WRONG_SIZE = "wrong_size"
    QUALITY_ISSUES = "quality_issues"
    DEFECTIVE_ITEM = "defective_item"
    OTHER = "other"


class ReturnRefundStatus(Enum):
    NOT_STARTED = "not_started"
    PROCESSING = "processing"
    SUCCEEDED = "succeeded"
    FAILED = "failed"


_VALID_TRANSITIONS = {
    ReturnStatus.PENDING_REVIEW: {ReturnStatus.APPROVED, ReturnStatus.REJECTED, ReturnStatus.CLOSED},
    ReturnStatus.APPROVED: {ReturnStatus.ITEM_RECEIVED, ReturnStatus.CLOSED},
    ReturnStatus.ITEM_RECEIVED: {ReturnStatus.PROCESSING_REFUND, ReturnStatus.CLOSED},
    ReturnStatus.PROCESSING_REFUND: {ReturnStatus.REFUNDED, ReturnStatus.CLOSED},
    ReturnStatus.REJECTED: set(),  # terminal
    ReturnStatus.REFUNDED: set(),  # terminal
    ReturnStatus.CLOSED: set(),  # terminal
}

OPEN_STATUSES = {status.value for status, targets in _VALID_TRANSITIONS.items() if targets}


def generate_return_number(now: datetime) -> str:
    return f"RET-{now:%Y%m%d}-{random.randint(0, 9999):04d}"


@storefront.entity(part_of="ReturnRequest")
class ReturnItem:
    product_id = Identifier(required=True)
    product_name = String(required=True, max_length=255)
    quantity = Integer(required=True, min_value=1)
    unit_price = Float(required=True, min_value=0.0)
    refund_amount = Float(required=True, min_value=0.0)
    reason = String(required=True, choices=ReturnReason)
    description = String(max_length=1000)


@storefront.aggregate
class ReturnRequest:
    return_number = String(required=True, max_length=30)
    order_id = Identifier(required=True)
    order_number = String(required=True, max_length=30)
    customer_id = Identifier(required=True)
    customer_email = String(max_length=255)
    items = HasMany(ReturnItem)
    status = String(choices=ReturnStatus, default=ReturnStatus.PENDING_REVIEW.value)
    total_refund = Float(default=0.0)
    currency = String(max_length=3, default="GBP")
    admin_notes = Text()
    rejection_reason = String(max_length=1000)
    refund_status = String(choices=ReturnRefundStatus, default=ReturnRefundStatus.NOT_STARTED.value)
    refund_reference = String(max_length=255)
    manual_reference = String(max_length=255)
    refund_failure_reason = String(max_length=500)
    requested_at = DateTime()
    approved_at = DateTime()
    item_received_at = DateTime()
    refund_processed_at = DateTime()
    closed_at = DateTime()
    updated_at = DateTime()

    @classmethod
    def create(
        cls,
        order_id: str,
        order_number: str,
        customer_id: str,
        items_data: list[dict],
        customer_email: str | None = None,
        currency: str = "GBP",
        now: datetime | None = None,
    ):
        if not items_data:
            raise ValidationError({"items": ["A return needs at least one item"]})

        now = now or utc_now()
        request = cls(
            return_number=generate_return_number(now),
            order_id=order_id,
            order_number=order_number,
            customer_id=customer_id,
            customer_email=customer_email,
            currency=currency,
            requested_at=now,
            updated_at=now,
        )
        for data in items_data:
            request.add_items(
                ReturnItem(
                    product_id=data["product_id"],
                    product_name=data["product_name"],
                    quantity=data["quantity"],
                    unit_price=data["unit_price"],
                    refund_amount=round(data["unit_price"] * data["quantity"], 2),
                    reason=data["reason"],
                    description=data.get("description"),
                )
            )
        request.total_refund = round(sum(item.refund_amount for item in request.items), 2)

        request.raise_(
            ReturnRequested(
                return_id=str(request.id),
                return_number=request.return_number,
                order_id=str(order_id),
                order_number=order_number,
                customer_email=customer_email,
                items=json.dumps(
                    [
                        {
                            "product_id": str(item.product_id),
                            "quantity": item.quantity,
                            "refund_amount": item.refund_amount,
                            "reason": item.reason,
                        }
                        for item in request.items
                    ]
                ),
                total_refund=request.total_refund,
                requested_at=now,
            )
        )
        return request

    @property
    def is_open(self) -> bool:
        return self.status in OPEN_STATUSES

    def _assert_can_transition(self, target_status: ReturnStatus) -> None:
        current = ReturnStatus(self.status)
        if target_status not in _VALID_TRANSITIONS.get(current, set()):
            raise ValidationError({"status": [f"Cannot transition from {current.value} to {target_status.value}"]})

    def _transition(self, target_status: ReturnStatus, note: str | None, now: datetime) -> None:
        self._assert_can_transition(target_status)
        self.status = target_status.value
        self.updated_at = now
        entry = f"[{now.isoformat()}] Status changed to {target_status.value}"
        if note:
            entry = f"{entry}: {note}"
        self.admin_notes = f"{self.admin_notes}\n{entry}" if self.admin_notes else entry

    def approve(self, admin_id: str, note: str | None = None, now: datetime | None = None) -> None:
        now = now or utc_now()
        self._transition(ReturnStatus.APPROVED, note, now)
        self.approved_at = now
        self.raise_(
            ReturnApproved(
                return_id=str(self.id),
                return_number=self.return_number,
                order_number=self.order_number,
                customer_email=self.customer_email,
                admin_id=admin_id,
                approved_at=now,
            )
        )

    def reject(self, reason: str, admin_id: str, now: datetime | None = None) -> None:
        if not reason or not reason.strip():
            raise ValidationError({"rejection_reason": ["A rejection reason is required"]})
        now = now or utc_now()
        self._transition(ReturnStatus.REJECTED, reason, now)
        self.rejection_reason = reason
        self.closed_at = now
        self.raise_(
            ReturnRejected(
                return_id=str(self.id),
                return_number=self.return_number,
                order_number=self.order_number,
                customer_email=self.customer_email,
                reason=reason,
                admin_id=admin_id,
                rejected_at=now,
            )
        )

    def mark_item_received(self, admin_id: str, note: str | None = None, now: datetime | None = None) -> None:
        now = now or utc_now()
        self._transition(ReturnStatus.ITEM_RECEIVED, note, now)
        self.item_received_at = now
        self.raise_(
            ReturnItemReceived(
                return_id=str(self.id),
                return_number=self.return_number,
                admin_id=admin_id,
                received_at=now,
            )
        )

    def start_refund(self, now: datetime | None = None) -> None:
        """Enter processing_refund. A failed refund may be retried from there."""
        now = now or utc_now()
        if self.status == ReturnStatus.PROCESSING_REFUND.value:
            if self.refund_status != ReturnRefundStatus.FAILED.value:
                raise ValidationError({"status": ["A refund for this return is already in progress"]})
        else:
            self._transition(ReturnStatus.PROCESSING_REFUND, None, now)
        self.refund_status = ReturnRefundStatus.PROCESSING.value
        self.refund_failure_reason = None
        self.updated_at = now

    def complete_refund(
        self,
        gateway_refund_id: str | None = None,
        manual_reference: str | None = None,
        admin_id: str | None = None,
        now: datetime | None = None,
    ) -> None:
        if not gateway_refund_id and not manual_reference:
            raise ValidationError({"refund_reference": ["A gateway refund id or manual reference is required"]})
        now = now or utc_now()
        self._transition(ReturnStatus.REFUNDED, "Refund settled", now)
        self.refund_status = ReturnRefundStatus.SUCCEEDED.value
        self.refund_reference = gateway_refund_id
        self.manual_reference = manual_reference
        self.refund_processed_at = now
        self.raise_(
            ReturnRefunded(
                return_id=str(self.id),
                return_number=self.return_number,
                order_id=str(self.order_id),
                order_number=self.order_number,
                customer_email=self.customer_email,
                amount=self.total_refund,
                currency=self.currency,
                gateway_refund_id=gateway_refund_id,
                manual_reference=manual_reference,
                admin_id=admin_id,
                refunded_at=now,
            )
        )

    def fail_refund(self, reason: str, now: datetime | None = None) -> None:
        if self.status != ReturnStatus.PROCESSING_REFUND.value:
            raise ValidationError({"status": ["Only a refund in progress can fail"]})
        now = now or utc_now()
        self.refund_status = ReturnRefundStatus.FAILED.value
        self.refund_failure_reason = reason
        self.updated_at = now
        self.raise_(
            ReturnRefundFailed(
                return_id=str(self.id),
                return_number=self.return_number,
                order_id=str(self.order_id),
                reason=reason,
                failed_at=now,
            )
        )

    def close(self, admin_id: str, note: str | None = None, now: datetime | None = None) -> None:
        now = now or utc_now()
        previous = self.status
        self._transition(ReturnStatus.CLOSED, note, now)
        self.closed_at = now
        self.raise_(
            ReturnClosed(
                return_id=str(self.id),
                return_number=self.return_number,
                previous_status=previous,
                admin_id=admin_id,
                closed_at=now,
            )
        )
