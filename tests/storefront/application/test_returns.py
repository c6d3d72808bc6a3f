"""Tests for return submission, admin review and return refunds."""

import json
from datetime import timedelta

import pytest
from protean import current_domain
from protean.exceptions import ValidationError

from storefront.gateway.errors import RefundDeclined
from storefront.order.state_machine import OrderStatus, PaymentStatus
from storefront.returns.refund import refund_return
from storefront.returns.return_request import ReturnRefundStatus, ReturnRequest, ReturnStatus
from storefront.returns.review import ApproveReturn, ReceiveReturnItem, RejectReturn
from storefront.returns.submission import SubmitReturn
from storefront.utils.clock import utc_now


@pytest.fixture()
def submit():
    def _submit(order_id, quantity=1, reason="damaged_received", customer_id="cust-001", **kwargs):
        return current_domain.process(
            SubmitReturn(
                order_id=order_id,
                customer_id=customer_id,
                items=json.dumps([{"product_id": "prod-001", "quantity": quantity, "reason": reason}]),
                **kwargs,
            ),
            asynchronous=False,
        )

    return _submit


@pytest.fixture()
def load_return():
    def _load(return_id):
        return current_domain.repository_for(ReturnRequest).get(return_id)

    return _load


@pytest.fixture()
def received_return(delivered_order, submit):
    return_id = submit(delivered_order)
    current_domain.process(ApproveReturn(return_id=return_id, admin_id="admin-1"), asynchronous=False)
    current_domain.process(ReceiveReturnItem(return_id=return_id, admin_id="admin-1"), asynchronous=False)
    return return_id


class TestSubmission:
    def test_delivered_order_can_be_returned(self, delivered_order, submit, load_return, email):
        return_id = submit(delivered_order)

        request = load_return(return_id)
        assert request.status == ReturnStatus.PENDING_REVIEW.value
        assert request.total_refund == 450.0
        assert request.items[0].product_name == "Analytical Engine Manual"
        assert f"Return request {request.return_number} received" in email.subjects_for("ada@example.com")

    def test_undelivered_order_cannot_be_returned(self, paid_paypal_order, submit):
        with pytest.raises(ValidationError):
            submit(paid_paypal_order)

    def test_only_the_buyer_can_return(self, delivered_order, submit):
        with pytest.raises(ValidationError):
            submit(delivered_order, customer_id="cust-999")

    def test_window_closes_after_thirty_days(self, delivered_order, submit):
        with pytest.raises(ValidationError):
            submit(delivered_order, requested_at=utc_now() + timedelta(days=31))

    def test_cannot_return_more_than_ordered(self, delivered_order, submit):
        with pytest.raises(ValidationError):
            submit(delivered_order, quantity=2)

    def test_reason_must_be_known(self, delivered_order, submit):
        with pytest.raises(ValidationError):
            submit(delivered_order, reason="bored")

    def test_one_open_request_per_order(self, delivered_order, submit):
        submit(delivered_order)
        with pytest.raises(ValidationError):
            submit(delivered_order)

    def test_rejected_request_allows_a_new_one(self, delivered_order, submit):
        return_id = submit(delivered_order)
        current_domain.process(
            RejectReturn(return_id=return_id, admin_id="admin-1", reason="No photos"), asynchronous=False
        )

        assert submit(delivered_order) != return_id


class TestRefund:
    def test_refund_through_the_original_gateway(self, received_return, delivered_order, paypal, load_return, load_order):
        request = refund_return(received_return, "admin-1")

        assert request.status == ReturnStatus.REFUNDED.value
        assert request.refund_status == ReturnRefundStatus.SUCCEEDED.value
        assert request.refund_reference.startswith("fake_ref_")
        assert paypal.calls[-1]["idempotency_key"] == request.return_number

        order = load_order(delivered_order)
        assert order.status == OrderStatus.RETURNED.value
        assert order.payment_status == PaymentStatus.REFUNDED.value
        assert order.total_refunded == 450.0

    def test_declined_refund_can_be_settled_manually(self, received_return, paypal, load_return):
        paypal.configure(should_succeed=True, refund_should_succeed=False, failure_reason="Capture too old")

        with pytest.raises(RefundDeclined):
            refund_return(received_return, "admin-1")

        request = load_return(received_return)
        assert request.status == ReturnStatus.PROCESSING_REFUND.value
        assert request.refund_status == ReturnRefundStatus.FAILED.value
        assert request.refund_failure_reason == "Capture too old"

        request = refund_return(received_return, "admin-1", manual_reference="BANK-42")

        assert request.status == ReturnStatus.REFUNDED.value
        assert request.manual_reference == "BANK-42"

    def test_refund_requires_received_items(self, delivered_order, submit):
        return_id = submit(delivered_order)
        with pytest.raises(ValidationError):
            refund_return(return_id, "admin-1")
