"""Tests for synchronous capture and status polling."""

from datetime import timedelta

import pytest
from protean.exceptions import ValidationError

from storefront.gateway.port import NotificationKind, PaymentNotification
from storefront.order.queries import get_payment_status
from storefront.order.payment import capture_payment, create_payment_session, refresh_payment_status
from storefront.order.state_machine import OrderStatus, PaymentStatus


class TestCapture:
    def test_successful_capture_confirms_the_order(self, paid_paypal_order, load_order):
        order = load_order(paid_paypal_order)

        assert order.status == OrderStatus.PROCESSING.value
        assert order.payment_status == PaymentStatus.CONFIRMED.value
        assert order.refund_reference.startswith("fake_cap_")

    def test_declined_capture_fails_the_payment(self, place_order, paypal, load_order, inventory, now):
        order_id = place_order("paypal")
        create_payment_session(order_id, "paypal", now=now)
        paypal.configure(should_succeed=False, failure_reason="INSTRUMENT_DECLINED")

        outcome = capture_payment(order_id, now=now)

        assert outcome == "failed"
        order = load_order(order_id)
        assert order.status == OrderStatus.PENDING.value
        assert order.payment_status == PaymentStatus.FAILED.value
        assert order.current_attempt.failure_reason == "INSTRUMENT_DECLINED"
        assert inventory.release_count(order_id) == 1

    def test_second_capture_does_not_call_the_gateway(self, paid_paypal_order, paypal, now):
        captures = sum(1 for call in paypal.calls if call["method"] == "capture")

        assert capture_payment(paid_paypal_order, now=now) == "already_accepted"
        assert sum(1 for call in paypal.calls if call["method"] == "capture") == captures

    def test_capture_after_the_approval_window_expires_without_charging(self, place_order, paypal, load_order, now):
        order_id = place_order("paypal")
        create_payment_session(order_id, "paypal", now=now)

        outcome = capture_payment(order_id, now=now + timedelta(hours=3, minutes=1))

        assert outcome == "expired"
        assert not [call for call in paypal.calls if call["method"] == "capture"]
        order = load_order(order_id)
        assert order.status == OrderStatus.CANCELLED.value
        assert order.payment_status == PaymentStatus.EXPIRED.value

    def test_capture_without_session(self, place_order, paypal, now):
        with pytest.raises(ValidationError):
            capture_payment(place_order("paypal"), now=now)

    def test_crypto_cannot_be_captured(self, bitcoin_checkout, now):
        order_id, _ = bitcoin_checkout
        with pytest.raises(ValidationError):
            capture_payment(order_id, now=now)


class TestRefresh:
    def test_refresh_applies_the_gateway_snapshot(self, bitcoin_checkout, bitcoin, load_order, now):
        order_id, session = bitcoin_checkout
        bitcoin.set_status(
            session["reference"],
            PaymentNotification(
                provider="bitcoin",
                reference=session["reference"],
                kind=NotificationKind.PAYMENT,
                confirmations=2,
                amount_received=0.01,
            ),
        )

        assert refresh_payment_status(order_id, now=now) == "accepted"
        assert load_order(order_id).payment_status == PaymentStatus.CONFIRMED.value

    def test_nothing_received_yet(self, bitcoin_checkout, now):
        order_id, _ = bitcoin_checkout
        assert refresh_payment_status(order_id, now=now) == "informational"

    def test_refresh_past_expiry_expires_without_polling(self, bitcoin_checkout, bitcoin, load_order, now):
        order_id, _ = bitcoin_checkout

        assert refresh_payment_status(order_id, now=now + timedelta(minutes=31)) == "expired"
        assert not any(call["method"] == "check_status" for call in bitcoin.calls)
        assert load_order(order_id).payment_status == PaymentStatus.EXPIRED.value

    def test_settled_order_is_not_polled(self, paid_paypal_order, now):
        assert refresh_payment_status(paid_paypal_order, now=now) is None


class TestPaymentStatusView:
    def test_status_for_checkout_polling(self, bitcoin_checkout, deliver, now):
        order_id, session = bitcoin_checkout
        deliver("bitcoin", session["reference"], "tx-1:1", confirmations=1, amount_received=0.01)

        status = get_payment_status(order_id, now=now)

        assert status["payment_status"] == PaymentStatus.AWAITING_PAYMENT.value
        assert status["confirmations"] == 1
        assert status["confirmations_required"] == 2
        assert status["amount_due"] == 0.01
        assert status["message"] == "Payment pending"

    def test_lapsed_window_is_reported_as_expired(self, bitcoin_checkout, now):
        order_id, _ = bitcoin_checkout

        status = get_payment_status(order_id, now=now + timedelta(hours=1))

        assert status["payment_status"] == PaymentStatus.EXPIRED.value
        assert status["order_status"] == OrderStatus.CANCELLED.value
        assert status["message"] == "Payment window expired"
