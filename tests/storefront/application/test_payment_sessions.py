"""Tests for opening, reusing and switching payment sessions."""

from datetime import timedelta

import pytest
from protean.exceptions import ValidationError

from storefront.order.lookup import find_order_id
from storefront.order.order import AttemptStatus
from storefront.order.payment import create_payment_session
from storefront.order.state_machine import InvalidTransition, OrderStatus, PaymentStatus


class TestCreateSession:
    def test_bitcoin_session_quotes_crypto_amount(self, place_order, bitcoin, now):
        order_id = place_order("bitcoin")

        session = create_payment_session(order_id, "bitcoin", now=now)

        assert session["provider"] == "bitcoin"
        assert session["amount_due"] == 0.01
        assert session["currency"] == "BTC"
        assert session["fiat_amount"] == 450.0
        assert session["confirmations_required"] == 2
        assert session["address"] == session["reference"]
        assert session["expires_at"] == now + timedelta(minutes=30)
        assert session["reused"] is False

    def test_gateway_sees_order_number_and_total(self, place_order, load_order, bitcoin, now):
        order_id = place_order("bitcoin", unit_price=100.0, quantity=2, shipping_cost=5.0)

        create_payment_session(order_id, "bitcoin", now=now)

        call = bitcoin.calls[-1]
        assert call["order_reference"] == load_order(order_id).order_number
        assert call["amount"] == 205.0
        assert call["currency"] == "GBP"

    def test_paypal_session_carries_redirect(self, place_order, paypal, now):
        session = create_payment_session(place_order("paypal"), "paypal", now=now)
        assert session["redirect_url"].startswith("https://fake-gateway.test/approve/")
        assert session["confirmations_required"] == 0

    def test_reference_is_indexed_for_webhooks(self, bitcoin_checkout):
        order_id, session = bitcoin_checkout
        assert find_order_id("bitcoin", session["reference"]) == order_id
        assert find_order_id("monero", session["reference"]) is None

    def test_cash_on_delivery_has_no_session(self, place_order, now):
        with pytest.raises(ValidationError):
            create_payment_session(place_order("cash_on_delivery"), "cash_on_delivery", now=now)


class TestReuseAndSwitch:
    def test_open_session_is_reused(self, bitcoin_checkout, bitcoin, now):
        order_id, first = bitcoin_checkout

        second = create_payment_session(order_id, "bitcoin", now=now + timedelta(minutes=5))

        assert second["reused"] is True
        assert second["reference"] == first["reference"]
        assert [call["method"] for call in bitcoin.calls] == ["create_payment"]

    def test_switching_method_supersedes_the_open_session(self, bitcoin_checkout, monero, load_order, now):
        order_id, first = bitcoin_checkout

        second = create_payment_session(order_id, "monero", now=now)

        order = load_order(order_id)
        assert second["provider"] == "monero"
        assert order.payment_method == "monero"
        assert order.attempt_for(first["reference"]).status == AttemptStatus.SUPERSEDED.value
        assert find_order_id("monero", second["reference"]) == order_id

    def test_session_after_expiry_is_refused(self, bitcoin_checkout, load_order, now):
        order_id, _ = bitcoin_checkout

        with pytest.raises(InvalidTransition):
            create_payment_session(order_id, "bitcoin", now=now + timedelta(minutes=31))

        order = load_order(order_id)
        assert order.status == OrderStatus.CANCELLED.value
        assert order.payment_status == PaymentStatus.EXPIRED.value

    def test_failed_payment_can_retry_with_another_method(self, paypal, bitcoin, place_order, load_order, now):
        from storefront.order.payment import capture_payment

        order_id = place_order("paypal")
        create_payment_session(order_id, "paypal", now=now)
        paypal.configure(should_succeed=False, failure_reason="Card declined")
        capture_payment(order_id, now=now)
        assert load_order(order_id).payment_status == PaymentStatus.FAILED.value

        create_payment_session(order_id, "bitcoin", now=now)

        order = load_order(order_id)
        assert order.payment_status == PaymentStatus.AWAITING_PAYMENT.value
        assert order.inventory_reserved is True
