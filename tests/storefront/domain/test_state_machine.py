"""Tests for the fulfillment and payment state machines."""

from itertools import product

import pytest

from storefront.order.state_machine import (
    InvalidTransition,
    OrderEvent,
    OrderStatus,
    PaymentStatus,
    admin_event_for,
    assert_payment_transition,
    can_transition_payment,
    next_status,
)

ALLOWED = {
    (OrderStatus.PENDING, OrderEvent.PAYMENT_CONFIRMED): OrderStatus.PROCESSING,
    (OrderStatus.PENDING, OrderEvent.START_PROCESSING): OrderStatus.PROCESSING,
    (OrderStatus.PENDING, OrderEvent.CANCEL): OrderStatus.CANCELLED,
    (OrderStatus.PROCESSING, OrderEvent.SHIP): OrderStatus.SHIPPED,
    (OrderStatus.PROCESSING, OrderEvent.CANCEL): OrderStatus.CANCELLED,
    (OrderStatus.SHIPPED, OrderEvent.DISPATCH_FOR_DELIVERY): OrderStatus.OUT_FOR_DELIVERY,
    (OrderStatus.SHIPPED, OrderEvent.DELIVER): OrderStatus.DELIVERED,
    (OrderStatus.OUT_FOR_DELIVERY, OrderEvent.DELIVER): OrderStatus.DELIVERED,
    (OrderStatus.DELIVERED, OrderEvent.RETURN): OrderStatus.RETURNED,
}


class TestNextStatus:
    @pytest.mark.parametrize(("state", "event"), list(product(OrderStatus, OrderEvent)))
    def test_every_pair_is_either_a_transition_or_rejected(self, state, event):
        if (state, event) in ALLOWED:
            assert next_status(state, event) == ALLOWED[(state, event)]
        else:
            with pytest.raises(InvalidTransition):
                next_status(state, event)

    def test_accepts_string_values(self):
        assert next_status("pending", "payment_confirmed") == OrderStatus.PROCESSING

    @pytest.mark.parametrize("state", [OrderStatus.CANCELLED, OrderStatus.RETURNED])
    def test_terminal_states_have_no_exits(self, state):
        for event in OrderEvent:
            with pytest.raises(InvalidTransition):
                next_status(state, event)

    def test_cannot_cancel_a_shipped_order(self):
        with pytest.raises(InvalidTransition) as exc:
            next_status(OrderStatus.SHIPPED, OrderEvent.CANCEL)
        assert "shipped" in exc.value.messages["status"][0]


class TestAdminOverride:
    def test_pending_to_processing_skips_payment(self):
        assert admin_event_for("pending", "processing") == OrderEvent.START_PROCESSING

    def test_shipped_can_skip_straight_to_delivered(self):
        assert admin_event_for("shipped", "delivered") == OrderEvent.DELIVER

    def test_delivered_to_pending_is_rejected(self):
        with pytest.raises(InvalidTransition):
            admin_event_for("delivered", "pending")

    def test_returned_is_not_an_admin_target(self):
        with pytest.raises(InvalidTransition):
            admin_event_for("delivered", "returned")

    def test_unknown_status_is_rejected(self):
        with pytest.raises(ValueError):
            admin_event_for("pending", "teleported")


class TestPaymentTransitions:
    @pytest.mark.parametrize(
        "target", [PaymentStatus.CONFIRMED, PaymentStatus.UNDERPAID, PaymentStatus.EXPIRED, PaymentStatus.FAILED]
    )
    def test_awaiting_payment_can_resolve(self, target):
        assert can_transition_payment(PaymentStatus.AWAITING_PAYMENT, target)

    def test_underpaid_can_still_expire(self):
        assert can_transition_payment("underpaid", "expired")

    def test_failed_can_start_over(self):
        assert can_transition_payment("failed", "awaiting_payment")

    def test_only_confirmed_can_be_refunded(self):
        assert can_transition_payment("confirmed", "refunded")
        assert not can_transition_payment("awaiting_payment", "refunded")

    @pytest.mark.parametrize("terminal", [PaymentStatus.EXPIRED, PaymentStatus.REFUNDED])
    def test_terminal_payment_states(self, terminal):
        for target in PaymentStatus:
            assert not can_transition_payment(terminal, target)

    def test_expired_never_becomes_confirmed(self):
        with pytest.raises(InvalidTransition):
            assert_payment_transition("expired", "confirmed")
