"""Builders shared by the domain tests."""

from datetime import timedelta

import pytest

from storefront.gateway.port import PaymentSession
from storefront.order.order import Order

ADDRESS = {
    "full_name": "Ada Lovelace",
    "street": "12 St James's Square",
    "city": "London",
    "postal_code": "SW1Y 4JH",
    "country": "GB",
}


@pytest.fixture()
def address():
    return dict(ADDRESS)


@pytest.fixture()
def make_order(now):
    def _make(payment_method="bitcoin", unit_price=450.0, quantity=1, **kwargs):
        order = Order.create(
            customer_id="cust-001",
            items_data=[
                {"product_id": "prod-001", "product_name": "Manual", "quantity": quantity, "unit_price": unit_price}
            ],
            shipping_address=ADDRESS,
            payment_method=payment_method,
            customer_email="ada@example.com",
            now=now,
            **kwargs,
        )
        order._events.clear()
        return order

    return _make


@pytest.fixture()
def bitcoin_session(now):
    def _session(reference="bc1-address-1", amount_due=0.01, minutes=30):
        return PaymentSession(
            provider="bitcoin",
            reference=reference,
            amount_due=amount_due,
            currency="BTC",
            expires_at=now + timedelta(minutes=minutes),
            confirmations_required=2,
            address=reference,
            fiat_amount=450.0,
            fiat_currency="GBP",
            exchange_rate=45000.0,
        )

    return _session


@pytest.fixture()
def paypal_session(now):
    def _session(reference="PAYPAL-ORDER-1", amount_due=450.0):
        return PaymentSession(
            provider="paypal",
            reference=reference,
            amount_due=amount_due,
            currency="GBP",
            expires_at=now + timedelta(hours=3),
            redirect_url=f"https://www.sandbox.paypal.com/checkoutnow?token={reference}",
            fiat_amount=amount_due,
            fiat_currency="GBP",
        )

    return _session


@pytest.fixture()
def bitcoin_order(make_order, bitcoin_session, now):
    """A £450 Bitcoin order with an open 0.01 BTC session."""
    order = make_order("bitcoin")
    order.start_payment_session(bitcoin_session(), now=now)
    order._events.clear()
    return order


@pytest.fixture()
def confirmed_order(make_order, paypal_session, now):
    """A £450 PayPal order whose capture has been accepted."""
    order = make_order("paypal")
    order.start_payment_session(paypal_session(), now=now)
    order.apply_payment_update("PAYPAL-ORDER-1", "payment", amount_received=450.0, capture_id="CAP-1", now=now)
    order._events.clear()
    return order


def event_names(order):
    return [type(event).__name__ for event in order._events]


@pytest.fixture()
def events_of():
    return event_names
