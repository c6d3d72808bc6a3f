import json
from datetime import UTC, datetime

import pytest
from protean import current_domain
from protean.integrations.pytest import DomainFixture

from storefront.config import reset_settings
from storefront.gateway import reset_gateways, set_gateway
from storefront.gateway.fake_adapter import FakeGateway
from storefront.inventory import reset_inventory, set_inventory
from storefront.inventory.memory import InMemoryInventoryLedger
from storefront.ledger import reset_ledger, set_ledger
from storefront.ledger.memory import InMemoryWebhookLedger
from storefront.notifications import reset_email, set_email
from storefront.notifications.fake_email import FakeEmailAdapter
from storefront.order.creation import CreateOrder
from storefront.order.order import Order

NOW = datetime(2026, 3, 2, 12, 0, tzinfo=UTC)
CUSTOMER_EMAIL = "ada@example.com"

SHIPPING_ADDRESS = {
    "full_name": "Ada Lovelace",
    "street": "12 St James's Square",
    "city": "London",
    "postal_code": "SW1Y 4JH",
    "country": "GB",
}


@pytest.fixture(scope="session")
def storefront_bed():
    from storefront.domain import storefront

    bed = DomainFixture(storefront)
    bed.setup()
    yield bed
    bed.teardown()


@pytest.fixture(autouse=True)
def _ctx(storefront_bed):
    with storefront_bed.domain_context():
        yield


@pytest.fixture(autouse=True)
def email():
    adapter = FakeEmailAdapter()
    set_email(adapter)
    yield adapter
    reset_email()


@pytest.fixture(autouse=True)
def inventory():
    ledger = InMemoryInventoryLedger()
    set_inventory(ledger)
    yield ledger
    reset_inventory()


@pytest.fixture(autouse=True)
def webhook_ledger():
    ledger = InMemoryWebhookLedger()
    set_ledger(ledger)
    yield ledger
    reset_ledger()


@pytest.fixture(autouse=True)
def _reset_gateways():
    reset_settings()
    reset_gateways()
    yield
    reset_gateways()
    reset_settings()


@pytest.fixture()
def now():
    return NOW


def _fake(provider, clock):
    gateway = FakeGateway(provider=provider, clock=clock)
    set_gateway(provider, gateway)
    return gateway


@pytest.fixture()
def paypal(now):
    return _fake("paypal", lambda: now)


@pytest.fixture()
def bitcoin(now):
    return _fake("bitcoin", lambda: now)


@pytest.fixture()
def monero(now):
    return _fake("monero", lambda: now)


@pytest.fixture()
def place_order():
    """Factory placing an order through the CreateOrder command. Returns the order id."""

    def _place(
        payment_method="bitcoin",
        unit_price=450.0,
        quantity=1,
        product_id="prod-001",
        customer_id="cust-001",
        customer_email=CUSTOMER_EMAIL,
        shipping_cost=0.0,
    ):
        command = CreateOrder(
            customer_id=customer_id,
            customer_email=customer_email,
            items=json.dumps(
                [
                    {
                        "product_id": product_id,
                        "product_name": "Analytical Engine Manual",
                        "quantity": quantity,
                        "unit_price": unit_price,
                    }
                ]
            ),
            shipping_address=json.dumps(SHIPPING_ADDRESS),
            payment_method=payment_method,
            shipping_cost=shipping_cost,
        )
        return current_domain.process(command, asynchronous=False)

    return _place


@pytest.fixture()
def load_order():
    def _load(order_id):
        return current_domain.repository_for(Order).get(order_id)

    return _load
