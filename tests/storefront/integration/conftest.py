import pytest
from fastapi import FastAPI
from fastapi.testclient import TestClient
from protean.integrations.fastapi import register_exception_handlers

from storefront.api import admin_router, order_router, return_router, webhook_router
from storefront.api.errors import register_gateway_exception_handlers

ORDER_BODY = {
    "customer_id": "cust-001",
    "customer_email": "ada@example.com",
    "items": [
        {"product_id": "prod-001", "product_name": "Analytical Engine Manual", "quantity": 1, "unit_price": 450.0}
    ],
    "shipping_address": {
        "full_name": "Ada Lovelace",
        "street": "12 St James's Square",
        "city": "London",
        "postal_code": "SW1Y 4JH",
        "country": "GB",
    },
    "payment_method": "bitcoin",
}


@pytest.fixture()
def client():
    app = FastAPI()
    register_exception_handlers(app)
    register_gateway_exception_handlers(app)
    app.include_router(order_router)
    app.include_router(admin_router)
    app.include_router(webhook_router)
    app.include_router(return_router)
    return TestClient(app)


@pytest.fixture()
def create_order(client):
    def _create(**overrides):
        response = client.post("/orders", json={**ORDER_BODY, **overrides})
        assert response.status_code == 201
        return response.json()["order_id"]

    return _create


@pytest.fixture()
def open_session(client):
    def _open(order_id, method="bitcoin"):
        response = client.post(f"/orders/{order_id}/payment-session", json={"payment_method": method})
        assert response.status_code == 201
        return response.json()

    return _open


@pytest.fixture()
def post_webhook(client):
    def _post(provider, signature="test-signature", **payload):
        return client.post(
            f"/webhooks/{provider}",
            json=payload,
            headers={"X-Webhook-Signature": signature},
        )

    return _post


@pytest.fixture()
def order_body():
    return {**ORDER_BODY, "items": [dict(item) for item in ORDER_BODY["items"]]}
