"""Integration tests for the returns endpoints."""

import pytest


@pytest.fixture()
def delivered_order(client, create_order, open_session):
    order_id = create_order(payment_method="paypal")
    open_session(order_id, "paypal")
    client.post(f"/orders/{order_id}/payment/capture")
    client.put(
        f"/admin/orders/{order_id}/status",
        json={"status": "shipped", "admin_id": "admin-1", "tracking_number": "TRK-1", "carrier": "DPD"},
    )
    client.put(f"/admin/orders/{order_id}/status", json={"status": "delivered", "admin_id": "admin-1"})
    return order_id


def _submit(client, order_id, customer_id="cust-001"):
    return client.post(
        "/returns",
        json={
            "order_id": order_id,
            "customer_id": customer_id,
            "items": [{"product_id": "prod-001", "quantity": 1, "reason": "wrong_item_sent"}],
        },
    )


def test_full_return_flow(client, delivered_order):
    response = _submit(client, delivered_order)
    assert response.status_code == 201
    return_id = response.json()["return_id"]

    assert client.put(f"/admin/returns/{return_id}/approve", json={"admin_id": "admin-1"}).status_code == 200
    assert client.put(f"/admin/returns/{return_id}/receive", json={"admin_id": "admin-1"}).status_code == 200
    refund = client.post(f"/admin/returns/{return_id}/refund", json={"admin_id": "admin-1"})

    assert refund.json() == {"status": "refunded"}
    data = client.get(f"/returns/{return_id}").json()
    assert data["refund_status"] == "succeeded"
    assert data["total_refund"] == 450.0
    assert client.get(f"/orders/{delivered_order}").json()["status"] == "returned"


def test_return_for_undelivered_order_is_400(client, create_order):
    assert _submit(client, create_order()).status_code == 400


def test_return_by_another_customer_is_400(client, delivered_order):
    assert _submit(client, delivered_order, customer_id="cust-999").status_code == 400


def test_reject_return(client, delivered_order):
    return_id = _submit(client, delivered_order).json()["return_id"]

    response = client.put(
        f"/admin/returns/{return_id}/reject", json={"admin_id": "admin-1", "reason": "Outside policy"}
    )

    assert response.json() == {"status": "rejected"}
    assert client.get(f"/returns/{return_id}").json()["rejection_reason"] == "Outside policy"


def test_refund_before_receipt_is_400(client, delivered_order):
    return_id = _submit(client, delivered_order).json()["return_id"]
    client.put(f"/admin/returns/{return_id}/approve", json={"admin_id": "admin-1"})

    assert client.post(f"/admin/returns/{return_id}/refund", json={"admin_id": "admin-1"}).status_code == 400


def test_unknown_return_is_404(client):
    assert client.get("/returns/missing").status_code == 404
