"""Back-office load test scenarios: fulfilment, refunds, returns and the expiry sweep."""

from locust import HttpUser, SequentialTaskSet, between, task

from loadtests.data_generators import order_data, return_items
from loadtests.helpers.response import extract_error_detail
from loadtests.helpers.state import CheckoutState


class FulfilAndReturnJourney(SequentialTaskSet):
    """Paid PayPal order -> Shipped -> Delivered -> Return -> Refund."""

    def on_start(self):
        self.state = CheckoutState(payment_method="paypal")

    def _ok(self, resp, action, expected=200):
        if resp.status_code != expected:
            resp.failure(f"{action} failed: {resp.status_code}: {extract_error_detail(resp)}")
            self.interrupt()

    @task
    def paid_order(self):
        payload = order_data("paypal")
        self.state.customer_id = payload["customer_id"]
        self.state.product_id = payload["items"][0]["product_id"]
        with self.client.post("/orders", json=payload, catch_response=True, name="POST /orders") as resp:
            self._ok(resp, "Create order", 201)
            self.state.order_id = resp.json()["order_id"]
        self.client.post(
            f"/orders/{self.state.order_id}/payment-session",
            json={"payment_method": "paypal"},
            name="POST /orders/{id}/payment-session",
        )
        self.client.post(f"/orders/{self.state.order_id}/payment/capture", name="POST /orders/{id}/payment/capture")

    @task
    def ship_and_deliver(self):
        for body in (
            {"status": "shipped", "admin_id": "lt-admin", "tracking_number": "LT-TRK", "carrier": "Royal Mail"},
            {"status": "delivered", "admin_id": "lt-admin"},
        ):
            with self.client.put(
                f"/admin/orders/{self.state.order_id}/status",
                json=body,
                catch_response=True,
                name="PUT /admin/orders/{id}/status",
            ) as resp:
                self._ok(resp, f"Move to {body['status']}")

    @task
    def return_and_refund(self):
        with self.client.post(
            "/returns",
            json={
                "order_id": self.state.order_id,
                "customer_id": self.state.customer_id,
                "items": return_items(self.state.product_id),
            },
            catch_response=True,
            name="POST /returns",
        ) as resp:
            self._ok(resp, "Submit return", 201)
            return_id = resp.json()["return_id"]

        for action in ("approve", "receive"):
            self.client.put(
                f"/admin/returns/{return_id}/{action}",
                json={"admin_id": "lt-admin"},
                name=f"PUT /admin/returns/{{id}}/{action}",
            )
        with self.client.post(
            f"/admin/returns/{return_id}/refund",
            json={"admin_id": "lt-admin"},
            catch_response=True,
            name="POST /admin/returns/{id}/refund",
        ) as resp:
            self._ok(resp, "Return refund")

    @task
    def done(self):
        self.interrupt()


class AdminUser(HttpUser):
    """Operators working the back office while the expiry sweep runs."""

    wait_time = between(1.0, 3.0)
    tasks = [FulfilAndReturnJourney]

    @task(1)
    def expire_stale(self):
        self.client.post("/admin/payments/expire-stale", name="POST /admin/payments/expire-stale")
