"""Checkout load test scenarios.

Stateful SequentialTaskSet journeys that place an order, open a payment
session and settle it through the provider callbacks or a PayPal capture.
"""

import random

from locust import HttpUser, SequentialTaskSet, between, task

from loadtests.data_generators import FAKE_SIGNATURE_HEADERS, crypto_webhook, order_data, underpaid_amount
from loadtests.helpers.response import extract_error_detail
from loadtests.helpers.state import CheckoutState


class _CheckoutJourney(SequentialTaskSet):
    payment_method: str = "bitcoin"

    def on_start(self):
        self.state = CheckoutState(payment_method=self.payment_method)

    def place_order(self):
        with self.client.post(
            "/orders",
            json=order_data(self.payment_method),
            catch_response=True,
            name="POST /orders",
        ) as resp:
            if resp.status_code == 201:
                self.state.order_id = resp.json()["order_id"]
            else:
                resp.failure(f"Create order failed: {resp.status_code}: {extract_error_detail(resp)}")
                self.interrupt()

    def open_session(self):
        with self.client.post(
            f"/orders/{self.state.order_id}/payment-session",
            json={"payment_method": self.payment_method},
            catch_response=True,
            name="POST /orders/{id}/payment-session",
        ) as resp:
            if resp.status_code == 201:
                data = resp.json()
                self.state.reference = data["reference"]
                self.state.amount_due = data["amount_due"]
                self.state.confirmations_required = data["confirmations_required"]
            else:
                resp.failure(f"Payment session failed: {resp.status_code}: {extract_error_detail(resp)}")
                self.interrupt()

    def send_confirmation(self, amount, confirmations, name):
        with self.client.post(
            f"/webhooks/{self.payment_method}",
            data=crypto_webhook(self.state.reference, amount, confirmations),
            headers=FAKE_SIGNATURE_HEADERS,
            catch_response=True,
            name=name,
        ) as resp:
            if resp.status_code != 200:
                resp.failure(f"Webhook failed: {resp.status_code}: {extract_error_detail(resp)}")

    def check_status(self, expected):
        with self.client.get(
            f"/orders/{self.state.order_id}/payment-status",
            catch_response=True,
            name="GET /orders/{id}/payment-status",
        ) as resp:
            if resp.status_code != 200:
                resp.failure(f"Payment status failed: {resp.status_code}: {extract_error_detail(resp)}")
            elif resp.json()["payment_status"] != expected:
                resp.failure(f"Expected {expected}, got {resp.json()['payment_status']}")


class CryptoCheckoutJourney(_CheckoutJourney):
    """Place Order -> Session -> one webhook per confirmation -> Status.

    Generates events: OrderCreated, PaymentSessionStarted,
    PaymentConfirmationsUpdated, PaymentConfirmed.
    """

    def on_start(self):
        self.payment_method = random.choice(["bitcoin", "monero"])
        super().on_start()

    @task
    def create(self):
        self.place_order()

    @task
    def session(self):
        self.open_session()

    @task
    def confirmations(self):
        for count in range(1, self.state.confirmations_required + 1):
            self.send_confirmation(self.state.amount_due, count, f"POST /webhooks/{self.payment_method}")

    @task
    def status(self):
        self.check_status("confirmed")

    @task
    def done(self):
        self.interrupt()


class UnderpaidTopUpJourney(_CheckoutJourney):
    """Place Order -> Session -> Underpayment -> Top-up -> Status."""

    @task
    def create(self):
        self.place_order()

    @task
    def session(self):
        self.open_session()

    @task
    def underpay(self):
        self.send_confirmation(
            underpaid_amount(self.state.amount_due),
            self.state.confirmations_required,
            "POST /webhooks/bitcoin (underpaid)",
        )

    @task
    def underpaid_status(self):
        self.check_status("underpaid")

    @task
    def top_up(self):
        self.send_confirmation(self.state.amount_due, self.state.confirmations_required + 1, "POST /webhooks/bitcoin")

    @task
    def status(self):
        self.check_status("confirmed")

    @task
    def done(self):
        self.interrupt()


class PayPalCaptureJourney(_CheckoutJourney):
    """Place Order -> Session -> Capture -> Status."""

    payment_method = "paypal"

    @task
    def create(self):
        self.place_order()

    @task
    def session(self):
        self.open_session()

    @task
    def capture(self):
        with self.client.post(
            f"/orders/{self.state.order_id}/payment/capture",
            catch_response=True,
            name="POST /orders/{id}/payment/capture",
        ) as resp:
            if resp.status_code != 200:
                resp.failure(f"Capture failed: {resp.status_code}: {extract_error_detail(resp)}")

    @task
    def status(self):
        self.check_status("confirmed")

    @task
    def done(self):
        self.interrupt()


class CheckoutUser(HttpUser):
    """Customers paying for orders with every supported provider."""

    wait_time = between(0.5, 2.0)
    tasks = {CryptoCheckoutJourney: 5, PayPalCaptureJourney: 4, UnderpaidTopUpJourney: 1}
