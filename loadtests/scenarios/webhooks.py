"""Webhook storm scenario.

Providers retry aggressively and deliver out of order. Each user opens one
crypto session and then fires duplicate and reordered deliveries at it;
every delivery must be acknowledged and the payment confirmed exactly once.
"""

import random
import uuid

from locust import HttpUser, SequentialTaskSet, between, task

from loadtests.data_generators import FAKE_SIGNATURE_HEADERS, crypto_webhook
from loadtests.helpers.response import extract_error_detail
from loadtests.scenarios.checkout import _CheckoutJourney


class DuplicateDeliveryStorm(_CheckoutJourney):
    """Session -> 20 shuffled deliveries of the same confirmations -> Status."""

    deliveries = 20

    @task
    def create(self):
        self.place_order()

    @task
    def session(self):
        self.open_session()

    @task
    def storm(self):
        counts = list(range(1, self.state.confirmations_required + 1)) * (self.deliveries // 2)
        random.shuffle(counts)
        duplicates = 0
        for confirmations in counts[: self.deliveries]:
            with self.client.post(
                "/webhooks/bitcoin",
                data=crypto_webhook(self.state.reference, self.state.amount_due, confirmations),
                headers=FAKE_SIGNATURE_HEADERS,
                catch_response=True,
                name="POST /webhooks/bitcoin (storm)",
            ) as resp:
                if resp.status_code != 200:
                    resp.failure(f"Storm delivery failed: {resp.status_code}: {extract_error_detail(resp)}")
                elif resp.json()["duplicate"]:
                    duplicates += 1
        if duplicates == 0:
            # Every count appears more than once, so some deliveries must be duplicates
            self.user.environment.events.request.fire(
                request_type="CHECK",
                name="storm duplicates",
                response_time=0,
                response_length=0,
                exception=AssertionError("No duplicate acknowledged"),
            )

    @task
    def status(self):
        self.check_status("confirmed")

    @task
    def done(self):
        self.interrupt()


class ForgedWebhookProbe(SequentialTaskSet):
    """Unsigned deliveries must always be refused with 401."""

    @task
    def forged(self):
        with self.client.post(
            "/webhooks/bitcoin",
            data=crypto_webhook("bc1-forged", 1.0, 6),
            headers={"X-Webhook-Signature": "forged", "Content-Type": "application/json"},
            catch_response=True,
            name="POST /webhooks/bitcoin (forged)",
        ) as resp:
            if resp.status_code == 401:
                resp.success()
            else:
                resp.failure(f"Forged webhook not refused: {resp.status_code}")

    @task
    def unknown_reference(self):
        with self.client.post(
            "/webhooks/monero",
            data=crypto_webhook(f"xmr-unknown-{uuid.uuid4().hex[:8]}", 1.0, 10),
            headers=FAKE_SIGNATURE_HEADERS,
            catch_response=True,
            name="POST /webhooks/monero (unknown reference)",
        ) as resp:
            if resp.status_code == 200 and resp.json()["outcome"] == "ignored":
                resp.success()
            else:
                resp.failure(f"Unknown reference not ignored: {resp.status_code}")

    @task
    def done(self):
        self.interrupt()


class WebhookStormUser(HttpUser):
    """Provider callbacks under retry storms and forged traffic."""

    wait_time = between(0.1, 0.5)
    tasks = {DuplicateDeliveryStorm: 9, ForgedWebhookProbe: 1}
