"""Faker-based data generators for Locust load test scenarios.

Payloads match the field names of the storefront API's Pydantic request
schemas. Webhook bodies use the fake provider format accepted outside
production.
"""

import json
import random
import uuid

from faker import Faker

fake = Faker("en_GB")

FAKE_SIGNATURE_HEADERS = {"X-Webhook-Signature": "test-signature", "Content-Type": "application/json"}

PAYMENT_METHODS = ["paypal", "bitcoin", "monero"]


def customer_id() -> str:
    return f"cust-lt-{uuid.uuid4().hex[:8]}"


def shipping_address() -> dict:
    return {
        "full_name": fake.name()[:100],
        "street": fake.street_address()[:255],
        "city": fake.city()[:100],
        "postal_code": fake.postcode(),
        "country": "GB",
    }


def order_items(count: int | None = None) -> list[dict]:
    """1-3 line items priced so the total stays under every gateway limit."""
    count = count or random.randint(1, 3)
    return [
        {
            "product_id": f"prod-{uuid.uuid4().hex[:6]}",
            "product_name": fake.catch_phrase()[:100],
            "quantity": random.randint(1, 3),
            "unit_price": round(random.uniform(5.0, 250.0), 2),
        }
        for _ in range(count)
    ]


def order_data(payment_method: str | None = None) -> dict:
    """CreateOrderRequest payload."""
    return {
        "customer_id": customer_id(),
        "customer_email": fake.email(),
        "items": order_items(),
        "shipping_address": shipping_address(),
        "payment_method": payment_method or random.choice(PAYMENT_METHODS),
        "shipping_cost": random.choice([0.0, 3.99, 5.99]),
    }


def crypto_webhook(reference: str, amount: float, confirmations: int, event_id: str | None = None) -> str:
    """Raw body for a fake crypto provider payment notification."""
    return json.dumps(
        {
            "reference": reference,
            "event_id": event_id or f"{reference}:{confirmations}",
            "kind": "payment",
            "confirmations": confirmations,
            "amount_received": amount,
        }
    )


def underpaid_amount(amount_due: float) -> float:
    """An amount well outside the acceptance tolerance."""
    return round(amount_due * random.uniform(0.3, 0.9), 8)


def return_items(product_id: str) -> list[dict]:
    return [
        {
            "product_id": product_id,
            "quantity": 1,
            "reason": random.choice(["damaged_received", "not_as_described", "changed_mind"]),
            "description": fake.sentence()[:200],
        }
    ]
