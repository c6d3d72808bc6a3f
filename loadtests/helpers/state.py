"""Per-user state tracking for Locust load test scenarios.

Each Locust user instance keeps its own state. IDs returned by creation
endpoints are stored so follow-up requests can reference them.
"""

from dataclasses import dataclass


@dataclass
class CheckoutState:
    """One simulated order from placement to settlement."""

    order_id: str | None = None
    payment_method: str | None = None
    reference: str | None = None
    amount_due: float = 0.0
    confirmations_required: int = 0
    product_id: str | None = None
    customer_id: str | None = None
    payment_status: str = "awaiting_payment"
