"""Storefront payments bounded context: payment reconciliation and order state.

Creates payments against PayPal, Bitcoin and Monero gateways, reconciles
inbound webhooks through an idempotency ledger and drives orders and
returns through their state machines.
"""

import structlog
from protean.domain import Domain

storefront = Domain(name="storefront")

logger = structlog.get_logger(__name__)
