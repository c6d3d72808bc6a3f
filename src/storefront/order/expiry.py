"""Stale payment sweep.

Expiry is also evaluated lazily whenever a notification touches an
attempt; this sweep catches attempts nobody touches. Meant to be run by an
external scheduler (cron, K8s CronJob) through ``manage.py expire-payments``
or the admin endpoint. Running it twice changes nothing.
"""

from datetime import datetime

import structlog
from protean.utils.globals import current_domain

from storefront.order.order import Order
from storefront.order.payment import ExpirePayment
from storefront.order.state_machine import OrderStatus, PaymentStatus
from storefront.utils.clock import as_utc, utc_now

logger = structlog.get_logger(__name__)

_OPEN_PAYMENT_STATUSES = [PaymentStatus.AWAITING_PAYMENT.value, PaymentStatus.UNDERPAID.value]


def expire_stale_payments(now: datetime | None = None) -> list[str]:
    """Expire every open payment attempt past its window. Returns the expired order ids."""
    now = now or utc_now()
    # Unbounded: cash-on-delivery orders stay pending until an admin acts and
    # would otherwise fill the default page.
    candidates = (
        current_domain.repository_for(Order)
        ._dao.query.filter(status=OrderStatus.PENDING.value, payment_status__in=_OPEN_PAYMENT_STATUSES)
        .order_by("created_at")
        .limit(None)
        .all()
        .items
    )

    expired = []
    for order in candidates:
        details = order.payment_details
        if details is None or details.expires_at is None or as_utc(details.expires_at) >= as_utc(now):
            continue
        if current_domain.process(ExpirePayment(order_id=str(order.id), as_of=now), asynchronous=False):
            expired.append(str(order.id))

    logger.info("Stale payment sweep finished", expired=len(expired), as_of=now.isoformat())
    return expired
