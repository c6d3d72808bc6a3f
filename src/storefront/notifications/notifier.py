"""Best-effort customer notifications.

State changes are authoritative before any email goes out, so a failed or
raising email adapter is logged and swallowed here rather than propagated
into the transition that triggered it.
"""

import structlog

from storefront.notifications import get_email
from storefront.notifications.templates import EmailType, get_template

logger = structlog.get_logger(__name__)


def notify(email_type: EmailType, to: str | None, context: dict) -> bool:
    """Render and send an email. Returns True only if the adapter reports it sent."""
    if not to:
        logger.warning("Skipping email without recipient", email_type=email_type.value)
        return False

    try:
        content = get_template(email_type.value).render(context)
        receipt = get_email().send(to=to, subject=content["subject"], body=content["body"])
    except Exception as exc:  # noqa: BLE001
        logger.warning("Email dispatch raised", email_type=email_type.value, to=to, error=str(exc))
        return False

    if not receipt.delivered:
        logger.warning("Email dispatch failed", email_type=email_type.value, to=to, error=receipt.error)
        return False

    logger.info("Email sent", email_type=email_type.value, to=to, message_id=receipt.message_id)
    return True
