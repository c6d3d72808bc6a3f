"""Email adapter registry.

Provides get_email() / set_email() to swap implementations. The fake
adapter is the default; an SMTP or API-backed adapter plugs in through
``EmailPort``.
"""

from storefront.notifications.email_port import EmailPort
from storefront.notifications.fake_email import FakeEmailAdapter

_current_email: EmailPort | None = None


def get_email() -> EmailPort:
    """Return the current email adapter. Defaults to FakeEmailAdapter."""
    global _current_email
    if _current_email is None:
        _current_email = FakeEmailAdapter()
    return _current_email


def set_email(adapter: EmailPort) -> None:
    """Override the active email adapter (useful for tests)."""
    global _current_email
    _current_email = adapter


def reset_email() -> None:
    """Reset to the default email adapter."""
    global _current_email
    _current_email = None
