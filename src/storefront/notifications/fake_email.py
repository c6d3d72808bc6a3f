"""In-memory email adapter used outside production and in tests."""

from itertools import count

from storefront.notifications.email_port import EmailPort, EmailReceipt


class FakeEmailAdapter(EmailPort):
    """Keeps every delivered message in ``sent_emails``.

    ``configure`` switches it into one of two failure modes: rejected
    deliveries (a receipt with ``delivered=False``) or an unreachable
    transport (``ConnectionError``).
    """

    def __init__(self) -> None:
        self.sent_emails: list[dict] = []
        self._ids = count(1)
        self.configure()

    def configure(
        self,
        should_succeed: bool = True,
        failure_reason: str = "Email delivery failed",
        should_raise: bool = False,
    ) -> None:
        self.should_succeed = should_succeed
        self.failure_reason = failure_reason
        self.should_raise = should_raise

    def send(self, to: str, subject: str, body: str) -> EmailReceipt:
        if self.should_raise:
            raise ConnectionError(self.failure_reason)
        if not self.should_succeed:
            return EmailReceipt(delivered=False, error=self.failure_reason)

        message_id = f"fake-mail-{next(self._ids):05d}"
        self.sent_emails.append({"message_id": message_id, "to": to, "subject": subject, "body": body})
        return EmailReceipt(delivered=True, message_id=message_id)

    def subjects_for(self, to: str) -> list[str]:
        return [message["subject"] for message in self.sent_emails if message["to"] == to]
