"""Outbound email port.

Adapters report delivery problems in the returned receipt. Raising is
reserved for the transport being unreachable.
"""

from abc import ABC, abstractmethod
from dataclasses import dataclass


@dataclass(frozen=True)
class EmailReceipt:
    delivered: bool
    message_id: str | None = None
    error: str | None = None


class EmailPort(ABC):
    @abstractmethod
    def send(self, to: str, subject: str, body: str) -> EmailReceipt: ...
