"""Inventory ledger port.

Stock availability is validated upstream before an order is placed; this
port only books reservations against the order's lifecycle so stock can be
returned when a payment fails, expires or the order is cancelled.
"""

from abc import ABC, abstractmethod
from dataclasses import dataclass


@dataclass(frozen=True)
class StockLine:
    product_id: str
    quantity: int


class InventoryLedger(ABC):
    """Abstract inventory ledger interface."""

    @abstractmethod
    def reserve(self, order_id: str, items: list[StockLine]) -> bool:
        """Reserve stock for an order. Returns False if the order already holds a reservation."""
        ...

    @abstractmethod
    def release(self, order_id: str) -> bool:
        """Release an order's reservation. Unknown or already-released orders return False."""
        ...

    @abstractmethod
    def available(self, product_id: str) -> int | None:
        """Units on hand minus units reserved, or None for untracked products."""
        ...
