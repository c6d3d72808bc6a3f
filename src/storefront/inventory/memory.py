"""In-memory inventory ledger for development and testing."""

import threading

import structlog
from protean.exceptions import ValidationError

from storefront.inventory.port import InventoryLedger, StockLine

logger = structlog.get_logger(__name__)


class InMemoryInventoryLedger(InventoryLedger):
    """Tracks on-hand stock for known products; other products are unlimited."""

    def __init__(self, stock: dict[str, int] | None = None) -> None:
        self.on_hand: dict[str, int] = dict(stock or {})
        self.reservations: dict[str, list[StockLine]] = {}
        self.calls: list[dict] = []
        self._lock = threading.Lock()

    def set_stock(self, product_id: str, quantity: int) -> None:
        with self._lock:
            self.on_hand[product_id] = quantity

    def _reserved(self, product_id: str) -> int:
        return sum(
            line.quantity for lines in self.reservations.values() for line in lines if line.product_id == product_id
        )

    def reserve(self, order_id: str, items: list[StockLine]) -> bool:
        with self._lock:
            if order_id in self.reservations:
                return False

            for line in items:
                if line.product_id in self.on_hand:
                    free = self.on_hand[line.product_id] - self._reserved(line.product_id)
                    if line.quantity > free:
                        raise ValidationError(
                            {"items": [f"Insufficient stock for product {line.product_id}: {free} available"]}
                        )

            self.reservations[order_id] = list(items)
            self.calls.append({"method": "reserve", "order_id": order_id})

        logger.info("Stock reserved", order_id=order_id, lines=len(items))
        return True

    def release(self, order_id: str) -> bool:
        with self._lock:
            if self.reservations.pop(order_id, None) is None:
                return False
            self.calls.append({"method": "release", "order_id": order_id})

        logger.info("Stock released", order_id=order_id)
        return True

    def available(self, product_id: str) -> int | None:
        with self._lock:
            if product_id not in self.on_hand:
                return None
            return self.on_hand[product_id] - self._reserved(product_id)

    def release_count(self, order_id: str) -> int:
        return sum(1 for call in self.calls if call["method"] == "release" and call["order_id"] == order_id)
