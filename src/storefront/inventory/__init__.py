"""Inventory ledger registry.

Provides get_inventory() / set_inventory() to swap implementations. The
in-memory ledger is the default; a warehouse system plugs in through the
same port.
"""

from storefront.inventory.memory import InMemoryInventoryLedger
from storefront.inventory.port import InventoryLedger

_current_inventory: InventoryLedger | None = None


def get_inventory() -> InventoryLedger:
    """Return the current inventory ledger. Defaults to InMemoryInventoryLedger."""
    global _current_inventory
    if _current_inventory is None:
        _current_inventory = InMemoryInventoryLedger()
    return _current_inventory


def set_inventory(inventory: InventoryLedger) -> None:
    """Override the active inventory ledger (useful for tests)."""
    global _current_inventory
    _current_inventory = inventory


def reset_inventory() -> None:
    """Reset to the default inventory ledger."""
    global _current_inventory
    _current_inventory = None
