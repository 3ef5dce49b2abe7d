"""Domain models for the inventory kernel."""

from inventory_kernel.models.item import SECTION_SEPARATOR, InventoryItem
from inventory_kernel.models.slip import ConsumptionSlip, SlipLine
from inventory_kernel.models.transaction import InventoryTransaction, TransactionType

__all__ = [
    "InventoryItem",
    "SECTION_SEPARATOR",
    "InventoryTransaction",
    "TransactionType",
    "ConsumptionSlip",
    "SlipLine",
]
