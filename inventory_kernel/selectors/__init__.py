"""Selectors for the inventory kernel (read side)."""

from inventory_kernel.selectors.base import BaseSelector
from inventory_kernel.selectors.item_selector import ItemSelector
from inventory_kernel.selectors.slip_selector import SlipSelector
from inventory_kernel.selectors.usage_selector import UsageSelector

__all__ = [
    "BaseSelector",
    "ItemSelector",
    "SlipSelector",
    "UsageSelector",
]
