"""Services for the inventory kernel (write side)."""

from inventory_kernel.services.import_service import LedgerImportService
from inventory_kernel.services.item_service import ItemService
from inventory_kernel.services.stock_service import StockService

__all__ = [
    "ItemService",
    "LedgerImportService",
    "StockService",
]
