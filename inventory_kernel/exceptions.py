"""
Typed Exception Hierarchy for the Inventory Ledger.

===============================================================================
EXCEPTION HIERARCHY
===============================================================================

All exceptions inherit from InventoryKernelError:

    InventoryKernelError (base)
    |
    +-- SpreadsheetError
    |   +-- SpreadsheetReadError
    |   +-- ExportWriteError
    |   +-- ItemNotInSpreadsheetError
    |
    +-- SyncError
    |
    +-- StockError
    |   +-- InsufficientStockError
    |   +-- ItemNotFoundError
    |   +-- InvalidRequestError
    |   +-- InvalidQuantityError
    |   +-- EmptyConsumptionError
    |   +-- DuplicateItemCodeError
    |   +-- SlipNotFoundError
    |
    +-- ImmutabilityError
        +-- ImmutabilityViolationError

===============================================================================
ERROR CODES - QUICK REFERENCE
===============================================================================

Category        | Code                        | When Raised
----------------|-----------------------------|-----------------------------------------
Spreadsheet     | SPREADSHEET_READ_FAILED     | File missing, unreadable or no worksheet
                | EXPORT_WRITE_FAILED         | Write-back to the spreadsheet failed
                | ITEM_NOT_IN_SPREADSHEET     | No item row carries the requested code
----------------|-----------------------------|-----------------------------------------
Sync            | SYNC_FAILED                 | Import from the spreadsheet failed
----------------|-----------------------------|-----------------------------------------
Stock           | INSUFFICIENT_STOCK          | Mutation would drive actual_qty < 0
                | ITEM_NOT_FOUND              | item_code not in the ledger
                | INVALID_REQUEST             | Missing task_id, blank code, bad tx_type
                | INVALID_QUANTITY            | Zero delta or non-positive qty_used
                | EMPTY_CONSUMPTION           | consume() called with no lines
                | DUPLICATE_ITEM_CODE         | Create/rename onto an existing code
                | SLIP_NOT_FOUND              | Slip id does not exist
----------------|-----------------------------|-----------------------------------------
Immutability    | IMMUTABILITY_VIOLATION      | UPDATE/DELETE of an audit record

===============================================================================
HANDLING PATTERNS
===============================================================================

    try:
        service.consume(task_id, lines)
    except InsufficientStockError as e:
        return {"error": e.code, "item_code": e.item_code,
                "available": e.available, "requested": e.requested_change}
    except ItemNotFoundError as e:
        return {"error": e.code, "item_code": e.item_code}

Spreadsheet and sync errors are never surfaced on the read path; callers of
list_items() receive last-known-good ledger state.  ExportWriteError is
logged by the export sink and never changes the outcome of a committed
mutation.
"""


class InventoryKernelError(Exception):
    """
    Base exception for all inventory ledger errors.

    All subclasses carry a `code` class attribute for machine-readable
    error identification.
    """

    code: str = "INVENTORY_KERNEL_ERROR"


# Spreadsheet exceptions


class SpreadsheetError(InventoryKernelError):
    """Base exception for spreadsheet I/O errors."""

    code: str = "SPREADSHEET_ERROR"


class SpreadsheetReadError(SpreadsheetError):
    """The spreadsheet could not be opened or has no worksheet."""

    code: str = "SPREADSHEET_READ_FAILED"

    def __init__(self, path: str, reason: str):
        self.path = path
        self.reason = reason
        super().__init__(f"Cannot read inventory spreadsheet {path}: {reason}")


class ExportWriteError(SpreadsheetError):
    """Writing quantities or a snapshot back to the spreadsheet failed."""

    code: str = "EXPORT_WRITE_FAILED"

    def __init__(self, path: str, reason: str):
        self.path = path
        self.reason = reason
        super().__init__(f"Cannot write inventory spreadsheet {path}: {reason}")


class ItemNotInSpreadsheetError(SpreadsheetError):
    """No item row in the spreadsheet carries the requested item code."""

    code: str = "ITEM_NOT_IN_SPREADSHEET"

    def __init__(self, item_code: str):
        self.item_code = item_code
        super().__init__(f"Item code {item_code!r} not found in spreadsheet")


# Sync exceptions


class SyncError(InventoryKernelError):
    """Importing the spreadsheet into the ledger failed."""

    code: str = "SYNC_FAILED"

    def __init__(self, path: str, reason: str):
        self.path = path
        self.reason = reason
        super().__init__(f"Inventory sync from {path} failed: {reason}")


# Stock exceptions


class StockError(InventoryKernelError):
    """Base exception for stock ledger mutations."""

    code: str = "STOCK_ERROR"


class InsufficientStockError(StockError):
    """The mutation would drive actual_qty below zero."""

    code: str = "INSUFFICIENT_STOCK"

    def __init__(self, item_code: str, available: int, requested_change: int):
        self.item_code = item_code
        self.available = available
        self.requested_change = requested_change
        super().__init__(
            f"Insufficient stock for {item_code}: "
            f"available {available}, requested change {requested_change}"
        )


class ItemNotFoundError(StockError):
    """No ledger item has the given item code."""

    code: str = "ITEM_NOT_FOUND"

    def __init__(self, item_code: str):
        self.item_code = item_code
        super().__init__(f"Inventory item not found: {item_code}")


class InvalidRequestError(StockError):
    """A non-quantity argument of a stock operation is missing or malformed."""

    code: str = "INVALID_REQUEST"

    def __init__(self, field: str, value: object, reason: str):
        self.field = field
        self.value = value
        self.reason = reason
        super().__init__(f"Invalid {field} {value!r}: {reason}")


class InvalidQuantityError(StockError):
    """Quantity is not an acceptable integer for the operation."""

    code: str = "INVALID_QUANTITY"

    def __init__(self, item_code: str | None, value: object, reason: str):
        self.item_code = item_code
        self.value = value
        self.reason = reason
        super().__init__(f"Invalid quantity {value!r} for {item_code}: {reason}")


class EmptyConsumptionError(StockError):
    """consume() was called without any lines."""

    code: str = "EMPTY_CONSUMPTION"

    def __init__(self, task_id: str | None):
        self.task_id = task_id
        super().__init__(f"Consumption for task {task_id} has no lines")


class DuplicateItemCodeError(StockError):
    """Another ledger item already uses this item code."""

    code: str = "DUPLICATE_ITEM_CODE"

    def __init__(self, item_code: str):
        self.item_code = item_code
        super().__init__(f"Item code already exists: {item_code}")


class SlipNotFoundError(StockError):
    """No consumption slip has the given id."""

    code: str = "SLIP_NOT_FOUND"

    def __init__(self, slip_id: str):
        self.slip_id = slip_id
        super().__init__(f"Consumption slip not found: {slip_id}")


# Immutability exceptions


class ImmutabilityError(InventoryKernelError):
    """Base exception for append-only record violations."""

    code: str = "IMMUTABILITY_ERROR"


class ImmutabilityViolationError(ImmutabilityError):
    """An audit record (transaction, slip, slip line) was updated or deleted."""

    code: str = "IMMUTABILITY_VIOLATION"

    def __init__(self, entity_type: str, entity_id: str, reason: str):
        self.entity_type = entity_type
        self.entity_id = entity_id
        self.reason = reason
        super().__init__(
            f"Cannot modify {entity_type} {entity_id}: {reason}"
        )
