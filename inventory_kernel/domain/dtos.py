"""
Data transfer objects for the inventory ledger.

Pure, immutable values passed between the spreadsheet layer, the kernel
services and callers of the public API.  No ORM, no I/O.
"""

from __future__ import annotations

from dataclasses import dataclass, field
from datetime import datetime
from uuid import UUID


@dataclass(frozen=True)
class ParsedItem:
    """One item row extracted from the spreadsheet."""

    item_code: str
    section: str
    description: str
    part_type: str
    min_level: int
    actual_qty: int
    row_number: int


@dataclass(frozen=True)
class ItemSnapshot:
    """Read-side view of an InventoryItem."""

    item_code: str
    section: str | None
    description: str | None
    part_type: str | None
    min_level: int
    actual_qty: int
    version: int
    updated_at: datetime | None = None

    @property
    def is_low_stock(self) -> bool:
        return self.actual_qty <= self.min_level

    def as_update(self) -> QuantityUpdate:
        return QuantityUpdate(self.item_code, self.actual_qty, self.version)


@dataclass(frozen=True)
class ConsumeLine:
    """Requested withdrawal of one item on a slip."""

    item_code: str
    qty_used: int


@dataclass(frozen=True)
class QuantityUpdate:
    """Absolute quantity of one item after a committed mutation."""

    item_code: str
    actual_qty: int
    version: int


@dataclass(frozen=True)
class AdjustResult:
    """Outcome of a committed adjust()."""

    item_code: str
    actual_qty: int
    version: int
    transaction_id: UUID | None = None

    def as_update(self) -> QuantityUpdate:
        return QuantityUpdate(self.item_code, self.actual_qty, self.version)


@dataclass(frozen=True)
class SlipLineSnapshot:
    item_code: str
    description: str | None
    qty_used: int


@dataclass(frozen=True)
class SlipSnapshot:
    """A consumption slip with its lines."""

    id: UUID
    slip_no: str
    task_id: str
    created_by: str | None
    created_at: datetime
    lines: tuple[SlipLineSnapshot, ...] = ()


@dataclass(frozen=True)
class ConsumeResult:
    """Outcome of a committed consume()."""

    slip: SlipSnapshot
    updated_items: dict[str, int] = field(default_factory=dict)
    updates: tuple[QuantityUpdate, ...] = ()


@dataclass(frozen=True)
class ImportResult:
    """Outcome of one spreadsheet import into the ledger."""

    path: str
    items: int
    inserted: int
    updated: int
    discarded: int = 0
    kept_quantities: tuple[str, ...] = ()


@dataclass(frozen=True)
class UsageRow:
    """Aggregated consumption of one item over a reporting window."""

    section: str | None
    item_code: str
    description: str | None
    total_qty_used: int
    usage_count: int
    last_used_at: datetime | None
