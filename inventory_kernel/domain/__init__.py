"""
Pure domain layer.

Immutable DTOs and the injectable clock.  No ORM, no database, no file I/O.
"""

from inventory_kernel.domain.clock import Clock, DeterministicClock, SystemClock
from inventory_kernel.domain.dtos import (
    AdjustResult,
    ConsumeLine,
    ConsumeResult,
    ImportResult,
    ItemSnapshot,
    ParsedItem,
    QuantityUpdate,
    SlipLineSnapshot,
    SlipSnapshot,
    UsageRow,
)

__all__ = [
    "Clock",
    "DeterministicClock",
    "SystemClock",
    "AdjustResult",
    "ConsumeLine",
    "ConsumeResult",
    "ImportResult",
    "ItemSnapshot",
    "ParsedItem",
    "QuantityUpdate",
    "SlipLineSnapshot",
    "SlipSnapshot",
    "UsageRow",
]
