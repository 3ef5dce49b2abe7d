"""
Module: inventory_kernel.models.transaction
Responsibility: ORM persistence for the immutable stock transaction log.
Architecture position: Kernel > Models.  May import from db/base.py only.

Invariants enforced:
    - qty_change is never zero (CHECK constraint).
    - Append-only: ORM listeners in db/immutability.py reject UPDATE and
      DELETE.
    - Exactly one row per applied mutation (one per adjust, one per
      consumed slip line).

Audit relevance:
    The log explains every change to actual_qty since the last import and
    feeds the usage report.  It is never the source of truth for the current
    quantity.
"""

from datetime import datetime
from enum import Enum
from typing import TYPE_CHECKING
from uuid import UUID

from sqlalchemy import (
    CheckConstraint,
    DateTime,
    ForeignKey,
    Index,
    Integer,
    String,
    Text,
    func,
)
from sqlalchemy.orm import Mapped, mapped_column, relationship

from inventory_kernel.db.base import Base, UUIDString

if TYPE_CHECKING:
    from inventory_kernel.models.item import InventoryItem


class TransactionType(str, Enum):
    """Kind of stock movement."""

    RESTOCK = "restock"
    ADJUST = "adjust"
    USE = "use"


class InventoryTransaction(Base):
    """
    One signed stock movement.

    Contract:
        Written by StockService in the same unit of work that updates
        InventoryItem.actual_qty.  Never updated or deleted afterwards.
    """

    __tablename__ = "inventory_transactions"

    __table_args__ = (
        CheckConstraint("qty_change <> 0", name="ck_inventory_tx_non_zero"),
        Index("idx_inventory_transactions_item_id", "item_id"),
        Index("idx_inventory_transactions_task_id", "task_id"),
        Index("idx_inventory_transactions_created_at", "created_at"),
    )

    item_id: Mapped[UUID] = mapped_column(
        UUIDString(),
        ForeignKey("inventory_items.id"),
        nullable=False,
    )

    # TransactionType value
    tx_type: Mapped[str] = mapped_column(String(20), nullable=False)

    # Signed: positive for restock, negative for use
    qty_change: Mapped[int] = mapped_column(Integer, nullable=False)

    # Opaque identifier from the task subsystem
    task_id: Mapped[str | None] = mapped_column(String(64), nullable=True)

    slip_id: Mapped[UUID | None] = mapped_column(
        UUIDString(),
        ForeignKey("inventory_slips.id"),
        nullable=True,
    )

    note: Mapped[str | None] = mapped_column(Text, nullable=True)

    created_by: Mapped[str | None] = mapped_column(String(64), nullable=True)

    created_at: Mapped[datetime] = mapped_column(
        DateTime(timezone=True),
        server_default=func.now(),
        nullable=False,
    )

    item: Mapped["InventoryItem"] = relationship(back_populates="transactions")

    def __repr__(self) -> str:
        return f"<InventoryTransaction {self.tx_type} {self.qty_change:+d}>"
