"""
Module: inventory_kernel.models.item
Responsibility: ORM persistence for inventory items -- the aggregate root for
    current stock state.
Architecture position: Kernel > Models.  May import from db/base.py only.

Invariants enforced:
    - item_code is unique; it is the stable key shared by the ledger and the
      spreadsheet.
    - actual_qty is never negative (CHECK constraint; StockService rejects
      the mutation before it reaches the database).
    - version increases on every import refresh and every stock mutation,
      so write-back pushes can be ordered by the state they carry.

Failure modes:
    - IntegrityError on duplicate item_code or negative actual_qty.
"""

from typing import TYPE_CHECKING

from sqlalchemy import CheckConstraint, Index, Integer, String, Text
from sqlalchemy.orm import Mapped, mapped_column, relationship

from inventory_kernel.db.base import TimestampedBase

if TYPE_CHECKING:
    from inventory_kernel.models.transaction import InventoryTransaction

SECTION_SEPARATOR = " | "


class InventoryItem(TimestampedBase):
    """
    Current stock position for one part.

    Contract:
        Created or refreshed by spreadsheet import (upsert keyed by
        item_code) and mutated by StockService.  Never hard-deleted.

    Guarantees:
        - actual_qty equals the last imported baseline plus the signed sum
          of every InventoryTransaction applied since.
    """

    __tablename__ = "inventory_items"

    __table_args__ = (
        CheckConstraint("actual_qty >= 0", name="ck_inventory_item_qty_non_negative"),
        Index("idx_inventory_items_section", "section"),
        Index("idx_inventory_items_low_stock", "actual_qty", "min_level"),
    )

    item_code: Mapped[str] = mapped_column(
        String(255),
        nullable=False,
        unique=True,
    )

    # "<label>" or "<label> | <number>"
    section: Mapped[str | None] = mapped_column(Text, nullable=True)

    description: Mapped[str | None] = mapped_column(Text, nullable=True)

    part_type: Mapped[str | None] = mapped_column(Text, nullable=True)

    min_level: Mapped[int] = mapped_column(Integer, nullable=False, default=0)

    actual_qty: Mapped[int] = mapped_column(Integer, nullable=False, default=0)

    version: Mapped[int] = mapped_column(Integer, nullable=False, default=1)

    transactions: Mapped[list["InventoryTransaction"]] = relationship(
        back_populates="item",
        order_by="InventoryTransaction.created_at",
        viewonly=True,
    )

    @property
    def is_low_stock(self) -> bool:
        return self.actual_qty <= self.min_level

    @property
    def section_label(self) -> str:
        """Section without its numeric suffix."""
        return (self.section or "").split(SECTION_SEPARATOR)[0]

    def __repr__(self) -> str:
        return f"<InventoryItem {self.item_code} qty={self.actual_qty}>"
