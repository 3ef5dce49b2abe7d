"""
Module: inventory_kernel.models.slip
Responsibility: ORM persistence for consumption slips and their lines.
Architecture position: Kernel > Models.  May import from db/base.py only.

Invariants enforced:
    - slip_no is globally unique.
    - A slip owns one or more SlipLines (enforced by StockService.consume).
    - SlipLine snapshots item_code and description at the time of use, so
      historical slips stay readable after an item is renamed.
    - qty_used is strictly positive (CHECK constraint).
    - Slips and lines are append-only (db/immutability.py).
"""

from datetime import datetime
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


class ConsumptionSlip(Base):
    """Header of one multi-line withdrawal tied to a task."""

    __tablename__ = "inventory_slips"

    __table_args__ = (
        Index("idx_inventory_slips_created_at", "created_at"),
    )

    slip_no: Mapped[str] = mapped_column(String(100), nullable=False, unique=True)

    task_id: Mapped[str] = mapped_column(String(64), nullable=False)

    created_by: Mapped[str | None] = mapped_column(String(64), nullable=True)

    created_at: Mapped[datetime] = mapped_column(
        DateTime(timezone=True),
        server_default=func.now(),
        nullable=False,
    )

    lines: Mapped[list["SlipLine"]] = relationship(
        back_populates="slip",
        order_by="SlipLine.line_no",
    )

    def __repr__(self) -> str:
        return f"<ConsumptionSlip {self.slip_no}>"


class SlipLine(Base):
    """One item withdrawn on a slip."""

    __tablename__ = "inventory_slip_lines"

    __table_args__ = (
        CheckConstraint("qty_used > 0", name="ck_inventory_slip_line_qty_positive"),
        Index("idx_inventory_slip_lines_slip_id", "slip_id"),
    )

    slip_id: Mapped[UUID] = mapped_column(
        UUIDString(),
        ForeignKey("inventory_slips.id"),
        nullable=False,
    )

    item_id: Mapped[UUID | None] = mapped_column(
        UUIDString(),
        ForeignKey("inventory_items.id"),
        nullable=True,
    )

    # Position within the slip, in request order
    line_no: Mapped[int] = mapped_column(Integer, nullable=False)

    item_code_snapshot: Mapped[str] = mapped_column(String(255), nullable=False)

    item_description_snapshot: Mapped[str | None] = mapped_column(Text, nullable=True)

    qty_used: Mapped[int] = mapped_column(Integer, nullable=False)

    created_at: Mapped[datetime] = mapped_column(
        DateTime(timezone=True),
        server_default=func.now(),
        nullable=False,
    )

    slip: Mapped[ConsumptionSlip] = relationship(back_populates="lines")
