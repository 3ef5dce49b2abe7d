"""
Module: inventory_kernel.selectors.item_selector
Responsibility: Read-only item listing, search and lookup.
Architecture position: Kernel > Selectors.

Invariants enforced:
    - Ordering is stable: section ascending with NULL sections last, then
      item_code.
    - Low stock means actual_qty <= min_level, evaluated in SQL.
"""

from __future__ import annotations

from sqlalchemy import or_, select

from inventory_kernel.domain.dtos import ItemSnapshot
from inventory_kernel.models.item import InventoryItem
from inventory_kernel.selectors.base import BaseSelector


class ItemSelector(BaseSelector[InventoryItem]):
    """Queries over InventoryItem."""

    def list_items(
        self,
        search: str | None = None,
        low_stock_only: bool = False,
    ) -> list[ItemSnapshot]:
        """
        List items, optionally filtered.

        Args:
            search: Case-insensitive substring matched against description,
                section and item_code.  Blank means no filter.
            low_stock_only: Only items with actual_qty <= min_level.
        """
        stmt = select(InventoryItem)

        term = (search or "").strip()
        if term:
            stmt = stmt.where(
                or_(
                    InventoryItem.description.icontains(term, autoescape=True),
                    InventoryItem.section.icontains(term, autoescape=True),
                    InventoryItem.item_code.icontains(term, autoescape=True),
                )
            )
        if low_stock_only:
            stmt = stmt.where(InventoryItem.actual_qty <= InventoryItem.min_level)

        stmt = stmt.order_by(
            InventoryItem.section.asc().nulls_last(),
            InventoryItem.item_code.asc(),
        )
        return [self._to_dto(item) for item in self.session.execute(stmt).scalars()]

    def get_item(self, item_code: str) -> ItemSnapshot | None:
        item = self.session.execute(
            select(InventoryItem).where(InventoryItem.item_code == item_code)
        ).scalar_one_or_none()
        return self._to_dto(item) if item is not None else None

    def count(self) -> int:
        return len(self.session.execute(select(InventoryItem.id)).all())

    @staticmethod
    def _to_dto(item: InventoryItem) -> ItemSnapshot:
        return ItemSnapshot(
            item_code=item.item_code,
            section=item.section,
            description=item.description,
            part_type=item.part_type,
            min_level=item.min_level or 0,
            actual_qty=item.actual_qty or 0,
            version=item.version or 0,
            updated_at=item.updated_at,
        )
