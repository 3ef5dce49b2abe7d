"""
ItemService -- administrative create and edit of inventory items.

Responsibility:
    Creates ledger items that are not (yet) in the spreadsheet and edits the
    descriptive fields of existing ones, including renaming the item_code.

Architecture position:
    Kernel > Services.  Flush-only; InventoryService owns the transaction
    and the best-effort spreadsheet write-back of the edited row.

Invariants enforced:
    - item_code stays unique: create and rename check for an existing row
      first and raise DuplicateItemCodeError.
    - A change of actual_qty through update_item() is recorded as an
      ``adjust`` transaction for the difference, so the transaction log still
      explains every change since the last import.
"""

from __future__ import annotations

from collections.abc import Mapping
from typing import Any

from sqlalchemy import select

from inventory_kernel.domain.dtos import ItemSnapshot
from inventory_kernel.exceptions import (
    DuplicateItemCodeError,
    InsufficientStockError,
    InvalidQuantityError,
    InvalidRequestError,
    ItemNotFoundError,
)
from inventory_kernel.logging_config import get_logger
from inventory_kernel.models.item import InventoryItem
from inventory_kernel.models.transaction import InventoryTransaction, TransactionType
from inventory_kernel.services.base import BaseService
from inventory_kernel.services.stock_service import (
    coerce_quantity,
    normalize_item_code,
)

logger = get_logger("services.item")

EDITABLE_FIELDS = (
    "item_code",
    "section",
    "description",
    "part_type",
    "min_level",
    "actual_qty",
)


def to_snapshot(item: InventoryItem) -> ItemSnapshot:
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


def _optional_text(value: Any) -> str | None:
    if value is None:
        return None
    text = str(value).strip()
    return text or None


class ItemService(BaseService):
    """Create and edit InventoryItem rows."""

    def _exists(self, item_code: str) -> bool:
        return (
            self.session.execute(
                select(InventoryItem.id).where(InventoryItem.item_code == item_code)
            ).first()
            is not None
        )

    def create_item(
        self,
        item_code: str,
        section: str | None = None,
        description: str | None = None,
        part_type: str | None = None,
        min_level: int = 0,
        actual_qty: int = 0,
        actor_id: str | None = None,
    ) -> ItemSnapshot:
        code = normalize_item_code(item_code)
        minimum = coerce_quantity(code, min_level)
        quantity = coerce_quantity(code, actual_qty)
        if minimum < 0:
            raise InvalidQuantityError(code, min_level, "min_level must not be negative")
        if quantity < 0:
            raise InvalidQuantityError(code, actual_qty, "actual_qty must not be negative")
        if self._exists(code):
            raise DuplicateItemCodeError(code)

        item = InventoryItem(
            item_code=code,
            section=_optional_text(section),
            description=_optional_text(description),
            part_type=_optional_text(part_type),
            min_level=minimum,
            actual_qty=quantity,
            version=1,
        )
        self.session.add(item)
        self.session.flush()

        logger.info(
            "item_created",
            extra={"item_code": code, "actual_qty": quantity, "actor_id": actor_id},
        )
        return to_snapshot(item)

    def update_item(
        self,
        item_code: str,
        fields: Mapping[str, Any],
        actor_id: str | None = None,
    ) -> ItemSnapshot:
        """
        Apply a partial edit to one item.

        Only keys in EDITABLE_FIELDS are accepted; a key mapped to None
        clears a text field and is rejected for the integer fields.

        Raises:
            ItemNotFoundError, DuplicateItemCodeError, InvalidRequestError,
            InvalidQuantityError.
        """
        code = normalize_item_code(item_code)
        unknown = sorted(set(fields) - set(EDITABLE_FIELDS))
        if unknown:
            raise InvalidRequestError("fields", unknown, "not editable")

        item = self.session.execute(
            select(InventoryItem)
            .where(InventoryItem.item_code == code)
            .with_for_update()
            .execution_options(populate_existing=True)
        ).scalar_one_or_none()
        if item is None:
            raise ItemNotFoundError(code)

        if "item_code" in fields:
            new_code = normalize_item_code(fields["item_code"])
            if new_code != code and self._exists(new_code):
                raise DuplicateItemCodeError(new_code)
            item.item_code = new_code

        for name in ("section", "description", "part_type"):
            if name in fields:
                setattr(item, name, _optional_text(fields[name]))

        if "min_level" in fields:
            minimum = coerce_quantity(item.item_code, fields["min_level"])
            if minimum < 0:
                raise InvalidQuantityError(
                    item.item_code, fields["min_level"], "min_level must not be negative"
                )
            item.min_level = minimum

        if "actual_qty" in fields:
            quantity = coerce_quantity(item.item_code, fields["actual_qty"])
            delta = quantity - (item.actual_qty or 0)
            if quantity < 0:
                raise InsufficientStockError(item.item_code, item.actual_qty or 0, delta)
            if delta:
                item.actual_qty = quantity
                self.session.add(
                    InventoryTransaction(
                        item_id=item.id,
                        tx_type=TransactionType.ADJUST.value,
                        qty_change=delta,
                        note="item edit",
                        created_by=actor_id,
                        created_at=self.clock.now(),
                    )
                )

        item.version = (item.version or 0) + 1
        self.session.flush()

        logger.info(
            "item_updated",
            extra={
                "item_code": item.item_code,
                "previous_code": code,
                "fields": sorted(fields),
                "actor_id": actor_id,
            },
        )
        return to_snapshot(item)
