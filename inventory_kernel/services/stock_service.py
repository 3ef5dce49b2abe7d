"""
StockService -- row-locked stock mutations (adjust and consume).

Responsibility:
    Applies signed quantity changes to InventoryItem rows and appends the
    matching audit records (InventoryTransaction, ConsumptionSlip, SlipLine)
    in the caller's unit of work.

Architecture position:
    Kernel > Services -- imperative shell.  Called by
    ``inventory_services.InventoryService``, which owns commit/rollback and
    the post-commit spreadsheet write-back.

Invariants enforced:
    - actual_qty never goes negative: the check runs on the locked row and
      rejects the mutation before any write.
    - Exclusive row lock (``SELECT ... FOR UPDATE``) per item serializes
      concurrent mutators of the same item_code; different items proceed
      independently.
    - One InventoryTransaction per applied mutation, written in the same
      flush as the quantity update.
    - consume() is all-or-nothing: any failing line raises, and the caller's
      rollback discards the slip and every earlier line.

Failure modes:
    - InvalidQuantityError: zero delta, non-integer, or qty_used <= 0.
    - InvalidRequestError: blank item_code, missing task_id, unknown tx_type.
    - EmptyConsumptionError: consume() without lines.
    - ItemNotFoundError: item_code not in the ledger.
    - InsufficientStockError: resulting quantity would be negative.

Mutation lifecycle:
    validated -> locked -> applied -> (caller) committed -> exported
"""

from __future__ import annotations

import re
import uuid
from collections.abc import Iterable, Mapping
from datetime import datetime
from typing import Any

from sqlalchemy import select

from inventory_kernel.domain.dtos import (
    AdjustResult,
    ConsumeLine,
    ConsumeResult,
    QuantityUpdate,
    SlipLineSnapshot,
    SlipSnapshot,
)
from inventory_kernel.exceptions import (
    EmptyConsumptionError,
    InsufficientStockError,
    InvalidQuantityError,
    InvalidRequestError,
    ItemNotFoundError,
)
from inventory_kernel.logging_config import get_logger
from inventory_kernel.models.item import InventoryItem
from inventory_kernel.models.slip import ConsumptionSlip, SlipLine
from inventory_kernel.models.transaction import InventoryTransaction, TransactionType
from inventory_kernel.services.base import BaseService

logger = get_logger("services.stock")

_INT_TEXT = re.compile(r"^[+-]?\d+$")


def coerce_quantity(item_code: str | None, value: Any) -> int:
    """
    Accept an int or an integer-looking string; reject everything else.

    Raises:
        InvalidQuantityError: bools, floats, blanks, or non-integer text.
    """
    if isinstance(value, bool):
        raise InvalidQuantityError(item_code, value, "must be an integer")
    if isinstance(value, int):
        return value
    if isinstance(value, str) and _INT_TEXT.match(value.strip()):
        return int(value.strip())
    raise InvalidQuantityError(item_code, value, "must be an integer")


def normalize_item_code(value: Any) -> str:
    code = "" if value is None else str(value).strip()
    if not code:
        raise InvalidRequestError("item_code", value, "item_code is required")
    return code


def new_slip_number(now: datetime) -> str:
    """SLIP-<epoch milliseconds>-<6 upper-case hex>."""
    millis = int(now.timestamp() * 1000)
    return f"SLIP-{millis}-{uuid.uuid4().hex[:6].upper()}"


class StockService(BaseService):
    """
    Applies adjust and consume operations to the ledger.

    Contract:
        Every public method runs inside the caller's transaction, flushes
        its writes, and returns DTOs describing the new absolute quantities.
        The caller commits, then hands those quantities to the write-back
        sink.

    Non-goals:
        - Does NOT commit or roll back.
        - Does NOT touch the spreadsheet.
    """

    # -------------------------------------------------------------------------
    # Locking
    # -------------------------------------------------------------------------

    def lock_item(self, item_code: str) -> InventoryItem | None:
        """Fetch one item with an exclusive row lock, bypassing the identity map."""
        return self.session.execute(
            select(InventoryItem)
            .where(InventoryItem.item_code == item_code)
            .with_for_update()
            .execution_options(populate_existing=True)
        ).scalar_one_or_none()

    def lock_items(self, item_codes: Iterable[str]) -> dict[str, InventoryItem]:
        """
        Lock several items in item_code order.

        A fixed lock order keeps two batches touching the same items in
        opposite order from deadlocking each other.
        """
        codes = sorted(set(item_codes))
        rows = self.session.execute(
            select(InventoryItem)
            .where(InventoryItem.item_code.in_(codes))
            .order_by(InventoryItem.item_code)
            .with_for_update()
            .execution_options(populate_existing=True)
        ).scalars()
        return {item.item_code: item for item in rows}

    # -------------------------------------------------------------------------
    # adjust
    # -------------------------------------------------------------------------

    def adjust(
        self,
        item_code: str,
        qty_change: int,
        note: str | None = None,
        tx_type: str | TransactionType | None = None,
        actor_id: str | None = None,
    ) -> AdjustResult:
        """
        Apply a signed restock/correction to one item.

        Preconditions:
            - ``qty_change`` is a non-zero integer.

        Postconditions:
            - actual_qty increased by qty_change, version bumped, one
              InventoryTransaction appended.  Nothing is written on failure.

        Raises:
            InvalidQuantityError, InvalidRequestError, ItemNotFoundError,
            InsufficientStockError.
        """
        code = normalize_item_code(item_code)
        delta = coerce_quantity(code, qty_change)
        if delta == 0:
            raise InvalidQuantityError(code, qty_change, "qty_change must be non-zero")
        kind = self._resolve_tx_type(tx_type, delta)

        item = self.lock_item(code)
        if item is None:
            raise ItemNotFoundError(code)

        available = item.actual_qty or 0
        new_qty = available + delta
        if new_qty < 0:
            logger.info(
                "stock_adjust_rejected",
                extra={"item_code": code, "available": available, "qty_change": delta},
            )
            raise InsufficientStockError(code, available, delta)

        item.actual_qty = new_qty
        item.version = (item.version or 0) + 1

        tx = InventoryTransaction(
            item_id=item.id,
            tx_type=kind.value,
            qty_change=delta,
            note=note or None,
            created_by=actor_id,
            created_at=self.clock.now(),
        )
        self.session.add(tx)
        self.session.flush()

        logger.info(
            "stock_adjusted",
            extra={
                "item_code": code,
                "tx_type": kind.value,
                "qty_change": delta,
                "actual_qty": new_qty,
                "version": item.version,
            },
        )
        return AdjustResult(
            item_code=code,
            actual_qty=new_qty,
            version=item.version,
            transaction_id=tx.id,
        )

    @staticmethod
    def _resolve_tx_type(
        tx_type: str | TransactionType | None, delta: int
    ) -> TransactionType:
        if tx_type is None or tx_type == "":
            return TransactionType.RESTOCK if delta > 0 else TransactionType.ADJUST
        try:
            return TransactionType(tx_type)
        except ValueError:
            raise InvalidRequestError(
                "tx_type", tx_type, "expected one of restock, adjust, use"
            ) from None

    # -------------------------------------------------------------------------
    # consume
    # -------------------------------------------------------------------------

    def consume(
        self,
        task_id: str,
        lines: Iterable[ConsumeLine | Mapping[str, Any]],
        actor_id: str | None = None,
    ) -> ConsumeResult:
        """
        Withdraw several items for a task as one slip.

        Preconditions:
            - ``task_id`` is non-empty.
            - At least one line; each line has an item_code and a positive
              integer qty_used.

        Postconditions:
            - One ConsumptionSlip with one SlipLine per requested line, one
              ``use`` transaction per line referencing slip and task, and
              every touched item decremented.

        Raises:
            EmptyConsumptionError, InvalidRequestError, InvalidQuantityError,
            ItemNotFoundError, InsufficientStockError.  The caller must roll
            back on any of them.
        """
        task = "" if task_id is None else str(task_id).strip()
        if not task:
            raise InvalidRequestError("task_id", task_id, "task_id is required")
        requested = [self._normalize_line(line) for line in lines]
        if not requested:
            raise EmptyConsumptionError(task)

        now = self.clock.now()
        slip = ConsumptionSlip(
            slip_no=new_slip_number(now),
            task_id=task,
            created_by=actor_id,
            created_at=now,
        )
        self.session.add(slip)
        self.session.flush()

        locked = self.lock_items(line.item_code for line in requested)

        snapshots: list[SlipLineSnapshot] = []
        updates: dict[str, QuantityUpdate] = {}
        for line_no, line in enumerate(requested, start=1):
            item = locked.get(line.item_code)
            if item is None:
                raise ItemNotFoundError(line.item_code)

            available = item.actual_qty or 0
            if available - line.qty_used < 0:
                logger.info(
                    "stock_consume_rejected",
                    extra={
                        "item_code": line.item_code,
                        "available": available,
                        "qty_used": line.qty_used,
                        "line_no": line_no,
                    },
                )
                raise InsufficientStockError(line.item_code, available, -line.qty_used)

            item.actual_qty = available - line.qty_used
            item.version = (item.version or 0) + 1

            self.session.add(
                SlipLine(
                    slip_id=slip.id,
                    item_id=item.id,
                    line_no=line_no,
                    item_code_snapshot=item.item_code,
                    item_description_snapshot=item.description,
                    qty_used=line.qty_used,
                    created_at=now,
                )
            )
            self.session.add(
                InventoryTransaction(
                    item_id=item.id,
                    task_id=task,
                    slip_id=slip.id,
                    tx_type=TransactionType.USE.value,
                    qty_change=-line.qty_used,
                    created_by=actor_id,
                    created_at=now,
                )
            )
            snapshots.append(
                SlipLineSnapshot(
                    item_code=item.item_code,
                    description=item.description,
                    qty_used=line.qty_used,
                )
            )
            updates[item.item_code] = QuantityUpdate(
                item_code=item.item_code,
                actual_qty=item.actual_qty,
                version=item.version,
            )

        self.session.flush()

        logger.info(
            "slip_created",
            extra={
                "slip_no": slip.slip_no,
                "task_id": task,
                "line_count": len(requested),
                "item_codes": sorted(updates),
            },
        )
        return ConsumeResult(
            slip=SlipSnapshot(
                id=slip.id,
                slip_no=slip.slip_no,
                task_id=task,
                created_by=actor_id,
                created_at=now,
                lines=tuple(snapshots),
            ),
            updated_items={code: u.actual_qty for code, u in updates.items()},
            updates=tuple(updates.values()),
        )

    @staticmethod
    def _normalize_line(line: ConsumeLine | Mapping[str, Any]) -> ConsumeLine:
        if isinstance(line, ConsumeLine):
            raw_code, raw_qty = line.item_code, line.qty_used
        else:
            raw_code, raw_qty = line.get("item_code"), line.get("qty_used")
        code = normalize_item_code(raw_code)
        qty = coerce_quantity(code, raw_qty)
        if qty <= 0:
            raise InvalidQuantityError(code, raw_qty, "qty_used must be positive")
        return ConsumeLine(item_code=code, qty_used=qty)
