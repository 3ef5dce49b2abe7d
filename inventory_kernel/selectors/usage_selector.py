"""
Module: inventory_kernel.selectors.usage_selector
Responsibility: Consumption report -- how much of each item was used on
    slips within a date window.
Architecture position: Kernel > Selectors.

Invariants enforced:
    - Only ``use`` transactions that reference a slip are counted.
    - Date bounds are inclusive calendar days (UTC): start_date from 00:00,
      end_date through 23:59:59.999999.
    - At most USAGE_ROW_LIMIT rows, ordered by total used descending, then
      section, then item_code.
"""

from __future__ import annotations

from datetime import UTC, date, datetime, time, timedelta

from sqlalchemy import distinct, func, select

from inventory_kernel.domain.clock import Clock, SystemClock
from inventory_kernel.domain.dtos import UsageRow
from inventory_kernel.exceptions import InvalidRequestError
from inventory_kernel.models.item import InventoryItem
from inventory_kernel.models.slip import ConsumptionSlip
from inventory_kernel.models.transaction import InventoryTransaction, TransactionType
from inventory_kernel.selectors.base import BaseSelector

USAGE_ROW_LIMIT = 500
DEFAULT_WINDOW_DAYS = 30

PERIODS = ("7d", "30d", "90d", "mtd", "ytd")


def resolve_period(
    period: str, today: date
) -> tuple[date, date]:
    """
    Translate a named period into inclusive (start, end) dates.

    ``7d``/``30d``/``90d`` end today; ``mtd`` starts on the 1st of the
    current month, ``ytd`` on 1 January.
    """
    if period == "mtd":
        return today.replace(day=1), today
    if period == "ytd":
        return today.replace(month=1, day=1), today
    if period in ("7d", "30d", "90d"):
        return today - timedelta(days=int(period[:-1])), today
    raise InvalidRequestError("period", period, f"expected one of {', '.join(PERIODS)}")


def _day_start(day: date) -> datetime:
    return datetime.combine(day, time.min, tzinfo=UTC)


class UsageSelector(BaseSelector[InventoryTransaction]):
    """Aggregates consumption transactions per item."""

    def __init__(self, session, clock: Clock | None = None):
        super().__init__(session)
        self.clock = clock or SystemClock()

    def list_usage(
        self,
        start_date: date | None = None,
        end_date: date | None = None,
        period: str | None = None,
    ) -> list[UsageRow]:
        """
        Usage per item within the window.

        With neither dates nor period, the window is the last 30 days
        (rolling, from now).  An explicit period overrides the dates.
        """
        tx = InventoryTransaction
        stmt = (
            select(
                InventoryItem.section,
                InventoryItem.item_code,
                InventoryItem.description,
                func.sum(func.abs(tx.qty_change)).label("total_qty_used"),
                func.count(distinct(tx.slip_id)).label("usage_count"),
                func.max(tx.created_at).label("last_used_at"),
            )
            .join(InventoryItem, tx.item_id == InventoryItem.id)
            .join(ConsumptionSlip, tx.slip_id == ConsumptionSlip.id)
            .where(tx.tx_type == TransactionType.USE.value)
        )

        if period:
            start_date, end_date = resolve_period(period, self.clock.now().date())

        if start_date is None and end_date is None:
            stmt = stmt.where(
                tx.created_at >= self.clock.now() - timedelta(days=DEFAULT_WINDOW_DAYS)
            )
        else:
            if start_date is not None:
                stmt = stmt.where(tx.created_at >= _day_start(start_date))
            if end_date is not None:
                stmt = stmt.where(
                    tx.created_at < _day_start(end_date + timedelta(days=1))
                )

        total = func.sum(func.abs(tx.qty_change))
        stmt = (
            stmt.group_by(
                InventoryItem.section,
                InventoryItem.item_code,
                InventoryItem.description,
            )
            .order_by(
                total.desc(),
                InventoryItem.section,
                InventoryItem.item_code,
            )
            .limit(USAGE_ROW_LIMIT)
        )

        return [
            UsageRow(
                section=row.section,
                item_code=row.item_code,
                description=row.description,
                total_qty_used=int(row.total_qty_used or 0),
                usage_count=int(row.usage_count or 0),
                last_used_at=row.last_used_at,
            )
            for row in self.session.execute(stmt)
        ]
