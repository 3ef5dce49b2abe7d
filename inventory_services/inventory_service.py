"""
InventoryService -- public API of the inventory ledger.

Responsibility:
    Owns one unit of work per operation, runs the sync check before reads,
    and hands committed quantities to the export sink.

Architecture position:
    Services layer.  Composes kernel services and selectors
    (inventory_kernel), the sync coordinator, and the export sink
    (inventory_sheet underneath).

Invariants enforced:
    - Reads never fail because of the spreadsheet: a SyncError is logged
      and the current ledger is returned.
    - A stock mutation is committed before anything is written to the
      spreadsheet, and a failed write-back never rolls the commit back.
    - Every mutation is logged with the caller's actor (and task) bound to
      the log context.
    - Every quantity written back to the spreadsheet goes through the
      export sink, so the newest ledger version always wins in the file.

Failure modes:
    - StockError subclasses propagate unchanged from adjust/consume/
      create_item/update_item after the rollback.
    - SyncError from import_now().
    - SpreadsheetReadError from export_snapshot() when no template is
      configured or it cannot be read.
"""

from __future__ import annotations

from collections.abc import Iterable, Mapping
from datetime import date
from typing import Any
from uuid import UUID

from sqlalchemy.orm import Session, sessionmaker

from inventory_config import InventoryConfig
from inventory_kernel.db.engine import session_scope
from inventory_kernel.domain.clock import Clock, SystemClock
from inventory_kernel.domain.dtos import (
    AdjustResult,
    ConsumeLine,
    ConsumeResult,
    ImportResult,
    ItemSnapshot,
    SlipSnapshot,
    UsageRow,
)
from inventory_kernel.exceptions import (
    ItemNotFoundError,
    ItemNotInSpreadsheetError,
    SlipNotFoundError,
    SpreadsheetError,
    SpreadsheetReadError,
    SyncError,
)
from inventory_kernel.logging_config import LogContext, get_logger
from inventory_kernel.selectors.item_selector import ItemSelector
from inventory_kernel.selectors.slip_selector import SLIP_LIST_LIMIT, SlipSelector
from inventory_kernel.selectors.usage_selector import UsageSelector
from inventory_kernel.services.item_service import ItemService
from inventory_kernel.services.stock_service import StockService, normalize_item_code
from inventory_services.export_sink import ExportSink
from inventory_services.sync_coordinator import SyncCoordinator
from inventory_sheet.exporter import SpreadsheetExporter

logger = get_logger("services.inventory")


class InventoryService:
    """
    Facade over the ledger, the sync coordinator and the export sink.

    Contract:
        Construct once per process with a session factory; every method is
        safe to call from concurrent request threads.
    """

    def __init__(
        self,
        session_factory: sessionmaker[Session],
        config: InventoryConfig | None = None,
        clock: Clock | None = None,
    ):
        self._session_factory = session_factory
        self._config = config or InventoryConfig()
        self._clock = clock or SystemClock()

        path = self._config.sync.spreadsheet_path
        layout = self._config.sheet
        self._exporter = SpreadsheetExporter(path, layout) if path else None

        self.sync = SyncCoordinator(
            path,
            session_factory,
            layout=layout,
            clock=self._clock,
            auto_sync=self._config.sync.auto_sync,
            before_import=self._flush_before_import,
        )
        self.sink = ExportSink(
            self._exporter if self._config.export.enabled else None,
            mode=self._config.export.mode,
            retry_interval_seconds=self._config.export.retry_interval_seconds,
            on_written=self.sync.acknowledge_write,
        )

    # -------------------------------------------------------------------------
    # Lifecycle
    # -------------------------------------------------------------------------

    def start(self) -> None:
        self.sink.start()

    def close(self) -> None:
        self.sink.stop()

    # -------------------------------------------------------------------------
    # Reads
    # -------------------------------------------------------------------------

    def list_items(
        self, search: str | None = None, low_stock_only: bool = False
    ) -> list[ItemSnapshot]:
        self._ensure_synced()
        with session_scope(self._session_factory) as session:
            return ItemSelector(session).list_items(search=search, low_stock_only=low_stock_only)

    def get_item(self, item_code: str) -> ItemSnapshot:
        self._ensure_synced()
        with session_scope(self._session_factory) as session:
            item = ItemSelector(session).get_item(item_code)
        if item is None:
            raise ItemNotFoundError(item_code)
        return item

    def list_usage(
        self,
        start_date: date | None = None,
        end_date: date | None = None,
        period: str | None = None,
    ) -> list[UsageRow]:
        with session_scope(self._session_factory) as session:
            return UsageSelector(session, self._clock).list_usage(
                start_date=start_date, end_date=end_date, period=period
            )

    def list_slips(self, limit: int = SLIP_LIST_LIMIT) -> list[SlipSnapshot]:
        with session_scope(self._session_factory) as session:
            return SlipSelector(session).list_slips(limit=limit)

    def get_slip(self, slip_id: UUID | str) -> SlipSnapshot:
        with session_scope(self._session_factory) as session:
            slip = SlipSelector(session).get_slip(slip_id)
        if slip is None:
            raise SlipNotFoundError(str(slip_id))
        return slip

    def export_snapshot(self) -> bytes:
        """The spreadsheet template filled from current ledger state."""
        if self._exporter is None:
            raise SpreadsheetReadError("", "no spreadsheet path configured")
        self._ensure_synced()
        with session_scope(self._session_factory) as session:
            items = ItemSelector(session).list_items()
        return self._exporter.export_snapshot(items)

    # -------------------------------------------------------------------------
    # Stock mutations
    # -------------------------------------------------------------------------

    def adjust(
        self,
        item_code: str,
        qty_change: int,
        note: str | None = None,
        tx_type: str | None = None,
        actor_id: str | None = None,
    ) -> AdjustResult:
        with LogContext.bind(actor_id=actor_id, item_code=item_code):
            with session_scope(self._session_factory) as session:
                result = StockService(session, self._clock).adjust(
                    item_code, qty_change, note=note, tx_type=tx_type, actor_id=actor_id
                )
            self.sink.submit([result.as_update()])
        return result

    def consume(
        self,
        task_id: str,
        lines: Iterable[ConsumeLine | Mapping[str, Any]],
        actor_id: str | None = None,
    ) -> ConsumeResult:
        with LogContext.bind(actor_id=actor_id, task_id=task_id):
            with session_scope(self._session_factory) as session:
                result = StockService(session, self._clock).consume(
                    task_id, lines, actor_id=actor_id
                )
            with LogContext.bind(slip_no=result.slip.slip_no):
                self.sink.submit(result.updates)
        return result

    # -------------------------------------------------------------------------
    # Administration
    # -------------------------------------------------------------------------

    def import_now(self) -> ImportResult:
        return self.sync.import_now()

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
        """Add a ledger-only item.  The spreadsheet gets no new row."""
        with LogContext.bind(actor_id=actor_id, item_code=item_code):
            with session_scope(self._session_factory) as session:
                return ItemService(session, self._clock).create_item(
                    item_code,
                    section=section,
                    description=description,
                    part_type=part_type,
                    min_level=min_level,
                    actual_qty=actual_qty,
                    actor_id=actor_id,
                )

    def update_item(
        self,
        item_code: str,
        fields: Mapping[str, Any],
        actor_id: str | None = None,
    ) -> ItemSnapshot:
        """
        Edit an item, then rewrite its spreadsheet row (best-effort).

        Editable fields: item_code (rename), section, description,
        part_type, min_level, actual_qty.  The quantity cell is left to the
        export sink.
        """
        with LogContext.bind(actor_id=actor_id, item_code=item_code):
            with session_scope(self._session_factory) as session:
                snapshot = ItemService(session, self._clock).update_item(
                    item_code, fields, actor_id=actor_id
                )
            previous_code = normalize_item_code(item_code)
            renamed = snapshot.item_code != previous_code
            row_fields = {
                name: getattr(snapshot, name) for name in fields if name != "actual_qty"
            }
            if row_fields:
                self._write_item_row(previous_code, row_fields)
            if renamed:
                self.sink.discard(previous_code)
            if renamed or "actual_qty" in fields:
                self.sink.submit([snapshot.as_update()])
        return snapshot

    # -------------------------------------------------------------------------
    # Internal
    # -------------------------------------------------------------------------

    def _ensure_synced(self) -> None:
        try:
            self.sync.ensure_synced()
        except SyncError as exc:
            logger.warning(
                "serving_stale_ledger",
                extra={"error_code": exc.code, "error": str(exc)},
            )

    def _flush_before_import(self) -> list[str]:
        if not self.sink.has_pending:
            return []
        self.sink.flush()
        return self.sink.pending_codes()

    def _write_item_row(self, old_code: str, fields: Mapping[str, Any]) -> None:
        if self._exporter is None or not self._config.export.enabled:
            return
        try:
            result = self._exporter.update_item_row(old_code, fields)
        except ItemNotInSpreadsheetError:
            logger.info("item_row_not_in_sheet", extra={"previous_code": old_code})
            return
        except SpreadsheetError as exc:
            logger.warning(
                "item_row_write_failed",
                extra={"previous_code": old_code, "error_code": exc.code, "error": str(exc)},
            )
            return
        self.sync.acknowledge_write(result.mtime_before_ns, result.mtime_ns)
