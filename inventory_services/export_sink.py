"""
ExportSink -- retryable hand-off of committed quantities to the spreadsheet.

Contract:
    ``submit()`` accepts the absolute quantities produced by a committed
    mutation and never raises on spreadsheet trouble.  Pending quantities
    are pushed by ``flush()``, either inline right after the submit or from
    a background thread.  A failed push keeps the quantities pending; the
    next submit or retry tick pushes them again.

Architecture: inventory_services.  Wraps inventory_sheet.SpreadsheetExporter.

Invariants enforced:
    - Per item code only the highest ledger version is kept, and a version
      at or below one already pushed is dropped on submit, so a delayed
      push can never overwrite a newer quantity with an older one.
    - A pending entry is only cleared when the quantity it carries (or a
      newer one) reached the file.
    - A code with no item row is not remembered as pushed, so a row that
      appears later under that code (a rename) still receives its value.
    - At most one flush runs at a time.
"""

from __future__ import annotations

import threading
from collections.abc import Callable, Iterable

from inventory_kernel.domain.dtos import QuantityUpdate
from inventory_kernel.logging_config import get_logger
from inventory_sheet.exporter import PushResult, SpreadsheetExporter

logger = get_logger("services.export_sink")

WriteObserver = Callable[[int | None, int | None], None]


class ExportSink:
    """Buffers quantity updates and pushes them to the spreadsheet.

    Contract:
        - ``submit()`` merges updates into the pending map, then flushes
          inline or wakes the worker.
        - ``start()`` / ``stop()`` run the background worker.
        - ``on_written(before_ns, after_ns)`` is called after every save so
          the sync coordinator can recognise its own writes.

    Non-goals:
        - Does NOT insert rows for items missing from the sheet; such codes
          are logged and dropped.
    """

    def __init__(
        self,
        exporter: SpreadsheetExporter | None,
        mode: str = "inline",
        retry_interval_seconds: float = 5.0,
        on_written: WriteObserver | None = None,
    ):
        self._exporter = exporter
        self._mode = mode
        self._retry_interval = retry_interval_seconds
        self.on_written = on_written
        self._pending: dict[str, QuantityUpdate] = {}
        # Highest version already pushed per item code
        self._pushed_versions: dict[str, int] = {}
        self._lock = threading.Lock()
        self._flush_lock = threading.Lock()
        self._wake = threading.Event()
        self._stop_event = threading.Event()
        self._thread: threading.Thread | None = None

    # -------------------------------------------------------------------------
    # Public API
    # -------------------------------------------------------------------------

    @property
    def enabled(self) -> bool:
        return self._exporter is not None

    def submit(self, updates: Iterable[QuantityUpdate]) -> None:
        if self._exporter is None:
            return
        with self._lock:
            for update in updates:
                if update.version <= self._pushed_versions.get(update.item_code, 0):
                    continue
                current = self._pending.get(update.item_code)
                if current is None or update.version >= current.version:
                    self._pending[update.item_code] = update

        if self._mode == "background" and self.is_running:
            self._wake.set()
        else:
            self.flush()

    def pending_codes(self) -> list[str]:
        with self._lock:
            return sorted(self._pending)

    def discard(self, item_code: str) -> None:
        """Forget an item code that no longer exists (renamed item)."""
        with self._lock:
            self._pending.pop(item_code, None)
            self._pushed_versions.pop(item_code, None)

    @property
    def has_pending(self) -> bool:
        with self._lock:
            return bool(self._pending)

    def flush(self) -> PushResult | None:
        """
        Push everything pending in one call.

        Returns:
            The PushResult, or None when nothing was pending or the push
            failed (the failure is logged and the updates stay pending).
        """
        if self._exporter is None:
            return None
        with self._flush_lock:
            with self._lock:
                batch = dict(self._pending)
            if not batch:
                return None

            try:
                result = self._exporter.push_quantities(
                    {code: update.actual_qty for code, update in batch.items()}
                )
            except Exception as exc:
                logger.warning(
                    "export_push_failed",
                    extra={
                        "path": self._exporter.path,
                        "item_codes": sorted(batch),
                        "error": f"{type(exc).__name__}: {exc}",
                    },
                    exc_info=True,
                )
                return None

            with self._lock:
                for code, sent in batch.items():
                    if (
                        code not in result.missing_codes
                        and sent.version > self._pushed_versions.get(code, 0)
                    ):
                        self._pushed_versions[code] = sent.version
                    current = self._pending.get(code)
                    if current is not None and current.version <= sent.version:
                        del self._pending[code]

        if result.changed and self.on_written is not None:
            self.on_written(result.mtime_before_ns, result.mtime_ns)
        return result

    def start(self) -> None:
        """Start the background worker (background mode only)."""
        if self._exporter is None or self._mode != "background":
            return
        if self._thread is not None and self._thread.is_alive():
            return

        self._stop_event.clear()
        self._thread = threading.Thread(
            target=self._run_loop,
            name="inventory-export-sink",
            daemon=True,
        )
        self._thread.start()
        logger.info(
            "export_sink_started",
            extra={"retry_interval": self._retry_interval},
        )

    def stop(self, timeout: float = 30.0) -> None:
        """Stop the worker, then make a last attempt to push what is pending."""
        self._stop_event.set()
        self._wake.set()
        if self._thread is not None and self._thread.is_alive():
            self._thread.join(timeout=timeout)
        self.flush()
        logger.info("export_sink_stopped", extra={"pending": len(self.pending_codes())})

    @property
    def is_running(self) -> bool:
        return self._thread is not None and self._thread.is_alive()

    # -------------------------------------------------------------------------
    # Internal
    # -------------------------------------------------------------------------

    def _run_loop(self) -> None:
        while not self._stop_event.is_set():
            self._wake.wait(timeout=self._retry_interval)
            self._wake.clear()
            if self._stop_event.is_set():
                break
            try:
                self.flush()
            except Exception:
                logger.exception("export_sink_tick_exception")
