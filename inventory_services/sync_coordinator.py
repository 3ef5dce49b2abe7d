"""
SyncCoordinator -- decides when the spreadsheet is re-imported.

Contract:
    ``ensure_synced()`` runs before read operations.  It imports the
    spreadsheet into the ledger when the file changed since the last
    successful import, and never starts two imports at once: callers that
    arrive while an import runs wait for that import's outcome.

Architecture: inventory_services.  Uses inventory_sheet.parse_workbook and
    inventory_kernel.services.LedgerImportService.

Invariants enforced:
    - The mtime checkpoint only advances after a committed import (or an
      acknowledged write of our own).  A failed import leaves it unchanged,
      so the next read retries.
    - Single-flight: one ``concurrent.futures.Future`` per running import,
      created and cleared under ``self._lock``; the import itself runs
      outside the lock.
    - A missing or unreadable file is not an error for readers: the ledger
      is served as it is.
    - Quantities still waiting to be written back are never replaced by
      the (older) spreadsheet value; the rest of the import goes ahead.

Failure modes:
    - SyncError (to the triggering caller and every attached caller) when
      parsing or the ledger upsert fails.
"""

from __future__ import annotations

import os
import threading
import time
from collections.abc import Callable, Iterable
from concurrent.futures import Future

from sqlalchemy.orm import Session, sessionmaker

from inventory_config.schema import SheetLayout
from inventory_kernel.db.engine import session_scope
from inventory_kernel.domain.clock import Clock, SystemClock
from inventory_kernel.domain.dtos import ImportResult
from inventory_kernel.exceptions import SyncError
from inventory_kernel.logging_config import get_logger
from inventory_kernel.services.import_service import LedgerImportService
from inventory_sheet.parser import parse_workbook
from inventory_sheet.workbook import file_mtime_ns, sheet_lock

logger = get_logger("services.sync")


class SyncCoordinator:
    """Single-flight, mtime-gated spreadsheet import.

    Contract:
        - ``ensure_synced()`` is cheap when nothing changed (one stat call).
        - ``import_now()`` forces an import regardless of mtime.
        - ``acknowledge_write(before, after)`` moves the checkpoint past a
          write made by this process when the file held no unimported
          changes before it.
        - ``before_import`` runs first in every import and returns the item
          codes whose ledger quantity must survive it (write-backs that
          are still pending).

    Non-goals:
        - NOT a cross-process lock; two processes may import the same file.
    """

    def __init__(
        self,
        path: str | os.PathLike | None,
        session_factory: sessionmaker[Session],
        layout: SheetLayout | None = None,
        clock: Clock | None = None,
        auto_sync: bool = True,
        before_import: Callable[[], Iterable[str]] | None = None,
    ):
        self.path = os.path.abspath(os.fspath(path)) if path else None
        self._session_factory = session_factory
        self._layout = layout or SheetLayout()
        self._clock = clock or SystemClock()
        self.auto_sync = auto_sync
        self.before_import = before_import
        self._lock = threading.Lock()
        self._last_synced_mtime_ns: int | None = None
        self._in_flight: Future | None = None

    # -------------------------------------------------------------------------
    # Public API
    # -------------------------------------------------------------------------

    @property
    def last_synced_mtime_ns(self) -> int | None:
        with self._lock:
            return self._last_synced_mtime_ns

    @property
    def import_in_flight(self) -> bool:
        with self._lock:
            return self._in_flight is not None

    def ensure_synced(self) -> ImportResult | None:
        """
        Import if the file changed.

        Returns:
            The ImportResult when this call (or the import it attached to)
            imported, None when nothing had to be done.

        Raises:
            SyncError: the import failed.
        """
        if not self.auto_sync or self.path is None:
            return None

        mtime = file_mtime_ns(self.path)
        if mtime is None:
            logger.debug("sync_skipped_file_unavailable", extra={"path": self.path})
            return None

        with self._lock:
            if (
                self._last_synced_mtime_ns is not None
                and mtime <= self._last_synced_mtime_ns
            ):
                return None
            future, owner = self._claim()

        if not owner:
            logger.debug("sync_attached_to_in_flight_import", extra={"path": self.path})
            return future.result()
        return self._run(future, trigger="mtime_changed")

    def import_now(self) -> ImportResult:
        """
        Import unconditionally (administrative import).

        Attaches to a running import instead of starting a second one.

        Raises:
            SyncError: no spreadsheet is configured or the import failed.
        """
        if self.path is None:
            raise SyncError("", "no spreadsheet path configured")
        with self._lock:
            future, owner = self._claim()
        if not owner:
            return future.result()
        return self._run(future, trigger="manual")

    def acknowledge_write(self, before_ns: int | None, after_ns: int | None) -> None:
        """
        Record a write this process made to the spreadsheet.

        The checkpoint moves to ``after_ns`` only when everything up to
        ``before_ns`` had already been imported; otherwise the external
        change that preceded our write still needs importing.
        """
        if before_ns is None or after_ns is None:
            return
        with self._lock:
            if (
                self._last_synced_mtime_ns is not None
                and self._last_synced_mtime_ns >= before_ns
                and after_ns > self._last_synced_mtime_ns
            ):
                self._last_synced_mtime_ns = after_ns
                logger.debug(
                    "own_write_acknowledged",
                    extra={"path": self.path, "mtime_ns": after_ns},
                )

    # -------------------------------------------------------------------------
    # Internal
    # -------------------------------------------------------------------------

    def _claim(self) -> tuple[Future, bool]:
        """Return (future, owner).  Caller holds self._lock."""
        if self._in_flight is not None:
            return self._in_flight, False
        self._in_flight = Future()
        return self._in_flight, True

    def _run(self, future: Future, trigger: str) -> ImportResult:
        started = time.monotonic()
        try:
            mtime, result = self._import()
        except Exception as exc:
            error = exc if isinstance(exc, SyncError) else SyncError(
                self.path or "", f"{type(exc).__name__}: {exc}"
            )
            with self._lock:
                self._in_flight = None
            future.set_exception(error)
            logger.warning(
                "sync_failed",
                extra={
                    "path": self.path,
                    "trigger": trigger,
                    "error_code": error.code,
                    "error": str(error),
                },
            )
            if error is exc:
                raise
            raise error from exc

        with self._lock:
            if mtime is not None and (
                self._last_synced_mtime_ns is None or mtime > self._last_synced_mtime_ns
            ):
                self._last_synced_mtime_ns = mtime
            self._in_flight = None
        future.set_result(result)

        logger.info(
            "sync_completed",
            extra={
                "path": self.path,
                "trigger": trigger,
                "items": result.items,
                "inserted": result.inserted,
                "updated": result.updated,
                "discarded": result.discarded,
                "duration_ms": round((time.monotonic() - started) * 1000, 2),
            },
        )
        return result

    def _import(self) -> tuple[int | None, ImportResult]:
        keep_quantities: frozenset[str] = frozenset()
        if self.before_import is not None:
            keep_quantities = frozenset(self.before_import() or ())

        # Stat after before_import: flushing write-backs changes the file
        with sheet_lock(self.path):
            mtime = file_mtime_ns(self.path)
            parsed = parse_workbook(self.path, self._layout)

        with session_scope(self._session_factory) as session:
            result = LedgerImportService(session, self._clock).upsert_items(
                parsed.items,
                source_path=self.path,
                discarded=len(parsed.discarded),
                keep_quantity_codes=keep_quantities,
            )
        return mtime, result
