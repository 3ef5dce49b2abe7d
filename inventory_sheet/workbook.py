"""
Workbook access for the inventory spreadsheet.

Responsibility:
    Opening the file with openpyxl, reading the first worksheet into a grid
    of raw values, saving atomically, and the per-path lock that keeps this
    process from reading and writing the same file at once.

Invariants enforced:
    - At most one reader-or-writer per spreadsheet path inside the process
      (``sheet_lock``).  External editors are not locked out; the last
      writer wins.
    - Saves go to a temporary file in the same directory followed by
      ``os.replace``, so a reader never sees a half-written workbook.

Failure modes:
    - SpreadsheetReadError: missing file, not a workbook, or no worksheet.
    - ExportWriteError: the temporary file could not be written or moved.
"""

from __future__ import annotations

import os
import tempfile
import threading
import zipfile
from pathlib import Path
from typing import Any

import openpyxl
from openpyxl.utils.exceptions import InvalidFileException
from openpyxl.workbook.workbook import Workbook
from openpyxl.worksheet.worksheet import Worksheet

from inventory_kernel.exceptions import ExportWriteError, SpreadsheetReadError
from inventory_kernel.logging_config import get_logger

logger = get_logger("sheet.workbook")

_locks: dict[str, threading.RLock] = {}
_locks_guard = threading.Lock()


def sheet_lock(path: str | os.PathLike) -> threading.RLock:
    """The process-wide lock for one spreadsheet path."""
    key = os.path.abspath(os.fspath(path))
    with _locks_guard:
        lock = _locks.get(key)
        if lock is None:
            lock = _locks[key] = threading.RLock()
        return lock


def file_mtime_ns(path: str | os.PathLike) -> int | None:
    """Modification time in nanoseconds, or None if the file cannot be stat'ed."""
    try:
        return os.stat(path).st_mtime_ns
    except OSError:
        return None


def open_workbook(
    path: str | os.PathLike,
    read_only: bool = False,
    data_only: bool = False,
) -> Workbook:
    """
    Load a workbook, translating openpyxl/zip/OS errors.

    Raises:
        SpreadsheetReadError: file missing, unreadable, or not an xlsx.
    """
    full_path = os.path.abspath(os.fspath(path))
    if not os.path.exists(full_path):
        raise SpreadsheetReadError(full_path, "file not found")
    try:
        return openpyxl.load_workbook(full_path, read_only=read_only, data_only=data_only)
    except (InvalidFileException, zipfile.BadZipFile, KeyError, OSError) as exc:
        raise SpreadsheetReadError(full_path, f"{type(exc).__name__}: {exc}") from exc


def first_worksheet(workbook: Workbook, path: str | os.PathLike) -> Worksheet:
    if not workbook.worksheets:
        raise SpreadsheetReadError(os.fspath(path), "workbook has no worksheet")
    return workbook.worksheets[0]


def read_grid(path: str | os.PathLike, width: int) -> list[list[Any]]:
    """
    Cached cell values of the first worksheet, one list per row.

    Row ``i`` of the result is spreadsheet row ``i + 1``; every row has
    exactly ``width`` entries.  Formulas yield their cached results.
    """
    with sheet_lock(path):
        workbook = open_workbook(path, read_only=True, data_only=True)
        try:
            worksheet = first_worksheet(workbook, path)
            grid: list[list[Any]] = []
            for values in worksheet.iter_rows(min_row=1, max_col=width, values_only=True):
                row = list(values)[:width]
                row.extend([None] * (width - len(row)))
                grid.append(row)
            return grid
        finally:
            workbook.close()


def save_atomic(workbook: Workbook, path: str | os.PathLike) -> int | None:
    """
    Save over ``path`` through a temporary sibling file.

    Returns:
        The new st_mtime_ns of ``path``.

    Raises:
        ExportWriteError: on any OS error while writing or replacing.
    """
    target = Path(os.path.abspath(os.fspath(path)))
    try:
        fd, tmp_name = tempfile.mkstemp(
            prefix=f".{target.stem}-", suffix=target.suffix, dir=target.parent
        )
    except OSError as exc:
        raise ExportWriteError(str(target), f"{type(exc).__name__}: {exc}") from exc
    os.close(fd)
    try:
        workbook.save(tmp_name)
        os.replace(tmp_name, target)
    except OSError as exc:
        try:
            os.unlink(tmp_name)
        except OSError:
            logger.warning("temp_file_cleanup_failed", extra={"temp_path": tmp_name})
        raise ExportWriteError(str(target), f"{type(exc).__name__}: {exc}") from exc
    return file_mtime_ns(target)
