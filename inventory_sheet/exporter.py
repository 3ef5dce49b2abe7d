"""
Write-back of ledger state into the inventory spreadsheet.

Responsibility:
    Three narrow write paths over the same row classification the parser
    uses:

    - ``push_quantities``: absolute quantities into the actual-qty cell of
      matching ITEM rows of the live file.  Nothing else is touched.
    - ``export_snapshot``: a copy of the workbook with every matching ITEM
      row rewritten from the ledger, returned as bytes.  The file on disk
      is not modified.
    - ``update_item_row``: the descriptive cells of one item after an
      administrative edit.

Invariants enforced:
    - SECTION_HEADER, SPACER, TOTALS and NOISE rows are never written.
    - No rows are inserted; ledger items missing from the sheet are
      reported, not added.
    - push_quantities is idempotent: re-applying the same map changes no
      cell, and an unchanged workbook is not saved.
    - All reads and writes of one path hold ``sheet_lock(path)``.

Failure modes:
    - SpreadsheetReadError: the file cannot be opened.
    - ExportWriteError: the file cannot be saved.
    - ItemNotInSpreadsheetError: update_item_row() found no row.
"""

from __future__ import annotations

import io
import os
from collections.abc import Iterable, Mapping
from dataclasses import dataclass
from typing import Any

from openpyxl.worksheet.worksheet import Worksheet

from inventory_config.schema import SheetLayout
from inventory_kernel.domain.dtos import ItemSnapshot
from inventory_kernel.exceptions import ItemNotInSpreadsheetError
from inventory_kernel.logging_config import get_logger
from inventory_sheet.parser import classify_grid, resolve_columns
from inventory_sheet.rows import RowKind, is_pure_number, main_section_label
from inventory_sheet.workbook import (
    file_mtime_ns,
    first_worksheet,
    open_workbook,
    read_grid,
    save_atomic,
    sheet_lock,
)

logger = get_logger("sheet.exporter")


@dataclass(frozen=True)
class PushResult:
    """Outcome of one quantity push."""

    path: str
    updated_codes: tuple[str, ...]
    missing_codes: tuple[str, ...]
    changed: bool
    mtime_before_ns: int | None
    mtime_ns: int | None


@dataclass(frozen=True)
class RowUpdateResult:
    """Outcome of one administrative row edit."""

    path: str
    rows: tuple[int, ...]
    mtime_before_ns: int | None
    mtime_ns: int | None


@dataclass(frozen=True)
class _SheetMap:
    columns: dict[str, int]
    item_rows: dict[str, list[int]]


def _same_number(current: Any, value: int) -> bool:
    return (
        isinstance(current, (int, float))
        and not isinstance(current, bool)
        and current == value
    )


def _text_or_none(value: Any) -> str | None:
    if value is None:
        return None
    text = str(value)
    return text if text.strip() else None


class SpreadsheetExporter:
    """Writes ledger values into one spreadsheet path."""

    def __init__(self, path: str | os.PathLike, layout: SheetLayout | None = None):
        self.path = os.path.abspath(os.fspath(path))
        self.layout = layout or SheetLayout()

    def _map_sheet(self) -> _SheetMap:
        """Classify rows from cached values (formulas resolved to results)."""
        grid = read_grid(self.path, self.layout.grid_width)
        _header_row, column_map, rows = classify_grid(grid, self.layout)
        item_rows: dict[str, list[int]] = {}
        for row in rows:
            if row.kind is RowKind.ITEM:
                item_rows.setdefault(row.cells.item_code, []).append(row.row_number)
        return _SheetMap(resolve_columns(column_map, self.layout), item_rows)

    # -------------------------------------------------------------------------
    # Quantity-only patch
    # -------------------------------------------------------------------------

    def push_quantities(self, updates: Mapping[str, int]) -> PushResult:
        """
        Write absolute quantities for the given item codes.

        Every ITEM row carrying a code receives the value.  Codes with no
        ITEM row are returned in ``missing_codes``.
        """
        with sheet_lock(self.path):
            before = file_mtime_ns(self.path)
            sheet = self._map_sheet()

            targets = {code: int(qty) for code, qty in updates.items() if code in sheet.item_rows}
            missing = tuple(sorted(code for code in updates if code not in sheet.item_rows))
            if missing:
                logger.warning(
                    "push_codes_not_in_sheet",
                    extra={"path": self.path, "item_codes": list(missing)},
                )
            if not targets:
                return PushResult(self.path, (), missing, False, before, before)

            qty_column = sheet.columns["actual_qty"]
            workbook = open_workbook(self.path)
            try:
                worksheet = first_worksheet(workbook, self.path)
                changed = False
                for code, qty in targets.items():
                    for row_number in sheet.item_rows[code]:
                        cell = worksheet.cell(row=row_number, column=qty_column)
                        if not _same_number(cell.value, qty):
                            cell.value = qty
                            changed = True
                mtime = save_atomic(workbook, self.path) if changed else before
            finally:
                workbook.close()

        logger.info(
            "quantities_pushed",
            extra={
                "path": self.path,
                "item_codes": sorted(targets),
                "changed": changed,
            },
        )
        return PushResult(
            path=self.path,
            updated_codes=tuple(sorted(targets)),
            missing_codes=missing,
            changed=changed,
            mtime_before_ns=before,
            mtime_ns=mtime,
        )

    # -------------------------------------------------------------------------
    # Full snapshot
    # -------------------------------------------------------------------------

    def export_snapshot(self, items: Iterable[ItemSnapshot]) -> bytes:
        """
        Workbook bytes with every matching ITEM row rewritten from the ledger.

        Section is written as its main label (numeric suffix stripped).
        """
        ledger = {item.item_code: item for item in items}
        with sheet_lock(self.path):
            sheet = self._map_sheet()
            workbook = open_workbook(self.path)
            try:
                worksheet = first_worksheet(workbook, self.path)
                written = 0
                for code, row_numbers in sheet.item_rows.items():
                    item = ledger.get(code)
                    if item is None:
                        continue
                    for row_number in row_numbers:
                        self._write_item_row(worksheet, sheet.columns, row_number, item)
                        written += 1
                buffer = io.BytesIO()
                workbook.save(buffer)
            finally:
                workbook.close()

        not_in_sheet = sorted(set(ledger) - set(sheet.item_rows))
        logger.info(
            "snapshot_exported",
            extra={
                "path": self.path,
                "rows_written": written,
                "ledger_only_items": len(not_in_sheet),
            },
        )
        return buffer.getvalue()

    def _write_item_row(
        self,
        worksheet: Worksheet,
        columns: dict[str, int],
        row_number: int,
        item: ItemSnapshot,
    ) -> None:
        values = {
            "section": _text_or_none(
                main_section_label(item.section, self.layout.section_separator)
            ),
            "item_code": item.item_code,
            "description": _text_or_none(item.description),
            "part_type": _text_or_none(item.part_type),
            "min_level": int(item.min_level),
            "actual_qty": int(item.actual_qty),
        }
        for name, value in values.items():
            worksheet.cell(row=row_number, column=columns[name]).value = value

    # -------------------------------------------------------------------------
    # Administrative row edit
    # -------------------------------------------------------------------------

    def update_item_row(self, old_code: str, fields: Mapping[str, Any]) -> RowUpdateResult:
        """
        Rewrite descriptive cells of the rows carrying ``old_code``.

        Recognized keys: item_code, description, part_type, min_level,
        actual_qty, section.  Column A of an item row holds the numeric
        sub-identifier, so only a pure-number section suffix is written
        there; the section label itself comes from the section header.

        Returns:
            RowUpdateResult with the rows written and the file mtimes.

        Raises:
            ItemNotInSpreadsheetError: no ITEM row carries ``old_code``.
        """
        with sheet_lock(self.path):
            before = file_mtime_ns(self.path)
            sheet = self._map_sheet()
            row_numbers = sheet.item_rows.get(old_code)
            if not row_numbers:
                raise ItemNotInSpreadsheetError(old_code)

            values: dict[str, Any] = {}
            if "item_code" in fields:
                values["item_code"] = str(fields["item_code"])
            for name in ("description", "part_type"):
                if name in fields:
                    values[name] = _text_or_none(fields[name])
            for name in ("min_level", "actual_qty"):
                if name in fields:
                    values[name] = int(fields[name] or 0)
            if "section" in fields:
                suffix = (fields["section"] or "").split(self.layout.section_separator)[-1]
                if suffix and is_pure_number(suffix.strip()):
                    values["section"] = suffix.strip()

            workbook = open_workbook(self.path)
            try:
                worksheet = first_worksheet(workbook, self.path)
                for row_number in row_numbers:
                    for name, value in values.items():
                        worksheet.cell(row=row_number, column=sheet.columns[name]).value = value
                mtime = save_atomic(workbook, self.path)
            finally:
                workbook.close()

        logger.info(
            "item_row_updated",
            extra={
                "path": self.path,
                "previous_code": old_code,
                "rows": list(row_numbers),
                "fields": sorted(values),
            },
        )
        return RowUpdateResult(self.path, tuple(row_numbers), before, mtime)
