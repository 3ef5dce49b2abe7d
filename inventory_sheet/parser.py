"""
Structural parser for the inventory worksheet.

Responsibility:
    Finds the header row, maps the six known columns, classifies every row
    below the header and extracts item records with their section context.

Architecture position:
    ``parse_grid`` is pure and works on a list of raw rows, so it is tested
    without files.  ``parse_workbook`` reads the first worksheet through
    ``inventory_sheet.workbook`` and delegates.

Invariants enforced:
    - Header detection never fails: rows 1..10, then 11..50, then a fixed
      fallback layout (header row 4, columns A-F).
    - A malformed row never raises.  Rows classified NOISE are logged as
      ``row_discarded`` and returned in ``ParseResult.discarded``.
    - SECTION_HEADER rows set the carried section; they never yield items.

Failure modes:
    - SpreadsheetReadError from ``parse_workbook`` only: the file is
      missing, unreadable, not a workbook, or has no worksheet.
"""

from __future__ import annotations

import os
from collections.abc import Sequence
from dataclasses import dataclass, field
from typing import Any

from inventory_config.schema import SheetLayout
from inventory_kernel.domain.dtos import ParsedItem
from inventory_kernel.logging_config import get_logger
from inventory_sheet.rows import (
    RowCells,
    RowKind,
    cell_text,
    classify_row,
    compose_section,
    noise_reason,
    normalize,
    parse_int,
)
from inventory_sheet.workbook import read_grid

logger = get_logger("sheet.parser")

# Field order matches SheetLayout.header_labels / default_columns
FIELDS = ("section", "item_code", "description", "part_type", "min_level", "actual_qty")


@dataclass(frozen=True)
class ClassifiedRow:
    row_number: int
    kind: RowKind
    cells: RowCells


@dataclass(frozen=True)
class DiscardedRow:
    row_number: int
    reason: str
    cells: RowCells


@dataclass(frozen=True)
class ParseResult:
    """Everything one parse of the worksheet produced."""

    path: str
    header_row: int
    column_map: dict[str, int]
    items: tuple[ParsedItem, ...] = ()
    rows: tuple[ClassifiedRow, ...] = ()
    discarded: tuple[DiscardedRow, ...] = field(default=())

    def item_rows(self) -> dict[str, list[int]]:
        """Row numbers of ITEM rows keyed by item code."""
        found: dict[str, list[int]] = {}
        for row in self.rows:
            if row.kind is RowKind.ITEM:
                found.setdefault(row.cells.item_code, []).append(row.row_number)
        return found


# ---------------------------------------------------------------------------
# Header detection
# ---------------------------------------------------------------------------


def _match_header(
    values: Sequence[Any], layout: SheetLayout
) -> dict[str, int] | None:
    """Column map for a candidate header row, or None below the threshold."""
    labels = set(layout.header_labels)
    column_map: dict[str, int] = {}
    for index, value in enumerate(values[: layout.scan_width], start=1):
        text = normalize(cell_text(value))
        if text in labels and text not in column_map:
            column_map[text] = index
    if len(column_map) >= layout.min_header_matches:
        return column_map
    return None


def detect_header(
    grid: Sequence[Sequence[Any]], layout: SheetLayout
) -> tuple[int, dict[str, int]]:
    """
    Locate the header row.

    Returns:
        (1-based header row, {label: 1-based column}).
    """
    windows = (
        range(1, layout.header_window + 1),
        range(layout.header_window + 1, layout.extended_header_window + 1),
    )
    for window in windows:
        for row_number in window:
            if row_number > len(grid):
                break
            column_map = _match_header(grid[row_number - 1], layout)
            if column_map is not None:
                return row_number, column_map

    logger.warning(
        "header_not_found",
        extra={
            "fallback_header_row": layout.fallback_header_row,
            "rows_scanned": min(len(grid), layout.extended_header_window),
        },
    )
    return layout.fallback_header_row, dict(
        zip(layout.header_labels, layout.default_columns)
    )


def resolve_columns(column_map: dict[str, int], layout: SheetLayout) -> dict[str, int]:
    """Field name -> column, using the default column for unmatched labels."""
    return {
        name: column_map.get(label, default)
        for name, label, default in zip(FIELDS, layout.header_labels, layout.default_columns)
    }


def extract_cells(values: Sequence[Any], columns: dict[str, int]) -> RowCells:
    def text(name: str) -> str:
        index = columns[name] - 1
        return cell_text(values[index]).strip() if index < len(values) else ""

    return RowCells(**{name: text(name) for name in FIELDS})


# ---------------------------------------------------------------------------
# Classification and extraction
# ---------------------------------------------------------------------------


def classify_grid(
    grid: Sequence[Sequence[Any]], layout: SheetLayout
) -> tuple[int, dict[str, int], list[ClassifiedRow]]:
    """Header row, column map and the classification of every row below it."""
    header_row, column_map = detect_header(grid, layout)
    columns = resolve_columns(column_map, layout)

    rows: list[ClassifiedRow] = []
    if header_row <= len(grid):
        rows.append(
            ClassifiedRow(header_row, RowKind.HEADER, extract_cells(grid[header_row - 1], columns))
        )
    for row_number in range(header_row + 1, len(grid) + 1):
        cells = extract_cells(grid[row_number - 1], columns)
        rows.append(ClassifiedRow(row_number, classify_row(cells), cells))
    return header_row, column_map, rows


def parse_grid(
    grid: Sequence[Sequence[Any]],
    layout: SheetLayout | None = None,
    path: str = "",
) -> ParseResult:
    """
    Parse rows of raw cell values into item records.

    Args:
        grid: Row ``i`` is spreadsheet row ``i + 1``.
        layout: Header vocabulary and search windows.
        path: Source path, for logging and the result.
    """
    layout = layout or SheetLayout()
    header_row, column_map, rows = classify_grid(grid, layout)

    current_section = ""
    items: list[ParsedItem] = []
    discarded: list[DiscardedRow] = []
    for row in rows:
        cells = row.cells
        if row.kind is RowKind.SECTION_HEADER:
            current_section = cells.section
        elif row.kind is RowKind.ITEM:
            actual_qty = parse_int(cells.actual_qty) or 0
            if actual_qty < 0:
                logger.warning(
                    "negative_quantity_clamped",
                    extra={"path": path, "row": row.row_number, "value": cells.actual_qty},
                )
                actual_qty = 0
            items.append(
                ParsedItem(
                    item_code=cells.item_code,
                    section=compose_section(
                        current_section, cells.section, layout.section_separator
                    ),
                    description=cells.description,
                    part_type=cells.part_type,
                    min_level=max(parse_int(cells.min_level) or 0, 0),
                    actual_qty=actual_qty,
                    row_number=row.row_number,
                )
            )
        elif row.kind is RowKind.NOISE:
            reason = noise_reason(cells)
            discarded.append(DiscardedRow(row.row_number, reason, cells))
            logger.info(
                "row_discarded",
                extra={
                    "path": path,
                    "row": row.row_number,
                    "reason": reason,
                    "item_code": cells.item_code or None,
                },
            )

    logger.info(
        "sheet_parsed",
        extra={
            "path": path,
            "header_row": header_row,
            "items": len(items),
            "discarded": len(discarded),
        },
    )
    return ParseResult(
        path=path,
        header_row=header_row,
        column_map=column_map,
        items=tuple(items),
        rows=tuple(rows),
        discarded=tuple(discarded),
    )


def parse_workbook(
    path: str | os.PathLike, layout: SheetLayout | None = None
) -> ParseResult:
    """
    Parse the first worksheet of an xlsx file.

    Raises:
        SpreadsheetReadError: the file cannot be read as a workbook.
    """
    layout = layout or SheetLayout()
    full_path = os.path.abspath(os.fspath(path))
    grid = read_grid(full_path, layout.grid_width)
    return parse_grid(grid, layout, path=full_path)
