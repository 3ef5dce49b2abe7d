"""
inventory_sheet -- reading and writing the inventory spreadsheet.

The structural parser (``rows``, ``parser``) and the write-back exporter
(``exporter``) share one row classifier, so an import and a write-back
always agree on which rows hold items.
"""

from inventory_sheet.exporter import PushResult, RowUpdateResult, SpreadsheetExporter
from inventory_sheet.parser import (
    ClassifiedRow,
    DiscardedRow,
    ParseResult,
    detect_header,
    parse_grid,
    parse_workbook,
)
from inventory_sheet.rows import RowCells, RowKind, cell_text, classify_row, parse_int
from inventory_sheet.workbook import file_mtime_ns, sheet_lock

__all__ = [
    "ClassifiedRow",
    "DiscardedRow",
    "ParseResult",
    "PushResult",
    "RowUpdateResult",
    "RowCells",
    "RowKind",
    "SpreadsheetExporter",
    "cell_text",
    "classify_row",
    "detect_header",
    "file_mtime_ns",
    "parse_grid",
    "parse_int",
    "parse_workbook",
    "sheet_lock",
]
