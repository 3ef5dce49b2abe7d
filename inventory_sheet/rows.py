"""
Row classification for the inventory worksheet.

Responsibility:
    Turns raw cell values into text and decides, for one row, what kind of
    row it is.  The parser and the exporter both call ``classify_row`` so an
    import and a write-back always agree on which rows are items.

Architecture position:
    Pure functions, no I/O.  Lowest layer of ``inventory_sheet``.

Decision table (first match wins):
    TOTALS          column A is "totals" (any case)
    SECTION_HEADER  column A is text (not a pure number), repeated in the
                    code/description/part-type columns or in a quantity
                    column, and neither quantity parses as an integer
    SPACER          no code, no description, column A empty/"0"/not
                    parenthetical, quantities empty or zero
    ITEM            code present and not "0", description not "0", and
                    either a description or a parsable quantity
    NOISE           anything else
"""

from __future__ import annotations

import re
from dataclasses import dataclass
from datetime import date, datetime, time
from enum import Enum
from typing import Any

_PURE_NUMBER = re.compile(r"^\d+(\.\d+)?$")
_LEADING_INT = re.compile(r"^\s*([+-]?\d+)")


class RowKind(str, Enum):
    HEADER = "header"
    TOTALS = "totals"
    SECTION_HEADER = "section_header"
    SPACER = "spacer"
    ITEM = "item"
    NOISE = "noise"


@dataclass(frozen=True)
class RowCells:
    """The six mapped cells of one row, as stripped text."""

    section: str = ""
    item_code: str = ""
    description: str = ""
    part_type: str = ""
    min_level: str = ""
    actual_qty: str = ""


def cell_text(value: Any) -> str:
    """
    Text of a cell value as read by openpyxl in data-only mode.

    Integral floats render without the fractional part ("12" not "12.0"),
    so an item code typed as a number matches the code stored in the
    ledger.
    """
    if value is None:
        return ""
    if isinstance(value, str):
        return value
    if isinstance(value, bool):
        return "true" if value else "false"
    if isinstance(value, float):
        if value.is_integer():
            return str(int(value))
        return repr(value)
    if isinstance(value, (datetime, date, time)):
        return value.isoformat()
    # CellRichText and other wrappers render their plain text via str()
    return str(value)


def normalize(text: str) -> str:
    """Lowercase with runs of whitespace collapsed to one space."""
    return " ".join(text.split()).lower()


def parse_int(text: str) -> int | None:
    """
    Leading-integer parse: "12" -> 12, "12.9" -> 12, "7 pcs" -> 7.

    Returns None when the text does not start with an integer.
    """
    match = _LEADING_INT.match(text or "")
    return int(match.group(1)) if match else None


def is_pure_number(text: str) -> bool:
    return bool(_PURE_NUMBER.match(text))


def is_parenthetical(text: str) -> bool:
    return "(" in text and ")" in text


def _is_empty_or_zero(text: str) -> bool:
    return text == "" or text == "0"


def _repeats(label: str, cells: RowCells) -> bool:
    """True when the column-A text shows up again elsewhere in the row."""
    target = normalize(label)
    others = (
        normalize(cells.item_code),
        normalize(cells.description),
        normalize(cells.part_type),
    )
    if target in others:
        return True
    if is_parenthetical(label):
        if any(target in other for other in others[:2] if other):
            return True
        # Title-only row: "Earthwire (Earthwire)" with nothing beside it
        if not cells.item_code and not cells.description:
            return True
    return False


def _holds_label(text: str, label: str) -> bool:
    return bool(text) and normalize(text) == normalize(label)


def _quantity_not_numeric(text: str, parsed: int | None, label: str) -> bool:
    """A quantity cell repeating the label ("3 Phase (3P)") counts as text."""
    return parsed is None or _holds_label(text, label)


def classify_row(cells: RowCells) -> RowKind:
    """Classify one data row (a row below the header)."""
    a = cells.section
    if a.lower() == "totals":
        return RowKind.TOTALS

    min_int = parse_int(cells.min_level)
    actual_int = parse_int(cells.actual_qty)

    if a and not is_pure_number(a):
        quantities_not_numeric = (
            _quantity_not_numeric(cells.min_level, min_int, a)
            and _quantity_not_numeric(cells.actual_qty, actual_int, a)
        )
        holds_label = _holds_label(cells.min_level, a) or _holds_label(cells.actual_qty, a)
        if quantities_not_numeric and (_repeats(a, cells) or holds_label):
            return RowKind.SECTION_HEADER

    if (
        not cells.item_code
        and not cells.description
        and (not a or a == "0" or not is_parenthetical(a))
        and _is_empty_or_zero(cells.min_level)
        and _is_empty_or_zero(cells.actual_qty)
    ):
        return RowKind.SPACER

    if (
        cells.item_code
        and cells.item_code != "0"
        and cells.description != "0"
        and (cells.description or min_int is not None or actual_int is not None)
    ):
        return RowKind.ITEM

    return RowKind.NOISE


def noise_reason(cells: RowCells) -> str:
    """Short explanation of why a row was classified as NOISE."""
    if not cells.item_code:
        return "no item code"
    if cells.item_code == "0":
        return "item code is 0"
    if cells.description == "0":
        return "description is 0"
    return "no description and no quantity"


def compose_section(current: str, column_a: str, separator: str) -> str:
    """
    Section label for an item row.

    A pure number in column A is a sub-identifier appended to the carried
    section; with no carried section the number stands alone.
    """
    if column_a and is_pure_number(column_a):
        return f"{current}{separator}{column_a}" if current else column_a
    return current


def main_section_label(section: str | None, separator: str) -> str:
    """Section without its numeric suffix."""
    return (section or "").split(separator)[0]
