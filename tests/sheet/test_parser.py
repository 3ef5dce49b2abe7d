"""
Tests for the structural worksheet parser.

Covers:
- Header detection in the first window, the extended window and fallback
- Column mapping when columns are reordered
- Section context carried from section headers to item rows
- Totals, spacer and noise rows never produce items
- Negative quantity clamping and leading-integer quantities
- Reading a real xlsx file with openpyxl
"""

import pytest

from inventory_config.schema import SheetLayout
from inventory_kernel.exceptions import SpreadsheetReadError
from inventory_sheet.parser import detect_header, parse_grid, parse_workbook
from inventory_sheet.rows import RowKind
from tests.conftest import HEADER, STANDARD_ROWS


def blank(width=6):
    return [None] * width


class TestHeaderDetection:

    def test_header_on_row_four(self):
        header_row, column_map = detect_header(STANDARD_ROWS, SheetLayout())

        assert header_row == 4
        assert column_map["item code"] == 2
        assert column_map["actual qty"] == 6

    def test_header_on_row_seven(self):
        grid = [blank() for _ in range(6)] + [HEADER]
        header_row, _ = detect_header(grid, SheetLayout())
        assert header_row == 7

    def test_header_in_extended_window(self):
        grid = [blank() for _ in range(29)] + [HEADER]
        header_row, _ = detect_header(grid, SheetLayout())
        assert header_row == 30

    def test_header_matching_ignores_case_and_spacing(self):
        grid = [["SECTION", " Item   Code ", "item description", "PART TYPE", "MinLevel", "Actual  Qty"]]
        header_row, column_map = detect_header(grid, SheetLayout())
        assert header_row == 1
        assert len(column_map) == 6

    def test_too_few_labels_is_not_a_header(self):
        grid = [["Section", "Item Code", "Notes", None, None, None]]
        header_row, column_map = detect_header(grid, SheetLayout())

        assert header_row == 4
        assert column_map["section"] == 1
        assert column_map["actual qty"] == 6

    def test_fallback_is_logged(self, captured_logs):
        detect_header([blank()], SheetLayout())

        logs = captured_logs()
        assert any(r["message"] == "header_not_found" for r in logs)


class TestParseGrid:

    def test_standard_sheet_items(self):
        result = parse_grid(STANDARD_ROWS)

        assert [item.item_code for item in result.items] == [
            "EW-001",
            "EW-002",
            "EW-003",
            "INS-001",
        ]

    def test_item_fields(self):
        result = parse_grid(STANDARD_ROWS)
        first = result.items[0]

        assert first.section == "Earthwire (Earthwire) | 1"
        assert first.description == "Earthwire clamp 12mm"
        assert first.part_type == "Clamp"
        assert first.min_level == 5
        assert first.actual_qty == 10
        assert first.row_number == 7

    def test_section_without_number(self):
        result = parse_grid(STANDARD_ROWS)
        spacer_item = result.items[2]

        assert spacer_item.item_code == "EW-003"
        assert spacer_item.section == "Earthwire (Earthwire)"
        assert spacer_item.actual_qty == 0

    def test_section_changes_at_next_header(self):
        result = parse_grid(STANDARD_ROWS)
        assert result.items[3].section == "Insulators (Insulators) | 1"

    def test_row_kinds(self):
        result = parse_grid(STANDARD_ROWS)
        kinds = {row.row_number: row.kind for row in result.rows}

        assert kinds[4] is RowKind.HEADER
        assert kinds[5] is RowKind.SPACER
        assert kinds[6] is RowKind.SECTION_HEADER
        assert kinds[7] is RowKind.ITEM
        assert kinds[10] is RowKind.SPACER
        assert kinds[13] is RowKind.TOTALS

    def test_rows_above_header_ignored(self):
        result = parse_grid(STANDARD_ROWS)
        assert min(row.row_number for row in result.rows) == 4

    def test_item_rows_by_code(self):
        result = parse_grid(STANDARD_ROWS)
        assert result.item_rows()["EW-002"] == [8]

    def test_earthwire_scenario(self):
        """One section header and three items beneath it."""
        label = "Earthwire (Earthwire)"
        grid = [
            HEADER,
            [label] * 6,
            [1, "EW-1", "Clamp", "Fitting", 2, 4],
            [2, "EW-2", "Joint", "Fitting", 1, 0],
            [3, "EW-3", "Damper", "Fitting", 3, 7],
        ]
        result = parse_grid(grid)

        assert result.header_row == 1
        assert [i.section for i in result.items] == [
            f"{label} | 1",
            f"{label} | 2",
            f"{label} | 3",
        ]
        assert [i.actual_qty for i in result.items] == [4, 0, 7]

    def test_reordered_columns(self):
        grid = [
            ["Item Code", "Actual Qty", "Item Description", "Section", "MinLevel", "Part Type"],
            ["X-1", 9, "Bolt", None, 1, "Hardware"],
        ]
        result = parse_grid(grid)
        item = result.items[0]

        assert item.item_code == "X-1"
        assert item.actual_qty == 9
        assert item.part_type == "Hardware"

    def test_numeric_item_code(self):
        grid = [HEADER, [None, 4711.0, "Washer", None, 0, 3]]
        result = parse_grid(grid)
        assert result.items[0].item_code == "4711"

    def test_quantity_with_unit_suffix(self):
        grid = [HEADER, [None, "B-1", "Bolt", None, "2 pcs", "12.7"]]
        result = parse_grid(grid)

        assert result.items[0].min_level == 2
        assert result.items[0].actual_qty == 12

    def test_negative_quantity_clamped(self, captured_logs):
        grid = [HEADER, [None, "B-2", "Bolt", None, -1, -5]]
        result = parse_grid(grid)

        assert result.items[0].actual_qty == 0
        assert result.items[0].min_level == 0
        assert any(r["message"] == "negative_quantity_clamped" for r in captured_logs())

    def test_noise_rows_discarded_and_logged(self, captured_logs):
        grid = [
            HEADER,
            [None, "0", "Bad code", None, 1, 1],
            [None, None, "Orphan description", None, 1, 1],
            [None, "G-1", "Good", None, 1, 1],
        ]
        result = parse_grid(grid)

        assert [i.item_code for i in result.items] == ["G-1"]
        assert [d.row_number for d in result.discarded] == [2, 3]
        assert result.discarded[0].reason == "item code is 0"
        discarded_logs = [r for r in captured_logs() if r["message"] == "row_discarded"]
        assert len(discarded_logs) == 2

    def test_totals_row_not_an_item(self):
        grid = [HEADER, [None, "T-1", "Thing", None, 1, 2], ["totals", "T-1", None, None, 1, 2]]
        result = parse_grid(grid)
        assert len(result.items) == 1

    def test_empty_grid(self):
        result = parse_grid([])
        assert result.items == ()
        assert result.header_row == 4


class TestParseWorkbook:

    def test_reads_first_worksheet(self, standard_workbook):
        result = parse_workbook(standard_workbook)

        assert result.header_row == 4
        assert len(result.items) == 4
        assert result.path == str(standard_workbook)

    def test_missing_file(self, tmp_path):
        with pytest.raises(SpreadsheetReadError):
            parse_workbook(tmp_path / "missing.xlsx")

    def test_not_a_workbook(self, tmp_path):
        path = tmp_path / "broken.xlsx"
        path.write_bytes(b"not a zip file")

        with pytest.raises(SpreadsheetReadError):
            parse_workbook(path)
