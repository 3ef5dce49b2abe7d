"""
Tests for spreadsheet write-back.

Covers:
- push_quantities touches only the Actual Qty cell of matching item rows
- Idempotent pushes leave the file untouched
- Section header, spacer and totals rows are never written
- Codes missing from the sheet are reported, never inserted
- export_snapshot fills a copy and leaves the template on disk unchanged
- update_item_row rewrites descriptive cells of one item
"""

import io
import os

import openpyxl
import pytest

from inventory_kernel.domain.dtos import ItemSnapshot
from inventory_kernel.exceptions import ItemNotInSpreadsheetError, SpreadsheetReadError
from inventory_sheet.exporter import SpreadsheetExporter
from inventory_sheet.parser import parse_workbook
from tests.conftest import STANDARD_ROWS, read_cells


def snapshot(code, qty, section="Earthwire (Earthwire) | 1", description="Desc", min_level=0):
    return ItemSnapshot(
        item_code=code,
        section=section,
        description=description,
        part_type="Part",
        min_level=min_level,
        actual_qty=qty,
        version=2,
    )


class TestPushQuantities:

    def test_writes_only_actual_qty(self, standard_workbook):
        before = read_cells(standard_workbook)

        result = SpreadsheetExporter(standard_workbook).push_quantities({"EW-001": 18})

        after = read_cells(standard_workbook)
        assert result.changed is True
        assert result.updated_codes == ("EW-001",)
        assert after[6][5] == 18
        # Every other cell is byte-for-byte what it was
        after[6][5] = before[6][5]
        assert after == before

    def test_section_header_untouched(self, standard_workbook):
        SpreadsheetExporter(standard_workbook).push_quantities(
            {"EW-001": 1, "EW-002": 2, "EW-003": 3, "INS-001": 4}
        )

        after = read_cells(standard_workbook)
        assert after[5] == ["Earthwire (Earthwire)"] * 6
        assert after[12] == ["Totals", None, None, None, 12, 25]
        assert after[4] == [None, None, None, None, 0, 0]

    def test_idempotent_push_does_not_save(self, standard_workbook):
        exporter = SpreadsheetExporter(standard_workbook)
        exporter.push_quantities({"EW-002": 9})
        mtime = os.stat(standard_workbook).st_mtime_ns
        content = standard_workbook.read_bytes()

        result = exporter.push_quantities({"EW-002": 9})

        assert result.changed is False
        assert os.stat(standard_workbook).st_mtime_ns == mtime
        assert standard_workbook.read_bytes() == content

    def test_unchanged_value_not_saved(self, standard_workbook):
        """Pushing the quantity already in the sheet is a no-op."""
        mtime = os.stat(standard_workbook).st_mtime_ns

        result = SpreadsheetExporter(standard_workbook).push_quantities({"EW-001": 10})

        assert result.changed is False
        assert result.mtime_ns == mtime

    def test_missing_codes_reported_not_inserted(self, standard_workbook, captured_logs):
        rows_before = len(read_cells(standard_workbook))

        result = SpreadsheetExporter(standard_workbook).push_quantities(
            {"NOT-THERE": 5, "EW-001": 11}
        )

        assert result.missing_codes == ("NOT-THERE",)
        assert len(read_cells(standard_workbook)) == rows_before
        assert any(r["message"] == "push_codes_not_in_sheet" for r in captured_logs())

    def test_all_codes_missing_leaves_file(self, standard_workbook):
        content = standard_workbook.read_bytes()

        result = SpreadsheetExporter(standard_workbook).push_quantities({"NOPE": 1})

        assert result.changed is False
        assert standard_workbook.read_bytes() == content

    def test_duplicate_code_rows_all_written(self, make_workbook):
        path = make_workbook(
            [
                STANDARD_ROWS[3],
                [None, "DUP", "First", None, 1, 1],
                [None, "DUP", "Second", None, 1, 1],
            ]
        )

        SpreadsheetExporter(path).push_quantities({"DUP": 6})

        after = read_cells(path)
        assert after[1][5] == 6
        assert after[2][5] == 6

    def test_digit_led_section_label_untouched(self, make_workbook):
        label = "3 Phase (3P)"
        path = make_workbook(
            [
                STANDARD_ROWS[3],
                [label] * 6,
                [1, "3P-001", "Phase bar", "Bar", 2, 4],
            ]
        )

        result = SpreadsheetExporter(path).push_quantities({label: 9, "3P-001": 5})

        assert result.missing_codes == (label,)
        after = read_cells(path)
        assert after[1] == [label] * 6
        assert after[2][5] == 5
        parsed = parse_workbook(path).items
        assert [(i.item_code, i.section) for i in parsed] == [("3P-001", "3 Phase (3P) | 1")]

    def test_push_then_parse_round(self, standard_workbook):
        SpreadsheetExporter(standard_workbook).push_quantities({"INS-001": 0})
        parsed = {i.item_code: i.actual_qty for i in parse_workbook(standard_workbook).items}
        assert parsed["INS-001"] == 0

    def test_no_temp_files_left(self, standard_workbook):
        SpreadsheetExporter(standard_workbook).push_quantities({"EW-001": 2})
        assert os.listdir(standard_workbook.parent) == [standard_workbook.name]

    def test_missing_file_raises(self, tmp_path):
        with pytest.raises(SpreadsheetReadError):
            SpreadsheetExporter(tmp_path / "gone.xlsx").push_quantities({"A": 1})


class TestExportSnapshot:

    def test_fills_copy(self, standard_workbook):
        data = SpreadsheetExporter(standard_workbook).export_snapshot(
            [snapshot("EW-001", 42, description="Renamed clamp", min_level=7)]
        )

        workbook = openpyxl.load_workbook(io.BytesIO(data))
        sheet = workbook.worksheets[0]
        assert sheet.cell(row=7, column=1).value == "Earthwire (Earthwire)"
        assert sheet.cell(row=7, column=3).value == "Renamed clamp"
        assert sheet.cell(row=7, column=5).value == 7
        assert sheet.cell(row=7, column=6).value == 42

    def test_template_on_disk_unchanged(self, standard_workbook):
        content = standard_workbook.read_bytes()
        mtime = os.stat(standard_workbook).st_mtime_ns

        SpreadsheetExporter(standard_workbook).export_snapshot([snapshot("EW-001", 1)])

        assert standard_workbook.read_bytes() == content
        assert os.stat(standard_workbook).st_mtime_ns == mtime

    def test_ledger_only_items_add_no_rows(self, standard_workbook):
        data = SpreadsheetExporter(standard_workbook).export_snapshot(
            [snapshot("EW-001", 1), snapshot("LEDGER-ONLY", 5)]
        )

        sheet = openpyxl.load_workbook(io.BytesIO(data)).worksheets[0]
        assert sheet.max_row == len(STANDARD_ROWS)

    def test_unmatched_rows_keep_values(self, standard_workbook):
        data = SpreadsheetExporter(standard_workbook).export_snapshot([snapshot("EW-001", 1)])

        sheet = openpyxl.load_workbook(io.BytesIO(data)).worksheets[0]
        assert sheet.cell(row=8, column=6).value == 3
        assert sheet.cell(row=6, column=1).value == "Earthwire (Earthwire)"


class TestUpdateItemRow:

    def test_rename_and_describe(self, standard_workbook):
        result = SpreadsheetExporter(standard_workbook).update_item_row(
            "EW-002", {"item_code": "EW-002A", "description": "Joint, heavy", "min_level": 4}
        )

        after = read_cells(standard_workbook)
        assert result.rows == (8,)
        assert after[7][1] == "EW-002A"
        assert after[7][2] == "Joint, heavy"
        assert after[7][4] == 4
        assert after[7][0] == 2

    def test_numeric_section_suffix_written(self, standard_workbook):
        SpreadsheetExporter(standard_workbook).update_item_row(
            "EW-003", {"section": "Earthwire (Earthwire) | 3"}
        )
        assert read_cells(standard_workbook)[8][0] == "3"

    def test_section_label_not_written(self, standard_workbook):
        SpreadsheetExporter(standard_workbook).update_item_row(
            "EW-003", {"section": "Insulators (Insulators)"}
        )
        assert read_cells(standard_workbook)[8][0] is None

    def test_unknown_code(self, standard_workbook):
        with pytest.raises(ItemNotInSpreadsheetError):
            SpreadsheetExporter(standard_workbook).update_item_row("NOPE", {"description": "x"})

    def test_mtimes_reported(self, standard_workbook):
        before = os.stat(standard_workbook).st_mtime_ns

        result = SpreadsheetExporter(standard_workbook).update_item_row(
            "EW-001", {"part_type": "Bracket"}
        )

        assert result.mtime_before_ns == before
        assert result.mtime_ns == os.stat(standard_workbook).st_mtime_ns
