"""
Tests for the InventoryService public API.

Covers:
- Reads import the spreadsheet when it changed, and only then
- Stock mutations commit first, then write quantities back to the sheet
- Spreadsheet trouble never fails a read or rolls back a mutation
- Pending write-backs survive an import of the older sheet
- Administrative edits, ledger-only items and snapshot export
"""

import io
import os

import openpyxl
import pytest

from inventory_kernel.domain.dtos import ConsumeLine
from inventory_kernel.exceptions import (
    InsufficientStockError,
    ItemNotFoundError,
    SlipNotFoundError,
    SpreadsheetReadError,
    SyncError,
)
from inventory_services.inventory_service import InventoryService
from tests.conftest import STANDARD_ROWS, read_cells, touch_later, write_workbook


def sheet_qty(path, row):
    return read_cells(path)[row - 1][5]


def rows_with(code, qty=None, description=None):
    rows = [list(r) for r in STANDARD_ROWS]
    for row in rows:
        if row[1] == code:
            if qty is not None:
                row[5] = qty
            if description is not None:
                row[2] = description
    return rows


@pytest.fixture
def failing_save(monkeypatch):
    """Every spreadsheet save fails until monkeypatch.undo()."""

    def refuse(workbook, path):
        raise PermissionError(f"{path} is locked by another program")

    monkeypatch.setattr("inventory_sheet.exporter.save_atomic", refuse)
    return monkeypatch


class TestReads:

    def test_first_read_imports(self, inventory_service):
        items = inventory_service.list_items()

        assert [i.item_code for i in items] == ["EW-003", "EW-001", "EW-002", "INS-001"]
        assert inventory_service.get_item("EW-001").actual_qty == 10

    def test_unchanged_file_not_reimported(self, inventory_service, captured_logs):
        inventory_service.list_items()
        inventory_service.list_items()

        completed = [r for r in captured_logs() if r["message"] == "sync_completed"]
        assert len(completed) == 1

    def test_external_edit_picked_up(self, inventory_service, standard_workbook):
        inventory_service.list_items()

        write_workbook(standard_workbook, rows_with("EW-002", 50))
        touch_later(standard_workbook)

        assert inventory_service.get_item("EW-002").actual_qty == 50

    def test_search_and_low_stock(self, inventory_service):
        assert [i.item_code for i in inventory_service.list_items(search="insulator")] == ["INS-001"]
        low = inventory_service.list_items(low_stock_only=True)
        assert {i.item_code for i in low} == {"EW-003"}

    def test_unknown_item(self, inventory_service):
        with pytest.raises(ItemNotFoundError):
            inventory_service.get_item("NOPE")

    def test_missing_file_serves_ledger(self, session_factory, make_config, tmp_path, create_item):
        create_item("KEEP", actual_qty=2)
        service = InventoryService(session_factory, config=make_config(tmp_path / "absent.xlsx"))

        assert [i.item_code for i in service.list_items()] == ["KEEP"]

    def test_corrupt_file_serves_ledger(
        self, session_factory, make_config, tmp_path, create_item, captured_logs
    ):
        create_item("KEEP", actual_qty=2)
        path = tmp_path / "corrupt.xlsx"
        path.write_bytes(b"garbage")
        service = InventoryService(session_factory, config=make_config(path))

        assert [i.item_code for i in service.list_items()] == ["KEEP"]
        stale = [r for r in captured_logs() if r["message"] == "serving_stale_ledger"]
        assert stale[0]["error_code"] == "SYNC_FAILED"
        assert service.sync.last_synced_mtime_ns is None

    def test_auto_sync_disabled(self, session_factory, make_config, standard_workbook):
        service = InventoryService(
            session_factory, config=make_config(standard_workbook, auto_sync=False)
        )

        assert service.list_items() == []
        assert service.import_now().items == 4
        assert len(service.list_items()) == 4


class TestMutations:

    def test_adjust_writes_back(self, inventory_service, standard_workbook):
        inventory_service.list_items()

        result = inventory_service.adjust("EW-001", 5, note="delivery", actor_id="tech-1")

        assert result.actual_qty == 15
        assert sheet_qty(standard_workbook, 7) == 15
        assert inventory_service.sync.last_synced_mtime_ns == os.stat(standard_workbook).st_mtime_ns

    def test_own_write_not_reimported(self, inventory_service, captured_logs):
        inventory_service.list_items()
        inventory_service.adjust("EW-001", 5)
        inventory_service.list_items()

        completed = [r for r in captured_logs() if r["message"] == "sync_completed"]
        assert len(completed) == 1

    def test_consume_writes_back(self, inventory_service, standard_workbook):
        inventory_service.list_items()

        result = inventory_service.consume(
            "TASK-9",
            [ConsumeLine("EW-001", 4), {"item_code": "INS-001", "qty_used": 2}],
            actor_id="tech-2",
        )

        assert result.updated_items == {"EW-001": 6, "INS-001": 10}
        assert sheet_qty(standard_workbook, 7) == 6
        assert sheet_qty(standard_workbook, 12) == 10
        slip = inventory_service.get_slip(result.slip.id)
        assert [line.item_code for line in slip.lines] == ["EW-001", "INS-001"]

    def test_rejected_mutation_leaves_sheet(self, inventory_service, standard_workbook):
        inventory_service.list_items()
        content = standard_workbook.read_bytes()

        with pytest.raises(InsufficientStockError):
            inventory_service.consume("TASK-1", [ConsumeLine("EW-002", 4)])

        assert standard_workbook.read_bytes() == content
        assert inventory_service.get_item("EW-002").actual_qty == 3

    def test_export_failure_keeps_commit(self, inventory_service, standard_workbook, captured_logs):
        inventory_service.list_items()
        standard_workbook.write_bytes(b"locked by another program")

        result = inventory_service.adjust("EW-001", 5)

        assert result.actual_qty == 15
        assert inventory_service.sink.pending_codes() == ["EW-001"]
        assert any(r["message"] == "export_push_failed" for r in captured_logs())

    def test_pending_write_back_flushed_before_import(
        self, inventory_service, standard_workbook, captured_logs
    ):
        inventory_service.list_items()
        standard_workbook.write_bytes(b"locked by another program")
        inventory_service.adjust("EW-001", 5)
        touch_later(standard_workbook)

        assert inventory_service.get_item("EW-001").actual_qty == 15
        stale = [r for r in captured_logs() if r["message"] == "serving_stale_ledger"]
        assert stale[-1]["error_code"] == "SYNC_FAILED"

        # File readable again: the pending quantity is pushed before importing
        write_workbook(standard_workbook, STANDARD_ROWS)
        touch_later(standard_workbook, seconds=2)

        assert inventory_service.get_item("EW-001").actual_qty == 15
        assert sheet_qty(standard_workbook, 7) == 15
        assert not inventory_service.sink.has_pending

    def test_import_proceeds_while_write_back_pending(
        self, inventory_service, standard_workbook, failing_save
    ):
        inventory_service.list_items()
        inventory_service.adjust("EW-001", 5)
        assert inventory_service.sink.pending_codes() == ["EW-001"]

        write_workbook(standard_workbook, rows_with("EW-002", description="Earthwire joint XL"))
        touch_later(standard_workbook)
        result = inventory_service.import_now()

        assert result.kept_quantities == ("EW-001",)
        assert inventory_service.get_item("EW-002").description == "Earthwire joint XL"
        assert inventory_service.get_item("EW-001").actual_qty == 15
        assert inventory_service.sink.pending_codes() == ["EW-001"]

        failing_save.undo()
        inventory_service.adjust("INS-001", -1)

        assert sheet_qty(standard_workbook, 7) == 15
        assert sheet_qty(standard_workbook, 12) == 11

    def test_item_edit_supersedes_pending_quantity(
        self, inventory_service, standard_workbook, failing_save
    ):
        inventory_service.list_items()
        inventory_service.adjust("EW-001", 5)
        failing_save.undo()

        inventory_service.update_item("EW-001", {"actual_qty": 20})
        inventory_service.adjust("EW-002", 1)

        assert sheet_qty(standard_workbook, 7) == 20
        assert sheet_qty(standard_workbook, 8) == 4
        assert not inventory_service.sink.has_pending
        assert inventory_service.get_item("EW-001").actual_qty == 20

    def test_rename_carries_pending_quantity(
        self, inventory_service, standard_workbook, failing_save
    ):
        inventory_service.list_items()
        inventory_service.adjust("EW-001", 5)
        failing_save.undo()

        inventory_service.update_item("EW-001", {"item_code": "EW-001A"})

        cells = read_cells(standard_workbook)[6]
        assert cells[1] == "EW-001A"
        assert cells[5] == 15
        assert not inventory_service.sink.has_pending

    def test_export_disabled(self, session_factory, make_config, standard_workbook):
        service = InventoryService(
            session_factory, config=make_config(standard_workbook, export_enabled=False)
        )
        service.list_items()
        content = standard_workbook.read_bytes()

        service.adjust("EW-001", 1)

        assert standard_workbook.read_bytes() == content

    def test_background_mode(self, session_factory, make_config, standard_workbook):
        service = InventoryService(
            session_factory, config=make_config(standard_workbook, export_mode="background")
        )
        service.start()
        service.list_items()

        service.adjust("EW-002", 7)
        service.close()

        assert sheet_qty(standard_workbook, 8) == 10


class TestAdministration:

    def test_update_item_rewrites_row(self, inventory_service, standard_workbook):
        inventory_service.list_items()

        item = inventory_service.update_item(
            "EW-002", {"item_code": "EW-002A", "description": "Joint XL"}
        )

        assert item.item_code == "EW-002A"
        cells = read_cells(standard_workbook)[7]
        assert cells[1] == "EW-002A"
        assert cells[2] == "Joint XL"
        codes = [i.item_code for i in inventory_service.list_items()]
        assert "EW-002" not in codes
        assert "EW-002A" in codes

    def test_update_ledger_only_item(self, inventory_service, captured_logs):
        inventory_service.list_items()
        inventory_service.create_item("LEDGER-1", description="Not in sheet")

        item = inventory_service.update_item("LEDGER-1", {"min_level": 3})

        assert item.min_level == 3
        assert any(r["message"] == "item_row_not_in_sheet" for r in captured_logs())

    def test_create_item_adds_no_sheet_row(self, inventory_service, standard_workbook):
        inventory_service.list_items()
        inventory_service.create_item("LEDGER-2", actual_qty=5)

        data = inventory_service.export_snapshot()

        sheet = openpyxl.load_workbook(io.BytesIO(data)).worksheets[0]
        assert sheet.max_row == len(STANDARD_ROWS)

    def test_snapshot_reflects_ledger(self, inventory_service, standard_workbook):
        inventory_service.list_items()
        inventory_service.adjust("INS-001", -2)

        sheet = openpyxl.load_workbook(io.BytesIO(inventory_service.export_snapshot())).worksheets[0]

        assert sheet.cell(row=12, column=6).value == 10

    def test_snapshot_without_path(self, session_factory):
        with pytest.raises(SpreadsheetReadError):
            InventoryService(session_factory).export_snapshot()

    def test_import_now_without_path(self, session_factory):
        with pytest.raises(SyncError):
            InventoryService(session_factory).import_now()

    def test_import_now(self, inventory_service):
        result = inventory_service.import_now()
        assert (result.items, result.inserted) == (4, 4)

    def test_slips_and_usage(self, inventory_service, deterministic_clock):
        inventory_service.list_items()
        first = inventory_service.consume("T-1", [ConsumeLine("EW-001", 2)])
        deterministic_clock.advance(60)
        second = inventory_service.consume("T-2", [ConsumeLine("EW-001", 1)])

        slips = inventory_service.list_slips()
        assert [s.slip_no for s in slips] == [second.slip.slip_no, first.slip.slip_no]

        usage = inventory_service.list_usage()
        assert len(usage) == 1
        assert usage[0].total_qty_used == 3
        assert usage[0].usage_count == 2

    def test_unknown_slip(self, inventory_service):
        with pytest.raises(SlipNotFoundError):
            inventory_service.get_slip("not-a-uuid")
