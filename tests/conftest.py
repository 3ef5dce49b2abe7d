"""
Pytest fixtures for the inventory ledger test suite.

Provides:
- A fresh SQLite database file per test (or INVENTORY_TEST_DATABASE_URL)
- Sessions, the session factory and a deterministic clock
- A workbook builder that writes xlsx fixtures with openpyxl
- Structured log capture

Environment Variables:
- INVENTORY_TEST_DATABASE_URL: run against another database (e.g. a
  disposable PostgreSQL database).  Tables are dropped and recreated for
  every test.
"""

import json
import logging
import os
from collections.abc import Callable, Sequence
from io import StringIO
from pathlib import Path
from typing import Any, Generator

import openpyxl
import pytest
from sqlalchemy.orm import Session

from inventory_config import InventoryConfig
from inventory_config.schema import ExportSettings, SyncSettings
from inventory_kernel.db.engine import (
    create_tables,
    drop_tables,
    get_session_factory,
    init_engine_from_url,
    reset_engine,
)
from inventory_kernel.db.immutability import (
    register_immutability_listeners,
    unregister_immutability_listeners,
)
from inventory_kernel.domain.clock import DeterministicClock
from inventory_kernel.logging_config import (
    LogContext,
    StructuredFormatter,
    configure_logging,
    reset_logging,
)
from inventory_kernel.models.item import InventoryItem
from inventory_services.inventory_service import InventoryService

TEST_ACTOR_ID = "tech-42"

HEADER = ["Section", "Item Code", "Item Description", "Part Type", "MinLevel", "Actual Qty"]

# A small sheet shaped like the real template: title rows, header on row 4,
# a spacer, a section header, numbered item rows and a totals row.
STANDARD_ROWS: list[list[Any]] = [
    ["Inventory Count", None, None, None, None, None],
    ["Site: North", None, None, None, None, None],
    [None, None, None, None, None, None],
    HEADER,
    [None, None, None, None, 0, 0],
    ["Earthwire (Earthwire)"] * 6,
    [1, "EW-001", "Earthwire clamp 12mm", "Clamp", 5, 10],
    [2, "EW-002", "Earthwire joint", "Joint", 2, 3],
    [None, "EW-003", "Earthwire spacer", "Spacer", 1, 0],
    [None, None, None, None, 0, 0],
    ["Insulators (Insulators)"] * 6,
    [1, "INS-001", "Disc insulator 70kN", "Insulator", 4, 12],
    ["Totals", None, None, None, 12, 25],
]


# =============================================================================
# Logging fixtures
# =============================================================================


@pytest.fixture(autouse=True, scope="session")
def _configure_test_logging():
    """Configure structured logging for the test suite."""
    reset_logging()
    configure_logging(level=logging.DEBUG)
    yield
    reset_logging()


@pytest.fixture(autouse=True)
def _clear_log_context():
    """Clear LogContext between tests to prevent cross-test contamination."""
    LogContext.clear()
    yield
    LogContext.clear()


@pytest.fixture
def captured_logs():
    """
    Capture inventory logs as parsed JSON dicts.

    Usage::

        def test_something(captured_logs, stock_service):
            stock_service.adjust("EW-001", 5)
            logs = captured_logs()
            assert any(r["message"] == "stock_adjusted" for r in logs)
    """
    stream = StringIO()
    handler = logging.StreamHandler(stream)
    handler.setFormatter(StructuredFormatter())
    root = logging.getLogger("inventory")
    root.addHandler(handler)

    def _get_records() -> list[dict]:
        lines = stream.getvalue().strip().split("\n")
        return [json.loads(line) for line in lines if line]

    yield _get_records

    root.removeHandler(handler)


def pytest_configure(config):
    """Register custom markers."""
    config.addinivalue_line(
        "markers", "postgres: mark test as requiring PostgreSQL"
    )
    config.addinivalue_line(
        "markers", "slow_locks: mark test as potentially waiting for DB locks"
    )


# =============================================================================
# Database fixtures (fresh schema per test)
# =============================================================================


def get_database_url(tmp_path: Path) -> str:
    """INVENTORY_TEST_DATABASE_URL, or a SQLite file inside tmp_path."""
    return os.environ.get(
        "INVENTORY_TEST_DATABASE_URL", f"sqlite:///{tmp_path / 'ledger.db'}"
    )


@pytest.fixture
def db_engine(tmp_path):
    """Engine with freshly created tables and append-only listeners."""
    eng = init_engine_from_url(
        get_database_url(tmp_path),
        echo=False,
        pool_size=10,
        max_overflow=10,
        pool_timeout=10,
    )
    drop_tables()
    create_tables()
    register_immutability_listeners()
    yield eng
    unregister_immutability_listeners()
    try:
        drop_tables()
    finally:
        reset_engine()


@pytest.fixture
def session_factory(db_engine):
    """The engine's session factory; each thread creates its own session."""
    return get_session_factory()


@pytest.fixture
def session(session_factory) -> Generator[Session, None, None]:
    """A session that is rolled back and closed at teardown."""
    sess = session_factory()
    yield sess
    sess.rollback()
    sess.close()


@pytest.fixture
def deterministic_clock():
    return DeterministicClock()


@pytest.fixture
def test_actor_id() -> str:
    return TEST_ACTOR_ID


@pytest.fixture
def create_item(session_factory):
    """Factory fixture that commits one InventoryItem and returns its code."""

    def _create(
        item_code: str,
        actual_qty: int = 0,
        min_level: int = 0,
        section: str | None = "Earthwire (Earthwire)",
        description: str | None = None,
        part_type: str | None = None,
    ) -> str:
        with session_factory() as sess:
            sess.add(
                InventoryItem(
                    item_code=item_code,
                    section=section,
                    description=description or f"{item_code} description",
                    part_type=part_type,
                    min_level=min_level,
                    actual_qty=actual_qty,
                    version=1,
                )
            )
            sess.commit()
        return item_code

    return _create


# =============================================================================
# Spreadsheet fixtures
# =============================================================================


def write_workbook(path: Path, rows: Sequence[Sequence[Any]]) -> Path:
    """Write rows (row 1 first) to the first worksheet of a new xlsx file."""
    workbook = openpyxl.Workbook()
    worksheet = workbook.active
    worksheet.title = "Inventory"
    for row_number, row in enumerate(rows, start=1):
        for column, value in enumerate(row, start=1):
            if value is not None:
                worksheet.cell(row=row_number, column=column, value=value)
    workbook.save(path)
    return path


def read_cells(path: Path) -> list[list[Any]]:
    """Every cell value of the first worksheet, as written on disk."""
    workbook = openpyxl.load_workbook(path)
    try:
        worksheet = workbook.worksheets[0]
        return [list(row) for row in worksheet.iter_rows(values_only=True)]
    finally:
        workbook.close()


@pytest.fixture
def make_workbook(tmp_path) -> Callable[..., Path]:
    """Factory fixture: make_workbook(rows, name="inventory.xlsx") -> Path."""

    def _make(rows: Sequence[Sequence[Any]] = STANDARD_ROWS, name: str = "inventory.xlsx") -> Path:
        return write_workbook(tmp_path / name, rows)

    return _make


@pytest.fixture
def standard_workbook(make_workbook) -> Path:
    return make_workbook(STANDARD_ROWS)


@pytest.fixture
def make_config():
    """Factory fixture for an InventoryConfig pointing at a spreadsheet."""

    def _make(
        spreadsheet_path: Path | None,
        auto_sync: bool = True,
        export_enabled: bool = True,
        export_mode: str = "inline",
    ) -> InventoryConfig:
        return InventoryConfig(
            sync=SyncSettings(
                spreadsheet_path=str(spreadsheet_path) if spreadsheet_path else None,
                auto_sync=auto_sync,
            ),
            export=ExportSettings(
                enabled=export_enabled,
                mode=export_mode,
                retry_interval_seconds=0.05,
            ),
        )

    return _make


def touch_later(path: Path, seconds: int = 1) -> int:
    """Move the file's mtime forward so a change is visible to the sync check."""
    mtime = os.stat(path).st_mtime_ns + seconds * 1_000_000_000
    os.utime(path, ns=(mtime, mtime))
    return mtime


@pytest.fixture
def inventory_service(session_factory, standard_workbook, make_config, deterministic_clock):
    """InventoryService over the standard workbook, inline write-back."""
    service = InventoryService(
        session_factory,
        config=make_config(standard_workbook),
        clock=deterministic_clock,
    )
    service.start()
    yield service
    service.close()
