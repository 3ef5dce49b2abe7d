"""
Inventory configuration schema.

Frozen dataclasses produced by ``inventory_config.loader`` from the packaged
``defaults.yaml``, an optional override file and environment variables.
Every field has a default so an empty override file is valid.
"""

from __future__ import annotations

from dataclasses import dataclass, field

# Canonical header vocabulary, in field order:
# section, item code, item description, part type, min level, actual qty
DEFAULT_HEADER_LABELS: tuple[str, ...] = (
    "section",
    "item code",
    "item description",
    "part type",
    "minlevel",
    "actual qty",
)

EXPORT_MODES = ("inline", "background")


# ---------------------------------------------------------------------------
# Spreadsheet layout
# ---------------------------------------------------------------------------


@dataclass(frozen=True)
class SheetLayout:
    """How the inventory worksheet is located and read."""

    header_labels: tuple[str, ...] = DEFAULT_HEADER_LABELS
    # 1-based columns used when a label is not found in the header row
    default_columns: tuple[int, ...] = (1, 2, 3, 4, 5, 6)
    header_window: int = 10
    extended_header_window: int = 50
    min_header_matches: int = 4
    scan_width: int = 12
    fallback_header_row: int = 4
    section_separator: str = " | "

    @property
    def grid_width(self) -> int:
        return max(self.scan_width, *self.default_columns)


# ---------------------------------------------------------------------------
# Runtime settings
# ---------------------------------------------------------------------------


@dataclass(frozen=True)
class DatabaseSettings:
    url: str = "sqlite:///inventory.db"
    echo: bool = False
    pool_size: int = 20
    max_overflow: int = 10
    sqlite_busy_timeout: float = 30.0


@dataclass(frozen=True)
class SyncSettings:
    """Spreadsheet import behaviour."""

    spreadsheet_path: str | None = None
    auto_sync: bool = True


@dataclass(frozen=True)
class ExportSettings:
    """Quantity write-back behaviour."""

    enabled: bool = True
    # inline: push right after commit; background: a worker thread pushes
    mode: str = "inline"
    retry_interval_seconds: float = 5.0


@dataclass(frozen=True)
class InventoryConfig:
    database: DatabaseSettings = field(default_factory=DatabaseSettings)
    sheet: SheetLayout = field(default_factory=SheetLayout)
    sync: SyncSettings = field(default_factory=SyncSettings)
    export: ExportSettings = field(default_factory=ExportSettings)
    log_level: str = "INFO"
