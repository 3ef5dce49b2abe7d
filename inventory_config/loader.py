"""
Configuration Loader (``inventory_config.loader``).

Responsibility
--------------
Reads YAML files, merges them over the packaged defaults, applies
environment overrides and parses the result into the frozen dataclasses of
``inventory_config.schema``.  Callers use ``get_active_config()``; this
module is its implementation.

Invariants enforced
-------------------
* Every parsed object is a frozen dataclass from ``schema.py``.
* Malformed values raise ``ValueError`` naming the offending key; nothing
  is silently coerced to a default.

Failure modes
-------------
* Missing override file  -> ``FileNotFoundError`` propagates.
* Malformed YAML  -> ``yaml.YAMLError`` propagates.
* Wrong types or unknown export mode  -> ``ValueError``.
"""

from __future__ import annotations

from collections.abc import Mapping
from pathlib import Path
from typing import Any

import yaml

from inventory_config.schema import (
    EXPORT_MODES,
    DatabaseSettings,
    ExportSettings,
    InventoryConfig,
    SheetLayout,
    SyncSettings,
)

_TRUE = frozenset({"1", "true", "yes", "on"})
_FALSE = frozenset({"0", "false", "no", "off"})


def load_yaml_file(path: Path) -> dict[str, Any]:
    """
    Load a single YAML file and return its contents as a dict.

    Raises:
        FileNotFoundError: if the file does not exist.
        yaml.YAMLError: if the file contains invalid YAML.
        ValueError: if the top level is not a mapping.
    """
    with open(path) as f:
        data = yaml.safe_load(f) or {}
    if not isinstance(data, dict):
        raise ValueError(f"{path}: top level must be a mapping, got {type(data).__name__}")
    return data


def merge(base: Mapping[str, Any], override: Mapping[str, Any]) -> dict[str, Any]:
    """Recursive dict merge; override wins, nested mappings are merged."""
    merged = dict(base)
    for key, value in override.items():
        if isinstance(value, Mapping) and isinstance(merged.get(key), Mapping):
            merged[key] = merge(merged[key], value)
        else:
            merged[key] = value
    return merged


def apply_environment(data: dict[str, Any], environ: Mapping[str, str]) -> dict[str, Any]:
    """
    Overlay the supported environment variables.

    INVENTORY_SPREADSHEET_PATH, INVENTORY_AUTO_SYNC (anything except
    "false" enables), DATABASE_URL, INVENTORY_EXPORT_MODE,
    INVENTORY_LOG_LEVEL.
    """
    overrides: dict[str, Any] = {}
    if environ.get("INVENTORY_SPREADSHEET_PATH"):
        overrides.setdefault("sync", {})["spreadsheet_path"] = environ[
            "INVENTORY_SPREADSHEET_PATH"
        ]
    if "INVENTORY_AUTO_SYNC" in environ:
        overrides.setdefault("sync", {})["auto_sync"] = (
            environ["INVENTORY_AUTO_SYNC"].strip().lower() != "false"
        )
    if environ.get("DATABASE_URL"):
        overrides.setdefault("database", {})["url"] = environ["DATABASE_URL"]
    if environ.get("INVENTORY_EXPORT_MODE"):
        overrides.setdefault("export", {})["mode"] = environ["INVENTORY_EXPORT_MODE"]
    if environ.get("INVENTORY_LOG_LEVEL"):
        overrides["log_level"] = environ["INVENTORY_LOG_LEVEL"]
    return merge(data, overrides)


# ---------------------------------------------------------------------------
# Scalar parsing
# ---------------------------------------------------------------------------


def parse_bool(key: str, value: Any) -> bool:
    if isinstance(value, bool):
        return value
    if isinstance(value, str) and value.strip().lower() in _TRUE | _FALSE:
        return value.strip().lower() in _TRUE
    raise ValueError(f"{key}: expected a boolean, got {value!r}")


def parse_int(key: str, value: Any, minimum: int = 0) -> int:
    if isinstance(value, bool) or not isinstance(value, int):
        raise ValueError(f"{key}: expected an integer, got {value!r}")
    if value < minimum:
        raise ValueError(f"{key}: must be >= {minimum}, got {value}")
    return value


def parse_float(key: str, value: Any) -> float:
    if isinstance(value, bool) or not isinstance(value, (int, float)):
        raise ValueError(f"{key}: expected a number, got {value!r}")
    if value < 0:
        raise ValueError(f"{key}: must not be negative, got {value}")
    return float(value)


def _section(data: Mapping[str, Any], name: str) -> Mapping[str, Any]:
    section = data.get(name) or {}
    if not isinstance(section, Mapping):
        raise ValueError(f"{name}: expected a mapping, got {type(section).__name__}")
    return section


# ---------------------------------------------------------------------------
# Section parsing
# ---------------------------------------------------------------------------


def parse_sheet_layout(data: Mapping[str, Any]) -> SheetLayout:
    defaults = SheetLayout()
    labels = tuple(
        " ".join(str(label).lower().split())
        for label in data.get("header_labels", defaults.header_labels)
    )
    columns = tuple(
        parse_int("sheet.default_columns", c, minimum=1)
        for c in data.get("default_columns", defaults.default_columns)
    )
    if len(labels) != len(defaults.header_labels):
        raise ValueError(
            f"sheet.header_labels: expected {len(defaults.header_labels)} labels, got {len(labels)}"
        )
    if len(columns) != len(labels):
        raise ValueError("sheet.default_columns: must have one column per header label")

    return SheetLayout(
        header_labels=labels,
        default_columns=columns,
        header_window=parse_int(
            "sheet.header_window", data.get("header_window", defaults.header_window), 1
        ),
        extended_header_window=parse_int(
            "sheet.extended_header_window",
            data.get("extended_header_window", defaults.extended_header_window),
            1,
        ),
        min_header_matches=parse_int(
            "sheet.min_header_matches",
            data.get("min_header_matches", defaults.min_header_matches),
            1,
        ),
        scan_width=parse_int("sheet.scan_width", data.get("scan_width", defaults.scan_width), 1),
        fallback_header_row=parse_int(
            "sheet.fallback_header_row",
            data.get("fallback_header_row", defaults.fallback_header_row),
            1,
        ),
        section_separator=str(data.get("section_separator", defaults.section_separator)),
    )


def parse_database(data: Mapping[str, Any]) -> DatabaseSettings:
    defaults = DatabaseSettings()
    url = data.get("url", defaults.url)
    if not isinstance(url, str) or not url:
        raise ValueError(f"database.url: expected a URL string, got {url!r}")
    return DatabaseSettings(
        url=url,
        echo=parse_bool("database.echo", data.get("echo", defaults.echo)),
        pool_size=parse_int("database.pool_size", data.get("pool_size", defaults.pool_size), 1),
        max_overflow=parse_int(
            "database.max_overflow", data.get("max_overflow", defaults.max_overflow)
        ),
        sqlite_busy_timeout=parse_float(
            "database.sqlite_busy_timeout",
            data.get("sqlite_busy_timeout", defaults.sqlite_busy_timeout),
        ),
    )


def parse_sync(data: Mapping[str, Any]) -> SyncSettings:
    path = data.get("spreadsheet_path")
    return SyncSettings(
        spreadsheet_path=str(path) if path else None,
        auto_sync=parse_bool("sync.auto_sync", data.get("auto_sync", True)),
    )


def parse_export(data: Mapping[str, Any]) -> ExportSettings:
    defaults = ExportSettings()
    mode = str(data.get("mode", defaults.mode)).strip().lower()
    if mode not in EXPORT_MODES:
        raise ValueError(f"export.mode: expected one of {EXPORT_MODES}, got {mode!r}")
    return ExportSettings(
        enabled=parse_bool("export.enabled", data.get("enabled", defaults.enabled)),
        mode=mode,
        retry_interval_seconds=parse_float(
            "export.retry_interval_seconds",
            data.get("retry_interval_seconds", defaults.retry_interval_seconds),
        ),
    )


def parse_config(data: Mapping[str, Any]) -> InventoryConfig:
    """Parse a fully merged configuration mapping."""
    return InventoryConfig(
        database=parse_database(_section(data, "database")),
        sheet=parse_sheet_layout(_section(data, "sheet")),
        sync=parse_sync(_section(data, "sync")),
        export=parse_export(_section(data, "export")),
        log_level=str(data.get("log_level", "INFO")).upper(),
    )
