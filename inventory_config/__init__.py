"""
inventory_config -- single public entrypoint for ledger configuration.

Responsibility:
    ``get_active_config()`` is the only way runtime code obtains settings.
    It layers the packaged ``defaults.yaml``, an optional override file and
    environment variables, and returns a frozen ``InventoryConfig``.

Architecture position:
    Leaf package.  ``inventory_sheet`` and ``inventory_services`` read it;
    ``inventory_kernel`` never does (engine settings are passed in).

Failure modes:
    - ``FileNotFoundError`` -- the override file does not exist.
    - ``ValueError`` -- a value has the wrong type or an unknown export mode.
"""

from __future__ import annotations

import logging
import os
from collections.abc import Mapping
from pathlib import Path

from inventory_config.loader import apply_environment, load_yaml_file, merge, parse_config
from inventory_config.schema import (
    DatabaseSettings,
    ExportSettings,
    InventoryConfig,
    SheetLayout,
    SyncSettings,
)

_logger = logging.getLogger("inventory.config")

DEFAULTS_FILE = Path(__file__).parent / "defaults.yaml"


def get_active_config(
    config_path: str | Path | None = None,
    environ: Mapping[str, str] | None = None,
) -> InventoryConfig:
    """
    Resolve the active configuration.

    Args:
        config_path: Optional YAML override file.  Defaults to the
            ``INVENTORY_CONFIG`` environment variable when set.
        environ: Environment mapping; defaults to ``os.environ``.

    Returns:
        InventoryConfig -- frozen, fully validated.
    """
    env = os.environ if environ is None else environ

    data = load_yaml_file(DEFAULTS_FILE)
    override = config_path or env.get("INVENTORY_CONFIG")
    if override:
        data = merge(data, load_yaml_file(Path(override)))
    data = apply_environment(data, env)

    config = parse_config(data)
    _logger.info(
        "config_loaded",
        extra={
            "override_file": str(override) if override else None,
            "spreadsheet_path": config.sync.spreadsheet_path,
            "auto_sync": config.sync.auto_sync,
            "export_mode": config.export.mode,
        },
    )
    return config


__all__ = [
    "DatabaseSettings",
    "ExportSettings",
    "InventoryConfig",
    "SheetLayout",
    "SyncSettings",
    "get_active_config",
]
