"""
inventory_services -- orchestration over the inventory kernel.

``build_inventory_service()`` wires configuration, database engine,
immutability listeners and logging into a ready InventoryService.
"""

from __future__ import annotations

import logging

from inventory_config import InventoryConfig, get_active_config
from inventory_kernel.db.engine import get_session_factory, init_engine_from_url
from inventory_kernel.db.immutability import register_immutability_listeners
from inventory_kernel.domain.clock import Clock
from inventory_kernel.logging_config import configure_logging
from inventory_services.export_sink import ExportSink
from inventory_services.inventory_service import InventoryService
from inventory_services.sync_coordinator import SyncCoordinator


def build_inventory_service(
    config: InventoryConfig | None = None,
    clock: Clock | None = None,
    start: bool = True,
) -> InventoryService:
    """
    Create the process-wide InventoryService.

    Initializes the engine from ``config.database``; call once at startup.
    """
    config = config or get_active_config()
    configure_logging(level=getattr(logging, config.log_level, logging.INFO))
    init_engine_from_url(
        config.database.url,
        echo=config.database.echo,
        pool_size=config.database.pool_size,
        max_overflow=config.database.max_overflow,
        sqlite_busy_timeout=config.database.sqlite_busy_timeout,
    )
    register_immutability_listeners()

    service = InventoryService(get_session_factory(), config=config, clock=clock)
    if start:
        service.start()
    return service


__all__ = [
    "ExportSink",
    "InventoryService",
    "SyncCoordinator",
    "build_inventory_service",
]
