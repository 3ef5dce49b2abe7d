"""
ORM-Level Append-Only Enforcement for the stock audit trail.

===============================================================================
WHY THIS EXISTS
===============================================================================

actual_qty on InventoryItem is mutable; the records that explain it are not.
Every transaction, slip and slip line is written once, inside the unit of
work that changes the quantity, and must stay exactly as written so that the
usage report and any audit of a slip reflect what really happened.

SQLAlchemy fires mapper events before UPDATE/DELETE statements reach the
database.  The listeners below intercept them for the protected entities:

    session.flush()
         |
         v
    [before_update / before_delete] --> _reject_*() --> ImmutabilityViolationError
         |
         v
    SQL sent to database (only for unprotected entities)

===============================================================================
PROTECTED ENTITIES
===============================================================================

Entity                | When Immutable     | Why
----------------------|--------------------|-------------------------------------
InventoryTransaction  | ALWAYS             | Explains actual_qty since last import
ConsumptionSlip       | ALWAYS             | Issued document for a task
SlipLine              | ALWAYS             | Snapshot of what was withdrawn

InventoryItem is deliberately unprotected: import and stock operations
update it in place.
"""

from sqlalchemy import event

from inventory_kernel.exceptions import ImmutabilityViolationError
from inventory_kernel.logging_config import get_logger

logger = get_logger("db.immutability")


def _reject(operation: str, target) -> None:
    entity_type = type(target).__name__
    logger.error(
        "immutability_violation_blocked",
        extra={
            "entity_type": entity_type,
            "entity_id": str(target.id),
            "operation": operation,
        },
    )
    verb = "modified" if operation == "UPDATE" else "deleted"
    raise ImmutabilityViolationError(
        entity_type=entity_type,
        entity_id=str(target.id),
        reason=f"{entity_type} records are append-only and cannot be {verb}",
    )


def _reject_update(mapper, connection, target):
    """Block UPDATE of an append-only record."""
    _reject("UPDATE", target)


def _reject_delete(mapper, connection, target):
    """Block DELETE of an append-only record."""
    _reject("DELETE", target)


def _protected_models():
    from inventory_kernel.models.slip import ConsumptionSlip, SlipLine
    from inventory_kernel.models.transaction import InventoryTransaction

    return (InventoryTransaction, ConsumptionSlip, SlipLine)


def register_immutability_listeners():
    """
    Register all append-only enforcement event listeners (idempotent).

    Call during application initialization, after models are imported and
    before any stock operation runs.
    """
    for model in _protected_models():
        if not event.contains(model, "before_update", _reject_update):
            event.listen(model, "before_update", _reject_update)
        if not event.contains(model, "before_delete", _reject_delete):
            event.listen(model, "before_delete", _reject_delete)


def unregister_immutability_listeners():
    """
    Remove append-only enforcement event listeners.

    WARNING: Only use this in tests.
    """
    for model in _protected_models():
        if event.contains(model, "before_update", _reject_update):
            event.remove(model, "before_update", _reject_update)
        if event.contains(model, "before_delete", _reject_delete):
            event.remove(model, "before_delete", _reject_delete)
