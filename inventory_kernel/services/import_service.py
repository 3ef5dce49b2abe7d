"""
LedgerImportService -- upsert parsed spreadsheet rows into the ledger.

Responsibility:
    Reconciles the ledger with one parse of the spreadsheet: existing items
    (matched by item_code) have their descriptive fields and actual_qty
    overwritten, unknown codes are inserted.

Architecture position:
    Kernel > Services.  Called by the sync coordinator, which owns the unit
    of work and the mtime checkpoint.

Invariants enforced:
    - Keyed by item_code; an import never creates a second row for a code.
    - Existing rows are locked in item_code order before they are rewritten,
      so an import serializes with concurrent adjust/consume on the same
      items.
    - Items absent from the spreadsheet are left untouched (never deleted).
    - No InventoryTransaction is written: an import resets the baseline.
    - Codes in ``keep_quantity_codes`` keep their ledger actual_qty; their
      sheet cell still holds a value the export sink has not replaced yet.

Failure modes:
    - IntegrityError if a concurrent writer inserts the same item_code
      between the lock and the flush; the caller rolls back.
"""

from __future__ import annotations

from collections.abc import Collection, Iterable

from sqlalchemy import select

from inventory_kernel.domain.dtos import ImportResult, ParsedItem
from inventory_kernel.logging_config import get_logger
from inventory_kernel.models.item import InventoryItem
from inventory_kernel.services.base import BaseService

logger = get_logger("services.import")


class LedgerImportService(BaseService):
    """Applies parsed items to the ledger in the caller's transaction."""

    def upsert_items(
        self,
        parsed: Iterable[ParsedItem],
        source_path: str = "",
        discarded: int = 0,
        keep_quantity_codes: Collection[str] = (),
    ) -> ImportResult:
        """
        Insert or overwrite one InventoryItem per distinct item_code.

        When the same code appears on several rows the last row wins.
        Existing items listed in ``keep_quantity_codes`` get their
        descriptive fields refreshed but keep their ledger quantity.

        Returns:
            ImportResult with inserted/updated counts.
        """
        by_code: dict[str, ParsedItem] = {}
        for item in parsed:
            if item.item_code in by_code:
                logger.warning(
                    "duplicate_item_code_in_sheet",
                    extra={
                        "item_code": item.item_code,
                        "first_row": by_code[item.item_code].row_number,
                        "row": item.row_number,
                    },
                )
            by_code[item.item_code] = item

        existing: dict[str, InventoryItem] = {}
        if by_code:
            rows = self.session.execute(
                select(InventoryItem)
                .where(InventoryItem.item_code.in_(sorted(by_code)))
                .order_by(InventoryItem.item_code)
                .with_for_update()
                .execution_options(populate_existing=True)
            ).scalars()
            existing = {row.item_code: row for row in rows}

        inserted = updated = 0
        kept: list[str] = []
        for code in sorted(by_code):
            parsed_item = by_code[code]
            row = existing.get(code)
            if row is None:
                self.session.add(
                    InventoryItem(
                        item_code=code,
                        section=parsed_item.section or None,
                        description=parsed_item.description or None,
                        part_type=parsed_item.part_type or None,
                        min_level=parsed_item.min_level,
                        actual_qty=parsed_item.actual_qty,
                        version=1,
                    )
                )
                inserted += 1
                continue

            row.section = parsed_item.section or None
            row.description = parsed_item.description or None
            row.part_type = parsed_item.part_type or None
            row.min_level = parsed_item.min_level
            if code in keep_quantity_codes:
                kept.append(code)
                if parsed_item.actual_qty != row.actual_qty:
                    logger.warning(
                        "sheet_quantity_superseded",
                        extra={
                            "item_code": code,
                            "sheet_qty": parsed_item.actual_qty,
                            "ledger_qty": row.actual_qty,
                        },
                    )
            else:
                row.actual_qty = parsed_item.actual_qty
            row.version = (row.version or 0) + 1
            updated += 1

        self.session.flush()

        result = ImportResult(
            path=source_path,
            items=len(by_code),
            inserted=inserted,
            updated=updated,
            discarded=discarded,
            kept_quantities=tuple(kept),
        )
        logger.info(
            "ledger_upserted",
            extra={
                "path": source_path,
                "items": result.items,
                "inserted": inserted,
                "updated": updated,
                "discarded": discarded,
                "kept_quantities": kept,
            },
        )
        return result
