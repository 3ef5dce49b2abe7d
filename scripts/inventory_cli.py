#!/usr/bin/env python3
"""
Command-line access to the inventory ledger.

Reads configuration the usual way (defaults.yaml, INVENTORY_CONFIG,
environment), so DATABASE_URL and INVENTORY_SPREADSHEET_PATH select the
database and the spreadsheet.

Usage:
  python3 scripts/inventory_cli.py init-db
  python3 scripts/inventory_cli.py import
  python3 scripts/inventory_cli.py items [--search TEXT] [--low-stock]
  python3 scripts/inventory_cli.py adjust ITEM_CODE QTY_CHANGE [--note TEXT] [--type restock|adjust]
  python3 scripts/inventory_cli.py consume TASK_ID ITEM_CODE=QTY [ITEM_CODE=QTY ...]
  python3 scripts/inventory_cli.py usage [--start YYYY-MM-DD] [--end YYYY-MM-DD] [--period 7d|30d|90d|mtd|ytd]
  python3 scripts/inventory_cli.py export OUTPUT.xlsx
"""

import argparse
import sys
from datetime import date
from pathlib import Path

ROOT = Path(__file__).resolve().parent.parent
sys.path.insert(0, str(ROOT))


def _parse_line(text: str) -> dict:
    code, sep, qty = text.rpartition("=")
    if not sep or not code:
        raise argparse.ArgumentTypeError(f"expected ITEM_CODE=QTY, got {text!r}")
    return {"item_code": code, "qty_used": qty}


def _build_parser() -> argparse.ArgumentParser:
    p = argparse.ArgumentParser(description="Inventory ledger administration")
    p.add_argument("--config", default=None, help="YAML override file (default: INVENTORY_CONFIG)")
    p.add_argument("--actor", default="cli", help="Actor id recorded on mutations")
    sub = p.add_subparsers(dest="command", required=True)

    sub.add_parser("init-db", help="Create the ledger tables")
    sub.add_parser("import", help="Import the spreadsheet now")

    items = sub.add_parser("items", help="List items")
    items.add_argument("--search", default=None)
    items.add_argument("--low-stock", action="store_true")

    adjust = sub.add_parser("adjust", help="Restock or correct one item")
    adjust.add_argument("item_code")
    adjust.add_argument("qty_change")
    adjust.add_argument("--note", default=None)
    adjust.add_argument("--type", dest="tx_type", default=None, choices=["restock", "adjust"])

    consume = sub.add_parser("consume", help="Withdraw items for a task")
    consume.add_argument("task_id")
    consume.add_argument("lines", nargs="+", type=_parse_line, metavar="ITEM_CODE=QTY")

    usage = sub.add_parser("usage", help="Usage report")
    usage.add_argument("--start", type=date.fromisoformat, default=None)
    usage.add_argument("--end", type=date.fromisoformat, default=None)
    usage.add_argument("--period", default=None, choices=["7d", "30d", "90d", "mtd", "ytd"])

    export = sub.add_parser("export", help="Write a filled copy of the spreadsheet")
    export.add_argument("output", type=Path)
    return p


def main(argv=None) -> int:
    args = _build_parser().parse_args(argv)

    from inventory_config import get_active_config
    from inventory_kernel.db.engine import create_tables
    from inventory_kernel.exceptions import InventoryKernelError
    from inventory_services import build_inventory_service

    config = get_active_config(args.config)
    service = build_inventory_service(config, start=False)

    try:
        if args.command == "init-db":
            create_tables()
            print(f"  Tables ready ({config.database.url})")

        elif args.command == "import":
            result = service.import_now()
            print(
                f"  Imported {result.items} items from {result.path}: "
                f"{result.inserted} new, {result.updated} updated, "
                f"{result.discarded} rows discarded"
            )

        elif args.command == "items":
            rows = service.list_items(search=args.search, low_stock_only=args.low_stock)
            for item in rows:
                flag = "  LOW" if item.is_low_stock else ""
                print(
                    f"  {item.item_code:<20} {item.actual_qty:>6} / {item.min_level:<6}"
                    f" {item.section or '':<30} {item.description or ''}{flag}"
                )
            print(f"  {len(rows)} item(s)")

        elif args.command == "adjust":
            result = service.adjust(
                args.item_code,
                args.qty_change,
                note=args.note,
                tx_type=args.tx_type,
                actor_id=args.actor,
            )
            print(f"  {result.item_code}: actual_qty = {result.actual_qty}")

        elif args.command == "consume":
            result = service.consume(args.task_id, args.lines, actor_id=args.actor)
            print(f"  Slip {result.slip.slip_no} for task {result.slip.task_id}")
            for code, qty in sorted(result.updated_items.items()):
                print(f"    {code}: actual_qty = {qty}")

        elif args.command == "usage":
            rows = service.list_usage(start_date=args.start, end_date=args.end, period=args.period)
            for row in rows:
                print(
                    f"  {row.item_code:<20} used {row.total_qty_used:>6}"
                    f" on {row.usage_count} slip(s), last {row.last_used_at}"
                )
            print(f"  {len(rows)} item(s)")

        elif args.command == "export":
            data = service.export_snapshot()
            args.output.write_bytes(data)
            print(f"  Wrote {len(data)} bytes to {args.output}")

    except InventoryKernelError as exc:
        print(f"  ERROR [{exc.code}]: {exc}", file=sys.stderr)
        return 1
    finally:
        service.close()

    return 0


if __name__ == "__main__":
    sys.exit(main())
