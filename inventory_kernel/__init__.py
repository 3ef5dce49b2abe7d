"""
Inventory Kernel

The authoritative stock ledger behind the parts spreadsheet:
- Items keyed by item_code, refreshed from the spreadsheet
- Append-only transaction log and consumption slips
- Row-locked, all-or-nothing stock mutations
"""

__version__ = "0.1.0"
