# storage/__init__.py
# ============================================================================
# FOUNDER LEDGER WEBHOOK - STORAGE MODULE
# ============================================================================
# Append-only founder ledger (Google Sheets, in-memory)
# ============================================================================

from storage.sheets_ledger import (
    ILedgerStore,
    GoogleSheetsLedger,
    InMemoryLedger,
    LEDGER_COLUMNS,
    build_ledger,
    serialize_row,
)

__all__ = [
    "ILedgerStore",
    "GoogleSheetsLedger",
    "InMemoryLedger",
    "LEDGER_COLUMNS",
    "build_ledger",
    "serialize_row",
]
