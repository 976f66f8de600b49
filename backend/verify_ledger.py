#!/usr/bin/env python3
"""
Verify the founder ledger is properly configured.
Run this after setting up credentials. Nothing is written to the sheet.
"""
import asyncio
import sys
from typing import Mapping, Optional

from pipeline.errors import ConfigurationMissing, LedgerUnavailable
from settings import Settings
from storage.sheets_ledger import build_ledger


async def verify(environ: Optional[Mapping[str, str]] = None) -> bool:
    print("=" * 60)
    print("FOUNDER LEDGER VERIFICATION")
    print("=" * 60)

    try:
        settings = Settings.from_env(environ).require_complete()
    except ConfigurationMissing as e:
        print(f"\n❌ Configuration incomplete: {e}")
        return False

    print(f"\n📋 Configuration:")
    print(f"   Backend: {settings.ledger_backend}")
    print(f"   Spreadsheet: {settings.spreadsheet_id or '-'}")
    print(f"   Tab: {settings.sheet_tab_name}")
    print(f"   Tiers: {', '.join(t.name for t in settings.tier_table)}")
    print(f"   Fallback multiplier: {settings.fallback_credit_multiplier}")

    print("\n🔄 Checking ledger access...")
    try:
        ledger = build_ledger(settings)
        tabs = await ledger.check_access()
    except (ConfigurationMissing, LedgerUnavailable) as e:
        print(f"❌ Ledger check failed: {e}")
        return False

    print(f"✅ Ledger reachable, tabs: {tabs}")
    print("\n" + "=" * 60)
    print("✅ ALL CHECKS PASSED - Ledger is ready!")
    print("=" * 60)
    return True


def cli():
    result = asyncio.run(verify())
    sys.exit(0 if result else 1)


if __name__ == "__main__":
    cli()
