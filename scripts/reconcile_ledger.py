#!/usr/bin/env python3
"""
Check the ledger database against its own journal:
1. Every escrow balance equals the sum of its journaled flows
2. Open positions match journaled opens that were never closed

Exits non-zero when a discrepancy is found.
"""

from __future__ import annotations

import argparse
import logging
import sys

from escrowtrader.db.connection import connect
from escrowtrader.ledger.audit import reconcile
from escrowtrader.utils.config_loader import load_config, resolve_db_path


def main() -> None:
    parser = argparse.ArgumentParser(description="Reconcile escrow balances against the ledger journal.")
    parser.add_argument("--db", default=None, help="Database path (defaults to database.path from config).")
    parser.add_argument("--config", default=None, help="Config file (defaults to config/config.yaml).")
    args = parser.parse_args()

    logging.basicConfig(level=logging.WARNING, format="%(asctime)s [%(levelname)s] %(name)s: %(message)s")

    db_path = args.db or resolve_db_path(load_config(args.config))
    conn = connect(db_path)
    try:
        report = reconcile(conn)
    finally:
        conn.close()

    print("=" * 60)
    print(f"Ledger reconciliation: {db_path}")
    print("=" * 60)
    print(f"Accounts checked:  {report.accounts_checked}")
    print(f"Positions checked: {report.positions_checked}")
    for trader, collateral in sorted(report.open_collateral.items()):
        print(f"    {trader}: {collateral} locked in open positions")

    if report.ok:
        print("\nNo discrepancies.")
        return

    print(f"\n{len(report.discrepancies)} discrepancies:")
    for line in report.discrepancies:
        print(f"    {line}")
    sys.exit(1)


if __name__ == "__main__":
    main()
