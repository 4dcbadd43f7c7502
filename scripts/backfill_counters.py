#!/usr/bin/env python3
"""
Product Counter Backfill
========================
Rebuilds the namespace-partitioned product counter from a full scan of the
products table: inserts missing entries, moves entries filed under the wrong
status, removes entries of deleted products, then recomputes the totals.

Safe to re-run: a second pass over unchanged data reports only "unchanged".

Usage:
  python scripts/backfill_counters.py              # backfill and commit
  python scripts/backfill_counters.py --dry-run    # report what would change, roll back
  python scripts/backfill_counters.py --totals     # print the current totals only
"""

import argparse
import json
import sys
from pathlib import Path

# Allow running from repo root or scripts/ dir
_ROOT = Path(__file__).resolve().parents[1]
sys.path.insert(0, str(_ROOT))

from dotenv import load_dotenv
load_dotenv(_ROOT / ".env")

from catalog.aggregate.count_aggregate import CountAggregate
from catalog.aggregate.sync import ProductCountSync
from catalog.data.database import get_session_factory, init_db, session_scope
from catalog.core.config import get_config
from catalog.data.models import PRODUCT_STATUSES
from catalog.utils.logger import configure_logging


def main():
    parser = argparse.ArgumentParser(description="Rebuild the product counter from the products table")
    parser.add_argument("--dry-run", action="store_true", help="Compute the report but roll back every change")
    parser.add_argument("--totals", action="store_true", help="Print the current counter totals and exit")
    args = parser.parse_args()

    config = get_config()
    configure_logging(config.log_level, log_sql=config.log_sql)
    init_db()

    if args.totals:
        with session_scope() as session:
            totals = CountAggregate().totals(session, PRODUCT_STATUSES)
        print(json.dumps(totals, indent=2))
        return

    sync = ProductCountSync()
    if args.dry_run:
        session = get_session_factory()()
        try:
            report = sync.backfill(session)
        finally:
            session.rollback()
            session.close()
        print("DRY RUN (rolled back)")
    else:
        with session_scope() as session:
            report = sync.backfill(session)

    print(json.dumps(report.to_dict(), indent=2))


if __name__ == "__main__":
    main()
