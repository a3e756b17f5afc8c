#!/usr/bin/env python3
"""Run one scan pass manually.

Usage:
    python scripts/run_scanner.py            # every owner with a watchlist
    python scripts/run_scanner.py alice bob  # selected owners
"""
import asyncio
import sys

from wheelscan.core.exceptions import AppException
from wheelscan.core.logging import setup_logging
from wheelscan.core.rate_limiter import close_request_queues
from wheelscan.database.connection import close_database, init_database
from wheelscan.repositories import watchlist_orm as watchlist_repo
from wheelscan.scanner.pipeline import get_scan_pipeline


async def main(owners: list[str]) -> int:
    await init_database()
    failures = 0
    try:
        owners = owners or await watchlist_repo.list_owners()
        pipeline = get_scan_pipeline()
        for owner_id in owners:
            try:
                summary = await pipeline.run_full_scan(owner_id)
            except AppException as e:
                print(f"{owner_id}: {e.error_code} {e.message}")
                failures += 1
                continue

            print(f"{owner_id}: {summary.total_passed}/{summary.total_scanned} passed")
            for record in summary.results:
                score = f"{record.composite_score:.1f}" if record.composite_score is not None else "-"
                print(f"  {record.ticker:<6} {score:>6}  {record.final_reason}")
            if summary.failed_to_persist:
                print(f"  not persisted: {', '.join(summary.failed_to_persist)}")
    finally:
        await close_request_queues()
        await close_database()
    return 1 if failures else 0


if __name__ == "__main__":
    setup_logging()
    sys.exit(asyncio.run(main(sys.argv[1:])))
