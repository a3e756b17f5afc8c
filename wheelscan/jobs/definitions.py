"""Built-in job definitions for scheduled tasks.

Jobs:
- scan_after_close: Full scan for every owner with a watchlist (Mon-Fri 4:30 PM ET)
"""

from __future__ import annotations

from datetime import datetime, timezone

from wheelscan.core.exceptions import AppException, ScanInProgressError
from wheelscan.core.logging import get_logger
from wheelscan.domain.calendar import get_trading_calendar
from wheelscan.repositories import watchlist_orm as watchlist_repo

from .registry import register_job


logger = get_logger("jobs.definitions")


# =============================================================================
# SCAN AFTER CLOSE - nightly scan of every watchlist
# =============================================================================


@register_job("scan_after_close")
async def scan_after_close(now: datetime | None = None) -> str:
    """
    Run the scanner for every owner once the session has closed.

    Skips weekends and exchange holidays. A failing owner is logged and the
    remaining owners still run.

    Schedule: Mon-Fri 4:30 PM America/New_York
    """
    from wheelscan.scanner.pipeline import get_scan_pipeline

    now = now or datetime.now(timezone.utc)
    calendar = get_trading_calendar()
    if not calendar.is_trading_day(calendar.trading_date(now)):
        logger.info(f"Skipping scan: {calendar.trading_date(now)} is not a trading day")
        return "Skipped: not a trading day"

    owners = await watchlist_repo.list_owners()
    pipeline = get_scan_pipeline()
    scanned = 0
    passed = 0
    failed: list[str] = []

    for owner_id in owners:
        try:
            summary = await pipeline.run_full_scan(owner_id, now=now)
        except ScanInProgressError:
            logger.info(f"Scan for {owner_id} already running, skipped")
            continue
        except AppException as e:
            logger.error(f"Scheduled scan failed for {owner_id}: {e.message}")
            failed.append(owner_id)
            continue
        scanned += summary.total_scanned
        passed += summary.total_passed

    message = f"Scanned {scanned} tickers for {len(owners)} owners, {passed} candidates"
    if failed:
        message += f", {len(failed)} owners failed"
    logger.info(message)
    return message
