"""Market data refresh service.

Applies the freshness rules to decide which tickers may be re-quoted,
fetches the eligible ones in a single batch through the configured provider
and records the quotes.

Usage:
    from wheelscan.services import market_data

    report = await market_data.refresh_prices(["AAPL", "MSFT"])
"""

from __future__ import annotations

from collections.abc import Sequence
from dataclasses import dataclass, field
from datetime import datetime, timedelta, timezone
from typing import Any

from wheelscan.core.config import settings
from wheelscan.core.logging import get_logger
from wheelscan.core.rate_limiter import get_market_data_queue
from wheelscan.domain.calendar import TradingCalendar, get_trading_calendar
from wheelscan.domain.freshness import RefreshEligibility, eligibility
from wheelscan.repositories import quotes_orm as quotes_repo
from wheelscan.services.data_providers import MarketDataProvider, get_market_data_provider


logger = get_logger("services.market_data")


@dataclass
class RefreshReport:
    """What a refresh request did, per ticker."""

    successful: list[dict[str, Any]] = field(default_factory=list)
    failed: list[dict[str, Any]] = field(default_factory=list)
    skipped: list[RefreshEligibility] = field(default_factory=list)

    @property
    def total(self) -> int:
        return len(self.successful) + len(self.failed) + len(self.skipped)

    @property
    def message(self) -> str:
        attempted = len(self.successful) + len(self.failed)
        if not self.total:
            return "No tickers to refresh"
        return f"Refreshed {len(self.successful)} of {attempted} tickers"

    def summary(self) -> dict[str, int]:
        return {
            "total": self.total,
            "successful": len(self.successful),
            "failed": len(self.failed),
            "skipped": len(self.skipped),
        }


def _cooldown() -> timedelta:
    return timedelta(hours=settings.price_refresh_cooldown_hours)


def _now(now: datetime | None) -> datetime:
    return now or datetime.now(timezone.utc)


async def check_eligibility(
    tickers: Sequence[str],
    now: datetime | None = None,
    calendar: TradingCalendar | None = None,
) -> list[RefreshEligibility]:
    """Freshness decision for each ticker against its stored quotes."""
    calendar = calendar or get_trading_calendar()
    now = _now(now)
    last_updated = await quotes_repo.get_last_updated(tickers)
    return [
        eligibility(ticker, updated, now, calendar, cooldown=_cooldown())
        for ticker, updated in last_updated.items()
    ]


async def refresh_prices(
    tickers: Sequence[str],
    now: datetime | None = None,
    force: bool = False,
    provider: MarketDataProvider | None = None,
    calendar: TradingCalendar | None = None,
) -> RefreshReport:
    """
    Refresh quotes for the tickers that are due.

    Args:
        tickers: Symbols to consider
        now: Evaluation instant for freshness
        force: Skip the freshness check
        provider: Quote source (default: configured provider)
        calendar: Trading calendar (default: shared instance)

    Returns:
        RefreshReport listing successful, failed and skipped tickers
    """
    provider = provider or get_market_data_provider()
    calendar = calendar or get_trading_calendar()
    symbols = list(dict.fromkeys(t.upper() for t in tickers))
    report = RefreshReport()

    if force:
        due = symbols
    else:
        due = []
        for decision in await check_eligibility(symbols, now, calendar):
            if decision.can_refresh:
                due.append(decision.ticker)
            else:
                report.skipped.append(decision)

    if not due:
        return report

    results = await provider.get_batch_quotes(due)
    for result in results:
        if not result.success:
            report.failed.append(
                {"ticker": result.ticker, "error": result.error, "error_code": result.error_code}
            )
            continue

        quote = result.data
        await quotes_repo.save_quote(quote, calendar.trading_date(quote.timestamp))
        report.successful.append(
            {"ticker": quote.ticker, "price": quote.price, "fetched_at": quote.timestamp}
        )

    logger.info(
        f"Price refresh: {len(report.successful)} ok, {len(report.failed)} failed, "
        f"{len(report.skipped)} not due"
    )
    return report


def get_market_status(
    now: datetime | None = None, calendar: TradingCalendar | None = None
) -> dict[str, Any]:
    """Exchange open/closed state plus request budget usage."""
    calendar = calendar or get_trading_calendar()
    now = _now(now)
    return {
        "is_open": calendar.is_open(now),
        "trading_date": calendar.trading_date(now),
        "last_close": calendar.last_close(now),
        "next_open": calendar.next_open(now),
        "request_queue": get_market_data_queue().status(),
    }
