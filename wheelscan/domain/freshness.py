"""Price freshness and refresh eligibility.

Decides whether a ticker's cached quote may be refreshed from the upstream
provider. While the market is open a quote may be refreshed once per
cooldown window; while closed, only if it predates the most recent close.
"""

from __future__ import annotations

from dataclasses import dataclass
from datetime import datetime, timedelta, timezone

from wheelscan.domain.calendar import TradingCalendar


DEFAULT_COOLDOWN = timedelta(hours=4)


@dataclass(frozen=True)
class RefreshEligibility:
    """Outcome of a freshness check for one ticker."""

    ticker: str
    can_refresh: bool
    last_updated: datetime | None
    next_refresh_at: datetime | None
    reason: str


def _as_utc(value: datetime) -> datetime:
    if value.tzinfo is None:
        return value.replace(tzinfo=timezone.utc)
    return value.astimezone(timezone.utc)


def _hours(delta: timedelta) -> str:
    return f"{delta.total_seconds() / 3600:g}h"


def eligibility(
    ticker: str,
    last_updated: datetime | None,
    now: datetime,
    calendar: TradingCalendar,
    cooldown: timedelta = DEFAULT_COOLDOWN,
) -> RefreshEligibility:
    """
    Pure refresh decision for a ticker.

    Args:
        ticker: Ticker symbol (echoed back)
        last_updated: When the cached quote was fetched, None if never
        now: Evaluation instant
        calendar: Trading calendar used for open/close
        cooldown: Minimum age of a quote before an intraday refresh

    Returns:
        RefreshEligibility
    """
    ticker = ticker.upper()
    if last_updated is None:
        return RefreshEligibility(
            ticker=ticker,
            can_refresh=True,
            last_updated=None,
            next_refresh_at=None,
            reason="No cached price",
        )

    now = _as_utc(now)
    last_updated = _as_utc(last_updated)

    if calendar.is_open(now):
        age = now - last_updated
        if age >= cooldown:
            return RefreshEligibility(
                ticker=ticker,
                can_refresh=True,
                last_updated=last_updated,
                next_refresh_at=None,
                reason=f"Price is older than {_hours(cooldown)} during market hours",
            )
        return RefreshEligibility(
            ticker=ticker,
            can_refresh=False,
            last_updated=last_updated,
            next_refresh_at=last_updated + cooldown,
            reason=f"Price updated {age.total_seconds() / 3600:.1f}h ago; refresh allowed every {_hours(cooldown)}",
        )

    last_close = calendar.last_close(now)
    if last_updated < last_close:
        return RefreshEligibility(
            ticker=ticker,
            can_refresh=True,
            last_updated=last_updated,
            next_refresh_at=None,
            reason="Price predates the most recent market close",
        )
    return RefreshEligibility(
        ticker=ticker,
        can_refresh=False,
        last_updated=last_updated,
        next_refresh_at=calendar.next_open(now),
        reason="Market closed and price already reflects the last close",
    )
