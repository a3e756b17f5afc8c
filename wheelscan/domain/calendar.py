"""US equity trading calendar.

Answers "is the exchange open?" and computes the most recent close and the
next open for any instant. All evaluation happens in exchange time
(America/New_York) regardless of the caller's timezone; naive datetimes are
interpreted as UTC. Returned instants are timezone-aware UTC.

Usage:
    from wheelscan.domain.calendar import get_trading_calendar

    calendar = get_trading_calendar()
    if calendar.is_open(now):
        ...
"""

from __future__ import annotations

from datetime import date, datetime, time, timedelta, timezone
from functools import lru_cache

import pytz


EXCHANGE_TIMEZONE = "America/New_York"
MARKET_OPEN = time(9, 30)
MARKET_CLOSE = time(16, 0)

# Bounded day-by-day walk when looking for the previous close / next open
MAX_WALK_DAYS = 10
FALLBACK_OFFSET = timedelta(days=7)

# NYSE full-day closures. Early-close half days trade as full days here.
NYSE_HOLIDAYS: frozenset[date] = frozenset(
    date.fromisoformat(d)
    for d in (
        # 2025
        "2025-01-01", "2025-01-20", "2025-02-17", "2025-04-18", "2025-05-26",
        "2025-06-19", "2025-07-04", "2025-09-01", "2025-11-27", "2025-12-25",
        # 2026
        "2026-01-01", "2026-01-19", "2026-02-16", "2026-04-03", "2026-05-25",
        "2026-06-19", "2026-07-03", "2026-09-07", "2026-11-26", "2026-12-25",
        # 2027
        "2027-01-01", "2027-01-18", "2027-02-15", "2027-03-26", "2027-05-31",
        "2027-06-18", "2027-07-05", "2027-09-06", "2027-11-25", "2027-12-24",
    )
)


def _as_utc(instant: datetime) -> datetime:
    if instant.tzinfo is None:
        return instant.replace(tzinfo=timezone.utc)
    return instant.astimezone(timezone.utc)


class TradingCalendar:
    """Open/closed oracle for a single exchange."""

    def __init__(
        self,
        tz_name: str = EXCHANGE_TIMEZONE,
        holidays: frozenset[date] = NYSE_HOLIDAYS,
        open_time: time = MARKET_OPEN,
        close_time: time = MARKET_CLOSE,
    ):
        self.tz = pytz.timezone(tz_name)
        self.holidays = holidays
        self.open_time = open_time
        self.close_time = close_time

    def to_exchange_time(self, instant: datetime) -> datetime:
        """Convert any instant to exchange-local time."""
        return _as_utc(instant).astimezone(self.tz)

    def trading_date(self, instant: datetime) -> date:
        """Exchange-local calendar date of an instant."""
        return self.to_exchange_time(instant).date()

    def is_holiday(self, day: date) -> bool:
        return day in self.holidays

    def is_trading_day(self, day: date) -> bool:
        """Weekday that is not an exchange holiday."""
        return day.weekday() < 5 and not self.is_holiday(day)

    def is_open(self, instant: datetime) -> bool:
        """True only inside [open, close) on a trading day, exchange time."""
        local = self.to_exchange_time(instant)
        if not self.is_trading_day(local.date()):
            return False
        return self.open_time <= local.time() < self.close_time

    def session_open(self, day: date) -> datetime:
        """UTC instant of the opening bell on ``day``."""
        return self._localize(day, self.open_time)

    def session_close(self, day: date) -> datetime:
        """UTC instant of the closing bell on ``day``."""
        return self._localize(day, self.close_time)

    def last_close(self, instant: datetime) -> datetime:
        """
        Most recent close at or before ``instant``.

        Today's close if the session already ended on a trading day,
        otherwise the close of the nearest prior trading day.
        """
        now = _as_utc(instant)
        day = self.trading_date(now)

        if self.is_trading_day(day) and now >= self.session_close(day):
            return self.session_close(day)

        for _ in range(MAX_WALK_DAYS):
            day -= timedelta(days=1)
            if self.is_trading_day(day):
                return self.session_close(day)

        return now - FALLBACK_OFFSET

    def next_open(self, instant: datetime) -> datetime:
        """
        Next opening bell strictly after ``instant``.

        Today's open if it has not happened yet on a trading day, otherwise
        the open of the nearest following trading day.
        """
        now = _as_utc(instant)
        day = self.trading_date(now)

        if self.is_trading_day(day) and now < self.session_open(day):
            return self.session_open(day)

        for _ in range(MAX_WALK_DAYS):
            day += timedelta(days=1)
            if self.is_trading_day(day):
                return self.session_open(day)

        return now + FALLBACK_OFFSET

    def previous_trading_day(self, day: date) -> date:
        """Nearest trading day strictly before ``day``."""
        for _ in range(MAX_WALK_DAYS):
            day -= timedelta(days=1)
            if self.is_trading_day(day):
                return day
        return day

    def _localize(self, day: date, at: time) -> datetime:
        # pytz needs localize() to pick the right DST offset
        local = self.tz.localize(datetime.combine(day, at))
        return local.astimezone(timezone.utc)


@lru_cache
def get_trading_calendar() -> TradingCalendar:
    """Shared calendar instance."""
    return TradingCalendar()
