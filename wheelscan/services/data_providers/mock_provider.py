"""
Deterministic mock provider for development and tests.

Prices, option chains and IV history are generated from a random walk seeded
by the ticker symbol, so the same ticker yields the same data on every run
and in every process. Tests can pin exact data per ticker with the
``set_*`` fixtures or force a failure with ``fail``.
"""

from __future__ import annotations

import zlib
from collections.abc import Callable, Sequence
from datetime import date, datetime, timedelta, timezone

import numpy as np
import pandas as pd

from wheelscan.core.logging import get_logger
from wheelscan.domain.calendar import TradingCalendar, get_trading_calendar
from wheelscan.domain.options import IVObservation, OptionCandidate
from wheelscan.domain.price import PriceBar, PriceHistory, Quote
from wheelscan.services.data_providers.base import NO_DATA, PROVIDER_ERROR, ProviderResult


logger = get_logger("data_providers.mock")

# Walks start here so that any date window slices the same path
SERIES_EPOCH = date(2020, 1, 1)

BASE_PRICES: dict[str, float] = {
    "AAPL": 178.50,
    "GOOGL": 141.20,
    "MSFT": 415.30,
    "TSLA": 248.40,
    "AMZN": 178.90,
}
DEFAULT_BASE_PRICE = 100.0

STRIKE_STEPS = np.arange(0.80, 1.0001, 0.025)


def _seed(ticker: str, salt: str = "") -> int:
    return zlib.crc32(f"{ticker.upper()}:{salt}".encode())


def _occ_symbol(ticker: str, expiration: date, option_type: str, strike: float) -> str:
    """OCC-style contract id, e.g. AAPL250321P00170000."""
    flag = "P" if option_type == "put" else "C"
    return f"{ticker}{expiration:%y%m%d}{flag}{int(round(strike * 1000)):08d}"


class MockDataProvider:
    """Market data and options data from seeded random walks."""

    name = "mock"

    def __init__(
        self,
        calendar: TradingCalendar | None = None,
        clock: Callable[[], datetime] | None = None,
    ):
        self.calendar = calendar or get_trading_calendar()
        self._clock = clock or (lambda: datetime.now(timezone.utc))
        self._histories: dict[str, list[PriceBar]] = {}
        self._chains: dict[str, list[OptionCandidate]] = {}
        self._iv_histories: dict[str, list[IVObservation]] = {}
        self._failures: dict[str, tuple[str, str]] = {}
        self.healthy = True
        self.calls: list[tuple[str, str]] = []

    # =========================================================================
    # Test fixtures
    # =========================================================================

    def set_history(self, ticker: str, bars: Sequence[PriceBar]) -> None:
        self._histories[ticker.upper()] = sorted(bars, key=lambda b: b.date)

    def set_option_chain(self, ticker: str, options: Sequence[OptionCandidate]) -> None:
        self._chains[ticker.upper()] = list(options)

    def set_iv_history(self, ticker: str, observations: Sequence[IVObservation]) -> None:
        self._iv_histories[ticker.upper()] = sorted(observations, key=lambda o: o.date)

    def fail(self, ticker: str, error: str, error_code: str = PROVIDER_ERROR) -> None:
        """Make every call for ``ticker`` fail with ``error``."""
        self._failures[ticker.upper()] = (error, error_code)

    # =========================================================================
    # Generated series
    # =========================================================================

    def _trading_days(self, end: date) -> list[date]:
        days = pd.bdate_range(SERIES_EPOCH, end).date
        return [d for d in days if not self.calendar.is_holiday(d)]

    def _generated_bars(self, ticker: str, end: date) -> list[PriceBar]:
        days = self._trading_days(end)
        if not days:
            return []
        rng = np.random.default_rng(_seed(ticker, "prices"))
        base = BASE_PRICES.get(ticker, DEFAULT_BASE_PRICE)
        # Mild upward drift so most tickers trade above a rising SMA-200
        returns = rng.normal(loc=0.0004, scale=0.012, size=len(days))
        closes = base * np.exp(np.cumsum(returns))
        volumes = rng.integers(800_000, 6_000_000, size=len(days))
        spreads = rng.uniform(0.005, 0.02, size=len(days))

        bars = []
        for day, close, volume, spread in zip(days, closes, volumes, spreads):
            close = round(float(close), 2)
            bars.append(
                PriceBar(
                    date=day,
                    open=round(close * (1 - spread / 2), 2),
                    high=round(close * (1 + spread), 2),
                    low=round(close * (1 - spread), 2),
                    close=close,
                    volume=int(volume),
                )
            )
        return bars

    def _bars(self, ticker: str, end: date) -> list[PriceBar]:
        if ticker in self._histories:
            return [b for b in self._histories[ticker] if b.date <= end]
        return self._generated_bars(ticker, end)

    def _generated_iv(self, ticker: str, end: date) -> list[IVObservation]:
        days = self._trading_days(end)
        if not days:
            return []
        rng = np.random.default_rng(_seed(ticker, "iv"))
        level = rng.uniform(0.20, 0.55)
        shocks = rng.normal(0.0, 0.03, size=len(days))
        series = np.empty(len(days))
        current = level
        for i, shock in enumerate(shocks):
            # Mean-reverting walk around the ticker's IV level
            current = max(0.05, current + 0.1 * (level - current) + shock)
            series[i] = current
        return [
            IVObservation(date=day, implied_volatility=round(float(iv), 4))
            for day, iv in zip(days, series)
        ]

    def _generated_chain(self, ticker: str, as_of: date) -> list[OptionCandidate]:
        bars = self._bars(ticker, as_of)
        if not bars:
            return []
        price = bars[-1].close
        iv_history = self._iv_for(ticker, as_of)
        iv = iv_history[-1].implied_volatility if iv_history else 0.3
        rng = np.random.default_rng(_seed(ticker, f"chain:{as_of.isoformat()}"))

        # Weekly Friday expirations out to roughly two months
        first_friday = as_of + timedelta(days=(4 - as_of.weekday()) % 7 or 7)
        expirations = [first_friday + timedelta(weeks=w) for w in range(9)]

        options = []
        for expiration in expirations:
            dte = (expiration - as_of).days
            time_factor = np.sqrt(dte / 365)
            for step in STRIKE_STEPS:
                strike = round(float(price * step) * 2) / 2
                moneyness = (price - strike) / price
                delta = -0.5 * float(np.exp(-moneyness * 8 / np.sqrt(max(dte, 1) / 30)))
                bid = round(float(price * iv * time_factor * 0.8 * abs(delta)), 2)
                options.append(
                    OptionCandidate(
                        ticker=ticker,
                        contract_id=_occ_symbol(ticker, expiration, "put", strike),
                        option_type="put",
                        strike=strike,
                        expiration=expiration,
                        delta=round(delta, 4),
                        theta=round(-bid / max(dte, 1), 4),
                        bid=bid,
                        ask=round(bid * 1.02, 2),
                        implied_volatility=iv,
                        open_interest=int(rng.integers(0, 2500)),
                        volume=int(rng.integers(0, 400)),
                    )
                )
        return options

    def _iv_for(self, ticker: str, end: date) -> list[IVObservation]:
        if ticker in self._iv_histories:
            return [o for o in self._iv_histories[ticker] if o.date <= end]
        return self._generated_iv(ticker, end)

    def _failure(self, ticker: str) -> ProviderResult | None:
        if ticker in self._failures:
            error, code = self._failures[ticker]
            return ProviderResult.fail(ticker, error, code)
        return None

    # =========================================================================
    # MarketDataProvider
    # =========================================================================

    async def get_quote(self, ticker: str) -> ProviderResult[Quote]:
        ticker = ticker.upper()
        self.calls.append(("quote", ticker))
        if failed := self._failure(ticker):
            return failed

        now = self._clock()
        bars = self._bars(ticker, self.calendar.trading_date(now))
        if not bars:
            return ProviderResult.fail(ticker, f"No quote data for {ticker}", NO_DATA)
        latest = bars[-1]
        return ProviderResult.ok(
            ticker,
            Quote(ticker=ticker, price=latest.close, timestamp=now, source=self.name, volume=latest.volume),
        )

    async def get_batch_quotes(self, tickers: Sequence[str]) -> list[ProviderResult[Quote]]:
        return [await self.get_quote(t) for t in tickers]

    async def get_historical_prices(
        self, ticker: str, start: date, end: date
    ) -> ProviderResult[PriceHistory]:
        ticker = ticker.upper()
        self.calls.append(("history", ticker))
        if failed := self._failure(ticker):
            return failed

        bars = [b for b in self._bars(ticker, end) if b.date >= start]
        if not bars:
            return ProviderResult.fail(ticker, f"No price history data for {ticker}", NO_DATA)
        return ProviderResult.ok(
            ticker, PriceHistory(ticker=ticker, bars=bars, fetched_at=self._clock())
        )

    async def health_check(self) -> bool:
        return self.healthy

    # =========================================================================
    # OptionsDataProvider
    # =========================================================================

    async def get_option_chain(
        self,
        ticker: str,
        as_of: date,
        min_dte: int | None = None,
        max_dte: int | None = None,
    ) -> ProviderResult[list[OptionCandidate]]:
        ticker = ticker.upper()
        self.calls.append(("option_chain", ticker))
        if failed := self._failure(ticker):
            return failed

        if ticker in self._chains:
            options = list(self._chains[ticker])
        else:
            options = self._generated_chain(ticker, as_of)

        options = [
            o for o in options
            if (min_dte is None or o.days_to_expiration(as_of) >= min_dte)
            and (max_dte is None or o.days_to_expiration(as_of) <= max_dte)
        ]
        if not options:
            return ProviderResult.fail(ticker, f"No option chain data for {ticker}", NO_DATA)
        return ProviderResult.ok(ticker, options)

    async def get_iv_history(
        self,
        ticker: str,
        start: date,
        end: date,
        reference_price: float | None = None,
    ) -> ProviderResult[list[IVObservation]]:
        ticker = ticker.upper()
        self.calls.append(("iv_history", ticker))
        if failed := self._failure(ticker):
            return failed

        observations = [o for o in self._iv_for(ticker, end) if o.date >= start]
        if not observations:
            return ProviderResult.fail(ticker, "No IV data available", NO_DATA)
        return ProviderResult.ok(ticker, observations)
