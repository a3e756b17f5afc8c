"""
Yahoo Finance market data provider.

All blocking yfinance calls run on a single shared ThreadPoolExecutor and are
submitted through the shared market data RequestQueue, so the aggregate call
rate stays inside the configured budget.

Usage:
    from wheelscan.services.data_providers import get_market_data_provider

    provider = get_market_data_provider()
    result = await provider.get_historical_prices("AAPL", start, end)
"""

from __future__ import annotations

import asyncio
from collections.abc import Sequence
from concurrent.futures import ThreadPoolExecutor
from datetime import date, datetime, timedelta, timezone
from typing import Any, Optional

import pandas as pd
import yfinance as yf

from wheelscan.core.config import settings
from wheelscan.core.logging import get_logger
from wheelscan.core.rate_limiter import RequestQueue, get_market_data_queue
from wheelscan.domain.price import PriceHistory, Quote
from wheelscan.services.data_providers.base import BUDGET_EXCEEDED, NO_DATA, ProviderResult


logger = get_logger("data_providers.yfinance")

# Single shared executor for ALL yfinance calls
_executor = ThreadPoolExecutor(max_workers=4, thread_name_prefix="yfinance")

HEALTH_CHECK_TICKER = "SPY"


def _safe_float(value: Any) -> Optional[float]:
    """Safely convert value to float."""
    if value is None:
        return None
    try:
        f = float(value)
        if f != f or f == float("inf") or f == float("-inf"):
            return None
        return f
    except (ValueError, TypeError):
        return None


def _flatten_columns(df: pd.DataFrame, ticker: str) -> pd.DataFrame:
    """Drop the ticker level newer yfinance adds to single-ticker downloads."""
    if isinstance(df.columns, pd.MultiIndex):
        if ticker in df.columns.get_level_values(1):
            return df.xs(ticker, axis=1, level=1)
        df = df.copy()
        df.columns = df.columns.droplevel(1)
    return df


class YFinanceProvider:
    """MarketDataProvider backed by yfinance."""

    name = "yfinance"

    def __init__(self, queue: RequestQueue | None = None):
        self._queue = queue or get_market_data_queue()

    # =========================================================================
    # Blocking helpers (run on the executor)
    # =========================================================================

    def _download_sync(self, tickers: list[str], **kwargs: Any) -> pd.DataFrame:
        return yf.download(
            tickers if len(tickers) > 1 else tickers[0],
            auto_adjust=True,
            progress=False,
            timeout=settings.external_api_timeout,
            group_by="ticker" if len(tickers) > 1 else "column",
            **kwargs,
        )

    async def _download(self, tickers: list[str], **kwargs: Any) -> pd.DataFrame:
        loop = asyncio.get_running_loop()

        async def call() -> pd.DataFrame:
            return await loop.run_in_executor(
                _executor, lambda: self._download_sync(tickers, **kwargs)
            )

        return await self._queue.submit(call)

    # =========================================================================
    # MarketDataProvider
    # =========================================================================

    async def get_quote(self, ticker: str) -> ProviderResult[Quote]:
        results = await self.get_batch_quotes([ticker])
        return results[0]

    async def get_batch_quotes(self, tickers: Sequence[str]) -> list[ProviderResult[Quote]]:
        """Fetch latest prices for many tickers in one upstream call."""
        symbols = [t.upper() for t in tickers]
        if not symbols:
            return []

        try:
            df = await self._download(symbols, period="5d", interval="1d")
        except Exception as e:
            logger.warning(f"yfinance batch quote failed for {len(symbols)} tickers: {e}")
            return [ProviderResult.from_exception(s, e, "quote") for s in symbols]

        fetched_at = datetime.now(timezone.utc)
        results: list[ProviderResult[Quote]] = []
        for symbol in symbols:
            frame = pd.DataFrame()
            try:
                frame = df[symbol] if len(symbols) > 1 else _flatten_columns(df, symbol)
                closes = frame["Close"].dropna()
            except KeyError:
                closes = pd.Series(dtype=float)

            price = _safe_float(closes.iloc[-1]) if not closes.empty else None
            if price is None:
                results.append(ProviderResult.fail(symbol, f"No quote data for {symbol}", NO_DATA))
                continue

            volumes = frame["Volume"].dropna() if "Volume" in frame.columns else pd.Series(dtype=float)
            volume = int(volumes.iloc[-1]) if not volumes.empty else None

            results.append(
                ProviderResult.ok(
                    symbol,
                    Quote(ticker=symbol, price=price, timestamp=fetched_at, source=self.name, volume=volume),
                )
            )
        return results

    async def get_historical_prices(
        self, ticker: str, start: date, end: date
    ) -> ProviderResult[PriceHistory]:
        symbol = ticker.upper()
        try:
            df = await self._download(
                [symbol],
                start=start.isoformat(),
                # yfinance treats end as exclusive
                end=(end + timedelta(days=1)).isoformat(),
                interval="1d",
            )
        except Exception as e:
            logger.warning(f"yfinance price history failed for {symbol}: {e}")
            return ProviderResult.from_exception(symbol, e, "price history")

        if df is None or df.empty:
            return ProviderResult.fail(symbol, f"No price history data for {symbol}", NO_DATA)

        history = PriceHistory.from_dataframe(symbol, _flatten_columns(df, symbol))
        if not history.bars:
            return ProviderResult.fail(symbol, f"No price history data for {symbol}", NO_DATA)
        return ProviderResult.ok(symbol, history)

    async def health_check(self) -> bool:
        result = await self.get_quote(HEALTH_CHECK_TICKER)
        if result.error_code == BUDGET_EXCEEDED:
            # Reachable; the budget is reported per ticker instead
            return True
        if not result.success:
            logger.warning(f"yfinance health check failed: {result.error}")
        return result.success
