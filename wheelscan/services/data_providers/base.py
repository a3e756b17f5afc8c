"""Provider contracts for market data and options data.

Providers never raise for a per-ticker problem. Every call returns a
``ProviderResult`` carrying ``success`` and ``error`` so that one bad ticker
cannot abort a batch. Only ``health_check`` speaks for the provider as a
whole.
"""

from __future__ import annotations

from collections.abc import Sequence
from dataclasses import dataclass
from datetime import date
from typing import Generic, Protocol, TypeVar, runtime_checkable

from wheelscan.core.exceptions import BudgetExceededError, ProviderUnavailableError
from wheelscan.domain.options import IVObservation, OptionCandidate
from wheelscan.domain.price import PriceHistory, Quote


T = TypeVar("T")

# Error codes carried by failed results
BUDGET_EXCEEDED = "budget_exceeded"
PROVIDER_UNAVAILABLE = "provider_unavailable"
NOT_FOUND = "not_found"
AUTH_FAILED = "auth_failed"
RATE_LIMITED = "rate_limited"
NO_DATA = "no_data"
PROVIDER_ERROR = "provider_error"


@dataclass
class ProviderResult(Generic[T]):
    """Outcome of one provider call for one ticker."""

    ticker: str
    data: T | None = None
    error: str | None = None
    error_code: str | None = None

    @property
    def success(self) -> bool:
        return self.error is None and self.data is not None

    @classmethod
    def ok(cls, ticker: str, data: T) -> "ProviderResult[T]":
        return cls(ticker=ticker, data=data)

    @classmethod
    def fail(cls, ticker: str, error: str, error_code: str = PROVIDER_ERROR) -> "ProviderResult[T]":
        return cls(ticker=ticker, error=error, error_code=error_code)

    @classmethod
    def from_exception(cls, ticker: str, exc: Exception, action: str) -> "ProviderResult[T]":
        """Turn an exception raised while fetching into a failed result."""
        if isinstance(exc, BudgetExceededError):
            return cls.fail(ticker, exc.message, BUDGET_EXCEEDED)
        if isinstance(exc, ProviderUnavailableError):
            return cls.fail(ticker, exc.message, PROVIDER_UNAVAILABLE)
        return cls.fail(ticker, f"Failed to fetch {action}: {exc}", PROVIDER_ERROR)


@runtime_checkable
class MarketDataProvider(Protocol):
    """Quote and daily price history source."""

    name: str

    async def get_quote(self, ticker: str) -> ProviderResult[Quote]:
        ...

    async def get_batch_quotes(self, tickers: Sequence[str]) -> list[ProviderResult[Quote]]:
        ...

    async def get_historical_prices(
        self, ticker: str, start: date, end: date
    ) -> ProviderResult[PriceHistory]:
        ...

    async def health_check(self) -> bool:
        ...


@runtime_checkable
class OptionsDataProvider(Protocol):
    """Option chain, greeks and implied volatility source."""

    name: str

    async def get_option_chain(
        self,
        ticker: str,
        as_of: date,
        min_dte: int | None = None,
        max_dte: int | None = None,
    ) -> ProviderResult[list[OptionCandidate]]:
        """Listed puts with greeks and liquidity, optionally limited to a DTE window."""
        ...

    async def get_iv_history(
        self,
        ticker: str,
        start: date,
        end: date,
        reference_price: float | None = None,
    ) -> ProviderResult[list[IVObservation]]:
        """Daily IV of the put nearest ``reference_price``, oldest first."""
        ...

    async def health_check(self) -> bool:
        ...
