"""
FinancialData.net options data provider.

Endpoints used (all take ``identifier`` and ``key`` query parameters):
    option-chain   contracts listed for an underlying
    option-greeks  daily greeks and implied volatility for one contract
    option-prices  daily OHLCV and open interest for one contract

Every HTTP request is submitted through the shared market data
RequestQueue. The chain listing is cached per (ticker, day) because both the
IV screen and option selection need it.
"""

from __future__ import annotations

import asyncio
from datetime import date
from typing import Any

import httpx

from wheelscan.core.config import settings
from wheelscan.core.exceptions import BudgetExceededError
from wheelscan.core.logging import get_logger
from wheelscan.core.rate_limiter import RequestQueue, get_market_data_queue
from wheelscan.domain.options import IVObservation, OptionCandidate
from wheelscan.services.data_providers.base import (
    AUTH_FAILED,
    NO_DATA,
    NOT_FOUND,
    PROVIDER_ERROR,
    RATE_LIMITED,
    ProviderResult,
)
from wheelscan.services.data_providers.resilience import (
    CircuitBreaker,
    CircuitOpenError,
    RetryExhaustedError,
    retry_async,
)


logger = get_logger("data_providers.financialdata")

# No separate bid/ask feed: the last close stands in for the bid
ASK_MARKUP = 1.02


class FinancialDataError(Exception):
    """Upstream returned an error for one identifier."""

    def __init__(self, message: str, error_code: str = PROVIDER_ERROR):
        self.message = message
        self.error_code = error_code
        super().__init__(message)


def _latest(records: list[dict[str, Any]]) -> dict[str, Any]:
    return max(records, key=lambda r: r.get("date", ""))


class FinancialDataProvider:
    """OptionsDataProvider backed by the FinancialData.net REST API."""

    name = "financialdata"

    def __init__(
        self,
        api_key: str | None = None,
        base_url: str | None = None,
        queue: RequestQueue | None = None,
        transport: httpx.AsyncBaseTransport | None = None,
        breaker: CircuitBreaker | None = None,
    ):
        self.api_key = api_key if api_key is not None else settings.financial_data_api_key
        self.base_url = (base_url or settings.financial_data_base_url).rstrip("/")
        self._queue = queue or get_market_data_queue()
        self._transport = transport
        self._breaker = breaker or CircuitBreaker(
            failure_threshold=5,
            recovery_timeout=60.0,
            name=self.name,
            excluded_exceptions=(FinancialDataError, BudgetExceededError),
        )
        # Chains for a single trading day, keyed by ticker
        self._chain_day: date | None = None
        self._chain_cache: dict[str, list[dict[str, Any]]] = {}

    # =========================================================================
    # HTTP
    # =========================================================================

    async def _request(self, endpoint: str, identifier: str) -> httpx.Response:
        async def call() -> httpx.Response:
            async with httpx.AsyncClient(
                base_url=self.base_url,
                timeout=settings.external_api_timeout,
                transport=self._transport,
            ) as client:
                return await client.get(
                    f"/{endpoint}", params={"identifier": identifier, "key": self.api_key}
                )

        return await retry_async(
            lambda: self._queue.submit(call),
            max_attempts=2,
            base_delay=1.0,
            retry_on=(httpx.TransportError,),
        )

    async def _get(self, endpoint: str, identifier: str, label: str) -> list[dict[str, Any]]:
        """GET an endpoint and return its non-empty record list."""
        if not self.api_key:
            raise FinancialDataError(
                "FINANCIAL_DATA_API_KEY is not configured", AUTH_FAILED
            )

        self._breaker.guard()
        try:
            response = await self._request(endpoint, identifier)
        except RetryExhaustedError as e:
            self._breaker.record_failure(e)
            raise FinancialDataError(f"Failed to fetch {label}: {e.last_error}") from e

        if response.status_code == 401:
            raise FinancialDataError(
                "API authentication failed. Check FINANCIAL_DATA_API_KEY.", AUTH_FAILED
            )
        if response.status_code == 404:
            raise FinancialDataError(f"No data found for identifier: {identifier}", NOT_FOUND)
        if response.status_code == 429:
            raise FinancialDataError(
                "API rate limit exceeded. Please try again later.", RATE_LIMITED
            )
        if response.status_code >= 400:
            error = FinancialDataError(
                f"API server error: {response.status_code} {response.reason_phrase}"
            )
            if response.status_code >= 500:
                self._breaker.record_failure()
            raise error

        self._breaker.record_success()
        data = response.json()
        if not isinstance(data, list) or not data:
            raise FinancialDataError(f"No {label} data for {identifier}", NO_DATA)
        return data

    async def _chain(self, ticker: str, as_of: date) -> list[dict[str, Any]]:
        if as_of != self._chain_day:
            self._chain_cache.clear()
            self._chain_day = as_of
        if ticker not in self._chain_cache:
            records = await self._get("option-chain", ticker, "option chain")
            if as_of != self._chain_day:
                return records
            self._chain_cache[ticker] = records
        return self._chain_cache[ticker]

    async def _puts(self, ticker: str, as_of: date) -> list[dict[str, Any]]:
        records = await self._chain(ticker, as_of)
        return [r for r in records if str(r.get("type", "")).lower() == "put"]

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
        try:
            puts = await self._puts(ticker, as_of)
            window = []
            for record in puts:
                expiration = date.fromisoformat(record["expiration"])
                dte = (expiration - as_of).days
                if min_dte is not None and dte < min_dte:
                    continue
                if max_dte is not None and dte > max_dte:
                    continue
                window.append((record, expiration))

            details = await asyncio.gather(
                *(self._contract_details(ticker, record, expiration) for record, expiration in window),
                return_exceptions=True,
            )
        except FinancialDataError as e:
            return ProviderResult.fail(ticker, e.message, e.error_code)
        except Exception as e:
            logger.warning(f"Option chain fetch failed for {ticker}: {e}")
            return ProviderResult.from_exception(ticker, e, "option chain")

        options: list[OptionCandidate] = []
        for detail in details:
            if isinstance(detail, BudgetExceededError):
                return ProviderResult.from_exception(ticker, detail, "option chain")
            if isinstance(detail, BaseException):
                logger.debug(f"Skipping {ticker} contract without greeks/prices: {detail}")
                continue
            options.append(detail)

        if not options:
            return ProviderResult.fail(ticker, f"No option data for {ticker}", NO_DATA)
        return ProviderResult.ok(ticker, options)

    async def _contract_details(
        self, ticker: str, record: dict[str, Any], expiration: date
    ) -> OptionCandidate:
        identifier = record["identifier"]
        greeks_records, price_records = await asyncio.gather(
            self._get("option-greeks", identifier, "greeks"),
            self._get("option-prices", identifier, "price"),
        )
        greeks = _latest(greeks_records)
        prices = _latest(price_records)
        bid = float(prices["close"])
        return OptionCandidate(
            ticker=ticker,
            contract_id=identifier,
            option_type="put",
            strike=float(record["strike"]),
            expiration=expiration,
            delta=greeks.get("delta"),
            theta=greeks.get("theta"),
            bid=bid,
            ask=round(bid * ASK_MARKUP, 4),
            implied_volatility=greeks.get("impliedVolatility"),
            open_interest=int(prices.get("openInterest") or 0),
            volume=int(prices.get("volume") or 0),
        )

    async def get_iv_history(
        self,
        ticker: str,
        start: date,
        end: date,
        reference_price: float | None = None,
    ) -> ProviderResult[list[IVObservation]]:
        ticker = ticker.upper()
        try:
            puts = await self._puts(ticker, end)
            if not puts:
                return ProviderResult.fail(ticker, "No put contracts available", NO_DATA)

            if reference_price is None:
                strikes = sorted(float(p["strike"]) for p in puts)
                reference_price = strikes[len(strikes) // 2]
            atm_put = min(puts, key=lambda p: abs(float(p["strike"]) - reference_price))

            records = await self._get("option-greeks", atm_put["identifier"], "greeks")
        except FinancialDataError as e:
            return ProviderResult.fail(ticker, e.message, e.error_code)
        except Exception as e:
            logger.warning(f"IV history fetch failed for {ticker}: {e}")
            return ProviderResult.from_exception(ticker, e, "IV history")

        observations = []
        for record in records:
            iv = record.get("impliedVolatility")
            if iv is None:
                continue
            day = date.fromisoformat(record["date"][:10])
            if start <= day <= end:
                observations.append(IVObservation(date=day, implied_volatility=float(iv)))

        if not observations:
            return ProviderResult.fail(ticker, "No IV data available", NO_DATA)
        observations.sort(key=lambda o: o.date)
        return ProviderResult.ok(ticker, observations)

    async def health_check(self) -> bool:
        """Configured and not tripped; spends no request budget."""
        if not self.api_key:
            logger.warning("FinancialData health check failed: API key not configured")
            return False
        try:
            self._breaker.guard()
        except CircuitOpenError as e:
            logger.warning(f"FinancialData health check failed: {e.message}")
            return False
        return True
