"""Tests for the mock, FinancialData.net and yfinance providers."""

from __future__ import annotations

from datetime import date, timedelta
from unittest.mock import patch

import httpx
import pandas as pd
import pytest
import pytest_asyncio

from wheelscan.core.exceptions import BudgetExceededError
from wheelscan.core.rate_limiter import RequestQueue
from wheelscan.services.data_providers import (
    FinancialDataProvider,
    MarketDataProvider,
    MockDataProvider,
    OptionsDataProvider,
    ProviderResult,
    YFinanceProvider,
)
from wheelscan.services.data_providers.base import (
    AUTH_FAILED,
    BUDGET_EXCEEDED,
    NO_DATA,
    NOT_FOUND,
    PROVIDER_ERROR,
    PROVIDER_UNAVAILABLE,
)
from wheelscan.services.data_providers.financialdata_provider import FinancialDataError
from wheelscan.services.data_providers.resilience import CircuitBreaker, CircuitOpenError

AS_OF = date(2026, 10, 19)


@pytest_asyncio.fixture
async def queue():
    """Unthrottled queue; closed after the test so no consumer task leaks."""
    q = RequestQueue("test", interval_seconds=0, requests_per_minute=1000, daily_budget=1000)
    yield q
    await q.close()


# =============================================================================
# ProviderResult
# =============================================================================


class TestProviderResult:
    def test_ok(self):
        result = ProviderResult.ok("AAPL", 1.0)
        assert result.success
        assert result.error is None

    def test_fail(self):
        result = ProviderResult.fail("AAPL", "boom", NO_DATA)
        assert not result.success
        assert result.error_code == NO_DATA

    def test_from_budget_exception(self):
        result = ProviderResult.from_exception("AAPL", BudgetExceededError(), "quote")
        assert result.error_code == BUDGET_EXCEEDED
        assert result.error == "Daily API budget exceeded"

    def test_from_open_circuit(self):
        result = ProviderResult.from_exception("AAPL", CircuitOpenError("down"), "quote")
        assert result.error_code == PROVIDER_UNAVAILABLE

    def test_from_other_exception(self):
        result = ProviderResult.from_exception("AAPL", ValueError("boom"), "quote")
        assert result.error_code == PROVIDER_ERROR
        assert result.error == "Failed to fetch quote: boom"


# =============================================================================
# Mock provider
# =============================================================================


class TestMockProvider:
    def test_satisfies_both_protocols(self):
        provider = MockDataProvider()
        assert isinstance(provider, MarketDataProvider)
        assert isinstance(provider, OptionsDataProvider)

    @pytest.mark.asyncio
    async def test_history_is_deterministic(self):
        start = AS_OF - timedelta(days=400)
        first = await MockDataProvider().get_historical_prices("AAPL", start, AS_OF)
        second = await MockDataProvider().get_historical_prices("AAPL", start, AS_OF)

        assert first.success
        assert [b.close for b in first.data.bars] == [b.close for b in second.data.bars]

    @pytest.mark.asyncio
    async def test_different_tickers_differ(self):
        start = AS_OF - timedelta(days=30)
        a = await MockDataProvider().get_historical_prices("AAPL", start, AS_OF)
        b = await MockDataProvider().get_historical_prices("KO", start, AS_OF)
        assert [x.close for x in a.data.bars] != [x.close for x in b.data.bars]

    @pytest.mark.asyncio
    async def test_history_respects_window(self):
        start = AS_OF - timedelta(days=30)
        result = await MockDataProvider().get_historical_prices("AAPL", start, AS_OF)
        assert all(start <= bar.date <= AS_OF for bar in result.data.bars)

    @pytest.mark.asyncio
    async def test_forced_failure(self):
        provider = MockDataProvider()
        provider.fail("BAD", "Upstream exploded")

        result = await provider.get_quote("bad")

        assert not result.success
        assert result.error == "Upstream exploded"
        assert result.error_code == PROVIDER_ERROR

    @pytest.mark.asyncio
    async def test_quote_uses_clock(self, now):
        provider = MockDataProvider(clock=lambda: now)
        result = await provider.get_quote("AAPL")

        assert result.success
        assert result.data.timestamp == now
        assert result.data.source == "mock"

    @pytest.mark.asyncio
    async def test_option_chain_dte_filter(self):
        provider = MockDataProvider()
        result = await provider.get_option_chain("AAPL", AS_OF, min_dte=5, max_dte=20)

        assert result.success
        assert all(5 <= o.days_to_expiration(AS_OF) <= 20 for o in result.data)

    @pytest.mark.asyncio
    async def test_empty_dte_window(self, make_put):
        provider = MockDataProvider()
        provider.set_option_chain("WHL", [make_put(dte=60)])

        result = await provider.get_option_chain("WHL", AS_OF, max_dte=45)

        assert result.error == "No option chain data for WHL"
        assert result.error_code == NO_DATA

    @pytest.mark.asyncio
    async def test_pinned_iv_history(self, make_iv_history):
        provider = MockDataProvider()
        provider.set_iv_history("WHL", make_iv_history())

        result = await provider.get_iv_history("WHL", AS_OF - timedelta(days=365), AS_OF)
        assert result.data[-1].implied_volatility == pytest.approx(0.335)

    @pytest.mark.asyncio
    async def test_health_check(self):
        provider = MockDataProvider()
        assert await provider.health_check() is True
        provider.healthy = False
        assert await provider.health_check() is False


# =============================================================================
# FinancialData.net provider
# =============================================================================


CHAIN = [
    {"identifier": "WHL261120P00140000", "type": "Put", "strike": 140, "expiration": "2026-11-20"},
    {"identifier": "WHL261120P00145000", "type": "Put", "strike": 145, "expiration": "2026-11-20"},
    {"identifier": "WHL261120C00150000", "type": "Call", "strike": 150, "expiration": "2026-11-20"},
    {"identifier": "WHL270115P00140000", "type": "Put", "strike": 140, "expiration": "2027-01-15"},
]

GREEKS = [
    {"date": "2026-10-16", "delta": -0.25, "theta": -0.06, "impliedVolatility": 0.35},
    {"date": "2026-10-19", "delta": -0.22, "theta": -0.05, "impliedVolatility": 0.33},
    {"date": "2025-01-02", "delta": -0.30, "theta": -0.07, "impliedVolatility": 0.40},
]

PRICES = [
    {"date": "2026-10-16", "close": 2.9, "openInterest": 550, "volume": 30},
    {"date": "2026-10-19", "close": 3.2, "openInterest": 600, "volume": 50},
]


def _handler(requests: list[httpx.Request], status_code: int = 200):
    def handle(request: httpx.Request) -> httpx.Response:
        requests.append(request)
        if status_code != 200:
            return httpx.Response(status_code, json={"error": "nope"})
        endpoint = request.url.path.rsplit("/", 1)[-1]
        body = {"option-chain": CHAIN, "option-greeks": GREEKS, "option-prices": PRICES}[endpoint]
        return httpx.Response(200, json=body)

    return handle


def _provider(queue, requests, status_code=200, api_key="test-key", **kwargs):
    return FinancialDataProvider(
        api_key=api_key,
        base_url="https://financialdata.test/api/v1",
        queue=queue,
        transport=httpx.MockTransport(_handler(requests, status_code)),
        **kwargs,
    )


class TestFinancialDataProvider:
    @pytest.mark.asyncio
    async def test_option_chain(self, queue):
        requests = []
        provider = _provider(queue, requests)

        result = await provider.get_option_chain("whl", AS_OF, min_dte=5, max_dte=45)

        assert result.success
        by_id = {o.contract_id: o for o in result.data}
        assert set(by_id) == {"WHL261120P00140000", "WHL261120P00145000"}

        put = by_id["WHL261120P00140000"]
        assert put.option_type == "put"
        assert put.strike == 140.0
        assert put.expiration == date(2026, 11, 20)
        assert put.bid == pytest.approx(3.2)
        assert put.ask == pytest.approx(3.264)
        assert put.delta == pytest.approx(-0.22)
        assert put.implied_volatility == pytest.approx(0.33)
        assert put.open_interest == 600
        assert put.volume == 50

    @pytest.mark.asyncio
    async def test_requests_carry_identifier_and_key(self, queue):
        requests = []
        provider = _provider(queue, requests)

        await provider.get_option_chain("WHL", AS_OF, min_dte=5, max_dte=45)

        chain_request = requests[0]
        assert chain_request.url.path == "/api/v1/option-chain"
        assert chain_request.url.params["identifier"] == "WHL"
        assert chain_request.url.params["key"] == "test-key"
        # one chain listing plus greeks and prices for each in-window put
        assert len(requests) == 5

    @pytest.mark.asyncio
    async def test_chain_listing_is_cached_per_day(self, queue):
        requests = []
        provider = _provider(queue, requests)

        await provider.get_option_chain("WHL", AS_OF, min_dte=5, max_dte=45)
        await provider.get_iv_history("WHL", AS_OF - timedelta(days=365), AS_OF, reference_price=143.0)

        chain_calls = [r for r in requests if r.url.path.endswith("option-chain")]
        assert len(chain_calls) == 1

    @pytest.mark.asyncio
    async def test_chain_cache_keeps_only_current_day(self, queue):
        requests = []
        provider = _provider(queue, requests)
        next_day = AS_OF + timedelta(days=1)

        await provider.get_option_chain("WHL", AS_OF, min_dte=5, max_dte=45)
        await provider.get_option_chain("AAA", AS_OF, min_dte=5, max_dte=45)
        await provider.get_option_chain("WHL", next_day, min_dte=5, max_dte=45)

        assert provider._chain_day == next_day
        assert set(provider._chain_cache) == {"WHL"}
        chain_calls = [r for r in requests if r.url.path.endswith("option-chain")]
        assert [r.url.params["identifier"] for r in chain_calls] == ["WHL", "AAA", "WHL"]

    @pytest.mark.asyncio
    async def test_iv_history_uses_put_nearest_reference(self, queue):
        requests = []
        provider = _provider(queue, requests)

        result = await provider.get_iv_history(
            "WHL", AS_OF - timedelta(days=365), AS_OF, reference_price=144.0
        )

        assert result.success
        greeks_call = [r for r in requests if r.url.path.endswith("option-greeks")][0]
        assert greeks_call.url.params["identifier"] == "WHL261120P00145000"
        # the 2025 record falls outside the window; output is oldest first
        assert [o.date for o in result.data] == [date(2026, 10, 16), date(2026, 10, 19)]

    @pytest.mark.asyncio
    async def test_missing_api_key(self, queue):
        requests = []
        provider = _provider(queue, requests, api_key="")

        result = await provider.get_option_chain("WHL", AS_OF)

        assert result.error_code == AUTH_FAILED
        assert requests == []
        assert await provider.health_check() is False

    @pytest.mark.asyncio
    async def test_unauthorized(self, queue):
        provider = _provider(queue, [], status_code=401)
        result = await provider.get_option_chain("WHL", AS_OF)

        assert result.error_code == AUTH_FAILED
        assert result.error == "API authentication failed. Check FINANCIAL_DATA_API_KEY."

    @pytest.mark.asyncio
    async def test_not_found(self, queue):
        provider = _provider(queue, [], status_code=404)
        result = await provider.get_option_chain("NOPE", AS_OF)

        assert result.error_code == NOT_FOUND
        assert result.error == "No data found for identifier: NOPE"

    @pytest.mark.asyncio
    async def test_server_errors_trip_breaker(self, queue):
        breaker = CircuitBreaker(
            failure_threshold=2, name="financialdata", excluded_exceptions=(FinancialDataError,)
        )
        provider = _provider(queue, [], status_code=500, breaker=breaker)

        first = await provider.get_option_chain("WHL", AS_OF)
        await provider.get_option_chain("WHL", AS_OF)
        third = await provider.get_option_chain("WHL", AS_OF)

        assert first.error_code == PROVIDER_ERROR
        assert first.error.startswith("API server error: 500")
        assert third.error_code == PROVIDER_UNAVAILABLE
        assert await provider.health_check() is False

    @pytest.mark.asyncio
    async def test_client_errors_do_not_trip_breaker(self, queue):
        breaker = CircuitBreaker(
            failure_threshold=1, name="financialdata", excluded_exceptions=(FinancialDataError,)
        )
        provider = _provider(queue, [], status_code=404, breaker=breaker)

        await provider.get_option_chain("WHL", AS_OF)
        assert await provider.health_check() is True

    @pytest.mark.asyncio
    async def test_budget_exhausted(self):
        spent = RequestQueue("spent", interval_seconds=0, requests_per_minute=1000, daily_budget=0)
        requests = []
        provider = _provider(spent, requests)
        try:
            result = await provider.get_option_chain("WHL", AS_OF)
        finally:
            await spent.close()

        assert result.error_code == BUDGET_EXCEEDED
        assert requests == []


# =============================================================================
# yfinance provider
# =============================================================================


def _ohlcv(closes: list[float], end: str = "2026-10-19") -> pd.DataFrame:
    index = pd.bdate_range(end=end, periods=len(closes))
    return pd.DataFrame(
        {
            "Open": closes,
            "High": [c * 1.01 for c in closes],
            "Low": [c * 0.99 for c in closes],
            "Close": closes,
            "Volume": [1_000_000] * len(closes),
        },
        index=index,
    )


DOWNLOAD = "wheelscan.services.data_providers.yfinance_provider.yf.download"


class TestYFinanceProvider:
    @pytest.mark.asyncio
    async def test_historical_prices(self, queue):
        with patch(DOWNLOAD, return_value=_ohlcv([100.0, 101.0, 102.0])) as download:
            result = await YFinanceProvider(queue=queue).get_historical_prices(
                "aapl", date(2026, 10, 15), AS_OF
            )

        assert result.success
        assert result.ticker == "AAPL"
        assert [b.close for b in result.data.bars] == [100.0, 101.0, 102.0]
        assert download.call_args.kwargs["end"] == "2026-10-20"

    @pytest.mark.asyncio
    async def test_historical_prices_multiindex_columns(self, queue):
        frame = _ohlcv([100.0, 101.0])
        frame.columns = pd.MultiIndex.from_product([frame.columns, ["AAPL"]])
        with patch(DOWNLOAD, return_value=frame):
            result = await YFinanceProvider(queue=queue).get_historical_prices(
                "AAPL", date(2026, 10, 15), AS_OF
            )

        assert [b.close for b in result.data.bars] == [100.0, 101.0]

    @pytest.mark.asyncio
    async def test_empty_history(self, queue):
        with patch(DOWNLOAD, return_value=pd.DataFrame()):
            result = await YFinanceProvider(queue=queue).get_historical_prices(
                "ZZZZ", date(2026, 10, 15), AS_OF
            )

        assert result.error == "No price history data for ZZZZ"
        assert result.error_code == NO_DATA

    @pytest.mark.asyncio
    async def test_batch_quotes(self, queue):
        frame = pd.concat({"AAPL": _ohlcv([180.0, 181.5]), "MSFT": _ohlcv([410.0, 412.0])}, axis=1)
        with patch(DOWNLOAD, return_value=frame) as download:
            results = await YFinanceProvider(queue=queue).get_batch_quotes(["AAPL", "MSFT", "ZZZZ"])

        assert download.call_count == 1
        assert [r.ticker for r in results] == ["AAPL", "MSFT", "ZZZZ"]
        assert results[0].data.price == 181.5
        assert results[1].data.price == 412.0
        assert results[2].error == "No quote data for ZZZZ"

    @pytest.mark.asyncio
    async def test_download_error_becomes_result(self, queue):
        with patch(DOWNLOAD, side_effect=RuntimeError("boom")):
            result = await YFinanceProvider(queue=queue).get_quote("AAPL")

        assert result.error == "Failed to fetch quote: boom"
        assert result.error_code == PROVIDER_ERROR

    @pytest.mark.asyncio
    async def test_health_check_ignores_spent_budget(self):
        spent = RequestQueue("spent", interval_seconds=0, requests_per_minute=1000, daily_budget=0)
        try:
            with patch(DOWNLOAD) as download:
                healthy = await YFinanceProvider(queue=spent).health_check()
        finally:
            await spent.close()

        assert healthy is True
        download.assert_not_called()
