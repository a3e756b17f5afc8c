"""Pytest configuration and fixtures."""

from __future__ import annotations

from datetime import date, datetime, timedelta, timezone
from typing import AsyncGenerator, Callable, Generator

import numpy as np
import pandas as pd
import pytest
import pytest_asyncio
from fastapi.testclient import TestClient

from wheelscan.core.config import settings
from wheelscan.domain.options import IVObservation, OptionCandidate
from wheelscan.domain.price import PriceBar, PriceHistory

# Configure asyncio
pytest_plugins = ["pytest_asyncio"]

# Monday 2026-10-19, one hour after the close (EDT)
NOW = datetime(2026, 10, 19, 21, 0, tzinfo=timezone.utc)
AS_OF = date(2026, 10, 19)


def _reset_globals() -> None:
    import wheelscan.database.connection as db_conn
    import wheelscan.scanner.pipeline as pipeline
    from wheelscan.core.rate_limiter import reset_request_queues
    from wheelscan.services.data_providers import reset_providers

    db_conn._engine = None
    db_conn._session_factory = None
    pipeline._guard = None
    reset_providers()
    reset_request_queues()


@pytest.fixture(scope="function", autouse=True)
def isolated_settings(tmp_path, monkeypatch):
    """Fresh SQLite file, mock providers and no scheduler for every test."""
    monkeypatch.setattr(settings, "database_url", f"sqlite+aiosqlite:///{tmp_path / 'wheelscan.db'}")
    monkeypatch.setattr(settings, "market_data_provider", "mock")
    monkeypatch.setattr(settings, "options_data_provider", "mock")
    monkeypatch.setattr(settings, "scheduler_enabled", False)
    monkeypatch.setattr(settings, "provider_request_interval_seconds", 0.0)
    monkeypatch.setattr(settings, "provider_requests_per_minute", 10_000)
    _reset_globals()
    yield
    _reset_globals()


@pytest_asyncio.fixture
async def db() -> AsyncGenerator[None, None]:
    """Initialized database with all tables."""
    from wheelscan.database.connection import close_database, init_database

    await init_database()
    yield
    await close_database()


@pytest.fixture
def mock_provider():
    """Deterministic provider serving both capabilities, clock pinned to NOW."""
    from wheelscan.services.data_providers import MockDataProvider, set_providers

    provider = MockDataProvider(clock=lambda: NOW)
    set_providers(market_data=provider, options_data=provider)
    return provider


@pytest.fixture
def client(mock_provider) -> Generator[TestClient, None, None]:
    """Create a test client for the FastAPI app."""
    from wheelscan.api.app import create_api_app

    app = create_api_app()
    with TestClient(app, raise_server_exceptions=False) as test_client:
        yield test_client


@pytest.fixture
def now() -> datetime:
    return NOW


@pytest.fixture
def as_of() -> date:
    return AS_OF


@pytest.fixture
def owner_headers() -> dict:
    return {"X-Owner-ID": "alice"}


# ============================================================================
# Data builders
# ============================================================================


@pytest.fixture
def make_history() -> Callable[..., PriceHistory]:
    """Build a daily history ending on AS_OF with closes moving linearly."""

    def build(
        ticker: str = "WHL",
        start_price: float = 100.0,
        end_price: float = 145.0,
        count: int = 260,
        volume: int = 5_000_000,
        closes: list[float] | None = None,
        end: date = AS_OF,
    ) -> PriceHistory:
        if closes is None:
            closes = list(np.linspace(start_price, end_price, count))
        days = pd.bdate_range(end=end, periods=len(closes)).date
        bars = [
            PriceBar(
                date=day,
                open=round(close, 4),
                high=round(close * 1.01, 4),
                low=round(close * 0.99, 4),
                close=round(close, 4),
                volume=volume,
            )
            for day, close in zip(days, closes)
        ]
        return PriceHistory(ticker=ticker, bars=bars, fetched_at=NOW)

    return build


@pytest.fixture
def make_iv_history() -> Callable[..., list[IVObservation]]:
    """IV series spanning [low, high] whose latest value is ``current``."""

    def build(
        current: float = 0.335,
        low: float = 0.20,
        high: float = 0.50,
        count: int = 252,
        end: date = AS_OF,
    ) -> list[IVObservation]:
        values = [low, high] + [(low + high) / 2] * (count - 3) + [current]
        days = pd.bdate_range(end=end, periods=len(values)).date
        return [IVObservation(date=day, implied_volatility=v) for day, v in zip(days, values)]

    return build


@pytest.fixture
def make_put() -> Callable[..., OptionCandidate]:
    """A put with the textbook wheel parameters unless overridden."""

    def build(
        ticker: str = "WHL",
        strike: float = 140.0,
        dte: int = 30,
        delta: float | None = -0.22,
        bid: float = 3.20,
        volume: int = 50,
        open_interest: int = 600,
        contract_id: str | None = None,
        as_of: date = AS_OF,
    ) -> OptionCandidate:
        expiration = as_of + timedelta(days=dte)
        return OptionCandidate(
            ticker=ticker,
            contract_id=contract_id or f"{ticker}{expiration:%y%m%d}P{int(strike * 1000):08d}",
            option_type="put",
            strike=strike,
            expiration=expiration,
            delta=delta,
            theta=-0.05,
            bid=bid,
            ask=round(bid * 1.02, 2),
            implied_volatility=0.33,
            open_interest=open_interest,
            volume=volume,
        )

    return build


@pytest.fixture
def wheel_ticker(mock_provider, make_history, make_iv_history, make_put):
    """Load the mock with one ticker that passes every phase."""

    def load(ticker: str = "WHL", **put_overrides) -> None:
        mock_provider.set_history(ticker, make_history(ticker).bars)
        mock_provider.set_iv_history(ticker, make_iv_history())
        mock_provider.set_option_chain(ticker, [make_put(ticker, **put_overrides)])

    return load
