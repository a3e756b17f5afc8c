"""Data providers - pluggable market data and options data sources.

The concrete provider is chosen by configuration:

    MARKET_DATA_PROVIDER=mock|yfinance
    OPTIONS_DATA_PROVIDER=mock|financialdata
"""

from __future__ import annotations

from wheelscan.core.config import settings
from wheelscan.core.logging import get_logger

from .base import (
    BUDGET_EXCEEDED,
    MarketDataProvider,
    OptionsDataProvider,
    ProviderResult,
)
from .financialdata_provider import FinancialDataProvider
from .mock_provider import MockDataProvider
from .yfinance_provider import YFinanceProvider


logger = get_logger("data_providers")

_market_data_provider: MarketDataProvider | None = None
_options_data_provider: OptionsDataProvider | None = None
_mock: MockDataProvider | None = None


def _shared_mock() -> MockDataProvider:
    # One mock serves both capabilities so fixtures line up
    global _mock
    if _mock is None:
        _mock = MockDataProvider()
    return _mock


def get_market_data_provider() -> MarketDataProvider:
    """Get the configured quote/history provider (singleton)."""
    global _market_data_provider
    if _market_data_provider is None:
        if settings.market_data_provider == "yfinance":
            _market_data_provider = YFinanceProvider()
        else:
            _market_data_provider = _shared_mock()
        logger.info(f"Market data provider: {_market_data_provider.name}")
    return _market_data_provider


def get_options_data_provider() -> OptionsDataProvider:
    """Get the configured options data provider (singleton)."""
    global _options_data_provider
    if _options_data_provider is None:
        if settings.options_data_provider == "financialdata":
            _options_data_provider = FinancialDataProvider()
        else:
            _options_data_provider = _shared_mock()
        logger.info(f"Options data provider: {_options_data_provider.name}")
    return _options_data_provider


def set_providers(
    market_data: MarketDataProvider | None = None,
    options_data: OptionsDataProvider | None = None,
) -> None:
    """Override the configured providers (tests, scripts)."""
    global _market_data_provider, _options_data_provider
    if market_data is not None:
        _market_data_provider = market_data
    if options_data is not None:
        _options_data_provider = options_data


def reset_providers() -> None:
    """Drop cached providers so the next call re-reads configuration."""
    global _market_data_provider, _options_data_provider, _mock
    _market_data_provider = None
    _options_data_provider = None
    _mock = None


def validate_provider_settings() -> list[str]:
    """Return configuration problems for the selected providers (empty if fine)."""
    errors = []
    if settings.options_data_provider == "financialdata" and not settings.financial_data_api_key:
        errors.append(
            "FINANCIAL_DATA_API_KEY is required when OPTIONS_DATA_PROVIDER=financialdata"
        )
    live = settings.market_data_provider != "mock" or settings.options_data_provider != "mock"
    if live and settings.provider_request_interval_seconds <= 0:
        errors.append(
            "PROVIDER_REQUEST_INTERVAL_SECONDS must be positive when a live provider is selected"
        )
    return errors


__all__ = [
    "BUDGET_EXCEEDED",
    "FinancialDataProvider",
    "MarketDataProvider",
    "MockDataProvider",
    "OptionsDataProvider",
    "ProviderResult",
    "YFinanceProvider",
    "get_market_data_provider",
    "get_options_data_provider",
    "reset_providers",
    "set_providers",
    "validate_provider_settings",
]
