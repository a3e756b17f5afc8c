"""Database module: SQLAlchemy async engine, sessions and ORM models."""

from .connection import (
    close_database,
    close_sqlalchemy_engine,
    create_tables,
    get_async_database_url,
    get_engine,
    get_session,
    init_database,
    init_sqlalchemy_engine,
    ping,
)
from .orm import (
    Base,
    HistoricalPrice,
    ImmutableRowError,
    ScanResult,
    StockQuote,
    WatchlistTicker,
)


__all__ = [
    "Base",
    "HistoricalPrice",
    "ImmutableRowError",
    "ScanResult",
    "StockQuote",
    "WatchlistTicker",
    "close_database",
    "close_sqlalchemy_engine",
    "create_tables",
    "get_async_database_url",
    "get_engine",
    "get_session",
    "init_database",
    "init_sqlalchemy_engine",
    "ping",
]
