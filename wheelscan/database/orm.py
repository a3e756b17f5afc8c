"""SQLAlchemy ORM models for Wheelscan.

This module defines all database tables using SQLAlchemy 2.0 ORM style.

Usage:
    from wheelscan.database.orm import ScanResult
    from wheelscan.database.connection import get_session

    async with get_session() as session:
        rows = (await session.execute(select(ScanResult))).scalars().all()
"""

from __future__ import annotations

from datetime import date, datetime

from sqlalchemy import (
    BigInteger,
    Boolean,
    Date,
    DateTime,
    Float,
    Index,
    Integer,
    MetaData,
    Numeric,
    String,
    Text,
    UniqueConstraint,
    event,
    func,
)
from sqlalchemy.orm import DeclarativeBase, Mapped, mapped_column


# Naming convention for constraints and indexes (deterministic names for Alembic)
NAMING_CONVENTION = {
    "ix": "ix_%(column_0_label)s",
    "uq": "uq_%(table_name)s_%(column_0_name)s",
    "ck": "ck_%(table_name)s_%(constraint_name)s",
    "fk": "fk_%(table_name)s_%(column_0_name)s_%(referred_table_name)s",
    "pk": "pk_%(table_name)s",
}


class Base(DeclarativeBase):
    """Base class for all ORM models with naming convention."""
    metadata = MetaData(naming_convention=NAMING_CONVENTION)


# Prices come back as float; scoring works in float anyway
Price = Numeric(12, 4, asdecimal=False)


# =============================================================================
# WATCHLIST
# =============================================================================


class WatchlistTicker(Base):
    """A ticker on an owner's watchlist."""
    __tablename__ = "watchlist_tickers"

    id: Mapped[int] = mapped_column(Integer, primary_key=True, autoincrement=True)
    owner_id: Mapped[str] = mapped_column(String(255), nullable=False)
    ticker: Mapped[str] = mapped_column(String(10), nullable=False)
    notes: Mapped[str | None] = mapped_column(Text)
    added_at: Mapped[datetime] = mapped_column(DateTime(timezone=True), server_default=func.now())

    __table_args__ = (
        UniqueConstraint("owner_id", "ticker", name="uq_watchlist_owner_ticker"),
        Index("idx_watchlist_owner", "owner_id"),
    )


# =============================================================================
# MARKET DATA
# =============================================================================


class HistoricalPrice(Base):
    """Daily OHLCV bar. Append-only: an existing (ticker, date) row is never rewritten."""
    __tablename__ = "historical_prices"

    id: Mapped[int] = mapped_column(Integer, primary_key=True, autoincrement=True)
    ticker: Mapped[str] = mapped_column(String(10), nullable=False)
    date: Mapped[date] = mapped_column(Date, nullable=False)
    open: Mapped[float] = mapped_column(Price, nullable=False)
    high: Mapped[float] = mapped_column(Price, nullable=False)
    low: Mapped[float] = mapped_column(Price, nullable=False)
    close: Mapped[float] = mapped_column(Price, nullable=False)
    volume: Mapped[int] = mapped_column(BigInteger, default=0)
    created_at: Mapped[datetime] = mapped_column(DateTime(timezone=True), server_default=func.now())

    __table_args__ = (
        UniqueConstraint("ticker", "date", name="uq_historical_prices_ticker_date"),
        Index("idx_historical_prices_ticker_date", "ticker", "date"),
    )


class StockQuote(Base):
    """Latest quote for a ticker on one trading day (last writer wins)."""
    __tablename__ = "stock_quotes"

    id: Mapped[int] = mapped_column(Integer, primary_key=True, autoincrement=True)
    ticker: Mapped[str] = mapped_column(String(10), nullable=False)
    trading_date: Mapped[date] = mapped_column(Date, nullable=False)
    price: Mapped[float] = mapped_column(Price, nullable=False)
    volume: Mapped[int | None] = mapped_column(BigInteger)
    source: Mapped[str] = mapped_column(String(50), nullable=False)
    fetched_at: Mapped[datetime] = mapped_column(DateTime(timezone=True), nullable=False)

    __table_args__ = (
        UniqueConstraint("ticker", "trading_date", name="uq_stock_quotes_ticker_day"),
        Index("idx_stock_quotes_ticker_fetched", "ticker", "fetched_at"),
    )


# =============================================================================
# SCANNER
# =============================================================================


class ScanResult(Base):
    """Outcome of scanning one ticker in one run. Immutable once written."""
    __tablename__ = "scan_results"

    id: Mapped[int] = mapped_column(Integer, primary_key=True, autoincrement=True)
    owner_id: Mapped[str] = mapped_column(String(255), nullable=False)
    ticker: Mapped[str] = mapped_column(String(10), nullable=False)
    scan_date: Mapped[datetime] = mapped_column(DateTime(timezone=True), nullable=False)

    # Phase 1: stock filter
    stock_price: Mapped[float | None] = mapped_column(Float)
    avg_volume: Mapped[float | None] = mapped_column(Float)
    sma_200: Mapped[float | None] = mapped_column(Float)
    sma_50: Mapped[float | None] = mapped_column(Float)
    trend_direction: Mapped[str | None] = mapped_column(String(10))
    passed_phase1: Mapped[bool] = mapped_column(Boolean, default=False, nullable=False)
    phase1_reason: Mapped[str | None] = mapped_column(Text)

    # Phase 2: IV screen
    current_iv: Mapped[float | None] = mapped_column(Float)
    iv_high_52w: Mapped[float | None] = mapped_column(Float)
    iv_low_52w: Mapped[float | None] = mapped_column(Float)
    iv_rank: Mapped[float | None] = mapped_column(Float)
    passed_phase2: Mapped[bool] = mapped_column(Boolean, default=False, nullable=False)
    phase2_reason: Mapped[str | None] = mapped_column(Text)

    # Phase 3: option selection
    contract_id: Mapped[str | None] = mapped_column(String(32))
    strike: Mapped[float | None] = mapped_column(Float)
    expiration: Mapped[date | None] = mapped_column(Date)
    dte: Mapped[int | None] = mapped_column(Integer)
    delta: Mapped[float | None] = mapped_column(Float)
    theta: Mapped[float | None] = mapped_column(Float)
    bid: Mapped[float | None] = mapped_column(Float)
    implied_volatility: Mapped[float | None] = mapped_column(Float)
    premium_yield: Mapped[float | None] = mapped_column(Float)
    open_interest: Mapped[int | None] = mapped_column(Integer)
    option_volume: Mapped[int | None] = mapped_column(Integer)
    passed_phase3: Mapped[bool] = mapped_column(Boolean, default=False, nullable=False)
    phase3_reason: Mapped[str | None] = mapped_column(Text)

    # Phase 4: scoring
    yield_score: Mapped[float | None] = mapped_column(Float)
    iv_score: Mapped[float | None] = mapped_column(Float)
    delta_score: Mapped[float | None] = mapped_column(Float)
    liquidity_score: Mapped[float | None] = mapped_column(Float)
    trend_score: Mapped[float | None] = mapped_column(Float)
    composite_score: Mapped[float | None] = mapped_column(Float)

    # Phase 5: portfolio check
    has_open_csp: Mapped[bool] = mapped_column(Boolean, default=False, nullable=False)
    has_assigned_shares: Mapped[bool] = mapped_column(Boolean, default=False, nullable=False)
    portfolio_flag: Mapped[str | None] = mapped_column(Text)

    passed: Mapped[bool] = mapped_column(Boolean, default=False, nullable=False)
    final_reason: Mapped[str | None] = mapped_column(Text)
    created_at: Mapped[datetime] = mapped_column(DateTime(timezone=True), server_default=func.now())

    __table_args__ = (
        UniqueConstraint("owner_id", "ticker", "scan_date", name="uq_scan_results_owner_ticker_date"),
        Index("idx_scan_results_owner_date", "owner_id", "scan_date"),
        Index("idx_scan_results_owner_passed", "owner_id", "passed"),
    )


class ImmutableRowError(Exception):
    """Raised when code tries to modify a persisted scan result."""


@event.listens_for(ScanResult, "before_update")
def _reject_scan_result_update(mapper, connection, target) -> None:
    raise ImmutableRowError(
        f"scan_results rows are append-only (owner={target.owner_id}, ticker={target.ticker})"
    )
