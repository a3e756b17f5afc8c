"""Price history repository using SQLAlchemy ORM.

Historical bars are append-only: saving a bar for a (ticker, date) that is
already stored leaves the stored row untouched.

Usage:
    from wheelscan.repositories import price_history_orm as price_history_repo

    inserted = await price_history_repo.save_bars("AAPL", history.bars)
    bars = await price_history_repo.get_bars("AAPL", start_date, end_date)
"""

from __future__ import annotations

from collections.abc import Sequence
from datetime import date

from sqlalchemy import and_, func, select

from wheelscan.core.logging import get_logger
from wheelscan.database.connection import get_session
from wheelscan.database.orm import HistoricalPrice
from wheelscan.domain.price import PriceBar


logger = get_logger("repositories.price_history_orm")


async def save_bars(ticker: str, bars: Sequence[PriceBar]) -> int:
    """
    Append bars that are not stored yet.

    Args:
        ticker: Stock ticker symbol
        bars: Daily bars in any order

    Returns:
        Number of rows inserted
    """
    if not bars:
        return 0

    symbol = ticker.upper()
    dates = [bar.date for bar in bars]

    async with get_session() as session:
        result = await session.execute(
            select(HistoricalPrice.date).where(
                and_(
                    HistoricalPrice.ticker == symbol,
                    HistoricalPrice.date >= min(dates),
                    HistoricalPrice.date <= max(dates),
                )
            )
        )
        existing = set(result.scalars().all())

        new_rows = []
        for bar in bars:
            if bar.date in existing:
                continue
            existing.add(bar.date)
            new_rows.append(
                HistoricalPrice(
                    ticker=symbol,
                    date=bar.date,
                    open=bar.open,
                    high=bar.high,
                    low=bar.low,
                    close=bar.close,
                    volume=bar.volume,
                )
            )

        if new_rows:
            session.add_all(new_rows)
            await session.commit()

    logger.debug(f"Saved {len(new_rows)} new bars for {symbol} ({len(bars) - len(new_rows)} already stored)")
    return len(new_rows)


async def get_bars(ticker: str, start_date: date, end_date: date) -> list[PriceBar]:
    """Stored bars for a ticker within a date range, oldest first."""
    async with get_session() as session:
        result = await session.execute(
            select(HistoricalPrice)
            .where(
                and_(
                    HistoricalPrice.ticker == ticker.upper(),
                    HistoricalPrice.date >= start_date,
                    HistoricalPrice.date <= end_date,
                )
            )
            .order_by(HistoricalPrice.date.asc())
        )
        return [PriceBar.model_validate(row) for row in result.scalars().all()]


async def get_latest_date(ticker: str) -> date | None:
    """Most recent stored bar date for a ticker."""
    async with get_session() as session:
        result = await session.execute(
            select(func.max(HistoricalPrice.date)).where(HistoricalPrice.ticker == ticker.upper())
        )
        return result.scalar_one_or_none()
