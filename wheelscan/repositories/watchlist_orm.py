"""Watchlist repository using SQLAlchemy ORM.

Usage:
    from wheelscan.repositories import watchlist_orm as watchlist_repo

    await watchlist_repo.add_ticker(owner_id, "AAPL", notes="earnings 3/1")
    tickers = await watchlist_repo.get_tickers(owner_id)
"""

from __future__ import annotations

import re
from typing import Any

from sqlalchemy import delete, func, select
from sqlalchemy.exc import IntegrityError

from wheelscan.core.config import settings
from wheelscan.core.exceptions import ConflictError, ValidationError
from wheelscan.core.logging import get_logger
from wheelscan.database.connection import get_session
from wheelscan.database.orm import WatchlistTicker


logger = get_logger("repositories.watchlist_orm")

TICKER_PATTERN = re.compile(r"^[A-Z]{1,5}$")
MAX_NOTES_LENGTH = 500


def normalize_ticker(ticker: str) -> str:
    """Uppercase and validate a ticker symbol (1-5 letters)."""
    symbol = (ticker or "").strip().upper()
    if not TICKER_PATTERN.match(symbol):
        raise ValidationError(
            message="Ticker must be 1-5 letters",
            details={"ticker": ticker},
        )
    return symbol


def _to_dict(row: WatchlistTicker) -> dict[str, Any]:
    return {
        "id": row.id,
        "owner_id": row.owner_id,
        "ticker": row.ticker,
        "notes": row.notes,
        "added_at": row.added_at,
    }


async def list_tickers(owner_id: str) -> list[dict[str, Any]]:
    """List an owner's watchlist, alphabetically."""
    async with get_session() as session:
        result = await session.execute(
            select(WatchlistTicker)
            .where(WatchlistTicker.owner_id == owner_id)
            .order_by(WatchlistTicker.ticker.asc())
        )
        return [_to_dict(row) for row in result.scalars().all()]


async def get_tickers(owner_id: str) -> list[str]:
    """Ticker symbols on an owner's watchlist, alphabetically."""
    async with get_session() as session:
        result = await session.execute(
            select(WatchlistTicker.ticker)
            .where(WatchlistTicker.owner_id == owner_id)
            .order_by(WatchlistTicker.ticker.asc())
        )
        return list(result.scalars().all())


async def count_tickers(owner_id: str) -> int:
    async with get_session() as session:
        result = await session.execute(
            select(func.count(WatchlistTicker.id)).where(WatchlistTicker.owner_id == owner_id)
        )
        return result.scalar_one()


async def add_ticker(owner_id: str, ticker: str, notes: str | None = None) -> dict[str, Any]:
    """
    Add a ticker to an owner's watchlist.

    Raises:
        ValidationError: Bad symbol, notes too long, or watchlist full
        ConflictError: Ticker already on the watchlist
    """
    symbol = normalize_ticker(ticker)
    if notes is not None and len(notes) > MAX_NOTES_LENGTH:
        raise ValidationError(message=f"Notes must be at most {MAX_NOTES_LENGTH} characters")

    if await count_tickers(owner_id) >= settings.watchlist_max_tickers:
        raise ValidationError(
            message=f"Watchlist is limited to {settings.watchlist_max_tickers} tickers"
        )

    async with get_session() as session:
        row = WatchlistTicker(owner_id=owner_id, ticker=symbol, notes=notes)
        session.add(row)
        try:
            await session.commit()
        except IntegrityError as e:
            await session.rollback()
            raise ConflictError(message=f"{symbol} is already on the watchlist") from e
        await session.refresh(row)

        logger.info(f"Added {symbol} to watchlist of {owner_id}")
        return _to_dict(row)


async def remove_ticker(owner_id: str, ticker: str) -> bool:
    """Remove a ticker; returns False if it was not on the watchlist."""
    symbol = ticker.strip().upper()
    async with get_session() as session:
        result = await session.execute(
            delete(WatchlistTicker).where(
                WatchlistTicker.owner_id == owner_id,
                WatchlistTicker.ticker == symbol,
            )
        )
        await session.commit()
        removed = result.rowcount > 0

    if removed:
        logger.info(f"Removed {symbol} from watchlist of {owner_id}")
    return removed


async def list_owners() -> list[str]:
    """Every owner with at least one watchlist ticker."""
    async with get_session() as session:
        result = await session.execute(
            select(WatchlistTicker.owner_id).distinct().order_by(WatchlistTicker.owner_id)
        )
        return list(result.scalars().all())
