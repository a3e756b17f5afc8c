"""Quote repository using SQLAlchemy ORM.

One row per (ticker, trading day). A refresh on the same trading day
replaces that day's row; the newest ``fetched_at`` is a ticker's
last-updated time for freshness decisions.
"""

from __future__ import annotations

from collections.abc import Sequence
from datetime import date, datetime, timezone

from sqlalchemy import func, select

from wheelscan.core.logging import get_logger
from wheelscan.database.connection import get_session
from wheelscan.database.orm import StockQuote
from wheelscan.domain.price import Quote


logger = get_logger("repositories.quotes_orm")


def _as_utc(value: datetime | None) -> datetime | None:
    # SQLite hands back naive datetimes; everything is stored in UTC
    if value is None:
        return None
    if value.tzinfo is None:
        return value.replace(tzinfo=timezone.utc)
    return value.astimezone(timezone.utc)


async def save_quote(quote: Quote, trading_date: date) -> None:
    """Insert or replace the quote row for ``trading_date``."""
    symbol = quote.ticker.upper()
    fetched_at = _as_utc(quote.timestamp)

    async with get_session() as session:
        result = await session.execute(
            select(StockQuote).where(
                StockQuote.ticker == symbol,
                StockQuote.trading_date == trading_date,
            )
        )
        row = result.scalar_one_or_none()
        if row is None:
            session.add(
                StockQuote(
                    ticker=symbol,
                    trading_date=trading_date,
                    price=quote.price,
                    volume=quote.volume,
                    source=quote.source,
                    fetched_at=fetched_at,
                )
            )
        else:
            row.price = quote.price
            row.volume = quote.volume
            row.source = quote.source
            row.fetched_at = fetched_at
        await session.commit()


async def get_last_updated(tickers: Sequence[str]) -> dict[str, datetime | None]:
    """Newest fetch time per ticker; None for tickers never fetched."""
    symbols = [t.upper() for t in tickers]
    if not symbols:
        return {}

    async with get_session() as session:
        result = await session.execute(
            select(StockQuote.ticker, func.max(StockQuote.fetched_at))
            .where(StockQuote.ticker.in_(symbols))
            .group_by(StockQuote.ticker)
        )
        found = {ticker: _as_utc(fetched_at) for ticker, fetched_at in result.all()}

    return {symbol: found.get(symbol) for symbol in symbols}
