"""Watchlist schemas for API validation.

Usage:
    from wheelscan.schemas.watchlist import (
        WatchlistAddRequest,
        WatchlistTickerResponse,
        WatchlistResponse,
    )
"""

from __future__ import annotations

from datetime import datetime

from pydantic import BaseModel, Field


class WatchlistAddRequest(BaseModel):
    """Request to add a ticker to the watchlist."""
    ticker: str = Field(..., min_length=1, max_length=10, examples=["AAPL"])
    notes: str | None = Field(None, max_length=500)


class WatchlistTickerResponse(BaseModel):
    """One watchlist entry."""
    id: int
    ticker: str
    notes: str | None = None
    added_at: datetime | None = None


class WatchlistResponse(BaseModel):
    """An owner's full watchlist."""
    owner_id: str
    tickers: list[WatchlistTickerResponse]
    total_count: int
    max_tickers: int
