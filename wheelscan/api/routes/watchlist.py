"""Watchlist API routes.

The watchlist is the set of tickers a scan runs over.
"""

from __future__ import annotations

from fastapi import APIRouter, Depends, status

from wheelscan.api.dependencies import require_owner
from wheelscan.core.config import settings
from wheelscan.core.exceptions import NotFoundError
from wheelscan.repositories import watchlist_orm as watchlist_repo
from wheelscan.schemas.common import MessageResponse
from wheelscan.schemas.watchlist import (
    WatchlistAddRequest,
    WatchlistResponse,
    WatchlistTickerResponse,
)


router = APIRouter(prefix="/watchlist", tags=["Watchlist"])


@router.get("", response_model=WatchlistResponse, summary="List watchlist")
async def get_watchlist(owner_id: str = Depends(require_owner)) -> WatchlistResponse:
    """List the owner's watchlist tickers."""
    rows = await watchlist_repo.list_tickers(owner_id)
    return WatchlistResponse(
        owner_id=owner_id,
        tickers=[WatchlistTickerResponse(**row) for row in rows],
        total_count=len(rows),
        max_tickers=settings.watchlist_max_tickers,
    )


@router.post(
    "",
    response_model=WatchlistTickerResponse,
    status_code=status.HTTP_201_CREATED,
    summary="Add ticker",
)
async def add_ticker(
    payload: WatchlistAddRequest,
    owner_id: str = Depends(require_owner),
) -> WatchlistTickerResponse:
    """Add a ticker to the watchlist."""
    row = await watchlist_repo.add_ticker(owner_id, payload.ticker, notes=payload.notes)
    return WatchlistTickerResponse(**row)


@router.delete("/{ticker}", response_model=MessageResponse, summary="Remove ticker")
async def remove_ticker(
    ticker: str,
    owner_id: str = Depends(require_owner),
) -> MessageResponse:
    """Remove a ticker from the watchlist."""
    symbol = watchlist_repo.normalize_ticker(ticker)
    if not await watchlist_repo.remove_ticker(owner_id, symbol):
        raise NotFoundError(message=f"{symbol} is not on the watchlist")
    return MessageResponse(message=f"Removed {symbol} from watchlist")
