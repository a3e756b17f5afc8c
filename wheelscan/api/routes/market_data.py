"""Market data API routes.

Price freshness checks and quote refreshes for watchlist tickers.
"""

from __future__ import annotations

from dataclasses import asdict

from fastapi import APIRouter, Depends, Query

from wheelscan.api.dependencies import require_owner
from wheelscan.repositories import watchlist_orm as watchlist_repo
from wheelscan.schemas.market_data import (
    EligibilityListResponse,
    EligibilityResponse,
    MarketStatusResponse,
    RefreshRequest,
    RefreshResponse,
)
from wheelscan.services import market_data


router = APIRouter(prefix="/market-data", tags=["Market Data"])


async def _resolve_tickers(owner_id: str, tickers: list[str] | None) -> list[str]:
    if tickers:
        return [watchlist_repo.normalize_ticker(t) for t in tickers]
    return await watchlist_repo.get_tickers(owner_id)


@router.get(
    "/eligibility",
    response_model=EligibilityListResponse,
    summary="Refresh eligibility",
)
async def get_eligibility(
    tickers: list[str] | None = Query(None, description="Tickers (default: watchlist)"),
    owner_id: str = Depends(require_owner),
) -> EligibilityListResponse:
    """Whether each ticker's cached price may be refreshed right now."""
    symbols = await _resolve_tickers(owner_id, tickers)
    decisions = await market_data.check_eligibility(symbols)
    return EligibilityListResponse(
        tickers=[EligibilityResponse(**asdict(d)) for d in decisions],
        total_count=len(decisions),
    )


@router.post("/refresh", response_model=RefreshResponse, summary="Refresh prices")
async def refresh(
    payload: RefreshRequest | None = None,
    owner_id: str = Depends(require_owner),
) -> RefreshResponse:
    """
    Refresh quotes for tickers that are due.

    Tickers whose cached price is still fresh are reported as skipped
    unless force is set.
    """
    payload = payload or RefreshRequest()
    symbols = await _resolve_tickers(owner_id, payload.tickers)
    report = await market_data.refresh_prices(symbols, force=payload.force)
    return RefreshResponse(
        message=report.message,
        successful=report.successful,
        failed=report.failed,
        skipped=[EligibilityResponse(**asdict(d)) for d in report.skipped],
        summary=report.summary(),
    )


@router.get("/status", response_model=MarketStatusResponse, summary="Market status")
async def get_status() -> MarketStatusResponse:
    """Exchange open/closed state and the upstream request budget."""
    return MarketStatusResponse(**market_data.get_market_status())
