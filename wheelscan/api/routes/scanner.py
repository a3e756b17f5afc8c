"""Scanner API routes.

Trigger a scan over the owner's watchlist and read back ranked results.
"""

from __future__ import annotations

from datetime import datetime

from fastapi import APIRouter, Depends, Query

from wheelscan.api.dependencies import require_owner
from wheelscan.core.exceptions import NotFoundError
from wheelscan.repositories import scan_results_orm as scan_results_repo
from wheelscan.repositories import watchlist_orm as watchlist_repo
from wheelscan.scanner.pipeline import get_scan_pipeline
from wheelscan.schemas.scanner import (
    ScanHistoryEntry,
    ScanHistoryResponse,
    ScanMetadataResponse,
    ScanResultResponse,
    ScanResultsResponse,
    ScanRunResponse,
)


router = APIRouter(prefix="/scanner", tags=["Scanner"])


@router.post(
    "/run",
    response_model=ScanRunResponse,
    summary="Run scan",
    description="Scan every watchlist ticker through all phases and store the results.",
)
async def run_scan(owner_id: str = Depends(require_owner)) -> ScanRunResponse:
    """
    Run a full scan now.

    Responds 409 while another scan for the same owner is running and 503
    if a data provider or the result store is unavailable.
    """
    summary = await get_scan_pipeline().run_full_scan(owner_id)
    return ScanRunResponse(
        scan_date=summary.scan_date,
        total_scanned=summary.total_scanned,
        total_passed=summary.total_passed,
        failed_to_persist=summary.failed_to_persist,
        results=[ScanResultResponse(**record.to_dict()) for record in summary.results],
    )


@router.get("/results", response_model=ScanResultsResponse, summary="Latest scan results")
async def get_results(
    passed_only: bool = Query(False, description="Only return candidates that passed"),
    owner_id: str = Depends(require_owner),
) -> ScanResultsResponse:
    """Results of the owner's most recent scan, passed first by composite score."""
    rows = await scan_results_repo.get_latest_scan_results(owner_id)
    if passed_only:
        rows = [row for row in rows if row["passed"]]
    return ScanResultsResponse(
        scan_date=rows[0]["scan_date"] if rows else None,
        results=[ScanResultResponse(**row) for row in rows],
        total_count=len(rows),
    )


@router.get(
    "/results/{ticker}",
    response_model=ScanResultResponse,
    summary="Scan result for one ticker",
)
async def get_result(
    ticker: str,
    scan_date: datetime | None = Query(None, description="Scan batch (default: latest)"),
    owner_id: str = Depends(require_owner),
) -> ScanResultResponse:
    symbol = watchlist_repo.normalize_ticker(ticker)
    row = await scan_results_repo.get_scan_result(owner_id, symbol, scan_date=scan_date)
    if not row:
        raise NotFoundError(message=f"No scan result for {symbol}")
    return ScanResultResponse(**row)


@router.get("/metadata", response_model=ScanMetadataResponse, summary="Latest scan funnel")
async def get_metadata(owner_id: str = Depends(require_owner)) -> ScanMetadataResponse:
    """Per-phase pass counts for the most recent scan; zeros if never scanned."""
    metadata = await scan_results_repo.get_scan_metadata(owner_id)
    if metadata is None:
        return ScanMetadataResponse()
    return ScanMetadataResponse(**metadata)


@router.get("/history", response_model=ScanHistoryResponse, summary="Past scans")
async def get_history(
    limit: int = Query(20, ge=1, le=200),
    owner_id: str = Depends(require_owner),
) -> ScanHistoryResponse:
    scans = await scan_results_repo.list_scan_dates(owner_id, limit=limit)
    return ScanHistoryResponse(
        scans=[ScanHistoryEntry(**s) for s in scans],
        total_count=len(scans),
    )
