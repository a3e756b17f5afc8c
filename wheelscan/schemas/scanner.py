"""Scanner schemas for API validation.

Response models for scan runs, ranked results and scan metadata.

Usage:
    from wheelscan.schemas.scanner import (
        ScanResultResponse,
        ScanResultsResponse,
        ScanMetadataResponse,
        ScanRunResponse,
    )
"""

from __future__ import annotations

from datetime import date, datetime

from pydantic import BaseModel, Field


# =============================================================================
# RESULT SCHEMAS
# =============================================================================


class ScanResultResponse(BaseModel):
    """One ticker's outcome in one scan."""

    ticker: str
    scan_date: datetime

    # Phase 1: stock screen
    stock_price: float | None = None
    avg_volume: float | None = None
    sma_200: float | None = None
    sma_50: float | None = None
    trend_direction: str | None = None
    passed_phase1: bool = False
    phase1_reason: str | None = None

    # Phase 2: volatility
    current_iv: float | None = None
    iv_high_52w: float | None = None
    iv_low_52w: float | None = None
    iv_rank: float | None = None
    passed_phase2: bool = False
    phase2_reason: str | None = None

    # Phase 3: contract selection
    contract_id: str | None = None
    strike: float | None = None
    expiration: date | None = None
    dte: int | None = None
    delta: float | None = None
    theta: float | None = None
    bid: float | None = None
    implied_volatility: float | None = None
    premium_yield: float | None = Field(None, description="Annualized premium yield in percent")
    open_interest: int | None = None
    option_volume: int | None = None
    passed_phase3: bool = False
    phase3_reason: str | None = None

    # Phase 4: scoring
    yield_score: float | None = None
    iv_score: float | None = None
    delta_score: float | None = None
    liquidity_score: float | None = None
    trend_score: float | None = None
    composite_score: float | None = None

    # Phase 5: portfolio
    has_open_csp: bool = False
    has_assigned_shares: bool = False
    portfolio_flag: str | None = None

    passed: bool = False
    final_reason: str | None = None


class ScanResultsResponse(BaseModel):
    """Ranked results of the latest scan."""

    scan_date: datetime | None = None
    results: list[ScanResultResponse]
    total_count: int


class ScanMetadataResponse(BaseModel):
    """Summary counts for the latest scan."""

    last_scan_date: datetime | None = None
    total_scanned: int = 0
    passed_phase1: int = 0
    passed_phase2: int = 0
    passed_phase3: int = 0
    total_passed: int = 0


class ScanHistoryEntry(BaseModel):
    """One past scan batch."""

    scan_date: datetime
    total_scanned: int
    total_passed: int


class ScanHistoryResponse(BaseModel):
    scans: list[ScanHistoryEntry]
    total_count: int


# =============================================================================
# RUN SCHEMAS
# =============================================================================


class ScanRunResponse(BaseModel):
    """Result of an on-demand scan run."""

    scan_date: datetime
    total_scanned: int
    total_passed: int
    failed_to_persist: list[str] = Field(default_factory=list)
    results: list[ScanResultResponse]
