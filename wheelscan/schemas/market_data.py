"""Market data schemas for API validation."""

from __future__ import annotations

from datetime import date, datetime

from pydantic import BaseModel, Field


class EligibilityResponse(BaseModel):
    """Whether one ticker's cached price may be refreshed now."""
    ticker: str
    can_refresh: bool
    last_updated: datetime | None = None
    next_refresh_at: datetime | None = None
    reason: str


class EligibilityListResponse(BaseModel):
    tickers: list[EligibilityResponse]
    total_count: int


class RefreshRequest(BaseModel):
    """Request to refresh quotes (default: the whole watchlist)."""
    tickers: list[str] | None = Field(None, max_length=500)
    force: bool = Field(False, description="Ignore the freshness rules")


class RefreshedTicker(BaseModel):
    ticker: str
    price: float
    fetched_at: datetime


class RefreshFailure(BaseModel):
    ticker: str
    error: str | None = None
    error_code: str | None = None


class RefreshSummary(BaseModel):
    total: int
    successful: int
    failed: int
    skipped: int


class RefreshResponse(BaseModel):
    """Outcome of a refresh request."""
    message: str
    successful: list[RefreshedTicker]
    failed: list[RefreshFailure]
    skipped: list[EligibilityResponse]
    summary: RefreshSummary


class RequestQueueStatus(BaseModel):
    name: str
    queue_length: int
    requests_last_minute: int
    requests_per_minute: int
    interval_seconds: float
    daily_used: int
    daily_budget: int
    budget_remaining: int


class MarketStatusResponse(BaseModel):
    """Exchange state and upstream request budget."""
    is_open: bool
    trading_date: date
    last_close: datetime
    next_open: datetime
    request_queue: RequestQueueStatus
