"""Per-ticker scan progress.

A ticker's scan ends in exactly one of five states::

    NotScanned | Phase1Failed | Phase2Failed | Phase3Failed | Candidate

Each state carries only the data that exists at that point and renders into
the flat ``ScanResultRecord`` that is persisted, with later-phase fields left
as None.
"""

from __future__ import annotations

from dataclasses import asdict, dataclass
from datetime import date, datetime
from typing import Any, Union

from wheelscan.domain.options import OptionCandidate
from wheelscan.scanner.scoring import ScoreBreakdown


@dataclass(frozen=True)
class StockSnapshot:
    """Phase 1 inputs as measured."""

    price: float
    avg_volume: float
    sma_200: float | None = None
    sma_50: float | None = None
    trend_direction: str | None = None


@dataclass(frozen=True)
class IVSnapshot:
    """Phase 2 inputs as measured."""

    current_iv: float
    iv_high_52w: float
    iv_low_52w: float
    iv_rank: float | None


@dataclass(frozen=True)
class SelectedContract:
    """Phase 3 winner."""

    option: OptionCandidate
    dte: int
    premium_yield: float


@dataclass(frozen=True)
class PortfolioCheck:
    """Phase 5 informational flags."""

    has_open_csp: bool = False
    has_assigned_shares: bool = False
    flag: str | None = None


@dataclass
class ScanResultRecord:
    """One persisted row: the outcome of one ticker in one run."""

    owner_id: str
    ticker: str
    scan_date: datetime

    stock_price: float | None = None
    avg_volume: float | None = None
    sma_200: float | None = None
    sma_50: float | None = None
    trend_direction: str | None = None
    passed_phase1: bool = False
    phase1_reason: str | None = None

    current_iv: float | None = None
    iv_high_52w: float | None = None
    iv_low_52w: float | None = None
    iv_rank: float | None = None
    passed_phase2: bool = False
    phase2_reason: str | None = None

    contract_id: str | None = None
    strike: float | None = None
    expiration: date | None = None
    dte: int | None = None
    delta: float | None = None
    theta: float | None = None
    bid: float | None = None
    implied_volatility: float | None = None
    premium_yield: float | None = None
    open_interest: int | None = None
    option_volume: int | None = None
    passed_phase3: bool = False
    phase3_reason: str | None = None

    yield_score: float | None = None
    iv_score: float | None = None
    delta_score: float | None = None
    liquidity_score: float | None = None
    trend_score: float | None = None
    composite_score: float | None = None

    has_open_csp: bool = False
    has_assigned_shares: bool = False
    portfolio_flag: str | None = None

    passed: bool = False
    final_reason: str | None = None

    def to_dict(self) -> dict[str, Any]:
        return asdict(self)

    @property
    def sort_key(self) -> tuple:
        """Passed first, then composite score descending, then ticker."""
        return (not self.passed, -(self.composite_score or 0.0), self.ticker)


def _stock_fields(stock: StockSnapshot | None) -> dict[str, Any]:
    if stock is None:
        return {}
    return {
        "stock_price": stock.price,
        "avg_volume": stock.avg_volume,
        "sma_200": stock.sma_200,
        "sma_50": stock.sma_50,
        "trend_direction": stock.trend_direction,
    }


def _iv_fields(iv: IVSnapshot | None) -> dict[str, Any]:
    if iv is None:
        return {}
    return {
        "current_iv": iv.current_iv,
        "iv_high_52w": iv.iv_high_52w,
        "iv_low_52w": iv.iv_low_52w,
        "iv_rank": iv.iv_rank,
    }


@dataclass(frozen=True)
class NotScanned:
    """Price history could not be obtained; no phase was evaluated."""

    ticker: str
    reason: str

    def to_record(self, owner_id: str, scan_date: datetime) -> ScanResultRecord:
        return ScanResultRecord(
            owner_id=owner_id,
            ticker=self.ticker,
            scan_date=scan_date,
            phase1_reason=self.reason,
            final_reason=f"Phase 1 failed: {self.reason}",
        )


@dataclass(frozen=True)
class Phase1Failed:
    ticker: str
    reason: str
    stock: StockSnapshot | None = None

    def to_record(self, owner_id: str, scan_date: datetime) -> ScanResultRecord:
        return ScanResultRecord(
            owner_id=owner_id,
            ticker=self.ticker,
            scan_date=scan_date,
            phase1_reason=self.reason,
            final_reason=f"Phase 1: {self.reason}",
            **_stock_fields(self.stock),
        )


@dataclass(frozen=True)
class Phase2Failed:
    ticker: str
    reason: str
    stock: StockSnapshot
    iv: IVSnapshot | None = None

    def to_record(self, owner_id: str, scan_date: datetime) -> ScanResultRecord:
        return ScanResultRecord(
            owner_id=owner_id,
            ticker=self.ticker,
            scan_date=scan_date,
            passed_phase1=True,
            phase2_reason=self.reason,
            final_reason=f"Phase 2: {self.reason}",
            **_stock_fields(self.stock),
            **_iv_fields(self.iv),
        )


@dataclass(frozen=True)
class Phase3Failed:
    ticker: str
    reason: str
    stock: StockSnapshot
    iv: IVSnapshot

    def to_record(self, owner_id: str, scan_date: datetime) -> ScanResultRecord:
        return ScanResultRecord(
            owner_id=owner_id,
            ticker=self.ticker,
            scan_date=scan_date,
            passed_phase1=True,
            passed_phase2=True,
            phase3_reason=self.reason,
            final_reason=f"Phase 3: {self.reason}",
            **_stock_fields(self.stock),
            **_iv_fields(self.iv),
        )


@dataclass(frozen=True)
class Candidate:
    """Passed phases 1-3; scored and portfolio-checked."""

    ticker: str
    stock: StockSnapshot
    iv: IVSnapshot
    contract: SelectedContract
    scores: ScoreBreakdown
    portfolio: PortfolioCheck

    def to_record(self, owner_id: str, scan_date: datetime) -> ScanResultRecord:
        option = self.contract.option
        return ScanResultRecord(
            owner_id=owner_id,
            ticker=self.ticker,
            scan_date=scan_date,
            passed_phase1=True,
            passed_phase2=True,
            passed_phase3=True,
            contract_id=option.contract_id,
            strike=option.strike,
            expiration=option.expiration,
            dte=self.contract.dte,
            delta=option.delta,
            theta=option.theta,
            bid=option.bid,
            implied_volatility=option.implied_volatility,
            premium_yield=self.contract.premium_yield,
            open_interest=option.open_interest,
            option_volume=option.volume,
            yield_score=self.scores.yield_score,
            iv_score=self.scores.iv_score,
            delta_score=self.scores.delta_score,
            liquidity_score=self.scores.liquidity_score,
            trend_score=self.scores.trend_score,
            composite_score=self.scores.composite_score,
            has_open_csp=self.portfolio.has_open_csp,
            has_assigned_shares=self.portfolio.has_assigned_shares,
            portfolio_flag=self.portfolio.flag,
            passed=True,
            final_reason=self.portfolio.flag or "Passed all phases",
            **_stock_fields(self.stock),
            **_iv_fields(self.iv),
        )


ScanOutcome = Union[NotScanned, Phase1Failed, Phase2Failed, Phase3Failed, Candidate]
