"""
Scan pipeline orchestrator.

Runs the five phases for every ticker on an owner's watchlist and persists
one immutable ScanResult row per ticker under a fresh scan_date:

    1. Stock filter    price band, liquidity, rising SMA-200
    2. IV screen       IV rank of the near-the-money put
    3. Option select   best OTM put inside DTE/delta/volume/yield limits
    4. Scoring         weighted composite (candidates only)
    5. Portfolio check informational flags (candidates only)

Ticker coroutines run concurrently; every upstream call is paced by the
shared RequestQueue, and pure phase evaluation runs on a bounded thread pool.

Usage:
    from wheelscan.scanner.pipeline import get_scan_pipeline

    summary = await get_scan_pipeline().run_full_scan(owner_id)
"""

from __future__ import annotations

import asyncio
from concurrent.futures import ThreadPoolExecutor
from dataclasses import dataclass, field
from datetime import datetime, timedelta, timezone
from typing import Any, Callable

from sqlalchemy.exc import InterfaceError, OperationalError, SQLAlchemyError

from wheelscan.core.config import settings
from wheelscan.core.exceptions import (
    ConflictError,
    ProviderUnavailableError,
    ScanInProgressError,
    ScanRunError,
    StoreUnavailableError,
)
from wheelscan.core.logging import get_logger, owner_id_var
from wheelscan.domain.calendar import TradingCalendar, get_trading_calendar
from wheelscan.repositories import price_history_orm as price_history_repo
from wheelscan.repositories import scan_results_orm as scan_results_repo
from wheelscan.repositories import watchlist_orm as watchlist_repo
from wheelscan.scanner.constants import SCANNER, ScannerConfig
from wheelscan.scanner.guard import ScanGuard
from wheelscan.scanner.phases import evaluate_iv, evaluate_stock, select_contract
from wheelscan.scanner.portfolio import EmptyPortfolio, PortfolioLookup, check_portfolio
from wheelscan.scanner.scoring import compute_scores
from wheelscan.scanner.state import (
    Candidate,
    NotScanned,
    Phase1Failed,
    Phase2Failed,
    Phase3Failed,
    ScanOutcome,
    ScanResultRecord,
)
from wheelscan.services.data_providers import (
    MarketDataProvider,
    OptionsDataProvider,
    get_market_data_provider,
    get_options_data_provider,
)


logger = get_logger("scanner.pipeline")

# Shared pool for CPU-bound phase evaluation
_executor = ThreadPoolExecutor(
    max_workers=settings.scan_max_workers, thread_name_prefix="scanner"
)

# Calendar days of history requested: enough for SMA-200 plus trend lookback
HISTORY_CALENDAR_DAYS = 400


@dataclass
class ScanRunSummary:
    """Outcome of one full scan for one owner."""

    scan_date: datetime
    results: list[ScanResultRecord] = field(default_factory=list)
    total_scanned: int = 0
    total_passed: int = 0
    failed_to_persist: list[str] = field(default_factory=list)

    def to_dict(self) -> dict[str, Any]:
        return {
            "scan_date": self.scan_date.isoformat(),
            "total_scanned": self.total_scanned,
            "total_passed": self.total_passed,
            "failed_to_persist": list(self.failed_to_persist),
        }


class ScanPipeline:
    """Five-phase scanner over an owner's watchlist."""

    def __init__(
        self,
        market_data: MarketDataProvider | None = None,
        options_data: OptionsDataProvider | None = None,
        portfolio: PortfolioLookup | None = None,
        calendar: TradingCalendar | None = None,
        config: ScannerConfig = SCANNER,
        guard: ScanGuard | None = None,
        timeout_seconds: float | None = None,
        executor: ThreadPoolExecutor | None = None,
        clock: Callable[[], datetime] | None = None,
    ):
        self.market_data = market_data or get_market_data_provider()
        self.options_data = options_data or get_options_data_provider()
        self.portfolio = portfolio or EmptyPortfolio()
        self.calendar = calendar or get_trading_calendar()
        self.config = config
        self.guard = guard or get_scan_guard()
        self.timeout_seconds = timeout_seconds or settings.scan_timeout_seconds
        self._executor = executor or _executor
        self._clock = clock or (lambda: datetime.now(timezone.utc))

    # =========================================================================
    # Per-ticker
    # =========================================================================

    async def _run_pure(self, func, *args):
        loop = asyncio.get_running_loop()
        return await loop.run_in_executor(self._executor, func, *args)

    async def _store_history(self, ticker: str, bars) -> None:
        try:
            await price_history_repo.save_bars(ticker, bars)
        except SQLAlchemyError as e:
            logger.warning(f"Could not append price history for {ticker}: {e}")

    async def scan_ticker(self, owner_id: str, ticker: str, now: datetime) -> ScanOutcome:
        """Run phases 1-5 for one ticker, stopping at the first failure."""
        config = self.config
        as_of = self.calendar.trading_date(now)

        history = await self.market_data.get_historical_prices(
            ticker, as_of - timedelta(days=HISTORY_CALENDAR_DAYS), as_of
        )
        if not history.success:
            return NotScanned(ticker, history.error)
        await self._store_history(ticker, history.data.bars)

        stock = await self._run_pure(evaluate_stock, ticker, history.data, config)
        if isinstance(stock, Phase1Failed):
            return stock

        iv_history = await self.options_data.get_iv_history(
            ticker,
            as_of - timedelta(days=config.iv_lookback_days),
            as_of,
            reference_price=stock.price,
        )
        if not iv_history.success:
            return Phase2Failed(ticker, iv_history.error, stock)

        iv, reason = evaluate_iv(iv_history.data, config)
        if reason is not None:
            return Phase2Failed(ticker, reason, stock, iv)

        chain = await self.options_data.get_option_chain(
            ticker, as_of, min_dte=config.min_dte, max_dte=config.max_dte
        )
        if not chain.success:
            return Phase3Failed(ticker, chain.error, stock, iv)

        selected, reason = await self._run_pure(
            select_contract, chain.data, stock.price, as_of, config
        )
        if reason is not None:
            return Phase3Failed(ticker, reason, stock, iv)

        scores = compute_scores(
            premium_yield=selected.premium_yield,
            iv_rank=iv.iv_rank,
            delta=selected.option.delta,
            open_interest=selected.option.open_interest,
            price=stock.price,
            sma_200=stock.sma_200,
            config=config,
        )
        portfolio = await check_portfolio(self.portfolio, owner_id, ticker)

        return Candidate(
            ticker=ticker,
            stock=stock,
            iv=iv,
            contract=selected,
            scores=scores,
            portfolio=portfolio,
        )

    async def _scan_ticker_safely(self, owner_id: str, ticker: str, now: datetime) -> ScanOutcome:
        # One ticker's unexpected failure is recorded, never fatal to the batch
        try:
            return await self.scan_ticker(owner_id, ticker, now)
        except Exception as e:
            logger.exception(f"Unexpected error scanning {ticker} for {owner_id}")
            return NotScanned(ticker, f"Scan error: {e}")

    # =========================================================================
    # Full run
    # =========================================================================

    async def _check_dependencies(self) -> None:
        await scan_results_repo.ping()

        providers = [self.market_data]
        if self.options_data is not self.market_data:
            providers.append(self.options_data)
        for provider in providers:
            if not await provider.health_check():
                raise ProviderUnavailableError(
                    message=f"Market data provider '{provider.name}' failed its health check"
                )

    async def _persist(self, records: list[ScanResultRecord]) -> list[str]:
        """
        Save each record, returning the tickers that could not be stored.

        Raises:
            StoreUnavailableError: The store dropped away mid-run or no record was saved
        """
        failed = []
        for record in records:
            try:
                await scan_results_repo.save_result(record)
            except (OperationalError, InterfaceError, OSError) as e:
                logger.error(f"Result store unreachable while saving {record.ticker}: {e}")
                raise StoreUnavailableError(
                    details={"error": str(e), "ticker": record.ticker}
                ) from e
            except (ConflictError, SQLAlchemyError) as e:
                logger.error(f"Failed to persist scan result for {record.ticker}: {e}")
                failed.append(record.ticker)
        if records and len(failed) == len(records):
            raise StoreUnavailableError(
                message="No scan result could be saved",
                details={"failed": failed},
            )
        return failed

    async def run_full_scan(self, owner_id: str, now: datetime | None = None) -> ScanRunSummary:
        """
        Scan the owner's current watchlist and persist a new result batch.

        Args:
            owner_id: Whose watchlist to scan
            now: Evaluation instant (defaults to the current time)

        Returns:
            ScanRunSummary with results ranked passed-first, composite desc

        Raises:
            ScanInProgressError: A scan for this owner is already running
            ProviderUnavailableError: A provider failed its health check
            StoreUnavailableError: The result store is unreachable
            ScanRunError: The run exceeded its timeout
        """
        token = self.guard.acquire(owner_id)
        if token is None:
            raise ScanInProgressError()
        context = owner_id_var.set(owner_id)

        try:
            scan_date = now or self._clock()
            if scan_date.tzinfo is None:
                scan_date = scan_date.replace(tzinfo=timezone.utc)
            scan_date = scan_date.astimezone(timezone.utc)

            await self._check_dependencies()

            tickers = await watchlist_repo.get_tickers(owner_id)
            logger.info(f"Scan started for {owner_id}: {len(tickers)} tickers")

            try:
                outcomes = await asyncio.wait_for(
                    asyncio.gather(
                        *(self._scan_ticker_safely(owner_id, t, scan_date) for t in tickers)
                    ),
                    timeout=self.timeout_seconds,
                )
            except asyncio.TimeoutError as e:
                logger.error(f"Scan for {owner_id} timed out after {self.timeout_seconds}s")
                raise ScanRunError(
                    message=f"Scan timed out after {self.timeout_seconds:g} seconds"
                ) from e

            records = sorted(
                (outcome.to_record(owner_id, scan_date) for outcome in outcomes),
                key=lambda r: r.sort_key,
            )
            failed = await self._persist(records)

            summary = ScanRunSummary(
                scan_date=scan_date,
                results=records,
                total_scanned=len(records),
                total_passed=sum(1 for r in records if r.passed),
                failed_to_persist=failed,
            )
            logger.info(
                f"Scan finished for {owner_id}: {summary.total_passed}/{summary.total_scanned} passed"
                + (f", {len(failed)} not persisted" if failed else "")
            )
            return summary
        finally:
            self.guard.release(owner_id, token)
            owner_id_var.reset(context)


# Guard shared by every pipeline in this process (API and scheduler)
_guard: ScanGuard | None = None


def get_scan_guard() -> ScanGuard:
    global _guard
    if _guard is None:
        _guard = ScanGuard(ttl_seconds=settings.scan_guard_ttl_seconds)
    return _guard


def get_scan_pipeline(portfolio: PortfolioLookup | None = None) -> ScanPipeline:
    """Pipeline wired to the configured providers."""
    return ScanPipeline(portfolio=portfolio)
