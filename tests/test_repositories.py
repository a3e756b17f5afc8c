"""Tests for the ORM repositories against a temporary SQLite database."""

from __future__ import annotations

from datetime import timedelta

import pytest
from sqlalchemy import select

from wheelscan.core.config import settings
from wheelscan.core.exceptions import ConflictError, ValidationError
from wheelscan.database.connection import get_session
from wheelscan.database.orm import ImmutableRowError, ScanResult, StockQuote
from wheelscan.domain.price import Quote
from wheelscan.repositories import price_history_orm as price_history_repo
from wheelscan.repositories import quotes_orm as quotes_repo
from wheelscan.repositories import scan_results_orm as scan_results_repo
from wheelscan.repositories import watchlist_orm as watchlist_repo
from wheelscan.scanner.state import ScanResultRecord


# =============================================================================
# Watchlist
# =============================================================================


class TestWatchlistRepository:
    @pytest.mark.asyncio
    async def test_add_normalizes_ticker(self, db):
        row = await watchlist_repo.add_ticker("alice", " aapl ", notes="earnings soon")

        assert row["ticker"] == "AAPL"
        assert row["notes"] == "earnings soon"
        assert row["added_at"] is not None
        assert await watchlist_repo.get_tickers("alice") == ["AAPL"]

    @pytest.mark.asyncio
    async def test_duplicate_rejected(self, db):
        await watchlist_repo.add_ticker("alice", "AAPL")
        with pytest.raises(ConflictError):
            await watchlist_repo.add_ticker("alice", "aapl")

    @pytest.mark.asyncio
    async def test_same_ticker_for_different_owners(self, db):
        await watchlist_repo.add_ticker("alice", "AAPL")
        await watchlist_repo.add_ticker("bob", "AAPL")

        assert await watchlist_repo.get_tickers("bob") == ["AAPL"]
        assert await watchlist_repo.list_owners() == ["alice", "bob"]

    @pytest.mark.parametrize("ticker", ["", "TOOLONG", "BRK.B", "12AB"])
    @pytest.mark.asyncio
    async def test_invalid_ticker(self, db, ticker):
        with pytest.raises(ValidationError):
            await watchlist_repo.add_ticker("alice", ticker)

    @pytest.mark.asyncio
    async def test_notes_too_long(self, db):
        with pytest.raises(ValidationError):
            await watchlist_repo.add_ticker("alice", "AAPL", notes="x" * 501)

    @pytest.mark.asyncio
    async def test_watchlist_cap(self, db, monkeypatch):
        monkeypatch.setattr(settings, "watchlist_max_tickers", 2)
        await watchlist_repo.add_ticker("alice", "AAPL")
        await watchlist_repo.add_ticker("alice", "MSFT")

        with pytest.raises(ValidationError, match="limited to 2"):
            await watchlist_repo.add_ticker("alice", "KO")

    @pytest.mark.asyncio
    async def test_list_is_alphabetical(self, db):
        for ticker in ("MSFT", "AAPL", "KO"):
            await watchlist_repo.add_ticker("alice", ticker)

        rows = await watchlist_repo.list_tickers("alice")
        assert [r["ticker"] for r in rows] == ["AAPL", "KO", "MSFT"]
        assert await watchlist_repo.count_tickers("alice") == 3

    @pytest.mark.asyncio
    async def test_remove(self, db):
        await watchlist_repo.add_ticker("alice", "AAPL")

        assert await watchlist_repo.remove_ticker("alice", "aapl") is True
        assert await watchlist_repo.remove_ticker("alice", "AAPL") is False
        assert await watchlist_repo.get_tickers("alice") == []


# =============================================================================
# Price history
# =============================================================================


class TestPriceHistoryRepository:
    @pytest.mark.asyncio
    async def test_append_only(self, db, make_history, as_of):
        bars = make_history(count=30).bars

        assert await price_history_repo.save_bars("whl", bars[:20]) == 20
        assert await price_history_repo.save_bars("WHL", bars) == 10
        assert await price_history_repo.save_bars("WHL", bars) == 0

        stored = await price_history_repo.get_bars("WHL", bars[0].date, as_of)
        assert [b.date for b in stored] == [b.date for b in bars]
        assert await price_history_repo.get_latest_date("WHL") == as_of

    @pytest.mark.asyncio
    async def test_empty_input(self, db):
        assert await price_history_repo.save_bars("WHL", []) == 0
        assert await price_history_repo.get_latest_date("WHL") is None


# =============================================================================
# Quotes
# =============================================================================


class TestQuotesRepository:
    @pytest.mark.asyncio
    async def test_upsert_per_trading_day(self, db, now, as_of):
        earlier = now - timedelta(hours=2)
        await quotes_repo.save_quote(Quote(ticker="AAPL", price=180.0, timestamp=earlier, source="mock"), as_of)
        await quotes_repo.save_quote(Quote(ticker="AAPL", price=181.5, timestamp=now, source="mock"), as_of)

        async with get_session() as session:
            rows = (await session.execute(select(StockQuote))).scalars().all()
        assert [(r.ticker, r.trading_date, r.price) for r in rows] == [("AAPL", as_of, 181.5)]
        assert await quotes_repo.get_last_updated(["AAPL"]) == {"AAPL": now}

    @pytest.mark.asyncio
    async def test_last_updated(self, db, now, as_of):
        await quotes_repo.save_quote(Quote(ticker="AAPL", price=180.0, timestamp=now, source="mock"), as_of)

        updated = await quotes_repo.get_last_updated(["aapl", "MSFT"])
        assert updated == {"AAPL": now, "MSFT": None}

    @pytest.mark.asyncio
    async def test_last_updated_empty(self, db):
        assert await quotes_repo.get_last_updated([]) == {}


# =============================================================================
# Scan results
# =============================================================================


def _record(ticker, scan_date, passed=False, score=None, phase=0, owner="alice"):
    return ScanResultRecord(
        owner_id=owner,
        ticker=ticker,
        scan_date=scan_date,
        passed_phase1=phase >= 1,
        passed_phase2=phase >= 2,
        passed_phase3=phase >= 3,
        composite_score=score,
        passed=passed,
        final_reason="Passed all phases" if passed else "Phase 1: Price $5.00 below $13 minimum",
    )


class TestScanResultsRepository:
    @pytest.mark.asyncio
    async def test_duplicate_row_rejected(self, db, now):
        await scan_results_repo.save_result(_record("AAPL", now))
        with pytest.raises(ConflictError):
            await scan_results_repo.save_result(_record("AAPL", now))

    @pytest.mark.asyncio
    async def test_latest_batch_ranked(self, db, now):
        earlier = now - timedelta(days=1)
        await scan_results_repo.save_result(_record("OLD", earlier, passed=True, score=90.0, phase=3))
        await scan_results_repo.save_result(_record("AAA", now))
        await scan_results_repo.save_result(_record("LOW", now, passed=True, score=55.0, phase=3))
        await scan_results_repo.save_result(_record("TOP", now, passed=True, score=80.0, phase=3))

        rows = await scan_results_repo.get_latest_scan_results("alice")

        assert [r["ticker"] for r in rows] == ["TOP", "LOW", "AAA"]
        assert all(r["scan_date"] == now for r in rows)

    @pytest.mark.asyncio
    async def test_owners_are_isolated(self, db, now):
        await scan_results_repo.save_result(_record("AAPL", now, owner="bob"))

        assert await scan_results_repo.get_latest_scan_results("alice") == []
        assert await scan_results_repo.get_scan_metadata("alice") is None

    @pytest.mark.asyncio
    async def test_metadata(self, db, now):
        await scan_results_repo.save_result(_record("AAA", now, phase=0))
        await scan_results_repo.save_result(_record("BBB", now, phase=2))
        await scan_results_repo.save_result(_record("CCC", now, passed=True, score=70.0, phase=3))

        metadata = await scan_results_repo.get_scan_metadata("alice")

        assert metadata == {
            "last_scan_date": now,
            "total_scanned": 3,
            "passed_phase1": 2,
            "passed_phase2": 2,
            "passed_phase3": 1,
            "total_passed": 1,
        }

    @pytest.mark.asyncio
    async def test_single_result_defaults_to_latest(self, db, now):
        earlier = now - timedelta(days=1)
        await scan_results_repo.save_result(_record("AAPL", earlier))
        await scan_results_repo.save_result(_record("AAPL", now, passed=True, score=60.0, phase=3))

        latest = await scan_results_repo.get_scan_result("alice", "aapl")
        older = await scan_results_repo.get_scan_result("alice", "AAPL", scan_date=earlier)

        assert latest["passed"] is True
        assert older["passed"] is False
        assert await scan_results_repo.get_scan_result("alice", "MSFT") is None

    @pytest.mark.asyncio
    async def test_history_newest_first(self, db, now):
        for days_ago in (2, 0, 1):
            scan_date = now - timedelta(days=days_ago)
            await scan_results_repo.save_result(_record("AAA", scan_date, passed=True, score=60.0, phase=3))
            await scan_results_repo.save_result(_record("BBB", scan_date))

        history = await scan_results_repo.list_scan_dates("alice", limit=2)

        assert [h["scan_date"] for h in history] == [now, now - timedelta(days=1)]
        assert history[0]["total_scanned"] == 2
        assert history[0]["total_passed"] == 1

    @pytest.mark.asyncio
    async def test_rows_are_immutable(self, db, now):
        await scan_results_repo.save_result(_record("AAPL", now))

        with pytest.raises(ImmutableRowError):
            async with get_session() as session:
                row = (await session.execute(select(ScanResult))).scalar_one()
                row.final_reason = "rewritten"
                await session.commit()

        stored = await scan_results_repo.get_scan_result("alice", "AAPL")
        assert stored["final_reason"] == "Phase 1: Price $5.00 below $13 minimum"

    @pytest.mark.asyncio
    async def test_ping(self, db):
        assert await scan_results_repo.ping() is True
