"""API endpoint tests."""

from __future__ import annotations

import pytest
from sqlalchemy.exc import OperationalError

from wheelscan.repositories import scan_results_orm as scan_results_repo
from wheelscan.scanner.pipeline import get_scan_guard


class TestHealthEndpoints:
    def test_health(self, client):
        response = client.get("/health")

        assert response.status_code == 200
        data = response.json()
        assert data["status"] == "healthy"
        assert data["checks"] == {"database": True, "market_data": True, "options_data": True}
        assert "version" in data

    def test_degraded_when_provider_down(self, client, mock_provider):
        mock_provider.healthy = False

        data = client.get("/health").json()

        assert data["status"] == "degraded"
        assert data["checks"]["database"] is True
        assert data["checks"]["market_data"] is False

    def test_ready(self, client):
        assert client.get("/health/ready").json() == {"status": "ready"}

    def test_live(self, client):
        assert client.get("/health/live").json() == {"status": "alive"}

    def test_security_headers(self, client):
        response = client.get("/health/live")
        assert response.headers["X-Content-Type-Options"] == "nosniff"
        assert "X-Request-ID" in response.headers


class TestOwnerIdentity:
    @pytest.mark.parametrize("path", ["/watchlist", "/scanner/results", "/scanner/metadata"])
    def test_missing_owner(self, client, path):
        response = client.get(path)

        assert response.status_code == 401
        assert response.json()["message"] == "Missing X-Owner-ID header"

    def test_malformed_owner(self, client):
        response = client.get("/watchlist", headers={"X-Owner-ID": "bad owner!"})

        assert response.status_code == 401
        assert response.json()["message"] == "Invalid X-Owner-ID header"


class TestWatchlistEndpoints:
    def test_add_list_remove(self, client, owner_headers):
        created = client.post(
            "/watchlist", json={"ticker": "aapl", "notes": "core holding"}, headers=owner_headers
        )
        assert created.status_code == 201
        assert created.json()["ticker"] == "AAPL"

        listing = client.get("/watchlist", headers=owner_headers).json()
        assert listing["owner_id"] == "alice"
        assert listing["total_count"] == 1
        assert listing["tickers"][0]["notes"] == "core holding"
        assert listing["max_tickers"] > 0

        removed = client.delete("/watchlist/aapl", headers=owner_headers)
        assert removed.status_code == 200
        assert removed.json() == {"message": "Removed AAPL from watchlist"}
        assert client.get("/watchlist", headers=owner_headers).json()["total_count"] == 0

    def test_duplicate_is_conflict(self, client, owner_headers):
        client.post("/watchlist", json={"ticker": "AAPL"}, headers=owner_headers)
        response = client.post("/watchlist", json={"ticker": "AAPL"}, headers=owner_headers)

        assert response.status_code == 409

    def test_invalid_ticker(self, client, owner_headers):
        response = client.post("/watchlist", json={"ticker": "NOT-A-TICKER"}, headers=owner_headers)
        assert response.status_code == 422

    def test_remove_missing(self, client, owner_headers):
        response = client.delete("/watchlist/MSFT", headers=owner_headers)

        assert response.status_code == 404
        assert response.json()["message"] == "MSFT is not on the watchlist"

    def test_watchlists_are_per_owner(self, client, owner_headers):
        client.post("/watchlist", json={"ticker": "AAPL"}, headers=owner_headers)

        other = client.get("/watchlist", headers={"X-Owner-ID": "bob"}).json()
        assert other["total_count"] == 0


class TestScannerEndpoints:
    def _watch(self, client, headers, *tickers):
        for ticker in tickers:
            client.post("/watchlist", json={"ticker": ticker}, headers=headers)

    def test_run_and_read_back(self, client, owner_headers):
        self._watch(client, owner_headers, "AAPL", "KO")

        run = client.post("/scanner/run", headers=owner_headers)
        assert run.status_code == 200
        summary = run.json()
        assert summary["total_scanned"] == 2
        assert summary["failed_to_persist"] == []
        assert {r["ticker"] for r in summary["results"]} == {"AAPL", "KO"}

        results = client.get("/scanner/results", headers=owner_headers).json()
        assert results["total_count"] == 2
        assert results["scan_date"] is not None
        assert [r["ticker"] for r in results["results"]] == [r["ticker"] for r in summary["results"]]

        metadata = client.get("/scanner/metadata", headers=owner_headers).json()
        assert metadata["total_scanned"] == 2
        assert metadata["total_passed"] == summary["total_passed"]

        history = client.get("/scanner/history", headers=owner_headers).json()
        assert history["total_count"] == 1

        single = client.get("/scanner/results/aapl", headers=owner_headers)
        assert single.status_code == 200
        assert single.json()["ticker"] == "AAPL"

    def test_passed_only_filter(self, client, owner_headers, mock_provider):
        mock_provider.fail("BAD", "Upstream exploded")
        self._watch(client, owner_headers, "BAD")
        client.post("/scanner/run", headers=owner_headers)

        results = client.get("/scanner/results?passed_only=true", headers=owner_headers).json()
        assert results["total_count"] == 0

        everything = client.get("/scanner/results", headers=owner_headers).json()
        assert everything["results"][0]["final_reason"] == "Phase 1 failed: Upstream exploded"

    def test_never_scanned(self, client, owner_headers):
        results = client.get("/scanner/results", headers=owner_headers).json()
        assert results == {"scan_date": None, "results": [], "total_count": 0}

        metadata = client.get("/scanner/metadata", headers=owner_headers).json()
        assert metadata["total_scanned"] == 0
        assert metadata["last_scan_date"] is None

    def test_missing_result(self, client, owner_headers):
        response = client.get("/scanner/results/MSFT", headers=owner_headers)

        assert response.status_code == 404
        assert response.json()["message"] == "No scan result for MSFT"

    def test_history_limit_validated(self, client, owner_headers):
        response = client.get("/scanner/history?limit=0", headers=owner_headers)
        assert response.status_code == 422

    def test_scan_in_progress(self, client, owner_headers):
        guard = get_scan_guard()
        token = guard.acquire("alice")
        try:
            response = client.post("/scanner/run", headers=owner_headers)
        finally:
            guard.release("alice", token)

        assert response.status_code == 409
        assert response.json()["error"] == "SCAN_IN_PROGRESS"

    def test_provider_down(self, client, owner_headers, mock_provider):
        mock_provider.healthy = False

        response = client.post("/scanner/run", headers=owner_headers)

        assert response.status_code == 503
        assert response.json()["error"] == "PROVIDER_UNAVAILABLE"

    def test_store_lost_during_run(self, client, owner_headers, monkeypatch):
        self._watch(client, owner_headers, "AAPL")

        async def unreachable(record):
            raise OperationalError("INSERT INTO scan_results", {}, ConnectionRefusedError("refused"))

        monkeypatch.setattr(scan_results_repo, "save_result", unreachable)

        response = client.post("/scanner/run", headers=owner_headers)

        assert response.status_code == 503
        assert response.json()["error"] == "STORE_UNAVAILABLE"


class TestMarketDataEndpoints:
    def test_status(self, client):
        data = client.get("/market-data/status").json()

        assert set(data) == {"is_open", "trading_date", "last_close", "next_open", "request_queue"}
        assert data["request_queue"]["name"] == "market_data"

    def test_refresh_explicit_tickers(self, client, owner_headers):
        response = client.post(
            "/market-data/refresh", json={"tickers": ["aapl"]}, headers=owner_headers
        )

        assert response.status_code == 200
        data = response.json()
        assert data["message"] == "Refreshed 1 of 1 tickers"
        assert data["successful"][0]["ticker"] == "AAPL"
        assert data["summary"]["successful"] == 1

    def test_refresh_defaults_to_watchlist(self, client, owner_headers):
        empty = client.post("/market-data/refresh", headers=owner_headers).json()
        assert empty["message"] == "No tickers to refresh"

        client.post("/watchlist", json={"ticker": "KO"}, headers=owner_headers)
        data = client.post("/market-data/refresh", json={"force": True}, headers=owner_headers).json()
        assert [s["ticker"] for s in data["successful"]] == ["KO"]

    def test_eligibility(self, client, owner_headers):
        response = client.get(
            "/market-data/eligibility?tickers=AAPL&tickers=msft", headers=owner_headers
        )

        data = response.json()
        assert data["total_count"] == 2
        assert {t["ticker"] for t in data["tickers"]} == {"AAPL", "MSFT"}
        assert all(t["can_refresh"] for t in data["tickers"])
