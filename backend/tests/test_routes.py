"""
API Route Tests

All /v1/api endpoints with collaborators swapped through FastAPI
dependency overrides (no Redis, no network).
"""

from __future__ import annotations

import pytest
from fastapi.testclient import TestClient

from optionflow.cache import get_cache
from optionflow.config import Settings, get_settings
from optionflow.db.history_store import HistoryStore, get_history_store
from optionflow.db.ticker_registry import TickerRegistry, get_ticker_registry
from optionflow.errors import SourceUnavailable
from optionflow.main import app
from optionflow.models import AnalysisRecord, RawChainSnapshot
from optionflow.routes import get_chain_source

CHAIN = {
    "lastTrade": "LAST TRADE: $101.00 (AS OF SEP 12, 2025)",
    "rows": [
        {"expirygroup": "September 19, 2025"},
        {"expiryDate": "Sep 19", "strike": "100", "c_Volume": "1000", "c_Openinterest": "200",
         "c_Last": "2.0", "p_Volume": "200", "p_Openinterest": "1000", "p_Last": "1.5"},
    ],
}


class FakeCache:

    def __init__(self):
        self.available = True
        self.data = {}
        self.sets = []

    def get(self, key):
        return self.data.get(key)

    def set(self, key, value, ttl=None):
        self.data[key] = value
        self.sets.append((key, ttl))
        return True

    def ping(self):
        return True


class FakeSource:

    def __init__(self):
        self.raw_calls = []

    async def fetch_chain(self, ticker):
        if ticker == "DOWN":
            raise SourceUnavailable(ticker, "HTTP 503", status_code=503)
        if ticker == "EMPTY":
            return RawChainSnapshot(ticker=ticker, rows=[])
        return RawChainSnapshot.model_validate(
            {"ticker": ticker, "last_trade": CHAIN["lastTrade"], "rows": CHAIN["rows"]}
        )

    async def fetch_raw(self, ticker, params=None):
        self.raw_calls.append((ticker, params))
        return {"data": {"symbol": ticker, "params": params}}


@pytest.fixture
def env(tmp_path):
    cache = FakeCache()
    source = FakeSource()
    store = HistoryStore(path=str(tmp_path / "history.db"), timeout=1.0)
    registry = TickerRegistry(key="TEST_MASTER", cache=cache)
    settings = Settings(quote_cache_ttl=30, run_timeout_seconds=5.0)

    app.dependency_overrides[get_cache] = lambda: cache
    app.dependency_overrides[get_chain_source] = lambda: source
    app.dependency_overrides[get_history_store] = lambda: store
    app.dependency_overrides[get_ticker_registry] = lambda: registry
    app.dependency_overrides[get_settings] = lambda: settings
    yield {"cache": cache, "source": source, "store": store, "registry": registry}
    app.dependency_overrides.clear()


@pytest.fixture
def client(env):
    return TestClient(app)


# ──────────────────────────────────────────────
# Health
# ──────────────────────────────────────────────

class TestHealth:

    def test_health_ok(self, client):
        resp = client.get("/v1/api/health")
        assert resp.status_code == 200
        data = resp.json()
        assert data["status"] == "ok"
        assert data["services"]["redis"]["status"] == "ok"
        assert data["services"]["history_store"]["status"] == "ok"

    def test_request_id_header(self, client):
        resp = client.get("/v1/api/tickers", headers={"X-Request-ID": "abc-123"})
        assert resp.headers["X-Request-ID"] == "abc-123"


# ──────────────────────────────────────────────
# Ticker Lists
# ──────────────────────────────────────────────

class TestTickerRoutes:

    def test_empty_master_list(self, client):
        resp = client.get("/v1/api/tickers")
        assert resp.status_code == 200
        assert resp.json() == []

    def test_save_and_read_master_list(self, client):
        resp = client.post("/v1/api/tickers", json=["aapl", "TSLA", "AAPL"])
        assert resp.status_code == 200
        assert resp.json()["tickers"] == ["AAPL", "TSLA"]
        assert client.get("/v1/api/tickers").json() == ["AAPL", "TSLA"]

    def test_invalid_ticker_returns_400(self, client):
        resp = client.post("/v1/api/tickers", json=["AAPL", "$$$"])
        assert resp.status_code == 400
        data = resp.json()
        assert data["error"] is True
        assert data["request_id"]

    def test_non_list_body_returns_422(self, client):
        resp = client.post("/v1/api/tickers", json={"tickers": "AAPL"})
        assert resp.status_code == 422
        assert resp.json()["detail"] == "Validation error"

    def test_named_lists(self, client):
        resp = client.post("/v1/api/tickers/alice", json=["QQQ"])
        assert resp.status_code == 200
        assert resp.json()["list_id"] == "alice"
        assert client.get("/v1/api/tickers/alice").json() == ["QQQ"]
        assert client.get("/v1/api/tickers/bob").json() == []
        assert client.get("/v1/api/tickers").json() == []


# ──────────────────────────────────────────────
# History
# ──────────────────────────────────────────────

class TestHistoryRoutes:

    def test_newest_first_with_limit(self, client, env):
        env["store"].insert_batch([
            AnalysisRecord(ticker="AAPL", timestamp=ts, current_price=1.0, analysis_data="{}")
            for ts in (1, 3, 2)
        ])
        resp = client.get("/v1/api/history/aapl")
        assert resp.status_code == 200
        assert [r["timestamp"] for r in resp.json()] == [3, 2, 1]

        resp = client.get("/v1/api/history/AAPL?limit=1")
        assert [r["timestamp"] for r in resp.json()] == [3]

    def test_unknown_ticker_is_empty(self, client):
        assert client.get("/v1/api/history/NONE").json() == []

    def test_invalid_limit(self, client):
        assert client.get("/v1/api/history/AAPL?limit=0").status_code == 422


# ──────────────────────────────────────────────
# Quote Pass-Through
# ──────────────────────────────────────────────

class TestQuoteRoute:

    def test_forwards_query_string(self, client, env):
        resp = client.get("/v1/api/quote/tsla?assetclass=stocks&fromdate=2025-09-19")
        assert resp.status_code == 200
        assert resp.json()["data"]["symbol"] == "TSLA"
        assert env["source"].raw_calls == [("TSLA", {"assetclass": "stocks", "fromdate": "2025-09-19"})]
        assert env["cache"].sets[0][1] == 30

    def test_served_from_cache(self, client, env):
        client.get("/v1/api/quote/TSLA?assetclass=stocks")
        client.get("/v1/api/quote/TSLA?assetclass=stocks")
        assert len(env["source"].raw_calls) == 1


# ──────────────────────────────────────────────
# Analysis
# ──────────────────────────────────────────────

class TestAnalysisRoutes:

    def test_on_demand_analysis(self, client, env):
        resp = client.get("/v1/api/analysis/AAPL")
        assert resp.status_code == 200
        data = resp.json()
        assert data["ticker"] == "AAPL"
        assert data["analysis"]["consensus_direction"] == "conflict"
        assert data["max_pain_price"] == 100.0
        assert data["metrics"]["max_volume"]["voi_ratio"] == 5.0
        assert env["store"].query_by_ticker("AAPL") == []

    def test_source_unavailable_returns_502(self, client):
        resp = client.get("/v1/api/analysis/DOWN")
        assert resp.status_code == 502
        assert resp.json()["ticker"] == "DOWN"

    def test_empty_chain_returns_404(self, client):
        resp = client.get("/v1/api/analysis/EMPTY")
        assert resp.status_code == 404
        assert resp.json()["error"] is True

    def test_invalid_ticker_returns_400(self, client):
        assert client.get("/v1/api/analysis/not-a-ticker").status_code == 400

    def test_run_batch_now(self, client, env):
        client.post("/v1/api/tickers", json=["AAPL", "DOWN"])
        resp = client.post("/v1/api/analysis/run")
        assert resp.status_code == 200
        summary = resp.json()
        assert summary["analyzed"] == ["AAPL"]
        assert "DOWN" in summary["failures"]
        assert summary["persisted"] == 1
        assert len(env["store"].query_by_ticker("AAPL")) == 1
