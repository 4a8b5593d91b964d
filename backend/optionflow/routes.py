"""
Options Flow — API Routes

All HTTP endpoints. Thin layer over the registry, the history store, the
chain source and the engines. Collaborators come in through FastAPI
dependencies so tests can swap them.
"""

from __future__ import annotations

import time as _time
from typing import Optional

from fastapi import APIRouter, Body, Depends, HTTPException, Query, Request

from optionflow.cache import RedisCache, get_cache, quote_cache_key
from optionflow.config import Settings, get_settings
from optionflow.data.nasdaq_client import NasdaqChainClient
from optionflow.db.history_store import HistoryStore, get_history_store
from optionflow.db.ticker_registry import TickerRegistry, get_ticker_registry
from optionflow.engines.batch_orchestrator import (
    AnalysisEnvironment,
    BatchOrchestrator,
    build_engine,
)
from optionflow.engines.chain_normalizer import normalize_chain
from optionflow.errors import EmptyChain
from optionflow.models import AnalysisPayload, AnalysisRecord
from optionflow.utils.validators import validate_limit, validate_ticker


def get_chain_source() -> NasdaqChainClient:
    return NasdaqChainClient()


def _ticker_or_400(raw: str) -> str:
    try:
        return validate_ticker(raw)
    except ValueError as exc:
        raise HTTPException(status_code=400, detail=str(exc))


# ──────────────────────────────────────────────
# Health
# ──────────────────────────────────────────────

health_router = APIRouter()


@health_router.get("/health")
async def health_check(
    cache: RedisCache = Depends(get_cache),
    store: HistoryStore = Depends(get_history_store),
    settings: Settings = Depends(get_settings),
):
    """Service status with Redis and history store checks."""
    services = {}

    t0 = _time.perf_counter()
    services["redis"] = {
        "status": "ok" if cache.ping() else "unavailable",
        "latency_ms": round((_time.perf_counter() - t0) * 1000, 1),
    }

    t0 = _time.perf_counter()
    services["history_store"] = {
        "status": "ok" if store.ping() else "unavailable",
        "latency_ms": round((_time.perf_counter() - t0) * 1000, 1),
    }

    healthy = all(s["status"] == "ok" for s in services.values())
    return {
        "status": "ok" if healthy else "degraded",
        "env": settings.app_env,
        "services": services,
    }


# ──────────────────────────────────────────────
# Ticker Lists
# ──────────────────────────────────────────────

tickers_router = APIRouter()


def _replace(registry: TickerRegistry, tickers: list[str], list_id: Optional[str] = None) -> dict:
    try:
        stored = registry.replace(tickers, list_id=list_id)
    except ValueError as exc:
        raise HTTPException(status_code=400, detail=str(exc))
    return {"success": True, "tickers": stored, "count": len(stored)}


@tickers_router.get("/tickers", response_model=list[str])
async def get_tickers(registry: TickerRegistry = Depends(get_ticker_registry)):
    """Master ticker list processed by the scheduled batch."""
    return registry.list_tickers()


@tickers_router.post("/tickers")
async def save_tickers(
    tickers: list[str] = Body(..., examples=[["AAPL", "TSLA"]]),
    registry: TickerRegistry = Depends(get_ticker_registry),
):
    """Replace the master ticker list."""
    return _replace(registry, tickers)


@tickers_router.get("/tickers/{list_id}", response_model=list[str])
async def get_named_tickers(
    list_id: str,
    registry: TickerRegistry = Depends(get_ticker_registry),
):
    """Named ticker list; empty when never saved."""
    return registry.list_tickers(list_id=list_id)


@tickers_router.post("/tickers/{list_id}")
async def save_named_tickers(
    list_id: str,
    tickers: list[str] = Body(...),
    registry: TickerRegistry = Depends(get_ticker_registry),
):
    """Replace a named ticker list."""
    result = _replace(registry, tickers, list_id=list_id)
    result["list_id"] = list_id
    return result


# ──────────────────────────────────────────────
# History
# ──────────────────────────────────────────────

history_router = APIRouter()


@history_router.get("/history/{ticker}", response_model=list[AnalysisRecord])
async def get_history(
    ticker: str,
    limit: Optional[int] = Query(None, ge=1, description="Max records, newest first"),
    store: HistoryStore = Depends(get_history_store),
):
    """Stored analysis records for one ticker, newest first."""
    symbol = _ticker_or_400(ticker)
    return store.query_by_ticker(symbol, limit=validate_limit(limit))


# ──────────────────────────────────────────────
# Quote Pass-Through & Analysis
# ──────────────────────────────────────────────

analysis_router = APIRouter()


@analysis_router.get("/quote/{ticker}")
async def get_quote(
    ticker: str,
    request: Request,
    source: NasdaqChainClient = Depends(get_chain_source),
    cache: RedisCache = Depends(get_cache),
    settings: Settings = Depends(get_settings),
):
    """Raw Nasdaq option-chain JSON. The query string is forwarded as-is."""
    symbol = _ticker_or_400(ticker)
    params = dict(request.query_params)
    key = quote_cache_key(symbol, params)

    hit = cache.get(key)
    if hit is not None:
        return hit

    body = await source.fetch_raw(symbol, params or None)
    cache.set(key, body, ttl=settings.quote_cache_ttl)
    return body


@analysis_router.get("/analysis/{ticker}", response_model=AnalysisPayload)
async def analyze_ticker(
    ticker: str,
    source: NasdaqChainClient = Depends(get_chain_source),
    settings: Settings = Depends(get_settings),
):
    """Run the engine for one ticker right now. Nothing is stored."""
    symbol = _ticker_or_400(ticker)
    raw = await source.fetch_chain(symbol)
    snapshot = normalize_chain(raw)
    if not snapshot.contracts:
        raise EmptyChain(symbol, len(raw.rows or []))
    return build_engine(settings).analyze(snapshot)


@analysis_router.post("/analysis/run")
async def run_analysis_now(
    registry: TickerRegistry = Depends(get_ticker_registry),
    source: NasdaqChainClient = Depends(get_chain_source),
    store: HistoryStore = Depends(get_history_store),
    settings: Settings = Depends(get_settings),
):
    """Run one batch over the master list and return its summary."""
    env = AnalysisEnvironment(registry=registry, source=source, store=store, settings=settings)
    report = await BatchOrchestrator(env).run(registry.list_tickers())
    return report.summary()
