"""
Options Flow — Batch Orchestrator

Runs the engine over every tracked ticker and writes the results to the
history store in one batch.

Per-ticker failures (source down, empty chain, anything unexpected) are
logged and reported, never propagated. The whole run is bounded by
`run_timeout_seconds`; on expiry, in-flight tickers are cancelled and
whatever already finished is still flushed.
"""

from __future__ import annotations

import asyncio
from dataclasses import dataclass
from typing import Callable, Iterable, Optional, Protocol

import structlog
from celery.exceptions import SoftTimeLimitExceeded

from optionflow.config import Settings, get_settings
from optionflow.data.nasdaq_client import NasdaqChainClient
from optionflow.db.history_store import HistoryStore, get_history_store
from optionflow.db.ticker_registry import TickerRegistry
from optionflow.engines.chain_normalizer import normalize_chain
from optionflow.engines.flow_engine import OptionsFlowEngine
from optionflow.engines.narrative_engine import NarrativeEngine
from optionflow.errors import AnalysisError, EmptyChain, SourceUnavailable
from optionflow.models import AnalysisRecord, BatchReport, RawChainSnapshot
from optionflow.utils.formatters import epoch_millis

log = structlog.get_logger(__name__)


class ChainSource(Protocol):
    async def fetch_chain(self, ticker: str) -> RawChainSnapshot: ...


def build_engine(settings: Settings) -> OptionsFlowEngine:
    """Engine wired with the configured signal thresholds."""
    return OptionsFlowEngine(
        voi_min_volume=settings.voi_min_volume,
        narrative=NarrativeEngine(signal_volume_threshold=settings.signal_volume_threshold),
    )


@dataclass
class AnalysisEnvironment:
    """Collaborators for one batch run."""
    registry: TickerRegistry
    source: ChainSource
    store: HistoryStore
    settings: Settings

    @classmethod
    def from_settings(cls, settings: Optional[Settings] = None) -> "AnalysisEnvironment":
        settings = settings or get_settings()
        return cls(
            registry=TickerRegistry(key=settings.ticker_registry_key),
            source=NasdaqChainClient(settings),
            store=get_history_store(),
            settings=settings,
        )


class BatchOrchestrator:
    """Bounded-concurrency analysis of a ticker list."""

    def __init__(
        self,
        env: AnalysisEnvironment,
        engine: Optional[OptionsFlowEngine] = None,
        clock: Callable[[], int] = epoch_millis,
    ):
        self.env = env
        self.settings = env.settings
        self.engine = engine or build_engine(env.settings)
        self.clock = clock

    async def analyze_ticker(self, ticker: str) -> AnalysisRecord:
        """Fetch, normalize and analyze one ticker.

        Raises SourceUnavailable when the fetch fails or exceeds
        `chain_fetch_timeout`, EmptyChain when there is nothing to analyze.
        """
        try:
            raw = await asyncio.wait_for(
                self.env.source.fetch_chain(ticker),
                timeout=self.settings.chain_fetch_timeout,
            )
        except asyncio.TimeoutError as exc:
            raise SourceUnavailable(ticker, "fetch timed out") from exc

        snapshot = normalize_chain(raw)
        if not snapshot.contracts:
            raise EmptyChain(ticker, len(raw.rows or []))

        payload = self.engine.analyze(snapshot)
        return AnalysisRecord.from_payload(payload, self.clock())

    async def _guarded(
        self,
        ticker: str,
        semaphore: asyncio.Semaphore,
        failures: dict[str, str],
    ) -> Optional[AnalysisRecord]:
        async with semaphore:
            try:
                record = await self.analyze_ticker(ticker)
            except AnalysisError as exc:
                log.warning("orchestrator.ticker_failed", ticker=ticker, error=str(exc))
                failures[ticker] = str(exc)
                return None
            except SoftTimeLimitExceeded:
                raise
            except Exception as exc:
                log.error(
                    "orchestrator.ticker_crashed",
                    ticker=ticker,
                    error=str(exc),
                    error_type=type(exc).__name__,
                )
                failures[ticker] = f"{type(exc).__name__}: {exc}"
                return None
        log.info("orchestrator.ticker_done", ticker=ticker, price=record.current_price)
        return record

    async def run(self, tickers: Iterable[str]) -> BatchReport:
        """Analyze all tickers, then persist the completed records in one batch.

        Records keep the input order. Cancelling this coroutine cancels every
        in-flight ticker and skips the write.
        """
        tickers = list(dict.fromkeys(t.strip().upper() for t in tickers if t and t.strip()))
        if not tickers:
            return BatchReport()

        semaphore = asyncio.Semaphore(max(1, self.settings.max_concurrent_fetches))
        failures: dict[str, str] = {}
        tasks = {
            ticker: asyncio.create_task(self._guarded(ticker, semaphore, failures))
            for ticker in tickers
        }

        try:
            _, pending = await asyncio.wait(
                tasks.values(), timeout=self.settings.run_timeout_seconds
            )
        except asyncio.CancelledError:
            for task in tasks.values():
                task.cancel()
            log.warning("orchestrator.hard_cancel", tickers=len(tickers))
            raise

        cancelled: list[str] = []
        if pending:
            for task in pending:
                task.cancel()
            await asyncio.gather(*pending, return_exceptions=True)
            cancelled = [t for t, task in tasks.items() if task in pending]
            log.warning(
                "orchestrator.run_timeout",
                timeout=self.settings.run_timeout_seconds,
                cancelled=cancelled,
            )

        records = [
            record
            for ticker, task in tasks.items()
            if task not in pending and (record := task.result()) is not None
        ]
        persisted = await self._persist(records)

        return BatchReport(
            tickers_requested=len(tickers),
            records=records,
            failures=failures,
            cancelled=cancelled,
            timed_out=bool(pending),
            persisted=persisted,
        )

    async def _persist(self, records: list[AnalysisRecord]) -> int:
        """Single batch write. Failures are logged, not retried.

        The write runs to completion, so the returned count is what the store
        committed. Lock waits are bounded by the store's own busy timeout
        (`history_write_timeout`).
        """
        if not records:
            log.info("orchestrator.nothing_to_persist")
            return 0
        try:
            return await asyncio.to_thread(self.env.store.insert_batch, records)
        except SoftTimeLimitExceeded:
            raise
        except Exception as exc:
            log.error("orchestrator.persist_failed", records=len(records), error=str(exc))
        return 0


# ──────────────────────────────────────────────
# Entry Points
# ──────────────────────────────────────────────

async def run_batch(env: Optional[AnalysisEnvironment] = None) -> BatchReport:
    """One batch over the master registry list."""
    env = env or AnalysisEnvironment.from_settings()
    tickers = env.registry.list_tickers()
    if not tickers:
        log.info("orchestrator.no_tickers")
        return BatchReport()

    log.info("orchestrator.run_start", tickers=tickers)
    report = await BatchOrchestrator(env).run(tickers)
    log.info("orchestrator.run_complete", **report.summary())
    return report


async def run_scheduled_analysis(env: Optional[AnalysisEnvironment] = None) -> None:
    """Scheduler entry point. Logs failures; only a task time limit escapes."""
    try:
        await run_batch(env)
    except SoftTimeLimitExceeded:
        raise
    except Exception as exc:
        log.error("orchestrator.run_failed", error=str(exc), error_type=type(exc).__name__)
