"""
Options Flow — Analysis History Store

SQLite persistence for analysis records. One row per (ticker, run) with the
serialized analysis payload. Each call opens its own connection, so the
store can be used from worker threads.
"""

from __future__ import annotations

import sqlite3
from contextlib import closing
from pathlib import Path
from typing import Iterable, Optional

import structlog

from optionflow.config import get_settings
from optionflow.models import AnalysisRecord

log = structlog.get_logger(__name__)


_CREATE_TABLE = """
    CREATE TABLE IF NOT EXISTS analysis_history (
        id INTEGER PRIMARY KEY AUTOINCREMENT,
        ticker TEXT NOT NULL,
        timestamp INTEGER NOT NULL,
        current_price REAL NOT NULL,
        analysis_data TEXT NOT NULL
    )
"""
_CREATE_INDEX = (
    "CREATE INDEX IF NOT EXISTS idx_history_ticker_ts "
    "ON analysis_history(ticker, timestamp DESC)"
)
_INSERT = (
    "INSERT INTO analysis_history (ticker, timestamp, current_price, analysis_data) "
    "VALUES (?, ?, ?, ?)"
)
_SELECT = (
    "SELECT ticker, timestamp, current_price, analysis_data FROM analysis_history "
    "WHERE ticker = ? ORDER BY timestamp DESC, id DESC"
)


class HistoryStore:
    """Append-only analysis_history table."""

    def __init__(self, path: Optional[str] = None, timeout: Optional[float] = None):
        settings = get_settings()
        self.path = Path(path or settings.history_db_path)
        self.timeout = timeout if timeout is not None else settings.history_write_timeout
        self._ready = False

    def _connect(self) -> sqlite3.Connection:
        return sqlite3.connect(str(self.path), timeout=self.timeout)

    def ensure_table(self) -> None:
        """Create the table and index if missing."""
        if self._ready:
            return
        self.path.parent.mkdir(parents=True, exist_ok=True)
        with closing(self._connect()) as conn:
            conn.execute(_CREATE_TABLE)
            conn.execute(_CREATE_INDEX)
            conn.commit()
        self._ready = True
        log.debug("history.table_ready", path=str(self.path))

    def insert_batch(self, records: Iterable[AnalysisRecord]) -> int:
        """Insert all records in one transaction. Returns the row count.

        Either every record is written or none is.
        """
        rows = [
            (r.ticker, r.timestamp, r.current_price, r.analysis_data)
            for r in records
        ]
        if not rows:
            return 0
        self.ensure_table()
        with closing(self._connect()) as conn:
            with conn:
                conn.executemany(_INSERT, rows)
        log.info("history.batch_inserted", count=len(rows))
        return len(rows)

    def query_by_ticker(self, ticker: str, limit: Optional[int] = None) -> list[AnalysisRecord]:
        """Records for one ticker, newest first."""
        self.ensure_table()
        sql, params = _SELECT, [ticker.upper()]
        if limit is not None:
            sql += " LIMIT ?"
            params.append(limit)
        with closing(self._connect()) as conn:
            rows = conn.execute(sql, params).fetchall()
        return [
            AnalysisRecord(
                ticker=row[0],
                timestamp=row[1],
                current_price=row[2],
                analysis_data=row[3],
            )
            for row in rows
        ]

    def ping(self) -> bool:
        """True when the database file can be opened and queried."""
        try:
            self.ensure_table()
            with closing(self._connect()) as conn:
                conn.execute("SELECT 1").fetchone()
            return True
        except (sqlite3.Error, OSError) as exc:
            log.warning("history.unavailable", path=str(self.path), error=str(exc))
            return False


# ──────────────────────────────────────────────
# Singleton
# ──────────────────────────────────────────────

_store: Optional[HistoryStore] = None


def get_history_store() -> HistoryStore:
    """Get or create the history store singleton."""
    global _store
    if _store is None:
        _store = HistoryStore()
    return _store
