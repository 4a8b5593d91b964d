"""
Options Flow — Analysis Errors

Per-ticker failures raised by the chain source and the normalizer.
Both abort analysis for one ticker only; the batch orchestrator recovers them.
"""

from __future__ import annotations


class AnalysisError(Exception):
    """Base class for recoverable per-ticker analysis failures."""

    def __init__(self, ticker: str, message: str):
        self.ticker = ticker
        super().__init__(f"[{ticker}] {message}")


class SourceUnavailable(AnalysisError):
    """The chain fetch failed, timed out, or returned a non-success status."""

    def __init__(self, ticker: str, cause: str, status_code: int | None = None):
        self.cause = cause
        self.status_code = status_code
        super().__init__(ticker, f"option chain unavailable: {cause}")


class EmptyChain(AnalysisError):
    """The chain payload had no rows, or fewer than two."""

    def __init__(self, ticker: str, row_count: int = 0):
        self.row_count = row_count
        super().__init__(ticker, f"option chain has {row_count} rows, nothing to analyze")
