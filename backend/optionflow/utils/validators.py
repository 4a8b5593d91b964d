"""
Options Flow — Input Validators

Ticker and pagination validation for the registry and query routes.
Raise ValueError on invalid input so callers can map to 400 responses.
"""

from __future__ import annotations

import re
from typing import Iterable, Optional

from optionflow.utils.formatters import format_ticker

# Standard US ticker symbols: 1-5 letters, optional .class suffix
_TICKER_RE = re.compile(r"^[A-Z]{1,5}(\.[A-Z]{1,2})?$")


def validate_ticker(raw: str) -> str:
    """Clean and validate a stock ticker symbol.

    Returns the normalized ticker or raises ValueError.

    >>> validate_ticker('aapl')
    'AAPL'
    >>> validate_ticker('BRK.B')
    'BRK.B'
    """
    if not isinstance(raw, str):
        raise ValueError(f"Ticker must be a string, got {type(raw).__name__}")
    ticker = format_ticker(raw)
    if not ticker:
        raise ValueError("Ticker cannot be empty")
    if not _TICKER_RE.match(ticker):
        raise ValueError(
            f"Invalid ticker '{ticker}'. Expected 1-5 letters, "
            f"optionally followed by a class suffix (e.g. BRK.B)"
        )
    return ticker


def validate_ticker_list(raw: Iterable[str]) -> list[str]:
    """Validate every symbol and drop duplicates, keeping first-seen order.

    >>> validate_ticker_list(['tsla', 'AAPL', 'TSLA'])
    ['TSLA', 'AAPL']
    """
    seen: set[str] = set()
    tickers: list[str] = []
    for item in raw:
        ticker = validate_ticker(item)
        if ticker not in seen:
            seen.add(ticker)
            tickers.append(ticker)
    return tickers


def validate_limit(limit: Optional[int], max_limit: int = 1000) -> Optional[int]:
    """Clamp an optional row limit; None means unlimited.

    >>> validate_limit(5000)
    1000
    >>> validate_limit(None) is None
    True
    """
    if limit is None:
        return None
    return min(max(1, limit), max_limit)
