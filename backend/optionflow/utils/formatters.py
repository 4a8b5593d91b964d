"""
Options Flow — Shared Formatters

Price, strike, and ratio rendering used by the narrative engine and routes.
"""

from __future__ import annotations

import math
from datetime import datetime, timezone
from decimal import ROUND_HALF_UP, Decimal


def format_price(value: float | int, decimals: int = 2) -> str:
    """Format a price with a dollar sign and fixed decimals, rounding halves up.

    >>> format_price(182.5)
    '$182.50'
    >>> format_price(1.125)
    '$1.13'
    >>> format_price(0)
    '$0.00'
    """
    quantum = Decimal(1).scaleb(-decimals)
    return f"${Decimal(str(value)).quantize(quantum, rounding=ROUND_HALF_UP)}"


def format_strike(value: float | int | None) -> str:
    """Render a strike as a plain number: integral strikes lose the '.0'.

    >>> format_strike(100.0)
    '100'
    >>> format_strike(102.5)
    '102.5'
    >>> format_strike(None)
    'N/A'
    """
    if value is None or (isinstance(value, float) and not math.isfinite(value)):
        return "N/A"
    if value == int(value):
        return str(int(value))
    return repr(float(value))


def format_ratio(value: float, decimals: int = 2) -> str:
    """Format a ratio, rendering an unbounded one as the infinity sign.

    >>> format_ratio(1.2345)
    '1.23'
    >>> format_ratio(float("inf"))
    '∞'
    """
    if math.isinf(value):
        return "∞"
    return f"{value:.{decimals}f}"


def format_ticker(raw: str) -> str:
    """Normalize a ticker symbol to uppercase, stripped of whitespace.

    >>> format_ticker('  aapl ')
    'AAPL'
    """
    return raw.strip().upper()


def epoch_millis(dt: datetime | None = None) -> int:
    """Milliseconds since the Unix epoch, for history timestamps."""
    dt = dt or datetime.now(timezone.utc)
    if dt.tzinfo is None:
        dt = dt.replace(tzinfo=timezone.utc)
    return int(dt.timestamp() * 1000)
