"""
Options Flow — Chain Normalizer

Turns a raw chain source snapshot into a single-expiration ChainSnapshot:
spot price from the trade summary, the expiration label, and one call and one
put contract per strike row. Field coercion never fails; unparseable values
become 0.
"""

from __future__ import annotations

import math
import re
from typing import Any

import structlog

from optionflow.errors import EmptyChain
from optionflow.models import (
    ChainSnapshot,
    OptionContract,
    OptionSide,
    RawChainRow,
    RawChainSnapshot,
)

log = structlog.get_logger(__name__)

_PRICE_RE = re.compile(r"\$(\d+(\.\d+)?)")

MIN_CHAIN_ROWS = 2


# ──────────────────────────────────────────────
# Field Coercion
# ──────────────────────────────────────────────

def _parse_number(value: Any) -> float | None:
    """Best-effort numeric parse. Returns None when the value is not a number."""
    if value is None or isinstance(value, bool):
        return None
    if isinstance(value, (int, float)):
        number = float(value)
    elif isinstance(value, str):
        text = value.strip().replace(",", "").lstrip("$")
        if not text:
            return None
        try:
            number = float(text)
        except ValueError:
            return None
    else:
        return None
    return number if math.isfinite(number) else None


def _is_blank(value: Any) -> bool:
    return value is None or (isinstance(value, str) and not value.strip())


class _Coercer:
    """Counts fields that were present but unparseable while defaulting them."""

    def __init__(self):
        self.malformed = 0

    def count(self, value: Any) -> int:
        number = self._number(value)
        return max(0, int(number))

    def price(self, value: Any) -> float:
        return max(0.0, self._number(value))

    def _number(self, value: Any) -> float:
        number = _parse_number(value)
        if number is None:
            if not _is_blank(value):
                self.malformed += 1
            return 0.0
        return number


# ──────────────────────────────────────────────
# Snapshot Fields
# ──────────────────────────────────────────────

def parse_current_price(last_trade: str | None) -> float:
    """Extract the spot price from a trade summary like 'LAST TRADE: $182.52 (...)'.

    Returns 0 when no dollar amount is present.
    """
    match = _PRICE_RE.search(last_trade or "")
    return float(match.group(1)) if match else 0.0


def _has_strike(row: RawChainRow) -> bool:
    return not _is_blank(row.strike)


def _expiration_label(rows: list[RawChainRow]) -> str:
    for row in rows:
        if not _is_blank(row.expiry_group):
            return str(row.expiry_group)
    return "N/A"


def _target_expiry(rows: list[RawChainRow]) -> str | None:
    """Expiry date of the first strike row, i.e. the nearest expiration."""
    for row in rows:
        if _has_strike(row):
            return None if _is_blank(row.expiry_date) else str(row.expiry_date)
    return None


# ──────────────────────────────────────────────
# Public API
# ──────────────────────────────────────────────

def normalize_chain(raw: RawChainSnapshot) -> ChainSnapshot:
    """Build the engine input for one ticker.

    Raises EmptyChain when the payload has no rows or fewer than two.
    Rows that belong to later expirations are dropped, so the contracts
    always describe a single expiration even when upstream bundles them all.
    """
    rows = raw.rows or []
    if len(rows) < MIN_CHAIN_ROWS:
        raise EmptyChain(raw.ticker, len(rows))

    expiration_label = _expiration_label(rows)
    target_expiry = _target_expiry(rows)
    if target_expiry is not None:
        rows = [
            row for row in rows
            if not _has_strike(row) or str(row.expiry_date) == target_expiry
        ]

    coerce = _Coercer()
    contracts: list[OptionContract] = []
    for row in rows:
        strike = _parse_number(row.strike)
        if strike is None or strike <= 0:
            continue
        contracts.append(OptionContract(
            side=OptionSide.CALL,
            strike=strike,
            volume=coerce.count(row.call_volume),
            open_interest=coerce.count(row.call_open_interest),
            last_price=coerce.price(row.call_last_price),
        ))
        contracts.append(OptionContract(
            side=OptionSide.PUT,
            strike=strike,
            volume=coerce.count(row.put_volume),
            open_interest=coerce.count(row.put_open_interest),
            last_price=coerce.price(row.put_last_price),
        ))

    if coerce.malformed:
        log.debug("chain.malformed_fields", ticker=raw.ticker, count=coerce.malformed)

    snapshot = ChainSnapshot(
        ticker=raw.ticker,
        current_price=parse_current_price(raw.last_trade),
        expiration_label=expiration_label,
        expiry_date=target_expiry,
        contracts=tuple(contracts),
    )
    log.debug(
        "chain.normalized",
        ticker=raw.ticker,
        contracts=len(snapshot.contracts),
        expiry=target_expiry,
        price=snapshot.current_price,
    )
    return snapshot
