"""
Options Flow — Ticker Registry

Externally managed lists of tickers, each stored as one JSON array in Redis.
The master list drives the scheduled batch; named lists are saved and
loaded for clients. Falls back to process memory when Redis is down.
"""

from __future__ import annotations

from typing import Iterable, Optional

import structlog

from optionflow.cache import RedisCache, get_cache
from optionflow.config import get_settings
from optionflow.utils.validators import validate_ticker_list

log = structlog.get_logger(__name__)

NAMED_LIST_PREFIX = "TICKER_LIST"

# key → tickers, used while Redis is unavailable
_fallback: dict[str, list[str]] = {}


class TickerRegistry:
    """Read and replace ticker lists."""

    def __init__(self, key: Optional[str] = None, cache: Optional[RedisCache] = None):
        self.key = key or get_settings().ticker_registry_key
        self._cache = cache if cache is not None else get_cache()

    def _key(self, list_id: Optional[str]) -> str:
        return self.key if list_id is None else f"{NAMED_LIST_PREFIX}:{list_id}"

    def list_tickers(self, list_id: Optional[str] = None) -> list[str]:
        """Stored tickers in stored order; empty when nothing was saved."""
        key = self._key(list_id)
        if not self._cache.available:
            return list(_fallback.get(key, []))

        value = self._cache.get(key)
        if value is None:
            return list(_fallback.get(key, []))
        if not isinstance(value, list):
            log.warning("registry.invalid_value", key=key, type=type(value).__name__)
            return []
        return [str(t) for t in value if isinstance(t, str) and t.strip()]

    def replace(self, tickers: Iterable[str], list_id: Optional[str] = None) -> list[str]:
        """Validate, de-duplicate, and store a full list. Returns what was stored.

        Raises ValueError on an invalid symbol; nothing is written in that case.
        """
        key = self._key(list_id)
        cleaned = validate_ticker_list(tickers)
        if self._cache.set(key, cleaned, ttl=None):
            _fallback.pop(key, None)
        else:
            log.warning("registry.memory_fallback", key=key)
            _fallback[key] = cleaned
        log.info("registry.replaced", key=key, count=len(cleaned))
        return cleaned


def get_ticker_registry() -> TickerRegistry:
    """FastAPI dependency for the master registry."""
    return TickerRegistry()
