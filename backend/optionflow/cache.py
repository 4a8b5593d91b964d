"""
Options Flow — Redis Cache Layer

Thin JSON-over-Redis wrapper shared by the ticker registry and the quote
pass-through. Falls back to misses when Redis is unavailable (no crashes).
"""

from __future__ import annotations

import json
from typing import Any, Optional

import redis
import structlog

from optionflow.config import get_settings

log = structlog.get_logger(__name__)


class RedisCache:
    """Redis wrapper with JSON serialization and graceful degradation."""

    def __init__(self, url: Optional[str] = None):
        self._url = url or get_settings().redis_url
        self._client = None
        self._available = False
        self._connect()

    def _connect(self):
        try:
            self._client = redis.from_url(
                self._url,
                decode_responses=True,
                socket_timeout=2,
                socket_connect_timeout=2,
            )
            self._client.ping()
            self._available = True
            log.info("cache.connected", url=self._url)
        except (redis.RedisError, ValueError) as exc:
            log.warning("cache.unavailable", error=str(exc))
            self._available = False

    @property
    def available(self) -> bool:
        return self._available

    def get(self, key: str) -> Optional[Any]:
        """Get a cached value. Returns None on miss or error."""
        if not self._available:
            return None
        try:
            raw = self._client.get(key)
            if raw is None:
                return None
            return json.loads(raw)
        except (redis.RedisError, ValueError) as exc:
            log.warning("cache.get_failed", key=key, error=str(exc))
            return None

    def set(self, key: str, value: Any, ttl: Optional[int] = None) -> bool:
        """Store a value; no expiry when `ttl` is None."""
        if not self._available:
            return False
        try:
            serialized = json.dumps(value, default=str)
            if ttl is None:
                self._client.set(key, serialized)
            else:
                self._client.setex(key, ttl, serialized)
            return True
        except (redis.RedisError, TypeError, ValueError) as exc:
            log.warning("cache.set_failed", key=key, error=str(exc))
            return False

    def ping(self) -> bool:
        """Live connectivity check for the health endpoint."""
        if not self._available:
            return False
        try:
            return bool(self._client.ping())
        except redis.RedisError:
            return False


# Quote pass-through key
def quote_cache_key(ticker: str, params: dict[str, Any]) -> str:
    query = "&".join(f"{k}={v}" for k, v in sorted(params.items()))
    return f"quote:{ticker}:{query}"


# ──────────────────────────────────────────────
# Singleton
# ──────────────────────────────────────────────

_cache: Optional[RedisCache] = None


def get_cache() -> RedisCache:
    """Get or create the Redis cache singleton."""
    global _cache
    if _cache is None:
        _cache = RedisCache()
    return _cache
