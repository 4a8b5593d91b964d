"""
Options Flow — Nasdaq Option-Chain Client

Fetches the nearest-expiration option chain for a ticker from the public
Nasdaq quote API. No API key; the endpoint rejects requests without
browser-like headers.
"""

from __future__ import annotations

from typing import Any, Optional

import httpx
import structlog

from optionflow.config import Settings, get_settings
from optionflow.errors import SourceUnavailable
from optionflow.models import RawChainSnapshot

log = structlog.get_logger(__name__)


_HEADERS = {
    "User-Agent": (
        "Mozilla/5.0 (Windows NT 10.0; Win64; x64) AppleWebKit/537.36 "
        "(KHTML, like Gecko) Chrome/108.0.0.0 Safari/537.36"
    ),
    "Accept": "application/json, text/plain, */*",
    "Accept-Language": "en-US,en;q=0.9",
}


class NasdaqChainClient:
    """Chain source backed by api.nasdaq.com."""

    def __init__(
        self,
        settings: Optional[Settings] = None,
        transport: Optional[httpx.AsyncBaseTransport] = None,
    ):
        settings = settings or get_settings()
        self._base_url = settings.nasdaq_base_url.rstrip("/")
        self._row_limit = settings.chain_row_limit
        self._timeout = settings.chain_fetch_timeout
        self._transport = transport

    def chain_url(self, ticker: str) -> str:
        return f"{self._base_url}/{ticker}/option-chain"

    def _client(self) -> httpx.AsyncClient:
        return httpx.AsyncClient(
            headers=_HEADERS,
            timeout=self._timeout,
            transport=self._transport,
        )

    async def fetch_raw(self, ticker: str, params: Optional[dict[str, Any]] = None) -> dict:
        """GET the option-chain endpoint and return the JSON body unmodified.

        Raises SourceUnavailable on transport errors, non-2xx responses, and
        bodies that are not a JSON object.
        """
        url = self.chain_url(ticker)
        try:
            async with self._client() as client:
                resp = await client.get(url, params=params)
                resp.raise_for_status()
                body = resp.json()
        except httpx.HTTPStatusError as exc:
            status = exc.response.status_code
            log.warning("nasdaq.bad_status", ticker=ticker, status=status)
            raise SourceUnavailable(ticker, f"HTTP {status}", status_code=status) from exc
        except httpx.TimeoutException as exc:
            log.warning("nasdaq.timeout", ticker=ticker, timeout=self._timeout)
            raise SourceUnavailable(ticker, "request timed out") from exc
        except httpx.HTTPError as exc:
            log.warning("nasdaq.request_failed", ticker=ticker, error=str(exc))
            raise SourceUnavailable(ticker, str(exc) or type(exc).__name__) from exc
        except ValueError as exc:
            log.warning("nasdaq.invalid_json", ticker=ticker, error=str(exc))
            raise SourceUnavailable(ticker, "response was not valid JSON") from exc

        if not isinstance(body, dict):
            raise SourceUnavailable(ticker, "unexpected response shape")
        return body

    async def fetch_chain(self, ticker: str) -> RawChainSnapshot:
        """Fetch the chain for one ticker as a raw snapshot.

        A missing `data` block (Nasdaq's answer for unknown symbols) yields a
        snapshot without rows; the normalizer turns that into EmptyChain.
        """
        body = await self.fetch_raw(
            ticker, {"assetclass": "stocks", "limit": self._row_limit}
        )
        data = body.get("data") or {}
        table = data.get("table") or {}
        rows = table.get("rows")

        snapshot = RawChainSnapshot.model_validate({
            "ticker": ticker,
            "last_trade": data.get("lastTrade"),
            "rows": [r for r in rows if isinstance(r, dict)] if isinstance(rows, list) else None,
        })
        log.debug("nasdaq.chain_fetched", ticker=ticker, rows=len(snapshot.rows or []))
        return snapshot
