"""
Nasdaq Client Tests

httpx.MockTransport stands in for api.nasdaq.com.
"""

from __future__ import annotations

import asyncio

import httpx
import pytest

from optionflow.config import Settings
from optionflow.data.nasdaq_client import NasdaqChainClient
from optionflow.errors import SourceUnavailable

SETTINGS = Settings(nasdaq_base_url="https://nasdaq.test/api/quote", chain_row_limit=500)

BODY = {
    "data": {
        "lastTrade": "LAST TRADE: $182.52 (AS OF SEP 12, 2025)",
        "table": {
            "rows": [
                {"expirygroup": "September 19, 2025", "strike": None},
                {
                    "expiryDate": "Sep 19", "strike": "180.00",
                    "c_Volume": "1,204", "c_Openinterest": "3,400", "c_Last": "4.10",
                    "p_Volume": "900", "p_Openinterest": "2,100", "p_Last": "1.95",
                },
                None,
            ]
        },
    }
}


def _client(handler):
    return NasdaqChainClient(SETTINGS, transport=httpx.MockTransport(handler))


class TestFetchChain:

    def test_parses_rows_and_last_trade(self):
        seen = {}

        def handler(request):
            seen["url"] = request.url
            seen["agent"] = request.headers.get("user-agent")
            return httpx.Response(200, json=BODY)

        raw = asyncio.run(_client(handler).fetch_chain("AAPL"))
        assert raw.ticker == "AAPL"
        assert raw.last_trade.startswith("LAST TRADE: $182.52")
        assert len(raw.rows) == 2
        assert raw.rows[1].call_volume == "1,204"
        assert seen["url"].path == "/api/quote/AAPL/option-chain"
        assert seen["url"].params["assetclass"] == "stocks"
        assert seen["url"].params["limit"] == "500"
        assert "Mozilla" in seen["agent"]

    def test_missing_data_block(self):
        raw = asyncio.run(_client(lambda r: httpx.Response(200, json={"data": None})).fetch_chain("ZZZZ"))
        assert raw.rows is None
        assert raw.last_trade is None

    def test_bad_status(self):
        with pytest.raises(SourceUnavailable) as exc_info:
            asyncio.run(_client(lambda r: httpx.Response(503)).fetch_chain("AAPL"))
        assert exc_info.value.status_code == 503
        assert exc_info.value.ticker == "AAPL"

    def test_transport_error(self):
        def handler(request):
            raise httpx.ConnectError("connection refused", request=request)

        with pytest.raises(SourceUnavailable):
            asyncio.run(_client(handler).fetch_chain("AAPL"))

    def test_timeout(self):
        def handler(request):
            raise httpx.ReadTimeout("slow", request=request)

        with pytest.raises(SourceUnavailable) as exc_info:
            asyncio.run(_client(handler).fetch_chain("AAPL"))
        assert "timed out" in str(exc_info.value)

    def test_invalid_json(self):
        with pytest.raises(SourceUnavailable):
            asyncio.run(_client(lambda r: httpx.Response(200, text="<html>")).fetch_chain("AAPL"))


class TestFetchRaw:

    def test_forwards_params_and_returns_body(self):
        def handler(request):
            assert request.url.params["fromdate"] == "2025-09-19"
            return httpx.Response(200, json={"data": {"echo": True}})

        body = asyncio.run(_client(handler).fetch_raw("TSLA", {"fromdate": "2025-09-19"}))
        assert body == {"data": {"echo": True}}

    def test_non_object_body(self):
        with pytest.raises(SourceUnavailable):
            asyncio.run(_client(lambda r: httpx.Response(200, json=[1, 2])).fetch_raw("TSLA"))
