"""
Chain Normalizer Tests

Raw Nasdaq-shaped rows → single-expiration ChainSnapshot.
"""

from __future__ import annotations

import pytest

from optionflow.engines.chain_normalizer import normalize_chain, parse_current_price
from optionflow.errors import EmptyChain
from optionflow.models import OptionSide, RawChainSnapshot


def _row(strike, expiry="Sep 19", c_vol="10", c_oi="20", c_last="1.50",
         p_vol="5", p_oi="15", p_last="0.75"):
    return {
        "expirygroup": "",
        "expiryDate": expiry,
        "strike": strike,
        "c_Volume": c_vol,
        "c_Openinterest": c_oi,
        "c_Last": c_last,
        "p_Volume": p_vol,
        "p_Openinterest": p_oi,
        "p_Last": p_last,
    }


def _header(label="September 19, 2025"):
    return {"expirygroup": label, "strike": None}


def _raw(rows, last_trade="LAST TRADE: $101.25 (AS OF SEP 12, 2025)", ticker="TEST"):
    return RawChainSnapshot.model_validate(
        {"ticker": ticker, "last_trade": last_trade, "rows": rows}
    )


# ──────────────────────────────────────────────
# Spot Price
# ──────────────────────────────────────────────

class TestParseCurrentPrice:

    def test_extracts_dollar_amount(self):
        assert parse_current_price("LAST TRADE: $182.52 (AS OF SEP 12, 2025)") == 182.52

    def test_integer_amount(self):
        assert parse_current_price("LAST TRADE: $40") == 40.0

    def test_missing_amount_is_zero(self):
        assert parse_current_price("LAST TRADE: N/A") == 0.0

    def test_none_is_zero(self):
        assert parse_current_price(None) == 0.0


# ──────────────────────────────────────────────
# Empty Chains
# ──────────────────────────────────────────────

class TestEmptyChain:

    def test_no_rows(self):
        with pytest.raises(EmptyChain) as exc_info:
            normalize_chain(_raw(None))
        assert exc_info.value.row_count == 0
        assert exc_info.value.ticker == "TEST"

    def test_single_row(self):
        with pytest.raises(EmptyChain) as exc_info:
            normalize_chain(_raw([_row("100")]))
        assert exc_info.value.row_count == 1

    def test_two_header_rows_yield_no_contracts(self):
        snapshot = normalize_chain(_raw([_header(), _header("October 17, 2025")]))
        assert snapshot.contracts == ()
        assert snapshot.expiration_label == "September 19, 2025"


# ──────────────────────────────────────────────
# Contracts
# ──────────────────────────────────────────────

class TestNormalizeChain:

    def test_call_then_put_per_strike(self):
        snapshot = normalize_chain(_raw([_header(), _row("100"), _row("105")]))
        sides = [(c.strike, c.side) for c in snapshot.contracts]
        assert sides == [
            (100.0, OptionSide.CALL),
            (100.0, OptionSide.PUT),
            (105.0, OptionSide.CALL),
            (105.0, OptionSide.PUT),
        ]

    def test_snapshot_fields(self):
        snapshot = normalize_chain(_raw([_header(), _row("100")]))
        assert snapshot.ticker == "TEST"
        assert snapshot.current_price == 101.25
        assert snapshot.expiration_label == "September 19, 2025"
        assert snapshot.expiry_date == "Sep 19"

    def test_field_values(self):
        snapshot = normalize_chain(_raw([_header(), _row("100")]))
        call, put = snapshot.contracts
        assert (call.volume, call.open_interest, call.last_price) == (10, 20, 1.5)
        assert (put.volume, put.open_interest, put.last_price) == (5, 15, 0.75)

    def test_thousands_separators(self):
        snapshot = normalize_chain(_raw([_header(), _row("1,000.00", c_vol="1,204", c_oi="12,000")]))
        call = snapshot.contracts[0]
        assert call.strike == 1000.0
        assert call.volume == 1204
        assert call.open_interest == 12000

    def test_malformed_fields_default_to_zero(self):
        snapshot = normalize_chain(_raw([
            _header(),
            _row("100", c_vol="--", c_oi="", c_last="abc", p_vol=None, p_oi="n/a", p_last="--"),
        ]))
        call, put = snapshot.contracts
        assert (call.volume, call.open_interest, call.last_price) == (0, 0, 0.0)
        assert (put.volume, put.open_interest, put.last_price) == (0, 0, 0.0)

    def test_negative_values_clamped(self):
        snapshot = normalize_chain(_raw([_header(), _row("100", c_vol="-5", p_last="-1.0")]))
        call, put = snapshot.contracts
        assert call.volume == 0
        assert put.last_price == 0.0

    def test_invalid_strikes_dropped(self):
        snapshot = normalize_chain(_raw([_header(), _row("0"), _row("abc"), _row("95")]))
        assert {c.strike for c in snapshot.contracts} == {95.0}

    def test_later_expirations_dropped(self):
        rows = [
            _header(),
            _row("100"),
            _row("105"),
            _header("September 26, 2025"),
            _row("100", expiry="Sep 26", c_vol="9999"),
        ]
        snapshot = normalize_chain(_raw(rows))
        assert len(snapshot.contracts) == 4
        assert all(c.volume != 9999 for c in snapshot.contracts)

    def test_missing_label_defaults(self):
        snapshot = normalize_chain(_raw([_row("100"), _row("105")]))
        assert snapshot.expiration_label == "N/A"

    def test_numeric_json_values(self):
        snapshot = normalize_chain(_raw([_header(), _row(100, c_vol=42, c_oi=7, c_last=2)]))
        call = snapshot.contracts[0]
        assert (call.strike, call.volume, call.open_interest, call.last_price) == (100.0, 42, 7, 2.0)
