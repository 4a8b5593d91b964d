# Shared utilities: formatters, validators
from optionflow.utils.formatters import (
    epoch_millis,
    format_price,
    format_ratio,
    format_strike,
    format_ticker,
)
from optionflow.utils.validators import validate_limit, validate_ticker, validate_ticker_list

__all__ = [
    "epoch_millis",
    "format_price",
    "format_ratio",
    "format_strike",
    "format_ticker",
    "validate_limit",
    "validate_ticker",
    "validate_ticker_list",
]
