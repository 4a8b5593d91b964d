"""
Options Flow — Pydantic Models

All I/O schemas for the application. The chain source returns raw snapshots,
engines return the analysis models, the history store persists records and
API routes serialize all of them.
"""

from __future__ import annotations

import math
from enum import Enum
from typing import Any, Optional

from pydantic import BaseModel, ConfigDict, Field, field_serializer, field_validator


NO_TRADE = "No trade"


# ──────────────────────────────────────────────
# Enums
# ──────────────────────────────────────────────

class OptionSide(str, Enum):
    """Contract side."""
    CALL = "Call"
    PUT = "Put"


class ConsensusDirection(str, Enum):
    """Market consensus classified by the narrative engine."""
    UP = "up"
    DOWN = "down"
    MIXED = "mixed"
    CONFLICT = "conflict"


class Stance(str, Enum):
    """Branch taken by the strategic judgement; drives the trading plan."""
    FAVORABLE_LONG = "favorable_long"
    CAUTION_LONG = "caution_long"
    FAVORABLE_SHORT = "favorable_short"
    CAUTION_SHORT = "caution_short"
    STAND_ASIDE = "stand_aside"
    WAIT_FOR_CLARITY = "wait_for_clarity"


# ──────────────────────────────────────────────
# Raw Chain Source Payload
# ──────────────────────────────────────────────

class RawChainRow(BaseModel):
    """One row of the upstream option-chain table.

    Every field is loosely typed: Nasdaq sends numbers as strings ("1,204", "--")
    and group header rows carry no strike at all.
    """
    model_config = ConfigDict(populate_by_name=True, extra="ignore")

    expiry_group: Any = Field(None, alias="expirygroup")
    expiry_date: Any = Field(None, alias="expiryDate")
    strike: Any = None
    call_volume: Any = Field(None, alias="c_Volume")
    call_open_interest: Any = Field(None, alias="c_Openinterest")
    call_last_price: Any = Field(None, alias="c_Last")
    put_volume: Any = Field(None, alias="p_Volume")
    put_open_interest: Any = Field(None, alias="p_Openinterest")
    put_last_price: Any = Field(None, alias="p_Last")


class RawChainSnapshot(BaseModel):
    """Unnormalized chain as returned by the chain source."""
    ticker: str
    last_trade: Optional[str] = None  # e.g. "LAST TRADE: $182.52 (AS OF SEP 12, 2025)"
    rows: Optional[list[RawChainRow]] = None


# ──────────────────────────────────────────────
# Normalized Chain
# ──────────────────────────────────────────────

class OptionContract(BaseModel):
    """One side (call or put) at one strike for the analyzed expiration."""
    model_config = ConfigDict(frozen=True)

    side: OptionSide
    strike: float
    volume: int = 0
    open_interest: int = 0
    last_price: float = 0.0


class ChainSnapshot(BaseModel):
    """Single-expiration chain handed to the engine. Immutable once built."""
    model_config = ConfigDict(frozen=True)

    ticker: str
    current_price: float = 0.0
    expiration_label: str = "N/A"
    expiry_date: Optional[str] = None
    contracts: tuple[OptionContract, ...] = ()


# ──────────────────────────────────────────────
# Engine Output
# ──────────────────────────────────────────────

class TrackedContract(OptionContract):
    """A contract picked by one of the Layer-2 trackers, with derived fields."""
    voi_ratio: float = 0.0
    break_even_price: float = 0.0
    required_move_percent: float = 0.0

    @field_validator("voi_ratio", mode="before")
    @classmethod
    def _parse_infinite_ratio(cls, value: Any) -> Any:
        if isinstance(value, str) and value.strip().lower() in ("infinity", "+infinity", "inf", "+inf"):
            return math.inf
        return value

    @field_serializer("voi_ratio")
    def _serialize_ratio(self, value: float) -> float | str:
        # JSON has no infinity literal
        return "Infinity" if math.isinf(value) else value


class Layer2Metrics(BaseModel):
    """Aggregate volume / open-interest statistics over one chain.

    A tracker is None when no contract qualified for it.
    """
    max_volume: Optional[TrackedContract] = None
    max_open_interest: Optional[TrackedContract] = None
    max_voi: Optional[TrackedContract] = None
    put_call_volume_ratio: float = 0.0
    total_call_volume: int = 0
    total_put_volume: int = 0


class TradingPlan(BaseModel):
    """Entry / target / stop descriptions, or the no-trade placeholder."""
    entry: str = NO_TRADE
    target: str = NO_TRADE
    stop_loss: str = NO_TRADE
    target_low: Optional[float] = None
    target_high: Optional[float] = None
    stop_price: Optional[float] = None


class AnalysisNarrative(BaseModel):
    """Rule-based reading of the chain for one ticker and run."""
    consensus_direction: ConsensusDirection
    consensus_text: str
    variable_text: str
    final_text: str
    strategic_judgement: str
    squeeze_text: str
    trading_plan: TradingPlan = Field(default_factory=TradingPlan)
    stance: Stance
    trend_confirmed: bool = False
    squeeze_detected: bool = False


class AnalysisPayload(BaseModel):
    """Everything one engine run produced. Stored as JSON in the history table."""
    ticker: str
    current_price: float
    expiration_label: str = "N/A"
    expiry_date: Optional[str] = None
    options: list[OptionContract] = []
    metrics: Layer2Metrics
    analysis: AnalysisNarrative
    max_pain_price: float = 0.0


# ──────────────────────────────────────────────
# Persistence
# ──────────────────────────────────────────────

class AnalysisRecord(BaseModel):
    """Row of the analysis_history table."""
    model_config = ConfigDict(frozen=True)

    ticker: str
    timestamp: int  # epoch milliseconds
    current_price: float
    analysis_data: str  # serialized AnalysisPayload

    @classmethod
    def from_payload(cls, payload: AnalysisPayload, timestamp: int) -> "AnalysisRecord":
        return cls(
            ticker=payload.ticker,
            timestamp=timestamp,
            current_price=payload.current_price,
            analysis_data=payload.model_dump_json(),
        )

    def payload(self) -> AnalysisPayload:
        """Deserialize the stored analysis body."""
        return AnalysisPayload.model_validate_json(self.analysis_data)


class BatchReport(BaseModel):
    """Outcome of one orchestrated batch run."""
    tickers_requested: int = 0
    records: list[AnalysisRecord] = []
    failures: dict[str, str] = {}
    cancelled: list[str] = []
    timed_out: bool = False
    persisted: int = 0

    @property
    def analyzed(self) -> list[str]:
        return [r.ticker for r in self.records]

    def summary(self) -> dict:
        return {
            "tickers_requested": self.tickers_requested,
            "analyzed": self.analyzed,
            "failures": self.failures,
            "cancelled": self.cancelled,
            "timed_out": self.timed_out,
            "persisted": self.persisted,
        }
