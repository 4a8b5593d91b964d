"""
Options Flow — Narrative Engine

Rule-based reading of Layer-2 metrics and max pain. The decision cascade runs
in a fixed order over an immutable input:

  1. conflict detection      (max volume vs max OI side)
  2. consensus direction     (consensus contract + put/call ratio)
  3. variable signal         (new money through max V/OI)
  4. trend confirmation      (final conclusion)
  5. strategic judgement     (stance + max pain caution)
  6. squeeze detection
  7. trading plan            (favorable stances only)

Each step is a small pure method so every branch can be tested on its own.
"""

from __future__ import annotations

import math
from dataclasses import dataclass
from typing import Optional

from optionflow.models import (
    AnalysisNarrative,
    ConsensusDirection,
    Layer2Metrics,
    OptionSide,
    Stance,
    TrackedContract,
    TradingPlan,
)
from optionflow.utils.formatters import format_price, format_ratio, format_strike

MINIMUM_VOLUME_FOR_SIGNAL = 500
SQUEEZE_PUT_CALL_CEILING = 0.6
MAX_PAIN_DEVIATION = 0.05

SHORT_INTEREST_REMINDER = (
    " (Note: if the short-interest ratio is high, above 20%, "
    "also consider short-squeeze potential.)"
)


# ──────────────────────────────────────────────
# Contract Accessors (None = no qualifying contract)
# ──────────────────────────────────────────────

def _side(contract: Optional[TrackedContract]) -> str:
    return contract.side.value if contract else "-"


def _strike(contract: Optional[TrackedContract]) -> str:
    return format_strike(contract.strike if contract else None)


def _volume(contract: Optional[TrackedContract]) -> int:
    return contract.volume if contract else 0


def _open_interest(contract: Optional[TrackedContract]) -> int:
    return contract.open_interest if contract else 0


def _is(contract: Optional[TrackedContract], side: OptionSide) -> bool:
    return contract is not None and contract.side is side


@dataclass(frozen=True)
class NarrativeInputs:
    """Immutable input to the decision cascade."""
    ticker: str
    current_price: float
    metrics: Layer2Metrics
    max_pain_price: float

    @property
    def put_call(self) -> float:
        return self.metrics.put_call_volume_ratio


class NarrativeEngine:
    """Deterministic narrative and trading plan from flow metrics."""

    def __init__(self, signal_volume_threshold: int = MINIMUM_VOLUME_FOR_SIGNAL):
        self.signal_volume_threshold = signal_volume_threshold

    def generate(
        self,
        ticker: str,
        current_price: float,
        metrics: Layer2Metrics,
        max_pain_price: float,
    ) -> AnalysisNarrative:
        """Run the full cascade for one ticker."""
        inputs = NarrativeInputs(ticker, current_price, metrics, max_pain_price)

        conflict = self.detect_conflict(metrics)
        consensus = self.consensus_contract(metrics)
        direction = (
            ConsensusDirection.CONFLICT if conflict
            else self.classify_direction(inputs.put_call, consensus)
        )
        strong_signal = self.has_new_money(metrics.max_voi)
        confirmed = self.trend_confirmed(direction, metrics.max_voi)
        stance = self.stance(direction, self.main_force(metrics.max_voi, consensus), current_price)
        squeeze = self.squeeze_detected(inputs)

        return AnalysisNarrative(
            consensus_direction=direction,
            consensus_text=self.consensus_text(inputs, direction, consensus),
            variable_text=self.variable_text(metrics.max_voi),
            final_text=self.final_text(inputs, direction, confirmed, strong_signal),
            strategic_judgement=self.strategic_judgement(inputs, direction, stance, consensus),
            squeeze_text=self.squeeze_text(inputs, squeeze),
            trading_plan=self.trading_plan(inputs, stance, consensus),
            stance=stance,
            trend_confirmed=confirmed,
            squeeze_detected=squeeze,
        )

    # ──────────────────────────────────────────────
    # 1-2. Conflict & Consensus
    # ──────────────────────────────────────────────

    @staticmethod
    def detect_conflict(metrics: Layer2Metrics) -> bool:
        """Max-volume and max-OI contracts sit on opposite sides.

        Only sides are compared: a 1-lot max-volume put still conflicts with a
        dominant max-OI call.
        """
        mv, mo = metrics.max_volume, metrics.max_open_interest
        return mv is not None and mo is not None and mv.side is not mo.side

    @staticmethod
    def consensus_contract(metrics: Layer2Metrics) -> Optional[TrackedContract]:
        """Max-OI contract when its OI outweighs the max volume, else the max-volume contract."""
        mv, mo = metrics.max_volume, metrics.max_open_interest
        return mo if _open_interest(mo) > _volume(mv) else mv

    @staticmethod
    def classify_direction(
        put_call: float,
        consensus: Optional[TrackedContract],
    ) -> ConsensusDirection:
        if put_call < 1.0 and _is(consensus, OptionSide.CALL):
            return ConsensusDirection.UP
        if put_call > 1.0 and _is(consensus, OptionSide.PUT):
            return ConsensusDirection.DOWN
        return ConsensusDirection.MIXED

    @staticmethod
    def consensus_text(
        inputs: NarrativeInputs,
        direction: ConsensusDirection,
        consensus: Optional[TrackedContract],
    ) -> str:
        if direction is ConsensusDirection.CONFLICT:
            mv, mo = inputs.metrics.max_volume, inputs.metrics.max_open_interest
            return (
                f"Existing positioning (max OI) is concentrated at ${_strike(mo)} {_side(mo)}, "
                f"but new money (max volume) is pushing the opposite way through "
                f"${_strike(mv)} {_side(mv)}, a tug-of-war between the two."
            )
        sentiment = (
            "pessimistic (downside concern)" if inputs.put_call > 1.0
            else "optimistic (upside expectation)"
        )
        return (
            f"Market attention (max volume/OI) is focused on the ${_strike(consensus)} "
            f"{_side(consensus)} option, and the put/call ratio ({inputs.put_call:.2f}) "
            f"shows {sentiment} sentiment."
        )

    # ──────────────────────────────────────────────
    # 3-4. Variable Signal & Conclusion
    # ──────────────────────────────────────────────

    def has_new_money(self, max_voi: Optional[TrackedContract]) -> bool:
        return _volume(max_voi) > self.signal_volume_threshold

    def variable_text(self, max_voi: Optional[TrackedContract]) -> str:
        if not self.has_new_money(max_voi):
            return "No notable new-money inflow signal from V/OI."
        return (
            f"Meanwhile, strong 'new money' inflow was detected in the ${_strike(max_voi)} "
            f"{_side(max_voi)} option with a high V/OI ratio ({format_ratio(max_voi.voi_ratio)})."
        )

    @staticmethod
    def trend_confirmed(
        direction: ConsensusDirection,
        max_voi: Optional[TrackedContract],
    ) -> bool:
        return (
            (direction is ConsensusDirection.UP and _is(max_voi, OptionSide.CALL))
            or (direction is ConsensusDirection.DOWN and _is(max_voi, OptionSide.PUT))
        )

    @staticmethod
    def final_text(
        inputs: NarrativeInputs,
        direction: ConsensusDirection,
        confirmed: bool,
        strong_signal: bool,
    ) -> str:
        ticker, label = inputs.ticker, direction.value
        if direction is ConsensusDirection.CONFLICT:
            return (
                f"In conclusion, {ticker} is in extreme mixed conditions with existing and new "
                f"positioning pointing in opposite directions; short-term direction is highly uncertain."
            )
        if confirmed and strong_signal:
            return (
                f"In conclusion, a strong '{label}' consensus is forming for {ticker}. Existing "
                f"interest and new money agree, so the trend is likely to strengthen."
            )
        if strong_signal:
            return (
                f"In conclusion, {ticker} leans '{label}', but an opposing "
                f"{_side(inputs.metrics.max_voi)} bet was detected; it is a tug-of-war and the "
                f"setup is unstable."
            )
        return (
            f"In conclusion, {ticker} has an established '{label}' trend and, with no notable "
            f"variable, the current trend is likely to continue."
        )

    # ──────────────────────────────────────────────
    # 5. Strategic Judgement
    # ──────────────────────────────────────────────

    @staticmethod
    def main_force(
        max_voi: Optional[TrackedContract],
        consensus: Optional[TrackedContract],
    ) -> Optional[TrackedContract]:
        """Where the dominant capital is: max V/OI if it out-trades the consensus contract."""
        return max_voi if _volume(max_voi) > _volume(consensus) else consensus

    @staticmethod
    def stance(
        direction: ConsensusDirection,
        main_force: Optional[TrackedContract],
        current_price: float,
    ) -> Stance:
        if direction is ConsensusDirection.CONFLICT:
            return Stance.WAIT_FOR_CLARITY
        if direction is ConsensusDirection.UP:
            if main_force is not None and main_force.strike > current_price:
                return Stance.FAVORABLE_LONG
            return Stance.CAUTION_LONG
        if direction is ConsensusDirection.DOWN:
            if main_force is not None and main_force.strike < current_price:
                return Stance.FAVORABLE_SHORT
            return Stance.CAUTION_SHORT
        return Stance.STAND_ASIDE

    @staticmethod
    def max_pain_deviation(max_pain_price: float, current_price: float) -> float:
        """Relative distance of max pain from spot; unbounded when spot is unknown."""
        if current_price == 0:
            return math.inf
        return abs((max_pain_price - current_price) / current_price)

    def strategic_judgement(
        self,
        inputs: NarrativeInputs,
        direction: ConsensusDirection,
        stance: Stance,
        consensus: Optional[TrackedContract],
    ) -> str:
        metrics, price = inputs.metrics, inputs.current_price
        force = self.main_force(metrics.max_voi, consensus)

        if stance is Stance.WAIT_FOR_CLARITY:
            text = (
                f"Stand aside. Max volume ({_side(metrics.max_volume)}) and max open interest "
                f"({_side(metrics.max_open_interest)}) point in opposite directions; waiting until "
                f"the trend is clear is the safest strategy."
            )
        elif stance is Stance.FAVORABLE_LONG:
            text = (
                f"Favorable for long. Core capital is targeting the ${_strike(force)} strike, "
                f"above the current price ({format_price(price)})."
            )
        elif stance is Stance.CAUTION_LONG:
            text = (
                f"Caution needed. The key call strike (${_strike(force)}) is already below the "
                f"current price, so short-term profit-taking may follow."
            )
        elif stance is Stance.FAVORABLE_SHORT:
            text = (
                f"Favorable for short. Core capital is targeting the ${_strike(force)} strike, "
                f"below the current price ({format_price(price)})."
            )
        elif stance is Stance.CAUTION_SHORT:
            text = (
                f"Caution needed. The key put strike (${_strike(force)}) is already above the "
                f"current price, so a technical rebound is possible."
            )
        else:
            text = "Favor standing aside (mixed signals)."

        max_pain = inputs.max_pain_price
        if max_pain > 0 and self.max_pain_deviation(max_pain, price) > MAX_PAIN_DEVIATION:
            if direction is ConsensusDirection.UP and max_pain < price:
                text += (
                    f" (Caution: max pain (${format_strike(max_pain)}) is below the current price, "
                    f"so downward pressure may build near expiration.)"
                )
            elif direction is ConsensusDirection.DOWN and max_pain > price:
                text += (
                    f" (Caution: max pain (${format_strike(max_pain)}) is above the current price, "
                    f"so rebound pressure may build near expiration.)"
                )
        return text

    # ──────────────────────────────────────────────
    # 6. Squeeze
    # ──────────────────────────────────────────────

    def squeeze_detected(self, inputs: NarrativeInputs) -> bool:
        """Low put/call with heavy new money in an out-of-the-money call."""
        max_voi = inputs.metrics.max_voi
        return (
            inputs.put_call < SQUEEZE_PUT_CALL_CEILING
            and _is(max_voi, OptionSide.CALL)
            and max_voi.strike > inputs.current_price
            and self.has_new_money(max_voi)
        )

    @staticmethod
    def squeeze_text(inputs: NarrativeInputs, detected: bool) -> str:
        # Short interest is not part of the chain; the reminder is always appended.
        if detected:
            text = (
                f"Gamma squeeze potential: strong new bets on out-of-the-money calls alongside a "
                f"low put/call ratio. A move above the ${_strike(inputs.metrics.max_voi)} strike "
                f"could trigger a sharp rally."
            )
        else:
            text = "No notable squeeze signs detected."
        return text + SHORT_INTEREST_REMINDER

    # ──────────────────────────────────────────────
    # 7. Trading Plan
    # ──────────────────────────────────────────────

    @staticmethod
    def trading_plan(
        inputs: NarrativeInputs,
        stance: Stance,
        consensus: Optional[TrackedContract],
    ) -> TradingPlan:
        """Entry / target / stop for favorable stances; 'No trade' otherwise."""
        if consensus is None or stance not in (Stance.FAVORABLE_LONG, Stance.FAVORABLE_SHORT):
            return TradingPlan()

        price, max_pain, strike = inputs.current_price, inputs.max_pain_price, consensus.strike
        if stance is Stance.FAVORABLE_LONG:
            low, high = strike * 0.99, strike
            stop = min(price * 0.97, max_pain * 0.99) if max_pain > 0 else price * 0.97
            return TradingPlan(
                entry=f"Near the current price ({format_price(price)}) or on a breakout above key resistance",
                target=f"{format_price(low)} ~ {format_price(high)} (key resistance)",
                stop_loss=f"{format_price(stop)} (key support or near max pain)",
                target_low=round(low, 2),
                target_high=round(high, 2),
                stop_price=round(stop, 2),
            )

        low, high = strike, strike * 1.01
        stop = max(price * 1.03, max_pain * 1.01) if max_pain > 0 else price * 1.03
        return TradingPlan(
            entry=f"Near the current price ({format_price(price)}) or on a breakdown below key support",
            target=f"{format_price(low)} ~ {format_price(high)} (key support)",
            stop_loss=f"{format_price(stop)} (key resistance or near max pain)",
            target_low=round(low, 2),
            target_high=round(high, 2),
            stop_price=round(stop, 2),
        )
