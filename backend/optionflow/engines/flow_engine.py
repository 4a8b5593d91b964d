"""
Options Flow — Flow Engine

Pure domain logic for single-expiration options flow analysis: Layer-2
volume / open-interest trackers, put/call volume ratio, and max pain.
`analyze()` chains these with the narrative engine into one payload.
"""

from __future__ import annotations

import math
from typing import Iterable, Optional

from optionflow.engines.narrative_engine import NarrativeEngine
from optionflow.models import (
    AnalysisPayload,
    ChainSnapshot,
    Layer2Metrics,
    OptionContract,
    OptionSide,
    TrackedContract,
)

MINIMUM_VOLUME_FOR_VOI = 100


def voi_ratio(contract: OptionContract) -> float:
    """Volume / open interest. Unbounded when there is volume but no OI."""
    if contract.open_interest > 0:
        return contract.volume / contract.open_interest
    return math.inf if contract.volume > 0 else 0.0


def _track(contract: OptionContract, ratio: float, current_price: float) -> TrackedContract:
    """Attach V/OI, break-even, and required move to a tracked contract."""
    if contract.side is OptionSide.CALL:
        break_even = contract.strike + contract.last_price
    else:
        break_even = contract.strike - contract.last_price
    required_move = (break_even - current_price) / current_price * 100 if current_price > 0 else 0.0
    return TrackedContract(
        **contract.model_dump(),
        voi_ratio=ratio,
        break_even_price=break_even,
        required_move_percent=required_move,
    )


class OptionsFlowEngine:
    """Options flow analysis over one normalized chain."""

    def __init__(
        self,
        voi_min_volume: int = MINIMUM_VOLUME_FOR_VOI,
        narrative: Optional[NarrativeEngine] = None,
    ):
        self.voi_min_volume = voi_min_volume
        self.narrative = narrative or NarrativeEngine()

    # ──────────────────────────────────────────────
    # Layer-2 Metrics
    # ──────────────────────────────────────────────

    def compute_layer2_metrics(
        self,
        contracts: Iterable[OptionContract],
        current_price: float,
    ) -> Layer2Metrics:
        """Single pass over the chain tracking the max-volume, max-OI and max-V/OI contracts.

        Ties keep the first contract encountered. Only contracts with at least
        `voi_min_volume` volume compete for max V/OI, so a 1-lot on a dead
        strike cannot win with an infinite ratio.
        """
        total_call_volume = 0
        total_put_volume = 0
        # (contract, ratio) pairs; trackers start below any real value
        max_volume: tuple[OptionContract, float] | None = None
        max_oi: tuple[OptionContract, float] | None = None
        max_voi: tuple[OptionContract, float] | None = None

        for contract in contracts:
            ratio = voi_ratio(contract)
            if contract.side is OptionSide.CALL:
                total_call_volume += contract.volume
            else:
                total_put_volume += contract.volume

            if max_volume is None or contract.volume > max_volume[0].volume:
                max_volume = (contract, ratio)
            if max_oi is None or contract.open_interest > max_oi[0].open_interest:
                max_oi = (contract, ratio)
            if contract.volume >= self.voi_min_volume and (max_voi is None or ratio > max_voi[1]):
                max_voi = (contract, ratio)

        put_call = total_put_volume / total_call_volume if total_call_volume > 0 else 0.0

        def finish(tracked: tuple[OptionContract, float] | None) -> TrackedContract | None:
            return _track(tracked[0], tracked[1], current_price) if tracked else None

        return Layer2Metrics(
            max_volume=finish(max_volume),
            max_open_interest=finish(max_oi),
            max_voi=finish(max_voi),
            put_call_volume_ratio=put_call,
            total_call_volume=total_call_volume,
            total_put_volume=total_put_volume,
        )

    # ──────────────────────────────────────────────
    # Max Pain
    # ──────────────────────────────────────────────

    @staticmethod
    def writer_loss(contracts: Iterable[OptionContract], settle: float) -> float:
        """Aggregate payout owed by option writers if the underlying settles at `settle`."""
        total = 0.0
        for c in contracts:
            if c.open_interest <= 0:
                continue
            if c.side is OptionSide.CALL and c.strike < settle:
                total += (settle - c.strike) * c.open_interest
            elif c.side is OptionSide.PUT and c.strike > settle:
                total += (c.strike - settle) * c.open_interest
        return total

    @classmethod
    def compute_max_pain(cls, contracts: Iterable[OptionContract]) -> float:
        """Strike that minimizes writer payout; 0 for an empty chain.

        Candidates are scanned ascending and only a strictly lower loss
        replaces the current best, so ties resolve to the lowest strike.
        """
        contracts = list(contracts)
        if not contracts:
            return 0.0

        min_loss = math.inf
        max_pain_strike = 0.0
        for strike in sorted({c.strike for c in contracts}):
            loss = cls.writer_loss(contracts, strike)
            if loss < min_loss:
                min_loss = loss
                max_pain_strike = strike
        return max_pain_strike

    # ──────────────────────────────────────────────
    # Full Analysis
    # ──────────────────────────────────────────────

    def analyze(self, snapshot: ChainSnapshot) -> AnalysisPayload:
        """Metrics, max pain and narrative for one snapshot. Deterministic."""
        metrics = self.compute_layer2_metrics(snapshot.contracts, snapshot.current_price)
        max_pain = self.compute_max_pain(snapshot.contracts)
        narrative = self.narrative.generate(
            snapshot.ticker, snapshot.current_price, metrics, max_pain
        )
        return AnalysisPayload(
            ticker=snapshot.ticker,
            current_price=snapshot.current_price,
            expiration_label=snapshot.expiration_label,
            expiry_date=snapshot.expiry_date,
            options=list(snapshot.contracts),
            metrics=metrics,
            analysis=narrative,
            max_pain_price=max_pain,
        )
