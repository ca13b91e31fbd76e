"""
tradesim Price Book

Last-known price per trading pair plus a bounded observation history:
  - Geometric mean TWAP:  exp( sum(ln(P_i) * dt_i) / sum(dt_i) )
  - Accumulator based, so any window is an O(log n) lookup
  - Optional outlier rejection (single-tick change above a threshold)
  - Staleness check per pair

Ticks write to it; valuation and manual closes read from it.
"""

from __future__ import annotations

import logging
import math
from dataclasses import dataclass
from decimal import Decimal, ROUND_HALF_UP
from typing import Any, Dict, List, Optional

from ..exceptions import InvalidAmount, InvalidState
from .assets import STABLE_ASSETS, ONE, ZERO, Asset, TradingPair, pair_for_asset, positive

logger = logging.getLogger(__name__)

MAX_OBSERVATIONS = 10800         # ~24 h at 8-second ticks
STALENESS_THRESHOLD = 300.0      # seconds


@dataclass
class Observation:
    """A single price observation recorded at a point in time."""
    timestamp: float
    price: Decimal
    log_price_cumulative: Decimal = ZERO  # sum(ln(price) * dt)


class PriceBook:
    """Price observations for every supported pair."""

    def __init__(
        self,
        max_observations: int = MAX_OBSERVATIONS,
        max_change: Optional[Decimal] = None,
    ) -> None:
        self.max_observations = max_observations
        self.max_change = max_change
        self._observations: Dict[TradingPair, List[Observation]] = {}

    # -- Reads --------------------------------------------------------------

    def latest(self, pair: Any) -> Optional[Decimal]:
        history = self._observations.get(TradingPair.parse(pair))
        if not history:
            return None
        return history[-1].price

    def last_update(self, pair: Any) -> Optional[float]:
        history = self._observations.get(TradingPair.parse(pair))
        if not history:
            return None
        return history[-1].timestamp

    def price_of(self, asset: Asset) -> Optional[Decimal]:
        """Quote-denominated price of *asset*; stables are always 1."""
        asset = Asset.parse(asset)
        if asset in STABLE_ASSETS:
            return ONE
        pair = pair_for_asset(asset)
        if pair is None:
            return None
        return self.latest(pair)

    def prices(self) -> Dict[str, Decimal]:
        return {pair.symbol: history[-1].price for pair, history in self._observations.items() if history}

    def is_stale(self, pair: Any, now: float, threshold: float = STALENESS_THRESHOLD) -> bool:
        updated = self.last_update(pair)
        if updated is None:
            return True
        return now - updated > threshold

    def observation_count(self, pair: Any) -> int:
        return len(self._observations.get(TradingPair.parse(pair), []))

    # -- Recording ----------------------------------------------------------

    def record(self, pair: Any, price: Any, timestamp: float) -> Observation:
        """
        Record a price observation for *pair*.

        Observations at the same timestamp overwrite the previous one.

        Raises:
            InvalidAmount: non-positive price, or an outlier when
                ``max_change`` is set
            InvalidState: timestamp earlier than the last observation
        """
        pair = TradingPair.parse(pair)
        price = positive(price, "price")
        history = self._observations.setdefault(pair, [])
        log_price = Decimal(str(math.log(float(price))))

        if history:
            prev = history[-1]
            if self.max_change is not None:
                change = abs(price - prev.price) / prev.price
                if change > self.max_change:
                    raise InvalidAmount(
                        f"Outlier price rejected for {pair}: {change:.2%} change exceeds "
                        f"max {self.max_change:.2%}"
                    )

            dt = Decimal(str(timestamp - prev.timestamp))
            if dt < 0:
                raise InvalidState(f"Tick for {pair} is older than the last observation")
            if dt == 0:
                prev.price = price
                return prev
            cumulative = prev.log_price_cumulative + log_price * dt
        else:
            cumulative = ZERO

        obs = Observation(timestamp=timestamp, price=price, log_price_cumulative=cumulative)
        history.append(obs)
        if len(history) > self.max_observations:
            del history[: len(history) - self.max_observations]
        return obs

    # -- TWAP ---------------------------------------------------------------

    def twap(self, pair: Any, window_seconds: float) -> Optional[Decimal]:
        """Geometric-mean TWAP over the last *window_seconds*, or None."""
        history = self._observations.get(TradingPair.parse(pair), [])
        if len(history) < 2:
            return None
        end = history[-1]
        start = self._find_observation_at(history, end.timestamp - window_seconds)

        dt = Decimal(str(end.timestamp - start.timestamp))
        if dt <= 0:
            return end.price
        avg_log = (end.log_price_cumulative - start.log_price_cumulative) / dt
        return Decimal(str(math.exp(float(avg_log)))).quantize(
            Decimal("0.00000001"), rounding=ROUND_HALF_UP
        )

    @staticmethod
    def _find_observation_at(history: List[Observation], target_time: float) -> Observation:
        """Binary search for the observation at or just before target_time."""
        if target_time <= history[0].timestamp:
            return history[0]
        lo, hi = 0, len(history) - 1
        while lo < hi:
            mid = (lo + hi + 1) // 2
            if history[mid].timestamp <= target_time:
                lo = mid
            else:
                hi = mid - 1
        return history[lo]

    # -- Serialization ------------------------------------------------------

    def to_dict(self) -> Dict[str, Any]:
        """Only the latest observation per pair is persisted."""
        return {
            pair.symbol: {"price": str(history[-1].price), "timestamp": history[-1].timestamp}
            for pair, history in self._observations.items()
            if history
        }

    def load(self, data: Dict[str, Any]) -> None:
        self._observations.clear()
        for symbol, entry in data.items():
            pair = TradingPair.parse(symbol)
            self._observations[pair] = [
                Observation(timestamp=float(entry["timestamp"]), price=Decimal(entry["price"]))
            ]
