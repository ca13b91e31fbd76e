"""
Simulated market feed.

Random-walk prices per pair with slight upward drift:

    change = (u - 0.49) * price * volatility,   u ~ U(0, 1)

Alongside the price, each pair keeps synthetic 24h statistics, a 15-level
order-book snapshot and the 20 most recent synthetic trades for display.
None of this display data feeds back into matching.
"""

import logging
import random
import time
from dataclasses import dataclass, field
from decimal import Decimal
from typing import Any, Dict, List, Optional

from ..engine.assets import TradingPair, positive
from ..exceptions import PriceFeedError

logger = logging.getLogger(__name__)

BOOK_DEPTH = 15
MAX_TRADES = 20
DRIFT_CENTER = 0.49


@dataclass
class BookLevel:
    price: Decimal
    amount: Decimal

    @property
    def total(self) -> Decimal:
        return self.price * self.amount


@dataclass
class SyntheticTrade:
    price: Decimal
    amount: Decimal
    side: str
    timestamp: float


@dataclass
class MarketSnapshot:
    """Display data for one pair."""
    pair: TradingPair
    price: Decimal
    open_24h: Decimal
    high_24h: Decimal
    low_24h: Decimal
    bids: List[BookLevel] = field(default_factory=list)
    asks: List[BookLevel] = field(default_factory=list)
    trades: List[SyntheticTrade] = field(default_factory=list)

    @property
    def change_24h(self) -> Decimal:
        return self.price - self.open_24h

    @property
    def change_24h_pct(self) -> Decimal:
        if self.open_24h == 0:
            return Decimal("0")
        return self.change_24h / self.open_24h * 100


def _dec(value: float) -> Decimal:
    return Decimal(str(round(value, 10)))


class SimulatedPriceFeed:
    def __init__(
        self,
        initial_prices: Dict[Any, Any],
        volatility: Any = Decimal("0.0005"),
        seed: Optional[int] = None,
    ) -> None:
        self.volatility = float(positive(volatility, "volatility"))
        self._rng = random.Random(seed)
        self._markets: Dict[TradingPair, MarketSnapshot] = {}
        for pair, price in initial_prices.items():
            self.initialize(pair, price)

    def initialize(self, pair: Any, price: Any) -> MarketSnapshot:
        """Seed a pair at *price* with plausible 24h statistics around it."""
        pair = TradingPair.parse(pair)
        price = positive(price, "price")
        p = float(price)
        variation = p * 0.03
        rng = self._rng
        open_24h = p - variation / 2 + rng.random() * variation
        high_24h = max(p + rng.random() * variation / 2, p + variation * 0.1)
        low_24h = min(p - rng.random() * variation / 2, p - variation * 0.1)
        market = MarketSnapshot(
            pair=pair,
            price=price,
            open_24h=_dec(open_24h),
            high_24h=_dec(high_24h),
            low_24h=_dec(low_24h),
        )
        self._markets[pair] = market
        logger.debug("Simulating %s from %s", pair, price)
        return market

    def snapshot(self, pair: Any) -> MarketSnapshot:
        pair = TradingPair.parse(pair)
        market = self._markets.get(pair)
        if market is None:
            raise PriceFeedError(f"Pair {pair} is not simulated")
        return market

    async def quote(self, pair: TradingPair) -> Decimal:
        market = self.snapshot(pair)
        price = float(market.price)
        change = (self._rng.random() - DRIFT_CENTER) * price * self.volatility
        new_price = _dec(max(price + change, price * 0.5))

        market.price = new_price
        market.high_24h = max(market.high_24h, new_price)
        market.low_24h = min(market.low_24h, new_price)
        self._refresh_depth(market)
        return new_price

    def _refresh_depth(self, market: MarketSnapshot) -> None:
        rng = self._rng
        price = float(market.price)
        step = price * 0.0001
        bid = price - rng.random() * step
        ask = price + rng.random() * step
        bids, asks = [], []
        for _ in range(BOOK_DEPTH):
            bids.append(BookLevel(_dec(bid), _dec(rng.random() * 2)))
            asks.append(BookLevel(_dec(ask), _dec(rng.random() * 2)))
            bid -= rng.random() * step * 2
            ask += rng.random() * step * 2
        market.bids = bids
        market.asks = asks

        trade = SyntheticTrade(
            price=_dec(price + (rng.random() - 0.5) * step * 5),
            amount=_dec(rng.random() * 0.5),
            side="buy" if rng.random() > 0.5 else "sell",
            timestamp=time.time(),
        )
        market.trades = [trade] + market.trades[: MAX_TRADES - 1]

    async def aclose(self) -> None:
        return None
