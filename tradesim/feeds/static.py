"""Fixed quotes, settable at runtime. Used by tests and offline demos."""

from decimal import Decimal
from typing import Any, Dict, Optional, Set

from ..engine.assets import TradingPair, positive
from ..exceptions import PriceFeedError


class StaticPriceFeed:
    def __init__(self, prices: Optional[Dict[Any, Any]] = None) -> None:
        self._prices: Dict[TradingPair, Decimal] = {}
        self._failing: Set[TradingPair] = set()
        for pair, price in (prices or {}).items():
            self.set_price(pair, price)

    def set_price(self, pair: Any, price: Any) -> None:
        self._prices[TradingPair.parse(pair)] = positive(price, "price")

    def fail(self, pair: Any, failing: bool = True) -> None:
        """Make quotes for *pair* raise until called again with failing=False."""
        pair = TradingPair.parse(pair)
        if failing:
            self._failing.add(pair)
        else:
            self._failing.discard(pair)

    async def quote(self, pair: TradingPair) -> Decimal:
        pair = TradingPair.parse(pair)
        if pair in self._failing:
            raise PriceFeedError(f"Quote for {pair} unavailable")
        price = self._prices.get(pair)
        if price is None:
            raise PriceFeedError(f"No static price for {pair}")
        return price

    async def aclose(self) -> None:
        return None
