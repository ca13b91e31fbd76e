"""
Price feed interface.

A feed answers ``await feed.quote(pair)`` with a positive Decimal price or
raises PriceFeedError. Feeds never touch engine state; the TickRunner
turns their quotes into ticks.
"""

from decimal import Decimal
from typing import Protocol, runtime_checkable

from ..engine.assets import TradingPair


@runtime_checkable
class PriceFeed(Protocol):
    async def quote(self, pair: TradingPair) -> Decimal:
        ...

    async def aclose(self) -> None:
        ...
