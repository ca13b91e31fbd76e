"""
tradesim Tick Runner

Asyncio loop that polls a PriceFeed for every configured pair on a fixed
cadence and feeds the quotes to the engine as ticks. A feed failure skips
that pair for the round; the last known price stays in the price book.
"""

import asyncio
import logging
from typing import Any, Iterable, List, Optional

from .engine.assets import TradingPair
from .engine.events import DomainEvent
from .engine.state_manager import AccountEngine
from .exceptions import PriceFeedError
from .feeds.base import PriceFeed

logger = logging.getLogger(__name__)


class TickRunner:
    def __init__(
        self,
        engine: AccountEngine,
        feed: PriceFeed,
        pairs: Iterable[Any],
        interval: float,
    ) -> None:
        self.engine = engine
        self.feed = feed
        self.pairs: List[TradingPair] = [TradingPair.parse(p) for p in pairs]
        self.interval = interval
        self.rounds = 0
        self._stop = asyncio.Event()

    async def run_once(self) -> List[DomainEvent]:
        """Poll every pair once; returns the events of all committed ticks."""
        events: List[DomainEvent] = []
        for pair in self.pairs:
            try:
                price = await self.feed.quote(pair)
            except PriceFeedError as e:
                logger.warning(f"Skipping {pair} this round: {e}")
                continue
            events.extend(self.engine.on_tick(pair, price))
        self.rounds += 1
        return events

    async def run(self, max_rounds: Optional[int] = None) -> None:
        """Tick until ``stop()`` is called or *max_rounds* complete."""
        logger.info(
            f"Tick runner started: {len(self.pairs)} pairs every {self.interval:.1f}s "
            f"({self.engine.active_mode.value} account)"
        )
        self._stop.clear()
        try:
            while not self._stop.is_set():
                await self.run_once()
                if max_rounds is not None and self.rounds >= max_rounds:
                    break
                try:
                    await asyncio.wait_for(self._stop.wait(), timeout=self.interval)
                except asyncio.TimeoutError:
                    pass
        finally:
            await self.feed.aclose()
            logger.info(f"Tick runner stopped after {self.rounds} rounds")

    def stop(self) -> None:
        self._stop.set()
