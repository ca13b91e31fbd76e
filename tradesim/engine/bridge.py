"""
tradesim Cross-Chain Bridge

Moves USDT to USDT_SOL on the account that was active when the transfer
started. The debit is synchronous; the credit (amount minus the fixed fee)
lands after the settlement delay. The engine lock is never held while the
transfer is pending, so ticks and commands keep flowing.

Failures are not retried here; callers retry.
"""

from __future__ import annotations

import asyncio
import logging
from decimal import Decimal
from typing import Any, Awaitable, Callable, Optional

from .events import DomainEvent
from .state_manager import AccountEngine

logger = logging.getLogger(__name__)


class BridgeService:
    def __init__(
        self,
        engine: AccountEngine,
        settlement_delay: Optional[float] = None,
        sleep: Callable[[float], Awaitable[Any]] = asyncio.sleep,
    ) -> None:
        self.engine = engine
        self.settlement_delay = (
            engine.config.bridge.settlement_delay if settlement_delay is None else settlement_delay
        )
        self._sleep = sleep

    @property
    def fee(self) -> Decimal:
        return self.engine.config.bridge.fee

    async def transfer(self, amount: Any) -> DomainEvent:
        """Bridge *amount* USDT; resolves once the USDT_SOL credit lands."""
        pending = self.engine.begin_bridge(amount)
        logger.debug("Bridge %s pending for %.1fs", pending.id, self.settlement_delay)
        await self._sleep(self.settlement_delay)
        return self.engine.complete_bridge(pending.id)
