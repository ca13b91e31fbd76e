"""
tradesim Tick Pipeline

A tick runs an ordered list of stages over a working copy of the active
account:

    match_orders -> settle_futures -> requote_bots -> accrue_staking

The caller commits the copy only if every stage returns; any exception
leaves the committed state as it was.
"""

from __future__ import annotations

import copy
from dataclasses import dataclass
from decimal import Decimal
from typing import Any, Callable, List, Sequence, Tuple

from .assets import TradingPair, positive
from .bots import MarketMakerEngine
from .events import DomainEvent, EventKind
from .futures import FuturesEngine
from .orders import OrderMatchingEngine
from .staking import StakingEngine
from .state import AccountState


@dataclass(frozen=True)
class Tick:
    pair: TradingPair
    price: Decimal
    timestamp: float

    @classmethod
    def create(cls, pair: Any, price: Any, timestamp: float) -> Tick:
        return cls(TradingPair.parse(pair), positive(price, "price"), float(timestamp))


@dataclass
class TickContext:
    orders: OrderMatchingEngine
    futures: FuturesEngine
    bots: MarketMakerEngine
    staking: StakingEngine


Stage = Callable[[AccountState, Tick, TickContext], List[DomainEvent]]


def match_orders(account: AccountState, tick: Tick, ctx: TickContext) -> List[DomainEvent]:
    return ctx.orders.match(account, tick.pair, tick.price, tick.timestamp)


def settle_futures(account: AccountState, tick: Tick, ctx: TickContext) -> List[DomainEvent]:
    return ctx.futures.evaluate(account, tick.pair, tick.price, tick.timestamp)


def requote_bots(account: AccountState, tick: Tick, ctx: TickContext) -> List[DomainEvent]:
    return ctx.bots.requote(account, tick.pair, tick.price, tick.timestamp)


def accrue_staking(account: AccountState, tick: Tick, ctx: TickContext) -> List[DomainEvent]:
    reward = ctx.staking.accrue(account, tick.timestamp)
    if reward <= 0:
        return []
    return [DomainEvent.create(account, EventKind.REWARDS_ACCRUED, "staking", tick.timestamp, amount=reward)]


DEFAULT_STAGES: Tuple[Stage, ...] = (match_orders, settle_futures, requote_bots, accrue_staking)


class TickPipeline:
    def __init__(self, ctx: TickContext, stages: Sequence[Stage] = DEFAULT_STAGES) -> None:
        self.ctx = ctx
        self.stages = tuple(stages)

    def run(self, account: AccountState, tick: Tick) -> Tuple[AccountState, List[DomainEvent]]:
        """Returns the advanced copy of *account* and the events it produced."""
        working = copy.deepcopy(account)
        events: List[DomainEvent] = []
        for stage in self.stages:
            events.extend(stage(working, tick, self.ctx))
        return working, events
