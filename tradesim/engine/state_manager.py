"""
tradesim Account Engine  (state manager)

Owns both account instances (paper and real), the shared liquidity pool
and the price book, and is the only entry point for mutating them.

Responsibilities:
  - Serializes every tick and command behind one lock
  - Runs each mutation on a working copy and commits it atomically, so a
    failed command or tick leaves state untouched
  - Routes ticks through the ordered tick pipeline for the active account
    only; the inactive account is frozen
  - Captures the PnL baseline once the active account is funded and priced
  - Saves a snapshot after every committed mutation
  - Exposes the query interface and the ``execute`` command dispatcher

Usage:

    engine = AccountEngine(config, store=JsonFileSnapshotStore(path))
    engine.place_order("buy", "BTC/USDT", "50000", "1")
    events = engine.on_tick("BTC/USDT", Decimal("49000"))
"""

from __future__ import annotations

import copy
import logging
import threading
import time
from decimal import Decimal
from typing import Any, Callable, Dict, List, Optional

from .. import __version__
from ..config import TradeSimConfig
from ..exceptions import InvalidAmount, InvalidState, NotFound, TradingError
from .assets import QUOTE_ASSET, Asset, TradingPair, positive
from .bots import MarketMakerBot, MarketMakerEngine
from .commands import Command, CommandResult, CommandType
from .events import DomainEvent, EventKind
from .futures import FuturesEngine, FuturesPosition
from .lending import HealthBand, LendingMarket, LendingPosition, health_band
from .orders import Order, OrderMatchingEngine
from .pipeline import Tick, TickContext, TickPipeline
from .pool import LiquidityPool, LiquidityPoolState
from .prices import PriceBook
from .staking import StakingEngine, StakingState
from .state import AccountMode, AccountState, PendingBridgeTransfer
from .valuation import PnL, PortfolioValuation, Valuation

logger = logging.getLogger(__name__)

SNAPSHOT_VERSION = 1

Listener = Callable[[DomainEvent], None]


class AccountEngine:
    """Single-writer simulation engine over the paper and real accounts."""

    def __init__(
        self,
        config: Optional[TradeSimConfig] = None,
        store: Any = None,
        clock: Callable[[], float] = time.time,
    ) -> None:
        self.config = config or TradeSimConfig()
        self._store = store
        self._clock = clock
        self._lock = threading.Lock()
        self._listeners: List[Listener] = []

        # --- Components ---
        cfg = self.config
        self.prices = PriceBook()
        self.pool = LiquidityPool(LiquidityPoolState(
            reserve_a=cfg.pool.reserve_a,
            reserve_b=cfg.pool.reserve_b,
            total_shares=cfg.pool.total_shares,
        ))
        self.orders = OrderMatchingEngine()
        self.futures = FuturesEngine(cfg.futures.liquidation_buffer, cfg.futures.max_leverage)
        self.bots = MarketMakerEngine(self.orders)
        self.lending = LendingMarket.from_config(cfg.lending)
        self.staking = StakingEngine(cfg.staking.apy, cfg.staking.seconds_per_year)
        self.valuation = PortfolioValuation(self.prices, self.pool)
        self.pipeline = TickPipeline(TickContext(self.orders, self.futures, self.bots, self.staking))

        # --- Accounts ---
        self._accounts: Dict[AccountMode, AccountState] = {
            AccountMode.PAPER: self._fresh_paper_account(),
            AccountMode.REAL: AccountState.fresh(AccountMode.REAL),
        }
        self._active_mode = AccountMode.parse(cfg.engine.initial_mode)

        if store is not None:
            data = store.load()
            if data:
                self.restore(data)
                self.staking.resume(self.active_account, self.now())
                logger.info("Restored engine state from snapshot (%s mode active)", self._active_mode.value)
        self.valuation.capture_baseline(self.active_account)

    def _fresh_paper_account(self) -> AccountState:
        paper = self.config.paper
        account = AccountState.fresh(AccountMode.PAPER, paper.balances)
        account.lending = LendingPosition(
            supplied={Asset.parse(a): v for a, v in paper.supplied.items() if v > 0},
            borrowed={Asset.parse(a): v for a, v in paper.borrowed.items() if v > 0},
        )
        return account

    # =====================================================================
    #  Transaction plumbing
    # =====================================================================

    def now(self) -> float:
        return self._clock()

    def subscribe(self, listener: Listener) -> None:
        """Register a callback for committed domain events."""
        self._listeners.append(listener)

    def _transact(self, fn: Callable[[AccountState, LiquidityPool], Any], mode: Optional[AccountMode] = None) -> Any:
        """
        Run *fn* on working copies of the account and the pool.

        The copies replace the live state only if *fn* returns; an exception
        propagates and nothing is committed.
        """
        with self._lock:
            mode = mode or self._active_mode
            working = copy.deepcopy(self._accounts[mode])
            pool = LiquidityPool(copy.deepcopy(self.pool.state))
            result = fn(working, pool)
            working.trim_history(self.config.engine.history_limit)
            self._accounts[mode] = working
            self.pool.state = pool.state
            self._after_commit()
            return result

    def _after_commit(self) -> None:
        self.valuation.capture_baseline(self.active_account)
        self._save()

    def _save(self) -> None:
        if self._store is None:
            return
        try:
            self._store.save(self.snapshot())
        except OSError as e:
            logger.error("Failed to save snapshot: %s", e)

    def _publish(self, events: List[DomainEvent]) -> None:
        for event in events:
            for listener in self._listeners:
                try:
                    listener(event)
                except Exception:
                    logger.exception("Event listener failed for %s", event.kind.value)

    # =====================================================================
    #  Price ticks
    # =====================================================================

    def on_tick(self, pair: Any, price: Any, timestamp: Optional[float] = None) -> List[DomainEvent]:
        """
        Advance the active account by one tick of *pair*.

        The tick runs through the pipeline and is recorded in the price
        book only when the pipeline succeeds. A failing tick is logged and
        discarded, leaving the price book as it was.
        """
        try:
            tick = Tick.create(pair, price, self.now() if timestamp is None else timestamp)
        except TradingError as e:
            logger.warning("Rejected tick %s @ %s: %s", pair, price, e)
            return []

        with self._lock:
            mode = self._active_mode
            try:
                working, events = self.pipeline.run(self._accounts[mode], tick)
                self.prices.record(tick.pair, tick.price, tick.timestamp)
            except Exception:
                logger.exception("Tick %s @ %s failed; state unchanged", tick.pair, tick.price)
                return []
            working.trim_history(self.config.engine.history_limit)
            self._accounts[mode] = working
            self._after_commit()

        if events:
            logger.debug("Tick %s @ %s produced %d events", tick.pair, tick.price, len(events))
        self._publish(events)
        return events

    # =====================================================================
    #  Account management
    # =====================================================================

    @property
    def active_mode(self) -> AccountMode:
        return self._active_mode

    @property
    def active_account(self) -> AccountState:
        return self._accounts[self._active_mode]

    def account(self, mode: Any) -> AccountState:
        return self._accounts[AccountMode.parse(mode)]

    def set_mode(self, mode: Any) -> AccountMode:
        mode = AccountMode.parse(mode)
        with self._lock:
            if mode != self._active_mode:
                self._active_mode = mode
                # frozen time earns no staking rewards
                self.staking.resume(self._accounts[mode], self.now())
                logger.info("Switched to %s account", mode.value)
                self._after_commit()
        return mode

    def toggle_mode(self) -> AccountMode:
        return self.set_mode(self._active_mode.other)

    def reset_paper_account(self) -> AccountState:
        """Replace the paper account with a freshly funded one."""
        with self._lock:
            self._accounts[AccountMode.PAPER] = self._fresh_paper_account()
            logger.info("Paper account reset")
            self._after_commit()
            return self._accounts[AccountMode.PAPER]

    def fund(self, asset: Any, amount: Any) -> Decimal:
        """Faucet: credit *amount* of *asset* to the active account."""
        asset = Asset.parse(asset)
        amount = positive(amount, "amount")
        return self._transact(lambda acct, pool: acct.ledger.credit(asset, amount))

    # =====================================================================
    #  Spot orders
    # =====================================================================

    def place_order(self, side: Any, pair: Any, price: Any, amount: Any) -> Order:
        return self._transact(
            lambda acct, pool: self.orders.place_order(acct, side, pair, price, amount, self.now())
        )

    def cancel_order(self, order_id: str) -> Order:
        return self._transact(lambda acct, pool: self.orders.cancel_order(acct, order_id, self.now()))

    # =====================================================================
    #  Futures
    # =====================================================================

    def open_position(
        self,
        side: Any,
        pair: Any,
        price: Any,
        amount: Any,
        leverage: Any,
        stop_loss: Any = None,
        take_profit: Any = None,
    ) -> FuturesPosition:
        return self._transact(lambda acct, pool: self.futures.open_position(
            acct, side, pair, price, amount, leverage, self.now(),
            stop_loss=stop_loss, take_profit=take_profit,
        ))

    def close_position(self, position_id: str) -> Order:
        def close(acct: AccountState, pool: LiquidityPool) -> Order:
            position = acct.positions.get(position_id)
            if position is None:
                raise NotFound(f"Position {position_id} not found")
            price = self.prices.latest(position.pair)
            return self.futures.close_position(acct, position_id, price, self.now())

        return self._transact(close)

    # =====================================================================
    #  Liquidity pool
    # =====================================================================

    def add_liquidity(self, amount: Any, asset: Any = QUOTE_ASSET) -> Decimal:
        return self._transact(lambda acct, pool: pool.add_liquidity(acct, amount, asset))

    def remove_liquidity(self, lp_amount: Any, target_asset: Any = QUOTE_ASSET) -> Decimal:
        return self._transact(lambda acct, pool: pool.remove_liquidity(acct, lp_amount, target_asset))

    # =====================================================================
    #  Bots
    # =====================================================================

    def create_bot(
        self,
        price_range_lower: Any,
        price_range_upper: Any,
        spread: Any,
        order_amount: Any,
        initial_quote: Any,
        pair: Any = "BTC/USDT",
    ) -> MarketMakerBot:
        return self._transact(lambda acct, pool: self.bots.create_bot(
            acct, price_range_lower, price_range_upper, spread, order_amount,
            initial_quote, self.now(), pair=pair,
        ))

    def toggle_bot(self, bot_id: str) -> MarketMakerBot:
        return self._transact(lambda acct, pool: self.bots.toggle_bot(acct, bot_id))

    def remove_bot(self, bot_id: str) -> MarketMakerBot:
        return self._transact(lambda acct, pool: self.bots.remove_bot(acct, bot_id, self.now()))

    # =====================================================================
    #  Lending
    # =====================================================================

    def supply(self, asset: Any, amount: Any) -> LendingPosition:
        return self._transact(lambda acct, pool: self.lending.supply(acct, asset, amount))

    def withdraw(self, asset: Any, amount: Any) -> LendingPosition:
        return self._transact(
            lambda acct, pool: self.lending.withdraw(acct, asset, amount, self.valuation.price)
        )

    def borrow(self, asset: Any, amount: Any) -> LendingPosition:
        return self._transact(
            lambda acct, pool: self.lending.borrow(acct, asset, amount, self.valuation.price)
        )

    def repay(self, asset: Any, amount: Any) -> LendingPosition:
        return self._transact(lambda acct, pool: self.lending.repay(acct, asset, amount))

    # =====================================================================
    #  Staking
    # =====================================================================

    def stake(self, amount: Any) -> StakingState:
        return self._transact(lambda acct, pool: self.staking.stake(acct, amount, self.now()))

    def unstake(self, amount: Any) -> StakingState:
        return self._transact(lambda acct, pool: self.staking.unstake(acct, amount, self.now()))

    def claim_rewards(self) -> Decimal:
        return self._transact(lambda acct, pool: self.staking.claim(acct))

    # =====================================================================
    #  Bridge (two-phase; see BridgeService)
    # =====================================================================

    def begin_bridge(self, amount: Any) -> PendingBridgeTransfer:
        """Debit USDT now and record the pending USDT_SOL credit."""
        fee = self.config.bridge.fee
        delay = self.config.bridge.settlement_delay

        def begin(acct: AccountState, pool: LiquidityPool) -> PendingBridgeTransfer:
            value = positive(amount, "amount")
            if value <= fee:
                raise InvalidAmount(f"Bridge amount {value} does not cover the {fee} USDT fee")
            acct.ledger.debit(Asset.USDT, value)
            now = self.now()
            transfer = PendingBridgeTransfer(
                id=acct.next_id("bridge"), amount=value, fee=fee,
                created_at=now, settles_at=now + delay,
            )
            acct.pending_bridges[transfer.id] = transfer
            logger.info("Bridge %s started: %s USDT -> USDT_SOL", transfer.id, value)
            return transfer

        return self._transact(begin)

    def complete_bridge(self, transfer_id: str) -> DomainEvent:
        """Credit a pending transfer on the account that started it."""
        with self._lock:
            owners = [m for m, acct in self._accounts.items() if transfer_id in acct.pending_bridges]
        if not owners:
            raise NotFound(f"Bridge transfer {transfer_id} not found")
        mode = owners[0]

        def complete(acct: AccountState, pool: LiquidityPool) -> DomainEvent:
            transfer = acct.pending_bridges.pop(transfer_id, None)
            if transfer is None:
                raise NotFound(f"Bridge transfer {transfer_id} not found")
            acct.ledger.credit(Asset.USDT_SOL, transfer.credit)
            logger.info("Bridge %s settled: %s USDT_SOL credited", transfer_id, transfer.credit)
            return DomainEvent.create(
                acct, EventKind.BRIDGE_SETTLED, transfer_id, self.now(), amount=transfer.credit,
            )

        event = self._transact(complete, mode=mode)
        self._publish([event])
        return event

    # =====================================================================
    #  Command dispatcher
    # =====================================================================

    def execute(self, command: Command) -> CommandResult:
        """
        Execute a command envelope.

        Trading errors become a failed CommandResult carrying the error kind;
        anything else propagates.
        """
        try:
            command.validate_basic()
            handler = self._handlers()[command.op_type]
            data = handler(command.params)
        except TradingError as e:
            logger.info("Command %s rejected: %s", getattr(command.op_type, "name", command.op_type), e)
            return CommandResult(success=False, error=str(e), error_kind=e.kind)
        return CommandResult(success=True, data=data)

    def _handlers(self) -> Dict[CommandType, Callable[[Dict[str, Any]], Dict[str, Any]]]:
        return {
            CommandType.PLACE_ORDER: lambda p: self.place_order(
                p["side"], p["pair"], p["price"], p["amount"]).to_dict(),
            CommandType.CANCEL_ORDER: lambda p: self.cancel_order(p["order_id"]).to_dict(),
            CommandType.OPEN_POSITION: lambda p: self.open_position(
                p["side"], p["pair"], p["price"], p["amount"], p["leverage"],
                stop_loss=p.get("stop_loss"), take_profit=p.get("take_profit")).to_dict(),
            CommandType.CLOSE_POSITION: lambda p: self.close_position(p["position_id"]).to_dict(),
            CommandType.ADD_LIQUIDITY: lambda p: {
                "shares": str(self.add_liquidity(p["amount"], p["asset"]))},
            CommandType.REMOVE_LIQUIDITY: lambda p: {
                "value": str(self.remove_liquidity(p["lp_amount"], p["target_asset"]))},
            CommandType.CREATE_BOT: lambda p: self.create_bot(
                p["price_range_lower"], p["price_range_upper"], p["spread"],
                p["order_amount"], p["initial_quote"], pair=p.get("pair", "BTC/USDT")).to_dict(),
            CommandType.TOGGLE_BOT: lambda p: self.toggle_bot(p["bot_id"]).to_dict(),
            CommandType.REMOVE_BOT: lambda p: self.remove_bot(p["bot_id"]).to_dict(),
            CommandType.SUPPLY: lambda p: self.supply(p["asset"], p["amount"]).to_dict(),
            CommandType.WITHDRAW: lambda p: self.withdraw(p["asset"], p["amount"]).to_dict(),
            CommandType.BORROW: lambda p: self.borrow(p["asset"], p["amount"]).to_dict(),
            CommandType.REPAY: lambda p: self.repay(p["asset"], p["amount"]).to_dict(),
            CommandType.STAKE: lambda p: self.stake(p["amount"]).to_dict(),
            CommandType.UNSTAKE: lambda p: self.unstake(p["amount"]).to_dict(),
            CommandType.CLAIM_REWARDS: lambda p: {"claimed": str(self.claim_rewards())},
            CommandType.FUND: lambda p: {"balance": str(self.fund(p["asset"], p["amount"]))},
            CommandType.TOGGLE_MODE: lambda p: {"mode": self.toggle_mode().value},
            CommandType.RESET_PAPER_ACCOUNT: lambda p: {
                "balances": _decimal_map(self.reset_paper_account().ledger.balances)},
        }

    # =====================================================================
    #  Snapshot / restore
    # =====================================================================

    def snapshot(self) -> Dict[str, Any]:
        """JSON-safe image of the whole engine state."""
        return {
            "version": SNAPSHOT_VERSION,
            "tradesim": __version__,
            "active_mode": self._active_mode.value,
            "accounts": {mode.value: acct.to_dict() for mode, acct in self._accounts.items()},
            "pool": self.pool.state.to_dict(),
            "prices": self.prices.to_dict(),
        }

    def restore(self, data: Dict[str, Any]) -> None:
        if data.get("version") != SNAPSHOT_VERSION:
            raise InvalidState(f"Unsupported snapshot version: {data.get('version')!r}")
        accounts = {
            AccountMode.parse(mode): AccountState.from_dict(raw)
            for mode, raw in data["accounts"].items()
        }
        for mode in AccountMode:
            accounts.setdefault(
                mode, self._fresh_paper_account() if mode == AccountMode.PAPER else AccountState.fresh(mode)
            )
        self._accounts = accounts
        self._active_mode = AccountMode.parse(data["active_mode"])
        self.pool.state = LiquidityPoolState.from_dict(data["pool"])
        self.prices.load(data.get("prices", {}))

    # =====================================================================
    #  Query interface (active account)
    # =====================================================================

    def balances(self) -> Dict[Asset, Decimal]:
        return self.active_account.ledger.balances

    def available_balances(self) -> Dict[Asset, Decimal]:
        return self.active_account.ledger.available_balances()

    def available(self, asset: Any) -> Decimal:
        return self.active_account.ledger.available(asset)

    def open_orders(self) -> List[Order]:
        return list(self.active_account.open_orders.values())

    def order_history(self) -> List[Order]:
        return list(self.active_account.order_history)

    def positions(self) -> List[FuturesPosition]:
        return list(self.active_account.positions.values())

    def pool_state(self) -> LiquidityPoolState:
        return self.pool.state

    def list_bots(self) -> List[MarketMakerBot]:
        return list(self.active_account.bots.values())

    def lending_position(self) -> LendingPosition:
        return self.active_account.lending

    def health_factor(self) -> Decimal:
        return self.lending.health_factor(self.active_account.lending, self.valuation.price)

    def health_band(self) -> Optional[HealthBand]:
        """None while nothing is borrowed."""
        if not self.active_account.lending.borrowed:
            return None
        return health_band(self.health_factor())

    def lending_market(self) -> List[Dict[str, Any]]:
        return self.lending.market_view(self.valuation.price)

    def staking_state(self) -> StakingState:
        return self.active_account.staking

    def pending_bridges(self) -> List[PendingBridgeTransfer]:
        return list(self.active_account.pending_bridges.values())

    def valuation_report(self) -> Valuation:
        return self.valuation.value(self.active_account)

    def net_worth(self) -> Decimal:
        return self.valuation.net_worth(self.active_account)

    def pnl(self) -> PnL:
        return self.valuation.pnl(self.active_account)

    def latest_price(self, pair: Any) -> Optional[Decimal]:
        return self.prices.latest(TradingPair.parse(pair))


def _decimal_map(values: Dict[Asset, Decimal]) -> Dict[str, str]:
    return {asset.value: str(amount) for asset, amount in values.items()}
