"""
Integration tests for the tradesim AccountEngine

Covers:
  - Paper / real account isolation and mode switching
  - Transactional commands and ticks (all-or-nothing commits)
  - Command dispatcher error kinds
  - Snapshot persistence (memory and JSON file stores)
  - Baseline capture and PnL
  - Bridge settlement
  - Tick runner over a static feed
  - Event listeners
"""

import asyncio
from decimal import Decimal

import pytest

from tradesim.config import PoolConfig, TradeSimConfig
from tradesim.engine import (
    AccountEngine,
    AccountMode,
    Asset,
    BridgeService,
    Command,
    CommandType,
    EventKind,
    HealthBand,
    OrderStatus,
    TickPipeline,
)
from tradesim.engine.pipeline import match_orders
from tradesim.exceptions import HealthFactorTooLow, InvalidAmount, InvalidState, NotFound
from tradesim.feeds import StaticPriceFeed
from tradesim.runner import TickRunner
from tradesim.storage import JsonFileSnapshotStore, MemorySnapshotStore

ZERO = Decimal("0")
NOW = 1_700_000_000.0

MARKET = {
    "BTC/USDT": "50000",
    "ETH/USDT": "3000",
    "SOL/USDT": "150",
    "BNB/USDT": "550",
    "DOGE/USDT": "0.15",
}
# 100000 + 10*50000 + 200*3000 + 1000*150 + 500*550 + 1000000*0.15
PAPER_NET_WORTH = Decimal("1775000")


class FakeClock:
    def __init__(self, t: float = NOW):
        self.t = t

    def __call__(self) -> float:
        return self.t

    def advance(self, seconds: float) -> float:
        self.t += seconds
        return self.t


@pytest.fixture
def clock():
    return FakeClock()


@pytest.fixture
def store():
    return MemorySnapshotStore()


@pytest.fixture
def engine(clock, store):
    return AccountEngine(TradeSimConfig(), store=store, clock=clock)


def _price_everything(engine, clock):
    for pair, price in MARKET.items():
        engine.on_tick(pair, price, timestamp=clock.t)


# ============================================================================
#  ACCOUNTS AND MODES
# ============================================================================

class TestAccountModes:
    """Two isolated accounts, one active at a time."""

    def test_paper_starts_funded_real_starts_empty(self, engine):
        assert engine.active_mode == AccountMode.PAPER
        assert engine.balances()[Asset.USDT] == Decimal("100000")
        assert engine.balances()[Asset.DOGE] == Decimal("1000000")
        assert all(v == ZERO for v in engine.account("real").ledger.balances.values())

    def test_toggle_and_fund_real(self, engine):
        assert engine.toggle_mode() == AccountMode.REAL
        assert engine.fund("USDT", "1000") == Decimal("1000")
        assert engine.account("paper").ledger.balance(Asset.USDT) == Decimal("100000")

    def test_inactive_account_ignores_ticks(self, engine, clock):
        order = engine.place_order("buy", "BTC/USDT", "50000", "1")
        engine.set_mode("real")
        engine.on_tick("BTC/USDT", "49000", timestamp=clock.advance(8))
        assert order.id in engine.account("paper").open_orders

        engine.set_mode("paper")
        events = engine.on_tick("BTC/USDT", "49000", timestamp=clock.advance(8))
        assert [e.kind for e in events] == [EventKind.ORDER_FILLED]
        assert engine.balances()[Asset.BTC] == Decimal("11")

    def test_frozen_account_earns_no_staking_rewards(self, engine, clock):
        engine.stake(engine.add_liquidity("1000"))
        engine.set_mode("real")
        clock.advance(365 * 24 * 3600)
        engine.set_mode("paper")
        engine.on_tick("BTC/USDT", "50000", timestamp=clock.advance(8))
        expected = engine.staking.reward_for(Decimal("1000"), 8.0)
        assert engine.staking_state().accrued_rewards == expected

    def test_restart_earns_no_rewards_for_downtime(self, engine, clock, store):
        engine.stake(engine.add_liquidity("1000"))
        engine.on_tick("BTC/USDT", "50000", timestamp=clock.advance(8))
        accrued = engine.staking_state().accrued_rewards

        clock.advance(24 * 3600)
        restarted = AccountEngine(TradeSimConfig(), store=store, clock=clock)
        restarted.on_tick("BTC/USDT", "50000", timestamp=clock.advance(8))
        expected = accrued + restarted.staking.reward_for(Decimal("1000"), 8.0)
        assert restarted.staking_state().accrued_rewards == expected

    def test_seeded_paper_lending_position(self, clock):
        config = TradeSimConfig()
        config.paper.supplied = {"USDT": Decimal("5000"), "BTC": Decimal("1")}
        config.paper.borrowed = {"SOL": Decimal("10")}
        engine = AccountEngine(config, clock=clock)
        _price_everything(engine, clock)
        # (5000 * 0.85 + 50000 * 0.75) / (10 * 150)
        assert engine.health_factor() == Decimal("41750") / Decimal("1500")
        assert engine.balances()[Asset.USDT] == Decimal("100000")

        engine.supply("BTC", "1")
        engine.reset_paper_account()
        assert engine.lending_position().supplied == {Asset.USDT: Decimal("5000"), Asset.BTC: Decimal("1")}
        assert engine.lending_position().borrowed == {Asset.SOL: Decimal("10")}
        assert engine.account("real").lending.supplied == {}

    def test_reset_paper_account(self, engine):
        engine.place_order("buy", "BTC/USDT", "50000", "1")
        engine.reset_paper_account()
        assert engine.open_orders() == []
        assert engine.available(Asset.USDT) == Decimal("100000")

    def test_unknown_mode(self, engine):
        with pytest.raises(InvalidAmount):
            engine.set_mode("demo")


# ============================================================================
#  TRANSACTIONS
# ============================================================================

class TestTransactions:
    """Commands and ticks commit whole or not at all."""

    def test_failed_command_leaves_state_untouched(self, engine, store):
        before = engine.snapshot()
        saves = store.saves

        def mutate_then_fail(acct, pool):
            acct.ledger.credit(Asset.USDT, Decimal("5"))
            pool.deposit("USDT", "10")
            raise InvalidState("boom")

        with pytest.raises(InvalidState):
            engine._transact(mutate_then_fail)
        assert engine.snapshot() == before
        assert store.saves == saves

    def test_failed_tick_stage_discards_fills(self, engine, clock):
        order = engine.place_order("buy", "BTC/USDT", "50000", "1")

        def broken_stage(account, tick, ctx):
            raise RuntimeError("stage failed")

        engine.pipeline = TickPipeline(engine.pipeline.ctx, stages=(match_orders, broken_stage))
        assert engine.on_tick("BTC/USDT", "49000", timestamp=clock.advance(8)) == []
        assert engine.open_orders()[0].id == order.id
        assert engine.balances()[Asset.BTC] == Decimal("10")

    def test_failed_tick_keeps_previous_price(self, engine, clock):
        engine.on_tick("BTC/USDT", "50000", timestamp=clock.t)
        position = engine.open_position("long", "BTC/USDT", "50000", "1", "10")
        pipeline = engine.pipeline

        def broken_stage(account, tick, ctx):
            raise RuntimeError("stage failed")

        engine.pipeline = TickPipeline(pipeline.ctx, stages=(broken_stage,))
        assert engine.on_tick("BTC/USDT", "45000", timestamp=clock.advance(8)) == []
        assert engine.latest_price("BTC/USDT") == Decimal("50000")

        engine.pipeline = pipeline
        record = engine.close_position(position.id)
        assert record.status == OrderStatus.FILLED
        assert record.price == Decimal("50000")

    def test_order_history_is_capped(self, clock):
        config = TradeSimConfig()
        config.engine.history_limit = 3
        engine = AccountEngine(config, clock=clock)
        ids = []
        for _ in range(5):
            ids.append(engine.place_order("buy", "BTC/USDT", "100", "1").id)
            engine.cancel_order(ids[-1])
        assert [o.id for o in engine.order_history()] == ids[-3:]
        with pytest.raises(NotFound):
            engine.cancel_order(ids[0])

    def test_available_never_negative_after_mixed_activity(self, engine, clock):
        _price_everything(engine, clock)
        engine.place_order("buy", "BTC/USDT", "49500", "1")
        engine.place_order("sell", "ETH/USDT", "3100", "50")
        engine.open_position("long", "BTC/USDT", "50000", "1", "10", stop_loss="47000")
        engine.open_position("short", "SOL/USDT", "150", "100", "5", take_profit="140")
        engine.create_bot("45000", "55000", "2", "0.1", "10000")
        engine.supply("BTC", "2")
        engine.borrow("USDT", "20000")
        engine.stake(engine.add_liquidity("5000") / 2)

        for btc, sol, eth in (("49000", "148", "3050"), ("51000", "138", "3150"),
                              ("46000", "145", "2900"), ("52000", "160", "3200")):
            engine.on_tick("BTC/USDT", btc, timestamp=clock.advance(8))
            engine.on_tick("SOL/USDT", sol, timestamp=clock.advance(1))
            engine.on_tick("ETH/USDT", eth, timestamp=clock.advance(1))
            for asset in Asset:
                assert engine.available(asset) >= 0, asset

        engine.claim_rewards()
        engine.repay("USDT", "5000")
        assert all(engine.available(asset) >= 0 for asset in Asset)
        assert engine.positions() == []

    def test_rejected_tick_input(self, engine):
        assert engine.on_tick("BTC/USDT", "-1") == []
        assert engine.on_tick("XRP/USDT", "1") == []
        assert engine.latest_price("BTC/USDT") is None

    def test_every_commit_is_saved(self, engine, store):
        saves = store.saves
        engine.place_order("buy", "BTC/USDT", "100", "1")
        engine.fund("ETH", "1")
        assert store.saves == saves + 2


# ============================================================================
#  COMMAND DISPATCHER
# ============================================================================

class TestExecute:
    """Trading errors become failed results carrying their kind."""

    def test_success(self, engine):
        result = engine.execute(Command(CommandType.PLACE_ORDER, {
            "side": "buy", "pair": "BTC/USDT", "price": "50000", "amount": "1",
        }))
        assert result.success
        assert result.data["status"] == "open"

    @pytest.mark.parametrize("op_type,params,kind", [
        (CommandType.PLACE_ORDER,
         {"side": "buy", "pair": "BTC/USDT", "price": "abc", "amount": "1"}, "InvalidAmount"),
        (CommandType.PLACE_ORDER,
         {"side": "buy", "pair": "BTC/USDT", "price": "50000", "amount": "10"}, "InsufficientBalance"),
        (CommandType.CANCEL_ORDER, {"order_id": "nope"}, "NotFound"),
        (CommandType.REMOVE_LIQUIDITY, {"lp_amount": "1", "target_asset": "USDT"}, "InsufficientBalance"),
        (CommandType.STAKE, {}, "InvalidAmount"),
    ])
    def test_error_kinds(self, engine, op_type, params, kind):
        result = engine.execute(Command(op_type, params))
        assert not result.success
        assert result.error_kind == kind

    def test_close_without_price_is_invalid_state(self, engine):
        position = engine.open_position("long", "BTC/USDT", "50000", "1", "10")
        result = engine.execute(Command(CommandType.CLOSE_POSITION, {"position_id": position.id}))
        assert result.error_kind == "InvalidState"
        assert engine.positions()[0].id == position.id

    def test_insufficient_liquidity(self, clock):
        config = TradeSimConfig(pool=PoolConfig(Decimal("500000"), Decimal("10"), Decimal("500010")))
        engine = AccountEngine(config, clock=clock)
        engine.add_liquidity("1000")
        result = engine.execute(Command(CommandType.REMOVE_LIQUIDITY, {
            "lp_amount": "1000", "target_asset": "USDT_SOL",
        }))
        assert result.error_kind == "InsufficientLiquidity"
        assert engine.balances()[Asset.GDP] == Decimal("1000")

    def test_toggle_mode_command(self, engine):
        result = engine.execute(Command(CommandType.TOGGLE_MODE))
        assert result.data == {"mode": "real"}


# ============================================================================
#  FUTURES / LENDING / STAKING THROUGH THE ENGINE
# ============================================================================

class TestEngineProducts:
    def test_liquidation_on_tick(self, engine, clock):
        engine.open_position("long", "BTC/USDT", "50000", "1", "10")
        events = engine.on_tick("BTC/USDT", "45000", timestamp=clock.advance(8))
        assert EventKind.POSITION_LIQUIDATED in [e.kind for e in events]
        assert engine.positions() == []
        assert engine.balances()[Asset.USDT] == Decimal("95250")
        assert engine.order_history()[-1].status == OrderStatus.LIQUIDATED

    def test_manual_close_uses_latest_price(self, engine, clock):
        engine.on_tick("BTC/USDT", "50000", timestamp=clock.t)
        position = engine.open_position("short", "BTC/USDT", "50000", "1", "5")
        engine.on_tick("BTC/USDT", "49000", timestamp=clock.advance(8))
        record = engine.close_position(position.id)
        assert record.price == Decimal("49000")
        assert record.realized_pnl == Decimal("1000")
        assert engine.balances()[Asset.USDT] == Decimal("101000")

    def test_health_factor_through_engine(self, engine, clock):
        engine.on_tick("BTC/USDT", "50000", timestamp=clock.t)
        engine.supply("BTC", "1")
        assert engine.health_band() is None
        engine.borrow("USDT", "10000")
        assert engine.health_factor() == Decimal("3.75")
        assert engine.health_band() == HealthBand.SAFE
        with pytest.raises(HealthFactorTooLow):
            engine.borrow("USDT", "40000")
        assert engine.lending_position().borrowed[Asset.USDT] == Decimal("10000")

    def test_staking_accrues_on_ticks(self, engine, clock):
        shares = engine.add_liquidity("1000")
        assert shares == Decimal("1000")
        engine.stake(shares)
        events = engine.on_tick("BTC/USDT", "50000", timestamp=clock.advance(3600))
        assert EventKind.REWARDS_ACCRUED in [e.kind for e in events]
        claimed = engine.claim_rewards()
        assert claimed > 0
        assert engine.balances()[Asset.GDP] == claimed

    def test_bot_quotes_on_tick(self, engine, clock):
        bot = engine.create_bot("45000", "55000", "2", "0.1", "10000")
        engine.on_tick("BTC/USDT", "50000", timestamp=clock.advance(8))
        (order,) = engine.open_orders()
        assert order.bot_id == bot.id
        engine.remove_bot(bot.id)
        assert engine.list_bots() == []
        assert engine.balances()[Asset.USDT] == Decimal("100000")


# ============================================================================
#  VALUATION / PNL
# ============================================================================

class TestBaselineAndPnL:
    def test_baseline_waits_for_every_price(self, engine, clock):
        assert engine.active_account.baseline_net_worth is None
        engine.on_tick("BTC/USDT", "50000", timestamp=clock.t)
        assert engine.active_account.baseline_net_worth is None
        assert engine.pnl().value == ZERO

        _price_everything(engine, clock)
        assert engine.active_account.baseline_net_worth == PAPER_NET_WORTH
        assert engine.net_worth() == PAPER_NET_WORTH

    def test_pnl_follows_prices(self, engine, clock):
        _price_everything(engine, clock)
        engine.on_tick("BTC/USDT", "51000", timestamp=clock.advance(8))
        pnl = engine.pnl()
        assert pnl.value == Decimal("10000")
        assert pnl.percentage == Decimal("10000") / PAPER_NET_WORTH * 100

    def test_real_account_baseline_after_funding(self, engine):
        engine.set_mode("real")
        assert engine.active_account.baseline_net_worth is None
        engine.fund("USDT", "500")
        assert engine.active_account.baseline_net_worth == Decimal("500")


# ============================================================================
#  SNAPSHOTS
# ============================================================================

class TestSnapshots:
    def _populate(self, engine, clock):
        engine.on_tick("BTC/USDT", "50000", timestamp=clock.t)
        order = engine.place_order("buy", "BTC/USDT", "40000", "1")
        position = engine.open_position("long", "BTC/USDT", "50000", "1", "10", stop_loss="48000")
        engine.add_liquidity("1000")
        engine.set_mode("real")
        return order, position

    def test_memory_round_trip(self, engine, clock, store):
        order, position = self._populate(engine, clock)
        restored = AccountEngine(TradeSimConfig(), store=store, clock=clock)

        assert restored.active_mode == AccountMode.REAL
        paper = restored.account("paper")
        assert list(paper.open_orders) == [order.id]
        assert paper.positions[position.id].stop_loss == Decimal("48000")
        assert paper.ledger.available(Asset.USDT) == engine.account("paper").ledger.available(Asset.USDT)
        assert restored.pool_state().total_shares == Decimal("751000")
        assert restored.latest_price("BTC/USDT") == Decimal("50000")

    def test_json_file_round_trip(self, clock, tmp_path):
        path = tmp_path / "state" / "tradesim.json"
        engine = AccountEngine(TradeSimConfig(), store=JsonFileSnapshotStore(path), clock=clock)
        order, _ = self._populate(engine, clock)
        assert path.exists()

        restored = AccountEngine(TradeSimConfig(), store=JsonFileSnapshotStore(path), clock=clock)
        assert restored.snapshot() == engine.snapshot()
        restored.set_mode("paper")
        restored.cancel_order(order.id)
        assert restored.available(Asset.USDT) == Decimal("94000")

    def test_corrupt_file_starts_fresh(self, clock, tmp_path):
        path = tmp_path / "tradesim.json"
        path.write_text("{not json")
        assert JsonFileSnapshotStore(path).load() is None
        engine = AccountEngine(TradeSimConfig(), store=JsonFileSnapshotStore(path), clock=clock)
        assert engine.balances()[Asset.USDT] == Decimal("100000")

    def test_unsupported_version(self, engine):
        with pytest.raises(InvalidState, match="version"):
            engine.restore({"version": 99})


# ============================================================================
#  BRIDGE
# ============================================================================

class TestBridge:
    """USDT -> USDT_SOL with a fixed fee and delayed credit."""

    @pytest.mark.asyncio
    async def test_transfer_settles_after_delay(self, engine):
        delays = []

        async def fake_sleep(seconds):
            delays.append(seconds)

        service = BridgeService(engine, settlement_delay=3.0, sleep=fake_sleep)
        event = await service.transfer("100")

        assert delays == [3.0]
        assert event.kind == EventKind.BRIDGE_SETTLED
        assert event.data["amount"] == Decimal("95")
        assert engine.balances()[Asset.USDT] == Decimal("99900")
        assert engine.balances()[Asset.USDT_SOL] == Decimal("95")
        assert engine.pending_bridges() == []

    def test_pending_transfer_is_valued(self, engine):
        engine.begin_bridge("100")
        assert engine.valuation_report().bridges == Decimal("95")

    def test_credit_lands_on_originating_account(self, engine):
        pending = engine.begin_bridge("100")
        engine.set_mode("real")
        engine.complete_bridge(pending.id)
        assert engine.account("paper").ledger.balance(Asset.USDT_SOL) == Decimal("95")
        assert engine.balances()[Asset.USDT_SOL] == ZERO

    def test_amount_must_exceed_fee(self, engine):
        with pytest.raises(InvalidAmount, match="fee"):
            engine.begin_bridge("5")
        assert engine.balances()[Asset.USDT] == Decimal("100000")

    def test_unknown_transfer(self, engine):
        with pytest.raises(NotFound):
            engine.complete_bridge("nope")


# ============================================================================
#  TICK RUNNER
# ============================================================================

class TestTickRunner:
    @pytest.mark.asyncio
    async def test_failing_pair_is_skipped(self, engine):
        order = engine.place_order("buy", "BTC/USDT", "50000", "1")
        feed = StaticPriceFeed({"BTC/USDT": "49000", "ETH/USDT": "3000"})
        feed.fail("ETH/USDT")
        runner = TickRunner(engine, feed, ["BTC/USDT", "ETH/USDT"], interval=0)

        events = await runner.run_once()

        assert [e.ref_id for e in events] == [order.id]
        assert engine.latest_price("BTC/USDT") == Decimal("49000")
        assert engine.latest_price("ETH/USDT") is None

    @pytest.mark.asyncio
    async def test_max_rounds(self, engine):
        feed = StaticPriceFeed({"BTC/USDT": "50000"})
        runner = TickRunner(engine, feed, ["BTC/USDT"], interval=0)
        await runner.run(max_rounds=3)
        assert runner.rounds == 3

    @pytest.mark.asyncio
    async def test_stop_interrupts_wait(self, engine):
        feed = StaticPriceFeed({"BTC/USDT": "50000"})
        runner = TickRunner(engine, feed, ["BTC/USDT"], interval=60)
        task = asyncio.create_task(runner.run())
        await asyncio.sleep(0.01)
        runner.stop()
        await asyncio.wait_for(task, timeout=1)
        assert runner.rounds == 1


# ============================================================================
#  LISTENERS
# ============================================================================

class TestListeners:
    def test_committed_events_are_published(self, engine, clock):
        received = []

        def broken(event):
            raise RuntimeError("listener bug")

        engine.subscribe(broken)
        engine.subscribe(received.append)
        engine.place_order("buy", "BTC/USDT", "50000", "1")
        engine.on_tick("BTC/USDT", "49000", timestamp=clock.advance(8))

        assert [e.kind for e in received] == [EventKind.ORDER_FILLED]
        assert received[0].mode == "paper"
        assert received[0].to_dict()["data"]["price"] == "50000"
