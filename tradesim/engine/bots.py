"""
tradesim Market-Maker Bots

A bot owns an isolated quote/base inventory funded from the account at
creation. While active and while the tick lies inside its price band it
replaces its quotes every tick of its pair: buy below and sell above the
tick by half the spread each.
"""

from __future__ import annotations

import logging
from dataclasses import dataclass, field
from decimal import Decimal
from typing import TYPE_CHECKING, Any, Dict, List

from ..exceptions import InvalidAmount, NotFound
from .assets import ONE, ZERO, TradingPair, positive
from .events import DomainEvent, EventKind
from .orders import OrderMatchingEngine, OrderSide

if TYPE_CHECKING:
    from .state import AccountState

logger = logging.getLogger(__name__)

DEFAULT_BOT_PAIR = "BTC/USDT"


@dataclass
class BotInventory:
    quote: Decimal = ZERO
    base: Decimal = ZERO


@dataclass
class MarketMakerBot:
    id: str
    pair: TradingPair
    price_range_lower: Decimal
    price_range_upper: Decimal
    spread_pct: Decimal
    order_amount: Decimal
    created_at: float
    is_active: bool = True
    inventory: BotInventory = field(default_factory=BotInventory)
    open_order_ids: List[str] = field(default_factory=list)

    def in_range(self, price: Decimal) -> bool:
        return self.price_range_lower <= price <= self.price_range_upper

    def quote_prices(self, price: Decimal) -> tuple:
        half = self.spread_pct / 200
        return price * (ONE - half), price * (ONE + half)

    def to_dict(self) -> Dict[str, Any]:
        return {
            "id": self.id,
            "pair": self.pair.symbol,
            "price_range_lower": str(self.price_range_lower),
            "price_range_upper": str(self.price_range_upper),
            "spread_pct": str(self.spread_pct),
            "order_amount": str(self.order_amount),
            "created_at": self.created_at,
            "is_active": self.is_active,
            "inventory": {"quote": str(self.inventory.quote), "base": str(self.inventory.base)},
            "open_order_ids": list(self.open_order_ids),
        }

    @classmethod
    def from_dict(cls, data: Dict[str, Any]) -> MarketMakerBot:
        inv = data.get("inventory", {})
        return cls(
            id=data["id"],
            pair=TradingPair.parse(data["pair"]),
            price_range_lower=Decimal(data["price_range_lower"]),
            price_range_upper=Decimal(data["price_range_upper"]),
            spread_pct=Decimal(data["spread_pct"]),
            order_amount=Decimal(data["order_amount"]),
            created_at=float(data["created_at"]),
            is_active=bool(data.get("is_active", True)),
            inventory=BotInventory(Decimal(inv.get("quote", "0")), Decimal(inv.get("base", "0"))),
            open_order_ids=list(data.get("open_order_ids", [])),
        )


class MarketMakerEngine:
    """Bot lifecycle and per-tick requoting."""

    def __init__(self, orders: OrderMatchingEngine) -> None:
        self.orders = orders

    def create_bot(
        self,
        account: AccountState,
        price_range_lower: Any,
        price_range_upper: Any,
        spread: Any,
        order_amount: Any,
        initial_quote: Any,
        now: float,
        pair: Any = DEFAULT_BOT_PAIR,
    ) -> MarketMakerBot:
        pair = TradingPair.parse(pair)
        lower = positive(price_range_lower, "price_range_lower")
        upper = positive(price_range_upper, "price_range_upper")
        if upper <= lower:
            raise InvalidAmount("price_range_upper must be above price_range_lower")
        spread = positive(spread, "spread")
        if spread >= 200:
            raise InvalidAmount(f"spread must be below 200%, got {spread}")
        order_amount = positive(order_amount, "order_amount")
        initial_quote = positive(initial_quote, "initial_quote")

        account.ledger.debit(pair.quote, initial_quote)
        bot = MarketMakerBot(
            id=account.next_id("bot"),
            pair=pair,
            price_range_lower=lower,
            price_range_upper=upper,
            spread_pct=spread,
            order_amount=order_amount,
            created_at=now,
            inventory=BotInventory(quote=initial_quote),
        )
        account.bots[bot.id] = bot
        logger.info("Created bot %s on %s [%s, %s] funded with %s", bot.id, pair, lower, upper, initial_quote)
        return bot

    def get_bot(self, account: AccountState, bot_id: str) -> MarketMakerBot:
        bot = account.bots.get(bot_id)
        if bot is None:
            raise NotFound(f"Bot {bot_id} not found")
        return bot

    def toggle_bot(self, account: AccountState, bot_id: str) -> MarketMakerBot:
        bot = self.get_bot(account, bot_id)
        bot.is_active = not bot.is_active
        logger.info("Bot %s is now %s", bot_id, "active" if bot.is_active else "inactive")
        return bot

    def remove_bot(self, account: AccountState, bot_id: str, now: float) -> MarketMakerBot:
        """Cancel the bot's quotes and return its whole inventory to the account."""
        bot = self.get_bot(account, bot_id)
        self._cancel_quotes(account, bot, now)
        account.ledger.credit(bot.pair.quote, bot.inventory.quote)
        account.ledger.credit(bot.pair.base, bot.inventory.base)
        del account.bots[bot_id]
        logger.info(
            "Removed bot %s, returned %s %s and %s %s",
            bot_id, bot.inventory.quote, bot.pair.quote.value, bot.inventory.base, bot.pair.base.value,
        )
        return bot

    def _cancel_quotes(self, account: AccountState, bot: MarketMakerBot, now: float) -> None:
        for order_id in list(bot.open_order_ids):
            if order_id in account.open_orders:
                self.orders.cancel_order(account, order_id, now, silent=True)
        bot.open_order_ids.clear()

    def requote(
        self, account: AccountState, pair: TradingPair, price: Decimal, now: float
    ) -> List[DomainEvent]:
        events: List[DomainEvent] = []
        for bot in account.bots.values():
            if not bot.is_active or bot.pair != pair:
                continue
            self._cancel_quotes(account, bot, now)
            # Outside the band the bot stays flat until the price returns.
            if not bot.in_range(price):
                continue

            buy_price, sell_price = bot.quote_prices(price)
            placed = []
            if bot.inventory.quote >= buy_price * bot.order_amount:
                placed.append(self.orders.place_bot_order(account, bot, OrderSide.BUY, buy_price, now))
            if bot.inventory.base >= bot.order_amount:
                placed.append(self.orders.place_bot_order(account, bot, OrderSide.SELL, sell_price, now))
            events.append(DomainEvent.create(
                account, EventKind.BOT_REQUOTED, bot.id, now,
                pair=pair.symbol, price=price, orders=",".join(o.id for o in placed),
            ))
        return events
