"""
tradesim Spot Limit Orders

Limit orders rest until a price tick crosses them:
  - Buy fills when tick <= limit
  - Sell fills when tick >= limit
  - Fills are whole, at the limit price
  - Every open order is backed by a ledger hold (quote for buys, base for
    sells), so available balances never go negative while it rests

Orders owned by a market-maker bot are not backed by holds. They are
checked against, and settle into, the bot's isolated inventory instead of
the account ledger.
"""

from __future__ import annotations

import logging
from dataclasses import dataclass
from decimal import Decimal
from enum import Enum
from typing import TYPE_CHECKING, Any, Dict, List, Optional

from ..exceptions import InsufficientBalance, InvalidAmount, InvalidState, NotFound
from .assets import TradingPair, positive
from .events import DomainEvent, EventKind

if TYPE_CHECKING:
    from .bots import MarketMakerBot
    from .state import AccountState

logger = logging.getLogger(__name__)


# ---------------------------------------------------------------------------
# Enums
# ---------------------------------------------------------------------------

class OrderSide(str, Enum):
    BUY = "buy"
    SELL = "sell"

    @classmethod
    def parse(cls, value: Any) -> OrderSide:
        if isinstance(value, OrderSide):
            return value
        try:
            return cls(str(value).strip().lower())
        except ValueError:
            raise InvalidAmount(f"Unknown order side: {value!r}") from None

    @property
    def opposite(self) -> OrderSide:
        return OrderSide.SELL if self is OrderSide.BUY else OrderSide.BUY


class OrderStatus(str, Enum):
    OPEN = "open"
    FILLED = "filled"
    CANCELLED = "cancelled"
    LIQUIDATED = "liquidated"   # history records of liquidated positions


# ---------------------------------------------------------------------------
# Data model
# ---------------------------------------------------------------------------

@dataclass
class Order:
    """A spot limit order, or a history record of a closed position."""
    id: str
    pair: TradingPair
    side: OrderSide
    price: Decimal              # limit price (exit price for close records)
    amount: Decimal
    created_at: float
    status: OrderStatus = OrderStatus.OPEN
    filled_at: Optional[float] = None
    bot_id: Optional[str] = None
    hold_id: Optional[str] = None
    position_id: Optional[str] = None
    realized_pnl: Optional[Decimal] = None

    @property
    def total(self) -> Decimal:
        return self.price * self.amount

    @property
    def is_open(self) -> bool:
        return self.status == OrderStatus.OPEN

    def to_dict(self) -> Dict[str, Any]:
        return {
            "id": self.id,
            "pair": self.pair.symbol,
            "side": self.side.value,
            "price": str(self.price),
            "amount": str(self.amount),
            "total": str(self.total),
            "created_at": self.created_at,
            "status": self.status.value,
            "filled_at": self.filled_at,
            "bot_id": self.bot_id,
            "hold_id": self.hold_id,
            "position_id": self.position_id,
            "realized_pnl": None if self.realized_pnl is None else str(self.realized_pnl),
        }

    @classmethod
    def from_dict(cls, data: Dict[str, Any]) -> Order:
        pnl = data.get("realized_pnl")
        return cls(
            id=data["id"],
            pair=TradingPair.parse(data["pair"]),
            side=OrderSide(data["side"]),
            price=Decimal(data["price"]),
            amount=Decimal(data["amount"]),
            created_at=float(data["created_at"]),
            status=OrderStatus(data["status"]),
            filled_at=data.get("filled_at"),
            bot_id=data.get("bot_id"),
            hold_id=data.get("hold_id"),
            position_id=data.get("position_id"),
            realized_pnl=None if pnl is None else Decimal(pnl),
        )


def crosses(side: OrderSide, limit: Decimal, price: Decimal) -> bool:
    """True when a tick at *price* fills an order on *side* limited at *limit*."""
    if side == OrderSide.BUY:
        return price <= limit
    return price >= limit


# ---------------------------------------------------------------------------
# Matching engine
# ---------------------------------------------------------------------------

class OrderMatchingEngine:
    """
    Places, cancels and fills spot limit orders against one account.

    The engine itself is stateless; every method takes the account it acts
    on so the same instance serves both paper and real accounts.
    """

    def place_order(
        self,
        account: AccountState,
        side: Any,
        pair: Any,
        price: Any,
        amount: Any,
        now: float,
    ) -> Order:
        side = OrderSide.parse(side)
        pair = TradingPair.parse(pair)
        price = positive(price, "price")
        amount = positive(amount, "amount")

        if side == OrderSide.BUY:
            hold_asset, hold_amount = pair.quote, price * amount
        else:
            hold_asset, hold_amount = pair.base, amount
        account.ledger.require_available(hold_asset, hold_amount)

        order_id = account.next_id("order")
        hold_id = account.ledger.reserve(hold_asset, hold_amount, "order", order_id)
        order = Order(
            id=order_id,
            pair=pair,
            side=side,
            price=price,
            amount=amount,
            created_at=now,
            hold_id=hold_id,
        )
        account.open_orders[order.id] = order
        logger.debug("Placed %s %s %s @ %s (%s)", side.value, amount, pair, price, order.id)
        return order

    def place_bot_order(
        self,
        account: AccountState,
        bot: MarketMakerBot,
        side: OrderSide,
        price: Decimal,
        now: float,
    ) -> Order:
        """Quote on behalf of *bot*; checked against its inventory, no hold."""
        amount = bot.order_amount
        inventory = bot.inventory
        if side == OrderSide.BUY and inventory.quote < price * amount:
            raise InsufficientBalance(f"bot {bot.id} quote", price * amount, inventory.quote)
        if side == OrderSide.SELL and inventory.base < amount:
            raise InsufficientBalance(f"bot {bot.id} base", amount, inventory.base)

        order = Order(
            id=account.next_id("order"),
            pair=bot.pair,
            side=side,
            price=price,
            amount=amount,
            created_at=now,
            bot_id=bot.id,
        )
        account.open_orders[order.id] = order
        bot.open_order_ids.append(order.id)
        return order

    def cancel_order(
        self,
        account: AccountState,
        order_id: str,
        now: float,
        silent: bool = False,
    ) -> Order:
        """
        Cancel an open order and release its hold.

        Silent cancellations (bot requotes) are not written to history.

        Raises:
            NotFound: no order with that id
            InvalidState: the order is no longer open
        """
        order = account.open_orders.get(order_id)
        if order is None:
            if any(o.id == order_id for o in account.order_history):
                raise InvalidState(f"Order {order_id} is not open")
            raise NotFound(f"Order {order_id} not found")

        del account.open_orders[order_id]
        if order.hold_id is not None:
            account.ledger.release(order.hold_id)
            order.hold_id = None
        if order.bot_id is not None:
            bot = account.bots.get(order.bot_id)
            if bot is not None and order_id in bot.open_order_ids:
                bot.open_order_ids.remove(order_id)

        order.status = OrderStatus.CANCELLED
        order.filled_at = None
        if not silent:
            account.order_history.append(order)
            logger.debug("Cancelled order %s", order_id)
        return order

    # ------------------------------------------------------------------
    # Tick matching
    # ------------------------------------------------------------------

    def match(
        self, account: AccountState, pair: TradingPair, price: Decimal, now: float
    ) -> List[DomainEvent]:
        """Fill every open order on *pair* that the tick at *price* crosses."""
        events: List[DomainEvent] = []
        for order in list(account.open_orders.values()):
            if order.pair != pair or not crosses(order.side, order.price, price):
                continue
            self._fill(account, order, now)
            events.append(DomainEvent.create(
                account, EventKind.ORDER_FILLED, order.id, now,
                pair=pair.symbol, side=order.side.value, price=order.price,
                amount=order.amount, bot_id=order.bot_id,
            ))
        return events

    def _fill(self, account: AccountState, order: Order, now: float) -> None:
        pair = order.pair
        if order.bot_id is not None:
            bot = account.bots.get(order.bot_id)
            if bot is None:
                raise InvalidState(f"Order {order.id} belongs to missing bot {order.bot_id}")
            if order.side == OrderSide.BUY:
                bot.inventory.quote -= order.total
                bot.inventory.base += order.amount
            else:
                bot.inventory.base -= order.amount
                bot.inventory.quote += order.total
            if order.id in bot.open_order_ids:
                bot.open_order_ids.remove(order.id)
        else:
            account.ledger.consume(order.hold_id)
            order.hold_id = None
            if order.side == OrderSide.BUY:
                account.ledger.credit(pair.base, order.amount)
            else:
                account.ledger.credit(pair.quote, order.total)

        del account.open_orders[order.id]
        order.status = OrderStatus.FILLED
        order.filled_at = now
        account.order_history.append(order)
        logger.info(
            "Filled %s %s %s @ %s (%s)",
            order.side.value, order.amount, pair, order.price, order.id,
        )
