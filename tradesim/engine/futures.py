"""
tradesim Leveraged Futures

Isolated-margin positions marked on every tick of their pair:
  - margin = notional / leverage, debited from the quote balance at open
  - liquidation price sits ``buffer / leverage`` away from entry, slightly
    before the margin is fully consumed
  - on each tick: liquidation first, then stop-loss, then take-profit
  - closing credits ``max(0, margin + pnl)`` back and writes a history
    record on the opposite side of the position
"""

from __future__ import annotations

import logging
from dataclasses import dataclass
from decimal import Decimal
from enum import Enum
from typing import TYPE_CHECKING, Any, Dict, List, Optional, Tuple

from .. import constants
from ..exceptions import InvalidAmount, InvalidState, NotFound
from .assets import ONE, ZERO, TradingPair, positive
from .events import DomainEvent, EventKind
from .orders import Order, OrderSide, OrderStatus

if TYPE_CHECKING:
    from .state import AccountState

logger = logging.getLogger(__name__)


# ---------------------------------------------------------------------------
# Enums
# ---------------------------------------------------------------------------

class PositionSide(str, Enum):
    LONG = "long"
    SHORT = "short"

    @classmethod
    def parse(cls, value: Any) -> PositionSide:
        if isinstance(value, PositionSide):
            return value
        try:
            return cls(str(value).strip().lower())
        except ValueError:
            raise InvalidAmount(f"Unknown position side: {value!r}") from None

    @property
    def closing_side(self) -> OrderSide:
        return OrderSide.SELL if self is PositionSide.LONG else OrderSide.BUY


class CloseReason(str, Enum):
    MANUAL = "manual"
    LIQUIDATION = "liquidation"
    STOP_LOSS = "stop_loss"
    TAKE_PROFIT = "take_profit"


_REASON_EVENTS = {
    CloseReason.MANUAL: EventKind.POSITION_CLOSED,
    CloseReason.LIQUIDATION: EventKind.POSITION_LIQUIDATED,
    CloseReason.STOP_LOSS: EventKind.STOP_LOSS_TRIGGERED,
    CloseReason.TAKE_PROFIT: EventKind.TAKE_PROFIT_TRIGGERED,
}


# ---------------------------------------------------------------------------
# Data model
# ---------------------------------------------------------------------------

@dataclass
class FuturesPosition:
    """A single isolated-margin futures position."""
    id: str
    pair: TradingPair
    side: PositionSide
    size: Decimal                      # in base units
    leverage: Decimal
    entry_price: Decimal
    margin: Decimal
    liquidation_price: Decimal
    created_at: float
    unrealized_pnl: Decimal = ZERO     # as of the last tick of the pair
    stop_loss: Optional[Decimal] = None
    take_profit: Optional[Decimal] = None

    @property
    def notional(self) -> Decimal:
        return self.size * self.entry_price

    def pnl_at(self, price: Decimal) -> Decimal:
        if self.side == PositionSide.LONG:
            return (price - self.entry_price) * self.size
        return (self.entry_price - price) * self.size

    def to_dict(self) -> Dict[str, Any]:
        return {
            "id": self.id,
            "pair": self.pair.symbol,
            "side": self.side.value,
            "size": str(self.size),
            "leverage": str(self.leverage),
            "entry_price": str(self.entry_price),
            "margin": str(self.margin),
            "liquidation_price": str(self.liquidation_price),
            "created_at": self.created_at,
            "unrealized_pnl": str(self.unrealized_pnl),
            "stop_loss": None if self.stop_loss is None else str(self.stop_loss),
            "take_profit": None if self.take_profit is None else str(self.take_profit),
        }

    @classmethod
    def from_dict(cls, data: Dict[str, Any]) -> FuturesPosition:
        sl, tp = data.get("stop_loss"), data.get("take_profit")
        return cls(
            id=data["id"],
            pair=TradingPair.parse(data["pair"]),
            side=PositionSide(data["side"]),
            size=Decimal(data["size"]),
            leverage=Decimal(data["leverage"]),
            entry_price=Decimal(data["entry_price"]),
            margin=Decimal(data["margin"]),
            liquidation_price=Decimal(data["liquidation_price"]),
            created_at=float(data["created_at"]),
            unrealized_pnl=Decimal(data.get("unrealized_pnl", "0")),
            stop_loss=None if sl is None else Decimal(sl),
            take_profit=None if tp is None else Decimal(tp),
        )


def liquidation_price_for(
    side: PositionSide, price: Decimal, leverage: Decimal, buffer: Decimal
) -> Decimal:
    """Entry price moved against the position by ``buffer / leverage``."""
    if side == PositionSide.LONG:
        return price * (ONE - buffer / leverage)
    return price * (ONE + buffer / leverage)


# ---------------------------------------------------------------------------
# Futures engine
# ---------------------------------------------------------------------------

class FuturesEngine:
    """Opens, marks, triggers and settles futures positions."""

    def __init__(
        self,
        liquidation_buffer: Decimal = constants.LIQUIDATION_BUFFER,
        max_leverage: Decimal = constants.MAX_LEVERAGE,
    ) -> None:
        self.liquidation_buffer = Decimal(liquidation_buffer)
        self.max_leverage = Decimal(max_leverage)

    def open_position(
        self,
        account: AccountState,
        side: Any,
        pair: Any,
        price: Any,
        amount: Any,
        leverage: Any,
        now: float,
        stop_loss: Any = None,
        take_profit: Any = None,
    ) -> FuturesPosition:
        side = PositionSide.parse(side)
        pair = TradingPair.parse(pair)
        price = positive(price, "price")
        amount = positive(amount, "amount")
        leverage = positive(leverage, "leverage")
        if leverage < ONE or leverage > self.max_leverage:
            raise InvalidAmount(f"leverage must be between 1 and {self.max_leverage}, got {leverage}")

        sl = None if stop_loss is None else positive(stop_loss, "stop_loss")
        tp = None if take_profit is None else positive(take_profit, "take_profit")
        self._validate_triggers(side, price, sl, tp)

        margin = price * amount / leverage
        account.ledger.debit(pair.quote, margin)

        position = FuturesPosition(
            id=account.next_id("position"),
            pair=pair,
            side=side,
            size=amount,
            leverage=leverage,
            entry_price=price,
            margin=margin,
            liquidation_price=liquidation_price_for(side, price, leverage, self.liquidation_buffer),
            created_at=now,
            stop_loss=sl,
            take_profit=tp,
        )
        account.positions[position.id] = position
        logger.info(
            "Opened %s %s %s x%s @ %s, margin %s, liq %s",
            side.value, amount, pair, leverage, price, margin, position.liquidation_price,
        )
        return position

    @staticmethod
    def _validate_triggers(
        side: PositionSide, price: Decimal, sl: Optional[Decimal], tp: Optional[Decimal]
    ) -> None:
        if side == PositionSide.LONG:
            if sl is not None and sl >= price:
                raise InvalidAmount("stop_loss of a long must be below the entry price")
            if tp is not None and tp <= price:
                raise InvalidAmount("take_profit of a long must be above the entry price")
        else:
            if sl is not None and sl <= price:
                raise InvalidAmount("stop_loss of a short must be above the entry price")
            if tp is not None and tp >= price:
                raise InvalidAmount("take_profit of a short must be below the entry price")

    def close_position(
        self, account: AccountState, position_id: str, price: Optional[Decimal], now: float
    ) -> Order:
        """Close at *price* (the latest tick of the position's pair)."""
        position = account.positions.get(position_id)
        if position is None:
            raise NotFound(f"Position {position_id} not found")
        if price is None:
            raise InvalidState(f"No price yet for {position.pair}; cannot close {position_id}")
        return self._settle(account, position, price, CloseReason.MANUAL, now)

    # ------------------------------------------------------------------
    # Tick processing
    # ------------------------------------------------------------------

    def evaluate(
        self, account: AccountState, pair: TradingPair, price: Decimal, now: float
    ) -> List[DomainEvent]:
        """Mark every position on *pair* and settle the ones the tick triggers."""
        events: List[DomainEvent] = []
        for position in list(account.positions.values()):
            if position.pair != pair:
                continue
            position.unrealized_pnl = position.pnl_at(price)
            trigger = self.trigger_for(position, price)
            if trigger is None:
                continue
            reason, exit_price = trigger
            record = self._settle(account, position, exit_price, reason, now)
            events.append(DomainEvent.create(
                account, _REASON_EVENTS[reason], position.id, now,
                pair=pair.symbol, exit_price=exit_price, realized_pnl=record.realized_pnl,
            ))
        return events

    @staticmethod
    def trigger_for(
        position: FuturesPosition, price: Decimal
    ) -> Optional[Tuple[CloseReason, Decimal]]:
        """Which close (if any) a tick at *price* triggers, and its exit price."""
        if position.side == PositionSide.LONG:
            if price <= position.liquidation_price:
                return CloseReason.LIQUIDATION, position.liquidation_price
            if position.stop_loss is not None and price <= position.stop_loss:
                return CloseReason.STOP_LOSS, position.stop_loss
            if position.take_profit is not None and price >= position.take_profit:
                return CloseReason.TAKE_PROFIT, position.take_profit
        else:
            if price >= position.liquidation_price:
                return CloseReason.LIQUIDATION, position.liquidation_price
            if position.stop_loss is not None and price >= position.stop_loss:
                return CloseReason.STOP_LOSS, position.stop_loss
            if position.take_profit is not None and price <= position.take_profit:
                return CloseReason.TAKE_PROFIT, position.take_profit
        return None

    def _settle(
        self,
        account: AccountState,
        position: FuturesPosition,
        exit_price: Decimal,
        reason: CloseReason,
        now: float,
    ) -> Order:
        pnl = position.pnl_at(exit_price)
        credit = max(ZERO, position.margin + pnl)
        account.ledger.credit(position.pair.quote, credit)
        del account.positions[position.id]

        record = Order(
            id=account.next_id("order"),
            pair=position.pair,
            side=position.side.closing_side,
            price=exit_price,
            amount=position.size,
            created_at=position.created_at,
            status=OrderStatus.LIQUIDATED if reason == CloseReason.LIQUIDATION else OrderStatus.FILLED,
            filled_at=now,
            position_id=position.id,
            realized_pnl=pnl,
        )
        account.order_history.append(record)

        log = logger.warning if reason == CloseReason.LIQUIDATION else logger.info
        log(
            "Closed %s %s (%s) @ %s, pnl %s, credited %s",
            position.side.value, position.pair, reason.value, exit_price, pnl, credit,
        )
        return record
