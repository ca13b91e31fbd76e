"""
tradesim Domain Events

Immutable records emitted by tick stages and commands. Listeners registered
on the engine receive them after the owning transaction commits.
"""

from __future__ import annotations

from dataclasses import dataclass, field
from enum import Enum
from typing import TYPE_CHECKING, Any, Dict

if TYPE_CHECKING:
    from .state import AccountState


class EventKind(str, Enum):
    ORDER_FILLED = "order_filled"
    ORDER_CANCELLED = "order_cancelled"
    POSITION_CLOSED = "position_closed"
    POSITION_LIQUIDATED = "position_liquidated"
    STOP_LOSS_TRIGGERED = "stop_loss_triggered"
    TAKE_PROFIT_TRIGGERED = "take_profit_triggered"
    BOT_REQUOTED = "bot_requoted"
    REWARDS_ACCRUED = "rewards_accrued"
    BRIDGE_SETTLED = "bridge_settled"


@dataclass(frozen=True)
class DomainEvent:
    kind: EventKind
    mode: str
    ref_id: str
    timestamp: float
    data: Dict[str, Any] = field(default_factory=dict)

    @classmethod
    def create(
        cls, account: AccountState, kind: EventKind, ref_id: str, timestamp: float, **data: Any
    ) -> DomainEvent:
        return cls(kind=kind, mode=account.mode.value, ref_id=ref_id, timestamp=timestamp, data=data)

    def to_dict(self) -> Dict[str, Any]:
        return {
            "kind": self.kind.value,
            "mode": self.mode,
            "ref_id": self.ref_id,
            "timestamp": self.timestamp,
            "data": {k: str(v) for k, v in self.data.items()},
        }
