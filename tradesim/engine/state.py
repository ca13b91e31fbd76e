"""
tradesim Account State

Everything one account owns, bundled so the engine can copy, commit and
snapshot it as a unit. There are exactly two instances (paper and real);
no field here is shared between them.
"""

from __future__ import annotations

import hashlib
from dataclasses import dataclass, field
from decimal import Decimal
from enum import Enum
from typing import Any, Dict, List, Optional

from ..exceptions import InvalidAmount
from .assets import Asset
from .bots import MarketMakerBot
from .futures import FuturesPosition
from .ledger import AccountLedger
from .lending import LendingPosition
from .orders import Order
from .staking import StakingState


class AccountMode(str, Enum):
    PAPER = "paper"
    REAL = "real"

    @classmethod
    def parse(cls, value: Any) -> AccountMode:
        if isinstance(value, AccountMode):
            return value
        try:
            return cls(str(value).strip().lower())
        except ValueError:
            raise InvalidAmount(f"Unknown account mode: {value!r}") from None

    @property
    def other(self) -> AccountMode:
        return AccountMode.REAL if self is AccountMode.PAPER else AccountMode.PAPER


@dataclass
class PendingBridgeTransfer:
    """USDT debited on the source chain, USDT_SOL not yet credited."""
    id: str
    amount: Decimal
    fee: Decimal
    created_at: float
    settles_at: float

    @property
    def credit(self) -> Decimal:
        return self.amount - self.fee

    def to_dict(self) -> Dict[str, Any]:
        return {
            "id": self.id,
            "amount": str(self.amount),
            "fee": str(self.fee),
            "created_at": self.created_at,
            "settles_at": self.settles_at,
        }

    @classmethod
    def from_dict(cls, data: Dict[str, Any]) -> PendingBridgeTransfer:
        return cls(
            id=data["id"],
            amount=Decimal(data["amount"]),
            fee=Decimal(data["fee"]),
            created_at=float(data["created_at"]),
            settles_at=float(data["settles_at"]),
        )


@dataclass
class AccountState:
    mode: AccountMode
    ledger: AccountLedger = field(default_factory=AccountLedger)
    open_orders: Dict[str, Order] = field(default_factory=dict)
    order_history: List[Order] = field(default_factory=list)
    positions: Dict[str, FuturesPosition] = field(default_factory=dict)
    bots: Dict[str, MarketMakerBot] = field(default_factory=dict)
    lending: LendingPosition = field(default_factory=LendingPosition)
    staking: StakingState = field(default_factory=StakingState)
    pending_bridges: Dict[str, PendingBridgeTransfer] = field(default_factory=dict)
    baseline_net_worth: Optional[Decimal] = None
    sequence: int = 0

    @classmethod
    def fresh(cls, mode: AccountMode, balances: Optional[Dict[Any, Decimal]] = None) -> AccountState:
        ledger = AccountLedger({Asset.parse(a): Decimal(v) for a, v in (balances or {}).items()})
        return cls(mode=mode, ledger=ledger)

    def trim_history(self, limit: int) -> int:
        """Drop the oldest closed orders beyond *limit*; returns how many went."""
        excess = len(self.order_history) - limit
        if excess <= 0:
            return 0
        del self.order_history[:excess]
        return excess

    def next_id(self, kind: str) -> str:
        """Deterministic id: blake2b(mode:kind:sequence)."""
        self.sequence += 1
        return hashlib.blake2b(
            f"{self.mode.value}:{kind}:{self.sequence}".encode(), digest_size=8
        ).hexdigest()

    # ------------------------------------------------------------------
    # Serialization
    # ------------------------------------------------------------------

    def to_dict(self) -> Dict[str, Any]:
        return {
            "mode": self.mode.value,
            "ledger": self.ledger.to_dict(),
            "open_orders": [o.to_dict() for o in self.open_orders.values()],
            "order_history": [o.to_dict() for o in self.order_history],
            "positions": [p.to_dict() for p in self.positions.values()],
            "bots": [b.to_dict() for b in self.bots.values()],
            "lending": self.lending.to_dict(),
            "staking": self.staking.to_dict(),
            "pending_bridges": [t.to_dict() for t in self.pending_bridges.values()],
            "baseline_net_worth": (
                None if self.baseline_net_worth is None else str(self.baseline_net_worth)
            ),
            "sequence": self.sequence,
        }

    @classmethod
    def from_dict(cls, data: Dict[str, Any]) -> AccountState:
        baseline = data.get("baseline_net_worth")
        orders = [Order.from_dict(o) for o in data.get("open_orders", [])]
        positions = [FuturesPosition.from_dict(p) for p in data.get("positions", [])]
        bots = [MarketMakerBot.from_dict(b) for b in data.get("bots", [])]
        transfers = [PendingBridgeTransfer.from_dict(t) for t in data.get("pending_bridges", [])]
        return cls(
            mode=AccountMode.parse(data["mode"]),
            ledger=AccountLedger.from_dict(data.get("ledger", {})),
            open_orders={o.id: o for o in orders},
            order_history=[Order.from_dict(o) for o in data.get("order_history", [])],
            positions={p.id: p for p in positions},
            bots={b.id: b for b in bots},
            lending=LendingPosition.from_dict(data.get("lending", {})),
            staking=StakingState.from_dict(data.get("staking", {})),
            pending_bridges={t.id: t for t in transfers},
            baseline_net_worth=None if baseline is None else Decimal(baseline),
            sequence=int(data.get("sequence", 0)),
        )
