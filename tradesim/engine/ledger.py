"""
tradesim Account Ledger

Owns the balances of exactly one account. All other components move funds
only through it.

Reservation model:
  - ``balance(asset)``   : everything the account holds in its wallet
  - ``held(asset)``      : sum of active holds (named claims, e.g. open orders)
  - ``available(asset)`` : balance minus held; what a new command may spend

A hold reduces availability without transferring ownership; ``consume``
turns a hold into a debit at settlement time. Debits and holds are checked
against ``available`` so no mutation can take a balance (or availability)
below zero.
"""

from __future__ import annotations

import hashlib
from dataclasses import dataclass
from decimal import Decimal
from typing import Any, Dict, Iterable, List, Optional

from ..exceptions import InsufficientBalance, InvalidAmount, NotFound
from .assets import ZERO, Asset


@dataclass
class Hold:
    """A named claim against an asset balance."""
    id: str
    asset: Asset
    amount: Decimal
    reason: str
    ref: str = ""

    def to_dict(self) -> Dict[str, Any]:
        return {
            "id": self.id,
            "asset": self.asset.value,
            "amount": str(self.amount),
            "reason": self.reason,
            "ref": self.ref,
        }

    @classmethod
    def from_dict(cls, data: Dict[str, Any]) -> Hold:
        return cls(
            id=data["id"],
            asset=Asset.parse(data["asset"]),
            amount=Decimal(data["amount"]),
            reason=data["reason"],
            ref=data.get("ref", ""),
        )


class AccountLedger:
    """Balances plus explicit holds for one account."""

    def __init__(
        self,
        balances: Optional[Dict[Asset, Decimal]] = None,
        holds: Optional[Iterable[Hold]] = None,
        hold_sequence: int = 0,
    ) -> None:
        self._balances: Dict[Asset, Decimal] = {asset: ZERO for asset in Asset}
        for asset, amount in (balances or {}).items():
            amount = Decimal(amount)
            if amount < 0:
                raise InvalidAmount(f"Negative opening balance for {asset}")
            self._balances[Asset.parse(asset)] = amount
        self._holds: Dict[str, Hold] = {h.id: h for h in (holds or [])}
        self._hold_sequence = hold_sequence

    # -- Queries ------------------------------------------------------------

    def balance(self, asset: Asset) -> Decimal:
        return self._balances[Asset.parse(asset)]

    def held(self, asset: Asset) -> Decimal:
        asset = Asset.parse(asset)
        return sum((h.amount for h in self._holds.values() if h.asset == asset), ZERO)

    def available(self, asset: Asset) -> Decimal:
        return self.balance(asset) - self.held(asset)

    @property
    def balances(self) -> Dict[Asset, Decimal]:
        return dict(self._balances)

    def available_balances(self) -> Dict[Asset, Decimal]:
        return {asset: self.available(asset) for asset in Asset}

    def get_hold(self, hold_id: str) -> Hold:
        hold = self._holds.get(hold_id)
        if hold is None:
            raise NotFound(f"Hold {hold_id} not found")
        return hold

    @property
    def holds(self) -> List[Hold]:
        return list(self._holds.values())

    # -- Mutations ----------------------------------------------------------

    def require_available(self, asset: Asset, amount: Decimal) -> None:
        available = self.available(asset)
        if amount > available:
            raise InsufficientBalance(Asset.parse(asset).value, amount, available)

    def credit(self, asset: Asset, amount: Decimal) -> Decimal:
        if amount < 0:
            raise InvalidAmount(f"Credit amount must be non-negative, got {amount}")
        asset = Asset.parse(asset)
        self._balances[asset] += amount
        return self._balances[asset]

    def debit(self, asset: Asset, amount: Decimal) -> Decimal:
        if amount < 0:
            raise InvalidAmount(f"Debit amount must be non-negative, got {amount}")
        asset = Asset.parse(asset)
        self.require_available(asset, amount)
        self._balances[asset] -= amount
        return self._balances[asset]

    def reserve(self, asset: Asset, amount: Decimal, reason: str, ref: str = "") -> str:
        """Place a hold on *amount* of *asset*; returns the hold id."""
        if amount <= 0:
            raise InvalidAmount(f"Hold amount must be positive, got {amount}")
        asset = Asset.parse(asset)
        self.require_available(asset, amount)
        self._hold_sequence += 1
        hold_id = hashlib.blake2b(
            f"{reason}:{ref}:{self._hold_sequence}".encode(), digest_size=8
        ).hexdigest()
        self._holds[hold_id] = Hold(hold_id, asset, amount, reason, ref)
        return hold_id

    def release(self, hold_id: str) -> Hold:
        """Drop a hold, restoring availability."""
        hold = self.get_hold(hold_id)
        del self._holds[hold_id]
        return hold

    def consume(self, hold_id: str) -> Hold:
        """Release a hold and debit exactly the held amount."""
        hold = self.release(hold_id)
        self.debit(hold.asset, hold.amount)
        return hold

    # -- Serialization ------------------------------------------------------

    def to_dict(self) -> Dict[str, Any]:
        return {
            "balances": {a.value: str(v) for a, v in self._balances.items()},
            "holds": [h.to_dict() for h in self._holds.values()],
            "hold_sequence": self._hold_sequence,
        }

    @classmethod
    def from_dict(cls, data: Dict[str, Any]) -> AccountLedger:
        return cls(
            balances={Asset.parse(a): Decimal(v) for a, v in data.get("balances", {}).items()},
            holds=[Hold.from_dict(h) for h in data.get("holds", [])],
            hold_sequence=int(data.get("hold_sequence", 0)),
        )
