"""
tradesim Liquidity Pool

Share-proportional vault over the USDT / USDT_SOL reserves, shared by both
account modes. Depositors receive GDP share tokens priced at
``(reserve_a + reserve_b) / total_shares``; an empty pool prices a share
at exactly 1.

Invariants:
  - total_shares == 0  <=>  both reserves are empty
  - minting ``amount / share_price`` keeps the share price unchanged
"""

from __future__ import annotations

import logging
from dataclasses import dataclass
from decimal import Decimal
from typing import TYPE_CHECKING, Any, Dict

from .. import constants
from ..exceptions import InsufficientLiquidity, InvalidAmount, InvalidState
from .assets import ONE, POOL_ASSETS, SHARE_TOKEN, ZERO, Asset, positive

if TYPE_CHECKING:
    from .state import AccountState

logger = logging.getLogger(__name__)


@dataclass
class LiquidityPoolState:
    reserve_a: Decimal = constants.POOL_INITIAL_RESERVE_A    # USDT
    reserve_b: Decimal = constants.POOL_INITIAL_RESERVE_B    # USDT_SOL
    total_shares: Decimal = constants.POOL_INITIAL_SHARES

    @property
    def share_price(self) -> Decimal:
        if self.total_shares == 0:
            return ONE
        return (self.reserve_a + self.reserve_b) / self.total_shares

    def reserve(self, asset: Asset) -> Decimal:
        return self.reserve_a if asset == POOL_ASSETS[0] else self.reserve_b

    def to_dict(self) -> Dict[str, Any]:
        return {
            "reserve_a": str(self.reserve_a),
            "reserve_b": str(self.reserve_b),
            "total_shares": str(self.total_shares),
            "share_price": str(self.share_price),
        }

    @classmethod
    def from_dict(cls, data: Dict[str, Any]) -> LiquidityPoolState:
        return cls(
            reserve_a=Decimal(data["reserve_a"]),
            reserve_b=Decimal(data["reserve_b"]),
            total_shares=Decimal(data["total_shares"]),
        )


def _pool_asset(value: Any) -> Asset:
    asset = Asset.parse(value)
    if asset not in POOL_ASSETS:
        raise InvalidAmount(f"{asset.value} is not a pool asset")
    return asset


class LiquidityPool:
    """Mints and burns GDP shares against the pool reserves."""

    def __init__(self, state: LiquidityPoolState) -> None:
        self.state = state

    @property
    def share_price(self) -> Decimal:
        return self.state.share_price

    # ------------------------------------------------------------------
    # Pool-side math
    # ------------------------------------------------------------------

    def deposit(self, asset: Any, amount: Any) -> Decimal:
        """Add *amount* of *asset* to its reserve; returns shares minted."""
        asset = _pool_asset(asset)
        amount = positive(amount, "amount")
        shares = amount / self.share_price
        if asset == POOL_ASSETS[0]:
            self.state.reserve_a += amount
        else:
            self.state.reserve_b += amount
        self.state.total_shares += shares
        self._check_invariant()
        return shares

    def withdraw(self, lp_amount: Any, target_asset: Any) -> Decimal:
        """
        Burn *lp_amount* shares; returns the value paid out in *target_asset*.

        The payout comes from the target reserve while both reserves shrink
        by the burned fraction.

        Raises:
            InvalidAmount: more shares than exist
            InsufficientLiquidity: target reserve cannot cover the payout
        """
        target = _pool_asset(target_asset)
        lp_amount = positive(lp_amount, "lp_amount")
        state = self.state
        if lp_amount > state.total_shares:
            raise InvalidAmount(
                f"Cannot burn {lp_amount} shares; pool has {state.total_shares}"
            )
        value = lp_amount * state.share_price
        if value > state.reserve(target):
            raise InsufficientLiquidity(
                f"{target.value} reserve {state.reserve(target)} cannot pay {value}"
            )

        if lp_amount == state.total_shares:
            state.reserve_a = ZERO
            state.reserve_b = ZERO
            state.total_shares = ZERO
        else:
            fraction = lp_amount / state.total_shares
            state.reserve_a -= state.reserve_a * fraction
            state.reserve_b -= state.reserve_b * fraction
            state.total_shares -= lp_amount
        self._check_invariant()
        return value

    def _check_invariant(self) -> None:
        state = self.state
        empty = state.reserve_a == 0 and state.reserve_b == 0
        if (state.total_shares == 0) != empty or min(
            state.reserve_a, state.reserve_b, state.total_shares
        ) < 0:
            raise InvalidState(f"Pool invariant violated: {state.to_dict()}")

    # ------------------------------------------------------------------
    # Account-side operations
    # ------------------------------------------------------------------

    def add_liquidity(self, account: AccountState, amount: Any, asset: Any) -> Decimal:
        asset = _pool_asset(asset)
        amount = positive(amount, "amount")
        account.ledger.debit(asset, amount)
        shares = self.deposit(asset, amount)
        account.ledger.credit(SHARE_TOKEN, shares)
        logger.info("Added %s %s to pool, minted %s GDP", amount, asset.value, shares)
        return shares

    def remove_liquidity(self, account: AccountState, lp_amount: Any, target_asset: Any) -> Decimal:
        lp_amount = positive(lp_amount, "lp_amount")
        account.ledger.require_available(SHARE_TOKEN, lp_amount)
        target = _pool_asset(target_asset)
        value = self.withdraw(lp_amount, target)
        account.ledger.debit(SHARE_TOKEN, lp_amount)
        account.ledger.credit(target, value)
        logger.info("Burned %s GDP, paid %s %s", lp_amount, value, target.value)
        return value
