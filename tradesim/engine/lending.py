"""
tradesim Lending Market

Per-account supplied and borrowed amounts over a fixed set of markets.

Health factor:
    HF = Σ supplied[a] * price[a] * collateral_factor[a] / Σ borrowed[a] * price[a]
    HF = +inf when nothing is borrowed.

Bands: safe (HF > 2), warning (1.25 < HF <= 2), danger (HF <= 1.25).
With ``enforce_health_factor`` enabled, borrow and withdraw are rejected
when they would leave HF below 1.
"""

from __future__ import annotations

import logging
from dataclasses import dataclass, field
from decimal import Decimal
from enum import Enum
from typing import TYPE_CHECKING, Any, Callable, Dict, Iterable, List, Optional

from .. import constants
from ..exceptions import HealthFactorTooLow, InvalidAmount, InvalidState
from .assets import ONE, ZERO, Asset, positive

if TYPE_CHECKING:
    from ..config import LendingConfig
    from .state import AccountState

logger = logging.getLogger(__name__)

INFINITY = Decimal("Infinity")

PriceLookup = Callable[[Asset], Optional[Decimal]]

# Simulated market-wide depth shown next to each market, in USDT terms
SIMULATED_TOTAL_SUPPLIED = Decimal("1000000")
SIMULATED_TOTAL_BORROWED = Decimal("500000")


class HealthBand(str, Enum):
    SAFE = "safe"
    WARNING = "warning"
    DANGER = "danger"


@dataclass(frozen=True)
class LendingAsset:
    asset: Asset
    supply_apy: Decimal
    borrow_apy: Decimal
    collateral_factor: Decimal


@dataclass
class LendingPosition:
    supplied: Dict[Asset, Decimal] = field(default_factory=dict)
    borrowed: Dict[Asset, Decimal] = field(default_factory=dict)

    def supplied_of(self, asset: Asset) -> Decimal:
        return self.supplied.get(asset, ZERO)

    def borrowed_of(self, asset: Asset) -> Decimal:
        return self.borrowed.get(asset, ZERO)

    def to_dict(self) -> Dict[str, Any]:
        return {
            "supplied": {a.value: str(v) for a, v in self.supplied.items()},
            "borrowed": {a.value: str(v) for a, v in self.borrowed.items()},
        }

    @classmethod
    def from_dict(cls, data: Dict[str, Any]) -> LendingPosition:
        return cls(
            supplied={Asset.parse(a): Decimal(v) for a, v in data.get("supplied", {}).items()},
            borrowed={Asset.parse(a): Decimal(v) for a, v in data.get("borrowed", {}).items()},
        )


def health_band(hf: Decimal) -> HealthBand:
    if hf > constants.HEALTH_FACTOR_SAFE:
        return HealthBand.SAFE
    if hf > constants.HEALTH_FACTOR_WARNING:
        return HealthBand.WARNING
    return HealthBand.DANGER


class LendingMarket:
    """Supply / borrow operations plus health-factor evaluation."""

    def __init__(self, assets: Iterable[LendingAsset], enforce_health_factor: bool = True) -> None:
        self.assets: Dict[Asset, LendingAsset] = {a.asset: a for a in assets}
        self.enforce_health_factor = enforce_health_factor

    @classmethod
    def from_config(cls, config: LendingConfig) -> LendingMarket:
        return cls(
            [
                LendingAsset(
                    asset=Asset.parse(m.asset),
                    supply_apy=m.supply_apy,
                    borrow_apy=m.borrow_apy,
                    collateral_factor=m.collateral_factor,
                )
                for m in config.markets
            ],
            enforce_health_factor=config.enforce_health_factor,
        )

    def _market(self, value: Any) -> LendingAsset:
        asset = Asset.parse(value)
        market = self.assets.get(asset)
        if market is None:
            raise InvalidAmount(f"{asset.value} has no lending market")
        return market

    # ------------------------------------------------------------------
    # Health factor
    # ------------------------------------------------------------------

    def health_factor(self, position: LendingPosition, prices: PriceLookup) -> Decimal:
        """Unpriced assets contribute nothing to either side."""
        collateral = ZERO
        for asset, amount in position.supplied.items():
            price = prices(asset)
            market = self.assets.get(asset)
            if price is None or market is None:
                continue
            collateral += amount * price * market.collateral_factor
        debt = ZERO
        for asset, amount in position.borrowed.items():
            price = prices(asset)
            if price is None:
                continue
            debt += amount * price
        if debt == 0:
            return INFINITY
        return collateral / debt

    def _require_healthy(self, position: LendingPosition, prices: PriceLookup, action: str) -> None:
        if not self.enforce_health_factor:
            return
        hf = self.health_factor(position, prices)
        if hf < ONE:
            raise HealthFactorTooLow(f"{action} would leave health factor at {hf:.4f}")

    # ------------------------------------------------------------------
    # Operations
    # ------------------------------------------------------------------

    def supply(self, account: AccountState, asset: Any, amount: Any) -> LendingPosition:
        market = self._market(asset)
        amount = positive(amount, "amount")
        account.ledger.debit(market.asset, amount)
        supplied = account.lending.supplied
        supplied[market.asset] = supplied.get(market.asset, ZERO) + amount
        logger.info("Supplied %s %s", amount, market.asset.value)
        return account.lending

    def withdraw(
        self, account: AccountState, asset: Any, amount: Any, prices: PriceLookup
    ) -> LendingPosition:
        market = self._market(asset)
        amount = positive(amount, "amount")
        position = account.lending
        current = position.supplied_of(market.asset)
        if amount > current:
            raise InvalidAmount(f"Cannot withdraw {amount} {market.asset.value}; supplied {current}")

        candidate = LendingPosition(dict(position.supplied), dict(position.borrowed))
        candidate.supplied[market.asset] = current - amount
        self._require_healthy(candidate, prices, "withdraw")

        position.supplied[market.asset] = current - amount
        if position.supplied[market.asset] == 0:
            del position.supplied[market.asset]
        account.ledger.credit(market.asset, amount)
        logger.info("Withdrew %s %s", amount, market.asset.value)
        return position

    def borrow(
        self, account: AccountState, asset: Any, amount: Any, prices: PriceLookup
    ) -> LendingPosition:
        market = self._market(asset)
        amount = positive(amount, "amount")
        if prices(market.asset) is None:
            raise InvalidState(f"No price for {market.asset.value}; cannot borrow")
        position = account.lending

        candidate = LendingPosition(dict(position.supplied), dict(position.borrowed))
        candidate.borrowed[market.asset] = position.borrowed_of(market.asset) + amount
        self._require_healthy(candidate, prices, "borrow")

        position.borrowed[market.asset] = position.borrowed_of(market.asset) + amount
        account.ledger.credit(market.asset, amount)
        logger.info("Borrowed %s %s", amount, market.asset.value)
        return position

    def repay(self, account: AccountState, asset: Any, amount: Any) -> LendingPosition:
        market = self._market(asset)
        amount = positive(amount, "amount")
        position = account.lending
        owed = position.borrowed_of(market.asset)
        if amount > owed:
            raise InvalidAmount(f"Cannot repay {amount} {market.asset.value}; owed {owed}")
        account.ledger.debit(market.asset, amount)
        position.borrowed[market.asset] = owed - amount
        if position.borrowed[market.asset] == 0:
            del position.borrowed[market.asset]
        logger.info("Repaid %s %s", amount, market.asset.value)
        return position

    # ------------------------------------------------------------------
    # Market view
    # ------------------------------------------------------------------

    def market_view(self, prices: PriceLookup) -> List[Dict[str, Any]]:
        rows = []
        for market in self.assets.values():
            price = prices(market.asset)
            row = {
                "asset": market.asset.value,
                "supply_apy": market.supply_apy,
                "borrow_apy": market.borrow_apy,
                "collateral_factor": market.collateral_factor,
                "price": price,
                "total_supplied": None,
                "total_borrowed": None,
            }
            if price:
                row["total_supplied"] = SIMULATED_TOTAL_SUPPLIED / price
                row["total_borrowed"] = SIMULATED_TOTAL_BORROWED / price
            rows.append(row)
        return rows
