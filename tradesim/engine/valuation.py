"""
tradesim Portfolio Valuation

Read-only view over an account: net worth at current prices and PnL
against the baseline captured when the account was first funded and fully
priced.
"""

from __future__ import annotations

from dataclasses import dataclass, field
from decimal import Decimal
from typing import Any, Dict, FrozenSet, Optional

from .assets import SHARE_TOKEN, ZERO, Asset
from .pool import LiquidityPool
from .prices import PriceBook
from .state import AccountState


@dataclass(frozen=True)
class Valuation:
    balances: Decimal
    futures: Decimal
    bots: Decimal
    lending: Decimal
    staking: Decimal
    bridges: Decimal
    missing_prices: FrozenSet[Asset] = field(default_factory=frozenset)

    @property
    def net_worth(self) -> Decimal:
        return self.balances + self.futures + self.bots + self.lending + self.staking + self.bridges

    @property
    def complete(self) -> bool:
        return not self.missing_prices

    def to_dict(self) -> Dict[str, Any]:
        return {
            "net_worth": str(self.net_worth),
            "balances": str(self.balances),
            "futures": str(self.futures),
            "bots": str(self.bots),
            "lending": str(self.lending),
            "staking": str(self.staking),
            "bridges": str(self.bridges),
            "missing_prices": sorted(a.value for a in self.missing_prices),
        }


@dataclass(frozen=True)
class PnL:
    value: Decimal
    percentage: Decimal


class PortfolioValuation:
    def __init__(self, prices: PriceBook, pool: LiquidityPool) -> None:
        self.prices = prices
        self.pool = pool

    def price(self, asset: Asset) -> Optional[Decimal]:
        asset = Asset.parse(asset)
        if asset == SHARE_TOKEN:
            return self.pool.share_price
        return self.prices.price_of(asset)

    def value(self, account: AccountState) -> Valuation:
        missing = set()

        def worth(asset: Asset, amount: Decimal) -> Decimal:
            if amount == 0:
                return ZERO
            price = self.price(asset)
            if price is None:
                missing.add(asset)
                return ZERO
            return amount * price

        balances = sum((worth(a, amt) for a, amt in account.ledger.balances.items()), ZERO)
        futures = sum(
            (p.margin + p.unrealized_pnl for p in account.positions.values()), ZERO
        )
        bots = sum(
            (
                worth(b.pair.quote, b.inventory.quote) + worth(b.pair.base, b.inventory.base)
                for b in account.bots.values()
            ),
            ZERO,
        )
        lending = sum((worth(a, amt) for a, amt in account.lending.supplied.items()), ZERO) - sum(
            (worth(a, amt) for a, amt in account.lending.borrowed.items()), ZERO
        )
        staking = worth(SHARE_TOKEN, account.staking.staked)
        bridges = sum((t.credit for t in account.pending_bridges.values()), ZERO)

        return Valuation(
            balances=balances,
            futures=futures,
            bots=bots,
            lending=lending,
            staking=staking,
            bridges=bridges,
            missing_prices=frozenset(missing),
        )

    def net_worth(self, account: AccountState) -> Decimal:
        return self.value(account).net_worth

    def pnl(self, account: AccountState) -> PnL:
        baseline = account.baseline_net_worth
        if baseline is None or baseline == 0:
            return PnL(ZERO, ZERO)
        value = self.net_worth(account) - baseline
        return PnL(value, value / baseline * 100)

    def capture_baseline(self, account: AccountState) -> bool:
        """Record the baseline once the account is funded and fully priced."""
        if account.baseline_net_worth is not None:
            return False
        valuation = self.value(account)
        if not valuation.complete or valuation.net_worth <= 0:
            return False
        account.baseline_net_worth = valuation.net_worth
        return True
