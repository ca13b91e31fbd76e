"""
tradesim Assets and Trading Pairs

Closed enumeration of the assets the simulator understands. Every asset
symbol and pair string entering the engine goes through ``Asset.parse`` /
``TradingPair.parse`` so unknown keys are rejected at the boundary instead
of producing silent zero arithmetic.

Also hosts the numeric boundary helpers shared by every command.
"""

from __future__ import annotations

from dataclasses import dataclass
from decimal import Decimal, InvalidOperation
from enum import Enum
from typing import Any

from ..exceptions import InvalidAmount, UnknownAsset

ZERO = Decimal("0")
ONE = Decimal("1")


class Asset(str, Enum):
    USDT = "USDT"
    BTC = "BTC"
    ETH = "ETH"
    SOL = "SOL"
    BNB = "BNB"
    DOGE = "DOGE"
    USDT_SOL = "USDT_SOL"   # bridged USDT on Solana
    GDP = "GDP"             # liquidity-pool share token

    @classmethod
    def parse(cls, value: Any) -> Asset:
        if isinstance(value, Asset):
            return value
        try:
            return cls(str(value).strip().upper())
        except ValueError:
            raise UnknownAsset(f"Unsupported asset: {value!r}") from None


QUOTE_ASSET = Asset.USDT
SHARE_TOKEN = Asset.GDP
STABLE_ASSETS = frozenset({Asset.USDT, Asset.USDT_SOL})
POOL_ASSETS = (Asset.USDT, Asset.USDT_SOL)


@dataclass(frozen=True)
class TradingPair:
    """A ``BASE/QUOTE`` pair; quote is always USDT."""
    base: Asset
    quote: Asset = QUOTE_ASSET

    @classmethod
    def parse(cls, value: Any) -> TradingPair:
        if isinstance(value, TradingPair):
            return value
        text = str(value).strip().upper()
        base_sym, sep, quote_sym = text.partition("/")
        if not sep:
            raise UnknownAsset(f"Malformed trading pair: {value!r}")
        pair = cls(Asset.parse(base_sym), Asset.parse(quote_sym))
        if pair not in SUPPORTED_PAIRS:
            raise UnknownAsset(f"Unsupported trading pair: {value!r}")
        return pair

    @property
    def symbol(self) -> str:
        return f"{self.base.value}/{self.quote.value}"

    def __str__(self) -> str:
        return self.symbol


SUPPORTED_PAIRS = frozenset(
    TradingPair(base) for base in (Asset.BTC, Asset.ETH, Asset.SOL, Asset.BNB, Asset.DOGE)
)


def pair_for_asset(asset: Asset) -> TradingPair | None:
    """The USDT pair that prices *asset*, if any."""
    candidate = TradingPair(asset)
    return candidate if candidate in SUPPORTED_PAIRS else None


# ---------------------------------------------------------------------------
# Numeric boundary helpers
# ---------------------------------------------------------------------------

def to_decimal(value: Any, name: str = "amount") -> Decimal:
    """Convert user input to a finite Decimal or raise InvalidAmount."""
    if isinstance(value, bool) or value is None:
        raise InvalidAmount(f"{name} must be a number, got {value!r}")
    try:
        result = value if isinstance(value, Decimal) else Decimal(str(value))
    except (InvalidOperation, ValueError):
        raise InvalidAmount(f"{name} must be a number, got {value!r}") from None
    if not result.is_finite():
        raise InvalidAmount(f"{name} must be finite, got {value!r}")
    return result


def positive(value: Any, name: str = "amount") -> Decimal:
    result = to_decimal(value, name)
    if result <= 0:
        raise InvalidAmount(f"{name} must be positive, got {result}")
    return result
