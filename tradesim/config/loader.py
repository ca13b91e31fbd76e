"""
tradesim TOML Configuration Loader

Loads all sections of config.toml at startup with environment variable
overrides. Each section is a dataclass with ``from_dict`` and ``apply_env``.

Environment variable mapping:
    [engine] tick_interval  → TRADESIM_TICK_INTERVAL
    [engine] initial_mode   → TRADESIM_MODE
    [engine] snapshot_path  → TRADESIM_SNAPSHOT_PATH
    [engine] log_level      → TRADESIM_LOG_LEVEL
    [feed] kind             → TRADESIM_FEED
    [feed] url              → TRADESIM_FEED_URL
    [lending] enforce_health_factor → TRADESIM_ENFORCE_HEALTH_FACTOR
"""

from __future__ import annotations

import logging
import os
import tomllib
from dataclasses import dataclass, field
from decimal import Decimal, InvalidOperation
from pathlib import Path
from typing import Any, Dict, List, Optional

from .. import constants
from ..exceptions import ConfigurationError, UnknownAsset

logger = logging.getLogger(__name__)

DEFAULT_PAIRS = ["BTC/USDT", "ETH/USDT", "SOL/USDT", "BNB/USDT", "DOGE/USDT"]


def _dec(value: Any, default: Decimal) -> Decimal:
    if value is None:
        return default
    try:
        return Decimal(str(value))
    except InvalidOperation as e:
        raise ConfigurationError(f"Not a number: {value!r}") from e


def _env_bool(value: str) -> bool:
    return value.strip().casefold() in {"1", "true", "yes", "on"}


# ---------------------------------------------------------------------------
# Subsection dataclasses
# ---------------------------------------------------------------------------


@dataclass
class EngineSectionConfig:
    """[engine] section."""
    tick_interval: float = constants.DEFAULT_TICK_INTERVAL
    pairs: List[str] = field(default_factory=lambda: list(DEFAULT_PAIRS))
    initial_mode: str = "paper"
    snapshot_path: str = str(constants.TRADESIM_SNAPSHOT_PATH)
    log_level: str = "INFO"
    history_limit: int = constants.ORDER_HISTORY_LIMIT

    @classmethod
    def from_dict(cls, data: Dict[str, Any]) -> "EngineSectionConfig":
        return cls(
            tick_interval=float(data.get("tick_interval", constants.DEFAULT_TICK_INTERVAL)),
            pairs=list(data.get("pairs", DEFAULT_PAIRS)),
            initial_mode=data.get("initial_mode", "paper"),
            snapshot_path=data.get("snapshot_path", str(constants.TRADESIM_SNAPSHOT_PATH)),
            log_level=data.get("log_level", "INFO"),
            history_limit=int(data.get("history_limit", constants.ORDER_HISTORY_LIMIT)),
        )

    def apply_env(self) -> None:
        """Override from environment variables."""
        if v := os.environ.get("TRADESIM_TICK_INTERVAL"):
            self.tick_interval = float(v)
        if v := os.environ.get("TRADESIM_MODE"):
            self.initial_mode = v
        if v := os.environ.get("TRADESIM_SNAPSHOT_PATH"):
            self.snapshot_path = v
        if v := os.environ.get("TRADESIM_LOG_LEVEL"):
            self.log_level = v


@dataclass
class FuturesConfig:
    """[futures] section."""
    liquidation_buffer: Decimal = constants.LIQUIDATION_BUFFER
    max_leverage: Decimal = constants.MAX_LEVERAGE

    @classmethod
    def from_dict(cls, data: Dict[str, Any]) -> "FuturesConfig":
        return cls(
            liquidation_buffer=_dec(data.get("liquidation_buffer"), constants.LIQUIDATION_BUFFER),
            max_leverage=_dec(data.get("max_leverage"), constants.MAX_LEVERAGE),
        )


@dataclass
class StakingConfig:
    """[staking] section."""
    apy: Decimal = constants.STAKING_APY
    seconds_per_year: int = constants.SECONDS_PER_YEAR

    @classmethod
    def from_dict(cls, data: Dict[str, Any]) -> "StakingConfig":
        return cls(
            apy=_dec(data.get("apy"), constants.STAKING_APY),
            seconds_per_year=int(data.get("seconds_per_year", constants.SECONDS_PER_YEAR)),
        )


@dataclass
class LendingMarketConfig:
    """One [[lending.markets]] entry."""
    asset: str
    supply_apy: Decimal
    borrow_apy: Decimal
    collateral_factor: Decimal

    @classmethod
    def from_dict(cls, data: Dict[str, Any]) -> "LendingMarketConfig":
        try:
            return cls(
                asset=str(data["asset"]).upper(),
                supply_apy=_dec(data["supply_apy"], Decimal("0")),
                borrow_apy=_dec(data["borrow_apy"], Decimal("0")),
                collateral_factor=_dec(data["collateral_factor"], Decimal("0")),
            )
        except KeyError as e:
            raise ConfigurationError(f"lending market entry missing {e}") from e


def _default_markets() -> List[LendingMarketConfig]:
    return [
        LendingMarketConfig("USDT", Decimal("4.5"), Decimal("6.2"), Decimal("0.85")),
        LendingMarketConfig("BTC", Decimal("1.2"), Decimal("2.5"), Decimal("0.75")),
        LendingMarketConfig("ETH", Decimal("2.1"), Decimal("3.8"), Decimal("0.75")),
        LendingMarketConfig("SOL", Decimal("3.5"), Decimal("5.1"), Decimal("0.65")),
    ]


@dataclass
class LendingConfig:
    """[lending] section."""
    enforce_health_factor: bool = True
    markets: List[LendingMarketConfig] = field(default_factory=_default_markets)

    @classmethod
    def from_dict(cls, data: Dict[str, Any]) -> "LendingConfig":
        raw_markets = data.get("markets")
        return cls(
            enforce_health_factor=data.get("enforce_health_factor", True),
            markets=(
                [LendingMarketConfig.from_dict(m) for m in raw_markets]
                if raw_markets is not None else _default_markets()
            ),
        )

    def apply_env(self) -> None:
        if v := os.environ.get("TRADESIM_ENFORCE_HEALTH_FACTOR"):
            self.enforce_health_factor = _env_bool(v)


@dataclass
class PoolConfig:
    """[pool] section: initial state of the shared liquidity pool."""
    reserve_a: Decimal = constants.POOL_INITIAL_RESERVE_A
    reserve_b: Decimal = constants.POOL_INITIAL_RESERVE_B
    total_shares: Decimal = constants.POOL_INITIAL_SHARES

    @classmethod
    def from_dict(cls, data: Dict[str, Any]) -> "PoolConfig":
        return cls(
            reserve_a=_dec(data.get("reserve_a"), constants.POOL_INITIAL_RESERVE_A),
            reserve_b=_dec(data.get("reserve_b"), constants.POOL_INITIAL_RESERVE_B),
            total_shares=_dec(data.get("total_shares"), constants.POOL_INITIAL_SHARES),
        )


@dataclass
class BridgeConfig:
    """[bridge] section."""
    fee: Decimal = constants.BRIDGE_FEE
    settlement_delay: float = constants.BRIDGE_SETTLEMENT_DELAY

    @classmethod
    def from_dict(cls, data: Dict[str, Any]) -> "BridgeConfig":
        return cls(
            fee=_dec(data.get("fee"), constants.BRIDGE_FEE),
            settlement_delay=float(data.get("settlement_delay", constants.BRIDGE_SETTLEMENT_DELAY)),
        )


def _default_paper_balances() -> Dict[str, Decimal]:
    return {
        "USDT": Decimal("100000"),
        "BTC": Decimal("10"),
        "ETH": Decimal("200"),
        "SOL": Decimal("1000"),
        "BNB": Decimal("500"),
        "DOGE": Decimal("1000000"),
    }


@dataclass
class PaperAccountConfig:
    """[paper] section: faucet balances for a fresh paper account."""
    balances: Dict[str, Decimal] = field(default_factory=_default_paper_balances)
    # [paper.lending] opening lending position, empty unless configured
    supplied: Dict[str, Decimal] = field(default_factory=dict)
    borrowed: Dict[str, Decimal] = field(default_factory=dict)

    @classmethod
    def from_dict(cls, data: Dict[str, Any]) -> "PaperAccountConfig":
        raw = data.get("balances")
        lending = data.get("lending", {})
        return cls(
            balances=_asset_amounts(raw) if raw is not None else _default_paper_balances(),
            supplied=_asset_amounts(lending.get("supplied", {})),
            borrowed=_asset_amounts(lending.get("borrowed", {})),
        )


def _asset_amounts(raw: Dict[str, Any]) -> Dict[str, Decimal]:
    return {str(k).upper(): _dec(v, Decimal("0")) for k, v in raw.items()}


def _default_feed_prices() -> Dict[str, Decimal]:
    return {
        "BTC/USDT": Decimal("50000"),
        "ETH/USDT": Decimal("3000"),
        "SOL/USDT": Decimal("150"),
        "BNB/USDT": Decimal("550"),
        "DOGE/USDT": Decimal("0.15"),
    }


@dataclass
class FeedConfig:
    """[feed] section."""
    kind: str = "simulated"
    url: str = str(constants.TRADESIM_FEED_URL)
    timeout: float = 10.0
    volatility: Decimal = Decimal("0.0005")
    initial_prices: Dict[str, Decimal] = field(default_factory=_default_feed_prices)

    @classmethod
    def from_dict(cls, data: Dict[str, Any]) -> "FeedConfig":
        raw_prices = data.get("initial_prices")
        return cls(
            kind=data.get("kind", "simulated"),
            url=data.get("url", str(constants.TRADESIM_FEED_URL)),
            timeout=float(data.get("timeout", 10.0)),
            volatility=_dec(data.get("volatility"), Decimal("0.0005")),
            initial_prices=(
                {k: _dec(v, Decimal("0")) for k, v in raw_prices.items()}
                if raw_prices is not None else _default_feed_prices()
            ),
        )

    def apply_env(self) -> None:
        if v := os.environ.get("TRADESIM_FEED"):
            self.kind = v
        if v := os.environ.get("TRADESIM_FEED_URL"):
            self.url = v


# ---------------------------------------------------------------------------
# Root config
# ---------------------------------------------------------------------------


@dataclass
class TradeSimConfig:
    """Complete simulator configuration."""
    engine: EngineSectionConfig = field(default_factory=EngineSectionConfig)
    futures: FuturesConfig = field(default_factory=FuturesConfig)
    staking: StakingConfig = field(default_factory=StakingConfig)
    lending: LendingConfig = field(default_factory=LendingConfig)
    pool: PoolConfig = field(default_factory=PoolConfig)
    bridge: BridgeConfig = field(default_factory=BridgeConfig)
    paper: PaperAccountConfig = field(default_factory=PaperAccountConfig)
    feed: FeedConfig = field(default_factory=FeedConfig)

    @classmethod
    def from_dict(cls, data: Dict[str, Any]) -> "TradeSimConfig":
        return cls(
            engine=EngineSectionConfig.from_dict(data.get("engine", {})),
            futures=FuturesConfig.from_dict(data.get("futures", {})),
            staking=StakingConfig.from_dict(data.get("staking", {})),
            lending=LendingConfig.from_dict(data.get("lending", {})),
            pool=PoolConfig.from_dict(data.get("pool", {})),
            bridge=BridgeConfig.from_dict(data.get("bridge", {})),
            paper=PaperAccountConfig.from_dict(data.get("paper", {})),
            feed=FeedConfig.from_dict(data.get("feed", {})),
        )

    @classmethod
    def from_file(cls, config_path: str) -> "TradeSimConfig":
        """
        Load configuration from a TOML file.

        A missing file yields defaults (with env overrides applied).
        """
        path = Path(config_path)
        if not path.exists():
            logger.warning("Config file not found: %s, using defaults", config_path)
            cfg = cls()
            cfg.apply_env()
            return cfg

        try:
            with open(path, "rb") as f:
                raw = tomllib.load(f)
        except tomllib.TOMLDecodeError as e:
            raise ConfigurationError(f"Invalid TOML in {config_path}: {e}") from e

        cfg = cls.from_dict(raw)
        cfg.apply_env()
        return cfg

    # --- env overrides ----------------------------------------------------

    def apply_env(self) -> None:
        """Apply environment variable overrides to all sections."""
        self.engine.apply_env()
        self.lending.apply_env()
        self.feed.apply_env()

    # --- validation -------------------------------------------------------

    def validate(self) -> bool:
        """
        Validate all configuration sections.

        Raises:
            ConfigurationError: on invalid config
        """
        from ..engine.assets import Asset, TradingPair

        if self.engine.tick_interval <= 0:
            raise ConfigurationError("tick_interval must be > 0")
        if self.engine.initial_mode not in ("paper", "real"):
            raise ConfigurationError(f"Invalid initial_mode: {self.engine.initial_mode}")
        if self.engine.history_limit < 1:
            raise ConfigurationError("history_limit must be >= 1")
        if self.engine.log_level not in ("DEBUG", "INFO", "WARNING", "ERROR", "CRITICAL"):
            raise ConfigurationError(f"Invalid log_level: {self.engine.log_level}")
        for pair in self.engine.pairs:
            try:
                TradingPair.parse(pair)
            except UnknownAsset as e:
                raise ConfigurationError(str(e)) from e
        if not (Decimal("0") < self.futures.liquidation_buffer <= Decimal("1")):
            raise ConfigurationError("liquidation_buffer must be in (0, 1]")
        if self.futures.max_leverage < 1:
            raise ConfigurationError("max_leverage must be >= 1")
        if self.staking.apy < 0 or self.staking.seconds_per_year <= 0:
            raise ConfigurationError("staking apy must be >= 0 and seconds_per_year > 0")
        for market in self.lending.markets:
            if market.asset not in Asset.__members__:
                raise ConfigurationError(f"Unknown lending asset: {market.asset}")
            if not (Decimal("0") <= market.collateral_factor <= Decimal("1")):
                raise ConfigurationError(f"collateral_factor out of range for {market.asset}")
        pool = self.pool
        if (pool.total_shares == 0) != (pool.reserve_a == 0 and pool.reserve_b == 0):
            raise ConfigurationError("pool total_shares must be zero exactly when reserves are empty")
        if min(pool.reserve_a, pool.reserve_b, pool.total_shares) < 0:
            raise ConfigurationError("pool values must be non-negative")
        for asset, amount in self.paper.balances.items():
            if asset not in Asset.__members__:
                raise ConfigurationError(f"Unknown paper balance asset: {asset}")
            if amount < 0:
                raise ConfigurationError(f"Negative paper balance for {asset}")
        market_assets = {m.asset for m in self.lending.markets}
        for side in ("supplied", "borrowed"):
            for asset, amount in getattr(self.paper, side).items():
                if asset not in market_assets:
                    raise ConfigurationError(f"No lending market for paper {side} asset: {asset}")
                if amount < 0:
                    raise ConfigurationError(f"Negative paper {side} amount for {asset}")
        if self.bridge.fee < 0 or self.bridge.settlement_delay < 0:
            raise ConfigurationError("bridge fee and settlement_delay must be >= 0")
        if self.feed.kind not in ("simulated", "http", "static"):
            raise ConfigurationError(f"Invalid feed kind: {self.feed.kind}")
        return True

    # --- serialisation ----------------------------------------------------

    def to_dict(self) -> Dict[str, Any]:
        """Serialize to dict (for diagnostics, NOT for re-creating TOML)."""
        return {
            "engine": {
                "tick_interval": self.engine.tick_interval,
                "pairs": list(self.engine.pairs),
                "initial_mode": self.engine.initial_mode,
                "snapshot_path": self.engine.snapshot_path,
                "log_level": self.engine.log_level,
                "history_limit": self.engine.history_limit,
            },
            "futures": {
                "liquidation_buffer": str(self.futures.liquidation_buffer),
                "max_leverage": str(self.futures.max_leverage),
            },
            "staking": {
                "apy": str(self.staking.apy),
                "seconds_per_year": self.staking.seconds_per_year,
            },
            "lending": {
                "enforce_health_factor": self.lending.enforce_health_factor,
                "markets": [m.asset for m in self.lending.markets],
            },
            "pool": {
                "reserve_a": str(self.pool.reserve_a),
                "reserve_b": str(self.pool.reserve_b),
                "total_shares": str(self.pool.total_shares),
            },
            "bridge": {
                "fee": str(self.bridge.fee),
                "settlement_delay": self.bridge.settlement_delay,
            },
            "feed": {"kind": self.feed.kind, "url": self.feed.url},
        }


# -----------------------------------------------------------------------
# Convenience function
# -----------------------------------------------------------------------

def load_config(path: Optional[str] = None) -> TradeSimConfig:
    """
    Load simulator configuration.

    Resolution order:
        1. Explicit *path* argument
        2. TRADESIM_CONFIG env var
        3. ./config.toml in current directory
        4. Defaults (with env overrides)
    """
    if path is None:
        path = os.environ.get("TRADESIM_CONFIG", "config.toml")

    cfg = TradeSimConfig.from_file(path)
    cfg.validate()
    return cfg
