"""
tradesim Configuration

Loads all sections of config.toml at startup.
Environment variables override TOML values.
"""

from .loader import (
    TradeSimConfig,
    EngineSectionConfig,
    FuturesConfig,
    StakingConfig,
    LendingConfig,
    LendingMarketConfig,
    PoolConfig,
    BridgeConfig,
    PaperAccountConfig,
    FeedConfig,
    load_config,
)

__all__ = [
    "TradeSimConfig",
    "EngineSectionConfig",
    "FuturesConfig",
    "StakingConfig",
    "LendingConfig",
    "LendingMarketConfig",
    "PoolConfig",
    "BridgeConfig",
    "PaperAccountConfig",
    "FeedConfig",
    "load_config",
]
