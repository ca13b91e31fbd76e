"""
tradesim Price Feeds

    - StaticPriceFeed:     fixed quotes (tests, offline)
    - SimulatedPriceFeed:  random-walk market with synthetic depth
    - HttpPriceFeed:       JSON ticker endpoint over httpx
"""

from .base import PriceFeed
from .static import StaticPriceFeed
from .simulated import SimulatedPriceFeed, MarketSnapshot
from .http import HttpPriceFeed
from ..config import FeedConfig
from ..exceptions import ConfigurationError


def build_feed(config: FeedConfig) -> PriceFeed:
    """Construct the feed named by ``[feed] kind``."""
    if config.kind == "simulated":
        return SimulatedPriceFeed(config.initial_prices, volatility=config.volatility)
    if config.kind == "http":
        return HttpPriceFeed(config.url, timeout=config.timeout)
    if config.kind == "static":
        return StaticPriceFeed(config.initial_prices)
    raise ConfigurationError(f"Unknown feed kind: {config.kind}")


__all__ = [
    "PriceFeed",
    "StaticPriceFeed",
    "SimulatedPriceFeed",
    "MarketSnapshot",
    "HttpPriceFeed",
    "build_feed",
]
