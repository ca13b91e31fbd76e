"""
tradesim Exceptions

Typed failures raised by the account simulation engine. Every command
either returns the created/updated entity or raises one of these.
"""


class TradingError(Exception):
    """Base exception for tradesim."""

    kind = "TradingError"


class InvalidAmount(TradingError):
    """Non-positive, NaN or otherwise malformed numeric input."""

    kind = "InvalidAmount"


class UnknownAsset(InvalidAmount):
    """Asset symbol or trading pair outside the supported set."""

    kind = "InvalidAmount"


class InsufficientBalance(TradingError):
    """Available balance of a specific asset is below what is required."""

    kind = "InsufficientBalance"

    def __init__(self, asset, required, available):
        self.asset = asset
        self.required = required
        self.available = available
        super().__init__(
            f"Insufficient {asset}: required {required}, available {available}"
        )


class InsufficientLiquidity(TradingError):
    """Liquidity pool cannot honor a withdrawal in the requested asset."""

    kind = "InsufficientLiquidity"


class NotFound(TradingError):
    """Unknown order, position, bot or transfer id."""

    kind = "NotFound"


class InvalidState(TradingError):
    """Operation is not valid for the entity's current state."""

    kind = "InvalidState"


class HealthFactorTooLow(InvalidState):
    """Action would leave the lending position under-collateralized."""

    kind = "InvalidState"


class ConfigurationError(TradingError):
    """Configuration error."""

    kind = "ConfigurationError"


class PriceFeedError(TradingError):
    """A price feed could not produce a quote."""

    kind = "PriceFeedError"
