"""
tradesim Constants

This module consolidates global constants and environment configuration
used throughout the codebase. Constants are organized by category for easy
reference and maintenance.
"""
import ast
from decimal import Decimal
from dotenv import dotenv_values

# =============================================================================
# ENVIRONMENT CONFIGURATION
# =============================================================================
# Load environment variables once at module import
_config = dotenv_values(".env")

ENGINE_DEFAULTS = {
    'TRADESIM_SNAPSHOT_PATH':          'data/tradesim_state.json',
    'TRADESIM_FEED_URL':               'https://api.binance.com/api/v3/ticker/price',
}

LOGGER_DEFAULTS = {
    'LOG_LEVEL':                       'INFO',
    'LOG_FORMAT':                      '%(asctime)s - %(levelname)s - %(name)s - %(message)s',
    'LOG_DATE_FORMAT':                 '%Y-%m-%dT%H:%M:%S',
    'LOG_CONSOLE_HIGHLIGHTING':        'True',
    'LOG_FILE_OUTPUT':                 'True',
}

LOG_MAX_FILE_SIZE = 10 * 1024 * 1024 # 10MB
LOG_BACKUP_COUNT = 5


# ==================================================================================
# TIME
# ==================================================================================
SECONDS_PER_YEAR = 31_536_000
DEFAULT_TICK_INTERVAL = 8.0  # seconds between price polls
ORDER_HISTORY_LIMIT = 1000  # closed orders kept per account


# ==================================================================================
# FUTURES
# ==================================================================================
# Liquidation triggers at this fraction of the zero-equity move, slightly
# before the margin is fully consumed.
LIQUIDATION_BUFFER = Decimal("0.95")
MAX_LEVERAGE = Decimal("125")


# ==================================================================================
# STAKING / LENDING / POOL
# ==================================================================================
STAKING_APY = Decimal("12.5")

HEALTH_FACTOR_SAFE = Decimal("2")
HEALTH_FACTOR_WARNING = Decimal("1.25")

POOL_INITIAL_RESERVE_A = Decimal("500000")
POOL_INITIAL_RESERVE_B = Decimal("250000")
POOL_INITIAL_SHARES = Decimal("750000")


# ==================================================================================
# BRIDGE
# ==================================================================================
BRIDGE_FEE = Decimal("5")
BRIDGE_SETTLEMENT_DELAY = 3.0  # seconds


# ==================================================================================
# CONFIGURATION WRAPPERS
# ==================================================================================
class ConfigString(str):
    """
    String subclass that stores a default value.
    """
    def __new__(cls, value, default):
        obj = str.__new__(cls, value)
        obj._default = default
        return obj

    def default(self):
        return self._default

class ConfigBool(int):
    """
    Int subclass acting as a boolean that stores a default value.
    """
    def __new__(cls, value, default):
        obj = int.__new__(cls, bool(value))
        obj._default = default
        return obj

    def default(self):
        return self._default

    def __repr__(self):
        return str(bool(self))

    def __str__(self):
        return str(bool(self))

    def __eq__(self, other):
        return bool(self) == other

    def __hash__(self):
        return hash(bool(self))


# ==================================================================================
# DYNAMIC CONFIGURATION LOADING
# ==================================================================================
DEFAULTS = ENGINE_DEFAULTS | LOGGER_DEFAULTS
namespace = globals()

def parse_bool(v):
    """
    Convert "True"/"False" (any casing, with surrounding whitespace) into bool.
    Avoids exceptions by only calling ast.literal_eval for known literals.
    """
    if not isinstance(v, str):
        return v
    s = v.strip()
    if not s:
        return v
    if s.casefold() in {"true", "false"}:
        return ast.literal_eval(s.title())
    return v

for key, default_raw in DEFAULTS.items():
    # dotenv_values returns strings or None. None is treated as missing.
    raw = _config.get(key)
    value_raw = default_raw if raw is None else raw

    value = parse_bool(value_raw)
    default_val = parse_bool(default_raw)

    if isinstance(value, bool):
        namespace[key] = ConfigBool(value, default_val)
    else:
        namespace[key] = ConfigString(value_raw, default_val)
