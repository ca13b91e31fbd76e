"""
tradesim Package

Client-side trading account simulator. Core imports are lazily loaded so
that importing a submodule does not configure logging or pull in the
network stack.

    from tradesim.engine import AccountEngine
    from tradesim.exceptions import InsufficientBalance
"""

__version__ = "1.0.0"


def __getattr__(name):
    """Lazy module loading."""
    if name == 'AccountEngine':
        from .engine import AccountEngine
        return AccountEngine
    elif name == 'load_config':
        from .config import load_config
        return load_config
    elif name == 'TradingError':
        from .exceptions import TradingError
        return TradingError
    raise AttributeError(f"module 'tradesim' has no attribute {name!r}")

__all__ = ['AccountEngine', 'load_config', 'TradingError', '__version__']
