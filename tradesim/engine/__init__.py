"""
tradesim Account Simulation Engine

Components:
  - AccountLedger:         balances plus explicit holds
  - OrderMatchingEngine:   spot limit orders filled by price ticks
  - FuturesEngine:         leveraged positions with liquidation, SL and TP
  - LiquidityPool:         share-proportional USDT / USDT_SOL vault
  - LendingMarket:         supply / borrow with a health factor
  - StakingEngine:         linear GDP staking rewards
  - MarketMakerEngine:     bots quoting around the tick price
  - PortfolioValuation:    net worth and PnL
  - PriceBook:             last prices, TWAP and staleness
  - TickPipeline:          ordered, transactional per-tick stages
  - AccountEngine:         single-writer owner of paper and real accounts
  - BridgeService:         asynchronous USDT -> USDT_SOL transfer
"""

from .assets import Asset, TradingPair, SUPPORTED_PAIRS
from .ledger import AccountLedger, Hold
from .orders import Order, OrderMatchingEngine, OrderSide, OrderStatus
from .futures import CloseReason, FuturesEngine, FuturesPosition, PositionSide
from .pool import LiquidityPool, LiquidityPoolState
from .lending import HealthBand, LendingMarket, LendingPosition
from .staking import StakingEngine, StakingState
from .bots import BotInventory, MarketMakerBot, MarketMakerEngine
from .state import AccountMode, AccountState, PendingBridgeTransfer
from .prices import PriceBook
from .valuation import PnL, PortfolioValuation, Valuation
from .events import DomainEvent, EventKind
from .pipeline import Tick, TickContext, TickPipeline
from .commands import Command, CommandResult, CommandType
from .state_manager import AccountEngine
from .bridge import BridgeService

__all__ = [
    # Assets
    "Asset",
    "TradingPair",
    "SUPPORTED_PAIRS",
    # Ledger
    "AccountLedger",
    "Hold",
    # Orders
    "Order",
    "OrderMatchingEngine",
    "OrderSide",
    "OrderStatus",
    # Futures
    "CloseReason",
    "FuturesEngine",
    "FuturesPosition",
    "PositionSide",
    # Pool
    "LiquidityPool",
    "LiquidityPoolState",
    # Lending
    "HealthBand",
    "LendingMarket",
    "LendingPosition",
    # Staking
    "StakingEngine",
    "StakingState",
    # Bots
    "BotInventory",
    "MarketMakerBot",
    "MarketMakerEngine",
    # State
    "AccountMode",
    "AccountState",
    "PendingBridgeTransfer",
    # Prices / valuation
    "PriceBook",
    "PnL",
    "PortfolioValuation",
    "Valuation",
    # Pipeline
    "DomainEvent",
    "EventKind",
    "Tick",
    "TickContext",
    "TickPipeline",
    # Commands
    "Command",
    "CommandResult",
    "CommandType",
    # Engine
    "AccountEngine",
    "BridgeService",
]
