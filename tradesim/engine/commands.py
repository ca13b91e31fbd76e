"""
tradesim Command Envelope

Serializable wrapper for every user command, so UIs, scripts and the CLI
can drive the engine through one entry point:

    result = engine.execute(Command(CommandType.PLACE_ORDER, {...}))

Command types:
  - PLACE_ORDER / CANCEL_ORDER:          spot limit orders
  - OPEN_POSITION / CLOSE_POSITION:      leveraged futures
  - ADD_LIQUIDITY / REMOVE_LIQUIDITY:    shared liquidity pool
  - CREATE_BOT / TOGGLE_BOT / REMOVE_BOT: market-maker bots
  - SUPPLY / WITHDRAW / BORROW / REPAY:  lending market
  - STAKE / UNSTAKE / CLAIM_REWARDS:     GDP staking
  - FUND:                                faucet credit
  - TOGGLE_MODE / RESET_PAPER_ACCOUNT:   account management
"""

from __future__ import annotations

from dataclasses import dataclass, field
from enum import IntEnum
from typing import Any, Dict, Optional

from ..exceptions import InvalidAmount


class CommandType(IntEnum):
    PLACE_ORDER = 1
    CANCEL_ORDER = 2
    OPEN_POSITION = 3
    CLOSE_POSITION = 4
    ADD_LIQUIDITY = 5
    REMOVE_LIQUIDITY = 6
    CREATE_BOT = 7
    TOGGLE_BOT = 8
    REMOVE_BOT = 9
    SUPPLY = 10
    WITHDRAW = 11
    BORROW = 12
    REPAY = 13
    STAKE = 14
    UNSTAKE = 15
    CLAIM_REWARDS = 16
    FUND = 17
    TOGGLE_MODE = 18
    RESET_PAPER_ACCOUNT = 19


# Required parameters per command type
REQUIRED_PARAMS: Dict[CommandType, tuple] = {
    CommandType.PLACE_ORDER: ("side", "pair", "price", "amount"),
    CommandType.CANCEL_ORDER: ("order_id",),
    CommandType.OPEN_POSITION: ("side", "pair", "price", "amount", "leverage"),
    CommandType.CLOSE_POSITION: ("position_id",),
    CommandType.ADD_LIQUIDITY: ("amount", "asset"),
    CommandType.REMOVE_LIQUIDITY: ("lp_amount", "target_asset"),
    CommandType.CREATE_BOT: (
        "price_range_lower", "price_range_upper", "spread", "order_amount", "initial_quote",
    ),
    CommandType.TOGGLE_BOT: ("bot_id",),
    CommandType.REMOVE_BOT: ("bot_id",),
    CommandType.SUPPLY: ("asset", "amount"),
    CommandType.WITHDRAW: ("asset", "amount"),
    CommandType.BORROW: ("asset", "amount"),
    CommandType.REPAY: ("asset", "amount"),
    CommandType.STAKE: ("amount",),
    CommandType.UNSTAKE: ("amount",),
    CommandType.CLAIM_REWARDS: (),
    CommandType.FUND: ("asset", "amount"),
    CommandType.TOGGLE_MODE: (),
    CommandType.RESET_PAPER_ACCOUNT: (),
}


@dataclass
class Command:
    """A single user command with JSON-safe parameters."""
    op_type: CommandType
    params: Dict[str, Any] = field(default_factory=dict)

    def validate_basic(self) -> None:
        """Structural validation; raises InvalidAmount."""
        try:
            self.op_type = CommandType(self.op_type)
        except ValueError:
            raise InvalidAmount(f"Unknown command type: {self.op_type!r}") from None
        missing = [p for p in REQUIRED_PARAMS[self.op_type] if p not in self.params]
        if missing:
            raise InvalidAmount(f"{self.op_type.name} missing params: {', '.join(missing)}")

    def to_dict(self) -> Dict[str, Any]:
        return {"op_type": int(self.op_type), "params": dict(self.params)}

    @classmethod
    def from_dict(cls, data: Dict[str, Any]) -> Command:
        op = data["op_type"]
        op_type = CommandType[op.upper()] if isinstance(op, str) else CommandType(int(op))
        return cls(op_type=op_type, params=dict(data.get("params", {})))


class CommandResult:
    """Result of executing a single command."""

    __slots__ = ("success", "data", "error", "error_kind")

    def __init__(
        self,
        success: bool = True,
        data: Optional[Dict[str, Any]] = None,
        error: str = "",
        error_kind: str = "",
    ):
        self.success = success
        self.data = data or {}
        self.error = error
        self.error_kind = error_kind

    def __repr__(self) -> str:
        if self.success:
            return f"CommandResult(success=True, data={self.data!r})"
        return f"CommandResult(success=False, error_kind={self.error_kind!r}, error={self.error!r})"
