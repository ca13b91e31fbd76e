"""
tradesim Staking

GDP share tokens staked for a flat APY. Rewards accrue linearly on tick
cadence:

    reward = staked * (apy / 100) / seconds_per_year * elapsed

Stake and unstake settle pending accrual first so the rate change only
applies going forward.
"""

from __future__ import annotations

import logging
from dataclasses import dataclass
from decimal import Decimal
from typing import TYPE_CHECKING, Any, Dict, Optional

from .. import constants
from ..exceptions import InvalidAmount
from .assets import SHARE_TOKEN, ZERO, positive

if TYPE_CHECKING:
    from .state import AccountState

logger = logging.getLogger(__name__)


@dataclass
class StakingState:
    staked: Decimal = ZERO
    accrued_rewards: Decimal = ZERO
    last_accrued_at: Optional[float] = None

    def to_dict(self) -> Dict[str, Any]:
        return {
            "staked": str(self.staked),
            "accrued_rewards": str(self.accrued_rewards),
            "last_accrued_at": self.last_accrued_at,
        }

    @classmethod
    def from_dict(cls, data: Dict[str, Any]) -> StakingState:
        return cls(
            staked=Decimal(data.get("staked", "0")),
            accrued_rewards=Decimal(data.get("accrued_rewards", "0")),
            last_accrued_at=data.get("last_accrued_at"),
        )


class StakingEngine:
    def __init__(
        self,
        apy: Decimal = constants.STAKING_APY,
        seconds_per_year: int = constants.SECONDS_PER_YEAR,
    ) -> None:
        self.apy = Decimal(apy)
        self.seconds_per_year = Decimal(seconds_per_year)

    def reward_for(self, staked: Decimal, elapsed: float) -> Decimal:
        return staked * (self.apy / 100) / self.seconds_per_year * Decimal(str(elapsed))

    def accrue(self, account: AccountState, now: float) -> Decimal:
        """Accrue rewards up to *now*; returns the amount added."""
        state = account.staking
        last = state.last_accrued_at
        if last is not None and now < last:
            return ZERO
        state.last_accrued_at = now
        if last is None or state.staked == 0:
            return ZERO
        reward = self.reward_for(state.staked, now - last)
        state.accrued_rewards += reward
        return reward

    def resume(self, account: AccountState, now: float) -> None:
        """Restart the accrual clock without paying for the time in between."""
        if account.staking.last_accrued_at is not None:
            account.staking.last_accrued_at = now

    def stake(self, account: AccountState, amount: Any, now: float) -> StakingState:
        amount = positive(amount, "amount")
        account.ledger.require_available(SHARE_TOKEN, amount)
        self.accrue(account, now)
        account.ledger.debit(SHARE_TOKEN, amount)
        account.staking.staked += amount
        logger.info("Staked %s GDP (total %s)", amount, account.staking.staked)
        return account.staking

    def unstake(self, account: AccountState, amount: Any, now: float) -> StakingState:
        amount = positive(amount, "amount")
        state = account.staking
        if amount > state.staked:
            raise InvalidAmount(f"Cannot unstake {amount} GDP; staked {state.staked}")
        self.accrue(account, now)
        state.staked -= amount
        account.ledger.credit(SHARE_TOKEN, amount)
        logger.info("Unstaked %s GDP (total %s)", amount, state.staked)
        return state

    def claim(self, account: AccountState) -> Decimal:
        state = account.staking
        rewards = state.accrued_rewards
        state.accrued_rewards = ZERO
        if rewards > 0:
            account.ledger.credit(SHARE_TOKEN, rewards)
            logger.info("Claimed %s GDP staking rewards", rewards)
        return rewards
