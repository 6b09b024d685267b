"""
Liquidity positions keyed by (owner, tick_lower, tick_upper).

Fees accrue only to the unstaked share of a position's liquidity and rewards
only to the staked share; both are derived from the growth inside the range
since the position's last snapshot.
"""

from __future__ import annotations

import hashlib
from dataclasses import dataclass

from ..exceptions import InsufficientLiquidityError, InvalidStakeDeltaError, NoPositionError
from .safe_math import Q128, mul_div, saturating_add, to_uint128, wrapping_sub


@dataclass
class PositionInfo:
    """
    Liquidity position within a price range.

    Represents an owner's share of liquidity between two ticks, of which
    `staked_liquidity` is opted into the reward stream.
    """

    owner: str = ""
    tick_lower: int = 0
    tick_upper: int = 0

    liquidity: int = 0
    staked_liquidity: int = 0

    # Growth inside the range at the last update
    fee_growth_inside_0_last_x128: int = 0
    fee_growth_inside_1_last_x128: int = 0
    reward_growth_inside_last_x128: int = 0

    # Claimable balances
    tokens_owed_0: int = 0
    tokens_owed_1: int = 0
    rewards_owed: int = 0

    def is_in_range(self, current_tick: int) -> bool:
        """Check if current price is within position's range."""
        return self.tick_lower <= current_tick < self.tick_upper

    def next_liquidity(self, liquidity_delta: int, staked_liquidity_delta: int) -> tuple[int, int]:
        """
        Validate a liquidity change without applying it.

        Returns:
            (liquidity_next, staked_liquidity_next)
        """
        if liquidity_delta == 0 and staked_liquidity_delta == 0 and self.liquidity == 0:
            raise NoPositionError(
                "Cannot update a position with no liquidity",
                details={"owner": self.owner, "range": [self.tick_lower, self.tick_upper]},
            )

        liquidity_next = self.liquidity + liquidity_delta
        staked_liquidity_next = self.staked_liquidity + staked_liquidity_delta
        if liquidity_next < 0 or staked_liquidity_next < 0:
            raise InsufficientLiquidityError(
                "Position liquidity would underflow",
                details={
                    "liquidity": self.liquidity,
                    "staked_liquidity": self.staked_liquidity,
                    "liquidity_delta": liquidity_delta,
                    "staked_liquidity_delta": staked_liquidity_delta,
                },
            )
        if liquidity_next < staked_liquidity_next:
            raise InvalidStakeDeltaError(
                "Staked liquidity would exceed position liquidity",
                details={
                    "liquidity_next": liquidity_next,
                    "staked_liquidity_next": staked_liquidity_next,
                },
            )
        to_uint128(liquidity_next)
        return liquidity_next, staked_liquidity_next

    def pending(
        self,
        fee_growth_inside_0_x128: int,
        fee_growth_inside_1_x128: int,
        reward_growth_inside_x128: int,
    ) -> tuple[int, int, int]:
        """Fees and rewards earned since the last snapshot. Rounds down (paying users)."""
        unstaked = self.liquidity - self.staked_liquidity
        owed_0 = mul_div(
            wrapping_sub(fee_growth_inside_0_x128, self.fee_growth_inside_0_last_x128),
            unstaked,
            Q128,
        )
        owed_1 = mul_div(
            wrapping_sub(fee_growth_inside_1_x128, self.fee_growth_inside_1_last_x128),
            unstaked,
            Q128,
        )
        rewards = mul_div(
            wrapping_sub(reward_growth_inside_x128, self.reward_growth_inside_last_x128),
            self.staked_liquidity,
            Q128,
        )
        return owed_0, owed_1, rewards

    def update(
        self,
        liquidity_delta: int,
        staked_liquidity_delta: int,
        fee_growth_inside_0_x128: int,
        fee_growth_inside_1_x128: int,
        reward_growth_inside_x128: int,
    ) -> None:
        """Credit earnings on the old liquidity split, then apply the deltas."""
        liquidity_next, staked_liquidity_next = self.next_liquidity(
            liquidity_delta, staked_liquidity_delta
        )
        owed_0, owed_1, rewards = self.pending(
            fee_growth_inside_0_x128, fee_growth_inside_1_x128, reward_growth_inside_x128
        )

        self.liquidity = liquidity_next
        self.staked_liquidity = staked_liquidity_next
        self.fee_growth_inside_0_last_x128 = fee_growth_inside_0_x128
        self.fee_growth_inside_1_last_x128 = fee_growth_inside_1_x128
        self.reward_growth_inside_last_x128 = reward_growth_inside_x128

        # Owners must collect before hitting uint128 max
        self.tokens_owed_0 = saturating_add(self.tokens_owed_0, owed_0)
        self.tokens_owed_1 = saturating_add(self.tokens_owed_1, owed_1)
        self.rewards_owed = saturating_add(self.rewards_owed, rewards)


class PositionLedger:
    """Positions keyed by a sha3 digest of owner and range."""

    def __init__(self) -> None:
        self._positions: dict[str, PositionInfo] = {}

    def __len__(self) -> int:
        return len(self._positions)

    def __iter__(self):
        return iter(self._positions.values())

    @staticmethod
    def key(owner: str, tick_lower: int, tick_upper: int) -> str:
        return hashlib.sha3_256(f"{owner}:{tick_lower}:{tick_upper}".encode()).hexdigest()

    def get(self, owner: str, tick_lower: int, tick_upper: int) -> PositionInfo:
        """Look up a position, creating a zero-valued one on first reference."""
        key = self.key(owner, tick_lower, tick_upper)
        position = self._positions.get(key)
        if position is None:
            position = PositionInfo(owner=owner, tick_lower=tick_lower, tick_upper=tick_upper)
            self._positions[key] = position
        return position

    def find(self, owner: str, tick_lower: int, tick_upper: int) -> PositionInfo | None:
        """Look up a position without creating it."""
        return self._positions.get(self.key(owner, tick_lower, tick_upper))
