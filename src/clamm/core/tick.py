"""
Per-tick accounting.

Each initialized tick stores the liquidity that references it and, for every
global accumulator, the value accrued on the "outside" of the tick (the side
the current price is not on). Crossing a tick reflects those values, so the
growth inside any range can be derived from the two boundaries alone.
"""

from __future__ import annotations

from dataclasses import dataclass

from ..exceptions import LiquidityOverflowError
from .safe_math import MAX_INT128, MAX_UINT128, MIN_INT128, to_int, wrapping_sub
from .tick_math import MAX_TICK, MIN_TICK


@dataclass
class TickInfo:
    """Information stored for each initialized tick."""
    liquidity_gross: int = 0  # Total liquidity referencing this tick
    liquidity_net: int = 0    # Net liquidity change when crossing left to right
    staked_liquidity_net: int = 0
    fee_growth_outside_0_x128: int = 0
    fee_growth_outside_1_x128: int = 0
    reward_growth_outside_x128: int = 0
    seconds_per_liquidity_outside_x128: int = 0
    tick_cumulative_outside: int = 0
    seconds_outside: int = 0
    initialized: bool = False


def tick_spacing_to_max_liquidity_per_tick(tick_spacing: int) -> int:
    """Per-tick gross liquidity cap so that every usable tick at max still fits uint128."""
    # Truncate toward zero for the negative bound
    min_tick = -(-MIN_TICK // tick_spacing) * tick_spacing
    max_tick = (MAX_TICK // tick_spacing) * tick_spacing
    num_ticks = (max_tick - min_tick) // tick_spacing + 1
    return MAX_UINT128 // num_ticks


class TickRegistry:
    """Sparse mapping of tick index to TickInfo with lazy creation."""

    def __init__(self) -> None:
        self._ticks: dict[int, TickInfo] = {}

    def __contains__(self, tick: int) -> bool:
        return tick in self._ticks

    def __len__(self) -> int:
        return len(self._ticks)

    def get(self, tick: int) -> TickInfo:
        """Return the tick's info, or a zero-valued view if it was never referenced."""
        return self._ticks.get(tick) or TickInfo()

    def items(self):
        return self._ticks.items()

    def liquidity_gross_after(self, tick: int, liquidity_delta: int, max_liquidity: int) -> int:
        """Validate a gross-liquidity change without touching storage."""
        info = self._ticks.get(tick)
        gross_before = info.liquidity_gross if info else 0
        gross_after = gross_before + liquidity_delta
        if gross_after < 0:
            raise LiquidityOverflowError(
                "Tick liquidity would go negative",
                details={"tick": tick, "gross_before": gross_before, "delta": liquidity_delta},
            )
        if gross_after > max_liquidity:
            raise LiquidityOverflowError(
                f"Tick liquidity ({gross_after}) exceeds max liquidity per tick ({max_liquidity})",
                details={"tick": tick, "gross_after": gross_after, "max_liquidity": max_liquidity},
            )
        return gross_after

    def update(
        self,
        tick: int,
        tick_current: int,
        liquidity_delta: int,
        staked_liquidity_delta: int,
        fee_growth_global_0_x128: int,
        fee_growth_global_1_x128: int,
        reward_growth_global_x128: int,
        seconds_per_liquidity_cumulative_x128: int,
        tick_cumulative: int,
        time: int,
        upper: bool,
        max_liquidity: int,
    ) -> bool:
        """
        Apply a liquidity change to a range boundary.

        Returns:
            True if the tick flipped between initialized and uninitialized
        """
        gross_after = self.liquidity_gross_after(tick, liquidity_delta, max_liquidity)

        info = self.get(tick)
        gross_before = info.liquidity_gross

        # An upper boundary removes liquidity when crossed left to right
        sign = -1 if upper else 1
        liquidity_net = info.liquidity_net + sign * liquidity_delta
        staked_liquidity_net = info.staked_liquidity_net + sign * staked_liquidity_delta
        for value in (liquidity_net, staked_liquidity_net):
            if value < MIN_INT128 or value > MAX_INT128:
                raise LiquidityOverflowError(
                    "Tick net liquidity exceeds int128",
                    details={"tick": tick, "net": value},
                )
        self._ticks[tick] = info

        flipped = (gross_after == 0) != (gross_before == 0)

        if gross_before == 0:
            # By convention all growth before initialization happened below the tick
            if tick <= tick_current:
                info.fee_growth_outside_0_x128 = fee_growth_global_0_x128
                info.fee_growth_outside_1_x128 = fee_growth_global_1_x128
                info.reward_growth_outside_x128 = reward_growth_global_x128
                info.seconds_per_liquidity_outside_x128 = seconds_per_liquidity_cumulative_x128
                info.tick_cumulative_outside = tick_cumulative
                info.seconds_outside = time
            info.initialized = True

        info.liquidity_gross = gross_after
        info.liquidity_net = liquidity_net
        info.staked_liquidity_net = staked_liquidity_net
        if gross_after == 0:
            info.initialized = False

        return flipped

    def clear(self, tick: int) -> None:
        self._ticks.pop(tick, None)

    def cross(
        self,
        tick: int,
        fee_growth_global_0_x128: int,
        fee_growth_global_1_x128: int,
        reward_growth_global_x128: int,
        seconds_per_liquidity_cumulative_x128: int,
        tick_cumulative: int,
        time: int,
    ) -> tuple[int, int]:
        """
        Transition to a tick as price crosses it.

        Returns:
            (liquidity_net, staked_liquidity_net) to apply when moving left to right
        """
        info = self._ticks.get(tick)
        if info is None:
            info = self._ticks[tick] = TickInfo()
        info.fee_growth_outside_0_x128 = wrapping_sub(
            fee_growth_global_0_x128, info.fee_growth_outside_0_x128
        )
        info.fee_growth_outside_1_x128 = wrapping_sub(
            fee_growth_global_1_x128, info.fee_growth_outside_1_x128
        )
        info.reward_growth_outside_x128 = wrapping_sub(
            reward_growth_global_x128, info.reward_growth_outside_x128
        )
        info.seconds_per_liquidity_outside_x128 = wrapping_sub(
            seconds_per_liquidity_cumulative_x128, info.seconds_per_liquidity_outside_x128, 160
        )
        info.tick_cumulative_outside = to_int(tick_cumulative - info.tick_cumulative_outside, 56)
        info.seconds_outside = wrapping_sub(time, info.seconds_outside, 32)
        return info.liquidity_net, info.staked_liquidity_net

    def get_growth_inside(
        self,
        tick_lower: int,
        tick_upper: int,
        tick_current: int,
        fee_growth_global_0_x128: int,
        fee_growth_global_1_x128: int,
        reward_growth_global_x128: int,
    ) -> tuple[int, int, int]:
        """
        Growth per unit of liquidity inside [tick_lower, tick_upper).

        Returns:
            (fee_growth_inside_0_x128, fee_growth_inside_1_x128, reward_growth_inside_x128)
        """
        lower = self.get(tick_lower)
        upper = self.get(tick_upper)
        globals_ = (fee_growth_global_0_x128, fee_growth_global_1_x128, reward_growth_global_x128)
        lower_outside = (
            lower.fee_growth_outside_0_x128,
            lower.fee_growth_outside_1_x128,
            lower.reward_growth_outside_x128,
        )
        upper_outside = (
            upper.fee_growth_outside_0_x128,
            upper.fee_growth_outside_1_x128,
            upper.reward_growth_outside_x128,
        )

        inside = []
        for global_growth, lower_growth, upper_growth in zip(globals_, lower_outside, upper_outside):
            if tick_current >= tick_lower:
                below = lower_growth
            else:
                below = wrapping_sub(global_growth, lower_growth)
            if tick_current < tick_upper:
                above = upper_growth
            else:
                above = wrapping_sub(global_growth, upper_growth)
            inside.append(wrapping_sub(wrapping_sub(global_growth, below), above))

        return inside[0], inside[1], inside[2]
