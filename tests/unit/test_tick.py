"""
Per-tick accounting tests: liquidity caps, updates, crossing and growth inside a range.
"""

import pytest

from clamm.core.safe_math import MAX_UINT128, MAX_UINT256
from clamm.core.tick import TickRegistry, tick_spacing_to_max_liquidity_per_tick
from clamm.core.tick_math import MAX_TICK
from clamm.exceptions import LiquidityOverflowError


def _update(
    registry,
    tick,
    tick_current,
    liquidity_delta,
    upper=False,
    max_liquidity=MAX_UINT128,
    staked_delta=0,
    growth=(0, 0, 0),
    seconds_per_liquidity=0,
    tick_cumulative=0,
    time=0,
):
    return registry.update(
        tick,
        tick_current,
        liquidity_delta,
        staked_delta,
        growth[0],
        growth[1],
        growth[2],
        seconds_per_liquidity,
        tick_cumulative,
        time,
        upper,
        max_liquidity,
    )


class TestMaxLiquidityPerTick:
    """Test the per-tick liquidity cap."""

    @pytest.mark.parametrize(
        "spacing,expected",
        [
            (10, 1917569901783203986719870431555990),
            (60, 11505743598341114571880798222544994),
            (200, 38350317471085141830651933667504588),
        ],
    )
    def test_fee_tier_spacings(self, spacing, expected):
        assert tick_spacing_to_max_liquidity_per_tick(spacing) == expected

    def test_full_range_only(self):
        """Only MIN_TICK, 0 and MAX_TICK are usable."""
        assert tick_spacing_to_max_liquidity_per_tick(MAX_TICK) == MAX_UINT128 // 3

    def test_spacing_one(self):
        assert tick_spacing_to_max_liquidity_per_tick(1) == MAX_UINT128 // (2 * MAX_TICK + 1)


class TestUpdate:
    """Test applying liquidity changes to a tick."""

    def test_flips_from_zero_to_nonzero(self):
        assert _update(TickRegistry(), 0, 0, 1) is True

    def test_does_not_flip_when_growing(self):
        registry = TickRegistry()
        _update(registry, 0, 0, 1)
        assert _update(registry, 0, 0, 1) is False

    def test_flips_back_to_zero(self):
        registry = TickRegistry()
        _update(registry, 0, 0, 1)
        assert _update(registry, 0, 0, -1) is True
        assert not registry.get(0).initialized

    def test_gross_above_max_rejected(self):
        registry = TickRegistry()
        _update(registry, 0, 0, 2, max_liquidity=3)
        _update(registry, 0, 0, 1, upper=True, max_liquidity=3)
        with pytest.raises(LiquidityOverflowError):
            _update(registry, 0, 0, 1, max_liquidity=3)
        assert registry.get(0).liquidity_gross == 3

    def test_gross_below_zero_rejected(self):
        registry = TickRegistry()
        with pytest.raises(LiquidityOverflowError):
            _update(registry, 0, 0, -1)
        assert 0 not in registry

    def test_net_depends_on_side(self):
        registry = TickRegistry()
        _update(registry, 0, 0, 2)
        _update(registry, 0, 0, 1, upper=True)
        _update(registry, 0, 0, 3, upper=True)
        _update(registry, 0, 0, 1)
        info = registry.get(0)
        assert info.liquidity_gross == 7
        assert info.liquidity_net == 2 - 1 - 3 + 1

    def test_staked_net_follows_side(self):
        registry = TickRegistry()
        _update(registry, -10, 0, 5, staked_delta=2)
        _update(registry, 10, 0, 5, upper=True, staked_delta=2)
        assert registry.get(-10).staked_liquidity_net == 2
        assert registry.get(10).staked_liquidity_net == -2

    def test_growth_below_or_at_current_tick_is_outside(self):
        """A newly initialized tick at or below the current tick credits all growth to below."""
        registry = TickRegistry()
        _update(
            registry, 1, 1, 1,
            growth=(1, 2, 3), seconds_per_liquidity=5, tick_cumulative=6, time=7,
        )
        info = registry.get(1)
        assert info.fee_growth_outside_0_x128 == 1
        assert info.fee_growth_outside_1_x128 == 2
        assert info.reward_growth_outside_x128 == 3
        assert info.seconds_per_liquidity_outside_x128 == 5
        assert info.tick_cumulative_outside == 6
        assert info.seconds_outside == 7

    def test_growth_above_current_tick_is_zero(self):
        registry = TickRegistry()
        _update(registry, 2, 1, 1, growth=(1, 2, 3), seconds_per_liquidity=5, tick_cumulative=6, time=7)
        info = registry.get(2)
        assert info.fee_growth_outside_0_x128 == 0
        assert info.reward_growth_outside_x128 == 0
        assert info.seconds_outside == 0

    def test_second_update_keeps_outside_values(self):
        registry = TickRegistry()
        _update(registry, 1, 1, 1, growth=(1, 2, 3), time=7)
        _update(registry, 1, 1, 1, growth=(6, 7, 8), time=9)
        info = registry.get(1)
        assert info.fee_growth_outside_0_x128 == 1
        assert info.reward_growth_outside_x128 == 3
        assert info.seconds_outside == 7


class TestCross:
    """Test tick crossing."""

    def test_flips_outside_values(self):
        registry = TickRegistry()
        _update(registry, 2, 2, 3, staked_delta=1, growth=(1, 2, 3), seconds_per_liquidity=5, tick_cumulative=15, time=7)

        liquidity_net, staked_net = registry.cross(2, 7, 9, 8, 15, 20, 10)
        info = registry.get(2)

        assert (liquidity_net, staked_net) == (3, 1)
        assert info.fee_growth_outside_0_x128 == 6
        assert info.fee_growth_outside_1_x128 == 7
        assert info.reward_growth_outside_x128 == 5
        assert info.seconds_per_liquidity_outside_x128 == 10
        assert info.tick_cumulative_outside == 5
        assert info.seconds_outside == 3

    def test_crossing_twice_restores(self):
        registry = TickRegistry()
        _update(registry, 2, 2, 3, growth=(1, 2, 3), time=7)
        registry.cross(2, 7, 9, 8, 0, 0, 10)
        registry.cross(2, 7, 9, 8, 0, 0, 10)
        info = registry.get(2)
        assert info.fee_growth_outside_0_x128 == 1
        assert info.fee_growth_outside_1_x128 == 2
        assert info.reward_growth_outside_x128 == 3
        assert info.seconds_outside == 7

    def test_outside_wraps(self):
        registry = TickRegistry()
        _update(registry, 0, 0, 1, growth=(5, 5, 5))
        registry.cross(0, 3, 3, 3, 0, 0, 0)
        assert registry.get(0).fee_growth_outside_0_x128 == MAX_UINT256 - 1


class TestGrowthInside:
    """Test growth inside a range derived from its boundaries."""

    def test_uninitialized_ticks_inside(self):
        assert TickRegistry().get_growth_inside(-2, 2, 0, 15, 15, 15) == (15, 15, 15)

    def test_uninitialized_ticks_above(self):
        assert TickRegistry().get_growth_inside(-2, 2, 4, 15, 15, 15) == (0, 0, 0)

    def test_uninitialized_ticks_below(self):
        assert TickRegistry().get_growth_inside(-2, 2, -4, 15, 15, 15) == (0, 0, 0)

    def test_subtracts_upper_when_inside(self):
        registry = TickRegistry()
        _update(registry, 2, 0, 1, upper=True)
        upper = registry.get(2)
        upper.fee_growth_outside_0_x128 = 2
        upper.fee_growth_outside_1_x128 = 3
        upper.reward_growth_outside_x128 = 4
        assert registry.get_growth_inside(-2, 2, 0, 15, 15, 15) == (13, 12, 11)

    def test_subtracts_lower_when_inside(self):
        registry = TickRegistry()
        _update(registry, -2, 0, 1, growth=(2, 3, 4))
        assert registry.get_growth_inside(-2, 2, 0, 15, 15, 15) == (13, 12, 11)

    def test_subtracts_both(self):
        registry = TickRegistry()
        _update(registry, -2, 0, 1, growth=(2, 3, 0))
        _update(registry, 2, 0, 1, upper=True)
        upper = registry.get(2)
        upper.fee_growth_outside_0_x128 = 4
        upper.fee_growth_outside_1_x128 = 1
        assert registry.get_growth_inside(-2, 2, 0, 15, 15, 15)[:2] == (9, 11)

    def test_wrapped_outside_values(self):
        """Outside values above the global still yield the correct modular difference."""
        registry = TickRegistry()
        _update(registry, -2, 0, 1, growth=(MAX_UINT256 - 3, MAX_UINT256 - 2, 0))
        _update(registry, 2, 0, 1, upper=True)
        upper = registry.get(2)
        upper.fee_growth_outside_0_x128 = 3
        upper.fee_growth_outside_1_x128 = 5
        assert registry.get_growth_inside(-2, 2, 0, 15, 15, 15)[:2] == (16, 13)
