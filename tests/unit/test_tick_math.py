"""
Tick <-> sqrt price conversion tests.
"""

import pytest

from clamm.core.safe_math import Q96
from clamm.core.tick_math import (
    MAX_SQRT_RATIO,
    MAX_TICK,
    MIN_SQRT_RATIO,
    MIN_TICK,
    encode_sqrt_price,
    get_sqrt_ratio_at_tick,
    get_tick_at_sqrt_ratio,
    price_to_tick,
    sqrt_price_to_price,
    tick_to_price,
)
from clamm.exceptions import UnrepresentableError


class TestGetSqrtRatioAtTick:
    """Test the forward conversion."""

    def test_domain_bounds(self):
        """The bounds of the tick domain map to the bounds of the price domain."""
        assert get_sqrt_ratio_at_tick(MIN_TICK) == MIN_SQRT_RATIO
        assert get_sqrt_ratio_at_tick(MAX_TICK) == MAX_SQRT_RATIO

    def test_next_to_bounds(self):
        assert get_sqrt_ratio_at_tick(MIN_TICK + 1) == 4295343490
        assert get_sqrt_ratio_at_tick(MAX_TICK - 1) == 1461373636630004318706518188784493106690254656249

    def test_tick_zero_is_price_one(self):
        assert get_sqrt_ratio_at_tick(0) == Q96

    def test_out_of_range(self):
        with pytest.raises(UnrepresentableError):
            get_sqrt_ratio_at_tick(MIN_TICK - 1)
        with pytest.raises(UnrepresentableError):
            get_sqrt_ratio_at_tick(MAX_TICK + 1)

    @pytest.mark.parametrize("tick", [-500000, -60, -1, 1, 60, 500000])
    def test_close_to_float_value(self, tick):
        expected = 1.0001 ** (tick / 2) * Q96
        assert abs(get_sqrt_ratio_at_tick(tick) - expected) / expected < 1e-9

    def test_strictly_increasing_around_zero(self):
        ratios = [get_sqrt_ratio_at_tick(t) for t in range(-50, 51)]
        assert all(a < b for a, b in zip(ratios, ratios[1:]))


class TestGetTickAtSqrtRatio:
    """Test the inverse conversion."""

    def test_domain_bounds(self):
        assert get_tick_at_sqrt_ratio(MIN_SQRT_RATIO) == MIN_TICK
        assert get_tick_at_sqrt_ratio(MAX_SQRT_RATIO - 1) == MAX_TICK - 1
        assert get_tick_at_sqrt_ratio(MAX_SQRT_RATIO) == MAX_TICK

    def test_out_of_range(self):
        with pytest.raises(UnrepresentableError):
            get_tick_at_sqrt_ratio(MIN_SQRT_RATIO - 1)
        with pytest.raises(UnrepresentableError):
            get_tick_at_sqrt_ratio(MAX_SQRT_RATIO + 1)

    @pytest.mark.parametrize("tick", [MIN_TICK, -887200, -1000, -1, 0, 1, 1000, 887200, MAX_TICK])
    def test_round_trip(self, tick):
        assert get_tick_at_sqrt_ratio(get_sqrt_ratio_at_tick(tick)) == tick

    def test_price_just_below_tick_floors(self):
        """A price one unit below a tick's ratio belongs to the tick below."""
        for tick in (-100, 0, 100):
            assert get_tick_at_sqrt_ratio(get_sqrt_ratio_at_tick(tick) - 1) == tick - 1

    def test_price_between_ticks(self):
        mid = (get_sqrt_ratio_at_tick(10) + get_sqrt_ratio_at_tick(11)) // 2
        assert get_tick_at_sqrt_ratio(mid) == 10


class TestDisplayHelpers:
    """Test human-facing conversions."""

    def test_encode_sqrt_price(self):
        assert encode_sqrt_price(1, 1) == Q96
        assert encode_sqrt_price(4, 1) == 2 * Q96
        assert encode_sqrt_price(1, 4) == Q96 // 2

    def test_encode_sqrt_price_rejects_empty_reserves(self):
        with pytest.raises(UnrepresentableError):
            encode_sqrt_price(0, 1)

    def test_tick_price_round_trip(self):
        assert tick_to_price(0) == 1.0
        assert price_to_tick(tick_to_price(1000) * 1.00001) == 1000
        with pytest.raises(UnrepresentableError):
            price_to_tick(0)

    def test_sqrt_price_to_price(self):
        assert sqrt_price_to_price(2 * Q96) == 4
        assert sqrt_price_to_price(Q96, decimals_token0=18, decimals_token1=6) == 10**12
