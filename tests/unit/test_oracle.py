"""
Observation ring buffer tests.
"""

import pytest

from clamm.core.oracle import MAX_CARDINALITY, Observation, Oracle, transform
from clamm.core.safe_math import MAX_UINT32
from clamm.exceptions import PreconditionError, TargetPredatesOldestObservationError


@pytest.fixture
def oracle():
    oracle = Oracle()
    oracle.initialize(5)
    return oracle


class TestInitializeAndGrow:
    """Test seeding and reserving capacity."""

    def test_initialize(self):
        oracle = Oracle()
        assert oracle.initialize(5) == (1, 1)
        assert oracle[0] == Observation(block_timestamp=5, initialized=True)

    def test_grow_reserves_uninitialized_slots(self, oracle):
        assert oracle.grow(1, 4) == 4
        assert len(oracle.observations) == 4
        assert all(not obs.initialized and obs.block_timestamp == 1 for obs in oracle.observations[1:])

    def test_grow_never_shrinks(self, oracle):
        oracle.grow(1, 4)
        assert oracle.grow(4, 2) == 4
        assert len(oracle.observations) == 4

    def test_grow_is_capped(self, oracle):
        assert oracle.grow(1, MAX_CARDINALITY + 10) == MAX_CARDINALITY

    def test_grow_requires_initialized_oracle(self):
        with pytest.raises(PreconditionError):
            Oracle().grow(0, 2)


class TestWrite:
    """Test appending observations."""

    def test_same_timestamp_is_noop(self, oracle):
        assert oracle.write(0, 5, 3, 10, 1, 1) == (0, 1)
        assert oracle[0].tick_cumulative == 0

    def test_single_slot_overwrites(self, oracle):
        assert oracle.write(0, 10, 3, 2, 1, 1) == (0, 1)
        assert oracle[0].block_timestamp == 10
        assert oracle[0].tick_cumulative == 15
        assert oracle[0].seconds_per_liquidity_cumulative_x128 == (5 << 128) // 2

    def test_moves_into_reserved_slots(self, oracle):
        oracle.grow(1, 3)
        assert oracle.write(0, 6, 1, 1, 1, 3) == (1, 3)
        assert oracle.write(1, 7, 1, 1, 3, 3) == (2, 3)
        assert oracle.write(2, 8, 1, 1, 3, 3) == (0, 3)
        assert oracle[0].block_timestamp == 8
        assert oracle[0].tick_cumulative == 3

    def test_zero_liquidity_counts_as_one(self):
        observation = transform(Observation(block_timestamp=0, initialized=True), 3, -2, 0)
        assert observation.tick_cumulative == -6
        assert observation.seconds_per_liquidity_cumulative_x128 == 3 << 128


class TestObserve:
    """Test reads of cumulative values."""

    def _history(self, oracle):
        # t=5 tick 0, t=7 tick 2 for 2s, t=12 tick -5 for 5s
        oracle.grow(1, 4)
        index, cardinality = oracle.write(0, 7, 2, 5, 1, 4)
        index, cardinality = oracle.write(index, 12, -5, 5, cardinality, 4)
        return index, cardinality

    def test_current_without_write(self, oracle):
        tick_cumulatives, seconds_per_liquidity = oracle.observe(10, [0], 2, 0, 4, 1)
        assert tick_cumulatives == [10]
        assert seconds_per_liquidity == [(5 << 128) // 4]

    def test_target_before_oldest(self, oracle):
        with pytest.raises(TargetPredatesOldestObservationError):
            oracle.observe(10, [6], 2, 0, 4, 1)

    def test_exact_and_interpolated(self, oracle):
        index, cardinality = self._history(oracle)
        tick_cumulatives, _ = oracle.observe(12, [0, 3, 5, 7], -5, index, 5, cardinality)
        assert tick_cumulatives == [-21, -6, 4, 0]

    def test_counterfactual_after_last_write(self, oracle):
        index, cardinality = self._history(oracle)
        tick_cumulatives, _ = oracle.observe(15, [0, 1], 1, index, 5, cardinality)
        assert tick_cumulatives == [-18, -19]

    def test_older_than_history(self, oracle):
        index, cardinality = self._history(oracle)
        with pytest.raises(TargetPredatesOldestObservationError):
            oracle.observe(12, [8], -5, index, 5, cardinality)

    def test_requires_cardinality(self, oracle):
        with pytest.raises(PreconditionError):
            oracle.observe(10, [0], 0, 0, 1, 0)

    def test_timestamp_wraparound(self):
        """Observations straddling the uint32 wrap still order and interpolate correctly."""
        oracle = Oracle()
        start = MAX_UINT32 - 4
        oracle.initialize(start)
        oracle.grow(1, 2)
        index, cardinality = oracle.write(0, 5, 1, 1, 1, 2)
        assert oracle[index].tick_cumulative == 10

        tick_cumulatives, _ = oracle.observe(5, [0, 10, 4], 1, index, 1, cardinality)
        assert tick_cumulatives == [10, 0, 6]
