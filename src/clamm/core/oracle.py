"""
Time-weighted price and liquidity oracle.

A ring buffer of cumulative observations:
- tick_cumulative: running integral of the tick over time (int56, wrapping)
- seconds_per_liquidity_cumulative_x128: running integral of 1/liquidity (uint160, wrapping)

The active ring holds `cardinality` slots. Growing the ring only reserves
slots; the writer moves into them once it reaches the end of the active ring,
so history is never discontinuous. Timestamps are uint32 and every
comparison is relative to the current time so the buffer survives wraparound.
"""

from __future__ import annotations

import logging
from dataclasses import dataclass

from ..exceptions import PreconditionError, TargetPredatesOldestObservationError
from .safe_math import MAX_UINT32, to_int, wrapping_add, wrapping_sub

logger = logging.getLogger(__name__)

MAX_CARDINALITY = 65535


@dataclass
class Observation:
    block_timestamp: int = 0
    tick_cumulative: int = 0
    seconds_per_liquidity_cumulative_x128: int = 0
    initialized: bool = False


def transform(last: Observation, block_timestamp: int, tick: int, liquidity: int) -> Observation:
    """Extrapolate `last` forward to block_timestamp at a constant tick and liquidity."""
    delta = wrapping_sub(block_timestamp, last.block_timestamp, 32)
    return Observation(
        block_timestamp=block_timestamp,
        tick_cumulative=to_int(last.tick_cumulative + tick * delta, 56),
        seconds_per_liquidity_cumulative_x128=wrapping_add(
            last.seconds_per_liquidity_cumulative_x128,
            (delta << 128) // max(liquidity, 1),
            160,
        ),
        initialized=True,
    )


def _lte(time: int, a: int, b: int) -> bool:
    """a <= b for timestamps at or before `time`, accounting for one uint32 wrap."""
    if a <= time and b <= time:
        return a <= b
    a_adjusted = a if a > time else a + (1 << 32)
    b_adjusted = b if b > time else b + (1 << 32)
    return a_adjusted <= b_adjusted


def _div_trunc(a: int, b: int) -> int:
    """Signed division truncating toward zero."""
    q = abs(a) // abs(b)
    return q if (a >= 0) == (b > 0) else -q


class Oracle:
    """Observation ring buffer for a single pool."""

    def __init__(self) -> None:
        self.observations: list[Observation] = [Observation()]

    def __getitem__(self, index: int) -> Observation:
        return self.observations[index]

    def initialize(self, time: int) -> tuple[int, int]:
        """
        Seed slot 0.

        Returns:
            (cardinality, cardinality_next), both 1
        """
        self.observations[0] = Observation(
            block_timestamp=time & MAX_UINT32,
            tick_cumulative=0,
            seconds_per_liquidity_cumulative_x128=0,
            initialized=True,
        )
        return 1, 1

    def write(
        self,
        index: int,
        block_timestamp: int,
        tick: int,
        liquidity: int,
        cardinality: int,
        cardinality_next: int,
    ) -> tuple[int, int]:
        """
        Append an observation, at most once per timestamp.

        Returns:
            (index_updated, cardinality_updated)
        """
        last = self.observations[index]
        if last.block_timestamp == block_timestamp:
            return index, cardinality

        # Move into reserved capacity once the active ring is full
        if cardinality_next > cardinality and index == cardinality - 1:
            cardinality_updated = cardinality_next
        else:
            cardinality_updated = cardinality

        index_updated = (index + 1) % cardinality_updated
        self.observations[index_updated] = transform(last, block_timestamp, tick, liquidity)
        return index_updated, cardinality_updated

    def grow(self, current: int, next_: int) -> int:
        """
        Reserve slots up to `next_`.

        Reserved slots get a non-zero timestamp and stay uninitialized, so a
        read can tell them apart from real history.

        Returns:
            The new cardinality_next (never smaller than `current`)
        """
        if current <= 0:
            raise PreconditionError("Oracle is not initialized", details={"cardinality": current})
        if next_ <= current:
            return current
        next_ = min(next_, MAX_CARDINALITY)
        while len(self.observations) < next_:
            self.observations.append(Observation(block_timestamp=1))
        return next_

    def _binary_search(
        self,
        time: int,
        target: int,
        index: int,
        cardinality: int,
    ) -> tuple[Observation, Observation]:
        left = (index + 1) % cardinality  # oldest observation
        right = left + cardinality - 1  # newest observation

        while True:
            i = (left + right) // 2
            before_or_at = self.observations[i % cardinality]

            # Reserved but never written; the real history is to the right
            if not before_or_at.initialized:
                left = i + 1
                continue

            at_or_after = self.observations[(i + 1) % cardinality]
            target_at_or_after = _lte(time, before_or_at.block_timestamp, target)

            if target_at_or_after and _lte(time, target, at_or_after.block_timestamp):
                return before_or_at, at_or_after

            if not target_at_or_after:
                right = i - 1
            else:
                left = i + 1

    def _surrounding_observations(
        self,
        time: int,
        target: int,
        tick: int,
        index: int,
        liquidity: int,
        cardinality: int,
    ) -> tuple[Observation, Observation]:
        before_or_at = self.observations[index]

        if _lte(time, before_or_at.block_timestamp, target):
            if before_or_at.block_timestamp == target:
                return before_or_at, before_or_at
            return before_or_at, transform(before_or_at, target, tick, liquidity)

        before_or_at = self.observations[(index + 1) % cardinality]
        if not before_or_at.initialized:
            before_or_at = self.observations[0]

        if not _lte(time, before_or_at.block_timestamp, target):
            raise TargetPredatesOldestObservationError(
                "Requested observation is older than the oldest stored observation",
                details={"target": target, "oldest": before_or_at.block_timestamp},
            )

        return self._binary_search(time, target, index, cardinality)

    def observe_single(
        self,
        time: int,
        seconds_ago: int,
        tick: int,
        index: int,
        liquidity: int,
        cardinality: int,
    ) -> tuple[int, int]:
        """
        Cumulative values as of `seconds_ago` before `time`.

        Returns:
            (tick_cumulative, seconds_per_liquidity_cumulative_x128)
        """
        if seconds_ago == 0:
            last = self.observations[index]
            if last.block_timestamp != time:
                last = transform(last, time, tick, liquidity)
            return last.tick_cumulative, last.seconds_per_liquidity_cumulative_x128

        target = wrapping_sub(time, seconds_ago, 32)
        before_or_at, at_or_after = self._surrounding_observations(
            time, target, tick, index, liquidity, cardinality
        )

        if target == before_or_at.block_timestamp:
            return before_or_at.tick_cumulative, before_or_at.seconds_per_liquidity_cumulative_x128
        if target == at_or_after.block_timestamp:
            return at_or_after.tick_cumulative, at_or_after.seconds_per_liquidity_cumulative_x128

        # Interpolate between the two bracketing observations
        observation_time_delta = wrapping_sub(
            at_or_after.block_timestamp, before_or_at.block_timestamp, 32
        )
        target_delta = wrapping_sub(target, before_or_at.block_timestamp, 32)
        tick_cumulative = to_int(
            before_or_at.tick_cumulative
            + _div_trunc(
                at_or_after.tick_cumulative - before_or_at.tick_cumulative,
                observation_time_delta,
            )
            * target_delta,
            56,
        )
        seconds_per_liquidity = wrapping_add(
            before_or_at.seconds_per_liquidity_cumulative_x128,
            wrapping_sub(
                at_or_after.seconds_per_liquidity_cumulative_x128,
                before_or_at.seconds_per_liquidity_cumulative_x128,
                160,
            )
            * target_delta
            // observation_time_delta,
            160,
        )
        return tick_cumulative, seconds_per_liquidity

    def observe(
        self,
        time: int,
        seconds_agos: list[int],
        tick: int,
        index: int,
        liquidity: int,
        cardinality: int,
    ) -> tuple[list[int], list[int]]:
        """Vectorized observe_single; results follow the order of `seconds_agos`."""
        if cardinality <= 0:
            raise PreconditionError("Oracle is not initialized", details={"cardinality": cardinality})

        tick_cumulatives: list[int] = []
        seconds_per_liquidity_cumulatives: list[int] = []
        for seconds_ago in seconds_agos:
            tick_cumulative, seconds_per_liquidity = self.observe_single(
                time, seconds_ago, tick, index, liquidity, cardinality
            )
            tick_cumulatives.append(tick_cumulative)
            seconds_per_liquidity_cumulatives.append(seconds_per_liquidity)
        return tick_cumulatives, seconds_per_liquidity_cumulatives
