"""
Packed bitmap of initialized ticks.

One bit per compressed tick (tick // tick_spacing), 256 bits per word. The
swap engine asks for the next initialized tick within the current word only,
so every lookup is bounded by the word size no matter how sparse the ticks are.
"""

from __future__ import annotations

from ..exceptions import TickSpacingError
from .safe_math import MAX_UINT256


def _position(compressed: int) -> tuple[int, int]:
    """(word position, bit position) for a compressed tick."""
    return compressed >> 8, compressed & 0xFF


def _most_significant_bit(x: int) -> int:
    return x.bit_length() - 1


def _least_significant_bit(x: int) -> int:
    return (x & -x).bit_length() - 1


class TickBitmap:
    """Bitmap index of initialized ticks keyed by word position."""

    def __init__(self) -> None:
        self.words: dict[int, int] = {}

    def flip_tick(self, tick: int, tick_spacing: int) -> None:
        """Flip the initialized state of a tick."""
        if tick % tick_spacing != 0:
            raise TickSpacingError(
                f"Tick {tick} is not a multiple of {tick_spacing}",
                details={"tick": tick, "tick_spacing": tick_spacing},
            )
        word_pos, bit_pos = _position(tick // tick_spacing)
        word = self.words.get(word_pos, 0) ^ (1 << bit_pos)
        if word:
            self.words[word_pos] = word
        else:
            self.words.pop(word_pos, None)

    def is_initialized(self, tick: int, tick_spacing: int) -> bool:
        word_pos, bit_pos = _position(tick // tick_spacing)
        return bool(self.words.get(word_pos, 0) >> bit_pos & 1)

    def next_initialized_tick_within_one_word(
        self,
        tick: int,
        tick_spacing: int,
        lte: bool,
    ) -> tuple[int, bool]:
        """
        Find the next initialized tick in the same word as `tick`.

        Args:
            tick: Starting tick
            tick_spacing: Pool tick spacing
            lte: Search at-or-before `tick` (True) or strictly after it (False)

        Returns:
            (next_tick, initialized); when the word has no set bit in that
            direction, next_tick is the word boundary and initialized is False
        """
        compressed = tick // tick_spacing

        if lte:
            word_pos, bit_pos = _position(compressed)
            # All bits at or to the right of bit_pos
            mask = (1 << bit_pos) - 1 + (1 << bit_pos)
            masked = self.words.get(word_pos, 0) & mask
            initialized = masked != 0
            if initialized:
                next_tick = (compressed - (bit_pos - _most_significant_bit(masked))) * tick_spacing
            else:
                next_tick = (compressed - bit_pos) * tick_spacing
            return next_tick, initialized

        word_pos, bit_pos = _position(compressed + 1)
        # All bits at or to the left of bit_pos
        mask = ~((1 << bit_pos) - 1) & MAX_UINT256
        masked = self.words.get(word_pos, 0) & mask
        initialized = masked != 0
        if initialized:
            next_tick = (compressed + 1 + (_least_significant_bit(masked) - bit_pos)) * tick_spacing
        else:
            next_tick = (compressed + 1 + (255 - bit_pos)) * tick_spacing
        return next_tick, initialized
