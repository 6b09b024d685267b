"""
Fixed-width integer arithmetic for the accounting engine.

Python integers never overflow, so every quantity that is defined modulo a
fixed width (fee growth, cumulative ticks, timestamps) or bounded by one
(liquidity, owed balances) goes through the helpers here:

- mul_div / mul_div_rounding_up: (a * b) / denominator at full precision
- wrapping_add / wrapping_sub: modular arithmetic on unsigned widths
- to_int: two's-complement narrowing for signed accumulators
- saturating_add: clamp instead of wrap for claimable balances
"""

from __future__ import annotations

from ..exceptions import MathOverflowError

Q96 = 1 << 96
Q128 = 1 << 128

MAX_UINT32 = (1 << 32) - 1
MAX_UINT128 = (1 << 128) - 1
MAX_UINT160 = (1 << 160) - 1
MAX_UINT256 = (1 << 256) - 1

MIN_INT128 = -(1 << 127)
MAX_INT128 = (1 << 127) - 1

# Parts per million; fees and protocol rates are expressed in pips
PIPS_DENOMINATOR = 1_000_000


def mul_div(a: int, b: int, denominator: int, round_up: bool = False) -> int:
    """
    Calculate (a * b) / denominator with full precision and controlled rounding.

    Args:
        a: First multiplicand
        b: Second multiplicand
        denominator: Divisor
        round_up: If True, round up (for charging users)
                  If False, round down (for paying users)

    Returns:
        Result of (a * b) / denominator

    Raises:
        MathOverflowError: If denominator is zero or the result exceeds uint256
    """
    if denominator == 0:
        raise MathOverflowError("Division by zero", details={"a": a, "b": b})

    product = a * b
    result = product // denominator
    if round_up and product % denominator:
        result += 1

    if result > MAX_UINT256 or result < 0:
        raise MathOverflowError(
            "mul_div result exceeds uint256",
            details={"a": a, "b": b, "denominator": denominator},
        )
    return result


def mul_div_rounding_up(a: int, b: int, denominator: int) -> int:
    return mul_div(a, b, denominator, round_up=True)


def div_rounding_up(a: int, b: int) -> int:
    """Unsigned ceil(a / b); b must be non-zero."""
    if b == 0:
        raise MathOverflowError("Division by zero", details={"a": a})
    return -(-a // b)


def wrapping_add(a: int, b: int, bits: int = 256) -> int:
    return (a + b) & ((1 << bits) - 1)


def wrapping_sub(a: int, b: int, bits: int = 256) -> int:
    """a - b modulo 2**bits. A result that looks like a wrap is expected, not an error."""
    return (a - b) & ((1 << bits) - 1)


def to_int(value: int, bits: int) -> int:
    """Reinterpret the low `bits` of value as a two's-complement signed integer."""
    mask = (1 << bits) - 1
    value &= mask
    if value >> (bits - 1):
        value -= 1 << bits
    return value


def saturating_add(a: int, b: int, bits: int = 128) -> int:
    """a + b clamped at 2**bits - 1."""
    return min(a + b, (1 << bits) - 1)


def to_uint160(value: int) -> int:
    if value < 0 or value > MAX_UINT160:
        raise MathOverflowError("Value does not fit in uint160", details={"value": value})
    return value


def to_uint128(value: int) -> int:
    if value < 0 or value > MAX_UINT128:
        raise MathOverflowError("Value does not fit in uint128", details={"value": value})
    return value


def add_delta(x: int, y: int) -> int:
    """Apply signed liquidity delta y to uint128 x."""
    z = x + y
    if z < 0:
        raise MathOverflowError("Liquidity underflow", details={"x": x, "y": y})
    if z > MAX_UINT128:
        raise MathOverflowError("Liquidity overflow", details={"x": x, "y": y})
    return z
