"""
Sqrt-price deltas and token amount deltas for a liquidity range.

Rounding always favours the pool: amounts the pool receives round up,
amounts it pays round down, and next-price computations round toward the
side that can never over-deliver output.
"""

from __future__ import annotations

from ..exceptions import MathOverflowError, UnrepresentableError
from .safe_math import (
    MAX_UINT256,
    Q96,
    div_rounding_up,
    mul_div,
    mul_div_rounding_up,
    to_uint160,
)


def get_next_sqrt_price_from_amount0_rounding_up(
    sqrt_price_x96: int,
    liquidity: int,
    amount: int,
    add: bool,
) -> int:
    """Price after adding/removing `amount` of token0, rounded up."""
    if amount == 0:
        return sqrt_price_x96
    numerator1 = liquidity << 96
    product = amount * sqrt_price_x96

    if add:
        if product <= MAX_UINT256:
            denominator = numerator1 + product
            if denominator <= MAX_UINT256:
                return mul_div_rounding_up(numerator1, sqrt_price_x96, denominator)
        return div_rounding_up(numerator1, numerator1 // sqrt_price_x96 + amount)

    if product > MAX_UINT256 or numerator1 <= product:
        raise MathOverflowError(
            "Token0 output exceeds available liquidity",
            details={"amount": amount, "liquidity": liquidity},
        )
    return to_uint160(mul_div_rounding_up(numerator1, sqrt_price_x96, numerator1 - product))


def get_next_sqrt_price_from_amount1_rounding_down(
    sqrt_price_x96: int,
    liquidity: int,
    amount: int,
    add: bool,
) -> int:
    """Price after adding/removing `amount` of token1, rounded down."""
    if add:
        quotient = mul_div(amount, Q96, liquidity)
        return to_uint160(sqrt_price_x96 + quotient)

    quotient = mul_div_rounding_up(amount, Q96, liquidity)
    if sqrt_price_x96 <= quotient:
        raise MathOverflowError(
            "Token1 output exceeds available liquidity",
            details={"amount": amount, "liquidity": liquidity},
        )
    return sqrt_price_x96 - quotient


def get_next_sqrt_price_from_input(
    sqrt_price_x96: int,
    liquidity: int,
    amount_in: int,
    zero_for_one: bool,
) -> int:
    """Price after swapping `amount_in` into the pool; never overshoots the true price."""
    if sqrt_price_x96 <= 0 or liquidity <= 0:
        raise UnrepresentableError(
            "Price and liquidity must be positive",
            details={"sqrt_price_x96": sqrt_price_x96, "liquidity": liquidity},
        )
    if zero_for_one:
        return get_next_sqrt_price_from_amount0_rounding_up(sqrt_price_x96, liquidity, amount_in, True)
    return get_next_sqrt_price_from_amount1_rounding_down(sqrt_price_x96, liquidity, amount_in, True)


def get_next_sqrt_price_from_output(
    sqrt_price_x96: int,
    liquidity: int,
    amount_out: int,
    zero_for_one: bool,
) -> int:
    """Price after taking `amount_out` out of the pool; always passes the target price."""
    if sqrt_price_x96 <= 0 or liquidity <= 0:
        raise UnrepresentableError(
            "Price and liquidity must be positive",
            details={"sqrt_price_x96": sqrt_price_x96, "liquidity": liquidity},
        )
    if zero_for_one:
        return get_next_sqrt_price_from_amount1_rounding_down(sqrt_price_x96, liquidity, amount_out, False)
    return get_next_sqrt_price_from_amount0_rounding_up(sqrt_price_x96, liquidity, amount_out, False)


def get_amount0_delta(
    sqrt_price_a: int,
    sqrt_price_b: int,
    liquidity: int,
    round_up: bool,
) -> int:
    """Calculate token0 amount for liquidity between two prices."""
    if sqrt_price_a > sqrt_price_b:
        sqrt_price_a, sqrt_price_b = sqrt_price_b, sqrt_price_a
    if sqrt_price_a <= 0:
        raise UnrepresentableError("Sqrt price must be positive", details={"sqrt_price": sqrt_price_a})

    numerator1 = liquidity << 96
    numerator2 = sqrt_price_b - sqrt_price_a

    if round_up:
        return div_rounding_up(
            mul_div_rounding_up(numerator1, numerator2, sqrt_price_b), sqrt_price_a
        )
    return mul_div(numerator1, numerator2, sqrt_price_b) // sqrt_price_a


def get_amount1_delta(
    sqrt_price_a: int,
    sqrt_price_b: int,
    liquidity: int,
    round_up: bool,
) -> int:
    """Calculate token1 amount for liquidity between two prices."""
    if sqrt_price_a > sqrt_price_b:
        sqrt_price_a, sqrt_price_b = sqrt_price_b, sqrt_price_a

    if round_up:
        return mul_div_rounding_up(liquidity, sqrt_price_b - sqrt_price_a, Q96)
    return mul_div(liquidity, sqrt_price_b - sqrt_price_a, Q96)


def get_amount0_delta_signed(sqrt_price_a: int, sqrt_price_b: int, liquidity_delta: int) -> int:
    """Token0 owed for a signed liquidity delta; added liquidity rounds up, removed rounds down."""
    if liquidity_delta < 0:
        return -get_amount0_delta(sqrt_price_a, sqrt_price_b, -liquidity_delta, False)
    return get_amount0_delta(sqrt_price_a, sqrt_price_b, liquidity_delta, True)


def get_amount1_delta_signed(sqrt_price_a: int, sqrt_price_b: int, liquidity_delta: int) -> int:
    """Token1 owed for a signed liquidity delta; added liquidity rounds up, removed rounds down."""
    if liquidity_delta < 0:
        return -get_amount1_delta(sqrt_price_a, sqrt_price_b, -liquidity_delta, False)
    return get_amount1_delta(sqrt_price_a, sqrt_price_b, liquidity_delta, True)


__all__ = [
    "get_next_sqrt_price_from_amount0_rounding_up",
    "get_next_sqrt_price_from_amount1_rounding_down",
    "get_next_sqrt_price_from_input",
    "get_next_sqrt_price_from_output",
    "get_amount0_delta",
    "get_amount1_delta",
    "get_amount0_delta_signed",
    "get_amount1_delta_signed",
]
