"""Single bounded swap step within one liquidity range."""

from __future__ import annotations

from dataclasses import dataclass

from .safe_math import PIPS_DENOMINATOR, mul_div, mul_div_rounding_up
from .sqrt_price_math import (
    get_amount0_delta,
    get_amount1_delta,
    get_next_sqrt_price_from_input,
    get_next_sqrt_price_from_output,
)


@dataclass(frozen=True)
class SwapStepResult:
    sqrt_price_next: int
    amount_in: int
    amount_out: int
    fee_amount: int


def compute_swap_step(
    sqrt_price_current: int,
    sqrt_price_target: int,
    liquidity: int,
    amount_remaining: int,
    fee_pips: int,
) -> SwapStepResult:
    """
    Compute a single swap step toward sqrt_price_target.

    Direction is implied by the prices (current >= target means token0 in).
    A positive amount_remaining is exact input (including fee); a negative one
    is exact output. Input rounds up, output rounds down, and when an exact
    input step stops short of the target the whole remainder is taken as fee.

    Returns:
        SwapStepResult(sqrt_price_next, amount_in, amount_out, fee_amount)
    """
    zero_for_one = sqrt_price_current >= sqrt_price_target
    exact_in = amount_remaining >= 0

    amount_in = 0
    amount_out = 0

    if exact_in:
        amount_remaining_less_fee = mul_div(
            amount_remaining, PIPS_DENOMINATOR - fee_pips, PIPS_DENOMINATOR
        )
        if zero_for_one:
            amount_in = get_amount0_delta(sqrt_price_target, sqrt_price_current, liquidity, True)
        else:
            amount_in = get_amount1_delta(sqrt_price_current, sqrt_price_target, liquidity, True)

        if amount_remaining_less_fee >= amount_in:
            sqrt_price_next = sqrt_price_target
        else:
            sqrt_price_next = get_next_sqrt_price_from_input(
                sqrt_price_current, liquidity, amount_remaining_less_fee, zero_for_one
            )
    else:
        if zero_for_one:
            amount_out = get_amount1_delta(sqrt_price_target, sqrt_price_current, liquidity, False)
        else:
            amount_out = get_amount0_delta(sqrt_price_current, sqrt_price_target, liquidity, False)

        if -amount_remaining >= amount_out:
            sqrt_price_next = sqrt_price_target
        else:
            sqrt_price_next = get_next_sqrt_price_from_output(
                sqrt_price_current, liquidity, -amount_remaining, zero_for_one
            )

    reached_target = sqrt_price_target == sqrt_price_next

    if zero_for_one:
        if not (reached_target and exact_in):
            amount_in = get_amount0_delta(sqrt_price_next, sqrt_price_current, liquidity, True)
        if not (reached_target and not exact_in):
            amount_out = get_amount1_delta(sqrt_price_next, sqrt_price_current, liquidity, False)
    else:
        if not (reached_target and exact_in):
            amount_in = get_amount1_delta(sqrt_price_current, sqrt_price_next, liquidity, True)
        if not (reached_target and not exact_in):
            amount_out = get_amount0_delta(sqrt_price_current, sqrt_price_next, liquidity, False)

    # Exact output never pays out more than requested
    if not exact_in and amount_out > -amount_remaining:
        amount_out = -amount_remaining

    if exact_in and sqrt_price_next != sqrt_price_target:
        fee_amount = amount_remaining - amount_in
    else:
        fee_amount = mul_div_rounding_up(amount_in, fee_pips, PIPS_DENOMINATOR - fee_pips)

    return SwapStepResult(sqrt_price_next, amount_in, amount_out, fee_amount)
