"""
Partition a trading fee between liquidity providers and the protocol.

Only unstaked liquidity earns trading fees. The notional share of staked
liquidity is not credited to LP fee growth at all; it is routed to the
protocol-fee ledger together with the protocol's own cut, and staked
liquidity is compensated through the reward stream instead.
"""

from __future__ import annotations

from ..exceptions import InvalidFeeSplitError
from .safe_math import PIPS_DENOMINATOR, mul_div


def split(
    fee_amount: int,
    protocol_fee_rate: int,
    total_liquidity: int,
    staked_liquidity: int,
) -> tuple[int, int]:
    """
    Split a fee amount.

    Args:
        fee_amount: Fee collected in one swap step (or flash loan)
        protocol_fee_rate: Protocol share in pips, 0 to 1_000_000
        total_liquidity: In-range liquidity
        staked_liquidity: Staked part of the in-range liquidity

    Returns:
        (lp_fee, protocol_fee), summing to fee_amount

    Raises:
        InvalidFeeSplitError: rate out of range or staked above total
    """
    if protocol_fee_rate < 0 or protocol_fee_rate > PIPS_DENOMINATOR:
        raise InvalidFeeSplitError(
            f"Protocol fee rate {protocol_fee_rate} outside [0, {PIPS_DENOMINATOR}]",
            details={"protocol_fee_rate": protocol_fee_rate},
        )
    if staked_liquidity < 0 or staked_liquidity > total_liquidity:
        raise InvalidFeeSplitError(
            "Staked liquidity exceeds total liquidity",
            details={"total_liquidity": total_liquidity, "staked_liquidity": staked_liquidity},
        )

    # Nobody in range to credit
    if total_liquidity == 0:
        return 0, fee_amount

    lp_fee = mul_div(
        fee_amount,
        (PIPS_DENOMINATOR - protocol_fee_rate) * (total_liquidity - staked_liquidity),
        PIPS_DENOMINATOR * total_liquidity,
    )
    return lp_fee, fee_amount - lp_fee
