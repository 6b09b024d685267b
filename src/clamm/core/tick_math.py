"""
Tick <-> sqrt price conversion.

Prices are represented as sqrt(token1/token0) in Q64.96 fixed point and are
discretized into ticks where price(tick) = 1.0001 ** tick. Both directions are
exact integer computations:

- get_sqrt_ratio_at_tick uses the precomputed 1/sqrt(1.0001)^(2^i) table in
  Q128.128 and rounds the Q96 result up
- get_tick_at_sqrt_ratio returns the greatest tick whose ratio is <= price
"""

from __future__ import annotations

import math
from decimal import Decimal, localcontext

from ..exceptions import UnrepresentableError
from .safe_math import MAX_UINT256, Q96

MIN_TICK = -887272
MAX_TICK = 887272
MIN_SQRT_RATIO = 4295128739
MAX_SQRT_RATIO = 1461446703485210103287273052203988822378723970342

# 1/sqrt(1.0001)^(2^i) in Q128.128 for i = 0..19
_RATIOS = (
    0xFFFCB933BD6FAD37AA2D162D1A594001,
    0xFFF97272373D413259A46990580E213A,
    0xFFF2E50F5F656932EF12357CF3C7FDCC,
    0xFFE5CACA7E10E4E61C3624EAA0941CD0,
    0xFFCB9843D60F6159C9DB58835C926644,
    0xFF973B41FA98C081472E6896DFB254C0,
    0xFF2EA16466C96A3843EC78B326B52861,
    0xFE5DEE046A99A2A811C461F1969C3053,
    0xFCBE86C7900A88AEDCFFC83B479AA3A4,
    0xF987A7253AC413176F2B074CF7815E54,
    0xF3392B0822B70005940C7A398E4B70F3,
    0xE7159475A2C29B7443B29C7FA6E889D9,
    0xD097F3BDFD2022B8845AD8F792AA5825,
    0xA9F746462D870FDF8A65DC1F90E061E5,
    0x70D869A156D2A1B890BB3DF62BAF32F7,
    0x31BE135F97D08FD981231505542FCFA6,
    0x9AA508B5B7A84E1C677DE54F3E99BC9,
    0x5D6AF8DEDB81196699C329225EE604,
    0x2216E584F5FA1EA926041BEDFE98,
    0x48A170391F7DC42444E8FA2,
)


def get_sqrt_ratio_at_tick(tick: int) -> int:
    """
    Convert tick to sqrt price in Q64.96 format.

    sqrt_price = 1.0001^(tick/2) * 2^96, rounded up so that
    get_tick_at_sqrt_ratio(get_sqrt_ratio_at_tick(tick)) == tick.

    Raises:
        UnrepresentableError: If tick is outside [MIN_TICK, MAX_TICK]
    """
    if tick < MIN_TICK or tick > MAX_TICK:
        raise UnrepresentableError("Tick out of range", details={"tick": tick})

    abs_tick = abs(tick)
    ratio = 1 << 128
    for i, factor in enumerate(_RATIOS):
        if abs_tick & (1 << i):
            ratio = (ratio * factor) >> 128

    if tick > 0:
        ratio = MAX_UINT256 // ratio

    # Q128.128 -> Q64.96, rounding up
    return (ratio >> 32) + (1 if ratio & 0xFFFFFFFF else 0)


def get_tick_at_sqrt_ratio(sqrt_price_x96: int) -> int:
    """
    Convert sqrt price to tick.

    tick = floor(log_1.0001(sqrt_price^2)), found by binary search over the
    exact forward conversion.

    Raises:
        UnrepresentableError: If sqrt price is outside [MIN_SQRT_RATIO, MAX_SQRT_RATIO]
    """
    if sqrt_price_x96 < MIN_SQRT_RATIO or sqrt_price_x96 > MAX_SQRT_RATIO:
        raise UnrepresentableError(
            "Sqrt price out of range", details={"sqrt_price_x96": sqrt_price_x96}
        )

    low, high = MIN_TICK, MAX_TICK
    while low < high:
        mid = (low + high + 1) // 2
        if get_sqrt_ratio_at_tick(mid) <= sqrt_price_x96:
            low = mid
        else:
            high = mid - 1
    return low


def tick_to_price(tick: int) -> float:
    """Convert tick to actual price (for display)."""
    return 1.0001 ** tick


def price_to_tick(price: float) -> int:
    """Convert price to the tick at or below it (for display)."""
    if price <= 0:
        raise UnrepresentableError("Price must be positive", details={"price": price})
    return math.floor(math.log(price) / math.log(1.0001))


def encode_sqrt_price(amount1: int, amount0: int) -> int:
    """sqrt(amount1 / amount0) as Q64.96, for seeding pools at a reserve ratio."""
    if amount0 <= 0 or amount1 <= 0:
        raise UnrepresentableError(
            "Reserves must be positive", details={"amount0": amount0, "amount1": amount1}
        )
    return math.isqrt((amount1 << 192) // amount0)


def sqrt_price_to_price(sqrt_price_x96: int, decimals_token0: int = 0, decimals_token1: int = 0) -> Decimal:
    """Convert sqrtPriceX96 to a human price of token0 in token1 units."""
    with localcontext() as ctx:
        ctx.prec = 80
        sqrt_dec = Decimal(sqrt_price_x96) / Decimal(Q96)
        scale = Decimal(10) ** (decimals_token0 - decimals_token1)
        return (sqrt_dec * sqrt_dec) * scale
