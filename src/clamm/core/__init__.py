"""
clamm accounting engine core.

This module provides the concentrated-liquidity engine components:
- Fixed-point math: full-precision mul/div, tick <-> sqrt price, swap steps
- Tick Registry: per-tick liquidity and "outside" growth accounting
- Tick Bitmap: next-initialized-tick index
- Position Ledger: per-(owner, range) liquidity, fees and rewards
- Oracle: time-weighted tick and liquidity observations
- Fee Splitter: LP / protocol fee partition
- Pool: swap engine and every exposed pool operation
"""

from .collaborators import (
    AccumulatingRewardSource,
    InMemoryAssetLedger,
    StaticFeeRateProvider,
)
from .fee_splitter import split
from .interfaces import (
    AssetLedger,
    FlashCallback,
    MintCallback,
    ProtocolFeeRateProvider,
    RewardEmissionSource,
    SupportsAtomic,
    SwapCallback,
)
from .oracle import Observation, Oracle
from .pool import ConcentratedLiquidityPool, FeeTier, Slot0, SwapQuote
from .position import PositionInfo, PositionLedger
from .swap_math import SwapStepResult, compute_swap_step
from .tick import TickInfo, TickRegistry, tick_spacing_to_max_liquidity_per_tick
from .tick_bitmap import TickBitmap
from .tick_math import (
    MAX_SQRT_RATIO,
    MAX_TICK,
    MIN_SQRT_RATIO,
    MIN_TICK,
    encode_sqrt_price,
    get_sqrt_ratio_at_tick,
    get_tick_at_sqrt_ratio,
)

__all__ = [
    # Pool
    "ConcentratedLiquidityPool",
    "FeeTier",
    "Slot0",
    "SwapQuote",
    # Ledgers
    "TickInfo",
    "TickRegistry",
    "TickBitmap",
    "PositionInfo",
    "PositionLedger",
    "Observation",
    "Oracle",
    "tick_spacing_to_max_liquidity_per_tick",
    # Math
    "SwapStepResult",
    "compute_swap_step",
    "split",
    "MIN_TICK",
    "MAX_TICK",
    "MIN_SQRT_RATIO",
    "MAX_SQRT_RATIO",
    "encode_sqrt_price",
    "get_sqrt_ratio_at_tick",
    "get_tick_at_sqrt_ratio",
    # Collaborators
    "AssetLedger",
    "ProtocolFeeRateProvider",
    "RewardEmissionSource",
    "MintCallback",
    "SwapCallback",
    "FlashCallback",
    "SupportsAtomic",
    "InMemoryAssetLedger",
    "StaticFeeRateProvider",
    "AccumulatingRewardSource",
]
