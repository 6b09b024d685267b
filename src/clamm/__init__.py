"""
clamm - Concentrated-Liquidity AMM Accounting Engine

Liquidity providers supply two assets within a chosen tick range; traders
swap between them at a price set by on-curve liquidity. Trading fees accrue
to unstaked liquidity, a separate reward stream accrues to staked liquidity,
and a share of every fee is routed to the protocol.

Main Components:
- core: fixed-point math, tick and position ledgers, oracle, swap engine
- exceptions: typed error hierarchy
- config: environment-driven engine settings
- logging_config: structured JSON logging
- metrics: Prometheus metrics for pools
"""

__version__ = "0.1.0"
__author__ = "clamm Development Team"

from .core import (
    AccumulatingRewardSource,
    ConcentratedLiquidityPool,
    FeeTier,
    InMemoryAssetLedger,
    StaticFeeRateProvider,
    SwapQuote,
)
from .exceptions import PoolError

__all__ = [
    "ConcentratedLiquidityPool",
    "FeeTier",
    "SwapQuote",
    "InMemoryAssetLedger",
    "StaticFeeRateProvider",
    "AccumulatingRewardSource",
    "PoolError",
]
