"""
Test configuration and fixtures
"""
import logging
import sys
from pathlib import Path

# Add project root and src to Python path
project_root = Path(__file__).parent.parent
src_path = project_root / "src"

sys.path.insert(0, str(project_root))
sys.path.insert(0, str(src_path))

import pytest

from clamm.core.collaborators import (
    AccumulatingRewardSource,
    InMemoryAssetLedger,
    StaticFeeRateProvider,
)
from clamm.core.pool import ConcentratedLiquidityPool, FeeTier
from clamm.core.safe_math import Q96

FUNDED_ACCOUNTS = ("alice", "bob", "trader")
INITIAL_BALANCE = 10**40


class FakeClock:
    """Deterministic block timestamp source."""

    def __init__(self, now: int = 1_000_000):
        self.now = now

    def __call__(self) -> int:
        return self.now

    def advance(self, seconds: int) -> None:
        self.now += seconds


def _funded_ledger(symbol: str) -> InMemoryAssetLedger:
    ledger = InMemoryAssetLedger(symbol)
    for account in FUNDED_ACCOUNTS:
        ledger.mint(account, INITIAL_BALANCE)
    return ledger


@pytest.fixture(autouse=True)
def engine_logger():
    """Restore the "clamm" logger after tests that configure it."""
    logger = logging.getLogger("clamm")
    handlers, level = list(logger.handlers), logger.level
    yield logger
    for handler in list(logger.handlers):
        if handler not in handlers:
            logger.removeHandler(handler)
            handler.close()
    logger.handlers = handlers
    logger.setLevel(level)


@pytest.fixture
def clock():
    return FakeClock()


@pytest.fixture
def token0():
    return _funded_ledger("TK0")


@pytest.fixture
def token1():
    return _funded_ledger("TK1")


@pytest.fixture
def fee_rates():
    return StaticFeeRateProvider()


@pytest.fixture
def reward_ledger():
    return InMemoryAssetLedger("RWD")


@pytest.fixture
def reward_source(reward_ledger):
    return AccumulatingRewardSource(reward_ledger)


@pytest.fixture
def make_pool(token0, token1, fee_rates, reward_source, clock):
    """Factory for pools wired to the shared ledgers; initialized at price 1 by default."""

    def _make(fee_tier=FeeTier.MEDIUM, sqrt_price_x96=Q96, **kwargs):
        kwargs.setdefault("fee_rate_provider", fee_rates)
        kwargs.setdefault("reward_source", reward_source)
        pool = ConcentratedLiquidityPool(
            token0=token0,
            token1=token1,
            fee_tier=fee_tier,
            fee_collector="treasury",
            clock=clock,
            **kwargs,
        )
        if sqrt_price_x96 is not None:
            pool.initialize(sqrt_price_x96)
        return pool

    return _make


@pytest.fixture
def pool(make_pool):
    return make_pool()


@pytest.fixture
def pay(token0, token1):
    """
    Build a callback that pays every positive delta from `payer` into the pool.

    shortfall0/shortfall1 underpay by that many units to simulate a
    misbehaving payer.
    """

    def _pay(pool, payer, shortfall0=0, shortfall1=0):
        def callback(amount0, amount1, data):
            if amount0 > 0:
                token0.transfer(payer, pool.address, amount0 - shortfall0)
            if amount1 > 0:
                token1.transfer(payer, pool.address, amount1 - shortfall1)

        return callback

    return _pay
