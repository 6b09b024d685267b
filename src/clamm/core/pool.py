"""
Concentrated Liquidity Pool Implementation (staked-liquidity variant).

Provides capital-efficient liquidity provision through:
- Price range positions keyed by (owner, tick_lower, tick_upper)
- Tick-based price representation with Q64.96 sqrt prices
- Trading fees accruing to unstaked liquidity only
- A reward stream accruing to staked liquidity
- Time-weighted tick and liquidity oracle
- Flash loans with same-call repayment

Security features:
- Tick spacing validation
- Position bounds checking
- Per-pool reentrancy guard released on every exit path
- Staged state: nothing is committed until every check and payment passed
- Payments verified by observed ledger balances, never by return values
"""

from __future__ import annotations

import hashlib
import logging
import time
from contextlib import ExitStack, contextmanager
from dataclasses import dataclass, field
from enum import Enum
from typing import TYPE_CHECKING, Any, Callable, Iterator

from ..exceptions import (
    AlreadyInitializedError,
    FlashRepaymentError,
    InsufficientInputPaidError,
    InvalidFeeSplitError,
    InvalidTickRangeError,
    LockedError,
    NoLiquidityError,
    NotInitializedError,
    PreconditionError,
    PriceLimitError,
    TickSpacingError,
    UnauthorizedError,
    ZeroAmountError,
    get_error_context,
)
from ..logging_config import setup_engine_logging
from ..metrics import PoolMetrics, get_pool_metrics
from .collaborators import StaticFeeRateProvider
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
from .oracle import Oracle
from .position import PositionInfo, PositionLedger
from .safe_math import (
    MAX_UINT32,
    PIPS_DENOMINATOR,
    Q128,
    add_delta,
    mul_div,
    mul_div_rounding_up,
    saturating_add,
    to_int,
    wrapping_add,
    wrapping_sub,
)
from .sqrt_price_math import get_amount0_delta_signed, get_amount1_delta_signed
from .swap_math import compute_swap_step
from .tick import TickRegistry, tick_spacing_to_max_liquidity_per_tick
from .tick_bitmap import TickBitmap
from .tick_math import (
    MAX_SQRT_RATIO,
    MAX_TICK,
    MIN_SQRT_RATIO,
    MIN_TICK,
    get_sqrt_ratio_at_tick,
    get_tick_at_sqrt_ratio,
    tick_to_price,
)

if TYPE_CHECKING:
    from ..config import EngineConfig

logger = logging.getLogger(__name__)


class FeeTier(Enum):
    """Available fee tiers with corresponding tick spacing."""
    LOW = (100, 1)      # 0.01% fee, 1 tick spacing
    MEDIUM = (500, 10)   # 0.05% fee, 10 tick spacing
    STANDARD = (3000, 60)  # 0.30% fee, 60 tick spacing
    HIGH = (10000, 200)   # 1.00% fee, 200 tick spacing

    def __init__(self, fee: int, tick_spacing: int):
        self.fee = fee  # In pips (1_000_000 = 100%)
        self.tick_spacing = tick_spacing

    @classmethod
    def from_name(cls, name: str) -> "FeeTier":
        return cls[name.strip().upper()]


def _wall_clock() -> int:
    return int(time.time())


@dataclass
class Slot0:
    """Hot pool state read by every operation."""
    sqrt_price_x96: int = 0
    tick: int = 0
    observation_index: int = 0
    observation_cardinality: int = 0
    observation_cardinality_next: int = 0
    unlocked: bool = False  # False until initialized


@dataclass(frozen=True)
class SwapQuote:
    """Outcome of a simulated swap."""
    amount0: int
    amount1: int
    sqrt_price_x96: int
    tick: int
    ticks_crossed: int
    fee_amount: int


@dataclass
class _SwapState:
    amount_specified_remaining: int
    amount_calculated: int
    sqrt_price_x96: int
    tick: int
    fee_growth_global_x128: int
    liquidity: int
    staked_liquidity: int
    lp_fee: int = 0
    protocol_fee: int = 0
    fee_amount: int = 0


@dataclass
class _SwapComputation:
    amount0: int
    amount1: int
    state: _SwapState
    # (tick, fee growth of the input token at the moment of crossing)
    crossings: list[tuple[int, int]]
    tick_cumulative: int = 0
    seconds_per_liquidity_cumulative_x128: int = 0


@dataclass
class ConcentratedLiquidityPool:
    """
    Concentrated liquidity pool with a staked-liquidity reward stream.

    Key features:
    - LPs provide liquidity in specific price ranges
    - Swap fees accumulate only while in range, and only to unstaked liquidity
    - Staked liquidity earns the external reward stream instead
    - The protocol receives its rate plus the staked share of every fee

    Price representation:
    - Uses sqrt price (Q64.96 format) for precision
    - Ticks represent discretized price points
    - tick = log1.0001(price)
    """

    token0: AssetLedger
    token1: AssetLedger
    fee_rate_provider: ProtocolFeeRateProvider = field(default_factory=StaticFeeRateProvider)
    reward_source: RewardEmissionSource | None = None
    fee_tier: FeeTier = FeeTier.STANDARD
    fee_collector: str = ""
    address: str = ""
    clock: Callable[[], int] = _wall_clock
    metrics: PoolMetrics | None = None
    initial_cardinality_next: int = 1

    # Current state
    slot0: Slot0 = field(default_factory=Slot0, init=False)
    liquidity: int = field(default=0, init=False)  # Active liquidity
    staked_liquidity: int = field(default=0, init=False)  # Active staked liquidity

    # Fee and reward tracking
    fee_growth_global_0_x128: int = field(default=0, init=False)  # Per unit of unstaked liquidity
    fee_growth_global_1_x128: int = field(default=0, init=False)
    reward_growth_global_x128: int = field(default=0, init=False)  # Per unit of staked liquidity
    protocol_fees_0: int = field(default=0, init=False)
    protocol_fees_1: int = field(default=0, init=False)
    rewards_accounted: int = field(default=0, init=False)

    # Tick, position and oracle storage
    ticks: TickRegistry = field(default_factory=TickRegistry, init=False)
    tick_bitmap: TickBitmap = field(default_factory=TickBitmap, init=False)
    positions: PositionLedger = field(default_factory=PositionLedger, init=False)
    oracle: Oracle = field(default_factory=Oracle, init=False)
    max_liquidity_per_tick: int = field(default=0, init=False)

    def __post_init__(self) -> None:
        """Initialize pool."""
        if not self.address:
            addr_hash = hashlib.sha3_256(
                f"clamm:{id(self)}:{id(self.token0)}:{id(self.token1)}:{self.fee_tier.fee}:{time.time()}".encode()
            ).digest()
            self.address = f"0x{addr_hash[-20:].hex()}"
        self.max_liquidity_per_tick = tick_spacing_to_max_liquidity_per_tick(
            self.fee_tier.tick_spacing
        )

    @classmethod
    def from_config(
        cls,
        config: EngineConfig,
        token0: AssetLedger,
        token1: AssetLedger,
        **kwargs: Any,
    ) -> "ConcentratedLiquidityPool":
        """
        Build a pool using the engine defaults in `config`.

        Also configures the engine's JSON logging on first use.
        """
        setup_engine_logging(config)
        kwargs.setdefault("fee_tier", FeeTier.from_name(config.default_fee_tier))
        kwargs.setdefault("initial_cardinality_next", config.observation_cardinality_next)
        if config.metrics_enabled and "metrics" not in kwargs:
            kwargs["metrics"] = get_pool_metrics()
        return cls(token0=token0, token1=token1, **kwargs)

    @property
    def fee(self) -> int:
        return self.fee_tier.fee

    @property
    def tick_spacing(self) -> int:
        return self.fee_tier.tick_spacing

    # ==================== Initialization ====================

    def initialize(self, sqrt_price_x96: int) -> int:
        """
        Set the starting price. Can only be called once.

        Args:
            sqrt_price_x96: Initial sqrt price in Q64.96

        Returns:
            The starting tick
        """
        if self.slot0.sqrt_price_x96 != 0:
            raise AlreadyInitializedError(
                "Pool already initialized",
                details={"pool": self.address, "sqrt_price_x96": self.slot0.sqrt_price_x96},
            )

        tick = get_tick_at_sqrt_ratio(sqrt_price_x96)
        cardinality, cardinality_next = self.oracle.initialize(self._block_timestamp())
        if self.initial_cardinality_next > cardinality_next:
            cardinality_next = self.oracle.grow(cardinality_next, self.initial_cardinality_next)

        self.slot0 = Slot0(
            sqrt_price_x96=sqrt_price_x96,
            tick=tick,
            observation_index=0,
            observation_cardinality=cardinality,
            observation_cardinality_next=cardinality_next,
            unlocked=True,
        )

        logger.info(
            "Pool initialized",
            extra={
                "event": "clamm.initialize",
                "pool": self.address[:10],
                "sqrt_price_x96": sqrt_price_x96,
                "tick": tick,
                "fee": self.fee,
                "tick_spacing": self.tick_spacing,
            }
        )
        if self.metrics:
            self.metrics.current_tick.labels(pool=self.address[:10]).set(tick)
        return tick

    # ==================== Liquidity ====================

    def mint(
        self,
        caller: str,
        owner: str,
        tick_lower: int,
        tick_upper: int,
        amount: int,
        callback: MintCallback,
        data: Any = None,
    ) -> tuple[int, int]:
        """
        Add liquidity to a position.

        The caller pays through `callback(amount0_owed, amount1_owed, data)`,
        which must transfer the owed amounts to the pool before returning.

        Args:
            caller: Address paying for the liquidity
            owner: Position owner
            tick_lower: Lower tick of range
            tick_upper: Upper tick of range
            amount: Liquidity amount
            callback: Payment callback
            data: Passed through to the callback

        Returns:
            (amount0, amount1) - tokens paid in
        """
        with self._guard("mint"):
            self._check_ticks(tick_lower, tick_upper)
            if amount <= 0:
                raise ZeroAmountError("Mint amount must be positive", details={"amount": amount})
            self._check_position_update(owner, tick_lower, tick_upper, amount, 0)

            amount0, amount1 = self._amounts_for_liquidity(tick_lower, tick_upper, amount)

            balance0_before = self.token0.balance_of(self.address) if amount0 > 0 else 0
            balance1_before = self.token1.balance_of(self.address) if amount1 > 0 else 0
            callback(amount0, amount1, data)
            if amount0 > 0:
                self._require_paid(0, self.token0, balance0_before, amount0)
            if amount1 > 0:
                self._require_paid(1, self.token1, balance1_before, amount1)

            self._modify_position(owner, tick_lower, tick_upper, amount, 0)

            logger.info(
                "Position minted",
                extra={
                    "event": "clamm.mint",
                    "pool": self.address[:10],
                    "caller": caller[:10],
                    "owner": owner[:10],
                    "range": f"[{tick_lower}, {tick_upper}]",
                    "liquidity": amount,
                    "amount0": amount0,
                    "amount1": amount1,
                }
            )
            if self.metrics:
                self.metrics.liquidity_added.labels(pool=self.address[:10]).inc(amount)
                self._update_liquidity_gauges()

            return amount0, amount1

    def burn(
        self,
        caller: str,
        tick_lower: int,
        tick_upper: int,
        amount: int,
    ) -> tuple[int, int]:
        """
        Remove liquidity from the caller's position.

        The released tokens are credited to the position's owed balances and
        paid out by collect(). A zero amount only folds accrued fees and
        rewards into the owed balances.

        Returns:
            (amount0, amount1) - tokens released
        """
        with self._guard("burn"):
            self._check_ticks(tick_lower, tick_upper)
            if amount < 0:
                raise PreconditionError("Burn amount cannot be negative", details={"amount": amount})
            self._check_position_update(caller, tick_lower, tick_upper, -amount, 0)

            amount0, amount1 = self._amounts_for_liquidity(tick_lower, tick_upper, -amount)
            amount0, amount1 = -amount0, -amount1

            position = self._modify_position(caller, tick_lower, tick_upper, -amount, 0)
            if amount0 > 0 or amount1 > 0:
                position.tokens_owed_0 = saturating_add(position.tokens_owed_0, amount0)
                position.tokens_owed_1 = saturating_add(position.tokens_owed_1, amount1)

            logger.info(
                "Position burned",
                extra={
                    "event": "clamm.burn",
                    "pool": self.address[:10],
                    "owner": caller[:10],
                    "range": f"[{tick_lower}, {tick_upper}]",
                    "liquidity": amount,
                    "amount0": amount0,
                    "amount1": amount1,
                }
            )
            if self.metrics and amount:
                self.metrics.liquidity_removed.labels(pool=self.address[:10]).inc(amount)
                self._update_liquidity_gauges()

            return amount0, amount1

    def stake(self, caller: str, tick_lower: int, tick_upper: int, amount: int) -> None:
        """Move `amount` of the caller's position liquidity into the reward stream."""
        self._change_stake("stake", caller, tick_lower, tick_upper, amount)

    def unstake(self, caller: str, tick_lower: int, tick_upper: int, amount: int) -> None:
        """Move `amount` of staked liquidity back to earning trading fees."""
        self._change_stake("unstake", caller, tick_lower, tick_upper, -amount)

    def _change_stake(
        self,
        operation: str,
        caller: str,
        tick_lower: int,
        tick_upper: int,
        staked_liquidity_delta: int,
    ) -> None:
        with self._guard(operation):
            self._check_ticks(tick_lower, tick_upper)
            if staked_liquidity_delta == 0 or (operation == "stake") != (staked_liquidity_delta > 0):
                raise ZeroAmountError(
                    f"{operation.capitalize()} amount must be positive",
                    details={"amount": abs(staked_liquidity_delta)},
                )
            self._check_position_update(caller, tick_lower, tick_upper, 0, staked_liquidity_delta)

            position = self._modify_position(caller, tick_lower, tick_upper, 0, staked_liquidity_delta)

            logger.info(
                "Position %s",
                "staked" if operation == "stake" else "unstaked",
                extra={
                    "event": f"clamm.{operation}",
                    "pool": self.address[:10],
                    "owner": caller[:10],
                    "range": f"[{tick_lower}, {tick_upper}]",
                    "staked_liquidity": position.staked_liquidity,
                    "delta": staked_liquidity_delta,
                }
            )
            if self.metrics:
                self._update_liquidity_gauges()

    def collect(
        self,
        caller: str,
        recipient: str,
        tick_lower: int,
        tick_upper: int,
        amount0_requested: int,
        amount1_requested: int,
    ) -> tuple[int, int]:
        """
        Pay out owed tokens of the caller's position.

        Fees are only owed once folded in by burn (a zero burn is enough).

        Returns:
            (amount0, amount1) - tokens paid, capped at what is owed
        """
        with self._guard("collect"):
            self._require_non_negative(amount0_requested=amount0_requested, amount1_requested=amount1_requested)
            position = self.positions.find(caller, tick_lower, tick_upper)
            if position is None:
                return 0, 0

            amount0 = min(amount0_requested, position.tokens_owed_0)
            amount1 = min(amount1_requested, position.tokens_owed_1)

            if amount0 > 0:
                self.token0.transfer(self.address, recipient, amount0)
            if amount1 > 0:
                self.token1.transfer(self.address, recipient, amount1)
            position.tokens_owed_0 -= amount0
            position.tokens_owed_1 -= amount1

            if amount0 or amount1:
                logger.info(
                    "Fees collected",
                    extra={
                        "event": "clamm.collect",
                        "pool": self.address[:10],
                        "owner": caller[:10],
                        "recipient": recipient[:10],
                        "range": f"[{tick_lower}, {tick_upper}]",
                        "amount0": amount0,
                        "amount1": amount1,
                    }
                )

            return amount0, amount1

    def collect_reward(
        self,
        caller: str,
        recipient: str,
        tick_lower: int,
        tick_upper: int,
        amount_requested: int,
    ) -> int:
        """
        Pay out owed rewards of the caller's position through the emission source.

        Returns:
            Reward amount paid, capped at what is owed
        """
        with self._guard("collect_reward"):
            self._require_non_negative(amount_requested=amount_requested)
            position = self.positions.find(caller, tick_lower, tick_upper)
            if position is None or self.reward_source is None:
                return 0

            amount = min(amount_requested, position.rewards_owed)
            if amount == 0:
                return 0

            self.reward_source.collect(amount, recipient)
            position.rewards_owed -= amount
            self.rewards_accounted -= amount

            logger.info(
                "Rewards collected",
                extra={
                    "event": "clamm.collect_reward",
                    "pool": self.address[:10],
                    "owner": caller[:10],
                    "recipient": recipient[:10],
                    "range": f"[{tick_lower}, {tick_upper}]",
                    "amount": amount,
                }
            )
            return amount

    # ==================== Swaps ====================

    def swap(
        self,
        caller: str,
        recipient: str,
        zero_for_one: bool,
        amount_specified: int,
        sqrt_price_limit_x96: int | None,
        callback: SwapCallback,
        data: Any = None,
    ) -> tuple[int, int]:
        """
        Swap one token for the other.

        The output is paid to `recipient` first, then the caller settles the
        input through `callback(amount0, amount1, data)`.

        Args:
            caller: Address paying the input; also the trader checked for fee exemption
            recipient: Address receiving the output
            zero_for_one: True to sell token0 for token1
            amount_specified: Exact input if positive, exact output if negative
            sqrt_price_limit_x96: Price the swap may not pass; None for no limit
            callback: Payment callback
            data: Passed through to the callback

        Returns:
            (amount0, amount1) - positive values are owed to the pool
        """
        started = time.perf_counter()
        with self._guard("swap"):
            if amount_specified == 0:
                raise ZeroAmountError("Swap amount cannot be zero")
            sqrt_price_limit_x96 = self._check_price_limit(zero_for_one, sqrt_price_limit_x96)

            fee = 0 if self.fee_rate_provider.is_fee_exempt(caller) else self.fee
            protocol_fee_rate = self._protocol_fee_rate()
            reward_growth_global_x128, rewards_accounted = self._rewards_to_accrue()
            block_timestamp = self._block_timestamp()

            result = self._compute_swap(
                zero_for_one,
                amount_specified,
                sqrt_price_limit_x96,
                fee,
                protocol_fee_rate,
                reward_growth_global_x128,
                block_timestamp,
            )
            amount0, amount1 = result.amount0, result.amount1

            # Pay output, then collect input
            if zero_for_one:
                if amount1 < 0:
                    self.token1.transfer(self.address, recipient, -amount1)
                balance0_before = self.token0.balance_of(self.address)
                callback(amount0, amount1, data)
                self._require_paid(0, self.token0, balance0_before, amount0)
            else:
                if amount0 < 0:
                    self.token0.transfer(self.address, recipient, -amount0)
                balance1_before = self.token1.balance_of(self.address)
                callback(amount0, amount1, data)
                self._require_paid(1, self.token1, balance1_before, amount1)

            self._commit_swap(
                zero_for_one, result, reward_growth_global_x128, rewards_accounted, block_timestamp
            )

            logger.info(
                "Swap executed",
                extra={
                    "event": "clamm.swap",
                    "pool": self.address[:10],
                    "caller": caller[:10],
                    "recipient": recipient[:10],
                    "zero_for_one": zero_for_one,
                    "amount0": amount0,
                    "amount1": amount1,
                    "tick": self.slot0.tick,
                    "ticks_crossed": len(result.crossings),
                    "fee_amount": result.state.fee_amount,
                }
            )
            if self.metrics:
                pool_label = self.address[:10]
                token_in, token_out = ("token0", "token1") if zero_for_one else ("token1", "token0")
                self.metrics.swaps_total.labels(
                    pool=pool_label, direction=f"{token_in}->{token_out}"
                ).inc()
                self.metrics.swap_volume.labels(pool=pool_label, token=token_in).inc(
                    amount0 if zero_for_one else amount1
                )
                self.metrics.fees_collected.labels(pool=pool_label, token=token_in).inc(result.state.lp_fee)
                self.metrics.protocol_fees.labels(pool=pool_label, token=token_in).inc(
                    result.state.protocol_fee
                )
                self.metrics.ticks_crossed.observe(len(result.crossings))
                self.metrics.swap_latency.observe(time.perf_counter() - started)
                self._update_liquidity_gauges()

            return amount0, amount1

    def quote(
        self,
        zero_for_one: bool,
        amount_specified: int,
        sqrt_price_limit_x96: int | None = None,
        trader: str = "",
    ) -> SwapQuote:
        """
        Get quote for a swap without executing.

        Runs the same step loop as swap() against the current state; nothing
        is paid, called back or committed.
        """
        self._require_initialized()
        if amount_specified == 0:
            raise ZeroAmountError("Swap amount cannot be zero")
        sqrt_price_limit_x96 = self._check_price_limit(zero_for_one, sqrt_price_limit_x96)
        fee = 0 if trader and self.fee_rate_provider.is_fee_exempt(trader) else self.fee

        result = self._compute_swap(
            zero_for_one,
            amount_specified,
            sqrt_price_limit_x96,
            fee,
            self._protocol_fee_rate(),
            self.reward_growth_global_x128,
            self._block_timestamp(),
        )
        return SwapQuote(
            amount0=result.amount0,
            amount1=result.amount1,
            sqrt_price_x96=result.state.sqrt_price_x96,
            tick=result.state.tick,
            ticks_crossed=len(result.crossings),
            fee_amount=result.state.fee_amount,
        )

    def _compute_swap(
        self,
        zero_for_one: bool,
        amount_specified: int,
        sqrt_price_limit_x96: int,
        fee: int,
        protocol_fee_rate: int,
        reward_growth_global_x128: int,
        block_timestamp: int,
    ) -> _SwapComputation:
        """Walk the curve on local state only; crossings are recorded, not applied."""
        slot0 = self.slot0
        exact_input = amount_specified > 0

        state = _SwapState(
            amount_specified_remaining=amount_specified,
            amount_calculated=0,
            sqrt_price_x96=slot0.sqrt_price_x96,
            tick=slot0.tick,
            fee_growth_global_x128=(
                self.fee_growth_global_0_x128 if zero_for_one else self.fee_growth_global_1_x128
            ),
            liquidity=self.liquidity,
            staked_liquidity=self.staked_liquidity,
        )
        result = _SwapComputation(amount0=0, amount1=0, state=state, crossings=[])
        oracle_snapshot_taken = False

        while state.amount_specified_remaining != 0 and state.sqrt_price_x96 != sqrt_price_limit_x96:
            sqrt_price_start = state.sqrt_price_x96

            tick_next, initialized = self.tick_bitmap.next_initialized_tick_within_one_word(
                state.tick, self.tick_spacing, zero_for_one
            )
            # The bitmap knows nothing of the tick bounds
            tick_next = max(MIN_TICK, min(MAX_TICK, tick_next))
            sqrt_price_next = get_sqrt_ratio_at_tick(tick_next)

            if zero_for_one:
                sqrt_price_target = max(sqrt_price_next, sqrt_price_limit_x96)
            else:
                sqrt_price_target = min(sqrt_price_next, sqrt_price_limit_x96)

            step = compute_swap_step(
                state.sqrt_price_x96,
                sqrt_price_target,
                state.liquidity,
                state.amount_specified_remaining,
                fee,
            )
            state.sqrt_price_x96 = step.sqrt_price_next

            if exact_input:
                state.amount_specified_remaining -= step.amount_in + step.fee_amount
                state.amount_calculated -= step.amount_out
            else:
                state.amount_specified_remaining += step.amount_out
                state.amount_calculated += step.amount_in + step.fee_amount

            if step.fee_amount > 0:
                lp_fee, protocol_fee = split(
                    step.fee_amount, protocol_fee_rate, state.liquidity, state.staked_liquidity
                )
                state.fee_amount += step.fee_amount
                state.protocol_fee += protocol_fee
                if lp_fee > 0:
                    state.lp_fee += lp_fee
                    state.fee_growth_global_x128 = wrapping_add(
                        state.fee_growth_global_x128,
                        mul_div(lp_fee, Q128, state.liquidity - state.staked_liquidity),
                    )

            logger.debug(
                "Swap step",
                extra={
                    "event": "clamm.swap_step",
                    "pool": self.address[:10],
                    "tick_next": tick_next,
                    "initialized": initialized,
                    "sqrt_price_x96": state.sqrt_price_x96,
                    "amount_in": step.amount_in,
                    "amount_out": step.amount_out,
                    "fee_amount": step.fee_amount,
                    "liquidity": state.liquidity,
                }
            )

            if state.sqrt_price_x96 == sqrt_price_next:
                if initialized:
                    if not oracle_snapshot_taken:
                        (
                            result.tick_cumulative,
                            result.seconds_per_liquidity_cumulative_x128,
                        ) = self.oracle.observe_single(
                            block_timestamp,
                            0,
                            slot0.tick,
                            slot0.observation_index,
                            self.liquidity,
                            slot0.observation_cardinality,
                        )
                        oracle_snapshot_taken = True

                    result.crossings.append((tick_next, state.fee_growth_global_x128))
                    info = self.ticks.get(tick_next)
                    liquidity_net, staked_liquidity_net = info.liquidity_net, info.staked_liquidity_net
                    # Moving left crosses the tick right to left
                    if zero_for_one:
                        liquidity_net, staked_liquidity_net = -liquidity_net, -staked_liquidity_net
                    state.liquidity = add_delta(state.liquidity, liquidity_net)
                    state.staked_liquidity = add_delta(state.staked_liquidity, staked_liquidity_net)

                state.tick = tick_next - 1 if zero_for_one else tick_next
            elif state.sqrt_price_x96 != sqrt_price_start:
                state.tick = get_tick_at_sqrt_ratio(state.sqrt_price_x96)

        if zero_for_one == exact_input:
            result.amount0 = amount_specified - state.amount_specified_remaining
            result.amount1 = state.amount_calculated
        else:
            result.amount0 = state.amount_calculated
            result.amount1 = amount_specified - state.amount_specified_remaining
        return result

    def _commit_swap(
        self,
        zero_for_one: bool,
        result: _SwapComputation,
        reward_growth_global_x128: int,
        rewards_accounted: int,
        block_timestamp: int,
    ) -> None:
        slot0 = self.slot0
        state = result.state

        for tick, fee_growth_x128 in result.crossings:
            self.ticks.cross(
                tick,
                fee_growth_x128 if zero_for_one else self.fee_growth_global_0_x128,
                self.fee_growth_global_1_x128 if zero_for_one else fee_growth_x128,
                reward_growth_global_x128,
                result.seconds_per_liquidity_cumulative_x128,
                result.tick_cumulative,
                block_timestamp,
            )

        if state.tick != slot0.tick:
            # Observation records the state before this swap
            index, cardinality = self.oracle.write(
                slot0.observation_index,
                block_timestamp,
                slot0.tick,
                self.liquidity,
                slot0.observation_cardinality,
                slot0.observation_cardinality_next,
            )
            slot0.observation_index = index
            slot0.observation_cardinality = cardinality
            slot0.tick = state.tick
        slot0.sqrt_price_x96 = state.sqrt_price_x96

        if state.liquidity != self.liquidity:
            self.liquidity = state.liquidity
        if state.staked_liquidity != self.staked_liquidity:
            self.staked_liquidity = state.staked_liquidity

        if zero_for_one:
            self.fee_growth_global_0_x128 = state.fee_growth_global_x128
            if state.protocol_fee > 0:
                self.protocol_fees_0 = saturating_add(self.protocol_fees_0, state.protocol_fee)
        else:
            self.fee_growth_global_1_x128 = state.fee_growth_global_x128
            if state.protocol_fee > 0:
                self.protocol_fees_1 = saturating_add(self.protocol_fees_1, state.protocol_fee)

        self.reward_growth_global_x128 = reward_growth_global_x128
        self.rewards_accounted = rewards_accounted

    # ==================== Flash Loans ====================

    def flash(
        self,
        caller: str,
        recipient: str,
        amount0: int,
        amount1: int,
        callback: FlashCallback,
        data: Any = None,
    ) -> tuple[int, int]:
        """
        Lend pool tokens for the duration of `callback(fee0, fee1, data)`.

        Each borrowed amount must come back with a fee of
        ceil(amount * fee / 1e6). Anything paid beyond that is treated as
        fee as well.

        Returns:
            (paid0, paid1) - fees actually received
        """
        with self._guard("flash"):
            self._require_non_negative(amount0=amount0, amount1=amount1)
            if self.liquidity == 0:
                raise NoLiquidityError("Flash requires in-range liquidity")

            fee0 = mul_div_rounding_up(amount0, self.fee, PIPS_DENOMINATOR)
            fee1 = mul_div_rounding_up(amount1, self.fee, PIPS_DENOMINATOR)
            protocol_fee_rate = self._protocol_fee_rate()

            balance0_before = self.token0.balance_of(self.address)
            balance1_before = self.token1.balance_of(self.address)

            if amount0 > 0:
                self.token0.transfer(self.address, recipient, amount0)
            if amount1 > 0:
                self.token1.transfer(self.address, recipient, amount1)

            callback(fee0, fee1, data)

            balance0_after = self.token0.balance_of(self.address)
            balance1_after = self.token1.balance_of(self.address)
            for token, before, fee, after in (
                (0, balance0_before, fee0, balance0_after),
                (1, balance1_before, fee1, balance1_after),
            ):
                if before + fee > after:
                    raise FlashRepaymentError(
                        f"Flash loan of token{token} not repaid with fee",
                        token=token,
                        required=before + fee,
                        received=after,
                        details={"pool": self.address, "fee": fee},
                    )

            paid0 = balance0_after - balance0_before
            paid1 = balance1_after - balance1_before

            lp_fee0, protocol_fee0 = self._credit_flash_fee(paid0, protocol_fee_rate)
            lp_fee1, protocol_fee1 = self._credit_flash_fee(paid1, protocol_fee_rate)
            if lp_fee0:
                self.fee_growth_global_0_x128 = wrapping_add(
                    self.fee_growth_global_0_x128,
                    mul_div(lp_fee0, Q128, self.liquidity - self.staked_liquidity),
                )
            if lp_fee1:
                self.fee_growth_global_1_x128 = wrapping_add(
                    self.fee_growth_global_1_x128,
                    mul_div(lp_fee1, Q128, self.liquidity - self.staked_liquidity),
                )
            self.protocol_fees_0 = saturating_add(self.protocol_fees_0, protocol_fee0)
            self.protocol_fees_1 = saturating_add(self.protocol_fees_1, protocol_fee1)

            logger.info(
                "Flash loan repaid",
                extra={
                    "event": "clamm.flash",
                    "pool": self.address[:10],
                    "caller": caller[:10],
                    "recipient": recipient[:10],
                    "amount0": amount0,
                    "amount1": amount1,
                    "paid0": paid0,
                    "paid1": paid1,
                }
            )
            if self.metrics:
                pool_label = self.address[:10]
                self.metrics.flash_loans.labels(pool=pool_label).inc()
                self.metrics.fees_collected.labels(pool=pool_label, token="token0").inc(lp_fee0)
                self.metrics.fees_collected.labels(pool=pool_label, token="token1").inc(lp_fee1)
                self.metrics.protocol_fees.labels(pool=pool_label, token="token0").inc(protocol_fee0)
                self.metrics.protocol_fees.labels(pool=pool_label, token="token1").inc(protocol_fee1)

            return paid0, paid1

    def _credit_flash_fee(self, paid: int, protocol_fee_rate: int) -> tuple[int, int]:
        if paid == 0:
            return 0, 0
        return split(paid, protocol_fee_rate, self.liquidity, self.staked_liquidity)

    # ==================== Protocol Fees ====================

    def collect_protocol_fees(
        self,
        caller: str,
        recipient: str,
        amount0_requested: int,
        amount1_requested: int,
    ) -> tuple[int, int]:
        """
        Pay out accumulated protocol fees. Only the fee collector may call this.

        Returns:
            (amount0, amount1) - tokens paid, capped at what has accrued
        """
        with self._guard("collect_protocol_fees"):
            if caller != self.fee_collector or not self.fee_collector:
                raise UnauthorizedError(
                    "Only the fee collector can collect protocol fees",
                    details={"caller": caller},
                )
            self._require_non_negative(amount0_requested=amount0_requested, amount1_requested=amount1_requested)

            amount0 = min(amount0_requested, self.protocol_fees_0)
            amount1 = min(amount1_requested, self.protocol_fees_1)

            if amount0 > 0:
                self.token0.transfer(self.address, recipient, amount0)
            if amount1 > 0:
                self.token1.transfer(self.address, recipient, amount1)
            self.protocol_fees_0 -= amount0
            self.protocol_fees_1 -= amount1

            logger.info(
                "Protocol fees collected",
                extra={
                    "event": "clamm.collect_protocol",
                    "pool": self.address[:10],
                    "recipient": recipient[:10],
                    "amount0": amount0,
                    "amount1": amount1,
                }
            )
            return amount0, amount1

    # ==================== Oracle ====================

    def observe(self, seconds_agos: list[int]) -> tuple[list[int], list[int]]:
        """
        Cumulative tick and seconds-per-liquidity values for each age.

        Returns:
            (tick_cumulatives, seconds_per_liquidity_cumulatives_x128)
        """
        self._require_initialized()
        slot0 = self.slot0
        return self.oracle.observe(
            self._block_timestamp(),
            seconds_agos,
            slot0.tick,
            slot0.observation_index,
            self.liquidity,
            slot0.observation_cardinality,
        )

    def snapshot_cumulatives_inside(self, tick_lower: int, tick_upper: int) -> tuple[int, int, int]:
        """
        Tick, seconds-per-liquidity and seconds accumulated inside a range.

        Only differences between two snapshots of the same range are meaningful.

        Returns:
            (tick_cumulative_inside, seconds_per_liquidity_inside_x128, seconds_inside)
        """
        self._require_initialized()
        self._check_ticks(tick_lower, tick_upper)

        lower = self.ticks.get(tick_lower)
        upper = self.ticks.get(tick_upper)
        if not (lower.initialized and upper.initialized):
            raise InvalidTickRangeError(
                "Range boundaries are not initialized",
                details={"tick_lower": tick_lower, "tick_upper": tick_upper},
            )

        slot0 = self.slot0
        if slot0.tick < tick_lower:
            return (
                to_int(lower.tick_cumulative_outside - upper.tick_cumulative_outside, 56),
                wrapping_sub(
                    lower.seconds_per_liquidity_outside_x128,
                    upper.seconds_per_liquidity_outside_x128,
                    160,
                ),
                wrapping_sub(lower.seconds_outside, upper.seconds_outside, 32),
            )
        if slot0.tick < tick_upper:
            block_timestamp = self._block_timestamp()
            tick_cumulative, seconds_per_liquidity = self.oracle.observe_single(
                block_timestamp,
                0,
                slot0.tick,
                slot0.observation_index,
                self.liquidity,
                slot0.observation_cardinality,
            )
            return (
                to_int(
                    tick_cumulative - lower.tick_cumulative_outside - upper.tick_cumulative_outside,
                    56,
                ),
                wrapping_sub(
                    wrapping_sub(seconds_per_liquidity, lower.seconds_per_liquidity_outside_x128, 160),
                    upper.seconds_per_liquidity_outside_x128,
                    160,
                ),
                wrapping_sub(
                    wrapping_sub(block_timestamp, lower.seconds_outside, 32),
                    upper.seconds_outside,
                    32,
                ),
            )
        return (
            to_int(upper.tick_cumulative_outside - lower.tick_cumulative_outside, 56),
            wrapping_sub(
                upper.seconds_per_liquidity_outside_x128,
                lower.seconds_per_liquidity_outside_x128,
                160,
            ),
            wrapping_sub(upper.seconds_outside, lower.seconds_outside, 32),
        )

    def increase_observation_cardinality_next(self, observation_cardinality_next: int) -> int:
        """
        Reserve oracle slots so more history can be retained.

        Returns:
            The resulting cardinality_next
        """
        with self._guard("increase_observation_cardinality_next"):
            old = self.slot0.observation_cardinality_next
            new = self.oracle.grow(old, observation_cardinality_next)
            self.slot0.observation_cardinality_next = new
            if new != old:
                logger.info(
                    "Observation cardinality increased",
                    extra={
                        "event": "clamm.observation_cardinality",
                        "pool": self.address[:10],
                        "old": old,
                        "new": new,
                    }
                )
            return new

    # ==================== Views ====================

    def get_pool_state(self) -> dict:
        """Get current pool state."""
        return {
            "address": self.address,
            "fee_tier": self.fee_tier.fee,
            "tick_spacing": self.fee_tier.tick_spacing,
            "sqrt_price_x96": self.slot0.sqrt_price_x96,
            "tick": self.slot0.tick,
            "price": tick_to_price(self.slot0.tick),
            "liquidity": self.liquidity,
            "staked_liquidity": self.staked_liquidity,
            "fee_growth_global_0_x128": self.fee_growth_global_0_x128,
            "fee_growth_global_1_x128": self.fee_growth_global_1_x128,
            "reward_growth_global_x128": self.reward_growth_global_x128,
            "protocol_fees_0": self.protocol_fees_0,
            "protocol_fees_1": self.protocol_fees_1,
            "observation_cardinality": self.slot0.observation_cardinality,
            "observation_cardinality_next": self.slot0.observation_cardinality_next,
            "positions_count": len(self.positions),
            "initialized_ticks": len([t for _, t in self.ticks.items() if t.initialized]),
            "unlocked": self.slot0.unlocked,
        }

    def get_position(self, owner: str, tick_lower: int, tick_upper: int) -> dict | None:
        """Get position details, including fees and rewards not yet folded in."""
        position = self.positions.find(owner, tick_lower, tick_upper)
        if position is None:
            return None

        amount0, amount1 = self._amounts_for_liquidity(
            tick_lower, tick_upper, -position.liquidity
        )
        fee_growth_inside_0, fee_growth_inside_1, reward_growth_inside = self.ticks.get_growth_inside(
            tick_lower,
            tick_upper,
            self.slot0.tick,
            self.fee_growth_global_0_x128,
            self.fee_growth_global_1_x128,
            self.reward_growth_global_x128,
        )
        fees0, fees1, rewards = position.pending(
            fee_growth_inside_0, fee_growth_inside_1, reward_growth_inside
        )

        return {
            "key": self.positions.key(owner, tick_lower, tick_upper),
            "owner": position.owner,
            "tick_lower": tick_lower,
            "tick_upper": tick_upper,
            "price_lower": tick_to_price(tick_lower),
            "price_upper": tick_to_price(tick_upper),
            "liquidity": position.liquidity,
            "staked_liquidity": position.staked_liquidity,
            "amount0": -amount0,
            "amount1": -amount1,
            "tokens_owed_0": position.tokens_owed_0,
            "tokens_owed_1": position.tokens_owed_1,
            "rewards_owed": position.rewards_owed,
            "uncollected_fees_0": position.tokens_owed_0 + fees0,
            "uncollected_fees_1": position.tokens_owed_1 + fees1,
            "uncollected_rewards": position.rewards_owed + rewards,
            "in_range": position.is_in_range(self.slot0.tick),
        }

    # ==================== Position Internals ====================

    def _check_position_update(
        self,
        owner: str,
        tick_lower: int,
        tick_upper: int,
        liquidity_delta: int,
        staked_liquidity_delta: int,
    ) -> None:
        """Run every check _modify_position would, without touching state."""
        position = self.positions.find(owner, tick_lower, tick_upper)
        if position is None:
            position = PositionInfo(owner=owner, tick_lower=tick_lower, tick_upper=tick_upper)
        position.next_liquidity(liquidity_delta, staked_liquidity_delta)
        if liquidity_delta != 0:
            self.ticks.liquidity_gross_after(tick_lower, liquidity_delta, self.max_liquidity_per_tick)
            self.ticks.liquidity_gross_after(tick_upper, liquidity_delta, self.max_liquidity_per_tick)

    def _modify_position(
        self,
        owner: str,
        tick_lower: int,
        tick_upper: int,
        liquidity_delta: int,
        staked_liquidity_delta: int,
    ) -> PositionInfo:
        """Apply a validated liquidity change to ticks, bitmap, position and pool."""
        self.reward_growth_global_x128, self.rewards_accounted = self._rewards_to_accrue()

        slot0 = self.slot0
        tick = slot0.tick
        block_timestamp = self._block_timestamp()
        flipped_lower = flipped_upper = False

        if liquidity_delta != 0 or staked_liquidity_delta != 0:
            tick_cumulative, seconds_per_liquidity = self.oracle.observe_single(
                block_timestamp,
                0,
                tick,
                slot0.observation_index,
                self.liquidity,
                slot0.observation_cardinality,
            )
            for boundary, upper in ((tick_lower, False), (tick_upper, True)):
                flipped = self.ticks.update(
                    boundary,
                    tick,
                    liquidity_delta,
                    staked_liquidity_delta,
                    self.fee_growth_global_0_x128,
                    self.fee_growth_global_1_x128,
                    self.reward_growth_global_x128,
                    seconds_per_liquidity,
                    tick_cumulative,
                    block_timestamp,
                    upper,
                    self.max_liquidity_per_tick,
                )
                if flipped:
                    self.tick_bitmap.flip_tick(boundary, self.tick_spacing)
                if upper:
                    flipped_upper = flipped
                else:
                    flipped_lower = flipped

        fee_growth_inside_0, fee_growth_inside_1, reward_growth_inside = self.ticks.get_growth_inside(
            tick_lower,
            tick_upper,
            tick,
            self.fee_growth_global_0_x128,
            self.fee_growth_global_1_x128,
            self.reward_growth_global_x128,
        )
        position = self.positions.get(owner, tick_lower, tick_upper)
        position.update(
            liquidity_delta,
            staked_liquidity_delta,
            fee_growth_inside_0,
            fee_growth_inside_1,
            reward_growth_inside,
        )

        # Ticks that no longer back any liquidity are dropped
        if liquidity_delta < 0:
            if flipped_lower:
                self.ticks.clear(tick_lower)
            if flipped_upper:
                self.ticks.clear(tick_upper)

        if tick_lower <= tick < tick_upper:
            if liquidity_delta != 0:
                index, cardinality = self.oracle.write(
                    slot0.observation_index,
                    block_timestamp,
                    tick,
                    self.liquidity,
                    slot0.observation_cardinality,
                    slot0.observation_cardinality_next,
                )
                slot0.observation_index = index
                slot0.observation_cardinality = cardinality
                self.liquidity = add_delta(self.liquidity, liquidity_delta)
            if staked_liquidity_delta != 0:
                self.staked_liquidity = add_delta(self.staked_liquidity, staked_liquidity_delta)

        return position

    def _amounts_for_liquidity(self, tick_lower: int, tick_upper: int, liquidity_delta: int) -> tuple[int, int]:
        """Signed token amounts for a liquidity change at the current price."""
        if liquidity_delta == 0:
            return 0, 0

        sqrt_price_lower = get_sqrt_ratio_at_tick(tick_lower)
        sqrt_price_upper = get_sqrt_ratio_at_tick(tick_upper)
        tick = self.slot0.tick

        if tick < tick_lower:
            # Price below range: all token0
            return get_amount0_delta_signed(sqrt_price_lower, sqrt_price_upper, liquidity_delta), 0
        if tick < tick_upper:
            sqrt_price = self.slot0.sqrt_price_x96
            return (
                get_amount0_delta_signed(sqrt_price, sqrt_price_upper, liquidity_delta),
                get_amount1_delta_signed(sqrt_price_lower, sqrt_price, liquidity_delta),
            )
        # Price above range: all token1
        return 0, get_amount1_delta_signed(sqrt_price_lower, sqrt_price_upper, liquidity_delta)

    # ==================== Rewards ====================

    def _rewards_to_accrue(self) -> tuple[int, int]:
        """
        Fold rewards emitted since the last accrual into reward growth.

        Pure with respect to pool state; the caller commits the result.

        Returns:
            (reward_growth_global_x128, rewards_accounted)
        """
        growth = self.reward_growth_global_x128
        accounted = self.rewards_accounted
        if self.reward_source is None or self.staked_liquidity == 0:
            return growth, accounted

        try:
            collectable = self.reward_source.collectable_amount()
        except Exception as e:
            logger.warning(
                "Reward source query failed: %s - %s",
                type(e).__name__,
                str(e),
                extra={
                    "event": "clamm.reward_query_failed",
                    "pool": self.address[:10],
                    "error_type": type(e).__name__,
                }
            )
            if self.metrics:
                self.metrics.reward_query_failures.labels(pool=self.address[:10]).inc()
            return growth, accounted

        emitted = collectable - accounted
        if emitted <= 0:
            return growth, accounted
        growth = wrapping_add(growth, mul_div(emitted, Q128, self.staked_liquidity))
        return growth, accounted + emitted

    # ==================== Helpers ====================

    @contextmanager
    def _guard(self, operation: str) -> Iterator[None]:
        """
        Hold the pool lock for one mutating operation.

        Collaborators that support it are wrapped in an atomic scope, so a
        failure anywhere in the operation also reverses the transfers it made.
        """
        acquired = False
        try:
            self._require_initialized()
            if not self.slot0.unlocked:
                raise LockedError("Pool is locked", details={"operation": operation})
            self.slot0.unlocked = False
            acquired = True
            with ExitStack() as scopes:
                for collaborator in (self.token0, self.token1, self.reward_source):
                    if isinstance(collaborator, SupportsAtomic):
                        scopes.enter_context(collaborator.atomic())
                yield
        except Exception as e:
            logger.warning(
                "Pool operation %s failed: %s",
                operation,
                str(e),
                extra={
                    "event": "clamm.operation_failed",
                    "pool": self.address[:10],
                    "operation": operation,
                    **get_error_context(e),
                }
            )
            if self.metrics:
                self.metrics.operation_failures.labels(
                    pool=self.address[:10], operation=operation, error=type(e).__name__
                ).inc()
            raise
        finally:
            if acquired:
                self.slot0.unlocked = True

    def _require_initialized(self) -> None:
        if self.slot0.sqrt_price_x96 == 0:
            raise NotInitializedError("Pool is not initialized", details={"pool": self.address})

    def _check_ticks(self, tick_lower: int, tick_upper: int) -> None:
        if tick_lower >= tick_upper:
            raise InvalidTickRangeError(
                f"tick_lower ({tick_lower}) must be below tick_upper ({tick_upper})",
                details={"tick_lower": tick_lower, "tick_upper": tick_upper},
            )
        if tick_lower < MIN_TICK or tick_upper > MAX_TICK:
            raise InvalidTickRangeError(
                f"Range [{tick_lower}, {tick_upper}] outside [{MIN_TICK}, {MAX_TICK}]",
                details={"tick_lower": tick_lower, "tick_upper": tick_upper},
            )
        for tick in (tick_lower, tick_upper):
            if tick % self.tick_spacing != 0:
                raise TickSpacingError(
                    f"Tick {tick} is not a multiple of {self.tick_spacing}",
                    details={"tick": tick, "tick_spacing": self.tick_spacing},
                )

    def _check_price_limit(self, zero_for_one: bool, sqrt_price_limit_x96: int | None) -> int:
        sqrt_price = self.slot0.sqrt_price_x96
        if sqrt_price_limit_x96 is None:
            sqrt_price_limit_x96 = MIN_SQRT_RATIO + 1 if zero_for_one else MAX_SQRT_RATIO - 1

        if zero_for_one:
            valid = MIN_SQRT_RATIO < sqrt_price_limit_x96 < sqrt_price
        else:
            valid = sqrt_price < sqrt_price_limit_x96 < MAX_SQRT_RATIO
        if not valid:
            raise PriceLimitError(
                "Price limit is on the wrong side of the current price or out of bounds",
                details={
                    "zero_for_one": zero_for_one,
                    "sqrt_price_x96": sqrt_price,
                    "sqrt_price_limit_x96": sqrt_price_limit_x96,
                },
            )
        return sqrt_price_limit_x96

    def _protocol_fee_rate(self) -> int:
        rate = self.fee_rate_provider.get_protocol_fee_rate()
        if rate < 0 or rate > PIPS_DENOMINATOR:
            raise InvalidFeeSplitError(
                f"Protocol fee rate {rate} outside [0, {PIPS_DENOMINATOR}]",
                details={"protocol_fee_rate": rate},
            )
        return rate

    def _require_paid(self, token: int, ledger: AssetLedger, balance_before: int, required: int) -> None:
        balance_after = ledger.balance_of(self.address)
        if balance_before + required > balance_after:
            raise InsufficientInputPaidError(
                f"Callback did not pay the required token{token} input",
                token=token,
                required=required,
                received=balance_after - balance_before,
                details={"pool": self.address},
            )

    @staticmethod
    def _require_non_negative(**amounts: int) -> None:
        for name, value in amounts.items():
            if value < 0:
                raise PreconditionError(f"{name} cannot be negative", details={name: value})

    def _block_timestamp(self) -> int:
        return self.clock() & MAX_UINT32

    def _update_liquidity_gauges(self) -> None:
        pool_label = self.address[:10]
        self.metrics.active_liquidity.labels(pool=pool_label).set(self.liquidity)
        self.metrics.staked_liquidity.labels(pool=pool_label).set(self.staked_liquidity)
        self.metrics.current_tick.labels(pool=pool_label).set(self.slot0.tick)
