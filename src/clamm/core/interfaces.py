"""
Collaborator Protocol Interfaces - what the pool consumes from outside.

The engine never moves assets or emits rewards itself. It depends on these
protocols instead, so any ledger or emission source with the right shape can
be plugged in:
- AssetLedger: balances and transfers of one token
- ProtocolFeeRateProvider: governance-controlled protocol fee rate and exemptions
- RewardEmissionSource: the stream that funds staked-liquidity rewards
- SupportsAtomic: optional rollback scope on any of the above

Callbacks are plain callables invoked while the pool lock is held. A callback
that calls back into the same pool fails with LockedError.
"""

from __future__ import annotations

from typing import Any, Callable, ContextManager, Protocol, runtime_checkable


@runtime_checkable
class AssetLedger(Protocol):
    """
    Protocol for a single token's balances.

    Transfers are expected to be atomic: either the whole amount moves or
    the call raises. A ledger that also implements SupportsAtomic has the
    transfers of a failed pool operation reversed; one that does not keeps
    them.
    """

    def balance_of(self, holder: str) -> int:
        """Get the balance held by an address."""
        ...

    def transfer(self, sender: str, recipient: str, amount: int) -> None:
        """Move amount from sender to recipient."""
        ...


@runtime_checkable
class ProtocolFeeRateProvider(Protocol):
    """Protocol for protocol fee governance."""

    def get_protocol_fee_rate(self) -> int:
        """Protocol share of trading fees in pips (0 to 1_000_000)."""
        ...

    def is_fee_exempt(self, trader: str) -> bool:
        """Whether swaps by this trader pay no pool fee."""
        ...


@runtime_checkable
class RewardEmissionSource(Protocol):
    """
    Protocol for the reward stream paid to staked liquidity.

    collectable_amount() is the total emitted to the pool and not yet
    collected; it never decreases between collections.
    """

    def collectable_amount(self) -> int:
        """Rewards emitted to the pool and not yet collected."""
        ...

    def collect(self, amount: int, recipient: str) -> None:
        """Pay amount of the reward token to recipient."""
        ...


@runtime_checkable
class SupportsAtomic(Protocol):
    """
    Optional hook for collaborators whose state can be rolled back.

    atomic() returns a context manager; if the block raises, every change
    made inside it is undone before the exception propagates. The pool opens
    this scope on its ledgers and reward source for each mutating operation,
    so a failed payment check also reverses transfers already made.
    """

    def atomic(self) -> ContextManager[None]:
        """Scope whose changes are discarded if it exits with an exception."""
        ...


# (amount0_owed, amount1_owed, data)
MintCallback = Callable[[int, int, Any], None]

# (amount0_delta, amount1_delta, data); positive deltas are owed to the pool
SwapCallback = Callable[[int, int, Any], None]

# (fee0, fee1, data)
FlashCallback = Callable[[int, int, Any], None]
