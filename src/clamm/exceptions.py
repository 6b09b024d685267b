"""
Pool-specific exception hierarchy for clamm.

Provides typed exceptions for the accounting engine so callers can tell a
rejected precondition from an arithmetic boundary or a misbehaving
collaborator, and so nothing in the engine needs bare Exception handlers.
"""

from __future__ import annotations

from typing import Any


class PoolError(Exception):
    """Base exception for all engine errors.

    Attributes:
        message: Human-readable error description
        details: Additional context about the error
        recoverable: Whether the whole operation may be retried by the caller
    """

    def __init__(
        self,
        message: str,
        details: dict[str, Any] | None = None,
        recoverable: bool = False,
    ) -> None:
        super().__init__(message)
        self.message = message
        self.details = details or {}
        self.recoverable = recoverable


# ==================== Precondition Errors ====================


class PreconditionError(PoolError):
    """Raised when a call is rejected before any state is touched."""
    pass


class NotInitializedError(PreconditionError):
    """Raised when an operation needs a price but the pool has none yet."""
    pass


class AlreadyInitializedError(PreconditionError):
    """Raised when initialize is called on a pool that already has a price."""
    pass


class InvalidTickRangeError(PreconditionError):
    """Raised for tick_lower >= tick_upper or ticks outside [MIN_TICK, MAX_TICK]."""
    pass


class TickSpacingError(PreconditionError):
    """Raised when a tick is not a multiple of the pool's tick spacing."""
    pass


class ZeroAmountError(PreconditionError):
    """Raised when an operation requires a non-zero amount."""
    pass


class PriceLimitError(PreconditionError):
    """Raised when the swap price limit is on the wrong side of the price or out of bounds."""
    pass


class LockedError(PreconditionError):
    """Raised on a reentrant call while the pool lock is held."""
    pass


class UnauthorizedError(PreconditionError):
    """Raised when the caller may not perform the operation."""
    pass


class NoLiquidityError(PreconditionError):
    """Raised when an operation needs in-range liquidity and there is none."""
    pass


class TargetPredatesOldestObservationError(PreconditionError):
    """Raised when an oracle lookback is older than the retained history."""
    pass


class InvalidFeeSplitError(PreconditionError):
    """Raised when a fee split gets an out-of-range rate or staked > total liquidity."""
    pass


# ==================== Arithmetic Boundary Errors ====================


class ArithmeticBoundaryError(PoolError):
    """Raised when a fixed-width quantity would leave its representable range."""
    pass


class MathOverflowError(ArithmeticBoundaryError):
    """Raised when a full-precision result does not fit its destination width."""
    pass


class UnrepresentableError(ArithmeticBoundaryError):
    """Raised for a tick or sqrt price outside the supported domain."""
    pass


class LiquidityOverflowError(ArithmeticBoundaryError):
    """Raised when gross liquidity at a tick would exceed the per-tick cap."""
    pass


class InsufficientLiquidityError(ArithmeticBoundaryError):
    """Raised when a negative liquidity delta would underflow a position."""
    pass


class NoPositionError(ArithmeticBoundaryError):
    """Raised when poking a position that holds no liquidity."""
    pass


class InvalidStakeDeltaError(ArithmeticBoundaryError):
    """Raised when staked liquidity would exceed liquidity."""
    pass


# ==================== Collaborator Integrity Errors ====================


class CollaboratorIntegrityError(PoolError):
    """Raised when an external collaborator did not deliver what was required."""
    pass


class InsufficientInputPaidError(CollaboratorIntegrityError):
    """Raised when a mint or swap callback did not pay the owed input."""

    def __init__(
        self,
        message: str,
        token: int | None = None,
        required: int | None = None,
        received: int | None = None,
        **kwargs: Any,
    ) -> None:
        super().__init__(message, **kwargs)
        self.token = token
        self.required = required
        self.received = received


class FlashRepaymentError(CollaboratorIntegrityError):
    """Raised when a flash borrower did not repay principal plus fee."""

    def __init__(
        self,
        message: str,
        token: int | None = None,
        required: int | None = None,
        received: int | None = None,
        **kwargs: Any,
    ) -> None:
        super().__init__(message, **kwargs)
        self.token = token
        self.required = required
        self.received = received


class InsufficientBalanceError(CollaboratorIntegrityError):
    """Raised by an asset ledger when a transfer exceeds the sender's balance."""
    pass


# ==================== Utility Functions ====================


def get_error_context(exc: Exception) -> dict[str, Any]:
    """Extract error context from an exception for logging.

    Args:
        exc: The exception to extract context from

    Returns:
        Dictionary containing error type, message, and any additional details
    """
    context: dict[str, Any] = {
        "error_type": type(exc).__name__,
        "error_message": str(exc),
    }

    if isinstance(exc, PoolError):
        context["recoverable"] = exc.recoverable
        if exc.details:
            context["details"] = exc.details

    if isinstance(exc, (InsufficientInputPaidError, FlashRepaymentError)):
        if exc.token is not None:
            context["token"] = exc.token
        if exc.required is not None:
            context["required"] = exc.required
        if exc.received is not None:
            context["received"] = exc.received

    return context
