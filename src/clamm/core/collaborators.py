"""
In-memory collaborators for simulations and tests.

Each class satisfies one of the protocols in clamm.core.interfaces without any
external state, so a pool can be exercised end to end in a single process.
"""

from __future__ import annotations

import logging
from contextlib import contextmanager
from dataclasses import dataclass, field
from typing import Iterator

from ..exceptions import InsufficientBalanceError, InvalidFeeSplitError, ZeroAmountError
from .safe_math import PIPS_DENOMINATOR

logger = logging.getLogger(__name__)


@dataclass
class InMemoryAssetLedger:
    """
    Balances of a single token held in a dict.

    Transfers are all-or-nothing: a transfer that exceeds the sender's
    balance raises before any balance changes.
    """

    symbol: str
    balances: dict[str, int] = field(default_factory=dict)
    total_supply: int = 0

    # ==================== View Functions ====================

    def balance_of(self, holder: str) -> int:
        return self.balances.get(holder, 0)

    # ==================== State-Changing Functions ====================

    def transfer(self, sender: str, recipient: str, amount: int) -> None:
        """
        Move tokens between holders.

        Raises:
            InsufficientBalanceError: If sender holds less than amount
        """
        if amount < 0:
            raise ZeroAmountError("Transfer amount cannot be negative", details={"amount": amount})

        sender_balance = self.balances.get(sender, 0)
        if sender_balance < amount:
            raise InsufficientBalanceError(
                f"{self.symbol}: transfer amount exceeds balance ({amount} > {sender_balance})",
                details={"sender": sender, "amount": amount, "balance": sender_balance},
            )

        self.balances[sender] = sender_balance - amount
        self.balances[recipient] = self.balances.get(recipient, 0) + amount

        logger.debug(
            "Asset transfer",
            extra={
                "event": "ledger.transfer",
                "token": self.symbol,
                "from": sender[:10],
                "to": recipient[:10],
                "amount": amount,
            },
        )

    def mint(self, to: str, amount: int) -> None:
        """Create tokens out of nothing (simulation funding)."""
        self.total_supply += amount
        self.balances[to] = self.balances.get(to, 0) + amount

    @contextmanager
    def atomic(self) -> Iterator[None]:
        """
        Snapshot balances; restore them if the block raises.

        Scopes nest: an inner failure restores the inner snapshot only.
        """
        balances = dict(self.balances)
        total_supply = self.total_supply
        try:
            yield
        except Exception:
            self.balances = balances
            self.total_supply = total_supply
            logger.debug(
                "Asset transfers rolled back",
                extra={"event": "ledger.rollback", "token": self.symbol},
            )
            raise


@dataclass
class StaticFeeRateProvider:
    """Fixed protocol fee rate with an explicit exemption set."""

    protocol_fee_rate: int = 0
    exempt: set[str] = field(default_factory=set)

    def __post_init__(self) -> None:
        if not 0 <= self.protocol_fee_rate <= PIPS_DENOMINATOR:
            raise InvalidFeeSplitError(
                f"Protocol fee rate {self.protocol_fee_rate} outside [0, {PIPS_DENOMINATOR}]",
                details={"protocol_fee_rate": self.protocol_fee_rate},
            )

    def get_protocol_fee_rate(self) -> int:
        return self.protocol_fee_rate

    def is_fee_exempt(self, trader: str) -> bool:
        return trader in self.exempt


@dataclass
class AccumulatingRewardSource:
    """
    Reward stream funded by explicit top-ups.

    notify(amount) emits rewards to the pool; they stay collectable until a
    position owner claims them through the pool.
    """

    reward_ledger: InMemoryAssetLedger
    address: str = "reward-source"
    pending: int = 0

    def notify(self, amount: int) -> None:
        """Emit `amount` of newly funded rewards."""
        self.reward_ledger.mint(self.address, amount)
        self.pending += amount

    def collectable_amount(self) -> int:
        return self.pending

    def collect(self, amount: int, recipient: str) -> None:
        if amount > self.pending:
            raise InsufficientBalanceError(
                f"Reward collect exceeds pending rewards ({amount} > {self.pending})",
                details={"amount": amount, "pending": self.pending},
            )
        self.reward_ledger.transfer(self.address, recipient, amount)
        self.pending -= amount

    @contextmanager
    def atomic(self) -> Iterator[None]:
        """Undo collections and top-ups made inside the block if it raises."""
        pending = self.pending
        with self.reward_ledger.atomic():
            try:
                yield
            except Exception:
                self.pending = pending
                raise
