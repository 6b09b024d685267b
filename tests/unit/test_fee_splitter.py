"""
Fee splitting and in-memory collaborator tests.
"""

import pytest

from clamm.core.collaborators import (
    AccumulatingRewardSource,
    InMemoryAssetLedger,
    StaticFeeRateProvider,
)
from clamm.core.fee_splitter import split
from clamm.core.interfaces import (
    AssetLedger,
    ProtocolFeeRateProvider,
    RewardEmissionSource,
    SupportsAtomic,
)
from clamm.exceptions import InsufficientBalanceError, InvalidFeeSplitError, ZeroAmountError


class TestSplit:
    """Test LP/protocol fee partitioning."""

    def test_no_protocol_fee_no_stake(self):
        assert split(1000, 0, 100, 0) == (1000, 0)

    def test_protocol_rate_only(self):
        assert split(1000, 100_000, 100, 0) == (900, 100)

    def test_staked_share_goes_to_protocol(self):
        """Staked liquidity earns rewards, so its share of the fee is not credited to LPs."""
        assert split(1000, 0, 100, 25) == (750, 250)

    def test_rate_and_stake_combined(self):
        lp_fee, protocol_fee = split(1000, 200_000, 4, 1)
        assert lp_fee == 600
        assert protocol_fee == 400

    def test_all_staked(self):
        assert split(1000, 0, 100, 100) == (0, 1000)

    def test_no_liquidity_all_to_protocol(self):
        assert split(1000, 0, 0, 0) == (0, 1000)

    def test_rounds_toward_protocol(self):
        lp_fee, protocol_fee = split(10, 0, 3, 1)
        assert lp_fee == 6
        assert protocol_fee == 4

    @pytest.mark.parametrize("rate", [-1, 1_000_001])
    def test_rate_out_of_range(self, rate):
        with pytest.raises(InvalidFeeSplitError):
            split(1000, rate, 100, 0)

    def test_staked_above_total(self):
        with pytest.raises(InvalidFeeSplitError):
            split(1000, 0, 100, 101)


class TestInMemoryAssetLedger:
    """Test the dictionary-backed token ledger."""

    def test_satisfies_protocol(self):
        assert isinstance(InMemoryAssetLedger("TK0"), AssetLedger)

    def test_transfer(self):
        ledger = InMemoryAssetLedger("TK0")
        ledger.mint("alice", 100)
        ledger.transfer("alice", "bob", 40)
        assert ledger.balance_of("alice") == 60
        assert ledger.balance_of("bob") == 40
        assert ledger.total_supply == 100

    def test_transfer_is_all_or_nothing(self):
        ledger = InMemoryAssetLedger("TK0")
        ledger.mint("alice", 10)
        with pytest.raises(InsufficientBalanceError):
            ledger.transfer("alice", "bob", 11)
        assert ledger.balance_of("alice") == 10
        assert ledger.balance_of("bob") == 0

    def test_negative_amount(self):
        with pytest.raises(ZeroAmountError):
            InMemoryAssetLedger("TK0").transfer("alice", "bob", -1)

    def test_atomic_restores_on_error(self):
        ledger = InMemoryAssetLedger("TK0")
        ledger.mint("alice", 100)
        assert isinstance(ledger, SupportsAtomic)

        with pytest.raises(ZeroAmountError):
            with ledger.atomic():
                ledger.transfer("alice", "bob", 30)
                ledger.mint("bob", 5)
                ledger.transfer("bob", "carol", -1)
        assert ledger.balance_of("alice") == 100
        assert ledger.balance_of("bob") == 0
        assert ledger.total_supply == 100

    def test_atomic_keeps_changes_on_success(self):
        ledger = InMemoryAssetLedger("TK0")
        ledger.mint("alice", 100)
        with ledger.atomic():
            ledger.transfer("alice", "bob", 30)
        assert ledger.balance_of("bob") == 30

    def test_nested_atomic_restores_inner_only(self):
        ledger = InMemoryAssetLedger("TK0")
        ledger.mint("alice", 100)
        with ledger.atomic():
            ledger.transfer("alice", "bob", 10)
            with pytest.raises(InsufficientBalanceError):
                with ledger.atomic():
                    ledger.transfer("alice", "bob", 20)
                    ledger.transfer("alice", "bob", 1000)
        assert ledger.balance_of("alice") == 90
        assert ledger.balance_of("bob") == 10


class TestStaticFeeRateProvider:
    def test_satisfies_protocol(self):
        assert isinstance(StaticFeeRateProvider(), ProtocolFeeRateProvider)

    def test_exemption(self):
        provider = StaticFeeRateProvider(protocol_fee_rate=50_000, exempt={"router"})
        assert provider.get_protocol_fee_rate() == 50_000
        assert provider.is_fee_exempt("router")
        assert not provider.is_fee_exempt("trader")

    def test_invalid_rate(self):
        with pytest.raises(InvalidFeeSplitError):
            StaticFeeRateProvider(protocol_fee_rate=2_000_000)


class TestAccumulatingRewardSource:
    def test_satisfies_protocol(self):
        assert isinstance(AccumulatingRewardSource(InMemoryAssetLedger("RWD")), RewardEmissionSource)

    def test_notify_and_collect(self):
        ledger = InMemoryAssetLedger("RWD")
        source = AccumulatingRewardSource(ledger)
        source.notify(500)
        assert source.collectable_amount() == 500

        source.collect(200, "alice")
        assert ledger.balance_of("alice") == 200
        assert source.collectable_amount() == 300

    def test_collect_more_than_pending(self):
        source = AccumulatingRewardSource(InMemoryAssetLedger("RWD"))
        source.notify(5)
        with pytest.raises(InsufficientBalanceError):
            source.collect(6, "alice")
        assert source.collectable_amount() == 5

    def test_atomic_restores_pending_and_ledger(self):
        ledger = InMemoryAssetLedger("RWD")
        source = AccumulatingRewardSource(ledger)
        source.notify(50)
        assert isinstance(source, SupportsAtomic)

        with pytest.raises(InsufficientBalanceError):
            with source.atomic():
                source.collect(20, "alice")
                source.collect(40, "alice")
        assert source.collectable_amount() == 50
        assert ledger.balance_of("alice") == 0
        assert ledger.balance_of(source.address) == 50
