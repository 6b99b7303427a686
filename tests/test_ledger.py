"""
Tests for SLICEPOOL pool lifecycle and reward settlement.
"""

import pytest
import sys
import os

sys.path.insert(0, os.path.dirname(os.path.dirname(os.path.abspath(__file__))))

from core.chain import Chain
from core.errors import (
    UnauthorizedError,
    InvalidAmountError,
    InsufficientSlicesError,
    InsufficientFundsError,
    InsufficientAllowanceError,
    PoolNotFoundError,
)
from core.subsidy import HalvingSchedule
from core.token import VirtualToken
from pool import PoolEngine
import config

SPP = config.SLICES_PER_POWER
SUBSIDY = 25 * config.COIN_UNIT
PRECISION = config.REWARD_PRECISION
ACCOUNTS = ["deployer", "alice", "bob", "carol"]


def create_test_engine(reserved_power=1, funds=10 ** 9):
    """Engine over a flat-subsidy token; every account funded and approved."""
    token = VirtualToken(
        HalvingSchedule(initial=SUBSIDY, interval=10 ** 9, minimum=0),
        genesis_holder="deployer",
        genesis_supply=funds * len(ACCOUNTS),
    )
    chain = Chain()
    engine = PoolEngine(token, chain=chain, reserved_power=reserved_power)
    for name in ACCOUNTS[1:]:
        token.transfer("deployer", name, funds)
    for name in ACCOUNTS:
        token.approve(name, engine.account)
    return engine, token, chain


def holder_reward(share, held, total_slices, acc=0):
    """Reward of `held` slices when `share` is spread over `total_slices`."""
    new_acc = acc + share * PRECISION // total_slices
    return held * (new_acc - acc) // PRECISION


class TestCreatePool:
    """Test pool creation."""

    @pytest.fixture
    def setup(self):
        return create_test_engine()

    def test_create(self, setup):
        """Test stake debit and slices minted to the caller."""
        engine, token, chain = setup
        before = token.balance_of("deployer")

        pool_id = engine.create_pool("deployer", 3)

        assert pool_id == 0
        assert token.balance_of("deployer") == before - 3 * SPP
        assert token.balance_of(engine.account) == 3 * SPP
        assert engine.slices(0, "deployer") == 3 * SPP
        assert engine.total_power == 3

        info = engine.pools(0)
        assert info['power'] == 3
        assert info['total_slices'] == 3 * SPP
        assert info['title_id'] == 1
        assert info['title_holder'] == "deployer"

    def test_create_event(self, setup):
        """Test CreatePool carries id, owner, title and power."""
        engine, token, chain = setup
        chain.mine_to(50)
        engine.create_pool("alice", 2)

        event = engine.events.last("CreatePool")
        assert event.height == 50
        assert event.args == {'pool_id': 0, 'owner': "alice", 'title_id': 1, 'power': 2}

    def test_invalid_power(self, setup):
        """Test zero and negative power are rejected."""
        engine, token, chain = setup

        with pytest.raises(InvalidAmountError):
            engine.create_pool("deployer", 0)
        with pytest.raises(InvalidAmountError):
            engine.create_pool("deployer", -1)

    def test_insufficient_funds_leaves_no_pool(self, setup):
        """Test a failed stake debit creates nothing."""
        engine, token, chain = setup
        token.transfer("alice", "bob", token.balance_of("alice") - 1)

        with pytest.raises(InsufficientFundsError):
            engine.create_pool("alice", 1)

        assert engine.total_power == 0
        assert engine.ledger.slots == []
        assert len(engine.events) == 0

        engine.create_pool("bob", 1)
        assert engine.pools(0)['title_id'] == 1

    def test_requires_approval(self, setup):
        """Test the engine may only debit approved accounts."""
        engine, token, chain = setup
        token.approve("alice", engine.account, 0)

        with pytest.raises(InsufficientAllowanceError):
            engine.create_pool("alice", 1)

    def test_unknown_pool(self, setup):
        """Test lookups of missing pools."""
        engine, token, chain = setup

        with pytest.raises(PoolNotFoundError):
            engine.pools(0)
        with pytest.raises(PoolNotFoundError):
            engine.mine("deployer", 7)


class TestChangePool:
    """Test resizing."""

    @pytest.fixture
    def setup(self):
        engine, token, chain = create_test_engine()
        engine.create_pool("deployer", 2)
        return engine, token, chain

    def test_grow(self, setup):
        engine, token, chain = setup
        before = token.balance_of("deployer")

        engine.change_pool("deployer", 0, 5)

        assert token.balance_of("deployer") == before - 3 * SPP
        assert engine.slices(0, "deployer") == 5 * SPP
        assert engine.total_power == 5
        assert engine.events.last("ChangePool").args == {'pool_id': 0, 'power': 5}

    def test_shrink_refunds(self, setup):
        engine, token, chain = setup
        before = token.balance_of("deployer")

        engine.change_pool("deployer", 0, 1)

        assert token.balance_of("deployer") == before + SPP
        assert engine.pools(0)['total_slices'] == SPP
        assert engine.total_power == 1

    def test_same_power_rejected(self, setup):
        engine, token, chain = setup

        with pytest.raises(InvalidAmountError):
            engine.change_pool("deployer", 0, 2)

    def test_only_title_holder(self, setup):
        engine, token, chain = setup

        with pytest.raises(UnauthorizedError):
            engine.change_pool("alice", 0, 3)

    def test_zero_power_rejected(self, setup):
        engine, token, chain = setup

        with pytest.raises(InvalidAmountError):
            engine.change_pool("deployer", 0, 0)

    def test_shrink_below_own_slices(self, setup):
        """Test shrinking cannot burn slices sold to others."""
        engine, token, chain = setup
        sale_id = engine.sell("deployer", 0, SPP + SPP // 2, 0)
        engine.buy("alice", sale_id, SPP + SPP // 2)

        with pytest.raises(InsufficientSlicesError):
            engine.change_pool("deployer", 0, 1)

        assert engine.pools(0)['power'] == 2
        assert engine.slices(0, "alice") == SPP + SPP // 2
        assert engine.slices(0, "deployer") == SPP // 2

    def test_rewards_stay_pending(self, setup):
        """Test resizing does not pay out."""
        engine, token, chain = setup
        chain.mine_to(10)
        before = token.balance_of("deployer")

        engine.change_pool("deployer", 0, 3)

        assert token.balance_of("deployer") == before - SPP
        assert engine.pending_reward(0, "deployer") == 10 * SUBSIDY * 2 // 3


class TestDeletePool:
    """Test deletion and slot reuse."""

    @pytest.fixture
    def setup(self):
        return create_test_engine()

    def test_delete_refunds_and_pays(self, setup):
        engine, token, chain = setup
        engine.create_pool("deployer", 1)
        chain.mine_to(10)
        before = token.balance_of("deployer")

        reward = engine.delete_pool("deployer", 0)

        assert reward == 10 * SUBSIDY // 2
        assert token.balance_of("deployer") == before + SPP + reward
        assert engine.total_power == 0
        assert engine.events.last("DeletePool").args == {'pool_id': 0, 'title_id': 1}
        with pytest.raises(PoolNotFoundError):
            engine.pools(0)

    def test_only_title_holder(self, setup):
        engine, token, chain = setup
        engine.create_pool("deployer", 1)

        with pytest.raises(UnauthorizedError):
            engine.delete_pool("alice", 0)

    def test_slot_reuse(self, setup):
        """Test freed slots are reused while titles keep counting."""
        engine, token, chain = setup
        engine.create_pool("deployer", 1)
        engine.create_pool("alice", 1)
        engine.create_pool("bob", 1)

        engine.delete_pool("alice", 1)
        assert engine.create_pool("carol", 2) == 1
        assert engine.pools(1)['title_id'] == 4
        assert engine.pool_of_title(4) == 1
        assert engine.create_pool("alice", 1) == 3

        with pytest.raises(PoolNotFoundError):
            engine.pool_of_title(2)

    def test_last_freed_slot_first(self, setup):
        engine, token, chain = setup
        for name in ["deployer", "alice", "bob"]:
            engine.create_pool(name, 1)

        engine.delete_pool("deployer", 0)
        engine.delete_pool("bob", 2)

        assert engine.create_pool("carol", 1) == 2
        assert engine.create_pool("carol", 1) == 0

    def test_reused_slot_starts_fresh(self, setup):
        """Test a new pool in a reused slot has no inherited reward."""
        engine, token, chain = setup
        engine.create_pool("deployer", 1)
        chain.mine_to(10)
        engine.delete_pool("deployer", 0)

        engine.create_pool("alice", 1)
        assert engine.pending_reward(0, "alice") == 0
        assert engine.pending_reward(0, "deployer") == 0
        assert engine.pools(0)['acc_reward_per_slice'] == 0

    def test_other_holders_claim_after_delete(self, setup):
        """Test holders keep their reward on a deleted pool."""
        engine, token, chain = setup
        engine.create_pool("deployer", 1)
        sale_id = engine.sell("deployer", 0, SPP // 4, 100)
        engine.buy("alice", sale_id, SPP // 4)

        chain.mine_to(20)
        engine.delete_pool("deployer", 0)
        engine.create_pool("bob", 1)

        share = 20 * SUBSIDY // 2
        expected = holder_reward(share, SPP // 4, SPP)
        assert engine.retired_pending_reward(1, "alice") == expected

        before = token.balance_of("alice")
        assert engine.mine_retired("alice", 1) == expected
        assert token.balance_of("alice") == before + expected
        assert engine.mine_retired("alice", 1) == 0

    def test_former_holder_claims_after_delete(self, setup):
        """Test reward earned on slices sold before the delete stays claimable."""
        engine, token, chain = setup
        engine.create_pool("deployer", 1)
        sale_id = engine.sell("deployer", 0, SPP // 2, 100)
        engine.buy("alice", sale_id, SPP // 2)

        chain.mine_to(10)
        sale_id = engine.sell("alice", 0, SPP // 2, 100)
        engine.buy("deployer", sale_id, SPP // 2)
        assert engine.slices(0, "alice") == 0

        expected = holder_reward(10 * SUBSIDY // 2, SPP // 2, SPP)
        engine.delete_pool("deployer", 0)

        assert engine.retired_pending_reward(1, "alice") == expected
        assert engine.mine_retired("alice", 1) == expected

    def test_nothing_owed_nothing_retired(self, setup):
        engine, token, chain = setup
        engine.create_pool("deployer", 1)
        chain.mine_to(10)
        engine.delete_pool("deployer", 0)

        assert engine.ledger.retired == {}
        with pytest.raises(PoolNotFoundError):
            engine.mine_retired("alice", 1)

    def test_delete_cancels_listings(self, setup):
        engine, token, chain = setup
        engine.create_pool("deployer", 1)
        sale_id = engine.sell("deployer", 0, SPP // 2, 100)

        engine.delete_pool("deployer", 0)

        assert engine.sales(sale_id)['removed'] is True
        assert engine.sales(sale_id)['slice_amount'] == 0
        assert engine.events.last("CancelSale").args == {'sale_id': sale_id}


class TestRewards:
    """Test lazy settlement."""

    @pytest.fixture
    def setup(self):
        return create_test_engine()

    def test_full_lifecycle(self, setup):
        """Test create, grow, shrink, delete at known heights."""
        engine, token, chain = setup
        chain.mine_to(100)
        engine.create_pool("deployer", 1)

        chain.mine_to(110)
        before = token.balance_of("deployer")
        engine.change_pool("deployer", 0, 9)
        assert token.balance_of("deployer") == before - 8 * SPP

        chain.mine_to(111)
        before = token.balance_of("deployer")
        engine.change_pool("deployer", 0, 4)
        assert token.balance_of("deployer") == before + 5 * SPP

        chain.mine_to(120)
        before = token.balance_of("deployer")
        reward = engine.delete_pool("deployer", 0)

        expected = 10 * SUBSIDY // 2 + SUBSIDY * 9 // 10 + 9 * SUBSIDY * 4 // 5
        assert reward == expected
        assert token.balance_of("deployer") == before + 4 * SPP + expected

    def test_settle_idempotent(self, setup):
        engine, token, chain = setup
        engine.create_pool("deployer", 1)
        chain.mine_to(5)

        assert engine.settle(0) == 5 * SUBSIDY // 2
        acc = engine.pools(0)['acc_reward_per_slice']
        assert engine.settle(0) == 0
        assert engine.pools(0)['acc_reward_per_slice'] == acc

    def test_no_reward_at_creation_height(self, setup):
        engine, token, chain = setup
        chain.mine_to(7)
        engine.create_pool("deployer", 1)

        assert engine.mine("deployer", 0) == 0

    def test_pending_matches_mine(self, setup):
        engine, token, chain = setup
        engine.create_pool("deployer", 2)
        chain.mine_to(13)

        pending = engine.pending_reward(0, "deployer")
        assert pending == 13 * SUBSIDY * 2 // 3
        assert engine.mine("deployer", 0) == pending
        assert engine.pending_reward(0, "deployer") == 0

    def test_mine_event(self, setup):
        engine, token, chain = setup
        engine.create_pool("deployer", 1)
        chain.mine_to(4)
        amount = engine.mine("deployer", 0)

        assert engine.events.last("Mine").args == {'pool_id': 0, 'holder': "deployer", 'amount': amount}

    def test_mine_limit(self, setup):
        """Test a limit pays part and leaves the rest pending."""
        engine, token, chain = setup
        engine.create_pool("deployer", 1)
        chain.mine_to(10)
        total = 10 * SUBSIDY // 2

        assert engine.mine("deployer", 0, limit=1000) == 1000
        assert engine.pending_reward(0, "deployer") == total - 1000
        assert engine.mine("deployer", 0, limit=0) == 0
        assert engine.mine("deployer", 0) == total - 1000

    def test_mine_bad_limit(self, setup):
        engine, token, chain = setup
        engine.create_pool("deployer", 1)

        with pytest.raises(InvalidAmountError):
            engine.mine("deployer", 0, limit=-1)

    def test_no_double_payment(self, setup):
        engine, token, chain = setup
        engine.create_pool("deployer", 1)
        chain.mine_to(10)

        first = engine.mine("deployer", 0)
        assert first > 0
        assert engine.mine("deployer", 0) == 0

    def test_pools_share_subsidy(self, setup):
        """Test each pool earns power / total power of the subsidy."""
        engine, token, chain = setup
        engine.create_pool("deployer", 1)
        engine.create_pool("alice", 2)
        chain.mine_to(10)

        assert engine.mine("deployer", 0) == 10 * SUBSIDY * 1 // 4
        assert engine.mine("alice", 1) == 10 * SUBSIDY * 2 // 4

    def test_no_reserved_power(self):
        """Test a lone pool takes the whole subsidy without reserved power."""
        engine, token, chain = create_test_engine(reserved_power=0)
        engine.create_pool("deployer", 1)
        chain.mine_to(10)

        assert engine.mine("deployer", 0) == 10 * SUBSIDY

    def test_buyer_earns_from_purchase_only(self, setup):
        """Test slices bought mid-stream earn only from the purchase on."""
        engine, token, chain = setup
        engine.create_pool("deployer", 1)
        chain.mine_to(10)
        sale_id = engine.sell("deployer", 0, SPP // 2, 0)
        engine.buy("alice", sale_id, SPP // 2)

        assert engine.pending_reward(0, "alice") == 0
        assert engine.pending_reward(0, "deployer") == 10 * SUBSIDY // 2

        chain.mine_to(20)
        share = 10 * SUBSIDY // 2
        assert engine.pending_reward(0, "alice") == holder_reward(share, SPP // 2, SPP)

    def test_reward_conservation(self, setup):
        """Test payouts never exceed the subsidy apportioned to the pool."""
        engine, token, chain = setup
        engine.create_pool("deployer", 3)
        paid = 0

        for step, buyer in enumerate(["alice", "bob", "carol", "alice", "bob"]):
            chain.mine(7 + step)
            sale_id = engine.sell("deployer", 0, 1234 + step, 10)
            engine.buy(buyer, sale_id, 1234 + step)
            chain.mine(3)
            paid += engine.mine(buyer, 0)

        chain.mine(5)
        for name in ACCOUNTS:
            paid += engine.mine(name, 0)

        apportioned = engine.apportioned_reward(0)
        assert paid <= apportioned
        assert apportioned - paid < 50
        assert engine.audit() == []


if __name__ == '__main__':
    pytest.main([__file__, '-v'])
