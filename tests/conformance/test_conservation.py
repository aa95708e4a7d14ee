"""
Conservation Law Conformance Tests

INVARIANT: For every agreement, at all times:
    pooled_balance = total_deposited - total_withdrawn - total_claimed
    pooled_balance >= 0
    balance(custody, token) = pooled_balance

and for the token, Σ_{w ∈ wallets} balance(w, token) = 0, since every mint
is booked against the system wallet.

These tests drive agreements through arbitrary operation sequences,
successful or not, and check the invariants after every step.
"""

import pytest
from hypothesis import given, settings, note
from hypothesis import strategies as st

from tests.deployment import OWNER, RECEIVER, WEEK, deploy
from .strategies import vesting_operation, apply_operation, deploy_small


def assert_conserved(d):
    v = d.vesting
    assert v.pooled_balance == v.total_deposited - v.total_withdrawn - v.total_claimed
    assert v.pooled_balance >= 0
    assert d.token.balance_of(v.custody) == v.pooled_balance
    assert v.verify_accrual_invariants()['valid']
    assert d.ledger.verify_double_entry()['valid']


# =============================================================================
# PROPERTY TESTS
# =============================================================================

class TestConservationProperties:
    """Property-based conservation tests."""

    @given(st.lists(vesting_operation(), max_size=40))
    @settings(max_examples=100, deadline=None)
    def test_pool_identity_holds_after_every_operation(self, ops):
        """
        PROPERTY: No sequence of operations breaks the pool identity.
        """
        d = deploy_small()
        for op in ops:
            error = apply_operation(d, op)
            note(f"{op} -> {error!r}")
            assert_conserved(d)

    @given(st.lists(vesting_operation(), max_size=40))
    @settings(max_examples=100, deadline=None)
    def test_tokens_are_only_redistributed(self, ops):
        """
        PROPERTY: Owner, receiver and custody together always hold what was minted.
        """
        d = deploy_small()
        minted = d.token.balance_of(OWNER)
        for op in ops:
            apply_operation(d, op)
        held = (
            d.token.balance_of(OWNER)
            + d.token.balance_of(RECEIVER)
            + d.token.balance_of(d.vesting.custody)
        )
        assert held == minted

    @given(st.lists(vesting_operation(), max_size=40))
    @settings(max_examples=100, deadline=None)
    def test_receiver_holds_exactly_total_claimed(self, ops):
        """
        PROPERTY: Only claims pay the receiver, and claims pay only the receiver.
        """
        d = deploy_small()
        for op in ops:
            apply_operation(d, op)
        # Receiver deposits draw on an allowance it never granted, so they always fail
        assert d.token.balance_of(RECEIVER) == d.vesting.total_claimed

    @given(st.lists(vesting_operation(), max_size=40))
    @settings(max_examples=100, deadline=None)
    def test_holdback_is_never_withdrawn(self, ops):
        """
        PROPERTY: After any withdrawal on an active agreement, the pool still
        covers the locked amount.
        """
        d = deploy_small()
        for op in ops:
            error = apply_operation(d, op)
            if op[0] == "withdraw" and error is None and d.vesting.activated_at is not None:
                assert d.vesting.pooled_balance >= d.vesting.locked_amount()


class TestConservationExamples:
    """Explicit conservation examples."""

    def test_full_cycle_returns_everything(self):
        d = deploy(period_amount=1, owner_funds=100, allowance=100)
        d.vesting.deposit(OWNER, 100)
        d.vesting.withdraw(OWNER, 100)
        assert d.token.balance_of(OWNER) == 100
        assert d.vesting.total_deposited == d.vesting.total_withdrawn == 100
        assert_conserved(d)

    def test_claims_plus_withdrawals_plus_pool_equal_deposits(self):
        d = deploy(holdback_periods=1, period_amount=3, owner_funds=100, allowance=100)
        d.vesting.deposit(OWNER, 40)
        d.vesting.activate(RECEIVER)
        d.advance(2 * WEEK)
        d.vesting.claim(RECEIVER)
        d.vesting.withdraw(OWNER, d.vesting.withdrawable_amount())
        d.vesting.deposit(OWNER, 10)

        v = d.vesting
        assert v.total_claimed + v.total_withdrawn + v.pooled_balance == 50
        assert_conserved(d)

    @pytest.mark.parametrize("holdback", [0, 1, 5])
    def test_zero_pool_after_draining(self, holdback):
        d = deploy(holdback_periods=holdback, period_amount=1, owner_funds=10, allowance=10)
        d.vesting.deposit(OWNER, 10)
        d.vesting.activate(RECEIVER)
        d.advance(10 * WEEK)
        d.vesting.claim(RECEIVER)
        assert d.vesting.pooled_balance == 0
        assert d.token.balance_of(RECEIVER) == 10
        assert_conserved(d)
