"""
test_perp_vesting.py - Unit tests for perp_vesting.py

Tests:
- create_perp_vesting_unit() factory and its validation
- Accrual queries: compute_claimable, compute_locked_amount, compute_withdrawable
- Pure builders: compute_activate, compute_deposit, compute_withdraw, compute_claim
- verify_accrual_invariants()

All tests here run against FakeView; end-to-end behavior lives in
tests/functional/test_vesting_lifecycle.py.
"""

import pytest
from datetime import datetime, timedelta

from vesting import (
    Inactive, Active,
    create_perp_vesting_unit,
    compute_claimable, compute_locked_amount, compute_withdrawable,
    compute_activate, compute_deposit, compute_withdraw, compute_claim,
    verify_accrual_invariants,
    UnauthorizedCaller, AlreadyActivated, NotActivated,
    InsufficientUnlockedFunds, NothingToClaim, InsufficientFunds,
    InsufficientAllowance, LedgerTransferFailure, VestingError,
    UNIT_TYPE_PERP_VESTING, OriginType,
)

from tests.fake_view import FakeView


START = datetime(2024, 1, 1)
WEEK = timedelta(weeks=1)
P = 10 ** 18


def _pv_state(**overrides):
    state = {
        'token': 'VEST',
        'custody': 'pool',
        'depositor': 'owner',
        'beneficiary': 'receiver',
        'period_length': WEEK,
        'holdback_periods': 2,
        'period_amount': P,
        'activation': Inactive(),
        'pooled_balance': 0,
        'total_deposited': 0,
        'total_withdrawn': 0,
        'total_claimed': 0,
        'last_claim_at': None,
    }
    state.update(overrides)
    return state


def _view(time=START, custody_balance=None, allowances=None, owner_balance=100 * P, **overrides):
    state = _pv_state(**overrides)
    if custody_balance is None:
        custody_balance = state['pooled_balance']
    return FakeView(
        balances={'owner': {'VEST': owner_balance}, 'pool': {'VEST': custody_balance}, 'receiver': {}},
        states={'PV': state, 'VEST': {'allowances': allowances or {}}},
        time=time,
    )


def _active(since=START, **overrides):
    return dict(activation=Active(since=since), **overrides)


# ============================================================================
# FACTORY
# ============================================================================

class TestCreatePerpVestingUnit:
    """Tests for create_perp_vesting_unit()."""

    def _create(self, **overrides):
        args = dict(
            symbol="PV", token="VEST", custody="pool", depositor="owner",
            beneficiary="receiver", period_length=WEEK, holdback_periods=2,
            period_amount=P,
        )
        args.update(overrides)
        return create_perp_vesting_unit(**args)

    def test_initial_state(self):
        unit = self._create()
        assert unit.unit_type == UNIT_TYPE_PERP_VESTING
        assert unit.state == _pv_state()

    def test_zero_holdback_allowed(self):
        assert self._create(holdback_periods=0).state['holdback_periods'] == 0

    def test_same_parties_raises(self):
        with pytest.raises(ValueError, match="depositor and beneficiary must be different"):
            self._create(beneficiary="owner")

    def test_custody_must_be_own_wallet(self):
        with pytest.raises(ValueError, match="custody"):
            self._create(custody="owner")

    def test_empty_wallet_raises(self):
        with pytest.raises(ValueError, match="beneficiary cannot be empty"):
            self._create(beneficiary="")

    @pytest.mark.parametrize("period_length", [timedelta(0), timedelta(seconds=-1), 604800])
    def test_bad_period_length_raises(self, period_length):
        with pytest.raises(ValueError, match="period_length"):
            self._create(period_length=period_length)

    @pytest.mark.parametrize("holdback", [-1, 1.5, True])
    def test_bad_holdback_raises(self, holdback):
        with pytest.raises(ValueError, match="holdback_periods"):
            self._create(holdback_periods=holdback)

    @pytest.mark.parametrize("amount", [0, -P, 0.5])
    def test_bad_period_amount_raises(self, amount):
        with pytest.raises(ValueError, match="period_amount"):
            self._create(period_amount=amount)


# ============================================================================
# ACCRUAL QUERIES
# ============================================================================

class TestComputeClaimable:

    def test_zero_before_activation(self):
        assert compute_claimable(_view(time=START + 10 * WEEK), "PV") == 0

    def test_zero_within_first_period(self):
        view = _view(time=START + WEEK - timedelta(seconds=1), **_active())
        assert compute_claimable(view, "PV") == 0

    def test_one_period_at_boundary(self):
        view = _view(time=START + WEEK, **_active())
        assert compute_claimable(view, "PV") == P

    def test_counts_whole_periods(self):
        view = _view(time=START + 3 * WEEK + timedelta(days=6), **_active())
        assert compute_claimable(view, "PV") == 3 * P

    def test_subtracts_claimed_periods(self):
        view = _view(
            time=START + 5 * WEEK,
            **_active(last_claim_at=START + 2 * WEEK + timedelta(days=3)),
        )
        assert compute_claimable(view, "PV") == 3 * P

    def test_not_capped_by_pool(self):
        view = _view(time=START + 50 * WEEK, **_active(pooled_balance=P))
        assert compute_claimable(view, "PV") == 50 * P

    def test_explicit_now(self):
        view = _view(time=START, **_active())
        assert compute_claimable(view, "PV", now=START + 4 * WEEK) == 4 * P

    def test_clock_behind_activation_raises(self):
        view = _view(time=START, **_active(since=START + WEEK))
        with pytest.raises(ValueError, match="precedes activation"):
            compute_claimable(view, "PV")

    def test_time_before_last_claim_raises(self):
        view = _view(time=START + 5 * WEEK, **_active(last_claim_at=START + 4 * WEEK))
        with pytest.raises(ValueError, match="precedes the last claim"):
            compute_claimable(view, "PV", now=START + 2 * WEEK)


class TestComputeLockedAmount:

    def test_time_before_last_claim_raises(self):
        view = _view(time=START + 5 * WEEK, **_active(last_claim_at=START + 4 * WEEK))
        with pytest.raises(ValueError, match="precedes the last claim"):
            compute_locked_amount(view, "PV", now=START + WEEK)

    def test_at_last_claim_only_holdback_is_locked(self):
        view = _view(
            time=START + 5 * WEEK,
            **_active(last_claim_at=START + 4 * WEEK + timedelta(days=2)),
        )
        assert compute_locked_amount(view, "PV", now=START + 4 * WEEK + timedelta(days=2)) == 2 * P

    def test_zero_before_activation(self):
        assert compute_locked_amount(_view(pooled_balance=10 * P), "PV") == 0

    def test_holdback_at_activation(self):
        view = _view(time=START, **_active())
        assert compute_locked_amount(view, "PV") == 2 * P

    def test_grows_with_completed_periods(self):
        view = _view(time=START + 3 * WEEK, **_active())
        assert compute_locked_amount(view, "PV") == 5 * P

    def test_claimed_periods_released(self):
        view = _view(time=START + 3 * WEEK, **_active(last_claim_at=START + 3 * WEEK))
        assert compute_locked_amount(view, "PV") == 2 * P

    def test_zero_holdback(self):
        view = _view(time=START + WEEK, **_active(holdback_periods=0))
        assert compute_locked_amount(view, "PV") == P


class TestComputeWithdrawable:

    def test_whole_pool_before_activation(self):
        assert compute_withdrawable(_view(pooled_balance=7 * P), "PV") == 7 * P

    def test_pool_minus_locked(self):
        view = _view(time=START + WEEK, **_active(pooled_balance=10 * P))
        assert compute_withdrawable(view, "PV") == 7 * P

    def test_never_negative(self):
        view = _view(time=START + 9 * WEEK, **_active(pooled_balance=3 * P))
        assert compute_withdrawable(view, "PV") == 0


# ============================================================================
# OPERATION BUILDERS
# ============================================================================

class TestComputeActivate:

    def test_activate_sets_since(self):
        view = _view(time=START + timedelta(hours=5))
        tx = compute_activate(view, "PV", "receiver")
        assert tx.moves == ()
        new_state = tx.state_changes[0].new_state
        assert new_state['activation'] == Active(since=START + timedelta(hours=5))
        assert tx.origin.origin_type == OriginType.USER_ACTION
        assert tx.origin.event_type == "ACTIVATE"

    def test_only_beneficiary(self):
        with pytest.raises(UnauthorizedCaller):
            compute_activate(_view(), "PV", "owner")

    def test_second_activation_raises(self):
        with pytest.raises(AlreadyActivated):
            compute_activate(_view(**_active()), "PV", "receiver")


class TestComputeDeposit:

    def test_deposit_pulls_into_custody(self):
        view = _view(allowances={'owner': {'pool': 10 * P}})
        tx = compute_deposit(view, "PV", "owner", 4 * P)

        assert [(m.source, m.dest, m.quantity) for m in tx.moves] == [("owner", "pool", 4 * P)]
        changes = {sc.unit: sc.new_state for sc in tx.state_changes}
        assert changes['VEST']['allowances'] == {'owner': {'pool': 6 * P}}
        assert changes['PV']['pooled_balance'] == 4 * P
        assert changes['PV']['total_deposited'] == 4 * P
        assert tx.origin.event_type == "DEPOSIT"

    def test_third_party_may_deposit(self):
        view = _view(allowances={'receiver': {'pool': P}})
        tx = compute_deposit(view, "PV", "receiver", P)
        assert tx.moves[0].source == "receiver"

    def test_deposit_without_allowance_raises(self):
        with pytest.raises(InsufficientAllowance):
            compute_deposit(_view(), "PV", "owner", P)

    @pytest.mark.parametrize("amount", [0, -1])
    def test_deposit_rejects_non_positive(self, amount):
        view = _view(allowances={'owner': {'pool': P}})
        with pytest.raises(ValueError):
            compute_deposit(view, "PV", "owner", amount)


class TestComputeWithdraw:

    def test_withdraw_before_activation(self):
        view = _view(pooled_balance=5 * P, total_deposited=5 * P)
        tx = compute_withdraw(view, "PV", "owner", 5 * P)

        assert [(m.source, m.dest, m.quantity) for m in tx.moves] == [("pool", "owner", 5 * P)]
        new_state = tx.state_changes[0].new_state
        assert new_state['pooled_balance'] == 0
        assert new_state['total_withdrawn'] == 5 * P

    def test_only_depositor_checked_before_amount(self):
        with pytest.raises(UnauthorizedCaller):
            compute_withdraw(_view(pooled_balance=P), "PV", "receiver", 0)

    def test_more_than_pool_before_activation(self):
        with pytest.raises(InsufficientFunds):
            compute_withdraw(_view(pooled_balance=P), "PV", "owner", P + 1)

    def test_locked_funds_after_activation(self):
        view = _view(time=START + WEEK, **_active(pooled_balance=10 * P, total_deposited=10 * P))
        with pytest.raises(InsufficientUnlockedFunds, match="Insufficient unlocked funds available"):
            compute_withdraw(view, "PV", "owner", 7 * P + 1)

    def test_unlocked_funds_after_activation(self):
        view = _view(time=START + WEEK, **_active(pooled_balance=10 * P, total_deposited=10 * P))
        tx = compute_withdraw(view, "PV", "owner", 7 * P)
        assert tx.state_changes[0].new_state['pooled_balance'] == 3 * P

    def test_zero_amount_raises(self):
        with pytest.raises(ValueError):
            compute_withdraw(_view(pooled_balance=P), "PV", "owner", 0)


class TestComputeClaim:

    def test_claim_pays_elapsed_periods(self):
        now = START + 3 * WEEK + timedelta(days=2)
        view = _view(time=now, **_active(pooled_balance=10 * P, total_deposited=10 * P))
        tx = compute_claim(view, "PV", "receiver")

        assert [(m.source, m.dest, m.quantity) for m in tx.moves] == [("pool", "receiver", 3 * P)]
        new_state = tx.state_changes[0].new_state
        assert new_state['last_claim_at'] == now
        assert new_state['total_claimed'] == 3 * P
        assert new_state['pooled_balance'] == 7 * P

    def test_only_beneficiary(self):
        view = _view(time=START + WEEK, **_active(pooled_balance=10 * P))
        with pytest.raises(UnauthorizedCaller):
            compute_claim(view, "PV", "owner")

    def test_not_activated(self):
        with pytest.raises(NotActivated):
            compute_claim(_view(pooled_balance=10 * P), "PV", "receiver")

    def test_nothing_to_claim(self):
        view = _view(time=START + WEEK - timedelta(seconds=1), **_active(pooled_balance=10 * P))
        with pytest.raises(NothingToClaim):
            compute_claim(view, "PV", "receiver")

    def test_underfunded_claim_raises(self):
        view = _view(time=START + 3 * WEEK, **_active(pooled_balance=2 * P, total_deposited=2 * P))
        with pytest.raises(LedgerTransferFailure, match="underfunded"):
            compute_claim(view, "PV", "receiver")

    def test_vesting_errors_share_base(self):
        for exc in (UnauthorizedCaller, AlreadyActivated, NotActivated,
                    InsufficientUnlockedFunds, NothingToClaim):
            assert issubclass(exc, VestingError)


# ============================================================================
# INVARIANTS
# ============================================================================

class TestVerifyAccrualInvariants:

    def test_fresh_agreement_valid(self):
        assert verify_accrual_invariants(_view(), "PV") == {'valid': True, 'violations': []}

    def test_identity_violation(self):
        view = _view(pooled_balance=5, total_deposited=10, total_withdrawn=2, total_claimed=2)
        result = verify_accrual_invariants(view, "PV")
        assert not result['valid']
        assert "deposited - withdrawn - claimed" in result['violations'][0]

    def test_claim_while_inactive(self):
        view = _view(last_claim_at=START)
        result = verify_accrual_invariants(view, "PV")
        assert result['violations'] == ["claim recorded on an inactive agreement"]

    def test_claim_before_activation(self):
        view = _view(**_active(since=START + WEEK, last_claim_at=START))
        result = verify_accrual_invariants(view, "PV")
        assert not result['valid']
        assert "precedes activation" in result['violations'][0]

    def test_custody_short(self):
        view = _view(custody_balance=1, pooled_balance=5, total_deposited=5)
        result = verify_accrual_invariants(view, "PV")
        assert result['violations'] == ["custody holds 1, less than pooled 5"]
