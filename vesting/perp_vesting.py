"""
perp_vesting.py - Perpetual Vesting Agreement

This module provides the accrual engine of a two-party vesting agreement:
1. create_perp_vesting_unit() - Factory for the agreement unit (terms + accrual state)
2. compute_claimable() / compute_locked_amount() / compute_withdrawable()
   - Pure queries over a LedgerView
3. compute_activate() / compute_deposit() / compute_withdraw() / compute_claim()
   - Pure builders returning one atomic PendingTransaction per operation
4. PerpVesting - Stateful facade: executes the builders, emits events

A depositor funds the agreement. Once the beneficiary activates it, one
period_amount unlocks per completed period_length. The depositor may take
back whatever is not reserved for the beneficiary, and the reservation
always reaches holdback_periods periods past the current one:

    completed = (now - activated_at) // period_length
    claimed   = (last_claim_at - activated_at) // period_length   (0 if never claimed)
    locked    = (completed + holdback_periods - claimed) * period_amount
    claimable = (completed - claimed) * period_amount

The agreement is a Unit in the ledger. Its state holds the immutable terms
and the accrual counters, so an operation's state change and the token
moves it triggers are applied by one Ledger.execute() call, or not at all.

Example:
    ledger = Ledger("main")
    ledger.register_unit(create_token_unit("VEST", "Vesting Token"))
    ...
    vesting = PerpVesting(
        ledger, "VEST", creator="alice", beneficiary="bob",
        period_length=timedelta(weeks=1), holdback_periods=2, period_amount=10**18,
    )
    TokenLedger(ledger, "VEST").approve("alice", vesting.custody, 10 * 10**18)
    vesting.deposit("alice", 10 * 10**18)
    vesting.activate("bob")
"""

from __future__ import annotations
from dataclasses import dataclass
from datetime import datetime, timedelta
from typing import Any, Dict, List, Optional, Union

from .core import (
    LedgerView, PendingTransaction, Unit, UnitStateChange, UnitState,
    TransactionOrigin, OriginType,
    UNIT_TYPE_PERP_VESTING,
    InsufficientFunds, LedgerTransferFailure,
    UnauthorizedCaller, AlreadyActivated, NotActivated,
    InsufficientUnlockedFunds, NothingToClaim, EventDeliveryError,
    combine_transactions, build_transaction, _freeze_state,
)
from .events import (
    Activated, Deposited, Withdrawn, Claimed, VestingEvent, EventHandler,
)
from .ledger import Ledger
from .token import compute_transfer, compute_transfer_from, require_applied


# ============================================================================
# ACTIVATION STATE
# ============================================================================

@dataclass(frozen=True, slots=True)
class Inactive:
    """Terms not accepted yet: no holdback, nothing accrues."""


@dataclass(frozen=True, slots=True)
class Active:
    """Terms accepted at `since`; accrual counts periods from here."""
    since: datetime


Activation = Union[Inactive, Active]


# ============================================================================
# UNIT FACTORY
# ============================================================================

def create_perp_vesting_unit(
    symbol: str,
    token: str,
    custody: str,
    depositor: str,
    beneficiary: str,
    period_length: timedelta,
    holdback_periods: int,
    period_amount: int,
) -> Unit:
    """
    Create the unit holding a vesting agreement's terms and accrual state.

    Args:
        symbol: Unique identifier of the agreement
        token: Symbol of the token unit being vested
        custody: Wallet holding the pooled funds on behalf of the agreement
        depositor: Wallet allowed to withdraw unreserved funds
        beneficiary: Wallet allowed to activate and claim
        period_length: Duration of one vesting period
        holdback_periods: Periods always reserved ahead of the unlocked tranche
        period_amount: Base units unlocked per completed period

    Returns:
        Unit whose state contains:
        - the terms above (never changed afterwards)
        - activation: Inactive() until the beneficiary activates
        - pooled_balance, total_deposited, total_withdrawn, total_claimed: 0
        - last_claim_at: None until the first claim
    """
    for name, wallet in (('custody', custody), ('depositor', depositor), ('beneficiary', beneficiary)):
        if not wallet or not wallet.strip():
            raise ValueError(f"{name} cannot be empty")
    if depositor == beneficiary:
        raise ValueError("depositor and beneficiary must be different")
    if custody in (depositor, beneficiary):
        raise ValueError("custody must be a wallet of its own")
    if not isinstance(period_length, timedelta) or period_length <= timedelta(0):
        raise ValueError(f"period_length must be a positive timedelta, got {period_length!r}")
    if isinstance(holdback_periods, bool) or not isinstance(holdback_periods, int) or holdback_periods < 0:
        raise ValueError(f"holdback_periods must be a non-negative int, got {holdback_periods!r}")
    if isinstance(period_amount, bool) or not isinstance(period_amount, int) or period_amount <= 0:
        raise ValueError(f"period_amount must be a positive int, got {period_amount!r}")

    return Unit(
        symbol=symbol,
        name=f"Perpetual Vesting: {depositor} -> {beneficiary} ({token})",
        unit_type=UNIT_TYPE_PERP_VESTING,
        _frozen_state=_freeze_state({
            'token': token,
            'custody': custody,
            'depositor': depositor,
            'beneficiary': beneficiary,
            'period_length': period_length,
            'holdback_periods': holdback_periods,
            'period_amount': period_amount,
            'activation': Inactive(),
            'pooled_balance': 0,
            'total_deposited': 0,
            'total_withdrawn': 0,
            'total_claimed': 0,
            'last_claim_at': None,
        }),
    )


# ============================================================================
# ACCRUAL ARITHMETIC
# ============================================================================

def _periods_between(start: datetime, end: datetime, period_length: timedelta) -> int:
    """Whole periods from start to end. The clock must not run behind start."""
    if end < start:
        raise ValueError(f"Time {end} precedes activation at {start}")
    return (end - start) // period_length


def _claimed_periods(state: UnitState, since: datetime) -> int:
    last_claim_at = state['last_claim_at']
    if last_claim_at is None:
        return 0
    return _periods_between(since, last_claim_at, state['period_length'])


def _unclaimed_periods(state: UnitState, since: datetime, now: datetime) -> int:
    """
    Completed periods not paid out yet.

    now may not precede the last claim, so the result is never negative.
    """
    completed = _periods_between(since, now, state['period_length'])
    last_claim_at = state['last_claim_at']
    if last_claim_at is not None and now < last_claim_at:
        raise ValueError(f"Time {now} precedes the last claim at {last_claim_at}")
    return completed - _claimed_periods(state, since)


def compute_claimable(view: LedgerView, symbol: str, now: Optional[datetime] = None) -> int:
    """
    Amount the beneficiary could claim at `now` (default: the ledger's time).

    Entitlement grows with elapsed time alone and is not capped by the
    pooled balance. Before activation nothing has accrued and 0 is returned.
    """
    state = view.get_unit_state(symbol)
    activation = state['activation']
    if not isinstance(activation, Active):
        return 0
    now = view.current_time if now is None else now
    return _unclaimed_periods(state, activation.since, now) * state['period_amount']


def compute_locked_amount(view: LedgerView, symbol: str, now: Optional[datetime] = None) -> int:
    """
    Amount reserved for the beneficiary at `now`.

    Covers the unclaimed completed periods plus holdback_periods ahead of
    them. Periods already claimed have left the pool and are not counted.
    Nothing is reserved before activation.
    """
    state = view.get_unit_state(symbol)
    activation = state['activation']
    if not isinstance(activation, Active):
        return 0
    now = view.current_time if now is None else now
    unclaimed = _unclaimed_periods(state, activation.since, now)
    return (unclaimed + state['holdback_periods']) * state['period_amount']


def compute_withdrawable(view: LedgerView, symbol: str, now: Optional[datetime] = None) -> int:
    """Largest amount the depositor could withdraw at `now`."""
    state = view.get_unit_state(symbol)
    return max(0, state['pooled_balance'] - compute_locked_amount(view, symbol, now))


# ============================================================================
# OPERATIONS (pure builders)
# ============================================================================

def _origin(caller: str, symbol: str, event_type: str) -> TransactionOrigin:
    return TransactionOrigin(OriginType.USER_ACTION, caller, unit_symbol=symbol, event_type=event_type)


def _check_amount(amount: int) -> None:
    if isinstance(amount, bool) or not isinstance(amount, int):
        raise ValueError(f"amount must be int, got {type(amount)}")
    if amount <= 0:
        raise ValueError(f"amount must be positive, got {amount}")


def compute_activate(view: LedgerView, symbol: str, caller: str) -> PendingTransaction:
    """
    Accept the terms: start accrual at the ledger's current time.

    Raises:
        UnauthorizedCaller: If caller is not the beneficiary
        AlreadyActivated: If the agreement is already active
    """
    state = view.get_unit_state(symbol)
    if caller != state['beneficiary']:
        raise UnauthorizedCaller(f"{caller} is not the beneficiary of {symbol}")
    if isinstance(state['activation'], Active):
        raise AlreadyActivated(f"{symbol} already activated at {state['activation'].since}")

    new_state = {**state, 'activation': Active(since=view.current_time)}
    return build_transaction(
        view, [],
        [UnitStateChange(unit=symbol, old_state=state, new_state=new_state)],
        _origin(caller, symbol, "ACTIVATE"),
    )


def compute_deposit(view: LedgerView, symbol: str, caller: str, amount: int) -> PendingTransaction:
    """
    Pull amount from caller into custody and add it to the pool.

    Anyone may deposit; the token's transfer_from needs the caller's
    balance and an allowance for the custody wallet.

    Raises:
        ValueError: If amount is not a positive int
        InsufficientAllowance: If caller approved less than amount for custody
    """
    _check_amount(amount)
    state = view.get_unit_state(symbol)
    custody = state['custody']
    pull = compute_transfer_from(view, state['token'], custody, caller, custody, amount)

    new_state = {
        **state,
        'pooled_balance': state['pooled_balance'] + amount,
        'total_deposited': state['total_deposited'] + amount,
    }
    return combine_transactions(
        view, [pull],
        [UnitStateChange(unit=symbol, old_state=state, new_state=new_state)],
        _origin(caller, symbol, "DEPOSIT"),
    )


def compute_withdraw(view: LedgerView, symbol: str, caller: str, amount: int) -> PendingTransaction:
    """
    Return unreserved funds to the depositor.

    Before activation the whole pool is available. Afterwards only
    pooled_balance - locked_amount is.

    Raises:
        UnauthorizedCaller: If caller is not the depositor
        ValueError: If amount is not a positive int
        InsufficientFunds: Before activation, if amount exceeds the pool
        InsufficientUnlockedFunds: After activation, if amount exceeds what is unlocked
    """
    state = view.get_unit_state(symbol)
    if caller != state['depositor']:
        raise UnauthorizedCaller(f"{caller} is not the depositor of {symbol}")
    _check_amount(amount)

    pooled = state['pooled_balance']
    if isinstance(state['activation'], Active):
        available = compute_withdrawable(view, symbol)
        if amount > available:
            raise InsufficientUnlockedFunds(
                f"Insufficient unlocked funds available: requested {amount}, "
                f"unlocked {available} of {pooled} pooled"
            )
    elif amount > pooled:
        raise InsufficientFunds(f"Requested {amount}, only {pooled} pooled in {symbol}")

    payout = compute_transfer(view, state['token'], state['custody'], state['depositor'], amount)
    new_state = {
        **state,
        'pooled_balance': pooled - amount,
        'total_withdrawn': state['total_withdrawn'] + amount,
    }
    return combine_transactions(
        view, [payout],
        [UnitStateChange(unit=symbol, old_state=state, new_state=new_state)],
        _origin(caller, symbol, "WITHDRAW"),
    )


def compute_claim(view: LedgerView, symbol: str, caller: str) -> PendingTransaction:
    """
    Pay every unclaimed completed period to the beneficiary in one transfer.

    last_claim_at becomes the current time, not the last period boundary;
    the claimed-period count floors it back to a boundary anyway.

    Raises:
        UnauthorizedCaller: If caller is not the beneficiary
        NotActivated: If the agreement was never activated
        NothingToClaim: If no full period elapsed since the last claim
        LedgerTransferFailure: If the pool cannot cover the entitlement
    """
    state = view.get_unit_state(symbol)
    if caller != state['beneficiary']:
        raise UnauthorizedCaller(f"{caller} is not the beneficiary of {symbol}")
    if not isinstance(state['activation'], Active):
        raise NotActivated(f"{symbol} not activated yet")

    amount = compute_claimable(view, symbol)
    if amount == 0:
        raise NothingToClaim(f"Nothing to claim from {symbol}")
    if amount > state['pooled_balance']:
        raise LedgerTransferFailure(
            f"{symbol} is underfunded: claim of {amount} exceeds pooled {state['pooled_balance']}"
        )

    payout = compute_transfer(view, state['token'], state['custody'], state['beneficiary'], amount)
    new_state = {
        **state,
        'last_claim_at': view.current_time,
        'total_claimed': state['total_claimed'] + amount,
        'pooled_balance': state['pooled_balance'] - amount,
    }
    return combine_transactions(
        view, [payout],
        [UnitStateChange(unit=symbol, old_state=state, new_state=new_state)],
        _origin(caller, symbol, "CLAIM"),
    )


def verify_accrual_invariants(view: LedgerView, symbol: str) -> Dict[str, Any]:
    """
    Check the bookkeeping identities of an agreement.

    Returns:
        Dict with keys:
        - 'valid': bool - True if no violation was found
        - 'violations': List[str] - description of each violation
    """
    state = view.get_unit_state(symbol)
    violations: List[str] = []

    pooled = state['pooled_balance']
    expected = state['total_deposited'] - state['total_withdrawn'] - state['total_claimed']
    if pooled != expected:
        violations.append(f"pooled_balance {pooled} != deposited - withdrawn - claimed ({expected})")
    if pooled < 0:
        violations.append(f"pooled_balance {pooled} is negative")

    activation = state['activation']
    last_claim_at = state['last_claim_at']
    if last_claim_at is not None:
        if not isinstance(activation, Active):
            violations.append("claim recorded on an inactive agreement")
        elif last_claim_at < activation.since:
            violations.append(f"last_claim_at {last_claim_at} precedes activation {activation.since}")

    custody_balance = view.get_balance(state['custody'], state['token'])
    if custody_balance < pooled:
        violations.append(f"custody holds {custody_balance}, less than pooled {pooled}")

    return {'valid': not violations, 'violations': violations}


# ============================================================================
# STATEFUL FACADE
# ============================================================================

class PerpVesting:
    """
    A vesting agreement bound to a ledger.

    The creating wallet becomes the depositor. Each operation builds its
    transaction with the pure functions above, executes it, and on success
    records and publishes exactly one event. Any failure raises and leaves
    the ledger untouched.
    """

    def __init__(
        self,
        ledger: Ledger,
        token: str,
        creator: str,
        beneficiary: str,
        period_length: timedelta,
        holdback_periods: int,
        period_amount: int,
        symbol: Optional[str] = None,
        custody: Optional[str] = None,
    ):
        """
        Create and register an agreement.

        Args:
            ledger: Ledger holding the token and the agreement
            token: Symbol of an already registered token unit
            creator: Wallet creating the agreement; becomes the depositor
            beneficiary: Wallet receiving the vested funds
            period_length: Duration of one period
            holdback_periods: Periods always reserved for the beneficiary
            period_amount: Base units unlocked per period
            symbol: Agreement unit symbol (default: PV_{creator}_{beneficiary})
            custody: Custody wallet (default: the agreement symbol)
        """
        ledger.get_unit(token)
        self.ledger = ledger
        self.symbol = symbol or f"PV_{creator}_{beneficiary}"
        custody = custody or self.symbol
        unit = create_perp_vesting_unit(
            self.symbol, token, custody, creator, beneficiary,
            period_length, holdback_periods, period_amount,
        )
        ledger.register_unit(unit)
        if not ledger.is_registered(custody):
            ledger.register_wallet(custody)

        self.events: List[VestingEvent] = []
        self._handlers: List[EventHandler] = []

    # ------------------------------------------------------------------------
    # Accessors
    # ------------------------------------------------------------------------

    def _state(self) -> UnitState:
        return self.ledger.get_unit_state(self.symbol)

    @property
    def token(self) -> str:
        return self._state()['token']

    @property
    def custody(self) -> str:
        return self._state()['custody']

    @property
    def depositor(self) -> str:
        return self._state()['depositor']

    @property
    def beneficiary(self) -> str:
        return self._state()['beneficiary']

    @property
    def period_length(self) -> timedelta:
        return self._state()['period_length']

    @property
    def holdback_periods(self) -> int:
        return self._state()['holdback_periods']

    @property
    def period_amount(self) -> int:
        return self._state()['period_amount']

    @property
    def pooled_balance(self) -> int:
        return self._state()['pooled_balance']

    @property
    def total_deposited(self) -> int:
        return self._state()['total_deposited']

    @property
    def total_withdrawn(self) -> int:
        return self._state()['total_withdrawn']

    @property
    def total_claimed(self) -> int:
        return self._state()['total_claimed']

    @property
    def activation(self) -> Activation:
        return self._state()['activation']

    @property
    def activated_at(self) -> Optional[datetime]:
        """Activation time, or None while inactive."""
        activation = self.activation
        return activation.since if isinstance(activation, Active) else None

    @property
    def last_claim_at(self) -> Optional[datetime]:
        return self._state()['last_claim_at']

    def claimable(self) -> int:
        return compute_claimable(self.ledger, self.symbol)

    def locked_amount(self) -> int:
        return compute_locked_amount(self.ledger, self.symbol)

    def withdrawable_amount(self) -> int:
        return compute_withdrawable(self.ledger, self.symbol)

    def verify_accrual_invariants(self) -> Dict[str, Any]:
        return verify_accrual_invariants(self.ledger, self.symbol)

    # ------------------------------------------------------------------------
    # Events
    # ------------------------------------------------------------------------

    def subscribe(self, handler: EventHandler) -> None:
        """
        Call handler with every event emitted from now on.

        Handlers run after the operation is committed. If any of them raise,
        the rest still run and the operation raises EventDeliveryError.
        """
        self._handlers.append(handler)

    def _emit(self, event: VestingEvent) -> None:
        self.events.append(event)
        if self.ledger.verbose:
            print(f"📣 {self.symbol}: {event}")
        errors = []
        for handler in self._handlers:
            try:
                handler(event)
            except Exception as e:
                errors.append(e)
        if errors:
            raise EventDeliveryError(event, errors)

    def _apply(self, pending: PendingTransaction, what: str) -> None:
        require_applied(self.ledger.execute(pending), f"{what} on {self.symbol}")

    # ------------------------------------------------------------------------
    # Operations
    # ------------------------------------------------------------------------

    def activate(self, caller: str) -> None:
        """Beneficiary accepts the terms; see compute_activate()."""
        self._apply(compute_activate(self.ledger, self.symbol, caller), "activation")
        self._emit(Activated(beneficiary=caller, timestamp=self.ledger.current_time))

    def deposit(self, caller: str, amount: int) -> None:
        """Fund the pool from caller's balance; see compute_deposit()."""
        self._apply(compute_deposit(self.ledger, self.symbol, caller, amount), f"deposit of {amount}")
        self._emit(Deposited(caller=caller, amount=amount, timestamp=self.ledger.current_time))

    def withdraw(self, caller: str, amount: int) -> int:
        """Return unreserved funds to the depositor; see compute_withdraw()."""
        self._apply(compute_withdraw(self.ledger, self.symbol, caller, amount), f"withdrawal of {amount}")
        self._emit(Withdrawn(caller=caller, amount=amount, timestamp=self.ledger.current_time))
        return amount

    def claim(self, caller: str) -> int:
        """Pay all accrued periods to the beneficiary; see compute_claim()."""
        pending = compute_claim(self.ledger, self.symbol, caller)
        amount = sum(m.quantity for m in pending.moves)
        self._apply(pending, f"claim of {amount}")
        self._emit(Claimed(beneficiary=caller, amount=amount, timestamp=self.ledger.current_time))
        return amount
