"""
token.py - Fungible Token Unit and Value Ledger Facade

This module provides the fungible token the vesting engine moves around:
1. create_token_unit() - Factory for a token unit (allowances live in its state)
2. compute_mint() / compute_transfer() / compute_transfer_from() / compute_approve()
   - Pure builders returning a PendingTransaction
3. balance_of() / allowance() - Read-only queries against a LedgerView
4. TokenLedger - Stateful facade implementing the ValueLedger protocol

Allowances are stored in the token unit's state as
{'allowances': {owner: {spender: amount}}}, so spending an allowance is a
UnitStateChange that executes atomically with the move it authorizes.

Pattern:
    Approve:
        state['allowances'][owner][spender] = amount
    Transfer from payer, by spender:
        Move(source=payer, dest=recipient, unit=TOKEN, quantity=amount)
        state['allowances'][payer][spender] -= amount

All builder functions take LedgerView (read-only) and return immutable results.
"""

from __future__ import annotations
from typing import Dict

from .core import (
    LedgerView, Move, PendingTransaction, Unit, UnitStateChange,
    ExecuteResult, TransactionOrigin, OriginType,
    LedgerTransferFailure, InsufficientAllowance,
    SYSTEM_WALLET, UNIT_TYPE_TOKEN, DEFAULT_TOKEN_DECIMALS,
    build_transaction, _freeze_state,
)
from .ledger import Ledger


def create_token_unit(
    symbol: str,
    name: str,
    decimals: int = DEFAULT_TOKEN_DECIMALS,
) -> Unit:
    """
    Create a fungible token unit.

    Balances can never go negative outside the system wallet, which is the
    counterparty of every mint.

    Args:
        symbol: Token symbol (e.g., "VEST")
        name: Human-readable name
        decimals: Base-unit digits per whole token (default 18)

    Returns:
        Unit with min_balance 0 and an empty allowance table in its state.
    """
    if not symbol or not symbol.strip():
        raise ValueError("symbol cannot be empty")
    if decimals < 0:
        raise ValueError(f"decimals must be non-negative, got {decimals}")

    return Unit(
        symbol=symbol,
        name=name,
        unit_type=UNIT_TYPE_TOKEN,
        min_balance=0,
        decimals=decimals,
        _frozen_state=_freeze_state({'allowances': {}}),
    )


def _check_amount(amount: int) -> None:
    if isinstance(amount, bool) or not isinstance(amount, int):
        raise ValueError(f"amount must be int, got {type(amount)}")
    if amount <= 0:
        raise ValueError(f"amount must be positive, got {amount}")


def balance_of(view: LedgerView, symbol: str, holder: str) -> int:
    """Token balance of holder (0 for a wallet holding none)."""
    return view.get_balance(holder, symbol)


def allowance(view: LedgerView, symbol: str, owner: str, spender: str) -> int:
    """Amount spender may still move out of owner's balance."""
    state = view.get_unit_state(symbol)
    return state.get('allowances', {}).get(owner, {}).get(spender, 0)


def compute_mint(view: LedgerView, symbol: str, to: str, amount: int) -> PendingTransaction:
    """Issue new tokens to a wallet, booked against the system wallet."""
    _check_amount(amount)
    move = Move(amount, symbol, SYSTEM_WALLET, to, f'mint_{symbol}')
    origin = TransactionOrigin(OriginType.SYSTEM, "mint", unit_symbol=symbol, event_type="MINT")
    return build_transaction(view, [move], origin=origin)


def compute_transfer(
    view: LedgerView,
    symbol: str,
    sender: str,
    recipient: str,
    amount: int,
) -> PendingTransaction:
    """
    Move tokens out of the sender's own balance.

    The balance itself is checked by Ledger.execute(); an overdraft is
    rejected there, together with anything else in the same transaction.
    """
    _check_amount(amount)
    move = Move(amount, symbol, sender, recipient, f'transfer_{symbol}')
    origin = TransactionOrigin(OriginType.USER_ACTION, sender, unit_symbol=symbol, event_type="TRANSFER")
    return build_transaction(view, [move], origin=origin)


def compute_transfer_from(
    view: LedgerView,
    symbol: str,
    spender: str,
    payer: str,
    recipient: str,
    amount: int,
) -> PendingTransaction:
    """
    Move tokens out of payer's balance on behalf of spender.

    Returns:
        PendingTransaction containing:
        - Move payer -> recipient
        - State change lowering the payer's allowance for the spender

    Raises:
        InsufficientAllowance: If payer approved less than amount for spender
    """
    _check_amount(amount)
    state = view.get_unit_state(symbol)
    allowances = state.get('allowances', {})
    approved = allowances.get(payer, {}).get(spender, 0)
    if approved < amount:
        raise InsufficientAllowance(
            f"{spender} may move {approved} {symbol} from {payer}, requested {amount}"
        )

    new_allowances = {owner: dict(spenders) for owner, spenders in allowances.items()}
    new_allowances[payer][spender] = approved - amount
    new_state = {**state, 'allowances': new_allowances}

    move = Move(amount, symbol, payer, recipient, f'transfer_from_{symbol}')
    origin = TransactionOrigin(OriginType.USER_ACTION, spender, unit_symbol=symbol, event_type="TRANSFER_FROM")
    return build_transaction(
        view, [move],
        [UnitStateChange(unit=symbol, old_state=state, new_state=new_state)],
        origin,
    )


def compute_approve(
    view: LedgerView,
    symbol: str,
    owner: str,
    spender: str,
    amount: int,
) -> PendingTransaction:
    """Set (not add to) the amount spender may move out of owner's balance."""
    if isinstance(amount, bool) or not isinstance(amount, int) or amount < 0:
        raise ValueError(f"allowance must be a non-negative int, got {amount!r}")
    if owner == spender:
        raise ValueError("owner and spender must be different")

    state = view.get_unit_state(symbol)
    new_allowances = {o: dict(s) for o, s in state.get('allowances', {}).items()}
    new_allowances.setdefault(owner, {})[spender] = amount
    new_state = {**state, 'allowances': new_allowances}

    origin = TransactionOrigin(OriginType.USER_ACTION, owner, unit_symbol=symbol, event_type="APPROVE")
    return build_transaction(
        view, [],
        [UnitStateChange(unit=symbol, old_state=state, new_state=new_state)],
        origin,
    )


class TokenLedger:
    """
    ValueLedger facade over a Ledger for a single token.

    transfer() and transfer_from() return ExecuteResult rather than raising
    on a rejected transfer, so callers can branch on success or failure.

    Example:
        token = TokenLedger(ledger, "VEST")
        token.mint("alice", 1000)
        token.approve("alice", "vesting", 1000)
        token.transfer_from("vesting", "alice", "vesting", 10)
    """

    def __init__(self, ledger: Ledger, symbol: str):
        self.ledger = ledger
        self.symbol = symbol
        ledger.get_unit(symbol)  # fail fast on an unregistered token

    def _submit(self, pending: PendingTransaction) -> ExecuteResult:
        return self.ledger.execute(pending)

    def mint(self, to: str, amount: int) -> ExecuteResult:
        return self._submit(compute_mint(self.ledger, self.symbol, to, amount))

    def approve(self, owner: str, spender: str, amount: int) -> ExecuteResult:
        return self._submit(compute_approve(self.ledger, self.symbol, owner, spender, amount))

    def transfer(self, sender: str, recipient: str, amount: int) -> ExecuteResult:
        return self._submit(compute_transfer(self.ledger, self.symbol, sender, recipient, amount))

    def transfer_from(self, spender: str, payer: str, recipient: str, amount: int) -> ExecuteResult:
        try:
            pending = compute_transfer_from(self.ledger, self.symbol, spender, payer, recipient, amount)
        except InsufficientAllowance as e:
            if self.ledger.verbose:
                print(f"✗ REJECTED: {e}")
            return ExecuteResult.REJECTED
        return self._submit(pending)

    def balance_of(self, holder: str) -> int:
        return balance_of(self.ledger, self.symbol, holder)

    def allowance(self, owner: str, spender: str) -> int:
        return allowance(self.ledger, self.symbol, owner, spender)

    def balances(self) -> Dict[str, int]:
        """Non-zero balances of every wallet except the system wallet."""
        positions = self.ledger.get_positions(self.symbol)
        positions.pop(SYSTEM_WALLET, None)
        return positions


def require_applied(result: ExecuteResult, what: str) -> None:
    """Raise LedgerTransferFailure unless the ledger applied the transaction."""
    if result != ExecuteResult.APPLIED:
        raise LedgerTransferFailure(f"Ledger rejected {what}")
