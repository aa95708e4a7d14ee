"""
vesting - Perpetual Vesting Agreements on an Integer Token Ledger

A depositor funds an agreement; once the beneficiary activates it, a fixed
amount unlocks per elapsed period, while a rolling holdback of periods stays
reserved for the beneficiary.

Usage:
    from datetime import datetime, timedelta
    from vesting import Ledger, PerpVesting, TokenLedger, create_token_unit

    ledger = Ledger("main", initial_time=datetime(2024, 1, 1), verbose=False)
    ledger.register_unit(create_token_unit("VEST", "Vesting Token"))
    ledger.register_wallet("alice")
    ledger.register_wallet("bob")

    token = TokenLedger(ledger, "VEST")
    token.mint("alice", 10 * 10**18)

    vesting = PerpVesting(
        ledger, "VEST", creator="alice", beneficiary="bob",
        period_length=timedelta(weeks=1), holdback_periods=2, period_amount=10**18,
    )
    token.approve("alice", vesting.custody, 10 * 10**18)
    vesting.deposit("alice", 10 * 10**18)
    vesting.activate("bob")

    ledger.advance_time(datetime(2024, 1, 8))
    vesting.claim("bob")          # one period_amount
"""

# Core types
from .core import (
    LedgerView,
    ValueLedger,
    Move,
    Transaction,
    PendingTransaction,
    TransactionOrigin,
    OriginType,
    build_transaction,
    combine_transactions,
    Unit,
    UnitStateChange,
    ExecuteResult,
    LedgerError,
    InsufficientFunds,
    UnitNotRegistered,
    WalletNotRegistered,
    LedgerTransferFailure,
    InsufficientAllowance,
    VestingError,
    UnauthorizedCaller,
    AlreadyActivated,
    NotActivated,
    InsufficientUnlockedFunds,
    NothingToClaim,
    EventDeliveryError,
    SYSTEM_WALLET,
    UNIT_TYPE_TOKEN,
    UNIT_TYPE_PERP_VESTING,
)

# Ledger
from .ledger import Ledger

# Token
from .token import (
    create_token_unit,
    compute_mint,
    compute_transfer,
    compute_transfer_from,
    compute_approve,
    balance_of,
    allowance,
    TokenLedger,
)

# Events
from .events import (
    Activated,
    Deposited,
    Withdrawn,
    Claimed,
    VestingEvent,
)

# Perpetual vesting
from .perp_vesting import (
    Inactive,
    Active,
    Activation,
    create_perp_vesting_unit,
    compute_claimable,
    compute_locked_amount,
    compute_withdrawable,
    compute_activate,
    compute_deposit,
    compute_withdraw,
    compute_claim,
    verify_accrual_invariants,
    PerpVesting,
)


__all__ = [
    # Core
    'LedgerView', 'ValueLedger', 'Move', 'Transaction', 'PendingTransaction',
    'TransactionOrigin', 'OriginType',
    'build_transaction', 'combine_transactions',
    'Unit', 'UnitStateChange', 'ExecuteResult',
    'LedgerError', 'InsufficientFunds', 'UnitNotRegistered', 'WalletNotRegistered',
    'LedgerTransferFailure', 'InsufficientAllowance',
    'VestingError', 'UnauthorizedCaller', 'AlreadyActivated', 'NotActivated',
    'InsufficientUnlockedFunds', 'NothingToClaim', 'EventDeliveryError',
    'SYSTEM_WALLET', 'UNIT_TYPE_TOKEN', 'UNIT_TYPE_PERP_VESTING',
    # Ledger
    'Ledger',
    # Token
    'create_token_unit', 'compute_mint', 'compute_transfer', 'compute_transfer_from',
    'compute_approve', 'balance_of', 'allowance', 'TokenLedger',
    # Events
    'Activated', 'Deposited', 'Withdrawn', 'Claimed', 'VestingEvent',
    # Perpetual vesting
    'Inactive', 'Active', 'Activation', 'create_perp_vesting_unit',
    'compute_claimable', 'compute_locked_amount', 'compute_withdrawable',
    'compute_activate', 'compute_deposit', 'compute_withdraw', 'compute_claim',
    'verify_accrual_invariants', 'PerpVesting',
]

__version__ = '1.0.0'
