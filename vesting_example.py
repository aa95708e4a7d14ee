"""
vesting_example.py - Perpetual Vesting Tutorial

This tutorial walks one vesting agreement through its life on the ledger:
funding, activation, weekly claims, a depositor pulling back unreserved
funds, and an audit of a past state.

THE ACCRUAL RULE:
=================

Once the beneficiary activates the agreement, one period_amount unlocks per
completed period_length. The depositor can always take back what is not
reserved, and the reservation always reaches holdback_periods past the
current period:

    completed = (now - activated_at) // period_length
    claimed   = (last_claim_at - activated_at) // period_length
    claimable = (completed - claimed) * period_amount
    locked    = (completed + holdback_periods - claimed) * period_amount

SCENARIO: Contributor Stipend
=============================

The Lantern Foundation pays a contributor 1 LNT per week, keeping two
weeks of stipend permanently reserved so the contributor is never left
with less than two weeks of notice. The foundation funds the agreement
with 10 LNT up front.

Run:
    python vesting_example.py
"""

from datetime import datetime, timedelta
from typing import Tuple

from vesting import (
    Ledger, PerpVesting, TokenLedger,
    create_token_unit,
    compute_claimable, compute_locked_amount,
    InsufficientUnlockedFunds, NothingToClaim,
)


ONE = 10 ** 18
WEEK = timedelta(weeks=1)


def fmt(ledger: Ledger, amount: int) -> str:
    return f"{ledger.get_unit('LNT').format_amount(amount)} LNT"


# =============================================================================
# SCENARIO SETUP
# =============================================================================

def create_agreement(verbose: bool = False) -> Tuple[Ledger, TokenLedger, PerpVesting]:
    """
    Create the ledger, mint the foundation's treasury and deploy the agreement.

    Returns:
        ledger: The ledger holding token balances and the agreement state
        token: Facade over the LNT token
        stipend: The vesting agreement foundation -> contributor
    """
    ledger = Ledger("lantern", initial_time=datetime(2025, 1, 6, 9, 0), verbose=verbose)
    ledger.register_unit(create_token_unit("LNT", "Lantern Token"))
    ledger.register_wallet("foundation")
    ledger.register_wallet("contributor")

    token = TokenLedger(ledger, "LNT")
    token.mint("foundation", 100 * ONE)

    stipend = PerpVesting(
        ledger, "LNT",
        creator="foundation",
        beneficiary="contributor",
        period_length=WEEK,
        holdback_periods=2,
        period_amount=ONE,
        symbol="STIPEND",
    )
    token.approve("foundation", stipend.custody, 10 * ONE)
    stipend.deposit("foundation", 10 * ONE)
    return ledger, token, stipend


# =============================================================================
# STEP 1: ACTIVATION
# =============================================================================

def demonstrate_activation(ledger: Ledger, stipend: PerpVesting):
    print("=" * 70)
    print("STEP 1: ACTIVATION")
    print("=" * 70)

    print(f"\n    Before activation the foundation could withdraw all {fmt(ledger, stipend.withdrawable_amount())}")

    stipend.activate("contributor")
    print(f"    Contributor activated at {stipend.activated_at}")
    print(f"    Locked now     : {fmt(ledger, stipend.locked_amount())} (the two-week holdback)")
    print(f"    Withdrawable   : {fmt(ledger, stipend.withdrawable_amount())}")

    try:
        stipend.withdraw("foundation", 10 * ONE)
    except InsufficientUnlockedFunds as e:
        print(f"    Full withdrawal refused: {e}")


# =============================================================================
# STEP 2: CLAIMS
# =============================================================================

def demonstrate_claims(ledger: Ledger, token: TokenLedger, stipend: PerpVesting) -> datetime:
    print("\n" + "=" * 70)
    print("STEP 2: WEEKLY CLAIMS")
    print("=" * 70)

    ledger.advance_time(ledger.current_time + WEEK + timedelta(hours=2))
    print(f"\n    {ledger.current_time}: claimable {fmt(ledger, stipend.claimable())}")
    stipend.claim("contributor")

    try:
        stipend.claim("contributor")
    except NothingToClaim:
        print("    Immediate second claim: nothing to claim")

    checkpoint = ledger.current_time

    # Contributor goes on holiday and claims three weeks at once
    ledger.advance_time(ledger.current_time + 3 * WEEK)
    print(f"    {ledger.current_time}: claimable {fmt(ledger, stipend.claimable())}")
    paid = stipend.claim("contributor")
    print(f"    One claim paid {fmt(ledger, paid)}; last_claim_at = {stipend.last_claim_at}")
    print(f"    Contributor balance: {fmt(ledger, token.balance_of('contributor'))}")
    return checkpoint


# =============================================================================
# STEP 3: DEPOSITOR WITHDRAWAL
# =============================================================================

def demonstrate_withdrawal(ledger: Ledger, stipend: PerpVesting):
    print("\n" + "=" * 70)
    print("STEP 3: FOUNDATION WITHDRAWS UNRESERVED FUNDS")
    print("=" * 70)

    available = stipend.withdrawable_amount()
    print(f"\n    Pooled {fmt(ledger, stipend.pooled_balance)}, "
          f"locked {fmt(ledger, stipend.locked_amount())}, "
          f"withdrawable {fmt(ledger, available)}")
    if available:
        stipend.withdraw("foundation", available)
    print(f"    After withdrawal the pool holds exactly the holdback: {fmt(ledger, stipend.pooled_balance)}")


# =============================================================================
# STEP 4: AUDIT
# =============================================================================

def demonstrate_audit(ledger: Ledger, stipend: PerpVesting, checkpoint: datetime) -> bool:
    print("\n" + "=" * 70)
    print("STEP 4: AUDIT OF A PAST STATE (clone_at)")
    print("=" * 70)

    past = ledger.clone_at(checkpoint)
    state = past.get_unit_state(stipend.symbol)
    print(f"\n    At {checkpoint}:")
    print(f"      pooled_balance : {fmt(ledger, state['pooled_balance'])}")
    print(f"      total_claimed  : {fmt(ledger, state['total_claimed'])}")
    print(f"      claimable      : {fmt(ledger, compute_claimable(past, stipend.symbol))}")
    print(f"      locked         : {fmt(ledger, compute_locked_amount(past, stipend.symbol))}")

    report = stipend.verify_accrual_invariants()
    double_entry = ledger.verify_double_entry()
    print(f"\n    Accrual invariants hold : {report['valid']}")
    print(f"    Double entry holds      : {double_entry['valid']}")
    print(f"    Events emitted          : {[type(e).__name__ for e in stipend.events]}")
    return report['valid'] and double_entry['valid']


def main() -> bool:
    print("=" * 70)
    print("    PERPETUAL VESTING TUTORIAL")
    print("=" * 70)

    ledger, token, stipend = create_agreement()
    demonstrate_activation(ledger, stipend)
    checkpoint = demonstrate_claims(ledger, token, stipend)
    demonstrate_withdrawal(ledger, stipend)
    return demonstrate_audit(ledger, stipend, checkpoint)


if __name__ == "__main__":
    success = main()
    exit(0 if success else 1)
