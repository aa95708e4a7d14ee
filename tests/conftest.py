"""
conftest.py - Shared pytest fixtures for vesting tests

Provides common fixtures used across unit, functional and conformance tests:
- Basic ledgers (empty, with a token, funded)
- A deployed vesting agreement with the depositor's allowance in place
"""

import pytest

from vesting import Ledger, TokenLedger, create_token_unit

from tests.deployment import ETHER, START, deploy


# =============================================================================
# BASIC FIXTURES
# =============================================================================

@pytest.fixture
def empty_ledger():
    """Fresh ledger with no registrations."""
    return Ledger("test", START, verbose=False, test_mode=True)


@pytest.fixture
def token_ledger():
    """Ledger with the VEST token and two wallets."""
    ledger = Ledger("test", START, verbose=False, test_mode=True)
    ledger.register_unit(create_token_unit("VEST", "Vesting Token"))
    ledger.register_wallet("alice")
    ledger.register_wallet("bob")
    return ledger


@pytest.fixture
def funded_ledger(token_ledger):
    """Token ledger with 1000 VEST minted to alice."""
    TokenLedger(token_ledger, "VEST").mint("alice", 1000 * ETHER)
    return token_ledger


# =============================================================================
# VESTING FIXTURES
# =============================================================================

@pytest.fixture
def deployment():
    """
    Agreement with one-week periods, a two-period holdback and one token
    per period. The owner holds 1000 tokens and approved all of them.
    """
    return deploy()
