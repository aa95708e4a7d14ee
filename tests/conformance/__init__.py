"""
Conformance Test Suite

This suite defines the NORMATIVE behavior of vesting agreements on the ledger.
Any compliant implementation MUST pass these tests.

The tests are organized by invariant:
1. conservation.py - Pool identity and double-entry accounting
2. atomicity.py - All-or-nothing operation semantics
3. temporal.py - Period accrual, monotonic counters, historical reconstruction

These tests use hypothesis for property-based testing.
"""
