"""
Conformance Test Suite

Property-based tests for the behavior every ledger build must keep:
1. test_decision_idempotency.py - Admin decisions apply at most once
2. test_ledger_properties.py - Trade arithmetic, clamping and valuation

These tests use hypothesis for property-based testing.
"""
