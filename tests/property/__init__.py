# tests/property/__init__.py
"""Property-based tests for faultline.

Property-based testing validates invariants that must hold for ALL request
sequences, not just the specific examples we think of.

Test categories:
- chaos/: Trigger algebra, latch monotonicity, Repeat cycle state machine
"""
