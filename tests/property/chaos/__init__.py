# tests/property/chaos/__init__.py
"""Property tests for chaos stage invariants.

These tests verify that trigger combinators obey boolean laws and that
bounded and repeating stages hand over exactly where their boundaries say,
for any sequence of requests.
"""
