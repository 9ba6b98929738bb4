"""
Test suite for loadcheck.

This package contains:
- unit/: component tests with no network access
- integration/: full runs against a live local Flask service
"""
