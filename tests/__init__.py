"""
Test Suite

Unit tests for the whale tracker. Every test runs offline: REST calls are
mocked and sockets are replaced by in-memory fake transports.

Structure:
- tests/conftest.py: Shared fixtures (make_trade, test_settings)
- tests/unit/: Tests for individual components and the API surface

Uses pytest with pytest-asyncio for testing async functionality.
"""
