"""
Unit Tests for the Deduplicator

Run with:
    pytest tests/unit/test_dedup.py -v
"""

import pytest

from engine.dedup import Deduplicator


class TestDeduplicator:

    def test_same_id_twice(self):
        dedup = Deduplicator()
        assert dedup.admit("binance", "binance:1") is True
        assert dedup.admit("binance", "binance:1") is False

    def test_exchanges_are_independent(self):
        dedup = Deduplicator()
        assert dedup.admit("binance", "1")
        assert dedup.admit("bybit", "1")
        assert dedup.size("binance") == 1
        assert dedup.size("bybit") == 1

    def test_size_never_exceeds_cap(self):
        dedup = Deduplicator(cap=500)
        for i in range(501):
            dedup.admit("okx", f"okx:{i}")
        assert dedup.size("okx") == 500

    def test_oldest_evicted_first(self):
        dedup = Deduplicator(cap=3)
        for i in range(4):
            dedup.admit("okx", str(i))
        # "0" fell out of the window, "3" is still remembered
        assert dedup.admit("okx", "3") is False
        assert dedup.admit("okx", "0") is True

    def test_clear(self):
        dedup = Deduplicator()
        dedup.admit("okx", "1")
        dedup.clear()
        assert dedup.size("okx") == 0
        assert dedup.admit("okx", "1") is True

    def test_cap_must_be_positive(self):
        with pytest.raises(ValueError):
            Deduplicator(cap=0)
