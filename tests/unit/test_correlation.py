"""
Unit Tests for the Correlation Detector

Run with:
    pytest tests/unit/test_correlation.py -v
"""

import pytest

from core.schemas import Side
from engine.correlation import CorrelationDetector

BASE_TS = 1704110400000


@pytest.fixture
def detector():
    return CorrelationDetector(span_ms=3000, price_tolerance=0.0015)


class TestCorrelationMatching:

    def test_cross_exchange_match(self, detector, make_trade):
        first = make_trade(exchange="binance", price=50000.0)
        second = make_trade(exchange="bybit", price=50040.0, timestamp_ms=BASE_TS + 1000)
        assert detector.check_and_record(first) is None
        partner = detector.check_and_record(second)
        assert partner is first
        assert partner.exchange == "binance"

    def test_price_too_far(self, detector, make_trade):
        detector.check_and_record(make_trade(exchange="binance", price=50000.0))
        far = make_trade(exchange="bybit", price=50500.0, timestamp_ms=BASE_TS + 1000)
        assert detector.check_and_record(far) is None

    def test_same_exchange_never_matches(self, detector, make_trade):
        detector.check_and_record(make_trade(exchange="okx"))
        assert detector.check_and_record(make_trade(exchange="okx", timestamp_ms=BASE_TS + 10)) is None

    def test_opposite_side(self, detector, make_trade):
        detector.check_and_record(make_trade(exchange="binance", side=Side.BUY))
        assert detector.check_and_record(make_trade(exchange="okx", side=Side.SELL)) is None

    def test_different_coin(self, detector, make_trade):
        detector.check_and_record(make_trade(exchange="binance", symbol="ETHUSDT", price=3000.0))
        assert detector.check_and_record(make_trade(exchange="okx", symbol="SOLUSDT", price=3000.0)) is None

    def test_first_match_wins(self, detector, make_trade):
        a = make_trade(exchange="binance")
        b = make_trade(exchange="coinbase", timestamp_ms=BASE_TS + 5)
        detector.check_and_record(a)
        detector.check_and_record(b)
        assert detector.check_and_record(make_trade(exchange="okx", timestamp_ms=BASE_TS + 10)) is a


class TestCorrelationWindow:

    def test_outside_span_pruned(self, detector, make_trade):
        detector.check_and_record(make_trade(exchange="binance"))
        late = make_trade(exchange="bybit", timestamp_ms=BASE_TS + 3500)
        assert detector.check_and_record(late) is None
        assert len(detector) == 1

    def test_late_delivery_still_matches(self, detector, make_trade):
        # Anchored to trade time: an older trade delivered second still pairs
        detector.check_and_record(make_trade(exchange="binance", timestamp_ms=BASE_TS + 10_000))
        delayed = make_trade(exchange="bybit", timestamp_ms=BASE_TS + 8_000)
        assert detector.check_and_record(delayed) is not None

    def test_replace(self, detector, make_trade):
        trade = make_trade(exchange="binance")
        detector.check_and_record(trade)
        detector.replace(trade.model_copy(update={"correlated_with": "okx"}))
        partner = detector.check_and_record(make_trade(exchange="bybit"))
        assert partner.correlated_with == "okx"

    def test_clear(self, detector, make_trade):
        detector.check_and_record(make_trade(exchange="binance"))
        detector.clear()
        assert len(detector) == 0
        assert detector.check_and_record(make_trade(exchange="bybit")) is None
