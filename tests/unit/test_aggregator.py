"""
Unit Tests for the Aggregator

Run with:
    pytest tests/unit/test_aggregator.py -v
"""

import pytest

from core.schemas import Side
from engine.aggregator import Aggregator


class TestAddBatch:

    def test_single_tick_totals(self, make_trade):
        agg = Aggregator(window_size=100)
        snap = agg.add_batch([
            make_trade(side=Side.BUY, price=1.0, quantity=100.0),
            make_trade(side=Side.SELL, price=1.0, quantity=40.0),
            make_trade(side=Side.BUY, price=1.0, quantity=10.0),
        ])
        assert snap.totals.buy_volume == 110.0
        assert snap.totals.sell_volume == 40.0
        assert snap.totals.count == 3
        assert snap.totals.net_flow == 70.0
        assert snap.window_size == 3

    def test_newest_first(self, make_trade):
        agg = Aggregator()
        first, second = make_trade(), make_trade()
        agg.add_batch([first])
        agg.add_batch([second])
        assert [t.id for t in agg.trades()] == [second.id, first.id]

    def test_overflow_evicts_oldest(self, make_trade):
        agg = Aggregator(window_size=3)
        oldest = make_trade(price=1.0, quantity=1000.0)
        agg.add_batch([oldest])
        agg.add_batch([make_trade(price=1.0, quantity=1.0) for _ in range(2)])
        assert agg.snapshot().totals.buy_volume == 1002.0

        snap = agg.add_batch([make_trade(price=1.0, quantity=5.0)])
        assert snap.totals.count == 3
        assert snap.totals.buy_volume == 7.0
        assert oldest.id not in {t.id for t in agg.trades()}

    def test_buckets(self, make_trade):
        agg = Aggregator()
        snap = agg.add_batch([
            make_trade(exchange="binance", symbol="BTCUSDT", price=1.0, quantity=10.0),
            make_trade(exchange="okx", symbol="ETHUSDT", side=Side.SELL, price=1.0, quantity=4.0),
            make_trade(exchange="okx", symbol="BTCUSDT", price=1.0, quantity=1.0),
        ])
        assert snap.by_exchange["okx"].count == 2
        assert snap.by_exchange["okx"].net_flow == -3.0
        assert snap.by_coin["BTC"].buy_volume == 11.0
        assert snap.by_coin["ETH"].sell_volume == 4.0

    def test_window_size_must_be_positive(self):
        with pytest.raises(ValueError):
            Aggregator(window_size=0)


class TestReplaceAndClear:

    def test_replace_keeps_position_and_totals(self, make_trade):
        agg = Aggregator()
        a, b = make_trade(), make_trade()
        agg.add_batch([a, b])
        assert agg.replace(a.model_copy(update={"correlated_with": "okx"})) is True
        assert agg.trades()[1].correlated_with == "okx"
        assert agg.snapshot().totals.count == 2

    def test_replace_unknown_id(self, make_trade):
        assert Aggregator().replace(make_trade()) is False

    def test_clear(self, make_trade):
        agg = Aggregator()
        agg.add_batch([make_trade()])
        agg.clear()
        assert agg.trades() == []
        assert agg.snapshot().totals.count == 0
