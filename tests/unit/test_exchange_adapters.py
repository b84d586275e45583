"""
Unit Tests for Exchange Adapters

These tests verify each adapter's wire protocol against recorded message
shapes:
- Endpoints and subscribe payloads
- Raw message -> canonical Trade normalization
- Non-trade frames parse to [] and malformed frames raise ParseError
- 24h ticker parsing for the Threshold Calculator

Run with:
    pytest tests/unit/test_exchange_adapters.py -v
"""

import json

import pytest

from core.exceptions import ConfigurationError, ParseError
from core.schemas import Side
from exchanges.binance import BinanceAdapter
from exchanges.bybit import BybitAdapter
from exchanges.coinbase import CoinbaseAdapter
from exchanges.kucoin import KuCoinAdapter
from exchanges.okx import OkxAdapter


# ============================================
# Binance
# ============================================

class TestBinanceAdapter:

    AGG_TRADE = {
        "e": "aggTrade", "E": 1704110400005, "s": "BTCUSDT", "a": 12345,
        "p": "50000.00", "q": "0.5", "f": 100, "l": 105, "T": 1704110400000, "m": True,
    }

    def test_push_endpoint_is_per_symbol(self):
        assert BinanceAdapter().build_endpoint("BTCUSDT") == "wss://stream.binance.com:9443/ws/btcusdt@aggTrade"

    def test_push_needs_no_subscribe(self):
        assert BinanceAdapter().build_subscribe_payload(["BTCUSDT"]) is None

    def test_parse_agg_trade(self):
        trades = BinanceAdapter().parse(json.dumps(self.AGG_TRADE))
        assert len(trades) == 1
        trade = trades[0]
        assert trade.id == "binance:12345"
        assert trade.exchange == "binance"
        assert trade.symbol == "BTCUSDT"
        assert trade.side == Side.SELL  # buyer was maker
        assert trade.notional_value == 25000.0
        assert trade.timestamp_ms == 1704110400000

    def test_buyer_taker_is_buy(self):
        msg = {**self.AGG_TRADE, "m": False}
        assert BinanceAdapter().parse(msg)[0].side == Side.BUY

    def test_combined_stream_wrapper(self):
        msg = {"stream": "btcusdt@aggTrade", "data": self.AGG_TRADE}
        assert BinanceAdapter().parse(msg)[0].id == "binance:12345"

    def test_non_trade_event(self):
        assert BinanceAdapter().parse({"result": None, "id": 1}) == []

    def test_missing_symbol_raises(self):
        msg = {k: v for k, v in self.AGG_TRADE.items() if k != "s"}
        with pytest.raises(ParseError):
            BinanceAdapter().parse(msg)

    def test_invalid_json_raises(self):
        with pytest.raises(ParseError):
            BinanceAdapter().parse("{not json")

    def test_non_numeric_price_dropped(self):
        assert BinanceAdapter().parse({**self.AGG_TRADE, "p": "abc"}) == []

    def test_non_string_symbol_coerced(self):
        trades = BinanceAdapter().parse({**self.AGG_TRADE, "s": 123})
        assert [t.symbol for t in trades] == ["123"]

    def test_overflowing_timestamp_dropped(self):
        raw = json.dumps(self.AGG_TRADE).replace("1704110400000", "1e400")
        assert BinanceAdapter().parse(raw) == []

    def test_missing_id_gets_synthetic_id(self):
        msg = {k: v for k, v in self.AGG_TRADE.items() if k != "a"}
        first = BinanceAdapter().parse(msg)[0]
        second = BinanceAdapter().parse(msg)[0]
        assert first.id.startswith("binance:")
        assert first.id == second.id

    def test_unsupported_transport(self):
        with pytest.raises(ConfigurationError):
            BinanceAdapter(transport="fix")

    def test_poll_transport(self):
        adapter = BinanceAdapter(transport="poll")
        assert adapter.is_polling
        assert adapter.connects_per_symbol
        assert adapter.build_endpoint("BTCUSDT") == "https://api.binance.com/api/v3/aggTrades"
        assert adapter.poll_params("btcusdt") == {"symbol": "BTCUSDT", "limit": 100}

    def test_parse_poll(self):
        payload = [
            {"a": 1, "p": "100", "q": "1", "T": 1704110400000, "m": False},
            {"a": 2, "p": "101", "q": "2", "T": 1704110400100, "m": True},
        ]
        trades = BinanceAdapter(transport="poll").parse_poll(payload, "BTCUSDT")
        assert [t.id for t in trades] == ["binance:1", "binance:2"]
        assert trades[1].side == Side.SELL

    def test_parse_poll_rejects_non_list(self):
        with pytest.raises(ParseError):
            BinanceAdapter().parse_poll({"code": -1121}, "BTCUSDT")

    def test_ticker_endpoints_are_ordered_mirrors(self):
        urls = BinanceAdapter().ticker_endpoints("BTCUSDT")
        assert urls[0] == "https://api.binance.com/api/v3/ticker/24hr"
        assert urls[-1] == "https://data-api.binance.vision/api/v3/ticker/24hr"

    def test_parse_ticker(self):
        activity = BinanceAdapter().parse_ticker(
            {"symbol": "BTCUSDT", "quoteVolume": "1000000000.0", "count": 1000000}, "BTCUSDT"
        )
        assert activity.quote_volume == 1e9
        assert activity.trade_count == 1_000_000

    def test_parse_ticker_missing_fields(self):
        with pytest.raises(ParseError):
            BinanceAdapter().parse_ticker({"code": -1121}, "BTCUSDT")

    def test_parse_top_symbols(self):
        payload = [
            {"symbol": "ETHUSDT", "quoteVolume": "500"},
            {"symbol": "BTCUSDT", "quoteVolume": "900"},
            {"symbol": "ETHBTC", "quoteVolume": "10000"},
            {"symbol": "SOLUSDT", "quoteVolume": "100"},
        ]
        assert BinanceAdapter().parse_top_symbols(payload, limit=2) == ["BTCUSDT", "ETHUSDT"]


# ============================================
# Bybit
# ============================================

class TestBybitAdapter:

    MESSAGE = {
        "topic": "publicTrade.BTCUSDT", "type": "snapshot", "ts": 1704110400010,
        "data": [
            {"T": 1704110400000, "s": "BTCUSDT", "S": "Buy", "v": "0.5", "p": "50000", "i": "abc-1"},
            {"T": 1704110400001, "s": "BTCUSDT", "S": "Sell", "v": "1.0", "p": "50001", "i": "abc-2"},
        ],
    }

    def test_subscribe_payload(self):
        payload = BybitAdapter().build_subscribe_payload(["BTCUSDT", "ETHUSDT"])
        assert payload == {"op": "subscribe", "args": ["publicTrade.BTCUSDT", "publicTrade.ETHUSDT"]}

    def test_single_connection(self):
        adapter = BybitAdapter()
        assert not adapter.connects_per_symbol
        assert adapter.build_endpoint() == "wss://stream.bybit.com/v5/public/spot"

    def test_parse_batch(self):
        trades = BybitAdapter().parse(json.dumps(self.MESSAGE))
        assert [t.id for t in trades] == ["bybit:abc-1", "bybit:abc-2"]
        assert trades[0].side == Side.BUY
        assert trades[1].side == Side.SELL
        assert trades[0].notional_value == 25000.0

    def test_malformed_item_skipped(self):
        msg = {**self.MESSAGE, "data": [{"S": "Buy", "v": "1"}, self.MESSAGE["data"][1]]}
        trades = BybitAdapter().parse(msg)
        assert [t.id for t in trades] == ["bybit:abc-2"]

    def test_unusable_timestamp_skipped(self):
        msg = {**self.MESSAGE, "data": [{**self.MESSAGE["data"][0], "T": [1]}, self.MESSAGE["data"][1]]}
        assert [t.id for t in BybitAdapter().parse(msg)] == ["bybit:abc-2"]

    def test_empty_topic_symbol_skipped(self):
        item = {k: v for k, v in self.MESSAGE["data"][0].items() if k != "s"}
        assert BybitAdapter().parse({"topic": "publicTrade.", "data": [item]}) == []

    def test_ack_and_pong(self):
        adapter = BybitAdapter()
        assert adapter.parse({"success": True, "ret_msg": "", "op": "subscribe"}) == []
        assert adapter.parse({"success": True, "ret_msg": "pong", "op": "ping"}) == []

    def test_data_not_list_raises(self):
        with pytest.raises(ParseError):
            BybitAdapter().parse({"topic": "publicTrade.BTCUSDT", "data": {"p": "1"}})

    def test_parse_ticker_has_no_count(self):
        payload = {"retCode": 0, "result": {"list": [{"symbol": "BTCUSDT", "turnover24h": "2317823.8"}]}}
        activity = BybitAdapter().parse_ticker(payload, "BTCUSDT")
        assert activity.quote_volume == pytest.approx(2317823.8)
        assert activity.trade_count is None

    def test_parse_ticker_empty_list(self):
        with pytest.raises(ParseError):
            BybitAdapter().parse_ticker({"retCode": 0, "result": {"list": []}}, "BTCUSDT")


# ============================================
# Coinbase
# ============================================

class TestCoinbaseAdapter:

    MATCH = {
        "type": "match", "trade_id": 10, "sequence": 50, "time": "2024-01-01T12:00:00.250Z",
        "product_id": "BTC-USD", "size": "0.5", "price": "50000.00", "side": "sell",
    }

    def test_symbol_mapping(self):
        adapter = CoinbaseAdapter()
        assert adapter.to_instrument("BTCUSDT") == "BTC-USD"
        assert adapter.to_instrument("ETHBTC") == "ETH-BTC"
        assert adapter.from_instrument("BTC-USD") == "BTCUSDT"

    def test_unmappable_symbol(self):
        with pytest.raises(ConfigurationError):
            CoinbaseAdapter().to_instrument("WEIRD")

    def test_subscribe_payload(self):
        payload = CoinbaseAdapter().build_subscribe_payload(["BTCUSDT", "ETHUSDT"])
        assert payload == {"type": "subscribe", "product_ids": ["BTC-USD", "ETH-USD"], "channels": ["matches"]}

    def test_aliases_subscribe_once(self):
        adapter = CoinbaseAdapter()
        payload = adapter.build_subscribe_payload(["BTCUSDT", "BTCUSDC"])
        assert payload["product_ids"] == ["BTC-USD"]
        assert [t.symbol for t in adapter.parse(self.MATCH)] == ["BTCUSDT"]

    def test_trades_labelled_with_subscribed_symbol(self):
        adapter = CoinbaseAdapter()
        adapter.build_subscribe_payload(["BTCUSDC"])
        assert [t.symbol for t in adapter.parse(self.MATCH)] == ["BTCUSDC"]

    def test_parse_match(self):
        trade = CoinbaseAdapter().parse(json.dumps(self.MATCH))[0]
        assert trade.id == "coinbase:10"
        assert trade.symbol == "BTCUSDT"
        assert trade.side == Side.SELL
        assert trade.timestamp_ms == 1704110400250

    def test_last_match_is_a_trade(self):
        assert len(CoinbaseAdapter().parse({**self.MATCH, "type": "last_match"})) == 1

    def test_other_channels(self):
        adapter = CoinbaseAdapter()
        assert adapter.parse({"type": "subscriptions", "channels": []}) == []
        assert adapter.parse({"type": "heartbeat"}) == []

    def test_match_without_product_raises(self):
        with pytest.raises(ParseError):
            CoinbaseAdapter().parse({k: v for k, v in self.MATCH.items() if k != "product_id"})

    def test_poll_transport(self):
        adapter = CoinbaseAdapter(transport="poll")
        assert adapter.build_subscribe_payload(["BTCUSDT"]) is None
        assert adapter.connects_per_symbol
        assert adapter.build_endpoint("BTCUSDT") == "https://api.exchange.coinbase.com/products/BTC-USD/trades"

    def test_parse_poll_oldest_first(self):
        payload = [
            {"time": "2024-01-01T12:00:01Z", "trade_id": 2, "price": "10", "size": "1", "side": "buy"},
            {"time": "2024-01-01T12:00:00Z", "trade_id": 1, "price": "10", "size": "1", "side": "sell"},
        ]
        trades = CoinbaseAdapter(transport="poll").parse_poll(payload, "BTCUSDT")
        assert [t.id for t in trades] == ["coinbase:1", "coinbase:2"]

    def test_parse_ticker(self):
        activity = CoinbaseAdapter().parse_ticker({"volume": "100", "last": "50000"}, "BTCUSDT")
        assert activity.quote_volume == 5_000_000
        assert activity.trade_count is None


# ============================================
# OKX
# ============================================

class TestOkxAdapter:

    MESSAGE = {
        "arg": {"channel": "trades", "instId": "BTC-USDT"},
        "data": [{"instId": "BTC-USDT", "tradeId": "130639474", "px": "50000",
                  "sz": "0.5", "side": "buy", "ts": "1704110400000"}],
    }

    def test_subscribe_payload(self):
        payload = OkxAdapter().build_subscribe_payload(["BTCUSDT"])
        assert payload == {"op": "subscribe", "args": [{"channel": "trades", "instId": "BTC-USDT"}]}

    def test_parse_trades(self):
        trade = OkxAdapter().parse(json.dumps(self.MESSAGE))[0]
        assert trade.id == "okx:130639474"
        assert trade.symbol == "BTCUSDT"
        assert trade.timestamp_ms == 1704110400000
        assert trade.notional_value == 25000.0

    def test_pong_and_event_frames(self):
        adapter = OkxAdapter()
        assert adapter.parse("pong") == []
        assert adapter.parse({"event": "subscribe", "arg": {"channel": "trades", "instId": "BTC-USDT"}}) == []

    def test_swap_instrument_maps_to_canonical(self):
        assert OkxAdapter().from_instrument("ETH-USDT-SWAP") == "ETHUSDT"

    def test_keepalive(self):
        assert OkxAdapter().keepalive_message == "ping"

    def test_parse_ticker(self):
        payload = {"code": "0", "data": [{"instId": "BTC-USDT", "volCcy24h": "216382843.2"}]}
        assert OkxAdapter().parse_ticker(payload, "BTCUSDT").quote_volume == pytest.approx(216382843.2)
        assert OkxAdapter().ticker_params("BTCUSDT") == {"instId": "BTC-USDT"}


# ============================================
# KuCoin
# ============================================

class TestKuCoinAdapter:

    HISTORY = {
        "code": "200000",
        "data": [
            {"sequence": "1545896668571", "price": "50000", "size": "0.5",
             "side": "buy", "time": 1704110400000000000},
        ],
    }

    def test_poll_only(self):
        adapter = KuCoinAdapter()
        assert adapter.is_polling
        with pytest.raises(ConfigurationError):
            KuCoinAdapter(transport="push")

    def test_poll_request(self):
        adapter = KuCoinAdapter()
        assert adapter.build_endpoint("BTCUSDT") == "https://api.kucoin.com/api/v1/market/histories"
        assert adapter.poll_params("BTCUSDT") == {"symbol": "BTC-USDT"}

    def test_parse_poll_nanoseconds(self):
        trade = KuCoinAdapter().parse_poll(self.HISTORY, "BTCUSDT")[0]
        assert trade.id == "kucoin:1545896668571"
        assert trade.timestamp_ms == 1704110400000
        assert trade.side == Side.BUY

    def test_parse_poll_without_data(self):
        with pytest.raises(ParseError):
            KuCoinAdapter().parse_poll({"code": "400100", "msg": "error"}, "BTCUSDT")

    def test_parse_ticker(self):
        payload = {"code": "200000", "data": {"symbol": "BTC-USDT", "volValue": "456898.7"}}
        assert KuCoinAdapter().parse_ticker(payload, "BTCUSDT").quote_volume == pytest.approx(456898.7)
