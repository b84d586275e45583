"""
Unit Tests for the FastAPI Application

The TestClient is used without its context manager so the lifespan (which
would start live feeds) never runs; the service accessor is patched with a
service whose session is built but not started.

Run with:
    pytest tests/unit/test_api.py -v
"""

from unittest.mock import AsyncMock, MagicMock, patch

import pytest
from fastapi.testclient import TestClient

from app.main import app, filter_event
from engine.session import EngineSession
from exchanges.binance import BinanceAdapter
from exchanges.coinbase import CoinbaseAdapter
from services.event_bus import EventBus
from services.whale_tracker import WhaleTrackerService


def session_factory(config, symbols):
    client = MagicMock()
    client.open = AsyncMock()
    client.close = AsyncMock()
    return EngineSession(
        config=config,
        symbols=symbols,
        adapters={"binance": BinanceAdapter(), "coinbase": CoinbaseAdapter()},
        client=client,
    )


@pytest.fixture
def service(test_settings):
    svc = WhaleTrackerService(config=test_settings, event_bus=EventBus(), session_factory=session_factory)
    svc.session = session_factory(test_settings, ["BTCUSDT"])
    return svc


@pytest.fixture
def client(service):
    with patch("app.main.get_whale_tracker_service", return_value=service):
        yield TestClient(app)


# ============================================
# System Endpoints
# ============================================

class TestSystemEndpoints:

    def test_root(self, client):
        body = client.get("/").json()
        assert body["status"] == "idle"
        assert body["symbols"] == ["BTCUSDT"]

    def test_health_when_stopped(self, client):
        assert client.get("/health").json()["status"] == "stopped"

    def test_exchanges(self, client):
        exchanges = {e["name"]: e for e in client.get("/exchanges").json()["exchanges"]}
        assert set(exchanges) == {"binance", "bybit", "coinbase", "okx", "kucoin"}
        assert exchanges["kucoin"]["transports"] == ["poll"]
        assert exchanges["binance"]["default_transport"] == "push"


# ============================================
# Engine Endpoints
# ============================================

class TestEngineEndpoints:

    def test_thresholds(self, client, service):
        service.session.thresholds.set_cutoff("binance", "BTCUSDT", 25_000)
        body = client.get("/thresholds").json()
        assert body["thresholds"]["binance"]["BTCUSDT"] == 25_000
        assert body["thresholds"]["coinbase"]["BTCUSDT"] == 15_000

    def test_trades_and_stats(self, client, service, make_trade):
        service.session.process_batch([
            make_trade(exchange="binance", price=50000.0, quantity=1.0),
            make_trade(exchange="coinbase", price=50000.0, quantity=4.0, side="sell", timestamp_ms=1),
        ])

        trades = client.get("/trades").json()
        assert [t["exchange"] for t in trades] == ["coinbase", "binance"]

        filtered = client.get("/trades", params={"exchange": "BINANCE"}).json()
        assert [t["exchange"] for t in filtered] == ["binance"]

        big = client.get("/trades", params={"min_value_usd": 100000}).json()
        assert [t["notional_value"] for t in big] == [200000.0]

        stats = client.get("/stats").json()
        assert stats["totals"]["count"] == 2
        assert stats["by_exchange"]["coinbase"]["sell_volume"] == 200000.0

    def test_connections(self, client):
        keys = {c["key"] for c in client.get("/connections").json()}
        assert keys == {"binance:BTCUSDT", "coinbase:*"}

    def test_track_rejects_unmappable_symbol(self, client):
        response = client.post("/track", json={"symbols": ["WEIRD"]})
        assert response.status_code == 400
        assert response.json()["exchange"] == "coinbase"

    def test_track_requires_symbols(self, client):
        assert client.post("/track", json={"symbols": []}).status_code == 422

    def test_track(self, client, service):
        response = client.post("/track", json={"symbols": ["ethusdt"]})
        assert response.json() == {"symbols": ["ETHUSDT"]}
        assert service.symbols == ["ETHUSDT"]

    def test_reset(self, client, service, make_trade):
        service.session.process_batch([make_trade(quantity=1.0)])
        assert client.post("/reset").json() == {"status": "reset"}
        assert client.get("/trades").json() == []

    def test_discover(self, client, service):
        service.discover_symbols = AsyncMock(return_value=["BTCUSDT", "ETHUSDT"])
        assert client.get("/symbols/discover", params={"limit": 2}).json() == {"symbols": ["BTCUSDT", "ETHUSDT"]}
        service.discover_symbols.assert_awaited_once_with(2)


# ============================================
# WebSocket Filtering
# ============================================

def trade_dict(exchange, notional):
    return {"exchange": exchange, "notional_value": notional}


class TestFilterEvent:

    def test_whale_trades_filtered_by_value(self):
        event = {"type": "whale_trades", "trades": [trade_dict("okx", 10_000), trade_dict("okx", 90_000)],
                 "annotated": []}
        out = filter_event(event, 50_000, None)
        assert out["trades"] == [trade_dict("okx", 90_000)]

    def test_whale_trades_filtered_by_exchange(self):
        event = {"type": "whale_trades", "trades": [trade_dict("okx", 90_000)],
                 "annotated": [trade_dict("binance", 90_000)]}
        out = filter_event(event, 0, "binance")
        assert out["trades"] == []
        assert out["annotated"] == [trade_dict("binance", 90_000)]

    def test_empty_result_dropped(self):
        event = {"type": "whale_trades", "trades": [trade_dict("okx", 10)], "annotated": []}
        assert filter_event(event, 50_000, None) is None

    def test_status_events_filtered_by_exchange_only(self):
        event = {"type": "connection_status", "exchange": "okx", "state": "streaming"}
        assert filter_event(event, 1e9, None) is event
        assert filter_event(event, 0, "bybit") is None

    def test_error_without_exchange_always_passes(self):
        event = {"type": "engine_error", "exchange": None, "kind": "market_data"}
        assert filter_event(event, 0, "bybit") is event
