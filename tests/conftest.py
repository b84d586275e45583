"""
Shared fixtures.

make_trade builds canonical trades with sensible defaults so tests only
spell out the fields they care about.
"""

import pytest

from core.config import Settings
from core.schemas import Side, Trade

BASE_TS = 1704110400000  # 2024-01-01T12:00:00Z


@pytest.fixture
def make_trade():
    counter = {"n": 0}

    def _make(
        exchange="binance",
        symbol="BTCUSDT",
        side=Side.BUY,
        price=50000.0,
        quantity=1.0,
        timestamp_ms=BASE_TS,
        trade_id=None,
        **extra,
    ) -> Trade:
        counter["n"] += 1
        return Trade(
            id=trade_id or f"{exchange}:{counter['n']}",
            exchange=exchange,
            symbol=symbol,
            side=side,
            price=price,
            quantity=quantity,
            timestamp_ms=timestamp_ms,
            **extra,
        )

    return _make


@pytest.fixture
def test_settings():
    """Default profile with fast timers and no .env influence."""
    return Settings(
        _env_file=None,
        enabled_exchanges="binance,bybit",
        tracked_symbols="BTCUSDT",
        ws_reconnect_delay=0.05,
        poll_interval_seconds=0.05,
    )
