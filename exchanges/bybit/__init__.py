"""
Bybit Adapter

Wire protocol for Bybit v5 public spot trades.

WebSocket Documentation:
    https://bybit-exchange.github.io/docs/v5/websocket/public/trade

Endpoints Used:
    WebSocket (push, one connection for every symbol):
        - wss://stream.bybit.com/v5/public/spot
        - Subscribe: {"op": "subscribe", "args": ["publicTrade.BTCUSDT", ...]}

    REST (threshold input):
        - GET /v5/market/tickers?category=spot&symbol=BTCUSDT  (turnover24h)

Trade message format:
    {"topic": "publicTrade.BTCUSDT", "type": "snapshot", "ts": 1672304486868,
     "data": [{"T": 1672304486865, "s": "BTCUSDT", "S": "Buy", "v": "0.001",
               "p": "16578.50", "L": "PlusTick", "i": "20f43950-...", "BT": false}]}
"""

from typing import Any, Dict, List, Optional, Sequence

from core.exceptions import ParseError
from core.exchange_interface import ExchangeAdapter
from core.schemas import MarketActivity, Side, Trade
from core.utils.time import current_utc_timestamp, to_epoch_ms

TOPIC_PREFIX = "publicTrade."


class BybitAdapter(ExchangeAdapter):
    """
    Bybit spot public-trade adapter.

    Notes:
        - Bybit sends batches: one message may carry several trades
        - Subscription acks ({"op": "subscribe", "success": true}) and pongs
          are not trade events and parse to []
        - The ticker endpoint does not publish a trade count
    """

    name = "bybit"
    supported_transports = ("push",)
    per_symbol_connection = False
    keepalive_message = '{"op": "ping"}'

    WS_URL = "wss://stream.bybit.com/v5/public/spot"
    REST_MIRRORS = ("https://api.bybit.com", "https://api.bytick.com")

    def to_instrument(self, symbol: str) -> str:
        return symbol.upper()

    def from_instrument(self, instrument: str) -> str:
        return instrument.upper()

    def build_endpoint(self, symbol: Optional[str] = None) -> str:
        return self.WS_URL

    def build_subscribe_payload(self, symbols: Sequence[str]) -> Optional[Dict[str, Any]]:
        return {"op": "subscribe", "args": [f"{TOPIC_PREFIX}{self.to_instrument(s)}" for s in symbols]}

    def parse(self, raw: Any) -> List[Trade]:
        msg = self.decode(raw)
        if not isinstance(msg, dict):
            raise ParseError(f"Unexpected Bybit frame type: {type(msg).__name__}", exchange=self.name)

        topic = str(msg.get("topic", ""))
        if not topic.startswith(TOPIC_PREFIX) or "data" not in msg:
            return []

        items = msg["data"]
        if not isinstance(items, list):
            raise ParseError(f"Bybit {topic} data is not a list", exchange=self.name)

        topic_symbol = topic[len(TOPIC_PREFIX):]
        trades = []
        for item in items:
            if not isinstance(item, dict):
                continue
            trade = self._trade_from_item(item, topic_symbol)
            if trade:
                trades.append(trade)
        return trades

    def ticker_endpoints(self, symbol: str) -> List[str]:
        return [f"{base}/v5/market/tickers" for base in self.REST_MIRRORS]

    def ticker_params(self, symbol: str) -> Dict[str, Any]:
        return {"category": "spot", "symbol": self.to_instrument(symbol)}

    def parse_ticker(self, payload: Any, symbol: str) -> MarketActivity:
        """
        Response Format:
            {"retCode": 0, "result": {"category": "spot",
             "list": [{"symbol": "BTCUSDT", "turnover24h": "2317823.8", "volume24h": "42.1", ...}]}}
        """
        try:
            entry = payload["result"]["list"][0]
            return MarketActivity(
                exchange=self.name,
                symbol=symbol.upper(),
                quote_volume=float(entry["turnover24h"]),
                trade_count=None,
            )
        except (KeyError, IndexError, TypeError, ValueError) as e:
            raise ParseError(f"Unexpected Bybit ticker payload for {symbol}: {e}", exchange=self.name) from e

    def _trade_from_item(self, item: Dict[str, Any], topic_symbol: str) -> Optional[Trade]:
        side_raw = str(item.get("S", "")).lower()
        if side_raw not in ("buy", "sell"):
            return None

        ts_raw = item.get("T")
        try:
            ts = to_epoch_ms(ts_raw) if ts_raw is not None else current_utc_timestamp(milliseconds=True)
        except ValueError:
            return None

        return self.build_trade(
            native_id=item.get("i"),
            symbol=self.from_instrument(str(item.get("s") or topic_symbol)),
            side=Side(side_raw),
            price=item.get("p"),
            quantity=item.get("v"),
            timestamp_ms=ts,
        )
