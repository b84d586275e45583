"""
OKX Adapter

Wire protocol for OKX v5 public spot trades.

API Documentation:
    https://www.okx.com/docs-v5/en/#order-book-trading-market-data-ws-trades-channel

Endpoints Used:
    WebSocket (push, one connection for every instrument):
        - wss://ws.okx.com:8443/ws/v5/public
        - Subscribe: {"op": "subscribe", "args": [{"channel": "trades", "instId": "BTC-USDT"}]}

    REST (threshold input):
        - GET /api/v5/market/ticker?instId=BTC-USDT   (volCcy24h = quote volume for spot)

Trade message format:
    {"arg": {"channel": "trades", "instId": "BTC-USDT"},
     "data": [{"instId": "BTC-USDT", "tradeId": "130639474", "px": "42219.9",
               "sz": "0.12060306", "side": "buy", "ts": "1630048897897", "count": "3"}]}
"""

from typing import Any, Dict, List, Optional, Sequence

from core.exceptions import ConfigurationError, ParseError
from core.exchange_interface import ExchangeAdapter
from core.schemas import MarketActivity, Side, Trade
from core.utils.symbols import dashed_instrument, undash_instrument
from core.utils.time import current_utc_timestamp, to_epoch_ms


class OkxAdapter(ExchangeAdapter):
    """
    OKX spot trades adapter.

    Notes:
        - Instrument ids are dash-separated ("BTC-USDT"); derivative ids carry
          a suffix ("ETH-USDT-SWAP") which from_instrument strips
        - Timestamps arrive as millisecond strings
        - Plain-text "pong" keepalive replies and {"event": ...} acks parse to []
    """

    name = "okx"
    supported_transports = ("push",)
    per_symbol_connection = False
    keepalive_message = "ping"

    WS_URL = "wss://ws.okx.com:8443/ws/v5/public"
    REST_MIRRORS = ("https://www.okx.com", "https://aws.okx.com")

    def to_instrument(self, symbol: str) -> str:
        try:
            return dashed_instrument(symbol)
        except ValueError as e:
            raise ConfigurationError(str(e), exchange=self.name) from e

    def from_instrument(self, instrument: str) -> str:
        return undash_instrument(instrument)

    def build_endpoint(self, symbol: Optional[str] = None) -> str:
        return self.WS_URL

    def build_subscribe_payload(self, symbols: Sequence[str]) -> Optional[Dict[str, Any]]:
        return {
            "op": "subscribe",
            "args": [{"channel": "trades", "instId": self.to_instrument(s)} for s in symbols],
        }

    def parse(self, raw: Any) -> List[Trade]:
        if raw in ("pong", b"pong"):
            return []

        msg = self.decode(raw)
        if not isinstance(msg, dict):
            raise ParseError(f"Unexpected OKX frame type: {type(msg).__name__}", exchange=self.name)

        if "event" in msg:
            return []

        arg = msg.get("arg")
        if not isinstance(arg, dict) or arg.get("channel") != "trades" or "data" not in msg:
            return []

        items = msg["data"]
        if not isinstance(items, list):
            raise ParseError("OKX trades data is not a list", exchange=self.name)

        trades = []
        for item in items:
            if not isinstance(item, dict):
                continue
            trade = self._trade_from_item(item, item.get("instId") or arg.get("instId", ""))
            if trade:
                trades.append(trade)
        return trades

    def ticker_endpoints(self, symbol: str) -> List[str]:
        return [f"{base}/api/v5/market/ticker" for base in self.REST_MIRRORS]

    def ticker_params(self, symbol: str) -> Dict[str, Any]:
        return {"instId": self.to_instrument(symbol)}

    def parse_ticker(self, payload: Any, symbol: str) -> MarketActivity:
        """
        Response Format:
            {"code": "0", "data": [{"instId": "BTC-USDT", "vol24h": "5126.3",
                                    "volCcy24h": "216382843.2", ...}]}
        """
        try:
            entry = payload["data"][0]
            return MarketActivity(
                exchange=self.name,
                symbol=symbol.upper(),
                quote_volume=float(entry["volCcy24h"]),
                trade_count=None,
            )
        except (KeyError, IndexError, TypeError, ValueError) as e:
            raise ParseError(f"Unexpected OKX ticker payload for {symbol}: {e}", exchange=self.name) from e

    def _trade_from_item(self, item: Dict[str, Any], instrument: str) -> Optional[Trade]:
        side_raw = str(item.get("side", "")).lower()
        if side_raw not in ("buy", "sell") or not instrument:
            return None

        ts_raw = item.get("ts")
        try:
            ts = to_epoch_ms(ts_raw) if ts_raw not in (None, "") else current_utc_timestamp(milliseconds=True)
        except ValueError:
            return None

        return self.build_trade(
            native_id=item.get("tradeId"),
            symbol=self.from_instrument(str(instrument)),
            side=Side(side_raw),
            price=item.get("px"),
            quantity=item.get("sz"),
            timestamp_ms=ts,
        )
