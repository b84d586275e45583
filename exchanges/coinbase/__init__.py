"""
Coinbase Adapter

Wire protocol for the Coinbase Exchange public feed.

API Documentation:
    https://docs.cdp.coinbase.com/exchange/docs/websocket-channels

Endpoints Used:
    WebSocket (push, one connection for every product):
        - wss://ws-feed.exchange.coinbase.com
        - Subscribe: {"type": "subscribe", "product_ids": ["BTC-USD"], "channels": ["matches"]}

    REST (poll transport and threshold input):
        - GET /products/BTC-USD/trades   (recent trades, newest first)
        - GET /products/BTC-USD/stats    (24h volume in base asset + last price)

Match message format:
    {"type": "match", "trade_id": 10, "sequence": 50, "maker_order_id": "...",
     "taker_order_id": "...", "time": "2014-11-07T08:19:27.028459Z",
     "product_id": "BTC-USD", "size": "5.23512", "price": "400.23", "side": "sell"}
"""

from typing import Any, Dict, List, Optional, Sequence

from core.exceptions import ConfigurationError, ParseError
from core.exchange_interface import ExchangeAdapter
from core.logging import get_logger
from core.schemas import MarketActivity, Side, Trade
from core.utils.symbols import dashed_instrument, join_symbol, split_symbol
from core.utils.time import current_utc_timestamp, iso8601_to_ms

TRADE_EVENTS = ("match", "last_match")


class CoinbaseAdapter(ExchangeAdapter):
    """
    Coinbase Exchange matches adapter.

    Symbol Mapping:
        Coinbase lists USD books rather than USDT books, so stablecoin-quoted
        canonical symbols map onto the ``quote_currency`` book:
            BTCUSDT <-> BTC-USD
        Aliases (BTCUSDT, BTCUSDC) share one product; trades carry the
        symbol that subscribed first.

    Notes:
        - The "side" field is used as published
        - "last_match" (sent right after subscribing) is treated as a trade;
          the deduplicator absorbs it when it repeats an already-seen trade
        - The stats endpoint does not publish a trade count
    """

    name = "coinbase"
    supported_transports = ("push", "poll")
    default_transport = "push"
    per_symbol_connection = False

    WS_URL = "wss://ws-feed.exchange.coinbase.com"
    REST_BASE = "https://api.exchange.coinbase.com"
    STABLE_QUOTES = ("USDT", "USDC", "USD")

    def __init__(self, transport: Optional[str] = None, quote_currency: str = "USD"):
        super().__init__(transport)
        self.quote_currency = quote_currency.upper()
        # product id -> the canonical symbol it was subscribed for
        self._subscribed: Dict[str, str] = {}
        self._logger = get_logger(__name__)

    # ============================================
    # Symbol Mapping
    # ============================================

    def to_instrument(self, symbol: str) -> str:
        base, quote = split_symbol(symbol)
        if not quote:
            raise ConfigurationError(f"Cannot map '{symbol}' to a Coinbase product", exchange=self.name)
        if quote in self.STABLE_QUOTES:
            return dashed_instrument(symbol, self.quote_currency)
        return dashed_instrument(symbol)

    def from_instrument(self, instrument: str) -> str:
        subscribed = self._subscribed.get(instrument.upper())
        if subscribed:
            return subscribed
        parts = instrument.upper().split("-")
        base = parts[0]
        quote = parts[1] if len(parts) > 1 else ""
        if quote == self.quote_currency:
            quote = "USDT"
        return join_symbol(base, quote)

    # ============================================
    # Connection Description
    # ============================================

    def build_endpoint(self, symbol: Optional[str] = None) -> str:
        if self.is_polling:
            if not symbol:
                raise ValueError("Coinbase polling is per product; a symbol is required")
            return self.poll_endpoints(symbol)[0]
        return self.WS_URL

    def build_subscribe_payload(self, symbols: Sequence[str]) -> Optional[Dict[str, Any]]:
        """
        Subscribe once per product.

        BTCUSDT and BTCUSDC both land on BTC-USD; the first symbol asked for
        owns the product and labels its trades, later aliases are skipped.
        """
        if self.is_polling:
            return None

        self._subscribed = {}
        for symbol in symbols:
            product = self.to_instrument(symbol)
            owner = self._subscribed.setdefault(product, symbol.upper())
            if owner != symbol.upper():
                self._logger.warning(f"{symbol.upper()} shares {product} with {owner}; not subscribed twice")
        return {
            "type": "subscribe",
            "product_ids": list(self._subscribed),
            "channels": ["matches"],
        }

    # ============================================
    # Push Parsing
    # ============================================

    def parse(self, raw: Any) -> List[Trade]:
        msg = self.decode(raw)
        if not isinstance(msg, dict):
            raise ParseError(f"Unexpected Coinbase frame type: {type(msg).__name__}", exchange=self.name)

        if msg.get("type") not in TRADE_EVENTS:
            return []

        product = msg.get("product_id")
        if not product:
            raise ParseError("match event without product_id", exchange=self.name)

        trade = self._trade_from_item(msg, self.from_instrument(str(product)))
        return [trade] if trade else []

    # ============================================
    # Poll Transport
    # ============================================

    def poll_endpoints(self, symbol: str) -> List[str]:
        return [f"{self.REST_BASE}/products/{self.to_instrument(symbol)}/trades"]

    def poll_params(self, symbol: str) -> Dict[str, Any]:
        return {"limit": 100}

    def parse_poll(self, payload: Any, symbol: str) -> List[Trade]:
        """
        Response Format (newest first):
            [{"time": "2024-01-01T12:00:00.1Z", "trade_id": 74, "price": "10.0",
              "size": "0.01", "side": "buy"}]
        """
        payload = self.decode(payload)
        if not isinstance(payload, list):
            raise ParseError("Coinbase trades response is not a list", exchange=self.name)

        trades = []
        # Oldest first, matching the order a socket would have delivered them
        for item in reversed(payload):
            if not isinstance(item, dict):
                continue
            trade = self._trade_from_item(item, symbol.upper())
            if trade:
                trades.append(trade)
        return trades

    # ============================================
    # Market Activity
    # ============================================

    def ticker_endpoints(self, symbol: str) -> List[str]:
        return [f"{self.REST_BASE}/products/{self.to_instrument(symbol)}/stats"]

    def parse_ticker(self, payload: Any, symbol: str) -> MarketActivity:
        """
        Response Format:
            {"open": "5414.18", "high": "6441.37", "low": "5261.69",
             "volume": "53687.76764233", "last": "6250.02", "volume_30day": "..."}
        """
        try:
            return MarketActivity(
                exchange=self.name,
                symbol=symbol.upper(),
                quote_volume=float(payload["volume"]) * float(payload["last"]),
                trade_count=None,
            )
        except (KeyError, TypeError, ValueError) as e:
            raise ParseError(f"Unexpected Coinbase stats payload for {symbol}: {e}", exchange=self.name) from e

    # ============================================
    # Helpers
    # ============================================

    def _trade_from_item(self, item: Dict[str, Any], symbol: str) -> Optional[Trade]:
        side_raw = str(item.get("side", "")).lower()
        if side_raw not in ("buy", "sell"):
            return None

        time_raw = item.get("time")
        try:
            ts = iso8601_to_ms(time_raw) if time_raw else current_utc_timestamp(milliseconds=True)
        except ValueError:
            return None

        return self.build_trade(
            native_id=item.get("trade_id"),
            symbol=symbol,
            side=Side(side_raw),
            price=item.get("price"),
            quantity=item.get("size"),
            timestamp_ms=ts,
        )
