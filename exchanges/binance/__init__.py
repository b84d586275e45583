"""
Binance Adapter

Wire protocol for Binance spot aggregate trades.

API Documentation:
    https://developers.binance.com/docs/binance-spot-api-docs

Endpoints Used:
    WebSocket (push, one connection per symbol):
        - wss://stream.binance.com:9443/ws/<symbol>@aggTrade

    REST (poll transport and threshold input):
        - GET /api/v3/aggTrades?symbol=BTCUSDT&limit=100
        - GET /api/v3/ticker/24hr?symbol=BTCUSDT   (quoteVolume, count)
        - GET /api/v3/ticker/24hr                  (all symbols, for discovery)

    The REST API is served from several mirrors; they are returned in order so
    the caller can fall through to the next one.

aggTrade fields consumed:
    a: aggregate trade id     p: price      q: quantity
    T: trade time (ms)        m: buyer is maker (true => aggressor sold)
"""

from typing import Any, Dict, List, Optional

from core.exceptions import ParseError
from core.exchange_interface import ExchangeAdapter
from core.schemas import MarketActivity, Side, Trade
from core.utils.time import current_utc_timestamp, to_epoch_ms


class BinanceAdapter(ExchangeAdapter):
    """
    Binance spot aggregate-trade adapter.

    Example:
        >>> adapter = BinanceAdapter()
        >>> adapter.build_endpoint("BTCUSDT")
        'wss://stream.binance.com:9443/ws/btcusdt@aggTrade'
        >>> adapter.parse('{"e":"aggTrade","s":"BTCUSDT","a":1,"p":"50000","q":"1","T":1704110400000,"m":false}')
        [Trade(id='binance:1', ..., side=<Side.BUY: 'buy'>, ...)]

    Notes:
        - Symbols are the canonical form already ("BTCUSDT"); the stream name
          is lowercased (Binance requirement)
        - m=true means the buyer was the maker, so the aggressor was a seller
    """

    name = "binance"
    supported_transports = ("push", "poll")
    default_transport = "push"
    per_symbol_connection = True

    WS_BASE = "wss://stream.binance.com:9443/ws"
    REST_MIRRORS = (
        "https://api.binance.com",
        "https://api1.binance.com",
        "https://api2.binance.com",
        "https://api3.binance.com",
        "https://data-api.binance.vision",
    )
    POLL_LIMIT = 100

    # ============================================
    # Symbol Mapping
    # ============================================

    def to_instrument(self, symbol: str) -> str:
        return symbol.upper()

    def from_instrument(self, instrument: str) -> str:
        return instrument.upper()

    # ============================================
    # Connection Description
    # ============================================

    def build_endpoint(self, symbol: Optional[str] = None) -> str:
        if not symbol:
            raise ValueError("Binance connections are per symbol; a symbol is required")
        if self.is_polling:
            return self.poll_endpoints(symbol)[0]
        return f"{self.WS_BASE}/{self.to_instrument(symbol).lower()}@aggTrade"

    # ============================================
    # Push Parsing
    # ============================================

    def parse(self, raw: Any) -> List[Trade]:
        msg = self.decode(raw)
        if not isinstance(msg, dict):
            raise ParseError(f"Unexpected Binance frame type: {type(msg).__name__}", exchange=self.name)

        # Combined-stream frames wrap the event: {"stream": "...", "data": {...}}
        if "stream" in msg and isinstance(msg.get("data"), dict):
            msg = msg["data"]

        if msg.get("e") != "aggTrade":
            return []

        symbol = msg.get("s")
        if not symbol:
            raise ParseError("aggTrade event without symbol", exchange=self.name)

        trade = self._trade_from_item(msg, self.from_instrument(str(symbol)))
        return [trade] if trade else []

    # ============================================
    # Poll Transport
    # ============================================

    def poll_endpoints(self, symbol: str) -> List[str]:
        return [f"{base}/api/v3/aggTrades" for base in self.REST_MIRRORS]

    def poll_params(self, symbol: str) -> Dict[str, Any]:
        return {"symbol": self.to_instrument(symbol), "limit": self.POLL_LIMIT}

    def parse_poll(self, payload: Any, symbol: str) -> List[Trade]:
        """
        Response Format:
            [{"a": 26129, "p": "0.01633102", "q": "4.70443515", "f": 27781,
              "l": 27781, "T": 1498793709153, "m": true, "M": true}]
        """
        payload = self.decode(payload)
        if not isinstance(payload, list):
            raise ParseError("aggTrades response is not a list", exchange=self.name)

        trades = []
        for item in payload:
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
        return [f"{base}/api/v3/ticker/24hr" for base in self.REST_MIRRORS]

    def ticker_params(self, symbol: str) -> Dict[str, Any]:
        return {"symbol": self.to_instrument(symbol)}

    def parse_ticker(self, payload: Any, symbol: str) -> MarketActivity:
        """
        Response Format:
            {"symbol": "BTCUSDT", "quoteVolume": "1530029301.3", "count": 1825461, ...}
        """
        if not isinstance(payload, dict) or "quoteVolume" not in payload:
            raise ParseError(f"Unexpected 24hr ticker payload for {symbol}", exchange=self.name)
        try:
            return MarketActivity(
                exchange=self.name,
                symbol=symbol.upper(),
                quote_volume=float(payload["quoteVolume"]),
                trade_count=int(payload["count"]) if payload.get("count") is not None else None,
            )
        except (TypeError, ValueError, OverflowError) as e:
            raise ParseError(f"Invalid 24hr ticker values for {symbol}: {e}", exchange=self.name) from e

    def all_tickers_endpoints(self) -> List[str]:
        """Ticker URLs without a symbol filter (every listed market)."""
        return [f"{base}/api/v3/ticker/24hr" for base in self.REST_MIRRORS]

    def parse_top_symbols(self, payload: Any, limit: int, quote: str = "USDT") -> List[str]:
        """
        Rank ``quote`` markets of an all-symbols ticker payload by quote volume.

        Raises:
            ParseError: If the payload is not a list
        """
        if not isinstance(payload, list):
            raise ParseError("All-symbols ticker response is not a list", exchange=self.name)

        ranked = []
        for item in payload:
            sym = str(item.get("symbol", "")) if isinstance(item, dict) else ""
            if not sym.endswith(quote):
                continue
            try:
                ranked.append((float(item.get("quoteVolume", 0)), sym))
            except (TypeError, ValueError):
                continue

        ranked.sort(reverse=True)
        return [sym for _, sym in ranked[:limit]]

    # ============================================
    # Helpers
    # ============================================

    def _trade_from_item(self, item: Dict[str, Any], symbol: str) -> Optional[Trade]:
        side = Side.SELL if bool(item.get("m", False)) else Side.BUY

        ts_raw = item.get("T", item.get("E"))
        try:
            ts = to_epoch_ms(ts_raw) if ts_raw is not None else current_utc_timestamp(milliseconds=True)
        except ValueError:
            return None

        return self.build_trade(
            native_id=item.get("a"),
            symbol=symbol,
            side=side,
            price=item.get("p"),
            quantity=item.get("q"),
            timestamp_ms=ts,
        )
