"""
KuCoin Adapter

KuCoin's public socket requires a per-connection token from a bullet
endpoint, so this adapter speaks the REST poll transport only.

API Documentation:
    https://www.kucoin.com/docs/rest/spot-trading/market-data/get-trade-histories

Endpoints Used:
    - GET /api/v1/market/histories?symbol=BTC-USDT   (last 100 trades)
    - GET /api/v1/market/stats?symbol=BTC-USDT       (volValue = 24h quote volume)

Trade history format:
    {"code": "200000", "data": [{"sequence": "1545896668571", "price": "0.07",
      "size": "0.004", "side": "buy", "time": 1545904567062140823}]}

    "time" is in nanoseconds.
"""

from typing import Any, Dict, List, Optional

from core.exceptions import ConfigurationError, ParseError
from core.exchange_interface import ExchangeAdapter
from core.schemas import MarketActivity, Side, Trade
from core.utils.symbols import dashed_instrument, undash_instrument
from core.utils.time import current_utc_timestamp, to_epoch_ms


class KuCoinAdapter(ExchangeAdapter):
    """KuCoin spot trade-history poller."""

    name = "kucoin"
    supported_transports = ("poll",)
    default_transport = "poll"
    per_symbol_connection = True

    REST_BASE = "https://api.kucoin.com"

    def to_instrument(self, symbol: str) -> str:
        try:
            return dashed_instrument(symbol)
        except ValueError as e:
            raise ConfigurationError(str(e), exchange=self.name) from e

    def from_instrument(self, instrument: str) -> str:
        return undash_instrument(instrument)

    def build_endpoint(self, symbol: Optional[str] = None) -> str:
        if not symbol:
            raise ValueError("KuCoin polling is per symbol; a symbol is required")
        return self.poll_endpoints(symbol)[0]

    def parse(self, raw: Any) -> List[Trade]:
        # No push feed; a raw history response is the only message shape
        msg = self.decode(raw)
        if not isinstance(msg, dict):
            raise ParseError("Unexpected KuCoin frame", exchange=self.name)
        return []

    def poll_endpoints(self, symbol: str) -> List[str]:
        return [f"{self.REST_BASE}/api/v1/market/histories"]

    def poll_params(self, symbol: str) -> Dict[str, Any]:
        return {"symbol": self.to_instrument(symbol)}

    def parse_poll(self, payload: Any, symbol: str) -> List[Trade]:
        payload = self.decode(payload)
        if not isinstance(payload, dict) or not isinstance(payload.get("data"), list):
            raise ParseError("KuCoin histories response has no data list", exchange=self.name)

        trades = []
        for item in payload["data"]:
            if not isinstance(item, dict):
                continue
            trade = self._trade_from_item(item, symbol.upper())
            if trade:
                trades.append(trade)
        return trades

    def ticker_endpoints(self, symbol: str) -> List[str]:
        return [f"{self.REST_BASE}/api/v1/market/stats"]

    def ticker_params(self, symbol: str) -> Dict[str, Any]:
        return {"symbol": self.to_instrument(symbol)}

    def parse_ticker(self, payload: Any, symbol: str) -> MarketActivity:
        """
        Response Format:
            {"code": "200000", "data": {"symbol": "BTC-USDT", "vol": "10.3", "volValue": "456898.7", ...}}
        """
        try:
            return MarketActivity(
                exchange=self.name,
                symbol=symbol.upper(),
                quote_volume=float(payload["data"]["volValue"]),
                trade_count=None,
            )
        except (KeyError, TypeError, ValueError) as e:
            raise ParseError(f"Unexpected KuCoin stats payload for {symbol}: {e}", exchange=self.name) from e

    def _trade_from_item(self, item: Dict[str, Any], symbol: str) -> Optional[Trade]:
        side_raw = str(item.get("side", "")).lower()
        if side_raw not in ("buy", "sell"):
            return None

        ts_raw = item.get("time")
        try:
            ts = to_epoch_ms(ts_raw) if ts_raw is not None else current_utc_timestamp(milliseconds=True)
        except ValueError:
            return None

        return self.build_trade(
            native_id=item.get("sequence"),
            symbol=symbol,
            side=Side(side_raw),
            price=item.get("price"),
            quantity=item.get("size"),
            timestamp_ms=ts,
        )
