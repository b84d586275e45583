"""
Exchange Adapter Interface — Abstract Contract for All Exchanges

This module defines the abstract base class every exchange adapter implements.
An adapter is a pure description of one exchange's wire protocol:
- Where to connect (push socket URL or REST poll URL)
- What to send after connecting (subscribe payload)
- How to turn a raw message into canonical Trade records
- How to read 24h market activity for the Threshold Calculator
- How canonical symbols map to exchange-native instrument ids

Adapters never open connections themselves. The Connection Supervisor owns the
sockets and poll timers and drives the adapter, which keeps every adapter
testable with plain dictionaries.

Design Philosophy:
    "Program to an interface, not an implementation"

    The supervisor and the Threshold Calculator only ever see ExchangeAdapter;
    the concrete variant is chosen by configuration through AdapterRegistry.

Example:
    class BybitAdapter(ExchangeAdapter):
        name = "bybit"
        supported_transports = ("push",)

        def build_endpoint(self, symbol=None):
            return "wss://stream.bybit.com/v5/public/spot"
        ...
"""

import json
import math
from abc import ABC, abstractmethod
from typing import Any, Dict, List, Optional, Sequence, Tuple

from pydantic import ValidationError

from core.exceptions import ConfigurationError, ParseError
from core.schemas import ExchangeId, MarketActivity, Side, Trade


class ExchangeAdapter(ABC):
    """
    Abstract Base Class for Exchange Adapters

    Class Attributes:
        name: Exchange identifier (lowercase, e.g. "binance")
        supported_transports: Transports this adapter can speak ("push", "poll")
        default_transport: Transport used when configuration does not override it
        per_symbol_connection: True if the exchange needs one connection per
            instrument (symbol encoded in the URL)
        keepalive_message: Text frame the exchange expects periodically to keep
            an idle socket open (None when protocol pings suffice)

    Abstract Methods (MUST be implemented by all adapters):
        - to_instrument / from_instrument: symbol mapping
        - build_endpoint: connection target
        - parse: raw push message -> trades
        - ticker_endpoints / parse_ticker: 24h activity

    Optional Methods (override when supported):
        - build_subscribe_payload: handshake message for push feeds
        - poll_endpoints / poll_params / parse_poll: REST poll transport
    """

    name: ExchangeId
    supported_transports: Tuple[str, ...] = ("push",)
    default_transport: str = "push"
    per_symbol_connection: bool = False
    keepalive_message: Optional[str] = None

    def __init__(self, transport: Optional[str] = None):
        transport = (transport or self.default_transport).lower()
        if transport not in self.supported_transports:
            raise ConfigurationError(
                f"{self.name} does not support '{transport}' transport. "
                f"Supported: {', '.join(self.supported_transports)}",
                exchange=self.name,
            )
        self.transport = transport

    # ============================================
    # Symbol Mapping
    # ============================================

    @abstractmethod
    def to_instrument(self, symbol: str) -> str:
        """
        Map a canonical symbol ("BTCUSDT") to the exchange-native id.

        Raises:
            ConfigurationError: If the symbol cannot be expressed on this exchange
        """
        ...

    @abstractmethod
    def from_instrument(self, instrument: str) -> str:
        """Map an exchange-native instrument id back to the canonical symbol."""
        ...

    # ============================================
    # Connection Description
    # ============================================

    @abstractmethod
    def build_endpoint(self, symbol: Optional[str] = None) -> str:
        """
        Connection target for this adapter's transport.

        Args:
            symbol: Canonical symbol; required for per-symbol connections and
                for poll transport, ignored otherwise

        Returns:
            WebSocket URL for push transport, primary REST URL for poll
        """
        ...

    def build_subscribe_payload(self, symbols: Sequence[str]) -> Optional[Dict[str, Any]]:
        """
        Handshake message sent right after connecting.

        Returns:
            The JSON-serializable payload, or None when no handshake is needed
            (subscription encoded in the URL, or poll transport)
        """
        return None

    @property
    def is_polling(self) -> bool:
        return self.transport == "poll"

    @property
    def connects_per_symbol(self) -> bool:
        """REST trade endpoints are per instrument, so polling always is too."""
        return self.per_symbol_connection or self.is_polling

    # ============================================
    # Message Parsing
    # ============================================

    @abstractmethod
    def parse(self, raw: Any) -> List[Trade]:
        """
        Decode one push message into canonical trades.

        Returns:
            Trades contained in the message; an empty list for anything that
            is not a trade event (heartbeats, subscription acks, book deltas)

        Raises:
            ParseError: If the message is not valid JSON or is structurally
                malformed
        """
        ...

    def poll_endpoints(self, symbol: str) -> List[str]:
        """Ordered REST URLs returning recent trades for ``symbol``."""
        raise NotImplementedError(f"{self.name} does not support polling")

    def poll_params(self, symbol: str) -> Dict[str, Any]:
        """Query parameters for the poll request."""
        return {}

    def parse_poll(self, payload: Any, symbol: str) -> List[Trade]:
        """Decode one REST poll response into canonical trades."""
        raise NotImplementedError(f"{self.name} does not support polling")

    # ============================================
    # Market Activity (Threshold Calculator input)
    # ============================================

    @abstractmethod
    def ticker_endpoints(self, symbol: str) -> List[str]:
        """Ordered candidate URLs for the 24h ticker of ``symbol``."""
        ...

    def ticker_params(self, symbol: str) -> Dict[str, Any]:
        """Query parameters for the 24h ticker request."""
        return {}

    @abstractmethod
    def parse_ticker(self, payload: Any, symbol: str) -> MarketActivity:
        """
        Read 24h quote volume (and trade count, when published).

        Raises:
            ParseError: If the payload does not contain the expected fields
        """
        ...

    # ============================================
    # Helper Methods
    # ============================================

    def decode(self, raw: Any) -> Any:
        """
        Decode a raw text/bytes frame into JSON (already-decoded values pass through).

        Raises:
            ParseError: On invalid JSON
        """
        if isinstance(raw, (bytes, bytearray)):
            raw = raw.decode("utf-8", errors="replace")
        if isinstance(raw, str):
            try:
                return json.loads(raw)
            except json.JSONDecodeError as e:
                raise ParseError(f"Invalid JSON from {self.name}: {raw[:100]!r}", exchange=self.name) from e
        return raw

    def qualify_id(self, native_id: Any) -> str:
        """Exchange-qualified trade id ("okx:130639474")."""
        return f"{self.name}:{native_id}"

    def synthetic_id(self, timestamp_ms: int, price: float, quantity: float, side: Side) -> str:
        """
        Stand-in id for messages that omit the trade id.

        Identical redeliveries map to the same id, so dedup still applies.
        """
        return self.qualify_id(f"{timestamp_ms}-{price:g}-{quantity:g}-{side.value}")

    def build_trade(
        self,
        native_id: Any,
        symbol: str,
        side: Side,
        price: Any,
        quantity: Any,
        timestamp_ms: int,
    ) -> Optional[Trade]:
        """
        Construct a Trade, returning None when a mandatory field is unusable.

        Price and quantity arrive as strings on every exchange; non-positive,
        non-finite or non-numeric values, and a record the Trade model rejects
        (pydantic ValidationError, e.g. an empty symbol), drop the single trade
        instead of the whole batch.
        """
        try:
            price_f = float(price)
            qty_f = float(quantity)
        except (TypeError, ValueError, OverflowError):
            return None
        if not (math.isfinite(price_f) and math.isfinite(qty_f)) or price_f <= 0 or qty_f <= 0:
            return None

        trade_id = self.qualify_id(native_id) if native_id not in (None, "") else \
            self.synthetic_id(timestamp_ms, price_f, qty_f, side)

        try:
            return Trade(
                id=trade_id,
                exchange=self.name,
                symbol=symbol,
                side=side,
                price=price_f,
                quantity=qty_f,
                timestamp_ms=timestamp_ms,
            )
        except ValidationError:
            return None

    def __repr__(self) -> str:
        return f"<{self.__class__.__name__}(name='{self.name}', transport='{self.transport}')>"
