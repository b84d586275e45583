"""
Normalized Data Schemas

This module defines Pydantic models for the canonical trade record and the
state the engine derives from it.

Key Principle:
    Regardless of which exchange a trade comes from (Binance, Bybit, Coinbase,
    OKX, KuCoin), the adapter normalizes it into the same Trade model. Every
    downstream component (dedup, threshold, classifier, correlation,
    aggregator) and every consumer of the event bus works with that one shape.

Models:
    - Trade: One executed trade, frozen once constructed
    - MarketActivity: 24h quote volume / trade count used for cutoffs
    - BucketStats: count + buy/sell notional for one exchange, coin or total
    - AggregateSnapshot: Statistics over the retained rolling window
    - TrackerUpdate: The single change event emitted per processing tick
    - ConnectionStatus: A supervisor state transition
    - EngineError: A non-fatal degradation reported on the error channel
"""

from enum import Enum
from typing import Dict, List, Literal, Optional
from pydantic import BaseModel, ConfigDict, Field, computed_field, field_validator

from core.utils.symbols import split_symbol


ExchangeId = Literal["binance", "bybit", "coinbase", "okx", "kucoin"]


class Side(str, Enum):
    """Aggressor side of a trade."""

    BUY = "buy"
    SELL = "sell"


class WhaleTier(str, Enum):
    """Severity of a whale trade relative to its exchange's cutoff."""

    MEDIUM = "medium"
    LARGE = "large"
    MEGA = "mega"


class ConnectionState(str, Enum):
    """States of one supervised connection."""

    DISCONNECTED = "disconnected"
    CONNECTING = "connecting"
    SUBSCRIBED = "subscribed"
    STREAMING = "streaming"
    POLLING = "polling"


# ============================================
# Trade Schema
# ============================================

class Trade(BaseModel):
    """
    Canonical Trade Record

    Created by an exchange adapter's parse step and never mutated afterwards.
    The pipeline attaches the whale tier and correlation partner by building
    a tagged copy (``trade.model_copy(update=...)``).

    Attributes:
        id: Exchange-qualified unique id ("binance:123456")
        exchange: Source exchange
        symbol: Canonical symbol in uppercase ("BTCUSDT")
        side: Aggressor side
        price: Execution price (> 0)
        quantity: Base asset quantity (> 0)
        timestamp_ms: Exchange timestamp in milliseconds since epoch
        whale_tier: Severity tier, None until classified
        correlated_with: Exchange of a confirming trade, if any

    Computed:
        notional_value: price x quantity (quote currency)
        coin: Base asset ("BTC")

    Example:
        >>> trade = Trade(
        ...     id="bybit:9f1c",
        ...     exchange="bybit",
        ...     symbol="BTCUSDT",
        ...     side=Side.BUY,
        ...     price=50000.0,
        ...     quantity=0.5,
        ...     timestamp_ms=1704110400000,
        ... )
        >>> trade.notional_value
        25000.0
    """

    model_config = ConfigDict(frozen=True)

    id: str = Field(..., min_length=1, description="Exchange-qualified unique trade id")
    exchange: ExchangeId = Field(..., description="Source exchange")
    symbol: str = Field(..., min_length=1, description="Canonical symbol", examples=["BTCUSDT"])
    side: Side = Field(..., description="Aggressor side")
    price: float = Field(..., gt=0, description="Execution price")
    quantity: float = Field(..., gt=0, description="Trade quantity in base asset")
    timestamp_ms: int = Field(..., ge=0, description="Trade time in ms since epoch")
    whale_tier: Optional[WhaleTier] = Field(None, description="Severity tier once classified")
    correlated_with: Optional[ExchangeId] = Field(None, description="Exchange of a confirming trade")

    @field_validator("symbol")
    @classmethod
    def validate_symbol(cls, v: str) -> str:
        """Ensure symbol is uppercase"""
        return v.upper()

    @computed_field
    @property
    def notional_value(self) -> float:
        return self.price * self.quantity

    @computed_field
    @property
    def coin(self) -> str:
        return split_symbol(self.symbol)[0]


# ============================================
# Market Activity Schema
# ============================================

class MarketActivity(BaseModel):
    """
    24h activity for one symbol on one exchange.

    trade_count is None for exchanges whose ticker endpoint does not report
    it; such activity cannot produce an average trade size.
    """

    exchange: ExchangeId
    symbol: str
    quote_volume: float = Field(..., ge=0, description="24h volume in quote currency")
    trade_count: Optional[int] = Field(None, ge=0, description="24h number of trades")


# ============================================
# Aggregate Statistics
# ============================================

class BucketStats(BaseModel):
    """Count and buy/sell notional for one partition of the rolling window."""

    count: int = 0
    buy_volume: float = 0.0
    sell_volume: float = 0.0

    @computed_field
    @property
    def net_flow(self) -> float:
        return self.buy_volume - self.sell_volume

    @property
    def total_volume(self) -> float:
        return self.buy_volume + self.sell_volume


class AggregateSnapshot(BaseModel):
    """
    Statistics over the retained rolling window.

    Rebuilt by a full scan after every processing tick; the window is small
    so the scan is cheap.
    """

    totals: BucketStats = Field(default_factory=BucketStats)
    by_exchange: Dict[str, BucketStats] = Field(default_factory=dict)
    by_coin: Dict[str, BucketStats] = Field(default_factory=dict)
    window_size: int = 0


class TrackerUpdate(BaseModel):
    """
    Change event emitted once per processing tick.

    Attributes:
        trades: Whale trades admitted during the tick (newest first)
        annotated: Previously emitted trades whose correlation tag changed
        snapshot: Statistics after applying the tick
    """

    trades: List[Trade] = Field(default_factory=list)
    annotated: List[Trade] = Field(default_factory=list)
    snapshot: AggregateSnapshot = Field(default_factory=AggregateSnapshot)


# ============================================
# Observability Events
# ============================================

class ConnectionStatus(BaseModel):
    """A supervised connection changed state."""

    key: str
    exchange: ExchangeId
    symbols: List[str]
    state: ConnectionState
    detail: Optional[str] = None
    at_ms: int


class EngineError(BaseModel):
    """A non-fatal degradation (stale cutoff, dropped feed)."""

    kind: Literal["transport", "parse", "market_data", "configuration"]
    exchange: Optional[str] = None
    symbol: Optional[str] = None
    message: str
    at_ms: int
