"""
Cross-Exchange Correlation

A whale trade is "confirmed" when another exchange printed a whale trade on
the same coin, in the same direction, at nearly the same time and price.
Confirmation across venues suggests a single actor splitting an order or
arbitrage flow, and is surfaced to consumers through Trade.correlated_with.

Match rules (against every trade still in the window):
    - different exchange
    - same coin and same side
    - |timestamp difference| <= span_ms
    - |price difference| / partner price <= price_tolerance

The window is anchored to the highest trade timestamp seen so far, not to
the local clock, so a burst of late deliveries still correlates correctly.
"""

from collections import deque
from typing import Deque, Optional

from core.logging import get_logger
from core.schemas import Trade


class CorrelationDetector:
    """
    Ordered buffer of recent whale trades.

    Attributes:
        span_ms: How far back (in trade time) a partner may be
        price_tolerance: Max relative price distance (0.0015 = 0.15%)

    Example:
        >>> detector = CorrelationDetector(span_ms=3000, price_tolerance=0.0015)
        >>> detector.check_and_record(binance_buy)    # None, nothing to match yet
        >>> detector.check_and_record(bybit_buy)      # returns binance_buy
    """

    def __init__(self, span_ms: int = 3000, price_tolerance: float = 0.0015) -> None:
        self.span_ms = span_ms
        self.price_tolerance = price_tolerance
        self._window: Deque[Trade] = deque()
        self._reference_ms = 0
        self._logger = get_logger(__name__)

    def check_and_record(self, trade: Trade) -> Optional[Trade]:
        """
        Find the first partner of ``trade`` in the window, then record it.

        Returns:
            The partner trade, or None
        """
        self._reference_ms = max(self._reference_ms, trade.timestamp_ms)
        self._prune()

        partner = None
        for candidate in self._window:
            if self._matches(trade, candidate):
                partner = candidate
                break

        self._window.append(trade)

        if partner is not None:
            self._logger.debug(f"Correlated {trade.id} with {partner.id}")
        return partner

    def replace(self, trade: Trade) -> None:
        """Swap the buffered trade with the same id (after tagging it)."""
        for i, existing in enumerate(self._window):
            if existing.id == trade.id:
                self._window[i] = trade
                return

    def _matches(self, trade: Trade, other: Trade) -> bool:
        if other.exchange == trade.exchange:
            return False
        if other.side != trade.side or other.coin != trade.coin:
            return False
        if abs(other.timestamp_ms - trade.timestamp_ms) > self.span_ms:
            return False
        return abs(other.price - trade.price) / other.price <= self.price_tolerance

    def _prune(self) -> None:
        cutoff = self._reference_ms - self.span_ms
        # Arrival order is not time order, so scan rather than pop from the left
        if any(t.timestamp_ms < cutoff for t in self._window):
            self._window = deque(t for t in self._window if t.timestamp_ms >= cutoff)

    def __len__(self) -> int:
        return len(self._window)

    def clear(self) -> None:
        self._window.clear()
        self._reference_ms = 0
