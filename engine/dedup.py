"""
Trade Deduplication

Exchanges redeliver trades: after a reconnect, in "last_match" replays, and
whenever a poll cycle overlaps the previous one. The Deduplicator remembers
the most recent trade ids per exchange and rejects repeats.
"""

from collections import OrderedDict
from typing import Dict

from core.logging import get_logger


class Deduplicator:
    """
    Per-exchange, insertion-ordered, bounded set of seen trade ids.

    Attributes:
        cap: Maximum ids remembered per exchange; the oldest are evicted first

    Example:
        >>> dedup = Deduplicator(cap=500)
        >>> dedup.admit("binance", "binance:1")
        True
        >>> dedup.admit("binance", "binance:1")
        False
    """

    def __init__(self, cap: int = 500) -> None:
        if cap <= 0:
            raise ValueError("Dedup cap must be positive")
        self.cap = cap
        self._seen: Dict[str, "OrderedDict[str, None]"] = {}
        self._logger = get_logger(__name__)

    def admit(self, exchange: str, trade_id: str) -> bool:
        """
        Record ``trade_id`` and report whether it was new.

        Returns:
            False if the id is already in the exchange's window, else True
        """
        window = self._seen.setdefault(exchange, OrderedDict())
        if trade_id in window:
            self._logger.debug(f"Dropped duplicate {trade_id}")
            return False

        window[trade_id] = None
        while len(window) > self.cap:
            window.popitem(last=False)
        return True

    def size(self, exchange: str) -> int:
        return len(self._seen.get(exchange, ()))

    def clear(self) -> None:
        self._seen.clear()
