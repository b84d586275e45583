"""
Rolling Whale Window

Keeps the most recent N whale trades (newest first) and the statistics
consumers display: totals plus per-exchange and per-coin buckets of count,
buy volume, sell volume and net flow.

Statistics are rebuilt by a full scan after every change so they always
equal the sums over the retained trades; an evicted trade stops counting
the moment it leaves the window.
"""

from typing import Iterable, List

from core.schemas import AggregateSnapshot, BucketStats, Side, Trade


def _add(bucket: BucketStats, trade: Trade) -> None:
    bucket.count += 1
    if trade.side == Side.BUY:
        bucket.buy_volume += trade.notional_value
    else:
        bucket.sell_volume += trade.notional_value


class Aggregator:
    """
    Capped rolling log of whale trades.

    Example:
        >>> agg = Aggregator(window_size=100)
        >>> snap = agg.add_batch([buy_100, sell_40, buy_10])
        >>> snap.totals.buy_volume, snap.totals.sell_volume, snap.totals.count
        (110.0, 40.0, 3)
    """

    def __init__(self, window_size: int = 100) -> None:
        if window_size <= 0:
            raise ValueError("Rolling window size must be positive")
        self.window_size = window_size
        self._trades: List[Trade] = []
        self._snapshot = AggregateSnapshot()

    def add_batch(self, trades: Iterable[Trade]) -> AggregateSnapshot:
        """
        Insert a tick's trades at the head, evict from the tail, rescan.

        ``trades`` is in delivery order; the last delivered ends up first.
        """
        for trade in trades:
            self._trades.insert(0, trade)
        del self._trades[self.window_size:]
        return self._rebuild()

    def replace(self, trade: Trade) -> bool:
        """
        Swap the retained trade with the same id for ``trade``.

        Returns:
            False if no retained trade has that id (already evicted)
        """
        for i, existing in enumerate(self._trades):
            if existing.id == trade.id:
                self._trades[i] = trade
                self._rebuild()
                return True
        return False

    def trades(self) -> List[Trade]:
        """Retained trades, newest first."""
        return list(self._trades)

    def snapshot(self) -> AggregateSnapshot:
        return self._snapshot

    def clear(self) -> None:
        self._trades.clear()
        self._snapshot = AggregateSnapshot()

    def _rebuild(self) -> AggregateSnapshot:
        snap = AggregateSnapshot(window_size=len(self._trades))
        for trade in self._trades:
            _add(snap.totals, trade)
            _add(snap.by_exchange.setdefault(trade.exchange, BucketStats()), trade)
            _add(snap.by_coin.setdefault(trade.coin, BucketStats()), trade)
        self._snapshot = snap
        return snap
