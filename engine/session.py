"""
Engine Session

EngineSession is the single owner of everything one tracking session needs:
the adapters, the REST client, the Deduplicator, the ThresholdCalculator,
the CorrelationDetector, the Aggregator and the ConnectionSupervisor.
Starting tracking creates one; changing symbols replaces it.

Pipeline (per tick, trades in delivery order):
    1. Deduplicator.admit         drop redelivered trades
    2. cutoff_for(exchange, sym)  drop trades below the whale cutoff
    3. classify                   tag medium / large / mega
    4. CorrelationDetector        tag correlated_with, back-tag the partner
    5. Aggregator.add_batch       update the rolling window and statistics
    6. on_update listeners        one TrackerUpdate per tick

Usage:
    session = EngineSession(symbols=["BTCUSDT"])
    session.on_update(lambda update: print(update.snapshot.totals))
    await session.start()
    ...
    await session.stop()
"""

from typing import Callable, Dict, List, Optional

from core.config import Settings, settings as default_settings
from core.exchange_interface import ExchangeAdapter
from core.exchange_manager import get_registry
from core.http_client import MarketDataClient
from core.logging import get_logger
from core.schemas import ConnectionStatus, EngineError, Trade, TrackerUpdate
from engine.aggregator import Aggregator
from engine.classifier import classify
from engine.correlation import CorrelationDetector
from engine.dedup import Deduplicator
from engine.supervisor import ConnectionSupervisor, TransportFactory, default_transport_factory
from engine.threshold import ThresholdCalculator


class EngineSession:
    """
    One tracking session.

    Attributes:
        config: Settings holding the engine profile
        symbols: Canonical symbols tracked on every enabled exchange
        adapters: Adapters by exchange name
        dedup, thresholds, correlation, aggregator, supervisor: pipeline parts

    Example:
        >>> session = EngineSession(symbols=["BTCUSDT", "ETHUSDT"])
        >>> session.on_update(handle_update)
        >>> session.on_status(handle_status)
        >>> await session.start()
    """

    def __init__(
        self,
        config: Optional[Settings] = None,
        symbols: Optional[List[str]] = None,
        adapters: Optional[Dict[str, ExchangeAdapter]] = None,
        client: Optional[MarketDataClient] = None,
        transport_factory: TransportFactory = default_transport_factory,
    ) -> None:
        self.config = config or default_settings
        self.symbols = [s.upper() for s in (symbols or self.config.symbols_list)]
        self.adapters = adapters if adapters is not None else get_registry().build_from_settings(self.config)
        self.client = client or MarketDataClient(timeout=self.config.request_timeout)

        self._update_listeners: List[Callable[[TrackerUpdate], None]] = []
        self._status_listeners: List[Callable[[ConnectionStatus], None]] = []
        self._error_listeners: List[Callable[[EngineError], None]] = []
        self._running = False
        self._logger = get_logger(__name__)

        self.dedup = Deduplicator(cap=self.config.dedup_cap)
        self.thresholds = ThresholdCalculator(
            self.adapters, self.client, self.config, on_error=self._emit_error
        )
        self.correlation = CorrelationDetector(
            span_ms=self.config.correlation_span_ms,
            price_tolerance=self.config.correlation_price_tolerance,
        )
        self.aggregator = Aggregator(window_size=self.config.rolling_window_size)
        self.supervisor = ConnectionSupervisor(
            self.adapters,
            self.symbols,
            self.client,
            on_trades=self.process_batch,
            on_status=self._emit_status,
            on_error=self._emit_error,
            config=self.config,
            transport_factory=transport_factory,
        )

    # ============================================
    # Listeners
    # ============================================

    def on_update(self, callback: Callable[[TrackerUpdate], None]) -> None:
        self._update_listeners.append(callback)

    def on_status(self, callback: Callable[[ConnectionStatus], None]) -> None:
        self._status_listeners.append(callback)

    def on_error(self, callback: Callable[[EngineError], None]) -> None:
        self._error_listeners.append(callback)

    def _notify(self, listeners: List[Callable], payload) -> None:
        for callback in listeners:
            try:
                callback(payload)
            except Exception as e:
                self._logger.error(f"Listener {callback!r} failed: {e}", exc_info=True)

    def _emit_status(self, status: ConnectionStatus) -> None:
        self._notify(self._status_listeners, status)

    def _emit_error(self, error: EngineError) -> None:
        self._notify(self._error_listeners, error)

    # ============================================
    # Lifecycle
    # ============================================

    @property
    def running(self) -> bool:
        return self._running

    async def start(self) -> None:
        """Open the REST client, compute cutoffs, connect every feed."""
        if self._running:
            return
        self._running = True
        self._logger.info(
            f"Starting session: {', '.join(self.adapters)} | {', '.join(self.symbols)}"
        )
        await self.client.open()
        if not self._running:
            # stop() ran while the client was opening
            await self.client.close()
            return
        await self.thresholds.recompute_all(self.symbols)
        if not self._running:
            self._logger.info("Session stopped before feeds connected")
            return
        await self.supervisor.start()

    async def stop(self) -> None:
        """Stop every connection and timer and clear session state. Idempotent."""
        if not self._running:
            return
        self._running = False
        self._logger.info("Stopping session...")
        await self.supervisor.stop()
        await self.client.close()
        self.dedup.clear()
        self.correlation.clear()
        self.aggregator.clear()

    def reset(self) -> TrackerUpdate:
        """Clear rolling state without touching connections."""
        self.dedup.clear()
        self.correlation.clear()
        self.aggregator.clear()
        update = TrackerUpdate(snapshot=self.aggregator.snapshot())
        self._notify(self._update_listeners, update)
        self._logger.info("Session state reset")
        return update

    # ============================================
    # Pipeline
    # ============================================

    def process_batch(self, trades: List[Trade]) -> Optional[TrackerUpdate]:
        """
        Run one tick of trades through the pipeline.

        Returns:
            The emitted TrackerUpdate, or None when nothing changed
        """
        admitted: List[Trade] = []
        annotated: Dict[str, Trade] = {}

        for trade in trades:
            if not self.dedup.admit(trade.exchange, trade.id):
                continue

            cutoff = self.thresholds.cutoff_for(trade.exchange, trade.symbol)
            if trade.notional_value < cutoff:
                continue

            tier = classify(
                trade.notional_value,
                cutoff,
                self.config.tier_medium_max_multiple,
                self.config.tier_large_max_multiple,
            )
            tagged = trade.model_copy(update={"whale_tier": tier})

            partner = self.correlation.check_and_record(tagged)
            if partner is not None:
                tagged = tagged.model_copy(update={"correlated_with": partner.exchange})
                self.correlation.replace(tagged)
                if partner.correlated_with is None:
                    self._back_annotate(partner, trade.exchange, admitted, annotated)

            admitted.append(tagged)
            self._logger.info(
                f"Whale {tier.value}: {trade.exchange} {trade.side.value} {trade.symbol} "
                f"${trade.notional_value:,.0f} @ {trade.price:g}"
                + (f" (with {partner.exchange})" if partner is not None else "")
            )

        if not admitted and not annotated:
            return None

        snapshot = self.aggregator.add_batch(admitted) if admitted else self.aggregator.snapshot()
        update = TrackerUpdate(
            trades=list(reversed(admitted)),
            annotated=list(annotated.values()),
            snapshot=snapshot,
        )
        self._notify(self._update_listeners, update)
        return update

    def _back_annotate(
        self,
        partner: Trade,
        exchange: str,
        admitted: List[Trade],
        annotated: Dict[str, Trade],
    ) -> None:
        tagged = partner.model_copy(update={"correlated_with": exchange})
        self.correlation.replace(tagged)

        for i, pending in enumerate(admitted):
            if pending.id == tagged.id:
                admitted[i] = tagged
                return

        if self.aggregator.replace(tagged):
            annotated[tagged.id] = tagged
