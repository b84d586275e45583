"""
Whale Tracker Service

Background service that runs one EngineSession at a time and publishes its
output to the global event bus:

    whale_trades       {"type": "whale_trades", "trades": [...], "annotated": [...], "snapshot": {...}}
    connection_status  {"type": "connection_status", "key": "okx:*", "state": "streaming", ...}
    engine_errors      {"type": "engine_error", "kind": "market_data", "exchange": "bybit", ...}

Changing the tracked symbols builds a new session first (so an invalid symbol
is rejected without interrupting tracking), then swaps it in.
"""

import asyncio
from typing import Any, Callable, Dict, List, Optional

from core.config import Settings, settings as default_settings
from core.http_client import MarketDataClient
from core.logging import get_logger
from core.schemas import ConnectionStatus, EngineError, TrackerUpdate
from engine.session import EngineSession
from engine.threshold import ThresholdCalculator
from services.event_bus import (
    EventBus,
    TOPIC_CONNECTION_STATUS,
    TOPIC_ENGINE_ERRORS,
    TOPIC_WHALE_TRADES,
    bus,
)


class WhaleTrackerService:
    """
    Lifecycle wrapper around EngineSession.

    Attributes:
        config: Settings used for every session
        session: The current session (None before the first start)
    """

    def __init__(
        self,
        config: Optional[Settings] = None,
        event_bus: Optional[EventBus] = None,
        session_factory: Callable[..., EngineSession] = EngineSession,
    ) -> None:
        self._logger = get_logger(__name__)
        self.config = config or default_settings
        self._bus = event_bus or bus
        self._session_factory = session_factory
        self._symbols: List[str] = list(self.config.symbols_list)
        self._refresh_task: Optional[asyncio.Task] = None
        self.session: Optional[EngineSession] = None

    @property
    def running(self) -> bool:
        return self.session is not None and self.session.running

    @property
    def symbols(self) -> List[str]:
        return list(self._symbols)

    # ============================================
    # Lifecycle
    # ============================================

    async def start(self) -> None:
        if self.running:
            return
        self.session = self._build_session(self._symbols)
        await self.session.start()
        self._start_refresh()

    async def stop(self) -> None:
        if not self.running:
            return
        self._logger.info("Stopping WhaleTrackerService...")
        await self._stop_refresh()
        await self.session.stop()

    async def track(self, symbols: List[str]) -> List[str]:
        """
        Replace the tracked symbols and restart ingestion.

        Raises:
            ConfigurationError: If a symbol cannot be tracked; the current
                session keeps running
        """
        symbols = [s.strip().upper() for s in symbols if s.strip()]
        replacement = self._build_session(symbols)

        was_running = self.running
        if was_running:
            await self.stop()

        self._symbols = symbols
        self.session = replacement
        self._logger.info(f"Tracking symbols: {', '.join(symbols)}")

        if was_running:
            await self.session.start()
            self._start_refresh()
        return self.symbols

    def reset(self) -> Optional[TrackerUpdate]:
        if self.session is None:
            return None
        return self.session.reset()

    async def discover_symbols(self, limit: int = 10) -> List[str]:
        """Top symbols by 24h quote volume (static defaults when unreachable)."""
        async with MarketDataClient(timeout=self.config.request_timeout) as client:
            calculator = ThresholdCalculator({}, client, self.config)
            return await calculator.discover_symbols(limit)

    # ============================================
    # Periodic Threshold Refresh
    # ============================================

    def _start_refresh(self) -> None:
        interval = self.config.threshold_refresh_seconds
        if interval > 0 and self._refresh_task is None:
            self._refresh_task = asyncio.create_task(self._refresh_loop(interval), name="threshold_refresh")

    async def _stop_refresh(self) -> None:
        if self._refresh_task is not None:
            self._refresh_task.cancel()
            await asyncio.gather(self._refresh_task, return_exceptions=True)
            self._refresh_task = None

    async def _refresh_loop(self, interval: int) -> None:
        while self.running:
            await asyncio.sleep(interval)
            self._logger.debug("Refreshing whale cutoffs")
            await self.session.thresholds.recompute_all(self._symbols)

    # ============================================
    # Publication
    # ============================================

    def _build_session(self, symbols: List[str]) -> EngineSession:
        session = self._session_factory(config=self.config, symbols=symbols)
        session.on_update(self._publish_update)
        session.on_status(self._publish_status)
        session.on_error(self._publish_error)
        return session

    def _publish_update(self, update: TrackerUpdate) -> None:
        self._bus.publish_nowait(TOPIC_WHALE_TRADES, {"type": "whale_trades", **update.model_dump(mode="json")})

    def _publish_status(self, status: ConnectionStatus) -> None:
        self._bus.publish_nowait(TOPIC_CONNECTION_STATUS, {"type": "connection_status", **status.model_dump(mode="json")})

    def _publish_error(self, error: EngineError) -> None:
        self._bus.publish_nowait(TOPIC_ENGINE_ERRORS, {"type": "engine_error", **error.model_dump(mode="json")})

    # ============================================
    # Read Access
    # ============================================

    def snapshot(self) -> Dict[str, Any]:
        if self.session is None:
            return {}
        return self.session.aggregator.snapshot().model_dump(mode="json")


# Singleton access
_service: Optional[WhaleTrackerService] = None


def get_whale_tracker_service() -> WhaleTrackerService:
    global _service
    if _service is None:
        _service = WhaleTrackerService()
        get_logger(__name__).debug("Created WhaleTrackerService singleton")
    return _service
