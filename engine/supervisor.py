"""
Connection Supervisor

Owns every exchange connection of a tracking session and runs the state
machine that keeps them alive:

    disconnected -> connecting -> subscribed -> streaming (push)
                                            -> polling   (poll)
    any state    -> disconnected on error/close, reconnect after a fixed delay

Event Channel:
    Reader tasks, poll fetch tasks and timers never touch connection state.
    They post tagged events (TransportOpened, MessageReceived, TransportClosed,
    TransportErrored, TimerFired) onto a single asyncio.Queue. One consumer
    task drains the queue and applies each event through the synchronous
    ``handle``; all mutation happens there, so no locks are needed.

    Every connect attempt bumps the connection's generation. Events from an
    older generation (a reader that was already replaced) are ignored.

Batching:
    The consumer drains every event already queued before handing the trades
    decoded in that drain ("tick") to ``on_trades`` as one batch.

Reconnection:
    A fixed delay (ws_reconnect_delay, default 5s), no backoff. A pending
    reconnect timer or an in-flight connect attempt makes further reconnect
    requests no-ops.

Usage:
    supervisor = ConnectionSupervisor(adapters, ["BTCUSDT"], client,
                                      on_trades=session.process_batch)
    await supervisor.start()
    ...
    await supervisor.stop()
"""

import asyncio
from dataclasses import dataclass, field
from typing import Any, Callable, Dict, List, Literal, Optional, Union

from core.config import Settings, settings as default_settings
from core.exceptions import ConfigurationError, ParseError
from core.exchange_interface import ExchangeAdapter
from core.http_client import MarketDataClient
from core.logging import get_logger, log_connection_state, log_websocket_event
from core.schemas import ConnectionState, ConnectionStatus, EngineError, Trade
from core.utils.time import current_utc_timestamp
from engine.transport import WebSocketTransport


# ============================================
# Inbound Events
# ============================================

@dataclass
class TransportOpened:
    key: str
    generation: int


@dataclass
class MessageReceived:
    key: str
    generation: int
    raw: Any


@dataclass
class TransportClosed:
    key: str
    generation: int
    reason: Optional[str] = None


@dataclass
class TransportErrored:
    key: str
    generation: int
    error: str


@dataclass
class TimerFired:
    key: str
    generation: int
    purpose: Literal["reconnect", "poll"]


SupervisorEvent = Union[TransportOpened, MessageReceived, TransportClosed, TransportErrored, TimerFired]


# ============================================
# Connection Record
# ============================================

@dataclass
class Connection:
    """One logical connection: an exchange, or an exchange and a symbol."""

    key: str
    adapter: ExchangeAdapter
    symbols: List[str]
    state: ConnectionState = ConnectionState.DISCONNECTED
    generation: int = 0
    detail: Optional[str] = None
    task: Optional[asyncio.Task] = None
    reconnect_timer: Optional[asyncio.TimerHandle] = None
    poll_timer: Optional[asyncio.TimerHandle] = None
    messages: int = 0
    last_message_ms: Optional[int] = field(default=None)

    def status(self) -> ConnectionStatus:
        return ConnectionStatus(
            key=self.key,
            exchange=self.adapter.name,
            symbols=list(self.symbols),
            state=self.state,
            detail=self.detail,
            at_ms=current_utc_timestamp(milliseconds=True),
        )


TransportFactory = Callable[[str, ExchangeAdapter], Any]


def default_transport_factory(url: str, adapter: ExchangeAdapter) -> WebSocketTransport:
    return WebSocketTransport(url, keepalive_message=adapter.keepalive_message)


class ConnectionSupervisor:
    """
    Supervises the connections of one tracking session.

    Attributes:
        adapters: Adapters by exchange name
        symbols: Canonical symbols tracked on every exchange
        client: MarketDataClient used by poll transports
        connections: Connection records by key ("okx:*", "binance:BTCUSDT")

    Callbacks:
        on_trades(trades): Trades decoded in one tick, in delivery order
        on_status(status): Every state change
        on_error(error): Non-fatal transport/parse failures
    """

    def __init__(
        self,
        adapters: Dict[str, ExchangeAdapter],
        symbols: List[str],
        client: MarketDataClient,
        on_trades: Callable[[List[Trade]], Any],
        on_status: Optional[Callable[[ConnectionStatus], None]] = None,
        on_error: Optional[Callable[[EngineError], None]] = None,
        config: Optional[Settings] = None,
        transport_factory: TransportFactory = default_transport_factory,
    ) -> None:
        self.adapters = adapters
        self.symbols = [s.upper() for s in symbols]
        self.client = client
        self.on_trades = on_trades
        self.on_status = on_status
        self.on_error = on_error
        self.config = config or default_settings
        self.transport_factory = transport_factory

        self._logger = get_logger(__name__)
        self._queue: Optional[asyncio.Queue] = None
        self._consumer: Optional[asyncio.Task] = None
        self._running = False

        self.connections: Dict[str, Connection] = self._plan()

    def _plan(self) -> Dict[str, Connection]:
        """
        Lay out connections and validate every symbol against its adapter.

        Raises:
            ConfigurationError: If no symbols are given or a symbol cannot be
                mapped to an exchange instrument
        """
        if not self.symbols:
            raise ConfigurationError("At least one symbol must be tracked")

        connections: Dict[str, Connection] = {}
        for name, adapter in self.adapters.items():
            owners: Dict[str, str] = {}
            for symbol in self.symbols:
                owners.setdefault(adapter.to_instrument(symbol), symbol)

            if adapter.connects_per_symbol:
                for instrument, symbol in owners.items():
                    skipped = [s for s in self.symbols if s != symbol and adapter.to_instrument(s) == instrument]
                    if skipped:
                        self._logger.warning(
                            f"{name}: {', '.join(skipped)} share {instrument} with {symbol}; one connection"
                        )
                    key = f"{name}:{symbol}"
                    connections[key] = Connection(key=key, adapter=adapter, symbols=[symbol])
            else:
                key = f"{name}:*"
                connections[key] = Connection(key=key, adapter=adapter, symbols=list(self.symbols))
        return connections

    @property
    def running(self) -> bool:
        return self._running

    # ============================================
    # Lifecycle
    # ============================================

    async def start(self) -> None:
        if self._running:
            return
        self._running = True
        self._queue = asyncio.Queue()
        self._consumer = asyncio.create_task(self._consume(), name="supervisor_consumer")

        self._logger.info(
            f"Starting {len(self.connections)} connection(s) for {', '.join(self.symbols)}"
        )
        for conn in self.connections.values():
            self._connect(conn)

    async def stop(self) -> None:
        """Cancel every timer and task, close transports, mark all disconnected."""
        if not self._running:
            return
        self._running = False
        self._logger.info("Stopping connection supervisor...")

        tasks = []
        for conn in self.connections.values():
            self._cancel_timers(conn)
            if conn.task is not None:
                conn.task.cancel()
                tasks.append(conn.task)
                conn.task = None

        if self._consumer is not None:
            self._consumer.cancel()
            tasks.append(self._consumer)
            self._consumer = None

        await asyncio.gather(*tasks, return_exceptions=True)
        self._queue = None

        for conn in self.connections.values():
            conn.generation += 1
            self._set_state(conn, ConnectionState.DISCONNECTED, "stopped")

    def post(self, event: SupervisorEvent) -> None:
        """Queue an event for the consumer; ignored once stopped."""
        if self._running and self._queue is not None:
            self._queue.put_nowait(event)

    def statuses(self) -> List[ConnectionStatus]:
        return [conn.status() for conn in self.connections.values()]

    # ============================================
    # Consumer
    # ============================================

    async def _consume(self) -> None:
        while True:
            event = await self._queue.get()
            events = [event]
            while not self._queue.empty():
                events.append(self._queue.get_nowait())

            trades: List[Trade] = []
            for ev in events:
                try:
                    trades.extend(self.handle(ev))
                except Exception as e:
                    self._logger.error(f"Dropped {type(ev).__name__} on {ev.key}: {e}", exc_info=True)
                    conn = self.connections.get(ev.key)
                    if conn is not None:
                        self._report("parse", conn, f"{type(e).__name__}: {e}")

            if trades:
                try:
                    self.on_trades(trades)
                except Exception as e:
                    self._logger.error(f"Trade batch handler failed: {e}", exc_info=True)

    def handle(self, event: SupervisorEvent) -> List[Trade]:
        """
        Apply one event to connection state.

        Returns:
            Trades decoded from the event (empty for non-message events)
        """
        conn = self.connections.get(event.key)
        if conn is None or not self._running or event.generation != conn.generation:
            return []

        if isinstance(event, TransportOpened):
            if conn.state == ConnectionState.CONNECTING:
                self._set_state(conn, ConnectionState.SUBSCRIBED)
            return []

        if isinstance(event, MessageReceived):
            return self._on_message(conn, event.raw)

        if isinstance(event, (TransportClosed, TransportErrored)):
            reason = event.error if isinstance(event, TransportErrored) else (event.reason or "closed")
            self._on_disconnect(conn, reason)
            return []

        if isinstance(event, TimerFired):
            if event.purpose == "reconnect":
                conn.reconnect_timer = None
                if conn.state == ConnectionState.DISCONNECTED:
                    self._connect(conn)
            elif event.purpose == "poll":
                conn.poll_timer = None
                if conn.state == ConnectionState.POLLING:
                    self._start_fetch(conn)
            return []

        return []

    def _on_message(self, conn: Connection, raw: Any) -> List[Trade]:
        adapter = conn.adapter
        conn.messages += 1
        conn.last_message_ms = current_utc_timestamp(milliseconds=True)

        if adapter.is_polling:
            conn.task = None
            self._schedule_poll(conn, self.config.poll_interval_seconds)
        elif conn.state == ConnectionState.SUBSCRIBED:
            self._set_state(conn, ConnectionState.STREAMING)

        try:
            if adapter.is_polling:
                return adapter.parse_poll(raw, conn.symbols[0])
            return adapter.parse(raw)
        except ParseError as e:
            self._logger.warning(f"Dropped malformed message on {conn.key}: {e}")
            self._report("parse", conn, str(e))
            return []

    def _on_disconnect(self, conn: Connection, reason: str) -> None:
        if conn.state != ConnectionState.DISCONNECTED:
            self._cancel_timers(conn)
            self._set_state(conn, ConnectionState.DISCONNECTED, reason)
            self._report("transport", conn, reason)
        self.schedule_reconnect(conn.key)

    # ============================================
    # Connecting
    # ============================================

    def _connect(self, conn: Connection) -> None:
        conn.generation += 1
        self._set_state(conn, ConnectionState.CONNECTING)

        if conn.adapter.is_polling:
            # Nothing to hand-shake with; polling starts at once
            self._set_state(conn, ConnectionState.SUBSCRIBED)
            self._set_state(conn, ConnectionState.POLLING)
            self._start_fetch(conn)
            return

        url = conn.adapter.build_endpoint(conn.symbols[0] if conn.adapter.connects_per_symbol else None)
        conn.task = asyncio.create_task(
            self._read_socket(conn.key, conn.generation, url, conn.adapter, list(conn.symbols)),
            name=f"ws_{conn.key}",
        )

    async def _read_socket(
        self, key: str, generation: int, url: str, adapter: ExchangeAdapter, symbols: List[str]
    ) -> None:
        transport = self.transport_factory(url, adapter)
        try:
            await transport.open()
            payload = adapter.build_subscribe_payload(symbols)
            if payload is not None:
                await transport.send_json(payload)
            log_websocket_event(adapter.name, "connected", ", ".join(symbols))
            self.post(TransportOpened(key, generation))

            async for raw in transport:
                self.post(MessageReceived(key, generation, raw))

            self.post(TransportClosed(key, generation, "closed by server"))
        except asyncio.CancelledError:
            raise
        except Exception as e:
            log_websocket_event(adapter.name, "error", ", ".join(symbols), str(e))
            self.post(TransportErrored(key, generation, str(e)))
        finally:
            await transport.close()

    # ============================================
    # Polling
    # ============================================

    def _start_fetch(self, conn: Connection) -> None:
        conn.task = asyncio.create_task(
            self._fetch(conn.key, conn.generation, conn.adapter, conn.symbols[0]),
            name=f"poll_{conn.key}",
        )

    async def _fetch(self, key: str, generation: int, adapter: ExchangeAdapter, symbol: str) -> None:
        try:
            payload = await self.client.get_first_json(
                adapter.poll_endpoints(symbol), adapter.poll_params(symbol)
            )
        except asyncio.CancelledError:
            raise
        except Exception as e:
            self.post(TransportErrored(key, generation, f"poll failed: {e}"))
            return
        self.post(MessageReceived(key, generation, payload))

    def _schedule_poll(self, conn: Connection, delay: float) -> None:
        if conn.poll_timer is not None:
            return
        loop = asyncio.get_running_loop()
        conn.poll_timer = loop.call_later(
            delay, self.post, TimerFired(conn.key, conn.generation, "poll")
        )

    # ============================================
    # Reconnection
    # ============================================

    def schedule_reconnect(self, key: str) -> bool:
        """
        Schedule a reconnect of ``key`` after the fixed delay.

        Returns:
            False if a reconnect is already pending or in flight, or the
            supervisor is stopped
        """
        conn = self.connections.get(key)
        if conn is None or not self._running:
            return False
        if conn.reconnect_timer is not None or conn.state == ConnectionState.CONNECTING:
            return False

        delay = self.config.ws_reconnect_delay
        loop = asyncio.get_running_loop()
        conn.reconnect_timer = loop.call_later(
            delay, self.post, TimerFired(key, conn.generation, "reconnect")
        )
        self._logger.info(f"{key} reconnecting in {delay:g}s")
        return True

    def _cancel_timers(self, conn: Connection) -> None:
        for attr in ("reconnect_timer", "poll_timer"):
            timer = getattr(conn, attr)
            if timer is not None:
                timer.cancel()
                setattr(conn, attr, None)

    # ============================================
    # Status & Error Reporting
    # ============================================

    def _set_state(self, conn: Connection, state: ConnectionState, detail: Optional[str] = None) -> None:
        if conn.state == state and conn.detail == detail:
            return
        old = conn.state
        conn.state = state
        conn.detail = detail
        log_connection_state(conn.key, old.value, state.value, detail)
        if self.on_status:
            self.on_status(conn.status())

    def _report(self, kind: str, conn: Connection, message: str) -> None:
        if self.on_error:
            self.on_error(EngineError(
                kind=kind,
                exchange=conn.adapter.name,
                symbol=conn.symbols[0] if len(conn.symbols) == 1 else None,
                message=message,
                at_ms=current_utc_timestamp(milliseconds=True),
            ))
