"""
WebSocket Transport

Thin wrapper around a ``websockets`` client connection that the Connection
Supervisor drives for push feeds. It only moves frames: it does not parse,
reconnect or track state. Failures surface as TransportError so the
supervisor can treat every exchange the same way.

Usage:
    transport = WebSocketTransport("wss://stream.bybit.com/v5/public/spot",
                                   keepalive_message='{"op": "ping"}')
    await transport.open()
    await transport.send_json({"op": "subscribe", "args": ["publicTrade.BTCUSDT"]})
    async for raw in transport:
        ...
    await transport.close()
"""

import asyncio
import json
from typing import Any, AsyncIterator, Optional

import websockets
from websockets.exceptions import ConnectionClosedError, ConnectionClosedOK, WebSocketException

from core.exceptions import TransportError
from core.logging import get_logger


class WebSocketTransport:
    """
    One push-feed socket.

    Attributes:
        url: WebSocket endpoint
        open_timeout: Seconds allowed for the opening handshake
        keepalive_message: Text frame sent every ``keepalive_interval`` seconds
            for exchanges that close idle sockets despite protocol pings
    """

    def __init__(
        self,
        url: str,
        open_timeout: float = 10.0,
        keepalive_message: Optional[str] = None,
        keepalive_interval: float = 20.0,
    ) -> None:
        self.url = url
        self.open_timeout = open_timeout
        self.keepalive_message = keepalive_message
        self.keepalive_interval = keepalive_interval
        self._ws = None
        self._keepalive_task: Optional[asyncio.Task] = None
        self._logger = get_logger(__name__)

    async def open(self) -> None:
        """
        Connect to ``url``.

        Raises:
            TransportError: If the handshake fails or times out
        """
        try:
            self._ws = await websockets.connect(self.url, open_timeout=self.open_timeout)
        except (OSError, asyncio.TimeoutError, WebSocketException) as e:
            raise TransportError(f"Connect to {self.url} failed: {e}") from e

        if self.keepalive_message:
            self._keepalive_task = asyncio.create_task(self._keepalive())

    async def send_json(self, payload: Any) -> None:
        if self._ws is None:
            raise TransportError(f"Socket to {self.url} is not open")
        try:
            await self._ws.send(json.dumps(payload))
        except WebSocketException as e:
            raise TransportError(f"Send to {self.url} failed: {e}") from e

    def __aiter__(self) -> AsyncIterator[Any]:
        return self._frames()

    async def _frames(self) -> AsyncIterator[Any]:
        if self._ws is None:
            raise TransportError(f"Socket to {self.url} is not open")
        try:
            async for raw in self._ws:
                yield raw
        except ConnectionClosedOK:
            return
        except ConnectionClosedError as e:
            raise TransportError(f"Socket to {self.url} closed abnormally: {e}") from e

    async def _keepalive(self) -> None:
        while self._ws is not None:
            await asyncio.sleep(self.keepalive_interval)
            try:
                await self._ws.send(self.keepalive_message)
            except WebSocketException as e:
                self._logger.debug(f"Keepalive to {self.url} failed: {e}")
                return

    async def close(self) -> None:
        """Close the socket. Safe to call multiple times."""
        if self._keepalive_task:
            self._keepalive_task.cancel()
            await asyncio.gather(self._keepalive_task, return_exceptions=True)
            self._keepalive_task = None

        if self._ws is not None:
            ws, self._ws = self._ws, None
            try:
                await ws.close()
            except WebSocketException as e:
                self._logger.debug(f"Close of {self.url} raised: {e}")
