"""Transport abstraction and the WebSocket client transport.

The connection manager only talks to the Transport and TransportListener
protocols below, so its state machine can be driven in tests without a
real socket. WebSocketTransport is the production implementation on top
of the websockets package.
"""

from __future__ import annotations

import asyncio
import contextlib
import logging
from typing import Any, Protocol

import websockets

logger = logging.getLogger(__name__)


class TransportListener(Protocol):
    """Receiver of transport lifecycle events.

    Every callback gets the transport that raised it, so listeners can
    ignore events from transports they have already replaced.
    """

    def on_open(self, transport: Transport) -> None:
        """The connection is established."""
        ...

    def on_close(self, transport: Transport, code: int | None, reason: str) -> None:
        """The connection was closed."""
        ...

    def on_error(self, transport: Transport, error: BaseException) -> None:
        """The connection failed or broke."""
        ...

    def on_message(self, transport: Transport, message: str) -> None:
        """A text frame arrived."""
        ...


class Transport(Protocol):
    """Duplex text-frame connection driven by a TransportListener."""

    @property
    def is_open(self) -> bool:
        """Check if frames can currently be sent."""
        ...

    def open(self) -> None:
        """Start connecting. Progress is reported through the listener."""
        ...

    async def send(self, frame: str) -> None:
        """Send one text frame."""
        ...

    async def close(self) -> None:
        """Close the connection without reporting further events."""
        ...


class WebSocketTransport:
    """WebSocket client transport.

    open() starts a background task that connects, reports on_open, relays
    each incoming frame to on_message, and finally reports exactly one of
    on_close (the peer or network closed the connection) or on_error (the
    connection could not be established or failed unexpectedly).

    Attributes:
        uri: The ws:// URI to connect to
        open_timeout: Seconds to wait for the opening handshake
    """

    def __init__(
        self,
        uri: str,
        listener: TransportListener,
        *,
        open_timeout: float = 10.0,
    ) -> None:
        """Initialize the transport.

        Args:
            uri: The ws:// URI to connect to
            listener: Receiver of lifecycle events
            open_timeout: Seconds to wait for the opening handshake
        """
        self.uri = uri
        self.open_timeout = open_timeout
        self._listener = listener
        self._websocket: Any = None
        self._task: asyncio.Task[None] | None = None

    @property
    def is_open(self) -> bool:
        """Check if the WebSocket is connected."""
        return self._websocket is not None

    def open(self) -> None:
        """Start the connection task. Must be called from the running loop."""
        if self._task is not None:
            logger.warning("Transport for %s already opened", self.uri)
            return
        self._task = asyncio.create_task(self._run())

    async def _run(self) -> None:
        """Background task: connect, relay frames, report the outcome."""
        try:
            websocket = await websockets.connect(self.uri, open_timeout=self.open_timeout)
        except Exception as e:
            self._listener.on_error(self, e)
            return

        self._websocket = websocket
        self._listener.on_open(self)

        try:
            async for message in websocket:
                if isinstance(message, bytes):
                    message = message.decode("utf-8", errors="replace")
                self._listener.on_message(self, message)
        except websockets.exceptions.ConnectionClosed:
            pass
        except Exception as e:
            self._websocket = None
            with contextlib.suppress(Exception):
                await websocket.close()
            self._listener.on_error(self, e)
            return

        self._websocket = None
        self._listener.on_close(self, websocket.close_code, websocket.close_reason or "")

    async def send(self, frame: str) -> None:
        """Send one text frame.

        Raises:
            ConnectionError: If the WebSocket is not connected
            websockets.exceptions.ConnectionClosed: If it closed mid-send
        """
        if self._websocket is None:
            raise ConnectionError(f"WebSocket to {self.uri} is not connected")
        await self._websocket.send(frame)

    async def close(self) -> None:
        """Close the WebSocket and stop the connection task."""
        task, self._task = self._task, None
        websocket, self._websocket = self._websocket, None

        if task is not None:
            task.cancel()
            with contextlib.suppress(asyncio.CancelledError):
                await task

        if websocket is not None:
            try:
                await websocket.close()
            except Exception as e:
                logger.debug("Error closing WebSocket: %s", e)
