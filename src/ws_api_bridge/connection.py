"""Connection lifecycle management.

Provides:
- ConnectionState: States of the single logical connection
- ConnectionManager: Owns the current transport and the retry timer and
  drives the connect / reconnect state machine from transport events
"""

from __future__ import annotations

import asyncio
import logging
from collections.abc import Callable
from enum import Enum
from typing import Any, Protocol

from ws_api_bridge.protocol import DEFAULT_RETRY_DELAY_MS, build_uri
from ws_api_bridge.transport import Transport, TransportListener, WebSocketTransport

logger = logging.getLogger(__name__)

DEFAULT_RETRY_DELAY: float = DEFAULT_RETRY_DELAY_MS / 1000.0


class ConnectionState(Enum):
    """States of the bridge connection."""

    DISCONNECTED = "DISCONNECTED"
    CONNECTING = "CONNECTING"
    CONNECTED = "CONNECTED"
    RECONNECT_PENDING = "RECONNECT_PENDING"


class TimerHandle(Protocol):
    """A scheduled callback that can be cancelled (asyncio.TimerHandle)."""

    def cancel(self) -> None:
        ...


TransportFactory = Callable[[str, TransportListener], Transport]
CallLater = Callable[[float, Callable[[], None]], TimerHandle]


class ConnectionManager:
    """State machine for the single connection to the remote server.

    Transitions:
    - start():           DISCONNECTED -> CONNECTING
    - on_open:           CONNECTING -> CONNECTED
    - on_close/on_error: -> RECONNECT_PENDING, scheduling one retry timer
                         unless one is already pending
    - retry timer fires: RECONNECT_PENDING -> CONNECTING with a new transport
    - shutdown():        -> DISCONNECTED, permanently

    The retry delay is flat: every close or error is followed by one new
    attempt after the same delay, with no cap on the number of attempts.

    Attributes:
        server_address: host:port of the remote server
        retry_delay: Seconds between a close/error and the next attempt
    """

    def __init__(
        self,
        server_address: str,
        on_frame: Callable[[str], Any],
        *,
        retry_delay: float = DEFAULT_RETRY_DELAY,
        transport_factory: TransportFactory = WebSocketTransport,
        call_later: CallLater | None = None,
    ) -> None:
        """Initialize the connection manager.

        Args:
            server_address: host:port of the remote server
            on_frame: Called with each inbound text frame, in arrival order
            retry_delay: Seconds to wait before reconnecting
            transport_factory: Builds a transport for a URI and listener
            call_later: Schedules the retry timer (defaults to the running
                loop's call_later)
        """
        self.server_address = server_address
        self.retry_delay = retry_delay
        self._on_frame = on_frame
        self._transport_factory = transport_factory
        self._call_later = call_later

        self._state = ConnectionState.DISCONNECTED
        self._transport: Transport | None = None
        self._retry_handle: TimerHandle | None = None
        self._started = False
        self._closed = False

    @property
    def uri(self) -> str:
        """The WebSocket URI connected to."""
        return build_uri(self.server_address)

    @property
    def state(self) -> ConnectionState:
        """The current connection state."""
        return self._state

    @property
    def transport(self) -> Transport | None:
        """The current transport, if one has been opened."""
        return self._transport

    @property
    def retry_pending(self) -> bool:
        """Check if a retry timer is scheduled."""
        return self._retry_handle is not None

    @property
    def is_connected(self) -> bool:
        """Check if frames can be sent right now."""
        return self._state is ConnectionState.CONNECTED and self._transport is not None

    def start(self) -> None:
        """Open the first connection."""
        if self._closed:
            logger.warning("ConnectionManager has been shut down, not starting")
            return
        if self._started:
            logger.warning("ConnectionManager already started")
            return

        self._started = True
        self._connect()

    def _connect(self) -> None:
        """Replace the current transport with a new one and open it."""
        self._state = ConnectionState.CONNECTING
        logger.info("Connecting to server: %s", self.uri)

        try:
            transport = self._transport_factory(self.uri, self)
            self._transport = transport
            transport.open()
        except Exception as e:
            logger.error("Failed to open transport to %s: %s", self.uri, e)
            self._enter_reconnect_pending()

    def _is_current(self, transport: Transport) -> bool:
        if self._closed or transport is not self._transport:
            logger.debug("Ignoring event from stale transport %r", transport)
            return False
        return True

    # -------------------------------------------------------------------------
    # TransportListener
    # -------------------------------------------------------------------------

    def on_open(self, transport: Transport) -> None:
        """Handle the transport's open event."""
        if not self._is_current(transport):
            return
        self._state = ConnectionState.CONNECTED
        logger.info("Connected to server: %s", self.server_address)

    def on_close(self, transport: Transport, code: int | None, reason: str) -> None:
        """Handle the transport's close event."""
        if not self._is_current(transport):
            return
        logger.info("Disconnected from server: code=%s reason=%r", code, reason)
        self._enter_reconnect_pending()

    def on_error(self, transport: Transport, error: BaseException) -> None:
        """Handle the transport's error event."""
        if not self._is_current(transport):
            return
        logger.error("Connection error: %s", error)
        logger.debug("Full connection error", exc_info=error)
        self._enter_reconnect_pending()

    def on_message(self, transport: Transport, message: str) -> None:
        """Forward an inbound frame."""
        if not self._is_current(transport):
            return
        try:
            self._on_frame(message)
        except Exception as e:
            logger.error("Error handling incoming message: %s", e, exc_info=True)

    # -------------------------------------------------------------------------
    # Retry timer
    # -------------------------------------------------------------------------

    def _enter_reconnect_pending(self) -> None:
        self._state = ConnectionState.RECONNECT_PENDING
        if self._retry_handle is not None:
            logger.debug("Reconnect already scheduled")
            return

        logger.info("Scheduling reconnect in %.1f seconds...", self.retry_delay)
        call_later = self._call_later or asyncio.get_running_loop().call_later
        self._retry_handle = call_later(self.retry_delay, self._on_retry_timer)

    def _on_retry_timer(self) -> None:
        self._retry_handle = None
        if self._closed:
            return
        self._connect()

    # -------------------------------------------------------------------------
    # Shutdown
    # -------------------------------------------------------------------------

    async def shutdown(self) -> None:
        """Cancel any pending retry and close the current transport.

        After shutdown the manager never reconnects and ignores all
        transport events.
        """
        if self._closed:
            return
        self._closed = True

        if self._retry_handle is not None:
            self._retry_handle.cancel()
            self._retry_handle = None

        transport, self._transport = self._transport, None
        self._state = ConnectionState.DISCONNECTED

        if transport is not None:
            try:
                await transport.close()
            except Exception as e:
                logger.warning("Error closing transport: %s", e)

        logger.info("Connection to %s shut down", self.server_address)
