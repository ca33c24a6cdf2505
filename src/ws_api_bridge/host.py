"""Host-facing lifecycle surface.

The host plugin runtime drives the bridge through three hooks:

    await initialize(config, dispatcher)        # once, at plugin load
    await notify(config, dispatcher, id, data)  # on every local state change
    await shutdown()                            # at plugin unload

on_update and on_get are aliases of notify, matching the host's hook names.
Only one bridge is active per process; initialize refuses to silently
create a second one.
"""

from __future__ import annotations

import logging
from collections.abc import Mapping
from typing import Any, TypeVar

from ws_api_bridge.config import BridgeConfig, get_config
from ws_api_bridge.connection import CallLater, ConnectionManager, TransportFactory
from ws_api_bridge.emitter import OutboundEmitter
from ws_api_bridge.router import Dispatcher, MessageRouter
from ws_api_bridge.transport import WebSocketTransport

logger = logging.getLogger(__name__)

T = TypeVar("T")

_PACKAGE_LOGGER = "ws_api_bridge"


class BridgeAlreadyInitializedError(RuntimeError):
    """Raised when initialize() is called while a bridge is already active."""


class Bridge:
    """One logical bridge: router, connection manager and emitter wired together.

    Attributes:
        config: The bridge configuration
        router: Routes inbound frames to the dispatcher
        connection: Owns the transport and the retry timer
        emitter: Sends host updates
    """

    def __init__(
        self,
        config: BridgeConfig,
        dispatcher: Dispatcher,
        *,
        transport_factory: TransportFactory = WebSocketTransport,
        call_later: CallLater | None = None,
    ) -> None:
        """Initialize the bridge without connecting.

        Args:
            config: The bridge configuration
            dispatcher: Async host function called as
                dispatcher(event_name, target, payload)
            transport_factory: Builds the transport for each connection attempt
            call_later: Schedules the retry timer (defaults to the running loop)
        """
        self.config = config
        self.router = MessageRouter(dispatcher, key_prefix=config.key_prefix)
        self.connection = ConnectionManager(
            config.server_address,
            self.router.handle_frame,
            retry_delay=config.retry_delay,
            transport_factory=transport_factory,
            call_later=call_later,
        )
        self.emitter = OutboundEmitter(self.connection, key_prefix=config.key_prefix)
        self._running = False
        # Level of the package logger before verbose lowered it
        self._saved_log_level: int | None = None

    @property
    def is_running(self) -> bool:
        """Check if the bridge has been started and not shut down."""
        return self._running

    def start(self) -> None:
        """Start connecting. Must be called from the running event loop.

        When verbose is set, the package logger is lowered to DEBUG until
        shutdown().
        """
        if self.config.verbose and self._saved_log_level is None:
            package_logger = logging.getLogger(_PACKAGE_LOGGER)
            self._saved_log_level = package_logger.level
            package_logger.setLevel(logging.DEBUG)

        logger.info("Initializing WebSocket bridge")
        logger.debug("Config: %s", self.config.to_dict())
        self._running = True
        self.connection.start()

    async def notify(self, id: str, data: T) -> T:
        """Forward a host update; always returns data."""
        return await self.emitter.emit(id, data)

    async def shutdown(self) -> None:
        """Stop reconnecting, close the connection and cancel in-flight calls."""
        self._running = False
        await self.connection.shutdown()
        await self.router.cancel_pending()

        if self._saved_log_level is not None:
            logging.getLogger(_PACKAGE_LOGGER).setLevel(self._saved_log_level)
            self._saved_log_level = None


# Module-level singleton instance
_bridge_instance: Bridge | None = None


def get_bridge() -> Bridge | None:
    """Get the active bridge, if initialize() has been called."""
    return _bridge_instance


async def initialize(
    config: BridgeConfig | Mapping[str, Any] | None,
    dispatcher: Dispatcher,
    *,
    replace: bool = False,
    **bridge_kwargs: Any,
) -> Bridge:
    """Create and start the process-wide bridge.

    The new bridge is installed before the replaced one is torn down, so a
    concurrent initialize() during the teardown sees it and is refused.

    Args:
        config: A BridgeConfig, a host mapping such as
            {"serverAddress": "localhost:8080", "keyPrefix": "app:"}, or None
            to use the environment-loaded get_config()
        dispatcher: Async host function called as
            dispatcher(event_name, target, payload)
        replace: Shut down an already active bridge instead of refusing
        **bridge_kwargs: Passed to Bridge (transport_factory, call_later)

    Returns:
        The Bridge, started unless another replace superseded it first

    Raises:
        BridgeAlreadyInitializedError: If a bridge is active and replace is False
        pydantic.ValidationError: If the configuration is invalid
    """
    global _bridge_instance

    previous = _bridge_instance
    if previous is not None and not replace:
        raise BridgeAlreadyInitializedError(
            "Bridge already initialized; call shutdown() first or pass replace=True"
        )

    bridge_config = get_config() if config is None else BridgeConfig.from_host(config)
    bridge = Bridge(bridge_config, dispatcher, **bridge_kwargs)
    _bridge_instance = bridge

    if previous is not None:
        logger.info("Replacing active bridge")
        await previous.shutdown()
        if _bridge_instance is not bridge:
            logger.warning("Bridge was replaced again during teardown, not starting it")
            return bridge

    bridge.start()
    return bridge


async def notify(
    config: BridgeConfig | Mapping[str, Any] | None,
    dispatcher: Dispatcher | None,
    id: str,
    data: T,
) -> T:
    """Forward a host state update to the remote server.

    config and dispatcher are part of the host's hook signature; the active
    bridge already holds both.

    Args:
        config: The host configuration (unused)
        dispatcher: The host dispatcher (unused)
        id: Identifier of the updated state
        data: String or JSON-serializable value

    Returns:
        data, unchanged, whether or not it was sent
    """
    if _bridge_instance is None:
        logger.info("Cannot emit update for %s - bridge not initialized", id)
        return data
    return await _bridge_instance.notify(id, data)


on_update = notify
on_get = notify


async def shutdown() -> None:
    """Shut down the active bridge, if any."""
    global _bridge_instance

    bridge, _bridge_instance = _bridge_instance, None
    if bridge is None:
        return
    await bridge.shutdown()
