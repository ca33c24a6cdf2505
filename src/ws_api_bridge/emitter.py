"""Outbound update emitter.

Serializes host state updates into frames and sends them over the current
connection when it is up.
"""

from __future__ import annotations

import logging
from typing import TypeVar

from ws_api_bridge.connection import ConnectionManager
from ws_api_bridge.protocol import encode

logger = logging.getLogger(__name__)

T = TypeVar("T")


class OutboundEmitter:
    """Sends host updates as "<prefix><id>|<value>" frames.

    Updates made while disconnected are dropped, not queued.
    """

    def __init__(self, connection: ConnectionManager, key_prefix: str = "") -> None:
        self._connection = connection
        self.key_prefix = key_prefix

    async def emit(self, id: str, data: T) -> T:
        """Forward an update to the remote server.

        Never raises: send failures are logged and do not affect the
        connection state.

        Args:
            id: Identifier of the updated state
            data: String or JSON-serializable value

        Returns:
            data, unchanged
        """
        logger.info("Emitting update for ID: %s", id)

        transport = self._connection.transport
        if not self._connection.is_connected or transport is None:
            logger.info("Cannot emit - websocket not connected")
            logger.debug(
                "Connection state: %s, transport exists: %s",
                self._connection.state.value,
                transport is not None,
            )
            return data

        try:
            frame = encode(self.key_prefix, id, data)
            logger.debug("Sending frame: %r", frame)
            await transport.send(frame)
        except Exception as e:
            logger.error("Error emitting update for %s: %s", id, e)
            logger.debug("Full emit error", exc_info=True)
            return data

        logger.info("Successfully sent message for key: %s%s", self.key_prefix, id)
        return data
