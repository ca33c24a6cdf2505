"""WS API Bridge - Relay between a remote WebSocket channel and a local API dispatcher.

A small async bridge that:
- Keeps a persistent client connection to ws://<server_address>
- Reconnects after a fixed delay whenever the connection drops
- Turns inbound "<prefix><plugin>/<api>[/<target>]|<value>" frames into
  dispatcher calls
- Turns host state updates into outbound frames
"""

from ws_api_bridge.host import (
    Bridge,
    BridgeAlreadyInitializedError,
    get_bridge,
    initialize,
    notify,
    on_get,
    on_update,
    shutdown,
)

__version__ = "0.1.0"

__all__ = [
    "Bridge",
    "BridgeAlreadyInitializedError",
    "get_bridge",
    "initialize",
    "notify",
    "on_get",
    "on_update",
    "shutdown",
]
