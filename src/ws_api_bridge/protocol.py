"""Protocol constants and frame encoding for the bridge.

Handles:
- Protocol constants (separators, URI scheme, retry delay)
- Splitting a wire frame into key and value
- Prefix filtering of keys
- JSON-or-text payload decoding
- Encoding outbound updates

Wire format: "<prefix><plugin>/<api>[/<target...>]|<value>". Only the first
"|" separates key from value; the value may contain further "|" characters.
"""

from __future__ import annotations

import json
from typing import Any

from ws_api_bridge.models import JsonPayload, RawMessage, TextPayload

# =============================================================================
# Protocol Constants
# =============================================================================

SEPARATOR: str = "|"
PATH_SEPARATOR: str = "/"

URI_SCHEME: str = "ws://"

# Reconnection settings
DEFAULT_RETRY_DELAY_MS: int = 3000


# =============================================================================
# Decoding
# =============================================================================


def decode(frame: str) -> RawMessage | None:
    """Split a frame into key and value on the first separator.

    Args:
        frame: The raw text frame

    Returns:
        The RawMessage, or None if the frame has no separator
    """
    key, sep, value = frame.partition(SEPARATOR)
    if not sep:
        return None
    return RawMessage(key=key, value=value)


def strip_prefix(key: str, prefix: str) -> str | None:
    """Remove the namespace prefix from a key.

    Args:
        key: The key portion of a frame
        prefix: The configured key prefix (may be empty)

    Returns:
        The key without its prefix, or None if the key does not start with it
    """
    if not key.startswith(prefix):
        return None
    return key[len(prefix):]


def _reject_constant(name: str) -> Any:
    raise ValueError(f"non-standard JSON constant: {name}")


def parse_payload(value: str) -> TextPayload | JsonPayload:
    """Decode a frame value as JSON, falling back to the raw text.

    NaN and Infinity literals are not JSON and fall back to text.

    Args:
        value: The value portion of a frame

    Returns:
        JsonPayload if the value parses as JSON, else TextPayload
    """
    try:
        parsed = json.loads(value, parse_constant=_reject_constant)
    except (ValueError, RecursionError):
        return TextPayload(value=value)
    return JsonPayload(value=parsed)


# =============================================================================
# Encoding
# =============================================================================


def serialize(data: Any) -> str:
    """Serialize an outbound value for the wire.

    Strings pass through untouched; everything else is compact JSON.

    Raises:
        TypeError: If data is not JSON-serializable
        ValueError: If data contains NaN or infinite floats
    """
    if isinstance(data, str):
        return data
    if isinstance(data, TextPayload):
        return data.value
    if isinstance(data, JsonPayload):
        data = data.value
    return json.dumps(data, separators=(",", ":"), ensure_ascii=False, allow_nan=False)


def encode(prefix: str, id: str, data: Any) -> str:
    """Build an outbound frame.

    Args:
        prefix: The configured key prefix
        id: Identifier of the updated state
        data: String or JSON-serializable value

    Returns:
        "<prefix><id>|<serialized data>"
    """
    return f"{prefix}{id}{SEPARATOR}{serialize(data)}"


def build_uri(server_address: str) -> str:
    """Build the WebSocket URI for a host:port server address."""
    return URI_SCHEME + server_address
