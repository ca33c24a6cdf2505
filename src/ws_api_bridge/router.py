"""Inbound frame routing.

Provides:
- route: Split a prefix-stripped key into plugin, api and target
- dispatch: Invoke the host dispatcher for one decoded call
- MessageRouter: Turn raw frames into dispatcher calls in arrival order
"""

from __future__ import annotations

import asyncio
import contextlib
import logging
from collections.abc import Awaitable, Callable
from typing import Any

from ws_api_bridge.models import ParsedCall, Route
from ws_api_bridge.protocol import PATH_SEPARATOR, decode, parse_payload, strip_prefix

logger = logging.getLogger(__name__)

Dispatcher = Callable[[str, str, Any], Awaitable[Any]]


def route(key: str) -> Route | None:
    """Resolve the dispatch target of a prefix-stripped key.

    "plugin/api/a/b" routes to event "plugin/api" with target "a/b".

    Args:
        key: The key with its prefix already removed

    Returns:
        The Route, or None if the key lacks a non-empty plugin and api segment
    """
    plugin, _, rest = key.partition(PATH_SEPARATOR)
    api, _, target = rest.partition(PATH_SEPARATOR)
    if not plugin or not api:
        logger.warning("Dropping frame with malformed key %r: expected plugin/api", key)
        return None
    return Route(plugin=plugin, api=api, target=target)


async def dispatch(dispatcher: Dispatcher, call: ParsedCall) -> Any:
    """Invoke the dispatcher once for a decoded call.

    Failures raised by the dispatcher are logged and swallowed so one bad
    call cannot affect the connection or later frames.

    Args:
        dispatcher: The host dispatcher
        call: The decoded call

    Returns:
        The dispatcher's result, or None if it failed
    """
    logger.info("Processing API call: %s target: %r", call.event_name, call.target)
    try:
        result = await dispatcher(call.event_name, call.target, call.payload.value)
    except Exception as e:
        dispatcher_name = getattr(dispatcher, "__name__", repr(dispatcher))
        logger.error(
            "Error in dispatcher '%s' handling %s: %s",
            dispatcher_name,
            call.event_name,
            e,
            exc_info=True,
        )
        return None
    logger.debug("API call %s completed", call.event_name)
    return result


class MessageRouter:
    """Turns inbound frames into dispatcher calls.

    Parsing happens synchronously as each frame arrives, so calls reach the
    dispatcher in transport order. Each dispatch then runs as its own task;
    a slow dispatcher delays only its own completion, never later frames.

    Attributes:
        key_prefix: Prefix a frame key must start with to be dispatched
    """

    def __init__(self, dispatcher: Dispatcher, key_prefix: str = "") -> None:
        """Initialize the router.

        Args:
            dispatcher: Async host function called as
                dispatcher(event_name, target, payload)
            key_prefix: Namespace prefix for frame keys
        """
        self._dispatcher = dispatcher
        self.key_prefix = key_prefix
        self._tasks: set[asyncio.Task[Any]] = set()

    @property
    def pending(self) -> int:
        """Number of dispatcher calls still in flight."""
        return len(self._tasks)

    def parse(self, frame: str) -> ParsedCall | None:
        """Decode a frame into a call.

        Args:
            frame: The raw text frame

        Returns:
            The ParsedCall, or None if the frame is dropped
        """
        logger.debug("Received frame: %r", frame)

        message = decode(frame)
        if message is None:
            logger.debug("Frame ignored - no separator found")
            return None

        key = strip_prefix(message.key, self.key_prefix)
        if key is None:
            logger.debug(
                "Frame ignored - key %r does not match prefix %r",
                message.key,
                self.key_prefix,
            )
            return None

        resolved = route(key)
        if resolved is None:
            return None

        payload = parse_payload(message.value)
        logger.debug(
            "Parsed call - key: %r plugin: %r api: %r target: %r payload: %r",
            message.key,
            resolved.plugin,
            resolved.api,
            resolved.target,
            payload,
        )
        return ParsedCall(
            event_name=resolved.event_name,
            target=resolved.target,
            payload=payload,
        )

    def handle_frame(self, frame: str) -> asyncio.Task[Any] | None:
        """Parse a frame and schedule its dispatch.

        Must be called from within the running event loop.

        Args:
            frame: The raw text frame

        Returns:
            The dispatch task, or None if the frame was dropped
        """
        call = self.parse(frame)
        if call is None:
            return None

        task = asyncio.create_task(dispatch(self._dispatcher, call))
        self._tasks.add(task)
        task.add_done_callback(self._tasks.discard)
        return task

    async def cancel_pending(self) -> None:
        """Cancel all in-flight dispatcher calls and wait for them to finish."""
        tasks = list(self._tasks)
        for task in tasks:
            task.cancel()
        for task in tasks:
            with contextlib.suppress(asyncio.CancelledError):
                await task
        self._tasks.clear()
