"""End-to-end integration tests against a real WebSocket server.

Tests the full pipeline:
1. Bridge connects to a local websockets server
2. Frames sent by the server reach the dispatcher
3. Host updates arrive at the server as frames
4. The bridge reconnects after the server drops it or is not yet up
"""

from __future__ import annotations

import asyncio
from collections.abc import AsyncGenerator, Callable
from typing import Any

import pytest
import websockets

from conftest import RecordingDispatcher, get_free_port
from ws_api_bridge.config import BridgeConfig
from ws_api_bridge.connection import ConnectionState
from ws_api_bridge.host import Bridge


# =============================================================================
# Mock WebSocket Server Helper
# =============================================================================


class MockWebSocketServer:
    """A local WebSocket server standing in for the remote endpoint."""

    def __init__(self, host: str = "127.0.0.1", port: int = 0) -> None:
        self.host = host
        self.port = port
        self.received_messages: list[str] = []
        self.connection_count = 0
        self._server: Any = None
        self._clients: list[Any] = []

    async def start(self) -> None:
        """Start the mock WebSocket server."""

        async def handler(websocket: Any) -> None:
            self.connection_count += 1
            self._clients.append(websocket)
            try:
                async for message in websocket:
                    self.received_messages.append(message)
            except websockets.exceptions.ConnectionClosed:
                pass
            finally:
                self._clients.remove(websocket)

        self._server = await websockets.serve(handler, self.host, self.port)

    async def stop(self) -> None:
        """Stop the mock WebSocket server."""
        if self._server:
            self._server.close()
            await self._server.wait_closed()
            self._server = None

    async def broadcast(self, message: str) -> None:
        """Send a frame to every connected client."""
        for client in list(self._clients):
            await client.send(message)

    async def drop_clients(self) -> None:
        """Close every client connection, keeping the server up."""
        for client in list(self._clients):
            await client.close()


async def wait_for(predicate: Callable[[], bool], timeout: float = 3.0) -> None:
    """Poll until predicate() is true or fail after timeout."""
    loop = asyncio.get_running_loop()
    deadline = loop.time() + timeout
    while not predicate():
        if loop.time() > deadline:
            pytest.fail("condition not met before timeout")
        await asyncio.sleep(0.02)


# =============================================================================
# Fixtures
# =============================================================================


@pytest.fixture
async def server() -> AsyncGenerator[MockWebSocketServer, None]:
    mock_server = MockWebSocketServer(port=get_free_port())
    await mock_server.start()
    yield mock_server
    await mock_server.stop()


def make_bridge(port: int, dispatcher: RecordingDispatcher) -> Bridge:
    config = BridgeConfig(
        server_address=f"127.0.0.1:{port}",
        key_prefix="app:",
        retry_delay_ms=50,
    )
    return Bridge(config, dispatcher)


# =============================================================================
# Happy Path Tests
# =============================================================================


class TestBridgeEndToEnd:
    """Frames flow both ways over a real WebSocket."""

    async def test_inbound_frame_reaches_dispatcher(
        self, server: MockWebSocketServer, dispatcher: RecordingDispatcher
    ) -> None:
        bridge = make_bridge(server.port, dispatcher)
        bridge.start()
        try:
            await wait_for(lambda: bridge.connection.is_connected)

            await server.broadcast('app:foo/bar/baz|{"x":1}')
            await server.broadcast("app:foo/bar|hello")
            await server.broadcast("ignored:foo/bar|1")

            await wait_for(lambda: len(dispatcher.calls) == 2)
            assert dispatcher.calls == [
                ("foo/bar", "baz", {"x": 1}),
                ("foo/bar", "", "hello"),
            ]
        finally:
            await bridge.shutdown()

    async def test_notify_reaches_server(
        self, server: MockWebSocketServer, dispatcher: RecordingDispatcher
    ) -> None:
        bridge = make_bridge(server.port, dispatcher)
        bridge.start()
        try:
            await wait_for(lambda: bridge.connection.is_connected)

            result = await bridge.notify("id1", {"y": 2})

            assert result == {"y": 2}
            await wait_for(lambda: len(server.received_messages) == 1)
            assert server.received_messages == ['app:id1|{"y":2}']
        finally:
            await bridge.shutdown()


# =============================================================================
# Reconnect Tests
# =============================================================================


class TestBridgeReconnect:
    """The bridge recovers from dropped and refused connections."""

    async def test_reconnects_after_server_drops_connection(
        self, server: MockWebSocketServer, dispatcher: RecordingDispatcher
    ) -> None:
        bridge = make_bridge(server.port, dispatcher)
        bridge.start()
        try:
            await wait_for(lambda: bridge.connection.is_connected)
            first_transport = bridge.connection.transport

            await server.drop_clients()

            await wait_for(lambda: server.connection_count == 2)
            await wait_for(lambda: bridge.connection.is_connected)
            assert bridge.connection.transport is not first_transport

            await bridge.notify("after", "reconnect")
            await wait_for(lambda: "app:after|reconnect" in server.received_messages)
        finally:
            await bridge.shutdown()

    async def test_connects_once_server_comes_up(self, dispatcher: RecordingDispatcher) -> None:
        port = get_free_port()
        bridge = make_bridge(port, dispatcher)
        bridge.start()
        server = MockWebSocketServer(port=port)
        try:
            await wait_for(lambda: bridge.connection.state is ConnectionState.RECONNECT_PENDING)
            result = await bridge.notify("id1", {"lost": True})
            assert result == {"lost": True}

            await server.start()

            await wait_for(lambda: bridge.connection.is_connected)
            assert server.received_messages == []
        finally:
            await bridge.shutdown()
            await server.stop()

    async def test_shutdown_stops_reconnecting(
        self, server: MockWebSocketServer, dispatcher: RecordingDispatcher
    ) -> None:
        bridge = make_bridge(server.port, dispatcher)
        bridge.start()
        await wait_for(lambda: bridge.connection.is_connected)

        await bridge.shutdown()
        await asyncio.sleep(0.2)

        assert server.connection_count == 1
        assert bridge.connection.state is ConnectionState.DISCONNECTED
