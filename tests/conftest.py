"""Pytest configuration and shared fixtures."""

from __future__ import annotations

import socket
import sys
from collections.abc import Callable
from pathlib import Path
from typing import Any

import pytest

# Add the src directory to the Python path so tests run without installing
_src = Path(__file__).parent.parent / "src"

if str(_src) not in sys.path:
    sys.path.insert(0, str(_src))

from ws_api_bridge.transport import TransportListener  # noqa: E402


# =============================================================================
# Fake Transport
# =============================================================================


class FakeTransport:
    """In-memory transport whose events are raised by the test."""

    def __init__(self, uri: str, listener: TransportListener) -> None:
        self.uri = uri
        self.listener = listener
        self.opened = False
        self.closed = False
        self.sent: list[str] = []
        self.send_error: BaseException | None = None
        self.close_error: BaseException | None = None

    @property
    def is_open(self) -> bool:
        return self.opened and not self.closed

    def open(self) -> None:
        self.opened = True

    async def send(self, frame: str) -> None:
        if self.send_error is not None:
            raise self.send_error
        self.sent.append(frame)

    async def close(self) -> None:
        self.closed = True
        if self.close_error is not None:
            raise self.close_error

    # Event helpers

    def emit_open(self) -> None:
        self.listener.on_open(self)

    def emit_close(self, code: int | None = 1006, reason: str = "") -> None:
        self.listener.on_close(self, code, reason)

    def emit_error(self, error: BaseException | None = None) -> None:
        self.listener.on_error(self, error or ConnectionRefusedError("refused"))

    def emit_message(self, message: str) -> None:
        self.listener.on_message(self, message)


class FakeTransportFactory:
    """Transport factory that records every transport it builds."""

    def __init__(self) -> None:
        self.transports: list[FakeTransport] = []

    def __call__(self, uri: str, listener: TransportListener) -> FakeTransport:
        transport = FakeTransport(uri, listener)
        self.transports.append(transport)
        return transport

    @property
    def latest(self) -> FakeTransport:
        return self.transports[-1]


# =============================================================================
# Fake Timer
# =============================================================================


class FakeTimer:
    """A scheduled callback that only runs when the test fires it."""

    def __init__(self, delay: float, callback: Callable[[], None]) -> None:
        self.delay = delay
        self.callback = callback
        self.cancelled = False
        self.fired = False

    def cancel(self) -> None:
        self.cancelled = True

    def fire(self) -> None:
        assert not self.cancelled, "cancelled timer fired"
        self.fired = True
        self.callback()


class FakeScheduler:
    """Stand-in for loop.call_later that records scheduled timers."""

    def __init__(self) -> None:
        self.timers: list[FakeTimer] = []

    def __call__(self, delay: float, callback: Callable[[], None]) -> FakeTimer:
        timer = FakeTimer(delay, callback)
        self.timers.append(timer)
        return timer

    @property
    def pending(self) -> list[FakeTimer]:
        return [t for t in self.timers if not t.cancelled and not t.fired]

    def fire_pending(self) -> None:
        for timer in self.pending:
            timer.fire()


# =============================================================================
# Recording Dispatcher
# =============================================================================


class RecordingDispatcher:
    """Async dispatcher that records each call."""

    def __init__(self, result: Any = None, error: BaseException | None = None) -> None:
        self.calls: list[tuple[str, str, Any]] = []
        self.result = result
        self.error = error

    async def __call__(self, event_name: str, target: str, payload: Any) -> Any:
        self.calls.append((event_name, target, payload))
        if self.error is not None:
            raise self.error
        return self.result


# =============================================================================
# Fixtures
# =============================================================================


@pytest.fixture
def transport_factory() -> FakeTransportFactory:
    """Create a recording fake transport factory."""
    return FakeTransportFactory()


@pytest.fixture
def scheduler() -> FakeScheduler:
    """Create a fake retry timer scheduler."""
    return FakeScheduler()


@pytest.fixture
def dispatcher() -> RecordingDispatcher:
    """Create a recording dispatcher."""
    return RecordingDispatcher()


def get_free_port() -> int:
    """Get a free port for testing."""
    with socket.socket(socket.AF_INET, socket.SOCK_STREAM) as s:
        s.bind(("127.0.0.1", 0))
        return s.getsockname()[1]
