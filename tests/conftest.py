"""Test fixtures for mpdctrl tests."""

import asyncio

import pytest
from PySide6.QtCore import QCoreApplication

from mpdctrl.api.mpd.transport import TRANSPORT_NETWORK, TransportError
from mpdctrl.core.config import ConnectionConfig

GREETING = "OK MPD 0.23.5\n"


@pytest.fixture
def qapp() -> QCoreApplication:
    """Create a Qt application for testing."""
    app = QCoreApplication.instance()
    if app is None:
        app = QCoreApplication([])
    return app


class FakeTransport:
    """In-memory stand-in for TransportConnection.

    Tests push server text with feed() and inspect what the connection
    wrote in `writes`.
    """

    def __init__(self, config: ConnectionConfig, fail: bool = False) -> None:
        self.config = config
        self.kind = config.transport_kind
        self.fail = fail
        self.connected = False
        self.destroyed = False
        self.keep_alive: bool | None = None
        self.writes: list[str] = []
        self._on_connect = None
        self._on_data = None
        self._on_error = None
        self._on_close = None

    @property
    def is_connected(self) -> bool:
        return self.connected

    def set_event_handlers(
        self, on_connect=None, on_data=None, on_error=None, on_close=None
    ) -> None:
        self._on_connect = on_connect
        self._on_data = on_data
        self._on_error = on_error
        self._on_close = on_close

    async def connect(self) -> None:
        if self.fail:
            raise TransportError("Failed to connect to localhost:6600: refused")
        self.connected = True
        if self._on_connect:
            self._on_connect()

    def set_keep_alive(self, enabled: bool) -> None:
        self.keep_alive = enabled

    def write(self, text: str) -> None:
        if not self.connected:
            raise TransportError("Not connected to localhost:6600")
        self.writes.append(text)

    def destroy(self) -> None:
        self.destroyed = True
        self.connected = False

    # Server side helpers

    def feed(self, text: str) -> None:
        """Deliver text as if received from the server."""
        assert self._on_data is not None
        self._on_data(text)

    def close(self) -> None:
        """Simulate the server closing the socket."""
        self.connected = False
        if self._on_close:
            self._on_close()

    def fail_with(self, error: Exception) -> None:
        """Simulate a socket error."""
        self.connected = False
        if self._on_error:
            self._on_error(error)


class TransportFactory:
    """Builds FakeTransports and remembers them.

    Args:
        failures: Number of initial connect attempts that fail.
    """

    def __init__(self, failures: int = 0) -> None:
        self.failures = failures
        self.created: list[FakeTransport] = []

    def __call__(self, config: ConnectionConfig) -> FakeTransport:
        fail = len(self.created) < self.failures
        transport = FakeTransport(config, fail=fail)
        self.created.append(transport)
        return transport

    @property
    def last(self) -> FakeTransport:
        return self.created[-1]


@pytest.fixture
def transport_factory() -> TransportFactory:
    """Return a factory of fake transports."""
    return TransportFactory()


@pytest.fixture
def network_config() -> ConnectionConfig:
    """Return a plain network configuration."""
    return ConnectionConfig(transport_kind=TRANSPORT_NETWORK, host="localhost", port=6600)


async def settle(rounds: int = 20) -> None:
    """Let pending tasks and callbacks run."""
    for _ in range(rounds):
        await asyncio.sleep(0)
