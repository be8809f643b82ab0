"""Stream transport for the MPD connection.

Owns one asyncio stream (TCP or Unix domain socket), surfaces connect,
data, error and close events through handlers, and performs writes.
It has no knowledge of the MPD protocol.
"""

import asyncio
import codecs
import logging
import socket
from collections.abc import Callable
from contextlib import suppress

from mpdctrl.api.mpd.protocol import MpdError

logger = logging.getLogger(__name__)

TRANSPORT_NETWORK = "network"
TRANSPORT_IPC = "ipc"

# Type aliases for event handlers
ConnectHandler = Callable[[], None]
DataHandler = Callable[[str], None]
ErrorHandler = Callable[[Exception], None]
CloseHandler = Callable[[], None]


class TransportError(MpdError, ConnectionError):
    """Socket-level failure talking to MPD."""


class TransportConnection:
    """Async stream socket with event callbacks.

    Example:
        transport = TransportConnection(host="192.168.1.100", port=6600)
        transport.set_event_handlers(on_data=print)
        await transport.connect()
        transport.write("status\\n")
    """

    _CONNECT_TIMEOUT: float = 5.0
    _READ_CHUNK_SIZE: int = 4096

    def __init__(
        self,
        kind: str = TRANSPORT_NETWORK,
        host: str = "localhost",
        port: int = 6600,
        socket_path: str = "",
        connect_timeout: float = _CONNECT_TIMEOUT,
    ) -> None:
        """Initialize the transport.

        Args:
            kind: "network" for TCP, "ipc" for a Unix domain socket.
            host: Server hostname or IP (network only).
            port: TCP port (network only).
            socket_path: Path of the Unix socket (ipc only).
            connect_timeout: Seconds to wait for the socket to open.
        """
        self._kind = kind
        self._host = host
        self._port = port
        self._socket_path = socket_path
        self._connect_timeout = connect_timeout
        self._reader: asyncio.StreamReader | None = None
        self._writer: asyncio.StreamWriter | None = None
        self._receive_task: asyncio.Task[None] | None = None
        self._connected = False
        self._destroyed = False

        # Event handlers
        self._on_connect: ConnectHandler | None = None
        self._on_data: DataHandler | None = None
        self._on_error: ErrorHandler | None = None
        self._on_close: CloseHandler | None = None

    @property
    def kind(self) -> str:
        """Return the transport kind ("network" or "ipc")."""
        return self._kind

    @property
    def address(self) -> str:
        """Return a printable address for log messages."""
        if self._kind == TRANSPORT_IPC:
            return self._socket_path
        return f"{self._host}:{self._port}"

    @property
    def is_connected(self) -> bool:
        """Return True if the socket is open."""
        return self._connected and self._writer is not None and not self._writer.is_closing()

    def set_event_handlers(
        self,
        on_connect: ConnectHandler | None = None,
        on_data: DataHandler | None = None,
        on_error: ErrorHandler | None = None,
        on_close: CloseHandler | None = None,
    ) -> None:
        """Set event handlers for transport events.

        Args:
            on_connect: Called once the socket is open.
            on_data: Called with every decoded chunk of received text.
            on_error: Called with a TransportError on socket failure.
            on_close: Called when the server closes the connection.
        """
        self._on_connect = on_connect
        self._on_data = on_data
        self._on_error = on_error
        self._on_close = on_close

    async def connect(self) -> None:
        """Open the socket and start receiving.

        Raises:
            TransportError: If the connection cannot be established.
        """
        if self._connected:
            return

        try:
            if self._kind == TRANSPORT_IPC:
                opening = asyncio.open_unix_connection(self._socket_path)
            else:
                opening = asyncio.open_connection(self._host, self._port)
            self._reader, self._writer = await asyncio.wait_for(
                opening,
                timeout=self._connect_timeout,
            )
        except TimeoutError as e:
            raise TransportError(f"Connection to {self.address} timed out") from e
        except OSError as e:
            raise TransportError(f"Failed to connect to {self.address}: {e}") from e

        if self._destroyed:
            # destroy() was called while the socket was opening
            self._writer.close()
            raise TransportError(f"Connection to {self.address} aborted")

        self._connected = True
        logger.debug("Socket open to %s", self.address)
        if self._on_connect:
            self._on_connect()
        self._receive_task = asyncio.create_task(self._receive_loop())

    def set_keep_alive(self, enabled: bool) -> None:
        """Enable TCP keep-alive on a network socket.

        Args:
            enabled: Whether keep-alive probes should be sent.
        """
        if self._kind != TRANSPORT_NETWORK or self._writer is None:
            return
        sock = self._writer.get_extra_info("socket")
        if sock is None:
            return
        try:
            sock.setsockopt(socket.SOL_SOCKET, socket.SO_KEEPALIVE, 1 if enabled else 0)
        except OSError as e:
            logger.warning("Could not set keep-alive on %s: %s", self.address, e)

    def write(self, text: str) -> None:
        """Send text to the server.

        Args:
            text: Text to send, including the trailing newline.

        Raises:
            TransportError: If the socket is not connected.
        """
        if not self.is_connected or self._writer is None:
            raise TransportError(f"Not connected to {self.address}")
        self._writer.write(text.encode("utf-8"))

    def destroy(self) -> None:
        """Tear the socket down immediately.

        No close event is emitted for a destroyed transport.
        """
        self._destroyed = True
        self._connected = False
        if self._receive_task and self._receive_task is not asyncio.current_task():
            self._receive_task.cancel()
        self._receive_task = None
        if self._writer:
            with suppress(OSError, RuntimeError):
                self._writer.close()
            self._writer = None
        self._reader = None

    async def _receive_loop(self) -> None:
        """Background task to read and forward incoming text."""
        if self._reader is None:
            return

        decoder = codecs.getincrementaldecoder("utf-8")(errors="replace")
        error: Exception | None = None
        try:
            while self._connected:
                chunk = await self._reader.read(self._READ_CHUNK_SIZE)
                if not chunk:
                    # Server closed connection
                    break
                text = decoder.decode(chunk)
                if text and self._on_data:
                    self._on_data(text)
        except asyncio.CancelledError:
            return
        except OSError as e:
            error = TransportError(f"Connection to {self.address} failed: {e}")

        if self._destroyed:
            return
        self._connected = False
        if error is not None:
            logger.debug("Transport error on %s: %s", self.address, error)
            if self._on_error:
                self._on_error(error)
        else:
            logger.debug("Server closed connection %s", self.address)
            if self._on_close:
                self._on_close()
