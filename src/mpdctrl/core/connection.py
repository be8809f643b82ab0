"""Persistent MPD connection with idle notifications.

MpdConnection keeps one socket open to MPD and multiplexes two modes on
it. While commanding, every complete response belongs to the request at
the head of the queue. While idle, the server only speaks when something
changed, and the connection refreshes the affected state. Leaving idle
takes a "noidle" round trip before the next command may be written.

Lost connections are retried on a fixed interval until one succeeds.

Example:
    connection = MpdConnection(create_config({"host": "192.168.1.100"}))
    connection.events.update.connect(lambda subsystem: print(subsystem))
    await connection.connect()
    await connection.wait_ready()
    await connection.play()
"""

import asyncio
import logging
from collections import deque
from collections.abc import Awaitable, Callable, Mapping
from dataclasses import dataclass
from enum import Enum
from typing import Self

from mpdctrl.api.mpd.protocol import (
    GreetingFormatError,
    KvpParseError,
    UnknownIdleMessageError,
    check_response_status,
    coerce_status_value,
    find_return_marker,
    format_command,
    iter_song_blocks,
    parse_changed_lines,
    parse_greeting,
    parse_kvp,
    parse_playlist_entry,
    parse_song,
)
from mpdctrl.api.mpd.transport import TransportConnection, TransportError
from mpdctrl.api.mpd.types import Greeting, Song, StatusValue
from mpdctrl.core.config import ConnectionConfig, create_config
from mpdctrl.core.events import MpdEvents
from mpdctrl.core.state import MpdState

logger = logging.getLogger(__name__)

RECONNECT_INTERVAL = 5.0  # seconds

# Subsystems reported by idle and the refresh each one needs
_STATUS_SUBSYSTEMS = frozenset({"mixer", "player", "options"})
_PLAYLIST_SUBSYSTEM = "playlist"
_DATABASE_SUBSYSTEM = "database"


class ConnectionState(Enum):
    """Lifecycle of the MPD connection."""

    DISCONNECTED = "disconnected"
    CONNECTING = "connecting"
    IDLE = "connected-idle"
    COMMANDING = "connected-commanding"
    DISCONNECTING = "disconnecting"


@dataclass(frozen=True)
class Request:
    """A queued command and the future its response resolves."""

    command_line: str
    future: asyncio.Future[str]


TransportFactory = Callable[[ConnectionConfig], TransportConnection]


def create_transport(config: ConnectionConfig) -> TransportConnection:
    """Build the socket transport described by a ConnectionConfig."""
    return TransportConnection(
        kind=config.transport_kind,
        host=config.host,
        port=config.port,
        socket_path=config.socket_path,
    )


class ReconnectSupervisor:
    """Calls a reconnect callback on a fixed interval until cancelled.

    Arming an already armed supervisor does nothing, so repeated failures
    never stack timers.
    """

    def __init__(self, attempt: Callable[[], None], interval: float = RECONNECT_INTERVAL) -> None:
        """Initialize the supervisor.

        Args:
            attempt: Called once per interval while armed.
            interval: Seconds between attempts.
        """
        self._attempt = attempt
        self._interval = interval
        self._handle: asyncio.TimerHandle | None = None
        self.attempts = 0

    @property
    def armed(self) -> bool:
        """Return True if a retry is scheduled."""
        return self._handle is not None

    def arm(self) -> None:
        """Start retrying unless already retrying."""
        if self._handle is not None:
            return
        logger.info("Reconnecting every %.1fs", self._interval)
        self._schedule()

    def cancel(self) -> None:
        """Stop retrying."""
        if self._handle is not None:
            self._handle.cancel()
            self._handle = None

    def _schedule(self) -> None:
        loop = asyncio.get_running_loop()
        self._handle = loop.call_later(self._interval, self._tick)

    def _tick(self) -> None:
        self._schedule()
        self.attempts += 1
        self._attempt()


class MpdConnection:
    """Command queue and idle state machine over a single MPD socket.

    Attributes:
        events: Signal channel for ready/update/status/error/disconnected.
    """

    def __init__(
        self,
        config: ConnectionConfig | None = None,
        reconnect_interval: float = RECONNECT_INTERVAL,
        transport_factory: TransportFactory = create_transport,
        events: MpdEvents | None = None,
    ) -> None:
        """Initialize the connection (does not connect).

        Args:
            config: Connection options, defaults to create_config().
            reconnect_interval: Seconds between reconnect attempts.
            transport_factory: Builds the transport for each connect.
            events: Signal channel to publish on; a new one by default.
        """
        self._config = config or create_config()
        self._transport_factory = transport_factory
        self.events = events or MpdEvents()

        self._model = MpdState()
        self._transport: TransportConnection | None = None
        self._state = ConnectionState.DISCONNECTED
        self._connected = False
        # Not started yet, so nothing to reconnect to
        self._closing = True
        self._buffer = ""

        self._requests: deque[Request] = deque()
        self._active: Request | None = None
        # Request waiting for the server to acknowledge "noidle"
        self._leaving_idle: Request | None = None

        # Refresh sequences in flight; idle is not entered while any run
        self._tasks: set[asyncio.Task[None]] = set()
        self._connect_task: asyncio.Task[None] | None = None
        self._ready = asyncio.Event()
        self._supervisor = ReconnectSupervisor(self._reconnect, reconnect_interval)

    # -------------------------------------------------------------------------
    # Properties
    # -------------------------------------------------------------------------

    @property
    def config(self) -> ConnectionConfig:
        """Return the connection configuration."""
        return self._config

    @property
    def state(self) -> ConnectionState:
        """Return the current connection state."""
        return self._state

    @property
    def status(self) -> dict[str, StatusValue]:
        """Return the last fetched status."""
        return self._model.status

    @property
    def playlist(self) -> list[Song | None]:
        """Return the play queue indexed by position."""
        return self._model.playlist

    @property
    def songs(self) -> list[Song]:
        """Return the song catalog."""
        return self._model.songs

    @property
    def server(self) -> Greeting | None:
        """Return the greeting of the current connection."""
        return self._model.server

    @property
    def is_connected(self) -> bool:
        """Return True if the socket is open."""
        return self._connected

    @property
    def is_idle(self) -> bool:
        """Return True if the server holds the connection in idle mode."""
        return self._state is ConnectionState.IDLE

    @property
    def reconnecting(self) -> bool:
        """Return True if reconnect attempts are scheduled."""
        return self._supervisor.armed

    # -------------------------------------------------------------------------
    # Lifecycle
    # -------------------------------------------------------------------------

    async def __aenter__(self) -> Self:
        """Async context manager entry."""
        await self.connect()
        return self

    async def __aexit__(self, *_: object) -> None:
        """Async context manager exit."""
        self.disconnect()

    async def connect(self) -> None:
        """Open the connection.

        Failures are published on events.error and retried by the
        reconnect supervisor; this coroutine does not raise them.
        """
        self._closing = False
        self._teardown()
        self._state = ConnectionState.CONNECTING

        transport = self._transport_factory(self._config)
        transport.set_event_handlers(
            on_connect=self._on_transport_connect,
            on_data=self._on_data,
            on_error=self._on_transport_error,
            on_close=self._on_transport_close,
        )
        self._transport = transport
        logger.info("Connecting to MPD at %s", self._config.address)

        try:
            await transport.connect()
        except TransportError as e:
            if transport is self._transport:
                self._connection_lost(e)

    def disconnect(self) -> None:
        """Close the connection and stop reconnecting.

        Queued and in-flight requests are dropped; their futures are left
        pending.
        """
        self._closing = True
        self._state = ConnectionState.DISCONNECTING
        self._supervisor.cancel()
        if self._connect_task and self._connect_task is not asyncio.current_task():
            self._connect_task.cancel()
        self._connect_task = None
        self._teardown()
        self._state = ConnectionState.DISCONNECTED
        logger.info("Disconnected from MPD")

    async def wait_ready(self, timeout: float | None = None) -> None:
        """Wait until the initial refresh of the current connection is done.

        Args:
            timeout: Seconds to wait, or None to wait forever.

        Raises:
            TimeoutError: If the connection is not ready in time.
        """
        await asyncio.wait_for(self._ready.wait(), timeout=timeout)

    def _teardown(self) -> None:
        """Drop the socket, the request queue and any refresh in flight."""
        self._active = None
        self._leaving_idle = None
        self._requests.clear()
        self._buffer = ""
        self._ready.clear()
        current = asyncio.current_task()
        for task in list(self._tasks):
            if task is not current:
                task.cancel()
        self._tasks.clear()
        if self._transport is not None:
            self._transport.destroy()
            self._transport = None
        self._connected = False

    def _reconnect(self) -> None:
        """Reconnect supervisor tick: start a fresh connect attempt."""
        logger.info("Reconnecting to MPD at %s", self._config.address)
        if self._connect_task and not self._connect_task.done():
            self._connect_task.cancel()
        self._connect_task = asyncio.create_task(self.connect())

    def _connection_lost(self, error: Exception | None = None) -> None:
        """Tear the connection down and schedule reconnect attempts."""
        if self._closing:
            return
        if error is not None:
            logger.warning("MPD connection error: %s", error)
            self.events.error.emit(error)
            if self._closing:
                # A subscriber disconnected while handling the error
                return
        was_down = self._state is ConnectionState.DISCONNECTED
        self._teardown()
        self._state = ConnectionState.DISCONNECTED
        if not was_down:
            self.events.disconnected.emit()
        self._supervisor.arm()

    # -------------------------------------------------------------------------
    # Transport events
    # -------------------------------------------------------------------------

    def _on_transport_connect(self) -> None:
        self._connected = True
        self._supervisor.cancel()
        logger.debug("Socket open, waiting for greeting")

    def _on_transport_error(self, error: Exception) -> None:
        self._connection_lost(error)

    def _on_transport_close(self) -> None:
        logger.warning("MPD closed the connection")
        self._connection_lost()

    def _on_data(self, text: str) -> None:
        """Buffer received text and hand out every complete message."""
        self._buffer += text

        if self._state is ConnectionState.CONNECTING:
            if "\n" not in self._buffer:
                return
            line, _, self._buffer = self._buffer.partition("\n")
            self._handle_greeting(line)

        while self._state in (ConnectionState.IDLE, ConnectionState.COMMANDING):
            # Only whole lines; a terminator line may still be arriving
            complete = self._buffer[: self._buffer.rfind("\n") + 1]
            index = find_return_marker(complete)
            if index is None:
                return
            message = self._buffer[:index].strip()
            self._buffer = self._buffer[index:]
            if self._state is ConnectionState.IDLE:
                self._handle_idle_message(message)
            else:
                self._handle_response(message)

    def _handle_greeting(self, line: str) -> None:
        greeting = parse_greeting(line)
        if greeting is None:
            self._connection_lost(GreetingFormatError(line))
            return

        self._model.set_server(greeting)
        logger.info(
            "Connected to %s %s at %s", greeting.name, greeting.version, self._config.address
        )
        if self._config.keep_alive and not self._config.is_ipc and self._transport:
            self._transport.set_keep_alive(True)

        self._state = ConnectionState.COMMANDING
        self._spawn(self._initialize)
        self._check_outgoing()

    async def _initialize(self) -> None:
        """Fetch everything once after connecting, then announce readiness."""
        await self.refresh_status()
        await self.refresh_catalog()
        await self.refresh_playlist()
        self._ready.set()
        self.events.ready.emit(self._model.status, self._model.server)

    # -------------------------------------------------------------------------
    # Command queue
    # -------------------------------------------------------------------------

    def submit(self, command_line: str) -> asyncio.Future[str]:
        """Queue a raw command line.

        Args:
            command_line: Complete command without the trailing newline.

        Returns:
            Future resolving with the raw response (data lines and the
            terminal "OK"/"ACK" line), or failing with TransportError if
            the command cannot be written.
        """
        future: asyncio.Future[str] = asyncio.get_running_loop().create_future()
        self._requests.append(Request(command_line, future))
        self._check_outgoing()
        return future

    def send_command(self, command: str, *args: object) -> Awaitable[str]:
        """Queue a command with quoted arguments.

        Returns:
            Awaitable resolving with the raw response.
        """
        return self.submit(format_command(command, *args))

    async def command(self, command: str, *args: object) -> list[str]:
        """Run a command and check that it succeeded.

        Args:
            command: MPD command name.
            *args: Command arguments.

        Returns:
            Response lines without the terminal "OK".

        Raises:
            ProtocolStatusError: If the server answered with ACK.
            TransportError: If the command could not be written.
        """
        command_line = format_command(command, *args)
        response = await self.submit(command_line)
        *lines, last = response.split("\n")
        check_response_status(last, command_line)
        return lines

    def _check_outgoing(self) -> None:
        """Dispatch the next request if the connection is free."""
        while self._active is None and self._leaving_idle is None and self._requests:
            if self._state is ConnectionState.CONNECTING:
                # Dispatch resumes after the greeting
                return
            request = self._requests.popleft()
            if self._state is ConnectionState.IDLE:
                self._leave_idle(request)
                return
            self._dispatch(request)

    def _dispatch(self, request: Request) -> None:
        self._active = request
        try:
            self._write(request.command_line)
        except TransportError as e:
            self._active = None
            if not request.future.done():
                request.future.set_exception(e)
            self._connection_lost(e)

    def _handle_response(self, message: str) -> None:
        request = self._active
        if request is None:
            logger.debug("Dropping unsolicited response: %r", message)
            return
        self._active = None
        if not request.future.done():
            request.future.set_result(message)
        self._check_outgoing()
        self._check_idle()

    def _write(self, command_line: str) -> None:
        if self._transport is None:
            raise TransportError(f"Disconnect while writing to MPD: {command_line}")
        logger.debug("MPD command: %s", command_line)
        self._transport.write(f"{command_line}\n")

    # -------------------------------------------------------------------------
    # Idle mode
    # -------------------------------------------------------------------------

    def _check_idle(self) -> None:
        """Enter idle if nothing is queued, in flight or refreshing."""
        if (
            self._state is not ConnectionState.COMMANDING
            or self._active is not None
            or self._leaving_idle is not None
            or self._requests
            or self._tasks
        ):
            return
        self._state = ConnectionState.IDLE
        try:
            self._write("idle")
        except TransportError as e:
            self._connection_lost(e)

    def _leave_idle(self, request: Request) -> None:
        """Cancel idle; the request is written once the server acknowledges."""
        self._leaving_idle = request
        try:
            self._write("noidle")
        except TransportError as e:
            self._leaving_idle = None
            if not request.future.done():
                request.future.set_exception(e)
            self._connection_lost(e)

    def _handle_idle_message(self, message: str) -> None:
        """Handle a complete message received while idle."""
        self._state = ConnectionState.COMMANDING

        if message != "OK":
            subsystems = parse_changed_lines(message)
            if not subsystems:
                self._connection_lost(UnknownIdleMessageError(message))
                return
            logger.debug("MPD changed: %s", ", ".join(subsystems))
            self._spawn(self._apply_changes, subsystems)

        pending = self._leaving_idle
        if pending is not None:
            self._leaving_idle = None
            self._dispatch(pending)
            return
        self._check_outgoing()
        self._check_idle()

    async def _apply_changes(self, subsystems: list[str]) -> None:
        """Refresh the state behind each changed subsystem, in order."""
        for subsystem in subsystems:
            if subsystem in _STATUS_SUBSYSTEMS:
                await self.refresh_status()
            elif subsystem == _PLAYLIST_SUBSYSTEM:
                await self.refresh_playlist()
            elif subsystem == _DATABASE_SUBSYSTEM:
                await self.refresh_catalog()
            else:
                continue
            self.events.update.emit(subsystem)
            self.events.status.emit(subsystem)

    def _spawn(self, func: Callable[..., Awaitable[None]], *args: object) -> None:
        """Run a refresh sequence as a tracked task."""
        task = asyncio.create_task(self._guarded(func, *args))
        self._tasks.add(task)
        task.add_done_callback(self._tasks.discard)

    async def _guarded(self, func: Callable[..., Awaitable[None]], *args: object) -> None:
        try:
            await func(*args)
        except TransportError as e:
            # Already reported when the connection dropped
            logger.debug("Refresh aborted: %s", e)
        except Exception as e:  # noqa: BLE001
            logger.warning("MPD refresh failed: %s", e)
            self.events.error.emit(e)
        finally:
            self._tasks.discard(asyncio.current_task())  # type: ignore[arg-type]
            self._check_idle()

    # -------------------------------------------------------------------------
    # State refresh
    # -------------------------------------------------------------------------

    async def refresh_status(self) -> dict[str, StatusValue]:
        """Fetch "status" and merge it into the status mapping.

        Raises:
            KvpParseError: If a line is not a key/value pair.
            ProtocolStatusError: If the command failed.
        """
        response = await self.send_command("status")
        *lines, last = response.split("\n")
        check_response_status(last, "status")
        values: dict[str, StatusValue] = {}
        for line in lines:
            kvp = parse_kvp(line)
            if kvp is None:
                raise KvpParseError(line, "Unknown response while fetching status")
            values[kvp.key] = coerce_status_value(kvp)
        return self._model.merge_status(values)

    async def refresh_catalog(self) -> list[Song]:
        """Fetch "listallinfo" and replace the song catalog."""
        response = await self.send_command("listallinfo")
        *lines, last = response.split("\n")
        check_response_status(last, "listallinfo")
        songs = (parse_song(block) for block in iter_song_blocks(lines))
        # Directory-only blocks carry no file and are not songs
        return self._model.replace_songs(song for song in songs if song.file)

    async def refresh_playlist(self) -> list[Song | None]:
        """Fetch "playlistinfo" and replace the play queue."""
        response = await self.send_command("playlistinfo")
        *lines, last = response.split("\n")
        check_response_status(last, "playlistinfo")
        entries: list[tuple[int, Song]] = []
        for block in iter_song_blocks(lines):
            entry = parse_playlist_entry(block)
            if entry is None:
                logger.warning("Skipping playlist entry without position: %s", block)
                continue
            entries.append(entry)
        return self._model.replace_playlist(entries)

    # -------------------------------------------------------------------------
    # Playback Control
    # -------------------------------------------------------------------------

    async def play(self) -> None:
        """Start playback."""
        await self.command("play")

    async def stop(self) -> None:
        """Stop playback."""
        await self.command("stop")

    async def pause(self) -> None:
        """Toggle pause."""
        await self.command("pause")

    async def next(self) -> None:
        """Skip to next track."""
        await self.command("next")

    async def previous(self) -> None:
        """Skip to previous track."""
        await self.command("previous")

    async def toggle(self) -> None:
        """Toggle between play and pause."""
        await self.command("toggle")

    async def clear(self) -> None:
        """Remove every song from the queue."""
        await self.command("clear")

    async def play_id(self, song_id: int) -> None:
        """Start playback at a queue position.

        Args:
            song_id: Position in the queue.
        """
        await self.command("play", song_id)

    async def seek(self, song_pos: int, time: float) -> None:
        """Seek to a time in a queued song.

        Args:
            song_pos: Position in the queue.
            time: Position in seconds.
        """
        await self.command("seek", song_pos, time)

    async def volume(self, level: int) -> None:
        """Set volume.

        Args:
            level: Volume level (0-100).
        """
        await self.command("setvol", max(0, min(100, level)))

    async def repeat(self, enabled: bool = True) -> None:
        """Enable or disable repeat mode."""
        await self.command("repeat", 1 if enabled else 0)

    async def crossfade(self, seconds: int = 0) -> None:
        """Set crossfade between songs, 0 to disable."""
        await self.command("crossfade", seconds)

    # -------------------------------------------------------------------------
    # Queue & Database
    # -------------------------------------------------------------------------

    async def add(self, uri: str) -> None:
        """Append a file or directory to the queue."""
        await self.command("add", uri)

    async def delete_id(self, song_id: int) -> None:
        """Remove the song at a queue position."""
        await self.command("delete", song_id)

    async def search_add(self, search: Mapping[str, str]) -> None:
        """Search the database and queue every match.

        Args:
            search: Tag/value pairs, e.g. {"artist": "Nina Simone"}.
        """
        args: list[str] = []
        for tag, value in search.items():
            args.extend((tag, value))
        await self.command("searchadd", *args)

    async def update_songs(self) -> int | None:
        """Start a database update.

        Returns:
            The update job id, or None if the server did not report one.
        """
        lines = await self.command("update")
        for line in lines:
            kvp = parse_kvp(line)
            if kvp is not None and kvp.key == "updating_db":
                return int(kvp.val)
        return None
