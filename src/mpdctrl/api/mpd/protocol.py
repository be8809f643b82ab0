"""MPD protocol parsing utilities.

MPD uses a simple line-based text protocol:
- On connect the server greets with "OK MPD <version>"
- Commands are sent as plain text lines, arguments in double quotes
- Responses are key-value pairs: "key: value"
- Responses end with "OK" or "ACK [error@index] {command} message"
- In idle mode the server answers with "changed: <subsystem>" lines

Everything here is pure: no state, no I/O.

Reference: https://mpd.readthedocs.io/en/stable/protocol.html
"""

import re
from collections.abc import Iterable, Iterator

from mpdctrl.api.mpd.types import Greeting, Kvp, PlaybackTime, Song, StatusValue


class MpdError(Exception):
    """Base class for all MPD client errors."""


class ProtocolError(MpdError):
    """The server sent something the protocol does not allow here."""


class GreetingFormatError(ProtocolError):
    """The first line after connecting is not an MPD greeting."""

    def __init__(self, line: str) -> None:
        self.line = line
        super().__init__(f"Unexpected greeting message: {line!r}")


class ProtocolStatusError(ProtocolError):
    """A command finished with something other than "OK".

    Attributes:
        line: The terminal line the server sent.
        command: The command line that produced it.
        code: MPD error code if the line is an ACK, else None.
        index: Command list index if the line is an ACK, else None.
        message: Server error message if the line is an ACK, else "".
    """

    def __init__(self, line: str | None, command: str | None) -> None:
        self.line = line
        self.command = command
        self.code: int | None = None
        self.index: int | None = None
        self.message = ""
        ack = parse_ack(line)
        if ack is not None:
            self.code, self.index, _, self.message = ack
        super().__init__(f"Unexpected response status {line!r} for command {command!r}")


class UnknownIdleMessageError(ProtocolError):
    """An idle notification carried no "changed:" lines."""

    def __init__(self, message: str) -> None:
        self.received = message
        super().__init__(f"Received unknown message during idle: {message!r}")


class KvpParseError(ProtocolError):
    """A response line is not a "KEY: VALUE" pair."""

    def __init__(self, line: str, context: str = "Unknown response") -> None:
        self.line = line
        super().__init__(f"{context}: {line!r}")


# "NAME: VALUE", NAME without whitespace
KVP_PATTERN = re.compile(r"^(\S+)\s*:\s*(.+)$")

GREETING_PATTERN = re.compile(r"OK\s(.+)\s(.+)")

# Pattern for ACK responses: ACK [error@command_listNum] {current_command} message_text
ACK_PATTERN = re.compile(r"ACK \[(\d+)@(\d+)\] \{(\w*)\} ?(.*)")

# Response terminators, in the order they are tried
RETURN_PATTERNS: tuple[re.Pattern[str], ...] = (
    re.compile(r"^OK(?:\n|$)", re.MULTILINE),
    re.compile(r"^ACK\s*\[\d*@\d*\]\s*\{.*?\}\s*.*?(?:\n|$)", re.MULTILINE),
)

CHANGED_PREFIX = "changed:"
FILE_PREFIX = "file:"
# listallinfo entries that are not songs
DIRECTORY_PREFIX = "directory:"
PLAYLIST_PREFIX = "playlist:"
ENTITY_PREFIXES = (FILE_PREFIX, DIRECTORY_PREFIX, PLAYLIST_PREFIX)
POS_PREFIX = "Pos:"

_BOOL_KEYS = frozenset({"repeat", "single", "random", "consume"})
_INT_KEYS = frozenset({"song", "xfade", "bitrate", "playlist", "playlistlength"})


def parse_kvp(line: object) -> Kvp | None:
    """Parse a "NAME: VALUE" line.

    Args:
        line: A single response line.

    Returns:
        Kvp with trimmed key and value, or None if the line does not match
        (or is not a string at all).
    """
    if not line or not isinstance(line, str):
        return None
    match = KVP_PATTERN.match(line)
    if not match:
        return None
    return Kvp(key=match.group(1).strip(), val=match.group(2).strip())


def parse_greeting(line: object) -> Greeting | None:
    """Parse the greeting MPD sends right after a connection is accepted.

    Args:
        line: First line received, e.g. "OK MPD 0.23.5".

    Returns:
        Greeting with server name and protocol version, or None.
    """
    if not line or not isinstance(line, str):
        return None
    match = GREETING_PATTERN.match(line.strip())
    if not match:
        return None
    return Greeting(name=match.group(1), version=match.group(2))


def parse_ack(line: object) -> tuple[int, int, str, str] | None:
    """Split an ACK line into (code, index, command, message)."""
    if not line or not isinstance(line, str):
        return None
    match = ACK_PATTERN.match(line.strip())
    if not match:
        return None
    return int(match.group(1)), int(match.group(2)), match.group(3), match.group(4)


def find_return_marker(buffer: object) -> int | None:
    """Find the end of the first complete response in a receive buffer.

    Args:
        buffer: Text received so far.

    Returns:
        Offset just past the terminator of the first complete response,
        or None if no terminator has been received yet.
    """
    if not buffer or not isinstance(buffer, str):
        return None
    matches = [m for m in (p.search(buffer) for p in RETURN_PATTERNS) if m]
    if not matches:
        return None
    first = min(matches, key=lambda m: m.start())
    return first.end()


def parse_changed_lines(message: object) -> list[str]:
    """Return the subsystem names reported by an idle notification.

    Args:
        message: Complete idle response, e.g. "changed: player\\nOK".

    Returns:
        Subsystem names in the order the server listed them.
    """
    if not message or not isinstance(message, str):
        return []
    return [
        line[len(CHANGED_PREFIX) :].strip()
        for line in message.split("\n")
        if line.startswith(CHANGED_PREFIX)
    ]


def check_response_status(line: str | None, command_line: str | None) -> None:
    """Verify that a command's terminal line is "OK".

    Args:
        line: Terminal line of the response.
        command_line: Command that produced the response.

    Raises:
        ProtocolStatusError: If the line is anything but "OK".
    """
    if line != "OK":
        raise ProtocolStatusError(line, command_line)


def coerce_status_value(kvp: Kvp) -> StatusValue:
    """Convert a raw status value to its natural type.

    Args:
        kvp: One parsed line of the "status" response.

    Returns:
        bool for mode flags, int for counters, a 0..1 float for volume,
        PlaybackTime for "time", and the raw string for anything else.

    Raises:
        KvpParseError: If a numeric key carries a non-numeric value.
    """
    key, val = kvp.key, kvp.val
    try:
        if key in _BOOL_KEYS:
            return val == "1"
        if key in _INT_KEYS:
            return int(val)
        if key == "volume":
            return int(val.split("%", 1)[0]) / 100
    except ValueError as e:
        raise KvpParseError(f"{key}: {val}", "Invalid status value") from e
    if key == "time":
        elapsed, _, length = val.partition(":")
        return PlaybackTime(elapsed=elapsed, length=length)
    return val


def iter_song_blocks(lines: Iterable[str]) -> Iterator[list[str]]:
    """Split listing lines into one block per song.

    A new block starts at every "file:", "directory:" or "playlist:"
    line, so directory and playlist entries never leak their keys into
    the preceding song. Lines before the first such line form a block
    of their own.

    Args:
        lines: Response lines without the terminal status line.

    Yields:
        Lists of lines, one per entity.
    """
    block: list[str] = []
    for line in lines:
        if line.startswith(ENTITY_PREFIXES) and block:
            yield block
            block = []
        block.append(line)
    if block:
        yield block


# MPD key name mappings to Song field names
_SONG_KEY_MAP: dict[str, str] = {
    "file": "file",
    "time": "time",
    "duration": "duration",
    "date": "date",
    "genre": "genre",
    "title": "title",
    "album": "album",
    "track": "track",
    "artist": "artist",
    "last-modified": "last_modified",
}


def parse_song(lines: Iterable[str]) -> Song:
    """Parse one song block into a Song.

    "OK" lines are skipped and keys Song does not model are ignored.

    Args:
        lines: Key/value lines of one song.

    Returns:
        Song instance.

    Raises:
        KvpParseError: If a line is not a "KEY: VALUE" pair.
    """
    kwargs: dict[str, str] = {}
    for line in lines:
        if line == "OK":
            continue
        kvp = parse_kvp(line)
        if kvp is None:
            raise KvpParseError(line, "Unknown response while parsing song")
        field_name = _SONG_KEY_MAP.get(kvp.key.lower())
        if field_name:
            kwargs[field_name] = kvp.val
    return Song(**kwargs)


def parse_playlist_entry(lines: Iterable[str]) -> tuple[int, Song] | None:
    """Parse one "playlistinfo" block into (position, song).

    Args:
        lines: Key/value lines of one queue entry.

    Returns:
        Position and song, or None if the block has no "Pos" line.

    Raises:
        KvpParseError: If a line is malformed or the position is not a number.
    """
    pos: int | None = None
    song_lines: list[str] = []
    for line in lines:
        if line.startswith(POS_PREFIX):
            kvp = parse_kvp(line)
            if kvp is None or not kvp.val.isdigit():
                raise KvpParseError(line, "Invalid playlist position")
            pos = int(kvp.val)
        else:
            song_lines.append(line)
    if pos is None:
        return None
    return pos, parse_song(song_lines)


def escape_arg(arg: object) -> str:
    """Quote an argument for an MPD command.

    Inside quotes, backslash and double-quote must be escaped.

    Args:
        arg: The argument; non-strings are converted with str().

    Returns:
        The argument wrapped in double quotes.
    """
    escaped = str(arg).replace("\\", "\\\\").replace('"', '\\"')
    return f'"{escaped}"'


def format_command(command: str, *args: object) -> str:
    """Format an MPD command with arguments.

    Args:
        command: The MPD command name.
        *args: Command arguments.

    Returns:
        Formatted command string (without newline).
    """
    if not args:
        return command
    escaped_args = [escape_arg(arg) for arg in args]
    return f"{command} {' '.join(escaped_args)}"
