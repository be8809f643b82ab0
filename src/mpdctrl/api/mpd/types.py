"""MPD protocol data types.

This module defines frozen dataclasses for values parsed out of MPD
responses. The derived collections (status, playlist, catalog) live in
mpdctrl.core.state.
"""

from dataclasses import dataclass, fields


@dataclass(frozen=True)
class Kvp:
    """A single "KEY: VALUE" protocol line.

    Attributes:
        key: Key name, without surrounding whitespace.
        val: Value, trimmed.
    """

    key: str
    val: str


@dataclass(frozen=True)
class Greeting:
    """Server identification sent right after connecting.

    Attributes:
        name: Server name (normally "MPD").
        version: Protocol version, e.g. "0.23.5".
    """

    name: str
    version: str


@dataclass(frozen=True)
class PlaybackTime:
    """The "time" status value, "elapsed:length" in whole seconds."""

    elapsed: str
    length: str


StatusValue = bool | int | float | PlaybackTime | str


@dataclass(frozen=True)
class Song:
    """A song from the MPD database or play queue.

    Attributes:
        file: Path to the audio file in MPD's music directory.
        time: Whole-second length from the legacy "Time" tag.
        duration: Fractional length in seconds from "duration".
        date: Release date/year.
        genre: Genre tag.
        title: Track title from tags.
        album: Album name from tags.
        track: Track number (e.g., "3" or "3/12").
        artist: Artist name(s) from tags.
        last_modified: ISO 8601 modification time of the file.
    """

    file: str = ""
    time: str = ""
    duration: str = ""
    date: str = ""
    genre: str = ""
    title: str = ""
    album: str = ""
    track: str = ""
    artist: str = ""
    last_modified: str = ""

    def to_dict(self) -> dict[str, str]:
        """Return only the fields the server actually reported."""
        return {f.name: getattr(self, f.name) for f in fields(self) if getattr(self, f.name)}

    @property
    def display_title(self) -> str:
        """Return title for display, with filename fallback."""
        if self.title:
            return self.title
        # Extract filename without path and extension
        name = self.file.rsplit("/", 1)[-1]
        if "." in name:
            name = name.rsplit(".", 1)[0]
        return name
