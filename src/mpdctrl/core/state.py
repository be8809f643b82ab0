"""Derived server state: status, play queue and song catalog.

MpdState holds what the connection last fetched from the server. It is
only mutated by the connection's refresh sequence.
"""

import logging
from collections.abc import Iterable, Mapping

from mpdctrl.api.mpd.types import Greeting, Song, StatusValue

logger = logging.getLogger(__name__)


class MpdState:
    """Last known status, playlist and song catalog.

    Status keys are overwritten on every refresh but never removed, so a
    key the server stops reporting keeps its last value.
    """

    def __init__(self) -> None:
        """Initialize empty state."""
        self._status: dict[str, StatusValue] = {}
        self._playlist: list[Song | None] = []
        self._songs: list[Song] = []
        self._server: Greeting | None = None

    @property
    def status(self) -> dict[str, StatusValue]:
        """Return the status mapping."""
        return self._status

    @property
    def playlist(self) -> list[Song | None]:
        """Return the play queue indexed by position (holes are None)."""
        return self._playlist

    @property
    def songs(self) -> list[Song]:
        """Return every song in the server's database."""
        return self._songs

    @property
    def server(self) -> Greeting | None:
        """Return server name and protocol version, or None before connecting."""
        return self._server

    def set_server(self, server: Greeting) -> None:
        """Record the greeting of the current connection."""
        self._server = server

    def merge_status(self, values: Mapping[str, StatusValue]) -> dict[str, StatusValue]:
        """Overwrite status keys with freshly parsed values.

        Args:
            values: Parsed status values.

        Returns:
            The updated status mapping.
        """
        self._status.update(values)
        return self._status

    def replace_playlist(self, entries: Iterable[tuple[int, Song]]) -> list[Song | None]:
        """Replace the play queue.

        Args:
            entries: (position, song) pairs as reported by the server.

        Returns:
            The new playlist, with each song stored at its position.
        """
        by_pos = dict(entries)
        playlist: list[Song | None] = [None] * (max(by_pos) + 1 if by_pos else 0)
        for pos, song in by_pos.items():
            playlist[pos] = song
        self._playlist = playlist
        logger.debug("Playlist refreshed: %d entries", len(by_pos))
        return self._playlist

    def replace_songs(self, songs: Iterable[Song]) -> list[Song]:
        """Replace the song catalog.

        Args:
            songs: Songs in server order.

        Returns:
            The new catalog.
        """
        self._songs = list(songs)
        logger.debug("Song catalog refreshed: %d songs", len(self._songs))
        return self._songs
