"""Connection configuration and persistent settings.

ConnectionConfig is the immutable set of options a connection is built
from. create_config() merges user options with the defaults, and
ConfigManager keeps the user's choices in QSettings between runs.
"""

import logging
from collections.abc import Mapping
from dataclasses import dataclass
from typing import Any

from PySide6.QtCore import QSettings

from mpdctrl.api.mpd.transport import TRANSPORT_IPC, TRANSPORT_NETWORK

logger = logging.getLogger(__name__)

DEFAULT_SOCKET_PATH = "/var/run/mpd/socket"
DEFAULT_HOST = "localhost"
DEFAULT_PORT = 6600
DEFAULT_TRANSPORT = TRANSPORT_NETWORK
DEFAULT_KEEP_ALIVE = False

TRANSPORT_KINDS = frozenset({TRANSPORT_IPC, TRANSPORT_NETWORK})

# Settings keys
_KEY_MPD_TYPE = "mpd/type"
_KEY_MPD_IPC = "mpd/ipc"
_KEY_MPD_HOST = "mpd/host"
_KEY_MPD_PORT = "mpd/port"
_KEY_MPD_KEEP_ALIVE = "mpd/keep_alive"


@dataclass(frozen=True, slots=True)
class ConnectionConfig:
    """How to reach the MPD server.

    Attributes:
        transport_kind: "network" for TCP or "ipc" for a Unix socket.
        socket_path: Path of the Unix socket (ipc only).
        host: Server hostname or IP address (network only).
        port: TCP port (network only).
        keep_alive: Enable TCP keep-alive (network only).
    """

    transport_kind: str = DEFAULT_TRANSPORT
    socket_path: str = DEFAULT_SOCKET_PATH
    host: str = DEFAULT_HOST
    port: int = DEFAULT_PORT
    keep_alive: bool = DEFAULT_KEEP_ALIVE

    @property
    def is_ipc(self) -> bool:
        """Return True if the connection goes through a Unix socket."""
        return self.transport_kind == TRANSPORT_IPC

    @property
    def address(self) -> str:
        """Return the socket path or host:port."""
        if self.is_ipc:
            return self.socket_path
        return f"{self.host}:{self.port}"


def create_config(options: Mapping[str, Any] | None = None) -> ConnectionConfig:
    """Combine user options with the defaults.

    Accepted keys: "ipc", "host", "port", "type" and "keepAlive" (or
    "keep_alive"). Missing or empty values fall back to the defaults, and
    an unknown "type" falls back to "network".

    Args:
        options: User options, may be None.

    Returns:
        A complete ConnectionConfig.
    """
    opts = options or {}
    kind = opts.get("type")
    keep_alive = opts.get("keepAlive", opts.get("keep_alive"))
    return ConnectionConfig(
        transport_kind=kind if kind in TRANSPORT_KINDS else DEFAULT_TRANSPORT,
        socket_path=opts.get("ipc") or DEFAULT_SOCKET_PATH,
        host=opts.get("host") or DEFAULT_HOST,
        port=int(opts.get("port") or DEFAULT_PORT),
        keep_alive=bool(keep_alive) or DEFAULT_KEEP_ALIVE,
    )


class ConfigManager:
    """Wrapper around QSettings for type-safe connection settings.

    QSettings stores config in platform-specific locations:
    - Windows: HKEY_CURRENT_USER\\Software\\mpdctrl\\mpdctrl
    - macOS: ~/Library/Preferences/com.mpdctrl.mpdctrl.plist
    - Linux: ~/.config/mpdctrl/mpdctrl.conf

    Example:
        config = ConfigManager()
        config.set_mpd_host("192.168.1.100")
        connection = MpdConnection(config.get_connection_config())
    """

    def __init__(self, organization: str = "mpdctrl", application: str = "mpdctrl") -> None:
        """Initialize the config manager.

        Args:
            organization: Organization name for QSettings.
            application: Application name for QSettings.
        """
        self._settings = QSettings(organization, application)

    @property
    def settings(self) -> QSettings:
        """Return the underlying QSettings instance."""
        return self._settings

    def get_transport_kind(self) -> str:
        """Return "network" or "ipc" (default "network")."""
        value = self._settings.value(_KEY_MPD_TYPE, DEFAULT_TRANSPORT, str)
        return str(value) if value in TRANSPORT_KINDS else DEFAULT_TRANSPORT

    def set_transport_kind(self, kind: str) -> None:
        """Set the transport kind.

        Args:
            kind: "network" or "ipc".
        """
        if kind not in TRANSPORT_KINDS:
            logger.warning("Ignoring unknown transport kind: %s", kind)
            return
        self._settings.setValue(_KEY_MPD_TYPE, kind)

    def get_socket_path(self) -> str:
        """Return the Unix socket path."""
        value = self._settings.value(_KEY_MPD_IPC, DEFAULT_SOCKET_PATH, str)
        return str(value) if value else DEFAULT_SOCKET_PATH

    def set_socket_path(self, path: str) -> None:
        """Set the Unix socket path.

        Args:
            path: Socket path, or empty string for the default.
        """
        self._settings.setValue(_KEY_MPD_IPC, path)

    def get_mpd_host(self) -> str:
        """Return the MPD host (default "localhost")."""
        value = self._settings.value(_KEY_MPD_HOST, DEFAULT_HOST, str)
        return str(value) if value else DEFAULT_HOST

    def set_mpd_host(self, host: str) -> None:
        """Set the MPD host.

        Args:
            host: Hostname or IP, or empty string for the default.
        """
        self._settings.setValue(_KEY_MPD_HOST, host)

    def get_mpd_port(self) -> int:
        """Return the MPD port.

        Returns:
            Port number (default 6600).
        """
        value = self._settings.value(_KEY_MPD_PORT, DEFAULT_PORT, int)
        return max(1, min(65535, int(value)))  # type: ignore[arg-type]

    def set_mpd_port(self, port: int) -> None:
        """Set the MPD port.

        Args:
            port: Port number (1-65535).
        """
        self._settings.setValue(_KEY_MPD_PORT, max(1, min(65535, port)))

    def get_keep_alive(self) -> bool:
        """Return whether TCP keep-alive is enabled."""
        return bool(self._settings.value(_KEY_MPD_KEEP_ALIVE, DEFAULT_KEEP_ALIVE, bool))

    def set_keep_alive(self, enabled: bool) -> None:
        """Enable or disable TCP keep-alive.

        Args:
            enabled: Whether to use keep-alive.
        """
        self._settings.setValue(_KEY_MPD_KEEP_ALIVE, enabled)

    def get_connection_config(self) -> ConnectionConfig:
        """Build a ConnectionConfig from the saved settings."""
        return create_config(
            {
                "type": self.get_transport_kind(),
                "ipc": self.get_socket_path(),
                "host": self.get_mpd_host(),
                "port": self.get_mpd_port(),
                "keepAlive": self.get_keep_alive(),
            }
        )

    def save_connection_config(self, config: ConnectionConfig) -> None:
        """Persist every field of a ConnectionConfig.

        Args:
            config: Configuration to save.
        """
        self.set_transport_kind(config.transport_kind)
        self.set_socket_path(config.socket_path)
        self.set_mpd_host(config.host)
        self.set_mpd_port(config.port)
        self.set_keep_alive(config.keep_alive)

    def clear(self) -> None:
        """Clear all settings (useful for testing or reset)."""
        self._settings.clear()

    def sync(self) -> None:
        """Force settings to be written to disk."""
        self._settings.sync()
