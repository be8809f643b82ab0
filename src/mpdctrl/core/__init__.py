"""Core connection logic.

This module holds the stateful side of the client: configuration, the
derived server state and the connection that keeps it current.

Classes:
    ConfigManager: QSettings wrapper for configuration.
    MpdConnection: Command queue and idle state machine.
    MpdEvents: Qt signals published by the connection.
    MpdState: Last known status, playlist and song catalog.
"""

from mpdctrl.core.config import ConfigManager, ConnectionConfig, create_config
from mpdctrl.core.connection import ConnectionState, MpdConnection
from mpdctrl.core.events import MpdEvents
from mpdctrl.core.state import MpdState

__all__ = [
    "ConfigManager",
    "ConnectionConfig",
    "ConnectionState",
    "MpdConnection",
    "MpdEvents",
    "MpdState",
    "create_config",
]
