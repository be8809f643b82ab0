"""Main entry point for the mpdctrl monitor."""

import argparse
import asyncio
import logging
import sys
from contextlib import suppress

from PySide6.QtCore import QCoreApplication

from mpdctrl.api.mpd.transport import TRANSPORT_IPC, TRANSPORT_NETWORK
from mpdctrl.core.config import ConfigManager, ConnectionConfig, create_config
from mpdctrl.core.connection import MpdConnection

logger = logging.getLogger(__name__)


def parse_args(argv: list[str]) -> argparse.Namespace:
    """Parse command line arguments."""
    parser = argparse.ArgumentParser(
        prog="mpdctrl",
        description="mpdctrl - Music Player Daemon monitor",
    )
    parser.add_argument(
        "host", nargs="?", default=None, help="server hostname or IP",
    )
    parser.add_argument(
        "port", nargs="?", type=int, default=None, help="TCP port (default: 6600)",
    )
    parser.add_argument(
        "--ipc", metavar="PATH", default=None, help="connect through a Unix socket",
    )
    parser.add_argument(
        "--keep-alive", action="store_true", help="enable TCP keep-alive",
    )
    parser.add_argument(
        "--save", action="store_true", help="remember these connection settings",
    )
    parser.add_argument(
        "-v", "--verbose", action="store_true", help="log protocol traffic",
    )
    return parser.parse_args(argv)


def resolve_config(args: argparse.Namespace, config: ConfigManager) -> ConnectionConfig:
    """Overlay command line options on the saved settings.

    Args:
        args: Parsed command line.
        config: Saved settings.

    Returns:
        The configuration to connect with.
    """
    saved = config.get_connection_config()
    if args.ipc:
        kind = TRANSPORT_IPC
    elif args.host:
        kind = TRANSPORT_NETWORK
    else:
        kind = saved.transport_kind
    return create_config(
        {
            "type": kind,
            "ipc": args.ipc or saved.socket_path,
            "host": args.host or saved.host,
            "port": args.port or saved.port,
            "keepAlive": args.keep_alive or saved.keep_alive,
        }
    )


def current_title(connection: MpdConnection) -> str:
    """Return the display title of the current song, or "" if there is none."""
    pos = connection.status.get("song")
    if not isinstance(pos, int) or isinstance(pos, bool):
        return ""
    playlist = connection.playlist
    song = playlist[pos] if 0 <= pos < len(playlist) else None
    return song.display_title if song else ""


async def run(connection_config: ConnectionConfig) -> None:
    """Connect and log every event until cancelled."""
    connection = MpdConnection(connection_config)

    def on_ready(status: object, server: object) -> None:
        logger.info("Ready: %s", server)
        logger.info("Status: %s", status)
        logger.info(
            "%d songs in database, %d in playlist",
            len(connection.songs),
            len(connection.playlist),
        )

    def on_update(subsystem: str) -> None:
        if subsystem == "playlist":
            logger.info("Playlist changed: %d entries", len(connection.playlist))
        elif subsystem == "database":
            logger.info("Database changed: %d songs", len(connection.songs))
        elif subsystem == "player":
            logger.info(
                "Player %s: %s", connection.status.get("state"), current_title(connection)
            )
        else:
            logger.info("%s changed: state=%s", subsystem, connection.status.get("state"))

    def on_error(err: object) -> None:
        logger.error("Error: %s", err)

    def on_disconnected() -> None:
        logger.warning("Disconnected - reconnecting...")

    connection.events.ready.connect(on_ready)
    connection.events.update.connect(on_update)
    connection.events.error.connect(on_error)
    connection.events.disconnected.connect(on_disconnected)

    async with connection:
        await asyncio.Event().wait()


def main() -> int:
    """Run the mpdctrl monitor.

    Returns:
        Exit code (0 for success).
    """
    QCoreApplication.setOrganizationName("mpdctrl")
    QCoreApplication.setApplicationName("mpdctrl")
    app = QCoreApplication(sys.argv)

    args = parse_args(app.arguments()[1:])
    logging.basicConfig(
        level=logging.DEBUG if args.verbose else logging.INFO,
        format="%(asctime)s %(levelname)s %(name)s: %(message)s",
    )

    config = ConfigManager()
    connection_config = resolve_config(args, config)
    if args.save:
        config.save_connection_config(connection_config)
        config.sync()
        logger.info("Saved connection settings for %s", connection_config.address)

    with suppress(KeyboardInterrupt):
        asyncio.run(run(connection_config))
    return 0


if __name__ == "__main__":
    sys.exit(main())
