"""Qt signal channel for connection events.

MpdConnection publishes everything a caller may want to react to on an
MpdEvents object. Subscribers connect to the signals they need.

Example:
    connection = MpdConnection(create_config({"host": "192.168.1.100"}))
    connection.events.ready.connect(lambda status, server: print(status))
    connection.events.update.connect(lambda subsystem: print(subsystem))
"""

from PySide6.QtCore import QObject, Signal


class MpdEvents(QObject):
    """Signals published by an MpdConnection."""

    # Initial refresh finished after (re)connecting
    # Parameters: (status: dict[str, StatusValue], server: Greeting)
    ready = Signal(object, object)

    # A subsystem reported by idle was refreshed
    # Parameter: subsystem name ("player", "playlist", ...)
    update = Signal(str)

    # Status snapshot is current after a subsystem refresh
    # Parameter: subsystem name
    status = Signal(str)

    # Parameter: Exception
    error = Signal(object)

    # Connection to the server was lost
    disconnected = Signal()
