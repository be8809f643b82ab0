"""MPD protocol and transport.

This module provides the pure protocol codec (greeting, key/value
lines, response terminators, idle notifications) and the stream
transport the connection runs on.

Example:
    from mpdctrl.api.mpd import TransportConnection, parse_greeting

    transport = TransportConnection(host="192.168.1.100", port=6600)
    transport.set_event_handlers(on_data=print)
    await transport.connect()
"""

from mpdctrl.api.mpd.protocol import (
    GreetingFormatError,
    KvpParseError,
    MpdError,
    ProtocolError,
    ProtocolStatusError,
    UnknownIdleMessageError,
    format_command,
    parse_greeting,
    parse_kvp,
)
from mpdctrl.api.mpd.transport import TransportConnection, TransportError
from mpdctrl.api.mpd.types import Greeting, Kvp, PlaybackTime, Song

__all__ = [
    "Greeting",
    "GreetingFormatError",
    "Kvp",
    "KvpParseError",
    "MpdError",
    "PlaybackTime",
    "ProtocolError",
    "ProtocolStatusError",
    "Song",
    "TransportConnection",
    "TransportError",
    "UnknownIdleMessageError",
    "format_command",
    "parse_greeting",
    "parse_kvp",
]
