"""mpdctrl: async Music Player Daemon client with idle notifications."""

__version__ = "0.1.0"
