"""API layer for talking to Music Player Daemon."""
