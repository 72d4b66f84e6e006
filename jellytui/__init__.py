"""Jellyfin terminal client that plays media through mpv."""

__version__ = "0.1.0"
