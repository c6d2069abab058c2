"""Route modules exposed by the API package."""

from . import metrics, ping, settings, tickets

__all__ = ["metrics", "ping", "settings", "tickets"]
