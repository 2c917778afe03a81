"""Route modules exposed by the API package."""

from . import attachments, ping, reports, tickets

__all__ = ["attachments", "ping", "reports", "tickets"]
