"""ChatWire error types."""
from __future__ import annotations


class ChatError(Exception):
    """Base class for chat client errors."""


class ConnectError(ChatError):
    """Server unreachable, refused, or an invalid address/port/username."""


class SendError(ChatError):
    """Write to an absent, closed or broken transport."""


class ParseError(ChatError):
    """Incoming payload is not a usable envelope."""


class ConnectionLost(ChatError):
    """Read loop ended after a successful connect."""
