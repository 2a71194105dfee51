"""Error taxonomy for the RCON client.

Every error raised by this package derives from RconError. Connection-level
failures also derive from the builtin ConnectionError and codec failures from
ValueError, so callers can catch them the usual way.
"""

from __future__ import annotations


class RconError(Exception):
    """Base class for all RCON client errors."""


class RconConnectionError(RconError, ConnectionError):
    """The server address could not be reached."""


class ConnectionClosed(RconError, ConnectionError):
    """The stream ended or was closed locally.

    Raised by every in-flight and future operation on a closed connection.
    """

    def __init__(self, message: str = "Connection closed"):
        super().__init__(message)


class MalformedPacket(RconError, ValueError):
    """A frame could not be decoded. Fatal to the connection."""


class EncodingError(RconError, ValueError):
    """An outgoing packet cannot be represented on the wire."""


class AuthFailed(RconError):
    """The server rejected the password."""

    def __init__(self, reason: str = ""):
        self.reason = reason
        message = "Authentication failed"
        if reason:
            message = f"{message}: {reason}"
        super().__init__(message)


class Banned(AuthFailed):
    """The server refuses this client outright. Retrying will not help."""


class InvalidState(RconError):
    """The operation is not allowed in the current connection state."""
