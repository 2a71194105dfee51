"""Transport layer.

A TransportSession owns one TCP stream and moves whole packets across it.
It knows nothing about authentication or request correlation.
"""

from .session import ConnectionState, TransportSession, connect

__all__ = [
    "ConnectionState",
    "TransportSession",
    "connect",
]
