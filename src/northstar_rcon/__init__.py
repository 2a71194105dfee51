"""Async client for the Northstar remote console (RCON).

Usage:
    from northstar_rcon import authenticate, connect

    session = await connect("localhost:37015")
    writer, reader = await authenticate(session, "password123")

    await writer.enable_console_logs()
    print(await writer.exec_command("status"))

    async for line in reader:
        print(">", line)
"""

from .auth import authenticate, login
from .client import CommandWriter, LogReader, format_convar
from .config import ClientConfig, parse_address
from .connection import Connection
from .errors import (
    AuthFailed,
    Banned,
    ConnectionClosed,
    EncodingError,
    InvalidState,
    MalformedPacket,
    RconConnectionError,
    RconError,
)
from .protocol import Direction, Packet, PacketKind, decode, encode
from .transport import ConnectionState, TransportSession, connect

__version__ = "0.1.0"

__all__ = [
    # Connecting
    "connect",
    "authenticate",
    "login",
    "ClientConfig",
    "parse_address",
    # Session and halves
    "TransportSession",
    "ConnectionState",
    "Connection",
    "CommandWriter",
    "LogReader",
    "format_convar",
    # Protocol
    "Packet",
    "PacketKind",
    "Direction",
    "encode",
    "decode",
    # Errors
    "RconError",
    "RconConnectionError",
    "ConnectionClosed",
    "MalformedPacket",
    "EncodingError",
    "AuthFailed",
    "Banned",
    "InvalidState",
]
