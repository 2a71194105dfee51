"""Transport session over a TCP byte stream.

Owns the raw asyncio stream pair and performs exact length-delimited
reads and writes of encoded packets. The session also carries the
connection state machine:

    connected -> authenticating -> authenticated | auth_failed
    auth_failed / any I/O error -> closed

Once closed, every read and write fails with ConnectionClosed without
touching the socket.
"""

from __future__ import annotations

import asyncio
import logging
from enum import Enum

from ..config import DEFAULT_PORT, Address, parse_address
from ..errors import ConnectionClosed, MalformedPacket, RconConnectionError
from ..protocol import (
    HEADER_SIZE,
    MAX_FRAME_LENGTH,
    Direction,
    Packet,
    PacketKind,
    decode,
    decode_length,
    encode,
)

logger = logging.getLogger(__name__)


class ConnectionState(str, Enum):
    """Connection state machine."""

    CONNECTED = "connected"
    AUTHENTICATING = "authenticating"
    AUTHENTICATED = "authenticated"
    AUTH_FAILED = "auth_failed"
    CLOSED = "closed"


class TransportSession:
    """Length-delimited packet I/O over one stream pair.

    Reads must come from a single task at a time (the handshake, then the
    connection's dispatch loop). Writes may come from any number of tasks;
    they are serialized so frames never interleave.
    """

    def __init__(
        self,
        reader: asyncio.StreamReader,
        writer: asyncio.StreamWriter,
        *,
        max_frame_length: int = MAX_FRAME_LENGTH,
    ):
        self._reader = reader
        self._writer = writer
        self._max_frame_length = max_frame_length
        self._write_lock = asyncio.Lock()
        self._state = ConnectionState.CONNECTED
        self._peer = _peer_name(writer)

    @property
    def state(self) -> ConnectionState:
        """Current connection state."""
        return self._state

    @property
    def is_closed(self) -> bool:
        return self._state == ConnectionState.CLOSED

    @property
    def peer(self) -> str:
        """Remote address, for logging."""
        return self._peer

    def set_state(self, state: ConnectionState) -> None:
        """Move the state machine. A closed session stays closed."""
        if self._state == ConnectionState.CLOSED:
            return
        logger.debug(f"Session {self._peer}: {self._state.value} -> {state.value}")
        self._state = state

    async def read_packet(self) -> Packet:
        """Read exactly one frame and decode it.

        Raises:
            ConnectionClosed: If the stream ends before a full frame arrives
            MalformedPacket: If the frame cannot be decoded (session is closed)
        """
        if self.is_closed:
            raise ConnectionClosed()

        try:
            header = await self._reader.readexactly(HEADER_SIZE)
            length = decode_length(header, self._max_frame_length)
            frame = await self._reader.readexactly(length)
            packet = decode(frame, Direction.INBOUND)
        except asyncio.IncompleteReadError as e:
            await self.close()
            raise ConnectionClosed("Stream ended mid-frame" if e.partial else "Stream ended") from e
        except MalformedPacket as e:
            logger.error(f"Malformed packet from {self._peer}: {e}")
            await self.close()
            raise
        except (ConnectionError, OSError) as e:
            await self.close()
            raise ConnectionClosed(f"Read failed: {e}") from e

        logger.debug(f"Received {packet.kind.value} id={packet.id} ({len(packet.body)} chars)")
        return packet

    async def write_packet(self, kind: PacketKind, packet_id: int, body: str = "") -> None:
        """Encode and write one frame.

        Raises:
            EncodingError: If the packet cannot be encoded (session unaffected)
            ConnectionClosed: If the session is closed or the write fails
        """
        frame = encode(kind, packet_id, body)

        async with self._write_lock:
            if self.is_closed:
                raise ConnectionClosed()
            try:
                self._writer.write(frame)
                await self._writer.drain()
            except (ConnectionError, OSError) as e:
                await self.close()
                raise ConnectionClosed(f"Write failed: {e}") from e

        logger.debug(f"Sent {kind.value} id={packet_id}")

    async def close(self) -> None:
        """Release the underlying stream. Idempotent."""
        if self.is_closed:
            return
        self._state = ConnectionState.CLOSED

        self._writer.close()
        try:
            await self._writer.wait_closed()
        except OSError as e:
            logger.debug(f"Error while closing {self._peer}: {e}")
        logger.info(f"Session {self._peer} closed")

    async def __aenter__(self) -> TransportSession:
        return self

    async def __aexit__(self, *args: object) -> None:
        await self.close()


def _peer_name(writer: asyncio.StreamWriter) -> str:
    peer = writer.get_extra_info("peername")
    if isinstance(peer, tuple) and len(peer) >= 2:
        return f"{peer[0]}:{peer[1]}"
    return str(peer) if peer else "<unknown>"


async def connect(
    address: str | Address,
    *,
    timeout: float | None = 10.0,
    max_frame_length: int = MAX_FRAME_LENGTH,
    default_port: int = DEFAULT_PORT,
) -> TransportSession:
    """Open a TCP connection to an RCON server.

    Args:
        address: "host[:port]", "[v6]:port" or a (host, port) tuple
        timeout: Connect timeout in seconds (None waits forever)
        max_frame_length: Largest frame the session will accept
        default_port: Port used when the address has none

    Returns:
        An unauthenticated TransportSession

    Raises:
        RconConnectionError: If the address cannot be reached
    """
    try:
        host, port = parse_address(address, default_port)
    except ValueError as e:
        raise RconConnectionError(str(e)) from e

    try:
        reader, writer = await asyncio.wait_for(
            asyncio.open_connection(host, port),
            timeout=timeout,
        )
    except TimeoutError as e:
        raise RconConnectionError(f"Timed out connecting to {host}:{port}") from e
    except OSError as e:
        raise RconConnectionError(f"Failed to connect to {host}:{port}: {e}") from e

    logger.info(f"Connected to {host}:{port}")
    return TransportSession(reader, writer, max_frame_length=max_frame_length)
