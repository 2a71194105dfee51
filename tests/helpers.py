"""Shared test helpers.

Provides three ways to stand in for an RCON server:
- FakeStreamWriter + asyncio.StreamReader: in-memory streams, the test feeds
  server frames by hand
- A responder callback on FakeStreamWriter: scripted replies fed back
  synchronously as the client writes
- MockRconServer: a real asyncio TCP server, optionally run on its own
  thread (ThreadedServer) for blocking clients
"""

from __future__ import annotations

import asyncio
import contextlib
import struct
import threading
from collections.abc import Callable, Coroutine
from typing import Any

from northstar_rcon.protocol import Direction, Packet, PacketKind, decode, encode
from northstar_rcon.transport import ConnectionState, TransportSession

PASSWORD = "password123"

# Replies a scripted server sends back for one client packet
Responder = Callable[[Packet], list[bytes]]


# =============================================================================
# In-memory streams
# =============================================================================


def split_frames(data: bytes) -> list[bytes]:
    """Split a byte buffer into frames (length prefix stripped)."""
    frames = []
    offset = 0
    while offset < len(data):
        (length,) = struct.unpack_from("<i", data, offset)
        offset += 4
        frames.append(data[offset : offset + length])
        offset += length
    return frames


class FakeStreamWriter:
    """Stand-in for asyncio.StreamWriter that records what the client sends.

    Closing the writer ends the paired reader, as closing a socket would.
    """

    def __init__(
        self,
        reader: asyncio.StreamReader,
        responder: Responder | None = None,
    ):
        self.reader = reader
        self.responder = responder
        self.buffer = bytearray()
        self.closed = False
        self.fail_writes: Exception | None = None

    def write(self, data: bytes) -> None:
        if self.fail_writes is not None:
            raise self.fail_writes
        self.buffer.extend(data)
        if self.responder is not None:
            packet = decode(split_frames(bytes(data))[0], Direction.OUTBOUND)
            for frame in self.responder(packet):
                self.reader.feed_data(frame)

    async def drain(self) -> None:
        await asyncio.sleep(0)

    def close(self) -> None:
        if not self.closed:
            self.closed = True
            if not self.reader.at_eof():
                self.reader.feed_eof()

    async def wait_closed(self) -> None:
        pass

    def is_closing(self) -> bool:
        return self.closed

    def get_extra_info(self, name: str, default: Any = None) -> Any:
        if name == "peername":
            return ("127.0.0.1", 37015)
        return default

    @property
    def packets(self) -> list[Packet]:
        """Every packet written so far."""
        return [decode(frame, Direction.OUTBOUND) for frame in split_frames(bytes(self.buffer))]


def make_session(
    responder: Responder | None = None,
) -> tuple[TransportSession, asyncio.StreamReader, FakeStreamWriter]:
    """Create a TransportSession over in-memory streams. Call inside a loop."""
    reader = asyncio.StreamReader()
    writer = FakeStreamWriter(reader, responder)
    session = TransportSession(reader, writer)  # type: ignore[arg-type]
    return session, reader, writer


def make_authenticated_session(
    responder: Responder | None = None,
) -> tuple[TransportSession, asyncio.StreamReader, FakeStreamWriter]:
    """Session already moved to the authenticated state."""
    session, reader, writer = make_session(responder)
    session.set_state(ConnectionState.AUTHENTICATED)
    return session, reader, writer


def server_frame(kind: PacketKind, packet_id: int, body: str = "") -> bytes:
    """Encode a server-to-client frame."""
    return encode(kind, packet_id, body)


async def wait_for_writes(writer: FakeStreamWriter, count: int) -> list[Packet]:
    """Wait until the client has written at least `count` packets."""
    for _ in range(1000):
        packets = writer.packets
        if len(packets) >= count:
            return packets
        await asyncio.sleep(0)
    raise AssertionError(f"Expected {count} packets, got {len(writer.packets)}")


def scripted_server(
    password: str = PASSWORD,
    replies: dict[str, str] | None = None,
    *,
    empty_response_before_auth: bool = False,
) -> Responder:
    """Responder acting like a well-behaved server."""
    replies = replies or {}

    def respond(packet: Packet) -> list[bytes]:
        if packet.kind == PacketKind.AUTH_REQUEST:
            frames = []
            if empty_response_before_auth:
                frames.append(server_frame(PacketKind.COMMAND_RESPONSE, packet.id))
            auth_id = packet.id if packet.body == password else -1
            frames.append(server_frame(PacketKind.AUTH_RESPONSE, auth_id))
            return frames
        if packet.kind == PacketKind.EXEC_COMMAND:
            reply = replies.get(packet.body, "")
            return [server_frame(PacketKind.COMMAND_RESPONSE, packet.id, reply)]
        return []

    return respond


# =============================================================================
# TCP mock server
# =============================================================================


class MockRconServer:
    """Minimal RCON server over real TCP.

    - Accepts `password`, echoing the request id; anything else gets id -1
      (body `reject_message`) and the connection is closed
    - Replies to commands from `replies`, or with an empty body
    - Records every client packet in `received`
    - `push_log()` sends a console log line to every client
    """

    def __init__(
        self,
        password: str = PASSWORD,
        replies: dict[str, str] | None = None,
        *,
        host: str = "127.0.0.1",
        port: int = 0,
        empty_response_before_auth: bool = False,
        reject_message: str = "",
    ):
        self.password = password
        self.replies = replies or {}
        self.reject_message = reject_message
        self.host = host
        self.port = port
        self.empty_response_before_auth = empty_response_before_auth
        self.received: list[Packet] = []
        self._server: asyncio.Server | None = None
        self._clients: set[asyncio.StreamWriter] = set()
        self.client_connected = asyncio.Event()

    @property
    def address(self) -> str:
        return f"{self.host}:{self.port}"

    async def start(self) -> None:
        self.client_connected = asyncio.Event()
        self._server = await asyncio.start_server(self._handle, self.host, self.port)
        self.port = self._server.sockets[0].getsockname()[1]

    async def stop(self) -> None:
        for writer in list(self._clients):
            writer.close()
        if self._server is not None:
            self._server.close()
            await self._server.wait_closed()

    async def push_log(self, line: str) -> None:
        for writer in list(self._clients):
            writer.write(server_frame(PacketKind.CONSOLE_LOG, 0, line))
            await writer.drain()

    async def disconnect_all(self) -> None:
        for writer in list(self._clients):
            writer.close()

    async def _handle(self, reader: asyncio.StreamReader, writer: asyncio.StreamWriter) -> None:
        self._clients.add(writer)
        self.client_connected.set()
        try:
            while True:
                header = await reader.readexactly(4)
                (length,) = struct.unpack("<i", header)
                packet = decode(await reader.readexactly(length), Direction.OUTBOUND)
                self.received.append(packet)
                if not await self._respond(packet, writer):
                    break
        except (asyncio.IncompleteReadError, ConnectionError):
            pass
        finally:
            self._clients.discard(writer)
            writer.close()

    async def _respond(self, packet: Packet, writer: asyncio.StreamWriter) -> bool:
        if packet.kind == PacketKind.AUTH_REQUEST:
            if self.empty_response_before_auth:
                writer.write(server_frame(PacketKind.COMMAND_RESPONSE, packet.id))
            ok = packet.body == self.password
            if ok:
                writer.write(server_frame(PacketKind.AUTH_RESPONSE, packet.id))
            else:
                writer.write(server_frame(PacketKind.AUTH_RESPONSE, -1, self.reject_message))
            await writer.drain()
            return ok

        reply = self.replies.get(packet.body, "")
        writer.write(server_frame(PacketKind.COMMAND_RESPONSE, packet.id, reply))
        await writer.drain()
        return True

    async def __aenter__(self) -> MockRconServer:
        await self.start()
        return self

    async def __aexit__(self, *args: Any) -> None:
        await self.stop()


class ThreadedServer:
    """Runs a MockRconServer on its own event loop thread."""

    def __init__(self, server: MockRconServer):
        self.server = server
        self._loop = asyncio.new_event_loop()
        self._thread = threading.Thread(target=self._loop.run_forever, daemon=True)

    def call(self, coro: Coroutine[Any, Any, Any]) -> Any:
        return asyncio.run_coroutine_threadsafe(coro, self._loop).result(timeout=5)

    def __enter__(self) -> ThreadedServer:
        self._thread.start()
        self.call(self.server.start())
        return self

    def __exit__(self, *args: Any) -> None:
        with contextlib.suppress(Exception):
            self.call(self.server.stop())
        self._loop.call_soon_threadsafe(self._loop.stop)
        self._thread.join(timeout=5)
        self._loop.close()
