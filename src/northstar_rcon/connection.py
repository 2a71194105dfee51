"""Authenticated connection and request correlator.

The Connection owns an authenticated TransportSession and runs exactly one
background dispatch loop, the sole reader of the session. Every incoming
packet is routed:

- console_log packets go to the log channel (read by the LogReader)
- any other packet whose id matches a pending request resolves it
- anything else is dropped

Writers never read from the stream. They register a future under a fresh
request id, send their packet, and wait for the dispatch loop to resolve
the future. When the loop stops (stream closed, malformed frame, local
close) every pending future fails with ConnectionClosed and the log channel
is ended, so nobody waits on a dead connection.
"""

from __future__ import annotations

import asyncio
import contextlib
import logging
from typing import Literal

from .errors import ConnectionClosed, InvalidState, MalformedPacket
from .protocol import Packet, PacketKind
from .protocol.packets import INT32_MAX
from .transport import ConnectionState, TransportSession

logger = logging.getLogger(__name__)

Half = Literal["writer", "reader"]

class _EndOfLogs:
    """Marks the end of the log channel."""

    def __init__(self, message: str = "Connection closed"):
        self.message = message


class Connection:
    """Shared core behind a CommandWriter/LogReader pair.

    Usage:
        connection = Connection(session, first_request_id=2)
        connection.start()
        reply = await connection.request("status")
        line = await connection.next_log_line()
        await connection.close()
    """

    def __init__(
        self,
        session: TransportSession,
        *,
        first_request_id: int = 1,
        command_timeout: float | None = None,
    ):
        self._session = session
        self._command_timeout = command_timeout
        self._next_id = _wrap_id(first_request_id)
        self._pending_requests: dict[int, asyncio.Future[str]] = {}
        self._log_queue: asyncio.Queue[str | _EndOfLogs] = asyncio.Queue()
        self._reader_task: asyncio.Task[None] | None = None
        self._open_halves: set[Half] = {"writer", "reader"}
        self._closed = False
        self._close_cause: BaseException | None = None

    @property
    def state(self) -> ConnectionState:
        """Current connection state."""
        return self._session.state

    @property
    def is_closed(self) -> bool:
        return self._closed

    @property
    def pending_count(self) -> int:
        """Number of requests still waiting for a reply."""
        return len(self._pending_requests)

    @property
    def command_timeout(self) -> float | None:
        return self._command_timeout

    def start(self) -> None:
        """Start the background dispatch loop."""
        if self._reader_task is not None:
            return
        if self._session.state != ConnectionState.AUTHENTICATED:
            raise InvalidState(f"Cannot start connection in state {self._session.state.value}")
        self._reader_task = asyncio.create_task(self._dispatch_loop())

    # Command path

    async def request(self, body: str, timeout: float | None = None) -> str:
        """Send an exec_command packet and wait for its reply body.

        Raises:
            ConnectionClosed: If the connection is or becomes closed
            EncodingError: If the body cannot be encoded
            TimeoutError: If no reply arrives within timeout
        """
        self._raise_if_closed()

        request_id = self._allocate_id()
        future: asyncio.Future[str] = asyncio.get_running_loop().create_future()
        self._pending_requests[request_id] = future

        try:
            try:
                await self._session.write_packet(PacketKind.EXEC_COMMAND, request_id, body)
            except ConnectionClosed as e:
                self._pending_requests.pop(request_id, None)
                await self._shutdown(e)
                raise

            if timeout is None:
                return await future
            return await asyncio.wait_for(future, timeout=timeout)
        finally:
            # Covers success, cancellation, timeout and send failure alike
            if self._pending_requests.get(request_id) is future:
                del self._pending_requests[request_id]

    def _allocate_id(self) -> int:
        """Next positive request id not currently pending."""
        while True:
            request_id = self._next_id
            self._next_id = _wrap_id(request_id + 1)
            if request_id not in self._pending_requests:
                return request_id

    # Log path

    async def next_log_line(self) -> str:
        """Wait for the next pushed console log line.

        Lines received before closure are still delivered; after that every
        call raises ConnectionClosed.
        """
        item = await self._log_queue.get()
        if isinstance(item, _EndOfLogs):
            # Leave the marker in place for later callers
            self._log_queue.put_nowait(item)
            raise self._closed_error(item.message)
        return item

    # Dispatch

    async def _dispatch_loop(self) -> None:
        """Background task reading packets and routing them."""
        try:
            while True:
                packet = await self._session.read_packet()
                self._route(packet)
        except asyncio.CancelledError:
            pass
        except ConnectionClosed as e:
            logger.info(f"Connection to {self._session.peer} closed: {e}")
            await self._shutdown(e)
        except MalformedPacket as e:
            logger.error(f"Closing connection to {self._session.peer}: {e}")
            await self._shutdown(e)
        except Exception as e:
            logger.exception(f"Dispatch loop error: {e}")
            await self._shutdown(e)

    def _route(self, packet: Packet) -> None:
        """Deliver one packet to its destination."""
        if packet.kind == PacketKind.CONSOLE_LOG:
            self._log_queue.put_nowait(packet.body)
            return

        future = self._pending_requests.pop(packet.id, None)
        if future is None:
            logger.debug(f"Dropping unmatched {packet.kind.value} packet id={packet.id}")
            return

        if not future.done():
            future.set_result(packet.body)

    # Shutdown

    def _raise_if_closed(self) -> None:
        if self._closed or self._session.is_closed:
            raise self._closed_error()

    def _closed_error(self, message: str = "Connection closed") -> ConnectionClosed:
        error = ConnectionClosed(message)
        error.__cause__ = self._close_cause
        return error

    async def _shutdown(self, cause: BaseException | None) -> None:
        """Close the session and broadcast closure to every waiter."""
        if self._closed:
            return
        self._closed = True
        self._close_cause = cause

        await self._session.close()

        pending = list(self._pending_requests.values())
        self._pending_requests.clear()
        for future in pending:
            if not future.done():
                future.set_exception(self._closed_error())

        self._log_queue.put_nowait(_EndOfLogs())

        if self._reader_task is not None and self._reader_task is not asyncio.current_task():
            self._reader_task.cancel()

        logger.info(f"Connection closed ({len(pending)} pending requests failed)")

    async def close(self) -> None:
        """Close the connection now, failing anything still pending."""
        task = self._reader_task
        if task is not None and not task.done() and task is not asyncio.current_task():
            task.cancel()
            with contextlib.suppress(asyncio.CancelledError):
                await task
        await self._shutdown(None)

    async def release(self, half: Half) -> None:
        """Mark one split half closed; the connection closes with the last one."""
        if half == "reader" and "reader" in self._open_halves and not self._closed:
            # Wake tasks still waiting for log lines
            self._log_queue.put_nowait(_EndOfLogs("Log reader closed"))
        self._open_halves.discard(half)
        if not self._open_halves:
            await self.close()


def _wrap_id(request_id: int) -> int:
    """Keep request ids in 1..INT32_MAX."""
    if request_id < 1 or request_id > INT32_MAX:
        return 1
    return request_id
