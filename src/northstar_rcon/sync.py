"""Blocking facade over the async client.

Runs the async client on a private event loop in a background thread and
hands results back to the calling thread. Meant for scripts and tools that
do not run their own event loop.

Usage:
    from northstar_rcon import sync

    session = sync.connect("localhost:37015")
    writer, reader = session.authenticate("password123")
    print(writer.exec_command("status"))
    for line in reader:
        print(line)
"""

from __future__ import annotations

import asyncio
import logging
import threading
from collections.abc import Coroutine, Iterator
from concurrent.futures import Future
from typing import Any, TypeVar

from . import auth
from .client import DEFAULT_TIMEOUT, CommandWriter, LogReader
from .config import Address
from .errors import ConnectionClosed
from .protocol import MAX_FRAME_LENGTH
from .transport import ConnectionState, TransportSession
from .transport import connect as async_connect

logger = logging.getLogger(__name__)

T = TypeVar("T")


class _LoopThread:
    """An event loop running forever in a daemon thread."""

    def __init__(self) -> None:
        self._loop = asyncio.new_event_loop()
        self._thread = threading.Thread(
            target=self._loop.run_forever,
            name="northstar-rcon-loop",
            daemon=True,
        )
        self._thread.start()
        self._users = 0
        self._lock = threading.Lock()

    def submit(self, coro: Coroutine[Any, Any, T]) -> Future[T]:
        return asyncio.run_coroutine_threadsafe(coro, self._loop)

    def run(self, coro: Coroutine[Any, Any, T], timeout: float | None = None) -> T:
        """Run a coroutine on the loop and block for its result."""
        future = self.submit(coro)
        try:
            return future.result(timeout)
        except TimeoutError:
            future.cancel()
            raise

    def acquire(self, count: int = 1) -> None:
        with self._lock:
            self._users += count

    def release(self) -> None:
        """Drop one user; the loop stops with the last one."""
        with self._lock:
            self._users -= 1
            if self._users > 0:
                return
        self.stop()

    def stop(self) -> None:
        if self._loop.is_closed():
            return
        self._loop.call_soon_threadsafe(self._loop.stop)
        if threading.current_thread() is not self._thread:
            self._thread.join()
            self._loop.close()


class SyncSession:
    """A connected, not yet authenticated session."""

    def __init__(self, loop: _LoopThread, session: TransportSession):
        self._loop = loop
        self._session = session

    @property
    def state(self) -> ConnectionState:
        return self._session.state

    def authenticate(
        self,
        password: str,
        *,
        request_id: int = 1,
        command_timeout: float | None = None,
    ) -> tuple[SyncCommandWriter, SyncLogReader]:
        """Authenticate; see northstar_rcon.authenticate.

        On failure the session is closed and its loop thread stopped.
        """
        try:
            writer, reader = self._loop.run(
                auth.authenticate(
                    self._session,
                    password,
                    request_id=request_id,
                    command_timeout=command_timeout,
                )
            )
        except BaseException:
            self.close()
            raise

        self._loop.acquire(2)
        return SyncCommandWriter(self._loop, writer), SyncLogReader(self._loop, reader)

    def close(self) -> None:
        """Close the session if it never authenticated."""
        if self._session.state == ConnectionState.AUTHENTICATED:
            return
        self._loop.run(self._session.close())
        self._loop.stop()


class SyncCommandWriter:
    """Blocking CommandWriter."""

    def __init__(self, loop: _LoopThread, writer: CommandWriter):
        self._loop = loop
        self._writer = writer
        self._released = False

    def exec_command(self, command: str, *, timeout: float | None = DEFAULT_TIMEOUT) -> str:
        return self._loop.run(self._writer.exec_command(command, timeout=timeout))

    def set_convar(
        self, name: str, value: Any, *, timeout: float | None = DEFAULT_TIMEOUT
    ) -> str:
        return self._loop.run(self._writer.set_convar(name, value, timeout=timeout))

    def enable_console_logs(self) -> str:
        return self._loop.run(self._writer.enable_console_logs())

    def disable_console_logs(self) -> str:
        return self._loop.run(self._writer.disable_console_logs())

    def close(self) -> None:
        if self._released:
            return
        self._released = True
        self._loop.run(self._writer.close())
        self._loop.release()

    def __enter__(self) -> SyncCommandWriter:
        return self

    def __exit__(self, *args: Any) -> None:
        self.close()


class SyncLogReader:
    """Blocking LogReader."""

    def __init__(self, loop: _LoopThread, reader: LogReader):
        self._loop = loop
        self._reader = reader
        self._released = False

    def receive_console_log(self, timeout: float | None = None) -> str:
        """Block until the next log line.

        Raises:
            ConnectionClosed: Once no more lines will arrive
            TimeoutError: If timeout elapses first
        """
        return self._loop.run(self._reader.receive_console_log(), timeout)

    def __iter__(self) -> Iterator[str]:
        while True:
            try:
                yield self.receive_console_log()
            except ConnectionClosed:
                return

    def close(self) -> None:
        if self._released:
            return
        self._released = True
        self._loop.run(self._reader.close())
        self._loop.release()

    def __enter__(self) -> SyncLogReader:
        return self

    def __exit__(self, *args: Any) -> None:
        self.close()


def connect(
    address: str | Address,
    *,
    timeout: float | None = 10.0,
    max_frame_length: int = MAX_FRAME_LENGTH,
) -> SyncSession:
    """Blocking connect.

    Raises:
        RconConnectionError: If the address cannot be reached
    """
    loop = _LoopThread()
    try:
        session = loop.run(
            async_connect(address, timeout=timeout, max_frame_length=max_frame_length)
        )
    except BaseException:
        loop.stop()
        raise
    return SyncSession(loop, session)
