"""Split halves of an authenticated connection.

CommandWriter sends commands and ConVar assignments and awaits their
correlated replies. LogReader receives console log lines pushed by the
server. Both share one Connection but own disjoint channels, so they can
live in different tasks: an unread LogReader never blocks the writer, and
vice versa. The connection closes when both halves are closed.
"""

from __future__ import annotations

import logging
from typing import Any

from .connection import Connection
from .errors import ConnectionClosed, EncodingError

logger = logging.getLogger(__name__)

# ConVar that makes the server forward its console log to RCON clients
SEND_LOGS_CONVAR = "sv_rcon_sendlogs"

_FORBIDDEN_VALUE_CHARS = ('"', "\n", "\r")

# Default for per-call timeouts: use the connection's command_timeout
DEFAULT_TIMEOUT: Any = object()


def format_convar(name: str, value: Any) -> str:
    """Build the console command assigning a ConVar.

    Raises:
        EncodingError: If the name or value cannot be expressed as a command
    """
    if not name:
        raise EncodingError("ConVar name must not be empty")
    if any(c.isspace() or c in '";' for c in name):
        raise EncodingError(f"Invalid ConVar name: {name!r}")

    text = str(value)
    if any(c in text for c in _FORBIDDEN_VALUE_CHARS):
        raise EncodingError(f"ConVar value cannot contain quotes or newlines: {text!r}")
    return f'{name} "{text}"'


class CommandWriter:
    """The write half of an authenticated RCON connection.

    Usage:
        reply = await writer.exec_command("status")
        await writer.set_convar("ns_should_return_to_lobby", 0)
        await writer.enable_console_logs()
    """

    def __init__(self, connection: Connection):
        self._connection = connection
        self._closed = False

    @property
    def connection(self) -> Connection:
        return self._connection

    @property
    def is_closed(self) -> bool:
        return self._closed or self._connection.is_closed

    async def exec_command(
        self, command: str, *, timeout: float | None = DEFAULT_TIMEOUT
    ) -> str:
        """Execute a console command remotely and return its output.

        Args:
            command: Command line to run on the server
            timeout: Seconds to wait for the reply, None to wait forever
                (default: the connection's command_timeout)

        Raises:
            ConnectionClosed: If the connection is or becomes closed
            EncodingError: If the command cannot be encoded
            TimeoutError: If no reply arrives in time
        """
        if self._closed:
            raise ConnectionClosed("Command writer closed")
        if timeout is DEFAULT_TIMEOUT:
            timeout = self._connection.command_timeout
        return await self._connection.request(command, timeout=timeout)

    async def set_convar(
        self, name: str, value: Any, *, timeout: float | None = DEFAULT_TIMEOUT
    ) -> str:
        """Assign a ConVar on the server and return the reply."""
        return await self.exec_command(format_convar(name, value), timeout=timeout)

    async def enable_console_logs(self) -> str:
        """Ask the server to forward console log lines to RCON clients.

        This sets sv_rcon_sendlogs for every client until the server stops.
        Read the lines with LogReader.receive_console_log().
        """
        return await self.set_convar(SEND_LOGS_CONVAR, 1)

    async def disable_console_logs(self) -> str:
        """Stop console log forwarding."""
        return await self.set_convar(SEND_LOGS_CONVAR, 0)

    async def close(self) -> None:
        if self._closed:
            return
        self._closed = True
        await self._connection.release("writer")

    async def __aenter__(self) -> CommandWriter:
        return self

    async def __aexit__(self, *args: Any) -> None:
        await self.close()


class LogReader:
    """The read half of an authenticated RCON connection.

    Yields console log lines in arrival order until the connection closes:

        async for line in reader:
            print(line)
    """

    def __init__(self, connection: Connection):
        self._connection = connection
        self._closed = False

    @property
    def connection(self) -> Connection:
        return self._connection

    @property
    def is_closed(self) -> bool:
        return self._closed or self._connection.is_closed

    async def receive_console_log(self) -> str:
        """Wait for the next console log line.

        Raises:
            ConnectionClosed: Once no more lines will arrive
        """
        if self._closed:
            raise ConnectionClosed("Log reader closed")
        return await self._connection.next_log_line()

    def __aiter__(self) -> LogReader:
        return self

    async def __anext__(self) -> str:
        try:
            return await self.receive_console_log()
        except ConnectionClosed:
            raise StopAsyncIteration from None

    async def close(self) -> None:
        if self._closed:
            return
        self._closed = True
        await self._connection.release("reader")

    async def __aenter__(self) -> LogReader:
        return self

    async def __aexit__(self, *args: Any) -> None:
        await self.close()
