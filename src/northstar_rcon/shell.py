"""Interactive RCON shell.

Reads lines from the operator and runs them on the server, while console
log lines pushed by the server are printed as they arrive. Lines starting
with "!" are builtins:

    !help                View this help listing
    !enable console      Enable server console logging
    !disable console     Disable server console logging
    !set <VAR> <VAL>     Set a ConVar on the server
    !quit                Leave the shell
    <COMMAND> [ARGS...]  Run a command on the server
"""

from __future__ import annotations

import asyncio
import contextlib
import logging
import sys
from collections.abc import AsyncIterator, Callable
from dataclasses import dataclass, field
from enum import Enum
from typing import Any

import click

from .client import CommandWriter, LogReader
from .errors import ConnectionClosed, EncodingError

logger = logging.getLogger(__name__)

HELP_TEXT = """BUILTINS
    !help                View this help listing
    !enable console      Enable server console logging
    !disable console     Disable server console logging
    !set <VAR> <VAL>     Set a ConVar on the server
    !quit                Leave the shell
    <COMMAND> [ARGS...]  Run a command on the server"""


class ActionType(str, Enum):
    """What a shell input line asks for."""

    EMPTY = "empty"
    HELP = "help"
    ENABLE_LOGS = "enable_logs"
    DISABLE_LOGS = "disable_logs"
    SET_CONVAR = "set_convar"
    COMMAND = "command"
    QUIT = "quit"
    UNKNOWN = "unknown"


@dataclass(frozen=True)
class ShellAction:
    type: ActionType
    args: tuple[str, ...] = field(default_factory=tuple)


def parse_line(line: str) -> ShellAction:
    """Parse one line of shell input."""
    line = line.strip()
    if not line:
        return ShellAction(ActionType.EMPTY)

    if not line.startswith("!"):
        return ShellAction(ActionType.COMMAND, (line,))

    builtin = line[1:].strip()
    words = builtin.split()

    if builtin == "help":
        return ShellAction(ActionType.HELP)
    if builtin in ("quit", "exit"):
        return ShellAction(ActionType.QUIT)
    if words == ["enable", "console"]:
        return ShellAction(ActionType.ENABLE_LOGS)
    if words == ["disable", "console"]:
        return ShellAction(ActionType.DISABLE_LOGS)
    if words and words[0] == "set":
        query = builtin[len("set") :].strip()
        name, _, value = query.partition(" ")
        if name and value.strip():
            return ShellAction(ActionType.SET_CONVAR, (name, value.strip()))
    return ShellAction(ActionType.UNKNOWN, (builtin,))


async def stdin_lines() -> AsyncIterator[str]:
    """Yield lines from stdin without blocking the event loop."""
    loop = asyncio.get_running_loop()
    while True:
        line = await loop.run_in_executor(None, sys.stdin.readline)
        if not line:
            return
        yield line.rstrip("\r\n")


Echo = Callable[..., Any]


class Shell:
    """Operator shell over a CommandWriter/LogReader pair.

    Usage:
        shell = Shell(writer, reader, prompt="127.0.0.1:37015> ")
        exit_code = await shell.run(stdin_lines())
    """

    def __init__(
        self,
        writer: CommandWriter,
        reader: LogReader,
        *,
        prompt: str | None = None,
        echo: Echo = click.echo,
    ):
        self._writer = writer
        self._reader = reader
        self._prompt = prompt
        self._echo = echo

    async def run(self, lines: AsyncIterator[str]) -> int:
        """Run until input ends, !quit, or the connection closes.

        Returns:
            Process exit code: 0 on a normal exit, 1 on disconnection
        """
        log_task = asyncio.create_task(self._log_loop())
        try:
            while True:
                self._show_prompt()
                next_line = asyncio.create_task(_next_line(lines))
                done, _ = await asyncio.wait(
                    {next_line, log_task},
                    return_when=asyncio.FIRST_COMPLETED,
                )
                if next_line not in done:
                    next_line.cancel()
                    self._echo("Connection closed by server.", err=True)
                    return 1

                line = next_line.result()
                if line is None:
                    return 0

                action = parse_line(line)
                if action.type == ActionType.QUIT:
                    return 0

                try:
                    await self.execute(action)
                except ConnectionClosed as e:
                    self._echo(f"Connection closed: {e}", err=True)
                    return 1
        finally:
            log_task.cancel()
            with contextlib.suppress(asyncio.CancelledError):
                await log_task

    async def execute(self, action: ShellAction) -> None:
        """Run one parsed action. ConnectionClosed propagates."""
        try:
            if action.type == ActionType.HELP:
                self._echo(HELP_TEXT)
            elif action.type == ActionType.ENABLE_LOGS:
                await self._writer.enable_console_logs()
            elif action.type == ActionType.DISABLE_LOGS:
                await self._writer.disable_console_logs()
            elif action.type == ActionType.SET_CONVAR:
                name, value = action.args
                self._show_reply(await self._writer.set_convar(name, value))
            elif action.type == ActionType.COMMAND:
                self._show_reply(await self._writer.exec_command(action.args[0]))
            elif action.type == ActionType.UNKNOWN:
                self._echo("Unknown builtin. See !help.", err=True)
        except (EncodingError, TimeoutError) as e:
            self._echo(f"An error occurred: {e}", err=True)

    async def _log_loop(self) -> None:
        async for line in self._reader:
            self._echo(line)
        logger.debug("Console log stream ended")

    def _show_reply(self, reply: str) -> None:
        if reply:
            self._echo(reply.rstrip("\n"))

    def _show_prompt(self) -> None:
        if self._prompt:
            self._echo(self._prompt, nl=False)


async def _next_line(lines: AsyncIterator[str]) -> str | None:
    """Next input line, or None once input ends."""
    return await anext(lines, None)
