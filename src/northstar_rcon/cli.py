"""Northstar RCON CLI.

Connects to a server, authenticates, then either runs one-shot commands or
opens an interactive shell with live console logs.

Usage:
    northstar-rcon 127.0.0.1:37015                  # Interactive shell
    northstar-rcon 127.0.0.1 --logs                 # Shell with console logs
    northstar-rcon host -c status -c "map mp_glitch" # One-shot commands
    northstar-rcon host --password-file pass.txt --no-interactive < script.txt

The address and password can also come from NORTHSTAR_RCON_ADDRESS and
NORTHSTAR_RCON_PASSWORD.
"""

from __future__ import annotations

import asyncio
import logging
import sys

import click

from . import __version__
from .auth import login
from .client import CommandWriter, LogReader
from .config import ENV_ADDRESS, ClientConfig, parse_address, read_password_file
from .errors import AuthFailed, Banned, ConnectionClosed, EncodingError, RconConnectionError
from .shell import Shell, stdin_lines

logger = logging.getLogger(__name__)

LOG_LEVELS = ["DEBUG", "INFO", "WARNING", "ERROR"]


@click.command()
@click.argument("address", required=False)
@click.option(
    "--password-file",
    type=click.Path(exists=True, dir_okay=False),
    help="Read the password from the first line of this file",
)
@click.option(
    "--command",
    "-c",
    "commands",
    multiple=True,
    help="Run this command and exit (repeatable)",
)
@click.option("--logs/--no-logs", default=False, help="Enable server console log forwarding")
@click.option("--no-interactive", is_flag=True, help="Never prompt; read commands from stdin")
@click.option("--timeout", type=float, default=None, help="Seconds to wait for each reply")
@click.option(
    "--log-level",
    type=click.Choice(LOG_LEVELS, case_sensitive=False),
    default="WARNING",
    help="Client log verbosity (stderr)",
)
@click.version_option(__version__, prog_name="northstar-rcon")
def main(
    address: str | None,
    password_file: str | None,
    commands: tuple[str, ...],
    logs: bool,
    no_interactive: bool,
    timeout: float | None,
    log_level: str,
) -> None:
    """Remote console for Northstar servers.

    ADDRESS is host[:port]; the port defaults to 37015.
    """
    # Protocol output goes to stdout, diagnostics to stderr
    logging.basicConfig(
        level=getattr(logging, log_level.upper()),
        format="%(levelname)s: %(message)s",
        stream=sys.stderr,
    )

    try:
        config = ClientConfig.from_env(use_env_address=address is None, command_timeout=timeout)
    except ValueError as e:
        raise click.UsageError(f"Invalid {ENV_ADDRESS}: {e}") from e
    if address:
        try:
            config.host, config.port = parse_address(address)
        except ValueError as e:
            raise click.BadParameter(str(e), param_hint="ADDRESS") from e
    if password_file:
        config.password = read_password_file(password_file)

    interactive = not no_interactive and sys.stdin.isatty()
    if config.password is None and not interactive:
        raise click.UsageError(
            "No password available. Use --password-file or NORTHSTAR_RCON_PASSWORD "
            "when not running interactively."
        )

    try:
        exit_code = asyncio.run(_run(config, commands, logs, interactive))
    except KeyboardInterrupt:
        exit_code = 130
    sys.exit(exit_code)


async def _run(
    config: ClientConfig,
    commands: tuple[str, ...],
    logs: bool,
    interactive: bool,
) -> int:
    halves = await _login_loop(config, interactive)
    if halves is None:
        return 1
    writer, reader = halves

    async with writer, reader:
        try:
            if logs:
                await writer.enable_console_logs()
            if commands:
                return await _run_commands(writer, commands)
        except ConnectionClosed as e:
            click.echo(f"Connection closed: {e}", err=True)
            return 1

        if interactive:
            click.echo("Connected. View builtins with `!help`.", err=True)
        prompt = f"{config.host}:{config.port}> " if interactive else None
        shell = Shell(writer, reader, prompt=prompt)
        return await shell.run(stdin_lines())


async def _login_loop(
    config: ClientConfig, interactive: bool
) -> tuple[CommandWriter, LogReader] | None:
    """Authenticate, re-prompting for the password while interactive."""
    password = config.password
    while True:
        if password is None:
            password = click.prompt(
                f"{config.host}:{config.port}'s password",
                hide_input=True,
                err=True,
            )

        try:
            return await login(config, password)
        except RconConnectionError as e:
            click.echo(f"Connection failed: {e}", err=True)
            return None
        except ConnectionClosed as e:
            click.echo(f"Connection closed during authentication: {e}", err=True)
            return None
        except EncodingError as e:
            click.echo(f"Invalid password: {e}", err=True)
            return None
        except Banned:
            click.echo("You are banned from this server.", err=True)
            return None
        except AuthFailed:
            click.echo("Invalid password.", err=True)
            if not interactive or config.password is not None:
                return None
            password = None


async def _run_commands(writer: CommandWriter, commands: tuple[str, ...]) -> int:
    """Run one-shot commands, printing each reply."""
    for command in commands:
        try:
            reply = await writer.exec_command(command)
        except (EncodingError, TimeoutError) as e:
            click.echo(f"{command}: {e}", err=True)
            return 1
        if reply:
            click.echo(reply.rstrip("\n"))
    return 0
