"""Client configuration.

Settings can be given explicitly or read from the environment:
- NORTHSTAR_RCON_ADDRESS: server address, "host[:port]"
- NORTHSTAR_RCON_PASSWORD: RCON password
- NORTHSTAR_RCON_TIMEOUT: connect timeout in seconds
"""

from __future__ import annotations

import logging
import os
from dataclasses import dataclass
from pathlib import Path

from .protocol.codec import MAX_FRAME_LENGTH

logger = logging.getLogger(__name__)

DEFAULT_HOST = "127.0.0.1"
DEFAULT_PORT = 37015

ENV_ADDRESS = "NORTHSTAR_RCON_ADDRESS"
ENV_PASSWORD = "NORTHSTAR_RCON_PASSWORD"
ENV_TIMEOUT = "NORTHSTAR_RCON_TIMEOUT"

Address = tuple[str, int]


def parse_address(address: str | Address, default_port: int = DEFAULT_PORT) -> Address:
    """Parse an address into a (host, port) pair.

    Accepts "host", "host:port", "[v6]", "[v6]:port", a bare IPv6 literal,
    or an already-split (host, port) tuple.

    Raises:
        ValueError: If the address or port is invalid
    """
    if isinstance(address, tuple):
        host, port = address
        return host, _check_port(int(port))

    text = address.strip()
    if not text:
        raise ValueError("Empty address")

    if text.startswith("["):
        host, sep, tail = text[1:].partition("]")
        if not sep or not host:
            raise ValueError(f"Invalid address: {address}")
        if not tail:
            return host, default_port
        if not tail.startswith(":"):
            raise ValueError(f"Invalid address: {address}")
        return host, _parse_port(tail[1:], address)

    # More than one colon without brackets is a bare IPv6 literal
    if text.count(":") > 1:
        return text, default_port

    host, sep, port_text = text.partition(":")
    if not host:
        raise ValueError(f"Invalid address: {address}")
    if not sep:
        return host, default_port
    return host, _parse_port(port_text, address)


def _parse_port(text: str, address: str) -> int:
    try:
        port = int(text)
    except ValueError:
        raise ValueError(f"Invalid port in address: {address}") from None
    return _check_port(port)


def _check_port(port: int) -> int:
    if not 0 < port < 65536:
        raise ValueError(f"Port out of range: {port}")
    return port


def read_password_file(path: str | Path) -> str:
    """Read a password from the first line of a file."""
    text = Path(path).read_text(encoding="utf-8")
    lines = text.splitlines()
    return lines[0] if lines else ""


@dataclass
class ClientConfig:
    """Configuration for an RCON client."""

    host: str = DEFAULT_HOST
    port: int = DEFAULT_PORT
    password: str | None = None

    # Timeouts (seconds); None waits forever
    connect_timeout: float = 10.0
    command_timeout: float | None = None

    # Frame limits
    max_frame_length: int = MAX_FRAME_LENGTH

    # Id sent with the auth request; command ids continue from here
    auth_request_id: int = 1

    @property
    def address(self) -> Address:
        return self.host, self.port

    @classmethod
    def from_env(cls, *, use_env_address: bool = True, **overrides: object) -> ClientConfig:
        """Build a config from environment variables.

        Explicit keyword overrides win over the environment; None
        overrides are ignored. Pass use_env_address=False when the caller
        supplies its own address.

        Raises:
            ValueError: If NORTHSTAR_RCON_ADDRESS is not a valid address
        """
        config = cls()

        if use_env_address and (address := os.getenv(ENV_ADDRESS)):
            config.host, config.port = parse_address(address)
        if password := os.getenv(ENV_PASSWORD):
            config.password = password
        if timeout := os.getenv(ENV_TIMEOUT):
            try:
                config.connect_timeout = float(timeout)
            except ValueError:
                logger.warning(f"Ignoring invalid {ENV_TIMEOUT}={timeout!r}")

        for key, value in overrides.items():
            if value is None:
                continue
            if not hasattr(config, key):
                raise TypeError(f"Unknown config field: {key}")
            setattr(config, key, value)
        return config
