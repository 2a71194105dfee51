"""Authentication handshake.

Turns an unauthenticated TransportSession into a CommandWriter/LogReader
pair, or fails. Some servers send an empty command_response immediately
before the real auth_response, so every packet ahead of the first
auth_response is discarded.
"""

from __future__ import annotations

import logging

from .client import CommandWriter, LogReader
from .config import ClientConfig
from .connection import Connection
from .errors import AuthFailed, Banned, ConnectionClosed, InvalidState
from .protocol import PacketKind
from .transport import ConnectionState, TransportSession, connect

logger = logging.getLogger(__name__)

# Rejection body Northstar sends to banned clients
BANNED_MESSAGE = "Go away"


async def authenticate(
    session: TransportSession,
    password: str,
    *,
    request_id: int = 1,
    command_timeout: float | None = None,
) -> tuple[CommandWriter, LogReader]:
    """Authenticate a session with the server password.

    No retries happen here: on AuthFailed the session is closed and the
    caller decides whether to reconnect and try again.

    Args:
        session: A freshly connected session
        password: RCON password
        request_id: Id of the auth request; command ids continue after it
        command_timeout: Default reply timeout for the CommandWriter

    Returns:
        (CommandWriter, LogReader) sharing one running Connection

    Raises:
        AuthFailed: If the server rejected the password
        Banned: If the server refuses this client (an AuthFailed)
        ConnectionClosed: If the stream ends before an auth_response arrives
        EncodingError: If the password cannot be encoded
        InvalidState: If the session is not freshly connected
    """
    if session.is_closed:
        raise ConnectionClosed()
    if session.state != ConnectionState.CONNECTED:
        raise InvalidState(f"Cannot authenticate in state {session.state.value}")

    await session.write_packet(PacketKind.AUTH_REQUEST, request_id, password)
    session.set_state(ConnectionState.AUTHENTICATING)

    while True:
        packet = await session.read_packet()
        if packet.kind == PacketKind.AUTH_RESPONSE:
            break
        logger.debug(f"Skipping {packet.kind.value} packet id={packet.id} during handshake")

    if packet.is_auth_failure:
        session.set_state(ConnectionState.AUTH_FAILED)
        logger.info(f"Authentication rejected by {session.peer}")
        await session.close()
        if BANNED_MESSAGE in packet.body:
            raise Banned(packet.body)
        raise AuthFailed(packet.body)

    session.set_state(ConnectionState.AUTHENTICATED)
    logger.info(f"Authenticated with {session.peer}")

    connection = Connection(
        session,
        first_request_id=request_id + 1,
        command_timeout=command_timeout,
    )
    connection.start()
    return CommandWriter(connection), LogReader(connection)


async def login(config: ClientConfig, password: str | None = None) -> tuple[CommandWriter, LogReader]:
    """Connect and authenticate in one step using a ClientConfig.

    Raises:
        RconConnectionError: If the server cannot be reached
        AuthFailed: If the password is rejected (the connection is closed)
    """
    password = password if password is not None else config.password
    if password is None:
        raise ValueError("No password given")

    session = await connect(
        config.address,
        timeout=config.connect_timeout,
        max_frame_length=config.max_frame_length,
    )
    try:
        return await authenticate(
            session,
            password,
            request_id=config.auth_request_id,
            command_timeout=config.command_timeout,
        )
    except BaseException:
        await session.close()
        raise
