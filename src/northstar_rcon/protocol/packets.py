"""Packet definitions for the RCON protocol layer.

A packet is the atomic wire unit. Each packet:
- Has an `id` chosen by the sender of a request and echoed in the reply
- Has a `kind` identifying the packet type
- Has a textual `body` (possibly empty)

Wire type codes are direction-dependent (Source RCON reuses code 2 for both
SERVERDATA_EXECCOMMAND and SERVERDATA_AUTH_RESPONSE), so decoding always
needs to know which way the packet travelled.
"""

from __future__ import annotations

from enum import Enum

from pydantic import BaseModel, ConfigDict, Field

INT32_MIN = -(2**31)
INT32_MAX = 2**31 - 1

# Id the server puts in an auth response when the password is rejected
AUTH_FAILED_ID = -1


class Direction(str, Enum):
    """Which way a packet travels."""

    OUTBOUND = "outbound"  # client -> server
    INBOUND = "inbound"  # server -> client


class PacketKind(str, Enum):
    """All packet kinds in the protocol."""

    # Client -> server
    AUTH_REQUEST = "auth_request"
    EXEC_COMMAND = "exec_command"

    # Server -> client
    AUTH_RESPONSE = "auth_response"
    COMMAND_RESPONSE = "command_response"
    CONSOLE_LOG = "console_log"  # Unsolicited push

    # Code not known for its direction
    UNKNOWN = "unknown"

    @property
    def direction(self) -> Direction:
        """Direction this kind travels in."""
        if self in (PacketKind.AUTH_REQUEST, PacketKind.EXEC_COMMAND):
            return Direction.OUTBOUND
        return Direction.INBOUND

    @property
    def type_code(self) -> int:
        """Wire type code for this kind."""
        if self is PacketKind.UNKNOWN:
            raise ValueError("Unknown packets have no fixed type code")
        return KIND_TO_CODE[self]


SERVERDATA_AUTH = 3
SERVERDATA_EXECCOMMAND = 2
SERVERDATA_AUTH_RESPONSE = 2
SERVERDATA_RESPONSE_VALUE = 0
SERVERDATA_CONSOLE_LOG = 4

KIND_TO_CODE: dict[PacketKind, int] = {
    PacketKind.AUTH_REQUEST: SERVERDATA_AUTH,
    PacketKind.EXEC_COMMAND: SERVERDATA_EXECCOMMAND,
    PacketKind.AUTH_RESPONSE: SERVERDATA_AUTH_RESPONSE,
    PacketKind.COMMAND_RESPONSE: SERVERDATA_RESPONSE_VALUE,
    PacketKind.CONSOLE_LOG: SERVERDATA_CONSOLE_LOG,
}

CODE_TO_KIND: dict[Direction, dict[int, PacketKind]] = {
    Direction.OUTBOUND: {
        SERVERDATA_AUTH: PacketKind.AUTH_REQUEST,
        SERVERDATA_EXECCOMMAND: PacketKind.EXEC_COMMAND,
    },
    Direction.INBOUND: {
        SERVERDATA_RESPONSE_VALUE: PacketKind.COMMAND_RESPONSE,
        SERVERDATA_AUTH_RESPONSE: PacketKind.AUTH_RESPONSE,
        SERVERDATA_CONSOLE_LOG: PacketKind.CONSOLE_LOG,
    },
}


def kind_for_code(code: int, direction: Direction) -> PacketKind:
    """Resolve a wire type code, falling back to UNKNOWN."""
    return CODE_TO_KIND[direction].get(code, PacketKind.UNKNOWN)


class Packet(BaseModel):
    """A single RCON packet.

    Wire format:
        [length:i32][id:i32][type:i32][body\\0][\\0]

    `length` counts every byte after itself. All integers are little-endian.

    Example:
        Packet.create(PacketKind.EXEC_COMMAND, 2, "status")
    """

    model_config = ConfigDict(frozen=True)

    id: int = Field(ge=INT32_MIN, le=INT32_MAX)
    kind: PacketKind
    type_code: int = Field(ge=INT32_MIN, le=INT32_MAX)
    body: str = ""

    @classmethod
    def create(cls, kind: PacketKind, packet_id: int, body: str = "") -> Packet:
        """Factory method for packets of a known kind."""
        return cls(id=packet_id, kind=kind, type_code=kind.type_code, body=body)

    @property
    def is_auth_failure(self) -> bool:
        """True for an auth response rejecting the password."""
        return self.kind == PacketKind.AUTH_RESPONSE and self.id == AUTH_FAILED_ID

    def encode(self) -> bytes:
        """Encode into a length-prefixed frame."""
        from .codec import encode_raw

        return encode_raw(self.type_code, self.id, self.body)
