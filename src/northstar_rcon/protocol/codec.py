"""Packet codec.

Pure functions converting between packets and wire frames. No I/O and no
hidden state. Any structural inconsistency in a frame is a hard failure:
the protocol has no resynchronization mechanism, so a best-effort parse
would desynchronize the whole session.
"""

from __future__ import annotations

import struct

from ..errors import EncodingError, MalformedPacket
from .packets import (
    INT32_MAX,
    INT32_MIN,
    Direction,
    Packet,
    PacketKind,
    kind_for_code,
)

# Length prefix preceding every frame
HEADER_SIZE = 4

# id + type + body terminator + empty-string terminator
MIN_FRAME_LENGTH = 10

# Upper bound on a declared frame length
MAX_FRAME_LENGTH = 1 << 20

ENCODING = "utf-8"
TERMINATOR = b"\x00"

_LENGTH = struct.Struct("<i")
_ID_AND_TYPE = struct.Struct("<ii")


def encode_raw(type_code: int, packet_id: int, body: str) -> bytes:
    """Encode a frame from a raw type code."""
    if not INT32_MIN <= packet_id <= INT32_MAX:
        raise EncodingError(f"Packet id out of int32 range: {packet_id}")
    if not INT32_MIN <= type_code <= INT32_MAX:
        raise EncodingError(f"Packet type out of int32 range: {type_code}")
    if "\x00" in body:
        raise EncodingError("Packet body contains a NUL byte")

    try:
        body_bytes = body.encode(ENCODING)
    except UnicodeEncodeError as e:
        raise EncodingError(f"Packet body is not encodable as {ENCODING}: {e}") from e

    payload = _ID_AND_TYPE.pack(packet_id, type_code) + body_bytes + TERMINATOR + TERMINATOR
    return _LENGTH.pack(len(payload)) + payload


def encode(kind: PacketKind, packet_id: int, body: str = "") -> bytes:
    """Encode a packet as a length-prefixed frame.

    Args:
        kind: Packet kind (must not be UNKNOWN)
        packet_id: Signed 32-bit packet id
        body: Text payload

    Returns:
        The full frame, length prefix included

    Raises:
        EncodingError: If the packet cannot be represented on the wire
    """
    if kind == PacketKind.UNKNOWN:
        raise EncodingError("Cannot encode a packet of unknown kind")
    return encode_raw(kind.type_code, packet_id, body)


def encode_packet(packet: Packet) -> bytes:
    """Encode a Packet instance."""
    return encode_raw(packet.type_code, packet.id, packet.body)


def decode_length(header: bytes, max_frame_length: int = MAX_FRAME_LENGTH) -> int:
    """Decode and validate a 4-byte length prefix."""
    if len(header) != HEADER_SIZE:
        raise MalformedPacket(f"Length prefix must be {HEADER_SIZE} bytes, got {len(header)}")
    (length,) = _LENGTH.unpack(header)
    if length < MIN_FRAME_LENGTH:
        raise MalformedPacket(f"Declared frame length {length} is below minimum {MIN_FRAME_LENGTH}")
    if length > max_frame_length:
        raise MalformedPacket(f"Declared frame length {length} exceeds maximum {max_frame_length}")
    return length


def decode(frame: bytes, direction: Direction = Direction.INBOUND) -> Packet:
    """Decode exactly one frame (length prefix already consumed).

    Args:
        frame: The bytes following the length prefix
        direction: Which way the packet travelled, to resolve its type code

    Returns:
        The decoded packet. Unrecognized type codes decode as UNKNOWN.

    Raises:
        MalformedPacket: On any structural inconsistency
    """
    if len(frame) < MIN_FRAME_LENGTH:
        raise MalformedPacket(f"Frame too short: {len(frame)} bytes")

    packet_id, type_code = _ID_AND_TYPE.unpack_from(frame, 0)
    rest = frame[_ID_AND_TYPE.size :]

    if not rest.endswith(TERMINATOR + TERMINATOR):
        raise MalformedPacket("Frame is missing its string terminators")

    body_bytes = rest[:-2]
    if TERMINATOR in body_bytes:
        raise MalformedPacket("Frame has trailing data after the body terminator")

    try:
        body = body_bytes.decode(ENCODING)
    except UnicodeDecodeError as e:
        raise MalformedPacket(f"Packet body is not valid {ENCODING}: {e}") from e

    return Packet(
        id=packet_id,
        kind=kind_for_code(type_code, direction),
        type_code=type_code,
        body=body,
    )
