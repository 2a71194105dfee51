"""RCON wire protocol.

Defines the packet model and the codec that maps packets to
length-delimited binary frames:

    [length:i32][id:i32][type:i32][body\\0][\\0]

Key concepts:
- Requests carry a caller-chosen id that the server echoes in its reply
- Console log pushes are unsolicited and never correlated to a request
- Type codes are direction-dependent (see packets.py)
"""

from .codec import (
    HEADER_SIZE,
    MAX_FRAME_LENGTH,
    MIN_FRAME_LENGTH,
    decode,
    decode_length,
    encode,
    encode_packet,
)
from .packets import AUTH_FAILED_ID, Direction, Packet, PacketKind

__all__ = [
    "AUTH_FAILED_ID",
    "Direction",
    "HEADER_SIZE",
    "MAX_FRAME_LENGTH",
    "MIN_FRAME_LENGTH",
    "Packet",
    "PacketKind",
    "decode",
    "decode_length",
    "encode",
    "encode_packet",
]
