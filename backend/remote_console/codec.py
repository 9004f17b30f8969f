"""
RCON packet codec.

Wire format, all integers little-endian int32:

    [size][request_id][type][body...][0x00][0x00]

`size` counts every byte after itself. Encoding is pure; decoding pulls
exactly `size` bytes off an asyncio stream before looking at any field.
"""

import asyncio
import struct

from remote_console.errors import ProtocolError
from remote_console.models import Packet

SIZE_FORMAT = "<i"
HEADER_FORMAT = "<ii"  # request_id, type
FRAME_FORMAT = "<iii"  # size, request_id, type
SIZE_FIELD = struct.calcsize(SIZE_FORMAT)
HEADER_SIZE = struct.calcsize(HEADER_FORMAT)
TERMINATOR = b"\x00\x00"

MIN_PACKET_SIZE = HEADER_SIZE + len(TERMINATOR)
MAX_PACKET_SIZE = 4096  # outgoing limit accepted by game servers
MAX_RESPONSE_SIZE = 1 << 20  # refuse absurd declared sizes from a peer


def encode_packet(request_id: int, packet_type: int, body: bytes | str = b"") -> bytes:
    """Frame a single packet for the wire."""
    if isinstance(body, str):
        body = body.encode("utf-8")
    size = MIN_PACKET_SIZE + len(body)
    if size > MAX_PACKET_SIZE:
        raise ProtocolError(
            f"Packet body too large: {len(body)} bytes (limit {MAX_PACKET_SIZE - MIN_PACKET_SIZE})"
        )
    try:
        header = struct.pack(FRAME_FORMAT, size, request_id, int(packet_type))
    except struct.error as e:
        raise ProtocolError(f"Cannot encode packet header: {e}") from e
    return header + body + TERMINATOR


def unpack_payload(data: bytes) -> Packet:
    """Interpret the `size` bytes that follow the size field."""
    if len(data) < MIN_PACKET_SIZE:
        raise ProtocolError(f"Packet too short: {len(data)} bytes")
    request_id, packet_type = struct.unpack_from(HEADER_FORMAT, data, 0)
    return Packet(
        request_id=request_id,
        type=packet_type,
        body=data[HEADER_SIZE:-len(TERMINATOR)],
    )


async def decode_packet(reader: asyncio.StreamReader) -> Packet:
    """
    Read one packet from the stream.

    Raises ProtocolError if the peer closes before the declared length has
    arrived, or if the declared length is out of range.
    """
    try:
        raw_size = await reader.readexactly(SIZE_FIELD)
    except asyncio.IncompleteReadError as e:
        raise ProtocolError(
            f"Connection closed while reading packet size ({len(e.partial)}/{SIZE_FIELD} bytes)"
        ) from e

    (size,) = struct.unpack(SIZE_FORMAT, raw_size)
    if size < MIN_PACKET_SIZE or size > MAX_RESPONSE_SIZE:
        raise ProtocolError(f"Invalid packet size: {size}")

    try:
        data = await reader.readexactly(size)
    except asyncio.IncompleteReadError as e:
        raise ProtocolError(
            f"Short read: expected {size} bytes, got {len(e.partial)}"
        ) from e

    return unpack_payload(data)
