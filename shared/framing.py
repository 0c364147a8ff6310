"""ChatWire length-prefixed frame codec.

Frame := int32 big-endian length || payload bytes

A non-positive length, or a stream that ends before a full frame arrives,
is end-of-stream and is reported as ``None`` rather than raised.
"""
from __future__ import annotations
import asyncio
import struct
from typing import Optional

HEADER = struct.Struct(">i")
HEADER_SIZE = HEADER.size


def encode_frame(payload: bytes) -> bytes:
    return HEADER.pack(len(payload)) + payload


async def read_frame(reader: asyncio.StreamReader) -> Optional[bytes]:
    """Read one frame payload, or None at end of stream."""
    try:
        header = await reader.readexactly(HEADER_SIZE)
    except asyncio.IncompleteReadError:
        return None
    (length,) = HEADER.unpack(header)
    if length <= 0:
        return None
    try:
        return await reader.readexactly(length)
    except asyncio.IncompleteReadError:
        return None


def decode_frame(data: bytes) -> Optional[bytes]:
    """Decode the first frame in an in-memory buffer."""
    if len(data) < HEADER_SIZE:
        return None
    (length,) = HEADER.unpack_from(data)
    if length <= 0 or len(data) - HEADER_SIZE < length:
        return None
    return data[HEADER_SIZE:HEADER_SIZE + length]
