# Copyright (c) 2023 Samuel J. McKelvie
#
# MIT License - See LICENSE file accompanying this package.
#

"""
eISCP frame encoding and decoding.

An eISCP frame is a 16-byte header followed by an ASCII ISCP message:

    b'ISCP' | header size (u32 BE, always 16) | data size (u32 BE) | 01 00 00 00 | b'!1' message b'\\r\\n'

Decoding never raises; malformed frames produce best-effort text.
"""

from __future__ import annotations

from ..internal_types import *
from .constants import (
    EISCP_MAGIC,
    EISCP_HEADER_SIZE,
    EISCP_HEADER_TRAILER,
    ISCP_START,
    ISCP_RECEIVER_PREFIX,
    END_OF_MESSAGE,
    DECODE_MESSAGE_OFFSET,
    DECODE_TRAILER_LENGTH,
  )

def encode_eiscp_packet(message: str) -> bytes:
    """Wraps an ISCP message in an eISCP frame ready to be sent.

    Args:
        message: The ISCP message, e.g. "PWR01". If it does not already start
                 with "!", the receiver prefix "!1" is added.

    Returns:
        The complete frame (header followed by message and CR LF).
    """
    if not message.startswith(ISCP_START):
        message = ISCP_RECEIVER_PREFIX + message
    data = (message + END_OF_MESSAGE).encode('ascii', errors='replace')
    header = (
        EISCP_MAGIC
        + EISCP_HEADER_SIZE.to_bytes(4, 'big')
        + len(data).to_bytes(4, 'big')
        + EISCP_HEADER_TRAILER
      )
    return header + data

def decode_eiscp_packet(frame: bytes) -> str:
    """Extracts the ISCP message text from a received eISCP frame.

    The text starts after the 16-byte header and the 2-character "!1"
    prefix; the last two bytes of the frame are dropped as the message
    terminator.
    """
    end = len(frame) - DECODE_TRAILER_LENGTH
    if end <= DECODE_MESSAGE_OFFSET:
        return ''
    return frame[DECODE_MESSAGE_OFFSET:end].decode('ascii', errors='replace')

def parse_eiscp_header(data: bytes) -> Optional[Tuple[int, int]]:
    """Parses an eISCP header at the start of data.

    Returns:
        (header_size, data_size), or None if data does not start with
        a complete header carrying the eISCP magic.
    """
    if len(data) < EISCP_HEADER_SIZE or not data.startswith(EISCP_MAGIC):
        return None
    header_size = int.from_bytes(data[4:8], 'big')
    data_size = int.from_bytes(data[8:12], 'big')
    return (header_size, data_size)
