# Copyright (c) 2023 Samuel J. McKelvie
#
# MIT License - See LICENSE file accompanying this package.
#

"""
Protocol-specific constants
"""

from __future__ import annotations

from ..internal_types import *

EISCP_MAGIC = b'ISCP'
"""The magic bytes at the start of every eISCP frame."""

EISCP_HEADER_SIZE = 16
"""The size of the eISCP frame header, in bytes. Also stored in the header itself."""

EISCP_VERSION = 1
"""The eISCP protocol version byte."""

EISCP_HEADER_TRAILER = bytes([EISCP_VERSION, 0, 0, 0])
"""The version byte followed by three reserved zero bytes."""

ISCP_START = '!'
"""The start character of an ISCP message."""

ISCP_RECEIVER_PREFIX = '!1'
"""The ISCP start character and unit type for a receiver."""

END_OF_MESSAGE = '\r\n'
"""The terminator appended to outbound ISCP messages."""

DECODE_MESSAGE_OFFSET = 18
"""Inbound ISCP text starts this many bytes into a frame (16-byte header plus "!1")."""

DECODE_TRAILER_LENGTH = 2
"""Number of trailing frame bytes dropped when decoding an inbound message."""

MAX_FRAME_LENGTH = 65536
"""Frames that declare a larger total size are treated as garbage."""

DISCOVERY_QUERY = '!xECNQSTN'
"""The ISCP message broadcast to discover receivers."""

DISCOVERY_RESPONSE_PREFIX = 'ECN'
"""The command prefix of a discovery response."""

QUERY_ARGUMENT = 'query'
"""The symbolic argument that asks the receiver to report a value."""

NOISY_PREFIXES: Set[str] = {'NLS', 'NLT', 'NMS', 'NJA', 'NLU', 'NPB'}
"""Inbound telegrams with these prefixes carry no actionable state and are not
   published."""

METADATA_PREFIXES: Dict[str, str] = {
    'NAT': 'artist',
    'NTI': 'title',
    'NAL': 'album',
  }
"""Now-playing telegrams that update the rolling metadata record, and the field each sets."""

FLD_METADATA_TAGS: Dict[str, str] = {
    '1A': 'artist',
    '1B': 'album',
    '1C': 'title',
  }
"""fp-display tags that carry hex-encoded now-playing metadata."""

CONCATENATION_PRONE_PREFIXES: Set[str] = {'SLI', 'PRS', 'AMT', 'MVL'}
"""Telegrams that the receiver sometimes delivers with the next frame appended."""

NET_SUB_SOURCE_PREFIXES: Set[str] = {'NSV', 'NTC'}
"""Telegrams that operate the NET menu; the receiver needs extra time after them."""
