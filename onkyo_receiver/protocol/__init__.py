# Copyright (c) 2023 Samuel J. McKelvie
#
# MIT License - See LICENSE file accompanying this package.
#

"""
Low-level protocol definitions for Onkyo/Integra receivers.

This module defines the eISCP framing and the ISCP command vocabulary used by
Onkyo receivers for TCP/IP control and UDP discovery. It does not contain
network implementations.
"""

from .constants import (
    EISCP_MAGIC,
    EISCP_HEADER_SIZE,
    MAX_FRAME_LENGTH,
    DISCOVERY_QUERY,
    DISCOVERY_RESPONSE_PREFIX,
    NOISY_PREFIXES,
    NET_SUB_SOURCE_PREFIXES,
    QUERY_ARGUMENT,
  )

from .packet import (
    encode_eiscp_packet,
    decode_eiscp_packet,
    parse_eiscp_header,
  )

from .command_table import (
    CommandSpec,
    CommandValue,
    prefix_to_command_spec,
    name_to_command_spec,
    get_all_command_specs,
    get_command_names,
  )

from .command import EiscpCommand, parse_command, as_command, ZONES, DEFAULT_ZONE
from .message import ReceiverMessage, UNDEFINED
from .command_translator import CommandTranslator
