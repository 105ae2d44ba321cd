# Copyright (c) 2023 Samuel J. McKelvie
#
# MIT License - See LICENSE file accompanying this package.
#

"""
Translation between symbolic commands and ISCP wire messages.

Encoding maps (command, args) to "<prefix><value code>" using the command
table. Decoding maps an inbound ISCP message to a ReceiverMessage, handling
the telegrams whose payload needs more than a table lookup:

  NTM               "mm:ss/mm:ss" elapsed/total time, converted to seconds
  NAT / NTI / NAL   now-playing artist/title/album, merged into one rolling
                    "metadata" record
  FLD 1A / 1B / 1C  hex-encoded now-playing metadata on the display
  DSN               DAB station name, passed through raw
  SLI PRS AMT MVL   may arrive with the next telegram appended

A translator holds the rolling metadata record, so each connection owns one.
"""

from __future__ import annotations

import re

from ..internal_types import *
from ..exceptions import UnknownCommandError
from ..pkg_logging import logger
from .constants import (
    METADATA_PREFIXES,
    FLD_METADATA_TAGS,
    CONCATENATION_PRONE_PREFIXES,
  )
from .command import DEFAULT_ZONE
from .command_table import (
    CommandSpec,
    name_to_command_spec,
    prefix_to_command_spec,
    get_command_names,
  )
from .message import ReceiverMessage, UNDEFINED

_CONTROL_CHARS_RE = re.compile(r'[\x00-\x1f]')
_HEX_GROUPS_RE = re.compile(r'^([0-9A-F]{2})+(,([0-9A-F]{2})+)*$', re.IGNORECASE)
_NON_HEX_RE = re.compile(r'[^0-9A-Fa-f]')

def _time_to_seconds(text: str) -> Optional[int]:
    """Converts "mm:ss" (or "hh:mm:ss") to total seconds; None if malformed."""
    parts = text.strip().split(':')
    if len(parts) < 2 or len(parts) > 3:
        return None
    total = 0
    for part in parts:
        if not part.isdigit():
            return None
        total = total * 60 + int(part)
    return total

def convert_time_info(value: str) -> str:
    """Converts an NTM "mm:ss/mm:ss" payload to "<position>/<duration>" in seconds.

    Each side is converted independently; a side that is not a valid time
    is kept as received.
    """
    if '/' not in value:
        return value
    sides: List[str] = []
    for side in value.split('/', 1):
        seconds = _time_to_seconds(side)
        sides.append(side if seconds is None else str(seconds))
    return '/'.join(sides)

def decode_hex_groups(value: str) -> Union[str, List[str], None]:
    """Decodes comma-separated hex byte groups as Latin-1 text.

    Returns a str for a single group, a list for several, or None if
    value is not made of hex byte groups.
    """
    if not _HEX_GROUPS_RE.match(value):
        return None
    decoded = [bytes.fromhex(group.strip()).decode('latin-1') for group in value.split(',')]
    if len(decoded) == 1:
        return decoded[0]
    return decoded

def integer_range_code(args: Union[str, int]) -> Optional[str]:
    """Converts a decimal argument to the uppercase hex code used by integer-range
    commands, at least 2 digits. None if args is not a non-negative integer."""
    if isinstance(args, bool):
        return None
    if isinstance(args, int):
        number = args
    else:
        text = args.strip()
        if not text.isdigit():
            return None
        number = int(text)
    if number < 0:
        return None
    return f"{number:02X}"

class CommandTranslator:
    """Maps symbolic commands to ISCP messages and ISCP messages to ReceiverMessages."""

    metadata: Dict[str, str]
    """The rolling now-playing record: title, artist and album."""

    def __init__(self) -> None:
        self.metadata = {}
        self.reset_metadata()

    def reset_metadata(self) -> None:
        """Forgets all now-playing metadata."""
        self.metadata = dict(title='', artist='', album='')

    # ---- encoding ----

    def command_to_iscp(
            self,
            command: str,
            args: Union[str, int, None]=None,
            zone: str=DEFAULT_ZONE,
          ) -> str:
        """Encodes a symbolic command as an ISCP message (without the "!1" prefix).

        Args:
            command: The symbolic command name, e.g. "volume".
            args:    The symbolic argument (e.g. "level-up-1db-step"), or
                     an integer for integer-range commands.
            zone:    The target zone. The command table covers the main
                     zone only, so the zone does not change the encoding.

        Returns:
            The ISCP message, e.g. "MVLUP1".

        Raises:
            UnknownCommandError: command is not in the command table.
        """
        spec = name_to_command_spec(command)
        if spec is None:
            raise UnknownCommandError(f"Unknown command name: {command!r}")
        if args is None:
            logger.debug(f"No argument given for zone {zone} command {command}")
            return spec.prefix
        code: Optional[str] = None
        if isinstance(args, str):
            code = spec.argument_to_code(args)
        if code is None and spec.is_integer_range:
            logger.debug(f"Integer range assumed for zone {zone}, command {spec.prefix}")
            code = integer_range_code(args)
        if code is None:
            logger.info(f"No mapping found for zone {zone} command {command} argument {args!r}; sending as-is")
            code = str(args)
        result = spec.prefix + code
        logger.debug(f"Encoded {zone}.{command}={args} as {result!r}")
        return result

    # ---- decoding ----

    def iscp_to_command(self, iscp_message: str) -> ReceiverMessage:
        """Decodes an ISCP message (e.g. "PWR01") into a ReceiverMessage.

        Never raises. Telegrams not in the command table decode to
        command="undefined", argument="undefined".
        """
        prefix = iscp_message[:3]
        value = _CONTROL_CHARS_RE.sub('', iscp_message[3:])
        logger.debug(f"Decoding ISCP message: {prefix} {value!r}")

        if prefix == 'NTM':
            return ReceiverMessage('NTM', convert_time_info(value), iscp_command=iscp_message)

        field = METADATA_PREFIXES.get(prefix)
        if field is not None:
            return self._update_metadata(field, value, iscp_message)

        if prefix == 'FLD' and len(value) >= 2:
            field = FLD_METADATA_TAGS.get(value[:2].upper())
            if field is not None:
                hex_content = _NON_HEX_RE.sub('', value[2:])
                if len(hex_content) % 2 != 0:
                    hex_content = hex_content[:-1]
                text = bytes.fromhex(hex_content).decode('utf-8', errors='replace')
                return self._update_metadata(field, text, iscp_message)

        if prefix == 'DSN':
            return ReceiverMessage('DSN', value, iscp_command=iscp_message)

        if prefix in CONCATENATION_PRONE_PREFIXES:
            i_next = value.find('ISCP')
            if i_next >= 0:
                value = value[:i_next]
            value = value.strip()

        spec = prefix_to_command_spec(prefix)
        if spec is None:
            logger.debug(f"Unknown ISCP prefix {prefix!r}")
            return ReceiverMessage(UNDEFINED, UNDEFINED, iscp_command=iscp_message)
        return ReceiverMessage(spec.name, self._lookup_value(spec, value), iscp_command=iscp_message)

    def _update_metadata(self, field: str, value: str, iscp_message: str) -> ReceiverMessage:
        self.metadata[field] = value
        return ReceiverMessage('metadata', dict(self.metadata), iscp_command=iscp_message)

    @staticmethod
    def _lookup_value(spec: CommandSpec, value: str) -> MessageArgument:
        name = spec.code_to_name(value)
        if name is not None:
            return name
        if spec.is_integer_range:
            try:
                return int(value, 16)
            except ValueError:
                pass
        decoded = decode_hex_groups(value)
        if decoded is not None:
            return decoded
        return value

    # ---- table queries ----

    def list_commands(self, zone: str=DEFAULT_ZONE) -> List[str]:
        """Returns all symbolic command names available in a zone."""
        return get_command_names()

    def list_command_values(self, command: str) -> List[str]:
        """Returns the symbolic argument names of a command.

        Args:
            command: "command" or "zone.command".
        """
        name = command.split('.')[-1]
        spec = name_to_command_spec(name)
        if spec is None:
            raise UnknownCommandError(f"Unknown command name: {name!r}")
        return list(spec.argument_codes.keys())
