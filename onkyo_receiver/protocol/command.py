# Copyright (c) 2023 Samuel J. McKelvie
#
# MIT License - See LICENSE file accompanying this package.
#

"""
Symbolic receiver commands.

An EiscpCommand names a zone, a symbolic command and its argument, e.g.
zone="main", command="system-power", args="on". parse_command() produces one
from the string forms "zone.command=args" and "command=args".
"""

from __future__ import annotations

import re

from ..internal_types import *

DEFAULT_ZONE = 'main'

ZONES = ('main', 'zone2', 'zone3')
"""The controllable output zones of a receiver."""

_COMMAND_SPLIT_RE = re.compile(r'[\s.=:]')

class EiscpCommand:
    """A symbolic command addressed to one zone of a receiver."""

    command: str
    """The symbolic command name, e.g. "volume"."""

    args: Union[str, int, None]
    """The symbolic argument name (e.g. "level-up-1db-step"), or an integer
       for integer-range commands. None if the command takes no argument."""

    zone: str

    def __init__(
            self,
            command: str,
            args: Union[str, int, None]=None,
            zone: str=DEFAULT_ZONE,
          ):
        self.command = command
        self.args = args
        self.zone = zone

    def __eq__(self, other: object) -> bool:
        if not isinstance(other, EiscpCommand):
            return NotImplemented
        return (self.zone, self.command, self.args) == (other.zone, other.command, other.args)

    def __hash__(self) -> int:
        return hash((self.zone, self.command, self.args))

    def __str__(self) -> str:
        if self.args is None:
            return f"{self.zone}.{self.command}"
        return f"{self.zone}.{self.command}={self.args}"

    def __repr__(self) -> str:
        return f"EiscpCommand({self.zone!r}, {self.command!r}, {self.args!r})"

def parse_command(text: str) -> EiscpCommand:
    """Parses the string form of a command.

    The text is lowercased and split on whitespace, ".", "=" and ":".
    Three parts are zone, command and args ("main.volume=level-up");
    two parts are command and args in the main zone ("system-power on").
    Anything else yields an EiscpCommand with the whole text as the
    command name and no args.
    """
    parts = [part for part in _COMMAND_SPLIT_RE.split(text.lower()) if part != '']
    if len(parts) == 3:
        return EiscpCommand(parts[1], parts[2], zone=parts[0])
    if len(parts) == 2:
        return EiscpCommand(parts[0], parts[1])
    return EiscpCommand(text)

def as_command(command: Union[EiscpCommand, str]) -> EiscpCommand:
    """Returns command unchanged if it is already an EiscpCommand, else parses it."""
    if isinstance(command, EiscpCommand):
        return command
    return parse_command(command)
