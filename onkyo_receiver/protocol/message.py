# Copyright (c) 2023 Samuel J. McKelvie
#
# MIT License - See LICENSE file accompanying this package.
#

"""
A decoded inbound ISCP message.
"""

from __future__ import annotations

from ..internal_types import *

UNDEFINED = 'undefined'
"""Command and argument of a telegram that is not in the command table."""

class ReceiverMessage:
    """A decoded message received from a receiver."""

    command: str
    """The symbolic command name (e.g. "system-power"), one of the
       pseudo-commands "metadata", "NTM" and "DSN", or "undefined"."""

    argument: MessageArgument
    """The decoded argument. A str for enumerated values, an int for
       integer-range values, a list for multi-part hex strings, a dict
       for "metadata"."""

    zone: str
    """The zone the message applies to."""

    iscp_command: str
    """The raw ISCP text the message was decoded from, e.g. "PWR01"."""

    host: Optional[str]
    port: Optional[int]
    model: Optional[str]

    def __init__(
            self,
            command: str,
            argument: MessageArgument,
            zone: str='main',
            iscp_command: str='',
            host: Optional[str]=None,
            port: Optional[int]=None,
            model: Optional[str]=None,
          ):
        self.command = command
        self.argument = argument
        self.zone = zone
        self.iscp_command = iscp_command
        self.host = host
        self.port = port
        self.model = model

    @property
    def prefix(self) -> str:
        """The 3-letter wire prefix of the raw telegram."""
        return self.iscp_command[:3]

    @property
    def is_undefined(self) -> bool:
        return self.command == UNDEFINED

    def to_jsonable(self) -> JsonableDict:
        """Returns a JSON-serializable representation of the message."""
        result: JsonableDict = dict(
            command=self.command,
            argument=cast(Jsonable, self.argument),
            zone=self.zone,
            iscp_command=self.iscp_command,
          )
        if self.host is not None:
            result['host'] = self.host
        if self.port is not None:
            result['port'] = self.port
        if self.model is not None:
            result['model'] = self.model
        return result

    def __eq__(self, other: object) -> bool:
        if not isinstance(other, ReceiverMessage):
            return NotImplemented
        return (
            self.command == other.command
            and self.argument == other.argument
            and self.zone == other.zone
          )

    def __str__(self) -> str:
        return f"ReceiverMessage({self.zone}.{self.command}={self.argument!r})"

    def __repr__(self) -> str:
        return str(self)
