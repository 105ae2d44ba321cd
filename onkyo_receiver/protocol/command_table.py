# Copyright (c) 2023 Samuel J. McKelvie
#
# MIT License - See LICENSE file accompanying this package.
#

"""
Onkyo/Integra ISCP command table.

The table itself is static data shipped with the package as
eiscp_commands.json, in three parts:

    commands:          { prefix: { name, description, values: { code: { name, description } } } }
    command_mappings:  { name: prefix }
    value_mappings:    { prefix: { argument_name: { value: code } } }

A value_mappings entry containing the key "intgrRange" marks a command whose
value is a hex-encoded integer rather than an enumerated code.

There is no protocol implementation here; only metadata about the protocol.
"""
from __future__ import annotations

import json
from importlib import resources

from ..pkg_logging import logger
from ..internal_types import *

INTEGER_RANGE_KEY = 'intgrRange'
"""The value_mappings key that flags a command as taking a hex-encoded integer."""

class CommandValue:
    """One enumerated value of a command."""

    code: str
    """The wire code, e.g. "01"."""

    names: List[str]
    """The symbolic names for the code. Empty for descriptive pseudo-codes
       (e.g. "0,100") that have no symbolic name."""

    description: str

    def __init__(self, code: str, name: Union[str, List[str], None], description: str=''):
        self.code = code
        if name is None:
            self.names = []
        elif isinstance(name, str):
            self.names = [name]
        else:
            self.names = list(name)
        self.description = description

    @property
    def name(self) -> Optional[str]:
        """The primary symbolic name, or None."""
        return self.names[0] if len(self.names) > 0 else None

    def __str__(self) -> str:
        return f"CommandValue({self.code!r}: {self.names!r})"

    def __repr__(self) -> str:
        return str(self)

class CommandSpec:
    """Metadata for a single ISCP command (one 3-letter prefix)."""

    prefix: str
    """The 3-letter wire prefix, e.g. "PWR"."""

    name: str
    """The symbolic command name, e.g. "system-power"."""

    description: str

    values: Dict[str, CommandValue]
    """Enumerated values keyed by wire code."""

    argument_codes: Dict[str, str]
    """Wire codes keyed by symbolic argument name. Does not include the
       integer range marker."""

    is_integer_range: bool
    """True if the value is a hex-encoded integer rather than an enumerated code."""

    def __init__(
            self,
            prefix: str,
            name: str,
            description: str='',
            values: Optional[Dict[str, CommandValue]]=None,
            argument_codes: Optional[Dict[str, str]]=None,
            is_integer_range: bool=False,
          ):
        self.prefix = prefix
        self.name = name
        self.description = description
        self.values = {} if values is None else values
        self.argument_codes = {} if argument_codes is None else argument_codes
        self.is_integer_range = is_integer_range

    def code_to_name(self, code: str) -> Optional[str]:
        """Returns the primary symbolic name of an enumerated wire code, or None."""
        value = self.values.get(code)
        if value is None:
            return None
        return value.name

    def argument_to_code(self, argument: str) -> Optional[str]:
        """Returns the wire code of a symbolic argument, or None."""
        return self.argument_codes.get(argument)

    def __str__(self) -> str:
        return f"CommandSpec({self.prefix}: {self.name})"

    def __repr__(self) -> str:
        return str(self)

def _load_command_table() -> JsonableDict:
    data = resources.files(__package__).joinpath('eiscp_commands.json').read_text(encoding='utf-8')
    result = json.loads(data)
    assert isinstance(result, dict)
    return result

_raw_table = _load_command_table()

_command_specs: Dict[str, CommandSpec] = {}
"""All command specs, keyed by wire prefix."""

_command_specs_by_name: Dict[str, CommandSpec] = {}
"""All named command specs, keyed by symbolic command name."""

def _build_command_specs() -> None:
    raw_commands = cast(Dict[str, Any], _raw_table.get('commands', {}))
    raw_mappings = cast(Dict[str, str], _raw_table.get('command_mappings', {}))
    raw_value_mappings = cast(Dict[str, Any], _raw_table.get('value_mappings', {}))
    for prefix, raw_command in raw_commands.items():
        values: Dict[str, CommandValue] = {}
        for code, raw_value in raw_command.get('values', {}).items():
            values[code] = CommandValue(code, raw_value.get('name'), raw_value.get('description', ''))
        raw_args: Dict[str, Any] = raw_value_mappings.get(prefix) or {}
        argument_codes: Dict[str, str] = {}
        for arg_name, arg_entry in raw_args.items():
            if arg_name == INTEGER_RANGE_KEY:
                continue
            if isinstance(arg_entry, dict) and 'value' in arg_entry:
                argument_codes[arg_name] = str(arg_entry['value'])
        _command_specs[prefix] = CommandSpec(
            prefix,
            raw_command.get('name', prefix),
            description=raw_command.get('description', ''),
            values=values,
            argument_codes=argument_codes,
            is_integer_range=INTEGER_RANGE_KEY in raw_args,
          )
    for name, prefix in raw_mappings.items():
        spec = _command_specs.get(prefix)
        if spec is None:
            logger.debug(f"Command table maps {name!r} to unknown prefix {prefix!r}")
            continue
        _command_specs_by_name[name] = spec

_build_command_specs()

def prefix_to_command_spec(prefix: str) -> Optional[CommandSpec]:
    """Returns the command spec for a 3-letter wire prefix, or None if unknown."""
    return _command_specs.get(prefix)

def name_to_command_spec(name: str) -> Optional[CommandSpec]:
    """Returns the command spec for a symbolic command name, or None if unknown."""
    return _command_specs_by_name.get(name)

def get_all_command_specs() -> Dict[str, CommandSpec]:
    """Returns all command specs, keyed by wire prefix."""
    return _command_specs

def get_command_names() -> List[str]:
    """Returns all symbolic command names, in table order."""
    return list(_command_specs_by_name.keys())
