# Copyright (c) 2023 Samuel J. McKelvie
#
# MIT License - See LICENSE file accompanying this package.
#

"""
Type hints used internally by this package.

Intended to be star-imported by package modules.
"""

from __future__ import annotations

from typing import (
    TYPE_CHECKING,
    Any,
    AsyncContextManager,
    AsyncIterable,
    AsyncIterator,
    Awaitable,
    Callable,
    Coroutine,
    Dict,
    Iterable,
    Iterator,
    List,
    Mapping,
    MutableMapping,
    NamedTuple,
    Optional,
    Sequence,
    Set,
    Tuple,
    Type,
    Union,
    cast,
  )

from types import TracebackType

from typing_extensions import TypeAlias

Jsonable: TypeAlias = Union[str, int, float, bool, None, Dict[str, Any], List[Any]]
"""A type hint for a value that can be serialized to JSON."""

JsonableDict: TypeAlias = Dict[str, Jsonable]
"""A type hint for a JSON-serializable dictionary."""

HostAndPort: TypeAlias = Tuple[str, int]
"""A (host, port) address tuple."""

PhysicalIdentity: TypeAlias = Tuple[str, str]
"""Identifies one physical receiver regardless of zone: (model, host)."""

ZoneIdentity: TypeAlias = Tuple[str, str, str]
"""Identifies one controllable output zone: (model, host, zone)."""

MessageArgument: TypeAlias = Union[str, int, List[str], Dict[str, str]]
"""The decoded argument of an inbound ISCP message."""

StatePublisher: TypeAlias = Callable[[str, Dict[str, Jsonable]], None]
"""An external sink receiving (entity_id, attributes) updates."""
