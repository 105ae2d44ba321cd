# Copyright (c) 2023 Samuel J. McKelvie
#
# MIT License - See LICENSE file accompanying this package.
#

"""
General utility functions
"""
from __future__ import annotations

import asyncio

from .internal_types import *

def full_name_of_class(cls: Type[object]) -> str:
    """Return the full name of a class, including the module name."""
    module = cls.__module__
    if module == 'builtins':
        return cls.__qualname__
    return f"{module}.{cls.__qualname__}"

def full_class_name(o: object) -> str:
    """Return the full name of an object's class, including the module name."""
    return full_name_of_class(o.__class__)

def physical_identity_of(zone_identity: ZoneIdentity) -> PhysicalIdentity:
    """Return the (model, host) identity of the receiver that owns a zone."""
    model, host, _ = zone_identity
    return (model, host)

def zone_entity_id(zone_identity: ZoneIdentity) -> str:
    """Return the entity id string published for a zone: "<model> <host> <zone>"."""
    model, host, zone = zone_identity
    return f"{model} {host} {zone}"

async def cancel_and_wait(task: Optional[asyncio.Task[Any]]) -> None:
    """Cancel a task and wait for it to finish, ignoring its outcome."""
    if task is None or task.done():
        return
    task.cancel()
    if task is asyncio.current_task():
        return
    try:
        await task
    except asyncio.CancelledError:
        pass
