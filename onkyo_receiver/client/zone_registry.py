# Copyright (c) 2023 Samuel J. McKelvie
#
# MIT License - See LICENSE file accompanying this package.
#

"""
Bindings of configured zones to shared physical connections.
"""

from __future__ import annotations

from ..internal_types import *
from ..pkg_logging import logger
from ..util import physical_identity_of, zone_entity_id

from .client_config import ReceiverConfig
from .connection_manager import PhysicalConnection

class ZoneBinding:
    """A configured zone and the physical connection it is controlled through."""

    zone_identity: ZoneIdentity
    config: ReceiverConfig
    physical_connection: PhysicalConnection

    def __init__(
            self,
            zone_identity: ZoneIdentity,
            config: ReceiverConfig,
            physical_connection: PhysicalConnection,
          ) -> None:
        self.zone_identity = zone_identity
        self.config = config
        self.physical_connection = physical_connection

    @property
    def physical_identity(self) -> PhysicalIdentity:
        return physical_identity_of(self.zone_identity)

    @property
    def zone(self) -> str:
        return self.zone_identity[2]

    @property
    def entity_id(self) -> str:
        return zone_entity_id(self.zone_identity)

    def __str__(self) -> str:
        return f"ZoneBinding({self.entity_id})"

    def __repr__(self) -> str:
        return str(self)

class ZoneRegistry:
    _bindings: Dict[ZoneIdentity, ZoneBinding]

    def __init__(self) -> None:
        self._bindings = {}

    def bind(
            self,
            zone_identity: ZoneIdentity,
            config: ReceiverConfig,
            physical_connection: PhysicalConnection,
          ) -> bool:
        """Binds a zone to a physical connection.

        Returns:
            False if the zone was already bound; the existing binding is kept.
        """
        if zone_identity in self._bindings:
            return False
        logger.debug(f"[{zone_entity_id(zone_identity)}] bound to {physical_connection}")
        self._bindings[zone_identity] = ZoneBinding(zone_identity, config, physical_connection)
        return True

    def unbind(self, zone_identity: ZoneIdentity) -> bool:
        return self._bindings.pop(zone_identity, None) is not None

    def is_bound(self, zone_identity: ZoneIdentity) -> bool:
        return zone_identity in self._bindings

    def get_binding(self, zone_identity: ZoneIdentity) -> Optional[ZoneBinding]:
        return self._bindings.get(zone_identity)

    def get_zones_of(self, physical_identity: PhysicalIdentity) -> List[ZoneBinding]:
        """Returns the bindings of all zones of one physical receiver, in binding order."""
        return [b for b in self._bindings.values() if b.physical_identity == physical_identity]

    def get_all_bindings(self) -> List[ZoneBinding]:
        return list(self._bindings.values())

    def find_by_entity_id(self, entity_id: str) -> Optional[ZoneBinding]:
        for binding in self._bindings.values():
            if binding.entity_id == entity_id:
                return binding
        return None

    def clear(self) -> None:
        self._bindings.clear()

    def __len__(self) -> int:
        return len(self._bindings)
