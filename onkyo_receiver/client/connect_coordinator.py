# Copyright (c) 2023 Samuel J. McKelvie
#
# MIT License - See LICENSE file accompanying this package.
#

"""
Orchestrates connecting all configured zones.

Zones are grouped by physical receiver so each receiver gets exactly one
connection; every zone is then bound to its receiver's connection and
polled for its initial state.
"""

from __future__ import annotations

import asyncio

from ..internal_types import *
from ..pkg_logging import logger

from .client_config import ReceiverConfig
from .transport_connection import MessageHandler
from .connection_manager import ConnectionManager
from .zone_registry import ZoneRegistry
from .zone_state import ZoneStateTracker

INITIAL_QUERY_CONTEXTS = ('after connection', 'after reconnection')
"""Contexts in which zones are polled even if they are not known to be on."""

MessageHandlerFactory = Callable[[PhysicalIdentity], MessageHandler]

class ConnectCoordinator:
    connection_manager: ConnectionManager
    registry: ZoneRegistry
    tracker: ZoneStateTracker
    message_handler_factory: Optional[MessageHandlerFactory]

    def __init__(
            self,
            connection_manager: ConnectionManager,
            registry: ZoneRegistry,
            tracker: ZoneStateTracker,
            message_handler_factory: Optional[MessageHandlerFactory]=None,
          ) -> None:
        self.connection_manager = connection_manager
        self.registry = registry
        self.tracker = tracker
        self.message_handler_factory = message_handler_factory

    async def connect(self, configs: Sequence[ReceiverConfig]) -> bool:
        """Connects every configured zone.

        Returns:
            True if at least one zone is bound to a physical connection afterwards.
        """
        if len(configs) == 0:
            logger.info("No receivers configured")
            return False

        # one representative config per physical receiver
        unique_receivers: Dict[PhysicalIdentity, ReceiverConfig] = {}
        for config in configs:
            identity = config.physical_identity
            if identity not in unique_receivers:
                unique_receivers[identity] = config

        already_queried: Set[PhysicalIdentity] = set()
        for identity, config in unique_receivers.items():
            physical_connection = self.connection_manager.get_physical_connection(identity)
            if physical_connection is None:
                factory = self.message_handler_factory
                await self.connection_manager.create_and_connect(
                    identity,
                    config,
                    None if factory is None else (lambda conn, identity=identity: factory(identity)),
                  )
            elif not physical_connection.is_connected:
                logger.info(f"[{identity[0]} {identity[1]}] TCP connection lost, reconnecting to receiver")
                result = await self.connection_manager.attempt_reconnection(identity)
                if result.success:
                    self.connection_manager.cancel_scheduled_reconnection(identity)
                    await self.query_all_zones_state(identity, 'after reconnection in connect coordinator')
                    already_queried.add(identity)

        for config in configs:
            zone_identity = config.zone_identity
            physical_connection = self.connection_manager.get_physical_connection(config.physical_identity)
            if physical_connection is None:
                logger.warning(f"[{config.model} {config.host}] No physical connection for zone {config.zone}")
                continue
            if self.registry.bind(zone_identity, config, physical_connection):
                self.tracker.set_query_threshold(zone_identity, config.send_delay_secs)

        queried: Set[PhysicalIdentity] = set()
        for binding in self.registry.get_all_bindings():
            identity = binding.physical_identity
            if identity in already_queried:
                continue
            if identity in queried:
                # the receiver processes one command at a time
                await asyncio.sleep(binding.config.send_delay_secs)
            queried.add(identity)
            await self.query_avr_state(binding.zone_identity, 'after connection')

        return len(self.registry) > 0

    async def query_avr_state(self, zone_identity: ZoneIdentity, context: str) -> None:
        """Polls the state of one bound zone through its physical connection."""
        binding = self.registry.get_binding(zone_identity)
        if binding is None:
            logger.debug(f"Zone {zone_identity} is not bound; not querying")
            return
        await self.tracker.query_avr_state(
            zone_identity,
            binding.physical_connection.connection,
            binding.zone,
            context,
            binding.config.send_delay_secs,
          )

    async def query_all_zones_state(self, identity: PhysicalIdentity, context: str) -> None:
        """Polls every bound zone of one physical receiver, one zone at a time.

        Except right after a connection is made, zones that are not known to be
        on are skipped.
        """
        is_initial_query = any(c in context for c in INITIAL_QUERY_CONTEXTS)
        queried: List[ZoneIdentity] = []
        first_zone = True
        for binding in self.registry.get_zones_of(identity):
            if not is_initial_query and not self.tracker.is_on(binding.zone_identity):
                logger.debug(f"[{binding.entity_id}] Skipping query for zone in standby ({context})")
                continue
            if not first_zone:
                await asyncio.sleep(binding.config.send_delay_secs)
            first_zone = False
            queried.append(binding.zone_identity)
            await self.query_avr_state(binding.zone_identity, context)
        if len(queried) > 0:
            self.tracker.record_queries(queried)
