# Copyright (c) 2023 Samuel J. McKelvie
#
# MIT License - See LICENSE file accompanying this package.
#

"""
OnkyoReceiverClient -- the top-level client for a set of configured receiver zones.

Wires together the shared ZoneStateTracker, the connection and reconnection
managers, the zone registry and the connect coordinator.
"""

from __future__ import annotations

import asyncio
import time

from ..internal_types import *
from ..exceptions import OnkyoReceiverError, NotConnectedError
from ..constants import SETUP_CONNECT_WAIT_TIMEOUT
from ..pkg_logging import logger
from ..protocol import EiscpCommand, as_command

from .client_config import ReceiverConfig
from .transport_connection import MessageHandler
from .reconnection_manager import ReconnectionManager
from .connection_manager import ConnectionManager, ConnectionFactory
from .zone_registry import ZoneRegistry, ZoneBinding
from .zone_state import ZoneStateTracker, ZoneState
from .message_handler import ReceiverMessageHandler
from .connect_coordinator import ConnectCoordinator

NET_SERVICE_CODES: Dict[str, str] = {
    'dlna': '00',
    'media-server': '00',
    'favorite': '01',
    'vtuner': '02',
    'sirius': '03',
    'pandora': '04',
    'rhapsody': '05',
    'last.fm': '06',
    'napster': '07',
    'slacker': '08',
    'mediafly': '09',
    'spotify': '0A',
    'aupeo': '0B',
    'radiko': '0C',
    'e-onkyo': '0D',
  }
"""Network service codes of the NSV telegram."""

class OnkyoReceiverClient:
    """Client for any number of zones on any number of receivers.

    Usage:
        async with OnkyoReceiverClient(configs, publisher=print) as client:
            await client.connect()
            await client.send_command(("TX-NR686", "192.168.1.20", "main"), "volume=level-up-1db-step")
    """

    configs: List[ReceiverConfig]
    publisher: Optional[StatePublisher]

    tracker: ZoneStateTracker
    """The single zone state cache shared by all components."""

    reconnection_manager: ReconnectionManager
    connection_manager: ConnectionManager
    registry: ZoneRegistry
    coordinator: ConnectCoordinator

    def __init__(
            self,
            configs: Sequence[ReceiverConfig],
            publisher: Optional[StatePublisher]=None,
            *,
            connection_factory: Optional[ConnectionFactory]=None,
            reconnection_manager: Optional[ReconnectionManager]=None,
            clock: Callable[[], float]=time.monotonic,
          ) -> None:
        self.configs = list(configs)
        for config in self.configs:
            config.validate(require_address=True)
        self.publisher = publisher
        self.tracker = ZoneStateTracker(
            send_query=self._send_query,
            publisher=publisher,
            clock=clock,
          )
        self.reconnection_manager = ReconnectionManager() if reconnection_manager is None else reconnection_manager
        self.connection_manager = ConnectionManager(
            self.reconnection_manager,
            query_all_zones_state=self.query_all_zones_state,
            connection_factory=connection_factory,
          )
        self.registry = ZoneRegistry()
        self.coordinator = ConnectCoordinator(
            self.connection_manager,
            self.registry,
            self.tracker,
            message_handler_factory=self._create_message_handler,
          )

    def _create_message_handler(self, identity: PhysicalIdentity) -> MessageHandler:
        return ReceiverMessageHandler(identity, self.registry, self.tracker, self.publisher)

    async def connect(self) -> bool:
        """Connects all configured zones.

        Returns:
            True if at least one zone is bound to a receiver connection.
        """
        return await self.coordinator.connect(self.configs)

    def get_binding(self, zone: Union[ZoneIdentity, str]) -> ZoneBinding:
        """Looks up a bound zone by its identity or entity id ("<model> <host> <zone>")."""
        if isinstance(zone, str):
            binding = self.registry.find_by_entity_id(zone)
        else:
            binding = self.registry.get_binding(zone)
        if binding is None:
            raise OnkyoReceiverError(f"Zone {zone!r} is not connected")
        return binding

    def get_zone_state(self, zone_identity: ZoneIdentity) -> ZoneState:
        return self.tracker.get_state(zone_identity)

    async def send_command(
            self,
            zone: Union[ZoneIdentity, str],
            command: Union[EiscpCommand, str],
          ) -> str:
        """Sends a command to a zone.

        The command may be an EiscpCommand or a string such as "volume=query".
        It is addressed to the given zone regardless of any zone in the command.

        Returns:
            The ISCP message that was sent.

        Raises:
            NotConnectedError:   The zone's receiver is not connected.
            UnknownCommandError: The command name is not in the command table.
        """
        binding = self.get_binding(zone)
        cmd = as_command(command)
        cmd = EiscpCommand(cmd.command, cmd.args, zone=binding.zone)
        connection = binding.physical_connection.connection
        if not connection.is_connected:
            raise NotConnectedError(f"[{binding.entity_id}] receiver is not connected")
        return await connection.send_command(cmd)

    async def send_raw(self, zone: Union[ZoneIdentity, str], message: str) -> None:
        """Sends a raw ISCP message (e.g. "PWR01") to a zone's receiver."""
        binding = self.get_binding(zone)
        await binding.physical_connection.connection.send_raw(message)

    async def _send_query(self, zone_identity: ZoneIdentity, command: EiscpCommand) -> None:
        binding = self.registry.get_binding(zone_identity)
        if binding is None:
            raise NotConnectedError(f"Zone {zone_identity} is not bound to a connection")
        await binding.physical_connection.connection.send_command(command)

    async def query_all_zones_state(self, identity: PhysicalIdentity, context: str) -> None:
        await self.coordinator.query_all_zones_state(identity, context)

    async def refresh_zone(self, zone: Union[ZoneIdentity, str]) -> None:
        """Polls a zone's state, reconnecting first if needed.

        Skipped if the zone was polled recently. If the receiver cannot be
        reconnected, a background reconnection is scheduled.
        """
        try:
            binding = self.get_binding(zone)
        except OnkyoReceiverError:
            logger.info(f"Zone {zone!r} has no connection yet, waiting for connect()")
            return
        zone_identity = binding.zone_identity
        if not self.tracker.should_query(zone_identity):
            logger.debug(f"[{binding.entity_id}] refresh requested shortly after recent query, skipping")
            return
        physical_connection = binding.physical_connection
        connection = physical_connection.connection
        threshold_secs = binding.config.send_delay_secs
        if connection.is_connected:
            logger.info(f"[{binding.entity_id}] connected, querying state")
            await self.tracker.query_avr_state(zone_identity, connection, binding.zone, 'on refresh', threshold_secs)
            return
        logger.info(f"[{binding.entity_id}] not connected, attempting reconnection")
        try:
            info = physical_connection.connection_info
            await connection.connect(info.host, info.port, info.model)
            await connection.wait_for_connect(SETUP_CONNECT_WAIT_TIMEOUT)
        except OnkyoReceiverError as e:
            logger.warning(f"[{binding.entity_id}] failed to reconnect on refresh: {e}")
            self.connection_manager.schedule_reconnect(physical_connection.identity, physical_connection)
            return
        logger.info(f"[{binding.entity_id}] reconnected on refresh")
        self.reconnection_manager.cancel_scheduled_reconnection(physical_connection.identity)
        await self.tracker.query_avr_state(
            zone_identity, connection, binding.zone, 'after refresh reconnection', threshold_secs)

    async def select_net_sub_source(self, zone: Union[ZoneIdentity, str], service: str) -> None:
        """Selects the NET input, then a network service (e.g. "spotify").

        The receiver needs net_menu_delay_ms after switching to NET before
        it accepts a service selection. service may be a name from
        NET_SERVICE_CODES or a raw NSV argument.
        """
        binding = self.get_binding(zone)
        await self.send_command(zone, EiscpCommand('input-selector', 'net'))
        await asyncio.sleep(binding.config.net_menu_delay_secs)
        code = NET_SERVICE_CODES.get(service.lower())
        args = service.upper() if code is None else code + '0'
        await self.send_command(zone, EiscpCommand('net-service', args))

    async def aclose(self) -> None:
        """Cancels background work, disconnects all receivers and clears all state."""
        await self.reconnection_manager.aclose()
        await self.tracker.aclose()
        await self.connection_manager.clear_all_connections()
        self.registry.clear()
        self.tracker.clear_all()

    async def __aenter__(self) -> OnkyoReceiverClient:
        logger.debug(f"{self}: Entering async context manager")
        return self

    async def __aexit__(
            self,
            exc_type: Optional[type[BaseException]],
            exc_val: Optional[BaseException],
            exc_tb: Optional[TracebackType]
          ) -> None:
        logger.debug(f"{self}: Exiting async context manager, exc={exc_val}")
        await self.aclose()

    def __str__(self) -> str:
        return f"OnkyoReceiverClient(zones={len(self.configs)})"

    def __repr__(self) -> str:
        return str(self)
