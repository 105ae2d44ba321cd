# Copyright (c) 2023 Samuel J. McKelvie
#
# MIT License - See LICENSE file accompanying this package.
#

"""
Registry of physical receiver connections.

Zones of the same receiver share one EiscpConnection. The registry is keyed
by the receiver's physical identity (model, host) and never holds more than
one connection per identity.
"""

from __future__ import annotations

import time

from ..internal_types import *
from ..exceptions import OnkyoReceiverError, DuplicateConnectionError
from ..constants import SETUP_CONNECT_WAIT_TIMEOUT
from ..pkg_logging import logger

from .client_config import ReceiverConfig
from .transport_connection import EiscpConnection, ConnectionInfo, MessageHandler
from .reconnection_manager import ReconnectionManager, ReconnectResult

ConnectionFactory = Callable[[ReceiverConfig], EiscpConnection]
"""Creates an (unconnected) EiscpConnection for a receiver config."""

CreateMessageHandler = Callable[[EiscpConnection], MessageHandler]
"""Creates the consumer of inbound messages for a new connection."""

QueryAllZonesState = Callable[[PhysicalIdentity, str], Awaitable[None]]
"""Polls every zone bound to a physical receiver; the str is the context."""

def default_connection_factory(config: ReceiverConfig) -> EiscpConnection:
    return EiscpConnection(
        config.host,
        config.port,
        config.model,
        send_delay_secs=config.send_delay_secs,
        net_menu_delay_secs=config.net_menu_delay_secs,
        discovery_timeout_secs=config.timeout_secs,
      )

class PhysicalConnection:
    """The connection to one physical receiver, with the config it was created from."""

    identity: PhysicalIdentity
    connection: EiscpConnection
    config: ReceiverConfig
    created_time: float

    def __init__(
            self,
            identity: PhysicalIdentity,
            connection: EiscpConnection,
            config: ReceiverConfig,
          ) -> None:
        self.identity = identity
        self.connection = connection
        self.config = config
        self.created_time = time.monotonic()

    @property
    def connection_info(self) -> ConnectionInfo:
        """The model, host and port the connection was configured with."""
        model, host = self.identity
        return ConnectionInfo(model, host, self.config.port)

    @property
    def is_connected(self) -> bool:
        return self.connection.is_connected

    def __str__(self) -> str:
        return f"PhysicalConnection({self.identity[0]} {self.identity[1]}, connected={self.is_connected})"

    def __repr__(self) -> str:
        return str(self)

class ConnectionManager:
    reconnection_manager: ReconnectionManager
    connection_factory: ConnectionFactory
    query_all_zones_state: Optional[QueryAllZonesState]
    connect_wait_timeout_secs: float

    _connections: Dict[PhysicalIdentity, PhysicalConnection]

    def __init__(
            self,
            reconnection_manager: Optional[ReconnectionManager]=None,
            query_all_zones_state: Optional[QueryAllZonesState]=None,
            connection_factory: Optional[ConnectionFactory]=None,
            connect_wait_timeout_secs: float=SETUP_CONNECT_WAIT_TIMEOUT,
          ) -> None:
        self.reconnection_manager = ReconnectionManager() if reconnection_manager is None else reconnection_manager
        self.query_all_zones_state = query_all_zones_state
        self.connection_factory = default_connection_factory if connection_factory is None else connection_factory
        self.connect_wait_timeout_secs = connect_wait_timeout_secs
        self._connections = {}

    def get_physical_connection(self, identity: PhysicalIdentity) -> Optional[PhysicalConnection]:
        return self._connections.get(identity)

    def set_physical_connection(self, identity: PhysicalIdentity, physical_connection: PhysicalConnection) -> None:
        self._connections[identity] = physical_connection

    def has_physical_connection(self, identity: PhysicalIdentity) -> bool:
        return identity in self._connections

    def get_all_physical_connections(self) -> List[PhysicalConnection]:
        return list(self._connections.values())

    async def create_and_connect(
            self,
            identity: PhysicalIdentity,
            config: ReceiverConfig,
            create_message_handler: Optional[CreateMessageHandler]=None,
          ) -> PhysicalConnection:
        """Creates, registers and connects the connection for a physical receiver.

        The connection is registered before connecting so zones can be bound
        to it even if connecting fails. On failure a background reconnection
        is scheduled and the unconnected PhysicalConnection is returned. A
        background reconnection is also scheduled whenever the receiver drops
        the established link.

        Raises:
            DuplicateConnectionError: A connection is already registered for identity.
        """
        if identity in self._connections:
            raise DuplicateConnectionError(f"A connection already exists for {identity[0]} {identity[1]}")
        logger.info(f"[{identity[0]} {identity[1]}] Connecting to receiver at {config.host}:{config.port}")
        connection = self.connection_factory(config)
        if create_message_handler is not None:
            connection.set_message_handler(create_message_handler(connection))
        physical_connection = PhysicalConnection(identity, connection, config)
        self.set_physical_connection(identity, physical_connection)

        def on_error(conn: EiscpConnection, exc: BaseException) -> None:
            logger.warning(f"[{identity[0]} {identity[1]}] Connection error: {exc}")

        def on_close(conn: EiscpConnection, exc: Optional[BaseException]) -> None:
            logger.warning(f"[{identity[0]} {identity[1]}] Connection to receiver lost")
            if (
                    self._connections.get(identity) is physical_connection
                    and not self.reconnection_manager.has_scheduled_reconnection(identity)
                  ):
                self.schedule_reconnect(identity, physical_connection)

        connection.add_error_listener(on_error)
        connection.add_close_listener(on_close)

        try:
            info = physical_connection.connection_info
            await connection.connect(info.host, info.port, info.model)
            await connection.wait_for_connect(self.connect_wait_timeout_secs)
            logger.info(f"[{identity[0]} {identity[1]}] Connected to receiver")
        except OnkyoReceiverError as e:
            logger.warning(f"[{identity[0]} {identity[1]}] Failed to connect to receiver: {e}")
            logger.info(f"[{identity[0]} {identity[1]}] Zones will be unavailable until the connection succeeds")
            self.schedule_reconnect(identity, physical_connection)
        return physical_connection

    def schedule_reconnect(self, identity: PhysicalIdentity, physical_connection: PhysicalConnection) -> None:
        """Schedules an indefinite background reconnection; on success all zones are polled.

        Retries are spaced by the receiver's configured reconnect_delay_secs.
        """
        async def on_reconnected(reconnected_identity: PhysicalIdentity) -> None:
            if self.query_all_zones_state is not None:
                await self.query_all_zones_state(reconnected_identity, "after scheduled reconnection")

        self.reconnection_manager.schedule_reconnection(
            identity,
            physical_connection.connection,
            physical_connection.connection_info,
            lambda: False,
            on_reconnected,
            delay_secs=physical_connection.config.reconnect_delay_secs,
          )

    async def attempt_reconnection(self, identity: PhysicalIdentity) -> ReconnectResult:
        """Runs the finite reconnection sequence for a registered receiver.

        Cancels any scheduled background reconnection on success.
        """
        physical_connection = self._connections.get(identity)
        if physical_connection is None:
            return ReconnectResult(False, 0)
        result = await self.reconnection_manager.attempt_reconnection(
            identity,
            physical_connection.connection,
            physical_connection.connection_info,
            context='Reconnection',
          )
        if result.success:
            self.reconnection_manager.cancel_scheduled_reconnection(identity)
        return result

    def cancel_scheduled_reconnection(self, identity: PhysicalIdentity) -> None:
        self.reconnection_manager.cancel_scheduled_reconnection(identity)

    def cancel_all_scheduled_reconnections(self) -> None:
        self.reconnection_manager.cancel_all_scheduled_reconnections()

    async def disconnect_all(self) -> None:
        for identity, physical_connection in list(self._connections.items()):
            try:
                logger.info(f"[{identity[0]} {identity[1]}] Disconnecting receiver")
                await physical_connection.connection.disconnect()
            except OnkyoReceiverError as e:
                logger.warning(f"[{identity[0]} {identity[1]}] Error disconnecting receiver: {e}")

    async def clear_all_connections(self) -> None:
        await self.disconnect_all()
        self._connections.clear()
