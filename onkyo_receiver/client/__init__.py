# Copyright (c) 2023 Samuel J. McKelvie
#
# MIT License - See LICENSE file accompanying this package.
#

"""
Onkyo receiver client.

Provides the eISCP connection, its command queue, reconnection and
connection management, zone state tracking and the top-level client.
"""

from .client_config import ReceiverConfig, load_receiver_configs, VALID_VOLUME_SCALES
from .command_queue import CommandQueue, FrameSink
from .transport_connection import EiscpConnection, ConnectionState, ConnectionInfo
from .reconnection_manager import ReconnectionManager, ReconnectionState, ReconnectResult
from .connection_manager import ConnectionManager, PhysicalConnection, default_connection_factory
from .zone_state import ZoneStateTracker, ZoneState, CLEARED_MEDIA_ATTRIBUTES
from .zone_registry import ZoneRegistry, ZoneBinding
from .message_handler import ReceiverMessageHandler, scale_volume
from .connect_coordinator import ConnectCoordinator
from .client_impl import OnkyoReceiverClient, NET_SERVICE_CODES
