# Copyright (c) 2023 Samuel J. McKelvie
#
# MIT License - See LICENSE file accompanying this package.
#

"""Package onkyo_receiver provides a command-line tool and asyncio API for controlling
Onkyo/Integra receivers via the eISCP protocol over TCP/IP.
"""

from .version import __version__

from .pkg_logging import logger

from .internal_types import Jsonable, JsonableDict, PhysicalIdentity, ZoneIdentity

from .exceptions import (
    OnkyoReceiverError,
    TransportError,
    NotConnectedError,
    DiscoveryFailure,
    ConnectionTimeoutError,
    QueryFailure,
    DuplicateConnectionError,
    UnknownCommandError,
    ConfigError,
  )

from .constants import DEFAULT_PORT, DEFAULT_DISCOVERY_TIMEOUT

from .protocol import (
    encode_eiscp_packet,
    decode_eiscp_packet,
    EiscpCommand,
    parse_command,
    ReceiverMessage,
    CommandTranslator,
    CommandSpec,
    name_to_command_spec,
    prefix_to_command_spec,
    get_command_names,
  )

from .discovery import DiscoveredReceiver, EiscpDiscoveryClient, discover

from .client import (
    ReceiverConfig,
    load_receiver_configs,
    EiscpConnection,
    ConnectionState,
    ConnectionInfo,
    CommandQueue,
    ReconnectionManager,
    ConnectionManager,
    ZoneStateTracker,
    ZoneRegistry,
    ConnectCoordinator,
    OnkyoReceiverClient,
  )

from .util import (
    full_class_name,
    full_name_of_class,
    zone_entity_id,
  )
