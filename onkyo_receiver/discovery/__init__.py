# Copyright (c) 2023 Samuel J. McKelvie
#
# MIT License - See LICENSE file accompanying this package.
#

"""
Discovery protocol for Onkyo/Integra receivers.

A client broadcasts an eISCP frame carrying "!xECNQSTN" to UDP port 60128.
Each receiver answers with a frame carrying "ECN<model>/<port>/<area code>/<mac>".
"""

from .constants import (
    EISCP_DISCOVERY_DEFAULT_RESPONSE_WAIT_TIME,
    EISCP_DISCOVERY_BROADCAST_ADDRESS,
    EISCP_DISCOVERY_PORT,
  )
from .client import DiscoveredReceiver, EiscpDiscoveryClient, discover

__all__ = [
    'DiscoveredReceiver',
    'EiscpDiscoveryClient',
    'discover',
    'EISCP_DISCOVERY_DEFAULT_RESPONSE_WAIT_TIME',
    'EISCP_DISCOVERY_BROADCAST_ADDRESS',
    'EISCP_DISCOVERY_PORT',
]
