# Copyright (c) 2023 Samuel J. McKelvie
#
# MIT License - See LICENSE file accompanying this package.
#

"""Constants used by this package"""

from ..constants import DEFAULT_PORT, DEFAULT_DISCOVERY_TIMEOUT

EISCP_DISCOVERY_DEFAULT_RESPONSE_WAIT_TIME = DEFAULT_DISCOVERY_TIMEOUT
"""The default time to wait for discovery responses, in seconds."""

EISCP_DISCOVERY_BROADCAST_ADDRESS = "255.255.255.255"
"""The broadcast address discovery queries are sent to."""

EISCP_DISCOVERY_PORT = DEFAULT_PORT
"""The UDP port receivers listen on for discovery queries."""

MAC_ADDRESS_LENGTH = 12
"""Number of hex characters in the MAC address field of a discovery response."""
