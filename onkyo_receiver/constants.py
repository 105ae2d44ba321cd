# Copyright (c) 2023 Samuel J. McKelvie
#
# MIT License - See LICENSE file accompanying this package.
#

"""Constants used by onkyo_receiver"""

DEFAULT_PORT = 60128
"""The listen port number used by the receiver for eISCP control over TCP/IP,
   and for UDP discovery."""

DEFAULT_DISCOVERY_TIMEOUT = 10.0
"""The default time to wait for discovery responses, in seconds."""

DEFAULT_CONNECT_WAIT_TIMEOUT = 5.0
"""The default timeout for wait_for_connect(), in seconds."""

CONNECT_TIMEOUT = 15.0
"""The timeout for opening the TCP connection to the receiver, in seconds."""

SETUP_CONNECT_WAIT_TIMEOUT = 3.0
"""The timeout for waiting on a new connection during setup and refresh, in seconds."""

DEFAULT_QUEUE_THRESHOLD_MS = 100
"""The default minimum spacing between consecutive commands sent to one
   receiver, in milliseconds."""

DEFAULT_NET_MENU_DELAY_MS = 500
"""The default delay after selecting the NET input before selecting a
   network service, in milliseconds."""

DEFAULT_STATE_QUERY_THRESHOLD_MS = 250
"""The default spacing between state queries in a refresh cascade, in milliseconds."""

QUERY_DEDUP_TTL = 5.0
"""Two state polls of the same zone are never issued within this many seconds."""

RECONNECT_TIMEOUTS = (3.0, 5.0, 8.0)
"""The progressive wait_for_connect() timeouts used by one reconnection attempt
   sequence, in seconds."""

SCHEDULED_RECONNECT_DELAY = 30.0
"""The delay before each scheduled background reconnection attempt, in seconds."""

RECONNECT_ON_CLOSE_SLEEP = 5.0
"""For connections with reconnect_on_close enabled, the delay before reconnecting
   after the socket closes, in seconds."""

DEFAULT_VOLUME_SCALE = 100
"""The default receiver volume scale (the receiver's maximum volume step)."""

DEFAULT_ALBUM_ART_URL = "album_art.cgi"
"""The default path of the receiver's album art resource."""
