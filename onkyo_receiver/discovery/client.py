# Copyright (c) 2023 Samuel J. McKelvie
#
# MIT License - See LICENSE file accompanying this package.
#

"""
EiscpDiscoveryClient -- An eISCP discovery client that can:

  1. Send a "!xECNQSTN" query datagram to a broadcast or unicast UDP address (typically 255.255.255.255:60128)
  2. Receive and decode "ECN" discovery responses from receivers
  3. Collect and return responses received within a configurable timeout period
"""

from __future__ import annotations

import asyncio
import time
import datetime

from ..internal_types import *
from ..pkg_logging import logger
from ..protocol import (
    encode_eiscp_packet,
    decode_eiscp_packet,
    DISCOVERY_QUERY,
    DISCOVERY_RESPONSE_PREFIX,
  )
from .constants import (
    EISCP_DISCOVERY_DEFAULT_RESPONSE_WAIT_TIME,
    EISCP_DISCOVERY_BROADCAST_ADDRESS,
    EISCP_DISCOVERY_PORT,
    MAC_ADDRESS_LENGTH,
  )

class DiscoveredReceiver:
    host: str
    """The IP address the response came from"""

    port: int
    """The eISCP TCP port advertised by the receiver"""

    model: str
    """The receiver model name, e.g. "TX-NR686" """

    area_code: str
    """The receiver's destination area code, e.g. "XX" """

    mac: str
    """The receiver's MAC address, as 12 hex characters"""

    monotonic_time: float
    """The local time (in seconds) since an arbitrary point in the past at which
       the response was received, as returned by time.monotonic()."""

    utc_time: datetime.datetime
    """The UTC time at which the response was received."""

    def __init__(
            self,
            host: str,
            port: int,
            model: str,
            area_code: str='',
            mac: str='',
          ) -> None:
        self.host = host
        self.port = port
        self.model = model
        self.area_code = area_code
        self.mac = mac
        self.monotonic_time = time.monotonic()
        self.utc_time = datetime.datetime.now(datetime.timezone.utc)

    @classmethod
    def from_response(cls, src_addr: HostAndPort, message: str) -> Optional[DiscoveredReceiver]:
        """Parses a decoded "ECN<model>/<port>/<area>/<mac>" response.

        Returns None if the message is not a well-formed discovery response.
        """
        if not message.startswith(DISCOVERY_RESPONSE_PREFIX):
            return None
        fields = message[len(DISCOVERY_RESPONSE_PREFIX):].split('/')
        if len(fields) < 4:
            logger.debug(f"Ignoring malformed discovery response from {src_addr}: {message!r}")
            return None
        try:
            port = int(fields[1])
        except ValueError:
            logger.debug(f"Ignoring discovery response with invalid port from {src_addr}: {message!r}")
            return None
        return cls(
            host=src_addr[0],
            port=port,
            model=fields[0].strip(),
            area_code=fields[2].strip(),
            # the MAC field is followed by padding
            mac=fields[3][:MAC_ADDRESS_LENGTH],
          )

    def to_jsonable(self) -> JsonableDict:
        return dict(
            host=self.host,
            port=self.port,
            model=self.model,
            area_code=self.area_code,
            mac=self.mac,
          )

    def __str__(self) -> str:
        return f"DiscoveredReceiver(model={self.model}, addr={self.host}:{self.port}, mac={self.mac})"

    def __repr__(self) -> str:
        return str(self)

class _DiscoveryDatagramProtocol(asyncio.DatagramProtocol):
    """Forwards received datagrams to a queue. None marks the end of the socket."""

    queue: asyncio.Queue[Optional[Tuple[bytes, HostAndPort]]]

    def __init__(self) -> None:
        self.queue = asyncio.Queue()

    def datagram_received(self, data: bytes, addr: Tuple[Any, ...]) -> None:
        self.queue.put_nowait((data, (addr[0], addr[1])))

    def error_received(self, exc: Exception) -> None:
        logger.debug(f"Discovery socket error: {exc}")

    def connection_lost(self, exc: Optional[Exception]) -> None:
        self.queue.put_nowait(None)

class EiscpDiscoveryClient(AsyncContextManager['EiscpDiscoveryClient']):
    """
    An eISCP discovery client. Owns one UDP socket with broadcast enabled,
    bound to an ephemeral local port.

    Usage:
        async with EiscpDiscoveryClient() as client:
            async for receiver in client.search(response_wait_time=2.0):
                print(receiver)
    """

    address: str
    """The address queries are sent to; the broadcast address or a receiver's unicast address."""

    port: int
    """The UDP port queries are sent to."""

    response_wait_time: float
    """The default amount of time (in seconds) to wait for responses."""

    bind_address: str

    _transport: Optional[asyncio.DatagramTransport] = None
    _protocol: Optional[_DiscoveryDatagramProtocol] = None

    def __init__(
            self,
            address: str=EISCP_DISCOVERY_BROADCAST_ADDRESS,
            port: int=EISCP_DISCOVERY_PORT,
            response_wait_time: float=EISCP_DISCOVERY_DEFAULT_RESPONSE_WAIT_TIME,
            bind_address: str='0.0.0.0',
          ) -> None:
        self.address = address
        self.port = port
        self.response_wait_time = response_wait_time
        self.bind_address = bind_address

    async def start(self) -> None:
        loop = asyncio.get_running_loop()
        transport, protocol = await loop.create_datagram_endpoint(
            _DiscoveryDatagramProtocol,
            local_addr=(self.bind_address, 0),
            allow_broadcast=True,
          )
        self._transport = transport
        self._protocol = protocol

    def close(self) -> None:
        if self._transport is not None:
            self._transport.close()
            self._transport = None

    def send_query(self) -> None:
        """Sends one discovery query datagram."""
        assert self._transport is not None
        query = encode_eiscp_packet(DISCOVERY_QUERY)
        logger.debug(f"Sending discovery query to {self.address}:{self.port}")
        self._transport.sendto(query, (self.address, self.port))

    async def search(
            self,
            response_wait_time: Optional[float]=None,
            max_responses: int=0,
          ) -> AsyncIterator[DiscoveredReceiver]:
        """Sends a discovery query and yields receivers as their responses arrive.

        Parameters:
            response_wait_time:      The amount of time (in seconds) to wait for responses to come in. Defaults to
                                        self.response_wait_time.
            max_responses:           Stop after this many receivers have answered. If 0, all responses received
                                        within response_wait_time are returned.

        A receiver that answers more than once is reported once.
        """
        assert self._protocol is not None
        if response_wait_time is None:
            response_wait_time = self.response_wait_time
        queue = self._protocol.queue
        self.send_query()
        end_time = time.monotonic() + response_wait_time
        seen: Set[HostAndPort] = set()
        while True:
            if max_responses > 0 and len(seen) >= max_responses:
                break
            remaining_time = end_time - time.monotonic()
            if remaining_time <= 0.0:
                break
            try:
                item = await asyncio.wait_for(queue.get(), remaining_time)
            except asyncio.TimeoutError:
                break
            if item is None:
                break
            data, src_addr = item
            message = decode_eiscp_packet(data)
            receiver = DiscoveredReceiver.from_response(src_addr, message)
            if receiver is None:
                logger.debug(f"Received non-discovery data from {src_addr}: {message!r}")
                continue
            key = (receiver.host, receiver.port)
            if key in seen:
                continue
            seen.add(key)
            logger.debug(f"Received discovery response from {src_addr}: {receiver}")
            yield receiver

    async def __aenter__(self) -> EiscpDiscoveryClient:
        await self.start()
        return self

    async def __aexit__(
            self,
            exc_type: Optional[type[BaseException]],
            exc: Optional[BaseException],
            tb: Optional[TracebackType]
      ) -> None:
        self.close()

async def discover(
        devices: int=1,
        timeout_secs: float=EISCP_DISCOVERY_DEFAULT_RESPONSE_WAIT_TIME,
        address: str=EISCP_DISCOVERY_BROADCAST_ADDRESS,
        port: int=EISCP_DISCOVERY_PORT,
      ) -> List[DiscoveredReceiver]:
    """Discovers receivers on the local network.

    Sends one query and collects responses until `devices` receivers have
    answered or `timeout_secs` has elapsed, whichever comes first.

    Args:
        devices:       Stop listening after this many receivers have answered.
        timeout_secs:  Maximum time to wait for responses, in seconds.
        address:       Broadcast address, or a receiver's own address to query
                       one known host.
        port:          The discovery UDP port.

    Returns:
        The receivers that answered, possibly an empty list.
    """
    results: List[DiscoveredReceiver] = []
    async with EiscpDiscoveryClient(address=address, port=port, response_wait_time=timeout_secs) as client:
        async for receiver in client.search(max_responses=devices):
            results.append(receiver)
    logger.info(f"Discovery on {address}:{port} found {len(results)} receiver(s)")
    return results
