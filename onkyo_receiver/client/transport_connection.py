# Copyright (c) 2023 Samuel J. McKelvie
#
# MIT License - See LICENSE file accompanying this package.
#

"""
A long-lived eISCP TCP connection to one physical receiver.

The connection is opened by a background task that also runs the read loop;
connect() starts that task and returns without waiting for the socket.
Callers that need the socket use wait_for_connect(). Socket failures are
never raised to the caller of connect(); they are reported to error
listeners and show up as a transition back to DISCONNECTED.
"""

from __future__ import annotations

import asyncio
from aenum import Enum as AEnum

from ..internal_types import *
from ..exceptions import (
    OnkyoReceiverError,
    TransportError,
    NotConnectedError,
    DiscoveryFailure,
    ConnectionTimeoutError,
  )
from ..constants import (
    DEFAULT_PORT,
    DEFAULT_DISCOVERY_TIMEOUT,
    DEFAULT_CONNECT_WAIT_TIMEOUT,
    CONNECT_TIMEOUT,
    RECONNECT_ON_CLOSE_SLEEP,
  )
from ..pkg_logging import logger
from ..util import cancel_and_wait
from ..protocol import (
    decode_eiscp_packet,
    CommandTranslator,
    EiscpCommand,
    ReceiverMessage,
    as_command,
    NOISY_PREFIXES,
  )
from ..protocol_impl import FrameStream
from ..discovery import DiscoveredReceiver, discover, EISCP_DISCOVERY_BROADCAST_ADDRESS

from .command_queue import CommandQueue, FrameSink

class ConnectionState(AEnum):
    DISCONNECTED = 'disconnected'
    CONNECTING = 'connecting'
    CONNECTED = 'connected'
    CLOSED = 'closed'

class ConnectionInfo(NamedTuple):
    """The identity a connection was made with."""
    model: str
    host: str
    port: int

MessageHandler = Callable[[ReceiverMessage], None]
CloseListener = Callable[['EiscpConnection', Optional[BaseException]], None]
ErrorListener = Callable[['EiscpConnection', BaseException], None]

class EiscpConnection(FrameSink):
    """An eISCP connection to one receiver.

    Usage:
        async with EiscpConnection(host='192.168.1.20') as conn:
            conn.set_message_handler(print)
            await conn.connect()
            await conn.wait_for_connect()
            await conn.send_command('system-power=query')
    """

    host: Optional[str]
    port: int
    model: Optional[str]

    send_delay_secs: float
    net_menu_delay_secs: float

    reconnect_on_close: bool
    """If True, an unrequested close of the socket schedules a reconnect after
       reconnect_sleep_secs."""

    reconnect_sleep_secs: float
    discovery_timeout_secs: float
    connect_timeout_secs: float

    state: ConnectionState = ConnectionState.DISCONNECTED

    translator: CommandTranslator
    """Decodes inbound telegrams. Owned by the connection since it carries the
       receiver's rolling now-playing metadata."""

    queue: CommandQueue

    _stream: Optional[FrameStream] = None
    _connected_event: asyncio.Event
    """Set only while the state is CONNECTED."""

    _connect_task: Optional[asyncio.Task[None]] = None
    _reconnect_task: Optional[asyncio.Task[None]] = None
    _disconnect_requested: bool = False

    _message_handler: Optional[MessageHandler] = None
    _close_listeners: List[CloseListener]
    _error_listeners: List[ErrorListener]

    def __init__(
            self,
            host: Optional[str]=None,
            port: int=DEFAULT_PORT,
            model: Optional[str]=None,
            *,
            send_delay_secs: float=0.1,
            net_menu_delay_secs: float=0.5,
            reconnect_on_close: bool=False,
            reconnect_sleep_secs: float=RECONNECT_ON_CLOSE_SLEEP,
            discovery_timeout_secs: float=DEFAULT_DISCOVERY_TIMEOUT,
            connect_timeout_secs: float=CONNECT_TIMEOUT,
          ) -> None:
        self.host = host
        self.port = port
        self.model = model
        self.send_delay_secs = send_delay_secs
        self.net_menu_delay_secs = net_menu_delay_secs
        self.reconnect_on_close = reconnect_on_close
        self.reconnect_sleep_secs = reconnect_sleep_secs
        self.discovery_timeout_secs = discovery_timeout_secs
        self.connect_timeout_secs = connect_timeout_secs
        self.translator = CommandTranslator()
        self.queue = CommandQueue(
            self,
            send_delay_secs=send_delay_secs,
            net_menu_delay_secs=net_menu_delay_secs,
          )
        self._connected_event = asyncio.Event()
        self._close_listeners = []
        self._error_listeners = []

    # @override
    @property
    def is_connected(self) -> bool:
        return self.state == ConnectionState.CONNECTED

    @property
    def info(self) -> Optional[ConnectionInfo]:
        """The identity of the connection, or None until host and model are known."""
        if self.host is None or self.model is None:
            return None
        return ConnectionInfo(self.model, self.host, self.port)

    @property
    def physical_identity(self) -> Optional[PhysicalIdentity]:
        if self.host is None or self.model is None:
            return None
        return (self.model, self.host)

    # ---- listeners ----

    def set_message_handler(self, handler: Optional[MessageHandler]) -> None:
        """Registers the single consumer of decoded inbound messages, replacing any
        previous one. Messages received with no handler set are dropped."""
        self._message_handler = handler

    def add_close_listener(self, listener: CloseListener) -> None:
        self._close_listeners.append(listener)

    def add_error_listener(self, listener: ErrorListener) -> None:
        self._error_listeners.append(listener)

    def _notify_error(self, exc: BaseException) -> None:
        for listener in list(self._error_listeners):
            try:
                listener(self, exc)
            except Exception:
                logger.exception(f"{self}: error listener failed")

    def _notify_close(self, exc: Optional[BaseException]) -> None:
        for listener in list(self._close_listeners):
            try:
                listener(self, exc)
            except Exception:
                logger.exception(f"{self}: close listener failed")

    # ---- discovery ----

    async def discover(
            self,
            devices: int=1,
            timeout_secs: Optional[float]=None,
            address: str=EISCP_DISCOVERY_BROADCAST_ADDRESS,
            port: int=DEFAULT_PORT,
          ) -> List[DiscoveredReceiver]:
        """Discovers receivers. Returns whatever answered, possibly nothing."""
        if timeout_secs is None:
            timeout_secs = self.discovery_timeout_secs
        return await discover(devices=devices, timeout_secs=timeout_secs, address=address, port=port)

    # ---- connection lifecycle ----

    async def connect(
            self,
            host: Optional[str]=None,
            port: Optional[int]=None,
            model: Optional[str]=None,
          ) -> Optional[ConnectionInfo]:
        """Starts connecting to the receiver.

        If the host is unknown, the receiver is found by broadcast discovery.
        If the host is known but the model is not, discovery is directed at
        the host. Returns without waiting for the TCP connection; use
        wait_for_connect() for that. If already connected or connecting,
        returns the current identity without reconnecting.

        Raises:
            DiscoveryFailure: Discovery was needed and found no receiver.
        """
        if self.state == ConnectionState.CLOSED:
            raise OnkyoReceiverError(f"{self} is closed")
        if host is not None:
            self.host = host
        if port is not None:
            self.port = port
        if model is not None:
            self.model = model

        if self.state in (ConnectionState.CONNECTED, ConnectionState.CONNECTING):
            return self.info

        if self.host is None or self.model is None:
            address = EISCP_DISCOVERY_BROADCAST_ADDRESS if self.host is None else self.host
            receivers = await self.discover(devices=1, address=address)
            if len(receivers) == 0:
                raise DiscoveryFailure(f"No receiver answered discovery on {address}")
            found = receivers[0]
            self.host = found.host
            self.port = found.port
            self.model = found.model
            # discovery may have raced with another connect()
            if self.state in (ConnectionState.CONNECTED, ConnectionState.CONNECTING):
                return self.info

        self._disconnect_requested = False
        self.state = ConnectionState.CONNECTING
        self._connect_task = asyncio.create_task(self._run_connection())
        return self.info

    async def wait_for_connect(self, timeout_secs: float=DEFAULT_CONNECT_WAIT_TIMEOUT) -> None:
        """Waits until the connection is established.

        Returns immediately if already connected. A timeout does not cancel the
        connection attempt, which may still succeed later.

        Raises:
            ConnectionTimeoutError: Not connected within timeout_secs.
        """
        if self.is_connected:
            return
        try:
            await asyncio.wait_for(self._connected_event.wait(), timeout_secs)
        except asyncio.TimeoutError as e:
            raise ConnectionTimeoutError(
                f"{self}: not connected within {timeout_secs} seconds") from e

    async def _run_connection(self) -> None:
        assert self.host is not None
        exc: Optional[BaseException] = None
        stream: Optional[FrameStream] = None
        established = False
        try:
            logger.debug(f"{self}: opening TCP connection")
            try:
                reader, writer = await asyncio.wait_for(
                    asyncio.open_connection(self.host, self.port),
                    self.connect_timeout_secs)
            except (OSError, asyncio.TimeoutError) as e:
                raise TransportError(f"Unable to connect to {self.host}:{self.port}: {e!r}") from e
            stream = FrameStream(reader, writer)
            self._stream = stream
            self.state = ConnectionState.CONNECTED
            self._connected_event.set()
            established = True
            logger.info(f"{self}: connected")
            async for frame in stream:
                self._handle_frame(frame)
            logger.debug(f"{self}: connection closed by receiver")
        except asyncio.CancelledError:
            raise
        except (OnkyoReceiverError, OSError) as e:
            exc = e if isinstance(e, OnkyoReceiverError) else TransportError(f"{self}: {e!r}")
            logger.debug(f"{self}: transport error: {exc}")
            self._notify_error(exc)
        finally:
            self._connected_event.clear()
            self._stream = None
            if stream is not None:
                stream.close()
            if self.state != ConnectionState.CLOSED:
                self.state = ConnectionState.DISCONNECTED
            self.translator.reset_metadata()
            # Close listeners only hear about the loss of an established link.
            if established and not self._disconnect_requested:
                self._notify_close(exc)
            if (
                    self.reconnect_on_close
                    and not self._disconnect_requested
                    and self.state != ConnectionState.CLOSED
                  ):
                logger.debug(f"{self}: reconnecting in {self.reconnect_sleep_secs} seconds")
                self._reconnect_task = asyncio.create_task(self._reconnect_after_sleep())

    def _handle_frame(self, frame: bytes) -> None:
        iscp_message = decode_eiscp_packet(frame)
        if iscp_message.startswith('!1'):
            iscp_message = iscp_message[2:]
        logger.debug(f"{self}: received {iscp_message!r}")
        if iscp_message[:3] in NOISY_PREFIXES:
            return
        message = self.translator.iscp_to_command(iscp_message)
        message.host = self.host
        message.port = self.port
        message.model = self.model
        handler = self._message_handler
        if handler is None:
            return
        try:
            handler(message)
        except Exception:
            logger.exception(f"{self}: message handler failed on {message}")

    async def _reconnect_after_sleep(self) -> None:
        await asyncio.sleep(self.reconnect_sleep_secs)
        if self._disconnect_requested or self.state != ConnectionState.DISCONNECTED:
            return
        try:
            await self.connect()
        except OnkyoReceiverError as e:
            logger.warning(f"{self}: reconnect after close failed: {e}")

    async def disconnect(self) -> None:
        """Closes the socket and stops any pending reconnect. No-op if not connected."""
        self._disconnect_requested = True
        reconnect_task = self._reconnect_task
        self._reconnect_task = None
        await cancel_and_wait(reconnect_task)
        connect_task = self._connect_task
        self._connect_task = None
        if connect_task is not None and not connect_task.done():
            logger.debug(f"{self}: disconnecting")
            await cancel_and_wait(connect_task)

    async def aclose(self) -> None:
        """Disconnects permanently."""
        self.state = ConnectionState.CLOSED
        await self.disconnect()

    async def __aenter__(self) -> EiscpConnection:
        return self

    async def __aexit__(
            self,
            exc_type: Optional[type[BaseException]],
            exc: Optional[BaseException],
            tb: Optional[TracebackType]
      ) -> None:
        await self.aclose()

    # ---- sending ----

    # @override
    async def write_frame(self, frame: bytes) -> None:
        stream = self._stream
        if stream is None or not self.is_connected:
            raise NotConnectedError("Send command, while not connected")
        try:
            await stream.write(frame)
            await stream.flush()
        except OSError as e:
            raise TransportError(f"{self}: write failed: {e!r}") from e

    async def send_raw(self, message: str) -> None:
        """Sends a raw ISCP message (e.g. "PWR01") through the command queue."""
        await self.queue.send(message)

    async def send_command(self, command: Union[EiscpCommand, str]) -> str:
        """Encodes and sends a symbolic command through the command queue.

        Returns:
            The ISCP message that was sent.

        Raises:
            UnknownCommandError: The command name is not in the command table.
            NotConnectedError:   Not connected.
        """
        cmd = as_command(command)
        iscp_message = self.translator.command_to_iscp(cmd.command, cmd.args, cmd.zone)
        await self.send_raw(iscp_message)
        return iscp_message

    def __str__(self) -> str:
        return f"EiscpConnection({self.model}@{self.host}:{self.port})"

    def __repr__(self) -> str:
        return str(self)
