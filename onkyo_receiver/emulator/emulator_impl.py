# Copyright (c) 2023 Samuel J. McKelvie
#
# MIT License - See LICENSE file accompanying this package.
#

"""
Onkyo receiver emulator.

Provides a simple emulation of an Onkyo receiver on TCP/IP, with an
optional UDP discovery responder.
"""

from __future__ import annotations

import asyncio
import time

from ..internal_types import *
from ..pkg_logging import logger
from ..protocol import (
    encode_eiscp_packet,
    decode_eiscp_packet,
  )
from ..constants import DEFAULT_PORT

from .session import OnkyoReceiverEmulatorSession

QUERY_VALUE = 'QSTN'

DEFAULT_STATE: Dict[str, str] = {
    'PWR': '00',
    'SLI': '2B',
    'MVL': '28',
    'AMT': '00',
    'LMD': '00',
    'IFA': 'HDMI 1,PCM,48 kHz,2.0 ch,All Ch Stereo,5.1 ch,',
    'IFV': 'HDMI 1,1920 x 1080p  60 Hz,RGB,24bit,HDMI 1,1920 x 1080p  60 Hz,RGB,24bit,Custom,',
    'FLD': '53706F7469667920202020',
  }
"""Initial state of the emulated receiver, as ISCP values."""

MAX_VOLUME = 0x50

class _DiscoveryResponderProtocol(asyncio.DatagramProtocol):
    emulator: OnkyoReceiverEmulator
    transport: Optional[asyncio.DatagramTransport] = None

    def __init__(self, emulator: OnkyoReceiverEmulator) -> None:
        self.emulator = emulator

    def connection_made(self, transport: asyncio.BaseTransport) -> None:
        self.transport = cast(asyncio.DatagramTransport, transport)

    def datagram_received(self, data: bytes, addr: Tuple[Any, ...]) -> None:
        message = decode_eiscp_packet(data)
        logger.debug(f"Emulator discovery: received {message!r} from {addr}")
        if message.startswith('ECNQSTN') and self.transport is not None:
            self.transport.sendto(encode_eiscp_packet(self.emulator.discovery_response), addr)

class OnkyoReceiverEmulator(AsyncContextManager['OnkyoReceiverEmulator']):
    model: str
    area_code: str
    mac: str
    bind_addr: str
    port: int
    with_discovery: bool
    discovery_port: int
    sessions: Dict[int, OnkyoReceiverEmulatorSession]
    next_session_id: int = 0
    requests: asyncio.Queue[Optional[Tuple[OnkyoReceiverEmulatorSession, str]]]
    server: Optional[asyncio.Server] = None
    discovery_transport: Optional[asyncio.DatagramTransport] = None
    handler_task: Optional[asyncio.Task[None]] = None
    final_result: asyncio.Future[None]

    state: Dict[str, str]
    """Current ISCP value of each emulated command prefix."""

    received: List[Tuple[float, str]]
    """Every telegram received, with the time.monotonic() value at which it arrived."""

    def __init__(
            self,
            model: str = 'TX-NR686',
            bind_addr: Optional[str] = None,
            port: int = DEFAULT_PORT,
            with_discovery: bool = True,
            discovery_port: Optional[int] = None,
            area_code: str = 'XX',
            mac: str = '0009B0E0DADC',
            initial_state: Optional[Mapping[str, str]] = None,
          ):
        self.model = model
        self.area_code = area_code
        self.mac = mac
        self.bind_addr = '0.0.0.0' if bind_addr is None else bind_addr
        self.port = port
        self.with_discovery = with_discovery
        self.discovery_port = port if discovery_port is None else discovery_port
        self.sessions = {}
        self.requests = asyncio.Queue()
        self.final_result = asyncio.get_event_loop().create_future()
        self.state = dict(DEFAULT_STATE)
        if initial_state is not None:
            self.state.update(initial_state)
        self.received = []

    @property
    def discovery_response(self) -> str:
        return f"!1ECN{self.model}/{self.port:05d}/{self.area_code}/{self.mac}"

    @property
    def received_messages(self) -> List[str]:
        return [message for _, message in self.received]

    def alloc_session_id(self, session: OnkyoReceiverEmulatorSession) -> int:
        result = self.next_session_id
        self.next_session_id += 1
        self.sessions[result] = session
        return result

    def free_session_id(self, session_id: int) -> None:
        self.sessions.pop(session_id, None)

    def on_telegram_received(self, session: OnkyoReceiverEmulatorSession, message: str) -> None:
        """Called when a telegram is received from a session."""
        self.received.append((time.monotonic(), message))
        self.requests.put_nowait((session, message))

    def broadcast(self, message: str) -> None:
        """Sends a telegram to every connected session, as a receiver does on a state change."""
        for session in list(self.sessions.values()):
            session.send_telegram(message)

    def set_state(self, prefix: str, value: str) -> None:
        """Changes the emulated state and notifies all sessions."""
        logger.debug(f"Setting receiver emulator {prefix} to {value!r}")
        self.state[prefix] = value
        self.broadcast(prefix + value)

    def _apply_volume(self, value: str) -> str:
        level = int(self.state.get('MVL', '00'), 16)
        if value.startswith('UP'):
            level = min(level + 1, MAX_VOLUME)
        elif value.startswith('DOWN'):
            level = max(level - 1, 0)
        else:
            level = int(value, 16)
        return f"{level:02X}"

    def handle_telegram(self, session: OnkyoReceiverEmulatorSession, message: str) -> None:
        """Handles one telegram: answers queries, applies and echoes set commands."""
        prefix = message[:3]
        value = message[3:].strip()
        if value == QUERY_VALUE:
            current = self.state.get(prefix)
            session.send_telegram(prefix + ('N/A' if current is None else current))
            return
        if prefix == 'MVL':
            value = self._apply_volume(value)
        elif prefix == 'AMT' and value == 'TG':
            value = '00' if self.state.get('AMT') == '01' else '01'
        self.set_state(prefix, value)

    async def handle_requests(self) -> None:
        """Handle requests from sessions."""
        while True:
            session_and_message = await self.requests.get()
            try:
                if session_and_message is None:
                    logger.debug("Emulator handler: Received EOF; exiting")
                    break
                session, message = session_and_message
                try:
                    logger.debug(f"{session}: Emulator handler: received telegram: {message!r}")
                    self.handle_telegram(session, message)
                except Exception as e:
                    logger.exception(f"{session}: Handler task: Exception while handling request; killing session: {e}")
                    session.close()
            finally:
                self.requests.task_done()

    async def run(self) -> None:
        """Runs the Emulator until it is closed."""
        async with self:
            await self.wait_closed()

    async def start(self) -> None:
        try:
            loop = asyncio.get_running_loop()
            self.handler_task = asyncio.create_task(self.handle_requests())
            self.server = await loop.create_server(
                lambda: OnkyoReceiverEmulatorSession(self),
                host=self.bind_addr,
                port=self.port)
            if self.port == 0:
                self.port = self.server.sockets[0].getsockname()[1]
            logger.debug(f"Emulator: Listening on {self.bind_addr}:{self.port}")
            await self.server.start_serving()
            if self.with_discovery:
                transport, _ = await loop.create_datagram_endpoint(
                    lambda: _DiscoveryResponderProtocol(self),
                    local_addr=(self.bind_addr, self.discovery_port),
                  )
                self.discovery_transport = transport
                self.discovery_port = transport.get_extra_info('sockname')[1]
                logger.debug(f"Emulator: Answering discovery on {self.bind_addr}:{self.discovery_port}")
        except BaseException as e:
            self.set_final_result(e)
            try:
                await self.wait_closed()
            except BaseException:
                pass
            raise

    def close(self, exc: Optional[BaseException]=None) -> None:
        """Stops the Emulator."""
        self.set_final_result(exc)

    def drop_connections(self) -> None:
        """Closes all client connections, as a receiver does when it loses power."""
        for session in list(self.sessions.values()):
            session.close()

    async def wait_closed(self) -> None:
        """Waits for the emulator to be fully closed. Does not initiate shutdown."""
        try:
            await self.final_result
        finally:
            try:
                if self.server is not None:
                    try:
                        self.server.close()
                        self.drop_connections()
                    finally:
                        await self.server.wait_closed()
            finally:
                self.server = None
                if self.handler_task is not None:
                    try:
                        await self.handler_task
                    finally:
                        self.handler_task = None

    async def close_and_wait(self, exc: Optional[BaseException]=None) -> None:
        self.close(exc)
        await self.wait_closed()

    def set_final_result(self, exc: Optional[BaseException]=None) -> None:
        if not self.final_result.done():
            if exc is None:
                logger.debug(f"Emulator: Setting final result to success")
                self.final_result.set_result(None)
            else:
                logger.debug(f"Emulator: Setting final exception: {exc}")
                self.final_result.set_exception(exc)
            if self.discovery_transport is not None:
                self.discovery_transport.close()
                self.discovery_transport = None
            self.requests.put_nowait(None)
            if self.server is not None:
                self.server.close()

    async def __aenter__(self) -> OnkyoReceiverEmulator:
        await self.start()
        return self

    async def __aexit__(self,
            exc_type: Optional[type[BaseException]],
            exc: Optional[BaseException],
            tb: Optional[TracebackType]
      ) -> None:
        self.set_final_result(exc)
        try:
            await self.wait_closed()
        except Exception as e:
            logger.debug(f"Emulator: closed with {e!r}")

    def __str__(self) -> str:
        return f"OnkyoReceiverEmulator({self.model}@{self.bind_addr}:{self.port})"

    def __repr__(self) -> str:
        return str(self)
