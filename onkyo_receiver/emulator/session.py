# Copyright (c) 2023 Samuel J. McKelvie
#
# MIT License - See LICENSE file accompanying this package.
#

"""
Onkyo receiver emulator sessions.

One session per TCP client connection. Splits the received byte stream into
eISCP frames and hands each decoded telegram to the emulator.
"""

from __future__ import annotations

import asyncio
from aenum import Enum as AEnum

from ..internal_types import *
from ..pkg_logging import logger
from ..protocol import (
    EISCP_MAGIC,
    EISCP_HEADER_SIZE,
    MAX_FRAME_LENGTH,
    encode_eiscp_packet,
    decode_eiscp_packet,
    parse_eiscp_header,
  )

if TYPE_CHECKING:
    from .emulator_impl import OnkyoReceiverEmulator

class EmulatorSessionState(AEnum):
    UNCONNECTED = 0
    READING_COMMAND = 1
    SHUTTING_DOWN = 2
    CLOSED = 3

class OnkyoReceiverEmulatorSession(asyncio.Protocol):
    session_id: int = -1
    emulator: OnkyoReceiverEmulator
    transport: Optional[asyncio.Transport] = None
    peer_name: str = "<unconnected>"
    description: str = "EmulatorSession(<unconnected>)"
    state: EmulatorSessionState = EmulatorSessionState.UNCONNECTED
    partial_data: bytearray
    transport_closed: bool = True

    def __init__(self, emulator: OnkyoReceiverEmulator):
        self.emulator = emulator
        self.partial_data = bytearray()
        self.session_id = emulator.alloc_session_id(self)
        self.description = f"EmulatorSession(id={self.session_id}, from=<unconnected>)"

    def write(self, data: Union[bytes, bytearray, memoryview]) -> None:
        if self.transport is None or self.transport_closed:
            logger.debug(f"EmulatorSession: Attempt to write to closed session {self.description}; ignored")
            return
        self.transport.write(data)

    def send_telegram(self, message: str) -> None:
        """Sends one ISCP message (e.g. "PWR01") to the client."""
        logger.debug(f"{self}: Sending telegram {message!r}")
        self.write(encode_eiscp_packet(message))

    def connection_made(self, transport: asyncio.BaseTransport):
        """Called when a connection is made."""
        assert isinstance(transport, asyncio.Transport)
        assert self.state == EmulatorSessionState.UNCONNECTED
        self.transport = transport
        self.transport_closed = False
        self.peer_name = transport.get_extra_info('peername')
        self.description = f"EmulatorSession(id={self.session_id}, from='{self.peer_name}')"
        logger.debug(f"EmulatorSession: Connection from {self.peer_name}")
        self.state = EmulatorSessionState.READING_COMMAND

    def close(self) -> None:
        if not self.state in (EmulatorSessionState.CLOSED, EmulatorSessionState.SHUTTING_DOWN):
            self.state = EmulatorSessionState.SHUTTING_DOWN
            if not self.transport_closed and not self.transport is None:
                self.transport_closed = True
                self.transport.close()
            self.state = EmulatorSessionState.CLOSED
            self.emulator.free_session_id(self.session_id)

    def _next_frame(self) -> Optional[bytes]:
        while True:
            i_magic = self.partial_data.find(EISCP_MAGIC)
            if i_magic < 0:
                del self.partial_data[:max(len(self.partial_data) - (len(EISCP_MAGIC) - 1), 0)]
                return None
            del self.partial_data[:i_magic]
            header = parse_eiscp_header(bytes(self.partial_data[:EISCP_HEADER_SIZE]))
            if header is None:
                return None
            header_size, data_size = header
            if header_size < EISCP_HEADER_SIZE or header_size + data_size > MAX_FRAME_LENGTH:
                del self.partial_data[:len(EISCP_MAGIC)]
                continue
            if len(self.partial_data) < header_size + data_size:
                return None
            frame = bytes(self.partial_data[:header_size + data_size])
            del self.partial_data[:header_size + data_size]
            return frame

    def data_received(self, data: bytes) -> None:
        """Called when some data is received."""
        if self.state != EmulatorSessionState.READING_COMMAND:
            return
        try:
            self.partial_data.extend(data)
            while True:
                frame = self._next_frame()
                if frame is None:
                    break
                message = decode_eiscp_packet(frame)
                self.emulator.on_telegram_received(self, message)
        except Exception as e:
            logger.exception(f"{self}: Exception while processing data: {e}")
            self.close()
            raise

    def connection_lost(self, exc: Optional[BaseException]) -> None:
        """Called when the connection is lost or closed."""
        logger.debug(f"{self}: Connection lost, exception={exc}; closing connection")
        self.close()

    def eof_received(self) -> bool:
        logger.debug(f"{self}: EOF received; closing connection")
        self.close()
        return True

    def __str__(self) -> str:
        return self.description

    def __repr__(self) -> str:
        return str(self)
