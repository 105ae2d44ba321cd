# Copyright (c) 2023 Samuel J. McKelvie
#
# MIT License - See LICENSE file accompanying this package.
#

"""
Outbound command queue for one receiver connection.

The receiver cannot process back-to-back telegrams, so writes to one
connection are strictly serialized: at most one write is in progress, and
the next write is not issued until the configured send delay has elapsed
after the previous one. Commands are never buffered across a disconnect;
sending while disconnected fails immediately.
"""

from __future__ import annotations

import time
import asyncio
from abc import ABC, abstractmethod

from ..internal_types import *
from ..exceptions import OnkyoReceiverError, NotConnectedError
from ..pkg_logging import logger
from ..protocol import encode_eiscp_packet, NET_SUB_SOURCE_PREFIXES

class FrameSink(ABC):
    """Something encoded frames can be written to; implemented by EiscpConnection."""

    @property
    @abstractmethod
    def is_connected(self) -> bool:
        raise NotImplementedError()

    @abstractmethod
    async def write_frame(self, frame: bytes) -> None:
        """Writes one encoded frame and waits for it to drain."""
        raise NotImplementedError()

def message_prefix(message: str) -> str:
    """Returns the 3-letter command prefix of an ISCP message, with or without "!1"."""
    if message.startswith('!'):
        return message[2:5]
    return message[:3]

class CommandQueue:
    """A single-concurrency FIFO of outbound ISCP messages for one connection."""

    sink: FrameSink

    send_delay_secs: float
    """Minimum time between the end of one write and the start of the next."""

    net_menu_delay_secs: float
    """Minimum delay after a NET menu telegram (NSV, NTC), if larger than send_delay_secs."""

    _lock: asyncio.Lock
    """Serializes writes. asyncio.Lock wakes waiters in FIFO order."""

    _ready_at: float = 0.0
    """time.monotonic() value before which the next write must not start. Holds
       even if a sender is cancelled while waiting out its delay."""

    def __init__(
            self,
            sink: FrameSink,
            send_delay_secs: float=0.1,
            net_menu_delay_secs: float=0.0,
          ) -> None:
        self.sink = sink
        self.send_delay_secs = send_delay_secs
        self.net_menu_delay_secs = net_menu_delay_secs
        self._lock = asyncio.Lock()

    def _delay_after(self, message: str) -> float:
        if message_prefix(message) in NET_SUB_SOURCE_PREFIXES:
            return max(self.send_delay_secs, self.net_menu_delay_secs)
        return self.send_delay_secs

    async def send(self, message: str) -> None:
        """Writes one ISCP message, then waits out the send delay.

        Returns once the message has been written and the delay has elapsed.
        The receiver does not acknowledge commands; a successful return only
        means the message was written.

        Raises:
            NotConnectedError: The connection is not established, either when
                               called or when the message reaches the front of
                               the queue.
            TransportError:    The write failed.
        """
        if message == '':
            raise OnkyoReceiverError("No data provided")
        if not self.sink.is_connected:
            raise NotConnectedError(f"Cannot send {message!r}: not connected")
        async with self._lock:
            if not self.sink.is_connected:
                raise NotConnectedError(f"Cannot send {message!r}: connection lost while queued")
            wait_time = self._ready_at - time.monotonic()
            if wait_time > 0:
                await asyncio.sleep(wait_time)
            frame = encode_eiscp_packet(message)
            logger.debug(f"Sending ISCP message {message!r}")
            await self.sink.write_frame(frame)
            delay = self._delay_after(message)
            self._ready_at = time.monotonic() + delay
            await asyncio.sleep(delay)
