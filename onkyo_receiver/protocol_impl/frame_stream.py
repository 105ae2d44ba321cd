# Copyright (c) 2023 Samuel J. McKelvie
#
# MIT License - See LICENSE file accompanying this package.
#

"""
A bi-directional stream of eISCP frames over an asyncio StreamReader/StreamWriter pair.
"""

from __future__ import annotations

import asyncio
from asyncio import StreamReader, StreamWriter, Future

from ..protocol.constants import EISCP_MAGIC, EISCP_HEADER_SIZE, MAX_FRAME_LENGTH
from ..protocol.packet import parse_eiscp_header
from ..exceptions import TransportError
from ..pkg_logging import logger
from ..internal_types import *

READ_CHUNK_SIZE = 4096

class FrameStream:
    """
    Splits the received TCP byte stream into whole eISCP frames, and writes
    encoded frames.

    TCP does not preserve frame boundaries; a single read may return part of a
    frame or several frames. Frames are delimited by the data size in each
    frame header. Bytes that do not start with the eISCP magic are skipped.
    """

    stream_reader: StreamReader
    """The StreamReader to read from."""

    stream_writer: StreamWriter
    """The StreamWriter to write to."""

    buffer: bytearray

    end_of_stream_reached: bool = False

    close_result: Future[None]
    """Future that will be set when close() is called."""

    def __init__(
            self,
            stream_reader: StreamReader,
            stream_writer: StreamWriter,
          ) -> None:
        """
        Constructor.

        Args:
            stream_reader: The StreamReader to read from.
            stream_writer: The StreamWriter to write to.
        """
        self.stream_reader = stream_reader
        self.stream_writer = stream_writer
        self.close_result = asyncio.get_running_loop().create_future()
        self.buffer = bytearray()

    @property
    def is_closed(self) -> bool:
        return self.close_result.done()

    def _next_buffered_frame(self) -> Optional[bytes]:
        """Removes and returns the next complete frame from the buffer, or None if
        more data is needed. Discards garbage preceding or inside frames."""
        while True:
            i_magic = self.buffer.find(EISCP_MAGIC)
            if i_magic < 0:
                # keep a possible partial magic at the end
                n_discard = max(len(self.buffer) - (len(EISCP_MAGIC) - 1), 0)
                if n_discard > 0:
                    logger.debug(f"Discarding {n_discard} bytes of non-eISCP data")
                    del self.buffer[:n_discard]
                return None
            if i_magic > 0:
                logger.debug(f"Discarding {i_magic} bytes before eISCP frame header")
                del self.buffer[:i_magic]
            header = parse_eiscp_header(bytes(self.buffer[:EISCP_HEADER_SIZE]))
            if header is None:
                return None
            header_size, data_size = header
            frame_size = header_size + data_size
            if header_size < EISCP_HEADER_SIZE or frame_size > MAX_FRAME_LENGTH:
                logger.debug(f"Invalid eISCP header (header_size={header_size}, data_size={data_size}); resynchronizing")
                del self.buffer[:len(EISCP_MAGIC)]
                continue
            if len(self.buffer) < frame_size:
                return None
            frame = bytes(self.buffer[:frame_size])
            del self.buffer[:frame_size]
            return frame

    async def read(self) -> Optional[bytes]:
        """
        Read the next complete eISCP frame (header included) from the stream.

        Returns:
            The next frame, or None if the stream has ended. A partial frame
            at end of stream is dropped.
        """
        while True:
            if self.is_closed:
                raise TransportError("FrameStream is closed")
            frame = self._next_buffered_frame()
            if frame is not None:
                return frame
            if self.end_of_stream_reached:
                if len(self.buffer) > 0:
                    logger.debug(f"Dropping {len(self.buffer)} bytes of partial frame at end of stream")
                    self.buffer.clear()
                return None
            more_data = await self.stream_reader.read(READ_CHUNK_SIZE)
            if len(more_data) == 0:
                self.end_of_stream_reached = True
            else:
                self.buffer.extend(more_data)

    def __aiter__(self) -> AsyncIterator[bytes]:
        return self._iter_frames()

    async def _iter_frames(self) -> AsyncIterator[bytes]:
        while True:
            frame = await self.read()
            if frame is None:
                break
            yield frame

    async def write(self, frame: bytes) -> None:
        """
        Writes an encoded frame to the stream. May return before the frame has been
        fully written; call flush() to wait for the write buffer to drain.
        """
        if self.is_closed:
            raise TransportError("FrameStream is closed")
        self.stream_writer.write(frame)

    async def flush(self) -> None:
        """Waits until the underlying write buffer has drained."""
        await self.stream_writer.drain()

    def close(self) -> None:
        """
        Close the stream. Does not wait for the socket to be completely closed.

        Repeated calls to this method are allowed and will have no effect.
        """
        if not self.close_result.done():
            self.close_result.set_result(None)
            self.stream_writer.close()

    async def wait_closed(self) -> None:
        """
        Wait for the socket to be completely closed. Does not initiate
        closing.
        """
        await self.close_result
        try:
            await self.stream_writer.wait_closed()
        except (ConnectionError, OSError) as e:
            logger.debug(f"Error while waiting for socket to close: {e}")
