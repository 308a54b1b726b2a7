"""Length-prefixed framing for negotiation tokens and protected messages.

Wire format (bit-exact, shared by every compliant peer):

* Each frame is a 4-byte unsigned **big-endian** length ``N`` followed by
  exactly ``N`` bytes of opaque payload.
* ``N`` MUST NOT exceed the configured maximum; a larger header is a
  protocol violation and the body is never read.
* The payload is never interpreted here.  During negotiation it is a
  mechanism token; afterwards it is a protected message.

This module provides:

* :func:`read_frame` / :func:`write_frame` -- the primitive operations.
* **FrameReader** / **FrameWriter** -- size-limited wrappers around an
  asyncio stream pair.
* **FramedStream** -- a bidirectional transport owning both halves of
  one connection.

Callers never observe a partial frame: either the whole frame is
returned or an exception is raised.
"""
from __future__ import annotations

import asyncio
import contextlib
import logging
import struct

from gss_exchange.core.errors import (
    FrameTooLarge,
    FrameTruncated,
    StreamError,
    StreamTimeout,
)

logger = logging.getLogger(__name__)

# ---------------------------------------------------------------------------
# Constants
# ---------------------------------------------------------------------------

LENGTH_PREFIX = struct.Struct(">I")
"""4-byte unsigned big-endian frame length."""

DEFAULT_MAX_FRAME_SIZE: int = 1_048_576  # 1 MiB


# ---------------------------------------------------------------------------
# Primitives
# ---------------------------------------------------------------------------


async def read_frame(
    reader: asyncio.StreamReader,
    *,
    max_frame_size: int = DEFAULT_MAX_FRAME_SIZE,
) -> bytes:
    """Read one frame and return its payload.

    Raises
    ------
    FrameTruncated
        If the stream ends inside the header or the body.
    FrameTooLarge
        If the declared length exceeds *max_frame_size*.  Nothing beyond
        the header is read.
    StreamError
        If the underlying connection fails.
    """
    header = await _read_exactly(reader, LENGTH_PREFIX.size, "header")
    (length,) = LENGTH_PREFIX.unpack(header)

    if length > max_frame_size:
        raise FrameTooLarge(
            details={"length": length, "max_frame_size": max_frame_size},
        )
    if length == 0:
        return b""
    return await _read_exactly(reader, length, "body")


async def write_frame(
    writer: asyncio.StreamWriter,
    data: bytes,
    *,
    max_frame_size: int = DEFAULT_MAX_FRAME_SIZE,
) -> None:
    """Write *data* as one frame and drain the writer.

    Raises
    ------
    FrameTooLarge
        If *data* is longer than *max_frame_size*; nothing is written.
    StreamError
        If the writer is closed or the connection fails mid-write.
    """
    if len(data) > max_frame_size:
        raise FrameTooLarge(
            details={"length": len(data), "max_frame_size": max_frame_size},
        )
    if writer.is_closing():
        raise StreamError("Stream is closed")

    try:
        writer.write(LENGTH_PREFIX.pack(len(data)) + data)
        await writer.drain()
    except OSError as exc:
        raise StreamError(f"Frame write failed: {exc}") from exc


async def _read_exactly(reader: asyncio.StreamReader, n: int, part: str) -> bytes:
    try:
        return await reader.readexactly(n)
    except asyncio.IncompleteReadError as exc:
        raise FrameTruncated(
            details={"part": part, "expected": n, "received": len(exc.partial)},
        ) from exc
    except OSError as exc:
        raise StreamError(f"Frame read failed: {exc}") from exc


# ---------------------------------------------------------------------------
# FrameReader / FrameWriter
# ---------------------------------------------------------------------------


class FrameReader:
    """Reads frames from an async stream.

    Parameters
    ----------
    reader:
        An :class:`asyncio.StreamReader`.
    max_frame_size:
        Largest accepted frame body in bytes.
    read_timeout:
        Seconds to wait for a whole frame, or ``None`` to wait forever.
    """

    def __init__(
        self,
        reader: asyncio.StreamReader,
        *,
        max_frame_size: int = DEFAULT_MAX_FRAME_SIZE,
        read_timeout: float | None = None,
    ) -> None:
        self._reader = reader
        self._max_frame_size = max_frame_size
        self._read_timeout = read_timeout

    async def read(self) -> bytes:
        """Read one frame.

        Raises :class:`StreamTimeout` if *read_timeout* elapses first.
        """
        if self._read_timeout is None:
            return await read_frame(self._reader, max_frame_size=self._max_frame_size)
        try:
            return await asyncio.wait_for(
                read_frame(self._reader, max_frame_size=self._max_frame_size),
                timeout=self._read_timeout,
            )
        except TimeoutError as exc:
            raise StreamTimeout(
                details={"timeout": self._read_timeout},
            ) from exc


class FrameWriter:
    """Writes frames to an async stream."""

    def __init__(
        self,
        writer: asyncio.StreamWriter,
        *,
        max_frame_size: int = DEFAULT_MAX_FRAME_SIZE,
    ) -> None:
        self._writer = writer
        self._max_frame_size = max_frame_size

    async def write(self, data: bytes) -> None:
        await write_frame(self._writer, data, max_frame_size=self._max_frame_size)


# ---------------------------------------------------------------------------
# FramedStream
# ---------------------------------------------------------------------------


class FramedStream:
    """Bidirectional framed transport over one connection.

    The stream is exclusively owned by the session that created it and
    is closed exactly once, by :meth:`close`.

    Parameters
    ----------
    reader, writer:
        The two halves returned by :func:`asyncio.open_connection` or
        handed to an :func:`asyncio.start_server` callback.
    max_frame_size:
        Largest frame body accepted or emitted.
    read_timeout:
        Per-read bound in seconds, or ``None``.
    """

    def __init__(
        self,
        reader: asyncio.StreamReader,
        writer: asyncio.StreamWriter,
        *,
        max_frame_size: int = DEFAULT_MAX_FRAME_SIZE,
        read_timeout: float | None = None,
    ) -> None:
        self._frame_reader = FrameReader(
            reader,
            max_frame_size=max_frame_size,
            read_timeout=read_timeout,
        )
        self._frame_writer = FrameWriter(writer, max_frame_size=max_frame_size)
        self._writer = writer
        self._closed = False

    @property
    def closed(self) -> bool:
        return self._closed

    @property
    def peer_address(self) -> str:
        peer = self._writer.get_extra_info("peername")
        if isinstance(peer, tuple) and len(peer) >= 2:
            return f"{peer[0]}:{peer[1]}"
        return str(peer)

    async def send(self, data: bytes) -> None:
        """Send one frame."""
        if self._closed:
            raise StreamError("Stream is closed")
        logger.debug("Sending frame of %d bytes", len(data))
        await self._frame_writer.write(data)

    async def receive(self) -> bytes:
        """Receive one frame."""
        if self._closed:
            raise StreamError("Stream is closed")
        data = await self._frame_reader.read()
        logger.debug("Received frame of %d bytes", len(data))
        return data

    async def close(self) -> None:
        """Close the connection.  Subsequent calls do nothing."""
        if self._closed:
            return
        self._closed = True
        self._writer.close()
        with contextlib.suppress(OSError):
            await self._writer.wait_closed()
