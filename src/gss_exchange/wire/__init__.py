"""gss-exchange wire subpackage -- length-prefixed framing over asyncio streams.

* **Primitives** -- :func:`read_frame` / :func:`write_frame`.
* **Transport** -- reader, writer and bidirectional
  :class:`FramedStream` (:mod:`~gss_exchange.wire.framing`).
"""
from __future__ import annotations

from gss_exchange.wire.framing import (
    DEFAULT_MAX_FRAME_SIZE,
    LENGTH_PREFIX,
    FramedStream,
    FrameReader,
    FrameWriter,
    read_frame,
    write_frame,
)

__all__ = [
    "DEFAULT_MAX_FRAME_SIZE",
    "LENGTH_PREFIX",
    "FramedStream",
    "FrameReader",
    "FrameWriter",
    "read_frame",
    "write_frame",
]
