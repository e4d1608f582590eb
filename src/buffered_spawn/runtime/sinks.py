"""Byte sinks used as pipeline stages.

Every stage of the output pipeline (buffer inputs and outputs, prefixing,
final destinations) accepts chunks through the same two calls:

- ``write(chunk)``: accept one chunk of bytes
- ``end()``: no more chunks will follow

Errors raised by a stage propagate to whoever wrote into it.
"""

from __future__ import annotations

import logging
from typing import IO, Any, Protocol, runtime_checkable

__all__ = [
    "ByteSink",
    "StreamSink",
    "CollectingSink",
    "as_sink",
]

logger = logging.getLogger(__name__)


@runtime_checkable
class ByteSink(Protocol):
    """A destination accepting byte chunks that can be ended independently."""

    def write(self, chunk: bytes) -> None: ...

    def end(self) -> None: ...


class StreamSink:
    """Sink writing into a binary file object.

    Ending the sink flushes the stream. The stream is only closed when the
    sink owns it, so the host's own stdout/stderr survive the child.

    Args:
        stream: Binary stream to write into
        owns_stream: Close the stream on ``end()``
    """

    def __init__(self, stream: IO[bytes], owns_stream: bool = False) -> None:
        self.stream = stream
        self.owns_stream = owns_stream
        self.ended = False

    def write(self, chunk: bytes) -> None:
        if self.ended:
            logger.debug(f"Dropping {len(chunk)} bytes written after end")
            return
        self.stream.write(chunk)
        self.stream.flush()

    def end(self) -> None:
        if self.ended:
            return
        self.ended = True
        if self.owns_stream:
            self.stream.close()
        else:
            self.stream.flush()


class CollectingSink:
    """Sink keeping every chunk in memory.

    Example:
        sink = CollectingSink()
        sink.write(b"hello")
        sink.write(b"world")
        assert sink.drain() == b"helloworld"
        assert sink.drain() == b""
    """

    def __init__(self) -> None:
        self.chunks: list[bytes] = []
        self.ended = False

    def write(self, chunk: bytes) -> None:
        self.chunks.append(bytes(chunk))

    def end(self) -> None:
        self.ended = True

    def getvalue(self) -> bytes:
        return b"".join(self.chunks)

    def drain(self) -> bytes:
        """Return everything collected so far and forget it."""
        data = self.getvalue()
        self.chunks.clear()
        return data


def as_sink(target: Any) -> ByteSink:
    """Wrap a file object into a sink, passing real sinks through.

    Text streams (``sys.stdout``) are written through their binary
    ``buffer``.
    """
    if isinstance(target, ByteSink):
        return target
    buffer = getattr(target, "buffer", None)
    if buffer is not None:
        return StreamSink(buffer)
    if hasattr(target, "write"):
        return StreamSink(target)
    raise TypeError(f"Expected a byte sink or a file object, got {type(target).__name__}")
