"""Order-preserving buffer shared by several byte channels.

Chunks written into any of the channel inputs land in one queue, tagged with
their channel. Flushing replays them to the channel outputs in the order they
arrived across all channels: if channel A gets a chunk, then channel B, then
A again, the outputs receive them in that same order.

Example:
    transform = MultiBufferedTransform(["stdout", "stderr"])
    out, err = transform.channels
    out.output.pipe(stdout_sink)
    err.output.pipe(stderr_sink)

    out.input.write(b"hello")
    err.input.write(b"world")
    transform.flush()             # delivers hello, then world
    transform.flush(only=err)     # delivers stderr chunks, drops the rest
"""

from __future__ import annotations

import logging
from collections import deque
from dataclasses import dataclass, field
from typing import Deque, Iterable, Optional, Tuple

from .sinks import ByteSink

__all__ = [
    "BufferedChannel",
    "BufferedOutput",
    "MultiBufferedTransform",
]

logger = logging.getLogger(__name__)


class BufferedOutput:
    """Output side of a channel; flushed chunks are pushed downstream."""

    def __init__(self, name: str) -> None:
        self.name = name
        self.ended = False
        self._downstream: Optional[ByteSink] = None

    def pipe(self, sink: ByteSink) -> ByteSink:
        """Attach the sink receiving this output's chunks."""
        self._downstream = sink
        return sink

    def push(self, chunk: bytes) -> None:
        if self.ended or self._downstream is None:
            return
        self._downstream.write(chunk)

    def end(self) -> None:
        if self.ended:
            return
        self.ended = True
        if self._downstream is not None:
            self._downstream.end()


class _ChannelInput:
    """Input side of a channel; every chunk goes to the shared buffer."""

    def __init__(self, transform: MultiBufferedTransform, channel: BufferedChannel) -> None:
        self._transform = transform
        self._channel = channel

    def write(self, chunk: bytes) -> None:
        if self._channel.input_ended:
            logger.debug(f"Dropping write to ended channel '{self._channel.name}'")
            return
        self._transform._append(chunk, self._channel)

    def end(self) -> None:
        self._channel.input_ended = True
        if self._transform.end:
            self._channel.output.end()


@dataclass(eq=False)
class BufferedChannel:
    """One registered channel: an input paired with its output."""

    name: str
    output: BufferedOutput
    input: ByteSink = field(init=False)
    input_ended: bool = False


class MultiBufferedTransform:
    """Hold chunks from N channels and flush them in global arrival order.

    Args:
        names: Channel names, in registration order
        end: End a channel's output once its input ends. Pass False to keep
            outputs open so a later ``flush()`` can still deliver.
    """

    def __init__(self, names: Iterable[str], *, end: bool = True) -> None:
        self.end = end
        self._buffer: Deque[Tuple[bytes, BufferedChannel]] = deque()
        self.channels: list[BufferedChannel] = []
        for name in names:
            channel = BufferedChannel(name=name, output=BufferedOutput(name))
            channel.input = _ChannelInput(self, channel)
            self.channels.append(channel)

    @property
    def outputs(self) -> list[BufferedOutput]:
        return [channel.output for channel in self.channels]

    @property
    def buffered_count(self) -> int:
        return len(self._buffer)

    def channel(self, name: str) -> BufferedChannel:
        for channel in self.channels:
            if channel.name == name:
                return channel
        raise KeyError(name)

    def _append(self, chunk: bytes, channel: BufferedChannel) -> None:
        self._buffer.append((bytes(chunk), channel))

    def flush(self, only: Optional[BufferedChannel] = None) -> None:
        """Deliver buffered chunks to their outputs in arrival order.

        Args:
            only: Deliver this channel's chunks and drop everyone else's
        """
        pending = self._buffer
        self._buffer = deque()
        delivered = 0
        for chunk, channel in pending:
            if only is not None and channel is not only:
                continue
            channel.output.push(chunk)
            delivered += 1
        logger.debug(
            f"Flushed {delivered}/{len(pending)} chunk(s)"
            + (f" (only={only.name})" if only is not None else "")
        )

    def clear(self) -> None:
        """Drop every buffered chunk without delivering it."""
        self._buffer.clear()

    def destroy(self) -> None:
        """End all outputs. Later flushes have no observable effect."""
        for channel in self.channels:
            channel.output.end()
