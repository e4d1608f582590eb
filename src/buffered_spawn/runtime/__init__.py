"""Runtime module for child process spawning and output pipelines.

This module provides the order-preserving multi-channel buffer, the line
prefixing stage and the process lifecycle coordinator that wires them
together.
"""

from __future__ import annotations

from .multi_buffer import BufferedChannel, BufferedOutput, MultiBufferedTransform
from .prefixing import LinePrefixer, PrefixingSink
from .sinks import ByteSink, CollectingSink, StreamSink, as_sink
from .spawn import SpawnHandle, spawn

__all__ = [
    "BufferedChannel",
    "BufferedOutput",
    "ByteSink",
    "CollectingSink",
    "LinePrefixer",
    "MultiBufferedTransform",
    "PrefixingSink",
    "SpawnHandle",
    "StreamSink",
    "as_sink",
    "spawn",
]
