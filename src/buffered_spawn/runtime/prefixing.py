"""Prefix injection before every line of a byte stream.

The prefixer keeps a single bit of state between chunks: whether a prefix is
owed before the next emitted character. A line split across two chunks gets
its prefix with the first chunk only.
"""

from __future__ import annotations

from .sinks import ByteSink

__all__ = [
    "LinePrefixer",
    "PrefixingSink",
]

LINE_SEPARATOR = "\n"


class LinePrefixer:
    """Stateful transform adding ``prefix`` before every new line of text.

    Example:
        prefixer = LinePrefixer("[P] ")
        prefixer.process(b"Line1\\nPartia")   # b"[P] Line1\\n[P] Partia"
        prefixer.process(b"lLine\\n")         # b"lLine\\n"
    """

    def __init__(self, prefix: str, encoding: str = "utf-8") -> None:
        self.prefix = prefix
        self.encoding = encoding
        self.needs_prefix = True

    def process(self, chunk: bytes) -> bytes:
        text = chunk.decode(self.encoding, errors="replace")
        lines = text.split(LINE_SEPARATOR)
        remaining = lines.pop()
        parts: list[str] = []
        for line in lines:
            if self.needs_prefix:
                parts.append(self.prefix)
                self.needs_prefix = False
            parts.append(line + LINE_SEPARATOR)
            self.needs_prefix = True
        if remaining:
            if self.needs_prefix:
                parts.append(self.prefix)
                self.needs_prefix = False
            parts.append(remaining)
        return "".join(parts).encode(self.encoding)


class PrefixingSink:
    """Pipeline stage running chunks through a LinePrefixer.

    Args:
        prefix: Text injected before every line
        downstream: Sink receiving the prefixed bytes
        encoding: Text encoding of the stream
    """

    def __init__(self, prefix: str, downstream: ByteSink, encoding: str = "utf-8") -> None:
        self.prefixer = LinePrefixer(prefix, encoding)
        self.downstream = downstream

    def write(self, chunk: bytes) -> None:
        output = self.prefixer.process(chunk)
        if output:
            self.downstream.write(output)

    def end(self) -> None:
        self.downstream.end()
