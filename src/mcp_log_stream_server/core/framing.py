"""Incremental line framing over chunked byte streams.

A log endpoint delivers newline-delimited text in arbitrary chunks: a chunk
may end mid-line or even mid-character. ``LineFramer`` keeps the unterminated
tail between chunks and only emits complete lines; the tail is flushed once
the stream ends.
"""

from __future__ import annotations

import codecs
from collections.abc import AsyncIterable, AsyncIterator


class LineFramer:
    """Split a byte stream into complete text lines."""

    def __init__(self, encoding: str = "utf-8", errors: str = "replace") -> None:
        self._encoding = encoding
        self._errors = errors
        self._decoder = codecs.getincrementaldecoder(encoding)(errors=errors)
        self._buffer = ""

    @property
    def tail(self) -> str:
        """Partial line retained until the next chunk or end-of-stream."""
        return self._buffer

    def feed(self, chunk: bytes) -> list[str]:
        """Consume one chunk and return the lines it completed."""
        self._buffer += self._decoder.decode(chunk)
        parts = self._buffer.split("\n")
        self._buffer = parts.pop()
        return [p for p in parts if p.strip()]

    def flush(self) -> list[str]:
        """Emit the trailing fragment at end-of-stream and reset."""
        self._buffer += self._decoder.decode(b"", final=True)
        remaining = self._buffer.strip()
        self.reset()
        if not remaining:
            return []
        return [remaining]

    def reset(self) -> None:
        self._decoder = codecs.getincrementaldecoder(self._encoding)(errors=self._errors)
        self._buffer = ""


async def iter_lines(
    chunks: AsyncIterable[bytes],
    *,
    framer: LineFramer | None = None,
) -> AsyncIterator[str]:
    """Yield complete lines from an async chunk iterator.

    Cancellation passes through untouched; any other transport failure is
    raised to the caller. The tail is flushed only on a clean end-of-stream.
    """
    framer = framer or LineFramer()
    async for chunk in chunks:
        if not chunk:
            continue
        for line in framer.feed(chunk):
            yield line
    for line in framer.flush():
        yield line
