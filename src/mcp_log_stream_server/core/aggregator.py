"""Fan-in of several pod log streams into one sink.

Each source gets its own reader task. Readers run independently: a failure
on one source is logged and recorded while the others keep streaming.
Appends are serialized by the event loop, so whichever chunk is ready first
is appended first; there is no ordering contract between sources beyond
per-source order.
"""

from __future__ import annotations

import asyncio
import logging
from collections.abc import AsyncIterable, AsyncIterator, Callable
from dataclasses import dataclass, field

from .framing import LineFramer, iter_lines
from .models import Source
from .transport import LogTransport

logger = logging.getLogger(__name__)

LineSink = Callable[[str, str, str | None], object]


@dataclass(slots=True)
class AggregateResult:
    """Outcome once every reader has ended."""

    completed: list[str] = field(default_factory=list)
    failed: dict[str, str] = field(default_factory=dict)


class Aggregator:
    """Run one reader per source and route framed lines to ``sink``."""

    def __init__(
        self,
        transport: LogTransport,
        sources: list[Source],
        sink: LineSink,
        *,
        tail_lines: int | None,
        limit_bytes: int,
        follow: bool = True,
        tag_sources: bool = True,
        on_first_chunk: Callable[[Source], object] | None = None,
        on_source_error: Callable[[Source, str], object] | None = None,
    ) -> None:
        self._transport = transport
        self._sources = list(sources)
        self._sink = sink
        self._tail_lines = tail_lines
        self._limit_bytes = limit_bytes
        self._follow = follow
        self._tag_sources = tag_sources
        self._on_first_chunk = on_first_chunk
        self._on_source_error = on_source_error
        self.framers: dict[str, LineFramer] = {}

    async def _watch(self, source: Source, chunks: AsyncIterable[bytes]) -> AsyncIterator[bytes]:
        first = True
        async for chunk in chunks:
            if first:
                first = False
                if self._on_first_chunk is not None:
                    self._on_first_chunk(source)
            yield chunk

    async def _read(self, source: Source, result: AggregateResult) -> None:
        framer = LineFramer()
        self.framers[source.id] = framer
        label = source.id if self._tag_sources else None
        chunks = self._transport.stream_logs(
            source,
            follow=self._follow,
            tail_lines=self._tail_lines,
            limit_bytes=self._limit_bytes,
        )
        try:
            async for line in iter_lines(self._watch(source, chunks), framer=framer):
                self._sink(source.id, line, label)
        except Exception as exc:
            message = str(exc) or f"Failed to read logs from pod {source.name}"
            logger.warning("Log stream for %s/%s failed: %s", source.namespace, source.name, message)
            result.failed[source.id] = message
            if self._on_source_error is not None:
                self._on_source_error(source, message)
            return
        logger.debug("Log stream for %s/%s ended", source.namespace, source.name)
        result.completed.append(source.id)

    async def run(self) -> AggregateResult:
        """Drain all sources until each ends; cancelling aborts every reader."""
        result = AggregateResult()
        tasks = [
            asyncio.create_task(self._read(source, result), name=f"log-reader:{source.id}")
            for source in self._sources
        ]
        try:
            await asyncio.gather(*tasks)
        finally:
            for task in tasks:
                task.cancel()
            await asyncio.gather(*tasks, return_exceptions=True)
        return result
