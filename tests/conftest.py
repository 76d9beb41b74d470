from __future__ import annotations

import asyncio
from collections.abc import AsyncIterator, Awaitable, Callable
from typing import Any

import pytest

from mcp_log_stream_server.core.models import Source
from mcp_log_stream_server.core.transport import TransportError

# Script item that keeps a stream open until the reader is cancelled.
HANG = object()


class FakeTransport:
    """In-memory ``LogTransport`` driven by per-pod chunk scripts.

    ``script(pod, attempt1, attempt2, ...)`` queues one chunk list per
    connect; the last attempt is reused once the queue runs dry. Items are
    bytes (yielded), exceptions (raised) or ``HANG``.
    """

    def __init__(self) -> None:
        self.streams: dict[str, list[list[Any]]] = {}
        self.pods: dict[tuple[str, str], list[Source] | Exception] = {}
        self.json: dict[str, Any] = {}
        self.texts: dict[str, str | Exception] = {}
        self.stream_calls: list[dict[str, Any]] = []
        self.list_calls: list[tuple[str, str]] = []
        self.closed = False

    def script(self, pod: str, *attempts: list[Any]) -> None:
        self.streams[pod] = [list(a) for a in attempts]

    def tail_lines_for(self, pod: str) -> list[int | None]:
        return [c["tail_lines"] for c in self.stream_calls if c["source"] == pod]

    async def stream_logs(
        self,
        source: Source,
        *,
        follow: bool,
        tail_lines: int | None,
        limit_bytes: int,
    ) -> AsyncIterator[bytes]:
        self.stream_calls.append(
            {
                "source": source.id,
                "follow": follow,
                "tail_lines": tail_lines,
                "limit_bytes": limit_bytes,
            }
        )
        attempts = self.streams.get(source.id) or [[]]
        items = attempts.pop(0) if len(attempts) > 1 else attempts[0]
        for item in items:
            await asyncio.sleep(0)
            if item is HANG:
                await asyncio.Event().wait()
            elif isinstance(item, BaseException):
                raise item
            else:
                yield item

    async def list_pods(self, namespace: str, label_selector: str) -> list[Source]:
        self.list_calls.append((namespace, label_selector))
        found = self.pods.get((namespace, label_selector), [])
        if isinstance(found, Exception):
            raise found
        return list(found)

    async def fetch_json(self, path: str) -> Any:
        if path not in self.json:
            raise TransportError(f"GET {path}: HTTP 404: Not Found")
        return self.json[path]

    async def close(self) -> None:
        self.closed = True

    async def fetch_text(self, path: str) -> str:
        if path not in self.texts:
            raise TransportError(f"GET {path}: HTTP 404: Not Found")
        value = self.texts[path]
        if isinstance(value, Exception):
            raise value
        return value


@pytest.fixture
def fake_transport() -> FakeTransport:
    return FakeTransport()


@pytest.fixture
def wait_until() -> Callable[..., Awaitable[None]]:
    async def _wait(predicate: Callable[[], bool], timeout: float = 1.0) -> None:
        async with asyncio.timeout(timeout):
            while not predicate():
                await asyncio.sleep(0.005)

    return _wait


@pytest.fixture
def hang() -> object:
    return HANG
