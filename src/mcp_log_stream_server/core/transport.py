"""HTTP transport for the Kubernetes log and listing endpoints.

The core never authenticates on its own: callers hand in an already
configured ``aiohttp.ClientSession`` (or a bearer token) and the transport
only shapes requests and surfaces failures.
"""

from __future__ import annotations

import logging
from collections.abc import AsyncIterator
from typing import Any, Protocol

import aiohttp
from pydantic import BaseModel, Field

from .models import Source

logger = logging.getLogger(__name__)

KUBERNETES_API_BASE_PATH = "/api/v1"
READ_CHUNK_BYTES = 64 * 1024


class TransportError(RuntimeError):
    """A stream or request failed for a reason other than cancellation."""


class DiscoveryError(RuntimeError):
    """Source discovery returned nothing usable."""


class _PodMetadata(BaseModel):
    name: str
    namespace: str


class _Pod(BaseModel):
    metadata: _PodMetadata


class PodList(BaseModel):
    items: list[_Pod] = Field(default_factory=list)


class LogTransport(Protocol):
    """Boundary used by readers, locators and the debug-log fallback."""

    def stream_logs(
        self,
        source: Source,
        *,
        follow: bool,
        tail_lines: int | None,
        limit_bytes: int,
    ) -> AsyncIterator[bytes]:
        """Yield raw chunks of a pod's log until end-of-stream."""
        ...

    async def list_pods(self, namespace: str, label_selector: str) -> list[Source]:
        """List pods matching a label selector."""
        ...

    async def fetch_text(self, path: str) -> str:
        """GET a path and return its body as text."""
        ...

    async def fetch_json(self, path: str) -> Any:
        """GET a path and return its decoded JSON body."""
        ...

    async def close(self) -> None:
        """Release connections held by the transport."""
        ...


def log_query_params(*, follow: bool, tail_lines: int | None, limit_bytes: int) -> dict[str, str]:
    """Query parameters for a log request; ``tailLines`` only when replaying history."""
    params = {"follow": "true" if follow else "false"}
    if tail_lines is not None:
        params["tailLines"] = str(tail_lines)
    params["limitBytes"] = str(limit_bytes)
    return params


class KubeApiTransport:
    """``LogTransport`` over the Kubernetes REST API using aiohttp."""

    def __init__(
        self,
        session: aiohttp.ClientSession,
        *,
        api_base: str = "",
        token: str | None = None,
    ) -> None:
        self._session = session
        self._api_base = api_base.rstrip("/")
        self._headers = {"Content-Type": "application/json;charset=UTF-8"}
        if token:
            self._headers["Authorization"] = f"Bearer {token}"

    def _url(self, path: str) -> str:
        return f"{self._api_base}{path}"

    async def stream_logs(
        self,
        source: Source,
        *,
        follow: bool,
        tail_lines: int | None,
        limit_bytes: int,
    ) -> AsyncIterator[bytes]:
        params = log_query_params(follow=follow, tail_lines=tail_lines, limit_bytes=limit_bytes)
        # No total timeout: a followed stream stays open until the pod or the caller ends it.
        timeout = aiohttp.ClientTimeout(total=None, sock_read=None)
        logger.debug("Opening log stream for %s/%s params=%s", source.namespace, source.name, params)
        try:
            async with self._session.get(
                self._url(source.endpoint),
                params=params,
                headers=self._headers,
                timeout=timeout,
            ) as response:
                if response.status >= 400:
                    raise TransportError(
                        f"Failed to stream logs from pod {source.name}: "
                        f"HTTP {response.status}: {response.reason}"
                    )
                async for chunk in response.content.iter_chunked(READ_CHUNK_BYTES):
                    yield chunk
        except aiohttp.ClientError as exc:
            raise TransportError(f"Failed to stream logs from pod {source.name}: {exc}") from exc

    async def list_pods(self, namespace: str, label_selector: str) -> list[Source]:
        path = f"{KUBERNETES_API_BASE_PATH}/namespaces/{namespace}/pods"
        try:
            async with self._session.get(
                self._url(path),
                params={"labelSelector": label_selector},
                headers=self._headers,
            ) as response:
                if response.status >= 400:
                    raise DiscoveryError(
                        f"Failed to fetch pods: HTTP {response.status}: {response.reason}"
                    )
                payload = await response.json()
        except aiohttp.ClientError as exc:
            raise DiscoveryError(f"Failed to fetch pods: {exc}") from exc

        pods = PodList.model_validate(payload)
        return [Source(namespace=p.metadata.namespace, name=p.metadata.name) for p in pods.items]

    async def fetch_text(self, path: str) -> str:
        try:
            async with self._session.get(self._url(path), headers=self._headers) as response:
                if response.status >= 400:
                    raise TransportError(f"GET {path}: HTTP {response.status}: {response.reason}")
                return await response.text(errors="replace")
        except aiohttp.ClientError as exc:
            raise TransportError(f"GET {path}: {exc}") from exc

    async def fetch_json(self, path: str) -> Any:
        try:
            async with self._session.get(self._url(path), headers=self._headers) as response:
                if response.status >= 400:
                    raise TransportError(f"GET {path}: HTTP {response.status}: {response.reason}")
                return await response.json(content_type=None)
        except aiohttp.ClientError as exc:
            raise TransportError(f"GET {path}: {exc}") from exc

    async def close(self) -> None:
        if not self._session.closed:
            await self._session.close()
