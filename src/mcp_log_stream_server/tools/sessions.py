"""MCP tool implementations for log sessions.

Keep this layer thin: validate inputs, translate them into core calls, and
return JSON-serializable data structures.
"""

from __future__ import annotations

import logging
from collections.abc import Callable
from pathlib import Path
from typing import Any

from mcp_log_stream_server.core.config import StreamConfig, resolve_stream_config
from mcp_log_stream_server.core.export import (
    DebugLogFetcher,
    build_bundle,
    bundle_filename,
    collect_debug_logs,
    download_bundle,
    vm_display_name,
)
from mcp_log_stream_server.core.formatting import extract_log_level
from mcp_log_stream_server.core.models import FilterCriteria, LogLine, LogTarget
from mcp_log_stream_server.core.session import LogSession
from mcp_log_stream_server.core.transport import LogTransport

logger = logging.getLogger(__name__)

DEFAULT_READ_LIMIT = 200
HARD_READ_LIMIT = 5000

CONTROLLER_NAMESPACE = "migration-system"
CONTROLLER_DEPLOYMENT = "migration-controller-manager"
CONTROLLER_SELECTOR = "control-plane=controller-manager"


def debug_listing_path(namespace: str, pod_name: str, debug_dir: str) -> str:
    """Proxy path under which a pod exposes its offline log directory."""
    return f"/api/v1/namespaces/{namespace}/pods/{pod_name}/proxy{debug_dir.rstrip('/')}/"


class SessionRegistry:
    """Named log sessions owned by one server process."""

    def __init__(
        self,
        transport_factory: Callable[[], LogTransport],
        *,
        config: StreamConfig | None = None,
    ) -> None:
        self._transport_factory = transport_factory
        self._transport: LogTransport | None = None
        self._config = config
        self._sessions: dict[str, LogSession] = {}
        self._migrations: dict[str, str | None] = {}

    @property
    def config(self) -> StreamConfig:
        if self._config is None:
            self._config = resolve_stream_config()
        return self._config

    @property
    def transport(self) -> LogTransport:
        if self._transport is None:
            self._transport = self._transport_factory()
        return self._transport

    def get(self, session_id: str) -> LogSession:
        try:
            return self._sessions[session_id]
        except KeyError as e:
            known = ", ".join(sorted(self._sessions)) or "none"
            raise ValueError(f"Unknown session '{session_id}'. Active sessions: {known}.") from e

    def ids(self) -> list[str]:
        return sorted(self._sessions)

    async def open(
        self,
        session_id: str,
        target: LogTarget,
        *,
        migration_name: str | None = None,
    ) -> LogSession:
        """Create (or retarget) a session and enable it."""
        session = self._sessions.get(session_id)
        if session is None:
            session = LogSession(target, self.transport, config=self.config)
            self._sessions[session_id] = session
        else:
            await session.set_target(target)
        self._migrations[session_id] = migration_name
        await session.enable(True)
        return session

    async def close(self, session_id: str) -> None:
        session = self.get(session_id)
        await session.close()
        del self._sessions[session_id]
        self._migrations.pop(session_id, None)

    async def close_all(self) -> None:
        for session_id in list(self._sessions):
            await self.close(session_id)

    async def shutdown(self) -> None:
        """Close every session, then the shared transport."""
        await self.close_all()
        transport, self._transport = self._transport, None
        if transport is not None:
            await transport.close()

    def migration_name(self, session_id: str) -> str | None:
        return self._migrations.get(session_id)


def _resolve_target(
    *,
    source: str,
    namespace: str | None,
    pod_name: str | None,
    label_selector: str | None,
    deployment_name: str | None,
) -> LogTarget:
    kind = source.strip().lower()
    if kind == "pod":
        if not namespace or not pod_name:
            raise ValueError("source='pod' requires namespace and pod_name.")
        return LogTarget.pod(namespace, pod_name)
    if kind == "controller":
        return LogTarget.selector(
            namespace or CONTROLLER_NAMESPACE,
            label_selector or CONTROLLER_SELECTOR,
            name=deployment_name or CONTROLLER_DEPLOYMENT,
        )
    if kind == "selector":
        if not namespace or not label_selector:
            raise ValueError("source='selector' requires namespace and label_selector.")
        return LogTarget.selector(namespace, label_selector, name=deployment_name or "")
    raise ValueError(f"Unknown source '{source}'. Valid values: pod, controller, selector.")


def _line_to_dict(line: LogLine) -> dict[str, Any]:
    d: dict[str, Any] = {
        "seq": line.sequence,
        "source": line.source_id,
        "text": line.display,
        "received_at": line.received_at.isoformat(),
    }
    level = extract_log_level(line.text)
    if level is not None:
        d["level"] = level
    return d


def _source_kind(session: LogSession) -> str:
    return "controller" if session.target.fan_out else "pod"


async def start_log_session_impl(
    registry: SessionRegistry,
    *,
    session_id: str,
    source: str = "pod",
    namespace: str | None = None,
    pod_name: str | None = None,
    label_selector: str | None = None,
    deployment_name: str | None = None,
    migration_name: str | None = None,
) -> dict[str, Any]:
    """Implementation for the `start_log_session` MCP tool."""
    if not session_id.strip():
        raise ValueError("session_id must not be empty")
    target = _resolve_target(
        source=source,
        namespace=namespace,
        pod_name=pod_name,
        label_selector=label_selector,
        deployment_name=deployment_name,
    )
    session = await registry.open(session_id, target, migration_name=migration_name)
    return {"session_id": session_id, **session.snapshot().model_dump(mode="json")}


async def set_live_impl(registry: SessionRegistry, *, session_id: str, live: bool) -> dict[str, Any]:
    session = registry.get(session_id)
    await session.set_live(live)
    return session.snapshot().model_dump(mode="json")


async def reconnect_session_impl(registry: SessionRegistry, *, session_id: str) -> dict[str, Any]:
    session = registry.get(session_id)
    await session.reconnect()
    return session.snapshot().model_dump(mode="json")


def set_filter_impl(
    registry: SessionRegistry,
    *,
    session_id: str,
    level: str = "ALL",
    query: str = "",
) -> dict[str, Any]:
    session = registry.get(session_id)
    criteria = FilterCriteria.parse(level, query)
    session.set_filter(criteria)
    return {
        "level": criteria.level.value,
        "query": criteria.query,
        "exact": criteria.exact,
        "matching": len(session.view()),
        "buffered": len(session.buffer),
    }


def read_session_lines_impl(
    registry: SessionRegistry,
    *,
    session_id: str,
    after_seq: int = 0,
    limit: int | None = None,
    session_key: int | None = None,
) -> dict[str, Any]:
    """Return filtered lines newer than ``after_seq``, oldest first.

    Sequence numbers restart after every reset. A ``session_key`` that no
    longer matches the session means the cursor is stale and paging restarts
    from the beginning of the new buffer.
    """
    if limit is None:
        limit = DEFAULT_READ_LIMIT
    if limit <= 0:
        raise ValueError("limit must be > 0")
    limit = min(limit, HARD_READ_LIMIT)

    session = registry.get(session_id)
    reset = session_key is not None and session_key != session.session_key
    if reset:
        after_seq = 0
    lines = [line for line in session.view() if line.sequence > after_seq]
    page = lines[:limit]
    return {
        "session_key": session.session_key,
        "reset": reset,
        "state": session.state.value,
        "error": session.error,
        "count": len(page),
        "has_more": len(lines) > len(page),
        "next_seq": page[-1].sequence if page else after_seq,
        "lines": [_line_to_dict(line) for line in page],
    }


def export_session_text_impl(registry: SessionRegistry, *, session_id: str) -> str:
    return registry.get(session_id).export_text()


async def download_session_logs_impl(
    registry: SessionRegistry,
    *,
    session_id: str,
    directory: str,
    include_debug_logs: bool = True,
) -> dict[str, Any]:
    """Write the filtered view (plus debug logs for pod sessions) to a file."""
    session = registry.get(session_id)
    target = session.target
    kind = _source_kind(session)
    migration = registry.migration_name(session_id)

    fetcher = None
    if include_debug_logs and kind == "pod":
        base = debug_listing_path(target.namespace, target.name, registry.config.debug_log_dir)
        fetcher = DebugLogFetcher(registry.transport, base)
    debug_text, debug_failed = await collect_debug_logs(
        fetcher, name_filter=vm_display_name(None, migration)
    )

    bundle = build_bundle(
        session.view(),
        source_kind=kind,
        debug_text=debug_text,
        debug_failed=debug_failed,
        debug_dir=registry.config.debug_log_dir,
    )
    name = vm_display_name(None if kind != "pod" else target.name, migration)
    out_dir = Path(directory).expanduser()
    if not out_dir.is_dir():
        raise FileNotFoundError(f"Directory not found: {out_dir}")
    path = await download_bundle(out_dir / bundle_filename(name, kind), bundle)
    return {
        "path": str(path),
        "lines": len(session.view()),
        "debug_logs": bool(debug_text and debug_text.strip()),
        "debug_logs_failed": debug_failed,
    }
