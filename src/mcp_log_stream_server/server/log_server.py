"""MCP server entrypoint (stdio transport).

This module wires together:
- Tools: the session control surface (start, live toggle, reconnect, filter, export)
- Resources: help text, effective configuration, session snapshots
- Prompts: reusable workflows for investigating migration logs

Run locally (stdio):
    python -m mcp_log_stream_server.server.log_server
"""

from __future__ import annotations

import logging
import os
import sys
from collections.abc import AsyncIterator, Sequence
from contextlib import asynccontextmanager
from typing import Any

import aiohttp
from mcp.server.fastmcp import FastMCP

from mcp_log_stream_server.core.config import resolve_stream_config
from mcp_log_stream_server.core.transport import KubeApiTransport
from mcp_log_stream_server.prompts.registry import register_prompts
from mcp_log_stream_server.resources.registry import register_resources
from mcp_log_stream_server.tools.sessions import (
    SessionRegistry,
    download_session_logs_impl,
    export_session_text_impl,
    read_session_lines_impl,
    reconnect_session_impl,
    set_filter_impl,
    set_live_impl,
    start_log_session_impl,
)

LOGGER = logging.getLogger(__name__)


def _configure_logging() -> None:
    """Configure a reasonable default logging setup.

    The MCP client typically captures stderr; stdout belongs to the stdio transport.
    """
    level_name = os.getenv("LOG_STREAM_LOG_LEVEL", "INFO").upper()
    level = getattr(logging, level_name, logging.INFO)
    logging.basicConfig(
        stream=sys.stderr,
        level=level,
        format="%(asctime)s %(levelname)s %(name)s: %(message)s",
    )


def _make_transport() -> KubeApiTransport:
    """Build the HTTP transport lazily, inside the running event loop."""
    cfg = resolve_stream_config()
    LOGGER.debug("Using Kubernetes API at %s", cfg.api_base)
    return KubeApiTransport(aiohttp.ClientSession(), api_base=cfg.api_base, token=cfg.api_token)


@asynccontextmanager
async def _lifespan(server: FastMCP) -> AsyncIterator[None]:
    """Abort every session and close the HTTP session when the server stops."""
    try:
        yield
    finally:
        await registry.shutdown()


mcp = FastMCP("log-stream", json_response=True, lifespan=_lifespan)
registry = SessionRegistry(_make_transport)

register_resources(mcp, registry)
register_prompts(mcp)


@mcp.tool()
async def start_log_session(
    session_id: str,
    source: str = "pod",
    namespace: str | None = None,
    pod_name: str | None = None,
    label_selector: str | None = None,
    deployment_name: str | None = None,
    migration_name: str | None = None,
) -> dict[str, Any]:
    """Open (or retarget) a live log session.

    Parameters
    ----------
    session_id:
        Caller-chosen name; reusing it retargets and resets the session.
    source:
        "pod" for one migration pod (manual retry on failure), "controller" for
        every migration-controller pod, or "selector" for any label selector
        (both fan out and retry automatically every few seconds).
    namespace/pod_name:
        Required for source="pod".
    label_selector/deployment_name:
        Used for source="selector"; "controller" has defaults.
    migration_name:
        Optional; used to name downloads and pick matching debug logs.
    """
    return await start_log_session_impl(
        registry,
        session_id=session_id,
        source=source,
        namespace=namespace,
        pod_name=pod_name,
        label_selector=label_selector,
        deployment_name=deployment_name,
        migration_name=migration_name,
    )


@mcp.tool()
async def set_live(session_id: str, live: bool) -> dict[str, Any]:
    """Pause (live=false) or resume streaming. Pausing keeps collected lines."""
    return await set_live_impl(registry, session_id=session_id, live=live)


@mcp.tool()
async def reconnect_session(session_id: str) -> dict[str, Any]:
    """Drop collected lines and reconnect from scratch (replays recent history)."""
    return await reconnect_session_impl(registry, session_id=session_id)


@mcp.tool()
def set_filter(session_id: str, level: str = "ALL", query: str = "") -> dict[str, Any]:
    """Set the level filter (ALL, ERROR, WARN, INFO, DEBUG, TRACE, SUCCESS) and search.

    Wrap the query in double quotes for an exact, case-insensitive substring
    match; otherwise matching is fuzzy.
    """
    return set_filter_impl(registry, session_id=session_id, level=level, query=query)


@mcp.tool()
def read_session_lines(
    session_id: str,
    after_seq: int = 0,
    limit: int | None = None,
    session_key: int | None = None,
) -> dict[str, Any]:
    """Read filtered lines newer than after_seq (use next_seq to page forward).

    Pass back the session_key from the previous page; if the session was reset
    since, paging restarts from the first line and the result has reset=true.
    """
    return read_session_lines_impl(
        registry,
        session_id=session_id,
        after_seq=after_seq,
        limit=limit,
        session_key=session_key,
    )


@mcp.tool()
def export_session_text(session_id: str) -> str:
    """Return the filtered view as plain text (the copy action)."""
    return export_session_text_impl(registry, session_id=session_id)


@mcp.tool()
async def download_session_logs(
    session_id: str,
    directory: str,
    include_debug_logs: bool = True,
) -> dict[str, Any]:
    """Write the filtered view to a text file in directory.

    Pod sessions also append offline debug logs when they can be fetched.
    """
    return await download_session_logs_impl(
        registry,
        session_id=session_id,
        directory=directory,
        include_debug_logs=include_debug_logs,
    )


@mcp.tool()
async def stop_log_session(session_id: str) -> dict[str, Any]:
    """Abort all streams of a session and forget it."""
    await registry.close(session_id)
    return {"session_id": session_id, "closed": True}


@mcp.tool()
def list_log_sessions() -> dict[str, Any]:
    """List active sessions with their state."""
    return {
        "sessions": [
            {"session_id": sid, **registry.get(sid).snapshot().model_dump(mode="json")}
            for sid in registry.ids()
        ]
    }


def main(argv: Sequence[str] | None = None) -> None:
    """Start the MCP server over stdio."""
    _configure_logging()
    LOGGER.debug("Starting MCP server (transport=stdio)")
    _ = argv or sys.argv[1:]
    mcp.run(transport="stdio")


if __name__ == "__main__":
    main()
