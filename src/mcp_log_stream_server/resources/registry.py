"""MCP resource registry.

Resources are addressable by URI and can be fetched by the MCP client on demand.
"""

from __future__ import annotations

from dataclasses import asdict
from typing import TYPE_CHECKING, Any

from mcp.server.fastmcp import FastMCP

from mcp_log_stream_server.core.models import LevelFilter
from mcp_log_stream_server.core.search import FUZZY_MIN_SCORE

if TYPE_CHECKING:
    from mcp_log_stream_server.tools.sessions import SessionRegistry


def register_resources(mcp: FastMCP, registry: SessionRegistry) -> None:
    """Register resource handlers on the MCP server."""

    @mcp.resource("app://log-stream/help")
    def help_resource() -> str:
        """Return a short list of available resource URIs."""
        levels = ", ".join(lv.value for lv in LevelFilter)
        return (
            "Resources:\n"
            "- app://log-stream/help\n"
            "- app://log-stream/config\n"
            "- app://log-stream/sessions/{session_id} (state + counters)\n"
            "- app://log-stream/sessions/{session_id}/text (filtered view)\n"
            f"\nLevel filters: {levels}\n"
            'Search: fuzzy by default; wrap in double quotes ("...") for exact match.\n'
        )

    @mcp.resource("app://log-stream/config")
    def config_resource() -> dict[str, Any]:
        """Return the effective streaming configuration (token omitted)."""
        cfg = asdict(registry.config)
        cfg.pop("api_token", None)
        cfg["fuzzy_min_score"] = FUZZY_MIN_SCORE
        return cfg

    @mcp.resource("app://log-stream/sessions/{session_id}")
    def session_resource(session_id: str) -> dict[str, Any]:
        """Return a snapshot of one session."""
        return registry.get(session_id).snapshot().model_dump(mode="json")

    @mcp.resource("app://log-stream/sessions/{session_id}/text")
    def session_text(session_id: str) -> str:
        """Return the filtered view of one session as text."""
        return registry.get(session_id).export_text()
