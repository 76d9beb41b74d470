"""MCP prompt registry.

Prompts are predefined conversation/workflow templates that the client can invoke explicitly.
"""

from __future__ import annotations

from typing import Any

from mcp.server.fastmcp import FastMCP


def register_prompts(mcp: FastMCP) -> None:
    """Register prompt templates on the MCP server."""

    @mcp.prompt()
    def investigate_migration_logs(
        namespace: str,
        pod_name: str,
        migration_name: str | None = None,
        level: str = "ERROR",
    ) -> list[dict[str, Any]]:
        """Build a prompt that tails a migration pod and explains failures."""
        session_id = f"investigate-{pod_name}"
        call_lines = [
            f"- session_id: {session_id}",
            '- source: "pod"',
            f"- namespace: {namespace}",
            f"- pod_name: {pod_name}",
        ]
        if migration_name:
            call_lines.append(f"- migration_name: {migration_name}")
        call_block = "\n".join(call_lines)
        return [
            {
                "role": "system",
                "content": (
                    "You are a VM migration support engineer. Base every statement on "
                    "log lines returned by the tools; do not invent details."
                ),
            },
            {
                "role": "user",
                "content": (
                    "Investigate this migration using the log session tools:\n"
                    "- Call start_log_session with the parameters below.\n"
                    f"- Call set_filter with level={level.upper()} and read_session_lines.\n"
                    "- If the session reports an error, call reconnect_session once; "
                    "if it fails again, report the error text.\n"
                    "- Widen to level=ALL around the first failure if context is missing.\n"
                    "- Call stop_log_session when done.\n\n"
                    "start_log_session with:\n"
                    f"{call_block}\n\n"
                    "Return:\n"
                    "1) Current migration phase (1 sentence)\n"
                    "2) Evidence (2-5 quoted lines with their seq)\n"
                    "3) Likely cause ('Unknown' if unclear)\n"
                    "4) Next actions (2-4 bullets)\n"
                ),
            },
        ]

    @mcp.prompt()
    def summarize_session(session_id: str) -> list[dict[str, Any]]:
        """Build a prompt that summarizes an existing session's filtered view."""
        return [
            {
                "role": "system",
                "content": "Summarize log output concisely. Quote lines verbatim as evidence.",
            },
            {
                "role": "user",
                "content": [
                    {"type": "text", "text": "Summarize these logs:"},
                    {"type": "resource", "uri": f"app://log-stream/sessions/{session_id}/text"},
                ],
            },
        ]
