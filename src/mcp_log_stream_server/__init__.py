"""Live pod log streaming and aggregation exposed as an MCP server."""
