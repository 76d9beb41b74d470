"""Local tailing CLI (not MCP): stream a pod or a selector group to stdout."""

from __future__ import annotations

import argparse
import asyncio
import logging
import os
import sys
from typing import Optional

import aiohttp

from mcp_log_stream_server.core.config import resolve_stream_config
from mcp_log_stream_server.core.models import FilterCriteria, LogLine, LogTarget, SessionState
from mcp_log_stream_server.core.search import filter_lines
from mcp_log_stream_server.core.session import LogSession
from mcp_log_stream_server.core.transport import KubeApiTransport


def _build_target(args: argparse.Namespace) -> LogTarget:
    if args.selector:
        return LogTarget.selector(args.namespace, args.selector, name=args.pod or "")
    if not args.pod:
        raise argparse.ArgumentTypeError("either a pod name or --selector is required")
    return LogTarget.pod(args.namespace, args.pod)


async def _tail(args: argparse.Namespace) -> int:
    cfg = resolve_stream_config()
    criteria = FilterCriteria.parse(args.level, args.query or "")
    target = _build_target(args)

    async with aiohttp.ClientSession() as http:
        transport = KubeApiTransport(http, api_base=cfg.api_base, token=cfg.api_token)
        session = LogSession(target, transport, config=cfg)

        def _print(line: LogLine) -> None:
            if filter_lines([line], criteria):
                print(line.display, flush=True)

        session.subscribe(_print)
        await session.enable(True)
        try:
            if session.policy.automatic:
                # Failures are logged and retried until the streams end.
                await session.wait_for_state(SessionState.IDLE)
            else:
                await session.wait_for_state(SessionState.IDLE, SessionState.ERROR)
        finally:
            await session.close()

    if session.error:
        print(f"error: {session.error}", file=sys.stderr)
        return 1
    return 0


def main(argv: Optional[list[str]] = None) -> None:
    p = argparse.ArgumentParser(description="Tail Kubernetes pod logs (single pod or label selector).")
    p.add_argument("pod", nargs="?", default=None, help="Pod name (or a display name with --selector)")
    p.add_argument("-n", "--namespace", default="migration-system")
    p.add_argument("-l", "--selector", default=None, help="Label selector; streams every matching pod")
    p.add_argument("--level", default="ALL", help="ALL, ERROR, WARN, INFO, DEBUG, TRACE, SUCCESS")
    p.add_argument("--query", default=None, help='Fuzzy search; "quoted" for exact match')
    p.add_argument("-v", "--verbose", action="store_true")

    args = p.parse_args(argv)
    logging.basicConfig(
        stream=sys.stderr,
        level=logging.DEBUG if args.verbose else os.getenv("LOG_STREAM_LOG_LEVEL", "WARNING").upper(),
        format="%(asctime)s %(levelname)s %(name)s: %(message)s",
    )

    try:
        code = asyncio.run(_tail(args))
    except (ValueError, argparse.ArgumentTypeError) as e:
        print(f"Error: {e}", file=sys.stderr)
        raise SystemExit(2)
    except KeyboardInterrupt:
        code = 130
    raise SystemExit(code)


if __name__ == "__main__":
    main()
