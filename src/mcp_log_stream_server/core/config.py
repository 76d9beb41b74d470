"""Streaming configuration and environment overrides."""

from __future__ import annotations

import os
from dataclasses import dataclass, replace

DEFAULT_CAPACITY = 5000
DEFAULT_TAIL_LINES = 100
DEFAULT_LIMIT_BYTES = 8 * 1024 * 1024
DEFAULT_RECONNECT_SECONDS = 3.0


@dataclass(frozen=True, slots=True)
class StreamConfig:
    capacity: int = DEFAULT_CAPACITY
    # History replay requested on the first connect of a session only.
    tail_lines: int | None = DEFAULT_TAIL_LINES
    # Safety valve for a single connection, not a pagination mechanism.
    limit_bytes: int = DEFAULT_LIMIT_BYTES
    reconnect_interval: float = DEFAULT_RECONNECT_SECONDS
    api_base: str = "http://127.0.0.1:8001"
    api_token: str | None = None
    debug_log_dir: str = "/var/log/pf9"


def _env_int(name: str, *, minimum: int) -> int | None:
    raw = os.getenv(name)
    if raw is None or raw == "":
        return None
    try:
        value = int(raw)
    except ValueError as exc:
        raise ValueError(f"{name} must be an integer") from exc
    if value < minimum:
        raise ValueError(f"{name} must be >= {minimum}")
    return value


def _env_float(name: str) -> float | None:
    raw = os.getenv(name)
    if raw is None or raw == "":
        return None
    try:
        value = float(raw)
    except ValueError as exc:
        raise ValueError(f"{name} must be a number") from exc
    if value < 0:
        raise ValueError(f"{name} must be >= 0")
    return value


def resolve_stream_config(cfg: StreamConfig | None = None) -> StreamConfig:
    """Return config with optional env overrides applied."""
    if cfg is None:
        cfg = StreamConfig()

    changes: dict[str, object] = {}

    capacity = _env_int("LOG_STREAM_CAPACITY", minimum=1)
    if capacity is not None:
        changes["capacity"] = capacity

    tail_lines = _env_int("LOG_STREAM_TAIL_LINES", minimum=0)
    if tail_lines is not None:
        changes["tail_lines"] = tail_lines

    limit_bytes = _env_int("LOG_STREAM_LIMIT_BYTES", minimum=1)
    if limit_bytes is not None:
        changes["limit_bytes"] = limit_bytes

    interval = _env_float("LOG_STREAM_RECONNECT_SECONDS")
    if interval is not None:
        changes["reconnect_interval"] = interval

    api_base = os.getenv("LOG_STREAM_API_BASE")
    if api_base:
        changes["api_base"] = api_base.rstrip("/")

    token = os.getenv("LOG_STREAM_API_TOKEN")
    if token:
        changes["api_token"] = token

    if not changes:
        return cfg
    return replace(cfg, **changes)
