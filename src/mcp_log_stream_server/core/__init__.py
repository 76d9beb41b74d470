"""Streaming core: framing, buffering, fan-in, session state and search."""

from __future__ import annotations

from .buffer import BoundedLineBuffer
from .config import StreamConfig, resolve_stream_config
from .models import FilterCriteria, LevelFilter, LogLine, LogTarget, ReconnectPolicy, SessionState, Source
from .session import LogSession, SessionSnapshot
from .transport import DiscoveryError, KubeApiTransport, LogTransport, TransportError

__all__ = [
    "BoundedLineBuffer",
    "DiscoveryError",
    "FilterCriteria",
    "KubeApiTransport",
    "LevelFilter",
    "LogLine",
    "LogSession",
    "LogTarget",
    "LogTransport",
    "ReconnectPolicy",
    "SessionSnapshot",
    "SessionState",
    "Source",
    "StreamConfig",
    "TransportError",
    "resolve_stream_config",
]
