"""Core data models for live log streaming."""

from __future__ import annotations

from dataclasses import dataclass
from datetime import datetime
from enum import Enum


class SessionState(str, Enum):
    """Lifecycle states of a log viewing session."""

    IDLE = "IDLE"
    CONNECTING = "CONNECTING"
    STREAMING = "STREAMING"
    PAUSED = "PAUSED"
    ERROR = "ERROR"
    RECONNECTING = "RECONNECTING"


class LevelFilter(str, Enum):
    """Level choices offered by the log viewer."""

    ALL = "ALL"
    ERROR = "ERROR"
    WARN = "WARN"
    INFO = "INFO"
    DEBUG = "DEBUG"
    TRACE = "TRACE"
    SUCCESS = "SUCCESS"


@dataclass(frozen=True, slots=True)
class Source:
    """One stream origin (a single pod)."""

    namespace: str
    name: str

    @property
    def id(self) -> str:
        return self.name

    @property
    def endpoint(self) -> str:
        """Log endpoint path relative to the API base."""
        return f"/api/v1/namespaces/{self.namespace}/pods/{self.name}/log"


@dataclass(frozen=True, slots=True)
class LogTarget:
    """What a session is looking at: one pod, or every pod behind a selector."""

    namespace: str
    name: str
    label_selector: str | None = None

    @classmethod
    def pod(cls, namespace: str, name: str) -> LogTarget:
        return cls(namespace=namespace, name=name)

    @classmethod
    def selector(cls, namespace: str, label_selector: str, *, name: str = "") -> LogTarget:
        return cls(namespace=namespace, name=name or label_selector, label_selector=label_selector)

    @property
    def fan_out(self) -> bool:
        return self.label_selector is not None

    @property
    def is_empty(self) -> bool:
        if not self.namespace:
            return True
        if self.fan_out:
            return not self.label_selector
        return not self.name


@dataclass(frozen=True, slots=True)
class LogLine:
    """A framed line as stored in a session buffer."""

    source_id: str
    sequence: int  # buffer-local, assigned at append time
    text: str
    received_at: datetime
    label: str | None = None  # display tag, set for fan-out sessions only

    @property
    def display(self) -> str:
        if self.label:
            return f"[{self.label}] {self.text}"
        return self.text


@dataclass(frozen=True, slots=True)
class FilterCriteria:
    """Level + text criteria for deriving a filtered view."""

    level: LevelFilter = LevelFilter.ALL
    query: str = ""
    exact: bool = False

    @classmethod
    def parse(cls, level: str | LevelFilter = LevelFilter.ALL, query: str = "") -> FilterCriteria:
        """Build criteria from user input; a double-quoted query means exact match."""
        if isinstance(level, str) and not isinstance(level, LevelFilter):
            name = level.strip().upper() or "ALL"
            try:
                level = LevelFilter(name)
            except ValueError as e:
                valid = ", ".join(lv.value for lv in LevelFilter)
                raise ValueError(f"Unknown level filter '{level}'. Valid values: {valid}.") from e

        stripped = query.strip()
        if len(stripped) >= 2 and stripped.startswith('"') and stripped.endswith('"'):
            return cls(level=level, query=stripped[1:-1], exact=True)
        return cls(level=level, query=stripped, exact=False)


@dataclass(frozen=True, slots=True)
class ReconnectPolicy:
    """How a session recovers from a transport failure.

    ``manual`` waits for an explicit reconnect; ``backoff`` retries after a
    fixed interval for as long as the session stays enabled.
    """

    mode: str = "manual"
    interval: float = 3.0

    @classmethod
    def manual(cls) -> ReconnectPolicy:
        return cls(mode="manual")

    @classmethod
    def backoff(cls, interval: float = 3.0) -> ReconnectPolicy:
        if interval < 0:
            raise ValueError("backoff interval must be >= 0")
        return cls(mode="backoff", interval=interval)

    @property
    def automatic(self) -> bool:
        return self.mode == "backoff"
