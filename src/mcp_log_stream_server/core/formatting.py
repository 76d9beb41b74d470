"""Display-oriented splitting of a log line.

Presentation only: nothing in the streaming core depends on this module.
"""

from __future__ import annotations

import re
from dataclasses import dataclass

_LEVEL_WORDS = "ERROR|FATAL|WARN|WARNING|INFO|DEBUG|TRACE|SUCCESS|SUCCEEDED|FAILED|FAILURE"

_LEVEL_RE = re.compile(rf"\b({_LEVEL_WORDS})\b", re.IGNORECASE)
_TIMESTAMP_RE = re.compile(
    r"^\d{4}[/\-]\d{2}[/\-]\d{2}[T\s]\d{2}:\d{2}:\d{2}(?:\.\d+)?(?:Z|[+-]\d{2}:\d{2})?"
)
_SOURCE_RE = re.compile(r"^\s*\[([^\]]+)\]")
_LEADING_LEVEL_RE = re.compile(rf"^\s*({_LEVEL_WORDS})\b", re.IGNORECASE)


@dataclass(frozen=True, slots=True)
class Segment:
    text: str
    kind: str  # timestamp | bracket | source | level | text
    severity: str | None = None


def extract_log_level(line: str) -> str | None:
    """Return the first level keyword in the line, upper-cased."""
    m = _LEVEL_RE.search(line)
    return m.group(1).upper() if m else None


def severity_of(level: str) -> str:
    """Map a level keyword onto a display category."""
    level = level.upper()
    if level == "FATAL":
        return "fatal"
    if "ERROR" in level or "FAIL" in level:
        return "error"
    if "WARN" in level:
        return "warn"
    if level == "INFO":
        return "info"
    if level == "DEBUG":
        return "debug"
    if level == "TRACE":
        return "trace"
    if "SUCCE" in level:
        return "success"
    return "text"


def split_line(line: str) -> list[Segment]:
    """Split a line into timestamp, ``[source]``, level and remainder segments."""
    segments: list[Segment] = []
    remaining = line

    ts = _TIMESTAMP_RE.match(remaining)
    if ts:
        segments.append(Segment(ts.group(0), "timestamp"))
        remaining = remaining[ts.end():]

    src = _SOURCE_RE.match(remaining)
    if src:
        segments.append(Segment(" [", "bracket"))
        segments.append(Segment(src.group(1), "source"))
        segments.append(Segment("]", "bracket"))
        remaining = remaining[src.end():]

    lvl = _LEADING_LEVEL_RE.match(remaining)
    if lvl:
        leading = lvl.group(0)[: lvl.start(1)]
        if leading:
            segments.append(Segment(leading, "text"))
        word = lvl.group(1)
        segments.append(Segment(word, "level", severity_of(word)))
        remaining = remaining[lvl.end():]

    if remaining:
        segments.append(Segment(remaining, "text"))
    return segments
