"""Bounded, deduplicating line buffer.

One buffer and one dedup set belong to exactly one session generation.
Lines are deduplicated on exact text across *all* sources of the session, so
the same text arriving from two pods collapses into a single entry. Eviction
and dedup maintenance happen in one step: the set only ever holds the texts
still present in the buffer.
"""

from __future__ import annotations

from collections import deque
from datetime import UTC, datetime

from .config import DEFAULT_CAPACITY
from .models import LogLine


class BoundedLineBuffer:
    """Append-only FIFO of ``LogLine`` capped at ``capacity`` entries."""

    def __init__(self, capacity: int = DEFAULT_CAPACITY) -> None:
        if capacity < 1:
            raise ValueError("capacity must be >= 1")
        self._capacity = capacity
        self._lines: deque[LogLine] = deque()
        self._seen: set[str] = set()
        self._next_seq = 0
        self.dropped = 0
        self.duplicates = 0

    @property
    def capacity(self) -> int:
        return self._capacity

    def __len__(self) -> int:
        return len(self._lines)

    def __contains__(self, text: object) -> bool:
        return text in self._seen

    def seen_count(self) -> int:
        """Size of the dedup set (always equal to ``len(self)``)."""
        return len(self._seen)

    def append(self, source_id: str, text: str, *, label: str | None = None) -> LogLine | None:
        """Append a line; return it, or None when the text is a duplicate."""
        if text in self._seen:
            self.duplicates += 1
            return None

        self._next_seq += 1
        line = LogLine(
            source_id=source_id,
            sequence=self._next_seq,
            text=text,
            received_at=datetime.now(UTC),
            label=label,
        )
        self._lines.append(line)
        self._seen.add(text)

        while len(self._lines) > self._capacity:
            evicted = self._lines.popleft()
            self._seen.discard(evicted.text)
            self.dropped += 1

        return line

    def lines(self) -> tuple[LogLine, ...]:
        """Return an immutable snapshot in append order."""
        return tuple(self._lines)

    def texts(self) -> list[str]:
        return [line.text for line in self._lines]
