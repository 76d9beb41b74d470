"""Level filtering and text search over a buffer snapshot.

Pure functions: the buffer is never mutated and the same inputs always give
the same view.
"""

from __future__ import annotations

import re
from collections.abc import Iterable

from rapidfuzz import fuzz

from .models import FilterCriteria, LevelFilter, LogLine

# A Fuse-style threshold of 0.4 tolerates roughly 40% mismatches.
FUZZY_MIN_SCORE = 60.0

_ISO_PREFIX_RE = re.compile(
    r"^\d{4}-\d{2}-\d{2}T\d{2}:\d{2}:\d{2}(?:\.\d+)?(?:Z|[+-]\d{2}:\d{2})\s*"
)


def _level_pattern(level: LevelFilter) -> re.Pattern[str]:
    return re.compile(rf"level={re.escape(level.value)}\b", re.IGNORECASE)


def matches_level(text: str, level: LevelFilter) -> bool:
    """True when ``text`` carries ``level`` as a structured field or leading token."""
    if level is LevelFilter.ALL:
        return True
    if _level_pattern(level).search(text):
        return True
    clean = _ISO_PREFIX_RE.sub("", text, count=1)
    return clean.upper().startswith(level.value)


def matches_query(text: str, query: str, *, exact: bool) -> bool:
    """Case-insensitive exact substring or approximate match."""
    needle = query.lower()
    hay = text.lower()
    if exact:
        return needle in hay
    return fuzz.partial_ratio(needle, hay, score_cutoff=FUZZY_MIN_SCORE) >= FUZZY_MIN_SCORE


def filter_lines(lines: Iterable[LogLine], criteria: FilterCriteria) -> list[LogLine]:
    """Apply the level filter, then the text filter; buffer order is kept."""
    out = list(lines)

    if criteria.level is not LevelFilter.ALL:
        out = [line for line in out if matches_level(line.text, criteria.level)]

    query = criteria.query if criteria.exact else criteria.query.strip()
    if query:
        out = [line for line in out if matches_query(line.display, query, exact=criteria.exact)]

    return out
