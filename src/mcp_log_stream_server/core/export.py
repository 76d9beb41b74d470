"""Copy/download serialization of a filtered view.

The download bundle may be enriched with offline debug logs read through a
directory-listing convention; that fallback never blocks the primary export.
"""

from __future__ import annotations

import logging
import re
from collections.abc import Iterable
from datetime import UTC, datetime
from pathlib import Path
from typing import Literal

import aiofiles
from pydantic import BaseModel, TypeAdapter, ValidationError

from .models import LogLine
from .transport import LogTransport

logger = logging.getLogger(__name__)

BANNER = "=" * 80
DEBUG_FETCH_FAILED = "[Failed to fetch debug logs from pod filesystem]\n"


class DirectoryEntry(BaseModel):
    name: str
    type: Literal["file", "directory", "other"] = "file"


_LISTING = TypeAdapter(list[DirectoryEntry])


def export_text(lines: Iterable[LogLine]) -> str:
    """Plain text of a view, one display line per row."""
    return "\n".join(line.display for line in lines)


def vm_display_name(pod_name: str | None, migration_name: str | None = None) -> str | None:
    """Derive a short VM name from a migration or migration pod name."""
    if migration_name:
        name = re.sub(r"^migration-", "", migration_name)
        name = re.sub(r"-[0-9a-f]{5}$", "", name, flags=re.IGNORECASE)
        if name:
            return name

    if not pod_name:
        return None
    stripped = re.sub(r"^v2v-helper-", "", pod_name)
    parts = stripped.split("-")
    if len(parts) >= 4:
        return "-".join(parts[:-3]) or stripped
    if len(parts) >= 3:
        return "-".join(parts[:-2]) or stripped
    return stripped


def bundle_filename(display_name: str | None, source_kind: str, now: datetime | None = None) -> str:
    now = now or datetime.now(UTC)
    stamp = re.sub(r"[:.]", "-", now.isoformat(timespec="milliseconds"))
    return f"{display_name or 'logs'}-{source_kind}-{stamp}.txt"


def _section(title: str) -> str:
    return f"{BANNER}\n{title}\n{BANNER}\n\n"


def build_bundle(
    lines: Iterable[LogLine],
    *,
    source_kind: str,
    debug_text: str | None = None,
    debug_failed: bool = False,
    debug_dir: str = "/var/log/pf9",
) -> str:
    """Combine the stream view with an optional debug-log section."""
    out = _section(f"STDOUT/STDERR LOGS ({source_kind})") + export_text(lines)

    if debug_failed:
        out += "\n\n" + _section(f"DEBUG LOGS FROM {debug_dir}") + DEBUG_FETCH_FAILED
    elif debug_text and debug_text.strip():
        out += "\n\n" + _section(f"DEBUG LOGS FROM {debug_dir}") + debug_text
    return out


class DebugLogFetcher:
    """Read offline log files exposed as JSON directory listings.

    Listings are ``[{"name": ..., "type": "file" | "directory"}]``; directories
    are followed one level deep. Every failure is logged and skipped.
    """

    def __init__(self, transport: LogTransport, base_path: str) -> None:
        self._transport = transport
        self._base = base_path.rstrip("/") + "/"

    async def _list(self, path: str) -> list[DirectoryEntry]:
        payload = await self._transport.fetch_json(path)
        return _LISTING.validate_python(payload)

    async def _collect_files(self, name_filter: str | None) -> list[str]:
        files: list[str] = []
        for entry in await self._list(self._base):
            if entry.type == "file":
                files.append(entry.name)
            elif entry.type == "directory":
                sub = f"{entry.name.rstrip('/')}/"
                try:
                    children = await self._list(self._base + sub)
                except Exception as exc:
                    logger.warning("Skipping debug log directory %s: %s", sub, exc)
                    continue
                files.extend(sub + child.name for child in children if child.type == "file")

        if name_filter:
            files = [f for f in files if name_filter in f] or files
        return sorted(files)

    async def fetch(self, name_filter: str | None = None) -> str:
        """Return concatenated debug logs; raises only if the root listing fails."""
        try:
            files = await self._collect_files(name_filter)
        except ValidationError as exc:
            raise ValueError(f"Unexpected debug log listing at {self._base}") from exc

        parts: list[str] = []
        for name in files:
            try:
                text = await self._transport.fetch_text(self._base + name)
            except Exception as exc:
                logger.warning("Skipping debug log %s: %s", name, exc)
                continue
            parts.append(f"--- {name} ---\n{text.rstrip()}\n")
        return "\n".join(parts)


async def collect_debug_logs(
    fetcher: DebugLogFetcher | None,
    *,
    name_filter: str | None = None,
) -> tuple[str | None, bool]:
    """Run the fallback fetch; returns ``(text, failed)`` and never raises."""
    if fetcher is None:
        return None, False
    try:
        return await fetcher.fetch(name_filter), False
    except Exception as exc:
        logger.warning("Failed to fetch debug logs: %s", exc)
        return None, True


async def download_bundle(path: str | Path, bundle: str) -> Path:
    """Write an export bundle to ``path`` (the user-triggered download)."""
    target = Path(path)
    async with aiofiles.open(target, mode="w", encoding="utf-8") as f:
        await f.write(bundle)
    logger.info("Wrote %d bytes of logs to %s", len(bundle.encode("utf-8")), target)
    return target
