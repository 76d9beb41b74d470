from __future__ import annotations

from datetime import UTC, datetime
from pathlib import Path

import pytest

from mcp_log_stream_server.core.buffer import BoundedLineBuffer
from mcp_log_stream_server.core.export import (
    BANNER,
    DEBUG_FETCH_FAILED,
    DebugLogFetcher,
    build_bundle,
    bundle_filename,
    collect_debug_logs,
    download_bundle,
    export_text,
    vm_display_name,
)
from mcp_log_stream_server.core.transport import TransportError

BASE = "/api/v1/namespaces/ns/pods/pod-1/proxy/var/log/pf9/"


def _lines(*texts: str, label: str | None = None):
    buf = BoundedLineBuffer(10)
    for text in texts:
        buf.append("pod-1", text, label=label)
    return buf.lines()


def test_export_text_uses_display_form() -> None:
    assert export_text(_lines("a", "b", label="pod-1")) == "[pod-1] a\n[pod-1] b"
    assert export_text([]) == ""


def test_bundle_without_debug_logs() -> None:
    bundle = build_bundle(_lines("one", "two"), source_kind="pod")

    assert bundle == f"{BANNER}\nSTDOUT/STDERR LOGS (pod)\n{BANNER}\n\none\ntwo"


def test_bundle_with_debug_logs() -> None:
    bundle = build_bundle(_lines("one"), source_kind="pod", debug_text="--- a.log ---\nA\n")

    head, debug = bundle.split("\n\n" + BANNER + "\nDEBUG LOGS FROM /var/log/pf9\n", 1)
    assert head.endswith("one")
    assert debug.endswith("--- a.log ---\nA\n")


def test_bundle_marks_failed_debug_fetch() -> None:
    bundle = build_bundle(_lines("one"), source_kind="pod", debug_failed=True)

    assert "DEBUG LOGS FROM /var/log/pf9" in bundle
    assert bundle.endswith(DEBUG_FETCH_FAILED)


def test_bundle_skips_blank_debug_text() -> None:
    bundle = build_bundle(_lines("one"), source_kind="controller", debug_text="  \n")

    assert "DEBUG LOGS" not in bundle
    assert "STDOUT/STDERR LOGS (controller)" in bundle


def test_bundle_filename() -> None:
    now = datetime(2024, 5, 1, 10, 0, 0, 123000, tzinfo=UTC)

    assert bundle_filename("my-vm", "pod", now) == "my-vm-pod-2024-05-01T10-00-00-123+00-00.txt"
    assert bundle_filename(None, "controller", now).startswith("logs-controller-2024-05-01T10-00-00")


@pytest.mark.parametrize(
    ("pod", "migration", "expected"),
    [
        ("v2v-helper-my-vm-abc12-xyz-q1w2e", None, "my-vm"),
        ("v2v-helper-db-7f9c4-q1w2e", None, "db"),
        ("standalone", None, "standalone"),
        ("v2v-helper-ignored-a-b-c", "migration-web-01-1a2b3", "web-01"),
        (None, None, None),
    ],
)
def test_vm_display_name(pod: str | None, migration: str | None, expected: str | None) -> None:
    assert vm_display_name(pod, migration) == expected


@pytest.mark.asyncio
async def test_fetcher_follows_directories_one_level(fake_transport) -> None:
    fake_transport.json[BASE] = [
        {"name": "a.log", "type": "file"},
        {"name": "sub", "type": "directory"},
        {"name": "socket", "type": "other"},
    ]
    fake_transport.json[BASE + "sub/"] = [{"name": "b.log", "type": "file"}]
    fake_transport.texts[BASE + "a.log"] = "A\n"
    fake_transport.texts[BASE + "sub/b.log"] = "B"

    text = await DebugLogFetcher(fake_transport, BASE).fetch()

    assert text == "--- a.log ---\nA\n\n--- sub/b.log ---\nB\n"


@pytest.mark.asyncio
async def test_fetcher_name_filter_falls_back_to_all_files(fake_transport) -> None:
    fake_transport.json[BASE] = [{"name": "my-vm.log"}, {"name": "other.log"}]
    fake_transport.texts[BASE + "my-vm.log"] = "mine"
    fake_transport.texts[BASE + "other.log"] = "theirs"
    fetcher = DebugLogFetcher(fake_transport, BASE)

    assert "theirs" not in await fetcher.fetch("my-vm")
    everything = await fetcher.fetch("nomatch")
    assert "mine" in everything and "theirs" in everything


@pytest.mark.asyncio
async def test_fetcher_skips_unreadable_files(fake_transport) -> None:
    fake_transport.json[BASE] = [{"name": "a.log"}, {"name": "b.log"}, {"name": "gone", "type": "directory"}]
    fake_transport.texts[BASE + "a.log"] = TransportError("HTTP 500")
    fake_transport.texts[BASE + "b.log"] = "B"

    text = await DebugLogFetcher(fake_transport, BASE).fetch()

    assert text == "--- b.log ---\nB\n"


@pytest.mark.asyncio
async def test_collect_debug_logs_never_raises(fake_transport) -> None:
    missing = await collect_debug_logs(DebugLogFetcher(fake_transport, BASE))
    assert missing == (None, True)

    fake_transport.json[BASE] = {"not": "a listing"}
    malformed = await collect_debug_logs(DebugLogFetcher(fake_transport, BASE))
    assert malformed == (None, True)

    assert await collect_debug_logs(None) == (None, False)


@pytest.mark.asyncio
async def test_download_bundle_writes_file(tmp_path: Path) -> None:
    path = await download_bundle(tmp_path / "out.txt", "héllo\n")

    assert path.read_text(encoding="utf-8") == "héllo\n"
