from __future__ import annotations

from mcp_log_stream_server.core.formatting import Segment, extract_log_level, severity_of, split_line


def test_split_line_with_timestamp_source_and_level() -> None:
    segments = split_line("2024-05-01T10:00:00Z [pod-a] ERROR failed to copy disk")

    assert [s.kind for s in segments] == [
        "timestamp",
        "bracket",
        "source",
        "bracket",
        "text",
        "level",
        "text",
    ]
    assert segments[0].text == "2024-05-01T10:00:00Z"
    assert segments[2].text == "pod-a"
    assert segments[5] == Segment("ERROR", "level", "error")
    assert segments[6].text == " failed to copy disk"


def test_split_plain_line() -> None:
    assert split_line("hello") == [Segment("hello", "text")]


def test_split_line_level_without_timestamp() -> None:
    segments = split_line("WARN retrying")

    assert segments[0] == Segment("WARN", "level", "warn")
    assert segments[1].text == " retrying"


def test_extract_log_level_finds_structured_field() -> None:
    assert extract_log_level('time="x" level=warn msg="slow"') == "WARN"
    assert extract_log_level("nothing to see") is None


def test_severity_of() -> None:
    assert severity_of("FATAL") == "fatal"
    assert severity_of("FAILED") == "error"
    assert severity_of("warning") == "warn"
    assert severity_of("SUCCEEDED") == "success"
    assert severity_of("INFO") == "info"
    assert severity_of("NOTICE") == "text"
