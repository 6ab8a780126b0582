"""Tests for the in-memory log buffer."""

from pagegen.utils.logging import LogBuffer, LogEntry, LogLevel, get_logger, get_log_buffer


def test_buffer_filters_and_counts():
    buffer = LogBuffer(max_size=10)
    buffer.add(LogEntry(LogLevel.INFO, "claimed", "page_worker", {"job_id": "j1", "page_id": "p1"}))
    buffer.add(LogEntry(LogLevel.ERROR, "claim failed", "page_worker", {"job_id": "j2"}))
    buffer.add(LogEntry(LogLevel.WARNING, "webhook rejected", "webhooks"))

    assert [e["message"] for e in buffer.get_recent(source="webhooks")] == ["webhook rejected"]
    assert [e["message"] for e in buffer.get_recent(job_id="j1")] == ["claimed"]
    assert [e["message"] for e in buffer.get_errors()] == ["claim failed"]
    stats = buffer.get_stats()
    assert stats["total"] == 3
    assert (stats["error_count"], stats["warning_count"]) == (1, 1)
    assert stats["by_source"] == {"page_worker": 2, "webhooks": 1}


def test_buffer_is_bounded_and_newest_first():
    buffer = LogBuffer(max_size=2)
    for i in range(5):
        buffer.add(LogEntry(LogLevel.INFO, f"m{i}"))
    assert [e["message"] for e in buffer.get_recent()] == ["m4", "m3"]
    assert buffer.get_stats()["total"] == 2


def test_app_logger_accepts_any_metadata_key():
    get_logger("test_source").error("Invalid page message", message="raw", page_id="p9")

    entry = get_log_buffer().get_recent(limit=1, source="test_source")[0]
    assert entry["message"] == "Invalid page message"
    assert entry["metadata"] == {"message": "raw", "page_id": "p9"}
    assert entry["level"] == "error"
