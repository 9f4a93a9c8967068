import time

import pytest

from minikernel.log_collector import LogEntry, add_log, clear_logs, get_logs


@pytest.fixture(autouse=True)
def empty_collector():
    clear_logs()
    yield
    clear_logs()


def test_starts_empty():
    assert get_logs() == []


def test_add_and_get_preserves_order():
    add_log("info", "first")
    add_log("error", "second")
    logs = get_logs()
    assert [(e.level, e.message) for e in logs] == [("info", "first"), ("error", "second")]


def test_timestamp_is_current_millis():
    before = time.time_ns() // 1_000_000
    add_log("debug", "tick")
    after = time.time_ns() // 1_000_000
    (entry,) = get_logs()
    assert before <= entry.timestamp <= after


def test_get_logs_returns_copy():
    add_log("warn", "careful")
    snapshot = get_logs()
    snapshot.append(LogEntry(level="x", message="y", timestamp=0))
    assert len(get_logs()) == 1


def test_clear_logs():
    add_log("info", "gone")
    clear_logs()
    assert get_logs() == []