"""Tests for the in-memory event log."""

import json
import logging
from datetime import timedelta

import pytest

from task_notifier.logging import EventLevel, EventLogger, LogEntry
from tests.helpers import FakeClock


class TestLogging:
    def test_log_returns_entry(self, event_log, clock):
        entry = event_log.info("Job queued", job_id="job_1", template_kind="task_approved")

        assert isinstance(entry, LogEntry)
        assert entry.id.startswith("log_")
        assert entry.level is EventLevel.INFO
        assert entry.timestamp == clock()
        assert entry.job_id == "job_1"
        assert entry.metadata == {}

    def test_level_accepts_strings(self, event_log):
        assert event_log.log("WARNING", "careful").level is EventLevel.WARN
        assert event_log.log("error", "boom").level is EventLevel.ERROR

    def test_invalid_level_raises(self, event_log):
        with pytest.raises(ValueError):
            event_log.log("loud", "nope")

    def test_below_minimum_level_is_dropped(self, clock):
        log = EventLogger(level="warn", clock=clock)

        assert log.debug("noise") is None
        assert log.info("still noise") is None
        assert log.warn("kept") is not None
        assert log.stats()["total"] == 1

    def test_set_level_at_runtime(self, clock):
        log = EventLogger(level="error", clock=clock)
        log.info("dropped")

        log.set_level(EventLevel.DEBUG)
        log.debug("kept")

        assert log.level is EventLevel.DEBUG
        assert [entry.message for entry in log.query()] == ["kept"]

    def test_metadata_is_copied(self, event_log):
        metadata = {"attempt": 1}
        entry = event_log.info("x", metadata=metadata)
        metadata["attempt"] = 2

        assert entry.metadata == {"attempt": 1}

    def test_entries_are_mirrored_to_stdlib_logging(self, event_log, caplog):
        with caplog.at_level(logging.DEBUG, logger="task_notifier.logging.event_log"):
            event_log.warn("Retry scheduled", job_id="job_9", error_detail="550")

        record = caplog.records[-1]
        assert record.levelno == logging.WARNING
        assert record.getMessage() == "Retry scheduled"
        assert record.event == "event_log.entry"
        assert record.job_id == "job_9"
        assert record.error_detail == "550"

    def test_capacity_must_be_positive(self):
        with pytest.raises(ValueError):
            EventLogger(capacity=0)


class TestCapacity:
    def test_oldest_entries_are_evicted(self, clock):
        log = EventLogger(capacity=3, clock=clock)
        for i in range(5):
            log.info(f"event {i}")

        assert [entry.message for entry in log.query()] == ["event 4", "event 3", "event 2"]
        assert log.stats()["total"] == 3


class TestQuery:
    @pytest.fixture
    def populated(self, event_log, clock):
        event_log.debug("d1")
        clock.advance(seconds=1)
        event_log.info("i1", job_id="job_a")
        clock.advance(seconds=1)
        event_log.warn("w1", job_id="job_a")
        clock.advance(seconds=1)
        event_log.info("i2", job_id="job_b")
        clock.advance(seconds=1)
        event_log.error("e1", job_id="job_a")
        return event_log

    def test_newest_first(self, populated):
        assert [entry.message for entry in populated.query()] == ["e1", "i2", "w1", "i1", "d1"]

    def test_filter_by_exact_level(self, populated):
        assert [entry.message for entry in populated.query(level="info")] == ["i2", "i1"]

    def test_filter_by_job_and_limit(self, populated):
        assert [entry.message for entry in populated.query(job_id="job_a", limit=2)] == ["e1", "w1"]

    def test_job_history_is_oldest_first(self, populated):
        assert [entry.message for entry in populated.job_history("job_a")] == ["i1", "w1", "e1"]

    def test_stats(self, populated):
        assert populated.stats() == {"debug": 1, "info": 2, "warn": 1, "error": 1, "total": 5}

    def test_recent_activity(self, populated, clock):
        clock.advance(minutes=1)

        summary = populated.recent_activity(minutes=2)

        assert summary["total"] == 5
        assert summary["jobs"] == 2
        assert summary["errors"] == ["e1"]
        assert summary["warn"] == 1

    def test_recent_activity_excludes_old_entries(self, populated, clock):
        clock.advance(hours=1)
        populated.info("fresh")

        summary = populated.recent_activity(minutes=30)

        assert summary["total"] == 1
        assert summary["jobs"] == 0

    def test_export_is_json_oldest_first(self, populated):
        exported = json.loads(populated.export())

        assert [item["message"] for item in exported] == ["d1", "i1", "w1", "i2", "e1"]
        assert exported[-1]["level"] == "error"
        assert exported[0]["timestamp"].endswith("Z")


class TestClear:
    def test_clear_by_age(self):
        clock = FakeClock()
        now = clock()
        log = EventLogger(clock=clock)

        clock.now = now - timedelta(hours=48)
        log.info("two days old")
        clock.now = now - timedelta(hours=25)
        log.info("a day and an hour old")
        clock.now = now - timedelta(hours=1)
        log.info("an hour old")
        clock.now = now

        removed = log.clear(older_than_hours=24)

        assert removed == 2
        assert [entry.message for entry in log.query()] == ["an hour old"]

    def test_clear_everything(self, event_log):
        event_log.info("a")
        event_log.info("b")

        assert event_log.clear() == 2
        assert event_log.stats()["total"] == 0

    def test_clear_keeps_capacity(self, clock):
        log = EventLogger(capacity=2, clock=clock)
        log.info("a")
        log.clear(older_than_hours=1)
        for message in ("b", "c", "d"):
            log.info(message)

        assert [entry.message for entry in log.query()] == ["d", "c"]
