"""
Unit Tests for Retrieval Monitoring

Tests the event stores and the monitor's summary.

STAFF ENGINEER PATTERNS:
------------------------
1. InMemoryEventStore for logic tests, FileEventStore against tmp_path
2. Timestamps injected so windowing is deterministic
3. Corrupt files degrade to an empty history, never to a crash
"""

import json
import logging
from datetime import datetime, timedelta, timezone

import pytest

from edu_retrieval.monitoring import (
    FileEventStore,
    InMemoryEventStore,
    RetrievalEvent,
    RetrievalMonitor,
    get_event_store,
)


def _event(hours_ago=0.0, documents=3, strategy="hybrid", **kwargs):
    return RetrievalEvent(
        timestamp=datetime.now(timezone.utc) - timedelta(hours=hours_ago),
        collection="grade6_science",
        query="중력",
        strategy=strategy,
        documents_retrieved=documents,
        success=documents > 0,
        **kwargs,
    )


# ---------------------------------------------------------------------------
# MONITOR
# ---------------------------------------------------------------------------


class TestRetrievalMonitor:
    """Test RetrievalMonitor."""

    def test_log_retrieval_appends_event(self):
        store = InMemoryEventStore()
        monitor = RetrievalMonitor(store)

        event = monitor.log_retrieval(
            job_id="job-1",
            query="중력",
            collection="grade6_science",
            documents_retrieved=4,
            strategy="diversity",
            top_score=0.8,
        )

        assert store.events == [event]
        assert event.success is True
        assert event.timestamp.tzinfo is not None

    def test_empty_retrieval_warns(self, caplog):
        monitor = RetrievalMonitor(InMemoryEventStore())

        with caplog.at_level(logging.WARNING):
            event = monitor.log_retrieval(None, "중력", "grade6_science", 0, "hybrid")

        assert event.success is False
        assert "Empty retrieval" in caplog.text

    def test_summary(self):
        store = InMemoryEventStore(
            [
                _event(documents=4),
                _event(documents=0, strategy="diversity"),
                _event(documents=2),
                _event(hours_ago=48, documents=0),
            ]
        )

        summary = RetrievalMonitor(store).summary(hours=24)

        assert summary.total_requests == 3
        assert summary.success_rate == pytest.approx(2 / 3)
        assert summary.avg_documents_retrieved == pytest.approx(2.0)
        assert summary.failed_retrievals == 1
        assert summary.strategies == {"hybrid": 2, "diversity": 1}
        assert summary.to_dict()["total_requests"] == 3

    def test_summary_of_empty_window(self):
        summary = RetrievalMonitor(InMemoryEventStore()).summary()

        assert summary.total_requests == 0
        assert summary.success_rate == 0.0
        assert summary.avg_top_score is None

    def test_summary_averages_scored_events_only(self):
        store = InMemoryEventStore(
            [
                _event(top_score=0.9),
                _event(top_score=0.5),
                _event(documents=2),
                _event(hours_ago=48, top_score=0.1),
            ]
        )

        summary = RetrievalMonitor(store).summary(hours=24)

        assert summary.avg_top_score == pytest.approx(0.7)
        assert summary.to_dict()["avg_top_score"] == pytest.approx(0.7)


# ---------------------------------------------------------------------------
# FILE STORE
# ---------------------------------------------------------------------------


class TestFileEventStore:
    """Test FileEventStore persistence."""

    def test_events_survive_reload(self, tmp_path):
        path = tmp_path / "logs" / "events.json"
        FileEventStore(path).append(_event(job_id="job-9"))

        reloaded = FileEventStore(path)
        events = reloaded.since(datetime.now(timezone.utc) - timedelta(hours=1))

        assert len(events) == 1
        assert events[0].job_id == "job-9"

    def test_non_ascii_written_verbatim(self, tmp_path):
        path = tmp_path / "events.json"
        FileEventStore(path).append(_event())

        assert "중력" in path.read_text(encoding="utf-8")

    def test_keeps_newest_events(self, tmp_path):
        path = tmp_path / "events.json"
        store = FileEventStore(path, max_events=2)
        for n in range(3):
            store.append(_event(documents=n + 1))

        data = json.loads(path.read_text(encoding="utf-8"))
        assert [item["documents_retrieved"] for item in data] == [2, 3]

    def test_corrupt_file_starts_empty(self, tmp_path, caplog):
        path = tmp_path / "events.json"
        path.write_text("{not json", encoding="utf-8")

        with caplog.at_level(logging.WARNING):
            store = FileEventStore(path)

        assert store.since(datetime.min.replace(tzinfo=timezone.utc)) == []
        assert "Could not load" in caplog.text


class TestGetEventStore:
    """Test get_event_store() factory."""

    def test_in_memory(self):
        initial = [_event()]
        store = get_event_store(use_file=False, initial_events=initial)

        assert isinstance(store, InMemoryEventStore)
        assert store.events == initial

    def test_file(self, tmp_path):
        store = get_event_store(file_path=tmp_path / "events.json")

        assert isinstance(store, FileEventStore)
        assert store.path == tmp_path / "events.json"
