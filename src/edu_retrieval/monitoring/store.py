"""
Event storage - Protocol and implementations for retrieval events.

Following the gold standard pattern:
1. Protocol defines the interface
2. FileEventStore for production (persistent JSON file)
3. InMemoryEventStore for testing (fast, no I/O)
4. Factory function for convenience
"""

from __future__ import annotations

import json
import logging
import threading
from datetime import datetime, timezone
from pathlib import Path
from typing import Protocol, runtime_checkable

from pydantic import BaseModel, Field, ValidationError

logger = logging.getLogger(__name__)


# ---------------------------------------------------------------------------
# EVENT DATA MODEL
# ---------------------------------------------------------------------------


class RetrievalEvent(BaseModel):
    """One completed retrieval call.

    `success` is False when the call returned no documents.
    """

    timestamp: datetime = Field(default_factory=lambda: datetime.now(timezone.utc))
    job_id: str | None = None
    collection: str
    query: str
    strategy: str
    documents_retrieved: int
    top_score: float | None = None
    success: bool = True


# ---------------------------------------------------------------------------
# EVENT STORE PROTOCOL
# ---------------------------------------------------------------------------


@runtime_checkable
class EventStore(Protocol):
    """Protocol for retrieval event storage implementations."""

    def append(self, event: RetrievalEvent) -> None:
        """Persist one event."""
        ...

    def since(self, cutoff: datetime) -> list[RetrievalEvent]:
        """Events at or after `cutoff`, oldest first."""
        ...


# ---------------------------------------------------------------------------
# FILE-BASED IMPLEMENTATION (Production)
# ---------------------------------------------------------------------------


class FileEventStore:
    """Production event store using a JSON file.

    The whole history is kept in memory and rewritten on every append;
    only the newest `max_events` are retained.
    """

    def __init__(self, file_path: Path | str | None = None, max_events: int = 10_000):
        if file_path is None:
            file_path = Path.cwd() / "logs" / "retrieval-metrics.json"
        self._path = Path(file_path)
        self._max_events = max_events
        self._lock = threading.Lock()
        self._events = self._load()

    @property
    def path(self) -> Path:
        """Get the event file path."""
        return self._path

    def _load(self) -> list[RetrievalEvent]:
        if not self._path.exists():
            return []
        try:
            with open(self._path, encoding="utf-8") as f:
                data = json.load(f)
            return [RetrievalEvent.model_validate(item) for item in data]
        except (OSError, ValueError, ValidationError) as e:
            logger.warning(f"Could not load retrieval events from {self._path}: {e}")
            return []

    def _save(self) -> None:
        try:
            self._path.parent.mkdir(parents=True, exist_ok=True)
            with open(self._path, "w", encoding="utf-8") as f:
                json.dump(
                    [event.model_dump(mode="json") for event in self._events],
                    f,
                    ensure_ascii=False,
                    indent=2,
                )
        except OSError as e:
            logger.error(f"Could not save retrieval events to {self._path}: {e}")

    def append(self, event: RetrievalEvent) -> None:
        """Append an event and rewrite the file."""
        with self._lock:
            self._events.append(event)
            if len(self._events) > self._max_events:
                del self._events[: len(self._events) - self._max_events]
            self._save()

    def since(self, cutoff: datetime) -> list[RetrievalEvent]:
        with self._lock:
            return [event for event in self._events if event.timestamp >= cutoff]


# ---------------------------------------------------------------------------
# IN-MEMORY IMPLEMENTATION (Testing)
# ---------------------------------------------------------------------------


class InMemoryEventStore:
    """Test event store - no file I/O."""

    def __init__(self, initial_events: list[RetrievalEvent] | None = None):
        self._events = list(initial_events or [])
        self._lock = threading.Lock()

    @property
    def events(self) -> list[RetrievalEvent]:
        """All stored events (for test assertions)."""
        with self._lock:
            return list(self._events)

    def append(self, event: RetrievalEvent) -> None:
        with self._lock:
            self._events.append(event)

    def since(self, cutoff: datetime) -> list[RetrievalEvent]:
        with self._lock:
            return [event for event in self._events if event.timestamp >= cutoff]


# ---------------------------------------------------------------------------
# FACTORY FUNCTION
# ---------------------------------------------------------------------------


def get_event_store(
    use_file: bool = True,
    file_path: Path | str | None = None,
    initial_events: list[RetrievalEvent] | None = None,
) -> EventStore:
    """
    Factory function for event stores.

    Args:
        use_file: If True, use FileEventStore. If False, use InMemoryEventStore.
        file_path: Custom path for FileEventStore.
        initial_events: Initial events for InMemoryEventStore.

    Returns:
        EventStore implementation.
    """
    if use_file:
        return FileEventStore(file_path)
    return InMemoryEventStore(initial_events)
