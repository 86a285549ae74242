"""
Monitoring module - retrieval event log and summaries.

USAGE:
------
from edu_retrieval.monitoring import RetrievalMonitor, get_event_store

monitor = RetrievalMonitor(get_event_store())
engine = RetrievalEngine(index, embeddings, monitor=monitor)
...
print(monitor.summary(hours=24).to_dict())
"""

from edu_retrieval.monitoring.store import (
    RetrievalEvent,
    EventStore,
    FileEventStore,
    InMemoryEventStore,
    get_event_store,
)
from edu_retrieval.monitoring.monitor import (
    RetrievalMonitor,
    RetrievalSummary,
)

__all__ = [
    "RetrievalEvent",
    "EventStore",
    "FileEventStore",
    "InMemoryEventStore",
    "get_event_store",
    "RetrievalMonitor",
    "RetrievalSummary",
]
