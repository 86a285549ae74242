"""
RetrievalMonitor - records every retrieval call and summarises recent ones.

An empty retrieval is the signal worth watching: the generator downstream
will produce ungrounded questions. Those are logged at warning level as
they happen and counted in the summary.
"""

from __future__ import annotations

import logging
from collections import Counter
from dataclasses import dataclass, field
from datetime import datetime, timedelta, timezone

from edu_retrieval.monitoring.store import EventStore, RetrievalEvent

logger = logging.getLogger(__name__)


@dataclass
class RetrievalSummary:
    """Aggregate over the events of a time window."""

    total_requests: int
    success_rate: float
    avg_documents_retrieved: float
    failed_retrievals: int
    avg_top_score: float | None = None
    strategies: dict[str, int] = field(default_factory=dict)

    def to_dict(self) -> dict:
        return {
            "total_requests": self.total_requests,
            "success_rate": self.success_rate,
            "avg_documents_retrieved": self.avg_documents_retrieved,
            "failed_retrievals": self.failed_retrievals,
            "avg_top_score": self.avg_top_score,
            "strategies": dict(self.strategies),
        }


class RetrievalMonitor:
    """Writes RetrievalEvents to an EventStore."""

    def __init__(self, store: EventStore):
        self.store = store

    def log_retrieval(
        self,
        job_id: str | None,
        query: str,
        collection: str,
        documents_retrieved: int,
        strategy: str,
        top_score: float | None = None,
    ) -> RetrievalEvent:
        event = RetrievalEvent(
            job_id=job_id,
            collection=collection,
            query=query,
            strategy=strategy,
            documents_retrieved=documents_retrieved,
            top_score=top_score,
            success=documents_retrieved > 0,
        )
        self.store.append(event)

        if not event.success:
            logger.warning(
                f"Empty retrieval (job={job_id}, collection={collection}, "
                f"strategy={strategy}, query={query!r})"
            )
        return event

    def summary(self, hours: float = 24) -> RetrievalSummary:
        """Summarise events from the last `hours` hours."""
        cutoff = datetime.now(timezone.utc) - timedelta(hours=hours)
        events = self.store.since(cutoff)

        total = len(events)
        successes = sum(1 for event in events if event.success)
        documents = sum(event.documents_retrieved for event in events)
        # Fallback results carry no score
        top_scores = [event.top_score for event in events if event.top_score is not None]

        return RetrievalSummary(
            total_requests=total,
            success_rate=successes / total if total else 0.0,
            avg_documents_retrieved=documents / total if total else 0.0,
            failed_retrievals=total - successes,
            avg_top_score=sum(top_scores) / len(top_scores) if top_scores else None,
            strategies=dict(Counter(event.strategy for event in events)),
        )
