"""
SearchSession - per-job retrieval context.

Holds the ids of documents already used in one generation job so that
later searches in the same job do not hand the generator the same
document twice. A session is created per job and passed explicitly to
every retrieval call; nothing is shared between jobs.

USAGE:
------
session = SearchSession(job_id="job-42")
docs = engine.diversity_search("grade6_science", "중력", k=5, session=session)
more = engine.diversity_search("grade6_science", "마찰력", k=5, session=session)
# `more` contains none of `docs`
"""

from __future__ import annotations

import threading
import uuid
from collections import Counter
from dataclasses import dataclass, field
from datetime import datetime
from typing import Iterable


@dataclass
class SearchSession:
    """
    Documents used so far in one generation job.

    `lock` guards read-then-write sequences: a category sub-search reads
    the used set, selects, and records its picks while holding it, so two
    concurrent sub-searches cannot pick the same document.
    """

    job_id: str = field(default_factory=lambda: uuid.uuid4().hex)
    created_at: str = field(default_factory=lambda: datetime.now().isoformat())
    lock: threading.RLock = field(default_factory=threading.RLock, repr=False, compare=False)
    _usage: Counter = field(default_factory=Counter, repr=False)

    @property
    def used_ids(self) -> frozenset[str]:
        """Snapshot of document ids used in this job."""
        with self.lock:
            return frozenset(self._usage)

    def excluded(self, extra: Iterable[str] = ()) -> set[str]:
        """Used ids plus caller-supplied exclusions."""
        with self.lock:
            return set(self._usage) | set(extra)

    def mark_used(self, ids: Iterable[str]) -> None:
        """Record documents handed to the generator."""
        with self.lock:
            self._usage.update(ids)

    def usage_count(self, doc_id: str) -> int:
        with self.lock:
            return self._usage[doc_id]

    def reset(self) -> None:
        """Forget everything (start of a new generation round)."""
        with self.lock:
            self._usage.clear()

    def __len__(self) -> int:
        with self.lock:
            return len(self._usage)
