"""
Seed data for the retrieval system.

This package contains externalized curriculum content, kept apart from
the engine so local environments and tests can load controlled data.
"""

from edu_retrieval.retrieval.seeds.science_curriculum import (
    DEFAULT_COLLECTION,
    get_science_documents,
    seed_index,
)

__all__ = ["DEFAULT_COLLECTION", "get_science_documents", "seed_index"]
