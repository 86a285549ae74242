"""
Retrieval module - hybrid search and diversity ranking for question generation.

This module provides:
- Document / DocumentMetadata: the document model
- normalize_filter(): loose metadata filter -> Eq | In | And
- plan_relaxation(): STRICT -> ... -> UNFILTERED filter stages
- score_candidates() / select_diverse(): hybrid scoring and MMR
- PgVectorIndex / InMemoryVectorIndex / get_vector_index(): index adapters
- RetrievalEngine: the public search API
- SearchSession: per-job used-document set

ARCHITECTURE:
-------------
Same pattern as the embeddings module:
1. Protocol defines the contract (in core.protocols)
2. Multiple implementations (PgVectorIndex, InMemoryVectorIndex)
3. Factory function for instantiation
4. Test doubles for fast unit tests
"""

# Document model
from edu_retrieval.retrieval.document import Candidate, Document, DocumentMetadata

# Filters and keyword flags
from edu_retrieval.retrieval.filters import And, Eq, In, normalize_filter, to_where
from edu_retrieval.retrieval.keyword_flags import KeywordMode, decode_keywords, encode_keywords
from edu_retrieval.retrieval.relaxation import RelaxationStage, plan_relaxation

# Ranking
from edu_retrieval.retrieval.scoring import score_candidates
from edu_retrieval.retrieval.mmr import category_quotas, select_diverse, text_similarity

# Index implementations and factory
from edu_retrieval.retrieval.store import (
    VectorIndexConfig,
    PgVectorIndex,
    InMemoryVectorIndex,
    get_vector_index,
)

# Engine
from edu_retrieval.retrieval.session import SearchSession
from edu_retrieval.retrieval.engine import CategoryQuery, RetrievalEngine

# Seed data
from edu_retrieval.retrieval.seeds import get_science_documents, seed_index

__all__ = [
    # Document
    "Candidate",
    "Document",
    "DocumentMetadata",
    # Filters
    "And",
    "Eq",
    "In",
    "normalize_filter",
    "to_where",
    "KeywordMode",
    "encode_keywords",
    "decode_keywords",
    "RelaxationStage",
    "plan_relaxation",
    # Ranking
    "score_candidates",
    "select_diverse",
    "category_quotas",
    "text_similarity",
    # Config
    "VectorIndexConfig",
    # Implementations
    "PgVectorIndex",
    "InMemoryVectorIndex",
    # Factory
    "get_vector_index",
    # Engine
    "SearchSession",
    "CategoryQuery",
    "RetrievalEngine",
    # Seeds
    "get_science_documents",
    "seed_index",
]
