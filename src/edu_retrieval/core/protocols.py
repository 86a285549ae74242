"""
Core protocols defining contracts for the retrieval engine.

All infrastructure components implement these protocols,
enabling dependency injection and easy testing.

PATTERN: This follows the same structure as embeddings/openai_embeddings.py
- Protocol defines the contract
- Multiple implementations possible
- Factory functions for instantiation
- Test doubles for fast unit tests
"""

from __future__ import annotations

from dataclasses import dataclass, field
from typing import Any, Protocol, Sequence, runtime_checkable

import numpy as np


# ---------------------------------------------------------------------------
# EMBEDDING PROVIDER PROTOCOL
# ---------------------------------------------------------------------------


@runtime_checkable
class EmbeddingProvider(Protocol):
    """
    Contract for embedding generation.

    Implementations:
    - OpenAIEmbeddings (production)
    - MockEmbeddings (testing)
    """

    def embed(self, text: str) -> np.ndarray:
        """Generate embedding for a single text."""
        ...

    def embed_batch(self, texts: list[str]) -> list[np.ndarray]:
        """Generate embeddings for multiple texts, preserving order."""
        ...


# ---------------------------------------------------------------------------
# VECTOR INDEX PROTOCOL
# ---------------------------------------------------------------------------


@dataclass
class QueryResult:
    """Columnar result of a nearest-neighbour query, closest first."""

    ids: list[str] = field(default_factory=list)
    documents: list[str] = field(default_factory=list)
    metadatas: list[dict[str, Any]] = field(default_factory=list)
    distances: list[float] = field(default_factory=list)

    def __len__(self) -> int:
        return len(self.ids)


@dataclass
class GetResult:
    """Columnar result of a plain (unranked) fetch."""

    ids: list[str] = field(default_factory=list)
    documents: list[str] = field(default_factory=list)
    metadatas: list[dict[str, Any]] = field(default_factory=list)

    def __len__(self) -> int:
        return len(self.ids)


@runtime_checkable
class VectorIndex(Protocol):
    """
    Contract for the vector index.

    `where` is the index's dict dialect produced by
    `retrieval.filters.to_where`: a bare leaf or an `$and` conjunction.

    Implementations:
    - PgVectorIndex (production with PostgreSQL)
    - InMemoryVectorIndex (testing/development)
    """

    def query(
        self,
        collection: str,
        *,
        embedding: np.ndarray | None = None,
        text: str | None = None,
        k: int = 10,
        where: dict[str, Any] | None = None,
    ) -> QueryResult:
        """Filtered nearest-neighbour query by embedding, or lexical query by text."""
        ...

    def get(
        self,
        collection: str,
        *,
        ids: Sequence[str] | None = None,
        where: dict[str, Any] | None = None,
        limit: int | None = None,
    ) -> GetResult:
        """Fetch documents without ranking."""
        ...

    def add(
        self,
        collection: str,
        ids: Sequence[str],
        documents: Sequence[str],
        metadatas: Sequence[dict[str, Any]],
        embeddings: Sequence[np.ndarray],
    ) -> None:
        """Insert or replace documents."""
        ...

    def list_collections(self) -> list[str]:
        """Names of collections holding at least one document."""
        ...

    def delete_collection(self, collection: str) -> None:
        """Remove every document in a collection."""
        ...
