"""
Vector index implementations following the gold standard pattern.

Pattern: Protocol -> Production impl -> Test double -> Factory

This module contains:
1. VectorIndexConfig - Configuration dataclass
2. PgVectorIndex - PostgreSQL with pgvector (production)
3. InMemoryVectorIndex - In-memory index (testing/development)
4. get_vector_index() - Factory function

Both implementations speak the same filter dialect (`filters.to_where`):
a bare leaf or an `$and` conjunction of `{"field": value}` and
`{"field": {"$in": [...]}}` predicates over string-typed metadata plus
boolean keyword flags.
"""

from __future__ import annotations

import logging
import os
import re
from dataclasses import dataclass
from typing import Any, Sequence

import numpy as np
import psycopg
from pgvector.psycopg import register_vector
from psycopg.types.json import Jsonb

from edu_retrieval.core import (
    GetResult,
    IndexUnavailableError,
    InvalidArgumentError,
    QueryResult,
)
from edu_retrieval.retrieval.filters import (
    And,
    Eq,
    FilterExpression,
    leaves_of,
    matches,
    normalize_filter,
)
from edu_retrieval.retrieval.scoring import query_terms
from edu_retrieval.retrieval.tokenizer import normalize_text

logger = logging.getLogger(__name__)

_COLLECTION_NAME = re.compile(r"^[A-Za-z0-9][A-Za-z0-9._-]{1,61}[A-Za-z0-9]$")

# Lexical (text-mode) hits carry no vector signal
TEXT_MODE_DISTANCE = 1.0


def validate_collection_name(name: Any) -> str:
    """
    Reject names the index cannot hold: 3-63 characters, alphanumeric at
    both ends, `.`, `_` and `-` inside.
    """
    if not isinstance(name, str) or not _COLLECTION_NAME.match(name) or ".." in name:
        raise InvalidArgumentError(f"Invalid collection name: {name!r}")
    return name


# ---------------------------------------------------------------------------
# CONFIGURATION
# ---------------------------------------------------------------------------


@dataclass
class VectorIndexConfig:
    """Configuration for the vector index."""

    connection_string: str = "postgresql://localhost/edu_retrieval"
    embedding_dim: int = 1536
    table_name: str = "edu_documents"
    timeout_s: float = 5.0

    @classmethod
    def from_env(cls) -> "VectorIndexConfig":
        """Load config from environment variables."""
        defaults = cls()
        return cls(
            connection_string=os.environ.get("DATABASE_URL", defaults.connection_string),
            embedding_dim=int(os.environ.get("EMBEDDING_DIM", defaults.embedding_dim)),
            table_name=os.environ.get("VECTOR_TABLE_NAME", defaults.table_name),
            timeout_s=float(os.environ.get("RETRIEVAL_INDEX_TIMEOUT_S", defaults.timeout_s)),
        )


# ---------------------------------------------------------------------------
# FILTER COMPILATION (pgvector)
# ---------------------------------------------------------------------------

# Set membership against a scalar or against any element of a stored array
_MEMBERSHIP_SQL = (
    "CASE WHEN jsonb_typeof(metadata -> %s) = 'array' "
    "THEN EXISTS (SELECT 1 FROM jsonb_array_elements_text(metadata -> %s) AS member "
    "WHERE lower(member) = ANY(%s)) "
    "ELSE lower(metadata ->> %s) = ANY(%s) END"
)


def compile_where(where: dict[str, Any] | FilterExpression | None) -> tuple[str, list[Any]]:
    """
    Compile a filter to a SQL condition over the JSONB `metadata` column.

    Returns ("", []) for no filter. Equality on text uses `->>`, keyword
    flags use JSONB containment, and set membership compares lower-cased
    stored values, element by element when the stored value is an array.
    """
    expr = normalize_filter(where)
    clauses: list[str] = []
    params: list[Any] = []

    for leaf in leaves_of(expr):
        if isinstance(leaf, Eq) and isinstance(leaf.value, bool):
            clauses.append("metadata @> %s")
            params.append(Jsonb({leaf.field: leaf.value}))
        elif isinstance(leaf, Eq):
            clauses.append("metadata ->> %s = %s")
            params.extend([leaf.field, leaf.value])
        else:
            values = list(leaf.values)
            clauses.append(_MEMBERSHIP_SQL)
            params.extend([leaf.field, leaf.field, values, leaf.field, values])

    return " AND ".join(clauses), params


# ---------------------------------------------------------------------------
# PGVECTOR INDEX (Production)
# ---------------------------------------------------------------------------


class PgVectorIndex:
    """
    PostgreSQL vector index using pgvector.

    One table holds every collection; metadata lives in a JSONB column so
    arbitrary fields (including per-keyword flags) can be filtered without
    schema changes.

    Connection and statement timeouts are bounded by `config.timeout_s`.
    Connection failures and timeouts surface as IndexUnavailableError.
    """

    def __init__(self, config: VectorIndexConfig):
        self.config = config
        self._conn = None

    def connect(self) -> None:
        """Establish database connection."""
        timeout_ms = int(self.config.timeout_s * 1000)
        try:
            self._conn = psycopg.connect(
                self.config.connection_string,
                autocommit=True,
                connect_timeout=max(1, int(self.config.timeout_s)),
                options=f"-c statement_timeout={timeout_ms}",
            )
            self._conn.execute("CREATE EXTENSION IF NOT EXISTS vector")
            register_vector(self._conn)
        except psycopg.OperationalError as e:
            self._conn = None
            raise IndexUnavailableError(f"Could not connect to vector index: {e}") from e

    def close(self) -> None:
        """Close database connection."""
        if self._conn:
            self._conn.close()
            self._conn = None

    def _execute(self, sql: str, params: Sequence[Any] = ()) -> list[tuple]:
        if not self._conn:
            self.connect()
        try:
            cursor = self._conn.execute(sql, params)
            return cursor.fetchall() if cursor.description else []
        except psycopg.OperationalError as e:
            # Covers statement timeouts (QueryCanceled) and dropped connections
            self.close()
            raise IndexUnavailableError(f"Vector index query failed: {e}") from e

    def create_schema(self) -> None:
        """Create the documents table and indexes."""
        table = self.config.table_name
        self._execute(
            f"""
            CREATE TABLE IF NOT EXISTS {table} (
                collection TEXT NOT NULL,
                id TEXT NOT NULL,
                content TEXT NOT NULL,
                metadata JSONB NOT NULL DEFAULT '{{}}'::jsonb,
                embedding vector({self.config.embedding_dim}),
                PRIMARY KEY (collection, id)
            )
        """
        )

        # HNSW index for fast cosine similarity search
        self._execute(
            f"""
            CREATE INDEX IF NOT EXISTS {table}_embedding_idx
            ON {table}
            USING hnsw (embedding vector_cosine_ops)
            WITH (m = 16, ef_construction = 64)
        """
        )

        # GIN index for metadata containment (keyword flags)
        self._execute(
            f"""
            CREATE INDEX IF NOT EXISTS {table}_metadata_idx
            ON {table}
            USING GIN (metadata jsonb_path_ops)
        """
        )

    def query(
        self,
        collection: str,
        *,
        embedding: np.ndarray | None = None,
        text: str | None = None,
        k: int = 10,
        where: dict[str, Any] | None = None,
    ) -> QueryResult:
        """Nearest-neighbour query by embedding, or lexical query by text."""
        condition, filter_params = compile_where(where)
        extra = f" AND {condition}" if condition else ""
        table = self.config.table_name

        if embedding is not None:
            rows = self._execute(
                f"""
                SELECT id, content, metadata, embedding <=> %s AS distance
                FROM {table}
                WHERE collection = %s{extra}
                ORDER BY distance
                LIMIT %s
                """,
                [np.asarray(embedding, dtype=np.float32), collection, *filter_params, k],
            )
        elif text:
            patterns = [f"%{term}%" for term in query_terms(text)]
            if not patterns:
                return QueryResult()
            rows = self._execute(
                f"""
                SELECT id, content, metadata, {TEXT_MODE_DISTANCE} AS distance
                FROM {table}
                WHERE collection = %s AND content ILIKE ANY(%s){extra}
                ORDER BY (
                    SELECT count(*) FROM unnest(%s::text[]) AS p WHERE content ILIKE p
                ) DESC, id
                LIMIT %s
                """,
                [collection, patterns, *filter_params, patterns, k],
            )
        else:
            raise InvalidArgumentError("query() needs an embedding or a text")

        return QueryResult(
            ids=[row[0] for row in rows],
            documents=[row[1] for row in rows],
            metadatas=[row[2] or {} for row in rows],
            distances=[float(row[3]) for row in rows],
        )

    def get(
        self,
        collection: str,
        *,
        ids: Sequence[str] | None = None,
        where: dict[str, Any] | None = None,
        limit: int | None = None,
    ) -> GetResult:
        """Fetch documents without ranking."""
        condition, params = compile_where(where)
        clauses = ["collection = %s"]
        all_params: list[Any] = [collection]
        if ids is not None:
            clauses.append("id = ANY(%s)")
            all_params.append(list(ids))
        if condition:
            clauses.append(condition)
            all_params.extend(params)

        sql = (
            f"SELECT id, content, metadata FROM {self.config.table_name} "
            f"WHERE {' AND '.join(clauses)} ORDER BY id"
        )
        if limit is not None:
            sql += " LIMIT %s"
            all_params.append(limit)

        rows = self._execute(sql, all_params)
        return GetResult(
            ids=[row[0] for row in rows],
            documents=[row[1] for row in rows],
            metadatas=[row[2] or {} for row in rows],
        )

    def add(
        self,
        collection: str,
        ids: Sequence[str],
        documents: Sequence[str],
        metadatas: Sequence[dict[str, Any]],
        embeddings: Sequence[np.ndarray],
    ) -> None:
        """Insert or replace documents."""
        if not (len(ids) == len(documents) == len(metadatas) == len(embeddings)):
            raise InvalidArgumentError("ids, documents, metadatas and embeddings differ in length")
        if not ids:
            return
        if not self._conn:
            self.connect()

        rows = [
            (collection, doc_id, content, Jsonb(metadata), np.asarray(emb, dtype=np.float32))
            for doc_id, content, metadata, emb in zip(ids, documents, metadatas, embeddings)
        ]
        try:
            with self._conn.cursor() as cur:
                cur.executemany(
                    f"""
                    INSERT INTO {self.config.table_name}
                        (collection, id, content, metadata, embedding)
                    VALUES (%s, %s, %s, %s, %s)
                    ON CONFLICT (collection, id) DO UPDATE SET
                        content = EXCLUDED.content,
                        metadata = EXCLUDED.metadata,
                        embedding = EXCLUDED.embedding
                    """,
                    rows,
                )
        except psycopg.OperationalError as e:
            self.close()
            raise IndexUnavailableError(f"Vector index insert failed: {e}") from e

    def list_collections(self) -> list[str]:
        rows = self._execute(
            f"SELECT DISTINCT collection FROM {self.config.table_name} ORDER BY collection"
        )
        return [row[0] for row in rows]

    def delete_collection(self, collection: str) -> None:
        self._execute(
            f"DELETE FROM {self.config.table_name} WHERE collection = %s", [collection]
        )


# ---------------------------------------------------------------------------
# IN-MEMORY INDEX (Testing/Development)
# ---------------------------------------------------------------------------


@dataclass
class _Entry:
    text: str
    metadata: dict[str, Any]
    embedding: np.ndarray


class InMemoryVectorIndex:
    """
    In-memory vector index for development/testing.

    Implements the same interface as PgVectorIndex but doesn't require
    Postgres. Uses cosine distance and evaluates filters in Python.
    """

    def __init__(self):
        self._collections: dict[str, dict[str, _Entry]] = {}

    def connect(self) -> None:
        """No-op for in-memory index."""
        pass

    def close(self) -> None:
        """No-op for in-memory index."""
        pass

    def create_schema(self) -> None:
        """No-op for in-memory index."""
        pass

    @staticmethod
    def _cosine_distance(a: np.ndarray, b: np.ndarray) -> float:
        norm = np.linalg.norm(a) * np.linalg.norm(b)
        if norm == 0:
            return 1.0
        return float(1.0 - np.dot(a, b) / norm)

    def _filtered(self, collection: str, where: dict[str, Any] | None) -> list[tuple[str, _Entry]]:
        expr = normalize_filter(where)
        entries = self._collections.get(collection, {})
        return [(doc_id, entry) for doc_id, entry in entries.items() if matches(expr, entry.metadata)]

    def query(
        self,
        collection: str,
        *,
        embedding: np.ndarray | None = None,
        text: str | None = None,
        k: int = 10,
        where: dict[str, Any] | None = None,
    ) -> QueryResult:
        """Search using cosine distance (or term hits in text mode)."""
        entries = self._filtered(collection, where)

        if embedding is not None:
            query_vec = np.asarray(embedding, dtype=np.float32)
            ranked = sorted(
                ((doc_id, entry, self._cosine_distance(query_vec, entry.embedding))
                 for doc_id, entry in entries),
                key=lambda row: row[2],
            )
        elif text:
            terms = query_terms(text)
            hits = [
                (doc_id, entry, sum(1 for term in terms if term in normalize_text(entry.text)))
                for doc_id, entry in entries
            ]
            ranked = [
                (doc_id, entry, TEXT_MODE_DISTANCE)
                for doc_id, entry, count in sorted(hits, key=lambda row: -row[2])
                if count > 0
            ]
        else:
            raise InvalidArgumentError("query() needs an embedding or a text")

        ranked = ranked[:k]
        return QueryResult(
            ids=[doc_id for doc_id, _, _ in ranked],
            documents=[entry.text for _, entry, _ in ranked],
            metadatas=[dict(entry.metadata) for _, entry, _ in ranked],
            distances=[distance for _, _, distance in ranked],
        )

    def get(
        self,
        collection: str,
        *,
        ids: Sequence[str] | None = None,
        where: dict[str, Any] | None = None,
        limit: int | None = None,
    ) -> GetResult:
        """Fetch in insertion order."""
        entries = self._filtered(collection, where)
        if ids is not None:
            wanted = set(ids)
            entries = [(doc_id, entry) for doc_id, entry in entries if doc_id in wanted]
        if limit is not None:
            entries = entries[:limit]
        return GetResult(
            ids=[doc_id for doc_id, _ in entries],
            documents=[entry.text for _, entry in entries],
            metadatas=[dict(entry.metadata) for _, entry in entries],
        )

    def add(
        self,
        collection: str,
        ids: Sequence[str],
        documents: Sequence[str],
        metadatas: Sequence[dict[str, Any]],
        embeddings: Sequence[np.ndarray],
    ) -> None:
        """Insert documents into memory."""
        if not (len(ids) == len(documents) == len(metadatas) == len(embeddings)):
            raise InvalidArgumentError("ids, documents, metadatas and embeddings differ in length")
        entries = self._collections.setdefault(collection, {})
        for doc_id, content, metadata, emb in zip(ids, documents, metadatas, embeddings):
            entries[doc_id] = _Entry(
                text=content,
                metadata=dict(metadata),
                embedding=np.asarray(emb, dtype=np.float32),
            )

    def list_collections(self) -> list[str]:
        return sorted(name for name, entries in self._collections.items() if entries)

    def delete_collection(self, collection: str) -> None:
        self._collections.pop(collection, None)

    def count(self, collection: str) -> int:
        """Number of documents in a collection."""
        return len(self._collections.get(collection, {}))


# ---------------------------------------------------------------------------
# FACTORY FUNCTION
# ---------------------------------------------------------------------------


def get_vector_index(
    use_postgres: bool = False,
    config: VectorIndexConfig | None = None,
) -> PgVectorIndex | InMemoryVectorIndex:
    """
    Factory function to get the appropriate vector index.

    Args:
        use_postgres: Use PostgreSQL index (default: False for dev)
        config: Index configuration (read from env if not provided)

    Returns:
        VectorIndex implementation
    """
    if use_postgres:
        return PgVectorIndex(config or VectorIndexConfig.from_env())
    return InMemoryVectorIndex()
