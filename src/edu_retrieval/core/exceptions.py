"""
Exception hierarchy for the retrieval engine.

Only programmer errors escape the search API. Index and embedding
failures are raised by the adapters and recovered by the engine
(relaxation, text mode, fallback), except during ingestion where an
embedding failure is fatal for the call.
"""


class RetrievalError(Exception):
    """Base class for retrieval engine errors."""


class InvalidArgumentError(RetrievalError, ValueError):
    """Raised for invalid arguments (bad collection name, k <= 0, weights out of range)."""


class IndexUnavailableError(RetrievalError):
    """The vector index could not be reached or timed out."""


class EmbeddingError(RetrievalError):
    """The embedding provider failed to produce vectors."""
