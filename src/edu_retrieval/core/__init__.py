"""
Core module - shared protocols, result types and exceptions.

This module provides the foundational contracts that enable:
- Dependency injection of the vector index and embedding provider
- Easy testing with in-memory implementations
- Clear separation between engine logic and I/O

USAGE:
------
from edu_retrieval.core import VectorIndex, EmbeddingProvider

class MyIndex:
    '''Implements VectorIndex protocol.'''
    ...
"""

from edu_retrieval.core.exceptions import (
    RetrievalError,
    InvalidArgumentError,
    IndexUnavailableError,
    EmbeddingError,
)
from edu_retrieval.core.protocols import (
    # Protocols
    EmbeddingProvider,
    VectorIndex,
    # Data classes
    QueryResult,
    GetResult,
)

__all__ = [
    # Exceptions
    "RetrievalError",
    "InvalidArgumentError",
    "IndexUnavailableError",
    "EmbeddingError",
    # Protocols
    "EmbeddingProvider",
    "VectorIndex",
    # Data classes
    "QueryResult",
    "GetResult",
]
