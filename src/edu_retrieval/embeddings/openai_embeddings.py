"""
Embeddings Module - Single Responsibility: Generate text embeddings.

It has ONE job: convert text to vector embeddings. Batching limits and
the pause between batches keep large ingestions under the provider's
rate limits; anything that goes wrong surfaces as EmbeddingError.
"""

from __future__ import annotations

import hashlib
import logging
import os
import time

import numpy as np
from openai import OpenAI, OpenAIError

from edu_retrieval.core.exceptions import EmbeddingError
from edu_retrieval.core.protocols import EmbeddingProvider
from edu_retrieval.retrieval.tokenizer import tokenize

logger = logging.getLogger(__name__)


class OpenAIEmbeddings:
    """
    OpenAI-based embedding provider.

    Uses text-embedding-3-small by default (1536 dimensions).
    `embed_batch` splits its input into requests of `batch_size` texts and
    sleeps `batch_delay_s` between requests.
    """

    def __init__(
        self,
        model: str = "text-embedding-3-small",
        api_key: str | None = None,
        timeout: float = 10.0,
        batch_size: int = 256,
        batch_delay_s: float = 0.25,
    ):
        self.model = model
        self.batch_size = batch_size
        self.batch_delay_s = batch_delay_s
        self._client = OpenAI(
            api_key=api_key or os.environ.get("OPENAI_API_KEY"),
            timeout=timeout,
            max_retries=1,
        )

    @property
    def dimensions(self) -> int:
        """Return embedding dimensions for the model."""
        model_dims = {
            "text-embedding-3-small": 1536,
            "text-embedding-3-large": 3072,
            "text-embedding-ada-002": 1536,
        }
        return model_dims.get(self.model, 1536)

    def _create(self, texts: list[str]) -> list[np.ndarray]:
        try:
            response = self._client.embeddings.create(input=texts, model=self.model)
        except OpenAIError as e:
            raise EmbeddingError(f"Embedding request failed ({len(texts)} texts): {e}") from e
        return [np.array(item.embedding, dtype=np.float32) for item in response.data]

    def embed(self, text: str) -> np.ndarray:
        """Generate embedding for a single text."""
        return self._create([text])[0]

    def embed_batch(self, texts: list[str]) -> list[np.ndarray]:
        """Generate embeddings for multiple texts, one request per batch."""
        if not texts:
            return []

        vectors: list[np.ndarray] = []
        for start in range(0, len(texts), self.batch_size):
            if start and self.batch_delay_s:
                time.sleep(self.batch_delay_s)
            chunk = texts[start:start + self.batch_size]
            vectors.extend(self._create(chunk))
            logger.debug(f"Embedded {min(start + len(chunk), len(texts))}/{len(texts)} texts")
        return vectors


class MockEmbeddings:
    """
    Mock embedding provider for testing without API calls.

    Feature-hashes the text's tokens into a fixed number of buckets, so
    texts sharing words get nearby vectors and the same text always gets
    the same vector. NOT for production use - only for testing/development.
    """

    def __init__(self, dimensions: int = 1536):
        self._dimensions = dimensions

    @property
    def dimensions(self) -> int:
        return self._dimensions

    def embed(self, text: str) -> np.ndarray:
        """Generate deterministic bag-of-tokens embedding."""
        vector = np.zeros(self._dimensions, dtype=np.float32)
        for token in tokenize(text):
            digest = hashlib.sha256(token.encode("utf-8")).digest()
            bucket = int.from_bytes(digest[:4], "big") % self._dimensions
            vector[bucket] += 1.0 if digest[4] & 1 else -1.0
        norm = np.linalg.norm(vector)
        return vector / norm if norm else vector

    def embed_batch(self, texts: list[str]) -> list[np.ndarray]:
        """Generate embeddings for multiple texts."""
        return [self.embed(text) for text in texts]


def get_embedding_provider(
    use_mock: bool = False,
    timeout: float = 10.0,
    batch_size: int = 256,
    batch_delay_s: float = 0.25,
) -> EmbeddingProvider:
    """
    Factory function to get the appropriate embedding provider.

    Args:
        use_mock: If True, return MockEmbeddings (for testing)
        timeout: Request timeout for the OpenAI client, in seconds
        batch_size: Texts per embedding request
        batch_delay_s: Pause between embedding requests
    """
    if use_mock:
        return MockEmbeddings()
    return OpenAIEmbeddings(timeout=timeout, batch_size=batch_size, batch_delay_s=batch_delay_s)
