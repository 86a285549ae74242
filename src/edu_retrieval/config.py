"""
Engine configuration.

Every tuning knob of the retrieval engine lives here as a named,
overridable default. The values were chosen empirically and are meant
to be tuned per corpus (see `evals.retrieval_eval.optimize_alpha`).

Environment Variables:
    RETRIEVAL_ALPHA: Keyword weight in the hybrid score (default: 0.6)
    RETRIEVAL_LAMBDA: Relevance weight in MMR selection (default: 0.7)
    RETRIEVAL_CATEGORY_LAMBDA: MMR lambda inside category sub-searches (default: 0.6)
    RETRIEVAL_MIN_CANDIDATES: Candidates that end the relaxation loop (default: 10)
    RETRIEVAL_INDEX_TIMEOUT_S: Vector index timeout in seconds (default: 5)
    RETRIEVAL_EMBEDDING_TIMEOUT_S: Embedding request timeout in seconds (default: 10)
    RETRIEVAL_EMBEDDING_BATCH_SIZE: Texts per embedding request (default: 256)
"""

from __future__ import annotations

import os
from dataclasses import dataclass, field


def _env_float(name: str, default: float) -> float:
    raw = os.environ.get(name)
    return float(raw) if raw not in (None, "") else default


def _env_int(name: str, default: int) -> int:
    raw = os.environ.get(name)
    return int(raw) if raw not in (None, "") else default


def _env_bool(name: str, default: bool) -> bool:
    raw = os.environ.get(name)
    if raw in (None, ""):
        return default
    return raw.lower() in ("true", "1", "yes")


@dataclass
class ScoringConfig:
    """Constants of the length-normalised keyword score."""

    k1: float = 0.5
    k2: float = 1.5
    exact_match_weight: float = 2.0
    partial_match_weight: float = 0.5
    default_avg_doc_length: float = 100.0
    # Candidates with no positive score survive only above this vector relevance
    min_vector_relevance: float = 0.1


@dataclass
class EngineConfig:
    """Configuration for RetrievalEngine."""

    alpha: float = 0.6
    mmr_lambda: float = 0.7
    category_lambda: float = 0.6

    # Candidate pool = max(k * oversample, min_pool)
    candidate_oversample: int = 3
    min_candidate_pool: int = 30
    diversity_oversample: int = 4
    min_diversity_pool: int = 50

    # Relaxation stops once a stage yields min(candidate_size, min_candidates)
    min_candidates: int = 10
    accept_exhausted_stage: bool = True

    # Text similarity above which two chunks count as near-duplicates;
    # diversity searches keep only the most relevant of each group (1.0 disables)
    near_duplicate_threshold: float = 0.8

    embedding_batch_size: int = 256
    embedding_batch_delay_s: float = 0.25
    add_batch_size: int = 500

    index_timeout_s: float = 5.0
    embedding_timeout_s: float = 10.0

    scoring: ScoringConfig = field(default_factory=ScoringConfig)

    @classmethod
    def from_env(cls) -> "EngineConfig":
        """Load config from environment variables."""
        defaults = cls()
        return cls(
            alpha=_env_float("RETRIEVAL_ALPHA", defaults.alpha),
            mmr_lambda=_env_float("RETRIEVAL_LAMBDA", defaults.mmr_lambda),
            category_lambda=_env_float("RETRIEVAL_CATEGORY_LAMBDA", defaults.category_lambda),
            min_candidates=_env_int("RETRIEVAL_MIN_CANDIDATES", defaults.min_candidates),
            accept_exhausted_stage=_env_bool(
                "RETRIEVAL_ACCEPT_EXHAUSTED_STAGE", defaults.accept_exhausted_stage
            ),
            embedding_batch_size=_env_int(
                "RETRIEVAL_EMBEDDING_BATCH_SIZE", defaults.embedding_batch_size
            ),
            index_timeout_s=_env_float("RETRIEVAL_INDEX_TIMEOUT_S", defaults.index_timeout_s),
            embedding_timeout_s=_env_float(
                "RETRIEVAL_EMBEDDING_TIMEOUT_S", defaults.embedding_timeout_s
            ),
        )

    def candidate_size(self, k: int) -> int:
        """Candidate pool size for a hybrid search returning k documents."""
        return max(k * self.candidate_oversample, self.min_candidate_pool)

    def diversity_candidate_size(self, k: int) -> int:
        """Candidate pool size for an MMR search returning k documents."""
        return max(k * self.diversity_oversample, self.min_diversity_pool)
