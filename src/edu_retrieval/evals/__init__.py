"""
Evals module - retrieval quality metrics and alpha tuning.
"""

from edu_retrieval.evals.retrieval_eval import (
    DEFAULT_ALPHA_GRID,
    AlphaSearchResult,
    RetrievalEvalReport,
    RetrievalEvalResult,
    RetrievalMetrics,
    calculate_retrieval_metrics,
    optimize_alpha,
    run_retrieval_eval,
)

__all__ = [
    "DEFAULT_ALPHA_GRID",
    "AlphaSearchResult",
    "RetrievalEvalReport",
    "RetrievalEvalResult",
    "RetrievalMetrics",
    "calculate_retrieval_metrics",
    "optimize_alpha",
    "run_retrieval_eval",
]
