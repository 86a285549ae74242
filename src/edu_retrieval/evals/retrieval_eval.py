"""
Retrieval Quality Eval

Measures whether the engine surfaces the RIGHT chunks for a
question-generation request, and tunes the hybrid weight alpha against
a golden set.

METRICS EXPLAINED:
------------------
RECALL: What fraction of expected docs did we retrieve?
  - Formula: |retrieved ∩ expected| / |expected|

PRECISION: What fraction of retrieved docs were expected?
  - Formula: |retrieved ∩ expected| / |retrieved|

F1 SCORE: Harmonic mean of recall and precision
  - Formula: 2 * (precision * recall) / (precision + recall)

ALPHA SEARCH:
-------------
`optimize_alpha` runs every case at every alpha of a grid and keeps the
alpha with the best mean F1. Ties go to the earlier grid value.
"""

from __future__ import annotations

import logging
from dataclasses import dataclass, field
from typing import TYPE_CHECKING, Sequence

from edu_retrieval.core.exceptions import InvalidArgumentError
from edu_retrieval.golden_sets import RetrievalCase, get_all_golden_cases

if TYPE_CHECKING:
    from edu_retrieval.retrieval.engine import RetrievalEngine

logger = logging.getLogger(__name__)

DEFAULT_ALPHA_GRID = (0.3, 0.4, 0.5, 0.6, 0.7, 0.8)


# ---------------------------------------------------------------------------
# METRICS
# ---------------------------------------------------------------------------


@dataclass
class RetrievalMetrics:
    """Retrieval quality metrics for a single case."""
    recall: float
    precision: float
    f1_score: float
    retrieved_docs: list[str]
    expected_docs: list[str]
    missing_docs: list[str]
    extra_docs: list[str]


@dataclass
class RetrievalEvalResult:
    """Result of retrieval eval for a single case."""
    case_id: str
    passed: bool
    metrics: RetrievalMetrics


@dataclass
class RetrievalEvalReport:
    """Aggregate retrieval eval results."""
    total_cases: int
    passed_cases: int
    failed_cases: int
    avg_recall: float
    avg_precision: float
    avg_f1: float
    threshold: float
    alpha: float
    results: list[RetrievalEvalResult]

    @property
    def all_passed(self) -> bool:
        return self.failed_cases == 0


@dataclass
class AlphaSearchResult:
    """Outcome of a grid search over alpha."""
    best_alpha: float
    best_f1: float
    scores: dict[float, float] = field(default_factory=dict)


def calculate_retrieval_metrics(
    retrieved: list[str],
    expected: list[str],
) -> RetrievalMetrics:
    """Precision, recall and F1 of retrieved ids against expected ids."""
    retrieved_set = set(retrieved)
    expected_set = set(expected)

    if not expected_set:
        # No expected docs - only an empty retrieval is right
        return RetrievalMetrics(
            recall=1.0,
            precision=1.0 if not retrieved_set else 0.0,
            f1_score=1.0 if not retrieved_set else 0.0,
            retrieved_docs=retrieved,
            expected_docs=expected,
            missing_docs=[],
            extra_docs=sorted(retrieved_set),
        )

    overlap = retrieved_set & expected_set
    recall = len(overlap) / len(expected_set)
    precision = len(overlap) / len(retrieved_set) if retrieved_set else 0.0
    f1 = 2 * (precision * recall) / (precision + recall) if precision + recall > 0 else 0.0

    return RetrievalMetrics(
        recall=recall,
        precision=precision,
        f1_score=f1,
        retrieved_docs=retrieved,
        expected_docs=expected,
        missing_docs=sorted(expected_set - retrieved_set),
        extra_docs=sorted(retrieved_set - expected_set),
    )


# ---------------------------------------------------------------------------
# EVALUATION
# ---------------------------------------------------------------------------


def run_retrieval_eval(
    engine: RetrievalEngine,
    collection: str,
    cases: Sequence[RetrievalCase] | None = None,
    alpha: float | None = None,
    threshold: float = 0.8,
) -> RetrievalEvalReport:
    """
    Run every case through `engine.hybrid_search` and score it.

    Args:
        engine: Engine to evaluate
        collection: Collection holding the golden documents
        cases: Cases to evaluate. Defaults to all golden cases.
        alpha: Hybrid weight (engine default if None)
        threshold: Minimum F1 score for a case to pass

    Returns:
        RetrievalEvalReport with metrics for each case.
    """
    cases = list(cases) if cases is not None else get_all_golden_cases()
    effective_alpha = engine.config.alpha if alpha is None else alpha
    results: list[RetrievalEvalResult] = []

    for case in cases:
        documents = engine.hybrid_search(
            collection, case.query, filter=case.filter, k=case.k, alpha=effective_alpha
        )
        metrics = calculate_retrieval_metrics([doc.id for doc in documents], case.expected_doc_ids)
        passed = metrics.f1_score >= threshold
        results.append(RetrievalEvalResult(case_id=case.id, passed=passed, metrics=metrics))
        logger.debug(
            f"[{'PASS' if passed else 'FAIL'}] {case.id} F1={metrics.f1_score:.2f} "
            f"missing={metrics.missing_docs}"
        )

    if results:
        avg_recall = sum(r.metrics.recall for r in results) / len(results)
        avg_precision = sum(r.metrics.precision for r in results) / len(results)
        avg_f1 = sum(r.metrics.f1_score for r in results) / len(results)
        passed_count = sum(1 for r in results if r.passed)
    else:
        avg_recall = avg_precision = avg_f1 = 0.0
        passed_count = 0

    return RetrievalEvalReport(
        total_cases=len(results),
        passed_cases=passed_count,
        failed_cases=len(results) - passed_count,
        avg_recall=avg_recall,
        avg_precision=avg_precision,
        avg_f1=avg_f1,
        threshold=threshold,
        alpha=effective_alpha,
        results=results,
    )


def optimize_alpha(
    engine: RetrievalEngine,
    collection: str,
    cases: Sequence[RetrievalCase] | None = None,
    alpha_grid: Sequence[float] = DEFAULT_ALPHA_GRID,
) -> AlphaSearchResult:
    """
    Grid-search the hybrid weight alpha by mean F1 over the cases.

    Returns:
        Best alpha, its mean F1, and the mean F1 of every grid value.
    """
    if not alpha_grid:
        raise InvalidArgumentError("alpha_grid must not be empty")
    cases = list(cases) if cases is not None else get_all_golden_cases()

    scores: dict[float, float] = {}
    for alpha in alpha_grid:
        report = run_retrieval_eval(engine, collection, cases, alpha=alpha)
        scores[alpha] = report.avg_f1
        logger.info(f"alpha={alpha:.2f}: mean F1 {report.avg_f1:.3f}")

    best_alpha = max(scores, key=lambda a: (scores[a], -list(alpha_grid).index(a)))
    logger.info(f"Best alpha {best_alpha:.2f} (mean F1 {scores[best_alpha]:.3f})")
    return AlphaSearchResult(best_alpha=best_alpha, best_f1=scores[best_alpha], scores=scores)
