"""
Hybrid scorer - dense + sparse relevance in one number.

    combined = alpha * keyword_score + (1 - alpha) * vector_relevance

The vector side comes from the index distance. The keyword side is a
saturating, length-normalised term frequency computed against each
candidate's text, plus a smaller bonus for partial (substring) token
matches:

    tf       = occurrences / doc_len
    exact    = w_exact * tf / (tf + k1 + k2 * doc_len / avg_doc_len)
    partial  = w_partial * partial_hits / doc_len

alpha is a per-call parameter: 0 gives pure vector ranking, 1 pure
keyword ranking.
"""

from __future__ import annotations

import logging
from typing import Sequence

from edu_retrieval.config import ScoringConfig
from edu_retrieval.core.exceptions import InvalidArgumentError
from edu_retrieval.retrieval.document import Candidate
from edu_retrieval.retrieval.tokenizer import normalize_text, tokenize

logger = logging.getLogger(__name__)


def check_unit_interval(name: str, value: float) -> float:
    """Validate a weight in [0, 1]."""
    if not 0.0 <= value <= 1.0:
        raise InvalidArgumentError(f"{name} must be within [0, 1], got {value}")
    return value


def query_terms(query: str) -> list[str]:
    """Distinct query terms (length > 1), in query order."""
    return list(dict.fromkeys(tokenize(query)))


def keyword_score(
    terms: Sequence[str],
    text: str,
    avg_doc_length: float,
    config: ScoringConfig | None = None,
) -> float:
    """Sum of per-term saturating TF contributions for one text."""
    config = config or ScoringConfig()
    doc_terms = tokenize(text)
    doc_length = len(doc_terms)
    if not terms or doc_length == 0:
        return 0.0

    folded = normalize_text(text)
    avg_doc_length = avg_doc_length or config.default_avg_doc_length
    score = 0.0

    for term in terms:
        occurrences = folded.count(term)
        if occurrences:
            tf = occurrences / doc_length
            saturation = tf + config.k1 + config.k2 * (doc_length / avg_doc_length)
            score += config.exact_match_weight * tf / saturation

        partial_hits = sum(1 for doc_term in doc_terms if term in doc_term or doc_term in term)
        if partial_hits:
            score += config.partial_match_weight * partial_hits / doc_length

    return score


def score_candidates(
    candidates: Sequence[Candidate],
    query: str,
    alpha: float,
    config: ScoringConfig | None = None,
) -> list[Candidate]:
    """
    Score candidates and return them sorted by combined score, best first.

    An empty query skips scoring and keeps the index (vector) order.
    Candidates with no positive combined score are kept only when their
    vector relevance reaches `min_vector_relevance`.
    """
    check_unit_interval("alpha", alpha)
    config = config or ScoringConfig()

    terms = query_terms(query or "")
    if not terms:
        return list(candidates)

    lengths = [len(tokenize(candidate.text)) for candidate in candidates]
    nonempty = [length for length in lengths if length]
    avg_doc_length = sum(nonempty) / len(nonempty) if nonempty else config.default_avg_doc_length

    scored: list[Candidate] = []
    for candidate in candidates:
        kw = keyword_score(terms, candidate.text, avg_doc_length, config)
        vector = candidate.vector_relevance
        combined = alpha * kw + (1 - alpha) * vector

        if combined <= 0 and vector < config.min_vector_relevance:
            continue
        scored.append(candidate.scored(keyword_score=kw, combined_score=combined))

    dropped = len(candidates) - len(scored)
    if dropped:
        logger.debug(f"Dropped {dropped} candidates with no keyword or vector signal")

    # sorted() is stable: equal scores keep the index order
    scored = sorted(scored, key=lambda c: c.combined_score, reverse=True)
    if scored:
        top = scored[0]
        logger.debug(
            f"Top hybrid score {top.combined_score:.3f} "
            f"(vector {top.vector_relevance:.3f}, keyword {top.keyword_score:.3f}, alpha={alpha})"
        )
    return scored
