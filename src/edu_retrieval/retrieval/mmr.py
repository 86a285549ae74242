"""
Maximal Marginal Relevance (MMR) diversity selection.

Greedy selection that trades relevance against redundancy:

    mmr(c) = lambda * relevance(c) - (1 - lambda) * max_sim(c, selected)

lambda = 1 reduces to top-k by relevance; lambda = 0 ignores relevance
and greedily picks whatever is least similar to the current selection.
Similarity is a bag-of-tokens cosine over the shared tokenizer, so no
embeddings are needed for the candidates.

The greedy loop is O(k * n) similarity evaluations and not globally
optimal; each candidate's max similarity is updated incrementally
against the most recent pick only.
"""

from __future__ import annotations

import math
from collections import Counter
from typing import Collection, Iterable, Sequence

from edu_retrieval.core.exceptions import InvalidArgumentError
from edu_retrieval.retrieval.document import Candidate
from edu_retrieval.retrieval.scoring import check_unit_interval
from edu_retrieval.retrieval.tokenizer import term_counts


def _cosine(a: Counter[str], b: Counter[str]) -> float:
    if not a or not b:
        return 0.0
    if len(a) > len(b):
        a, b = b, a
    dot = sum(count * b[token] for token, count in a.items() if token in b)
    if dot == 0:
        return 0.0
    norm_a = math.sqrt(sum(v * v for v in a.values()))
    norm_b = math.sqrt(sum(v * v for v in b.values()))
    return dot / (norm_a * norm_b)


def text_similarity(text_a: str, text_b: str) -> float:
    """Cosine similarity of two texts' token bags, in [0, 1]."""
    return _cosine(term_counts(text_a), term_counts(text_b))


def drop_near_duplicates(
    candidates: Sequence[Candidate],
    threshold: float = 0.8,
) -> list[Candidate]:
    """
    Keep the most relevant of each group of near-identical texts.

    A candidate is dropped when its text similarity to an already kept,
    more relevant candidate exceeds `threshold`. Order of the survivors
    follows the input order.
    """
    check_unit_interval("threshold", threshold)
    order = sorted(range(len(candidates)), key=lambda i: (-candidates[i].relevance, i))
    kept: list[int] = []
    kept_bags: list[Counter[str]] = []
    for i in order:
        bag = term_counts(candidates[i].text)
        if any(_cosine(bag, other) > threshold for other in kept_bags):
            continue
        kept.append(i)
        kept_bags.append(bag)
    return [candidates[i] for i in sorted(kept)]


def select_diverse(
    candidates: Sequence[Candidate],
    k: int,
    lambda_: float = 0.7,
    excluded: Collection[str] = (),
) -> list[Candidate]:
    """
    Pick up to k candidates balancing relevance and diversity.

    Args:
        candidates: Candidate pool (any order)
        k: Number of results wanted
        lambda_: Relevance weight in [0, 1]
        excluded: Document ids that must not be picked

    Returns:
        Selected candidates in pick order (the diversity-aware ranking)
    """
    if k < 0:
        raise InvalidArgumentError(f"k must be non-negative, got {k}")
    check_unit_interval("lambda", lambda_)

    excluded = set(excluded)
    pool: list[Candidate] = []
    seen_ids: set[str] = set()
    for candidate in candidates:
        if candidate.id in excluded or candidate.id in seen_ids:
            continue
        seen_ids.add(candidate.id)
        pool.append(candidate)

    if k == 0 or not pool:
        return []

    bags = [term_counts(candidate.text) for candidate in pool]
    max_sim = [0.0] * len(pool)
    remaining = list(range(len(pool)))
    selected: list[int] = []

    # Seed: highest relevance, earliest on ties
    seed = max(remaining, key=lambda i: (pool[i].relevance, -i))
    selected.append(seed)
    remaining.remove(seed)

    while len(selected) < k and remaining:
        last = bags[selected[-1]]
        for i in remaining:
            max_sim[i] = max(max_sim[i], _cosine(bags[i], last))

        best = max(
            remaining,
            key=lambda i: (
                lambda_ * pool[i].relevance - (1 - lambda_) * max_sim[i],
                pool[i].relevance,
                -i,
            ),
        )
        selected.append(best)
        remaining.remove(best)

    return [pool[i] for i in selected]


def category_quotas(k: int, weights: Iterable[float]) -> list[int]:
    """
    Per-category result quotas: ceil(k * weight / sum(weights)).

    >>> category_quotas(9, [2, 1])
    [6, 3]
    """
    weights = list(weights)
    if any(weight <= 0 for weight in weights):
        raise InvalidArgumentError("Category weights must be positive")
    total = sum(weights)
    if not weights or total == 0:
        return []
    # Rounding first keeps 9 * 2 / 3 from ceiling to 7 on float noise
    return [math.ceil(round(k * weight / total, 9)) for weight in weights]
