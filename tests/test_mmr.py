"""
Unit Tests for MMR Diversity Selection

mmr(c) = lambda * relevance(c) - (1 - lambda) * max_sim(c, selected)
"""

import pytest

from edu_retrieval.core.exceptions import InvalidArgumentError
from edu_retrieval.retrieval.document import Candidate
from edu_retrieval.retrieval.mmr import (
    category_quotas,
    drop_near_duplicates,
    select_diverse,
    text_similarity,
)


def _candidate(doc_id, text, relevance):
    return Candidate(id=doc_id, text=text, metadata={}, distance=1.0 - relevance)


# ---------------------------------------------------------------------------
# FIXTURES
# ---------------------------------------------------------------------------


@pytest.fixture
def pool():
    return [
        _candidate("g1", "gravity pulls objects down", 0.9),
        _candidate("g2", "gravity pulls objects down", 0.85),
        _candidate("l1", "lens bends light rays", 0.5),
        _candidate("f1", "friction slows moving blocks", 0.4),
    ]


# ---------------------------------------------------------------------------
# TESTS
# ---------------------------------------------------------------------------


class TestTextSimilarity:
    """Test text_similarity()."""

    def test_identical_texts(self):
        assert text_similarity("gravity pulls", "gravity pulls") == pytest.approx(1.0)

    def test_disjoint_texts(self):
        assert text_similarity("gravity pulls", "lens bends") == 0.0

    def test_empty_text(self):
        assert text_similarity("", "gravity") == 0.0


class TestSelectDiverse:
    """Test select_diverse()."""

    def test_lambda_one_is_top_k_by_relevance(self, pool):
        picked = select_diverse(pool, k=2, lambda_=1.0)

        assert [c.id for c in picked] == ["g1", "g2"]

    def test_lower_lambda_skips_redundant_candidate(self, pool):
        picked = select_diverse(pool, k=2, lambda_=0.5)

        assert [c.id for c in picked] == ["g1", "l1"]

    def test_lambda_zero_prefers_dissimilar(self, pool):
        picked = select_diverse(pool, k=3, lambda_=0.0)

        assert picked[0].id == "g1"
        assert "g2" not in [c.id for c in picked]

    def test_excluded_ids_never_picked(self, pool):
        picked = select_diverse(pool, k=4, lambda_=0.7, excluded={"g1"})

        assert "g1" not in [c.id for c in picked]
        assert picked[0].id == "g2"

    def test_duplicate_ids_collapsed(self, pool):
        picked = select_diverse(pool + [pool[0]], k=10, lambda_=0.7)

        assert len(picked) == 4
        assert len({c.id for c in picked}) == 4

    def test_k_larger_than_pool(self, pool):
        assert len(select_diverse(pool, k=10)) == 4

    def test_k_zero_and_empty_pool(self, pool):
        assert select_diverse(pool, k=0) == []
        assert select_diverse([], k=3) == []

    def test_invalid_arguments(self, pool):
        with pytest.raises(InvalidArgumentError):
            select_diverse(pool, k=-1)
        with pytest.raises(InvalidArgumentError):
            select_diverse(pool, k=2, lambda_=1.2)


class TestDropNearDuplicates:
    """Test drop_near_duplicates()."""

    def test_keeps_most_relevant_copy(self, pool):
        kept = drop_near_duplicates(pool, threshold=0.8)

        assert [c.id for c in kept] == ["g1", "l1", "f1"]

    def test_survivors_keep_input_order(self):
        candidates = [
            _candidate("low", "gravity pulls objects", 0.2),
            _candidate("other", "lens bends light", 0.3),
            _candidate("high", "gravity pulls objects", 0.9),
        ]

        assert [c.id for c in drop_near_duplicates(candidates)] == ["other", "high"]

    def test_threshold_one_keeps_everything(self, pool):
        assert len(drop_near_duplicates(pool, threshold=1.0)) == 4


class TestCategoryQuotas:
    """Test category_quotas()."""

    def test_weighted_quotas(self):
        assert category_quotas(9, [2, 1]) == [6, 3]

    def test_quotas_round_up(self):
        assert category_quotas(5, [1, 1]) == [3, 3]

    def test_no_categories(self):
        assert category_quotas(5, []) == []

    def test_non_positive_weight(self):
        with pytest.raises(InvalidArgumentError):
            category_quotas(5, [1, 0])
