"""Tests for similarity scoring and score fusion."""

import numpy as np
import pytest

from crate_search.models import Candidate, SortCriteria
from crate_search.ranking.fusion import (
    combine_scores,
    cosine_similarity,
    fusion_weights,
    rank_by_lexical_only,
    rerank_candidates,
    sort_by_final_score,
)

from .fakes import crate


def test_cosine_similarity_bounds():
    """Test similarity stays in [-1, 1] for arbitrary vectors."""
    rng = np.random.default_rng(7)
    for _ in range(50):
        a = rng.normal(size=16) * rng.uniform(1e-3, 1e3)
        b = rng.normal(size=16) * rng.uniform(1e-3, 1e3)
        assert -1.0 <= cosine_similarity(a, b) <= 1.0

    v = np.array([0.3, 0.4, 0.5])
    assert cosine_similarity(v, v) == pytest.approx(1.0)
    assert cosine_similarity(v, -v) == pytest.approx(-1.0)
    assert cosine_similarity([1.0, 0.0], [0.0, 1.0]) == pytest.approx(0.0)


def test_cosine_similarity_degenerate_inputs():
    assert cosine_similarity([], []) == 0.0
    assert cosine_similarity([0.0, 0.0], [1.0, 1.0]) == 0.0
    assert cosine_similarity([1.0, 2.0], [1.0, 2.0, 3.0]) == 0.0
    assert cosine_similarity([np.nan, 1.0], [1.0, 1.0]) == 0.0


def test_fusion_weights_sum_to_one():
    for criteria in SortCriteria:
        lexical, semantic = fusion_weights(criteria)
        assert lexical + semantic == pytest.approx(1.0)


def test_combine_scores():
    assert combine_scores(0.86, 0.5, SortCriteria.COMPREHENSIVE) == pytest.approx(0.6 * 0.86 + 0.4 * 0.5)
    assert combine_scores(0.86, 0.5, SortCriteria.RELEVANCE) == pytest.approx(0.8 * 0.86 + 0.2 * 0.5)
    assert combine_scores(0.86, 0.5, SortCriteria.DOWNLOADS) == pytest.approx(0.5 * 0.86 + 0.5 * 0.5)


def test_semantic_similarity_can_reorder_results():
    """Test strong semantic similarity lifts a weak lexical match."""
    query_vector = np.array([1.0, 0.0])
    candidates = [crate("1", "reqwest", score=0.86), crate("2", "serde_json", score=0.08)]
    embeddings = {"1": np.array([0.0, 1.0]), "2": np.array([1.0, 0.0])}

    relevance = rerank_candidates(
        [Candidate(**vars(c)) for c in candidates], query_vector, embeddings, SortCriteria.RELEVANCE
    )
    assert [c.name for c in relevance] == ["reqwest", "serde_json"]
    assert relevance[0].final_score == pytest.approx(0.8 * 0.86)
    assert relevance[1].final_score == pytest.approx(0.8 * 0.08 + 0.2)

    downloads = rerank_candidates(candidates, query_vector, embeddings, SortCriteria.DOWNLOADS)
    assert [c.name for c in downloads] == ["serde_json", "reqwest"]
    assert downloads[0].semantic_score == pytest.approx(1.0)


def test_rerank_without_embedding_scores_zero_semantic():
    candidates = [crate("1", score=0.5), crate("2", score=0.4)]
    ranked = rerank_candidates(candidates, np.array([1.0, 0.0]), {}, SortCriteria.COMPREHENSIVE)
    assert [c.semantic_score for c in ranked] == [0.0, 0.0]
    assert ranked[0].final_score == pytest.approx(0.3)


def test_rank_by_lexical_only():
    candidates = [crate("1", score=0.2), crate("2", score=0.7)]
    candidates[0].semantic_score = 0.9
    ranked = rank_by_lexical_only(candidates)
    assert [c.id for c in ranked] == ["2", "1"]
    assert [c.final_score for c in ranked] == [0.7, 0.2]
    assert all(c.semantic_score == 0.0 for c in ranked)


def test_sort_by_final_score_is_stable_and_capped():
    candidates = [crate(str(i)) for i in range(5)]
    for candidate in candidates:
        candidate.final_score = 0.5
    candidates[3].final_score = 0.9

    ranked = sort_by_final_score(candidates, limit=3)
    assert [c.id for c in ranked] == ["3", "0", "1"]
