"""Score fusion for hybrid crate search.

Lexical relevance and semantic similarity are blended linearly with weights
selected by ``SortCriteria``. The ``DOWNLOADS`` criterion uses its own blend
constants but does not read download counts; ``fusion_weights`` is the single
place a popularity signal would be introduced.
"""

import math
from typing import Dict, List, Optional, Sequence, Tuple

import numpy as np
import structlog

from ..models import Candidate, SortCriteria

logger = structlog.get_logger("search_fusion")

DEFAULT_RESULT_LIMIT = 100

# (lexical weight, semantic weight)
FUSION_WEIGHTS: Dict[SortCriteria, Tuple[float, float]] = {
    SortCriteria.COMPREHENSIVE: (0.6, 0.4),
    SortCriteria.RELEVANCE: (0.8, 0.2),
    SortCriteria.DOWNLOADS: (0.5, 0.5),
}

# Applied by the traditional retriever on top of its strategy weights
CRITERIA_MULTIPLIERS: Dict[SortCriteria, float] = {
    SortCriteria.COMPREHENSIVE: 1.0,
    SortCriteria.RELEVANCE: 1.2,
    SortCriteria.DOWNLOADS: 0.8,
}


def cosine_similarity(a: Sequence[float], b: Sequence[float]) -> float:
    """Cosine similarity in ``[-1, 1]``.

    Returns 0.0 for empty, zero-norm, or mismatched-length vectors rather
    than raising.
    """
    vec_a = np.asarray(a, dtype=np.float64).ravel()
    vec_b = np.asarray(b, dtype=np.float64).ravel()
    if vec_a.size == 0 or vec_a.shape != vec_b.shape:
        return 0.0

    norm_a = np.linalg.norm(vec_a)
    norm_b = np.linalg.norm(vec_b)
    if norm_a == 0.0 or norm_b == 0.0:
        return 0.0

    similarity = float(np.dot(vec_a, vec_b) / (norm_a * norm_b))
    if not math.isfinite(similarity):
        return 0.0
    return max(-1.0, min(1.0, similarity))


def fusion_weights(sort_by: SortCriteria) -> Tuple[float, float]:
    """Return the ``(lexical, semantic)`` blend weights for a criteria."""
    return FUSION_WEIGHTS[sort_by]


def combine_scores(lexical_score: float, semantic_score: float, sort_by: SortCriteria) -> float:
    """Blend lexical and semantic scores into the final ranking key."""
    lexical_weight, semantic_weight = fusion_weights(sort_by)
    return lexical_weight * lexical_score + semantic_weight * semantic_score


def criteria_multiplier(sort_by: SortCriteria) -> float:
    return CRITERIA_MULTIPLIERS[sort_by]


def sort_by_final_score(candidates: List[Candidate], limit: int = DEFAULT_RESULT_LIMIT) -> List[Candidate]:
    """Sort descending by ``final_score`` and truncate.

    The sort is stable, so ties keep their retrieval order.
    """
    ranked = sorted(candidates, key=lambda c: c.final_score, reverse=True)
    return ranked[:limit]


def rerank_candidates(
    candidates: List[Candidate],
    query_vector: np.ndarray,
    embeddings: Dict[str, np.ndarray],
    sort_by: SortCriteria,
    limit: int = DEFAULT_RESULT_LIMIT,
) -> List[Candidate]:
    """Fill semantic and final scores, then sort and truncate.

    Candidates without an embedding keep a semantic score of 0.
    """
    matched = 0
    for candidate in candidates:
        embedding: Optional[np.ndarray] = embeddings.get(candidate.id)
        if embedding is not None:
            candidate.semantic_score = cosine_similarity(query_vector, embedding)
            matched += 1
        else:
            candidate.semantic_score = 0.0
        candidate.final_score = combine_scores(
            candidate.lexical_score,
            candidate.semantic_score,
            sort_by
        )

    ranked = sort_by_final_score(candidates, limit)
    logger.info(
        "Hybrid rerank completed",
        sort_by=sort_by.value,
        candidates=len(candidates),
        with_embedding=matched,
        returned=len(ranked)
    )
    return ranked


def rank_by_lexical_only(candidates: List[Candidate], limit: int = DEFAULT_RESULT_LIMIT) -> List[Candidate]:
    """Rank purely by lexical score when no query embedding is available."""
    for candidate in candidates:
        candidate.semantic_score = 0.0
        candidate.final_score = candidate.lexical_score
    return sort_by_final_score(candidates, limit)
