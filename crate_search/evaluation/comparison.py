"""Precision comparison of hybrid and traditional search."""

import time
from dataclasses import dataclass, field
from typing import Dict, List, Sequence

import structlog

from ..hybrid.search_manager import SearchManager
from ..models import Candidate, SortCriteria
from .judge import RelevanceJudge

logger = structlog.get_logger("evaluation.comparison")

PRECISION_CUTOFFS = (1, 3, 5, 10)
JUDGED_RESULTS = 20


def precision_at_k(relevant_flags: Sequence[bool], k: int) -> float:
    """Share of relevant results in the top ``min(k, len)`` positions."""
    if not relevant_flags or k <= 0:
        return 0.0
    k_actual = min(k, len(relevant_flags))
    return sum(1 for flag in relevant_flags[:k_actual] if flag) / k_actual


def relevance_flags(results: Sequence[Candidate], judgments: Dict[str, bool]) -> List[bool]:
    """Align judgments with result order; unjudged results count as irrelevant."""
    lowered = {name.lower(): verdict for name, verdict in judgments.items()}
    return [lowered.get(c.name.lower(), False) for c in results]


@dataclass
class MethodReport:
    method: str
    precision: Dict[int, float]
    relevant_count: int
    result_count: int
    duration_ms: float
    top_results: List[str] = field(default_factory=list)


@dataclass
class QueryComparison:
    query: str
    reports: Dict[str, MethodReport]


async def _evaluate_method(
    method: str,
    query: str,
    results: List[Candidate],
    duration_ms: float,
    judge: RelevanceJudge,
) -> MethodReport:
    judged = results[:JUDGED_RESULTS]
    judgments = await judge.judge(query, judged)
    flags = relevance_flags(judged, judgments)
    return MethodReport(
        method=method,
        precision={k: precision_at_k(flags, k) for k in PRECISION_CUTOFFS},
        relevant_count=sum(flags),
        result_count=len(results),
        duration_ms=round(duration_ms, 2),
        top_results=[c.name for c in results[:5]],
    )


async def compare_search_methods(
    manager: SearchManager,
    judge: RelevanceJudge,
    queries: Sequence[str],
    sort_by: SortCriteria = SortCriteria.COMPREHENSIVE,
) -> List[QueryComparison]:
    """Run both search methods over ``queries`` and judge their top results.

    Store failures propagate; judging failures only lower the precision.
    """
    comparisons: List[QueryComparison] = []
    methods = (
        ("hybrid", manager.search_hybrid),
        ("traditional", manager.search_traditional),
    )

    for query in queries:
        reports: Dict[str, MethodReport] = {}
        for method, search in methods:
            start = time.time()
            results = await search(query, sort_by)
            duration_ms = (time.time() - start) * 1000
            reports[method] = await _evaluate_method(method, query, results, duration_ms, judge)

        logger.info(
            "Query compared",
            query=query,
            hybrid_p5=reports["hybrid"].precision[5],
            traditional_p5=reports["traditional"].precision[5],
        )
        comparisons.append(QueryComparison(query=query, reports=reports))

    return comparisons


def summarize(comparisons: Sequence[QueryComparison]) -> Dict[str, Dict[int, float]]:
    """Mean precision per method and cutoff."""
    if not comparisons:
        return {}
    totals: Dict[str, Dict[int, float]] = {}
    for comparison in comparisons:
        for method, report in comparison.reports.items():
            bucket = totals.setdefault(method, {k: 0.0 for k in PRECISION_CUTOFFS})
            for k, value in report.precision.items():
                bucket[k] += value
    return {
        method: {k: value / len(comparisons) for k, value in bucket.items()}
        for method, bucket in totals.items()
    }
