"""Traditional multi-strategy retrieval without any remote capability.

One query is expanded into several variants (stop-word stripped, n-gram
windows, halves, script-specific forms). Each variant runs three weighted
sub-searches against the store, and results are merged by crate id with the
first occurrence winning. A phrase pass over the original query backfills
sparse result sets.
"""

import re
from typing import Dict, List, Tuple

import structlog

from ..intelligence.query_understanding import contains_cjk
from ..models import Candidate, SortCriteria
from ..ranking.fusion import DEFAULT_RESULT_LIMIT, criteria_multiplier, sort_by_final_score
from ..store.base import CrateStore
from .lexical import sanitize_term

logger = structlog.get_logger("retrievers.traditional")

EXACT_MATCH_WEIGHT = 1.0
PREFIX_MATCH_WEIGHT = 0.8
FULLTEXT_WEIGHT = 0.6
PHRASE_BACKFILL_WEIGHT = 0.5

BACKFILL_THRESHOLD = 10

ENGLISH_STOP_WORDS = frozenset([
    "a", "an", "the", "in", "on", "at", "by", "for", "with", "is", "are", "was",
    "were", "of", "to", "from", "and", "or", "but", "how", "what", "which",
    "who", "when", "where", "why", "can", "could", "need", "want", "rust",
    "crate", "library", "package", "help", "please", "find", "looking",
    "search", "get", "use", "using", "implement",
])

CHINESE_STOP_PHRASES = (
    "为什么", "有没有", "如何", "怎么", "什么", "哪个", "能否", "可以", "请问",
    "想要", "需要", "使用", "寻找", "查找", "搜索", "获取", "我要", "帮我", "推荐",
)

_LATIN_RE = re.compile(r"[a-z]")
_NON_LATIN_RE = re.compile(r"[^a-z0-9\s]")


def _append_unique(variants: List[str], value: str) -> None:
    value = " ".join(value.split())
    if value and value not in variants:
        variants.append(value)


def build_query_variants(query: str) -> List[str]:
    """Expand a raw query into de-duplicated search variants.

    Order: the original string, CJK variants (stop phrases removed, then the
    Latin-only part of mixed-script text), then English variants (stop words
    removed, 2-grams, 3-grams, halves). Never returns an empty list.
    """
    variants: List[str] = []
    original = query.strip()
    _append_unique(variants, original)

    lowered = original.lower()
    has_cjk = contains_cjk(lowered)
    has_latin = bool(_LATIN_RE.search(lowered))

    if has_cjk:
        stripped = lowered
        for phrase in CHINESE_STOP_PHRASES:
            stripped = stripped.replace(phrase, " ")
        _append_unique(variants, stripped)

        if has_latin:
            _append_unique(variants, _NON_LATIN_RE.sub(" ", stripped))

    if has_latin:
        words = [word for word in lowered.split() if word not in ENGLISH_STOP_WORDS]
        _append_unique(variants, " ".join(words))

        if len(words) >= 2:
            for i in range(len(words) - 1):
                _append_unique(variants, " ".join(words[i:i + 2]))
        if len(words) >= 3:
            for i in range(len(words) - 2):
                _append_unique(variants, " ".join(words[i:i + 3]))
        if len(words) >= 4:
            mid = len(words) // 2
            _append_unique(variants, " ".join(words[:mid]))
            _append_unique(variants, " ".join(words[mid:]))

    if not variants:
        variants.append(lowered)
    return variants


def build_prefix_tsquery(variant: str) -> str:
    """OR together ``word:*`` prefix terms of at least two characters."""
    terms = []
    for word in sanitize_term(variant).split():
        if len(word) >= 2 or contains_cjk(word):
            terms.append(f"{word}:*")
    return " | ".join(terms)


class TraditionalRetriever:
    """Lexical-only search built from classic IR heuristics."""

    def __init__(self, store: CrateStore, limit: int = DEFAULT_RESULT_LIMIT):
        self.store = store
        self.limit = limit

    async def search(
        self,
        query: str,
        sort_by: SortCriteria = SortCriteria.COMPREHENSIVE
    ) -> List[Candidate]:
        """Run every strategy over every variant and rank the merged results.

        Store failures propagate as ``StoreQueryError``.
        """
        variants = build_query_variants(query)
        logger.info("Traditional query variants", query=query, variants=variants)

        merged: Dict[str, Tuple[Candidate, float]] = {}

        def merge(results: List[Candidate], weight: float) -> None:
            for candidate in results:
                if candidate.id not in merged:
                    merged[candidate.id] = (candidate, weight)

        for variant in variants:
            merge(await self._exact_match(variant), EXACT_MATCH_WEIGHT)
            merge(await self._prefix_match(variant), PREFIX_MATCH_WEIGHT)
            merge(await self._fulltext(variant), FULLTEXT_WEIGHT)

        if len(merged) < BACKFILL_THRESHOLD and query.strip():
            merge(await self.store.phrase_search(query.strip()), PHRASE_BACKFILL_WEIGHT)

        ranked = self.rank_results(list(merged.values()), sort_by)
        logger.info(
            "Traditional search completed",
            query=query,
            sort_by=sort_by.value,
            merged=len(merged),
            returned=len(ranked)
        )
        return ranked

    def rank_results(
        self,
        weighted: List[Tuple[Candidate, float]],
        sort_by: SortCriteria
    ) -> List[Candidate]:
        """Score ``lexical * strategy weight * criteria multiplier`` and sort."""
        multiplier = criteria_multiplier(sort_by)
        candidates = []
        for candidate, weight in weighted:
            candidate.semantic_score = 0.0
            candidate.final_score = candidate.lexical_score * weight * multiplier
            candidates.append(candidate)
        return sort_by_final_score(candidates, self.limit)

    async def _exact_match(self, variant: str) -> List[Candidate]:
        if not variant.strip():
            return []
        return await self.store.exact_match_search(variant)

    async def _prefix_match(self, variant: str) -> List[Candidate]:
        tsquery = build_prefix_tsquery(variant)
        if not tsquery:
            return []
        return await self.store.text_search(tsquery, 150)

    async def _fulltext(self, variant: str) -> List[Candidate]:
        if not variant.strip():
            return []
        return await self.store.loose_fulltext_search(variant)
