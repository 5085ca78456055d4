"""Lexical retrieval from a keyword string.

The keyword string is turned into one ``to_tsquery`` expression where any
term may match, words inside a multi-word term must all match, and every
term matches as a prefix: ``"http client, json"`` becomes
``"http & client:* | json:*"``.
"""

import re
from typing import List

import structlog

from ..models import Candidate
from ..store.base import CrateStore

logger = structlog.get_logger("retrievers.lexical")

DEFAULT_MAX_TERMS = 6
DEFAULT_RETRIEVAL_LIMIT = 200

# Characters with operator meaning inside a tsquery expression
_TSQUERY_SPECIAL_RE = re.compile(r"[&|!():*<>'\\]")


def sanitize_term(term: str) -> str:
    """Lowercase a term and strip tsquery operator characters."""
    return " ".join(_TSQUERY_SPECIAL_RE.sub(" ", term).lower().split())


def build_tsquery(keywords: str, max_terms: int = DEFAULT_MAX_TERMS) -> str:
    """Build a prefix-matching text-search expression from comma-separated terms.

    Only the first ``max_terms`` non-empty terms are kept. Returns ``""`` when
    no term survives.
    """
    terms = []
    for raw in keywords.split(","):
        term = sanitize_term(raw)
        if not term:
            continue
        terms.append(f"{term.replace(' ', ' & ')}:*")
        if len(terms) >= max_terms:
            break
    return " | ".join(terms)


class LexicalRetriever:
    """Fetches candidates ranked by text-search relevance."""

    def __init__(
        self,
        store: CrateStore,
        max_terms: int = DEFAULT_MAX_TERMS,
        limit: int = DEFAULT_RETRIEVAL_LIMIT,
    ):
        self.store = store
        self.max_terms = max_terms
        self.limit = limit

    async def retrieve(self, keywords: str) -> List[Candidate]:
        """Return candidates ordered by ``lexical_score`` descending.

        Store failures propagate as ``StoreQueryError``.
        """
        tsquery = build_tsquery(keywords, self.max_terms)
        if not tsquery:
            logger.info("Empty keyword expression, skipping retrieval", keywords=keywords)
            return []

        candidates = await self.store.text_search(tsquery, self.limit)
        for candidate in candidates:
            candidate.semantic_score = 0.0
            candidate.final_score = 0.0

        logger.info("Lexical retrieval completed", tsquery=tsquery, results_count=len(candidates))
        return candidates[:self.limit]
