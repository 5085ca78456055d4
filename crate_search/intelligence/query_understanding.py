"""Query understanding: script detection and natural-language classification.

Keyword-style queries ("http client") go straight to retrieval, while
sentence-style queries ("I need a crate for handling HTTP requests") are
first reduced to keywords by the rewriter. The classification is a heuristic
over token counts, punctuation, and interrogative/request vocabulary.
"""

import re
from typing import List

import structlog

from ..models import NormalizedQuery

logger = structlog.get_logger("query_understanding")

# CJK unified ideographs (incl. extension A), kana, and hangul syllables
CJK_CHAR_CLASS = "\u3400-\u4dbf\u4e00-\u9fff\u3040-\u30ff\uac00-\ud7af"
_CJK_RE = re.compile(f"[{CJK_CHAR_CLASS}]")
_TOKEN_RE = re.compile(f"[{CJK_CHAR_CLASS}]+|[^\\s{CJK_CHAR_CLASS}]+")

LATIN_TOKEN_THRESHOLD = 3
CJK_TOKEN_THRESHOLD = 2

SENTENCE_TERMINALS = ("?", ".", "？", "。", "！")

ENGLISH_QUESTION_WORDS = frozenset([
    "how", "what", "which", "where", "who", "why", "can", "could",
    "help", "find", "need", "want", "looking",
])

CJK_QUESTION_WORDS = (
    "如何", "怎么", "怎样", "什么", "哪个", "哪些", "为什么", "能否", "可以",
    "请问", "有没有", "想要", "需要", "我要", "帮我", "推荐", "寻找",
)

CJK_QUESTION_PARTICLES = ("吗", "呢", "么")


def contains_cjk(text: str) -> bool:
    """Return ``True`` if ``text`` contains any CJK character."""
    return bool(_CJK_RE.search(text))


def tokenize(query: str) -> List[str]:
    """Split on whitespace and at every Latin/CJK script boundary.

    A contiguous CJK run counts as one token since CJK text carries no spaces.
    """
    return _TOKEN_RE.findall(query)


def is_natural_language_query(query: str) -> bool:
    """Classify a query as a natural-language sentence rather than keywords."""
    text = query.strip()
    if not text:
        return False

    has_cjk = contains_cjk(text)
    tokens = tokenize(text)
    threshold = CJK_TOKEN_THRESHOLD if has_cjk else LATIN_TOKEN_THRESHOLD

    if len(tokens) > threshold:
        return True
    if any(mark in text for mark in SENTENCE_TERMINALS):
        return True

    lowered_words = text.lower().split()
    if any(word.strip(",;:!") in ENGLISH_QUESTION_WORDS for word in lowered_words):
        return True

    if has_cjk:
        if any(word in text for word in CJK_QUESTION_WORDS):
            return True
        if len(tokens) > 1 and any(particle in text for particle in CJK_QUESTION_PARTICLES):
            return True

    return False


class QueryNormalizer:
    """Decides whether a query needs keyword extraction before retrieval."""

    def normalize(self, query: str) -> NormalizedQuery:
        text = query.strip()
        natural = is_natural_language_query(text)
        normalized = NormalizedQuery(
            original=query,
            text=text if natural else text.lower(),
            is_natural_language=natural,
            has_cjk=contains_cjk(text),
        )
        logger.debug(
            "Normalized query",
            query=query,
            natural_language=normalized.is_natural_language,
            has_cjk=normalized.has_cjk
        )
        return normalized
