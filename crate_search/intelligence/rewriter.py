"""Query rewriting and keyword extraction.

Both operations ask the remote chat capability for a comma-separated keyword
list tuned to the Rust crate ecosystem. Neither ever raises: when the remote
call is unavailable or fails, a deterministic local procedure (lowercasing and
stop-word removal) produces the keyword string instead.
"""

import os
import re
from typing import FrozenSet, Iterable, Optional

import structlog

from ..common.metrics import MetricsCollector, get_metrics_collector
from .llm_client import LLMClient, RemoteCapabilityError, RemoteCapabilityUnavailable
from .query_understanding import contains_cjk

logger = structlog.get_logger("query_rewriter")

DEFAULT_STOP_WORDS = frozenset([
    "a", "an", "the", "is", "are", "was", "were", "be", "in", "on", "at", "by",
    "for", "with", "about", "against", "how", "what", "where", "when", "why",
    "who", "which", "and", "or", "if", "but", "because", "as", "until", "while",
    "of", "to", "from", "need", "want", "find", "looking", "search", "rust",
    "crate",
])

REWRITE_SYSTEM_PROMPT = (
    "You rewrite search queries for Rust packages on crates.io. Whether the "
    "input is a keyword list or a natural-language question, turn it into "
    "relevant technical terms and synonyms. Return only a comma-separated "
    "keyword list without explanations."
)

EXTRACT_SYSTEM_PROMPT = (
    "You extract Rust package search keywords from natural-language requests. "
    "Identify the core concepts and functional needs related to the Rust "
    "ecosystem. Return only a comma-separated keyword list."
)

CJK_LANGUAGE_HINT = (
    " The user writes in Chinese, Japanese, or Korean: keep keywords in the "
    "user's language and add the English technical equivalents."
)

_WORD_SPLIT_RE = re.compile(r"[^\w]+")


def load_stop_words(path: Optional[str]) -> FrozenSet[str]:
    """Load a stop-word list, one term per line.

    Blank lines and lines starting with ``//`` are ignored. The built-in list
    is returned when ``path`` is unset, missing, unreadable, or yields no terms.
    """
    if path and os.path.isfile(path):
        try:
            with open(path, "r", encoding="utf-8") as f:
                words = frozenset(
                    line.strip().lower()
                    for line in f
                    if line.strip() and not line.startswith("//")
                )
        except OSError as e:
            logger.warning("Failed to read stop words", path=path, error=str(e))
            words = frozenset()
        if words:
            logger.info("Loaded stop words", path=path, count=len(words))
            return words

    logger.info("Using built-in stop words", count=len(DEFAULT_STOP_WORDS))
    return DEFAULT_STOP_WORDS


def basic_query_enhancement(query: str, stop_words: Iterable[str] = DEFAULT_STOP_WORDS) -> str:
    """Local rewrite fallback: lowercase and drop whole-word stop words.

    CJK text is only trimmed and lowercased.
    """
    text = query.strip().lower()
    if contains_cjk(text):
        return " ".join(text.split())

    stop = frozenset(stop_words)
    kept = [word for word in text.split() if word not in stop]
    return " ".join(kept) or text


def basic_keyword_extraction(query: str, stop_words: Iterable[str] = DEFAULT_STOP_WORDS) -> str:
    """Local extraction fallback: comma-joined content words.

    Splits on non-word characters and drops stop words and words shorter
    than three characters. CJK text skips both filters.
    """
    text = query.strip().lower()
    words = [word for word in _WORD_SPLIT_RE.split(text) if word]

    if not contains_cjk(text):
        stop = frozenset(stop_words)
        words = [word for word in words if word not in stop and len(word) > 2]

    return ", ".join(words) or text


class QueryRewriter:
    """Turns queries into keyword strings with a local fallback.

    Parameters
    - llm_client: remote chat capability
    - stop_words: terms removed by the local fallback
    - metrics: optional collector for fallback counts
    """

    def __init__(
        self,
        llm_client: LLMClient,
        stop_words: Iterable[str] = DEFAULT_STOP_WORDS,
        metrics: Optional[MetricsCollector] = None,
    ):
        self.llm_client = llm_client
        self.stop_words = frozenset(stop_words)
        self.metrics = metrics or get_metrics_collector()

    async def rewrite(self, query: str) -> str:
        """Expand a query into technical terms and synonyms."""
        system_prompt = REWRITE_SYSTEM_PROMPT
        if contains_cjk(query):
            system_prompt += CJK_LANGUAGE_HINT
        user_prompt = f"Generate a comma-separated list of Rust package keywords for: {query}"

        result = await self._ask(system_prompt, user_prompt, max_tokens=150, operation="rewrite")
        if result is None:
            return basic_query_enhancement(query, self.stop_words)
        return result

    async def extract_keywords(self, query: str) -> str:
        """Reduce a natural-language request to search keywords."""
        system_prompt = EXTRACT_SYSTEM_PROMPT
        if contains_cjk(query):
            system_prompt += CJK_LANGUAGE_HINT
        user_prompt = (
            "Extract keywords for searching Rust packages from this request "
            f"(return a comma-separated list): {query}"
        )

        result = await self._ask(system_prompt, user_prompt, max_tokens=100, operation="extract")
        if result is None:
            return basic_keyword_extraction(query, self.stop_words)
        return result

    async def _ask(
        self,
        system_prompt: str,
        user_prompt: str,
        max_tokens: int,
        operation: str
    ) -> Optional[str]:
        """Return the remote answer, or ``None`` when the fallback applies."""
        try:
            answer = await self.llm_client.chat(system_prompt, user_prompt, max_tokens=max_tokens)
        except RemoteCapabilityUnavailable:
            self.metrics.record_rewrite_fallback(operation, "unavailable")
            logger.debug("Remote rewriting unavailable, using local fallback", operation=operation)
            return None
        except RemoteCapabilityError as e:
            self.metrics.record_rewrite_fallback(operation, "error")
            logger.warning("Remote rewriting failed, using local fallback", operation=operation, error=str(e))
            return None

        logger.info("Query rewritten remotely", operation=operation, keywords=answer)
        return answer
