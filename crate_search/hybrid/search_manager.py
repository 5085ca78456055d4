"""Search manager for hybrid lexical and semantic crate search.

One ``search`` call runs its stages strictly in sequence: normalize the query,
extract/rewrite keywords, retrieve lexical candidates, resolve embeddings,
score similarity, and fuse. Remote-capability failures degrade silently to the
documented fallbacks; only store failures reach the caller.
"""

import time
from typing import Any, List, Optional, Union

import structlog

from ..common.config import CrateSearchConfig
from ..common.logging import log_performance, search_context
from ..common.metrics import MetricsCollector, get_metrics_collector
from ..intelligence.llm_client import LLMClient, RemoteCapabilityError
from ..intelligence.query_understanding import QueryNormalizer
from ..intelligence.rewriter import QueryRewriter, load_stop_words
from ..models import Candidate, SortCriteria
from ..ranking.fusion import rank_by_lexical_only, rerank_candidates
from ..retrievers.embedding_cache import EmbeddingCacheManager, EmbeddingMode
from ..retrievers.lexical import LexicalRetriever
from ..retrievers.traditional import TraditionalRetriever
from ..store.base import CrateStore
from ..store.pgvector import create_crate_store

logger = structlog.get_logger("search_manager")


class SearchManager:
    """Manages crate search operations.

    Responsibilities
    - Hold the crate store and the remote LLM client
    - Route each call to the hybrid or the traditional pipeline
    - Expose embedding maintenance through ``embedding_cache``
    """

    def __init__(
        self,
        config: CrateSearchConfig,
        store: Optional[CrateStore] = None,
        llm_client: Optional[LLMClient] = None,
        metrics: Optional[MetricsCollector] = None,
    ):
        """Construct a search manager.

        Parameters
        - config: ``CrateSearchConfig`` with caps, modes, and endpoints
        - store: crate store; built from ``config`` when omitted
        - llm_client: remote capability client; built from ``config`` when omitted
        - metrics: collector; the process-wide one when omitted
        """
        self.config = config
        self.store = store or create_crate_store(config)
        self.llm_client = llm_client or LLMClient(config)
        self.metrics = metrics or get_metrics_collector()

        self.normalizer = QueryNormalizer()
        self.rewriter = QueryRewriter(
            self.llm_client,
            stop_words=load_stop_words(config.cs_stop_words_path),
            metrics=self.metrics,
        )
        self.lexical_retriever = LexicalRetriever(
            self.store,
            max_terms=config.cs_max_query_terms,
            limit=config.cs_retrieval_limit,
        )
        self.traditional_retriever = TraditionalRetriever(self.store, limit=config.cs_result_limit)
        self.embedding_cache = EmbeddingCacheManager(
            self.store,
            self.llm_client,
            mode=EmbeddingMode(config.cs_embedding_mode),
            metrics=self.metrics,
        )

    async def search(
        self,
        query: str,
        sort_by: Union[SortCriteria, str] = SortCriteria.COMPREHENSIVE,
    ) -> List[Candidate]:
        """Search crates for ``query``.

        Returns at most ``cs_result_limit`` candidates ordered by
        ``final_score`` descending. Without remote credentials (and with
        ``cs_traditional_when_offline``) the traditional pipeline answers.
        Raises ``StoreError`` subclasses only.
        """
        criteria = SortCriteria.parse(sort_by)
        with search_context(search_query=query, sort_by=criteria.value):
            if not self.llm_client.available and self.config.cs_traditional_when_offline:
                return await self.search_traditional(query, criteria)
            return await self.search_hybrid(query, criteria)

    async def search_hybrid(
        self,
        query: str,
        sort_by: Union[SortCriteria, str] = SortCriteria.COMPREHENSIVE,
    ) -> List[Candidate]:
        """Keyword retrieval followed by embedding rerank."""
        criteria = SortCriteria.parse(sort_by)
        start = time.time()

        if not query.strip():
            logger.info("Blank query, nothing to search")
            self._record("hybrid", criteria, start, query=query, results=0)
            return []

        keywords = await self.prepare_keywords(query)
        candidates = await self.lexical_retriever.retrieve(keywords)

        if not candidates:
            results: List[Candidate] = []
        else:
            results = await self._rerank(query, candidates, criteria)

        self._record("hybrid", criteria, start, query=query, keywords=keywords, results=len(results))
        return results

    async def search_traditional(
        self,
        query: str,
        sort_by: Union[SortCriteria, str] = SortCriteria.COMPREHENSIVE,
    ) -> List[Candidate]:
        """Lexical-only multi-strategy search; never calls a remote capability."""
        criteria = SortCriteria.parse(sort_by)
        start = time.time()
        results = await self.traditional_retriever.search(query, criteria)
        self._record("traditional", criteria, start, query=query, results=len(results))
        return results

    async def prepare_keywords(self, query: str) -> str:
        """Normalize the query, extract keywords from sentences, then rewrite."""
        normalized = self.normalizer.normalize(query)
        if normalized.is_natural_language:
            logger.info("Natural-language query detected", query=query)
            keywords = await self.rewriter.extract_keywords(normalized.text)
        else:
            keywords = normalized.text

        rewritten = await self.rewriter.rewrite(keywords)
        logger.info("Query prepared", query=query, keywords=keywords, rewritten=rewritten)
        return rewritten

    async def _rerank(
        self,
        query: str,
        candidates: List[Candidate],
        criteria: SortCriteria,
    ) -> List[Candidate]:
        limit = self.config.cs_result_limit
        try:
            query_vector = await self.llm_client.embed_query(query)
        except RemoteCapabilityError as e:
            logger.warning("Query embedding unavailable, ranking lexically", error=str(e))
            self.metrics.record_lexical_only()
            return rank_by_lexical_only(candidates, limit)

        embeddings = await self.embedding_cache.resolve(candidates)
        return rerank_candidates(candidates, query_vector, embeddings, criteria, limit)

    def _record(self, method: str, criteria: SortCriteria, start: float, **context: Any) -> None:
        duration = time.time() - start
        self.metrics.record_search(method, criteria.value, duration)
        log_performance(f"search_{method}", duration * 1000, sort_by=criteria.value, **context)

    async def health_check(self) -> bool:
        """Check if the backing store is reachable."""
        return await self.store.health_check()

    async def close(self) -> None:
        """Cleanup resources."""
        await self.llm_client.aclose()
        await self.store.close()
        logger.info("Search manager closed")

    async def __aenter__(self) -> "SearchManager":
        return self

    async def __aexit__(self, *exc_info: Any) -> None:
        await self.close()


def create_search_manager(config: Optional[CrateSearchConfig] = None) -> SearchManager:
    """Create a search manager wired from configuration."""
    return SearchManager(config or CrateSearchConfig())
