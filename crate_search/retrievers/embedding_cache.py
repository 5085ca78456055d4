"""Cache-or-compute resolution of candidate embeddings.

Vectors are persisted in the crate store keyed by crate id and are the only
state shared across search calls. A lookup fetches every stored vector for a
candidate set in one round trip; in on-demand mode the misses are embedded in
one logical batch and written back, while precomputed mode never generates.
"""

import time
from enum import Enum
from typing import Dict, List, Optional, Sequence

import numpy as np
import structlog

from ..common.metrics import MetricsCollector, get_metrics_collector
from ..intelligence.llm_client import LLMClient, RemoteCapabilityError
from ..models import Candidate
from ..store.base import CrateStore, StoreQueryError

logger = structlog.get_logger("retrievers.embedding_cache")


class EmbeddingMode(Enum):
    """How missing candidate embeddings are handled."""
    ON_DEMAND = "on_demand"      # generate and persist misses during search
    PRECOMPUTED = "precomputed"  # read only; misses are reported and skipped


class EmbeddingCacheManager:
    """Resolves candidate embeddings from the store, generating misses.

    Parameters
    - store: crate store holding the ``embedding`` column
    - llm_client: remote embedding capability
    - mode: ``EmbeddingMode`` for search-time resolution
    - metrics: optional collector for hit/miss counts
    """

    def __init__(
        self,
        store: CrateStore,
        llm_client: LLMClient,
        mode: EmbeddingMode = EmbeddingMode.ON_DEMAND,
        metrics: Optional[MetricsCollector] = None,
    ):
        self.store = store
        self.llm_client = llm_client
        self.mode = mode
        self.metrics = metrics or get_metrics_collector()

    async def resolve(self, candidates: Sequence[Candidate]) -> Dict[str, np.ndarray]:
        """Return ``{crate_id: vector}`` for every candidate that has one.

        Store lookup failures propagate as ``StoreQueryError``; remote and
        write-back failures only leave ids out of the result.
        """
        if not candidates:
            return {}

        ids = list(dict.fromkeys(c.id for c in candidates))
        embeddings = await self.store.fetch_embeddings(ids)

        missing: List[Candidate] = []
        seen = set(embeddings)
        for candidate in candidates:
            if candidate.id not in seen:
                missing.append(candidate)
                seen.add(candidate.id)

        self.metrics.record_embedding_lookup(
            hits=len(embeddings),
            misses=len(missing),
            mode=self.mode.value
        )

        if not missing:
            return embeddings

        if self.mode is EmbeddingMode.PRECOMPUTED:
            logger.warning(
                "Candidates missing precomputed embeddings",
                missing_count=len(missing),
                total=len(ids)
            )
            return embeddings

        generated = await self._generate_and_store(missing)
        embeddings.update(generated)
        return embeddings

    async def _generate_and_store(self, candidates: Sequence[Candidate]) -> Dict[str, np.ndarray]:
        """Embed ``candidates`` in one batch and write each vector back.

        A vector whose write fails is still returned for the current call.
        """
        texts = [c.embedding_text for c in candidates]
        logger.info("Generating candidate embeddings", count=len(texts))
        start = time.time()

        try:
            vectors = await self.llm_client.embed_texts(texts)
        except RemoteCapabilityError as e:
            logger.warning("Embedding generation unavailable", count=len(texts), error=str(e))
            return {}

        generated: Dict[str, np.ndarray] = {}
        for candidate, vector in zip(candidates, vectors):
            if vector is None:
                continue
            generated[candidate.id] = vector
            try:
                await self.store.store_embedding(candidate.id, vector)
            except StoreQueryError as e:
                self.metrics.record_store_write_failure()
                logger.error("Failed to persist embedding", crate_id=candidate.id, error=str(e))

        self.metrics.record_embeddings_generated(len(generated))
        logger.info(
            "Candidate embeddings generated",
            requested=len(texts),
            generated=len(generated),
            duration_ms=round((time.time() - start) * 1000, 2)
        )
        return generated

    async def precompute_all(self, page_size: int = 500) -> int:
        """Walk the store in id-ordered pages, embedding every crate without a vector.

        Returns the number of vectors persisted. Store read failures propagate.
        """
        processed = 0
        after_id: Optional[str] = None

        while True:
            page = await self.store.fetch_missing_embeddings(after_id, page_size)
            if not page:
                break

            texts = [c.embedding_text for c in page]
            try:
                vectors = await self.llm_client.embed_texts(texts)
            except RemoteCapabilityError as e:
                logger.error("Precompute aborted, embedding capability unavailable", error=str(e))
                break

            for candidate, vector in zip(page, vectors):
                if vector is None:
                    continue
                try:
                    await self.store.store_embedding(candidate.id, vector)
                    processed += 1
                except StoreQueryError as e:
                    self.metrics.record_store_write_failure()
                    logger.error("Failed to persist embedding", crate_id=candidate.id, error=str(e))

            self.metrics.record_embeddings_generated(sum(v is not None for v in vectors))
            after_id = page[-1].id
            logger.info("Precompute page processed", processed=processed, last_id=after_id)

            if len(page) < page_size:
                break

        logger.info("Precompute completed", processed=processed)
        return processed

    async def reset(self, crate_id: Optional[str] = None) -> int:
        """Clear one stored vector (by id) or all of them.

        Returns the number of rows changed.
        """
        if crate_id is not None:
            return 1 if await self.store.reset_embedding(crate_id) else 0
        return await self.store.reset_all_embeddings()
