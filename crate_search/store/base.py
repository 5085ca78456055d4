"""Base crate store interface.

Defines the contract the retrievers and the embedding cache depend on,
independent of the backing implementation. The store owns token and vector
indexing; the engine only issues queries and keyed embedding writes.

All methods are asynchronous to support concurrent search calls.
"""

from abc import ABC, abstractmethod
from typing import Dict, List, Optional, Sequence

import numpy as np

from ..models import Candidate


class CrateStore(ABC):
    """Abstract base class for crate stores.

    Implementations must coerce missing names/descriptions to ``""`` and make
    embedding writes idempotent per crate id.
    """

    @abstractmethod
    async def text_search(self, tsquery: str, limit: int) -> List[Candidate]:
        """Match a prepared text-search expression against the token index.

        Returns candidates ordered by lexical relevance, descending.
        """

    @abstractmethod
    async def exact_match_search(self, query: str, limit: int = 50) -> List[Candidate]:
        """Match ``query`` as a name prefix or a name/description substring."""

    @abstractmethod
    async def loose_fulltext_search(self, query: str, limit: int = 150) -> List[Candidate]:
        """Match free text through the store's lenient query parser."""

    @abstractmethod
    async def phrase_search(self, query: str, limit: int = 200) -> List[Candidate]:
        """Match ``query`` as a phrase, or its words in order as a pattern."""

    @abstractmethod
    async def fetch_embeddings(self, crate_ids: Sequence[str]) -> Dict[str, np.ndarray]:
        """Return the stored vectors for the given ids, in one round trip.

        Ids without a stored vector are simply absent from the result.
        """

    @abstractmethod
    async def store_embedding(self, crate_id: str, vector: np.ndarray) -> None:
        """Persist the vector for one crate id.

        Raises ``StoreQueryError`` on failure.
        """

    @abstractmethod
    async def fetch_missing_embeddings(
        self,
        after_id: Optional[str],
        limit: int
    ) -> List[Candidate]:
        """Return one id-ordered page of crates without a stored vector."""

    @abstractmethod
    async def reset_embedding(self, crate_id: str) -> bool:
        """Clear one stored vector. Returns ``True`` if a row was changed."""

    @abstractmethod
    async def reset_all_embeddings(self) -> int:
        """Clear every stored vector. Returns the number of rows changed."""

    @abstractmethod
    async def embedding_stats(self) -> Dict[str, int]:
        """Return ``{"total": ..., "with_embedding": ...}`` row counts."""

    @abstractmethod
    async def health_check(self) -> bool:
        """Check if the store is reachable."""

    async def close(self) -> None:
        """Release connections held by the store."""


class StoreError(Exception):
    """Base exception for crate store operations."""
    pass


class StoreConnectionError(StoreError):
    """Connection error to the crate store."""
    pass


class StoreQueryError(StoreError):
    """Query error in the crate store."""
    pass
