"""Data types shared by every stage of a search call."""

from dataclasses import dataclass
from enum import Enum
from typing import Union


class SortCriteria(Enum):
    """Caller-selected weighting policy for the final ranking."""
    COMPREHENSIVE = "comprehensive"
    RELEVANCE = "relevance"
    DOWNLOADS = "downloads"

    @classmethod
    def parse(cls, value: Union[str, "SortCriteria"]) -> "SortCriteria":
        """Parse a criteria name case-insensitively."""
        if isinstance(value, cls):
            return value
        try:
            return cls(str(value).strip().lower())
        except ValueError:
            valid = ", ".join(member.value for member in cls)
            raise ValueError(f"Unknown sort criteria {value!r}; expected one of: {valid}")


@dataclass
class Candidate:
    """One retrieved crate record.

    ``lexical_score`` is only comparable within a single retrieval call.
    ``semantic_score`` and ``final_score`` are filled during reranking.
    """
    id: str
    name: str
    description: str
    lexical_score: float = 0.0
    semantic_score: float = 0.0
    final_score: float = 0.0

    @property
    def embedding_text(self) -> str:
        """Text submitted to the embedding capability for this crate."""
        if not self.description:
            return self.name
        return f"{self.name} : {self.description}"


@dataclass(frozen=True)
class NormalizedQuery:
    """Outcome of query normalization."""
    original: str
    text: str
    is_natural_language: bool
    has_cjk: bool
