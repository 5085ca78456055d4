"""Hybrid crate recommendation engine.

Subpackages:
- ``crate_search.common``: configuration, structured logging, and metrics.
- ``crate_search.store``: backing store abstraction and the PostgreSQL backend.
- ``crate_search.intelligence``: query understanding, rewriting, remote LLM client.
- ``crate_search.retrievers``: lexical, traditional, and embedding cache layers.
- ``crate_search.ranking``: similarity scoring and score fusion.
- ``crate_search.hybrid``: the ``SearchManager`` orchestrating one search call.
- ``crate_search.evaluation``: relevance judging and search method comparison.

Usage:
- from crate_search.hybrid.search_manager import create_search_manager
"""

__version__ = "0.3.0"
