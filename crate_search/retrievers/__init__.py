"""Candidate retrievers and the embedding cache.

Retrievers encapsulate how candidates are fetched from the crate store before
ranking. Splitting retrieval from ranking keeps pipelines modular and testable.

Contents
- ``lexical``: single-query text-search retrieval from a keyword string
- ``traditional``: multi-variant, multi-strategy retrieval without any LLM
- ``embedding_cache``: cache-or-compute resolution of candidate embeddings
"""
