"""Query intelligence for crate search.

Contents
- ``query_understanding``: script detection and natural-language classification
- ``rewriter``: remote keyword rewriting/extraction with local fallbacks
- ``llm_client``: HTTP client for the chat and embedding capabilities
"""
