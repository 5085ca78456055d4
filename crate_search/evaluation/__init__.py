"""Offline relevance evaluation of search results.

- ``judge``: chat-capability relevance judgments with a per-run cache
- ``comparison``: precision at k for hybrid versus traditional search
"""
