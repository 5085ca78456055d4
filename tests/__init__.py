"""Tests for the crate search engine.

Every test runs offline: the crate store is an in-memory fake and the remote
chat/embedding capabilities are served by ``httpx.MockTransport``.
"""
