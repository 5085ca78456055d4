"""Backing store adapters.

Primary components:
- ``base``: abstract ``CrateStore`` interface and common exceptions.
- ``pgvector``: PostgreSQL full-text search + pgvector implementation.

Guidance:
- Prefer constructing via ``pgvector.create_crate_store(config)`` so the
  engine stays decoupled from connection details.
"""
