"""Hybrid search orchestration.

- ``search_manager``: one search call from raw query to ranked candidates.
"""
