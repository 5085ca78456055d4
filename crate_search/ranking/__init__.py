"""Search ranking and score fusion components.

This package contains the similarity scorer and the combiner that blends
lexical and semantic signals under a ``SortCriteria`` policy.

Contents
- ``fusion``: cosine similarity, weighted blends, and sorting/truncation
"""
