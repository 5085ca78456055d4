"""Operator scripts for crate search.

Scripts include:
- ``search_crates.py``: run one search and print the ranked crates.
- ``manage_embeddings.py``: precompute or reset stored crate embeddings.
- ``compare_search_methods.py``: judged precision of hybrid vs traditional search.
"""
