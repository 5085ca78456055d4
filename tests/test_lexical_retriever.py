"""Tests for keyword-to-tsquery construction and lexical retrieval."""

import pytest

from crate_search.retrievers.lexical import LexicalRetriever, build_tsquery, sanitize_term
from crate_search.store.base import StoreQueryError

from .fakes import FakeCrateStore, crate


def test_build_tsquery():
    """Test terms are OR'd, inner words AND'd, every term prefix-matched."""
    assert build_tsquery("http client, json") == "http & client:* | json:*"
    assert build_tsquery("HTTP") == "http:*"


def test_build_tsquery_caps_terms():
    keywords = ", ".join(f"term{i}" for i in range(10))
    assert build_tsquery(keywords).count(":*") == 6
    assert build_tsquery(keywords, max_terms=2) == "term0:* | term1:*"


def test_build_tsquery_strips_operators():
    assert sanitize_term("c++ & (rust)") == "c++ rust"
    assert build_tsquery("foo's | bar!, :*") == "foo & s & bar:*"
    assert build_tsquery(" , ,, ") == ""


@pytest.mark.asyncio
async def test_retrieve_orders_by_store_rank():
    store = FakeCrateStore(text_results={
        "http & client:* | json:*": [
            crate("1", "reqwest", "HTTP client", score=0.86),
            crate("2", "serde_json", "JSON", score=0.08),
        ]
    })
    retriever = LexicalRetriever(store)

    results = await retriever.retrieve("http client, json")

    assert [c.name for c in results] == ["reqwest", "serde_json"]
    assert all(c.semantic_score == 0.0 and c.final_score == 0.0 for c in results)
    assert store.calls_to("text_search") == [("text_search", "http & client:* | json:*", 200)]


@pytest.mark.asyncio
async def test_retrieve_empty_keywords_skips_store():
    store = FakeCrateStore()
    assert await LexicalRetriever(store).retrieve(" , ") == []
    assert store.calls == []


@pytest.mark.asyncio
async def test_retrieve_propagates_store_errors():
    store = FakeCrateStore(fail_reads=True)
    with pytest.raises(StoreQueryError):
        await LexicalRetriever(store).retrieve("http")
