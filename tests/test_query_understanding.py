"""Tests for query normalization and natural-language detection."""

import pytest

from crate_search.intelligence.query_understanding import (
    QueryNormalizer,
    contains_cjk,
    is_natural_language_query,
    tokenize,
)


def test_contains_cjk():
    assert contains_cjk("HTTP客户端")
    assert contains_cjk("非同期ランタイム")
    assert contains_cjk("웹 서버")
    assert not contains_cjk("http client")


def test_tokenize_splits_at_script_boundaries():
    """Test CJK runs are tokens of their own."""
    assert tokenize("http client") == ["http", "client"]
    assert tokenize("我需要一个HTTP客户端库") == ["我需要一个", "HTTP", "客户端库"]


@pytest.mark.parametrize("query", [
    "http client",
    "serde json parser",
    "tokio",
    "async-std",
    "json库",
    "",
])
def test_keyword_queries(query):
    """Test structured keyword queries skip extraction."""
    assert is_natural_language_query(query) is False


@pytest.mark.parametrize("query", [
    "I need a crate for handling HTTP requests",
    "how to parse json",
    "which crate parses yaml?",
    "fast json parser.",
    "我需要一个HTTP客户端库",
    "如何解析JSON",
    "json库吗",
])
def test_natural_language_queries(query):
    """Test sentence-style queries are routed to keyword extraction."""
    assert is_natural_language_query(query) is True


def test_normalizer_lowercases_keywords_only():
    normalizer = QueryNormalizer()

    keywords = normalizer.normalize("  HTTP Client ")
    assert keywords.text == "http client"
    assert keywords.original == "  HTTP Client "
    assert keywords.is_natural_language is False
    assert keywords.has_cjk is False

    sentence = normalizer.normalize("I need an HTTP client")
    assert sentence.text == "I need an HTTP client"
    assert sentence.is_natural_language is True

    cjk = normalizer.normalize("我需要一个HTTP客户端库")
    assert cjk.is_natural_language is True
    assert cjk.has_cjk is True
