"""Tests for common utilities."""

import pytest
import structlog
from pydantic import ValidationError

from crate_search.common.config import CrateSearchConfig, get_config
from crate_search.common.logging import configure_logging, log_performance, search_context
from crate_search.common.metrics import MetricsCollector, get_metrics_collector


def test_config_loading():
    """Test configuration defaults."""
    config = get_config(env_file=None, openai_api_key="")
    assert config.cs_table_name == "crates"
    assert config.cs_embedding_batch_size == 100
    assert config.cs_max_query_terms == 6
    assert config.cs_retrieval_limit == 200
    assert config.cs_result_limit == 100
    assert config.cs_embedding_mode == "on_demand"
    assert config.remote_enabled is False


def test_config_overrides():
    """Test explicit overrides and credential detection."""
    config = get_config(env_file=None, openai_api_key=" key ", cs_embedding_mode="Precomputed")
    assert config.remote_enabled is True
    assert config.cs_embedding_mode == "precomputed"


def test_config_rejects_unsafe_table_name():
    """Test the table name is validated as an identifier."""
    with pytest.raises(ValidationError):
        CrateSearchConfig(_env_file=None, cs_table_name="crates; DROP TABLE crates")

    config = CrateSearchConfig(_env_file=None, cs_table_name="search.crates")
    assert config.cs_table_name == "search.crates"


def test_config_rejects_unknown_embedding_mode():
    with pytest.raises(ValidationError):
        CrateSearchConfig(_env_file=None, cs_embedding_mode="lazy")


def test_logging_configuration():
    """Test logging configuration."""
    # This should not raise an exception
    configure_logging("test-service", "INFO", "json")
    configure_logging("test-service", "DEBUG", "console")
    log_performance("search_hybrid", 12.345, results=3)


def test_search_context_restores_previous_values():
    """Test per-search context unwinds on exit."""
    structlog.contextvars.clear_contextvars()
    structlog.contextvars.bind_contextvars(sort_by="outer")

    with search_context(search_query="json", sort_by="relevance"):
        assert structlog.contextvars.get_contextvars() == {"sort_by": "relevance", "search_query": "json"}

    assert structlog.contextvars.get_contextvars() == {"sort_by": "outer"}
    structlog.contextvars.clear_contextvars()


def test_metrics_collector():
    """Test metrics collector."""
    collector = MetricsCollector("test-service")
    assert collector.service_name == "test-service"

    collector.record_search("hybrid", "comprehensive", 0.1)
    collector.record_rewrite_fallback("rewrite", "unavailable")
    collector.record_embedding_lookup(hits=3, misses=2, mode="on_demand")
    collector.record_embeddings_generated(2)
    collector.record_store_write_failure()
    collector.record_lexical_only()

    metrics = collector.get_metrics()
    assert isinstance(metrics, str)
    assert "crate_search_requests_total" in metrics
    assert 'method="hybrid"' in metrics
    assert "crate_search_embedding_cache_hits_total 3.0" in metrics
    assert "crate_search_lexical_only_rankings_total 1.0" in metrics


def test_metrics_collectors_are_isolated():
    """Test each collector owns its registry."""
    first = MetricsCollector("a")
    second = MetricsCollector("b")
    first.record_lexical_only()
    assert "crate_search_lexical_only_rankings_total 0.0" in second.get_metrics()


def test_global_metrics_collector_is_singleton():
    assert get_metrics_collector() is get_metrics_collector()
