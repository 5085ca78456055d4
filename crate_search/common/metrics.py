"""Metrics collection for the crate search engine.

Provides a thin convenience wrapper around ``prometheus_client`` so every
component records search, rewrite, embedding cache, and store metrics with
consistent names and label sets.

Design notes
- Metrics and labels are predeclared to avoid cardinality explosions
- Each collector owns its registry (tests construct their own)
"""

from typing import Optional

from prometheus_client import CollectorRegistry, Counter, Histogram, generate_latest
import structlog

logger = structlog.get_logger("metrics")


class MetricsCollector:
    """Centralized metrics collection for the search engine.

    Parameters
    - service_name: Logical name used for scoping
    - registry: Optional custom ``CollectorRegistry`` (e.g. for testing)
    """

    def __init__(self, service_name: str, registry: Optional[CollectorRegistry] = None):
        self.service_name = service_name
        self.registry = registry or CollectorRegistry()

        self.search_requests = Counter(
            "crate_search_requests_total",
            "Total search requests",
            ["method", "sort_by"],
            registry=self.registry,
        )

        self.search_duration = Histogram(
            "crate_search_duration_seconds",
            "Search duration",
            ["method"],
            registry=self.registry,
        )

        self.rewrite_fallbacks = Counter(
            "crate_search_rewrite_fallbacks_total",
            "Query rewrites answered by the local fallback",
            ["operation", "reason"],
            registry=self.registry,
        )

        self.embedding_cache_hits = Counter(
            "crate_search_embedding_cache_hits_total",
            "Candidate embeddings found in the store",
            registry=self.registry,
        )

        self.embedding_cache_misses = Counter(
            "crate_search_embedding_cache_misses_total",
            "Candidate embeddings missing from the store",
            ["mode"],
            registry=self.registry,
        )

        self.embeddings_generated = Counter(
            "crate_search_embeddings_generated_total",
            "Embeddings generated by the remote capability",
            registry=self.registry,
        )

        self.store_write_failures = Counter(
            "crate_search_store_write_failures_total",
            "Embedding write-backs that failed and were skipped",
            registry=self.registry,
        )

        self.lexical_only_rankings = Counter(
            "crate_search_lexical_only_rankings_total",
            "Searches ranked without a query embedding",
            registry=self.registry,
        )

    def record_search(self, method: str, sort_by: str, duration: float) -> None:
        """Record search metrics.

        duration is expected in seconds to match Prometheus histogram units.
        """
        self.search_requests.labels(method=method, sort_by=sort_by).inc()
        self.search_duration.labels(method=method).observe(duration)

    def record_rewrite_fallback(self, operation: str, reason: str) -> None:
        """Record a rewrite/extraction answered locally."""
        self.rewrite_fallbacks.labels(operation=operation, reason=reason).inc()

    def record_embedding_lookup(self, hits: int, misses: int, mode: str) -> None:
        """Record the outcome of one batched embedding lookup."""
        if hits:
            self.embedding_cache_hits.inc(hits)
        if misses:
            self.embedding_cache_misses.labels(mode=mode).inc(misses)

    def record_embeddings_generated(self, count: int) -> None:
        """Record embeddings produced by the remote capability."""
        if count:
            self.embeddings_generated.inc(count)

    def record_store_write_failure(self) -> None:
        """Record a skipped embedding write-back."""
        self.store_write_failures.inc()

    def record_lexical_only(self) -> None:
        """Record a search that fell back to lexical-only ranking."""
        self.lexical_only_rankings.inc()

    def get_metrics(self) -> str:
        """Get metrics in Prometheus exposition format for scraping."""
        return generate_latest(self.registry).decode("utf-8")


# Global metrics collector instance
_metrics_collector: Optional[MetricsCollector] = None


def get_metrics_collector(service_name: str = "crate-search") -> MetricsCollector:
    """Get or create the process-wide metrics collector.

    Returns a singleton to avoid duplicate collectors/labels.
    """
    global _metrics_collector
    if _metrics_collector is None:
        _metrics_collector = MetricsCollector(service_name)
        logger.debug("Created metrics collector", service_name=service_name)
    return _metrics_collector
