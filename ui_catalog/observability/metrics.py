"""
Prometheus metrics for the crawl and search subsystem.

Defines and exposes metrics for:
- Crawl job outcomes and duration
- Per-item merge outcomes
- Adapter errors
- Search latency and index size

Metrics are exposed via HTTP endpoint for Prometheus scraping.
"""

import logging

from prometheus_client import (
    REGISTRY,
    Counter,
    Gauge,
    Histogram,
    start_http_server,
)

from ui_catalog.config.settings import get_settings

logger = logging.getLogger(__name__)

# Buckets for search latency histograms (in seconds)
SEARCH_LATENCY_BUCKETS = (0.001, 0.005, 0.01, 0.025, 0.05, 0.1, 0.25, 0.5, 1.0)

# Crawls take minutes, not milliseconds
CRAWL_DURATION_BUCKETS = (1.0, 5.0, 15.0, 30.0, 60.0, 120.0, 300.0, 600.0, 1800.0)


class MetricsCollector:
    """
    Prometheus metrics collector for the catalog pipeline.

    Usage:
        metrics = get_metrics()
        metrics.start_server()
        metrics.record_crawl_job("magic-ui", "success", duration=12.5)
    """

    def __init__(self):
        """Initialize Prometheus metrics."""

        self.crawl_jobs = Counter(
            "ui_catalog_crawl_jobs_total",
            "Total crawl jobs reaching a terminal state",
            ["source", "status"],  # status: success, failed, cancelled
        )

        self.crawl_items = Counter(
            "ui_catalog_crawl_items_total",
            "Per-item merge outcomes",
            ["source", "outcome"],  # outcome: added, updated, unchanged, duplicate, malformed, adapter_failed, write_failed
        )

        self.components_removed = Counter(
            "ui_catalog_components_removed_total",
            "Components soft-removed by stale marking",
            ["source"],
        )

        self.adapter_errors = Counter(
            "ui_catalog_adapter_errors_total",
            "Adapter call failures (after each attempt)",
            ["source", "error_type"],
        )

        self.crawl_duration = Histogram(
            "ui_catalog_crawl_duration_seconds",
            "Wall-clock duration of crawl jobs",
            ["source"],
            buckets=CRAWL_DURATION_BUCKETS,
        )

        self.running_crawls = Gauge(
            "ui_catalog_running_crawls",
            "Crawl jobs currently holding a worker slot",
        )

        self.search_queries = Counter(
            "ui_catalog_search_queries_total",
            "Search queries served",
            ["status"],  # status: success, invalid, unavailable
        )

        self.search_latency = Histogram(
            "ui_catalog_search_latency_seconds",
            "Time to answer a search query from the index",
            buckets=SEARCH_LATENCY_BUCKETS,
        )

        self.search_index_size = Gauge(
            "ui_catalog_search_index_size",
            "Number of active components in the current search index",
        )

        self.search_index_rebuilds = Counter(
            "ui_catalog_search_index_rebuilds_total",
            "Search index rebuild attempts",
            ["status"],  # status: success, error
        )

        logger.info("Prometheus metrics initialized")

    def start_server(self, port: int | None = None) -> None:
        """
        Start Prometheus metrics HTTP server.

        Args:
            port: Port to expose metrics on (default from settings)
        """
        settings = get_settings()
        port = port or settings.metrics_port

        start_http_server(port, registry=REGISTRY)
        logger.info(f"Prometheus metrics server started on port {port}")

    # Convenience methods

    def record_crawl_job(
        self,
        source: str,
        status: str,
        duration: float | None = None,
    ) -> None:
        """Record a crawl job reaching a terminal state."""
        self.crawl_jobs.labels(source=source, status=status).inc()
        if duration is not None:
            self.crawl_duration.labels(source=source).observe(duration)

    def record_item(self, source: str, outcome: str) -> None:
        """Record a single merge outcome."""
        self.crawl_items.labels(source=source, outcome=outcome).inc()

    def record_removed(self, source: str, count: int) -> None:
        if count:
            self.components_removed.labels(source=source).inc(count)

    def record_adapter_error(self, source: str, error_type: str) -> None:
        self.adapter_errors.labels(source=source, error_type=error_type).inc()

    def record_search(self, status: str, latency: float | None = None) -> None:
        """Record a served search query and its latency in seconds."""
        self.search_queries.labels(status=status).inc()
        if latency is not None:
            self.search_latency.observe(latency)

    def record_index_rebuild(self, success: bool, size: int | None = None) -> None:
        self.search_index_rebuilds.labels(
            status="success" if success else "error"
        ).inc()
        if size is not None:
            self.search_index_size.set(size)


# Global metrics instance
_metrics: MetricsCollector | None = None


def get_metrics() -> MetricsCollector:
    """Get global metrics collector instance."""
    global _metrics
    if _metrics is None:
        _metrics = MetricsCollector()
    return _metrics
