"""Tests for the metrics collector and logging context helpers."""

import structlog
from prometheus_client import REGISTRY

from ui_catalog.observability.logging import bind_crawl_context, clear_crawl_context
from ui_catalog.observability.metrics import get_metrics


def _sample(name: str, labels: dict[str, str]) -> float:
    return REGISTRY.get_sample_value(name, labels) or 0.0


class TestMetricsCollector:
    def test_singleton(self):
        assert get_metrics() is get_metrics()

    def test_record_crawl_job(self):
        metrics = get_metrics()
        labels = {"source": "metrics-test", "status": "success"}
        before = _sample("ui_catalog_crawl_jobs_total", labels)

        metrics.record_crawl_job("metrics-test", "success", duration=2.0)

        assert _sample("ui_catalog_crawl_jobs_total", labels) == before + 1

    def test_record_removed_ignores_zero(self):
        metrics = get_metrics()
        labels = {"source": "metrics-removed"}

        metrics.record_removed("metrics-removed", 0)
        metrics.record_removed("metrics-removed", 3)

        assert _sample("ui_catalog_components_removed_total", labels) == 3

    def test_index_rebuild_sets_size(self):
        metrics = get_metrics()
        metrics.record_index_rebuild(success=True, size=42)
        assert _sample("ui_catalog_search_index_size", {}) == 42


class TestLoggingContext:
    def test_bind_and_clear(self):
        structlog.contextvars.clear_contextvars()
        bind_crawl_context("job-1", "magic-ui")
        assert structlog.contextvars.get_contextvars() == {
            "job_id": "job-1",
            "source": "magic-ui",
        }

        clear_crawl_context()
        assert structlog.contextvars.get_contextvars() == {}

    def test_clear_keeps_unrelated_keys(self):
        structlog.contextvars.clear_contextvars()
        structlog.contextvars.bind_contextvars(request="r1")
        bind_crawl_context("job-2", "shadcn-ui")

        clear_crawl_context()

        assert structlog.contextvars.get_contextvars() == {"request": "r1"}
        structlog.contextvars.clear_contextvars()
