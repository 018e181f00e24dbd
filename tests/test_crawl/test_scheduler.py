"""Tests for due-source detection and the crawl scheduler."""

import asyncio
from datetime import datetime, timedelta, timezone

import pytest

from ui_catalog.adapters.base import AdapterRegistry
from ui_catalog.adapters.mock_adapter import StaticAdapter
from ui_catalog.catalog.schemas import (
    CrawlJob,
    CrawlJobStatus,
    SourceCrawlStatus,
)
from ui_catalog.crawl.orchestrator import CrawlOrchestrator
from ui_catalog.crawl.scheduler import CrawlScheduler, is_due

NOW = datetime(2026, 3, 1, 12, 0, tzinfo=timezone.utc)


class TestIsDue:
    def test_never_crawled(self, make_source) -> None:
        assert is_due(make_source(), None, NOW, 3600) is True

    def test_within_cadence(self, make_source) -> None:
        source = make_source(last_crawled_at=NOW - timedelta(hours=2), crawl_cadence_hours=24)
        assert is_due(source, None, NOW, 3600) is False

    def test_cadence_elapsed(self, make_source) -> None:
        source = make_source(last_crawled_at=NOW - timedelta(hours=25), crawl_cadence_hours=24)
        assert is_due(source, None, NOW, 3600) is True

    def test_running_or_inactive_never_due(self, make_source) -> None:
        assert is_due(make_source(crawl_status=SourceCrawlStatus.RUNNING), None, NOW, 0) is False
        assert is_due(make_source(is_active=False), None, NOW, 0) is False

    def test_failed_job_waits_for_retry_window(self, make_source) -> None:
        source = make_source(crawl_status=SourceCrawlStatus.FAILED)
        recent = CrawlJob(
            source_id=source.id,
            status=CrawlJobStatus.FAILED,
            completed_at=NOW - timedelta(minutes=10),
        )
        old = CrawlJob(
            source_id=source.id,
            status=CrawlJobStatus.FAILED,
            completed_at=NOW - timedelta(hours=2),
        )
        assert is_due(source, recent, NOW, 3600) is False
        assert is_due(source, old, NOW, 3600) is True

    def test_cancelled_job_falls_back_to_cadence(self, make_source) -> None:
        source = make_source(last_crawled_at=NOW - timedelta(hours=1))
        cancelled = CrawlJob(source_id=source.id, status=CrawlJobStatus.CANCELLED)
        assert is_due(source, cancelled, NOW, 3600) is False


class TestCrawlScheduler:
    @pytest.mark.asyncio
    async def test_tick_triggers_due_sources_only(
        self, store, make_source, make_raw, crawl_config
    ) -> None:
        await store.upsert_source(make_source("magic-ui"))
        await store.upsert_source(make_source("cult-ui"))
        registry = AdapterRegistry(
            {
                "magic-ui": StaticAdapter([make_raw("Shimmer Button")]),
                "cult-ui": StaticAdapter([make_raw("Texture Button")]),
            }
        )
        orchestrator = CrawlOrchestrator(store, registry, config=crawl_config)
        scheduler = CrawlScheduler(store, orchestrator)

        started = await scheduler.tick()
        assert sorted(j.metadata["source_slug"] for j in started) == ["cult-ui", "magic-ui"]
        for job in started:
            await orchestrator.wait_for(job.id, timeout=5.0)

        # Both were just crawled successfully
        assert await scheduler.tick() == []

    @pytest.mark.asyncio
    async def test_tick_skips_sources_without_adapter(
        self, store, make_source, crawl_config
    ) -> None:
        await store.upsert_source(make_source("neobrutalism"))
        orchestrator = CrawlOrchestrator(store, AdapterRegistry(), config=crawl_config)

        assert await CrawlScheduler(store, orchestrator).tick() == []

    @pytest.mark.asyncio
    async def test_tick_skips_busy_source(
        self, store, make_source, make_raw, crawl_config
    ) -> None:
        await store.upsert_source(make_source("magic-ui"))
        adapter = StaticAdapter([make_raw("Shimmer Button")], list_delay=0.2)
        orchestrator = CrawlOrchestrator(
            store, AdapterRegistry({"magic-ui": adapter}), config=crawl_config
        )
        job = await orchestrator.trigger_crawl("magic-ui")

        assert await CrawlScheduler(store, orchestrator).tick() == []
        await orchestrator.wait_for(job.id, timeout=5.0)

    @pytest.mark.asyncio
    async def test_start_and_stop(self, store, make_source, crawl_config) -> None:
        orchestrator = CrawlOrchestrator(store, AdapterRegistry(), config=crawl_config)
        scheduler = CrawlScheduler(store, orchestrator)

        await scheduler.start()
        assert scheduler.is_running is True
        await asyncio.sleep(0)
        await scheduler.stop()

        assert scheduler.is_running is False
