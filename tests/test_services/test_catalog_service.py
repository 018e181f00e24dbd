"""Tests for the CatalogService facade."""

import asyncio

import pytest

from ui_catalog.adapters.base import AdapterRegistry
from ui_catalog.adapters.mock_adapter import StaticAdapter, create_mock_adapters
from ui_catalog.catalog.memory_store import InMemoryCatalogStore
from ui_catalog.catalog.schemas import BrowseFilters, CrawlJobStatus
from ui_catalog.catalog.seed import seed_sources
from ui_catalog.errors import InvalidQueryError, SourceNotFoundError
from ui_catalog.services.catalog_service import CatalogService


async def _mock_service(crawl_config, search_config) -> CatalogService:
    store = InMemoryCatalogStore()
    await seed_sources(store)
    return CatalogService(
        store,
        create_mock_adapters(),
        crawl_config=crawl_config,
        search_config=search_config,
    )


class TestCrawlToSearch:
    """End-to-end: crawl into the store and find the result through search."""

    @pytest.mark.asyncio
    async def test_crawl_refreshes_search_index(self, crawl_config, search_config) -> None:
        service = await _mock_service(crawl_config, search_config)
        await service.start(run_scheduler=False)
        try:
            assert (await service.search("shimmer")).total == 0

            job = await service.run_crawl("magic-ui")
            assert job.status == CrawlJobStatus.SUCCESS
            await asyncio.sleep(0.05)

            result = await service.search("shimmer")
            assert [h.name for h in result.hits] == ["Shimmer Button"]
            assert result.hits[0].source_slug == "magic-ui"
        finally:
            await service.stop()

    @pytest.mark.asyncio
    async def test_status_and_cancel_passthrough(self, crawl_config, search_config) -> None:
        service = await _mock_service(crawl_config, search_config)
        job = await service.run_crawl("cult-ui")

        assert (await service.get_crawl_status(job.id)).status == CrawlJobStatus.SUCCESS
        assert await service.cancel_crawl(job.id) is False

    @pytest.mark.asyncio
    async def test_stop_cancels_running_jobs(
        self, store, make_source, make_raw, crawl_config, search_config
    ) -> None:
        await store.upsert_source(make_source("magic-ui"))
        adapter = StaticAdapter([make_raw("Card A")], list_delay=5.0)
        service = CatalogService(
            store, AdapterRegistry({"magic-ui": adapter}), crawl_config, search_config
        )
        await service.start(run_scheduler=False)
        job = await service.trigger_crawl("magic-ui")
        await asyncio.sleep(0.05)

        await service.stop()

        assert (await store.get_crawl_job(job.id)).status == CrawlJobStatus.CANCELLED


class TestBrowse:
    @pytest.mark.asyncio
    async def test_browse_after_crawl(self, crawl_config, search_config) -> None:
        service = await _mock_service(crawl_config, search_config)
        await service.run_crawl("shadcn-ui")

        page = await service.browse_components(
            BrowseFilters(source="shadcn-ui"), page=1, limit=2, sort="name"
        )

        assert page.total == 5
        assert [c.name for c in page.items] == ["Button", "Card"]
        assert page.has_next is True

    @pytest.mark.asyncio
    @pytest.mark.parametrize(
        "kwargs",
        [{"page": 0}, {"limit": 0}, {"limit": 101}, {"sort": "random"}],
    )
    async def test_invalid_browse_arguments(self, crawl_config, search_config, kwargs) -> None:
        service = await _mock_service(crawl_config, search_config)
        with pytest.raises(InvalidQueryError):
            await service.browse_components(**kwargs)


class TestRecordView:
    @pytest.mark.asyncio
    async def test_increments_view_count(self, crawl_config, search_config) -> None:
        service = await _mock_service(crawl_config, search_config)
        await service.run_crawl("magic-ui")

        first = await service.record_view("magic-ui", "marquee")
        second = await service.record_view("magic-ui", "marquee")

        assert first.view_count == 1
        assert second.view_count == 2

    @pytest.mark.asyncio
    async def test_unknown_component_and_source(self, crawl_config, search_config) -> None:
        service = await _mock_service(crawl_config, search_config)

        assert await service.record_view("magic-ui", "nope") is None
        with pytest.raises(SourceNotFoundError):
            await service.record_view("nope", "marquee")

    @pytest.mark.asyncio
    async def test_list_sources(self, crawl_config, search_config) -> None:
        service = await _mock_service(crawl_config, search_config)
        assert len(await service.list_sources()) == 7


class TestAnalytics:
    """Crawl statistics and search analytics through the facade."""

    @pytest.mark.asyncio
    async def test_crawl_stats_after_crawls(self, crawl_config, search_config) -> None:
        service = await _mock_service(crawl_config, search_config)
        await service.run_crawl("magic-ui")
        job = await service.run_crawl("magic-ui")

        stats = await service.crawl_stats()

        assert [s.source_slug for s in stats.sources] == ["magic-ui"]
        assert stats.jobs_by_status == {"success": 2}
        assert stats.last_success_at == job.completed_at

    @pytest.mark.asyncio
    async def test_search_analytics_counts_logged_searches(
        self, crawl_config, search_config
    ) -> None:
        service = await _mock_service(crawl_config, search_config)
        await service.run_crawl("magic-ui")
        for query in ("shimmer", "marquee", "shimmer"):
            await service.search(query, session_id="session-1")

        analytics = await service.search_analytics(days=1, limit=5)

        assert analytics.total_searches == 3
        assert [(q.query, q.searches) for q in analytics.top_queries] == [
            ("shimmer", 2),
            ("marquee", 1),
        ]
        assert sum(v.searches for v in analytics.volume) == 3

    @pytest.mark.asyncio
    @pytest.mark.parametrize("kwargs", [{"days": 0}, {"limit": 0}, {"limit": 101}])
    async def test_invalid_analytics_arguments(self, crawl_config, search_config, kwargs) -> None:
        service = await _mock_service(crawl_config, search_config)
        with pytest.raises(InvalidQueryError):
            await service.search_analytics(**kwargs)
