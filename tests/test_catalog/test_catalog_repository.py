"""Tests for the PostgreSQL CatalogRepository using a mocked Database."""

from datetime import datetime, timezone
from unittest.mock import AsyncMock

import asyncpg
import pytest

from ui_catalog.catalog.normalizer import normalize_item
from ui_catalog.catalog.repository import CatalogRepository
from ui_catalog.catalog.schemas import (
    BrowseFilters,
    CrawlJob,
    CrawlJobStatus,
    SearchLog,
    SourceCrawlStatus,
)
from ui_catalog.errors import StorageError


class TestSources:
    """Source upsert, lookup and the crawl claim."""

    @pytest.mark.asyncio
    async def test_upsert_source_maps_row(
        self, mock_database: AsyncMock, source_row: dict, make_source
    ) -> None:
        repo = CatalogRepository(mock_database)
        mock_database.fetchrow.return_value = source_row

        source = await repo.upsert_source(make_source("magic-ui"))

        sql = mock_database.fetchrow.call_args[0][0]
        assert "ON CONFLICT (slug) DO UPDATE" in sql
        assert "crawl_status" not in sql.split("DO UPDATE")[1]
        assert source.base_url == "https://magicui.design"
        assert source.crawl_status == SourceCrawlStatus.PENDING
        assert source.metadata["registry"]["index_path"] == "/r/registry.json"

    @pytest.mark.asyncio
    async def test_claim_returns_true_when_row_updated(
        self, mock_database: AsyncMock
    ) -> None:
        repo = CatalogRepository(mock_database)
        mock_database.fetchrow.return_value = {"id": "s1"}
        cutoff = datetime(2026, 1, 1, tzinfo=timezone.utc)

        assert await repo.try_claim_source("s1", "job-1", cutoff) is True

        args = mock_database.fetchrow.call_args[0]
        assert "crawl_status <> 'running'" in args[0]
        assert "crawl_job_id = $2" in args[0]
        assert "crawl_started_at < $3" in args[0]
        assert args[1:] == ("s1", "job-1", cutoff)

    @pytest.mark.asyncio
    async def test_claim_returns_false_when_busy(self, mock_database: AsyncMock) -> None:
        repo = CatalogRepository(mock_database)
        assert await repo.try_claim_source("s1", "job-1", datetime.now(timezone.utc)) is False

    @pytest.mark.asyncio
    async def test_finish_success_recounts_components(
        self, mock_database: AsyncMock
    ) -> None:
        repo = CatalogRepository(mock_database)
        mock_database.execute.return_value = "UPDATE 1"

        assert await repo.finish_crawl("s1", "job-1", SourceCrawlStatus.SUCCESS) is True

        args = mock_database.execute.call_args[0]
        assert "component_count" in args[0]
        assert "last_crawled_at = NOW()" in args[0]
        assert "crawl_job_id = NULL" in args[0]
        assert args[1:] == ("s1", "job-1")

    @pytest.mark.asyncio
    async def test_finish_failure_sets_status(self, mock_database: AsyncMock) -> None:
        repo = CatalogRepository(mock_database)
        mock_database.execute.return_value = "UPDATE 1"

        assert await repo.finish_crawl("s1", "job-1", SourceCrawlStatus.FAILED) is True

        args = mock_database.execute.call_args[0]
        assert args[1:] == ("s1", "job-1", "failed")

    @pytest.mark.asyncio
    async def test_finish_matches_only_the_claiming_job(
        self, mock_database: AsyncMock
    ) -> None:
        """No row matches when another job holds the claim."""
        repo = CatalogRepository(mock_database)

        released = await repo.finish_crawl("s1", "old-job", SourceCrawlStatus.PENDING)

        assert released is False
        sql = mock_database.execute.call_args[0][0]
        assert "crawl_job_id IS NOT DISTINCT FROM $2::uuid" in sql
        assert "crawl_status = 'running'" in sql

    @pytest.mark.asyncio
    async def test_source_row_maps_claim_owner(
        self, mock_database: AsyncMock, source_row: dict
    ) -> None:
        repo = CatalogRepository(mock_database)
        mock_database.fetchrow.return_value = {
            **source_row,
            "crawl_status": "running",
            "crawl_job_id": "9b2f1c1e-0000-4000-8000-0000000000a1",
        }

        source = await repo.get_source(source_row["id"])

        assert source.crawl_status == SourceCrawlStatus.RUNNING
        assert source.crawl_job_id == "9b2f1c1e-0000-4000-8000-0000000000a1"

    @pytest.mark.asyncio
    async def test_list_sources_active_only(self, mock_database: AsyncMock, source_row) -> None:
        repo = CatalogRepository(mock_database)
        mock_database.fetch.return_value = [source_row]

        sources = await repo.list_sources()

        assert [s.slug for s in sources] == ["magic-ui"]
        assert "is_active = TRUE" in mock_database.fetch.call_args[0][0]


class TestCrawlJobs:
    @pytest.mark.asyncio
    async def test_update_refuses_terminal_rows(self, mock_database: AsyncMock) -> None:
        repo = CatalogRepository(mock_database)
        job = CrawlJob(source_id="s1", status=CrawlJobStatus.SUCCESS)

        assert await repo.update_crawl_job(job) is False

        args = mock_database.fetchrow.call_args[0]
        assert "status NOT IN ('success', 'failed', 'cancelled')" in args[0]
        assert args[1] == job.id
        assert args[2] == "success"

    @pytest.mark.asyncio
    async def test_get_missing_job(self, mock_database: AsyncMock) -> None:
        repo = CatalogRepository(mock_database)
        assert await repo.get_crawl_job("missing") is None


class TestComponents:
    @pytest.mark.asyncio
    async def test_upsert_component_params(
        self, mock_database: AsyncMock, component_row: dict, make_raw
    ) -> None:
        repo = CatalogRepository(mock_database)
        mock_database.fetchrow.return_value = {**component_row, "inserted": False}
        item = normalize_item(make_raw("Shimmer Button", tags=["Button", "animation"]))
        seen_at = datetime(2026, 1, 3, tzinfo=timezone.utc)

        result = await repo.upsert_component("s1", item, seen_at)

        args = mock_database.fetchrow.call_args[0]
        assert "ON CONFLICT (source_website_id, slug) DO UPDATE" in args[0]
        assert "view_count" not in args[0].split("DO UPDATE")[1]
        assert args[2] == "s1"
        assert args[3] == "shimmer-button"
        assert args[15] == ["animation", "button"]
        assert args[19] == item.fingerprint
        assert args[21] == seen_at
        assert result.inserted is False
        assert result.component.view_count == 7
        assert result.component.tags == ["animation", "button"]
        assert result.component.dependencies == {"motion": "^11"}

    @pytest.mark.asyncio
    async def test_mark_inactive_parses_count(self, mock_database: AsyncMock) -> None:
        repo = CatalogRepository(mock_database)
        mock_database.execute.return_value = "UPDATE 3"

        removed = await repo.mark_inactive_except("s1", ("a", "b"))

        assert removed == 3
        args = mock_database.execute.call_args[0]
        assert "slug <> ALL($2::text[])" in args[0]
        assert args[2] == ["a", "b"]

    @pytest.mark.asyncio
    async def test_touch_skips_empty(self, mock_database: AsyncMock) -> None:
        repo = CatalogRepository(mock_database)
        await repo.touch_components("s1", [], datetime.now(timezone.utc))
        mock_database.execute.assert_not_called()

    @pytest.mark.asyncio
    async def test_active_fingerprints(self, mock_database: AsyncMock) -> None:
        repo = CatalogRepository(mock_database)
        mock_database.fetch.return_value = [
            {"slug": "a", "content_hash": "h1"},
            {"slug": "b", "content_hash": "h2"},
        ]
        assert await repo.get_active_fingerprints("s1") == {"a": "h1", "b": "h2"}

    @pytest.mark.asyncio
    async def test_list_active_includes_source_slug(
        self, mock_database: AsyncMock, component_row: dict
    ) -> None:
        repo = CatalogRepository(mock_database)
        mock_database.fetch.return_value = [{**component_row, "source_slug": "magic-ui"}]

        components = await repo.list_active_components()

        assert components[0].source_slug == "magic-ui"
        assert components[0].fingerprint == "a" * 64


class TestBrowse:
    @pytest.mark.asyncio
    async def test_builds_filters_and_pagination(
        self, mock_database: AsyncMock, component_row: dict
    ) -> None:
        repo = CatalogRepository(mock_database)
        mock_database.fetchval.return_value = 41
        mock_database.fetch.return_value = [{**component_row, "source_slug": "magic-ui"}]

        page = await repo.browse_components(
            BrowseFilters(source="magic-ui", component_type="button", tags=["Animation"]),
            page=3,
            limit=20,
            sort="popular",
        )

        count_args = mock_database.fetchval.call_args[0]
        assert "s.slug = $1" in count_args[0]
        assert "c.component_type = $2" in count_args[0]
        assert "c.tags @> $3::jsonb" in count_args[0]
        assert count_args[1:] == ("magic-ui", "button", '["animation"]')

        data_args = mock_database.fetch.call_args[0]
        assert "ORDER BY c.view_count DESC" in data_args[0]
        assert "LIMIT $4 OFFSET $5" in data_args[0]
        assert data_args[-2:] == (20, 40)

        assert page.total == 41
        assert page.total_pages == 3
        assert page.has_next is False
        assert page.has_previous is True


class TestErrorTranslation:
    @pytest.mark.asyncio
    async def test_driver_error_becomes_storage_error(self, mock_database: AsyncMock) -> None:
        repo = CatalogRepository(mock_database)
        mock_database.fetchrow.side_effect = asyncpg.InterfaceError("pool is closed")

        with pytest.raises(StorageError) as exc_info:
            await repo.get_source("s1")

        assert exc_info.value.code == "storage_error"
        assert isinstance(exc_info.value.__cause__, asyncpg.InterfaceError)

    @pytest.mark.asyncio
    async def test_connection_error_becomes_storage_error(
        self, mock_database: AsyncMock
    ) -> None:
        repo = CatalogRepository(mock_database)
        mock_database.execute.side_effect = ConnectionRefusedError("refused")

        with pytest.raises(StorageError):
            await repo.record_search(
                SearchLog(query="x", results_count=0, session_id="s", response_time_ms=1)
            )

    @pytest.mark.asyncio
    async def test_search_query_truncated(self, mock_database: AsyncMock) -> None:
        repo = CatalogRepository(mock_database)
        await repo.record_search(
            SearchLog(query="q" * 900, results_count=0, session_id="s", response_time_ms=1)
        )
        assert len(mock_database.execute.call_args[0][2]) == 500


class TestAnalytics:
    """Crawl statistics and search analytics queries."""

    @pytest.mark.asyncio
    async def test_crawl_stats_groups_rows_by_source(self, mock_database: AsyncMock) -> None:
        repo = CatalogRepository(mock_database)
        last_success = datetime(2026, 3, 1, 12, tzinfo=timezone.utc)
        mock_database.fetch.return_value = [
            {
                "source_slug": "aceternity-ui",
                "status": "failed",
                "jobs": 1,
                "last_success_at": None,
            },
            {
                "source_slug": "aceternity-ui",
                "status": "success",
                "jobs": 4,
                "last_success_at": last_success,
            },
            {
                "source_slug": "magic-ui",
                "status": "cancelled",
                "jobs": 2,
                "last_success_at": None,
            },
        ]

        stats = await repo.get_crawl_stats()

        sql = mock_database.fetch.call_args[0][0]
        assert "GROUP BY s.slug, j.status" in sql
        assert "FILTER (WHERE j.status = 'success')" in sql
        ace, magic = stats.sources
        assert ace.jobs_by_status == {"failed": 1, "success": 4}
        assert ace.last_success_at == last_success
        assert magic.jobs_by_status == {"cancelled": 2}
        assert stats.total_jobs == 7
        assert stats.last_success_at == last_success

    @pytest.mark.asyncio
    async def test_search_analytics_queries(self, mock_database: AsyncMock) -> None:
        repo = CatalogRepository(mock_database)
        since = datetime(2026, 3, 1, tzinfo=timezone.utc)
        mock_database.fetchrow.return_value = {"searches": 3, "avg_ms": 12.5}
        mock_database.fetch.side_effect = [
            [
                {"query": "card", "searches": 2, "avg_ms": 15.0},
                {"query": "button", "searches": 1, "avg_ms": 7.5},
            ],
            [{"day": since.date(), "searches": 3, "avg_ms": 12.5}],
        ]

        analytics = await repo.get_search_analytics(since, limit=5)

        assert mock_database.fetchrow.call_args[0][1:] == (since,)
        top_call, daily_call = mock_database.fetch.call_args_list
        assert "ORDER BY searches DESC, query" in top_call[0][0]
        assert top_call[0][1:] == (since, 5)
        assert "AT TIME ZONE 'UTC'" in daily_call[0][0]
        assert analytics.total_searches == 3
        assert analytics.avg_response_time_ms == 12.5
        assert [q.query for q in analytics.top_queries] == ["card", "button"]
        assert analytics.volume[0].day == since.date()

    @pytest.mark.asyncio
    async def test_search_analytics_error_translated(self, mock_database: AsyncMock) -> None:
        repo = CatalogRepository(mock_database)
        mock_database.fetchrow.side_effect = asyncpg.InterfaceError("pool is closed")

        with pytest.raises(StorageError):
            await repo.get_search_analytics(datetime.now(timezone.utc), limit=5)
