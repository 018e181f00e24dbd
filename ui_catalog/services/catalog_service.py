"""
Catalog service - the facade consumed by the API layer and the CLI.

Wires the crawl orchestrator, the scheduler and the search service around
one catalog store:

- a crawl that changed the catalog requests a search index refresh
- start()/stop() manage the background tasks (index refresh loop,
  scheduler) and cancel running crawl jobs on shutdown
- crawl_stats() and search_analytics() summarize crawl_jobs and search_logs
"""

from datetime import datetime, timedelta, timezone
from typing import get_args

import structlog

from ui_catalog.adapters.base import AdapterRegistry
from ui_catalog.catalog.schemas import (
    BrowseFilters,
    Component,
    CrawlJob,
    CrawlStats,
    PaginatedResult,
    SearchAnalytics,
    SortOrder,
    SourceSite,
)
from ui_catalog.catalog.store import CatalogStore
from ui_catalog.crawl.config import CrawlConfig
from ui_catalog.crawl.orchestrator import CrawlOrchestrator
from ui_catalog.crawl.scheduler import CrawlScheduler
from ui_catalog.errors import InvalidQueryError, SourceNotFoundError
from ui_catalog.search.config import SearchConfig
from ui_catalog.search.schemas import SearchFilters, SearchResult
from ui_catalog.search.service import SearchService

logger = structlog.get_logger(__name__)

SORT_ORDERS: tuple[str, ...] = get_args(SortOrder)


class CatalogService:
    """
    Entry point to crawling, browsing and searching the catalog.

    Usage:
        service = CatalogService(store, adapters)
        await service.start()
        job = await service.trigger_crawl("aceternity-ui")
        result = await service.search("card")
        await service.stop()
    """

    def __init__(
        self,
        store: CatalogStore,
        adapters: AdapterRegistry,
        crawl_config: CrawlConfig | None = None,
        search_config: SearchConfig | None = None,
    ):
        self._store = store
        self._adapters = adapters
        self._search = SearchService(store, search_config)
        self._orchestrator = CrawlOrchestrator(
            store,
            adapters,
            config=crawl_config,
            on_catalog_changed=self._on_catalog_changed,
        )
        self._scheduler = CrawlScheduler(store, self._orchestrator)

    @property
    def store(self) -> CatalogStore:
        return self._store

    @property
    def orchestrator(self) -> CrawlOrchestrator:
        return self._orchestrator

    @property
    def search_service(self) -> SearchService:
        return self._search

    @property
    def scheduler(self) -> CrawlScheduler:
        return self._scheduler

    def _on_catalog_changed(self, source_slug: str) -> None:
        logger.info("Catalog changed, refreshing search index", source=source_slug)
        self._search.request_refresh()

    # ── Lifecycle ───────────────────────────────────────────

    async def start(self, run_scheduler: bool = True) -> None:
        await self._search.start()
        if run_scheduler:
            await self._scheduler.start()
        logger.info("Catalog service started", scheduler=run_scheduler)

    async def stop(self) -> None:
        await self._scheduler.stop()
        await self._orchestrator.shutdown()
        await self._search.stop()
        logger.info("Catalog service stopped")

    # ── Crawling ────────────────────────────────────────────

    async def trigger_crawl(self, source_slug: str, force: bool = False) -> CrawlJob:
        return await self._orchestrator.trigger_crawl(source_slug, force=force)

    async def run_crawl(self, source_slug: str, force: bool = False) -> CrawlJob:
        return await self._orchestrator.run_crawl(source_slug, force=force)

    async def get_crawl_status(self, job_id: str) -> CrawlJob:
        return await self._orchestrator.get_crawl_status(job_id)

    async def cancel_crawl(self, job_id: str) -> bool:
        return await self._orchestrator.cancel_crawl(job_id)

    # ── Reads ───────────────────────────────────────────────

    async def search(
        self,
        query: str,
        filters: SearchFilters | None = None,
        limit: int | None = None,
        session_id: str | None = None,
    ) -> SearchResult:
        return await self._search.search(query, filters, limit, session_id=session_id)

    async def browse_components(
        self,
        filters: BrowseFilters | None = None,
        page: int = 1,
        limit: int = 20,
        sort: SortOrder = "newest",
    ) -> PaginatedResult:
        """
        Paginated listing of active components.

        Raises:
            InvalidQueryError: page < 1, limit outside 1..max_limit or an
                unknown sort order
        """
        if page < 1:
            raise InvalidQueryError("Page must be at least 1")
        max_limit = self._search.config.max_limit
        if limit < 1 or limit > max_limit:
            raise InvalidQueryError(f"Limit must be between 1 and {max_limit}")
        if sort not in SORT_ORDERS:
            raise InvalidQueryError(
                f"Sort must be one of {', '.join(SORT_ORDERS)}, got '{sort}'"
            )
        return await self._store.browse_components(filters or BrowseFilters(), page, limit, sort)

    async def list_sources(self, active_only: bool = True) -> list[SourceSite]:
        return await self._store.list_sources(active_only=active_only)

    async def record_view(self, source_slug: str, component_slug: str) -> Component | None:
        """Increment the view counter of an active component and return it."""
        source = await self._store.get_source_by_slug(source_slug)
        if source is None:
            raise SourceNotFoundError(source_slug)
        component = await self._store.get_component(source.id, component_slug)
        if component is None or not component.is_active:
            return None
        await self._store.increment_view_count(component.id)
        component.view_count += 1
        return component

    # ── Analytics ───────────────────────────────────────────

    async def crawl_stats(self) -> CrawlStats:
        """Crawl job counts per status and the last successful run, per source."""
        return await self._store.get_crawl_stats()

    async def search_analytics(self, days: int = 7, limit: int = 20) -> SearchAnalytics:
        """
        Most frequent queries and response times over the last ``days`` days.

        Raises:
            InvalidQueryError: days < 1 or limit outside 1..max_limit
        """
        if days < 1:
            raise InvalidQueryError("Days must be at least 1")
        max_limit = self._search.config.max_limit
        if limit < 1 or limit > max_limit:
            raise InvalidQueryError(f"Limit must be between 1 and {max_limit}")
        since = datetime.now(timezone.utc) - timedelta(days=days)
        return await self._store.get_search_analytics(since, limit)
