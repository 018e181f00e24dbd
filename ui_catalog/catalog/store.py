"""
Catalog store interface consumed by the crawl and search core.

The core needs exactly three write primitives with transactional
guarantees from the store:

- upsert_component(): insert-or-update keyed by the unique (source_id, slug)
- mark_inactive_except(): one batch "mark inactive where source = X and
  slug not in (...)"
- try_claim_source(): compare-and-set of the source crawl status, which is
  what makes the one-running-job-per-source rule hold across processes

Everything else is bookkeeping for crawl jobs and read paths. Two
implementations exist: CatalogRepository (PostgreSQL) and
InMemoryCatalogStore (development and tests). Implementations raise
StorageError for failures of the underlying store.
"""

from collections.abc import Sequence
from datetime import datetime
from typing import Protocol

from ui_catalog.catalog.normalizer import NormalizedComponent
from ui_catalog.catalog.schemas import (
    BrowseFilters,
    Component,
    CrawlJob,
    CrawlStats,
    PaginatedResult,
    SearchAnalytics,
    SearchLog,
    SortOrder,
    SourceCrawlStatus,
    SourceSite,
    UpsertResult,
)


class CatalogStore(Protocol):
    """Storage surface of the catalog."""

    # ── Sources ─────────────────────────────────────────────

    async def upsert_source(self, source: SourceSite) -> SourceSite: ...

    async def get_source(self, source_id: str) -> SourceSite | None: ...

    async def get_source_by_slug(self, slug: str) -> SourceSite | None: ...

    async def list_sources(self, active_only: bool = True) -> list[SourceSite]: ...

    async def try_claim_source(
        self,
        source_id: str,
        job_id: str,
        stale_before: datetime,
    ) -> bool:
        """Atomically move the source to ``running`` on behalf of ``job_id``.

        Succeeds when the source is not running, or when its running claim
        started before ``stale_before`` (abandoned by a crashed process).
        """
        ...

    async def finish_crawl(
        self,
        source_id: str,
        job_id: str | None,
        status: SourceCrawlStatus,
    ) -> bool:
        """Release the running claim held by ``job_id``.

        A no-op returning False when the claim belongs to another job, so a
        preempted job can never release its successor's claim. ``success``
        also refreshes last_crawled_at and component_count.
        """
        ...

    # ── Crawl jobs ──────────────────────────────────────────

    async def create_crawl_job(self, job: CrawlJob) -> CrawlJob: ...

    async def update_crawl_job(self, job: CrawlJob) -> bool:
        """Persist job state. Returns False if the stored job is already terminal."""
        ...

    async def get_crawl_job(self, job_id: str) -> CrawlJob | None: ...

    async def get_running_job(self, source_id: str) -> CrawlJob | None:
        """Latest non-terminal job of a source, if any."""
        ...

    async def get_latest_job(self, source_id: str) -> CrawlJob | None: ...

    # ── Components ──────────────────────────────────────────

    async def get_active_fingerprints(self, source_id: str) -> dict[str, str]:
        """Map slug -> fingerprint for the active components of a source."""
        ...

    async def upsert_component(
        self,
        source_id: str,
        item: NormalizedComponent,
        seen_at: datetime,
    ) -> UpsertResult: ...

    async def touch_components(
        self,
        source_id: str,
        slugs: Sequence[str],
        seen_at: datetime,
    ) -> None: ...

    async def mark_inactive_except(
        self,
        source_id: str,
        keep_slugs: Sequence[str],
    ) -> int:
        """Soft-remove active components whose slug is not in keep_slugs.

        Returns the number of components deactivated.
        """
        ...

    async def get_component(self, source_id: str, slug: str) -> Component | None:
        """Fetch a component regardless of its active flag."""
        ...

    async def increment_view_count(self, component_id: str) -> None: ...

    async def list_active_components(self) -> list[Component]: ...

    async def browse_components(
        self,
        filters: BrowseFilters,
        page: int,
        limit: int,
        sort: SortOrder,
    ) -> PaginatedResult: ...

    # ── Analytics ───────────────────────────────────────────

    async def record_search(self, log: SearchLog) -> None: ...

    async def get_crawl_stats(self) -> CrawlStats:
        """Job counts per source and status, with the last successful run."""
        ...

    async def get_search_analytics(self, since: datetime, limit: int) -> SearchAnalytics:
        """Totals, the ``limit`` most frequent queries and daily volume since ``since``."""
        ...
