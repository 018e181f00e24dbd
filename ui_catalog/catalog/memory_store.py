"""
In-memory catalog store.

Implements the CatalogStore protocol with the same atomicity guarantees as
the PostgreSQL repository, using a single asyncio.Lock in place of row
locks. Used by the CLI ``--mock`` mode and throughout the test suite.

Objects are copied on the way in and out so callers can never mutate
stored state without going through the store.
"""

import asyncio
import copy
import logging
from collections.abc import Sequence
from datetime import date, datetime, timezone

from ui_catalog.catalog.normalizer import NormalizedComponent
from ui_catalog.catalog.schemas import (
    BrowseFilters,
    Component,
    CrawlJob,
    CrawlJobStatus,
    CrawlStats,
    DailySearchVolume,
    PaginatedResult,
    QueryStats,
    SearchAnalytics,
    SearchLog,
    SortOrder,
    SourceCrawlStats,
    SourceCrawlStatus,
    SourceSite,
    UpsertResult,
)

logger = logging.getLogger(__name__)

_CONTENT_FIELDS = (
    "name",
    "description",
    "source_url",
    "source_code",
    "code_language",
    "component_type",
    "tags",
    "dependencies",
    "variants",
    "props",
    "preview_url",
    "thumbnail_url",
    "license",
    "author",
    "version",
    "metadata",
    "fingerprint",
)


def _utc_now() -> datetime:
    return datetime.now(timezone.utc)


def _mean(values) -> float:
    values = list(values)
    return sum(values) / len(values) if values else 0.0


class InMemoryCatalogStore:
    """Dict-backed CatalogStore."""

    def __init__(self) -> None:
        self._lock = asyncio.Lock()
        self._sources: dict[str, SourceSite] = {}
        self._jobs: dict[str, CrawlJob] = {}
        # (source_id, slug) -> Component
        self._components: dict[tuple[str, str], Component] = {}
        self._search_logs: list[SearchLog] = []

        # Counts content writes (insert/update); tests use it to prove idempotence
        self.write_count = 0

    # ── Sources ─────────────────────────────────────────────

    async def upsert_source(self, source: SourceSite) -> SourceSite:
        async with self._lock:
            existing = self._find_source_by_slug(source.slug)
            now = _utc_now()
            if existing is None:
                stored = copy.deepcopy(source)
                stored.created_at = stored.created_at or now
                stored.updated_at = now
                self._sources[stored.id] = stored
            else:
                # Seeding never touches crawl state
                existing.name = source.name
                existing.base_url = source.base_url
                existing.description = source.description
                existing.license_type = source.license_type
                existing.crawl_cadence_hours = source.crawl_cadence_hours
                existing.is_active = source.is_active
                existing.metadata = copy.deepcopy(source.metadata)
                existing.updated_at = now
                stored = existing
            return copy.deepcopy(stored)

    async def get_source(self, source_id: str) -> SourceSite | None:
        source = self._sources.get(source_id)
        return copy.deepcopy(source) if source else None

    async def get_source_by_slug(self, slug: str) -> SourceSite | None:
        source = self._find_source_by_slug(slug)
        return copy.deepcopy(source) if source else None

    async def list_sources(self, active_only: bool = True) -> list[SourceSite]:
        sources = [
            s for s in self._sources.values() if s.is_active or not active_only
        ]
        return [copy.deepcopy(s) for s in sorted(sources, key=lambda s: s.slug)]

    async def try_claim_source(
        self,
        source_id: str,
        job_id: str,
        stale_before: datetime,
    ) -> bool:
        async with self._lock:
            source = self._sources.get(source_id)
            if source is None:
                return False
            if source.crawl_status == SourceCrawlStatus.RUNNING and (
                source.crawl_started_at is None
                or source.crawl_started_at >= stale_before
            ):
                return False
            now = _utc_now()
            source.crawl_status = SourceCrawlStatus.RUNNING
            source.crawl_job_id = job_id
            source.crawl_started_at = now
            source.updated_at = now
            return True

    async def finish_crawl(
        self,
        source_id: str,
        job_id: str | None,
        status: SourceCrawlStatus,
    ) -> bool:
        async with self._lock:
            source = self._sources.get(source_id)
            if (
                source is None
                or source.crawl_status != SourceCrawlStatus.RUNNING
                or source.crawl_job_id != job_id
            ):
                return False
            now = _utc_now()
            source.crawl_status = status
            source.crawl_job_id = None
            source.updated_at = now
            if status == SourceCrawlStatus.SUCCESS:
                source.last_crawled_at = now
                source.component_count = sum(
                    1
                    for (sid, _), c in self._components.items()
                    if sid == source_id and c.is_active
                )
            return True

    # ── Crawl jobs ──────────────────────────────────────────

    async def create_crawl_job(self, job: CrawlJob) -> CrawlJob:
        async with self._lock:
            self._jobs[job.id] = copy.deepcopy(job)
            return copy.deepcopy(job)

    async def update_crawl_job(self, job: CrawlJob) -> bool:
        async with self._lock:
            stored = self._jobs.get(job.id)
            if stored is None or stored.is_terminal:
                return False
            self._jobs[job.id] = copy.deepcopy(job)
            return True

    async def get_crawl_job(self, job_id: str) -> CrawlJob | None:
        job = self._jobs.get(job_id)
        return copy.deepcopy(job) if job else None

    async def get_running_job(self, source_id: str) -> CrawlJob | None:
        jobs = [
            j for j in self._jobs.values()
            if j.source_id == source_id and not j.is_terminal
        ]
        if not jobs:
            return None
        return copy.deepcopy(max(jobs, key=lambda j: j.created_at))

    async def get_latest_job(self, source_id: str) -> CrawlJob | None:
        jobs = [j for j in self._jobs.values() if j.source_id == source_id]
        if not jobs:
            return None
        return copy.deepcopy(max(jobs, key=lambda j: j.created_at))

    # ── Components ──────────────────────────────────────────

    async def get_active_fingerprints(self, source_id: str) -> dict[str, str]:
        return {
            slug: c.fingerprint
            for (sid, slug), c in self._components.items()
            if sid == source_id and c.is_active
        }

    async def upsert_component(
        self,
        source_id: str,
        item: NormalizedComponent,
        seen_at: datetime,
    ) -> UpsertResult:
        async with self._lock:
            key = (source_id, item.slug)
            existing = self._components.get(key)
            data = item.model_dump()
            self.write_count += 1

            if existing is None:
                component = Component(
                    source_id=source_id,
                    slug=item.slug,
                    name=item.name,
                    source_url=item.source_url,
                    source_code=item.source_code,
                    fingerprint=item.fingerprint,
                    last_seen_at=seen_at,
                    created_at=seen_at,
                    updated_at=seen_at,
                )
                for name in _CONTENT_FIELDS:
                    setattr(component, name, copy.deepcopy(data[name]))
                self._components[key] = component
                return UpsertResult(component=copy.deepcopy(component), inserted=True)

            # id, view_count and created_at stay stable across updates
            for name in _CONTENT_FIELDS:
                setattr(existing, name, copy.deepcopy(data[name]))
            existing.is_active = True
            existing.last_seen_at = seen_at
            existing.updated_at = _utc_now()
            return UpsertResult(component=copy.deepcopy(existing), inserted=False)

    async def touch_components(
        self,
        source_id: str,
        slugs: Sequence[str],
        seen_at: datetime,
    ) -> None:
        async with self._lock:
            for slug in slugs:
                component = self._components.get((source_id, slug))
                if component is not None:
                    component.last_seen_at = seen_at

    async def mark_inactive_except(
        self,
        source_id: str,
        keep_slugs: Sequence[str],
    ) -> int:
        keep = set(keep_slugs)
        async with self._lock:
            removed = 0
            now = _utc_now()
            for (sid, slug), component in self._components.items():
                if sid == source_id and component.is_active and slug not in keep:
                    component.is_active = False
                    component.updated_at = now
                    removed += 1
            return removed

    async def list_active_components(self) -> list[Component]:
        slugs = {s.id: s.slug for s in self._sources.values()}
        result = []
        for component in self._components.values():
            if not component.is_active:
                continue
            item = copy.deepcopy(component)
            item.source_slug = slugs.get(component.source_id)
            result.append(item)
        return result

    async def browse_components(
        self,
        filters: BrowseFilters,
        page: int,
        limit: int,
        sort: SortOrder,
    ) -> PaginatedResult:
        slugs = {s.id: s.slug for s in self._sources.values()}
        wanted_tags = {t.lower() for t in filters.tags}

        matches = []
        for component in self._components.values():
            if not component.is_active:
                continue
            if filters.source and slugs.get(component.source_id) != filters.source:
                continue
            if filters.component_type and component.component_type != filters.component_type:
                continue
            if wanted_tags and not wanted_tags.issubset(component.tags):
                continue
            matches.append(component)

        if sort == "popular":
            matches.sort(key=lambda c: (-c.view_count, c.name.lower()))
        elif sort == "name":
            matches.sort(key=lambda c: (c.name.lower(), c.id))
        else:
            matches.sort(key=lambda c: c.created_at, reverse=True)

        offset = (page - 1) * limit
        items = []
        for component in matches[offset : offset + limit]:
            item = copy.deepcopy(component)
            item.source_slug = slugs.get(component.source_id)
            items.append(item)

        return PaginatedResult(items=items, page=page, limit=limit, total=len(matches))

    async def get_component(self, source_id: str, slug: str) -> Component | None:
        """Fetch a component regardless of its active flag."""
        component = self._components.get((source_id, slug))
        return copy.deepcopy(component) if component else None

    async def increment_view_count(self, component_id: str) -> None:
        async with self._lock:
            for component in self._components.values():
                if component.id == component_id:
                    component.view_count += 1
                    return

    # ── Analytics ───────────────────────────────────────────

    async def record_search(self, log: SearchLog) -> None:
        async with self._lock:
            self._search_logs.append(copy.deepcopy(log))

    async def get_crawl_stats(self) -> CrawlStats:
        async with self._lock:
            by_source: dict[str, SourceCrawlStats] = {}
            for job in self._jobs.values():
                source = self._sources.get(job.source_id)
                if source is None:
                    continue
                stats = by_source.setdefault(
                    source.slug, SourceCrawlStats(source_slug=source.slug)
                )
                status = job.status.value
                stats.jobs_by_status[status] = stats.jobs_by_status.get(status, 0) + 1
                if job.status == CrawlJobStatus.SUCCESS and job.completed_at:
                    if stats.last_success_at is None or job.completed_at > stats.last_success_at:
                        stats.last_success_at = job.completed_at
            return CrawlStats(sources=[by_source[slug] for slug in sorted(by_source)])

    async def get_search_analytics(self, since: datetime, limit: int) -> SearchAnalytics:
        async with self._lock:
            logs = [log for log in self._search_logs if log.created_at >= since]

        analytics = SearchAnalytics(since=since, total_searches=len(logs))
        if not logs:
            return analytics
        analytics.avg_response_time_ms = _mean(log.response_time_ms for log in logs)

        by_query: dict[str, list[int]] = {}
        by_day: dict[date, list[int]] = {}
        for log in logs:
            by_query.setdefault(log.query, []).append(log.response_time_ms)
            day = log.created_at.astimezone(timezone.utc).date()
            by_day.setdefault(day, []).append(log.response_time_ms)

        ranked = sorted(by_query.items(), key=lambda kv: (-len(kv[1]), kv[0]))
        analytics.top_queries = [
            QueryStats(query=query, searches=len(times), avg_response_time_ms=_mean(times))
            for query, times in ranked[:limit]
        ]
        analytics.volume = [
            DailySearchVolume(day=day, searches=len(times), avg_response_time_ms=_mean(times))
            for day, times in sorted(by_day.items())
        ]
        return analytics

    @property
    def search_logs(self) -> list[SearchLog]:
        return list(self._search_logs)

    def _find_source_by_slug(self, slug: str) -> SourceSite | None:
        for source in self._sources.values():
            if source.slug == slug:
                return source
        return None
