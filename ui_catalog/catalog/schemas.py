"""
Data models for the catalog: source sites, crawl jobs and components.

The string values of CrawlJobStatus and SourceCrawlStatus are persisted
and read by the API layer - do not rename them.
"""

import uuid
from dataclasses import dataclass, field
from datetime import date, datetime, timezone
from enum import Enum
from typing import Any, Literal


def _utc_now() -> datetime:
    """Return current UTC time with timezone info."""
    return datetime.now(timezone.utc)


def new_id() -> str:
    return str(uuid.uuid4())


class CrawlJobStatus(str, Enum):
    """Lifecycle of a single crawl run."""

    PENDING = "pending"
    RUNNING = "running"
    SUCCESS = "success"
    FAILED = "failed"
    CANCELLED = "cancelled"

    @property
    def is_terminal(self) -> bool:
        return self in TERMINAL_JOB_STATUSES


TERMINAL_JOB_STATUSES = frozenset(
    {CrawlJobStatus.SUCCESS, CrawlJobStatus.FAILED, CrawlJobStatus.CANCELLED}
)


class SourceCrawlStatus(str, Enum):
    """Crawl status stored on the source row. Only RUNNING means busy."""

    PENDING = "pending"
    RUNNING = "running"
    SUCCESS = "success"
    FAILED = "failed"


LicenseType = Literal["MIT", "Apache", "Commercial", "Mixed"]
SortOrder = Literal["newest", "popular", "name"]


@dataclass
class SourceSite:
    """A site components are crawled from (shadcn/ui, Magic UI, ...).

    ``metadata`` carries adapter settings, e.g. a ``registry`` block
    consumed by build_registry().
    """

    slug: str
    name: str
    base_url: str
    id: str = field(default_factory=new_id)
    description: str = ""
    license_type: LicenseType = "MIT"
    crawl_cadence_hours: int = 24
    crawl_status: SourceCrawlStatus = SourceCrawlStatus.PENDING
    # Job holding the running claim; only that job may release it
    crawl_job_id: str | None = None
    crawl_started_at: datetime | None = None
    last_crawled_at: datetime | None = None
    component_count: int = 0
    is_active: bool = True
    metadata: dict[str, Any] = field(default_factory=dict)
    created_at: datetime | None = None
    updated_at: datetime | None = None

    @property
    def is_crawling(self) -> bool:
        return self.crawl_status == SourceCrawlStatus.RUNNING


@dataclass
class CrawlJob:
    """One orchestration run for one source."""

    source_id: str
    id: str = field(default_factory=new_id)
    status: CrawlJobStatus = CrawlJobStatus.PENDING
    started_at: datetime | None = None
    completed_at: datetime | None = None
    components_found: int = 0
    components_added: int = 0
    components_updated: int = 0
    components_removed: int = 0
    components_failed: int = 0
    error_code: str | None = None
    error_message: str | None = None
    duration_ms: int | None = None
    metadata: dict[str, Any] = field(default_factory=dict)
    created_at: datetime = field(default_factory=_utc_now)

    @property
    def is_terminal(self) -> bool:
        return self.status.is_terminal

    @property
    def counters(self) -> dict[str, int]:
        """Counters in the shape reported to API callers."""
        return {
            "found": self.components_found,
            "added": self.components_added,
            "updated": self.components_updated,
            "removed": self.components_removed,
        }

    def to_dict(self) -> dict[str, Any]:
        return {
            "id": self.id,
            "source_id": self.source_id,
            "status": self.status.value,
            "started_at": self.started_at.isoformat() if self.started_at else None,
            "completed_at": self.completed_at.isoformat() if self.completed_at else None,
            "components_found": self.components_found,
            "components_added": self.components_added,
            "components_updated": self.components_updated,
            "components_removed": self.components_removed,
            "components_failed": self.components_failed,
            "error_code": self.error_code,
            "error_message": self.error_message,
            "duration_ms": self.duration_ms,
            "metadata": self.metadata,
            "created_at": self.created_at.isoformat(),
        }


@dataclass
class Component:
    """Canonical catalog entry, unique per (source_id, slug)."""

    source_id: str
    slug: str
    name: str
    source_url: str
    source_code: str
    fingerprint: str
    id: str = field(default_factory=new_id)
    description: str = ""
    tags: list[str] = field(default_factory=list)
    component_type: str = "other"
    code_language: str = "tsx"
    dependencies: dict[str, str] = field(default_factory=dict)
    variants: list[Any] = field(default_factory=list)
    props: dict[str, Any] = field(default_factory=dict)
    preview_url: str | None = None
    thumbnail_url: str | None = None
    license: str | None = None
    author: str | None = None
    version: str | None = None
    metadata: dict[str, Any] = field(default_factory=dict)
    is_active: bool = True
    view_count: int = 0
    last_seen_at: datetime | None = None
    created_at: datetime = field(default_factory=_utc_now)
    updated_at: datetime = field(default_factory=_utc_now)
    # Denormalized for search results; filled by list_active_components()
    source_slug: str | None = None


@dataclass
class UpsertResult:
    """Outcome of a single upsert keyed by (source_id, slug)."""

    component: Component
    inserted: bool


@dataclass
class BrowseFilters:
    source: str | None = None
    component_type: str | None = None
    tags: list[str] = field(default_factory=list)


@dataclass
class PaginatedResult:
    """A page of components plus pagination metadata."""

    items: list[Component]
    page: int
    limit: int
    total: int

    @property
    def total_pages(self) -> int:
        if self.limit <= 0:
            return 0
        return (self.total + self.limit - 1) // self.limit

    @property
    def has_next(self) -> bool:
        return self.page < self.total_pages

    @property
    def has_previous(self) -> bool:
        return self.page > 1


@dataclass
class SearchLog:
    """Analytics record for a served search."""

    query: str
    results_count: int
    session_id: str
    response_time_ms: int
    filters: dict[str, Any] = field(default_factory=dict)
    id: str = field(default_factory=new_id)
    created_at: datetime = field(default_factory=_utc_now)


@dataclass
class SourceCrawlStats:
    source_slug: str
    jobs_by_status: dict[str, int] = field(default_factory=dict)
    last_success_at: datetime | None = None

    @property
    def total_jobs(self) -> int:
        return sum(self.jobs_by_status.values())


@dataclass
class CrawlStats:
    """Crawl job totals across all sources, plus a per-source breakdown."""

    sources: list[SourceCrawlStats] = field(default_factory=list)

    @property
    def jobs_by_status(self) -> dict[str, int]:
        totals: dict[str, int] = {}
        for source in self.sources:
            for status, count in source.jobs_by_status.items():
                totals[status] = totals.get(status, 0) + count
        return totals

    @property
    def total_jobs(self) -> int:
        return sum(source.total_jobs for source in self.sources)

    @property
    def last_success_at(self) -> datetime | None:
        times = [s.last_success_at for s in self.sources if s.last_success_at]
        return max(times) if times else None


@dataclass
class QueryStats:
    query: str
    searches: int
    avg_response_time_ms: float


@dataclass
class DailySearchVolume:
    day: date
    searches: int
    avg_response_time_ms: float


@dataclass
class SearchAnalytics:
    """Search log aggregates since a cutoff."""

    since: datetime
    total_searches: int = 0
    avg_response_time_ms: float = 0.0
    top_queries: list[QueryStats] = field(default_factory=list)
    volume: list[DailySearchVolume] = field(default_factory=list)
