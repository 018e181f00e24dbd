"""
PostgreSQL implementation of the catalog store.

Tables:
    - source_websites: crawled sites and their crawl claim
    - crawl_jobs: one row per orchestration run
    - components: catalog entries, unique per (source_website_id, slug)
    - search_logs: analytics for served searches

The three primitives the crawl core relies on map onto single statements:
INSERT ... ON CONFLICT for upserts, one UPDATE ... WHERE slug <> ALL(...)
for stale marking and a conditional UPDATE ... RETURNING for the
compare-and-set claim on source_websites.crawl_status.
"""

import functools
import json
import logging
from collections.abc import Sequence
from datetime import datetime
from typing import Any

import asyncpg

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
    new_id,
)
from ui_catalog.errors import StorageError
from ui_catalog.storage.database import Database

logger = logging.getLogger(__name__)

_CREATE_TABLES_SQL = """
CREATE TABLE IF NOT EXISTS source_websites (
    id                  UUID PRIMARY KEY,
    slug                VARCHAR(100) NOT NULL UNIQUE,
    name                VARCHAR(100) NOT NULL,
    url                 VARCHAR(500) NOT NULL,
    description         TEXT NOT NULL DEFAULT '',
    license_type        TEXT NOT NULL DEFAULT 'MIT'
        CHECK (license_type IN ('MIT', 'Apache', 'Commercial', 'Mixed')),
    crawl_cadence_hours INTEGER NOT NULL DEFAULT 24,
    crawl_status        TEXT NOT NULL DEFAULT 'pending'
        CHECK (crawl_status IN ('pending', 'running', 'success', 'failed')),
    crawl_job_id        UUID,
    crawl_started_at    TIMESTAMPTZ,
    last_crawled_at     TIMESTAMPTZ,
    component_count     INTEGER NOT NULL DEFAULT 0,
    is_active           BOOLEAN NOT NULL DEFAULT TRUE,
    metadata            JSONB NOT NULL DEFAULT '{}',
    created_at          TIMESTAMPTZ NOT NULL DEFAULT NOW(),
    updated_at          TIMESTAMPTZ NOT NULL DEFAULT NOW()
);

CREATE TABLE IF NOT EXISTS crawl_jobs (
    id                  UUID PRIMARY KEY,
    source_website_id   UUID NOT NULL REFERENCES source_websites(id) ON DELETE CASCADE,
    status              TEXT NOT NULL DEFAULT 'pending'
        CHECK (status IN ('pending', 'running', 'success', 'failed', 'cancelled')),
    started_at          TIMESTAMPTZ,
    completed_at        TIMESTAMPTZ,
    components_found    INTEGER NOT NULL DEFAULT 0,
    components_added    INTEGER NOT NULL DEFAULT 0,
    components_updated  INTEGER NOT NULL DEFAULT 0,
    components_removed  INTEGER NOT NULL DEFAULT 0,
    components_failed   INTEGER NOT NULL DEFAULT 0,
    error_code          TEXT,
    error_message       TEXT,
    duration_ms         INTEGER,
    metadata            JSONB NOT NULL DEFAULT '{}',
    created_at          TIMESTAMPTZ NOT NULL DEFAULT NOW()
);

CREATE INDEX IF NOT EXISTS crawl_jobs_source_status_idx
    ON crawl_jobs(source_website_id, status);
CREATE INDEX IF NOT EXISTS crawl_jobs_created_at_idx
    ON crawl_jobs(created_at DESC);

CREATE TABLE IF NOT EXISTS components (
    id                  UUID PRIMARY KEY,
    source_website_id   UUID NOT NULL REFERENCES source_websites(id) ON DELETE CASCADE,
    slug                VARCHAR(200) NOT NULL,
    name                VARCHAR(200) NOT NULL,
    description         TEXT NOT NULL DEFAULT '',
    source_url          VARCHAR(1000) NOT NULL,
    preview_url         VARCHAR(1000),
    thumbnail_url       VARCHAR(1000),
    source_code         TEXT NOT NULL,
    code_language       TEXT NOT NULL DEFAULT 'tsx'
        CHECK (code_language IN ('typescript', 'javascript', 'tsx', 'jsx')),
    component_type      VARCHAR(100) NOT NULL DEFAULT 'other',
    dependencies        JSONB NOT NULL DEFAULT '{}',
    props               JSONB NOT NULL DEFAULT '{}',
    variants            JSONB NOT NULL DEFAULT '[]',
    tags                JSONB NOT NULL DEFAULT '[]',
    license             VARCHAR(100),
    author              VARCHAR(200),
    version             VARCHAR(50),
    content_hash        VARCHAR(64) NOT NULL,
    is_active           BOOLEAN NOT NULL DEFAULT TRUE,
    view_count          INTEGER NOT NULL DEFAULT 0,
    metadata            JSONB NOT NULL DEFAULT '{}',
    last_seen_at        TIMESTAMPTZ,
    created_at          TIMESTAMPTZ NOT NULL DEFAULT NOW(),
    updated_at          TIMESTAMPTZ NOT NULL DEFAULT NOW(),
    UNIQUE (source_website_id, slug)
);

CREATE INDEX IF NOT EXISTS components_source_active_idx
    ON components(source_website_id, is_active);
CREATE INDEX IF NOT EXISTS components_type_idx
    ON components(component_type);
CREATE INDEX IF NOT EXISTS components_tags_idx
    ON components USING GIN(tags);
CREATE INDEX IF NOT EXISTS components_content_hash_idx
    ON components(content_hash);

CREATE TABLE IF NOT EXISTS search_logs (
    id                  UUID PRIMARY KEY,
    query               VARCHAR(500) NOT NULL,
    filters             JSONB NOT NULL DEFAULT '{}',
    results_count       INTEGER NOT NULL DEFAULT 0,
    session_id          VARCHAR(100) NOT NULL,
    response_time_ms    INTEGER NOT NULL,
    created_at          TIMESTAMPTZ NOT NULL DEFAULT NOW()
);

CREATE INDEX IF NOT EXISTS search_logs_query_idx ON search_logs(query);
CREATE INDEX IF NOT EXISTS search_logs_created_at_idx ON search_logs(created_at);

-- Tables created before claims carried an owner
ALTER TABLE source_websites ADD COLUMN IF NOT EXISTS crawl_job_id UUID;
"""

_UPSERT_SOURCE_SQL = """
INSERT INTO source_websites (
    id, slug, name, url, description, license_type,
    crawl_cadence_hours, is_active, metadata
)
VALUES ($1, $2, $3, $4, $5, $6, $7, $8, $9)
ON CONFLICT (slug) DO UPDATE SET
    name = EXCLUDED.name,
    url = EXCLUDED.url,
    description = EXCLUDED.description,
    license_type = EXCLUDED.license_type,
    crawl_cadence_hours = EXCLUDED.crawl_cadence_hours,
    is_active = EXCLUDED.is_active,
    metadata = EXCLUDED.metadata,
    updated_at = NOW()
RETURNING *
"""

_CLAIM_SOURCE_SQL = """
UPDATE source_websites
SET crawl_status = 'running',
    crawl_job_id = $2,
    crawl_started_at = NOW(),
    updated_at = NOW()
WHERE id = $1
  AND (crawl_status <> 'running' OR crawl_started_at IS NULL OR crawl_started_at < $3)
RETURNING id
"""

# Both releases only match the claim held by the given job
_FINISH_SUCCESS_SQL = """
UPDATE source_websites
SET crawl_status = 'success',
    crawl_job_id = NULL,
    last_crawled_at = NOW(),
    component_count = (
        SELECT COUNT(*) FROM components
        WHERE source_website_id = $1 AND is_active = TRUE
    ),
    updated_at = NOW()
WHERE id = $1
  AND crawl_status = 'running'
  AND crawl_job_id IS NOT DISTINCT FROM $2::uuid
"""

_FINISH_SQL = """
UPDATE source_websites
SET crawl_status = $3, crawl_job_id = NULL, updated_at = NOW()
WHERE id = $1
  AND crawl_status = 'running'
  AND crawl_job_id IS NOT DISTINCT FROM $2::uuid
"""

_CRAWL_STATS_SQL = """
SELECT
    s.slug AS source_slug,
    j.status,
    COUNT(*) AS jobs,
    MAX(j.completed_at) FILTER (WHERE j.status = 'success') AS last_success_at
FROM crawl_jobs j
JOIN source_websites s ON s.id = j.source_website_id
GROUP BY s.slug, j.status
ORDER BY s.slug, j.status
"""

_SEARCH_TOTALS_SQL = """
SELECT COUNT(*) AS searches, COALESCE(AVG(response_time_ms), 0)::float AS avg_ms
FROM search_logs
WHERE created_at >= $1
"""

_TOP_QUERIES_SQL = """
SELECT query, COUNT(*) AS searches, AVG(response_time_ms)::float AS avg_ms
FROM search_logs
WHERE created_at >= $1
GROUP BY query
ORDER BY searches DESC, query
LIMIT $2
"""

_DAILY_SEARCHES_SQL = """
SELECT
    DATE(created_at AT TIME ZONE 'UTC') AS day,
    COUNT(*) AS searches,
    AVG(response_time_ms)::float AS avg_ms
FROM search_logs
WHERE created_at >= $1
GROUP BY day
ORDER BY day
"""

_INSERT_JOB_SQL = """
INSERT INTO crawl_jobs (id, source_website_id, status, metadata, created_at)
VALUES ($1, $2, $3, $4, $5)
RETURNING *
"""

# Terminal rows are immutable: the WHERE clause refuses to touch them
_UPDATE_JOB_SQL = """
UPDATE crawl_jobs SET
    status = $2,
    started_at = $3,
    completed_at = $4,
    components_found = $5,
    components_added = $6,
    components_updated = $7,
    components_removed = $8,
    components_failed = $9,
    error_code = $10,
    error_message = $11,
    duration_ms = $12,
    metadata = $13
WHERE id = $1 AND status NOT IN ('success', 'failed', 'cancelled')
RETURNING id
"""

_UPSERT_COMPONENT_SQL = """
INSERT INTO components (
    id, source_website_id, slug, name, description, source_url,
    preview_url, thumbnail_url, source_code, code_language, component_type,
    dependencies, props, variants, tags, license, author, version,
    content_hash, metadata, is_active, last_seen_at, created_at, updated_at
)
VALUES (
    $1, $2, $3, $4, $5, $6, $7, $8, $9, $10, $11, $12, $13, $14, $15,
    $16, $17, $18, $19, $20, TRUE, $21, $21, $21
)
ON CONFLICT (source_website_id, slug) DO UPDATE SET
    name = EXCLUDED.name,
    description = EXCLUDED.description,
    source_url = EXCLUDED.source_url,
    preview_url = EXCLUDED.preview_url,
    thumbnail_url = EXCLUDED.thumbnail_url,
    source_code = EXCLUDED.source_code,
    code_language = EXCLUDED.code_language,
    component_type = EXCLUDED.component_type,
    dependencies = EXCLUDED.dependencies,
    props = EXCLUDED.props,
    variants = EXCLUDED.variants,
    tags = EXCLUDED.tags,
    license = EXCLUDED.license,
    author = EXCLUDED.author,
    version = EXCLUDED.version,
    content_hash = EXCLUDED.content_hash,
    metadata = EXCLUDED.metadata,
    is_active = TRUE,
    last_seen_at = EXCLUDED.last_seen_at,
    updated_at = NOW()
RETURNING *, (xmax = 0) AS inserted
"""

_MARK_INACTIVE_SQL = """
UPDATE components SET is_active = FALSE, updated_at = NOW()
WHERE source_website_id = $1
  AND is_active = TRUE
  AND slug <> ALL($2::text[])
"""

_SORT_CLAUSES: dict[str, str] = {
    "newest": "c.created_at DESC, c.id",
    "popular": "c.view_count DESC, c.name ASC",
    "name": "c.name ASC, c.id",
}


def _storage_errors(func):
    """Translate database/driver failures into StorageError."""

    @functools.wraps(func)
    async def wrapper(*args, **kwargs):
        try:
            return await func(*args, **kwargs)
        except (asyncpg.PostgresError, asyncpg.InterfaceError, OSError) as e:
            logger.error(f"Catalog store error in {func.__name__}: {e}")
            raise StorageError(f"{func.__name__} failed: {e}") from e

    return wrapper


def _json_value(value: Any, default: Any) -> Any:
    """Decode a JSONB column; plain-text rows come from connections without the codec."""
    if value is None:
        return default
    if isinstance(value, str):
        return json.loads(value)
    return value


def _updated_count(status: str) -> int:
    """Parse the row count out of an 'UPDATE n' status string."""
    try:
        return int(status.split()[-1])
    except (ValueError, IndexError, AttributeError):
        return 0


def _record_to_source(record) -> SourceSite:
    return SourceSite(
        id=str(record["id"]),
        slug=record["slug"],
        name=record["name"],
        base_url=record["url"],
        description=record["description"] or "",
        license_type=record["license_type"],
        crawl_cadence_hours=record["crawl_cadence_hours"],
        crawl_status=SourceCrawlStatus(record["crawl_status"]),
        crawl_job_id=str(record["crawl_job_id"]) if record["crawl_job_id"] else None,
        crawl_started_at=record["crawl_started_at"],
        last_crawled_at=record["last_crawled_at"],
        component_count=record["component_count"],
        is_active=record["is_active"],
        metadata=_json_value(record["metadata"], {}),
        created_at=record["created_at"],
        updated_at=record["updated_at"],
    )


def _record_to_job(record) -> CrawlJob:
    return CrawlJob(
        id=str(record["id"]),
        source_id=str(record["source_website_id"]),
        status=CrawlJobStatus(record["status"]),
        started_at=record["started_at"],
        completed_at=record["completed_at"],
        components_found=record["components_found"],
        components_added=record["components_added"],
        components_updated=record["components_updated"],
        components_removed=record["components_removed"],
        components_failed=record["components_failed"],
        error_code=record["error_code"],
        error_message=record["error_message"],
        duration_ms=record["duration_ms"],
        metadata=_json_value(record["metadata"], {}),
        created_at=record["created_at"],
    )


def _record_to_component(record) -> Component:
    keys = record.keys()
    return Component(
        id=str(record["id"]),
        source_id=str(record["source_website_id"]),
        slug=record["slug"],
        name=record["name"],
        description=record["description"] or "",
        source_url=record["source_url"],
        preview_url=record["preview_url"],
        thumbnail_url=record["thumbnail_url"],
        source_code=record["source_code"],
        code_language=record["code_language"],
        component_type=record["component_type"],
        dependencies=_json_value(record["dependencies"], {}),
        props=_json_value(record["props"], {}),
        variants=_json_value(record["variants"], []),
        tags=_json_value(record["tags"], []),
        license=record["license"],
        author=record["author"],
        version=record["version"],
        fingerprint=record["content_hash"],
        metadata=_json_value(record["metadata"], {}),
        is_active=record["is_active"],
        view_count=record["view_count"],
        last_seen_at=record["last_seen_at"],
        created_at=record["created_at"],
        updated_at=record["updated_at"],
        source_slug=record["source_slug"] if "source_slug" in keys else None,
    )


class CatalogRepository:
    """CatalogStore backed by PostgreSQL through the shared Database pool."""

    def __init__(self, database: Database) -> None:
        self._db = database

    async def create_tables(self) -> None:
        """Create catalog tables and indexes (idempotent)."""
        await self._db.execute(_CREATE_TABLES_SQL)
        logger.info("Catalog tables ensured")

    # ── Sources ─────────────────────────────────────────────

    @_storage_errors
    async def upsert_source(self, source: SourceSite) -> SourceSite:
        """Insert or update a source by slug. Never touches crawl state."""
        row = await self._db.fetchrow(
            _UPSERT_SOURCE_SQL,
            source.id,
            source.slug,
            source.name,
            source.base_url,
            source.description,
            source.license_type,
            source.crawl_cadence_hours,
            source.is_active,
            source.metadata,
        )
        return _record_to_source(row)

    @_storage_errors
    async def get_source(self, source_id: str) -> SourceSite | None:
        row = await self._db.fetchrow(
            "SELECT * FROM source_websites WHERE id = $1", source_id
        )
        return _record_to_source(row) if row else None

    @_storage_errors
    async def get_source_by_slug(self, slug: str) -> SourceSite | None:
        row = await self._db.fetchrow(
            "SELECT * FROM source_websites WHERE slug = $1", slug
        )
        return _record_to_source(row) if row else None

    @_storage_errors
    async def list_sources(self, active_only: bool = True) -> list[SourceSite]:
        sql = "SELECT * FROM source_websites"
        if active_only:
            sql += " WHERE is_active = TRUE"
        sql += " ORDER BY slug"
        rows = await self._db.fetch(sql)
        return [_record_to_source(r) for r in rows]

    @_storage_errors
    async def try_claim_source(
        self,
        source_id: str,
        job_id: str,
        stale_before: datetime,
    ) -> bool:
        row = await self._db.fetchrow(_CLAIM_SOURCE_SQL, source_id, job_id, stale_before)
        return row is not None

    @_storage_errors
    async def finish_crawl(
        self,
        source_id: str,
        job_id: str | None,
        status: SourceCrawlStatus,
    ) -> bool:
        if status == SourceCrawlStatus.SUCCESS:
            result = await self._db.execute(_FINISH_SUCCESS_SQL, source_id, job_id)
        else:
            result = await self._db.execute(_FINISH_SQL, source_id, job_id, status.value)
        return _updated_count(result) > 0

    # ── Crawl jobs ──────────────────────────────────────────

    @_storage_errors
    async def create_crawl_job(self, job: CrawlJob) -> CrawlJob:
        row = await self._db.fetchrow(
            _INSERT_JOB_SQL,
            job.id,
            job.source_id,
            job.status.value,
            job.metadata,
            job.created_at,
        )
        return _record_to_job(row)

    @_storage_errors
    async def update_crawl_job(self, job: CrawlJob) -> bool:
        row = await self._db.fetchrow(
            _UPDATE_JOB_SQL,
            job.id,
            job.status.value,
            job.started_at,
            job.completed_at,
            job.components_found,
            job.components_added,
            job.components_updated,
            job.components_removed,
            job.components_failed,
            job.error_code,
            job.error_message,
            job.duration_ms,
            job.metadata,
        )
        return row is not None

    @_storage_errors
    async def get_crawl_job(self, job_id: str) -> CrawlJob | None:
        row = await self._db.fetchrow("SELECT * FROM crawl_jobs WHERE id = $1", job_id)
        return _record_to_job(row) if row else None

    @_storage_errors
    async def get_running_job(self, source_id: str) -> CrawlJob | None:
        row = await self._db.fetchrow(
            """
            SELECT * FROM crawl_jobs
            WHERE source_website_id = $1 AND status IN ('pending', 'running')
            ORDER BY created_at DESC
            LIMIT 1
            """,
            source_id,
        )
        return _record_to_job(row) if row else None

    @_storage_errors
    async def get_latest_job(self, source_id: str) -> CrawlJob | None:
        row = await self._db.fetchrow(
            """
            SELECT * FROM crawl_jobs
            WHERE source_website_id = $1
            ORDER BY created_at DESC
            LIMIT 1
            """,
            source_id,
        )
        return _record_to_job(row) if row else None

    # ── Components ──────────────────────────────────────────

    @_storage_errors
    async def get_active_fingerprints(self, source_id: str) -> dict[str, str]:
        rows = await self._db.fetch(
            """
            SELECT slug, content_hash FROM components
            WHERE source_website_id = $1 AND is_active = TRUE
            """,
            source_id,
        )
        return {r["slug"]: r["content_hash"] for r in rows}

    @_storage_errors
    async def upsert_component(
        self,
        source_id: str,
        item: NormalizedComponent,
        seen_at: datetime,
    ) -> UpsertResult:
        """Insert or update one component keyed by (source_id, slug).

        On conflict the row keeps its id, view_count and created_at.
        """
        row = await self._db.fetchrow(
            _UPSERT_COMPONENT_SQL,
            new_id(),
            source_id,
            item.slug,
            item.name,
            item.description,
            item.source_url,
            item.preview_url,
            item.thumbnail_url,
            item.source_code,
            item.code_language,
            item.component_type,
            item.dependencies,
            item.props,
            item.variants,
            item.tags,
            item.license,
            item.author,
            item.version,
            item.fingerprint,
            item.metadata,
            seen_at,
        )
        return UpsertResult(component=_record_to_component(row), inserted=row["inserted"])

    @_storage_errors
    async def touch_components(
        self,
        source_id: str,
        slugs: Sequence[str],
        seen_at: datetime,
    ) -> None:
        if not slugs:
            return
        await self._db.execute(
            """
            UPDATE components SET last_seen_at = $3
            WHERE source_website_id = $1 AND slug = ANY($2::text[])
            """,
            source_id,
            list(slugs),
            seen_at,
        )

    @_storage_errors
    async def mark_inactive_except(
        self,
        source_id: str,
        keep_slugs: Sequence[str],
    ) -> int:
        status = await self._db.execute(_MARK_INACTIVE_SQL, source_id, list(keep_slugs))
        removed = _updated_count(status)
        if removed:
            logger.info(f"Marked {removed} components inactive for source {source_id}")
        return removed

    @_storage_errors
    async def get_component(self, source_id: str, slug: str) -> Component | None:
        row = await self._db.fetchrow(
            "SELECT * FROM components WHERE source_website_id = $1 AND slug = $2",
            source_id,
            slug,
        )
        return _record_to_component(row) if row else None

    @_storage_errors
    async def increment_view_count(self, component_id: str) -> None:
        await self._db.execute(
            "UPDATE components SET view_count = view_count + 1 WHERE id = $1",
            component_id,
        )

    @_storage_errors
    async def list_active_components(self) -> list[Component]:
        rows = await self._db.fetch(
            """
            SELECT c.*, s.slug AS source_slug
            FROM components c
            JOIN source_websites s ON s.id = c.source_website_id
            WHERE c.is_active = TRUE
            """
        )
        return [_record_to_component(r) for r in rows]

    @_storage_errors
    async def browse_components(
        self,
        filters: BrowseFilters,
        page: int,
        limit: int,
        sort: SortOrder,
    ) -> PaginatedResult:
        """Paginated listing of active components with filters."""
        conditions: list[str] = ["c.is_active = TRUE"]
        params: list = []
        idx = 1

        if filters.source:
            conditions.append(f"s.slug = ${idx}")
            params.append(filters.source)
            idx += 1

        if filters.component_type:
            conditions.append(f"c.component_type = ${idx}")
            params.append(filters.component_type)
            idx += 1

        if filters.tags:
            conditions.append(f"c.tags @> ${idx}::jsonb")
            params.append([t.lower() for t in filters.tags])
            idx += 1

        where_clause = " WHERE " + " AND ".join(conditions)
        from_clause = (
            " FROM components c JOIN source_websites s ON s.id = c.source_website_id"
        )

        total = await self._db.fetchval(
            f"SELECT COUNT(*){from_clause}{where_clause}", *params
        )

        order_by = _SORT_CLAUSES.get(sort, _SORT_CLAUSES["newest"])
        data_sql = f"""
            SELECT c.*, s.slug AS source_slug{from_clause}{where_clause}
            ORDER BY {order_by}
            LIMIT ${idx} OFFSET ${idx + 1}
        """
        params.extend([limit, (page - 1) * limit])
        rows = await self._db.fetch(data_sql, *params)

        return PaginatedResult(
            items=[_record_to_component(r) for r in rows],
            page=page,
            limit=limit,
            total=total or 0,
        )

    # ── Analytics ───────────────────────────────────────────

    @_storage_errors
    async def record_search(self, log: SearchLog) -> None:
        await self._db.execute(
            """
            INSERT INTO search_logs (
                id, query, filters, results_count, session_id,
                response_time_ms, created_at
            )
            VALUES ($1, $2, $3, $4, $5, $6, $7)
            """,
            log.id,
            log.query[:500],
            log.filters,
            log.results_count,
            log.session_id,
            log.response_time_ms,
            log.created_at,
        )

    @_storage_errors
    async def get_crawl_stats(self) -> CrawlStats:
        rows = await self._db.fetch(_CRAWL_STATS_SQL)
        by_source: dict[str, SourceCrawlStats] = {}
        for r in rows:
            stats = by_source.setdefault(
                r["source_slug"], SourceCrawlStats(source_slug=r["source_slug"])
            )
            stats.jobs_by_status[r["status"]] = r["jobs"]
            if r["last_success_at"] is not None:
                stats.last_success_at = r["last_success_at"]
        return CrawlStats(sources=list(by_source.values()))

    @_storage_errors
    async def get_search_analytics(self, since: datetime, limit: int) -> SearchAnalytics:
        totals = await self._db.fetchrow(_SEARCH_TOTALS_SQL, since)
        top_rows = await self._db.fetch(_TOP_QUERIES_SQL, since, limit)
        daily_rows = await self._db.fetch(_DAILY_SEARCHES_SQL, since)

        return SearchAnalytics(
            since=since,
            total_searches=totals["searches"] if totals else 0,
            avg_response_time_ms=totals["avg_ms"] if totals else 0.0,
            top_queries=[
                QueryStats(
                    query=r["query"],
                    searches=r["searches"],
                    avg_response_time_ms=r["avg_ms"],
                )
                for r in top_rows
            ],
            volume=[
                DailySearchVolume(
                    day=r["day"],
                    searches=r["searches"],
                    avg_response_time_ms=r["avg_ms"],
                )
                for r in daily_rows
            ],
        )
