"""
Periodic crawl scheduler.

Every ``scheduler_interval_seconds`` the scheduler lists active sources and
triggers a crawl for each one that is due:

- never crawled successfully, or
- last successful crawl older than the source's crawl_cadence_hours, and
- if the latest job failed, at least failed_retry_seconds ago

Sources that are already crawling are skipped; a ConflictError raised by a
concurrent trigger (another process, a manual trigger) is logged and
ignored. How many jobs actually run at once is bounded by the
orchestrator's worker pool.
"""

import asyncio
from datetime import datetime, timedelta, timezone

import structlog

from ui_catalog.catalog.schemas import CrawlJob, CrawlJobStatus, SourceSite
from ui_catalog.catalog.store import CatalogStore
from ui_catalog.crawl.orchestrator import CrawlOrchestrator
from ui_catalog.errors import CatalogError, ConflictError

logger = structlog.get_logger(__name__)


def is_due(
    source: SourceSite,
    latest_job: CrawlJob | None,
    now: datetime,
    failed_retry_seconds: float,
) -> bool:
    """Decide whether a source should be crawled at ``now``."""
    if not source.is_active or source.is_crawling:
        return False

    if latest_job is not None and latest_job.status == CrawlJobStatus.FAILED:
        finished = latest_job.completed_at or latest_job.created_at
        if now - finished < timedelta(seconds=failed_retry_seconds):
            return False
        return True

    if source.last_crawled_at is None:
        return True
    return now - source.last_crawled_at >= timedelta(hours=source.crawl_cadence_hours)


class CrawlScheduler:
    """
    Triggers due crawls on a fixed interval.

    Usage:
        scheduler = CrawlScheduler(store, orchestrator)
        await scheduler.start()
        ...
        await scheduler.stop()
    """

    def __init__(self, store: CatalogStore, orchestrator: CrawlOrchestrator):
        self._store = store
        self._orchestrator = orchestrator
        self._config = orchestrator.config
        self._task: asyncio.Task | None = None
        self._running = False

    @property
    def is_running(self) -> bool:
        return self._running

    async def tick(self, now: datetime | None = None) -> list[CrawlJob]:
        """Trigger every due source once. Returns the jobs started."""
        now = now or datetime.now(timezone.utc)
        started: list[CrawlJob] = []

        for source in await self._store.list_sources(active_only=True):
            latest = await self._store.get_latest_job(source.id)
            if not is_due(source, latest, now, self._config.failed_retry_seconds):
                continue
            try:
                job = await self._orchestrator.trigger_crawl(source.slug)
            except ConflictError:
                logger.debug("Source busy, skipping", source=source.slug)
                continue
            except CatalogError as e:
                logger.warning("Scheduled trigger failed", source=source.slug, error=str(e))
                continue
            started.append(job)

        if started:
            logger.info("Scheduled crawls triggered", count=len(started))
        return started

    async def start(self) -> None:
        if self._task is not None:
            return
        self._running = True
        self._task = asyncio.create_task(self._loop(), name="crawl_scheduler")
        logger.info(
            "Crawl scheduler started",
            interval=self._config.scheduler_interval_seconds,
        )

    async def stop(self) -> None:
        self._running = False
        if self._task is None:
            return
        self._task.cancel()
        await asyncio.gather(self._task, return_exceptions=True)
        self._task = None
        logger.info("Crawl scheduler stopped")

    async def _loop(self) -> None:
        while self._running:
            try:
                await self.tick()
            except CatalogError as e:
                logger.error("Scheduler tick failed", error=str(e))
            await asyncio.sleep(self._config.scheduler_interval_seconds)
