"""
Crawl orchestrator - runs crawl jobs for source sites.

Job lifecycle:

    pending -> running -> success | failed | cancelled

A job is created ``pending`` when triggered and becomes ``running`` once
the worker pool has a free slot. Only one job per source may be active:
trigger_crawl() claims the source with the store's compare-and-set on the
source crawl status, so the rule also holds across processes sharing a
database. A refused claim is reported synchronously as ConflictError.

Within a job:
1. list() the candidates (retried with backoff, per-call deadline)
2. fetch every candidate's detail with bounded parallelism and a minimum
   delay between request starts against the site
3. normalize each item; when a slug is listed twice the later entry wins
4. merge the surviving items
5. on success, soft-remove components the site no longer lists, unless
   another orchestrator has taken the source over in the meantime

Per-item failures are counted and skipped. When adapter and write
failures exceed failure_threshold x found, the job is escalated to
``failed`` and in-flight fetches are cancelled. The whole job runs under a
wall-clock ceiling.
"""

import asyncio
import copy
import inspect
import time
from collections.abc import Awaitable, Callable
from dataclasses import dataclass
from datetime import datetime, timedelta, timezone
from typing import Any, TypeVar

import structlog

from ui_catalog.adapters.base import AdapterRegistry, RequestPacer, SourceAdapter
from ui_catalog.adapters.schemas import RawItem
from ui_catalog.catalog.normalizer import NormalizedComponent, normalize_item
from ui_catalog.catalog.schemas import (
    CrawlJob,
    CrawlJobStatus,
    SourceCrawlStatus,
    SourceSite,
)
from ui_catalog.catalog.store import CatalogStore
from ui_catalog.crawl.backoff import ExponentialBackoff
from ui_catalog.crawl.config import CrawlConfig
from ui_catalog.crawl.merge import MergeEngine, MergeOutcome, MergeSession
from ui_catalog.errors import (
    AdapterError,
    AdapterFetchError,
    AdapterTimeoutError,
    CatalogError,
    ConflictError,
    EmptyListingError,
    FailureThresholdError,
    JobNotFoundError,
    MalformedItemError,
    SourceNotFoundError,
    StorageError,
)
from ui_catalog.observability.logging import bind_crawl_context
from ui_catalog.observability.metrics import get_metrics

logger = structlog.get_logger(__name__)

T = TypeVar("T")

CatalogChangedHook = Callable[[str], Any]

# Where a source lands once its job is terminal
_SOURCE_STATUS_AFTER = {
    CrawlJobStatus.SUCCESS: SourceCrawlStatus.SUCCESS,
    CrawlJobStatus.FAILED: SourceCrawlStatus.FAILED,
    CrawlJobStatus.CANCELLED: SourceCrawlStatus.PENDING,
}

# Per-item outcomes that count towards the failure threshold
_THRESHOLD_OUTCOMES = frozenset({"adapter_failed", "write_failed"})

# Per-item outcomes counted in components_failed
_FAILED_OUTCOMES = _THRESHOLD_OUTCOMES | {"malformed"}


def _utc_now() -> datetime:
    return datetime.now(timezone.utc)


@dataclass
class _JobRun:
    """In-process state of one job."""

    job: CrawlJob
    source: SourceSite
    adapter: SourceAdapter
    session: MergeSession | None = None
    threshold_failures: int = 0
    # Set when the job row or source claim was taken over mid-run
    preempted: bool = False


class CrawlOrchestrator:
    """
    Triggers and runs crawl jobs on a bounded worker pool.

    Usage:
        orchestrator = CrawlOrchestrator(store, adapters)
        job = await orchestrator.trigger_crawl("magic-ui")
        job = await orchestrator.wait_for(job.id)
    """

    def __init__(
        self,
        store: CatalogStore,
        adapters: AdapterRegistry,
        config: CrawlConfig | None = None,
        merge_engine: MergeEngine | None = None,
        on_catalog_changed: CatalogChangedHook | None = None,
    ):
        """
        Initialize the orchestrator.

        Args:
            store: Catalog store holding sources, jobs and components
            adapters: Source slug -> adapter mapping
            config: Crawl tuning (defaults from CRAWL_* env vars)
            merge_engine: Merge engine (defaults to one over ``store``)
            on_catalog_changed: Called with the source slug after a
                successful job that added, updated or removed components.
                May be a plain function or a coroutine function.
        """
        self._store = store
        self._adapters = adapters
        self._config = config or CrawlConfig()
        self._merge = merge_engine or MergeEngine(store)
        self._on_catalog_changed = on_catalog_changed
        self._metrics = get_metrics()

        self._pool = asyncio.Semaphore(self._config.max_concurrent_sources)
        self._runs: dict[str, _JobRun] = {}
        self._tasks: dict[str, asyncio.Task] = {}

    @property
    def config(self) -> CrawlConfig:
        return self._config

    @property
    def active_job_ids(self) -> list[str]:
        return list(self._tasks)

    # ── Public API ──────────────────────────────────────────

    async def trigger_crawl(self, source_slug: str, force: bool = False) -> CrawlJob:
        """
        Start a crawl of one source and return its ``pending`` job.

        Returns immediately; the job runs in the background.

        Raises:
            SourceNotFoundError: unknown or inactive source
            AdapterNotRegisteredError: no adapter for the source
            ConflictError: the source already has a running job and
                ``force`` is not set
        """
        source = await self._store.get_source_by_slug(source_slug)
        if source is None or not source.is_active:
            raise SourceNotFoundError(source_slug)
        adapter = self._adapters.get(source_slug)

        # The job id doubles as the claim token on the source
        job = CrawlJob(
            source_id=source.id,
            metadata={"source_slug": source_slug, "forced": force},
        )
        if not await self._claim(source, job.id):
            running = await self._store.get_running_job(source.id)
            if not force:
                logger.info(
                    "Crawl trigger rejected, source busy",
                    source=source_slug,
                    running_job_id=running.id if running else None,
                )
                raise ConflictError(source_slug, running.id if running else None)

            await self._preempt(source, running)
            if not await self._claim(source, job.id):
                raise ConflictError(source_slug, running.id if running else None)

        try:
            job = await self._store.create_crawl_job(job)
        except StorageError:
            await self._store.finish_crawl(source.id, job.id, SourceCrawlStatus.PENDING)
            raise

        run = _JobRun(job=job, source=source, adapter=adapter)
        self._runs[job.id] = run
        task = asyncio.create_task(self._execute(run), name=f"crawl_{source_slug}")
        self._tasks[job.id] = task
        task.add_done_callback(lambda t, job_id=job.id: self._on_task_done(job_id, t))

        logger.info("Crawl triggered", source=source_slug, job_id=job.id, forced=force)
        return copy.deepcopy(job)

    async def run_crawl(self, source_slug: str, force: bool = False) -> CrawlJob:
        """Trigger a crawl and wait for its terminal state."""
        job = await self.trigger_crawl(source_slug, force=force)
        return await self.wait_for(job.id)

    async def get_crawl_status(self, job_id: str) -> CrawlJob:
        """
        Current state of a job, live counters included for local jobs.

        Raises:
            JobNotFoundError: unknown job id
        """
        run = self._runs.get(job_id)
        if run is not None:
            return copy.deepcopy(run.job)
        job = await self._store.get_crawl_job(job_id)
        if job is None:
            raise JobNotFoundError(job_id)
        return job

    async def wait_for(self, job_id: str, timeout: float | None = None) -> CrawlJob:
        """Wait until a local job finishes (or ``timeout`` elapses) and return it."""
        task = self._tasks.get(job_id)
        if task is not None:
            await asyncio.wait({task}, timeout=timeout)
        return await self.get_crawl_status(job_id)

    async def cancel_crawl(self, job_id: str) -> bool:
        """
        Cancel a pending or running job.

        Local jobs are cancelled cooperatively and awaited. A job owned by
        another process is marked ``cancelled`` in the store and its source
        released; that process notices when its terminal write is refused.

        Returns:
            False if the job was already terminal

        Raises:
            JobNotFoundError: unknown job id
        """
        if job_id in self._tasks:
            await self._cancel_local([job_id])
            return True

        job = await self._store.get_crawl_job(job_id)
        if job is None:
            raise JobNotFoundError(job_id)
        if job.is_terminal:
            return False
        return await self._cancel_foreign(job)

    async def shutdown(self) -> None:
        """Cancel every local job and wait for their terminal writes."""
        job_ids = list(self._tasks)
        if not job_ids:
            return
        logger.info("Cancelling running crawl jobs", count=len(job_ids))
        await self._cancel_local(job_ids)

    async def _cancel_local(self, job_ids: list[str]) -> None:
        runs = [self._runs[job_id] for job_id in job_ids if job_id in self._runs]
        tasks = [self._tasks[job_id] for job_id in job_ids if job_id in self._tasks]
        for task in tasks:
            task.cancel()
        await asyncio.gather(*tasks, return_exceptions=True)

        # A task cancelled before its first step never entered _execute
        for run in runs:
            if not run.job.is_terminal:
                await self._finish(
                    run, CrawlJobStatus.CANCELLED, time.monotonic(), "cancelled", "Job cancelled"
                )

    # ── Claiming ────────────────────────────────────────────

    async def _claim(self, source: SourceSite, job_id: str) -> bool:
        stale_before = _utc_now() - timedelta(seconds=self._config.stale_claim_seconds)
        return await self._store.try_claim_source(source.id, job_id, stale_before)

    async def _preempt(self, source: SourceSite, running: CrawlJob | None) -> None:
        """Make room for a forced trigger by cancelling the current job."""
        if running is not None and running.id in self._tasks:
            logger.warning("Force-cancelling local crawl job", source=source.slug, job_id=running.id)
            await self.cancel_crawl(running.id)
            return

        if running is not None:
            logger.warning(
                "Force-cancelling crawl job owned elsewhere",
                source=source.slug,
                job_id=running.id,
            )
            await self._cancel_foreign(running)
            return

        # Claimed but no job row: a crashed trigger. Release its claim.
        current = await self._store.get_source(source.id)
        if current is not None and current.crawl_status == SourceCrawlStatus.RUNNING:
            logger.warning(
                "Releasing orphaned source claim",
                source=source.slug,
                claim_job_id=current.crawl_job_id,
            )
            await self._store.finish_crawl(
                source.id, current.crawl_job_id, SourceCrawlStatus.PENDING
            )

    async def _cancel_foreign(self, job: CrawlJob) -> bool:
        now = _utc_now()
        job.status = CrawlJobStatus.CANCELLED
        job.completed_at = now
        job.error_code = "cancelled"
        job.error_message = "Cancelled by another orchestrator"
        updated = await self._store.update_crawl_job(job)
        await self._store.finish_crawl(job.source_id, job.id, SourceCrawlStatus.PENDING)
        return updated

    async def _still_owned(self, run: _JobRun) -> bool:
        """Whether this job still holds its source claim and a live job row.

        Both go away when another orchestrator cancels the job or takes the
        source over with a forced trigger.
        """
        stored = await self._store.get_crawl_job(run.job.id)
        if stored is None or stored.is_terminal:
            return False
        source = await self._store.get_source(run.source.id)
        return source is not None and source.crawl_job_id == run.job.id

    # ── Job execution ───────────────────────────────────────

    async def _execute(self, run: _JobRun) -> None:
        job = run.job
        bind_crawl_context(job.id, run.source.slug)
        started = time.monotonic()

        try:
            async with self._pool:
                job.status = CrawlJobStatus.RUNNING
                job.started_at = _utc_now()
                started = time.monotonic()
                await self._store.update_crawl_job(job)
                self._metrics.running_crawls.inc()
                try:
                    await asyncio.wait_for(
                        self._run_job(run),
                        timeout=self._config.job_timeout_seconds,
                    )
                finally:
                    self._metrics.running_crawls.dec()
        except asyncio.CancelledError:
            await self._finish(run, CrawlJobStatus.CANCELLED, started, "cancelled", "Job cancelled")
            raise
        except asyncio.TimeoutError:
            await self._finish(
                run,
                CrawlJobStatus.FAILED,
                started,
                "job_timeout",
                f"Job exceeded {self._config.job_timeout_seconds:.0f}s ceiling",
            )
        except CatalogError as e:
            await self._finish(run, CrawlJobStatus.FAILED, started, e.code, str(e))
        except Exception as e:
            logger.exception("Crawl job crashed", error=str(e))
            await self._finish(run, CrawlJobStatus.FAILED, started, "internal_error", str(e))
        else:
            if run.preempted:
                await self._finish(
                    run,
                    CrawlJobStatus.CANCELLED,
                    started,
                    "cancelled",
                    "Cancelled by another orchestrator",
                )
            else:
                await self._finish(run, CrawlJobStatus.SUCCESS, started)

    async def _run_job(self, run: _JobRun) -> None:
        """
        Crawl one source in two phases.

        Details are fetched and normalized first; once the listing is
        complete, items sharing a slug are collapsed to their last listing
        position and only the survivors are merged. Stale marking runs last,
        and only while this job still owns the source.
        """
        job, source = run.job, run.source
        pacer = RequestPacer(self._config.min_request_interval_seconds)

        session = await self._merge.begin(source.id)
        run.session = session

        candidates = await self._call_adapter(run, pacer, "list", run.adapter.list)
        job.components_found = len(candidates)
        logger.info("Candidates listed", found=job.components_found)

        if not candidates and session.active_count and not self._config.allow_empty_listing:
            raise EmptyListingError(source.slug, session.active_count)

        detail_slots = asyncio.Semaphore(self._config.detail_concurrency)
        fetched = await self._drain(
            run,
            [
                self._fetch_candidate(run, pacer, detail_slots, position, candidate)
                for position, candidate in enumerate(candidates)
            ],
        )

        items, superseded = _resolve_duplicates(fetched)
        for item in superseded:
            logger.warning(
                "Duplicate slug in listing, keeping the later entry",
                slug=item.slug,
                name=item.name,
            )
            self._tally(run, "duplicate")

        write_slots = asyncio.Semaphore(self._config.detail_concurrency)
        await self._drain(run, [self._merge_item(run, write_slots, item) for item in items])

        if not await self._still_owned(run):
            logger.warning("Job taken over elsewhere, leaving stale components in place")
            run.preempted = True
            return

        job.components_removed = await session.finalize(remove_stale=True)
        self._metrics.record_removed(source.slug, job.components_removed)

    async def _drain(self, run: _JobRun, coros: list[Awaitable[Any]]) -> list[Any]:
        """
        Run coroutines concurrently and tally outcome labels as they arrive.

        Results that are not outcome labels are returned in completion
        order. If a tally escalates the job, leftover tasks are cancelled.
        """
        tasks = [asyncio.create_task(coro) for coro in coros]
        results: list[Any] = []
        try:
            for next_done in asyncio.as_completed(tasks):
                result = await next_done
                if isinstance(result, str):
                    self._tally(run, result)
                else:
                    results.append(result)
        finally:
            for task in tasks:
                if not task.done():
                    task.cancel()
            await asyncio.gather(*tasks, return_exceptions=True)
        return results

    def _tally(self, run: _JobRun, outcome: str) -> None:
        job = run.job
        self._metrics.record_item(run.source.slug, outcome)

        if outcome == MergeOutcome.ADDED.value:
            job.components_added += 1
        elif outcome == MergeOutcome.UPDATED.value:
            job.components_updated += 1
        elif outcome in _FAILED_OUTCOMES:
            job.components_failed += 1

        if outcome in _THRESHOLD_OUTCOMES:
            run.threshold_failures += 1
            limit = self._config.failure_threshold * job.components_found
            if run.threshold_failures > limit:
                raise FailureThresholdError(
                    run.threshold_failures,
                    job.components_found,
                    self._config.failure_threshold,
                )

    async def _fetch_candidate(
        self,
        run: _JobRun,
        pacer: RequestPacer,
        slots: asyncio.Semaphore,
        position: int,
        candidate: RawItem,
    ) -> tuple[int, NormalizedComponent] | str:
        """Fetch and normalize one candidate.

        Returns its listing position and normalized form, or the outcome
        label of a failure.
        """
        session = run.session
        slug_hint = candidate.slug_hint
        ref = candidate.detail_ref
        if ref is None:
            logger.warning("Candidate without reference skipped", name=candidate.name)
            session.mark_seen(slug_hint)
            return "malformed"

        async with slots:
            try:
                detail = await self._call_adapter(
                    run, pacer, "fetch_detail", run.adapter.fetch_detail, ref
                )
            except AdapterError as e:
                logger.warning("Detail fetch failed", ref=ref, error=str(e), code=e.code)
                session.mark_seen(slug_hint)
                return "adapter_failed"

        try:
            item = normalize_item(_combine(candidate, detail))
        except MalformedItemError as e:
            logger.warning("Malformed item skipped", ref=ref, field=e.field, error=str(e))
            session.mark_seen(slug_hint or detail.slug_hint)
            return "malformed"
        return position, item

    async def _merge_item(
        self,
        run: _JobRun,
        slots: asyncio.Semaphore,
        item: NormalizedComponent,
    ) -> str:
        async with slots:
            outcome = await run.session.apply(item)
        if outcome == MergeOutcome.FAILED:
            return "write_failed"
        return outcome.value

    async def _call_adapter(
        self,
        run: _JobRun,
        pacer: RequestPacer,
        operation: str,
        func: Callable[..., Awaitable[T]],
        *args: Any,
    ) -> T:
        """
        Call an adapter operation with pacing, a deadline and retries.

        Non-retryable adapter errors are raised immediately; retryable ones
        are retried with exponential backoff up to max_attempts.
        """
        source_slug = run.source.slug
        backoff = ExponentialBackoff.for_config(self._config)

        while True:
            await pacer.acquire()
            try:
                return await asyncio.wait_for(
                    func(*args),
                    timeout=self._config.adapter_timeout_seconds,
                )
            except asyncio.TimeoutError as e:
                error: AdapterError = AdapterTimeoutError(
                    f"{operation} timed out after {self._config.adapter_timeout_seconds}s"
                )
                error.__cause__ = e
            except AdapterError as e:
                error = e
            except CatalogError:
                raise
            except Exception as e:
                error = AdapterFetchError(f"{operation} failed: {e}")
                error.__cause__ = e

            self._metrics.record_adapter_error(source_slug, error.code)
            if not backoff.should_retry(error):
                raise error

            delay = backoff.next_delay()
            logger.info(
                "Retrying adapter call",
                operation=operation,
                attempt=backoff.attempt,
                max_attempts=backoff.max_attempts,
                delay=round(delay, 2),
                error=str(error),
            )
            await asyncio.sleep(delay)

    async def _finish(
        self,
        run: _JobRun,
        status: CrawlJobStatus,
        started: float,
        error_code: str | None = None,
        error_message: str | None = None,
    ) -> None:
        """Write the single terminal state of a job and release its claim."""
        job, source = run.job, run.source
        if job.is_terminal:
            return

        if status != CrawlJobStatus.SUCCESS and run.session is not None:
            try:
                await run.session.finalize(remove_stale=False)
            except StorageError as e:
                logger.warning("Could not touch unchanged components", error=str(e))

        duration = time.monotonic() - started
        job.status = status
        job.completed_at = _utc_now()
        job.duration_ms = int(duration * 1000)
        job.error_code = error_code
        job.error_message = error_message

        try:
            written = await self._store.update_crawl_job(job)
            if not written:
                # Cancelled elsewhere; the source now belongs to whoever did it
                logger.warning("Terminal state already recorded elsewhere", status=status.value)
            elif not await self._store.finish_crawl(
                source.id, job.id, _SOURCE_STATUS_AFTER[status]
            ):
                logger.warning("Source claim held by another job, left untouched")
        except StorageError as e:
            logger.error("Could not record crawl result", status=status.value, error=str(e))

        self._metrics.record_crawl_job(source.slug, status.value, duration)
        log = logger.info if status == CrawlJobStatus.SUCCESS else logger.warning
        log(
            "Crawl job finished",
            status=status.value,
            error_code=error_code,
            error=error_message,
            duration_ms=job.duration_ms,
            failed=job.components_failed,
            **job.counters,
        )

        changed = job.components_added + job.components_updated + job.components_removed
        if status == CrawlJobStatus.SUCCESS and changed and self._on_catalog_changed:
            try:
                result = self._on_catalog_changed(source.slug)
                if inspect.isawaitable(result):
                    await result
            except Exception as e:
                logger.error("Catalog-changed hook failed", error=str(e))

    def _on_task_done(self, job_id: str, task: asyncio.Task) -> None:
        self._tasks.pop(job_id, None)
        self._runs.pop(job_id, None)
        if not task.cancelled() and task.exception() is not None:
            logger.error("Crawl task ended with error", job_id=job_id, error=str(task.exception()))


def _combine(summary: RawItem, detail: RawItem) -> RawItem:
    """Overlay non-empty detail fields on the listing summary."""
    data = summary.model_dump()
    for key, value in detail.model_dump().items():
        if value not in (None, "", [], {}):
            data[key] = value
    return RawItem(**data)


def _resolve_duplicates(
    fetched: list[tuple[int, NormalizedComponent]],
) -> tuple[list[NormalizedComponent], list[NormalizedComponent]]:
    """
    Keep the last listed item of every slug.

    Returns the surviving items in listing order and the superseded ones.
    """
    latest: dict[str, tuple[int, NormalizedComponent]] = {}
    superseded: list[NormalizedComponent] = []
    for position, item in sorted(fetched, key=lambda pair: pair[0]):
        previous = latest.get(item.slug)
        if previous is not None:
            superseded.append(previous[1])
        latest[item.slug] = (position, item)
    survivors = [item for _, item in sorted(latest.values(), key=lambda pair: pair[0])]
    return survivors, superseded
