"""
Search service - ranked search over the catalog.

Holds the current SearchIndex snapshot and replaces it wholesale on every
rebuild. Readers take a local reference to the snapshot and never wait on
a rebuild; a failed rebuild leaves the previous snapshot in place.

Rebuilds happen:
- on start() and then every refresh_interval_seconds
- on request_refresh(), e.g. from the crawl orchestrator after a crawl
  that changed the catalog (bursts of requests are coalesced)
- lazily on the first search when no snapshot exists yet
"""

import asyncio
import time

import structlog

from ui_catalog.catalog.schemas import SearchLog
from ui_catalog.catalog.store import CatalogStore
from ui_catalog.errors import CatalogError, InvalidQueryError, StorageError
from ui_catalog.observability.metrics import get_metrics
from ui_catalog.search.config import SearchConfig
from ui_catalog.search.index import SearchIndex, normalize_query
from ui_catalog.search.schemas import SearchFilters, SearchResult

logger = structlog.get_logger(__name__)


class SearchService:
    """
    Serves ranked queries from an atomically swapped index snapshot.

    Usage:
        service = SearchService(store)
        await service.start()
        result = await service.search("button", SearchFilters(source="magic-ui"))
    """

    def __init__(self, store: CatalogStore, config: SearchConfig | None = None):
        self._store = store
        self._config = config or SearchConfig()
        self._metrics = get_metrics()

        self._index: SearchIndex | None = None
        self._last_refresh_failed = False
        self._rebuild_lock = asyncio.Lock()
        self._refresh_requested = False
        self._pending_refresh: asyncio.Task | None = None
        self._loop_task: asyncio.Task | None = None

    @property
    def config(self) -> SearchConfig:
        return self._config

    @property
    def index(self) -> SearchIndex | None:
        """Current snapshot (None until the first successful build)."""
        return self._index

    # ── Index maintenance ───────────────────────────────────

    async def refresh(self) -> bool:
        """
        Rebuild the index from the store and swap it in.

        Rebuilds are serialized among themselves but never block readers.

        Returns:
            True if a new snapshot was installed
        """
        async with self._rebuild_lock:
            started = time.monotonic()
            try:
                components = await self._store.list_active_components()
                new_index = SearchIndex.build(components)
            except CatalogError as e:
                self._last_refresh_failed = True
                self._metrics.record_index_rebuild(success=False)
                logger.error(
                    "Search index rebuild failed, keeping previous snapshot",
                    error=str(e),
                    has_snapshot=self._index is not None,
                )
                return False

            self._index = new_index
            self._last_refresh_failed = False
            self._metrics.record_index_rebuild(success=True, size=new_index.size)
            logger.info(
                "Search index rebuilt",
                size=new_index.size,
                duration_ms=round((time.monotonic() - started) * 1000, 1),
            )
            return True

    def request_refresh(self) -> None:
        """Schedule a rebuild without waiting for it.

        Requests arriving while a rebuild is in flight collapse into a
        single follow-up rebuild.
        """
        self._refresh_requested = True
        if self._pending_refresh is None or self._pending_refresh.done():
            self._pending_refresh = asyncio.create_task(
                self._drain_refresh_requests(), name="search_index_refresh"
            )

    async def _drain_refresh_requests(self) -> None:
        while self._refresh_requested:
            self._refresh_requested = False
            await self.refresh()

    async def start(self) -> None:
        """Build the first snapshot and start the periodic refresh."""
        if self._loop_task is not None:
            return
        await self.refresh()
        self._loop_task = asyncio.create_task(self._refresh_loop(), name="search_index_loop")
        logger.info(
            "Search service started",
            refresh_interval=self._config.refresh_interval_seconds,
        )

    async def stop(self) -> None:
        tasks = [t for t in (self._loop_task, self._pending_refresh) if t is not None]
        for task in tasks:
            task.cancel()
        await asyncio.gather(*tasks, return_exceptions=True)
        self._loop_task = None
        self._pending_refresh = None
        logger.info("Search service stopped")

    async def _refresh_loop(self) -> None:
        while True:
            await asyncio.sleep(self._config.refresh_interval_seconds)
            await self.refresh()

    # ── Queries ─────────────────────────────────────────────

    def _validate(self, query: str, limit: int | None) -> tuple[str, int]:
        normalized = normalize_query(query or "")
        if len(normalized) < self._config.min_query_length:
            raise InvalidQueryError(
                f"Query must be at least {self._config.min_query_length} characters"
            )
        if limit is None:
            limit = self._config.default_limit
        if limit < 1:
            raise InvalidQueryError("Limit must be at least 1")
        return normalized, min(limit, self._config.max_limit)

    async def search(
        self,
        query: str,
        filters: SearchFilters | None = None,
        limit: int | None = None,
        session_id: str | None = None,
    ) -> SearchResult:
        """
        Rank active components for a query.

        Raises:
            InvalidQueryError: query shorter than min_query_length or limit < 1
        """
        started = time.monotonic()
        try:
            normalized, limit = self._validate(query, limit)
        except InvalidQueryError:
            self._metrics.record_search("invalid")
            raise

        filters = filters or SearchFilters()
        index = self._index
        if index is None:
            await self.refresh()
            index = self._index
        if index is None:
            elapsed = time.monotonic() - started
            self._metrics.record_search("unavailable", elapsed)
            logger.warning("Search served without an index", query=normalized)
            return SearchResult(elapsed_ms=elapsed * 1000, stale=True)

        hits, total = index.search(
            normalized,
            filters=filters,
            limit=limit,
            fuzzy_threshold=self._config.fuzzy_threshold,
        )
        suggestions: list[str] = []
        if len(normalized) >= self._config.suggestion_min_length:
            suggestions = index.suggest(normalized, self._config.suggestion_limit)

        elapsed = time.monotonic() - started
        result = SearchResult(
            hits=hits,
            total=total,
            elapsed_ms=elapsed * 1000,
            suggestions=suggestions,
            index_built_at=index.built_at,
            stale=self._last_refresh_failed,
        )
        self._metrics.record_search("success", elapsed)

        if session_id and self._config.log_searches:
            await self._log_search(normalized, filters, result, session_id)
        return result

    async def _log_search(
        self,
        query: str,
        filters: SearchFilters,
        result: SearchResult,
        session_id: str,
    ) -> None:
        log = SearchLog(
            query=query,
            results_count=result.total,
            session_id=session_id,
            response_time_ms=int(result.elapsed_ms),
            filters=filters.to_dict(),
        )
        try:
            await self._store.record_search(log)
        except StorageError as e:
            logger.warning("Search log write failed", error=str(e))
