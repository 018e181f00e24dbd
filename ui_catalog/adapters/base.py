"""
Source adapter contract and shared plumbing.

An adapter exposes exactly two operations for one source site:

    list()              -> every candidate item currently listed
    fetch_detail(ref)   -> the full item (source code included)

Adapters are plain values looked up by source slug in an AdapterRegistry,
so site-specific extraction can be supplied as an object, as a pair of
coroutine functions (CallableAdapter) or built from source metadata
(RegistryAdapter). Retries, deadlines and pacing are applied by the
orchestrator around every call; adapters only raise.
"""

import asyncio
import logging
import time
from collections.abc import Awaitable, Callable, Iterator, Sequence
from dataclasses import dataclass, field
from typing import Protocol, runtime_checkable

from ui_catalog.adapters.schemas import RawItem
from ui_catalog.errors import AdapterNotRegisteredError

logger = logging.getLogger(__name__)


@runtime_checkable
class SourceAdapter(Protocol):
    """Site-specific extraction for one source."""

    async def list(self) -> Sequence[RawItem]:
        """Return the candidate items currently listed by the site."""
        ...

    async def fetch_detail(self, ref: str) -> RawItem:
        """Return the full item for a reference produced by list()."""
        ...


class CallableAdapter:
    """Adapter built from two externally supplied coroutine functions."""

    def __init__(
        self,
        list_fn: Callable[[], Awaitable[Sequence[RawItem]]],
        detail_fn: Callable[[str], Awaitable[RawItem]],
    ) -> None:
        self._list_fn = list_fn
        self._detail_fn = detail_fn

    async def list(self) -> Sequence[RawItem]:
        return await self._list_fn()

    async def fetch_detail(self, ref: str) -> RawItem:
        return await self._detail_fn(ref)


class AdapterRegistry:
    """Mapping of source slug to adapter."""

    def __init__(self, adapters: dict[str, SourceAdapter] | None = None) -> None:
        self._adapters: dict[str, SourceAdapter] = dict(adapters or {})

    def register(self, source_slug: str, adapter: SourceAdapter) -> None:
        if source_slug in self._adapters:
            logger.info(f"Replacing adapter for source {source_slug}")
        self._adapters[source_slug] = adapter

    def unregister(self, source_slug: str) -> None:
        self._adapters.pop(source_slug, None)

    def get(self, source_slug: str) -> SourceAdapter:
        """
        Look up the adapter of a source.

        Raises:
            AdapterNotRegisteredError: no adapter for this slug
        """
        adapter = self._adapters.get(source_slug)
        if adapter is None:
            raise AdapterNotRegisteredError(source_slug)
        return adapter

    def __contains__(self, source_slug: object) -> bool:
        return source_slug in self._adapters

    def __iter__(self) -> Iterator[str]:
        return iter(sorted(self._adapters))

    def __len__(self) -> int:
        return len(self._adapters)

    async def aclose(self) -> None:
        """Close adapters that hold resources (HTTP clients)."""
        for slug, adapter in self._adapters.items():
            close = getattr(adapter, "aclose", None)
            if close is None:
                continue
            try:
                await close()
            except Exception as e:
                logger.warning(f"Error closing adapter for {slug}: {e}")


@dataclass
class RequestPacer:
    """
    Minimum delay between request starts against one origin.

    Unlike a token bucket there is no burst: concurrent callers are
    serialized on a lock and each waits until ``min_interval`` seconds have
    passed since the previous start.
    """

    min_interval: float
    _last_start: float | None = field(default=None, init=False)
    _lock: asyncio.Lock = field(default_factory=asyncio.Lock, repr=False)

    async def acquire(self) -> None:
        """Wait for this caller's slot, then record the start time."""
        if self.min_interval <= 0:
            return
        async with self._lock:
            now = time.monotonic()
            if self._last_start is not None:
                wait_time = self._last_start + self.min_interval - now
                if wait_time > 0:
                    logger.debug(f"Pacing request, waiting {wait_time:.2f}s")
                    await asyncio.sleep(wait_time)
                    now = time.monotonic()
            self._last_start = now
