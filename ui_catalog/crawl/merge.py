"""
Dedup/merge of normalized components into the catalog store.

Every incoming component is classified against the active catalog entry
with the same (source_id, slug):

    absent                -> add        (insert, or re-activation of a
                                         soft-removed row)
    same fingerprint      -> unchanged  (no content write)
    different fingerprint -> update     (content replaced; id, view_count
                                         and created_at kept)
    active, not seen      -> stale      (soft-removed in one batch at the
                                         end of a successful run)

A MergeSession holds the state of one crawl run. Writes for the same slug
are serialized by a per-slug lock while different slugs interleave freely.
A slug is applied at most once per session; later items with that slug
are reported as duplicates and not written.
"""

import asyncio
from collections import Counter
from collections.abc import Iterable, Mapping
from dataclasses import dataclass, field
from datetime import datetime, timezone
from enum import Enum

import structlog

from ui_catalog.catalog.normalizer import NormalizedComponent
from ui_catalog.catalog.store import CatalogStore
from ui_catalog.errors import StorageError

logger = structlog.get_logger(__name__)


class MergeOutcome(str, Enum):
    ADDED = "added"
    UPDATED = "updated"
    UNCHANGED = "unchanged"
    DUPLICATE = "duplicate"
    FAILED = "failed"


@dataclass
class MergeDelta:
    """Classification of a batch of incoming components."""

    added: list[str] = field(default_factory=list)
    updated: list[str] = field(default_factory=list)
    unchanged: list[str] = field(default_factory=list)
    stale: list[str] = field(default_factory=list)

    @property
    def has_changes(self) -> bool:
        return bool(self.added or self.updated or self.stale)


def compute_delta(
    existing: Mapping[str, str],
    incoming: Iterable[NormalizedComponent],
) -> MergeDelta:
    """
    Classify incoming components against existing slug -> fingerprint pairs.

    Pure function, no I/O. When a slug appears more than once in
    ``incoming`` only its last occurrence counts.
    """
    latest: dict[str, str] = {}
    for item in incoming:
        latest[item.slug] = item.fingerprint

    delta = MergeDelta()
    for slug, fingerprint in latest.items():
        current = existing.get(slug)
        if current is None:
            delta.added.append(slug)
        elif current == fingerprint:
            delta.unchanged.append(slug)
        else:
            delta.updated.append(slug)

    delta.stale = sorted(slug for slug in existing if slug not in latest)
    return delta


def _utc_now() -> datetime:
    return datetime.now(timezone.utc)


class MergeSession:
    """Merge state of one crawl run for one source."""

    def __init__(
        self,
        store: CatalogStore,
        source_id: str,
        existing: dict[str, str],
        write_attempts: int = 2,
        seen_at: datetime | None = None,
    ):
        self._store = store
        self.source_id = source_id
        self.seen_at = seen_at or _utc_now()
        self._fingerprints = dict(existing)
        self._write_attempts = max(1, write_attempts)
        self._seen: set[str] = set()
        self._unchanged: set[str] = set()
        self._applied: set[str] = set()
        self._locks: dict[str, asyncio.Lock] = {}
        self.counts: Counter[str] = Counter()
        self._finalized = False

    @property
    def active_count(self) -> int:
        """Active components of the source when the session started."""
        return len(self._fingerprints)

    @property
    def seen(self) -> frozenset[str]:
        return frozenset(self._seen)

    def mark_seen(self, slug: str | None) -> None:
        """Protect a slug from stale marking without writing it.

        Used for items that failed to fetch or normalize: a transient
        failure must never deactivate an existing component.
        """
        if slug:
            self._seen.add(slug)

    def _lock_for(self, slug: str) -> asyncio.Lock:
        lock = self._locks.get(slug)
        if lock is None:
            lock = self._locks[slug] = asyncio.Lock()
        return lock

    async def apply(self, item: NormalizedComponent) -> MergeOutcome:
        """Classify one component and write it if needed."""
        if self._finalized:
            raise RuntimeError("MergeSession already finalized")

        self._seen.add(item.slug)
        async with self._lock_for(item.slug):
            if item.slug in self._applied:
                self.counts[MergeOutcome.DUPLICATE.value] += 1
                return MergeOutcome.DUPLICATE
            self._applied.add(item.slug)

            current = self._fingerprints.get(item.slug)
            if current == item.fingerprint:
                self._unchanged.add(item.slug)
                self.counts[MergeOutcome.UNCHANGED.value] += 1
                return MergeOutcome.UNCHANGED

            for attempt in range(1, self._write_attempts + 1):
                try:
                    await self._store.upsert_component(self.source_id, item, self.seen_at)
                    break
                except StorageError as e:
                    logger.warning(
                        "Component write failed",
                        source_id=self.source_id,
                        slug=item.slug,
                        attempt=attempt,
                        error=str(e),
                    )
            else:
                self.counts[MergeOutcome.FAILED.value] += 1
                return MergeOutcome.FAILED

            self._fingerprints[item.slug] = item.fingerprint
            self._unchanged.discard(item.slug)
            outcome = MergeOutcome.ADDED if current is None else MergeOutcome.UPDATED
            self.counts[outcome.value] += 1
            return outcome

    async def finalize(self, remove_stale: bool) -> int:
        """
        Close the session.

        Bumps last_seen_at of unchanged components in one batch and, when
        ``remove_stale`` is set (successful runs only), soft-removes every
        active component that was not seen.

        Returns:
            Number of components marked inactive
        """
        self._finalized = True
        if self._unchanged:
            await self._store.touch_components(
                self.source_id, sorted(self._unchanged), self.seen_at
            )

        if not remove_stale:
            return 0

        removed = await self._store.mark_inactive_except(self.source_id, sorted(self._seen))
        self.counts["removed"] += removed
        return removed


class MergeEngine:
    """Factory of merge sessions bound to a catalog store."""

    def __init__(self, store: CatalogStore, write_attempts: int = 2):
        self._store = store
        self._write_attempts = write_attempts

    async def begin(self, source_id: str) -> MergeSession:
        """Snapshot the active fingerprints of a source and open a session."""
        existing = await self._store.get_active_fingerprints(source_id)
        logger.debug(
            "Merge session opened",
            source_id=source_id,
            active_components=len(existing),
        )
        return MergeSession(
            self._store,
            source_id,
            existing,
            write_attempts=self._write_attempts,
        )
