"""Tests for delta classification and the merge session."""

import asyncio
from datetime import datetime, timezone

import pytest

from ui_catalog.catalog.memory_store import InMemoryCatalogStore
from ui_catalog.catalog.normalizer import normalize_item
from ui_catalog.crawl.merge import MergeEngine, MergeOutcome, MergeSession, compute_delta
from ui_catalog.errors import StorageError


class FlakyStore(InMemoryCatalogStore):
    """In-memory store whose component writes fail a set number of times."""

    def __init__(self, failures: int) -> None:
        super().__init__()
        self.failures = failures
        self.attempts = 0

    async def upsert_component(self, source_id, item, seen_at):
        self.attempts += 1
        if self.failures > 0:
            self.failures -= 1
            raise StorageError("connection reset")
        return await super().upsert_component(source_id, item, seen_at)


class TestComputeDelta:
    """Pure classification against existing fingerprints."""

    def test_classifies_all_cases(self, make_raw) -> None:
        keep = normalize_item(make_raw("Card A"))
        changed = normalize_item(make_raw("Card B", description="different"))
        new = normalize_item(make_raw("Card D"))
        existing = {
            "card-a": keep.fingerprint,
            "card-b": "0" * 64,
            "card-c": "1" * 64,
        }

        delta = compute_delta(existing, [keep, changed, new])

        assert delta.added == ["card-d"]
        assert delta.updated == ["card-b"]
        assert delta.unchanged == ["card-a"]
        assert delta.stale == ["card-c"]
        assert delta.has_changes is True

    def test_last_duplicate_wins(self, make_raw) -> None:
        old = normalize_item(make_raw("Card A"))
        newer = normalize_item(make_raw("Card A", description="newer"))

        delta = compute_delta({"card-a": old.fingerprint}, [newer, old])

        assert delta.unchanged == ["card-a"]
        assert delta.has_changes is False

    def test_empty_inputs(self) -> None:
        delta = compute_delta({}, [])
        assert delta.has_changes is False
        assert delta.stale == []


class TestMergeSession:
    @pytest.mark.asyncio
    async def test_add_update_unchanged(self, store, make_source, make_raw) -> None:
        source = await store.upsert_source(make_source())
        engine = MergeEngine(store)

        first = await engine.begin(source.id)
        assert await first.apply(normalize_item(make_raw("Card A"))) == MergeOutcome.ADDED
        await first.finalize(remove_stale=True)

        second = await engine.begin(source.id)
        assert second.active_count == 1
        assert await second.apply(normalize_item(make_raw("Card A"))) == MergeOutcome.UNCHANGED
        await second.finalize(remove_stale=True)
        assert second.counts == {"unchanged": 1}

        third = await engine.begin(source.id)
        assert (
            await third.apply(normalize_item(make_raw("Card A", description="v2")))
            == MergeOutcome.UPDATED
        )
        assert third.counts == {"updated": 1}

    @pytest.mark.asyncio
    async def test_stale_only_removed_when_requested(
        self, store, make_source, make_raw
    ) -> None:
        source = await store.upsert_source(make_source())
        engine = MergeEngine(store)
        seed = await engine.begin(source.id)
        for name in ("Card A", "Card B"):
            await seed.apply(normalize_item(make_raw(name)))
        await seed.finalize(remove_stale=True)

        partial = await engine.begin(source.id)
        await partial.apply(normalize_item(make_raw("Card A")))
        assert await partial.finalize(remove_stale=False) == 0
        assert len(await store.get_active_fingerprints(source.id)) == 2

        complete = await engine.begin(source.id)
        await complete.apply(normalize_item(make_raw("Card A")))
        assert await complete.finalize(remove_stale=True) == 1
        assert set(await store.get_active_fingerprints(source.id)) == {"card-a"}

    @pytest.mark.asyncio
    async def test_mark_seen_protects_from_removal(
        self, store, make_source, make_raw
    ) -> None:
        source = await store.upsert_source(make_source())
        engine = MergeEngine(store)
        seed = await engine.begin(source.id)
        await seed.apply(normalize_item(make_raw("Card A")))
        await seed.finalize(remove_stale=True)

        session = await engine.begin(source.id)
        session.mark_seen("card-a")
        session.mark_seen(None)

        assert await session.finalize(remove_stale=True) == 0
        assert session.seen == frozenset({"card-a"})

    @pytest.mark.asyncio
    async def test_unchanged_items_are_touched(self, store, make_source, make_raw) -> None:
        source = await store.upsert_source(make_source())
        item = normalize_item(make_raw("Card A"))
        old = datetime(2026, 1, 1, tzinfo=timezone.utc)
        await store.upsert_component(source.id, item, old)

        later = datetime(2026, 2, 1, tzinfo=timezone.utc)
        session = MergeSession(
            store, source.id, await store.get_active_fingerprints(source.id), seen_at=later
        )
        await session.apply(item)
        await session.finalize(remove_stale=True)

        assert (await store.get_component(source.id, "card-a")).last_seen_at == later
        assert store.write_count == 1

    @pytest.mark.asyncio
    async def test_write_retried_once(self, make_source, make_raw) -> None:
        store = FlakyStore(failures=1)
        source = await store.upsert_source(make_source())
        session = await MergeEngine(store, write_attempts=2).begin(source.id)

        outcome = await session.apply(normalize_item(make_raw("Card A")))

        assert outcome == MergeOutcome.ADDED
        assert store.attempts == 2

    @pytest.mark.asyncio
    async def test_persistent_write_failure(self, make_source, make_raw) -> None:
        store = FlakyStore(failures=5)
        source = await store.upsert_source(make_source())
        session = await MergeEngine(store, write_attempts=2).begin(source.id)

        outcome = await session.apply(normalize_item(make_raw("Card A")))

        assert outcome == MergeOutcome.FAILED
        assert store.attempts == 2
        assert session.counts["failed"] == 1
        # Seen slugs are never soft-removed
        assert "card-a" in session.seen

    @pytest.mark.asyncio
    async def test_same_slug_is_applied_once(
        self, store, make_source, make_raw
    ) -> None:
        """Concurrent applies of one slug write once; the other is a duplicate."""
        source = await store.upsert_source(make_source())
        session = await MergeEngine(store).begin(source.id)
        item = normalize_item(make_raw("Card A"))
        other = normalize_item(make_raw("Card A", description="Another take."))

        outcomes = await asyncio.gather(session.apply(item), session.apply(other))

        assert sorted(o.value for o in outcomes) == ["added", "duplicate"]
        assert store.write_count == 1
        assert session.counts == {"added": 1, "duplicate": 1}
        assert "card-a" in session.seen

    @pytest.mark.asyncio
    async def test_apply_after_finalize_fails(self, store, make_source, make_raw) -> None:
        source = await store.upsert_source(make_source())
        session = await MergeEngine(store).begin(source.id)
        await session.finalize(remove_stale=False)

        with pytest.raises(RuntimeError):
            await session.apply(normalize_item(make_raw("Card A")))
