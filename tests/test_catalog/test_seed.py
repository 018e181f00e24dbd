"""Tests for source seeding."""

import json

import pytest

from ui_catalog.catalog.schemas import SourceCrawlStatus
from ui_catalog.catalog.seed import ensure_seeded, load_seed_sources, seed_sources


class TestLoadSeedSources:
    def test_bundled_file(self):
        sources = load_seed_sources()
        slugs = [s.slug for s in sources]

        assert len(slugs) == 7
        assert len(set(slugs)) == 7
        assert "shadcn-ui" in slugs
        assert all(s.base_url.startswith("https://") for s in sources)

    def test_registry_metadata_present(self):
        by_slug = {s.slug: s for s in load_seed_sources()}
        registry = by_slug["shadcn-ui"].metadata["registry"]
        assert "{name}" in registry["item_path"]

    def test_custom_file_defaults(self, tmp_path):
        path = tmp_path / "sources.json"
        path.write_text(json.dumps([{"slug": "x-ui", "name": "X UI", "url": "https://x.example"}]))

        [source] = load_seed_sources(path)

        assert source.license_type == "MIT"
        assert source.crawl_cadence_hours == 24
        assert source.is_active is True


class TestSeedSources:
    @pytest.mark.asyncio
    async def test_seed_is_idempotent(self, store):
        assert await seed_sources(store) == 7
        assert await seed_sources(store) == 7
        assert len(await store.list_sources(active_only=False)) == 7

    @pytest.mark.asyncio
    async def test_reseed_keeps_crawl_state(self, store):
        await seed_sources(store)
        source = await store.get_source_by_slug("magic-ui")
        await store.try_claim_source(source.id, "job-1", source.created_at)
        await store.finish_crawl(source.id, "job-1", SourceCrawlStatus.SUCCESS)

        await seed_sources(store)

        reseeded = await store.get_source_by_slug("magic-ui")
        assert reseeded.id == source.id
        assert reseeded.crawl_status == SourceCrawlStatus.SUCCESS
        assert reseeded.last_crawled_at is not None

    @pytest.mark.asyncio
    async def test_ensure_seeded_only_when_empty(self, store, make_source):
        await store.upsert_source(make_source("custom-ui"))

        await ensure_seeded(store)

        assert [s.slug for s in await store.list_sources()] == ["custom-ui"]

    @pytest.mark.asyncio
    async def test_ensure_seeded_on_empty_store(self, store):
        await ensure_seeded(store)
        assert len(await store.list_sources()) == 7
