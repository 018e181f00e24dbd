"""Seeding of source websites from the bundled JSON file."""

import json
import logging
from pathlib import Path

from ui_catalog.catalog.schemas import SourceSite
from ui_catalog.catalog.store import CatalogStore

logger = logging.getLogger(__name__)

SEED_FILE = Path(__file__).parent / "data" / "seed_sources.json"


def _parse_seed_entry(entry: dict) -> SourceSite:
    """Convert a JSON seed entry to a SourceSite dataclass."""
    return SourceSite(
        slug=entry["slug"],
        name=entry["name"],
        base_url=entry["url"],
        description=entry.get("description", ""),
        license_type=entry.get("license_type", "MIT"),
        crawl_cadence_hours=entry.get("crawl_cadence_hours", 24),
        is_active=entry.get("is_active", True),
        metadata=entry.get("metadata", {}),
    )


def load_seed_sources(path: Path | None = None) -> list[SourceSite]:
    seed_path = path or SEED_FILE
    with open(seed_path) as f:
        entries = json.load(f)
    return [_parse_seed_entry(e) for e in entries]


async def seed_sources(store: CatalogStore, path: Path | None = None) -> int:
    """Upsert every seed source by slug. Returns the number of entries applied.

    Re-seeding updates descriptive fields and adapter metadata but never
    touches crawl state.
    """
    sources = load_seed_sources(path)
    for source in sources:
        await store.upsert_source(source)
    logger.info("Seeded %d sources from %s", len(sources), path or SEED_FILE)
    return len(sources)


async def ensure_seeded(store: CatalogStore) -> None:
    """Seed from the default JSON if no source exists yet."""
    existing = await store.list_sources(active_only=False)
    if existing:
        logger.debug("Catalog has %d sources, skipping seed", len(existing))
        return
    logger.info("No sources found, seeding from default JSON")
    await seed_sources(store)
