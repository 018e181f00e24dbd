"""Catalog data model, normalization and storage."""

from ui_catalog.catalog.memory_store import InMemoryCatalogStore
from ui_catalog.catalog.normalizer import (
    NormalizedComponent,
    compute_fingerprint,
    normalize_item,
)
from ui_catalog.catalog.repository import CatalogRepository
from ui_catalog.catalog.schemas import (
    BrowseFilters,
    Component,
    CrawlJob,
    CrawlJobStatus,
    CrawlStats,
    PaginatedResult,
    SearchAnalytics,
    SearchLog,
    SourceCrawlStatus,
    SourceSite,
    UpsertResult,
)
from ui_catalog.catalog.seed import ensure_seeded, seed_sources
from ui_catalog.catalog.store import CatalogStore

__all__ = [
    "BrowseFilters",
    "CatalogRepository",
    "CatalogStore",
    "Component",
    "CrawlJob",
    "CrawlJobStatus",
    "CrawlStats",
    "InMemoryCatalogStore",
    "NormalizedComponent",
    "PaginatedResult",
    "SearchAnalytics",
    "SearchLog",
    "SourceCrawlStatus",
    "SourceSite",
    "UpsertResult",
    "compute_fingerprint",
    "ensure_seeded",
    "normalize_item",
    "seed_sources",
]
