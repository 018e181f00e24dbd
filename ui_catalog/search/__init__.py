"""Ranked search over the component catalog."""

from ui_catalog.search.config import SearchConfig
from ui_catalog.search.index import IndexedComponent, SearchIndex, normalize_query
from ui_catalog.search.schemas import SearchFilters, SearchHit, SearchResult
from ui_catalog.search.service import SearchService

__all__ = [
    "IndexedComponent",
    "SearchConfig",
    "SearchFilters",
    "SearchHit",
    "SearchIndex",
    "SearchResult",
    "SearchService",
    "normalize_query",
]
