"""Search request and response models."""

from dataclasses import asdict, dataclass, field
from datetime import datetime
from typing import Any


@dataclass(frozen=True)
class SearchFilters:
    """Optional restrictions applied before ranking."""

    source: str | None = None
    component_type: str | None = None

    def to_dict(self) -> dict[str, Any]:
        return {k: v for k, v in (("source", self.source), ("type", self.component_type)) if v}


@dataclass
class SearchHit:
    """A ranked component."""

    id: str
    source_id: str
    source_slug: str | None
    slug: str
    name: str
    description: str
    component_type: str
    tags: list[str]
    view_count: int
    score: float


@dataclass
class SearchResult:
    hits: list[SearchHit] = field(default_factory=list)
    total: int = 0
    elapsed_ms: float = 0.0
    suggestions: list[str] = field(default_factory=list)
    index_built_at: datetime | None = None
    # True when the result comes from an index that could not be refreshed
    stale: bool = False

    def to_dict(self) -> dict[str, Any]:
        return {
            "results": [asdict(hit) for hit in self.hits],
            "total": self.total,
            "response_time_ms": round(self.elapsed_ms, 2),
            "suggestions": self.suggestions,
            "index_built_at": self.index_built_at.isoformat() if self.index_built_at else None,
            "stale": self.stale,
        }
