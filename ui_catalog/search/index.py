"""
In-memory search index over active components.

A SearchIndex is an immutable snapshot built from the store in one pass.
The service swaps whole snapshots, so a reader holding a reference keeps a
consistent view no matter how many rebuilds happen meanwhile.

Scoring (query q, already normalized):

    field         exact substring    fuzzy (rapidfuzz partial_ratio >= threshold)
    name          3.0                up to 1.5
    description   2.0                up to 1.0
    tags          1.0                up to 0.5

    + 3.0 when the name equals q, + 1.5 when the name starts with q

A fuzzy match is worth at most half the field weight, so at equal weight
an exact hit always outranks a fuzzy one. Ties break on view_count (desc),
then name and id (asc), which makes ranking a pure function of the
snapshot and the query.
"""

from collections.abc import Iterable, Sequence
from dataclasses import dataclass
from datetime import datetime, timezone

from rapidfuzz import fuzz

from ui_catalog.catalog.schemas import Component
from ui_catalog.search.schemas import SearchFilters, SearchHit

NAME_WEIGHT = 3.0
DESCRIPTION_WEIGHT = 2.0
TAG_WEIGHT = 1.0
FUZZY_FACTOR = 0.5
EXACT_NAME_BONUS = 3.0
NAME_PREFIX_BONUS = 1.5


def normalize_query(query: str) -> str:
    """Trim, collapse internal whitespace and lower-case."""
    return " ".join(query.split()).lower()


@dataclass(frozen=True)
class IndexedComponent:
    """Search projection of one active component."""

    id: str
    source_id: str
    source_slug: str | None
    slug: str
    name: str
    description: str
    component_type: str
    tags: tuple[str, ...]
    view_count: int
    name_key: str
    description_key: str

    @classmethod
    def from_component(cls, component: Component) -> "IndexedComponent":
        return cls(
            id=component.id,
            source_id=component.source_id,
            source_slug=component.source_slug,
            slug=component.slug,
            name=component.name,
            description=component.description,
            component_type=component.component_type,
            tags=tuple(sorted(t.lower() for t in component.tags)),
            view_count=component.view_count,
            name_key=normalize_query(component.name),
            description_key=normalize_query(component.description),
        )

    def to_hit(self, score: float) -> SearchHit:
        return SearchHit(
            id=self.id,
            source_id=self.source_id,
            source_slug=self.source_slug,
            slug=self.slug,
            name=self.name,
            description=self.description,
            component_type=self.component_type,
            tags=list(self.tags),
            view_count=self.view_count,
            score=score,
        )


def _field_score(query: str, text: str, weight: float, fuzzy_threshold: float) -> float:
    if not text:
        return 0.0
    if query in text:
        return weight
    ratio = fuzz.partial_ratio(query, text, score_cutoff=fuzzy_threshold)
    if ratio:
        return weight * FUZZY_FACTOR * ratio / 100.0
    return 0.0


def score_entry(entry: IndexedComponent, query: str, fuzzy_threshold: float) -> float:
    """Relevance of one entry for a normalized query (0.0 = no match)."""
    score = _field_score(query, entry.name_key, NAME_WEIGHT, fuzzy_threshold)
    score += _field_score(query, entry.description_key, DESCRIPTION_WEIGHT, fuzzy_threshold)
    if entry.tags:
        score += max(
            _field_score(query, tag, TAG_WEIGHT, fuzzy_threshold) for tag in entry.tags
        )
    if score <= 0:
        return 0.0

    if entry.name_key == query:
        score += EXACT_NAME_BONUS
    elif entry.name_key.startswith(query):
        score += NAME_PREFIX_BONUS
    return round(score, 6)


class SearchIndex:
    """Immutable snapshot of searchable components."""

    def __init__(self, entries: Sequence[IndexedComponent], built_at: datetime | None = None):
        self._entries: tuple[IndexedComponent, ...] = tuple(entries)
        self.built_at = built_at or datetime.now(timezone.utc)

    @classmethod
    def build(
        cls,
        components: Iterable[Component],
        built_at: datetime | None = None,
    ) -> "SearchIndex":
        """Project active components into a new snapshot."""
        entries = [IndexedComponent.from_component(c) for c in components if c.is_active]
        return cls(entries, built_at=built_at)

    @property
    def size(self) -> int:
        return len(self._entries)

    def __len__(self) -> int:
        return len(self._entries)

    def search(
        self,
        query: str,
        filters: SearchFilters | None = None,
        limit: int = 20,
        fuzzy_threshold: float = 80.0,
    ) -> tuple[list[SearchHit], int]:
        """
        Rank entries for a normalized query.

        Returns:
            (top ``limit`` hits, total number of matches)
        """
        filters = filters or SearchFilters()
        scored: list[tuple[float, IndexedComponent]] = []

        for entry in self._entries:
            if filters.source and entry.source_slug != filters.source:
                continue
            if filters.component_type and entry.component_type != filters.component_type:
                continue
            score = score_entry(entry, query, fuzzy_threshold)
            if score > 0:
                scored.append((score, entry))

        scored.sort(key=lambda pair: (-pair[0], -pair[1].view_count, pair[1].name_key, pair[1].id))
        return [entry.to_hit(score) for score, entry in scored[:limit]], len(scored)

    def suggest(self, prefix: str, limit: int = 5) -> list[str]:
        """Distinct component names starting with ``prefix``, most viewed first."""
        if limit <= 0:
            return []
        candidates = sorted(
            (e for e in self._entries if e.name_key.startswith(prefix)),
            key=lambda e: (-e.view_count, e.name_key),
        )
        names: list[str] = []
        seen: set[str] = set()
        for entry in candidates:
            if entry.name_key in seen:
                continue
            seen.add(entry.name_key)
            names.append(entry.name)
            if len(names) >= limit:
                break
        return names
