"""
Raw item schema produced by source adapters.

Adapters fill in whatever a site exposes; nothing here is required.
Required-field checks happen in the normalizer so a half-parsed page
becomes a MalformedItemError for that one item instead of a crash.
"""

from typing import Any

from pydantic import BaseModel, ConfigDict, Field


class RawItem(BaseModel):
    """A candidate component as scraped from a source site."""

    model_config = ConfigDict(extra="ignore")

    ref: str | None = Field(
        default=None,
        description="Adapter-specific handle passed back to fetch_detail()",
    )
    slug: str | None = Field(default=None, description="Site slug, if the site has one")
    name: str | None = None
    description: str | None = None
    source_url: str | None = Field(default=None, description="Page the component lives on")
    source_code: str | None = None
    code_language: str | None = None
    component_type: str | None = Field(
        default=None,
        description="Site category; inferred from name/tags when missing",
    )
    tags: list[str] = Field(default_factory=list)
    dependencies: dict[str, str | None] = Field(
        default_factory=dict,
        description="Package -> version range; None when the site gives no version",
    )
    variants: list[Any] = Field(default_factory=list)
    props: dict[str, Any] = Field(default_factory=dict)
    preview_url: str | None = None
    thumbnail_url: str | None = None
    license: str | None = None
    author: str | None = None
    version: str | None = None
    metadata: dict[str, Any] = Field(default_factory=dict)

    @property
    def detail_ref(self) -> str | None:
        """Reference used to fetch this item's detail page."""
        return self.ref or self.slug or self.source_url

    @property
    def slug_hint(self) -> str | None:
        """Best guess of the catalog slug before normalization."""
        from ui_catalog.catalog.normalizer import slugify

        for candidate in (self.slug, self.name, self.ref):
            if candidate:
                slug = slugify(candidate)
                if slug:
                    return slug
        return None
