"""
Normalization of raw adapter items into canonical components.

Two RawItems carrying the same content must produce the same
NormalizedComponent and the same fingerprint, whatever the key order of
their dicts or the incidental whitespace in their text. The fingerprint
is a SHA-256 over a canonical JSON serialization of the content fields:

    name, description, source_code, tags, dependencies, variants

View counts, timestamps, URLs and other volatile fields are excluded, so
a page redesign that only moves a component does not count as a change.
"""

import hashlib
import json
import re
from typing import Any

from pydantic import BaseModel, Field

from ui_catalog.adapters.schemas import RawItem
from ui_catalog.errors import MalformedItemError

# Component types seeded in the catalog, in matching priority order.
# Multi-word types come first so "date picker" wins over a bare "picker" tag.
KNOWN_COMPONENT_TYPES: tuple[str, ...] = (
    "button",
    "card",
    "form",
    "navigation",
    "modal",
    "table",
    "chart",
    "layout",
    "typography",
    "avatar",
    "badge",
    "alert",
    "progress",
    "tabs",
    "accordion",
    "select",
    "slider",
    "switch",
    "tooltip",
    "hero",
)

# Words that map onto a known type without containing its name
TYPE_ALIASES: dict[str, str] = {
    "navbar": "navigation",
    "menu": "navigation",
    "sidebar": "navigation",
    "breadcrumb": "navigation",
    "dialog": "modal",
    "drawer": "modal",
    "sheet": "modal",
    "popover": "tooltip",
    "input": "form",
    "checkbox": "form",
    "textarea": "form",
    "toggle": "switch",
    "dropdown": "select",
    "combobox": "select",
    "toast": "alert",
    "notification": "alert",
    "spinner": "progress",
    "loader": "progress",
    "skeleton": "progress",
    "graph": "chart",
    "grid": "layout",
    "text": "typography",
    "heading": "typography",
    "tab": "tabs",
    "collapsible": "accordion",
    "banner": "hero",
    "landing": "hero",
}

DEFAULT_COMPONENT_TYPE = "other"
CODE_LANGUAGES = frozenset({"typescript", "javascript", "tsx", "jsx"})
DEFAULT_CODE_LANGUAGE = "tsx"

_LANGUAGE_ALIASES = {
    "ts": "typescript",
    "js": "javascript",
    "react": "tsx",
}

_SLUG_STRIP = re.compile(r"[^a-z0-9]+")
_CONTROL_CHARS = re.compile(r"[\x00-\x08\x0b\x0c\x0e-\x1f\x7f]")


class NormalizedComponent(BaseModel):
    """Canonical shape of a component, ready for the merge engine."""

    slug: str = Field(..., pattern=r"^[a-z0-9-]+$")
    name: str = Field(..., min_length=1)
    description: str = ""
    source_url: str = Field(..., min_length=1)
    source_code: str = Field(..., min_length=1)
    code_language: str = DEFAULT_CODE_LANGUAGE
    component_type: str = DEFAULT_COMPONENT_TYPE
    tags: list[str] = Field(default_factory=list)
    dependencies: dict[str, str] = Field(default_factory=dict)
    variants: list[Any] = Field(default_factory=list)
    props: dict[str, Any] = Field(default_factory=dict)
    preview_url: str | None = None
    thumbnail_url: str | None = None
    license: str | None = None
    author: str | None = None
    version: str | None = None
    metadata: dict[str, Any] = Field(default_factory=dict)
    fingerprint: str = Field(..., min_length=64, max_length=64)


def clean_text(text: str | None) -> str:
    """Collapse runs of whitespace and drop control characters."""
    if not text:
        return ""
    text = _CONTROL_CHARS.sub("", text)
    return " ".join(text.split())


def normalize_source_code(code: str | None) -> str:
    """
    Normalize incidental whitespace in source code.

    Line endings become ``\\n``, trailing whitespace is stripped from every
    line and leading/trailing blank lines are removed. Indentation is kept.
    """
    if not code:
        return ""
    code = code.replace("\r\n", "\n").replace("\r", "\n")
    lines = [line.rstrip() for line in code.split("\n")]
    return "\n".join(lines).strip("\n")


def normalize_tags(tags: list[str] | None) -> list[str]:
    """Trim, lower-case, de-duplicate and sort tags."""
    if not tags:
        return []
    cleaned = {clean_text(str(tag)).lower() for tag in tags}
    cleaned.discard("")
    return sorted(cleaned)


def normalize_dependencies(dependencies: dict[str, Any] | None) -> dict[str, str]:
    if not dependencies:
        return {}
    return {
        str(name).strip(): str(version).strip() if version is not None else "*"
        for name, version in sorted(dependencies.items())
        if str(name).strip()
    }


def slugify(value: str) -> str:
    """Lower-case, replace non-alphanumerics with '-', trim dashes."""
    return _SLUG_STRIP.sub("-", value.lower()).strip("-")


def infer_component_type(
    name: str,
    tags: list[str],
    declared: str | None = None,
) -> str:
    """
    Map a component onto one of the known type slugs.

    A declared site category wins when it maps onto a known type. Otherwise
    the name words are checked first, then the tags. Falls back to "other".
    """
    candidates: list[str] = []
    if declared:
        candidates.append(slugify(declared))
    candidates.extend(slugify(word) for word in name.split())
    candidates.extend(slugify(tag) for tag in tags)

    for candidate in candidates:
        if not candidate:
            continue
        for part in (candidate, *candidate.split("-")):
            singular = part[:-1] if part.endswith("s") and part != "tabs" else part
            for word in (part, singular):
                if word in KNOWN_COMPONENT_TYPES:
                    return word
                if word in TYPE_ALIASES:
                    return TYPE_ALIASES[word]
    return DEFAULT_COMPONENT_TYPE


def _normalize_language(value: str | None) -> str:
    if not value:
        return DEFAULT_CODE_LANGUAGE
    language = value.strip().lower()
    language = _LANGUAGE_ALIASES.get(language, language)
    return language if language in CODE_LANGUAGES else DEFAULT_CODE_LANGUAGE


def _canonical(value: Any) -> Any:
    """Recursively canonicalize a JSON-like value (clean strings, sorted keys)."""
    if isinstance(value, str):
        return clean_text(value)
    if isinstance(value, dict):
        return {str(k): _canonical(v) for k, v in sorted(value.items(), key=lambda kv: str(kv[0]))}
    if isinstance(value, (list, tuple)):
        return [_canonical(v) for v in value]
    return value


def compute_fingerprint(
    name: str,
    description: str,
    source_code: str,
    tags: list[str],
    dependencies: dict[str, str],
    variants: list[Any],
) -> str:
    """
    Hash the content fields of an already-normalized component.

    Returns:
        64-character lower-case hex SHA-256 digest
    """
    payload = {
        "name": name,
        "description": description,
        "source_code": source_code,
        "tags": sorted(tags),
        "dependencies": dict(sorted(dependencies.items())),
        "variants": _canonical(variants),
    }
    serialized = json.dumps(
        payload,
        sort_keys=True,
        separators=(",", ":"),
        ensure_ascii=False,
        default=str,
    )
    return hashlib.sha256(serialized.encode("utf-8")).hexdigest()


def normalize_item(raw: RawItem) -> NormalizedComponent:
    """
    Convert a RawItem into a NormalizedComponent with its fingerprint.

    Raises:
        MalformedItemError: name, source URL or source code missing/blank,
            or no usable slug can be derived
    """
    ref = raw.detail_ref

    name = clean_text(raw.name)
    if not name:
        raise MalformedItemError("Item has no name", field="name", ref=ref)

    source_url = (raw.source_url or "").strip()
    if not source_url:
        raise MalformedItemError(
            f"Item '{name}' has no source URL", field="source_url", ref=ref
        )

    source_code = normalize_source_code(raw.source_code)
    if not source_code:
        raise MalformedItemError(
            f"Item '{name}' has no source code", field="source_code", ref=ref
        )

    slug = slugify(raw.slug) if raw.slug else ""
    slug = slug or slugify(name)
    if not slug:
        raise MalformedItemError(
            f"Cannot derive a slug for item '{name}'", field="slug", ref=ref
        )

    description = clean_text(raw.description)
    tags = normalize_tags(raw.tags)
    dependencies = normalize_dependencies(raw.dependencies)
    variants = _canonical(raw.variants)

    fingerprint = compute_fingerprint(
        name=name,
        description=description,
        source_code=source_code,
        tags=tags,
        dependencies=dependencies,
        variants=variants,
    )

    return NormalizedComponent(
        slug=slug,
        name=name,
        description=description,
        source_url=source_url,
        source_code=source_code,
        code_language=_normalize_language(raw.code_language),
        component_type=infer_component_type(name, tags, raw.component_type),
        tags=tags,
        dependencies=dependencies,
        variants=variants,
        props=_canonical(raw.props),
        preview_url=(raw.preview_url or None),
        thumbnail_url=(raw.thumbnail_url or None),
        license=clean_text(raw.license) or None,
        author=clean_text(raw.author) or None,
        version=clean_text(raw.version) or None,
        metadata=dict(raw.metadata),
        fingerprint=fingerprint,
    )
