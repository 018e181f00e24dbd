"""
Adapter for sites that publish a shadcn-style component registry.

Many of the tracked sites serve their components as registry JSON:

    GET {index_path}             -> [ {name, type, description, ...}, ... ]
                                    or {"items": [...]}
    GET {item_path with {name}}  -> {name, files: [{path, content}], dependencies, ...}

The adapter is enabled for a source by a ``registry`` block in the
source metadata (see data/seed_sources.json):

    "registry": {
        "index_path": "/r/index.json",
        "item_path": "/r/styles/new-york/{name}.json",
        "docs_path": "/docs/components/{name}"
    }
"""

import logging
from collections.abc import Iterable, Sequence
from typing import Any

from ui_catalog.adapters.base import AdapterRegistry, SourceAdapter
from ui_catalog.adapters.http_client import SiteHttpClient
from ui_catalog.adapters.schemas import RawItem
from ui_catalog.catalog.schemas import SourceSite
from ui_catalog.errors import AdapterFetchError

logger = logging.getLogger(__name__)

DEFAULT_DOCS_PATH = "/docs/components/{name}"

# Registry entries that are not user-facing components
EXCLUDED_ITEM_TYPES = frozenset(
    {"registry:style", "registry:lib", "registry:hook", "registry:theme"}
)

_EXTENSION_LANGUAGES = {
    ".tsx": "tsx",
    ".ts": "typescript",
    ".jsx": "jsx",
    ".js": "javascript",
}


def _index_entries(payload: Any) -> list[dict[str, Any]]:
    if isinstance(payload, dict):
        payload = payload.get("items", [])
    if not isinstance(payload, list):
        raise AdapterFetchError("Registry index is not a list", retryable=False)
    return [entry for entry in payload if isinstance(entry, dict)]


def _humanize(name: str) -> str:
    return " ".join(part.capitalize() for part in name.replace("_", "-").split("-") if part)


def _parse_dependencies(deps: Any) -> dict[str, str | None]:
    """Accept ["pkg", "pkg@1.2.0", "@scope/pkg@^2"] or a name->version map."""
    if isinstance(deps, dict):
        return {str(k): str(v) if v is not None else None for k, v in deps.items()}
    result: dict[str, str | None] = {}
    for dep in deps or []:
        dep = str(dep).strip()
        if not dep:
            continue
        at = dep.rfind("@")
        if at > 0:
            result[dep[:at]] = dep[at + 1 :] or "*"
        else:
            result[dep] = "*"
    return result


def _concat_files(files: Iterable[dict[str, Any]]) -> tuple[str, str | None]:
    """Join file contents into one source blob; returns (code, language)."""
    parts: list[str] = []
    language = None
    for file in files:
        content = file.get("content")
        if not content:
            continue
        path = file.get("path") or file.get("target") or ""
        if language is None:
            for ext, lang in _EXTENSION_LANGUAGES.items():
                if path.endswith(ext):
                    language = lang
                    break
        parts.append(f"// {path}\n{content}" if path else content)
    return "\n\n".join(parts), language


class RegistryAdapter:
    """SourceAdapter over a registry index plus per-item JSON documents."""

    def __init__(
        self,
        base_url: str,
        index_path: str,
        item_path: str,
        docs_path: str = DEFAULT_DOCS_PATH,
        client: SiteHttpClient | None = None,
    ):
        if "{name}" not in item_path:
            raise ValueError(f"item_path must contain '{{name}}': {item_path}")
        self.base_url = base_url.rstrip("/")
        self.index_path = index_path
        self.item_path = item_path
        self.docs_path = docs_path
        self._client = client or SiteHttpClient(self.base_url)

    @classmethod
    def from_source(cls, source: SourceSite) -> "RegistryAdapter":
        config = source.metadata.get("registry") or {}
        try:
            return cls(
                base_url=config.get("base_url", source.base_url),
                index_path=config["index_path"],
                item_path=config["item_path"],
                docs_path=config.get("docs_path", DEFAULT_DOCS_PATH),
            )
        except KeyError as e:
            raise ValueError(
                f"Registry config of source {source.slug} is missing {e}"
            ) from e

    def _docs_url(self, name: str) -> str:
        return f"{self.base_url}{self.docs_path.format(name=name)}"

    async def list(self) -> Sequence[RawItem]:
        payload = await self._client.get_json(self.index_path)
        items = []
        for entry in _index_entries(payload):
            name = entry.get("name")
            if not name or entry.get("type") in EXCLUDED_ITEM_TYPES:
                continue
            categories = entry.get("categories") or []
            items.append(
                RawItem(
                    ref=name,
                    slug=name,
                    name=entry.get("title") or _humanize(name),
                    description=entry.get("description"),
                    source_url=self._docs_url(name),
                    component_type=categories[0] if categories else None,
                    tags=categories,
                )
            )
        logger.info(f"Registry {self.base_url}{self.index_path} listed {len(items)} items")
        return items

    async def fetch_detail(self, ref: str) -> RawItem:
        data = await self._client.get_json(self.item_path.format(name=ref))
        if not isinstance(data, dict):
            raise AdapterFetchError(f"Registry item {ref} is not an object", retryable=False)

        name = data.get("name") or ref
        source_code, language = _concat_files(data.get("files") or [])
        meta = data.get("meta") if isinstance(data.get("meta"), dict) else {}
        categories = data.get("categories") or []

        return RawItem(
            ref=ref,
            slug=name,
            name=data.get("title") or _humanize(name),
            description=data.get("description"),
            source_url=self._docs_url(name),
            source_code=source_code,
            code_language=language,
            component_type=categories[0] if categories else None,
            tags=categories,
            dependencies=_parse_dependencies(data.get("dependencies")),
            author=data.get("author"),
            preview_url=meta.get("preview_url"),
            metadata={
                "registry_type": data.get("type"),
                "registry_dependencies": data.get("registryDependencies") or [],
            },
        )

    async def aclose(self) -> None:
        await self._client.close()


def build_registry(
    sources: Sequence[SourceSite],
    registry: AdapterRegistry | None = None,
) -> AdapterRegistry:
    """
    Register a RegistryAdapter for every source carrying registry metadata.

    Sources without a ``registry`` block are left untouched so that
    site-specific adapters registered beforehand keep precedence.
    """
    registry = registry or AdapterRegistry()
    for source in sources:
        if "registry" not in source.metadata or source.slug in registry:
            continue
        try:
            adapter: SourceAdapter = RegistryAdapter.from_source(source)
        except ValueError as e:
            logger.error(f"Skipping registry adapter for {source.slug}: {e}")
            continue
        registry.register(source.slug, adapter)
    return registry
