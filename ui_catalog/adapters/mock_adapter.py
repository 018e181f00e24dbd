"""
Static adapters for testing and development.

StaticAdapter serves a fixed set of RawItems from memory, with optional
per-call latency and scripted failures. create_mock_adapters() builds one
for every seeded source from a small synthetic catalog, which is what the
CLI ``--mock`` mode crawls. Useful for:
- Exercising the crawl pipeline without network access
- Reproducing retry, timeout and partial-failure scenarios in tests
"""

import asyncio
from collections import Counter
from collections.abc import Iterable, Sequence
from typing import Any

from ui_catalog.adapters.base import AdapterRegistry
from ui_catalog.adapters.schemas import RawItem
from ui_catalog.errors import AdapterFetchError

# Sample components per seeded source: (name, description, tags)
MOCK_CATALOG: dict[str, list[tuple[str, str, list[str]]]] = {
    "shadcn-ui": [
        ("Button", "Displays a button or a component that looks like a button.", ["button", "form"]),
        ("Card", "Displays a card with header, content, and footer.", ["card", "layout"]),
        ("Dialog", "A window overlaid on either the primary window or another dialog window.", ["modal", "overlay"]),
        ("Tabs", "A set of layered sections of content.", ["tabs", "navigation"]),
        ("Tooltip", "A popup that displays information related to an element.", ["tooltip", "overlay"]),
    ],
    "shadcnblocks": [
        ("Hero Section", "Landing page hero with headline and call to action.", ["hero", "landing"]),
        ("Pricing Table", "Three tier pricing table with feature list.", ["table", "pricing"]),
        ("Footer", "Multi column footer with links.", ["layout", "footer"]),
    ],
    "magic-ui": [
        ("Shimmer Button", "A button with a shimmering light travelling around the perimeter.", ["button", "animation"]),
        ("Animated Beam", "An animated beam of light which travels along a path.", ["animation", "effect"]),
        ("Marquee", "An infinite scrolling component for text, images or videos.", ["animation", "layout"]),
        ("Bento Grid", "A grid layout for showcasing features.", ["grid", "layout"]),
    ],
    "aceternity-ui": [
        ("3D Card Effect", "A card perspective effect, hover over the card to elevate card elements.", ["card", "3d", "animation"]),
        ("Spotlight", "A spotlight effect that follows the cursor.", ["effect", "hero"]),
        ("Floating Navbar", "A sticky navbar that hides on scroll down and reveals on scroll up.", ["navigation", "navbar"]),
        ("Background Beams", "Multiple background beams that follow a path.", ["background", "animation"]),
    ],
    "origin-ui": [
        ("Input With Label", "Text input with an attached label.", ["input", "form"]),
        ("Select Native", "Native select with custom styling.", ["select", "form"]),
        ("Slider Range", "Dual thumb range slider.", ["slider", "form"]),
    ],
    "cult-ui": [
        ("Dynamic Island", "An iOS style dynamic island component.", ["animation", "navigation"]),
        ("Texture Button", "A tactile textured button.", ["button"]),
        ("Shift Card", "A card whose layers shift on hover.", ["card", "animation"]),
    ],
    "neobrutalism": [
        ("Neo Badge", "Badge with a thick border and hard shadow.", ["badge"]),
        ("Neo Accordion", "Accordion in neobrutalist style.", ["accordion"]),
        ("Neo Alert", "Alert box with bold outline.", ["alert"]),
    ],
}


def _mock_source_code(name: str) -> str:
    component = "".join(part.capitalize() for part in name.replace("3D", "ThreeD").split())
    return (
        'import * as React from "react"\n'
        'import { cn } from "@/lib/utils"\n'
        "\n"
        f"export function {component}({{ className, ...props }}: React.HTMLAttributes<HTMLDivElement>) {{\n"
        f'  return <div className={{cn("{component.lower()}", className)}} {{...props}} />\n'
        "}\n"
    )


def mock_items(source_slug: str, base_url: str | None = None) -> list[RawItem]:
    """Synthetic RawItems for one seeded source."""
    base = (base_url or f"https://{source_slug}.example").rstrip("/")
    items = []
    for name, description, tags in MOCK_CATALOG.get(source_slug, []):
        slug = "-".join(name.lower().split())
        items.append(
            RawItem(
                ref=slug,
                slug=slug,
                name=name,
                description=description,
                source_url=f"{base}/docs/components/{slug}",
                source_code=_mock_source_code(name),
                code_language="tsx",
                tags=tags,
                dependencies={"react": "^18.2.0"},
                license="MIT",
            )
        )
    return items


class StaticAdapter:
    """
    SourceAdapter serving RawItems from memory.

    list() returns summaries (no source code); fetch_detail() returns the
    full item. Failures can be scripted per call with fail_list() and
    fail_detail(). Call counters are exposed for assertions.
    """

    def __init__(
        self,
        items: Iterable[RawItem | dict[str, Any]] = (),
        delay: float = 0.0,
        list_delay: float = 0.0,
    ):
        self.delay = delay
        self.list_delay = list_delay
        self.list_calls = 0
        self.detail_calls: Counter[str] = Counter()
        self._items: dict[str, RawItem] = {}
        self._list_failures: list[Exception] = []
        # ref -> [error, remaining times or None for always]
        self._detail_failures: dict[str, list[Any]] = {}
        self.set_items(items)

    def set_items(self, items: Iterable[RawItem | dict[str, Any]]) -> None:
        """Replace the listed items (e.g. between two crawls)."""
        self._items = {}
        for item in items:
            raw = item if isinstance(item, RawItem) else RawItem(**item)
            ref = raw.detail_ref
            if ref is None:
                raise ValueError(f"Static item without ref, slug or source_url: {raw}")
            self._items[ref] = raw

    def fail_list(self, *errors: Exception) -> None:
        """Raise the given errors on the next list() calls, in order."""
        self._list_failures.extend(errors)

    def fail_detail(self, ref: str, error: Exception, times: int | None = 1) -> None:
        """Raise ``error`` on the next ``times`` fetches of ``ref`` (None = always)."""
        self._detail_failures[ref] = [error, times]

    async def list(self) -> Sequence[RawItem]:
        self.list_calls += 1
        if self.list_delay:
            await asyncio.sleep(self.list_delay)
        if self._list_failures:
            raise self._list_failures.pop(0)
        return [
            item.model_copy(update={"source_code": None}, deep=True)
            for item in self._items.values()
        ]

    async def fetch_detail(self, ref: str) -> RawItem:
        self.detail_calls[ref] += 1
        if self.delay:
            await asyncio.sleep(self.delay)

        failure = self._detail_failures.get(ref)
        if failure is not None:
            error, remaining = failure
            if remaining is None:
                raise error
            if remaining > 0:
                failure[1] = remaining - 1
                raise error

        item = self._items.get(ref)
        if item is None:
            raise AdapterFetchError(
                f"Item {ref} not found", retryable=False, status_code=404
            )
        return item.model_copy(deep=True)


def create_mock_adapters(
    source_urls: dict[str, str] | None = None,
    delay: float = 0.0,
) -> AdapterRegistry:
    """
    Build a registry with a StaticAdapter for every source in MOCK_CATALOG.

    Args:
        source_urls: Optional slug -> base URL map used in source_url fields
        delay: Simulated latency of each detail fetch in seconds
    """
    source_urls = source_urls or {}
    registry = AdapterRegistry()
    for slug in MOCK_CATALOG:
        registry.register(
            slug,
            StaticAdapter(mock_items(slug, source_urls.get(slug)), delay=delay),
        )
    return registry
