"""Shared fixtures for catalog repository tests."""

from datetime import datetime, timezone
from unittest.mock import AsyncMock

import pytest


@pytest.fixture
def mock_database() -> AsyncMock:
    """Mock Database instance matching the Database API."""
    db = AsyncMock()
    db.fetch = AsyncMock(return_value=[])
    db.fetchval = AsyncMock(return_value=None)
    db.fetchrow = AsyncMock(return_value=None)
    db.execute = AsyncMock(return_value="UPDATE 0")
    return db


@pytest.fixture
def source_row() -> dict:
    """A dict mimicking an asyncpg Record for a source website."""
    return {
        "id": "9b2f1c1e-0000-4000-8000-000000000001",
        "slug": "magic-ui",
        "name": "Magic UI",
        "url": "https://magicui.design",
        "description": "Animated components",
        "license_type": "MIT",
        "crawl_cadence_hours": 24,
        "crawl_status": "pending",
        "crawl_job_id": None,
        "crawl_started_at": None,
        "last_crawled_at": None,
        "component_count": 0,
        "is_active": True,
        "metadata": '{"registry": {"index_path": "/r/registry.json"}}',
        "created_at": datetime(2026, 1, 1, tzinfo=timezone.utc),
        "updated_at": datetime(2026, 1, 1, tzinfo=timezone.utc),
    }


@pytest.fixture
def component_row() -> dict:
    """A dict mimicking an asyncpg Record for a component."""
    ts = datetime(2026, 1, 2, tzinfo=timezone.utc)
    return {
        "id": "9b2f1c1e-0000-4000-8000-0000000000c1",
        "source_website_id": "9b2f1c1e-0000-4000-8000-000000000001",
        "slug": "shimmer-button",
        "name": "Shimmer Button",
        "description": "A button with a shimmer.",
        "source_url": "https://magicui.design/docs/components/shimmer-button",
        "preview_url": None,
        "thumbnail_url": None,
        "source_code": "export function ShimmerButton() {}",
        "code_language": "tsx",
        "component_type": "button",
        "dependencies": '{"motion": "^11"}',
        "props": "{}",
        "variants": "[]",
        "tags": '["animation", "button"]',
        "license": "MIT",
        "author": None,
        "version": None,
        "content_hash": "a" * 64,
        "metadata": "{}",
        "is_active": True,
        "view_count": 7,
        "last_seen_at": ts,
        "created_at": ts,
        "updated_at": ts,
    }
