"""Crawl orchestration: jobs, retries, merge and scheduling."""

from ui_catalog.crawl.backoff import ExponentialBackoff
from ui_catalog.crawl.config import CrawlConfig
from ui_catalog.crawl.merge import (
    MergeDelta,
    MergeEngine,
    MergeOutcome,
    MergeSession,
    compute_delta,
)
from ui_catalog.crawl.orchestrator import CrawlOrchestrator
from ui_catalog.crawl.scheduler import CrawlScheduler, is_due

__all__ = [
    "CrawlConfig",
    "CrawlOrchestrator",
    "CrawlScheduler",
    "ExponentialBackoff",
    "MergeDelta",
    "MergeEngine",
    "MergeOutcome",
    "MergeSession",
    "compute_delta",
    "is_due",
]
