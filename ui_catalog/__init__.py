"""UI component catalog: crawl orchestration, deduplication and ranked search."""

__version__ = "0.1.0"
