"""
Crawl orchestration configuration.

Tuning Guide:
    - max_concurrent_sources: Size of the worker pool. Each running job holds
      one slot; further triggered jobs wait in ``pending``.
    - detail_concurrency / min_request_interval_seconds: Politeness towards a
      single site. Detail fetches of one job run at most detail_concurrency
      at a time and request starts are spaced by the minimum interval.
    - failure_threshold: Fraction of listed items that may fail before the
      job is escalated to ``failed``. 0.5 tolerates a flaky half of a site.
    - stale_claim_seconds: A ``running`` source claim older than this is
      treated as abandoned by a crashed process. Keep it above
      job_timeout_seconds.
"""

from pydantic import Field, model_validator
from pydantic_settings import BaseSettings, SettingsConfigDict


class CrawlConfig(BaseSettings):
    """
    Configuration for crawl jobs.

    All settings can be overridden via environment variables prefixed with CRAWL_.

    Example:
        CRAWL_MAX_CONCURRENT_SOURCES=5
        CRAWL_FAILURE_THRESHOLD=0.25
    """

    model_config = SettingsConfigDict(
        env_prefix="CRAWL_",
        env_file=".env",
        env_file_encoding="utf-8",
        case_sensitive=False,
        extra="ignore",
    )

    # Worker pool
    max_concurrent_sources: int = Field(
        default=3,
        ge=1,
        description="Maximum number of crawl jobs running at once",
    )

    # Per-source politeness
    detail_concurrency: int = Field(
        default=4,
        ge=1,
        description="Parallel detail fetches within one job",
    )
    min_request_interval_seconds: float = Field(
        default=0.5,
        ge=0.0,
        description="Minimum delay between request starts against one source",
    )

    # Retries
    max_attempts: int = Field(
        default=3,
        ge=1,
        description="Attempts per adapter call, first try included",
    )
    backoff_base_delay: float = Field(default=1.0, ge=0.0)
    backoff_max_delay: float = Field(default=30.0, ge=0.0)

    # Failure handling
    failure_threshold: float = Field(
        default=0.5,
        ge=0.0,
        le=1.0,
        description="Fraction of found items allowed to fail before the job fails",
    )
    allow_empty_listing: bool = Field(
        default=False,
        description="Accept an empty listing even if the source has active components",
    )

    # Deadlines
    adapter_timeout_seconds: float = Field(
        default=30.0,
        gt=0.0,
        description="Deadline of a single adapter call",
    )
    job_timeout_seconds: float = Field(
        default=1800.0,
        gt=0.0,
        description="Wall-clock ceiling of a whole job",
    )
    stale_claim_seconds: float = Field(
        default=3600.0,
        gt=0.0,
        description="Age after which a running source claim may be re-claimed",
    )

    # Scheduler
    scheduler_interval_seconds: float = Field(
        default=60.0,
        gt=0.0,
        description="How often the scheduler looks for due sources",
    )
    failed_retry_seconds: float = Field(
        default=3600.0,
        ge=0.0,
        description="Delay before a source whose last job failed is retried",
    )

    @model_validator(mode="after")
    def _check_backoff(self) -> "CrawlConfig":
        if self.backoff_max_delay < self.backoff_base_delay:
            raise ValueError("backoff_max_delay must be >= backoff_base_delay")
        return self
