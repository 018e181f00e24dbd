"""Configuration for the search service."""

from pydantic import Field, model_validator
from pydantic_settings import BaseSettings, SettingsConfigDict


class SearchConfig(BaseSettings):
    """
    Settings for query validation, ranking and index refresh.

    All settings can be overridden via environment variables prefixed with SEARCH_.

    Example:
        SEARCH_FUZZY_THRESHOLD=85
        SEARCH_REFRESH_INTERVAL_SECONDS=120
    """

    model_config = SettingsConfigDict(
        env_prefix="SEARCH_",
        env_file=".env",
        env_file_encoding="utf-8",
        case_sensitive=False,
        extra="ignore",
    )

    min_query_length: int = Field(
        default=2,
        ge=1,
        description="Shortest normalized query accepted",
    )
    default_limit: int = Field(default=20, ge=1)
    max_limit: int = Field(
        default=100,
        ge=1,
        description="Requested limits above this are capped",
    )
    fuzzy_threshold: float = Field(
        default=80.0,
        ge=0.0,
        le=100.0,
        description="Minimum rapidfuzz partial_ratio for a fuzzy field match",
    )
    suggestion_min_length: int = Field(default=3, ge=1)
    suggestion_limit: int = Field(default=5, ge=0)
    refresh_interval_seconds: float = Field(
        default=300.0,
        gt=0.0,
        description="Period of the background index rebuild",
    )
    log_searches: bool = Field(
        default=True,
        description="Write a search log row when a session id is supplied",
    )

    @model_validator(mode="after")
    def _check_limits(self) -> "SearchConfig":
        if self.default_limit > self.max_limit:
            raise ValueError("default_limit must be <= max_limit")
        return self
