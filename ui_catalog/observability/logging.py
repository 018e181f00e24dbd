"""
structlog setup for the crawler, search index and CLI.

Production emits one JSON object per line; development renders coloured
console output. A crawl task binds its job id and source slug once via
``bind_crawl_context`` and every line it logs afterwards carries both.
"""

import logging
import sys

import structlog
from structlog.types import Processor

from ui_catalog.config.settings import get_settings

# Libraries that log every request or statement at INFO
_QUIET_LOGGERS = ("httpx", "httpcore", "asyncpg", "asyncio")

_CRAWL_KEYS = ("job_id", "source")


def _renderer(json_logs: bool) -> list[Processor]:
    if json_logs:
        return [
            structlog.processors.format_exc_info,
            structlog.processors.JSONRenderer(),
        ]
    return [structlog.dev.ConsoleRenderer(colors=sys.stdout.isatty())]


def setup_logging(level: str | None = None) -> None:
    """
    Configure structlog and the stdlib root logger.

    Args:
        level: Overrides LOG_LEVEL from settings (the CLI passes DEBUG
            for --debug)
    """
    settings = get_settings()
    level_name = (level or settings.log_level).upper()

    processors: list[Processor] = [
        structlog.contextvars.merge_contextvars,
        structlog.stdlib.add_log_level,
        structlog.stdlib.add_logger_name,
        structlog.processors.TimeStamper(fmt="iso", utc=True),
        structlog.processors.StackInfoRenderer(),
    ]
    processors += _renderer(settings.is_production)

    structlog.configure(
        processors=processors,
        wrapper_class=structlog.stdlib.BoundLogger,
        context_class=dict,
        logger_factory=structlog.stdlib.LoggerFactory(),
        cache_logger_on_first_use=True,
    )

    logging.basicConfig(
        format="%(message)s",
        stream=sys.stdout,
        level=getattr(logging, level_name, logging.INFO),
    )
    for name in _QUIET_LOGGERS:
        logging.getLogger(name).setLevel(logging.WARNING)


def bind_crawl_context(job_id: str, source: str) -> None:
    """
    Tag subsequent log lines of the current task with a crawl job.

    Context variables are copied into each asyncio task at creation, so
    binding inside a job's task never leaks into sibling jobs.
    """
    structlog.contextvars.bind_contextvars(job_id=job_id, source=source)


def clear_crawl_context() -> None:
    structlog.contextvars.unbind_contextvars(*_CRAWL_KEYS)
