"""
Error taxonomy shared by the crawl, merge and search layers.

Every error carries a short machine-readable ``code``. Crawl jobs that end
in ``failed`` persist that code next to the message so callers of
get_crawl_status() can tell a timeout from a storage outage.

Propagation:
- Per-item errors (MalformedItemError, adapter errors on a detail fetch,
  a per-item StorageError) are counted and logged, never abort a job.
- Job-level errors move the job to ``failed``.
- ConflictError is raised synchronously from trigger_crawl().
"""


class CatalogError(Exception):
    """Base exception for the catalog subsystem."""

    code = "catalog_error"


class ConflictError(CatalogError):
    """Raised when a source already has a running crawl job."""

    code = "conflict"

    def __init__(self, source_slug: str, running_job_id: str | None = None):
        message = f"Crawl already in progress for source '{source_slug}'"
        if running_job_id:
            message += f" (job {running_job_id})"
        super().__init__(message)
        self.source_slug = source_slug
        self.running_job_id = running_job_id


class MalformedItemError(CatalogError):
    """Raised by the normalizer when a required field is missing or empty."""

    code = "malformed_item"

    def __init__(self, message: str, field: str | None = None, ref: str | None = None):
        super().__init__(message)
        self.field = field
        self.ref = ref


class AdapterError(CatalogError):
    """Base class for failures raised while talking to a source site."""

    code = "adapter_error"

    def __init__(
        self,
        message: str,
        retryable: bool = True,
        status_code: int | None = None,
    ):
        super().__init__(message)
        self.retryable = retryable
        self.status_code = status_code


class AdapterTimeoutError(AdapterError):
    """An adapter call exceeded its deadline."""

    code = "adapter_timeout"


class AdapterFetchError(AdapterError):
    """An adapter call failed (transport error, bad status, unparseable page)."""

    code = "adapter_fetch_error"


class EmptyListingError(AdapterError):
    """The source listed no items while the catalog still holds active ones."""

    code = "empty_listing"

    def __init__(self, source_slug: str, active_count: int):
        super().__init__(
            f"Source '{source_slug}' listed no items but has "
            f"{active_count} active components",
            retryable=False,
        )
        self.source_slug = source_slug
        self.active_count = active_count


class FailureThresholdError(CatalogError):
    """Too many items of a job failed; the job is escalated to failed."""

    code = "failure_threshold"

    def __init__(self, failed: int, found: int, threshold: float):
        super().__init__(
            f"{failed} of {found} items failed (threshold {threshold:.0%})"
        )
        self.failed = failed
        self.found = found
        self.threshold = threshold


class InvalidQueryError(CatalogError):
    """Raised for search input that cannot be served (too short, bad limit)."""

    code = "invalid_query"


class StorageError(CatalogError):
    """Raised when the catalog store cannot complete an operation."""

    code = "storage_error"


class SourceNotFoundError(CatalogError):
    code = "source_not_found"

    def __init__(self, source_slug: str):
        super().__init__(f"Source website '{source_slug}' not found")
        self.source_slug = source_slug


class JobNotFoundError(CatalogError):
    code = "job_not_found"

    def __init__(self, job_id: str):
        super().__init__(f"Crawl job '{job_id}' not found")
        self.job_id = job_id


class AdapterNotRegisteredError(CatalogError):
    code = "adapter_not_registered"

    def __init__(self, source_slug: str):
        super().__init__(f"No adapter registered for source '{source_slug}'")
        self.source_slug = source_slug
