"""
Exceptions raised by the package index crawler.

    PkgIndexError
    ├── ConfigurationError
    ├── CrawlerError
    │   ├── DiscoveryError          aborts the run
    │   ├── IndexInterruptedError   ends discovery early
    │   ├── DownloadError           fails one job; may be retryable
    │   └── MetadataError           fails one job
    ├── ArchiveError                fails one job
    │   ├── ArchiveTooLargeError
    │   └── UnsupportedArchiveError
    ├── SymbolExtractionError
    └── StorageError
        └── DatabaseError

Only DiscoveryError stops a crawl. Every other error raised while
processing a package is logged against that package and counted as a
failure.
"""

from typing import Any

MAX_QUERY_IN_DETAILS = 200


def _details(details: dict[str, Any] | None, **context: Any) -> dict[str, Any]:
    """Copy details and add the context values that are set."""
    merged = dict(details or {})
    merged.update({k: v for k, v in context.items() if v is not None})
    return merged


class PkgIndexError(Exception):
    """
    Base class of every pkgindex error.

    Attributes:
        message: Human-readable description
        details: Context such as the package, url or path involved
    """

    def __init__(self, message: str, details: dict[str, Any] | None = None) -> None:
        super().__init__(message)
        self.message = message
        self.details = details or {}

    def __str__(self) -> str:
        if not self.details:
            return self.message
        context = ", ".join(f"{k}={v!r}" for k, v in self.details.items())
        return f"{self.message} ({context})"

    def __repr__(self) -> str:
        return f"{type(self).__name__}({self.message!r}, details={self.details!r})"


class RetryableError(PkgIndexError):
    """
    A failure a later crawl can be expected to get past.

    Jobs are not retried within a run; the flag only changes how the
    failure is logged.
    """

    def __init__(
        self,
        message: str,
        details: dict[str, Any] | None = None,
        retry_after: float | None = None,
    ) -> None:
        super().__init__(message, details)
        self.retry_after = retry_after


class ConfigurationError(PkgIndexError):
    """Bad config file or value, unknown ecosystem, or unloadable extractor."""


# =============================================================================
# Registry access
# =============================================================================


class CrawlerError(PkgIndexError):
    """Registry interaction failed."""


class DiscoveryError(CrawlerError):
    """The version feed could not be read; the run ends as FAILED."""

    def __init__(
        self,
        message: str,
        url: str | None = None,
        status_code: int | None = None,
        details: dict[str, Any] | None = None,
    ) -> None:
        super().__init__(message, _details(details, url=url, status_code=status_code))
        self.url = url
        self.status_code = status_code


class IndexInterruptedError(CrawlerError):
    """The version feed broke off after records had been read; discovery stops there."""


class DownloadError(CrawlerError, RetryableError):
    """
    A registry document or archive could not be fetched.

    Transport failures, 429 and 5xx are retryable unless the raiser says
    otherwise. Any other status means the registry will keep refusing
    this version.
    """

    def __init__(
        self,
        message: str,
        url: str | None = None,
        status_code: int | None = None,
        details: dict[str, Any] | None = None,
        retry_after: float | None = None,
        retryable: bool | None = None,
    ) -> None:
        super().__init__(
            message, _details(details, url=url, status_code=status_code), retry_after)
        self.url = url
        self.status_code = status_code
        self._retryable = retryable

    @property
    def retryable(self) -> bool:
        if self._retryable is not None:
            return self._retryable
        return self.status_code is None or self.status_code == 429 or self.status_code >= 500


class MetadataError(CrawlerError):
    """Registry answered, but without a usable version, archive or JSON body."""

    def __init__(
        self,
        message: str,
        package: str | None = None,
        details: dict[str, Any] | None = None,
    ) -> None:
        super().__init__(message, _details(details, package=package))
        self.package = package


# =============================================================================
# Archives and parsing
# =============================================================================


class ArchiveError(PkgIndexError):
    """Archive is corrupt, or extraction was cancelled."""


class ArchiveTooLargeError(ArchiveError):
    """Extracted bytes passed the total cap; nothing beyond it was written."""

    def __init__(
        self,
        message: str,
        limit: int,
        details: dict[str, Any] | None = None,
    ) -> None:
        super().__init__(message, _details(details, limit=limit))
        self.limit = limit


class UnsupportedArchiveError(ArchiveError):
    """Neither zip nor gzip-compressed tar."""


class SymbolExtractionError(PkgIndexError):
    """
    A source tree could not be parsed at all.

    Single unparsable files are skipped by the extractors and never
    raise this.
    """

    def __init__(
        self,
        message: str,
        path: str | None = None,
        details: dict[str, Any] | None = None,
    ) -> None:
        super().__init__(message, _details(details, path=path))
        self.path = path


# =============================================================================
# Storage
# =============================================================================


class StorageError(PkgIndexError):
    """Index store failure."""


class DatabaseError(StorageError):
    """SQLite failed to open, migrate, or run a statement."""

    def __init__(
        self,
        message: str,
        query: str | None = None,
        details: dict[str, Any] | None = None,
    ) -> None:
        shown = query
        if query and len(query) > MAX_QUERY_IN_DETAILS:
            shown = query[:MAX_QUERY_IN_DETAILS] + "..."
        super().__init__(message, _details(details, query=shown or None))
        self.query = query


def is_retryable(error: Exception) -> bool:
    """Whether error describes a transient condition."""
    if isinstance(error, DownloadError):
        return error.retryable
    return isinstance(error, RetryableError)
