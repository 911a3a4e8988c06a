"""
Core module for the package index crawler.

Contains the exception hierarchy, domain models and collaborator
interfaces used across all modules.
"""

from pkgindex.core.exceptions import (
    PkgIndexError,
    RetryableError,
    ConfigurationError,
    CrawlerError,
    DiscoveryError,
    IndexInterruptedError,
    DownloadError,
    MetadataError,
    ArchiveError,
    ArchiveTooLargeError,
    UnsupportedArchiveError,
    SymbolExtractionError,
    StorageError,
    DatabaseError,
    is_retryable,
)
from pkgindex.core.models import (
    ArchiveType,
    ImportEdge,
    PackageRecord,
    Symbol,
    VersionRecord,
)
from pkgindex.core.protocols import (
    PackageStore,
    RecordSource,
    SymbolExtractor,
)

__all__ = [
    # Base
    "PkgIndexError",
    "RetryableError",
    # Configuration
    "ConfigurationError",
    # Crawler
    "CrawlerError",
    "DiscoveryError",
    "IndexInterruptedError",
    "DownloadError",
    "MetadataError",
    # Archive
    "ArchiveError",
    "ArchiveTooLargeError",
    "UnsupportedArchiveError",
    # Extraction
    "SymbolExtractionError",
    # Storage
    "StorageError",
    "DatabaseError",
    # Utilities
    "is_retryable",
    # Models
    "ArchiveType",
    "ImportEdge",
    "PackageRecord",
    "Symbol",
    "VersionRecord",
    # Protocols
    "PackageStore",
    "RecordSource",
    "SymbolExtractor",
]
