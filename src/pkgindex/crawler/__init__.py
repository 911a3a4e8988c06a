"""
Crawler module for the package index.

Provides crawling infrastructure including:
- Rate limiting
- Version discovery and the job queue
- Archive download and safe extraction
- Worker pool and crawl orchestration
"""

from pkgindex.crawler.rate_limiter import TokenBucketLimiter
from pkgindex.crawler.queue import JobQueue, DEFAULT_QUEUE_SIZE
from pkgindex.crawler.filters import ModuleFilter
from pkgindex.crawler.stats import CrawlStats, StatsSnapshot
from pkgindex.crawler.archive import (
    ArchiveEntry,
    ArchiveExtractor,
    ExtractionReport,
    detect_archive_type,
)
from pkgindex.crawler.download import create_http_client, download_file, fetch_json
from pkgindex.crawler.discovery import (
    Discovery,
    IndexStream,
    NameListSource,
    SearchSource,
    format_rfc3339,
    parse_rfc3339,
)
from pkgindex.crawler.worker import Worker
from pkgindex.crawler.orchestrator import (
    Crawler,
    CrawlStatus,
    CrawlResult,
    crawl_packages,
)

__all__ = [
    # Rate limiting
    "TokenBucketLimiter",
    # Queue
    "JobQueue",
    "DEFAULT_QUEUE_SIZE",
    # Filters
    "ModuleFilter",
    # Stats
    "CrawlStats",
    "StatsSnapshot",
    # Archives
    "ArchiveEntry",
    "ArchiveExtractor",
    "ExtractionReport",
    "detect_archive_type",
    # HTTP
    "create_http_client",
    "download_file",
    "fetch_json",
    # Discovery
    "Discovery",
    "IndexStream",
    "NameListSource",
    "SearchSource",
    "format_rfc3339",
    "parse_rfc3339",
    # Workers
    "Worker",
    # Orchestrator
    "Crawler",
    "CrawlStatus",
    "CrawlResult",
    "crawl_packages",
]
