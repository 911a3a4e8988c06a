"""
Crawl orchestration for the package index.

Coordinates discovery, the job queue and the worker pool for one-shot,
incremental and scheduled runs. Provides the main entry point for
crawling an ecosystem.
"""

import asyncio
from dataclasses import dataclass
from datetime import datetime, timezone
from enum import Enum
from typing import TYPE_CHECKING, Iterable

from pkgindex.config.settings import Settings
from pkgindex.core.exceptions import ConfigurationError, DiscoveryError
from pkgindex.core.protocols import PackageStore, RecordSource, SymbolExtractor
from pkgindex.crawler.archive import ArchiveExtractor
from pkgindex.crawler.discovery import Discovery, DiscoveryOutcome, NameListSource, SearchSource
from pkgindex.crawler.queue import JobQueue
from pkgindex.crawler.rate_limiter import TokenBucketLimiter
from pkgindex.crawler.stats import CrawlStats, StatsSnapshot
from pkgindex.crawler.worker import Worker
from pkgindex.utils.logging import get_logger

if TYPE_CHECKING:
    from pkgindex.ecosystems.base import Ecosystem

logger = get_logger(__name__)


class CrawlStatus(str, Enum):
    """Status of a crawl operation."""

    PENDING = "pending"
    RUNNING = "running"
    COMPLETED = "completed"
    FAILED = "failed"
    CANCELLED = "cancelled"


@dataclass
class CrawlResult:
    """
    Result of a crawl run.

    Contains the final statistics and the error that ended the run, if any.
    watermark is the last crawl time this run recorded, None if it kept
    the previous one.
    """

    status: CrawlStatus
    stats: StatsSnapshot
    since: datetime | None
    started_at: datetime
    completed_at: datetime | None = None
    error: str | None = None
    watermark: datetime | None = None

    @property
    def duration_seconds(self) -> float:
        return self.stats.elapsed_seconds


class Crawler:
    """
    Runs crawls of one ecosystem.

    Each run gets fresh stats, a fresh queue and a fresh set of workers.
    Only a completed run advances the last crawl time, and only as far as
    discovery got. Cancelled and failed runs leave it untouched so the
    next incremental run covers the same window again.

    Example:
        >>> crawler = Crawler(ecosystem, store, extractor, settings)
        >>> result = await crawler.run_incremental()
        >>> print(result.stats.summary())
    """

    def __init__(
        self,
        ecosystem: "Ecosystem",
        store: PackageStore,
        extractor: SymbolExtractor,
        settings: Settings | None = None,
        source: RecordSource | None = None,
    ) -> None:
        """
        Initialize crawler.

        Args:
            ecosystem: Registry to crawl
            store: Persistence for packages and crawl metadata
            extractor: Symbol extractor for the ecosystem's sources
            settings: Application settings
            source: Version source; defaults to the ecosystem's changelog

        Raises:
            ConfigurationError: If no source is given and the ecosystem
                has no changelog to follow
        """
        self.ecosystem = ecosystem
        self.store = store
        self.extractor = extractor
        self.settings = settings or Settings()
        self.crawler_settings = self.settings.crawler

        self._follows_changelog = source is None
        self.source = source or ecosystem.default_source()
        if self.source is None:
            raise ConfigurationError(
                f"{ecosystem.name} has no changelog; give package names or a search query",
            )

        archive = self.settings.archive
        self.archive_extractor = ArchiveExtractor(
            max_file_size=archive.max_file_size,
            max_total_size=archive.max_total_size,
        )

        # State
        self.stats = CrawlStats()
        self._status = CrawlStatus.PENDING
        self._since: datetime | None = None
        self._started_at: datetime | None = None
        self._completed_at: datetime | None = None
        self._error: str | None = None
        self._watermark: datetime | None = None
        self._tasks: list[asyncio.Task] = []
        self._cancel_requested = False
        self._stop_event = asyncio.Event()

    @property
    def status(self) -> CrawlStatus:
        return self._status

    @property
    def progress(self) -> StatsSnapshot:
        """Live statistics of the current or last run."""
        return self.stats.snapshot()

    def _create_workers(self) -> list[Worker]:
        temp_dir = self.crawler_settings.temp_dir
        if temp_dir is not None:
            temp_dir.mkdir(parents=True, exist_ok=True)

        return [
            Worker(
                worker_id=i,
                ecosystem=self.ecosystem,
                extractor=self.extractor,
                store=self.store,
                stats=self.stats,
                limiter=TokenBucketLimiter(
                    max_tokens=self.crawler_settings.max_tokens,
                    refill_interval=self.crawler_settings.rate_limit_seconds,
                ),
                archive_extractor=self.archive_extractor,
                temp_dir=temp_dir,
            )
            for i in range(self.crawler_settings.workers)
        ]

    async def run(self, since: datetime | None = None) -> CrawlResult:
        """
        Run one crawl to completion.

        Args:
            since: Only crawl versions published after this time;
                None crawls everything the source yields

        Returns:
            CrawlResult with final statistics

        Raises:
            DiscoveryError: If discovery failed; raised after the workers
                have drained the jobs already queued
            asyncio.CancelledError: If the awaiting task is cancelled;
                raised after all workers have stopped
        """
        self.stats = CrawlStats()
        self._since = since
        self._started_at = self.stats.started_at
        self._completed_at = None
        self._error = None
        self._watermark = None

        if self._cancel_requested:
            logger.info("Crawl cancelled before start")
            self._finish(CrawlStatus.CANCELLED)
            return self.get_result()

        self._status = CrawlStatus.RUNNING
        logger.info(
            f"Starting {self.ecosystem.name} crawl "
            f"(workers={self.crawler_settings.workers}, "
            f"since={since.isoformat() if since else 'beginning'})"
        )

        queue = JobQueue(maxsize=self.crawler_settings.queue_size)
        discovery = Discovery(
            source=self.source,
            module_filter=self.ecosystem.filter,
            stats=self.stats,
            max_modules=self.crawler_settings.max_modules,
        )
        workers = self._create_workers()

        discovery_task = asyncio.create_task(
            discovery.feed(queue, since), name="discovery")
        worker_tasks = [
            asyncio.create_task(worker.run(queue), name=f"worker-{worker.worker_id}")
            for worker in workers
        ]
        self._tasks = [discovery_task, *worker_tasks]

        try:
            results = await asyncio.gather(*self._tasks, return_exceptions=True)
        except asyncio.CancelledError:
            # gather cancelled its children; wait for them to clean up
            await asyncio.gather(*self._tasks, return_exceptions=True)
            self._tasks = []
            self._finish(CrawlStatus.CANCELLED)
            self._log_summary()
            raise

        self._tasks = []
        discovery_outcome = results[0]

        for worker, outcome in zip(workers, results[1:]):
            if isinstance(outcome, Exception):
                logger.error(f"Worker {worker.worker_id} stopped unexpectedly: {outcome!r}")

        discovery_error: DiscoveryError | None = None
        if isinstance(discovery_outcome, DiscoveryError):
            discovery_error = discovery_outcome
        elif isinstance(discovery_outcome, Exception):
            discovery_error = DiscoveryError(f"Discovery failed: {discovery_outcome}")
            discovery_error.__cause__ = discovery_outcome

        if self._cancel_requested:
            self._finish(CrawlStatus.CANCELLED)
        elif discovery_error is not None:
            self._error = str(discovery_error)
            self._finish(CrawlStatus.FAILED)
        else:
            watermark = self._next_watermark(discovery_outcome, since)
            if watermark is not None:
                await asyncio.to_thread(self.store.set_last_crawl_time, watermark)
                self._watermark = watermark
            self._finish(CrawlStatus.COMPLETED)

        self._log_summary()

        if discovery_error is not None and self._status == CrawlStatus.FAILED:
            raise discovery_error
        return self.get_result()

    async def run_incremental(self) -> CrawlResult:
        """
        Crawl everything published since the last completed run.

        With no recorded last crawl time this is a full crawl.
        """
        since = await asyncio.to_thread(self.store.get_last_crawl_time)
        if since is None:
            logger.info("No previous crawl recorded, running full crawl")
        return await self.run(since=since)

    async def run_with_schedule(self, interval: float | None = None) -> list[CrawlResult]:
        """
        Run incremental crawls until cancelled.

        The first run starts immediately; later runs start interval
        seconds after the previous one finished. Discovery failures are
        logged and the schedule continues. Cancellation, through cancel()
        or of the awaiting task, stops the schedule cleanly.

        Returns:
            Results of all runs, in order
        """
        interval = interval or self.crawler_settings.schedule_interval_seconds
        results: list[CrawlResult] = []
        logger.info(f"Starting scheduled crawls every {interval:.0f}s")

        try:
            while not self._cancel_requested:
                try:
                    await self.run_incremental()
                except DiscoveryError as e:
                    logger.error(f"Scheduled crawl failed: {e}")
                results.append(self.get_result())

                if self._cancel_requested:
                    break
                try:
                    await asyncio.wait_for(self._stop_event.wait(), timeout=interval)
                except asyncio.TimeoutError:
                    continue
        except asyncio.CancelledError:
            if self._status == CrawlStatus.CANCELLED:
                results.append(self.get_result())
            logger.info("Scheduled crawling stopped")
            return results

        logger.info(f"Scheduled crawling stopped after {len(results)} runs")
        return results

    def cancel(self) -> None:
        """
        Request cancellation.

        Stops discovery and all workers of the current run and ends a
        running schedule. Safe to call from a signal handler on the
        event loop thread.
        """
        if self._cancel_requested:
            return
        logger.info("Cancellation requested")
        self._cancel_requested = True
        self._stop_event.set()
        for task in self._tasks:
            task.cancel()

    def get_result(self) -> CrawlResult:
        """Result of the current or last run."""
        return CrawlResult(
            status=self._status,
            stats=self.stats.snapshot(),
            since=self._since,
            started_at=self._started_at or self.stats.started_at,
            completed_at=self._completed_at,
            error=self._error,
            watermark=self._watermark,
        )

    def _next_watermark(self, outcome: DiscoveryOutcome, since: datetime | None) -> datetime | None:
        """
        Last crawl time to record after a completed run, or None to keep the old one.

        A changelog read to its end is covered up to the moment the run
        started. A pass cut short is covered only up to the newest version
        it enqueued. Name lists and searches never move the watermark.
        """
        if not self._follows_changelog:
            return None
        if outcome.exhausted:
            return self._started_at
        newest = outcome.last_published
        if newest is None or (since is not None and newest <= since):
            logger.warning("Discovery stopped early; keeping the previous crawl time")
            return None
        logger.warning(f"Discovery stopped early; recording crawl time {newest.isoformat()}")
        return newest

    def _finish(self, status: CrawlStatus) -> None:
        self._status = status
        self._completed_at = datetime.now(timezone.utc)

    def _log_summary(self) -> None:
        snapshot = self.stats.snapshot()
        logger.info(f"Crawl {self._status.value}: {snapshot.summary()}")


async def crawl_packages(
    settings: Settings | None = None,
    names: Iterable[str] | None = None,
    query: str | None = None,
    since: datetime | None = None,
    ecosystem: str | None = None,
    store: PackageStore | None = None,
    search_limit: int = 20,
) -> CrawlResult:
    """
    Convenience function to run one crawl from settings.

    Crawls the given package names, the results of a registry search, or
    the ecosystem's changelog when neither is given.

    Args:
        settings: Application settings
        names: Package names, optionally pinned as name@version
        query: Registry search query
        since: Lower bound for changelog discovery
        ecosystem: Ecosystem name; defaults to settings.crawler.ecosystem
        store: Package store; defaults to SQLite from settings
        search_limit: Maximum search results to crawl

    Returns:
        CrawlResult with statistics
    """
    from pkgindex.crawler.download import create_http_client
    from pkgindex.ecosystems.registry import get_ecosystem
    from pkgindex.extractors.loader import get_extractor
    from pkgindex.storage.store import SqliteStore

    settings = settings or Settings()
    name = ecosystem or settings.crawler.ecosystem
    extractor = get_extractor(settings, name)

    owns_store = store is None
    if store is None:
        store = SqliteStore.from_settings(settings)

    try:
        async with create_http_client(settings.http) as client:
            eco = get_ecosystem(name, client, settings)
            source: RecordSource | None = None
            if names:
                source = NameListSource(names)
            elif query:
                source = SearchSource(eco, query, limit=search_limit)

            crawler = Crawler(eco, store, extractor, settings, source)
            return await crawler.run(since=since)
    finally:
        if owns_store:
            store.close()
