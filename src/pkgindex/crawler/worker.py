"""
Crawl workers.

Each worker pulls version records from the job queue and runs the full
pipeline for one package: metadata, download, extraction, symbol
parsing and persistence. A failing job is logged and counted; the
worker moves on to the next one.
"""

import asyncio
import tempfile
import threading
from pathlib import Path
from typing import TYPE_CHECKING, Any, Callable

from pkgindex.core.exceptions import StorageError, is_retryable
from pkgindex.core.models import ImportEdge, PackageRecord, Symbol, VersionRecord
from pkgindex.core.protocols import PackageStore, SymbolExtractor
from pkgindex.crawler.archive import ArchiveExtractor
from pkgindex.crawler.queue import JobQueue
from pkgindex.crawler.rate_limiter import TokenBucketLimiter
from pkgindex.crawler.stats import CrawlStats
from pkgindex.utils.logging import get_logger, get_logger_with_context

if TYPE_CHECKING:
    from pkgindex.ecosystems.base import Ecosystem

logger = get_logger(__name__)

TEMP_DIR_PREFIX = "pkgindex-"


async def run_blocking(
    func: Callable[..., Any],
    *args: Any,
    cancel_event: threading.Event | None = None,
) -> Any:
    """
    Run func in a worker thread.

    If the awaiting task is cancelled, cancel_event is set and the thread
    is allowed to finish before CancelledError propagates, so callers can
    safely remove files the thread is using.
    """
    task = asyncio.ensure_future(asyncio.to_thread(func, *args))
    try:
        return await asyncio.shield(task)
    except asyncio.CancelledError:
        if cancel_event is not None:
            cancel_event.set()
        await asyncio.wait({task})
        if not task.cancelled() and task.exception() is not None:
            logger.debug(f"Thread finished with {task.exception()!r} after cancellation")
        raise


class Worker:
    """
    One member of the worker pool.

    Owns its rate limiter and the temp directory of the job it is
    running. Shares the ecosystem, extractor, store and stats with the
    other workers.
    """

    def __init__(
        self,
        worker_id: int,
        ecosystem: "Ecosystem",
        extractor: SymbolExtractor,
        store: PackageStore,
        stats: CrawlStats,
        limiter: TokenBucketLimiter,
        archive_extractor: ArchiveExtractor,
        temp_dir: Path | None = None,
    ) -> None:
        self.worker_id = worker_id
        self.ecosystem = ecosystem
        self.extractor = extractor
        self.store = store
        self.stats = stats
        self.limiter = limiter
        self.archive_extractor = archive_extractor
        self.temp_dir = temp_dir
        self.jobs_done = 0

    async def run(self, queue: JobQueue) -> int:
        """
        Process records until the queue is closed and drained.

        Returns:
            Number of jobs this worker handled
        """
        logger.debug(f"Worker {self.worker_id} started")
        while True:
            record = await queue.get()
            if record is None:
                break
            await self.limiter.wait()
            await self.process(record)
            self.jobs_done += 1

        logger.debug(f"Worker {self.worker_id} finished after {self.jobs_done} jobs")
        return self.jobs_done

    async def process(self, record: VersionRecord) -> bool:
        """
        Run the pipeline for one record.

        Returns:
            True if the package was stored, False if the job failed
        """
        self.stats.record_processed()
        stage = "metadata"
        try:
            package = await self.ecosystem.fetch_metadata(record)

            with tempfile.TemporaryDirectory(
                prefix=TEMP_DIR_PREFIX,
                dir=self.temp_dir,
                ignore_cleanup_errors=True,
            ) as tmp:
                work_dir = Path(tmp)

                stage = "download"
                archive_path, archive_type = await self.ecosystem.download_archive(
                    package, work_dir)

                stage = "extract"
                extract_dir = work_dir / "src"
                cancel_event = threading.Event()
                report = await run_blocking(
                    self.archive_extractor.extract,
                    archive_path,
                    extract_dir,
                    archive_type,
                    cancel_event,
                    cancel_event=cancel_event,
                )
                if report.skipped:
                    logger.debug(
                        f"Skipped {len(report.skipped)} archive entries for {record}")

                stage = "parse"
                symbols, edges = await run_blocking(self._analyse, extract_dir, package)

            stage = "persist"
            package.symbols = symbols
            await run_blocking(self._persist, package, edges)

        except Exception as e:
            context = {
                "path": record.path,
                "version": record.version or "latest",
                "stage": stage,
                "retryable": "yes" if is_retryable(e) else "no",
            }
            retry_after = getattr(e, "retry_after", None)
            if retry_after is not None:
                context["retry_after"] = f"{retry_after:g}s"
            get_logger_with_context(__name__, **context).warning(f"Job failed: {e}")
            self.stats.record_failure()
            return False

        self.stats.record_success(len(symbols))
        logger.info(
            f"Indexed {package.name}@{package.version}: {len(symbols)} symbols, "
            f"{len(edges)} imports")
        return True

    def _analyse(
        self, extract_dir: Path, package: PackageRecord
    ) -> tuple[list[Symbol], list[ImportEdge]]:
        """Locate the sources, fill in source-derived metadata, parse symbols and imports."""
        root = self.ecosystem.source_root(extract_dir)
        self.ecosystem.enrich(package, root)

        symbols = self.extractor.parse_directory(root)
        if self.ecosystem.public_only:
            symbols = [s for s in symbols if s.is_public]

        return symbols, self.ecosystem.extract_imports(root, package)

    def _persist(self, package: PackageRecord, edges: list[ImportEdge]) -> None:
        """Replace the package's stored symbols and import edges."""
        package_id = self.store.upsert_package(package)
        self.store.delete_package_symbols(package_id)

        for symbol in package.symbols:
            try:
                self.store.upsert_symbol(package_id, symbol)
            except StorageError as e:
                logger.warning(f"Failed to store symbol {symbol.name} of {package.name}: {e}")

        for module in sorted({package.name, *(edge.module for edge in edges)}):
            self.store.delete_module_imports(module)
        for edge in edges:
            self.store.add_import(edge.importer, edge.imported, edge.module)

    def __repr__(self) -> str:
        return f"Worker(id={self.worker_id}, jobs_done={self.jobs_done})"
