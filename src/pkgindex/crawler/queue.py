"""
Bounded job queue between discovery and the worker pool.

Wraps asyncio.Queue with a close operation: once the producer closes
the queue and it drains, every consumer's get() returns None.
"""

import asyncio

from pkgindex.core.exceptions import CrawlerError
from pkgindex.core.models import VersionRecord

DEFAULT_QUEUE_SIZE = 100

_CLOSED = object()


class JobQueue:
    """
    Closable producer/consumer queue of VersionRecords.

    put() blocks while the queue is full, get() blocks while it is
    empty. Both are cancellation points.

    Example:
        >>> queue = JobQueue(maxsize=100)
        >>> await queue.put(record)
        >>> queue.close()
        >>> while (job := await queue.get()) is not None:
        ...     await process(job)
    """

    def __init__(self, maxsize: int = DEFAULT_QUEUE_SIZE) -> None:
        self._queue: asyncio.Queue = asyncio.Queue(maxsize=maxsize)
        self._closed = False
        self._sentinel_queued = False
        self._enqueued = 0

    @property
    def closed(self) -> bool:
        return self._closed

    @property
    def enqueued_count(self) -> int:
        """Total records accepted since creation."""
        return self._enqueued

    def qsize(self) -> int:
        size = self._queue.qsize()
        return size - 1 if self._sentinel_queued and size else size

    async def put(self, record: VersionRecord) -> None:
        """
        Add a record, waiting for free capacity.

        Raises:
            CrawlerError: If the queue has been closed
        """
        if self._closed:
            raise CrawlerError("Job queue is closed", details={"record": str(record)})
        await self._queue.put(record)
        self._enqueued += 1

    async def get(self) -> VersionRecord | None:
        """
        Take the next record.

        Returns:
            The next record, or None once the queue is closed and drained
        """
        self._queue_sentinel()
        item = await self._queue.get()
        if item is _CLOSED:
            # Leave the marker for the remaining consumers
            self._queue.put_nowait(_CLOSED)
            return None
        self._queue_sentinel()
        return item

    def close(self) -> None:
        """Stop accepting records and wake consumers once drained."""
        if self._closed:
            return
        self._closed = True
        self._queue_sentinel()

    def _queue_sentinel(self) -> None:
        if not self._closed or self._sentinel_queued:
            return
        try:
            self._queue.put_nowait(_CLOSED)
            self._sentinel_queued = True
        except asyncio.QueueFull:
            # A consumer retries after taking the next item
            pass
