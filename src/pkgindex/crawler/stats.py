"""
Crawl statistics.

One CrawlStats instance belongs to one crawl run. Workers update it
concurrently; readers take consistent snapshots.
"""

import threading
import time
from dataclasses import dataclass, field
from datetime import datetime, timezone


@dataclass(frozen=True)
class StatsSnapshot:
    """Consistent copy of the counters at one instant."""

    processed: int
    succeeded: int
    failed: int
    skipped: int
    symbols_indexed: int
    started_at: datetime
    elapsed_seconds: float

    @property
    def rate(self) -> float:
        """Processed versions per second."""
        if self.elapsed_seconds <= 0:
            return 0.0
        return self.processed / self.elapsed_seconds

    def to_dict(self) -> dict:
        return {
            "processed": self.processed,
            "succeeded": self.succeeded,
            "failed": self.failed,
            "skipped": self.skipped,
            "symbols_indexed": self.symbols_indexed,
            "started_at": self.started_at.isoformat(),
            "elapsed_seconds": round(self.elapsed_seconds, 3),
            "rate": round(self.rate, 2),
        }

    def summary(self) -> str:
        """Human-readable one-line summary."""
        return (
            f"processed={self.processed} succeeded={self.succeeded} "
            f"failed={self.failed} skipped={self.skipped} "
            f"symbols={self.symbols_indexed} "
            f"duration={self.elapsed_seconds:.1f}s rate={self.rate:.2f} modules/sec"
        )


@dataclass
class CrawlStats:
    """
    Thread-safe counters for one crawl run.

    Skipped versions never reach a worker, so they are not part of
    processed.
    """

    started_at: datetime = field(
        default_factory=lambda: datetime.now(timezone.utc))
    _processed: int = 0
    _succeeded: int = 0
    _failed: int = 0
    _skipped: int = 0
    _symbols_indexed: int = 0
    _start_monotonic: float = field(default_factory=time.monotonic)
    _lock: threading.Lock = field(default_factory=threading.Lock, repr=False)

    def record_processed(self) -> None:
        with self._lock:
            self._processed += 1

    def record_success(self, symbols: int = 0) -> None:
        with self._lock:
            self._succeeded += 1
            self._symbols_indexed += symbols

    def record_failure(self) -> None:
        with self._lock:
            self._failed += 1

    def record_skipped(self) -> None:
        with self._lock:
            self._skipped += 1

    def snapshot(self) -> StatsSnapshot:
        """Read all counters under a single lock acquisition."""
        with self._lock:
            return StatsSnapshot(
                processed=self._processed,
                succeeded=self._succeeded,
                failed=self._failed,
                skipped=self._skipped,
                symbols_indexed=self._symbols_indexed,
                started_at=self.started_at,
                elapsed_seconds=time.monotonic() - self._start_monotonic,
            )
