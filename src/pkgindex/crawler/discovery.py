"""
Version discovery for crawl runs.

Sources produce VersionRecords lazily; Discovery filters them and feeds
the bounded job queue, closing it when done so workers can drain.
"""

import json
import re
from contextlib import aclosing
from dataclasses import dataclass
from datetime import datetime, timezone
from typing import TYPE_CHECKING, AsyncIterator, Iterable

import httpx

from pkgindex.core.exceptions import DiscoveryError, IndexInterruptedError, PkgIndexError
from pkgindex.core.models import VersionRecord
from pkgindex.core.protocols import RecordSource
from pkgindex.crawler.filters import ModuleFilter
from pkgindex.crawler.queue import JobQueue
from pkgindex.crawler.stats import CrawlStats
from pkgindex.utils.logging import get_logger

if TYPE_CHECKING:
    from pkgindex.ecosystems.base import Ecosystem

logger = get_logger(__name__)

_FRACTION_RE = re.compile(r"(\.\d{6})\d+")


def format_rfc3339(when: datetime) -> str:
    """Format a timestamp as RFC3339 in UTC, e.g. 2024-01-02T03:04:05Z."""
    if when.tzinfo is None:
        when = when.replace(tzinfo=timezone.utc)
    return when.astimezone(timezone.utc).strftime("%Y-%m-%dT%H:%M:%SZ")


def parse_rfc3339(value: str) -> datetime:
    """
    Parse an RFC3339 timestamp.

    Fractional seconds beyond microseconds are truncated.

    Raises:
        ValueError: If value is not a valid timestamp
    """
    value = _FRACTION_RE.sub(r"\1", value.strip())
    if value.endswith(("Z", "z")):
        value = value[:-1] + "+00:00"
    parsed = datetime.fromisoformat(value)
    if parsed.tzinfo is None:
        parsed = parsed.replace(tzinfo=timezone.utc)
    return parsed


def parse_index_line(line: str) -> VersionRecord | None:
    """
    Decode one changelog line.

    Returns:
        The record, or None for blank or malformed lines
    """
    line = line.strip()
    if not line:
        return None

    try:
        data = json.loads(line)
        path = data["Path"]
        version = data["Version"]
        timestamp = data.get("Timestamp")
        published_at = parse_rfc3339(timestamp) if timestamp else None
    except (ValueError, KeyError, TypeError, AttributeError) as e:
        logger.warning(f"Skipping malformed index line: {e} ({line[:120]!r})")
        return None

    if not isinstance(path, str) or not isinstance(version, str) or not path:
        logger.warning(f"Skipping malformed index line: {line[:120]!r}")
        return None

    return VersionRecord(path=path, version=version, published_at=published_at)


class IndexStream:
    """
    Line-delimited JSON changelog of published versions.

    Each line is an object with Path, Version and Timestamp keys. Only
    the initial request can fail the run. A stream interrupted later
    raises IndexInterruptedError, which Discovery treats as an early end
    that keeps what was already read.

    Example:
        >>> stream = IndexStream(client, "https://index.golang.org/index")
        >>> async for record in stream.records(since=last_crawl):
        ...     print(record.path, record.version)
    """

    def __init__(self, client: httpx.AsyncClient, index_url: str) -> None:
        self.client = client
        self.index_url = index_url

    async def records(self, since: datetime | None = None) -> AsyncIterator[VersionRecord]:
        """
        Stream version records newer than since.

        Raises:
            DiscoveryError: If the index cannot be reached or answers non-2xx
        """
        params = {}
        if since is not None:
            params["since"] = format_rfc3339(since)

        logger.info(
            f"Fetching index {self.index_url}"
            + (f" since {params['since']}" if params else " (full crawl)")
        )

        try:
            async with self.client.stream("GET", self.index_url, params=params) as response:
                if not response.is_success:
                    raise DiscoveryError(
                        f"Index returned HTTP {response.status_code}",
                        url=self.index_url,
                        status_code=response.status_code,
                    )

                lines = response.aiter_lines()
                while True:
                    try:
                        line = await anext(lines)
                    except StopAsyncIteration:
                        break
                    except httpx.HTTPError as e:
                        raise IndexInterruptedError(
                            f"Index stream interrupted: {e}", details={"url": self.index_url}) from e

                    record = parse_index_line(line)
                    if record is not None:
                        yield record

        except httpx.HTTPError as e:
            raise DiscoveryError(
                f"Cannot reach index: {e}", url=self.index_url) from e


class NameListSource:
    """
    Fixed list of package names, for registries without a changelog.

    Entries may pin a version as "name@version"; otherwise the registry's
    latest version is crawled. The since watermark does not apply.
    """

    def __init__(self, names: Iterable[str]) -> None:
        self.names = [n.strip() for n in names if n.strip()]

    @staticmethod
    def parse_name(entry: str) -> VersionRecord:
        # Scoped npm names start with "@", so only a later "@" pins a version
        at = entry.rfind("@")
        if at > 0:
            return VersionRecord(path=entry[:at], version=entry[at + 1:])
        return VersionRecord(path=entry)

    async def records(self, since: datetime | None = None) -> AsyncIterator[VersionRecord]:
        for entry in self.names:
            yield self.parse_name(entry)


class SearchSource:
    """Package names returned by an ecosystem's registry search."""

    def __init__(self, ecosystem: "Ecosystem", query: str, limit: int = 20) -> None:
        self.ecosystem = ecosystem
        self.query = query
        self.limit = limit

    async def records(self, since: datetime | None = None) -> AsyncIterator[VersionRecord]:
        """
        Raises:
            DiscoveryError: If the search request fails
        """
        try:
            names = await self.ecosystem.search(self.query, self.limit)
        except PkgIndexError as e:
            raise DiscoveryError(
                f"Search failed: {e.message}", details=e.details) from e

        logger.info(
            f"Search {self.query!r} on {self.ecosystem.name} found {len(names)} packages")
        for name in names:
            yield VersionRecord(path=name)


@dataclass
class DiscoveryOutcome:
    """
    What one discovery pass covered.

    exhausted is False when the pass stopped before the end of the source,
    at the max_modules cap or because the index stream broke off.
    last_published is the newest publish time among enqueued records.
    """

    enqueued: int = 0
    exhausted: bool = True
    last_published: datetime | None = None


class Discovery:
    """
    Feeds filtered records from a source into the job queue.

    Skipped records are counted in stats but never enqueued. The queue is
    closed on every exit path, including cancellation and errors.
    """

    def __init__(
        self,
        source: RecordSource,
        module_filter: ModuleFilter,
        stats: CrawlStats,
        max_modules: int = 0,
    ) -> None:
        """
        Initialize discovery.

        Args:
            source: Producer of version records
            module_filter: Skip rules applied before enqueueing
            stats: Run statistics receiving skip counts
            max_modules: Stop after this many enqueued records (0 = unlimited)
        """
        self.source = source
        self.module_filter = module_filter
        self.stats = stats
        self.max_modules = max_modules

    async def feed(self, queue: JobQueue, since: datetime | None = None) -> DiscoveryOutcome:
        """
        Run discovery to completion.

        Returns:
            Enqueued count, whether the source was read to its end, and
            the newest publish time enqueued

        Raises:
            DiscoveryError: If the source fails fatally
        """
        outcome = DiscoveryOutcome()
        try:
            async with aclosing(self.source.records(since)) as records:
                async for record in records:
                    if not self.module_filter.is_allowed(record.path):
                        self.stats.record_skipped()
                        continue

                    await queue.put(record)
                    outcome.enqueued += 1
                    if record.published_at is not None and (
                        outcome.last_published is None
                        or record.published_at > outcome.last_published
                    ):
                        outcome.last_published = record.published_at

                    if self.max_modules and outcome.enqueued >= self.max_modules:
                        logger.info(f"Reached max modules limit: {self.max_modules}")
                        outcome.exhausted = False
                        break
        except IndexInterruptedError as e:
            logger.error(f"{e}; keeping {outcome.enqueued} versions read so far")
            outcome.exhausted = False
        finally:
            queue.close()

        logger.info(f"Discovery finished: {outcome.enqueued} versions enqueued")
        return outcome
