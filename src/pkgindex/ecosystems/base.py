"""
Base class for package ecosystems.

An Ecosystem knows how to turn a VersionRecord into package metadata,
where to download its archive, and how the extracted tree is laid out.
The worker pool is written once against this interface.
"""

from abc import ABC, abstractmethod
from pathlib import Path
from typing import Any

import httpx

from pkgindex.config.settings import ArchiveSettings, HttpSettings
from pkgindex.core.exceptions import CrawlerError, MetadataError
from pkgindex.core.models import ArchiveType, ImportEdge, PackageRecord, VersionRecord
from pkgindex.core.protocols import RecordSource
from pkgindex.crawler.archive import descend_single_dir, detect_archive_type
from pkgindex.crawler.download import download_file, fetch_json
from pkgindex.crawler.filters import ModuleFilter
from pkgindex.utils.licenses import detect_license, is_redistributable
from pkgindex.utils.logging import get_logger

logger = get_logger(__name__)

ARCHIVE_FILENAME = "archive"


class Ecosystem(ABC):
    """
    One package registry.

    Subclasses implement fetch_metadata and may override the layout
    hooks. All network calls go through the shared client.

    Attributes:
        name: Ecosystem identifier used in config and storage
        archive_type: Container format when the registry always serves one
        public_only: Store only public symbols
    """

    name: str = ""
    archive_type: ArchiveType | None = None
    public_only: bool = False

    def __init__(
        self,
        client: httpx.AsyncClient,
        http_settings: HttpSettings | None = None,
        archive_settings: ArchiveSettings | None = None,
        exclude_patterns: list[str] | None = None,
    ) -> None:
        """
        Initialize ecosystem.

        Args:
            client: Shared HTTP client
            http_settings: Endpoints and headers
            archive_settings: Download size limit
            exclude_patterns: Extra regex skip patterns for package paths
        """
        self.client = client
        self.http_settings = http_settings or HttpSettings()
        self.archive_settings = archive_settings or ArchiveSettings()
        self.filter = self.create_filter(exclude_patterns or [])

    def create_filter(self, exclude_patterns: list[str]) -> ModuleFilter:
        return ModuleFilter(patterns_exclude=exclude_patterns)

    def request_headers(self) -> dict[str, str]:
        """Extra headers for registry requests."""
        return {}

    async def get_json(self, url: str, params: dict[str, Any] | None = None) -> Any:
        return await fetch_json(
            self.client, url, headers=self.request_headers(), params=params)

    @abstractmethod
    async def fetch_metadata(self, record: VersionRecord) -> PackageRecord:
        """
        Resolve registry metadata for a version.

        Raises:
            DownloadError: If the registry request fails
            MetadataError: If the document lacks a usable version or archive
        """

    async def download_archive(
        self,
        package: PackageRecord,
        destination_dir: Path,
    ) -> tuple[Path, ArchiveType]:
        """
        Download the package archive into destination_dir.

        Returns:
            Tuple of (archive path, archive type)

        Raises:
            MetadataError: If the package has no archive URL
            DownloadError: If the download fails or is too large
        """
        if not package.archive_url:
            raise MetadataError("No archive URL", package=package.name)

        path = destination_dir / ARCHIVE_FILENAME
        await download_file(
            self.client,
            package.archive_url,
            path,
            max_bytes=self.archive_settings.max_download_size,
            headers=self.request_headers(),
        )
        archive_type = package.archive_type or detect_archive_type(path)
        return path, archive_type

    def source_root(self, extracted: Path) -> Path:
        """Directory holding the package sources inside the extracted tree."""
        return descend_single_dir(extracted)

    def enrich(self, package: PackageRecord, source_root: Path) -> None:
        """Fill in metadata only available from the sources."""
        name, text = detect_license(source_root)
        if not package.license:
            package.license = name
        if not package.license_text:
            package.license_text = text
        package.redistributable = is_redistributable(package.license)

    def extract_imports(self, source_root: Path, package: PackageRecord) -> list[ImportEdge]:
        """Import edges between packages; none unless the ecosystem knows how."""
        return []

    async def search(self, query: str, limit: int = 20) -> list[str]:
        """
        Search the registry for package names.

        Raises:
            CrawlerError: If the registry has no search support here
        """
        raise CrawlerError(f"Search is not supported for {self.name}")

    def default_source(self) -> RecordSource | None:
        """Changelog source used when no package names are given."""
        return None

    def __repr__(self) -> str:
        return f"{self.__class__.__name__}(name={self.name!r})"


def first_str(*values: Any) -> str:
    """First non-empty string among values, else ""."""
    for value in values:
        if isinstance(value, str) and value:
            return value
    return ""
