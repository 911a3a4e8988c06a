"""
PyPI Python distributions.
"""

from pathlib import Path

from pkgindex.core.exceptions import MetadataError
from pkgindex.core.models import ArchiveType, PackageRecord, VersionRecord
from pkgindex.crawler.archive import descend_single_dir, prefer_subdir
from pkgindex.ecosystems.base import Ecosystem, first_str
from pkgindex.utils.licenses import clean_pypi_license

_REPOSITORY_KEYS = ("repository", "source", "github", "gitlab")


def select_sdist(urls: list[dict]) -> dict | None:
    """
    Pick the source distribution among a release's files.

    Prefers the declared sdist, then any .tar.gz, then any .zip.
    """
    for entry in urls:
        if entry.get("packagetype") == "sdist":
            return entry
    for suffix in (".tar.gz", ".zip"):
        for entry in urls:
            if entry.get("filename", "").endswith(suffix):
                return entry
    return None


def repository_from_project_urls(project_urls: dict | None) -> str:
    for key, url in (project_urls or {}).items():
        if any(k in key.lower() for k in _REPOSITORY_KEYS):
            return url
    return ""


class PyPIEcosystem(Ecosystem):
    """
    PyPI projects, crawled from their source distribution.

    Only public symbols are stored.
    """

    name = "pypi"
    public_only = True

    async def fetch_metadata(self, record: VersionRecord) -> PackageRecord:
        base = self.http_settings.pypi_url.rstrip("/")
        if record.version:
            url = f"{base}/{record.path}/{record.version}/json"
        else:
            url = f"{base}/{record.path}/json"

        doc = await self.get_json(url)
        info = doc.get("info") if isinstance(doc, dict) else None
        if not isinstance(info, dict):
            raise MetadataError("Unexpected PyPI document", package=record.path)

        sdist = select_sdist(doc.get("urls") or [])
        if sdist is None or not sdist.get("url"):
            raise MetadataError("No source distribution", package=record.path)

        filename = sdist.get("filename", "")
        archive_type = ArchiveType.ZIP if filename.endswith(".zip") else ArchiveType.TAR_GZ
        project_urls = info.get("project_urls") or {}

        return PackageRecord(
            ecosystem=self.name,
            name=first_str(info.get("name"), record.path),
            version=first_str(info.get("version"), record.version),
            description=first_str(info.get("summary")),
            license=clean_pypi_license(info.get("license"), info.get("classifiers")),
            repository_url=repository_from_project_urls(project_urls),
            homepage=first_str(info.get("home_page"), project_urls.get("Homepage")),
            archive_url=sdist["url"],
            archive_type=archive_type,
        )

    def source_root(self, extracted: Path) -> Path:
        return prefer_subdir(descend_single_dir(extracted), "src")
