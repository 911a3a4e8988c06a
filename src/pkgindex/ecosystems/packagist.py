"""
Packagist PHP packages.
"""

from pathlib import Path

from pkgindex.core.exceptions import MetadataError
from pkgindex.core.models import ArchiveType, PackageRecord, VersionRecord
from pkgindex.crawler.archive import descend_single_dir, prefer_subdir
from pkgindex.ecosystems.base import Ecosystem, first_str
from pkgindex.utils.versions import clean_repo_url


def select_version(versions: list[dict], pinned: str = "") -> dict:
    """
    Choose the version to crawl from newest-first metadata.

    A pinned version matches with or without a leading "v". Otherwise the
    first non-dev version wins, falling back to the newest entry.
    """
    if pinned:
        wanted = pinned.removeprefix("v")
        for version in versions:
            if version.get("version", "").removeprefix("v") == wanted:
                return version
        raise MetadataError("Pinned version not found", details={"version": pinned})

    for version in versions:
        if "dev" not in version.get("version", ""):
            return version
    return versions[0]


class PackagistEcosystem(Ecosystem):
    """Packagist packages named "vendor/package"."""

    name = "packagist"
    archive_type = ArchiveType.ZIP

    def request_headers(self) -> dict[str, str]:
        return {"Accept": "application/json"}

    async def fetch_metadata(self, record: VersionRecord) -> PackageRecord:
        base = self.http_settings.packagist_url.rstrip("/")
        doc = await self.get_json(f"{base}/p2/{record.path}.json")
        versions = (doc.get("packages") or {}).get(record.path) if isinstance(doc, dict) else None
        if not versions:
            raise MetadataError("No versions found", package=record.path)

        selected = select_version(versions, record.version)
        # Only the first entry carries the name
        name = first_str(selected.get("name"), record.path)

        dist_url = (selected.get("dist") or {}).get("url", "")
        if not dist_url:
            raise MetadataError("No distribution URL", package=name)

        licenses = selected.get("license") or []
        return PackageRecord(
            ecosystem=self.name,
            name=name,
            version=selected.get("version", ""),
            description=first_str(selected.get("description")),
            license=first_str(*licenses) if isinstance(licenses, list) else first_str(licenses),
            repository_url=clean_repo_url(first_str((selected.get("source") or {}).get("url"))),
            homepage=first_str(selected.get("homepage")),
            archive_url=dist_url,
            archive_type=self.archive_type,
        )

    def source_root(self, extracted: Path) -> Path:
        return prefer_subdir(descend_single_dir(extracted), "src")
