"""
crates.io Rust crates.
"""

from pathlib import Path

from pkgindex.core.exceptions import MetadataError
from pkgindex.core.models import ArchiveType, PackageRecord, VersionRecord
from pkgindex.crawler.archive import descend_single_dir, prefer_subdir
from pkgindex.ecosystems.base import Ecosystem, first_str
from pkgindex.utils.versions import clean_repo_url


class CratesEcosystem(Ecosystem):
    """
    crates.io crates.

    The API lists versions newest first; yanked versions are never
    crawled unless pinned explicitly.
    """

    name = "crates"
    archive_type = ArchiveType.TAR_GZ

    @property
    def api_url(self) -> str:
        return self.http_settings.crates_api_url.rstrip("/")

    async def fetch_metadata(self, record: VersionRecord) -> PackageRecord:
        doc = await self.get_json(f"{self.api_url}/crates/{record.path}")
        crate = doc.get("crate") if isinstance(doc, dict) else None
        versions = (doc.get("versions") or []) if isinstance(doc, dict) else []
        if not isinstance(crate, dict):
            raise MetadataError("Unexpected crate document", package=record.path)

        if record.version:
            selected = next((v for v in versions if v.get("num") == record.version), None)
        else:
            selected = next((v for v in versions if not v.get("yanked")), None)

        if selected is None:
            raise MetadataError(
                "No usable version",
                package=record.path,
                details={"version": record.version or "latest"},
            )

        name = first_str(crate.get("name"), record.path)
        version = selected["num"]
        return PackageRecord(
            ecosystem=self.name,
            name=name,
            version=version,
            description=first_str(crate.get("description")).strip(),
            license=first_str(selected.get("license")),
            repository_url=clean_repo_url(first_str(crate.get("repository"))),
            homepage=first_str(crate.get("homepage")),
            archive_url=f"{self.api_url}/crates/{name}/{version}/download",
            archive_type=self.archive_type,
        )

    def source_root(self, extracted: Path) -> Path:
        return prefer_subdir(descend_single_dir(extracted), "src")

    async def search(self, query: str, limit: int = 20) -> list[str]:
        doc = await self.get_json(
            f"{self.api_url}/crates", params={"q": query, "per_page": limit})
        return [c["name"] for c in doc.get("crates", []) if c.get("name")]
