"""
npm registry packages.
"""

from urllib.parse import quote

from pkgindex.core.exceptions import MetadataError
from pkgindex.core.models import ArchiveType, PackageRecord, VersionRecord
from pkgindex.ecosystems.base import Ecosystem, first_str
from pkgindex.utils.versions import clean_repo_url


def _license_name(value) -> str:
    if isinstance(value, dict):
        return first_str(value.get("type"))
    if isinstance(value, list) and value:
        return _license_name(value[0])
    return first_str(value)


def _repository_url(value) -> str:
    if isinstance(value, dict):
        return clean_repo_url(first_str(value.get("url")))
    return clean_repo_url(first_str(value))


class NpmEcosystem(Ecosystem):
    """npm packages; tarballs unpack into a "package/" directory."""

    name = "npm"
    archive_type = ArchiveType.TAR_GZ

    async def fetch_metadata(self, record: VersionRecord) -> PackageRecord:
        registry = self.http_settings.npm_registry_url.rstrip("/")
        doc = await self.get_json(f"{registry}/{quote(record.path, safe='@')}")
        if not isinstance(doc, dict):
            raise MetadataError("Unexpected registry document", package=record.path)

        version = record.version or (doc.get("dist-tags") or {}).get("latest", "")
        info = (doc.get("versions") or {}).get(version)
        if not version or not isinstance(info, dict):
            raise MetadataError(
                "Version not found in registry",
                package=record.path,
                details={"version": version},
            )

        tarball = (info.get("dist") or {}).get("tarball", "")
        if not tarball:
            raise MetadataError("No tarball listed", package=record.path)

        return PackageRecord(
            ecosystem=self.name,
            name=first_str(info.get("name"), record.path),
            version=version,
            description=first_str(info.get("description"), doc.get("description")),
            license=_license_name(info.get("license")),
            repository_url=_repository_url(info.get("repository")),
            homepage=first_str(info.get("homepage")),
            archive_url=tarball,
            archive_type=self.archive_type,
        )

    async def search(self, query: str, limit: int = 20) -> list[str]:
        doc = await self.get_json(
            self.http_settings.npm_search_url, params={"text": query, "size": limit})
        return [
            obj["package"]["name"]
            for obj in doc.get("objects", [])
            if obj.get("package", {}).get("name")
        ]
