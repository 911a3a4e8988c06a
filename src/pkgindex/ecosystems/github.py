"""
GitHub repositories, crawled from the default branch zipball.
"""

import os

from pkgindex.core.exceptions import MetadataError
from pkgindex.core.models import ArchiveType, PackageRecord, VersionRecord
from pkgindex.ecosystems.base import Ecosystem, first_str


class GitHubEcosystem(Ecosystem):
    """
    GitHub repositories named "owner/repo".

    A token from the configured environment variable raises the API
    rate limit but is optional.
    """

    name = "github"
    archive_type = ArchiveType.ZIP

    @property
    def api_url(self) -> str:
        return self.http_settings.github_api_url.rstrip("/")

    def request_headers(self) -> dict[str, str]:
        headers = {"Accept": "application/vnd.github.v3+json"}
        token = os.environ.get(self.http_settings.github_token_env_var)
        if token:
            headers["Authorization"] = f"token {token}"
        return headers

    async def fetch_metadata(self, record: VersionRecord) -> PackageRecord:
        parts = record.path.split("/")
        if len(parts) != 2 or not all(parts):
            raise MetadataError("Repository must be owner/repo", package=record.path)
        owner, repo = parts

        doc = await self.get_json(f"{self.api_url}/repos/{owner}/{repo}")
        if not isinstance(doc, dict):
            raise MetadataError("Unexpected repository document", package=record.path)

        ref = record.version or first_str(doc.get("default_branch"), "main")
        license_info = doc.get("license") or {}

        return PackageRecord(
            ecosystem=self.name,
            name=first_str(doc.get("full_name"), record.path),
            version=ref,
            description=first_str(doc.get("description")),
            license=first_str(license_info.get("name")),
            repository_url=first_str(doc.get("html_url")),
            homepage=first_str(doc.get("homepage")),
            archive_url=f"{self.api_url}/repos/{owner}/{repo}/zipball/{ref}",
            archive_type=self.archive_type,
        )

    async def search(self, query: str, limit: int = 20) -> list[str]:
        doc = await self.get_json(
            f"{self.api_url}/search/repositories",
            params={"q": query, "sort": "stars", "order": "desc", "per_page": limit},
        )
        return [item["full_name"] for item in doc.get("items", []) if item.get("full_name")]
