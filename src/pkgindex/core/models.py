"""
Domain models shared by the crawler, ecosystems and storage.

VersionRecord and Symbol are immutable values passed between tasks and
threads. PackageRecord is built up by an ecosystem while a job runs and
handed to the store once complete.
"""

from dataclasses import dataclass, field
from datetime import datetime
from enum import Enum


class ArchiveType(str, Enum):
    """Supported archive container formats."""

    ZIP = "zip"
    TAR_GZ = "tar.gz"


@dataclass(frozen=True)
class VersionRecord:
    """
    One crawlable unit: a package path at a specific version.

    Attributes:
        path: Module path or package name in its ecosystem
        version: Version string; empty means the registry's latest
        published_at: Publication time from the index, when known
    """

    path: str
    version: str = ""
    published_at: datetime | None = None

    def __str__(self) -> str:
        if self.version:
            return f"{self.path}@{self.version}"
        return self.path


@dataclass(frozen=True)
class Symbol:
    """A named declaration found in a package's source."""

    name: str
    kind: str
    signature: str = ""
    file_path: str = ""
    line: int = 0
    is_public: bool = True
    doc: str = ""


@dataclass(frozen=True)
class ImportEdge:
    """Dependency from one import path to another inside a module."""

    importer: str
    imported: str
    module: str = ""


@dataclass
class PackageRecord:
    """
    Ecosystem-normalized package metadata plus its symbols.

    Replaced wholesale on every successful crawl of the same package.
    module_path, go_version, has_valid_mod and go_mod come from go.mod
    and stay empty outside the Go ecosystem.
    """

    ecosystem: str
    name: str
    version: str = ""
    description: str = ""
    license: str = ""
    repository_url: str = ""
    homepage: str = ""
    archive_url: str = ""
    archive_type: ArchiveType | None = None
    is_tagged: bool = False
    is_stable: bool = False
    redistributable: bool = False
    license_text: str = ""
    module_path: str = ""
    go_version: str = ""
    has_valid_mod: bool = False
    go_mod: str = ""
    symbols: list[Symbol] = field(default_factory=list)

    @property
    def public_symbols(self) -> list[Symbol]:
        """Symbols visible to package consumers."""
        return [s for s in self.symbols if s.is_public]

    def to_dict(self) -> dict:
        """Convert package columns to a dictionary for storage."""
        return {
            "ecosystem": self.ecosystem,
            "name": self.name,
            "version": self.version,
            "description": self.description,
            "license": self.license,
            "repository_url": self.repository_url,
            "homepage": self.homepage,
            "is_tagged": int(self.is_tagged),
            "is_stable": int(self.is_stable),
            "redistributable": int(self.redistributable),
            "license_text": self.license_text,
            "module_path": self.module_path,
            "go_version": self.go_version,
            "has_valid_mod": int(self.has_valid_mod),
            "go_mod": self.go_mod,
        }
