"""
Interfaces of the crawler's external collaborators.

The crawler only talks to symbol extractors and storage through these
protocols, so alternative implementations can be plugged in without
touching the worker pool.
"""

from datetime import datetime
from pathlib import Path
from typing import AsyncIterator, Protocol, runtime_checkable

from pkgindex.core.models import PackageRecord, Symbol, VersionRecord


@runtime_checkable
class SymbolExtractor(Protocol):
    """
    Converts source files into Symbol lists.

    parse_directory must tolerate individual file failures by skipping
    the file and continuing.
    """

    def parse_file(self, path: Path) -> list[Symbol]:
        ...

    def parse_directory(self, path: Path) -> list[Symbol]:
        ...


@runtime_checkable
class PackageStore(Protocol):
    """
    Persistence for packages, symbols, imports and crawl metadata.

    Implementations must be safe to call from several worker threads.
    """

    def upsert_package(self, record: PackageRecord) -> int:
        ...

    def delete_package_symbols(self, package_id: int) -> None:
        ...

    def upsert_symbol(self, package_id: int, symbol: Symbol) -> None:
        ...

    def delete_module_imports(self, module: str) -> None:
        ...

    def add_import(self, importer: str, imported: str, module: str) -> None:
        ...

    def get_last_crawl_time(self) -> datetime | None:
        ...

    def set_last_crawl_time(self, when: datetime) -> None:
        ...


class RecordSource(Protocol):
    """Produces VersionRecords for one crawl run."""

    def records(self, since: datetime | None = None) -> AsyncIterator[VersionRecord]:
        ...
