"""
Storage module for the package index crawler.

SQLite persistence for packages, symbols, imports and crawl metadata.
"""

from pkgindex.storage.database import Database
from pkgindex.storage.schema import SchemaManager, SCHEMA_VERSION
from pkgindex.storage.store import SqliteStore, LAST_CRAWL_TIME_KEY

__all__ = [
    "Database",
    "SchemaManager",
    "SCHEMA_VERSION",
    "SqliteStore",
    "LAST_CRAWL_TIME_KEY",
]
