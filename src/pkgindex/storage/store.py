"""
SQLite implementation of the PackageStore interface.

Called from worker threads; writes are serialized with a lock and each
thread reads through its own connection.
"""

import threading
from datetime import datetime, timezone

from pkgindex.config.settings import Settings
from pkgindex.core.exceptions import DatabaseError
from pkgindex.core.models import PackageRecord, Symbol
from pkgindex.storage.database import Database
from pkgindex.utils.logging import get_logger
from pkgindex.utils.versions import is_deprecated

logger = get_logger(__name__)

LAST_CRAWL_TIME_KEY = "last_crawl_time"

_PACKAGE_COLUMNS = (
    "ecosystem", "name", "version", "description", "license",
    "repository_url", "homepage", "is_tagged", "is_stable", "redistributable",
    "license_text", "module_path", "go_version", "has_valid_mod", "go_mod",
)


class SqliteStore:
    """
    Package, symbol and import storage.

    Example:
        >>> store = SqliteStore.from_settings(settings)
        >>> package_id = store.upsert_package(record)
        >>> store.delete_package_symbols(package_id)
        >>> for symbol in record.symbols:
        ...     store.upsert_symbol(package_id, symbol)
    """

    def __init__(self, database: Database) -> None:
        self.db = database
        self._write_lock = threading.Lock()

    @classmethod
    def from_settings(cls, settings: Settings) -> "SqliteStore":
        return cls(Database.from_settings(settings))

    # =========================================================================
    # Writes
    # =========================================================================

    def upsert_package(self, record: PackageRecord) -> int:
        """
        Insert or update a package keyed by (ecosystem, name).

        Returns:
            Package ID, stable across re-crawls
        """
        data = record.to_dict()
        columns = ", ".join(_PACKAGE_COLUMNS)
        placeholders = ", ".join("?" * len(_PACKAGE_COLUMNS))
        updates = ", ".join(
            f"{c} = excluded.{c}" for c in _PACKAGE_COLUMNS if c not in ("ecosystem", "name")
        )
        sql = (
            f"INSERT INTO packages ({columns}) VALUES ({placeholders}) "
            f"ON CONFLICT(ecosystem, name) DO UPDATE SET {updates}, "
            f"indexed_at = CURRENT_TIMESTAMP"
        )

        with self._write_lock, self.db.connection() as conn:
            conn.execute(sql, tuple(data[c] for c in _PACKAGE_COLUMNS))
            row = conn.execute(
                "SELECT id FROM packages WHERE ecosystem = ? AND name = ?",
                (record.ecosystem, record.name),
            ).fetchone()

        if row is None:
            raise DatabaseError("Package row missing after upsert", query=sql)
        return row["id"]

    def delete_package_symbols(self, package_id: int) -> None:
        with self._write_lock, self.db.connection() as conn:
            conn.execute("DELETE FROM symbols WHERE package_id = ?", (package_id,))

    def upsert_symbol(self, package_id: int, symbol: Symbol) -> None:
        with self._write_lock, self.db.connection() as conn:
            conn.execute(
                """
                INSERT INTO symbols
                    (package_id, name, kind, signature, file_path, line,
                     is_public, deprecated, doc)
                VALUES (?, ?, ?, ?, ?, ?, ?, ?, ?)
                """,
                (
                    package_id,
                    symbol.name,
                    symbol.kind,
                    symbol.signature,
                    symbol.file_path,
                    symbol.line,
                    int(symbol.is_public),
                    int(is_deprecated(symbol.doc)),
                    symbol.doc,
                ),
            )

    def delete_module_imports(self, module: str) -> None:
        """Drop the import edges recorded for module, before a re-crawl stores its new ones."""
        with self._write_lock, self.db.connection() as conn:
            conn.execute("DELETE FROM imports WHERE module = ?", (module,))

    def add_import(self, importer: str, imported: str, module: str) -> None:
        with self._write_lock, self.db.connection() as conn:
            conn.execute(
                """
                INSERT INTO imports (importer, imported, module) VALUES (?, ?, ?)
                ON CONFLICT(importer, imported) DO UPDATE SET module = excluded.module
                """,
                (importer, imported, module),
            )

    # =========================================================================
    # Crawl metadata
    # =========================================================================

    def get_last_crawl_time(self) -> datetime | None:
        """Watermark of the last completed crawl, or None for a full crawl."""
        row = self.db.fetch_one(
            "SELECT value FROM crawl_metadata WHERE key = ?", (LAST_CRAWL_TIME_KEY,))
        if row is None:
            return None
        try:
            value = datetime.fromisoformat(row["value"].replace("Z", "+00:00"))
        except ValueError:
            logger.warning(f"Ignoring invalid {LAST_CRAWL_TIME_KEY}: {row['value']!r}")
            return None
        if value.tzinfo is None:
            value = value.replace(tzinfo=timezone.utc)
        return value

    def set_last_crawl_time(self, when: datetime) -> None:
        if when.tzinfo is None:
            when = when.replace(tzinfo=timezone.utc)
        value = when.astimezone(timezone.utc).isoformat()
        with self._write_lock, self.db.connection() as conn:
            conn.execute(
                """
                INSERT INTO crawl_metadata (key, value) VALUES (?, ?)
                ON CONFLICT(key) DO UPDATE SET
                    value = excluded.value, updated_at = CURRENT_TIMESTAMP
                """,
                (LAST_CRAWL_TIME_KEY, value),
            )
        logger.debug(f"Set {LAST_CRAWL_TIME_KEY} = {value}")

    # =========================================================================
    # Queries
    # =========================================================================

    def get_package(self, ecosystem: str, name: str) -> dict | None:
        return self.db.fetch_one(
            "SELECT * FROM packages WHERE ecosystem = ? AND name = ?",
            (ecosystem, name),
        )

    def get_symbols(self, package_id: int) -> list[dict]:
        return self.db.fetch_all(
            "SELECT * FROM symbols WHERE package_id = ? ORDER BY file_path, line, name",
            (package_id,),
        )

    def get_imports(self, module: str) -> list[dict]:
        return self.db.fetch_all(
            "SELECT importer, imported, module FROM imports WHERE module = ? "
            "ORDER BY importer, imported",
            (module,),
        )

    def search_symbols(
        self,
        query: str,
        limit: int = 20,
        ecosystem: str | None = None,
    ) -> list[dict]:
        """
        Find public symbols whose name contains query.

        Returns:
            Rows with symbol columns plus package, version and ecosystem
        """
        sql = """
            SELECT s.name, s.kind, s.signature, s.file_path, s.line,
                   s.deprecated, s.doc,
                   p.name AS package, p.version, p.ecosystem
            FROM symbols s
            JOIN packages p ON p.id = s.package_id
            WHERE s.is_public = 1 AND s.name LIKE ? ESCAPE '\\'
        """
        escaped = query.replace("\\", "\\\\").replace("%", "\\%").replace("_", "\\_")
        params: list = [f"%{escaped}%"]
        if ecosystem:
            sql += " AND p.ecosystem = ?"
            params.append(ecosystem)
        sql += " ORDER BY length(s.name), s.name LIMIT ?"
        params.append(limit)
        return self.db.fetch_all(sql, tuple(params))

    def count_packages(self, ecosystem: str | None = None) -> int:
        if ecosystem:
            row = self.db.fetch_one(
                "SELECT COUNT(*) AS n FROM packages WHERE ecosystem = ?", (ecosystem,))
        else:
            row = self.db.fetch_one("SELECT COUNT(*) AS n FROM packages")
        return row["n"] if row else 0

    def count_symbols(self) -> int:
        row = self.db.fetch_one("SELECT COUNT(*) AS n FROM symbols")
        return row["n"] if row else 0

    def close(self) -> None:
        self.db.close()

    def __repr__(self) -> str:
        return f"SqliteStore(db={self.db!r})"
