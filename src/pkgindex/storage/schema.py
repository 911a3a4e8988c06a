"""
Index database schema.

Each entry in MIGRATIONS brings the schema from the previous version to
its key; a fresh database runs all of them in order.
"""

import sqlite3

from pkgindex.utils.logging import get_logger

logger = get_logger(__name__)

_V1 = """
-- One row per (ecosystem, name); a re-crawl overwrites the version fields
CREATE TABLE IF NOT EXISTS packages (
    id INTEGER PRIMARY KEY AUTOINCREMENT,
    ecosystem TEXT NOT NULL,
    name TEXT NOT NULL,
    version TEXT DEFAULT '',
    description TEXT DEFAULT '',
    license TEXT DEFAULT '',
    repository_url TEXT DEFAULT '',
    homepage TEXT DEFAULT '',
    is_tagged INTEGER DEFAULT 0,
    is_stable INTEGER DEFAULT 0,
    redistributable INTEGER DEFAULT 0,
    indexed_at TEXT DEFAULT CURRENT_TIMESTAMP,
    UNIQUE(ecosystem, name)
);
CREATE INDEX IF NOT EXISTS idx_packages_name ON packages(name);

CREATE TABLE IF NOT EXISTS symbols (
    id INTEGER PRIMARY KEY AUTOINCREMENT,
    package_id INTEGER NOT NULL REFERENCES packages(id) ON DELETE CASCADE,
    name TEXT NOT NULL,
    kind TEXT NOT NULL,
    signature TEXT DEFAULT '',
    file_path TEXT DEFAULT '',
    line INTEGER DEFAULT 0,
    is_public INTEGER DEFAULT 1,
    deprecated INTEGER DEFAULT 0,
    doc TEXT DEFAULT ''
);
CREATE INDEX IF NOT EXISTS idx_symbols_package_id ON symbols(package_id);
CREATE INDEX IF NOT EXISTS idx_symbols_name ON symbols(name);

-- Package-level import graph; importer and imported are import paths
CREATE TABLE IF NOT EXISTS imports (
    id INTEGER PRIMARY KEY AUTOINCREMENT,
    importer TEXT NOT NULL,
    imported TEXT NOT NULL,
    module TEXT DEFAULT '',
    UNIQUE(importer, imported)
);
CREATE INDEX IF NOT EXISTS idx_imports_imported ON imports(imported);

CREATE TABLE IF NOT EXISTS crawl_metadata (
    key TEXT PRIMARY KEY,
    value TEXT NOT NULL,
    updated_at TEXT DEFAULT CURRENT_TIMESTAMP
);
"""

# Source-derived package metadata: license text and the go.mod facts
_V2 = """
ALTER TABLE packages ADD COLUMN license_text TEXT DEFAULT '';
ALTER TABLE packages ADD COLUMN module_path TEXT DEFAULT '';
ALTER TABLE packages ADD COLUMN go_version TEXT DEFAULT '';
ALTER TABLE packages ADD COLUMN has_valid_mod INTEGER DEFAULT 0;
ALTER TABLE packages ADD COLUMN go_mod TEXT DEFAULT '';
"""

MIGRATIONS: dict[int, str] = {
    1: _V1,
    2: _V2,
}

SCHEMA_VERSION = max(MIGRATIONS)


class SchemaManager:
    """
    Applies pending migrations to one connection.

    Example:
        >>> SchemaManager(conn).initialize()
    """

    def __init__(self, connection: sqlite3.Connection) -> None:
        self.conn = connection

    def _ensure_version_table(self) -> None:
        self.conn.execute(
            """
            CREATE TABLE IF NOT EXISTS schema_version (
                version INTEGER PRIMARY KEY,
                applied_at TEXT DEFAULT CURRENT_TIMESTAMP
            )
            """
        )

    def get_version(self) -> int:
        self._ensure_version_table()
        return self.conn.execute("SELECT MAX(version) FROM schema_version").fetchone()[0] or 0

    def needs_migration(self) -> bool:
        return self.get_version() < SCHEMA_VERSION

    def initialize(self) -> None:
        """Bring the schema up to SCHEMA_VERSION; a current schema is left untouched."""
        current = self.get_version()
        if current >= SCHEMA_VERSION:
            logger.debug(f"Schema is at version {current}")
            return

        for version in sorted(v for v in MIGRATIONS if v > current):
            # executescript commits first, so each version applies on its own
            self.conn.executescript(MIGRATIONS[version])
            self.conn.execute("INSERT INTO schema_version (version) VALUES (?)", (version,))
            self.conn.commit()
            logger.info(f"Applied schema version {version}")
