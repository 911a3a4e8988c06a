"""
SQLite connection handling for the package index.

Workers persist packages from threads started with asyncio.to_thread, so
every thread gets its own connection to the same file. WAL mode lets the
CLI's status and search commands read while a crawl writes.
"""

import sqlite3
import threading
from contextlib import contextmanager
from pathlib import Path
from typing import Iterator

from pkgindex.config.settings import Settings
from pkgindex.core.exceptions import DatabaseError
from pkgindex.storage.schema import SchemaManager
from pkgindex.utils.logging import get_logger

logger = get_logger(__name__)

BUSY_TIMEOUT_SECONDS = 30.0
PAGE_SIZE = 4096


class Database:
    """
    One SQLite file with a connection per thread.

    Example:
        >>> db = Database.from_settings(settings)
        >>> with db.connection() as conn:
        ...     conn.execute("DELETE FROM imports WHERE module = ?", (module,))
        >>> db.fetch_one("SELECT COUNT(*) AS n FROM packages")
        {'n': 42}
    """

    def __init__(
        self,
        database_path: Path,
        wal_mode: bool = True,
        cache_size_mb: int = 64,
    ) -> None:
        self.database_path = Path(database_path)
        self.wal_mode = wal_mode
        self.cache_size_mb = cache_size_mb

        self._local = threading.local()
        self._open: list[sqlite3.Connection] = []
        self._open_lock = threading.Lock()
        self._ready = False

    @classmethod
    def from_settings(cls, settings: Settings) -> "Database":
        """Open the configured database and make sure the schema exists."""
        db = cls(
            settings.storage.database_path,
            wal_mode=settings.storage.wal_mode,
            cache_size_mb=settings.storage.cache_size_mb,
        )
        db.setup()
        return db

    def setup(self) -> None:
        """
        Create the database file and apply the schema.

        Raises:
            DatabaseError: If the directory cannot be created or the schema fails
        """
        try:
            self.database_path.parent.mkdir(parents=True, exist_ok=True)
        except OSError as e:
            raise DatabaseError(
                f"Cannot create database directory: {e}",
                details={"path": str(self.database_path)},
            ) from e

        try:
            SchemaManager(self._thread_connection()).initialize()
        except sqlite3.Error as e:
            raise DatabaseError(f"Schema initialization failed: {e}") from e

        self._ready = True
        logger.debug(f"Index database ready at {self.database_path}")

    def _thread_connection(self) -> sqlite3.Connection:
        conn = getattr(self._local, "conn", None)
        if conn is None:
            conn = self._connect()
            self._local.conn = conn
            with self._open_lock:
                self._open.append(conn)
        return conn

    def _connect(self) -> sqlite3.Connection:
        try:
            conn = sqlite3.connect(
                str(self.database_path),
                timeout=BUSY_TIMEOUT_SECONDS,
                check_same_thread=False,
            )
            conn.row_factory = sqlite3.Row
            journal = "WAL" if self.wal_mode else "DELETE"
            conn.executescript(
                f"""
                PRAGMA journal_mode = {journal};
                PRAGMA synchronous = NORMAL;
                PRAGMA foreign_keys = ON;
                PRAGMA cache_size = -{self.cache_size_mb * 1024 * 1024 // PAGE_SIZE};
                """
            )
        except sqlite3.Error as e:
            raise DatabaseError(
                f"Cannot open database: {e}",
                details={"path": str(self.database_path)},
            ) from e
        logger.debug(f"Opened connection in thread {threading.current_thread().name}")
        return conn

    @contextmanager
    def connection(self) -> Iterator[sqlite3.Connection]:
        """
        This thread's connection as a transaction.

        Commits when the block exits normally and rolls back otherwise.
        sqlite3 errors surface as DatabaseError.
        """
        conn = self._thread_connection()
        try:
            yield conn
        except sqlite3.Error as e:
            conn.rollback()
            raise DatabaseError(f"Database operation failed: {e}") from e
        except BaseException:
            conn.rollback()
            raise
        else:
            conn.commit()

    def _query(self, sql: str, params: tuple) -> sqlite3.Cursor:
        try:
            return self._thread_connection().execute(sql, params)
        except sqlite3.Error as e:
            raise DatabaseError(f"Query failed: {e}", query=sql) from e

    def fetch_one(self, sql: str, params: tuple = ()) -> dict | None:
        row = self._query(sql, params).fetchone()
        return dict(row) if row is not None else None

    def fetch_all(self, sql: str, params: tuple = ()) -> list[dict]:
        return [dict(row) for row in self._query(sql, params).fetchall()]

    def close(self) -> None:
        """Close the connections of every thread."""
        with self._open_lock:
            connections, self._open = self._open, []
        for conn in connections:
            try:
                conn.close()
            except sqlite3.Error as e:
                logger.warning(f"Error closing connection: {e}")
        self._local = threading.local()

    @property
    def size_bytes(self) -> int:
        try:
            return self.database_path.stat().st_size
        except FileNotFoundError:
            return 0

    def __repr__(self) -> str:
        state = "ready" if self._ready else "not set up"
        return f"Database({str(self.database_path)!r}, {state})"
