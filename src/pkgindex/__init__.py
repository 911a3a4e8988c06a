"""
pkgindex - A concurrent package-ecosystem crawler.

Discovers published package versions, downloads and safely extracts
their archives, extracts symbols from the sources, and stores the
result in a searchable SQLite index.
"""

from pkgindex.config import Settings, load_config
from pkgindex.utils.logging import setup_logging, get_logger
from pkgindex.core.exceptions import PkgIndexError

__version__ = "0.1.0"

__all__ = [
    "Settings",
    "load_config",
    "setup_logging",
    "get_logger",
    "PkgIndexError",
]
