"""
Configuration module for the package index crawler.

Provides Pydantic-based settings management with YAML file support
and environment variable overrides.
"""

from pkgindex.config.settings import (
    Settings,
    CrawlerSettings,
    HttpSettings,
    ArchiveSettings,
    StorageSettings,
    LoggingSettings,
)
from pkgindex.config.loader import (
    load_config,
    get_settings,
    reset_settings,
    get_default_config_path,
)

__all__ = [
    "Settings",
    "CrawlerSettings",
    "HttpSettings",
    "ArchiveSettings",
    "StorageSettings",
    "LoggingSettings",
    "load_config",
    "get_settings",
    "reset_settings",
    "get_default_config_path",
]
