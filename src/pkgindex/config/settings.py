"""
Pydantic settings models for the package index crawler.

All configuration is defined here with defaults matching the public
registries' documented endpoints and polite crawl rates.
"""

from pathlib import Path
from typing import Literal

from pydantic import BaseModel, Field, field_validator

EcosystemName = Literal["go", "npm", "crates", "pypi", "packagist", "github"]


class CrawlerSettings(BaseModel):
    """Crawl run configuration."""

    ecosystem: EcosystemName = Field(
        default="go",
        description="Registry to crawl",
    )
    workers: int = Field(
        default=4,
        ge=1,
        le=64,
        description="Number of concurrent workers",
    )
    rate_limit_seconds: float = Field(
        default=0.1,
        ge=0.0,
        le=60.0,
        description="Token refill interval of each worker's rate limiter. 0 disables limiting.",
    )
    max_tokens: int = Field(
        default=1,
        ge=1,
        le=100,
        description="Burst capacity of each worker's rate limiter",
    )
    max_modules: int = Field(
        default=0,
        ge=0,
        description="Maximum versions to enqueue per run. 0 means unlimited.",
    )
    queue_size: int = Field(
        default=100,
        ge=1,
        le=10000,
        description="Capacity of the queue between discovery and workers",
    )
    temp_dir: Path | None = Field(
        default=None,
        description="Root for per-job temp directories. None uses the system default.",
    )
    schedule_interval_seconds: float = Field(
        default=3600.0,
        ge=1.0,
        description="Delay between scheduled incremental runs",
    )
    exclude_patterns: list[str] = Field(
        default_factory=list,
        description="Extra regex patterns; matching package paths are skipped",
    )

    @field_validator("temp_dir", mode="before")
    @classmethod
    def convert_temp_dir(cls, v: str | Path | None) -> Path | None:
        """Convert string paths to Path objects."""
        if v is None:
            return None
        return Path(v) if isinstance(v, str) else v


class HttpSettings(BaseModel):
    """Registry endpoints and HTTP client configuration."""

    timeout_seconds: float = Field(
        default=30.0,
        ge=1.0,
        le=600.0,
        description="Timeout for registry requests in seconds",
    )
    user_agent: str = Field(
        default="pkgindex-crawler/0.1",
        description="User-Agent sent to every registry",
    )
    go_index_url: str = Field(
        default="https://index.golang.org/index",
        description="Go module index changelog",
    )
    go_proxy_url: str = Field(
        default="https://proxy.golang.org",
        description="Go module proxy serving version zips",
    )
    npm_registry_url: str = Field(
        default="https://registry.npmjs.org",
        description="npm registry root",
    )
    npm_search_url: str = Field(
        default="https://registry.npmjs.org/-/v1/search",
        description="npm search endpoint",
    )
    crates_api_url: str = Field(
        default="https://crates.io/api/v1",
        description="crates.io API root",
    )
    pypi_url: str = Field(
        default="https://pypi.org/pypi",
        description="PyPI JSON API root",
    )
    packagist_url: str = Field(
        default="https://repo.packagist.org",
        description="Packagist metadata repository",
    )
    github_api_url: str = Field(
        default="https://api.github.com",
        description="GitHub REST API root",
    )
    github_token_env_var: str = Field(
        default="GITHUB_TOKEN",
        description="Environment variable holding an optional GitHub token",
    )


class ArchiveSettings(BaseModel):
    """Archive download and extraction limits."""

    max_file_size_mb: int = Field(
        default=10,
        ge=1,
        le=1024,
        description="Entries larger than this are skipped",
    )
    max_total_size_mb: int = Field(
        default=100,
        ge=1,
        le=10240,
        description="Extraction aborts once written bytes exceed this",
    )
    max_download_size_mb: int = Field(
        default=100,
        ge=1,
        le=10240,
        description="Downloads larger than this are rejected",
    )

    @property
    def max_file_size(self) -> int:
        return self.max_file_size_mb * 1024 * 1024

    @property
    def max_total_size(self) -> int:
        return self.max_total_size_mb * 1024 * 1024

    @property
    def max_download_size(self) -> int:
        return self.max_download_size_mb * 1024 * 1024


class StorageSettings(BaseModel):
    """SQLite storage configuration."""

    database_path: Path = Field(
        default=Path("data/pkgindex.db"),
        description="Path to SQLite database file",
    )
    wal_mode: bool = Field(
        default=True,
        description="Enable WAL mode for better concurrent access",
    )
    cache_size_mb: int = Field(
        default=64,
        ge=8,
        le=512,
        description="SQLite cache size in megabytes",
    )

    @field_validator("database_path", mode="before")
    @classmethod
    def convert_to_path(cls, v: str | Path) -> Path:
        """Convert string paths to Path objects."""
        return Path(v) if isinstance(v, str) else v


class LoggingSettings(BaseModel):
    """Logging configuration."""

    level: Literal["DEBUG", "INFO", "WARNING", "ERROR", "CRITICAL"] = Field(
        default="INFO",
        description="Minimum logging level",
    )
    format: str = Field(
        default="%(asctime)s | %(levelname)-8s | %(name)s | %(message)s",
        description="Log message format string",
    )
    date_format: str = Field(
        default="%Y-%m-%d %H:%M:%S",
        description="Date format for log timestamps",
    )
    file_path: Path | None = Field(
        default=None,
        description="Path to log file. None means console only.",
    )
    max_file_size_mb: int = Field(
        default=10,
        ge=1,
        le=100,
        description="Maximum log file size before rotation",
    )
    backup_count: int = Field(
        default=3,
        ge=0,
        le=10,
        description="Number of backup log files to keep",
    )
    log_to_console: bool = Field(
        default=True,
        description="Whether to output logs to console",
    )

    @field_validator("file_path", mode="before")
    @classmethod
    def convert_file_path(cls, v: str | Path | None) -> Path | None:
        """Convert string paths to Path objects."""
        if v is None:
            return None
        return Path(v) if isinstance(v, str) else v


def _default_extractors() -> dict[str, str]:
    return {
        "go": "pkgindex.extractors.golang:GoExtractor",
        "pypi": "pkgindex.extractors.python:PythonExtractor",
    }


class Settings(BaseModel):
    """
    Root configuration for the package index crawler.

    Aggregates all configuration sections.
    """

    crawler: CrawlerSettings = Field(default_factory=CrawlerSettings)
    http: HttpSettings = Field(default_factory=HttpSettings)
    archive: ArchiveSettings = Field(default_factory=ArchiveSettings)
    storage: StorageSettings = Field(default_factory=StorageSettings)
    logging: LoggingSettings = Field(default_factory=LoggingSettings)
    extractors: dict[str, str] = Field(
        default_factory=_default_extractors,
        description="Symbol extractor per ecosystem as 'module:Class'",
    )

    @field_validator("extractors", mode="before")
    @classmethod
    def merge_default_extractors(cls, v: dict[str, str] | None) -> dict[str, str]:
        """Configured extractors extend the built-in ones; an empty value disables one."""
        merged = _default_extractors()
        merged.update(v or {})
        return {k: val for k, val in merged.items() if val}

    model_config = {
        "extra": "forbid",
        "validate_default": True,
    }
