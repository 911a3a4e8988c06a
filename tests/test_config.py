"""
Tests for configuration module.

Tests settings loading, validation, and environment variable overrides.
"""

from pathlib import Path

import pytest
import yaml

from pkgindex.config import (
    Settings,
    ArchiveSettings,
    CrawlerSettings,
    HttpSettings,
    StorageSettings,
    get_default_config_path,
    get_settings,
    load_config,
    reset_settings,
)
from pkgindex.core.exceptions import ConfigurationError


class TestSettings:
    """Tests for Settings model."""

    def test_default_settings_valid(self):
        """Default settings should be valid."""
        settings = Settings()

        assert settings.crawler.ecosystem == "go"
        assert settings.crawler.workers == 4
        assert settings.crawler.queue_size == 100
        assert settings.crawler.max_modules == 0
        assert settings.storage.wal_mode is True
        assert settings.http.go_index_url == "https://index.golang.org/index"

    def test_default_extractors(self):
        """Go and PyPI ship with built-in extractors."""
        settings = Settings()

        assert settings.extractors["go"] == "pkgindex.extractors.golang:GoExtractor"
        assert settings.extractors["pypi"] == "pkgindex.extractors.python:PythonExtractor"

    def test_crawler_settings_validation(self):
        """Crawler settings should validate constraints."""
        crawler = CrawlerSettings(workers=8, max_tokens=5)
        assert crawler.workers == 8
        assert crawler.max_tokens == 5

        with pytest.raises(ValueError):
            CrawlerSettings(workers=0)

        with pytest.raises(ValueError):
            CrawlerSettings(max_tokens=0)

        with pytest.raises(ValueError):
            CrawlerSettings(rate_limit_seconds=-1)

    def test_unknown_ecosystem_rejected(self):
        with pytest.raises(ValueError):
            CrawlerSettings(ecosystem="maven")

    def test_temp_dir_converted_to_path(self):
        crawler = CrawlerSettings(temp_dir="/tmp/pkgindex")

        assert crawler.temp_dir == Path("/tmp/pkgindex")

    def test_archive_byte_limits(self):
        archive = ArchiveSettings(max_file_size_mb=2, max_total_size_mb=20)

        assert archive.max_file_size == 2 * 1024 * 1024
        assert archive.max_total_size == 20 * 1024 * 1024

    def test_storage_path_converted(self):
        storage = StorageSettings(database_path="data/x.db")

        assert storage.database_path == Path("data/x.db")

    def test_extra_fields_forbidden(self):
        """Unknown top-level sections are rejected."""
        with pytest.raises(ValueError):
            Settings(browser={"headless": True})

    def test_settings_nested_override(self):
        """Nested settings can be overridden."""
        settings = Settings(
            crawler={"workers": 2},
            http={"user_agent": "test-agent"},
        )

        assert settings.crawler.workers == 2
        assert settings.http.user_agent == "test-agent"
        assert settings.http.timeout_seconds == HttpSettings().timeout_seconds


class TestLoadConfig:
    """Tests for configuration loading."""

    def test_load_defaults_without_file(self):
        settings = load_config(None)

        assert isinstance(settings, Settings)
        assert settings.crawler.workers == 4

    def test_load_from_yaml(self, temp_dir: Path):
        """Settings should load from YAML file."""
        config_path = temp_dir / "config.yaml"
        config_path.write_text(yaml.safe_dump({
            "crawler": {"ecosystem": "npm", "workers": 6},
            "storage": {"database_path": str(temp_dir / "index.db")},
        }))

        settings = load_config(config_path)

        assert settings.crawler.ecosystem == "npm"
        assert settings.crawler.workers == 6
        assert settings.storage.database_path == temp_dir / "index.db"

    def test_empty_yaml_uses_defaults(self, temp_dir: Path):
        config_path = temp_dir / "config.yaml"
        config_path.write_text("")

        settings = load_config(config_path)

        assert settings.crawler.workers == 4

    def test_missing_file_raises(self, temp_dir: Path):
        with pytest.raises(ConfigurationError, match="not found"):
            load_config(temp_dir / "missing.yaml")

    def test_invalid_yaml_raises(self, temp_dir: Path):
        config_path = temp_dir / "config.yaml"
        config_path.write_text("crawler: [unclosed")

        with pytest.raises(ConfigurationError):
            load_config(config_path)

    def test_non_mapping_yaml_raises(self, temp_dir: Path):
        config_path = temp_dir / "config.yaml"
        config_path.write_text("- a\n- b\n")

        with pytest.raises(ConfigurationError, match="mapping"):
            load_config(config_path)

    def test_invalid_values_raise_configuration_error(self, temp_dir: Path):
        config_path = temp_dir / "config.yaml"
        config_path.write_text(yaml.safe_dump({"crawler": {"workers": 0}}))

        with pytest.raises(ConfigurationError):
            load_config(config_path)

    def test_env_override(self, temp_dir: Path, monkeypatch: pytest.MonkeyPatch):
        """Environment variables take precedence over the file."""
        config_path = temp_dir / "config.yaml"
        config_path.write_text(yaml.safe_dump({"crawler": {"workers": 6}}))

        monkeypatch.setenv("PKGINDEX__CRAWLER__WORKERS", "12")
        monkeypatch.setenv("PKGINDEX__CRAWLER__RATE_LIMIT_SECONDS", "0.5")
        monkeypatch.setenv("PKGINDEX__STORAGE__WAL_MODE", "false")

        settings = load_config(config_path)

        assert settings.crawler.workers == 12
        assert settings.crawler.rate_limit_seconds == 0.5
        assert settings.storage.wal_mode is False

    def test_env_override_extractor(self, monkeypatch: pytest.MonkeyPatch):
        monkeypatch.setenv("PKGINDEX__EXTRACTORS__NPM", "mypkg.js:JsExtractor")

        settings = load_config(None)

        assert settings.extractors["npm"] == "mypkg.js:JsExtractor"
        assert "go" in settings.extractors

    def test_get_settings_cached(self, temp_dir: Path):
        config_path = temp_dir / "config.yaml"
        config_path.write_text(yaml.safe_dump({"crawler": {"workers": 3}}))

        first = get_settings(config_path)
        second = get_settings()

        assert first is second
        assert second.crawler.workers == 3

        reset_settings()
        assert get_settings(config_path) is not first

    def test_env_list_value(self, monkeypatch: pytest.MonkeyPatch):
        """Flow-style YAML lists are accepted in environment values."""
        monkeypatch.setenv("PKGINDEX__CRAWLER__EXCLUDE_PATTERNS", "[^example\\.com/, /internal/]")

        settings = load_config(None)

        assert settings.crawler.exclude_patterns == ["^example\\.com/", "/internal/"]

    def test_env_mapping_kept_as_string(self, monkeypatch: pytest.MonkeyPatch):
        monkeypatch.setenv("PKGINDEX__HTTP__USER_AGENT", "bot: 1")

        assert load_config(None).http.user_agent == "bot: 1"

    def test_validation_errors_name_fields(self, temp_dir: Path):
        config_path = temp_dir / "config.yaml"
        config_path.write_text(yaml.safe_dump({"crawler": {"workers": 0}}))

        with pytest.raises(ConfigurationError) as exc_info:
            load_config(config_path)

        assert any(e.startswith("crawler.workers") for e in exc_info.value.details["errors"])


class TestDefaultConfigPath:
    """Tests for locating the default config file."""

    def test_env_var_wins(self, temp_dir: Path, monkeypatch: pytest.MonkeyPatch):
        monkeypatch.setenv("PKGINDEX_CONFIG", str(temp_dir / "custom.yaml"))

        assert get_default_config_path() == temp_dir / "custom.yaml"

    def test_finds_config_in_cwd(self, temp_dir: Path, monkeypatch: pytest.MonkeyPatch):
        monkeypatch.delenv("PKGINDEX_CONFIG", raising=False)
        monkeypatch.chdir(temp_dir)
        (temp_dir / "config").mkdir()
        (temp_dir / "config" / "config.yaml").write_text("")

        assert get_default_config_path() == temp_dir / "config" / "config.yaml"
