"""
Configuration loading.

Settings are layered, later layers winning:

1. Defaults from settings.py
2. A YAML file (explicit path, $PKGINDEX_CONFIG, or a config.yaml found
   in the usual places)
3. Environment variables named PKGINDEX__{SECTION}__{KEY}, for example
   PKGINDEX__CRAWLER__WORKERS=8 or PKGINDEX__EXTRACTORS__NPM=mypkg:JsExtractor
"""

import os
from pathlib import Path
from typing import Any

import yaml
from pydantic import ValidationError

from pkgindex.config.settings import Settings
from pkgindex.core.exceptions import ConfigurationError

ENV_PREFIX = "PKGINDEX"
CONFIG_PATH_ENV_VAR = "PKGINDEX_CONFIG"

_cached: Settings | None = None


def _merge(base: dict[str, Any], override: dict[str, Any]) -> dict[str, Any]:
    merged = dict(base)
    for key, value in override.items():
        if isinstance(value, dict) and isinstance(merged.get(key), dict):
            merged[key] = _merge(merged[key], value)
        else:
            merged[key] = value
    return merged


def _env_value(raw: str) -> Any:
    """
    Interpret an environment value as a YAML scalar or flow list.

    "8" becomes 8, "false" becomes False, "[a, b]" becomes a list. Anything
    that parses as a mapping, or not at all, is kept as the raw string.
    """
    if raw.strip() == "":
        return None
    try:
        value = yaml.safe_load(raw)
    except yaml.YAMLError:
        return raw
    return raw if isinstance(value, dict) else value


def env_overrides(environ: dict[str, str] | None = None, prefix: str = ENV_PREFIX) -> dict[str, Any]:
    """Nested overrides from PREFIX__SECTION__KEY variables."""
    environ = os.environ if environ is None else environ
    marker = f"{prefix}__"
    overrides: dict[str, Any] = {}

    for name, raw in environ.items():
        if not name.startswith(marker):
            continue
        parts = name[len(marker):].lower().split("__")
        if len(parts) < 2 or not all(parts):
            continue
        section = overrides
        for part in parts[:-1]:
            section = section.setdefault(part, {})
        section[parts[-1]] = _env_value(raw)

    return overrides


def read_config_file(path: Path) -> dict[str, Any]:
    """
    Read a YAML config file into a dict.

    Raises:
        ConfigurationError: If the file is missing, invalid YAML or not a mapping
    """
    if not path.is_file():
        raise ConfigurationError("Configuration file not found", details={"path": str(path)})

    try:
        content = yaml.safe_load(path.read_text(encoding="utf-8"))
    except (OSError, yaml.YAMLError) as e:
        raise ConfigurationError(f"Cannot read configuration: {e}", details={"path": str(path)}) from e

    if content is None:
        return {}
    if not isinstance(content, dict):
        raise ConfigurationError(
            f"Configuration file must contain a mapping, got: {type(content).__name__}",
            details={"path": str(path)},
        )
    return content


def load_config(config_path: Path | str | None = None, env_prefix: str = ENV_PREFIX) -> Settings:
    """
    Build validated Settings from defaults, an optional file and the environment.

    Raises:
        ConfigurationError: If the file cannot be read or a value is invalid
    """
    data = read_config_file(Path(config_path)) if config_path is not None else {}
    data = _merge(data, env_overrides(prefix=env_prefix))

    try:
        return Settings(**data)
    except ValidationError as e:
        problems = [
            f"{'.'.join(str(part) for part in err['loc'])}: {err['msg']}"
            for err in e.errors()
        ]
        raise ConfigurationError(
            f"Invalid configuration: {e.error_count()} error(s)",
            details={"errors": problems},
        ) from e


def get_default_config_path() -> Path | None:
    """
    Locate the config file used when none is given.

    $PKGINDEX_CONFIG wins when set; otherwise the first existing file of
    ./config.yaml, ./config/config.yaml and ~/.pkgindex/config.yaml.
    """
    explicit = os.environ.get(CONFIG_PATH_ENV_VAR)
    if explicit:
        return Path(explicit).expanduser()

    for candidate in (
        Path.cwd() / "config.yaml",
        Path.cwd() / "config" / "config.yaml",
        Path.home() / ".pkgindex" / "config.yaml",
    ):
        if candidate.is_file():
            return candidate
    return None


def get_settings(config_path: Path | str | None = None, reload: bool = False) -> Settings:
    """Settings loaded once per process; pass reload=True to read them again."""
    global _cached
    if _cached is None or reload:
        _cached = load_config(config_path or get_default_config_path())
    return _cached


def reset_settings() -> None:
    global _cached
    _cached = None
