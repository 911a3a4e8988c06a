"""Ecosystem registry keyed by configuration name."""

import httpx

from pkgindex.config.settings import Settings
from pkgindex.core.exceptions import ConfigurationError
from pkgindex.ecosystems.base import Ecosystem
from pkgindex.ecosystems.crates import CratesEcosystem
from pkgindex.ecosystems.github import GitHubEcosystem
from pkgindex.ecosystems.golang import GoEcosystem
from pkgindex.ecosystems.npm import NpmEcosystem
from pkgindex.ecosystems.packagist import PackagistEcosystem
from pkgindex.ecosystems.pypi import PyPIEcosystem

ECOSYSTEMS: dict[str, type[Ecosystem]] = {
    cls.name: cls
    for cls in (
        GoEcosystem,
        NpmEcosystem,
        CratesEcosystem,
        PyPIEcosystem,
        PackagistEcosystem,
        GitHubEcosystem,
    )
}


def ecosystem_names() -> tuple[str, ...]:
    """Registered ecosystem names in registration order."""
    return tuple(ECOSYSTEMS)


def get_ecosystem(
    name: str,
    client: httpx.AsyncClient,
    settings: Settings | None = None,
) -> Ecosystem:
    """
    Instantiate an ecosystem by name.

    Raises:
        ConfigurationError: If the name is unknown
    """
    try:
        cls = ECOSYSTEMS[name]
    except KeyError:
        raise ConfigurationError(
            f"Unknown ecosystem: {name}",
            details={"available": ", ".join(ECOSYSTEMS)},
        ) from None

    settings = settings or Settings()
    return cls(
        client,
        http_settings=settings.http,
        archive_settings=settings.archive,
        exclude_patterns=settings.crawler.exclude_patterns,
    )
