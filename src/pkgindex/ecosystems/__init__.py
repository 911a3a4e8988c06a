"""
Ecosystem module for the package index crawler.

One Ecosystem variant per registry, all behind the same interface:
- Go modules (index + proxy)
- npm
- crates.io
- PyPI
- Packagist
- GitHub
"""

from pkgindex.ecosystems.base import Ecosystem
from pkgindex.ecosystems.crates import CratesEcosystem
from pkgindex.ecosystems.github import GitHubEcosystem
from pkgindex.ecosystems.golang import GoEcosystem
from pkgindex.ecosystems.npm import NpmEcosystem
from pkgindex.ecosystems.packagist import PackagistEcosystem
from pkgindex.ecosystems.pypi import PyPIEcosystem
from pkgindex.ecosystems.registry import ECOSYSTEMS, ecosystem_names, get_ecosystem

__all__ = [
    "Ecosystem",
    "CratesEcosystem",
    "GitHubEcosystem",
    "GoEcosystem",
    "NpmEcosystem",
    "PackagistEcosystem",
    "PyPIEcosystem",
    "ECOSYSTEMS",
    "ecosystem_names",
    "get_ecosystem",
]
