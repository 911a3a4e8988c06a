"""
Utility module for the package index crawler.

Provides logging setup plus version and license helpers.
"""

from pkgindex.utils.logging import (
    setup_logging,
    get_logger,
    get_logger_with_context,
    reset_logging,
    JobLogger,
)
from pkgindex.utils.licenses import (
    clean_pypi_license,
    detect_license,
    identify_license,
    is_redistributable,
)
from pkgindex.utils.versions import (
    clean_repo_url,
    escape_module_path,
    is_deprecated,
    is_stable_version,
    is_tagged_version,
    module_to_repo_url,
)

__all__ = [
    # Logging
    "setup_logging",
    "get_logger",
    "get_logger_with_context",
    "reset_logging",
    "JobLogger",
    # Licenses
    "clean_pypi_license",
    "detect_license",
    "identify_license",
    "is_redistributable",
    # Versions
    "clean_repo_url",
    "escape_module_path",
    "is_deprecated",
    "is_stable_version",
    "is_tagged_version",
    "module_to_repo_url",
]
