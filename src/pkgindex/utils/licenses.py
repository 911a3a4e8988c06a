"""
License detection and normalization.

Identifies common licenses from license file text or registry fields and
decides whether package documentation may be redistributed.
"""

from pathlib import Path

LICENSE_FILES = (
    "LICENSE",
    "LICENSE.txt",
    "LICENSE.md",
    "LICENCE",
    "LICENCE.txt",
    "COPYING",
    "COPYING.txt",
)

REDISTRIBUTABLE_LICENSES = frozenset({
    "MIT",
    "Apache-2.0",
    "BSD-2-Clause",
    "BSD-3-Clause",
    "ISC",
    "MPL-2.0",
    "Unlicense",
    "CC0-1.0",
    "LGPL",
})

_OSI_CLASSIFIER = "License :: OSI Approved :: "
_COMMON_LICENSE_NAMES = ("MIT", "BSD", "Apache", "GPL", "LGPL", "MPL", "ISC", "Unlicense")
_MAX_LICENSE_LENGTH = 50


def is_redistributable(license_name: str) -> bool:
    return license_name in REDISTRIBUTABLE_LICENSES


def identify_license(content: str) -> str:
    """
    Identify an SPDX-style license name from license text.

    Checks are ordered so that more specific texts win, e.g. Apache
    before MIT. Returns "Unknown" when nothing matches.
    """
    text = content.lower()

    if "apache license" in text and "version 2.0" in text:
        return "Apache-2.0"
    if "mit license" in text or "permission is hereby granted, free of charge" in text:
        return "MIT"
    if "bsd 3-clause" in text or ("redistribution and use" in text and "neither the name" in text):
        return "BSD-3-Clause"
    if "bsd 2-clause" in text:
        return "BSD-2-Clause"
    if "gnu general public license" in text and "version 3" in text:
        return "GPL-3.0"
    if "gnu general public license" in text and "version 2" in text:
        return "GPL-2.0"
    if "mozilla public license" in text and "2.0" in text:
        return "MPL-2.0"
    if "unlicense" in text:
        return "Unlicense"
    if "isc license" in text:
        return "ISC"
    return "Unknown"


def detect_license(directory: Path) -> tuple[str, str]:
    """
    Find and identify the license file in a source tree root.

    Args:
        directory: Directory to look in (not searched recursively)

    Returns:
        Tuple of (license name, license text); empty strings when no
        license file exists
    """
    for name in LICENSE_FILES:
        path = directory / name
        if not path.is_file():
            continue
        try:
            text = path.read_text(encoding="utf-8", errors="replace")
        except OSError:
            continue
        return identify_license(text), text
    return "", ""


def clean_pypi_license(license_field: str | None, classifiers: list[str] | None) -> str:
    """
    Normalize a PyPI license.

    Prefers the OSI classifier (trimmed of a trailing " License"). Falls
    back to the first line of the free-form field, reduced to a common
    license name or truncated when it looks like full license text.
    """
    for classifier in classifiers or []:
        if classifier.startswith(_OSI_CLASSIFIER):
            name = classifier[len(_OSI_CLASSIFIER):]
            return name.removesuffix(" License")

    if not license_field:
        return ""

    license_text = license_field.split("\n", 1)[0].strip()

    if len(license_text) > _MAX_LICENSE_LENGTH:
        upper = license_text.upper()
        for name in _COMMON_LICENSE_NAMES:
            if name.upper() in upper:
                return name
        return license_text[:_MAX_LICENSE_LENGTH] + "..."

    return license_text
