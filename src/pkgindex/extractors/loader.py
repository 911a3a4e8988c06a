"""
Extractor loading from "module:Class" import paths.
"""

import importlib
from pathlib import Path

from pkgindex.config.settings import Settings
from pkgindex.core.exceptions import ConfigurationError
from pkgindex.core.models import Symbol
from pkgindex.core.protocols import SymbolExtractor
from pkgindex.utils.logging import get_logger

logger = get_logger(__name__)


class MetadataOnlyExtractor:
    """Extractor for ecosystems without a parser; packages are stored without symbols."""

    def parse_file(self, path: Path) -> list[Symbol]:
        return []

    def parse_directory(self, path: Path) -> list[Symbol]:
        return []


def load_extractor(import_path: str) -> SymbolExtractor:
    """
    Import and instantiate an extractor.

    Args:
        import_path: "package.module:ClassName"

    Returns:
        Extractor instance

    Raises:
        ConfigurationError: If the path is malformed, the module or class
            is missing, or the class does not implement the extractor
            interface
    """
    module_name, sep, class_name = import_path.partition(":")
    if not sep or not module_name or not class_name:
        raise ConfigurationError(
            "Extractor must be given as 'module:Class'",
            details={"extractor": import_path},
        )

    try:
        module = importlib.import_module(module_name)
    except ImportError as e:
        raise ConfigurationError(
            f"Cannot import extractor module: {module_name}",
            details={"error": str(e)},
        ) from e

    cls = getattr(module, class_name, None)
    if cls is None:
        raise ConfigurationError(
            f"Extractor class not found: {import_path}",
        )

    extractor = cls()
    if not isinstance(extractor, SymbolExtractor):
        raise ConfigurationError(
            f"Not a symbol extractor: {import_path}",
        )

    logger.debug(f"Loaded extractor {import_path}")
    return extractor


def get_extractor(settings: Settings, ecosystem: str) -> SymbolExtractor:
    """
    Extractor configured for an ecosystem.

    Ecosystems without an entry get a MetadataOnlyExtractor.
    """
    import_path = settings.extractors.get(ecosystem)
    if not import_path:
        logger.warning(f"No extractor configured for {ecosystem}; indexing metadata only")
        return MetadataOnlyExtractor()
    return load_extractor(import_path)
