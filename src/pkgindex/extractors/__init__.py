"""
Symbol extractors for the package index crawler.

Built-in parsers for Python and Go sources, plus loading of
additional extractors by import path.
"""

from pkgindex.extractors.base import FileExtractor
from pkgindex.extractors.golang import GoExtractor
from pkgindex.extractors.loader import MetadataOnlyExtractor, get_extractor, load_extractor
from pkgindex.extractors.python import PythonExtractor

__all__ = [
    "FileExtractor",
    "GoExtractor",
    "PythonExtractor",
    "MetadataOnlyExtractor",
    "get_extractor",
    "load_extractor",
]
