"""
Command-line interface for the package index crawler.
"""

from pkgindex.cli.main import app

__all__ = ["app"]
