"""Shared helpers for symbol extractors."""

import os
from pathlib import Path
from typing import Iterator

from pkgindex.core.exceptions import SymbolExtractionError
from pkgindex.core.models import Symbol
from pkgindex.utils.logging import get_logger

logger = get_logger(__name__)


class FileExtractor:
    """
    Base for extractors that parse files one at a time.

    Subclasses set suffixes and skip_dirs and implement parse_source.
    parse_directory walks the tree, skips unreadable or unparsable files,
    and reports file paths relative to the walked root.
    """

    suffixes: tuple[str, ...] = ()
    skip_dirs: frozenset[str] = frozenset()
    skip_file_suffixes: tuple[str, ...] = ()

    def parse_source(self, source: str, file_path: str) -> list[Symbol]:
        raise NotImplementedError

    def parse_file(self, path: Path, relative_to: Path | None = None) -> list[Symbol]:
        """
        Parse one file.

        Raises:
            OSError: If the file cannot be read
            SyntaxError, ValueError: If the file cannot be parsed
        """
        path = Path(path)
        display = path.relative_to(relative_to).as_posix() if relative_to else path.name
        source = path.read_text(encoding="utf-8")
        return self.parse_source(source, display)

    def iter_files(self, root: Path) -> Iterator[Path]:
        for dirpath, dirnames, filenames in os.walk(root):
            dirnames[:] = sorted(
                d for d in dirnames
                if not d.startswith(".") and d not in self.skip_dirs
                and not d.endswith(".egg-info")
            )
            for filename in sorted(filenames):
                if filename.endswith(self.suffixes) and not filename.endswith(self.skip_file_suffixes):
                    yield Path(dirpath) / filename

    def parse_directory(self, path: Path) -> list[Symbol]:
        path = Path(path)
        if not path.is_dir():
            raise SymbolExtractionError("Source root is not a directory", path=str(path))

        symbols: list[Symbol] = []
        failed = 0
        for file_path in self.iter_files(path):
            try:
                symbols.extend(self.parse_file(file_path, relative_to=path))
            except (OSError, SyntaxError, ValueError) as e:
                failed += 1
                logger.debug(f"Skipping {file_path}: {e}")

        if failed:
            logger.info(f"Skipped {failed} unparsable files under {path}")
        return symbols
