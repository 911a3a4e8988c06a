"""
Safe extraction of downloaded package archives.

Supports zip and tar+gzip behind one interface. Every entry is checked
against the destination root before anything is written, and both a
per-file and a total size cap are enforced on the bytes actually written.
"""

import os
import tarfile
import tempfile
import threading
import zipfile
from dataclasses import dataclass, field
from pathlib import Path
from typing import BinaryIO, Iterator

from pkgindex.core.exceptions import (
    ArchiveError,
    ArchiveTooLargeError,
    UnsupportedArchiveError,
)
from pkgindex.core.models import ArchiveType
from pkgindex.utils.logging import get_logger

logger = get_logger(__name__)

CHUNK_SIZE = 64 * 1024

_ZIP_MAGIC = b"PK\x03\x04"
_EMPTY_ZIP_MAGIC = b"PK\x05\x06"
_GZIP_MAGIC = b"\x1f\x8b"


@dataclass(frozen=True)
class ArchiveEntry:
    """One member of an archive as seen before extraction."""

    relative_path: str
    is_directory: bool
    size: int


@dataclass
class ExtractionReport:
    """Outcome of a completed extraction."""

    files_written: list[str] = field(default_factory=list)
    directories_created: int = 0
    skipped: dict[str, str] = field(default_factory=dict)
    total_bytes: int = 0

    @property
    def file_count(self) -> int:
        return len(self.files_written)


def detect_archive_type(source: Path | str) -> ArchiveType:
    """
    Determine an archive's container format.

    Reads the leading magic bytes first and falls back to the file name.

    Raises:
        UnsupportedArchiveError: If neither identifies a supported format
    """
    path = Path(source)
    try:
        with open(path, "rb") as f:
            head = f.read(4)
    except OSError as e:
        raise ArchiveError(f"Cannot read archive: {e}",
                           details={"path": str(path)}) from e

    if head.startswith(_ZIP_MAGIC) or head.startswith(_EMPTY_ZIP_MAGIC):
        return ArchiveType.ZIP
    if head.startswith(_GZIP_MAGIC):
        return ArchiveType.TAR_GZ

    name = path.name.lower()
    if name.endswith(".zip"):
        return ArchiveType.ZIP
    if name.endswith((".tar.gz", ".tgz", ".crate")):
        return ArchiveType.TAR_GZ

    raise UnsupportedArchiveError(
        "Unrecognized archive format", details={"path": str(path)})


def _resolve_inside(root: str, name: str) -> str | None:
    """
    Join an entry name onto the root and check it stays inside.

    Returns the absolute target path, or None when the entry would
    escape the root.
    """
    target = os.path.realpath(os.path.join(root, name))
    if target == root:
        return target
    if not target.startswith(root + os.sep):
        return None
    return target


class ArchiveExtractor:
    """
    Extracts zip and tar+gzip archives into a destination directory.

    Entries escaping the destination and entries larger than the per-file
    cap are skipped. Exceeding the total cap aborts the extraction.

    Example:
        >>> extractor = ArchiveExtractor(max_file_size=10 << 20, max_total_size=100 << 20)
        >>> report = extractor.extract(Path("pkg.zip"), Path("out"), ArchiveType.ZIP)
        >>> report.file_count
        42
    """

    def __init__(
        self,
        max_file_size: int = 10 * 1024 * 1024,
        max_total_size: int = 100 * 1024 * 1024,
    ) -> None:
        """
        Initialize extractor.

        Args:
            max_file_size: Per-entry cap in bytes
            max_total_size: Cap in bytes on everything written
        """
        self.max_file_size = max_file_size
        self.max_total_size = max_total_size

    def extract(
        self,
        source: Path | BinaryIO,
        destination: Path,
        archive_type: ArchiveType | None = None,
        cancel_event: threading.Event | None = None,
    ) -> ExtractionReport:
        """
        Extract an archive.

        Args:
            source: Archive path or readable binary stream
            destination: Directory to extract into (created if missing)
            archive_type: Known container format; detected from the
                file when None
            cancel_event: Checked between entries; when set, extraction
                stops with ArchiveError

        Returns:
            ExtractionReport describing what was written and skipped

        Raises:
            ArchiveTooLargeError: If the total cap is exceeded
            UnsupportedArchiveError: If the format is unknown
            ArchiveError: If the archive is corrupt or extraction is cancelled
        """
        if archive_type is None:
            if not isinstance(source, (str, Path)):
                raise UnsupportedArchiveError(
                    "Archive type is required for stream sources")
            archive_type = detect_archive_type(source)

        destination.mkdir(parents=True, exist_ok=True)
        root = os.path.realpath(destination)
        report = ExtractionReport()

        if archive_type == ArchiveType.ZIP:
            self._extract_zip(source, root, report, cancel_event)
        elif archive_type == ArchiveType.TAR_GZ:
            self._extract_tar(source, root, report, cancel_event)
        else:
            raise UnsupportedArchiveError(
                f"Unsupported archive type: {archive_type}")

        logger.debug(
            f"Extracted {report.file_count} files ({report.total_bytes} bytes), "
            f"skipped {len(report.skipped)} entries"
        )
        return report

    def _extract_zip(
        self,
        source: Path | BinaryIO,
        root: str,
        report: ExtractionReport,
        cancel_event: threading.Event | None,
    ) -> None:
        """Extract a zip archive, spooling non-seekable streams first."""
        spooled = None
        if not isinstance(source, (str, Path)) and not _is_seekable(source):
            spooled = self._spool(source)
            source = spooled

        try:
            with zipfile.ZipFile(source) as archive:
                for info in archive.infolist():
                    self._check_cancelled(cancel_event)
                    entry = ArchiveEntry(
                        relative_path=info.filename,
                        is_directory=info.is_dir(),
                        size=info.file_size,
                    )
                    self._extract_entry(
                        entry, root, report, lambda: archive.open(info))
        except zipfile.BadZipFile as e:
            raise ArchiveError(f"Corrupt zip archive: {e}") from e
        except OSError as e:
            raise ArchiveError(f"Cannot extract zip archive: {e}") from e
        finally:
            if spooled is not None:
                spooled.close()

    def _spool(self, stream: BinaryIO) -> BinaryIO:
        """
        Copy a non-seekable zip stream into a seekable temporary file.

        Raises:
            ArchiveTooLargeError: If the stream is longer than max_total_size
        """
        spooled = tempfile.SpooledTemporaryFile(max_size=self.max_file_size)
        size = 0
        for chunk in _iter_chunks(stream):
            size += len(chunk)
            if size > self.max_total_size:
                spooled.close()
                raise ArchiveTooLargeError(
                    "Zip stream exceeds total size limit", limit=self.max_total_size)
            spooled.write(chunk)
        spooled.seek(0)
        return spooled

    def _extract_tar(
        self,
        source: Path | BinaryIO,
        root: str,
        report: ExtractionReport,
        cancel_event: threading.Event | None,
    ) -> None:
        """Extract a gzip-compressed tar archive in streaming mode."""
        try:
            if isinstance(source, (str, Path)):
                archive = tarfile.open(source, mode="r|gz")
            else:
                archive = tarfile.open(fileobj=source, mode="r|gz")

            with archive:
                for member in archive:
                    self._check_cancelled(cancel_event)
                    if not (member.isfile() or member.isdir()):
                        report.skipped[member.name] = "not a regular file"
                        continue
                    entry = ArchiveEntry(
                        relative_path=member.name,
                        is_directory=member.isdir(),
                        size=member.size,
                    )
                    self._extract_entry(
                        entry, root, report,
                        lambda: archive.extractfile(member))
        except (tarfile.TarError, EOFError, OSError) as e:
            raise ArchiveError(f"Corrupt tar.gz archive: {e}") from e

    def _extract_entry(
        self,
        entry: ArchiveEntry,
        root: str,
        report: ExtractionReport,
        opener,
    ) -> None:
        """Validate one entry and write it under root."""
        target = _resolve_inside(root, entry.relative_path)
        if target is None:
            logger.warning(f"Skipping entry outside destination: {entry.relative_path}")
            report.skipped[entry.relative_path] = "path traversal"
            return
        if target == root:
            return

        if entry.is_directory:
            os.makedirs(target, exist_ok=True)
            report.directories_created += 1
            return

        if entry.size > self.max_file_size:
            logger.debug(
                f"Skipping oversized entry {entry.relative_path} ({entry.size} bytes)")
            report.skipped[entry.relative_path] = "file too large"
            return

        os.makedirs(os.path.dirname(target), exist_ok=True)
        stream = opener()
        if stream is None:
            report.skipped[entry.relative_path] = "unreadable"
            return

        with stream:
            written = self._copy_capped(stream, target, entry, report)

        if written is not None:
            report.files_written.append(entry.relative_path)

    def _copy_capped(
        self,
        stream: BinaryIO,
        target: str,
        entry: ArchiveEntry,
        report: ExtractionReport,
    ) -> int | None:
        """
        Stream one entry to disk under both caps.

        Returns bytes written, or None if the entry turned out larger
        than its declared size and was dropped.
        """
        written = 0
        with open(target, "wb") as out:
            for chunk in _iter_chunks(stream):
                written += len(chunk)
                if written > self.max_file_size:
                    break
                if report.total_bytes + written > self.max_total_size:
                    out.close()
                    os.remove(target)
                    raise ArchiveTooLargeError(
                        "Archive exceeds total size limit",
                        limit=self.max_total_size,
                        details={"entry": entry.relative_path},
                    )
                out.write(chunk)

        if written > self.max_file_size:
            os.remove(target)
            report.skipped[entry.relative_path] = "file too large"
            return None

        report.total_bytes += written
        return written

    @staticmethod
    def _check_cancelled(cancel_event: threading.Event | None) -> None:
        if cancel_event is not None and cancel_event.is_set():
            raise ArchiveError("Extraction cancelled")


def _iter_chunks(stream: BinaryIO) -> Iterator[bytes]:
    while True:
        chunk = stream.read(CHUNK_SIZE)
        if not chunk:
            return
        yield chunk


def _is_seekable(stream: BinaryIO) -> bool:
    try:
        return stream.seekable()
    except (AttributeError, ValueError):
        return False


def descend_single_dir(path: Path) -> Path:
    """
    Return the only subdirectory of path when it has no other entries.

    Registry archives usually wrap their content in one top-level
    directory such as "package/" or "name-1.0.0/".
    """
    entries = list(path.iterdir())
    if len(entries) == 1 and entries[0].is_dir():
        return entries[0]
    return path


def prefer_subdir(path: Path, name: str) -> Path:
    """Return path/name if it is a directory, otherwise path."""
    candidate = path / name
    return candidate if candidate.is_dir() else path
