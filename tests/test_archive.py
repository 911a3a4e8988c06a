"""
Tests for archive extraction.

Tests zip and tar.gz extraction, path traversal protection, size caps,
type detection and cancellation.
"""

import io
import os
import tarfile
import threading
from pathlib import Path

import pytest

from pkgindex.core.exceptions import (
    ArchiveError,
    ArchiveTooLargeError,
    UnsupportedArchiveError,
)
from pkgindex.core.models import ArchiveType
from pkgindex.crawler import ArchiveExtractor, detect_archive_type
from pkgindex.crawler.archive import descend_single_dir, prefer_subdir


def _write(temp_dir: Path, name: str, data: bytes) -> Path:
    path = temp_dir / name
    path.write_bytes(data)
    return path


def _tar_with_members(members: list[tarfile.TarInfo], contents: dict[str, bytes]) -> bytes:
    buffer = io.BytesIO()
    with tarfile.open(fileobj=buffer, mode="w:gz") as tf:
        for info in members:
            data = contents.get(info.name)
            tf.addfile(info, io.BytesIO(data) if data is not None else None)
    return buffer.getvalue()


class _Unseekable(io.RawIOBase):
    """Read-only stream without seek support, like an HTTP body."""

    def __init__(self, data: bytes) -> None:
        self._buffer = io.BytesIO(data)

    def readable(self) -> bool:
        return True

    def seekable(self) -> bool:
        return False

    def readinto(self, b) -> int:
        chunk = self._buffer.read(len(b))
        b[:len(chunk)] = chunk
        return len(chunk)


class TestExtractZip:
    """Tests for zip extraction."""

    @pytest.fixture
    def extractor(self) -> ArchiveExtractor:
        return ArchiveExtractor(max_file_size=1024, max_total_size=4096)

    def test_extracts_files_and_directories(self, extractor, temp_dir, make_zip):
        archive = _write(temp_dir, "pkg.zip", make_zip({
            "pkg-1.0/README.md": "hello",
            "pkg-1.0/src/main.py": "print('hi')\n",
        }))
        dest = temp_dir / "out"

        report = extractor.extract(archive, dest, ArchiveType.ZIP)

        assert (dest / "pkg-1.0" / "README.md").read_text() == "hello"
        assert (dest / "pkg-1.0" / "src" / "main.py").exists()
        assert report.file_count == 2
        assert report.total_bytes == len("hello") + len("print('hi')\n")

    def test_zip_slip_entries_skipped(self, extractor, temp_dir, make_zip):
        """Entries resolving outside the destination are never written."""
        archive = _write(temp_dir, "evil.zip", make_zip({
            "../evil.txt": "pwned",
            "safe/../../also-evil.txt": "pwned",
            "ok.txt": "fine",
        }))
        dest = temp_dir / "out"

        report = extractor.extract(archive, dest, ArchiveType.ZIP)

        assert not (temp_dir / "evil.txt").exists()
        assert not (temp_dir / "also-evil.txt").exists()
        assert (dest / "ok.txt").read_text() == "fine"
        assert report.skipped["../evil.txt"] == "path traversal"
        assert report.skipped["safe/../../also-evil.txt"] == "path traversal"

    def test_inner_dotdot_inside_root_allowed(self, extractor, temp_dir, make_zip):
        archive = _write(temp_dir, "pkg.zip", make_zip({"a/../b.txt": "x"}))
        dest = temp_dir / "out"

        extractor.extract(archive, dest, ArchiveType.ZIP)

        assert (dest / "b.txt").exists()

    def test_oversized_entry_skipped(self, extractor, temp_dir, make_zip):
        archive = _write(temp_dir, "pkg.zip", make_zip({
            "big.bin": b"x" * 2048,
            "small.txt": "ok",
        }))
        dest = temp_dir / "out"

        report = extractor.extract(archive, dest, ArchiveType.ZIP)

        assert not (dest / "big.bin").exists()
        assert (dest / "small.txt").exists()
        assert report.skipped["big.bin"] == "file too large"

    def test_total_cap_aborts(self, temp_dir, make_zip):
        """Exceeding the total cap raises and leaves nothing past the cap."""
        extractor = ArchiveExtractor(max_file_size=1000, max_total_size=1000)
        archive = _write(temp_dir, "pkg.zip", make_zip({
            "a.bin": b"a" * 600,
            "b.bin": b"b" * 600,
        }))
        dest = temp_dir / "out"

        with pytest.raises(ArchiveTooLargeError) as exc_info:
            extractor.extract(archive, dest, ArchiveType.ZIP)

        assert exc_info.value.limit == 1000
        assert (dest / "a.bin").exists()
        assert not (dest / "b.bin").exists()
        written = sum(p.stat().st_size for p in dest.rglob("*") if p.is_file())
        assert written <= 1000

    def test_corrupt_zip_raises(self, extractor, temp_dir):
        archive = _write(temp_dir, "bad.zip", b"PK\x03\x04 definitely not a zip")

        with pytest.raises(ArchiveError):
            extractor.extract(archive, temp_dir / "out", ArchiveType.ZIP)

    def test_stream_source(self, extractor, temp_dir, make_zip):
        data = make_zip({"x.txt": "stream"})

        extractor.extract(io.BytesIO(data), temp_dir / "out", ArchiveType.ZIP)

        assert (temp_dir / "out" / "x.txt").read_text() == "stream"

    def test_unseekable_stream_source(self, extractor, temp_dir, make_zip):
        data = make_zip({"x.txt": "stream"})

        extractor.extract(_Unseekable(data), temp_dir / "out", ArchiveType.ZIP)

        assert (temp_dir / "out" / "x.txt").read_text() == "stream"

    def test_unseekable_stream_over_total_cap(self, extractor, temp_dir, make_zip):
        """A stream is not buffered past the total cap before extraction starts."""
        data = make_zip({"noise.bin": os.urandom(8192)})
        assert len(data) > extractor.max_total_size

        with pytest.raises(ArchiveTooLargeError) as exc_info:
            extractor.extract(_Unseekable(data), temp_dir / "out", ArchiveType.ZIP)

        assert exc_info.value.limit == extractor.max_total_size
        assert not (temp_dir / "out" / "noise.bin").exists()

    def test_file_then_directory_of_same_name(self, extractor, temp_dir, make_zip):
        """A member nested under an earlier regular file fails as an archive error."""
        archive = _write(temp_dir, "pkg.zip", make_zip({"a": "file", "a/b": "nested"}))

        with pytest.raises(ArchiveError, match="Cannot extract zip archive"):
            extractor.extract(archive, temp_dir / "out", ArchiveType.ZIP)

    def test_cancel_event_stops_extraction(self, extractor, temp_dir, make_zip):
        archive = _write(temp_dir, "pkg.zip", make_zip({"a.txt": "a", "b.txt": "b"}))
        cancel = threading.Event()
        cancel.set()

        with pytest.raises(ArchiveError, match="cancelled"):
            extractor.extract(archive, temp_dir / "out", ArchiveType.ZIP, cancel)

        assert not (temp_dir / "out" / "a.txt").exists()


class TestExtractTarGz:
    """Tests for tar.gz extraction."""

    @pytest.fixture
    def extractor(self) -> ArchiveExtractor:
        return ArchiveExtractor(max_file_size=1024, max_total_size=4096)

    def test_extracts_files(self, extractor, temp_dir, make_tar_gz):
        archive = _write(temp_dir, "pkg.tgz", make_tar_gz({
            "package/package.json": '{"name": "x"}',
            "package/index.js": "module.exports = 1;",
        }))
        dest = temp_dir / "out"

        report = extractor.extract(archive, dest, ArchiveType.TAR_GZ)

        assert (dest / "package" / "index.js").read_text() == "module.exports = 1;"
        assert report.file_count == 2

    def test_tar_slip_entries_skipped(self, extractor, temp_dir, make_tar_gz):
        archive = _write(temp_dir, "evil.tar.gz", make_tar_gz({
            "../evil.txt": "pwned",
            "/tmp/pkgindex-absolute-evil.txt": "pwned",
            "ok.txt": "fine",
        }))
        dest = temp_dir / "out"

        report = extractor.extract(archive, dest, ArchiveType.TAR_GZ)

        assert not (temp_dir / "evil.txt").exists()
        assert not Path("/tmp/pkgindex-absolute-evil.txt").exists()
        assert (dest / "ok.txt").exists()
        assert report.skipped["../evil.txt"] == "path traversal"

    def test_symlinks_skipped(self, extractor, temp_dir):
        link = tarfile.TarInfo("link")
        link.type = tarfile.SYMTYPE
        link.linkname = "/etc/passwd"
        regular = tarfile.TarInfo("file.txt")
        regular.size = 2
        data = _tar_with_members([link, regular], {"file.txt": b"ok"})
        archive = _write(temp_dir, "pkg.tar.gz", data)
        dest = temp_dir / "out"

        report = extractor.extract(archive, dest, ArchiveType.TAR_GZ)

        assert not (dest / "link").exists()
        assert (dest / "file.txt").exists()
        assert report.skipped["link"] == "not a regular file"

    def test_total_cap_aborts(self, temp_dir, make_tar_gz):
        extractor = ArchiveExtractor(max_file_size=1000, max_total_size=1000)
        archive = _write(temp_dir, "pkg.tar.gz", make_tar_gz({
            "a.bin": b"a" * 600,
            "b.bin": b"b" * 600,
        }))

        with pytest.raises(ArchiveTooLargeError):
            extractor.extract(archive, temp_dir / "out", ArchiveType.TAR_GZ)

        assert not (temp_dir / "out" / "b.bin").exists()

    def test_corrupt_tar_raises(self, extractor, temp_dir):
        archive = _write(temp_dir, "bad.tar.gz", b"\x1f\x8b\x08\x00garbage")

        with pytest.raises(ArchiveError):
            extractor.extract(archive, temp_dir / "out", ArchiveType.TAR_GZ)


class TestDetectArchiveType:
    """Tests for archive type detection."""

    def test_detect_zip_by_magic(self, temp_dir, make_zip):
        path = _write(temp_dir, "download", make_zip({"a": "b"}))

        assert detect_archive_type(path) == ArchiveType.ZIP

    def test_detect_tar_gz_by_magic(self, temp_dir, make_tar_gz):
        path = _write(temp_dir, "download", make_tar_gz({"a": "b"}))

        assert detect_archive_type(path) == ArchiveType.TAR_GZ

    @pytest.mark.parametrize("name,expected", [
        ("x.zip", ArchiveType.ZIP),
        ("x.tar.gz", ArchiveType.TAR_GZ),
        ("x.tgz", ArchiveType.TAR_GZ),
        ("serde-1.0.0.crate", ArchiveType.TAR_GZ),
    ])
    def test_detect_by_name(self, temp_dir, name, expected):
        path = _write(temp_dir, name, b"")

        assert detect_archive_type(path) == expected

    def test_unknown_type_raises(self, temp_dir):
        path = _write(temp_dir, "x.rar", b"Rar!\x1a\x07")

        with pytest.raises(UnsupportedArchiveError):
            detect_archive_type(path)

    def test_extract_detects_when_type_missing(self, temp_dir, make_tar_gz):
        path = _write(temp_dir, "download", make_tar_gz({"a.txt": "b"}))

        ArchiveExtractor().extract(path, temp_dir / "out")

        assert (temp_dir / "out" / "a.txt").exists()


class TestLayoutHelpers:
    """Tests for source root helpers."""

    def test_descend_single_dir(self, temp_dir):
        (temp_dir / "pkg-1.0" / "src").mkdir(parents=True)

        assert descend_single_dir(temp_dir) == temp_dir / "pkg-1.0"

    def test_descend_stops_with_siblings(self, temp_dir):
        (temp_dir / "a").mkdir()
        (temp_dir / "b.txt").write_text("x")

        assert descend_single_dir(temp_dir) == temp_dir

    def test_prefer_subdir(self, temp_dir):
        (temp_dir / "src").mkdir()

        assert prefer_subdir(temp_dir, "src") == temp_dir / "src"
        assert prefer_subdir(temp_dir, "lib") == temp_dir
