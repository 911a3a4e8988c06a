"""
Shared pytest fixtures for package index tests.

Provides reusable fixtures for:
- Configuration and settings
- SQLite storage
- In-memory zip and tar.gz archives
- Mocked HTTP clients
"""

import io
import tarfile
import tempfile
import zipfile
from pathlib import Path
from typing import Callable, Generator

import httpx
import pytest

from pkgindex.config import Settings, reset_settings
from pkgindex.storage import SqliteStore
from pkgindex.utils.logging import reset_logging


@pytest.fixture(autouse=True)
def reset_global_state():
    """
    Reset cached settings and logging before and after each test.

    Keeps the CLI's logging setup from leaking between tests.
    """
    reset_settings()
    reset_logging()
    yield
    reset_settings()
    reset_logging()


@pytest.fixture
def temp_dir() -> Generator[Path, None, None]:
    """Provide a temporary directory that's cleaned up after the test."""
    with tempfile.TemporaryDirectory() as tmpdir:
        yield Path(tmpdir)


@pytest.fixture
def test_settings(temp_dir: Path) -> Settings:
    """
    Provide test settings with temporary database and work paths.

    Rate limiting is disabled for fast tests.
    """
    return Settings(
        storage={"database_path": str(temp_dir / "test.db")},
        crawler={
            "workers": 2,
            "rate_limit_seconds": 0,
            "temp_dir": str(temp_dir / "work"),
        },
    )


@pytest.fixture
def store(test_settings: Settings) -> Generator[SqliteStore, None, None]:
    """Provide an initialized store on a fresh database."""
    store = SqliteStore.from_settings(test_settings)
    yield store
    store.close()


def build_zip(files: dict[str, bytes | str]) -> bytes:
    """Zip archive bytes with the given member names and contents."""
    buffer = io.BytesIO()
    with zipfile.ZipFile(buffer, "w", zipfile.ZIP_DEFLATED) as zf:
        for name, content in files.items():
            zf.writestr(name, content)
    return buffer.getvalue()


def build_tar_gz(files: dict[str, bytes | str]) -> bytes:
    """Gzipped tar archive bytes with the given member names and contents."""
    buffer = io.BytesIO()
    with tarfile.open(fileobj=buffer, mode="w:gz") as tf:
        for name, content in files.items():
            data = content.encode() if isinstance(content, str) else content
            info = tarfile.TarInfo(name)
            info.size = len(data)
            tf.addfile(info, io.BytesIO(data))
    return buffer.getvalue()


@pytest.fixture
def make_zip() -> Callable[[dict[str, bytes | str]], bytes]:
    return build_zip


@pytest.fixture
def make_tar_gz() -> Callable[[dict[str, bytes | str]], bytes]:
    return build_tar_gz


@pytest.fixture
def mock_client() -> Callable[..., httpx.AsyncClient]:
    """
    Factory for clients backed by a request handler.

    Example:
        >>> async with mock_client(lambda request: httpx.Response(200, json={})) as client:
        ...     await client.get("https://registry.example/pkg")
    """

    def factory(handler: Callable[[httpx.Request], httpx.Response]) -> httpx.AsyncClient:
        return httpx.AsyncClient(
            transport=httpx.MockTransport(handler),
            headers={"User-Agent": "pkgindex-test"},
        )

    return factory


GO_LIBRARY = """// Package hello greets people.
package hello

import (
\t"fmt"
\t"strings"
)

// Greeting is the default greeting.
const Greeting = "hello"

// Greeter says hello.
type Greeter struct {
\tName string
}

// Greet returns a greeting for name.
func (g *Greeter) Greet(name string) string {
\treturn fmt.Sprintf("%s, %s", Greeting, strings.TrimSpace(name))
}

// New creates a Greeter.
//
// Deprecated: use Greeter{} directly.
func New() *Greeter {
\treturn &Greeter{}
}

func helper() {}
"""


@pytest.fixture
def go_module_zip() -> Callable[[str, str], bytes]:
    """Factory for Go module zips laid out like the module proxy serves them."""

    def factory(module: str, version: str) -> bytes:
        prefix = f"{module}@{version}"
        return build_zip({
            f"{prefix}/go.mod": f"module {module}\n\ngo 1.21\n",
            f"{prefix}/LICENSE": "MIT License\n\nPermission is hereby granted, free of charge",
            f"{prefix}/hello.go": GO_LIBRARY,
            f"{prefix}/hello_test.go": "package hello\n\nfunc TestX() {}\n",
            f"{prefix}/internal/util/util.go": (
                f'package util\n\nimport "{module}"\n\nfunc Util() {{}}\n'
            ),
        })

    return factory
