"""
Go modules via the module index and module proxy.
"""

import os
import re
from pathlib import Path

from pkgindex.core.exceptions import MetadataError
from pkgindex.core.models import ArchiveType, ImportEdge, PackageRecord, VersionRecord
from pkgindex.crawler.archive import descend_single_dir
from pkgindex.crawler.discovery import IndexStream
from pkgindex.crawler.filters import ModuleFilter
from pkgindex.ecosystems.base import Ecosystem
from pkgindex.utils.logging import get_logger
from pkgindex.utils.versions import (
    escape_module_path,
    is_stable_version,
    is_tagged_version,
    module_to_repo_url,
)

logger = get_logger(__name__)

SKIPPED_DIRS = frozenset({"vendor", "testdata"})

_MODULE_RE = re.compile(r"^module\s+(\S+)", re.MULTILINE)
_GO_VERSION_RE = re.compile(r"^go\s+(\S+)", re.MULTILINE)
_IMPORT_BLOCK_RE = re.compile(r"^import\s*\((.*?)\)", re.MULTILINE | re.DOTALL)
_IMPORT_SINGLE_RE = re.compile(r'^import\s+(?:[\w.]+\s+)?"([^"]+)"', re.MULTILINE)
_QUOTED_RE = re.compile(r'"([^"]+)"')
_PACKAGE_CLAUSE_RE = re.compile(r"^package\s+\w+")
_SENTENCE_END_RE = re.compile(r"\.(\s|$)")


def parse_go_mod(content: str) -> tuple[str, str]:
    """Module path and go directive of go.mod content; empty strings when absent."""
    module = _MODULE_RE.search(content)
    go_version = _GO_VERSION_RE.search(content)
    return (
        module.group(1).strip('"') if module else "",
        go_version.group(1) if go_version else "",
    )


def read_go_mod(module_dir: Path) -> tuple[str, str]:
    """
    Read the module path and go directive from go.mod.

    Returns:
        Tuple of (module path, go version); empty strings when absent
    """
    go_mod = module_dir / "go.mod"
    if not go_mod.is_file():
        return "", ""
    return parse_go_mod(go_mod.read_text(encoding="utf-8", errors="replace"))


def package_synopsis(pkg_dir: Path) -> str:
    """
    First sentence of the package doc comment, "Package x does y."

    doc.go is consulted first, then the other non-test files in name order.
    Only line comments directly above the package clause count.
    """
    files = sorted(
        (p for p in pkg_dir.glob("*.go") if not p.name.endswith("_test.go")),
        key=lambda p: (p.name != "doc.go", p.name),
    )
    for path in files:
        try:
            lines = path.read_text(encoding="utf-8", errors="replace").splitlines()
        except OSError:
            continue

        comment: list[str] = []
        for line in lines:
            stripped = line.strip()
            if stripped.startswith("//"):
                comment.append(stripped[2:].strip())
            elif _PACKAGE_CLAUSE_RE.match(stripped):
                break
            else:
                comment = []
        else:
            continue

        paragraph: list[str] = []
        for text in comment:
            if not text:
                if paragraph:
                    break
                continue
            paragraph.append(text)
        doc = " ".join(paragraph)
        if doc.startswith("Package "):
            end = _SENTENCE_END_RE.search(doc)
            return doc[:end.start() + 1] if end else doc
    return ""


def parse_go_imports(source: str) -> list[str]:
    """Import paths declared in one Go source file."""
    imports = list(_IMPORT_SINGLE_RE.findall(source))
    for block in _IMPORT_BLOCK_RE.findall(source):
        for line in block.splitlines():
            line = line.split("//", 1)[0]
            imports.extend(_QUOTED_RE.findall(line))
    return imports


def iter_package_dirs(module_dir: Path):
    """Directories containing non-test Go files, skipping hidden, vendor and testdata."""
    for dirpath, dirnames, filenames in os.walk(module_dir):
        dirnames[:] = sorted(
            d for d in dirnames
            if not d.startswith(".") and d not in SKIPPED_DIRS
        )
        go_files = sorted(
            f for f in filenames
            if f.endswith(".go") and not f.endswith("_test.go")
        )
        if go_files:
            yield Path(dirpath), go_files


class GoEcosystem(Ecosystem):
    """
    Go modules.

    Versions come from the module index changelog; archives are the
    proxy's module zips, whose entries are prefixed "module@version/".
    """

    name = "go"
    archive_type = ArchiveType.ZIP

    def create_filter(self, exclude_patterns: list[str]) -> ModuleFilter:
        return ModuleFilter.for_go(patterns_exclude=exclude_patterns)

    def module_url(self, path: str) -> str:
        proxy = self.http_settings.go_proxy_url.rstrip("/")
        return f"{proxy}/{escape_module_path(path)}"

    async def fetch_metadata(self, record: VersionRecord) -> PackageRecord:
        version = record.version
        if not version:
            latest = await self.get_json(f"{self.module_url(record.path)}/@latest")
            version = latest.get("Version", "") if isinstance(latest, dict) else ""
            if not version:
                raise MetadataError("Proxy returned no latest version", package=record.path)

        return PackageRecord(
            ecosystem=self.name,
            name=record.path,
            version=version,
            repository_url=module_to_repo_url(record.path),
            archive_url=f"{self.module_url(record.path)}/@v/{version}.zip",
            archive_type=self.archive_type,
            is_tagged=is_tagged_version(version),
            is_stable=is_stable_version(version),
        )

    def source_root(self, extracted: Path) -> Path:
        # Proxy zips nest the module under every element of "host/path@version"
        root = extracted
        while not (root / "go.mod").is_file():
            child = descend_single_dir(root)
            if child == root:
                break
            root = child
        return root

    def enrich(self, package: PackageRecord, source_root: Path) -> None:
        super().enrich(package, source_root)
        go_mod = source_root / "go.mod"
        if go_mod.is_file():
            package.go_mod = go_mod.read_text(encoding="utf-8", errors="replace")
        module, go_version = parse_go_mod(package.go_mod)
        if module and module != package.name:
            logger.warning(
                f"go.mod declares {module}, index lists {package.name}")
        package.module_path = module or package.name
        package.has_valid_mod = bool(module)
        package.go_version = go_version
        if not package.description:
            package.description = package_synopsis(source_root)

    def extract_imports(self, source_root: Path, package: PackageRecord) -> list[ImportEdge]:
        """Scan every package directory for import declarations."""
        module = package.module_path or read_go_mod(source_root)[0] or package.name
        edges: dict[tuple[str, str], ImportEdge] = {}

        for pkg_dir, go_files in iter_package_dirs(source_root):
            rel = pkg_dir.relative_to(source_root).as_posix()
            importer = module if rel == "." else f"{module}/{rel}"
            for filename in go_files:
                try:
                    source = (pkg_dir / filename).read_text(encoding="utf-8", errors="replace")
                except OSError as e:
                    logger.debug(f"Cannot read {pkg_dir / filename}: {e}")
                    continue
                for imported in parse_go_imports(source):
                    if imported != importer:
                        edges[(importer, imported)] = ImportEdge(importer, imported, module)

        return list(edges.values())

    def default_source(self) -> IndexStream:
        return IndexStream(self.client, self.http_settings.go_index_url)
