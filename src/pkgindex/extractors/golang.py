"""
Go symbol extraction.

A line-oriented scanner for top-level declarations: funcs, methods,
types, consts and vars, including grouped const/var/type blocks. Doc
comments are the // lines directly above a declaration.
"""

import re

from pkgindex.core.models import Symbol
from pkgindex.extractors.base import FileExtractor

_FUNC_RE = re.compile(r"^func\s+(?:\((?P<recv>[^)]*)\)\s*)?(?P<name>[A-Za-z_]\w*)\s*(?:\[[^\]]*\])?\s*\(")
_TYPE_RE = re.compile(r"^type\s+(?P<name>[A-Za-z_]\w*)\b(?P<rest>.*)$")
_VALUE_RE = re.compile(r"^(?P<kind>const|var)\s+(?P<name>[A-Za-z_]\w*)\b")
_GROUP_RE = re.compile(r"^(?P<kind>const|var|type)\s*\(\s*$")
_GROUP_ENTRY_RE = re.compile(r"^\s+(?P<name>[A-Za-z_]\w*)\b(?P<rest>.*)$")
_RECV_TYPE_RE = re.compile(r"\*?\s*(?P<type>[A-Za-z_]\w*)\s*(?:\[[^\]]*\])?\s*$")


def is_exported(name: str) -> bool:
    return bool(name) and name[0].isupper()


def _receiver_type(receiver: str) -> str:
    # "s *Server" or "*Server" or "s Server[T]"
    parts = receiver.strip().split(None, 1)
    candidate = parts[-1] if parts else ""
    match = _RECV_TYPE_RE.search(candidate)
    return match.group("type") if match else ""


def _type_kind(rest: str) -> str:
    rest = rest.strip()
    if rest.startswith("struct"):
        return "struct"
    if rest.startswith("interface"):
        return "interface"
    return "type"


class GoExtractor(FileExtractor):
    """Extracts top-level declarations from .go files."""

    suffixes = (".go",)
    skip_dirs = frozenset({"vendor", "testdata"})
    skip_file_suffixes = ("_test.go",)

    def parse_source(self, source: str, file_path: str) -> list[Symbol]:
        symbols: list[Symbol] = []
        doc_lines: list[str] = []
        group_kind = ""
        depth = 0

        for lineno, raw in enumerate(source.splitlines(), start=1):
            line = raw.rstrip()
            stripped = line.strip()

            if group_kind:
                if stripped == ")":
                    group_kind = ""
                    doc_lines = []
                    continue
                if stripped.startswith("//"):
                    doc_lines.append(stripped[2:].strip())
                    continue
                match = _GROUP_ENTRY_RE.match(line)
                if match and raw.startswith(("\t", " ")) and depth == 0:
                    name = match.group("name")
                    kind = _type_kind(match.group("rest")) if group_kind == "type" else group_kind
                    symbols.append(self._symbol(
                        name, kind, f"{group_kind} {stripped}", file_path, lineno, doc_lines))
                depth += line.count("{") - line.count("}")
                doc_lines = []
                continue

            if depth > 0:
                depth += line.count("{") - line.count("}")
                continue

            if stripped.startswith("//"):
                doc_lines.append(stripped[2:].strip())
                continue

            if match := _GROUP_RE.match(line):
                group_kind = match.group("kind")
                continue

            if match := _FUNC_RE.match(line):
                name = match.group("name")
                receiver = match.group("recv")
                if receiver is not None:
                    owner = _receiver_type(receiver)
                    qualified = f"{owner}.{name}" if owner else name
                    symbols.append(self._symbol(
                        qualified, "method", _signature(line), file_path, lineno, doc_lines,
                        public=is_exported(name) and is_exported(owner)))
                else:
                    symbols.append(self._symbol(
                        name, "function", _signature(line), file_path, lineno, doc_lines))
            elif match := _TYPE_RE.match(line):
                symbols.append(self._symbol(
                    match.group("name"), _type_kind(match.group("rest")),
                    _signature(line), file_path, lineno, doc_lines))
            elif match := _VALUE_RE.match(line):
                symbols.append(self._symbol(
                    match.group("name"), match.group("kind"),
                    _signature(line), file_path, lineno, doc_lines))

            depth += line.count("{") - line.count("}")
            doc_lines = []

        return symbols

    @staticmethod
    def _symbol(
        name: str,
        kind: str,
        signature: str,
        file_path: str,
        line: int,
        doc_lines: list[str],
        public: bool | None = None,
    ) -> Symbol:
        return Symbol(
            name=name,
            kind=kind,
            signature=signature,
            file_path=file_path,
            line=line,
            is_public=is_exported(name) if public is None else public,
            doc="\n".join(doc_lines),
        )


def _signature(line: str) -> str:
    return line.strip().rstrip("{").strip()
