"""
Python symbol extraction using the standard ast module.

Collects module-level functions, classes, methods and assignments.
Nested function bodies are not descended into.
"""

import ast

from pkgindex.core.models import Symbol
from pkgindex.extractors.base import FileExtractor


def _doc_first_line(node: ast.AST) -> str:
    doc = ast.get_docstring(node, clean=True)
    if not doc:
        return ""
    return doc.strip().splitlines()[0]


def _function_signature(node: ast.FunctionDef | ast.AsyncFunctionDef) -> str:
    prefix = "async def" if isinstance(node, ast.AsyncFunctionDef) else "def"
    signature = f"{prefix} {node.name}({ast.unparse(node.args)})"
    if node.returns is not None:
        signature += f" -> {ast.unparse(node.returns)}"
    return signature


def _class_signature(node: ast.ClassDef) -> str:
    bases = [ast.unparse(b) for b in node.bases]
    bases.extend(ast.unparse(k) for k in node.keywords)
    if bases:
        return f"class {node.name}({', '.join(bases)})"
    return f"class {node.name}"


def _is_public(name: str) -> bool:
    return not name.startswith("_")


def _assigned_names(node: ast.Assign | ast.AnnAssign) -> list[str]:
    targets = node.targets if isinstance(node, ast.Assign) else [node.target]
    return [t.id for t in targets if isinstance(t, ast.Name)]


class _SymbolCollector(ast.NodeVisitor):
    """Collect declarations from module and class scopes."""

    def __init__(self, file_path: str) -> None:
        self.file_path = file_path
        self.symbols: list[Symbol] = []
        self._class_stack: list[str] = []

    def _qualified(self, name: str) -> str:
        return ".".join([*self._class_stack, name])

    def visit_ClassDef(self, node: ast.ClassDef) -> None:  # noqa: N802
        public = _is_public(node.name) and all(_is_public(c) for c in self._class_stack)
        self.symbols.append(Symbol(
            name=self._qualified(node.name),
            kind="class",
            signature=_class_signature(node),
            file_path=self.file_path,
            line=node.lineno,
            is_public=public,
            doc=_doc_first_line(node),
        ))
        self._class_stack.append(node.name)
        for child in node.body:
            self.visit(child)
        self._class_stack.pop()

    def visit_FunctionDef(self, node: ast.FunctionDef) -> None:  # noqa: N802
        self._add_function(node)

    def visit_AsyncFunctionDef(self, node: ast.AsyncFunctionDef) -> None:  # noqa: N802
        self._add_function(node)

    def _add_function(self, node: ast.FunctionDef | ast.AsyncFunctionDef) -> None:
        in_class = bool(self._class_stack)
        # Dunder methods are part of the public protocol of a class
        dunder = node.name.startswith("__") and node.name.endswith("__")
        public = (_is_public(node.name) or (in_class and dunder)) and \
            all(_is_public(c) for c in self._class_stack)
        self.symbols.append(Symbol(
            name=self._qualified(node.name),
            kind="method" if in_class else "function",
            signature=_function_signature(node),
            file_path=self.file_path,
            line=node.lineno,
            is_public=public,
            doc=_doc_first_line(node),
        ))

    def visit_Assign(self, node: ast.Assign) -> None:  # noqa: N802
        self._add_assignment(node)

    def visit_AnnAssign(self, node: ast.AnnAssign) -> None:  # noqa: N802
        self._add_assignment(node)

    def _add_assignment(self, node: ast.Assign | ast.AnnAssign) -> None:
        if self._class_stack:
            return
        for name in _assigned_names(node):
            if name == "__all__":
                continue
            self.symbols.append(Symbol(
                name=name,
                kind="constant" if name.isupper() else "variable",
                signature=ast.unparse(node).splitlines()[0][:200],
                file_path=self.file_path,
                line=node.lineno,
                is_public=_is_public(name),
            ))

    def visit_If(self, node: ast.If) -> None:  # noqa: N802
        # Conditional definitions (TYPE_CHECKING, version checks) still count
        for child in node.body + node.orelse:
            self.visit(child)

    def visit_Try(self, node: ast.Try) -> None:  # noqa: N802
        for child in node.body + node.orelse + node.finalbody:
            self.visit(child)
        for handler in node.handlers:
            for child in handler.body:
                self.visit(child)

    def generic_visit(self, node: ast.AST) -> None:
        # Only module and class bodies are scanned
        if isinstance(node, ast.Module):
            for child in node.body:
                self.visit(child)


class PythonExtractor(FileExtractor):
    """
    Extracts symbols from .py files.

    Example:
        >>> extractor = PythonExtractor()
        >>> symbols = extractor.parse_directory(Path("requests-2.31.0/src"))
        >>> [s.name for s in symbols if s.kind == "function"][:3]
        ['get', 'post', 'request']
    """

    suffixes = (".py",)
    skip_dirs = frozenset({
        "__pycache__", "venv", "env", "tests", "test", "build", "dist",
        "node_modules",
    })

    def parse_source(self, source: str, file_path: str) -> list[Symbol]:
        tree = ast.parse(source, filename=file_path)
        collector = _SymbolCollector(file_path)
        collector.visit(tree)
        return collector.symbols
