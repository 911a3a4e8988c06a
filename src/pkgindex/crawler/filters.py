"""
Package path filtering for discovery.

Applies ecosystem skip rules and configured exclude patterns before a
version is enqueued, so skipped versions never reach a worker.
"""

import re

from pkgindex.utils.logging import get_logger

logger = get_logger(__name__)


class ModuleFilter:
    """
    Filter package paths based on skip rules and patterns.

    Supports:
    - Suffix rules (e.g. test-only modules)
    - Path segment rules (e.g. vendored copies)
    - Internal-package rules with allowed prefixes
    - Include/exclude regex patterns

    Example:
        >>> module_filter = ModuleFilter.for_go()
        >>> module_filter.is_allowed("github.com/a/b")
        True
        >>> module_filter.is_allowed("github.com/a/b/vendor/c")
        False
    """

    def __init__(
        self,
        skip_suffixes: list[str] | None = None,
        skip_segments: list[str] | None = None,
        internal_allowed_prefixes: list[str] | None = None,
        skip_internal: bool = False,
        patterns_include: list[str] | None = None,
        patterns_exclude: list[str] | None = None,
    ) -> None:
        """
        Initialize module filter.

        Args:
            skip_suffixes: Paths ending with any of these are skipped
            skip_segments: Paths containing any of these are skipped
            internal_allowed_prefixes: Prefixes exempt from the internal rule
            skip_internal: Skip paths containing "/internal/"
            patterns_include: Regex patterns paths must match (empty = all)
            patterns_exclude: Regex patterns to reject
        """
        self.skip_suffixes = skip_suffixes or []
        self.skip_segments = skip_segments or []
        self.internal_allowed_prefixes = internal_allowed_prefixes or []
        self.skip_internal = skip_internal
        self.patterns_include = patterns_include or []
        self.patterns_exclude = patterns_exclude or []

        self._include_compiled = [re.compile(p) for p in self.patterns_include]
        self._exclude_compiled = [re.compile(p) for p in self.patterns_exclude]

    @classmethod
    def for_go(cls, patterns_exclude: list[str] | None = None) -> "ModuleFilter":
        """Skip rules for the Go module index."""
        return cls(
            skip_suffixes=[".test"],
            skip_segments=["/vendor/"],
            internal_allowed_prefixes=["golang.org/x/"],
            skip_internal=True,
            patterns_exclude=patterns_exclude,
        )

    def get_rejection_reason(self, path: str) -> str | None:
        """
        Explain why a path is rejected.

        Args:
            path: Package path to check

        Returns:
            Reason string, or None if the path is allowed
        """
        for suffix in self.skip_suffixes:
            if path.endswith(suffix):
                return f"suffix {suffix}"

        for segment in self.skip_segments:
            if segment in path:
                return f"contains {segment}"

        if self.skip_internal and "/internal/" in path:
            if not any(path.startswith(p) for p in self.internal_allowed_prefixes):
                return "internal package"

        if self._include_compiled:
            if not any(p.search(path) for p in self._include_compiled):
                return "no include pattern matched"

        for pattern in self._exclude_compiled:
            if pattern.search(path):
                return f"excluded by {pattern.pattern}"

        return None

    def is_allowed(self, path: str) -> bool:
        reason = self.get_rejection_reason(path)
        if reason is not None:
            logger.debug(f"Skipping {path}: {reason}")
            return False
        return True

    def filter_paths(self, paths: list[str]) -> list[str]:
        return [p for p in paths if self.is_allowed(p)]
