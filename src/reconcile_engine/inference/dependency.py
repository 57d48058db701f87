"""Dependency graph used for the foundational-module confidence boost."""

from __future__ import annotations

import re
from pathlib import PurePosixPath

from reconcile_engine.models.domain import DependencyEdge, EvidenceItem, EvidenceType

_TEST_SUFFIX_RE = re.compile(r"\.(?:e2e-spec|spec|test)$|_test$")
_TEST_PREFIX_RE = re.compile(r"^test_")


def _strip_extension(path: str) -> str:
    p = PurePosixPath(path)
    return str(p.with_suffix("")) if p.suffix else path


def related_source_stem(test_path: str) -> str:
    """``src/auth/login.spec.ts`` -> ``src/auth/login``; ``tests/test_login.py`` -> ``tests/login``."""
    stem = _TEST_SUFFIX_RE.sub("", _strip_extension(test_path))
    p = PurePosixPath(stem)
    return str(p.with_name(_TEST_PREFIX_RE.sub("", p.name)))


class DependencyGraph:
    def __init__(self, edges: list[DependencyEdge]) -> None:
        self._dependents: dict[str, set[str]] = {}
        self._dependencies: dict[str, set[str]] = {}
        for edge in edges:
            self._dependents.setdefault(edge.to_file, set()).add(edge.from_file)
            self._dependencies.setdefault(edge.from_file, set()).add(edge.to_file)

        files = set(self._dependents) | set(self._dependencies)
        self._by_stem: dict[str, str] = {_strip_extension(f): f for f in files}
        self._by_basename: dict[str, list[str]] = {}
        for f in sorted(files):
            self._by_basename.setdefault(PurePosixPath(_strip_extension(f)).name, []).append(f)

    @property
    def is_empty(self) -> bool:
        return not self._dependents

    def dependent_count(self, file_path: str) -> int:
        return len(self._dependents.get(file_path, ()))

    def dependency_count(self, file_path: str) -> int:
        return len(self._dependencies.get(file_path, ()))

    def is_foundational(self, file_path: str, min_dependents: int = 3, max_dependencies: int = 2) -> bool:
        return (
            self.dependent_count(file_path) >= min_dependents
            and self.dependency_count(file_path) <= max_dependencies
        )

    def resolve_sources(self, item: EvidenceItem) -> list[str]:
        """Graph files that an evidence item traces to."""
        if item.type != EvidenceType.TEST:
            return [item.file_path]

        explicit = item.metadata.get("related_source_files")
        if explicit:
            return list(explicit)

        stem = related_source_stem(item.file_path)
        if stem in self._by_stem:
            return [self._by_stem[stem]]
        return self._by_basename.get(PurePosixPath(stem).name, [])

    def traces_to_foundational(
        self, item: EvidenceItem, min_dependents: int = 3, max_dependencies: int = 2
    ) -> bool:
        return any(
            self.is_foundational(path, min_dependents, max_dependencies)
            for path in self.resolve_sources(item)
        )
