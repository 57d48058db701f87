"""Include/exclude path filtering for discovered evidence."""

from __future__ import annotations

from fnmatch import fnmatch
from pathlib import PurePosixPath

from reconcile_engine.models.domain import EvidenceItem, RunOptions


def _normalize(path: str) -> str:
    if path.startswith("./"):
        path = path[2:]
    return path.lstrip("/")


def _matches_path(file_path: str, pattern: str) -> bool:
    """Prefix match for plain paths, glob match when the pattern has wildcards."""
    normalized = _normalize(file_path)
    pattern = _normalize(pattern)
    if any(ch in pattern for ch in "*?["):
        return fnmatch(normalized, pattern)
    return normalized == pattern or normalized.startswith(pattern.rstrip("/") + "/")


def is_included(file_path: str, options: RunOptions) -> bool:
    basename = PurePosixPath(file_path).name

    if options.include_paths and not any(_matches_path(file_path, p) for p in options.include_paths):
        return False
    if any(_matches_path(file_path, p) for p in options.exclude_paths):
        return False
    if options.include_file_patterns and not any(
        fnmatch(basename, p) for p in options.include_file_patterns
    ):
        return False
    if any(fnmatch(basename, p) for p in options.exclude_file_patterns):
        return False
    return True


def apply_path_filters(items: list[EvidenceItem], options: RunOptions) -> list[EvidenceItem]:
    return [item for item in items if is_included(item.file_path, options)]
