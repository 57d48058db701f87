"""Textual constraints on inferred atoms and confidence normalization."""

from __future__ import annotations

from reconcile_engine.config.constants import CONJUNCTION_PATTERN, IMPLEMENTATION_PATTERNS

DEFAULT_CONFIDENCE = 50


def find_violations(description: str) -> list[str]:
    """Implementation vocabulary and multi-behavior phrasing in an atom description."""
    violations: list[str] = []
    for pattern in IMPLEMENTATION_PATTERNS:
        if pattern.search(description):
            violations.append(
                f"Description contains implementation detail: {pattern.pattern}"
            )
    if CONJUNCTION_PATTERN.search(description):
        violations.append("Description combines multiple behaviors")
    return violations


def normalize_confidence(value: float | None) -> int:
    """Rescale 0-1 values to 0-100 and round half up; out-of-range values get the default."""
    if value is None:
        return DEFAULT_CONFIDENCE
    if 1 < value <= 100:
        return int(value + 0.5)
    if 0 <= value <= 1:
        return int(value * 100 + 0.5)
    return DEFAULT_CONFIDENCE
