"""Text preprocessing for similarity scoring."""

from __future__ import annotations

import re

_WORD_RE = re.compile(r"\W+")


def tokenize(text: str) -> list[str]:
    """Lowercase, split on non-word characters, keep words longer than 2 chars."""
    return [t for t in _WORD_RE.split(text.lower()) if len(t) > 2]


def bigrams(tokens: list[str]) -> set[tuple[str, str]]:
    """Ordered adjacent-word pairs."""
    return {(tokens[i], tokens[i + 1]) for i in range(len(tokens) - 1)}
