"""Rule-based atom quality scoring and issue detection."""

from __future__ import annotations

from reconcile_engine.config.constants import (
    IMPLEMENTATION_PATTERNS,
    QUALITY_WEIGHTS,
    VAGUE_OUTCOME_PATTERNS,
)
from reconcile_engine.models.domain import AtomQualityResult, InferredAtom


def score_atom(atom: InferredAtom) -> int:
    """0-100 score from fixed weighted rules."""
    score = 0
    if atom.description and len(atom.description.strip()) > 5:
        score += QUALITY_WEIGHTS["description"]
    if atom.observable_outcomes:
        score += QUALITY_WEIGHTS["outcomes"]
    if atom.category:
        score += QUALITY_WEIGHTS["category"]
    if atom.reasoning and len(atom.reasoning.strip()) > 10:
        score += QUALITY_WEIGHTS["reasoning"]
    if atom.confidence >= 50:
        score += QUALITY_WEIGHTS["confidence"]
    if not atom.ambiguity_reasons:
        score += QUALITY_WEIGHTS["no_ambiguity"]
    if atom.source_reference is not None and atom.source_reference.file_path:
        score += QUALITY_WEIGHTS["source_reference"]
    return score


def rule_result(atom: InferredAtom, threshold: int) -> AtomQualityResult:
    score = score_atom(atom)
    return AtomQualityResult(
        atom_temp_id=atom.temp_id,
        score=score,
        passed=score >= threshold,
        source="rules",
    )


def description_issues(description: str) -> list[str]:
    issues = [
        f"Description contains implementation detail: {p.pattern}"
        for p in IMPLEMENTATION_PATTERNS
        if p.search(description)
    ]
    if len(description) < 20:
        issues.append("Description too short (< 20 chars)")
    return issues


def outcome_issues(outcomes: list[str]) -> list[str]:
    if not outcomes:
        return ["No observable outcomes defined"]
    issues: list[str] = []
    for outcome in outcomes:
        if len(outcome) < 10:
            issues.append(f'Outcome too short: "{outcome}"')
        if len(outcome) < 30 and any(p.search(outcome) for p in VAGUE_OUTCOME_PATTERNS):
            issues.append(f'Outcome may be vague: "{outcome}"')
    return issues


def atom_issues(atom: InferredAtom) -> list[str]:
    return description_issues(atom.description) + outcome_issues(atom.observable_outcomes)
