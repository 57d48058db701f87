"""Shared test fixtures."""

from __future__ import annotations

import tempfile
from pathlib import Path

import pytest

from reconcile_engine.config.constants import BASE_CONFIDENCE
from reconcile_engine.config.settings import Settings
from reconcile_engine.models.domain import (
    EvidenceItem,
    EvidenceSource,
    EvidenceType,
    InferredAtom,
    SourceReference,
)


@pytest.fixture
def settings():
    """Test settings with temp paths and no LLM molecule naming."""
    tmp = tempfile.mkdtemp()
    return Settings(
        google_api_key="test-key",
        sqlite_run_db_path=str(Path(tmp) / "test_runs.db"),
        use_llm_for_naming=False,
        log_json=False,
    )


@pytest.fixture
def make_item():
    def _make(
        type_: EvidenceType | str = EvidenceType.TEST,
        file_path: str = "src/auth/login.spec.ts",
        name: str = "logs in with valid credentials",
        code: str | None = None,
        base_confidence: float | None = None,
        **metadata,
    ) -> EvidenceItem:
        type_ = EvidenceType(type_)
        return EvidenceItem(
            type=type_,
            file_path=file_path,
            name=name,
            code=code,
            line_number=1,
            metadata=metadata,
            base_confidence=BASE_CONFIDENCE[type_.value] if base_confidence is None else base_confidence,
        )

    return _make


@pytest.fixture
def make_atom():
    counter = {"n": 0}

    def _make(
        description: str = "User can log in with valid credentials",
        category: str = "functional",
        evidence_type: EvidenceType | str = EvidenceType.TEST,
        confidence: int = 80,
        outcomes: list[str] | None = None,
        file_path: str = "src/auth/login.spec.ts",
        temp_id: str | None = None,
        reasoning: str = "Inferred from test assertions on the login flow",
        ambiguity: list[str] | None = None,
    ) -> InferredAtom:
        counter["n"] += 1
        evidence_type = EvidenceType(evidence_type)
        name = f"evidence-{counter['n']}"
        return InferredAtom(
            temp_id=temp_id or f"atom-{counter['n']}",
            description=description,
            category=category,
            observable_outcomes=outcomes
            if outcomes is not None
            else ["Dashboard is displayed after login succeeds"],
            confidence=confidence,
            reasoning=reasoning,
            source_reference=SourceReference(file_path=file_path, name=name, line_number=1),
            evidence_sources=[
                EvidenceSource(
                    type=evidence_type, file_path=file_path, name=name, confidence=confidence
                )
            ],
            primary_evidence_type=evidence_type,
            ambiguity_reasons=list(ambiguity or []),
        )

    return _make


@pytest.fixture
def tmp_dir():
    """Create a temporary directory."""
    return tempfile.mkdtemp()
