"""In-memory evidence provider, loadable from a JSON fixture file."""

from __future__ import annotations

import json
from pathlib import Path

from reconcile_engine.config.constants import BASE_CONFIDENCE
from reconcile_engine.exceptions import DiscoveryError
from reconcile_engine.models.domain import (
    DeltaBaseline,
    DeltaScan,
    DependencyEdge,
    EvidenceItem,
    EvidenceType,
    RepoStructure,
)


class InMemoryEvidenceProvider:
    """Serves a fixed evidence set. Delta scans return the items marked as changed."""

    def __init__(
        self,
        evidence: list[EvidenceItem],
        files: list[str] | None = None,
        dependency_edges: list[DependencyEdge] | None = None,
        changed_keys: list[str] | None = None,
        linked_atoms: dict[str, str] | None = None,
    ) -> None:
        self._evidence = list(evidence)
        self._files = files if files is not None else sorted({e.file_path for e in evidence})
        self._edges = list(dependency_edges or [])
        self._changed_keys = changed_keys
        self._linked_atoms = dict(linked_atoms or {})

    async def describe_repository(self, root: str, include_dependencies: bool = True) -> RepoStructure:
        return RepoStructure(
            files=list(self._files),
            dependency_edges=list(self._edges) if include_dependencies else [],
        )

    async def enumerate_evidence(self, root: str, max_items: int) -> list[EvidenceItem]:
        return self._evidence[:max_items]

    async def enumerate_delta(self, root: str, baseline: DeltaBaseline) -> DeltaScan:
        if self._changed_keys is None:
            return DeltaScan(fallback_reason="Fixture has no delta information")
        changed = set(self._changed_keys)
        return DeltaScan(
            changed_items=[e for e in self._evidence if e.key in changed],
            linked_atoms=dict(self._linked_atoms),
        )


def evidence_from_dict(data: dict) -> EvidenceItem:
    try:
        type_ = EvidenceType(data["type"])
        return EvidenceItem(
            type=type_,
            file_path=data["filePath"],
            name=data["name"],
            code=data.get("code"),
            line_number=data.get("lineNumber"),
            metadata=data.get("metadata", {}),
            base_confidence=data.get("baseConfidence", BASE_CONFIDENCE[type_.value]),
        )
    except (KeyError, ValueError) as e:
        raise DiscoveryError(f"Invalid evidence entry {data!r}: {e}") from e


def load_fixture(path: str | Path) -> InMemoryEvidenceProvider:
    """Load a provider from JSON with ``evidence``, ``files``, ``dependencies`` and ``delta`` keys."""
    with open(path) as f:
        data = json.load(f)

    delta = data.get("delta") or {}
    return InMemoryEvidenceProvider(
        evidence=[evidence_from_dict(e) for e in data.get("evidence", [])],
        files=data.get("files"),
        dependency_edges=[
            DependencyEdge(from_file=d["from"], to_file=d["to"])
            for d in data.get("dependencies", [])
        ],
        changed_keys=delta.get("changed"),
        linked_atoms=delta.get("linkedAtoms"),
    )
