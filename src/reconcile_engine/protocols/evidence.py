"""Protocols for evidence content access and prior dispositions."""

from __future__ import annotations

from typing import Protocol

from reconcile_engine.models.domain import DeltaBaseline, DeltaScan, EvidenceItem, RepoStructure


class EvidenceProvider(Protocol):
    async def describe_repository(
        self, root: str, include_dependencies: bool = True
    ) -> RepoStructure: ...

    async def enumerate_evidence(self, root: str, max_items: int) -> list[EvidenceItem]: ...

    async def enumerate_delta(self, root: str, baseline: DeltaBaseline) -> DeltaScan: ...


class DispositionLookup(Protocol):
    async def terminal_evidence_keys(self, root: str) -> set[str]: ...
