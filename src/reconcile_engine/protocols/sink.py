"""Protocol for the downstream persistence collaborator."""

from __future__ import annotations

from typing import Protocol

from reconcile_engine.models.domain import ReconciliationResult


class ResultSink(Protocol):
    async def persist(self, result: ReconciliationResult) -> None: ...
