"""Run state construction, phase transitions and context shedding."""

from __future__ import annotations

from dataclasses import replace
from datetime import datetime, timezone
from uuid import uuid4

from reconcile_engine.models.domain import PHASE_ORDER, Phase, RunOptions, RunState


def create_run_state(
    root_directory: str,
    options: RunOptions | None = None,
    run_id: str | None = None,
) -> RunState:
    return RunState(
        run_id=run_id or f"run-{uuid4().hex[:12]}",
        root_directory=root_directory,
        options=options or RunOptions(),
    )


def next_phase(phase: Phase) -> Phase:
    """Linear successor; PERSIST is terminal and maps to itself."""
    index = PHASE_ORDER.index(phase)
    return PHASE_ORDER[min(index + 1, len(PHASE_ORDER) - 1)]


def format_phase_error(phase: Phase, error: Exception) -> str:
    timestamp = datetime.now(timezone.utc).isoformat()
    return f"[{timestamp}] {phase.value}: {error}"


def shed_consumed_context(state: RunState) -> None:
    """Release per-item context once inference has consumed it.

    Analyses are dropped entirely; evidence items keep their identity but lose code snippets.
    """
    state.evidence_analysis = {}
    state.evidence_items = [
        replace(item, code=None) if item.code is not None else item
        for item in state.evidence_items
    ]
