"""SQLite-backed run checkpoints and prior evidence dispositions."""

from __future__ import annotations

from datetime import datetime, timezone

import aiosqlite
from pydantic import TypeAdapter

from reconcile_engine.exceptions import RunNotFoundError
from reconcile_engine.models.domain import Decision, RunState
from reconcile_engine.storage.migrations import initialize_run_db

_STATE_ADAPTER = TypeAdapter(RunState)

# Decisions that settle evidence for later delta runs.
TERMINAL_DECISIONS = {Decision.APPROVED, Decision.REJECTED}


class SQLiteRunStore:
    def __init__(self, db_path: str) -> None:
        self._db_path = db_path

    async def initialize(self) -> None:
        await initialize_run_db(self._db_path)

    async def save_state(self, state: RunState) -> None:
        now = datetime.now(timezone.utc).isoformat()
        async with aiosqlite.connect(self._db_path) as db:
            await db.execute(
                "INSERT INTO runs (run_id, root_directory, status, phase, state, created_at, updated_at) "
                "VALUES (?, ?, ?, ?, ?, ?, ?) "
                "ON CONFLICT(run_id) DO UPDATE SET "
                "status = excluded.status, phase = excluded.phase, "
                "state = excluded.state, updated_at = excluded.updated_at",
                (
                    state.run_id,
                    state.root_directory,
                    state.status.value,
                    state.phase.value,
                    _STATE_ADAPTER.dump_json(state).decode(),
                    state.started_at.isoformat(),
                    now,
                ),
            )
            await db.commit()

    async def load_state(self, run_id: str) -> RunState:
        async with aiosqlite.connect(self._db_path) as db:
            db.row_factory = aiosqlite.Row
            async with db.execute("SELECT state FROM runs WHERE run_id = ?", (run_id,)) as cursor:
                row = await cursor.fetchone()
                if row is None:
                    raise RunNotFoundError(f"Run not found: {run_id}")
                return _STATE_ADAPTER.validate_json(row["state"])

    async def list_runs(self, limit: int = 50) -> list[dict]:
        async with aiosqlite.connect(self._db_path) as db:
            db.row_factory = aiosqlite.Row
            async with db.execute(
                "SELECT run_id, root_directory, status, phase, updated_at FROM runs "
                "ORDER BY updated_at DESC LIMIT ?",
                (limit,),
            ) as cursor:
                rows = await cursor.fetchall()
                return [dict(row) for row in rows]

    async def record_dispositions(self, state: RunState) -> int:
        """Record approved/rejected atoms' evidence as terminal for ``state.root_directory``."""
        now = datetime.now(timezone.utc).isoformat()
        rows = []
        for atom, decision in zip(state.inferred_atoms, state.decisions):
            if decision not in TERMINAL_DECISIONS:
                continue
            for source in atom.evidence_sources:
                key = f"{source.type.value}:{source.file_path}:{source.name}"
                rows.append(
                    (state.root_directory, key, decision.value, atom.temp_id, state.run_id, now)
                )

        if not rows:
            return 0
        async with aiosqlite.connect(self._db_path) as db:
            await db.executemany(
                "INSERT OR REPLACE INTO dispositions "
                "(root_directory, evidence_key, decision, atom_temp_id, run_id, recorded_at) "
                "VALUES (?, ?, ?, ?, ?, ?)",
                rows,
            )
            await db.commit()
        return len(rows)

    async def terminal_evidence_keys(self, root: str) -> set[str]:
        async with aiosqlite.connect(self._db_path) as db:
            async with db.execute(
                "SELECT evidence_key FROM dispositions WHERE root_directory = ?", (root,)
            ) as cursor:
                rows = await cursor.fetchall()
                return {row[0] for row in rows}
