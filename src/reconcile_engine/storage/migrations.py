"""Idempotent database schema creation."""

from __future__ import annotations

import aiosqlite

RUNS_TABLE = """
CREATE TABLE IF NOT EXISTS runs (
    run_id TEXT PRIMARY KEY,
    root_directory TEXT NOT NULL,
    status TEXT NOT NULL,
    phase TEXT NOT NULL,
    state TEXT NOT NULL,
    created_at TEXT NOT NULL,
    updated_at TEXT NOT NULL
)
"""

RUNS_ROOT_INDEX = """
CREATE INDEX IF NOT EXISTS idx_runs_root ON runs(root_directory, updated_at)
"""

DISPOSITIONS_TABLE = """
CREATE TABLE IF NOT EXISTS dispositions (
    root_directory TEXT NOT NULL,
    evidence_key TEXT NOT NULL,
    decision TEXT NOT NULL,
    atom_temp_id TEXT NOT NULL,
    run_id TEXT NOT NULL,
    recorded_at TEXT NOT NULL,
    PRIMARY KEY (root_directory, evidence_key)
)
"""


async def initialize_run_db(db_path: str) -> None:
    async with aiosqlite.connect(db_path) as db:
        await db.execute(RUNS_TABLE)
        await db.execute(RUNS_ROOT_INDEX)
        await db.execute(DISPOSITIONS_TABLE)
        await db.commit()
