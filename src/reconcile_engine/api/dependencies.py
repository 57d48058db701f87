"""FastAPI dependency injection helpers."""

from __future__ import annotations

from fastapi import Request

from reconcile_engine.pipeline.orchestrator import ReconciliationPipeline
from reconcile_engine.storage.sqlite_run_store import SQLiteRunStore


def get_pipeline(request: Request) -> ReconciliationPipeline:
    return request.app.state.pipeline


def get_run_store(request: Request) -> SQLiteRunStore:
    return request.app.state.run_store


def get_active_runs(request: Request) -> set[str]:
    return request.app.state.active_runs
