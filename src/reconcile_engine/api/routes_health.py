"""Health check endpoint."""

from __future__ import annotations

from fastapi import APIRouter, Depends

from reconcile_engine.api.dependencies import get_active_runs
from reconcile_engine.models.schemas import HealthResponse

router = APIRouter()


@router.get("/health", response_model=HealthResponse)
async def health(active_runs: set[str] = Depends(get_active_runs)) -> HealthResponse:
    return HealthResponse(status="ok", active_runs=len(active_runs))
