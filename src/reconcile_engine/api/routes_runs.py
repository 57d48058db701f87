"""Reconciliation run endpoints: start, inspect, review and cancel."""

from __future__ import annotations

from dataclasses import asdict

from fastapi import APIRouter, BackgroundTasks, Depends, HTTPException

from reconcile_engine.api.dependencies import get_active_runs, get_pipeline, get_run_store
from reconcile_engine.exceptions import RunNotFoundError
from reconcile_engine.models.domain import (
    AtomReviewDecision,
    ClusteringMethod,
    DeltaBaseline,
    HumanReviewInput,
    RunMode,
    RunOptions,
    RunState,
    RunStatus,
)
from reconcile_engine.models.schemas import (
    ReviewSubmission,
    RunResponse,
    StartRunRequest,
    StartRunResponse,
)
from reconcile_engine.observability.logger import get_logger
from reconcile_engine.pipeline.orchestrator import ReconciliationPipeline
from reconcile_engine.pipeline.state import create_run_state
from reconcile_engine.storage.sqlite_run_store import SQLiteRunStore

logger = get_logger("routes_runs")

router = APIRouter()


def options_from_request(request: StartRunRequest) -> RunOptions:
    baseline = None
    if request.baseline_run_id or request.baseline_commit:
        baseline = DeltaBaseline(run_id=request.baseline_run_id, commit_hash=request.baseline_commit)
    return RunOptions(
        mode=RunMode(request.mode),
        baseline=baseline,
        include_paths=list(request.include_paths),
        exclude_paths=list(request.exclude_paths),
        include_file_patterns=list(request.include_file_patterns),
        exclude_file_patterns=list(request.exclude_file_patterns),
        max_evidence_items=request.max_evidence_items,
        min_confidence=request.min_confidence,
        quality_threshold=request.quality_threshold,
        require_review=request.require_review,
        clustering_method=(
            ClusteringMethod(request.clustering_method) if request.clustering_method else None
        ),
        use_llm_for_naming=request.use_llm_for_naming,
    )


def run_response(state: RunState) -> RunResponse:
    return RunResponse(
        run_id=state.run_id,
        status=state.status.value,
        phase=state.phase.value,
        pending_human_review=state.pending_human_review,
        atoms=[asdict(a) for a in state.inferred_atoms],
        molecules=[asdict(m) for m in state.inferred_molecules],
        decisions=[d.value for d in state.decisions],
        errors=list(state.errors),
        warnings=list(state.warnings),
        llm_call_count=state.llm_call_count,
        review_request=state.review_request,
    )


async def _execute(
    pipeline: ReconciliationPipeline,
    state: RunState,
    active_runs: set[str],
    review: HumanReviewInput | None = None,
) -> None:
    active_runs.add(state.run_id)
    try:
        if review is None:
            await pipeline.run(state)
        else:
            await pipeline.resume(state, review)
    except Exception as e:
        logger.error("run_execution_failed", run_id=state.run_id, error=str(e))
    finally:
        active_runs.discard(state.run_id)
        # a paused run keeps its flag so a cancel lands on resume
        if not state.pending_human_review:
            pipeline.cancellation.clear(state.run_id)


async def _load(store: SQLiteRunStore, run_id: str) -> RunState:
    try:
        return await store.load_state(run_id)
    except RunNotFoundError as e:
        raise HTTPException(status_code=404, detail=str(e))


@router.post("/runs", response_model=StartRunResponse, status_code=202)
async def start_run(
    request: StartRunRequest,
    background_tasks: BackgroundTasks,
    pipeline: ReconciliationPipeline = Depends(get_pipeline),
    store: SQLiteRunStore = Depends(get_run_store),
    active_runs: set[str] = Depends(get_active_runs),
) -> StartRunResponse:
    state = create_run_state(request.root_directory, options_from_request(request))
    await store.save_state(state)
    background_tasks.add_task(_execute, pipeline, state, active_runs)
    logger.info("run_accepted", run_id=state.run_id, mode=request.mode)
    return StartRunResponse(run_id=state.run_id, status=state.status.value)


@router.get("/runs/{run_id}", response_model=RunResponse)
async def get_run(
    run_id: str,
    store: SQLiteRunStore = Depends(get_run_store),
) -> RunResponse:
    return run_response(await _load(store, run_id))


@router.post("/runs/{run_id}/review", response_model=StartRunResponse, status_code=202)
async def submit_review(
    run_id: str,
    submission: ReviewSubmission,
    background_tasks: BackgroundTasks,
    pipeline: ReconciliationPipeline = Depends(get_pipeline),
    store: SQLiteRunStore = Depends(get_run_store),
    active_runs: set[str] = Depends(get_active_runs),
) -> StartRunResponse:
    state = await _load(store, run_id)
    if not state.pending_human_review or run_id in active_runs:
        raise HTTPException(status_code=409, detail=f"Run {run_id} is not awaiting review")

    review = HumanReviewInput(
        atom_decisions=[
            AtomReviewDecision(atom_temp_id=d.atom_temp_id, decision=d.decision)
            for d in submission.atom_decisions
        ],
        comments=submission.comments,
    )
    background_tasks.add_task(_execute, pipeline, state, active_runs, review)
    return StartRunResponse(run_id=run_id, status=RunStatus.RUNNING.value)


@router.post("/runs/{run_id}/cancel", response_model=StartRunResponse, status_code=202)
async def cancel_run(
    run_id: str,
    pipeline: ReconciliationPipeline = Depends(get_pipeline),
    store: SQLiteRunStore = Depends(get_run_store),
    active_runs: set[str] = Depends(get_active_runs),
) -> StartRunResponse:
    if run_id not in active_runs:
        state = await _load(store, run_id)
        raise HTTPException(
            status_code=409,
            detail=f"Run {run_id} is not active (status={state.status.value})",
        )
    pipeline.cancel(run_id)
    return StartRunResponse(run_id=run_id, status="cancelling")
