"""Metric recording helpers for reconciliation runs."""

from __future__ import annotations

from reconcile_engine.observability.logger import get_logger

logger = get_logger("metrics")


def log_inference_metrics(
    run_id: str,
    evidence_count: int,
    atom_count: int,
    fallback_count: int,
    filtered_count: int,
    llm_calls: int,
) -> None:
    logger.info(
        "inference_metrics",
        run_id=run_id,
        evidence_count=evidence_count,
        atom_count=atom_count,
        fallback_count=fallback_count,
        filtered_count=filtered_count,
        llm_calls=llm_calls,
    )


def log_dedup_metrics(run_id: str, input_atoms: int, output_atoms: int, merged_groups: int) -> None:
    logger.info(
        "dedup_metrics",
        run_id=run_id,
        input_atoms=input_atoms,
        output_atoms=output_atoms,
        merged_groups=merged_groups,
    )


def log_verification_metrics(
    run_id: str,
    strategy: str,
    total: int,
    passed: int,
    failed: int,
    avg_score: float,
) -> None:
    logger.info(
        "verification_metrics",
        run_id=run_id,
        strategy=strategy,
        total=total,
        passed=passed,
        failed=failed,
        avg_score=round(avg_score, 2),
    )


def log_phase_latency(run_id: str, phase: str, duration_ms: float) -> None:
    logger.info(
        "phase_latency",
        run_id=run_id,
        phase=phase,
        duration_ms=round(duration_ms, 2),
    )
