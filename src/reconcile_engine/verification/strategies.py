"""Quality scoring execution strategies: batched, bounded-concurrent, sequential.

All strategies return one AtomQualityResult per atom, in input order, and fall back
to rule-based scoring per atom on any per-atom failure.
"""

from __future__ import annotations

import asyncio

from reconcile_engine.cancellation import CancellationRegistry
from reconcile_engine.exceptions import VerificationError
from reconcile_engine.generation.json_recovery import parse_json_response
from reconcile_engine.generation.prompt_templates import (
    QUALITY_PROMPT,
    QUALITY_SYSTEM,
    format_atom_block,
)
from reconcile_engine.models.domain import AtomQualityResult, InferredAtom
from reconcile_engine.models.schemas import QualityJudgement
from reconcile_engine.observability.logger import get_logger
from reconcile_engine.protocols.batch import BatchLLMService, BatchRequest
from reconcile_engine.protocols.tools import ToolRegistry
from reconcile_engine.verification.quality_rules import rule_result

logger = get_logger("verification_strategies")

QUALITY_TOOL = "validate_atom_quality"


def _judged(atom: InferredAtom, judgement: QualityJudgement, threshold: int, source: str) -> AtomQualityResult:
    score = int(round(judgement.total_score))
    return AtomQualityResult(
        atom_temp_id=atom.temp_id,
        score=score,
        passed=score >= threshold,
        source=source,
        feedback=judgement.feedback,
    )


def _tool_args(atom: InferredAtom) -> dict:
    return {
        "atomId": atom.temp_id,
        "description": atom.description,
        "category": atom.category,
        "observableOutcomes": atom.observable_outcomes,
        "confidence": atom.confidence,
        "reasoning": atom.reasoning,
        "ambiguityReasons": atom.ambiguity_reasons,
        "sourceReference": {
            "filePath": atom.source_reference.file_path,
            "name": atom.source_reference.name,
            "lineNumber": atom.source_reference.line_number,
        },
    }


async def score_with_tool(tools: ToolRegistry, atom: InferredAtom, threshold: int) -> AtomQualityResult:
    try:
        result = await tools.execute_tool(QUALITY_TOOL, _tool_args(atom))
        return _judged(atom, QualityJudgement.model_validate(result), threshold, "tool")
    except Exception as e:
        logger.warning("quality_tool_failed", atom=atom.temp_id, error=str(e))
        return rule_result(atom, threshold)


async def score_batched(
    atoms: list[InferredAtom],
    batch_service: BatchLLMService,
    threshold: int,
) -> list[AtomQualityResult]:
    """Submit every atom in one request set; results are matched back by atom id."""
    requests = [
        BatchRequest(
            custom_id=atom.temp_id,
            messages=[
                {"role": "system", "content": QUALITY_SYSTEM},
                {"role": "user", "content": QUALITY_PROMPT.format(atom_block=format_atom_block(atom))},
            ],
        )
        for atom in atoms
    ]

    def on_progress(completed: int, total: int, failed: int) -> None:
        logger.debug("batch_verification_progress", completed=completed, total=total, failed=failed)

    batch_results = await batch_service.submit_and_wait(requests, on_progress=on_progress)
    by_id = {r.custom_id: r for r in batch_results}

    results: list[AtomQualityResult] = []
    fallbacks = 0
    for atom in atoms:
        entry = by_id.get(atom.temp_id)
        try:
            if entry is None or entry.error or not entry.content:
                raise VerificationError(entry.error if entry and entry.error else "missing batch result")
            judgement = QualityJudgement.model_validate(parse_json_response(entry.content))
            results.append(_judged(atom, judgement, threshold, "batch"))
        except Exception as e:
            fallbacks += 1
            logger.debug("batch_result_unusable", atom=atom.temp_id, error=str(e))
            results.append(rule_result(atom, threshold))

    if fallbacks:
        logger.warning("batch_verification_fallbacks", fallbacks=fallbacks, total=len(atoms))
    return results


async def score_concurrent(
    run_id: str,
    atoms: list[InferredAtom],
    tools: ToolRegistry,
    threshold: int,
    limit: int,
    cancellation: CancellationRegistry,
) -> list[AtomQualityResult]:
    """Tool scoring with at most ``limit`` calls in flight."""
    semaphore = asyncio.Semaphore(max(1, limit))
    results: list[AtomQualityResult | None] = [None] * len(atoms)

    async def worker(index: int, atom: InferredAtom) -> None:
        async with semaphore:
            if cancellation.is_cancelled(run_id):
                return
            results[index] = await score_with_tool(tools, atom, threshold)

    await asyncio.gather(*(worker(i, atom) for i, atom in enumerate(atoms)))
    cancellation.check(run_id)
    return [r if r is not None else rule_result(atoms[i], threshold) for i, r in enumerate(results)]


async def score_sequential(
    run_id: str,
    atoms: list[InferredAtom],
    tools: ToolRegistry | None,
    threshold: int,
    cancellation: CancellationRegistry,
) -> list[AtomQualityResult]:
    use_tool = tools is not None and tools.has_tool(QUALITY_TOOL)
    results: list[AtomQualityResult] = []
    for atom in atoms:
        cancellation.check(run_id)
        if use_tool:
            results.append(await score_with_tool(tools, atom, threshold))
        else:
            results.append(rule_result(atom, threshold))
    return results
