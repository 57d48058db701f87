"""Reconciliation pipeline orchestrator: the phase state machine."""

from __future__ import annotations

from collections.abc import Awaitable, Callable
from datetime import datetime, timezone

import structlog

from reconcile_engine.analysis.evidence_analysis import EvidenceAnalyzer
from reconcile_engine.cancellation import CancellationRegistry
from reconcile_engine.config.settings import Settings
from reconcile_engine.dedup.cross_evidence import deduplicate_across_evidence
from reconcile_engine.discovery.discoverer import EvidenceDiscoverer
from reconcile_engine.discovery.selection import select_for_inference
from reconcile_engine.exceptions import InvalidPhaseError, RunCancelled
from reconcile_engine.inference.dependency import DependencyGraph
from reconcile_engine.inference.engine import AtomInferenceEngine
from reconcile_engine.models.domain import (
    Decision,
    HumanReviewInput,
    Phase,
    ReconciliationResult,
    RunState,
    RunStatus,
    RunSummary,
)
from reconcile_engine.observability.logger import get_logger
from reconcile_engine.observability.metrics import (
    log_dedup_metrics,
    log_inference_metrics,
    log_phase_latency,
)
from reconcile_engine.observability.tracing import RunTrace
from reconcile_engine.pipeline.state import format_phase_error, next_phase, shed_consumed_context
from reconcile_engine.protocols.batch import BatchLLMService
from reconcile_engine.protocols.evidence import DispositionLookup, EvidenceProvider
from reconcile_engine.protocols.llm import LLMClient
from reconcile_engine.protocols.sink import ResultSink
from reconcile_engine.protocols.tools import ToolRegistry
from reconcile_engine.synthesis.synthesizer import MoleculeSynthesizer
from reconcile_engine.verification.verifier import QualityVerifier

logger = get_logger("reconciliation_pipeline")


class ReconciliationPipeline:
    def __init__(
        self,
        provider: EvidenceProvider,
        llm: LLMClient,
        settings: Settings,
        tools: ToolRegistry | None = None,
        batch_service: BatchLLMService | None = None,
        dispositions: DispositionLookup | None = None,
        sink: ResultSink | None = None,
        store=None,
        cancellation: CancellationRegistry | None = None,
    ) -> None:
        self._provider = provider
        self._settings = settings
        self._sink = sink
        self._store = store
        self._cancellation = cancellation or CancellationRegistry()

        self._discoverer = EvidenceDiscoverer(provider, settings, dispositions)
        self._analyzer = EvidenceAnalyzer(tools)
        self._engine = AtomInferenceEngine(llm, settings, tools, self._cancellation)
        self._synthesizer = MoleculeSynthesizer(settings, llm, tools)
        self._verifier = QualityVerifier(settings, tools, batch_service, self._cancellation)

        self._handlers: dict[Phase, Callable[[RunState], Awaitable[None]]] = {
            Phase.STRUCTURE: self._structure,
            Phase.DISCOVER: self._discover,
            Phase.CONTEXT: self._context,
            Phase.INFER: self._infer,
            Phase.SYNTHESIZE: self._synthesize,
            Phase.VERIFY: self._verify,
        }

    @property
    def cancellation(self) -> CancellationRegistry:
        return self._cancellation

    def cancel(self, run_id: str) -> None:
        self._cancellation.cancel(run_id)

    async def run(self, state: RunState) -> ReconciliationResult:
        """Drive the state machine from the current phase until it pauses, finishes or is cancelled."""
        trace = RunTrace(state.run_id)
        structlog.contextvars.bind_contextvars(run_id=state.run_id)
        try:
            await self._drive(state, trace)
        except RunCancelled as e:
            await self._cancelled(state, e)
        finally:
            state.trace_spans.extend(trace.to_dicts())
            structlog.contextvars.unbind_contextvars("run_id")

        return self.build_result(state)

    async def resume(self, state: RunState, review: HumanReviewInput) -> ReconciliationResult:
        """Continue a run paused for human review."""
        if state.phase != Phase.VERIFY or not state.pending_human_review:
            raise InvalidPhaseError(
                f"Run {state.run_id} is not awaiting review (phase={state.phase.value})"
            )
        state.human_review_input = review
        state.status = RunStatus.RUNNING
        return await self.run(state)

    async def _drive(self, state: RunState, trace: RunTrace) -> None:
        while state.phase != Phase.PERSIST:
            phase = state.phase
            self._cancellation.check(state.run_id)

            with trace.span(phase.value) as span:
                try:
                    await self._handlers[phase](state)
                except RunCancelled:
                    raise
                except Exception as e:
                    span.error = type(e).__name__
                    state.errors.append(format_phase_error(phase, e))
                    logger.error("phase_failed", phase=phase.value, error=str(e))
            log_phase_latency(state.run_id, phase.value, span.duration_ms)

            if phase == Phase.VERIFY and state.pending_human_review:
                await self._checkpoint(state)
                logger.info("run_paused_for_review", phase=phase.value)
                return

            state.phases_completed.append(phase)
            state.phase = next_phase(phase)
            await self._checkpoint(state)

        await self._persist(state)

    async def _structure(self, state: RunState) -> None:
        state.repo_structure = await self._provider.describe_repository(
            state.root_directory, include_dependencies=self._settings.include_dependencies
        )
        logger.info(
            "structure_complete",
            files=len(state.repo_structure.files),
            edges=len(state.repo_structure.dependency_edges),
        )

    async def _discover(self, state: RunState) -> None:
        outcome = await self._discoverer.discover(state.root_directory, state.options)
        selection = select_for_inference(
            outcome.items,
            self._settings.evidence_caps(),
            self._settings.pre_inference_dedup_threshold,
        )
        state.evidence_items = selection.items
        state.changed_atom_linked = outcome.changed_atom_linked
        state.closure_excluded_count = outcome.closure_excluded
        state.warnings.extend(outcome.warnings)
        if selection.deduplicated:
            state.warnings.append(
                f"{selection.deduplicated} near-duplicate evidence items dropped before inference"
            )
        for type_value, dropped in selection.capped.items():
            state.warnings.append(f"Evidence cap reached for {type_value}: {dropped} items dropped")

    async def _context(self, state: RunState) -> None:
        state.evidence_analysis = await self._analyzer.analyze(state.evidence_items)

    async def _infer(self, state: RunState) -> None:
        graph = None
        if state.repo_structure is not None and state.repo_structure.dependency_edges:
            graph = DependencyGraph(state.repo_structure.dependency_edges)

        outcome = await self._engine.infer(
            state.run_id,
            state.evidence_items,
            state.evidence_analysis,
            graph,
            state.options.min_confidence,
        )
        state.inferred_atoms = outcome.atoms
        state.llm_call_count += outcome.llm_calls
        log_inference_metrics(
            state.run_id,
            len(state.evidence_items),
            len(outcome.atoms),
            outcome.fallback_count,
            outcome.filtered_count,
            outcome.llm_calls,
        )
        if outcome.fallback_count:
            state.warnings.append(
                f"{outcome.fallback_count} atoms used fallback inference and need manual review"
            )
        shed_consumed_context(state)

    async def _synthesize(self, state: RunState) -> None:
        dedup = deduplicate_across_evidence(
            state.inferred_atoms,
            self._settings.cross_evidence_dedup_threshold,
            self._settings.corroboration_bonus_two_types,
            self._settings.corroboration_bonus_three_plus,
        )
        log_dedup_metrics(state.run_id, len(state.inferred_atoms), len(dedup.atoms), dedup.merged_groups)
        state.inferred_atoms = dedup.atoms

        outcome = await self._synthesizer.synthesize(
            state.inferred_atoms,
            state.options.clustering_method,
            state.options.use_llm_for_naming,
        )
        state.inferred_molecules = outcome.molecules
        state.llm_call_count += outcome.llm_calls
        if outcome.naming_batches_failed:
            state.warnings.append(
                f"Molecule naming failed for {outcome.naming_batches_failed} batch(es); "
                "template names kept"
            )

    async def _verify(self, state: RunState) -> None:
        await self._verifier.verify(state)

    async def _persist(self, state: RunState) -> None:
        if Phase.PERSIST not in state.phases_completed:
            state.phases_completed.append(Phase.PERSIST)
        state.status = RunStatus.COMPLETED
        result = self.build_result(state)

        if self._sink is not None:
            try:
                await self._sink.persist(result)
            except Exception as e:
                state.errors.append(format_phase_error(Phase.PERSIST, e))
                logger.error("result_handoff_failed", error=str(e))

        if self._store is not None:
            try:
                await self._store.record_dispositions(state)
            except Exception as e:
                state.errors.append(format_phase_error(Phase.PERSIST, e))
                logger.error("disposition_record_failed", error=str(e))
        await self._checkpoint(state)
        logger.info(
            "run_complete",
            atoms=len(state.inferred_atoms),
            molecules=len(state.inferred_molecules),
            errors=len(state.errors),
            llm_calls=state.llm_call_count,
        )

    async def _cancelled(self, state: RunState, error: RunCancelled) -> None:
        phase = state.phase
        state.status = RunStatus.CANCELLED
        state.warnings.append(f"Run cancelled during {phase.value}")
        self._cancellation.clear(state.run_id)
        logger.warning(
            "run_cancelled",
            phase=phase.value,
            discarded_atoms=len(error.partial_atoms),
        )
        await self._checkpoint(state)

    async def _checkpoint(self, state: RunState) -> None:
        if self._store is None:
            return
        try:
            await self._store.save_state(state)
        except Exception as e:
            logger.warning("checkpoint_failed", error=str(e))

    def build_result(self, state: RunState) -> ReconciliationResult:
        duration_ms = (datetime.now(timezone.utc) - state.started_at).total_seconds() * 1000
        summary = RunSummary(
            total_evidence=len(state.evidence_items),
            total_atoms=len(state.inferred_atoms),
            total_molecules=len(state.inferred_molecules),
            approved=state.decisions.count(Decision.APPROVED),
            rejected=state.decisions.count(Decision.REJECTED),
            quality_failed=state.decisions.count(Decision.QUALITY_FAIL),
            changed_atom_linked=len(state.changed_atom_linked),
            closure_excluded=state.closure_excluded_count,
            duration_ms=round(duration_ms, 2),
            llm_calls=state.llm_call_count,
            mode=state.options.mode,
            phases_completed=list(state.phases_completed),
        )
        return ReconciliationResult(
            run_id=state.run_id,
            status=state.status,
            atoms=list(state.inferred_atoms),
            molecules=list(state.inferred_molecules),
            decisions=list(state.decisions),
            summary=summary,
            errors=list(state.errors),
            warnings=list(state.warnings),
            review_request=state.review_request,
            spans=list(state.trace_spans),
        )
