"""Quality verification phase with human-review pause and resume."""

from __future__ import annotations

from dataclasses import dataclass

from reconcile_engine.cancellation import CancellationRegistry
from reconcile_engine.config.settings import Settings
from reconcile_engine.models.domain import (
    AtomQualityResult,
    Decision,
    HumanReviewInput,
    InferredAtom,
    Phase,
    RunState,
    RunStatus,
)
from reconcile_engine.observability.logger import get_logger
from reconcile_engine.observability.metrics import log_verification_metrics
from reconcile_engine.protocols.batch import BatchLLMService
from reconcile_engine.protocols.tools import ToolRegistry
from reconcile_engine.verification.quality_rules import atom_issues
from reconcile_engine.verification.strategies import (
    QUALITY_TOOL,
    score_batched,
    score_concurrent,
    score_sequential,
)

logger = get_logger("quality_verifier")


@dataclass
class ScoringOutcome:
    strategy: str
    results: list[AtomQualityResult]


class QualityVerifier:
    def __init__(
        self,
        settings: Settings,
        tools: ToolRegistry | None = None,
        batch_service: BatchLLMService | None = None,
        cancellation: CancellationRegistry | None = None,
    ) -> None:
        self._settings = settings
        self._tools = tools
        self._batch = batch_service
        self._cancellation = cancellation or CancellationRegistry()

    def _threshold(self, state: RunState) -> int:
        override = state.options.quality_threshold
        return self._settings.quality_threshold if override is None else override

    async def score(self, run_id: str, atoms: list[InferredAtom], threshold: int) -> ScoringOutcome:
        """Pick a strategy by priority: batched, bounded-concurrent, then sequential."""
        self._cancellation.check(run_id)
        count = len(atoms)

        if self._batch is not None and count >= self._settings.batch_threshold:
            try:
                available = await self._batch.is_available()
            except Exception as e:
                logger.warning("batch_availability_check_failed", error=str(e))
                available = False
            if available:
                try:
                    results = await score_batched(atoms, self._batch, threshold)
                    return ScoringOutcome(strategy="batch", results=results)
                except Exception as e:
                    logger.warning("batch_verification_failed", run_id=run_id, error=str(e))
                self._cancellation.check(run_id)

        has_tool = self._tools is not None and self._tools.has_tool(QUALITY_TOOL)
        if has_tool and count >= self._settings.batch_threshold:
            results = await score_concurrent(
                run_id, atoms, self._tools, threshold, self._settings.concurrency_limit, self._cancellation
            )
            return ScoringOutcome(strategy="concurrent", results=results)

        results = await score_sequential(run_id, atoms, self._tools, threshold, self._cancellation)
        return ScoringOutcome(strategy="sequential", results=results)

    async def verify(self, state: RunState) -> RunState:
        """Score every atom and decide. May pause for human review instead of advancing."""
        if state.human_review_input is not None:
            return await self.verify_resume(state, state.human_review_input)

        atoms = state.inferred_atoms
        threshold = self._threshold(state)
        outcome = await self.score(state.run_id, atoms, threshold)

        for atom, result in zip(atoms, outcome.results):
            atom.quality_score = result.score
        decisions = [Decision.APPROVED if r.passed else Decision.QUALITY_FAIL for r in outcome.results]
        state.decisions = decisions

        passed = sum(1 for r in outcome.results if r.passed)
        failed = len(outcome.results) - passed
        avg = sum(r.score for r in outcome.results) / len(outcome.results) if outcome.results else 0.0
        log_verification_metrics(state.run_id, outcome.strategy, len(atoms), passed, failed, avg)

        if atoms and failed / len(atoms) > self._settings.high_failure_rate:
            message = (
                f"High quality failure rate: {failed}/{len(atoms)} atoms below threshold {threshold}; "
                "consider reviewing the threshold or inference prompts"
            )
            state.warnings.append(message)
            logger.warning("high_quality_failure_rate", run_id=state.run_id, failed=failed, total=len(atoms))
            for atom, result in zip(atoms, outcome.results):
                if not result.passed:
                    logger.debug("atom_quality_issues", atom=atom.temp_id, issues=atom_issues(atom))

        require_review = (
            state.options.require_review
            if state.options.require_review is not None
            else self._settings.require_review
        )
        legacy_review = self._settings.force_review_on_quality_fail and failed > passed
        if atoms and (require_review or legacy_review):
            state.pending_human_review = True
            state.status = RunStatus.PENDING_REVIEW
            state.review_request = self.build_review_request(state, outcome.results, threshold)
            state.phase = Phase.VERIFY
            logger.info("human_review_requested", run_id=state.run_id, atoms=len(atoms))
            return state

        state.pending_human_review = False
        state.phase = Phase.PERSIST
        return state

    async def verify_resume(self, state: RunState, review: HumanReviewInput) -> RunState:
        """Apply per-atom approve/reject overrides over the quality-based decisions."""
        threshold = self._threshold(state)
        atoms = state.inferred_atoms

        if all(a.quality_score is not None for a in atoms):
            base = [
                Decision.APPROVED if a.quality_score >= threshold else Decision.QUALITY_FAIL
                for a in atoms
            ]
        else:
            outcome = await self.score(state.run_id, atoms, threshold)
            for atom, result in zip(atoms, outcome.results):
                atom.quality_score = result.score
            base = [Decision.APPROVED if r.passed else Decision.QUALITY_FAIL for r in outcome.results]

        overrides = {d.atom_temp_id: d.decision for d in review.atom_decisions}
        known = {a.temp_id for a in atoms}
        unknown = sorted(set(overrides) - known)
        if unknown:
            state.warnings.append(f"Review decisions for unknown atoms ignored: {', '.join(unknown)}")

        decisions: list[Decision] = []
        for atom, decision in zip(atoms, base):
            override = overrides.get(atom.temp_id)
            if override == "approve":
                decision = Decision.APPROVED
            elif override == "reject":
                decision = Decision.REJECTED
            decisions.append(decision)

        state.decisions = decisions
        state.human_review_input = review
        state.pending_human_review = False
        state.review_request = None
        state.status = RunStatus.RUNNING
        state.phase = Phase.PERSIST
        logger.info(
            "human_review_applied",
            run_id=state.run_id,
            overrides=len(overrides) - len(unknown),
            approved=decisions.count(Decision.APPROVED),
            rejected=decisions.count(Decision.REJECTED),
        )
        return state

    @staticmethod
    def build_review_request(
        state: RunState, results: list[AtomQualityResult], threshold: int
    ) -> dict:
        passed = sum(1 for r in results if r.passed)
        return {
            "summary": {
                "totalAtoms": len(state.inferred_atoms),
                "passCount": passed,
                "failCount": len(results) - passed,
                "qualityThreshold": threshold,
                "totalMolecules": len(state.inferred_molecules),
            },
            "pendingAtoms": [
                {
                    "tempId": atom.temp_id,
                    "description": atom.description,
                    "category": atom.category,
                    "confidence": atom.confidence,
                    "qualityScore": result.score,
                    "passes": result.passed,
                    "issues": atom_issues(atom),
                }
                for atom, result in zip(state.inferred_atoms, results)
            ],
            "pendingMolecules": [
                {
                    "tempId": mol.temp_id,
                    "name": mol.name,
                    "description": mol.description,
                    "atomTempIds": list(mol.atom_temp_ids),
                    "confidence": mol.confidence,
                }
                for mol in state.inferred_molecules
            ],
        }

