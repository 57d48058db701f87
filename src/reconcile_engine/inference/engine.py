"""Atom inference: evidence + analysis -> candidate atoms, one per evidence item."""

from __future__ import annotations

import asyncio
from dataclasses import dataclass, field

from reconcile_engine.cancellation import CancellationRegistry
from reconcile_engine.config.constants import (
    ATOM_CATEGORIES,
    FALLBACK_AMBIGUITY,
    FALLBACK_CONFIDENCE,
    FALLBACK_REASONING,
    TIER_ORDER,
)
from reconcile_engine.config.settings import Settings
from reconcile_engine.generation.json_recovery import parse_json_response
from reconcile_engine.generation.prompt_templates import (
    ATOM_INFERENCE_SYSTEM,
    CORRECTIVE_REPROMPT,
    build_inference_prompt,
)
from reconcile_engine.inference.dependency import DependencyGraph
from reconcile_engine.inference.validation import find_violations, normalize_confidence
from reconcile_engine.models.domain import (
    EvidenceAnalysis,
    EvidenceItem,
    EvidenceSource,
    EvidenceType,
    InferredAtom,
    SourceReference,
)
from reconcile_engine.models.schemas import InferenceResponse
from reconcile_engine.observability.logger import get_logger
from reconcile_engine.protocols.llm import LLMClient, TaskType
from reconcile_engine.protocols.tools import ToolRegistry

logger = get_logger("atom_inference")

INFERENCE_TOOL = "infer_atom_from_evidence"


@dataclass
class InferenceOutcome:
    atoms: list[InferredAtom]
    filtered_count: int = 0
    fallback_count: int = 0
    boosted_count: int = 0
    llm_calls: int = 0


@dataclass
class _Draft:
    """Per-item result before temp ids are assigned."""

    item: EvidenceItem
    response: InferenceResponse | None
    failure: str | None = None
    extra_ambiguity: list[str] = field(default_factory=list)


@dataclass
class _Counters:
    llm_calls: int = 0


def order_by_tier(items: list[EvidenceItem]) -> list[list[EvidenceItem]]:
    """Group items into fixed tiers; unknown types form a final tier in discovery order."""
    buckets: dict[str, list[EvidenceItem]] = {t: [] for t in TIER_ORDER}
    extra: list[EvidenceItem] = []
    for item in items:
        bucket = buckets.get(item.type.value)
        if bucket is None:
            extra.append(item)
        else:
            bucket.append(item)
    tiers = [buckets[t] for t in TIER_ORDER if buckets[t]]
    if extra:
        tiers.append(extra)
    return tiers


def fallback_description(item: EvidenceItem) -> str:
    if item.type == EvidenceType.TEST:
        return f"Behavior verified by test: {item.name}"
    return f"Behavior evidenced by {item.type.value.replace('_', ' ')}: {item.name}"


class AtomInferenceEngine:
    def __init__(
        self,
        llm: LLMClient,
        settings: Settings,
        tools: ToolRegistry | None = None,
        cancellation: CancellationRegistry | None = None,
    ) -> None:
        self._llm = llm
        self._settings = settings
        self._tools = tools
        self._cancellation = cancellation or CancellationRegistry()

    async def infer(
        self,
        run_id: str,
        items: list[EvidenceItem],
        analyses: dict[str, EvidenceAnalysis],
        graph: DependencyGraph | None = None,
        min_confidence: int | None = None,
    ) -> InferenceOutcome:
        """Infer atoms tier by tier in fixed-size concurrent batches.

        Raises RunCancelled at a tier or batch boundary once the run is flagged;
        the exception carries only atoms from fully committed batches.
        """
        threshold = self._settings.min_confidence if min_confidence is None else min_confidence
        batch_size = max(1, self._settings.inference_batch_size)
        counters = _Counters()
        outcome = InferenceOutcome(atoms=[])
        committed = 0

        for tier in order_by_tier(items):
            self._cancellation.check(run_id, outcome.atoms)
            for start in range(0, len(tier), batch_size):
                self._cancellation.check(run_id, outcome.atoms)
                batch = tier[start : start + batch_size]
                drafts = await asyncio.gather(
                    *(self._infer_one(item, analyses.get(item.key), counters) for item in batch)
                )
                # A flag raised while this batch was in flight voids the batch.
                self._cancellation.check(run_id, outcome.atoms)

                for draft in drafts:
                    committed += 1
                    atom, boosted = self._build_atom(draft, f"atom-{committed}", graph)
                    if draft.response is None:
                        outcome.fallback_count += 1
                    if atom.confidence < threshold:
                        outcome.filtered_count += 1
                        continue
                    outcome.boosted_count += int(boosted)
                    outcome.atoms.append(atom)

            logger.info(
                "inference_tier_complete",
                run_id=run_id,
                tier=tier[0].type.value,
                items=len(tier),
                atoms=len(outcome.atoms),
            )

        outcome.llm_calls = counters.llm_calls
        return outcome

    async def _infer_one(
        self,
        item: EvidenceItem,
        analysis: EvidenceAnalysis | None,
        counters: _Counters,
    ) -> _Draft:
        if self._tool_enabled():
            draft = await self._infer_with_tool(item, analysis)
            if draft is not None:
                return draft

        try:
            return await self._infer_with_llm(item, analysis, counters)
        except Exception as e:
            logger.warning("atom_inference_failed", evidence=item.key, error=str(e))
            return _Draft(item=item, response=None, failure=str(e))

    def _tool_enabled(self) -> bool:
        return (
            self._settings.use_inference_tool
            and self._tools is not None
            and self._tools.has_tool(INFERENCE_TOOL)
        )

    async def _infer_with_tool(
        self, item: EvidenceItem, analysis: EvidenceAnalysis | None
    ) -> _Draft | None:
        try:
            result = await self._tools.execute_tool(
                INFERENCE_TOOL,
                {
                    "evidenceType": item.type.value,
                    "filePath": item.file_path,
                    "name": item.name,
                    "code": item.code or "",
                    "summary": analysis.summary if analysis else "",
                    "domainConcepts": analysis.domain_concepts if analysis else [],
                },
            )
            response = InferenceResponse.model_validate(result)
        except Exception as e:
            logger.warning("inference_tool_failed", evidence=item.key, error=str(e))
            return None

        violations = find_violations(response.description)
        return _Draft(item=item, response=response, extra_ambiguity=violations)

    async def _infer_with_llm(
        self,
        item: EvidenceItem,
        analysis: EvidenceAnalysis | None,
        counters: _Counters,
    ) -> _Draft:
        messages = [
            {"role": "system", "content": ATOM_INFERENCE_SYSTEM},
            {"role": "user", "content": build_inference_prompt(item, analysis)},
        ]
        counters.llm_calls += 1
        raw = await self._llm.invoke(messages, TaskType.INFERENCE, prompt_caching=True)
        response = InferenceResponse.model_validate(parse_json_response(raw))

        violations = find_violations(response.description)
        attempts = 0
        while violations and attempts < self._settings.max_reprompts:
            attempts += 1
            messages = messages + [
                {"role": "assistant", "content": raw},
                {
                    "role": "user",
                    "content": CORRECTIVE_REPROMPT.format(
                        violations="\n".join(f"- {v}" for v in violations),
                        previous=raw,
                    ),
                },
            ]
            try:
                counters.llm_calls += 1
                raw = await self._llm.invoke(messages, TaskType.INFERENCE)
                corrected = InferenceResponse.model_validate(parse_json_response(raw))
            except Exception as e:
                logger.warning("atom_reprompt_failed", evidence=item.key, error=str(e))
                break
            response = corrected
            violations = find_violations(response.description)

        return _Draft(item=item, response=response, extra_ambiguity=violations)

    def _build_atom(
        self, draft: _Draft, temp_id: str, graph: DependencyGraph | None
    ) -> tuple[InferredAtom, bool]:
        item = draft.item
        reference = SourceReference(
            file_path=item.file_path, name=item.name, line_number=item.line_number
        )

        if draft.response is None:
            fallback = InferredAtom(
                temp_id=temp_id,
                description=fallback_description(item),
                category="functional",
                observable_outcomes=["Test passes as expected"]
                if item.type == EvidenceType.TEST
                else ["Behavior is observable as described by the evidence"],
                confidence=FALLBACK_CONFIDENCE,
                reasoning=FALLBACK_REASONING,
                source_reference=reference,
                evidence_sources=[
                    EvidenceSource(
                        type=item.type,
                        file_path=item.file_path,
                        name=item.name,
                        confidence=FALLBACK_CONFIDENCE,
                    )
                ],
                primary_evidence_type=item.type,
                ambiguity_reasons=[
                    FALLBACK_AMBIGUITY,
                    *([f"Failure: {draft.failure}"] if draft.failure else []),
                ],
            )
            return fallback, False

        response = draft.response
        ambiguity = list(response.ambiguity_reasons) + draft.extra_ambiguity
        category = response.category.lower().strip()
        if category not in ATOM_CATEGORIES:
            ambiguity.append(f"Unknown category '{response.category}' mapped to functional")
            category = "functional"

        confidence = normalize_confidence(response.confidence)
        reasoning = response.reasoning
        boosted = graph is not None and graph.traces_to_foundational(
            item,
            self._settings.foundational_min_dependents,
            self._settings.foundational_max_dependencies,
        )
        if boosted:
            confidence = min(100, confidence + self._settings.foundational_boost)
            reasoning = f"{reasoning} (boosted: foundational module)".strip()

        atom = InferredAtom(
            temp_id=temp_id,
            description=response.description,
            category=category,
            observable_outcomes=list(response.observable_outcomes),
            confidence=confidence,
            reasoning=reasoning,
            source_reference=reference,
            evidence_sources=[
                EvidenceSource(
                    type=item.type,
                    file_path=item.file_path,
                    name=item.name,
                    confidence=confidence,
                )
            ],
            primary_evidence_type=item.type,
            ambiguity_reasons=ambiguity,
        )
        return atom, boosted
