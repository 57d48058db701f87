"""Molecule synthesis: cluster atoms, name clusters, optionally refine names with the LLM."""

from __future__ import annotations

from collections import Counter
from dataclasses import dataclass

from pydantic import ValidationError

from reconcile_engine.config.constants import UNNAMED_CLUSTER
from reconcile_engine.config.settings import Settings
from reconcile_engine.exceptions import (
    ConfigurationError,
    MalformedOutputError,
    SynthesisError,
    ToolError,
)
from reconcile_engine.generation.json_recovery import parse_json_response
from reconcile_engine.generation.prompt_templates import (
    MOLECULE_NAMING_PROMPT,
    MOLECULE_NAMING_SYSTEM,
)
from reconcile_engine.models.domain import ClusteringMethod, InferredAtom, InferredMolecule
from reconcile_engine.models.schemas import ClusteredMoleculeEntry, MoleculeNamingEntry
from reconcile_engine.observability.logger import get_logger
from reconcile_engine.protocols.llm import LLMClient, TaskType
from reconcile_engine.protocols.tools import ToolRegistry
from reconcile_engine.synthesis.clustering import cluster_atoms

logger = get_logger("molecule_synthesis")

CLUSTER_TOOL = "cluster_atoms_for_molecules"
MAX_ATOMS_IN_SUMMARY = 8


@dataclass
class SynthesisOutcome:
    molecules: list[InferredMolecule]
    clusters_dropped: int = 0
    naming_batches_failed: int = 0
    llm_calls: int = 0


def molecule_name(atoms: list[InferredAtom], group_key: str) -> str:
    if not group_key.strip():
        raise SynthesisError("Empty group key")
    name = group_key[0].upper() + group_key[1:]
    categories = {a.category for a in atoms}
    if categories == {"security"}:
        return f"{name} Security"
    if categories == {"performance"}:
        return f"{name} Performance"
    return f"{name} Functionality"


def molecule_description(atoms: list[InferredAtom], group_key: str) -> str:
    if len(atoms) == 1:
        return f"Behavior related to {group_key}: {atoms[0].description}"
    behaviors = "; ".join(a.description for a in atoms[:3])
    more = " and more" if len(atoms) > 3 else ""
    return f"Behaviors related to {group_key} including: {behaviors}{more}"


def molecule_confidence(atoms: list[InferredAtom]) -> int:
    """Rounded mean (half up) of member confidences."""
    if not atoms:
        return 0
    return int(sum(a.confidence for a in atoms) / len(atoms) + 0.5)


def summarize_cluster(index: int, molecule: InferredMolecule, atoms: list[InferredAtom]) -> str:
    type_counts = Counter(s.type.value for a in atoms for s in a.evidence_sources)
    evidence = ", ".join(f"{t} x{n}" for t, n in type_counts.items()) or "unknown"
    lines = [
        f"Group {index} (current name: {molecule.name})",
        f"Evidence: {evidence}",
        "Atoms:",
    ]
    lines.extend(f"- {a.description}" for a in atoms[:MAX_ATOMS_IN_SUMMARY])
    if len(atoms) > MAX_ATOMS_IN_SUMMARY:
        lines.append(f"- ... and {len(atoms) - MAX_ATOMS_IN_SUMMARY} more")
    return "\n".join(lines)


def resolve_clustering_method(value: str) -> ClusteringMethod:
    try:
        return ClusteringMethod(value)
    except ValueError as e:
        raise ConfigurationError(f"Unknown clustering method: {value!r}") from e


class MoleculeSynthesizer:
    def __init__(
        self,
        settings: Settings,
        llm: LLMClient | None = None,
        tools: ToolRegistry | None = None,
    ) -> None:
        self._settings = settings
        self._llm = llm
        self._tools = tools

    async def synthesize(
        self,
        atoms: list[InferredAtom],
        method: ClusteringMethod | None = None,
        use_llm_for_naming: bool | None = None,
    ) -> SynthesisOutcome:
        """Group atoms into molecules.

        The clustering tool is tried first when registered; any tool failure falls back to
        direct clustering. Naming failures never change the groupings.
        """
        method = method or resolve_clustering_method(self._settings.clustering_method)
        use_llm = self._settings.use_llm_for_naming if use_llm_for_naming is None else use_llm_for_naming

        outcome = None
        if self._tools is not None and self._tools.has_tool(CLUSTER_TOOL):
            outcome = await self._cluster_with_tool(atoms, method)
        if outcome is None:
            outcome = self._cluster_directly(atoms, method)

        if use_llm and self._llm is not None and outcome.molecules:
            await self._refine_names(outcome, atoms)

        logger.info(
            "molecules_synthesized",
            method=method.value,
            molecules=len(outcome.molecules),
            dropped=outcome.clusters_dropped,
            naming_batches_failed=outcome.naming_batches_failed,
        )
        return outcome

    def _cluster_directly(self, atoms: list[InferredAtom], method: ClusteringMethod) -> SynthesisOutcome:
        clusters = cluster_atoms(atoms, method, self._settings.semantic_similarity_threshold)
        outcome = SynthesisOutcome(molecules=[])

        for group_key, members in clusters.items():
            if len(members) < self._settings.min_atoms_per_molecule:
                outcome.clusters_dropped += 1
                continue
            temp_id = f"mol-{len(outcome.molecules) + 1}"
            outcome.molecules.append(self._template_molecule(temp_id, group_key, members, method))
        return outcome

    async def _cluster_with_tool(
        self, atoms: list[InferredAtom], method: ClusteringMethod
    ) -> SynthesisOutcome | None:
        min_atoms = self._settings.min_atoms_per_molecule
        try:
            result = await self._tools.execute_tool(
                CLUSTER_TOOL,
                {
                    "atoms": [
                        {
                            "tempId": a.temp_id,
                            "description": a.description,
                            "category": a.category,
                            "sourceFile": a.source_reference.file_path,
                            "confidence": a.confidence,
                        }
                        for a in atoms
                    ],
                    "clusteringMethod": method.value,
                    "minAtomsPerCluster": min_atoms,
                },
            )
            entries = result.get("molecules") if isinstance(result, dict) else result
            if not isinstance(entries, list):
                raise ToolError("Clustering tool reply has no molecule list")
            parsed = [ClusteredMoleculeEntry.model_validate(entry) for entry in entries]
            outcome = self._molecules_from_entries(parsed, atoms, method, min_atoms)
        except Exception as e:
            logger.warning("cluster_tool_failed", method=method.value, error=str(e))
            return None

        logger.info("cluster_tool_used", molecules=len(outcome.molecules))
        return outcome

    @staticmethod
    def _molecules_from_entries(
        entries: list[ClusteredMoleculeEntry],
        atoms: list[InferredAtom],
        method: ClusteringMethod,
        min_atoms: int,
    ) -> SynthesisOutcome:
        atom_by_id = {a.temp_id: a for a in atoms}
        outcome = SynthesisOutcome(molecules=[])

        for entry in entries:
            unknown = [t for t in entry.atom_temp_ids if t not in atom_by_id]
            if unknown:
                raise ToolError(f"Clustering tool referenced unknown atoms: {unknown}")
            members = [atom_by_id[t] for t in dict.fromkeys(entry.atom_temp_ids)]
            if len(members) < min_atoms:
                outcome.clusters_dropped += 1
                continue
            outcome.molecules.append(
                InferredMolecule(
                    temp_id=f"mol-{len(outcome.molecules) + 1}",
                    name=entry.name,
                    description=entry.description,
                    atom_temp_ids=[a.temp_id for a in members],
                    confidence=molecule_confidence(members),
                    reasoning=entry.clustering_reason
                    or f"Grouped {len(members)} atoms by {method.value} (clustering tool)",
                )
            )
        return outcome

    @staticmethod
    def _template_molecule(
        temp_id: str,
        group_key: str,
        members: list[InferredAtom],
        method: ClusteringMethod,
    ) -> InferredMolecule:
        atom_ids = [a.temp_id for a in members]
        try:
            return InferredMolecule(
                temp_id=temp_id,
                name=molecule_name(members, group_key),
                description=molecule_description(members, group_key),
                atom_temp_ids=atom_ids,
                confidence=molecule_confidence(members),
                reasoning=f"Grouped {len(members)} atoms by {method.value}: {group_key}",
            )
        except SynthesisError as e:
            logger.warning("molecule_template_failed", group_key=group_key, error=str(e))
            return InferredMolecule(
                temp_id=temp_id,
                name=UNNAMED_CLUSTER,
                description=f"Atoms from {group_key} (molecule synthesis failed)",
                atom_temp_ids=atom_ids,
                confidence=molecule_confidence(members),
                reasoning=f"Fallback cluster due to error: {e}",
            )

    async def _refine_names(self, outcome: SynthesisOutcome, atoms: list[InferredAtom]) -> None:
        atom_by_id = {a.temp_id: a for a in atoms}
        batch_size = max(1, self._settings.naming_batch_size)

        for start in range(0, len(outcome.molecules), batch_size):
            batch = outcome.molecules[start : start + batch_size]
            clusters_block = "\n\n".join(
                summarize_cluster(i, mol, [atom_by_id[t] for t in mol.atom_temp_ids if t in atom_by_id])
                for i, mol in enumerate(batch)
            )
            messages = [
                {"role": "system", "content": MOLECULE_NAMING_SYSTEM},
                {"role": "user", "content": MOLECULE_NAMING_PROMPT.format(clusters_block=clusters_block)},
            ]
            try:
                outcome.llm_calls += 1
                raw = await self._llm.invoke(messages, TaskType.NAMING)
                entries = parse_json_response(raw)
                if not isinstance(entries, list):
                    raise MalformedOutputError("Naming response is not a JSON array")
            except Exception as e:
                outcome.naming_batches_failed += 1
                logger.warning("molecule_naming_failed", batch_start=start, error=str(e))
                continue

            for entry in entries:
                try:
                    naming = MoleculeNamingEntry.model_validate(entry)
                except ValidationError:
                    continue
                if not 0 <= naming.index < len(batch):
                    continue
                molecule = batch[naming.index]
                molecule.name = naming.name
                molecule.description = naming.description
                if naming.gherkin:
                    molecule.gherkin_scenario = naming.gherkin
